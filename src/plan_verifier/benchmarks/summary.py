"""Aggregate benchmark runs into a summary."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import structlog

from .models import DRIFT_METHODS, BenchmarkRun, BenchmarkSummary, DriftDetection

logger = structlog.get_logger(__name__)

CALLS_PER_RUN = 2  # plan generation + verification


def _mean(values: list[float]) -> float:
    if not values:
        return 0.0
    return round(sum(values) / len(values), 4)


def _rate(numerator: int, denominator: int) -> float:
    if denominator == 0:
        return 0.0
    return round(numerator / denominator, 4)


def summarize_drift(detections: list[DriftDetection]) -> dict[str, Any]:
    """Tier 2 block: rates over cases where the injection actually applied."""
    applied = [d for d in detections if d.injection_applied]
    detected = [d for d in applied if d.detected]

    per_category: dict[str, float] = {}
    for category in dict.fromkeys(d.category for d in applied):
        in_category = [d for d in applied if d.category == category]
        per_category[category] = _rate(sum(1 for d in in_category if d.detected), len(in_category))

    per_method = {
        method: _rate(sum(1 for d in detected if d.method == method), len(applied))
        for method in DRIFT_METHODS
    }

    return {
        "avg_detection_rate": _rate(len(detected), len(applied)),
        "per_category": per_category,
        "per_method": per_method,
        "per_spec": [d.to_dict() for d in detections],
    }


def generate_summary(runs: list[BenchmarkRun]) -> BenchmarkSummary:
    """Aggregate per-run results.

    Args:
        runs: Benchmark runs, in any order

    Returns:
        BenchmarkSummary with mean rates rounded to 4 places and token and
        call totals. ``tier2`` is set only when some run carries drift data.
    """
    per_run = [
        {
            "prompt_id": run.prompt_id,
            "hallucination_rate": run.hallucination_rate,
            "detection_rate": run.detection_rate,
        }
        for run in runs
    ]

    drift: list[DriftDetection] = [d for run in runs for d in run.drift_detections]
    applied_cases = sum(1 for d in drift if d.injection_applied)
    tier2: Optional[dict[str, Any]] = summarize_drift(drift) if drift else None

    return BenchmarkSummary(
        avg_hallucination_rate=_mean([run.hallucination_rate for run in runs]),
        avg_detection_rate=_mean([run.detection_rate for run in runs]),
        per_run=per_run,
        total_input_tokens=sum(run.api_usage.input_tokens for run in runs),
        total_output_tokens=sum(run.api_usage.output_tokens for run in runs),
        total_calls=len(runs) * CALLS_PER_RUN + applied_cases,
        tier2=tier2,
    )


def load_runs(path: Path) -> list[BenchmarkRun]:
    """Load runs from a JSON file holding either a list of runs or one run."""
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = [data]
    runs = [BenchmarkRun.from_dict(item) for item in data]
    logger.debug("benchmark_runs_loaded", path=str(path), runs=len(runs))
    return runs
