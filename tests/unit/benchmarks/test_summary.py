"""Tests for benchmark summary aggregation."""

import json

import pytest

from plan_verifier.benchmarks.models import BenchmarkRun
from plan_verifier.benchmarks.summary import generate_summary, load_runs

RUN_A = {
    "promptId": "add-auth",
    "fixture": "webapp",
    "tier1": {"pathAnalysis": {"hallucinationRate": 0.2}, "detectionRate": 1.0},
    "apiUsage": {
        "planInputTokens": 100,
        "planOutputTokens": 50,
        "verifyInputTokens": 200,
        "verifyOutputTokens": 80,
    },
}

RUN_B = {
    "promptId": "add-cache",
    "tier1": {"pathAnalysis": {"hallucinationRate": 0.4}, "detectionRate": 0.5},
    "tier2": {
        "detections": [
            {
                "specId": "d1",
                "category": "scope-creep",
                "injectionApplied": True,
                "detected": True,
                "method": "critical-callout",
            },
            {"specId": "d2", "category": "feature-drift", "injectionApplied": True, "detected": False},
            {"specId": "d3", "category": "scope-creep", "injectionApplied": False, "detected": False},
        ]
    },
}


@pytest.fixture
def runs():
    return [BenchmarkRun.from_dict(RUN_A), BenchmarkRun.from_dict(RUN_B)]


def test_averages_and_totals(runs):
    summary = generate_summary(runs)

    assert summary.avg_hallucination_rate == 0.3
    assert summary.avg_detection_rate == 0.75
    assert summary.total_input_tokens == 300
    assert summary.total_output_tokens == 130
    assert summary.total_calls == 6
    assert [r["prompt_id"] for r in summary.per_run] == ["add-auth", "add-cache"]


def test_tier2_rates_use_applied_cases_only(runs):
    tier2 = generate_summary(runs).tier2

    assert tier2["avg_detection_rate"] == 0.5
    assert tier2["per_category"] == {"scope-creep": 1.0, "feature-drift": 0.0}
    assert tier2["per_method"] == {
        "critical-callout": 0.5,
        "alignment-section": 0.0,
        "signal-match": 0.0,
    }
    assert len(tier2["per_spec"]) == 3


def test_no_runs():
    summary = generate_summary([])

    assert summary.avg_hallucination_rate == 0.0
    assert summary.avg_detection_rate == 0.0
    assert summary.total_calls == 0
    assert summary.tier2 is None
    assert "tier2" not in summary.to_dict()


def test_tier2_absent_without_drift():
    summary = generate_summary([BenchmarkRun.from_dict(RUN_A)])

    assert summary.tier2 is None
    assert summary.total_calls == 2


def test_load_runs_accepts_single_object(tmp_path):
    path = tmp_path / "run.json"
    path.write_text(json.dumps(RUN_A))

    runs = load_runs(path)

    assert [r.prompt_id for r in runs] == ["add-auth"]
    assert runs[0].api_usage.input_tokens == 300


def test_save_and_summary_text(runs, tmp_path):
    summary = generate_summary(runs)
    out = tmp_path / "results" / "summary.json"

    summary.save(out)

    saved = json.loads(out.read_text())
    assert saved["tier1"]["avg_detection_rate"] == 0.75
    assert saved["api_usage"]["total_calls"] == 6
    text = summary.summary()
    assert "Runs: 2" in text
    assert "Drift detection rate: 0.5000" in text
    assert "  feature-drift: 0.0000" in text
