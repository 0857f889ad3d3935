"""Data records for benchmark runs and their aggregated summary.

Run files are produced by the benchmark harness as camelCase JSON; the
``from_dict`` constructors accept that shape so saved runs can be summarized
after the fact.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

DETECTION_METHODS = ("direct", "sentiment", "section", "directory")
DRIFT_METHODS = ("critical-callout", "alignment-section", "signal-match")


@dataclass(frozen=True)
class PathDetection:
    """Whether reviewer output called out one hallucinated path.

    Attributes:
        path: The hallucinated path
        detected: True if any detection tier matched
        method: Tier that matched (``direct``, ``sentiment``, ``section``,
            ``directory``) or None
    """

    path: str
    detected: bool
    method: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "detected": self.detected, "method": self.method}


@dataclass(frozen=True)
class SchemaDetection:
    raw: str
    category: str
    suggestion: Optional[str]
    detected: bool
    method: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "raw": self.raw,
            "category": self.category,
            "suggestion": self.suggestion,
            "detected": self.detected,
            "method": self.method,
        }


@dataclass(frozen=True)
class DriftInjection:
    method: str
    append_text: Optional[str] = None
    search_pattern: Optional[str] = None
    replace_text: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DriftInjection":
        return cls(
            method=data.get("method", ""),
            append_text=data.get("appendText"),
            search_pattern=data.get("searchPattern"),
            replace_text=data.get("replaceText"),
        )


@dataclass(frozen=True)
class DriftSpec:
    """One injected deviation from user intent.

    Attributes:
        id: Spec identifier
        category: Drift category (``scope-creep``, ``feature-drift``, ...)
        injection: How the drift is applied to a plan
        expected_signals: Keywords a reviewer should mention when catching it
        prompt_id: Prompt the drift applies to
        severity: ``major`` or ``minor``
        description: Free text description
    """

    id: str
    category: str
    injection: DriftInjection
    expected_signals: list[str] = field(default_factory=list)
    prompt_id: str = ""
    severity: str = "major"
    description: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DriftSpec":
        return cls(
            id=data["id"],
            category=data["category"],
            injection=DriftInjection.from_dict(data.get("injection", {})),
            expected_signals=list(data.get("expectedSignals", [])),
            prompt_id=data.get("promptId", ""),
            severity=data.get("severity", "major"),
            description=data.get("description", ""),
        )


@dataclass(frozen=True)
class InjectionResult:
    plan: str
    applied: bool


@dataclass(frozen=True)
class DriftDetection:
    spec_id: str
    category: str
    injection_applied: bool
    detected: bool
    method: Optional[str] = None
    matched_signals: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DriftDetection":
        return cls(
            spec_id=data["specId"],
            category=data["category"],
            injection_applied=bool(data.get("injectionApplied", False)),
            detected=bool(data.get("detected", False)),
            method=data.get("method"),
            matched_signals=list(data.get("matchedSignals", [])),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "spec_id": self.spec_id,
            "category": self.category,
            "injection_applied": self.injection_applied,
            "detected": self.detected,
            "method": self.method,
        }


@dataclass(frozen=True)
class ApiUsage:
    plan_input_tokens: int = 0
    plan_output_tokens: int = 0
    verify_input_tokens: int = 0
    verify_output_tokens: int = 0

    @property
    def input_tokens(self) -> int:
        return self.plan_input_tokens + self.verify_input_tokens

    @property
    def output_tokens(self) -> int:
        return self.plan_output_tokens + self.verify_output_tokens

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ApiUsage":
        return cls(
            plan_input_tokens=int(data.get("planInputTokens", 0)),
            plan_output_tokens=int(data.get("planOutputTokens", 0)),
            verify_input_tokens=int(data.get("verifyInputTokens", 0)),
            verify_output_tokens=int(data.get("verifyOutputTokens", 0)),
        )


@dataclass(frozen=True)
class BenchmarkRun:
    """One prompt run: plan generation plus a verification pass.

    Attributes:
        prompt_id: Prompt identifier
        hallucination_rate: Share of extracted paths that were hallucinated
        detection_rate: Share of hallucinated paths the reviewer flagged
        api_usage: Token counters for both calls
        drift_detections: Tier 2 detections, empty when drift was not run
        fixture: Fixture project name
    """

    prompt_id: str
    hallucination_rate: float
    detection_rate: float
    api_usage: ApiUsage = field(default_factory=ApiUsage)
    drift_detections: list[DriftDetection] = field(default_factory=list)
    fixture: str = ""

    @property
    def has_drift(self) -> bool:
        return bool(self.drift_detections)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BenchmarkRun":
        tier1 = data.get("tier1", {})
        path_analysis = tier1.get("pathAnalysis", {})
        tier2 = data.get("tier2") or {}
        return cls(
            prompt_id=data["promptId"],
            hallucination_rate=float(path_analysis.get("hallucinationRate", 0)),
            detection_rate=float(tier1.get("detectionRate", 0)),
            api_usage=ApiUsage.from_dict(data.get("apiUsage", {})),
            drift_detections=[
                DriftDetection.from_dict(d) for d in tier2.get("detections", [])
            ],
            fixture=data.get("fixture", ""),
        )


@dataclass
class BenchmarkSummary:
    """Aggregated benchmark results across runs."""

    avg_hallucination_rate: float
    avg_detection_rate: float
    per_run: list[dict[str, Any]]
    total_input_tokens: int
    total_output_tokens: int
    total_calls: int
    tier2: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data: dict[str, Any] = {
            "tier1": {
                "avg_hallucination_rate": self.avg_hallucination_rate,
                "avg_detection_rate": self.avg_detection_rate,
                "per_run": self.per_run,
            },
            "api_usage": {
                "total_input_tokens": self.total_input_tokens,
                "total_output_tokens": self.total_output_tokens,
                "total_calls": self.total_calls,
            },
        }
        if self.tier2 is not None:
            data["tier2"] = self.tier2
        return data

    def to_json(self, indent: int = 2) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    def save(self, path: Path) -> None:
        """Save summary to a JSON file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)

    def summary(self) -> str:
        """Generate human-readable summary."""
        lines = [
            f"Runs: {len(self.per_run)}",
            f"Avg hallucination rate: {self.avg_hallucination_rate:.4f}",
            f"Avg detection rate: {self.avg_detection_rate:.4f}",
        ]
        if self.tier2 is not None:
            lines.append(f"Drift detection rate: {self.tier2['avg_detection_rate']:.4f}")
            for category, rate in sorted(self.tier2["per_category"].items()):
                lines.append(f"  {category}: {rate:.4f}")
        lines.append(
            f"Tokens: {self.total_input_tokens} in / {self.total_output_tokens} out"
            f" over {self.total_calls} calls"
        )
        return "\n".join(lines)
