"""Benchmark scoring: tiered detection, drift scoring and run aggregation."""

from .detection import parse_detections, parse_schema_detections
from .drift import inject_drift, score_drift_detection
from .models import (
    BenchmarkRun,
    BenchmarkSummary,
    DriftDetection,
    DriftSpec,
    InjectionResult,
    PathDetection,
    SchemaDetection,
)
from .summary import generate_summary, load_runs

__all__ = [
    "BenchmarkRun",
    "BenchmarkSummary",
    "DriftDetection",
    "DriftSpec",
    "InjectionResult",
    "PathDetection",
    "SchemaDetection",
    "generate_summary",
    "inject_drift",
    "load_runs",
    "parse_detections",
    "parse_schema_detections",
    "score_drift_detection",
]
