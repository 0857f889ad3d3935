"""Static analysis of plans against project ground truth.

Key components:
- types: Result envelope and hallucination categories
- registry: Checker contract, registry and runner
- extraction: Shared reference extraction helpers
- matcher: Fuzzy suggestion matching
- indexing: Project tree and referenced-file readers
- checkers: Built-in checkers
- report: Combined, findings, JSON and text reports
"""

from .registry import Checker, CheckerRegistry, get_registry, run_checkers
from .types import CheckerResult, Hallucination, HallucinationCategory

__all__ = [
    "Checker",
    "CheckerRegistry",
    "CheckerResult",
    "Hallucination",
    "HallucinationCategory",
    "get_registry",
    "run_checkers",
]
