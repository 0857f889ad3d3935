"""Intent drift injection and scoring for benchmark plans."""

from __future__ import annotations

import math
import re
from typing import Optional

from .detection import iter_sections
from .models import DriftDetection, DriftSpec, InjectionResult

SCOPE_PHRASES = (
    "not requested",
    "out of scope",
    "beyond the scope",
    "wasn't asked",
    "wasn't requested",
    "unnecessary",
    "unrelated",
    "not part of",
    "not in the original",
    "scope creep",
    "over-engineered",
    "adds complexity",
    "not needed",
    "extraneous",
    "not mentioned",
    "not required",
    "goes beyond",
    "exceeds the",
    "outside the scope",
    "not aligned",
    "deferred",
    "later phase",
    "separate phase",
    "future phase",
    "phase 2",
    "phase 3",
    "not integrated",
    "half-designed",
    "half-specified",
    "wasted effort",
    "over-engineering",
)

ALIGNMENT_SECTIONS = re.compile(
    r"#{1,4}\s*(?:[\w\s-]*?)(?:alignment|scope|completeness|intent|requirements?"
    r"|concerns?|issues?|risks?|gaps?|problems?)",
    re.IGNORECASE,
)

CALLOUT_WINDOW = 500
SIGNAL_THRESHOLD = 0.4

APPEND_HEADING = "\n\n## Additional Considerations\n\n"


def inject_drift(plan: str, spec: DriftSpec) -> InjectionResult:
    """Apply a drift spec to a plan without calling any model.

    ``append`` adds an "Additional Considerations" section; ``replace`` and
    ``remove-and-replace`` substitute the first case-insensitive match of the
    search pattern. When the injection cannot be applied the plan is returned
    unchanged with ``applied=False``.
    """
    injection = spec.injection
    if injection.method == "append":
        if not injection.append_text:
            return InjectionResult(plan, False)
        return InjectionResult(plan.rstrip() + APPEND_HEADING + injection.append_text + "\n", True)

    if injection.method in ("replace", "remove-and-replace"):
        if not injection.search_pattern or injection.replace_text is None:
            return InjectionResult(plan, False)
        pattern = re.compile(injection.search_pattern, re.IGNORECASE)
        if not pattern.search(plan):
            return InjectionResult(plan, False)
        return InjectionResult(pattern.sub(lambda _: injection.replace_text, plan, count=1), True)

    return InjectionResult(plan, False)


def _critical_callouts(output: str, signals: list[str]) -> list[str]:
    lowered = output.lower()
    matched: list[str] = []
    for signal in signals:
        needle = signal.lower()
        idx = lowered.find(needle)
        while idx != -1:
            window = lowered[max(0, idx - CALLOUT_WINDOW) : idx + len(needle) + CALLOUT_WINDOW]
            if any(phrase in window for phrase in SCOPE_PHRASES):
                matched.append(signal)
                break
            idx = lowered.find(needle, idx + 1)
    return matched


def _alignment_section_signals(output: str, signals: list[str]) -> list[str]:
    matched: list[str] = []
    for section in iter_sections(output, [ALIGNMENT_SECTIONS]):
        lowered = section.lower()
        for signal in signals:
            if signal.lower() in lowered and signal not in matched:
                matched.append(signal)
    return matched


def _signal_matches(output: str, signals: list[str]) -> Optional[list[str]]:
    if not signals:
        return None
    lowered = output.lower()
    matched = [s for s in signals if s.lower() in lowered]
    if len(matched) >= math.ceil(len(signals) * SIGNAL_THRESHOLD):
        return matched
    return None


def score_drift_detection(verifier_output: str, spec: DriftSpec) -> DriftDetection:
    """Decide whether reviewer output caught an injected drift.

    Tiers, first hit wins: a signal near a scope phrase (critical-callout), a
    signal under an alignment or scope heading (alignment-section), then at
    least 40% of the expected signals anywhere (signal-match).
    """
    signals = spec.expected_signals

    def detection(method: Optional[str], matched: list[str]) -> DriftDetection:
        return DriftDetection(
            spec_id=spec.id,
            category=spec.category,
            injection_applied=True,
            detected=method is not None,
            method=method,
            matched_signals=matched,
        )

    matched = _critical_callouts(verifier_output, signals)
    if matched:
        return detection("critical-callout", matched)

    matched = _alignment_section_signals(verifier_output, signals)
    if matched:
        return detection("alignment-section", matched)

    found = _signal_matches(verifier_output, signals)
    if found is not None:
        return detection("signal-match", found)

    return detection(None, [])
