"""Score whether reviewer output called out known hallucinations.

Detection is tiered: each hallucinated path is tested against the tiers in
order of confidence and the first tier that matches is recorded as the
detection method.
"""

from __future__ import annotations

import posixpath
import re
from typing import Callable, Iterable, Optional

from ..analysis.checkers.prisma_schema import SchemaRef
from ..analysis.types import HallucinationCategory
from .models import PathDetection, SchemaDetection

NEGATIVE_SENTIMENT = (
    "does not exist",
    "doesn't exist",
    "not found",
    "no such file",
    "missing",
    "nonexistent",
    "non-existent",
    "couldn't find",
    "could not find",
    "doesn't appear to exist",
    "does not appear to exist",
    "not present",
    "isn't present",
    "is not present",
    "no file",
    "not in the project",
    "not in the tree",
    "not visible in",
    "don't see",
    "do not see",
    "cannot locate",
    "can't locate",
    # corrective phrasing
    "doesn't match",
    "does not match",
    "incorrect path",
    "wrong path",
    "wrong location",
    "doesn't align",
    "does not align",
    "the names don't match",
    "naming convention",
    "not the actual",
    "actual path is",
    "should be",
    "instead of",
    "rather than",
    "but the project",
    "but the existing",
    "however, the",
)

SCHEMA_NEGATIVE_SENTIMENT = NEGATIVE_SENTIMENT + (
    "not a valid",
    "no such model",
    "no such field",
    "not in the schema",
    "doesn't have",
    "does not have",
    "no field named",
    "no model named",
    "schema does not",
    "schema doesn't",
    "the model is",
    "the field is",
    "the actual",
    "the correct",
    "should use",
    "the schema has",
    "in the schema",
    "not a relation",
    "not a valid method",
    "method does not exist",
    "no such method",
)

WARNING_SECTIONS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"#{1,4}\s*(?:concerns?|issues?|problems?|warnings?|errors?|incorrect|wrong|inaccurate)",
        r"#{1,4}\s*(?:file path|path).*(?:issues?|concerns?|problems?|errors?)",
        r"#{1,4}\s*(?:non-?existent|missing|hallucinated|incorrect).*(?:files?|paths?|references?)",
        r"\*\*(?:concerns?|issues?|problems?|warnings?|incorrect|wrong)\*\*",
        r"#{1,4}\s*(?:correctness|accuracy|verification)",
        r"#{1,4}\s*(?:risk|critical)",
        r"#{1,4}\s*(?:alignment|convention|project structure)",
        r"#{1,4}\s*(?:security|missing|gaps?)",
    )
)

NEXT_HEADING = re.compile(r"^(#{1,6})\s", re.MULTILINE)

SUGGESTION_PROXIMITY = 500


def _heading_level(marker: str) -> int:
    return len(marker) - len(marker.lstrip("#"))


def iter_sections(text: str, patterns: Iterable[re.Pattern]) -> Iterable[str]:
    """Yield the text from each section match to where the section ends.

    A heading section runs to the next heading of equal or higher level; a
    bold label runs to the next heading of any level.
    """
    for pattern in patterns:
        for match in pattern.finditer(text):
            start = match.start()
            level = _heading_level(match.group(0))
            end = len(text)
            for following in NEXT_HEADING.finditer(text, start + 1):
                if not level or len(following.group(1)) <= level:
                    end = following.start()
                    break
            yield text[start:end]


def _near_phrase(
    term: str, output: str, phrases: tuple[str, ...], radius: int
) -> bool:
    lines = output.split("\n")
    for i, line in enumerate(lines):
        if term not in line:
            continue
        window = " ".join(lines[max(0, i - radius) : i + radius + 1]).lower()
        if any(phrase in window for phrase in phrases):
            return True
    return False


def check_direct_match(path: str, output: str) -> bool:
    return path in output


def check_sentiment_match(path: str, output: str) -> bool:
    """Filename appears within two lines of a negative phrase."""
    return _near_phrase(posixpath.basename(path), output, NEGATIVE_SENTIMENT, 2)


def check_section_match(path: str, output: str) -> bool:
    """Path or filename appears under a warning heading or bold label."""
    filename = posixpath.basename(path)
    return any(
        path in section or filename in section
        for section in iter_sections(output, WARNING_SECTIONS)
    )


def check_directory_correction(path: str, output: str, actual_files: Iterable[str]) -> bool:
    """The output names a real file with the same basename at another location."""
    filename = posixpath.basename(path)
    for actual in actual_files:
        if actual == path or posixpath.basename(actual) != filename:
            continue
        if actual in output:
            return True
    return False


def parse_detections(
    hallucinated_paths: list[str],
    verifier_output: str,
    actual_files: Optional[set[str]] = None,
) -> list[PathDetection]:
    """Classify each hallucinated path as detected or not.

    Args:
        hallucinated_paths: Paths known to be hallucinated
        verifier_output: Full reviewer response text
        actual_files: Real project files; enables the directory tier

    Returns:
        One PathDetection per input path, in input order
    """
    tiers: list[tuple[str, Callable[[str], bool]]] = [
        ("direct", lambda p: check_direct_match(p, verifier_output)),
        ("sentiment", lambda p: check_sentiment_match(p, verifier_output)),
        ("section", lambda p: check_section_match(p, verifier_output)),
    ]
    if actual_files:
        tiers.append(
            ("directory", lambda p: check_directory_correction(p, verifier_output, actual_files))
        )

    detections: list[PathDetection] = []
    for path in hallucinated_paths:
        method = next((name for name, matches in tiers if matches(path)), None)
        detections.append(PathDetection(path, method is not None, method))
    return detections


def build_search_terms(ref: SchemaRef) -> list[str]:
    """Strings a reviewer would use when mentioning a schema hallucination."""
    if ref.category == HallucinationCategory.MODEL and ref.model_accessor:
        accessor = ref.model_accessor
        return [f"prisma.{accessor}", accessor, accessor[0].upper() + accessor[1:]]
    if ref.category == HallucinationCategory.FIELD and ref.field_name:
        return [ref.field_name]
    if ref.category == HallucinationCategory.INVALID_METHOD and ref.method_name:
        return [ref.method_name, f".{ref.method_name}"]
    if ref.category == HallucinationCategory.WRONG_RELATION and ref.field_name:
        name = ref.field_name
        return [name, f"include: {{ {name}", f"include: {{{name}"]
    return []


def check_schema_sentiment(term: str, output: str) -> bool:
    return _near_phrase(term, output, SCHEMA_NEGATIVE_SENTIMENT, 3)


def _suggestion_nearby(terms: list[str], suggestion: Optional[str], output: str) -> bool:
    if not suggestion or suggestion not in output:
        return False
    suggestion_at = output.index(suggestion)
    for term in terms:
        term_at = output.find(term)
        if term_at != -1 and abs(term_at - suggestion_at) < SUGGESTION_PROXIMITY:
            return True
    return False


def _schema_method(terms: list[str], suggestion: Optional[str], output: str) -> Optional[str]:
    if any(term in output and check_schema_sentiment(term, output) for term in terms):
        return "direct"
    if any(check_schema_sentiment(term, output) for term in terms):
        return "sentiment"
    if any(check_section_match(term, output) for term in terms):
        return "section"
    # the corrected name near the bad one counts as a sentiment hit
    if _suggestion_nearby(terms, suggestion, output):
        return "sentiment"
    return None


def parse_schema_detections(
    hallucinations: list[SchemaRef], verifier_output: str
) -> list[SchemaDetection]:
    """Classify each Prisma schema hallucination as detected or not."""
    detections: list[SchemaDetection] = []
    for ref in hallucinations:
        terms = build_search_terms(ref)
        method = _schema_method(terms, ref.suggestion, verifier_output)
        detections.append(
            SchemaDetection(
                raw=ref.raw,
                category=ref.category.value if ref.category else "",
                suggestion=ref.suggestion,
                detected=method is not None,
                method=method,
            )
        )
    return detections


def detection_rate(detections: list) -> float:
    """Share of detections marked detected; 0 when there are none."""
    if not detections:
        return 0.0
    return sum(1 for d in detections if d.detected) / len(detections)
