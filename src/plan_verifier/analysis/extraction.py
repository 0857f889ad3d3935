"""Shared reference extraction pipeline.

Checkers describe *what* to pull out of plan text as a list of compiled
patterns plus reject predicates; this module runs the common
extract -> normalize -> reject -> dedupe pipeline.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, Optional, Sequence

RejectPredicate = Callable[[str], bool]

_VERSION_RE = re.compile(r"^\d+\.\d+")
_FENCED_BLOCK_RE = re.compile(r"```[\w-]*\n([\s\S]*?)```")
_INLINE_CODE_RE = re.compile(r"`([^`\n]+)`")


def is_url(candidate: str) -> bool:
    return "://" in candidate


def is_version_like(candidate: str) -> bool:
    return bool(_VERSION_RE.match(candidate))


def is_vendored(candidate: str) -> bool:
    return candidate.startswith("node_modules/")


DEFAULT_REJECTS: tuple[RejectPredicate, ...] = (is_url, is_version_like, is_vendored)


def dedupe(items: Iterable[str]) -> list[str]:
    """Remove duplicates while preserving first-seen order."""
    return list(dict.fromkeys(items))


def _first_group(match: re.Match) -> Optional[str]:
    if match.re.groups == 0:
        return match.group(0)
    for group in match.groups():
        if group:
            return group
    return None


def iter_matches(text: str, patterns: Sequence[re.Pattern]) -> Iterator[tuple[int, str]]:
    """Yield ``(offset, value)`` for every pattern hit, in text order."""
    hits: list[tuple[int, int, str]] = []
    for rank, pattern in enumerate(patterns):
        for match in pattern.finditer(text):
            value = _first_group(match)
            if value:
                hits.append((match.start(), rank, value))
    hits.sort(key=lambda hit: (hit[0], hit[1]))
    for offset, _, value in hits:
        yield offset, value


def extract_references(
    text: str,
    patterns: Sequence[re.Pattern],
    rejects: Sequence[RejectPredicate] = (),
    normalize: Optional[Callable[[str], str]] = None,
) -> list[str]:
    """Extract candidate references from free-form text.

    Args:
        text: Plan text to scan
        patterns: Compiled patterns; the first non-empty group is the value
        rejects: Predicates that drop known false-positive shapes
        normalize: Optional transform applied before rejection

    Returns:
        Unique references in first-seen order
    """
    found: list[str] = []
    for _, value in iter_matches(text, patterns):
        if normalize is not None:
            value = normalize(value)
        if not value or any(reject(value) for reject in rejects):
            continue
        found.append(value)
    return dedupe(found)


@dataclass(frozen=True)
class CodeRegion:
    """A span of code inside plan text (fenced block or inline span)."""

    text: str
    offset: int
    fenced: bool


def extract_code_regions(text: str, include_inline: bool = True) -> list[CodeRegion]:
    """Return fenced code blocks, then inline code spans outside them."""
    regions: list[CodeRegion] = []
    fenced_spans: list[tuple[int, int]] = []
    for match in _FENCED_BLOCK_RE.finditer(text):
        regions.append(CodeRegion(match.group(1), match.start(1), True))
        fenced_spans.append(match.span())
    if include_inline:
        for match in _INLINE_CODE_RE.finditer(text):
            start = match.start()
            if any(lo <= start < hi for lo, hi in fenced_spans):
                continue
            regions.append(CodeRegion(match.group(1), match.start(1), False))
    return regions


def extract_top_level_keys(text: str, start: int) -> list[str]:
    """Return the depth-0 keys of an object literal whose body starts at ``start``.

    ``start`` is the index just after the opening ``{``. Scanning stops at
    the matching ``}``; keys of nested objects are ignored.
    """
    keys: list[str] = []
    depth = 0
    current = ""
    in_key = True

    for ch in text[start:]:
        if ch == "{":
            depth += 1
            in_key = False
        elif ch == "}":
            if depth == 0:
                break
            depth -= 1
        elif depth == 0:
            if ch == ":" and in_key and current.strip():
                keys.append(current.strip())
                current = ""
                in_key = False
            elif ch in ",\n":
                current = ""
                in_key = True
            elif in_key and (ch.isalnum() or ch == "_"):
                current += ch
            elif in_key and not ch.isspace():
                current = ""
    return keys


def find_matching_brace(text: str, open_index: int) -> int:
    """Index of the ``}`` closing the ``{`` at ``open_index``, or -1."""
    depth = 0
    for i in range(open_index, len(text)):
        if text[i] == "{":
            depth += 1
        elif text[i] == "}":
            depth -= 1
            if depth == 0:
                return i
    return -1
