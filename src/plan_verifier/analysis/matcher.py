"""Fuzzy suggestion matching for hallucinated identifiers.

Case-insensitive substring containment in either direction; the first
candidate in index order wins. A name differing only by case matches.
"""

from __future__ import annotations

import posixpath
from dataclasses import dataclass
from typing import Iterable, Optional


def suggest(name: str, candidates: Iterable[str]) -> Optional[str]:
    """Return the first candidate containing, or contained in, ``name``.

    Args:
        name: The hallucinated identifier
        candidates: Valid identifiers in deterministic index order

    Returns:
        The suggested identifier, or None
    """
    lower = name.lower()
    if not lower:
        return None
    for candidate in candidates:
        if not candidate or candidate == name:
            continue
        cand = candidate.lower()
        if lower in cand or cand in lower:
            return candidate
    return None


@dataclass(frozen=True)
class PathSuggestion:
    """Suggested replacement for a hallucinated path.

    Attributes:
        suggestion: The suggested existing path
        directory_mismatch: True when the file exists under another directory
    """

    suggestion: str
    directory_mismatch: bool


def suggest_path(path: str, actual_files: Iterable[str]) -> Optional[PathSuggestion]:
    """Suggest an existing file for a hallucinated path.

    A file with the same basename in another directory wins and is flagged
    as a directory mismatch; otherwise the basename stem is matched by
    substring containment.
    """
    files = list(actual_files)
    filename = posixpath.basename(path)
    for actual in files:
        if actual != path and posixpath.basename(actual) == filename:
            return PathSuggestion(actual, True)

    stem = posixpath.splitext(filename)[0].lower()
    if len(stem) < 3:
        return None
    for actual in files:
        actual_stem = posixpath.splitext(posixpath.basename(actual))[0].lower()
        if len(actual_stem) < 3:
            continue
        if stem in actual_stem or actual_stem in stem:
            return PathSuggestion(actual, False)
    return None


def closest_paths(path: str, actual_files: Iterable[str], limit: int = 5) -> list[str]:
    """Rank existing files by structural similarity to ``path``.

    Used only for the verbose report listing.
    """
    filename = posixpath.basename(path)
    ext = posixpath.splitext(filename)[1]
    dirs = [part for part in posixpath.dirname(path).split("/") if part]
    depth = path.count("/")

    scored: list[tuple[int, int, str]] = []
    for index, actual in enumerate(actual_files):
        actual_name = posixpath.basename(actual)
        score = 0
        if actual_name == filename:
            score += 10
        elif filename in actual_name or actual_name in filename:
            score += 5
        if ext and posixpath.splitext(actual_name)[1] == ext:
            score += 2
        actual_dirs = set(posixpath.dirname(actual).split("/"))
        score += 3 * sum(1 for part in dirs if part in actual_dirs)
        score -= abs(actual.count("/") - depth)
        if score > 0:
            scored.append((-score, index, actual))

    scored.sort()
    return [actual for _, _, actual in scored[:limit]]
