"""Extract file-path references from plan text and read the real files."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Optional

import structlog

from ..extraction import DEFAULT_REJECTS, extract_references
from .tree import get_all_files

logger = structlog.get_logger(__name__)

MAX_LINES_PER_FILE = 500

# Path-like tokens with an extension, bounded by whitespace, quotes,
# backticks, brackets or punctuation
PATH_PATTERN = re.compile(
    r"(?:^|[\s`\"'(,])([.\w/-]+\.\w{1,10})(?=[\s`\"'),;:\]|]|$)",
    re.MULTILINE,
)


def _normalize_path(raw: str) -> str:
    path = raw.replace("\\", "/")
    if path.startswith("./"):
        path = path[2:]
    return path


def extract_paths(plan_text: str) -> list[str]:
    """Extract file-path-like strings from plan text in first-seen order."""
    return extract_references(
        plan_text,
        [PATH_PATTERN],
        rejects=DEFAULT_REJECTS,
        normalize=_normalize_path,
    )


def resolve_path(path: str, actual_files: list[str]) -> Optional[str]:
    """Map a referenced path to an actual file by exact or suffix match."""
    if path in actual_files:
        return path
    suffix = "/" + path
    for actual in actual_files:
        if actual.endswith(suffix):
            return actual
    return None


def read_referenced_files(plan_text: str, project_dir: str) -> dict[str, str]:
    """Read project files referenced by the plan.

    Files longer than ``MAX_LINES_PER_FILE`` lines are truncated with a
    marker line. Unreadable files are skipped.

    Args:
        plan_text: Plan text to scan for paths
        project_dir: Project root

    Returns:
        Insertion-ordered mapping of relative path -> content
    """
    actual_files = get_all_files(project_dir)
    result: dict[str, str] = {}

    for path in extract_paths(plan_text):
        resolved = resolve_path(path, actual_files)
        if resolved is None or resolved in result:
            continue
        try:
            content = (Path(project_dir) / resolved).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.debug("referenced_file_unreadable", path=resolved, error=str(exc))
            continue
        lines = content.split("\n")
        if len(lines) > MAX_LINES_PER_FILE:
            content = (
                "\n".join(lines[:MAX_LINES_PER_FILE])
                + f"\n[...truncated at {MAX_LINES_PER_FILE} lines]"
            )
        result[resolved] = content

    return result
