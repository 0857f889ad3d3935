"""File path checker.

Validates that file paths referenced in a plan exist in the project tree,
treating paths the plan announces as new files as intentional.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional

import structlog

from ..indexing.file_reader import extract_paths
from ..indexing.tree import file_exists, get_all_files
from ..matcher import PathSuggestion, closest_paths, suggest_path
from ..registry import Checker
from ..types import CheckerResult, Hallucination, HallucinationCategory

logger = structlog.get_logger(__name__)

_ACCESSOR_RE = re.compile(r"^(?:this|self|error|result|config|options|req|res|ctx)\.", re.IGNORECASE)
_QUALIFIED_TYPE_RE = re.compile(r"^[a-z]+\.[A-Z]\w*$")
_PLACEHOLDER_RE = re.compile(r"^[A-Z]{4,}")
_NEW_SECTION_PATTERNS = (
    re.compile(r"#{1,4}\s*(?:new|files to create|files to add|created files)", re.IGNORECASE),
    re.compile(r"\*\*(?:new|files to create|files to add|created files)\*\*", re.IGNORECASE),
)
_NEXT_HEADING_RE = re.compile(r"^#{1,4}\s", re.MULTILINE)


@dataclass(frozen=True)
class PathAnalysis:
    """Classification of every path extracted from a plan.

    Attributes:
        extracted_paths: Paths that survived code-expression filtering
        valid_paths: Paths matching an actual file (exactly or by suffix)
        intentional_new_paths: Missing paths the plan announces as new
        hallucinated_paths: Missing paths with no creation signal
        suggestions: Hallucinated path -> suggested existing path
        files_indexed: Number of files in the ground-truth tree
    """

    extracted_paths: list[str]
    valid_paths: list[str]
    intentional_new_paths: list[str]
    hallucinated_paths: list[str]
    suggestions: dict[str, PathSuggestion] = field(default_factory=dict)
    files_indexed: int = 0

    @property
    def hallucination_rate(self) -> float:
        """hallucinated / (extracted - intentionally new), 0 when empty."""
        denominator = len(self.extracted_paths) - len(self.intentional_new_paths)
        return len(self.hallucinated_paths) / denominator if denominator > 0 else 0.0


def filter_code_expressions(paths: list[str]) -> list[str]:
    """Drop extracted tokens that are code expressions rather than paths."""
    kept = []
    for path in paths:
        if "/" not in path:
            continue
        if _ACCESSOR_RE.match(path) or _QUALIFIED_TYPE_RE.match(path):
            continue
        if path.startswith("..."):
            continue
        if _PLACEHOLDER_RE.match(path.split("/")[0]):
            continue
        kept.append(path)
    return kept


def matches_glob(path: str, pattern: str) -> bool:
    """Match ``*`` within one segment and ``**`` across segments."""
    regex = ""
    i = 0
    while i < len(pattern):
        if pattern.startswith("**", i):
            regex += ".*"
            i += 2
        elif pattern[i] == "*":
            regex += "[^/]*"
            i += 1
        else:
            regex += re.escape(pattern[i])
            i += 1
    return re.fullmatch(regex, path) is not None


def has_create_signal(path: str, plan_text: str) -> bool:
    """True if the plan text announces ``path`` as a file to create."""
    escaped = re.escape(path)
    patterns = (
        rf"(?:create|add|new file|introduce)\s+`?{escaped}",
        rf"{escaped}[^\n]*\(\s*(?:create|new|add)",
        rf"\(\s*(?:create|new)[^\n]*{escaped}",
        rf"{escaped}[^)\n]{{0,20}}\((?:new|create)\)",
    )
    for pattern in patterns:
        if re.search(pattern, plan_text, re.IGNORECASE):
            return True

    for section_re in _NEW_SECTION_PATTERNS:
        match = section_re.search(plan_text)
        if not match:
            continue
        after = plan_text[match.start():]
        next_heading = _NEXT_HEADING_RE.search(after, 1)
        section = after[: next_heading.start()] if next_heading else after
        if path in section:
            return True
    return False


def analyze_paths(
    plan_text: str,
    project_dir: str,
    allowed_new_paths: Optional[list[str]] = None,
) -> PathAnalysis:
    """Classify plan paths as valid, intentionally new, or hallucinated.

    Args:
        plan_text: Plan text to scan
        project_dir: Project root
        allowed_new_paths: Globs of paths that may legitimately be new

    Returns:
        PathAnalysis for the plan
    """
    allowed_new_paths = allowed_new_paths or []
    extracted = filter_code_expressions(extract_paths(plan_text))
    actual_files = get_all_files(project_dir)
    actual_set = set(actual_files)

    valid: list[str] = []
    intentional_new: list[str] = []
    hallucinated: list[str] = []
    suggestions: dict[str, PathSuggestion] = {}

    for path in extracted:
        if file_exists(path, actual_set):
            valid.append(path)
        elif any(matches_glob(path, p) for p in allowed_new_paths) or has_create_signal(path, plan_text):
            intentional_new.append(path)
        else:
            hallucinated.append(path)
            suggestion = suggest_path(path, actual_files)
            if suggestion:
                suggestions[path] = suggestion

    logger.debug(
        "paths_analyzed",
        extracted=len(extracted),
        hallucinated=len(hallucinated),
        files_indexed=len(actual_files),
    )
    return PathAnalysis(
        extracted_paths=extracted,
        valid_paths=valid,
        intentional_new_paths=intentional_new,
        hallucinated_paths=hallucinated,
        suggestions=suggestions,
        files_indexed=len(actual_files),
    )


class PathChecker(Checker):
    """Checks that referenced file paths exist."""

    id = "paths"
    display_name = "File Paths"
    catch_key = "paths"

    def run(self, plan_text, project_dir, options=None) -> CheckerResult:
        allowed = [p for p in (options or {}).get("allowed_new", "").split(",") if p.strip()]
        analysis = analyze_paths(plan_text, project_dir, [p.strip() for p in allowed])
        hallucinations = [
            Hallucination(
                raw=path,
                category=HallucinationCategory.PATH,
                suggestion=analysis.suggestions[path].suggestion if path in analysis.suggestions else None,
            )
            for path in analysis.hallucinated_paths
        ]
        return CheckerResult.from_hallucinations(
            self.id, len(analysis.extracted_paths), hallucinations, analysis
        )

    def format_for_combined_report(self, result, project_dir) -> list[str]:
        if not result.applicable:
            return []
        analysis: PathAnalysis = result.analysis
        lines = [
            "## File Paths",
            f"**{len(analysis.extracted_paths)}** paths checked — "
            f"**{len(analysis.hallucinated_paths)}** hallucinated | "
            f"{analysis.files_indexed} files indexed",
        ]
        if analysis.hallucinated_paths:
            actual_files = get_all_files(project_dir)
            for path in analysis.hallucinated_paths:
                lines.append(f"- `{path}` — **NOT FOUND**")
                suggestion = analysis.suggestions.get(path)
                if suggestion and suggestion.directory_mismatch:
                    lines.append(f"  - Directory mismatch: exists at `{suggestion.suggestion}`")
                closest = closest_paths(path, actual_files)
                if closest:
                    lines.append("  - Closest: " + ", ".join(f"`{c}`" for c in closest))
        else:
            lines.append("All paths valid.")
        lines.append("")
        return lines

    def format_for_findings_section(self, result) -> Optional[str]:
        analysis: Optional[PathAnalysis] = result.analysis
        if not result.applicable or analysis is None or not analysis.hallucinated_paths:
            return None
        lines = [
            "### File Path Issues",
            "",
            f"Static analysis found {len(analysis.hallucinated_paths)} file path(s) "
            "that do not exist in the project:",
            "",
        ]
        for path in analysis.hallucinated_paths:
            suggestion = analysis.suggestions.get(path)
            hint = f" (did you mean `{suggestion.suggestion}`?)" if suggestion else ""
            lines.append(f"- `{path}` — **NOT FOUND** in project tree{hint}")
        return "\n".join(lines)
