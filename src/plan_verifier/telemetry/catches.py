"""Catch telemetry: an append-only log of hallucinations found per run.

Entries go to ``~/.plan-verifier/catches.jsonl``. Write and read failures
are logged and swallowed.
"""

from __future__ import annotations

import os
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..analysis.registry import Checker
from ..analysis.types import CheckerResult
from ..config import global_state_dir

logger = structlog.get_logger(__name__)

CATCHES_FILE_NAME = "catches.jsonl"

FINDING_KEYS = (
    "paths",
    "schema",
    "sqlSchema",
    "imports",
    "env",
    "types",
    "routes",
    "supabaseSchema",
    "expressRoutes",
    "packageApi",
)


class FindingEntry(BaseModel):
    checked: int
    hallucinated: int
    items: list[str] = Field(default_factory=list)


class CatchEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    timestamp: datetime
    tool: str
    project_dir: str = Field(alias="projectDir")
    findings: dict[str, Optional[FindingEntry]]
    total_checked: int = Field(alias="totalChecked")
    total_hallucinated: int = Field(alias="totalHallucinated")


def _catches_path(log_dir: Optional[Path]) -> Path:
    return (log_dir or global_state_dir()) / CATCHES_FILE_NAME


def build_catch_findings(checked: int, hallucinated: int, items: list[str]) -> FindingEntry:
    return FindingEntry(checked=checked, hallucinated=hallucinated, items=list(items))


def build_catch_entry(
    tool: str,
    project_dir: str,
    pairs: list[tuple[Checker, CheckerResult]],
) -> CatchEntry:
    """Build a telemetry entry from checker results.

    Every known finding key is present; checkers that did not apply map to
    None. Only the project directory basename is recorded.
    """
    findings: dict[str, Optional[FindingEntry]] = {key: None for key in FINDING_KEYS}
    for checker, result in pairs:
        if not result.applicable or not checker.catch_key:
            continue
        findings[checker.catch_key] = build_catch_findings(
            result.checked, result.hallucinated, result.catch_items
        )

    return CatchEntry(
        timestamp=datetime.now(timezone.utc),
        tool=tool,
        project_dir=os.path.basename(os.path.abspath(project_dir)),
        findings=findings,
        total_checked=sum(r.checked for _, r in pairs if r.applicable),
        total_hallucinated=sum(r.hallucinated for _, r in pairs if r.applicable),
    )


def log_catch(entry: CatchEntry, log_dir: Optional[Path] = None) -> bool:
    """Append ``entry`` as one JSON line.

    Entries with no hallucinations are not written.

    Returns:
        True if a line was written
    """
    if entry.total_hallucinated == 0:
        return False
    path = _catches_path(log_dir)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as f:
            f.write(entry.model_dump_json(by_alias=True) + "\n")
    except OSError as exc:
        logger.warning("catch_log_failed", path=str(path), error=str(exc))
        return False
    return True


def read_catches(log_dir: Optional[Path] = None) -> list[CatchEntry]:
    """Read all entries; malformed lines are skipped, errors give []."""
    path = _catches_path(log_dir)
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except FileNotFoundError:
        return []
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("catch_log_read_failed", path=str(path), error=str(exc))
        return []

    entries: list[CatchEntry] = []
    for line in lines:
        if not line.strip():
            continue
        try:
            entries.append(CatchEntry.model_validate_json(line))
        except ValidationError:
            logger.debug("catch_log_line_skipped", path=str(path))
    return entries


def summarize_catches(entries: list[CatchEntry]) -> str:
    """Human-readable totals for the ``catches`` command."""
    if not entries:
        return "No catches logged yet."

    per_key: Counter[str] = Counter()
    for entry in entries:
        for key, finding in entry.findings.items():
            if finding is not None:
                per_key[key] += finding.hallucinated

    total = sum(e.total_hallucinated for e in entries)
    projects = len({e.project_dir for e in entries})
    lines = [
        f"{total} hallucination(s) caught across {len(entries)} run(s) in {projects} project(s)",
        "",
    ]
    for key in FINDING_KEYS:
        if per_key[key]:
            lines.append(f"  {key:<16} {per_key[key]}")
    first = min(e.timestamp for e in entries)
    last = max(e.timestamp for e in entries)
    lines.append("")
    lines.append(f"  Since {first:%Y-%m-%d}, last {last:%Y-%m-%d}")
    return "\n".join(lines)
