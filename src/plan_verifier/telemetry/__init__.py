"""Catch telemetry log."""

from .catches import (
    CatchEntry,
    FindingEntry,
    build_catch_entry,
    build_catch_findings,
    log_catch,
    read_catches,
    summarize_catches,
)

__all__ = [
    "CatchEntry",
    "FindingEntry",
    "build_catch_entry",
    "build_catch_findings",
    "log_catch",
    "read_catches",
    "summarize_catches",
]
