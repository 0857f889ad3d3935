"""Report rendering for checker results.

Four renderings of the same ``(checker, result)`` pairs:
- combined markdown report (every applicable checker, in registry order)
- compact findings section injected into reviewer context
- versioned JSON report for CI consumers
- compact text table for terminals
"""

from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .registry import Checker
from .types import CheckerResult, HallucinationCategory

SCHEMA_VERSION = "1.0"

FINDINGS_PREAMBLE = (
    "The following issues were detected by static analysis before this review. "
    "Confirm or elaborate on these findings."
)

CATEGORY_MESSAGES = {
    HallucinationCategory.PATH: "Path does not exist: {}",
    HallucinationCategory.MODEL: "Prisma model not found: {}",
    HallucinationCategory.FIELD: "Prisma field not found: {}",
    HallucinationCategory.INVALID_METHOD: "Invalid Prisma method: {}",
    HallucinationCategory.WRONG_RELATION: "Invalid relation: {}",
    HallucinationCategory.TABLE: "Table not found: {}",
    HallucinationCategory.COLUMN: "Column not found: {}",
    HallucinationCategory.FUNCTION: "Function not found: {}",
    HallucinationCategory.ROUTE: "Route not found: {}",
    HallucinationCategory.METHOD_NOT_ALLOWED: "HTTP method not allowed: {}",
    HallucinationCategory.PACKAGE_NOT_FOUND: "Package not installed: {}",
    HallucinationCategory.SUBPATH_NOT_EXPORTED: "Subpath not exported: {}",
    HallucinationCategory.ENV: "Env variable not defined: {}",
    HallucinationCategory.EXPORT: "Export not found: {}",
    HallucinationCategory.MEMBER_NOT_FOUND: "Member not found: {}",
}

CheckerPairs = list[tuple[Checker, CheckerResult]]


def build_combined_report(pairs: CheckerPairs, project_dir: str) -> list[str]:
    """Concatenate each applicable checker's verbose section, in order."""
    lines: list[str] = []
    for checker, result in pairs:
        if result.applicable:
            lines.extend(checker.format_for_combined_report(result, project_dir))
    return lines


def build_findings_section(pairs: CheckerPairs) -> Optional[str]:
    """Markdown block of static findings for the reviewer, or None when clean."""
    sections: list[str] = []
    for checker, result in pairs:
        section = checker.format_for_findings_section(result)
        if section:
            sections.append(section)
    if not sections:
        return None
    return f"## Static Analysis Findings\n\n{FINDINGS_PREAMBLE}\n\n" + "\n\n".join(sections)


def finding_id(checker_id: str, category: str, target: str) -> str:
    """Deterministic 8-hex-digit id (djb2 over ``checker:category:target``)."""
    value = 5381
    for ch in f"{checker_id}:{category}:{target}":
        value = ((value << 5) + value + ord(ch)) & 0xFFFFFFFF
    return f"{value:08x}"


def message_for(category: str, target: str) -> str:
    template = CATEGORY_MESSAGES.get(category)
    return template.format(target) if template else f"Hallucinated reference: {target}"


class CheckerSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    checker: str
    display_name: str = Field(alias="displayName")
    checked: int
    findings: int
    applicable: bool


class ReportSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    total_checked: int = Field(alias="totalChecked")
    total_findings: int = Field(alias="totalFindings")
    checker_results: list[CheckerSummary] = Field(default_factory=list, alias="checkerResults")


class Finding(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    finding_id: str = Field(alias="findingId")
    checker: str
    severity: Literal["error"] = "error"
    category: str
    target: str
    message: str
    suggestion: Optional[str] = None


class VerificationReport(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    schema_version: Literal["1.0"] = Field(SCHEMA_VERSION, alias="schemaVersion")
    timestamp: datetime
    project_dir: str = Field(alias="projectDir")
    summary: ReportSummary
    findings: list[Finding] = Field(default_factory=list)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)


def build_json_report(pairs: CheckerPairs, project_dir: str) -> VerificationReport:
    """Build the versioned JSON report. Only the project basename is recorded."""
    summaries: list[CheckerSummary] = []
    findings: list[Finding] = []
    for checker, result in pairs:
        summaries.append(
            CheckerSummary(
                checker=checker.id,
                display_name=checker.display_name,
                checked=result.checked,
                findings=result.hallucinated,
                applicable=result.applicable,
            )
        )
        for h in result.hallucinations:
            category = h.category.value
            findings.append(
                Finding(
                    finding_id=finding_id(checker.id, category, h.raw),
                    checker=checker.id,
                    category=category,
                    target=h.raw,
                    message=message_for(h.category, h.raw),
                    suggestion=h.suggestion,
                )
            )

    return VerificationReport(
        timestamp=datetime.now(timezone.utc),
        project_dir=os.path.basename(os.path.abspath(project_dir)),
        summary=ReportSummary(
            total_checked=sum(r.checked for _, r in pairs),
            total_findings=sum(r.hallucinated for _, r in pairs),
            checker_results=summaries,
        ),
        findings=findings,
    )


def total_findings(pairs: CheckerPairs) -> int:
    return sum(result.hallucinated for _, result in pairs if result.applicable)


def format_text_report(pairs: CheckerPairs) -> str:
    """Compact pass/fail table for terminals and CI logs."""
    lines = ["", "Plan Verification Report", ""]
    skipped: list[str] = []

    for checker, result in pairs:
        if not result.applicable:
            skipped.append(checker.display_name)
            continue
        status = "✓" if result.hallucinated == 0 else "✗"
        count = f"{result.checked} checked"
        if result.hallucinated == 0:
            outcome = "pass"
        else:
            outcome = f"{result.hallucinated} finding{'' if result.hallucinated == 1 else 's'}"
        lines.append(f"  {status} {checker.display_name:<26} {count:<14} {outcome}")
        for h in result.hallucinations:
            detail = f"{h.raw} (did you mean {h.suggestion}?)" if h.suggestion else h.raw
            lines.append(f"      {detail}")

    if skipped:
        lines.append("")
        lines.append(f"  Skipped: {', '.join(skipped)}")

    lines.append("")
    count = total_findings(pairs)
    if count == 0:
        lines.append("  0 finding(s). All references verified.")
    else:
        lines.append(f"  {count} finding(s). Fix the hallucinated references above.")
    lines.append("")
    return "\n".join(lines)
