"""Environment variable checker.

Cross-references env var accesses in plan code against the keys defined
in the project's ``.env*`` files.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import structlog
from dotenv import dotenv_values

from ..extraction import extract_references
from ..matcher import suggest
from ..registry import Checker
from ..types import CheckerResult, Hallucination, HallucinationCategory

logger = structlog.get_logger(__name__)

ENV_FILE_NAMES = (
    ".env",
    ".env.example",
    ".env.local",
    ".env.development",
    ".env.production",
    ".env.test",
    ".env.staging",
)

# Variables supplied by the OS, shell or package manager
RUNTIME_VARS = frozenset(
    {
        "NODE_ENV", "HOME", "PATH", "PWD", "USER", "SHELL", "LANG", "TERM",
        "CI", "PORT", "HOST", "HOSTNAME", "TZ", "EDITOR", "TMPDIR", "TEMP",
        "TMP", "npm_package_name", "npm_package_version", "npm_lifecycle_event",
    }
)

_NAME = r"([A-Za-z_][A-Za-z0-9_]*)"
ENV_ACCESS_PATTERNS = [
    re.compile(rf"process\.env\.{_NAME}"),
    re.compile(rf"process\.env\[['\"]{_NAME}['\"]\]"),
    re.compile(rf"import\.meta\.env\.{_NAME}"),
    re.compile(rf"os\.environ\[['\"]{_NAME}['\"]\]"),
    re.compile(rf"os\.environ\.get\(\s*['\"]{_NAME}['\"]"),
    re.compile(rf"os\.getenv\(\s*['\"]{_NAME}['\"]"),
    re.compile(rf"Deno\.env\.get\(\s*['\"]{_NAME}['\"]"),
    re.compile(rf"\bENV\[['\"]{_NAME}['\"]\]"),
    re.compile(rf"\bENV\.fetch\(\s*['\"]{_NAME}['\"]"),
]


def is_runtime_var(name: str) -> bool:
    return name in RUNTIME_VARS or name.startswith("npm_")


@dataclass(frozen=True)
class EnvAnalysis:
    """Result of checking env var references.

    Attributes:
        total_refs: All unique names extracted
        checked_refs: Names checked (runtime vars excluded)
        valid_refs: Names defined in some env file
        hallucinations: Undefined names with optional suggestion
        skipped_refs: Runtime variables skipped
        env_files_found: Env file names present in the project root
        defined_vars: Keys defined across env files, in file order
    """

    total_refs: int
    checked_refs: int
    valid_refs: int
    hallucinations: list[Hallucination] = field(default_factory=list)
    skipped_refs: int = 0
    env_files_found: list[str] = field(default_factory=list)
    defined_vars: list[str] = field(default_factory=list)

    @property
    def hallucination_rate(self) -> float:
        return len(self.hallucinations) / self.checked_refs if self.checked_refs else 0.0


def parse_env_files(project_dir: str) -> tuple[list[str], list[str]]:
    """Collect keys defined across recognized env files.

    Returns:
        Tuple of (defined variable names, env file names found)
    """
    defined: dict[str, None] = {}
    found: list[str] = []
    for name in ENV_FILE_NAMES:
        path = Path(project_dir) / name
        if not path.is_file():
            continue
        found.append(name)
        try:
            values = dotenv_values(path)
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("env_file_unreadable", path=str(path), error=str(exc))
            continue
        for key in values:
            defined.setdefault(key, None)
    return list(defined), found


def extract_env_refs(plan_text: str) -> list[str]:
    """Extract env var names accessed in plan text, first-seen order."""
    return extract_references(plan_text, ENV_ACCESS_PATTERNS)


def analyze_env(plan_text: str, project_dir: str) -> EnvAnalysis:
    """Check env var references against the project's env files."""
    defined, files_found = parse_env_files(project_dir)
    if not files_found:
        return EnvAnalysis(0, 0, 0)

    defined_set = set(defined)
    names = extract_env_refs(plan_text)
    hallucinations: list[Hallucination] = []
    skipped = checked = valid = 0

    for name in names:
        if is_runtime_var(name):
            skipped += 1
            continue
        checked += 1
        if name in defined_set:
            valid += 1
        else:
            hallucinations.append(
                Hallucination(name, HallucinationCategory.ENV, suggest(name, defined))
            )

    return EnvAnalysis(
        total_refs=len(names),
        checked_refs=checked,
        valid_refs=valid,
        hallucinations=hallucinations,
        skipped_refs=skipped,
        env_files_found=files_found,
        defined_vars=defined,
    )


class EnvChecker(Checker):
    """Checks env var references against ``.env*`` files."""

    id = "env"
    display_name = "Env Variables"
    catch_key = "env"

    def run(self, plan_text, project_dir, options=None) -> CheckerResult:
        analysis = analyze_env(plan_text, project_dir)
        applicable = bool(analysis.env_files_found) and analysis.checked_refs > 0
        return CheckerResult.from_hallucinations(
            self.id, analysis.checked_refs, analysis.hallucinations, analysis, applicable
        )

    def format_for_combined_report(self, result, project_dir) -> list[str]:
        if not result.applicable:
            return []
        analysis: EnvAnalysis = result.analysis
        lines = [
            "## Env Variables",
            f"**{analysis.checked_refs}** checked — **{len(analysis.hallucinations)}** hallucinated",
        ]
        if analysis.hallucinations:
            for h in analysis.hallucinations:
                hint = f" → `{h.suggestion}`" if h.suggestion else ""
                lines.append(f"- `{h.raw}`{hint}")
            lines.append("- Defined vars: " + ", ".join(f"`{v}`" for v in analysis.defined_vars))
        else:
            lines.append("All env vars valid.")
        lines.append("")
        return lines

    def format_for_findings_section(self, result) -> Optional[str]:
        if not result.applicable or not result.hallucinations:
            return None
        analysis: EnvAnalysis = result.analysis
        lines = [
            "### Environment Variable Issues",
            "",
            f"Static analysis found {len(analysis.hallucinations)} env variable(s) not defined "
            f"in project env files ({', '.join(analysis.env_files_found)}):",
            "",
        ]
        for h in analysis.hallucinations:
            hint = f" (did you mean `{h.suggestion}`?)" if h.suggestion else ""
            lines.append(f"- `{h.raw}` — not in env files{hint}")
        return "\n".join(lines)
