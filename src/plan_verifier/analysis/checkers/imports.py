"""Package import checker.

Validates that imported packages are installed in ``node_modules`` and
that requested subpaths are listed in the package's ``exports`` map.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import structlog

from ..extraction import extract_references
from ..registry import Checker
from ..types import CheckerResult, Hallucination, HallucinationCategory

logger = structlog.get_logger(__name__)

NODE_BUILTINS = frozenset(
    {
        "assert", "async_hooks", "buffer", "child_process", "cluster",
        "console", "constants", "crypto", "dgram", "diagnostics_channel",
        "dns", "domain", "events", "fs", "http", "http2", "https",
        "inspector", "module", "net", "os", "path", "perf_hooks", "process",
        "punycode", "querystring", "readline", "repl", "stream",
        "string_decoder", "sys", "test", "timers", "tls", "trace_events",
        "tty", "url", "util", "v8", "vm", "wasi", "worker_threads", "zlib",
    }
)

SKIP_PREFIXES = ("./", "../", "@/", "~/", "#", "node:")

IMPORT_PATTERNS = [
    re.compile(r"(?:import|export)\s+[^;]*?\bfrom\s+['\"]([^'\"]+)['\"]"),
    re.compile(r"require\s*\(\s*['\"]([^'\"]+)['\"]\s*\)"),
    re.compile(r"import\s*\(\s*['\"]([^'\"]+)['\"]\s*\)"),
]


def extract_imports(plan_text: str) -> list[str]:
    """Extract import/require source strings, first-seen order."""
    return extract_references(plan_text, IMPORT_PATTERNS, normalize=str.strip)


def should_skip(source: str) -> bool:
    """True for relative imports, local aliases and Node builtins."""
    if source.startswith(SKIP_PREFIXES):
        return True
    return source.split("/")[0] in NODE_BUILTINS


def parse_package_name(source: str) -> tuple[str, Optional[str]]:
    """Split an import source into (package name, subpath or None).

    Scoped packages keep their scope: ``@scope/name/sub`` becomes
    ``("@scope/name", "sub")``.
    """
    parts = source.split("/")
    if source.startswith("@"):
        if len(parts) < 2:
            return source, None
        subpath = "/".join(parts[2:]) or None
        return f"{parts[0]}/{parts[1]}", subpath
    return parts[0], "/".join(parts[1:]) or None


def flatten_exports(exports: Any) -> set[str]:
    """Collect subpath keys (``.``, ``./foo``, ``./foo/*``) from an exports map.

    Conditional keys (``import``, ``require``, ``default``...) are walked
    recursively.
    """
    if isinstance(exports, str):
        return {"."}
    subpaths: set[str] = set()
    if not isinstance(exports, dict):
        return subpaths

    def walk(obj: dict) -> None:
        for key, value in obj.items():
            if key.startswith("."):
                subpaths.add(key)
            elif isinstance(value, dict):
                walk(value)

    walk(exports)
    return subpaths


def resolve_package_exports(package_json: Path) -> Optional[set[str]]:
    """Exported subpaths of a package, or None when it has no exports map."""
    pkg = json.loads(package_json.read_text(encoding="utf-8"))
    if "exports" not in pkg:
        return None
    return flatten_exports(pkg["exports"])


def match_subpath(subpath: str, valid_subpaths: set[str]) -> bool:
    requested = f"./{subpath}"
    if requested in valid_subpaths:
        return True
    for pattern in valid_subpaths:
        if pattern.endswith("/*") and requested.startswith(pattern[:-1]):
            return True
        if "*" in pattern:
            regex = "^" + re.escape(pattern).replace(r"\*", "[^/]+") + "$"
            if re.match(regex, requested):
                return True
    return False


def suggest_package(package_name: str, node_modules: Path) -> Optional[str]:
    """First installed package whose name contains, or is contained in, the request."""
    if not node_modules.is_dir():
        return None
    try:
        if package_name.startswith("@"):
            scope, _, name = package_name.partition("/")
            scope_dir = node_modules / scope
            if not scope_dir.is_dir():
                return None
            name = name.lower()
            for entry in sorted(p.name for p in scope_dir.iterdir()):
                lower = entry.lower()
                if name in lower or lower in name:
                    return f"{scope}/{entry}"
            return None

        wanted = package_name.lower()
        for entry in sorted(p.name for p in node_modules.iterdir()):
            if entry.startswith(".") or entry == package_name:
                continue
            lower = entry.lower()
            if wanted in lower or lower in wanted:
                return entry
    except OSError as exc:
        logger.debug("node_modules_unreadable", path=str(node_modules), error=str(exc))
    return None


@dataclass(frozen=True)
class ImportAnalysis:
    """Result of checking imports.

    Attributes:
        total_imports: All extracted sources, skipped ones included
        checked_imports: Package imports actually validated
        valid_imports: Package imports that resolved
        hallucinations: Missing packages and unexported subpaths
        skipped_imports: Relative, alias and builtin imports
    """

    total_imports: int
    checked_imports: int
    valid_imports: int
    hallucinations: list[Hallucination] = field(default_factory=list)
    skipped_imports: int = 0


def analyze_imports(plan_text: str, project_dir: str) -> ImportAnalysis:
    sources = extract_imports(plan_text)
    node_modules = Path(project_dir) / "node_modules"
    if not node_modules.is_dir():
        return ImportAnalysis(total_imports=len(sources), checked_imports=0, valid_imports=0)

    hallucinations: list[Hallucination] = []
    skipped = checked = valid = 0

    for source in sources:
        if should_skip(source):
            skipped += 1
            continue
        checked += 1
        package_name, subpath = parse_package_name(source)
        package_json = node_modules / package_name / "package.json"

        if not package_json.is_file():
            hallucinations.append(
                Hallucination(
                    source,
                    HallucinationCategory.PACKAGE_NOT_FOUND,
                    suggest_package(package_name, node_modules),
                )
            )
            continue

        if subpath:
            try:
                exported = resolve_package_exports(package_json)
            except (OSError, ValueError) as exc:
                # Unparseable package.json: subpath cannot be validated
                logger.debug("package_json_unreadable", package=package_name, error=str(exc))
                exported = None
            if exported is not None and not match_subpath(subpath, exported):
                available = sorted(s.removeprefix("./") for s in exported if s != ".")[:5]
                hallucinations.append(
                    Hallucination(
                        source,
                        HallucinationCategory.SUBPATH_NOT_EXPORTED,
                        f"available: {', '.join(available)}" if available else None,
                    )
                )
                continue
        valid += 1

    return ImportAnalysis(
        total_imports=len(sources),
        checked_imports=checked,
        valid_imports=valid,
        hallucinations=hallucinations,
        skipped_imports=skipped,
    )


def _reason(h: Hallucination, installed_label: str) -> str:
    reason = installed_label if h.category == HallucinationCategory.PACKAGE_NOT_FOUND else "subpath not exported"
    hint = f" ({h.suggestion})" if h.suggestion else ""
    return f"- `{h.raw}` — {reason}{hint}"


class ImportsChecker(Checker):
    """Checks imported packages and subpaths against ``node_modules``."""

    id = "imports"
    display_name = "Package Imports"
    catch_key = "imports"

    def run(self, plan_text, project_dir, options=None) -> CheckerResult:
        analysis = analyze_imports(plan_text, project_dir)
        return CheckerResult.from_hallucinations(
            self.id,
            analysis.checked_imports,
            analysis.hallucinations,
            analysis,
            applicable=analysis.checked_imports > 0,
        )

    def format_for_combined_report(self, result, project_dir) -> list[str]:
        if not result.applicable:
            return []
        analysis: ImportAnalysis = result.analysis
        lines = [
            "## Package Imports",
            f"**{analysis.checked_imports}** checked — **{len(analysis.hallucinations)}** hallucinated",
        ]
        lines.extend(_reason(h, "not installed") for h in analysis.hallucinations)
        if not analysis.hallucinations:
            lines.append("All imports valid.")
        lines.append("")
        return lines

    def format_for_findings_section(self, result) -> Optional[str]:
        if not result.applicable or not result.hallucinations:
            return None
        lines = [
            "### Import Issues",
            "",
            f"Static analysis found {result.hallucinated} hallucinated import(s):",
            "",
        ]
        lines.extend(_reason(h, "package not found") for h in result.hallucinations)
        return "\n".join(lines)
