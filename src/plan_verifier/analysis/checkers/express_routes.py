"""Express / Fastify route checker.

Indexes ``app.get('/x')``-style declarations and Fastify ``route({...})``
calls, applying ``use('/prefix', router)`` mount prefixes resolved through
the router's import.
"""

from __future__ import annotations

import json
import posixpath
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import structlog

from ..indexing.tree import get_all_files
from ..registry import Checker
from ..routing import (
    RouteAnalysis,
    check_route_refs,
    extract_route_refs,
    format_route_findings,
    format_route_report,
    segments_match,
    split_segments,
    suggest_route,
)
from ..types import CheckerResult

logger = structlog.get_logger(__name__)

ALL_METHODS = "ALL"
FRAMEWORK_LABELS = {"express": "Express", "fastify": "Fastify", "both": "Express + Fastify"}
FINDINGS_LABELS = {"express": "Express", "fastify": "Fastify", "both": "Express/Fastify"}

_ROUTE_DECL_RE = re.compile(
    r"\b(\w+)\.(get|post|put|delete|patch|head|options|all)\s*\(\s*['\"`](/[^'\"`]*)['\"`]",
    re.IGNORECASE,
)
_FASTIFY_METHOD_FIRST_RE = re.compile(
    r"\b\w+\.route\s*\(\s*\{[^}]*method\s*:\s*['\"`](\w+)['\"`][^}]*url\s*:\s*['\"`](/[^'\"`]*)['\"`]",
    re.IGNORECASE,
)
_FASTIFY_URL_FIRST_RE = re.compile(
    r"\b\w+\.route\s*\(\s*\{[^}]*url\s*:\s*['\"`](/[^'\"`]*)['\"`][^}]*method\s*:\s*['\"`](\w+)['\"`]",
    re.IGNORECASE,
)
_MOUNT_RE = re.compile(r"\b\w+\.use\s*\(\s*['\"`](/[^'\"`]*)['\"`]\s*,\s*(\w+)\s*\)")
_SOURCE_RE = re.compile(r"\.(ts|js|tsx|jsx)$")
_RESOLVE_EXTENSIONS = (".ts", ".js", ".tsx", ".jsx", "/index.ts", "/index.js")


@dataclass(frozen=True)
class RouteDecl:
    method: str
    path: str
    file_path: str


@dataclass(frozen=True)
class ExpressRoute:
    method: str
    url_path: str
    file_path: str
    mount_prefix: Optional[str] = None


def detect_framework(project_dir: str) -> str:
    """Return ``express``, ``fastify``, ``both`` or ``none`` from package.json deps."""
    pkg_path = Path(project_dir) / "package.json"
    if not pkg_path.is_file():
        return "none"
    try:
        pkg = json.loads(pkg_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("package_json_parse_failed", path=str(pkg_path), error=str(exc))
        return "none"
    deps = {**(pkg.get("dependencies") or {}), **(pkg.get("devDependencies") or {})}
    has_express, has_fastify = "express" in deps, "fastify" in deps
    if has_express and has_fastify:
        return "both"
    if has_express:
        return "express"
    if has_fastify:
        return "fastify"
    return "none"


def extract_route_decls(content: str, file_path: str) -> tuple[list[RouteDecl], list[tuple[str, str]]]:
    """Route declarations and ``(prefix, router_var)`` mounts in one source file."""
    routes = [
        RouteDecl(m.group(2).upper(), m.group(3), file_path) for m in _ROUTE_DECL_RE.finditer(content)
    ]
    routes.extend(
        RouteDecl(m.group(1).upper(), m.group(2), file_path)
        for m in _FASTIFY_METHOD_FIRST_RE.finditer(content)
    )
    routes.extend(
        RouteDecl(m.group(2).upper(), m.group(1), file_path)
        for m in _FASTIFY_URL_FIRST_RE.finditer(content)
    )
    mounts = [(m.group(1), m.group(2)) for m in _MOUNT_RE.finditer(content)]
    return routes, mounts


def _resolve_relative(import_path: str, from_file: str, all_files: set[str]) -> Optional[str]:
    if not import_path.startswith("."):
        return None
    relative = posixpath.normpath(posixpath.join(posixpath.dirname(from_file), import_path))
    if relative in all_files:
        return relative
    base = relative[:-3] if relative.endswith(".js") else relative
    for candidate_base in (base, relative):
        for ext in _RESOLVE_EXTENSIONS:
            if candidate_base + ext in all_files:
                return candidate_base + ext
    return None


def resolve_router_import(content: str, router_var: str, file_path: str, all_files: set[str]) -> Optional[str]:
    """File that ``router_var`` was imported or required from, if relative."""
    var = re.escape(router_var)
    match = re.search(rf"import\s+(?:\{{[^}}]*\}}|{var})\s+from\s+['\"`]([^'\"`]+)['\"`]", content) or re.search(
        rf"(?:const|let|var)\s+{var}\s*=\s*require\s*\(\s*['\"`]([^'\"`]+)['\"`]", content
    )
    return _resolve_relative(match.group(1), file_path, all_files) if match else None


def _normalize(url_path: str) -> str:
    return url_path.replace("//", "/").rstrip("/") or "/"


def build_express_route_index(project_dir: str) -> dict[str, list[ExpressRoute]]:
    """URL path -> routes declared for it, mount prefixes applied."""
    files = get_all_files(project_dir)
    all_files = set(files)
    contents: dict[str, str] = {}
    decls: list[RouteDecl] = []
    mounts: list[tuple[str, str, str]] = []

    for file_path in files:
        if not _SOURCE_RE.search(file_path) or file_path.endswith(".d.ts"):
            continue
        try:
            content = (Path(project_dir) / file_path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.debug("route_source_unreadable", path=file_path, error=str(exc))
            continue
        contents[file_path] = content
        file_routes, file_mounts = extract_route_decls(content, file_path)
        decls.extend(file_routes)
        mounts.extend((prefix, var, file_path) for prefix, var in file_mounts)

    prefixes: dict[str, str] = {}
    for prefix, router_var, file_path in mounts:
        resolved = resolve_router_import(contents[file_path], router_var, file_path, all_files)
        if resolved:
            prefixes[resolved] = prefix

    index: dict[str, list[ExpressRoute]] = {}
    for decl in decls:
        prefix = prefixes.get(decl.file_path, "")
        url_path = _normalize(prefix + decl.path)
        index.setdefault(url_path, []).append(
            ExpressRoute(decl.method, url_path, decl.file_path, prefix or None)
        )
    logger.debug("express_routes_indexed", routes=len(index), mounts=len(prefixes))
    return index


def _is_param(segment: str) -> bool:
    return segment.startswith(":")


def match_express_route(url_path: str, index: dict[str, list[ExpressRoute]]) -> Optional[list[ExpressRoute]]:
    """Exact match, then ``:param`` in the route, then ``:param`` in the plan."""
    if url_path in index:
        return index[url_path]
    segments = split_segments(url_path)
    for route_path, routes in index.items():
        if segments_match(split_segments(route_path), segments, _is_param):
            return routes
    for route_path, routes in index.items():
        if segments_match(segments, split_segments(route_path), _is_param):
            return routes
    return None


def _methods(routes: list[ExpressRoute]) -> list[str]:
    return list(dict.fromkeys(r.method for r in routes))


def analyze_express_routes(plan_text: str, project_dir: str) -> RouteAnalysis:
    framework = detect_framework(project_dir)
    if framework == "none":
        return RouteAnalysis(0, 0, 0, framework=framework)
    index = build_express_route_index(project_dir)
    if not index:
        return RouteAnalysis(0, 0, 0, framework=framework)

    def methods_for(url_path: str) -> Optional[list[str]]:
        routes = match_express_route(url_path, index)
        return _methods(routes) if routes is not None else None

    refs = extract_route_refs(plan_text, api_only=False)
    valid, hallucinations = check_route_refs(
        refs,
        methods_for,
        lambda url: suggest_route(url, index, skip_dynamic=True),
        wildcard_method=ALL_METHODS,
    )
    return RouteAnalysis(
        routes_indexed=len(index),
        checked_refs=len(refs),
        valid_refs=valid,
        hallucinations=hallucinations,
        routes={url: (_methods(routes), routes[0].file_path) for url, routes in index.items()},
        framework=framework,
    )


class ExpressRoutesChecker(Checker):
    """Checks route references against Express/Fastify declarations."""

    id = "expressRoutes"
    display_name = "Express/Fastify Routes"
    catch_key = "expressRoutes"

    def run(self, plan_text, project_dir, options=None) -> CheckerResult:
        analysis = analyze_express_routes(plan_text, project_dir)
        return CheckerResult.from_hallucinations(
            self.id,
            analysis.checked_refs,
            analysis.hallucinations,
            analysis,
            applicable=analysis.routes_indexed > 0,
        )

    def format_for_combined_report(self, result, project_dir) -> list[str]:
        if not result.applicable:
            return []
        analysis: RouteAnalysis = result.analysis
        label = FRAMEWORK_LABELS.get(analysis.framework, "Express")
        return format_route_report(f"{label} Routes", analysis, show_files=True)

    def format_for_findings_section(self, result) -> Optional[str]:
        if not result.applicable:
            return None
        label = FINDINGS_LABELS.get(result.analysis.framework, "Express")
        return format_route_findings(f"{label} Route Issues", f"{label} route", result.hallucinations)
