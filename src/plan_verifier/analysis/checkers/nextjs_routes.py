"""Next.js App Router API route checker."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import structlog

from ..indexing.tree import get_all_files
from ..registry import Checker
from ..routing import (
    HTTP_METHODS,
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

_METHODS = "|".join(HTTP_METHODS)
_ROUTE_FILE_RE = re.compile(r"app/.*/route\.(ts|js|tsx|jsx)$")
_ROUTE_SUFFIX_RE = re.compile(r"/route\.(ts|js|tsx|jsx)$")
_ROUTE_GROUP_RE = re.compile(r"\([^)]+\)/?")
_EXPORT_FUNCTION_RE = re.compile(rf"export\s+(?:async\s+)?function\s+({_METHODS})\b")
_EXPORT_CONST_RE = re.compile(rf"export\s+const\s+({_METHODS})\s*=")


@dataclass
class ApiRoute:
    url_path: str
    file_path: str
    methods: list[str] = field(default_factory=list)


def file_path_to_url_path(file_path: str) -> Optional[str]:
    """Map ``src/app/api/users/route.ts`` to ``/api/users``.

    Route groups such as ``(auth)`` are dropped from the URL.
    """
    app_index = file_path.find("app/")
    if app_index == -1:
        return None
    url_path = _ROUTE_SUFFIX_RE.sub("", file_path[app_index + 4:])
    url_path = _ROUTE_GROUP_RE.sub("", url_path).rstrip("/")
    return "/" + url_path


def parse_route_methods(content: str) -> list[str]:
    """HTTP method handlers exported by a route module, first-seen order."""
    methods: list[str] = []
    for pattern in (_EXPORT_FUNCTION_RE, _EXPORT_CONST_RE):
        for match in pattern.finditer(content):
            if match.group(1) not in methods:
                methods.append(match.group(1))
    return methods


def build_route_index(project_dir: str) -> dict[str, ApiRoute]:
    index: dict[str, ApiRoute] = {}
    for file_path in get_all_files(project_dir):
        if not _ROUTE_FILE_RE.search(file_path):
            continue
        url_path = file_path_to_url_path(file_path)
        if url_path is None:
            continue
        try:
            methods = parse_route_methods((Path(project_dir) / file_path).read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as exc:
            logger.debug("route_file_unreadable", path=file_path, error=str(exc))
            methods = []
        index[url_path] = ApiRoute(url_path, file_path, methods)
    return index


def _is_dynamic(segment: str) -> bool:
    return segment.startswith("[") and segment.endswith("]")


def match_route(url_path: str, index: dict[str, ApiRoute]) -> Optional[ApiRoute]:
    """Resolve a URL against the index, honoring ``[param]`` and catch-all segments."""
    if url_path in index:
        return index[url_path]

    segments = split_segments(url_path)
    for route_path, route in index.items():
        route_segments = split_segments(route_path)
        if route_segments and route_segments[-1].startswith(("[...", "[[...")):
            prefix = route_segments[:-1]
            if len(segments) >= len(prefix) and all(
                _is_dynamic(seg) or seg == segments[i] for i, seg in enumerate(prefix)
            ):
                return route
        if segments_match(route_segments, segments, _is_dynamic):
            return route
    return None


def analyze_api_routes(plan_text: str, project_dir: str) -> RouteAnalysis:
    index = build_route_index(project_dir)
    if not index:
        return RouteAnalysis(0, 0, 0)

    def methods_for(url_path: str) -> Optional[list[str]]:
        route = match_route(url_path, index)
        return route.methods if route else None

    refs = extract_route_refs(plan_text, api_only=True)
    valid, hallucinations = check_route_refs(
        refs, methods_for, lambda url: suggest_route(url, index)
    )
    return RouteAnalysis(
        routes_indexed=len(index),
        checked_refs=len(refs),
        valid_refs=valid,
        hallucinations=hallucinations,
        routes={url: (route.methods, route.file_path) for url, route in index.items()},
        framework="Next.js",
    )


class NextjsRoutesChecker(Checker):
    """Checks ``/api/...`` references against App Router route files."""

    id = "routes"
    display_name = "API Routes"
    catch_key = "routes"

    def run(self, plan_text, project_dir, options=None) -> CheckerResult:
        analysis = analyze_api_routes(plan_text, project_dir)
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
        return format_route_report("API Routes", result.analysis, show_files=False)

    def format_for_findings_section(self, result) -> Optional[str]:
        if not result.applicable:
            return None
        return format_route_findings("API Route Issues", "API route", result.hallucinations)
