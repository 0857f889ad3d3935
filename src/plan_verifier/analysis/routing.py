"""Shared route-reference extraction and matching for the route checkers."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from .types import Hallucination, HallucinationCategory

HTTP_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS")
_METHODS = "|".join(HTTP_METHODS)
_TRAILING_PUNCT_RE = re.compile(r"[`'\")\],;.]+$")
_FILE_EXT_RE = re.compile(r"\.\w{1,5}$")


@dataclass(frozen=True)
class RouteRef:
    """A route mentioned in plan text, with the HTTP method if one was given."""

    raw: str
    url_path: str
    method: Optional[str] = None

    @property
    def label(self) -> str:
        return f"{self.method or ''} {self.url_path}".strip()


_Unpack = Callable[[re.Match], tuple[Optional[str], Optional[str]]]


def _route_patterns(path: str, backtick_path: str) -> list[tuple[re.Pattern, _Unpack]]:
    return [
        (
            re.compile(rf"fetch\s*\(\s*['\"`]({path}[^'\"`\s)]+)['\"`]"),
            lambda m: (m.group(1), None),
        ),
        (
            re.compile(
                rf"fetch\s*\(\s*['\"`]({path}[^'\"`\s)]+)['\"`]\s*,\s*\{{[^}}]*method\s*:\s*['\"`]({_METHODS})['\"`]",
                re.IGNORECASE,
            ),
            lambda m: (m.group(1), m.group(2).upper()),
        ),
        (
            re.compile(
                rf"axios\.(get|post|put|delete|patch)\s*\(\s*['\"`]({path}[^'\"`\s)]+)['\"`]",
                re.IGNORECASE,
            ),
            lambda m: (m.group(2), m.group(1).upper()),
        ),
        (
            re.compile(rf"\b({_METHODS})\s+({path}\S*)"),
            lambda m: (_TRAILING_PUNCT_RE.sub("", m.group(2)), m.group(1)),
        ),
        (
            re.compile(rf"`({backtick_path}[^`\s]*)`", re.IGNORECASE),
            lambda m: (None if _FILE_EXT_RE.search(m.group(1)) else m.group(1), None),
        ),
        (
            re.compile(rf"new\s+URL\s*\(\s*['\"`]({path}[^'\"`\s)]+)['\"`]"),
            lambda m: (m.group(1), None),
        ),
    ]


API_ROUTE_PATTERNS = _route_patterns(r"/api/", r"/api/")
ANY_ROUTE_PATTERNS = _route_patterns(r"/", r"/[a-z]")


def normalize_url(url_path: str) -> str:
    """Strip the query string and a trailing slash."""
    return url_path.split("?")[0].rstrip("/") or "/"


def extract_route_refs(plan_text: str, api_only: bool) -> list[RouteRef]:
    """Extract route references, deduped on (method, url).

    Args:
        plan_text: Plan text to scan
        api_only: Only accept ``/api/...`` paths (Next.js App Router)

    Returns:
        Route refs in pattern order, first occurrence kept
    """
    patterns = API_ROUTE_PATTERNS if api_only else ANY_ROUTE_PATTERNS
    seen: set[tuple[Optional[str], str]] = set()
    refs: list[RouteRef] = []

    for pattern, unpack in patterns:
        for match in pattern.finditer(plan_text):
            url_path, method = unpack(match)
            if url_path is None:
                continue
            url_path = normalize_url(url_path)
            if api_only and not url_path.startswith("/api/"):
                continue
            key = (method, url_path)
            if key in seen:
                continue
            seen.add(key)
            refs.append(RouteRef(match.group(0), url_path, method))
    return refs


def split_segments(url_path: str) -> list[str]:
    return [s for s in url_path.split("/") if s]


def segments_match(pattern: list[str], concrete: list[str], is_dynamic: Callable[[str], bool]) -> bool:
    if len(pattern) != len(concrete):
        return False
    return all(is_dynamic(seg) or seg == other for seg, other in zip(pattern, concrete))


def suggest_route(url_path: str, route_paths: Iterable[str], skip_dynamic: bool = False) -> Optional[str]:
    """First indexed route whose last segment contains, or is contained in, the ref's."""
    segments = split_segments(url_path)
    if not segments:
        return None
    last = segments[-1].lower()
    if skip_dynamic and last.startswith(":"):
        return None
    for route_path in route_paths:
        route_segments = split_segments(route_path)
        if not route_segments:
            continue
        route_last = route_segments[-1].lower()
        if skip_dynamic and route_last.startswith(":"):
            continue
        if route_last in last or last in route_last:
            return route_path
    return None


@dataclass(frozen=True)
class RouteAnalysis:
    """Result shared by the route checkers.

    Attributes:
        routes_indexed: Distinct URL paths in the project
        checked_refs: Route refs extracted from the plan
        valid_refs: Refs that matched a route and method
        hallucinations: Unknown routes and disallowed methods
        routes: URL path -> (methods, defining file), index order
        framework: Framework label for report headings
    """

    routes_indexed: int
    checked_refs: int
    valid_refs: int
    hallucinations: list[Hallucination] = field(default_factory=list)
    routes: dict[str, tuple[list[str], str]] = field(default_factory=dict)
    framework: str = ""


def check_route_refs(
    refs: list[RouteRef],
    match: Callable[[str], Optional[list[str]]],
    suggest_for: Callable[[str], Optional[str]],
    wildcard_method: Optional[str] = None,
) -> tuple[int, list[Hallucination]]:
    """Classify refs against an index.

    ``match`` returns the methods of the matched route, or None when no
    route matches. An empty method list means any method is accepted.

    Returns:
        Tuple of (valid count, hallucinations)
    """
    valid = 0
    hallucinations: list[Hallucination] = []
    for ref in refs:
        methods = match(ref.url_path)
        if methods is None:
            hallucinations.append(
                Hallucination(ref.label, HallucinationCategory.ROUTE, suggest_for(ref.url_path))
            )
            continue
        if ref.method and methods and ref.method not in methods and wildcard_method not in methods:
            hallucinations.append(
                Hallucination(ref.label, HallucinationCategory.METHOD_NOT_ALLOWED, ", ".join(methods))
            )
            continue
        valid += 1
    return valid, hallucinations


def describe_route_hallucination(h: Hallucination, route_label: str) -> str:
    if h.category == HallucinationCategory.ROUTE:
        what = route_label
        hint = f" (did you mean {h.suggestion}?)" if h.suggestion else ""
    else:
        what = "method not allowed"
        hint = f" (valid methods: {h.suggestion})" if h.suggestion else ""
    return f"- `{h.raw}` — {what}{hint}"


def format_route_report(heading: str, analysis: RouteAnalysis, show_files: bool) -> list[str]:
    lines = [
        f"## {heading}",
        f"**{analysis.routes_indexed}** routes indexed, **{analysis.checked_refs}** refs — "
        f"**{len(analysis.hallucinations)}** hallucinated",
    ]
    lines.extend(describe_route_hallucination(h, "not found") for h in analysis.hallucinations)
    if not analysis.hallucinations:
        lines.append("All route refs valid.")
    entries = []
    for url, (methods, file_path) in analysis.routes.items():
        entry = f"`{url}` [{','.join(methods)}]"
        entries.append(f"{entry} → `{file_path}`" if show_files else entry)
    if entries:
        lines.append("**Routes:** " + ", ".join(entries))
    lines.append("")
    return lines


def format_route_findings(heading: str, noun: str, hallucinations: list[Hallucination]) -> Optional[str]:
    if not hallucinations:
        return None
    lines = [
        f"### {heading}",
        "",
        f"Static analysis found {len(hallucinations)} {noun} hallucination(s):",
        "",
    ]
    lines.extend(describe_route_hallucination(h, "route not found") for h in hallucinations)
    return "\n".join(lines)
