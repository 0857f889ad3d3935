"""Supabase schema checker.

Ground truth is the generated ``Database`` type (``supabase gen types``):
tables with their ``Row`` columns, RPC functions and enums. Plan refs come
from ``.from()``, ``.select()``, filter calls and ``.rpc()``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import structlog

from ..extraction import find_matching_brace
from ..indexing.tree import get_all_files
from ..matcher import suggest
from ..registry import Checker
from ..types import CheckerResult, Hallucination, HallucinationCategory

logger = structlog.get_logger(__name__)

COMMON_TYPES_PATHS = (
    "lib/types/database.types.ts",
    "types/supabase.ts",
    "src/types/database.types.ts",
    "src/types/supabase.ts",
    "database.types.ts",
    "types/database.types.ts",
    "src/database.types.ts",
    "lib/database.types.ts",
    "src/lib/database.types.ts",
)

FILTER_METHODS = (
    "eq", "neq", "gt", "gte", "lt", "lte", "order", "is", "in",
    "like", "ilike", "match", "not", "filter",
)

_TABLE_INTERNAL_KEYS = frozenset({"Row", "Insert", "Update", "Relationships"})
_FUNCTION_INTERNAL_KEYS = frozenset({"Args", "Returns"})

_DATABASE_TYPE_RE = re.compile(r"export\s+type\s+Database\s*=")
_TABLES_KEY_RE = re.compile(r"Tables:\s*\{")
_BLOCK_KEY_RE = re.compile(r"(\w+):\s*\{")
_FIELD_RE = re.compile(r"(\w+)\s*:\s*([^;\n]+)")
_ENUM_RE = re.compile(r"(\w+):\s*([^\n]+)")
_LITERAL_RE = re.compile(r"[\"']([^\"']+)[\"']")
_RETURNS_RE = re.compile(r"Returns:\s*([^\n;}{]+)")

_FROM_RE = re.compile(r"\.from\(\s*[\"'](\w+)[\"']\s*\)")
_SELECT_RE = re.compile(r"\.select\(\s*[\"']([^\"']+)[\"']\s*\)")
_FILTER_RE = re.compile(rf"\.({'|'.join(FILTER_METHODS)})\(\s*[\"'](\w+)[\"']")
_RPC_RE = re.compile(r"\.rpc\(\s*[\"'](\w+)[\"']\s*[,)]")
_RELATION_RE = re.compile(r"^(?:\w+:)?(\w+)(?:!\w+)?\((.+)\)$")
_ALIAS_RE = re.compile(r"^\w+:(\w+)$")
_IDENT_RE = re.compile(r"^\w+$")

FROM_LOOKBACK_CHARS = 500


@dataclass
class SupabaseFunction:
    name: str
    args: dict[str, str]
    return_type: str


@dataclass
class SupabaseSchema:
    tables: dict[str, dict[str, str]] = field(default_factory=dict)
    functions: dict[str, SupabaseFunction] = field(default_factory=dict)
    enums: dict[str, list[str]] = field(default_factory=dict)


def is_supabase_types_file(content: str) -> bool:
    return bool(_DATABASE_TYPE_RE.search(content) and _TABLES_KEY_RE.search(content))


def find_supabase_types_file(project_dir: str) -> Optional[str]:
    """Locate the generated types file, common locations first."""
    files = get_all_files(project_dir)
    existing = set(files)
    candidates = [p for p in COMMON_TYPES_PATHS if p in existing]
    candidates.extend(f for f in files if f.endswith(".ts") and f not in candidates)

    for rel_path in candidates:
        try:
            content = (Path(project_dir) / rel_path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            continue
        if is_supabase_types_file(content):
            return rel_path
    return None


def _extract_section(content: str, name: str) -> Optional[str]:
    match = re.search(rf"\b{name}:\s*\{{", content)
    if not match:
        return None
    close = find_matching_brace(content, match.end() - 1)
    return content[match.end():close] if close != -1 else None


def _parse_fields(section: str) -> dict[str, str]:
    return {m.group(1): m.group(2).strip() for m in _FIELD_RE.finditer(section)}


def _iter_blocks(section: str, skip: frozenset):
    """Yield ``(key, block_body)`` for each depth-0 ``key: { ... }`` entry."""
    pos = 0
    while True:
        match = _BLOCK_KEY_RE.search(section, pos)
        if not match:
            return
        close = find_matching_brace(section, match.end() - 1)
        if close == -1:
            return
        if match.group(1) in skip:
            pos = match.end()
            continue
        yield match.group(1), section[match.end():close]
        pos = close + 1


def parse_supabase_schema(content: str) -> SupabaseSchema:
    schema = SupabaseSchema()

    tables = _extract_section(content, "Tables")
    if tables:
        for name, block in _iter_blocks(tables, _TABLE_INTERNAL_KEYS):
            row = _extract_section(block, "Row")
            if row is not None:
                schema.tables[name] = _parse_fields(row)

    functions = _extract_section(content, "Functions")
    if functions:
        for name, block in _iter_blocks(functions, _FUNCTION_INTERNAL_KEYS):
            args = _extract_section(block, "Args")
            returns = _RETURNS_RE.search(block)
            schema.functions[name] = SupabaseFunction(
                name,
                _parse_fields(args) if args else {},
                returns.group(1).strip() if returns else "unknown",
            )

    enums = _extract_section(content, "Enums")
    if enums:
        for match in _ENUM_RE.finditer(enums):
            values = _LITERAL_RE.findall(match.group(2))
            if values:
                schema.enums[match.group(1)] = values

    return schema


@dataclass(frozen=True)
class SupabaseRef:
    raw: str
    table_name: Optional[str] = None
    column_name: Optional[str] = None
    function_name: Optional[str] = None


def find_nearest_from(plan_text: str, position: int) -> Optional[str]:
    """Table of the closest preceding ``.from('x')`` in the same query chain.

    The lookback is capped and stops at a blank line.
    """
    before = plan_text[max(0, position - FROM_LOOKBACK_CHARS):position]
    blank = before.rfind("\n\n")
    if blank >= 0:
        before = before[blank:]
    matches = _FROM_RE.findall(before)
    return matches[-1] if matches else None


def _split_select(select: str) -> list[str]:
    parts: list[str] = []
    depth = 0
    current = ""
    for ch in select:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        elif ch == "," and depth == 0:
            parts.append(current.strip())
            current = ""
            continue
        current += ch
    if current.strip():
        parts.append(current.strip())
    return parts


def _select_refs(select: str, table: str, schema: SupabaseSchema) -> list[SupabaseRef]:
    refs: list[SupabaseRef] = []
    for part in _split_select(select):
        if part in ("", "*"):
            continue
        relation = _RELATION_RE.match(part)
        if relation:
            # Unknown relation names may be aliases
            name = relation.group(1)
            if name not in schema.tables:
                continue
            refs.append(SupabaseRef(f".select('...{name}...')", table_name=name))
            for col in (c.strip() for c in relation.group(2).split(",")):
                col = col.split(":")[-1]
                if _IDENT_RE.match(col):
                    refs.append(
                        SupabaseRef(f".select('...{name}({col})...')", table_name=name, column_name=col)
                    )
            continue
        alias = _ALIAS_RE.match(part)
        column = alias.group(1) if alias else part
        if _IDENT_RE.match(column):
            refs.append(SupabaseRef(f".select('...{column}...')", table_name=table, column_name=column))
    return refs


def extract_supabase_refs(plan_text: str, schema: SupabaseSchema) -> list[SupabaseRef]:
    """Extract table, column and function refs, deduped on what they name.

    Columns are only attributed when a preceding ``.from()`` names the table.
    """
    candidates: list[SupabaseRef] = []
    candidates.extend(SupabaseRef(m.group(0), table_name=m.group(1)) for m in _FROM_RE.finditer(plan_text))
    for match in _SELECT_RE.finditer(plan_text):
        table = find_nearest_from(plan_text, match.start())
        if table:
            candidates.extend(_select_refs(match.group(1), table, schema))
    for match in _FILTER_RE.finditer(plan_text):
        table = find_nearest_from(plan_text, match.start())
        if table:
            candidates.append(SupabaseRef(match.group(0), table_name=table, column_name=match.group(2)))
    candidates.extend(SupabaseRef(m.group(0), function_name=m.group(1)) for m in _RPC_RE.finditer(plan_text))

    seen: set[tuple] = set()
    refs: list[SupabaseRef] = []
    for ref in candidates:
        key = (ref.table_name, ref.column_name, ref.function_name)
        if key not in seen:
            seen.add(key)
            refs.append(ref)
    return refs


@dataclass(frozen=True)
class SupabaseHallucination:
    hallucination: Hallucination
    table_name: Optional[str] = None


@dataclass(frozen=True)
class SupabaseAnalysis:
    """Result of checking Supabase refs.

    Attributes:
        checked_refs: Unique refs checked
        hallucinations: Hallucinations with the table they were attributed to
        schema: Parsed ground truth
        types_file: Project-relative path of the generated types file
    """

    checked_refs: int
    hallucinations: list[SupabaseHallucination] = field(default_factory=list)
    schema: SupabaseSchema = field(default_factory=SupabaseSchema)
    types_file: Optional[str] = None


def classify_ref(ref: SupabaseRef, schema: SupabaseSchema) -> Optional[Hallucination]:
    """Return a hallucination for an invalid ref, None when it is valid."""
    if ref.function_name:
        if ref.function_name in schema.functions:
            return None
        return Hallucination(
            ref.raw, HallucinationCategory.FUNCTION, suggest(ref.function_name, schema.functions)
        )
    columns = schema.tables.get(ref.table_name)
    if columns is None:
        return Hallucination(ref.raw, HallucinationCategory.TABLE, suggest(ref.table_name, schema.tables))
    if ref.column_name and ref.column_name not in columns:
        return Hallucination(ref.raw, HallucinationCategory.COLUMN, suggest(ref.column_name, columns))
    return None


def analyze_supabase_schema(plan_text: str, project_dir: str) -> SupabaseAnalysis:
    types_file = find_supabase_types_file(project_dir)
    if types_file is None:
        return SupabaseAnalysis(0)
    try:
        schema = parse_supabase_schema((Path(project_dir) / types_file).read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("supabase_types_unreadable", path=types_file, error=str(exc))
        return SupabaseAnalysis(0)
    if not schema.tables:
        return SupabaseAnalysis(0, types_file=types_file)

    refs = extract_supabase_refs(plan_text, schema)
    hallucinations = []
    for ref in refs:
        hallucination = classify_ref(ref, schema)
        if hallucination is not None:
            hallucinations.append(SupabaseHallucination(hallucination, ref.table_name))

    logger.debug(
        "supabase_schema_indexed",
        tables=len(schema.tables),
        functions=len(schema.functions),
        enums=len(schema.enums),
    )
    return SupabaseAnalysis(len(refs), hallucinations, schema, types_file)


_LABELS = {
    HallucinationCategory.TABLE: "table not found",
    HallucinationCategory.COLUMN: "column not found",
    HallucinationCategory.FUNCTION: "function not found",
}


def _describe(h: Hallucination) -> str:
    hint = f" (did you mean {h.suggestion}?)" if h.suggestion else ""
    return f"- `{h.raw}` — {_LABELS[h.category]}{hint}"


class SupabaseSchemaChecker(Checker):
    """Checks Supabase client calls against the generated Database type."""

    id = "supabaseSchema"
    display_name = "Supabase Schema"
    catch_key = "supabaseSchema"

    def run(self, plan_text, project_dir, options=None) -> CheckerResult:
        analysis = analyze_supabase_schema(plan_text, project_dir)
        return CheckerResult.from_hallucinations(
            self.id,
            analysis.checked_refs,
            [h.hallucination for h in analysis.hallucinations],
            analysis,
            applicable=bool(analysis.schema.tables),
        )

    def format_for_combined_report(self, result, project_dir) -> list[str]:
        if not result.applicable:
            return []
        analysis: SupabaseAnalysis = result.analysis
        schema = analysis.schema
        lines = [
            "## Supabase Schema",
            f"**Source:** `{analysis.types_file}`",
            f"**{len(schema.tables)}** tables, **{len(schema.functions)}** functions, "
            f"**{len(schema.enums)}** enums indexed",
            f"**{analysis.checked_refs}** refs checked — **{len(analysis.hallucinations)}** hallucinated",
        ]
        for entry in analysis.hallucinations:
            lines.append(_describe(entry.hallucination))
            if entry.hallucination.category == HallucinationCategory.COLUMN and entry.table_name in schema.tables:
                cols = "`, `".join(schema.tables[entry.table_name])
                lines.append(f"  - Columns on {entry.table_name}: `{cols}`")
        if not analysis.hallucinations:
            lines.append("All Supabase refs valid.")
        lines.append("")
        lines.append("**Tables:** " + ", ".join(f"`{t}`" for t in schema.tables))
        lines.append("")
        return lines

    def format_for_findings_section(self, result) -> Optional[str]:
        if not result.applicable or not result.hallucinations:
            return None
        lines = [
            "### Supabase Schema Issues",
            "",
            f"Static analysis found {result.hallucinated} Supabase schema hallucination(s):",
            "",
        ]
        lines.extend(_describe(h) for h in result.hallucinations)
        return "\n".join(lines)
