"""SQL / Drizzle schema checker.

Indexes tables from Drizzle ``pgTable``/``mysqlTable``/``sqliteTable``
definitions and ``CREATE TABLE`` statements, then validates table and
column references in the plan.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import structlog

from ..extraction import extract_code_regions, extract_top_level_keys
from ..indexing.tree import get_all_files
from ..matcher import suggest
from ..registry import Checker
from ..types import CheckerResult, Hallucination, HallucinationCategory

logger = structlog.get_logger(__name__)

SQL_KEYWORDS = frozenset(
    {
        "from", "where", "select", "insert", "into", "update", "delete",
        "set", "values", "join", "inner", "outer", "left", "right", "cross",
        "on", "and", "or", "not", "in", "is", "null", "as", "order", "by",
        "group", "having", "limit", "offset", "union", "all", "distinct",
        "create", "table", "alter", "drop", "index", "primary", "key",
        "foreign", "references", "constraint", "unique", "check", "default",
        "cascade", "restrict", "exists", "between", "like", "case", "when",
        "then", "else", "end", "asc", "desc", "true", "false", "count",
        "sum", "avg", "min", "max", "if", "returning", "with", "recursive",
    }
)

# Properties of ordinary JS values, never treated as column names
JS_PROPS = frozenset(
    {
        "length", "prototype", "constructor", "name", "toString", "valueOf",
        "call", "apply", "bind", "map", "filter", "reduce", "forEach",
        "push", "pop", "shift", "unshift", "slice", "splice", "concat",
        "join", "indexOf", "includes", "find", "findFirst", "findMany",
        "findUnique", "create", "createMany", "values", "keys", "entries",
        "then", "catch", "finally", "log", "error", "warn", "info",
        "env", "resolve", "reject", "parse", "stringify", "from",
        "select", "insert", "update", "delete", "query", "table",
    }
)

# Globals and common client names, never treated as tables
JS_GLOBALS = frozenset(
    {
        "console", "Math", "JSON", "Date", "Array", "Object", "String",
        "Number", "Boolean", "Promise", "Map", "Set", "RegExp", "Error",
        "process", "require", "module", "exports", "global", "window",
        "document", "navigator", "fetch", "Response", "Request", "URL",
        "Buffer", "fs", "path", "os", "crypto", "http", "https",
        "import", "export", "const", "let", "var", "function", "class",
        "db", "prisma", "ctx", "req", "res", "app", "router", "next",
    }
)

FILE_EXTENSIONS = frozenset({"ts", "tsx", "js", "jsx", "mjs", "cjs", "sql", "json", "md", "py"})
CONSTRAINT_KEYWORDS = frozenset({"primary", "foreign", "unique", "check", "constraint", "index"})

_DRIZZLE_TABLE_RE = re.compile(
    r"export\s+const\s+(\w+)\s*=\s*(?:pgTable|mysqlTable|sqliteTable)\s*\(\s*[\"']([^\"']+)[\"']\s*,"
)
_DRIZZLE_MARKER_RE = re.compile(r"(?:pgTable|mysqlTable|sqliteTable)\s*\(")
_CREATE_TABLE_RE = re.compile(
    r"CREATE\s+TABLE\s+(?:IF\s+NOT\s+EXISTS\s+)?[\"'`]?(\w+)[\"'`]?\s*\(",
    re.IGNORECASE,
)
_COLUMN_TYPE_RE = re.compile(r"\s*(\w+)\s*\(")
_SQL_COLUMN_RE = re.compile(r"^[\"'`]?(\w+)[\"'`]?\s+(\w+)")

_DB_CALL_RE = re.compile(r"db\.(?:select\(\)[^)]*\.from|insert|update|delete)\s*\(\s*(\w+)")
_DB_QUERY_RE = re.compile(r"db\.query\.(\w+)\.\w+")
_DOTTED_RE = re.compile(r"\b(\w+)\.(\w+)\b")
_SQL_TABLE_REF_RE = re.compile(r"\b(?:FROM|INTO|UPDATE|JOIN)\s+[\"'`]?(\w+)[\"'`]?", re.IGNORECASE)


@dataclass
class SqlTable:
    """A table known from a Drizzle definition or a CREATE TABLE statement."""

    name: str
    columns: dict[str, str]
    file_path: str
    source: str
    variable_name: Optional[str] = None


@dataclass
class SqlSchema:
    tables: dict[str, SqlTable] = field(default_factory=dict)
    variable_to_table: dict[str, str] = field(default_factory=dict)

    def resolve(self, name: str) -> Optional[SqlTable]:
        """Resolve a SQL table name or Drizzle variable name."""
        if name in self.tables:
            return self.tables[name]
        sql_name = self.variable_to_table.get(name)
        return self.tables.get(sql_name) if sql_name else None

    def known_names(self) -> list[str]:
        return list(self.tables) + list(self.variable_to_table)


def _drizzle_columns(content: str, start: int) -> dict[str, str]:
    i = start
    while i < len(content) and content[i] != "{":
        if content[i] == "(":
            # Callback form: (t) => ({ ... })
            arrow = content.find("=>", i)
            if arrow == -1:
                return {}
            i = arrow + 2
            while i < len(content) and (content[i].isspace() or content[i] == "("):
                i += 1
            break
        i += 1
    if i >= len(content) or content[i] != "{":
        return {}

    columns: dict[str, str] = {}
    body_start = i + 1
    for key in extract_top_level_keys(content, body_start):
        # Type is the builder call following the key, e.g. text("name")
        key_match = re.compile(rf"\b{re.escape(key)}\s*:").search(content, body_start)
        type_match = _COLUMN_TYPE_RE.match(content, key_match.end()) if key_match else None
        columns[key] = type_match.group(1) if type_match else "unknown"
    return columns


def parse_drizzle_schema(content: str, file_path: str) -> list[SqlTable]:
    return [
        SqlTable(
            name=match.group(2),
            columns=_drizzle_columns(content, match.end()),
            file_path=file_path,
            source="drizzle",
            variable_name=match.group(1),
        )
        for match in _DRIZZLE_TABLE_RE.finditer(content)
    ]


def _sql_columns(content: str, start: int) -> dict[str, str]:
    depth = 1
    i = start
    while i < len(content) and depth > 0:
        if content[i] == "(":
            depth += 1
        elif content[i] == ")":
            depth -= 1
        i += 1
    body = content[start:i - 1]

    columns: dict[str, str] = {}
    for part in body.split(","):
        match = _SQL_COLUMN_RE.match(part.strip())
        if not match or match.group(1).lower() in CONSTRAINT_KEYWORDS:
            continue
        columns[match.group(1)] = match.group(2)
    return columns


def parse_sql_schema(content: str, file_path: str) -> list[SqlTable]:
    return [
        SqlTable(
            name=match.group(1),
            columns=_sql_columns(content, match.end()),
            file_path=file_path,
            source="sql",
        )
        for match in _CREATE_TABLE_RE.finditer(content)
    ]


def build_sql_schema(project_dir: str) -> SqlSchema:
    """Scan project sources for table definitions. Drizzle wins over SQL."""
    schema = SqlSchema()
    sql_tables: list[SqlTable] = []

    for rel_path in get_all_files(project_dir):
        is_code = rel_path.endswith((".ts", ".js"))
        is_sql = rel_path.endswith(".sql")
        if not (is_code or is_sql):
            continue
        try:
            content = (Path(project_dir) / rel_path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.debug("schema_source_unreadable", path=rel_path, error=str(exc))
            continue
        if is_code and _DRIZZLE_MARKER_RE.search(content):
            for table in parse_drizzle_schema(content, rel_path):
                schema.tables[table.name] = table
                schema.variable_to_table[table.variable_name] = table.name
        elif is_sql and re.search(r"CREATE\s+TABLE", content, re.IGNORECASE):
            sql_tables.extend(parse_sql_schema(content, rel_path))

    for table in sql_tables:
        schema.tables.setdefault(table.name, table)

    logger.debug("sql_schema_indexed", tables=len(schema.tables))
    return schema


@dataclass(frozen=True)
class SqlRef:
    raw: str
    table_name: str
    column_name: Optional[str] = None


def extract_sql_refs(plan_text: str, schema: SqlSchema) -> list[SqlRef]:
    """Extract table and column references, deduped by (table, column)."""
    candidates: list[tuple[int, SqlRef]] = []

    for pattern in (_DB_CALL_RE, _DB_QUERY_RE):
        for match in pattern.finditer(plan_text):
            name = match.group(1)
            if name.lower() not in SQL_KEYWORDS:
                candidates.append((match.start(), SqlRef(match.group(0), name)))

    for match in _DOTTED_RE.finditer(plan_text):
        table, column = match.groups()
        if table in JS_GLOBALS or table.lower() in SQL_KEYWORDS:
            continue
        if column.lower() in SQL_KEYWORDS or column in JS_PROPS or column in FILE_EXTENSIONS:
            continue
        if schema.resolve(table) is not None:
            candidates.append((match.start(), SqlRef(match.group(0), table, column)))

    # code regions only
    for region in extract_code_regions(plan_text):
        for match in _SQL_TABLE_REF_RE.finditer(region.text):
            name = match.group(1)
            if name.lower() not in SQL_KEYWORDS:
                candidates.append((region.offset + match.start(), SqlRef(match.group(0), name)))

    candidates.sort(key=lambda c: c[0])
    seen: set[tuple[str, Optional[str]]] = set()
    refs: list[SqlRef] = []
    for _, ref in candidates:
        key = (ref.table_name, ref.column_name)
        if key not in seen:
            seen.add(key)
            refs.append(ref)
    return refs


@dataclass(frozen=True)
class SqlSchemaAnalysis:
    checked_refs: int
    hallucinations: list[Hallucination]
    schema: SqlSchema

    @property
    def tables_indexed(self) -> int:
        return len(self.schema.tables)


def analyze_sql_schema(plan_text: str, project_dir: str) -> SqlSchemaAnalysis:
    schema = build_sql_schema(project_dir)
    if not schema.tables:
        return SqlSchemaAnalysis(0, [], schema)

    refs = extract_sql_refs(plan_text, schema)
    hallucinations: list[Hallucination] = []
    for ref in refs:
        table = schema.resolve(ref.table_name)
        if table is None:
            hallucinations.append(
                Hallucination(
                    ref.raw,
                    HallucinationCategory.TABLE,
                    suggest(ref.table_name, schema.known_names()),
                )
            )
        elif ref.column_name and ref.column_name not in table.columns:
            hallucinations.append(
                Hallucination(
                    ref.raw,
                    HallucinationCategory.COLUMN,
                    suggest(ref.column_name, table.columns),
                )
            )

    return SqlSchemaAnalysis(len(refs), hallucinations, schema)


def _describe(h: Hallucination) -> str:
    what = "table not found" if h.category == HallucinationCategory.TABLE else "column not found"
    hint = f" (did you mean {h.suggestion}?)" if h.suggestion else ""
    return f"- `{h.raw}` — {what}{hint}"


class SqlSchemaChecker(Checker):
    """Checks table/column references against Drizzle and SQL definitions."""

    id = "sqlSchema"
    display_name = "SQL/Drizzle Schema"
    catch_key = "sqlSchema"

    def run(self, plan_text, project_dir, options=None) -> CheckerResult:
        analysis = analyze_sql_schema(plan_text, project_dir)
        return CheckerResult.from_hallucinations(
            self.id,
            analysis.checked_refs,
            analysis.hallucinations,
            analysis,
            applicable=analysis.tables_indexed > 0,
        )

    def format_for_combined_report(self, result, project_dir) -> list[str]:
        if not result.applicable:
            return []
        analysis: SqlSchemaAnalysis = result.analysis
        lines = [
            "## SQL/Drizzle Schema",
            f"**{analysis.tables_indexed}** tables, **{analysis.checked_refs}** refs — "
            f"**{len(analysis.hallucinations)}** hallucinated",
        ]
        lines.extend(_describe(h) for h in analysis.hallucinations)
        if not analysis.hallucinations:
            lines.append("All SQL refs valid.")
        lines.append("")
        lines.append("**Tables:** " + ", ".join(f"`{t}`" for t in analysis.schema.tables))
        lines.append("")
        return lines

    def format_for_findings_section(self, result) -> Optional[str]:
        if not result.applicable or not result.hallucinations:
            return None
        lines = [
            "### SQL Schema Issues",
            "",
            f"Static analysis found {result.hallucinated} SQL/Drizzle schema hallucination(s):",
            "",
        ]
        lines.extend(_describe(h) for h in result.hallucinations)
        return "\n".join(lines)
