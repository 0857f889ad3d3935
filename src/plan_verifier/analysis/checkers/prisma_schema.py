"""Prisma schema checker.

Parses ``schema.prisma`` into models, fields and enums, then validates
client accessor chains (``prisma.user.findMany``), query-object field keys
and ``include`` relations found in the plan's code.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

import structlog

from ..extraction import extract_code_regions, extract_top_level_keys
from ..matcher import suggest
from ..registry import Checker
from ..types import CheckerResult, Hallucination, HallucinationCategory

logger = structlog.get_logger(__name__)

DEFAULT_SCHEMA_PATH = "prisma/schema.prisma"

VALID_PRISMA_METHODS = (
    "findMany",
    "findUnique",
    "findFirst",
    "findUniqueOrThrow",
    "findFirstOrThrow",
    "create",
    "createMany",
    "createManyAndReturn",
    "update",
    "updateMany",
    "upsert",
    "delete",
    "deleteMany",
    "count",
    "aggregate",
    "groupBy",
)

# Query operators and aggregate keys that are not model fields
NON_FIELD_KEYS = frozenset(
    {
        "true", "false", "null", "undefined", "desc", "asc", "not", "in",
        "gte", "lte", "gt", "lt", "contains", "startsWith", "endsWith",
        "equals", "mode", "some", "every", "none", "AND", "OR", "NOT",
        "_count", "_sum", "_avg", "_min", "_max",
    }
)

_ENUM_RE = re.compile(r"^enum\s+(\w+)\s*\{", re.MULTILINE)
_MODEL_RE = re.compile(r"^model\s+(\w+)\s*\{([\s\S]*?)^\}", re.MULTILINE)
_FIELD_RE = re.compile(r"^(\w+)\s+(\w+)(\[\])?(\?)?")
_QUERY_BLOCK_RE = re.compile(r"\b(?:where|orderBy|select|by|data)\s*:\s*\{")
_INCLUDE_BLOCK_RE = re.compile(r"\binclude\s*:\s*\{")
_BLOCK_KEYWORDS = frozenset({"model", "enum", "generator", "datasource"})


class SchemaParseError(ValueError):
    """Raised when a schema file yields no usable models."""


@dataclass
class PrismaField:
    name: str
    type: str
    is_list: bool = False
    is_optional: bool = False
    is_relation: bool = False


@dataclass
class PrismaModel:
    name: str
    accessor: str
    fields: dict[str, PrismaField] = field(default_factory=dict)

    @property
    def relation_names(self) -> list[str]:
        return [f.name for f in self.fields.values() if f.is_relation]


@dataclass
class PrismaSchema:
    """Parsed schema: models keyed by name, enums, accessor lookup."""

    models: dict[str, PrismaModel] = field(default_factory=dict)
    enums: list[str] = field(default_factory=list)
    accessor_to_model: dict[str, str] = field(default_factory=dict)

    def model_for_accessor(self, accessor: str) -> Optional[PrismaModel]:
        name = self.accessor_to_model.get(accessor)
        return self.models.get(name) if name else None


def to_accessor(model_name: str) -> str:
    return model_name[:1].lower() + model_name[1:]


def parse_prisma_schema(content: str) -> PrismaSchema:
    """Parse schema.prisma source text.

    Raises:
        SchemaParseError: If no ``model`` blocks are found
    """
    schema = PrismaSchema(enums=[m.group(1) for m in _ENUM_RE.finditer(content)])
    declared_models = {m.group(1) for m in _MODEL_RE.finditer(content)}

    for match in _MODEL_RE.finditer(content):
        name, body = match.group(1), match.group(2)
        model = PrismaModel(name=name, accessor=to_accessor(name))
        for line in body.split("\n"):
            stripped = line.strip()
            if not stripped or stripped.startswith("@@") or stripped.startswith("//"):
                continue
            field_match = _FIELD_RE.match(stripped)
            if not field_match or field_match.group(1) in _BLOCK_KEYWORDS:
                continue
            field_name, field_type = field_match.group(1), field_match.group(2)
            model.fields[field_name] = PrismaField(
                name=field_name,
                type=field_type,
                is_list=bool(field_match.group(3)),
                is_optional=bool(field_match.group(4)),
                is_relation=field_type in declared_models or "@relation" in stripped,
            )
        schema.models[name] = model
        schema.accessor_to_model[model.accessor] = name

    if not schema.models:
        raise SchemaParseError("no model blocks found")
    return schema


class RefKind(str, Enum):
    MODEL = "model"
    FIELD = "field"
    METHOD = "method"
    RELATION = "relation"


@dataclass(frozen=True)
class SchemaRef:
    """One Prisma reference found in plan code."""

    raw: str
    kind: RefKind
    valid: bool
    model_accessor: Optional[str] = None
    field_name: Optional[str] = None
    method_name: Optional[str] = None
    category: Optional[HallucinationCategory] = None
    suggestion: Optional[str] = None

    def to_hallucination(self) -> Hallucination:
        return Hallucination(self.raw, self.category, self.suggestion)


@dataclass(frozen=True)
class SchemaAnalysis:
    refs: list[SchemaRef]
    schema: PrismaSchema
    schema_path: str

    @property
    def hallucinations(self) -> list[SchemaRef]:
        return [r for r in self.refs if not r.valid]

    def count(self, kind: RefKind) -> tuple[int, int]:
        """(total, invalid) refs of ``kind``."""
        refs = [r for r in self.refs if r.kind == kind]
        return len(refs), sum(1 for r in refs if not r.valid)


def detect_client_names(code: str) -> list[str]:
    """Variable names used as Prisma clients (``db``, ``client``...), plus ``prisma``."""
    methods = "|".join(VALID_PRISMA_METHODS)
    names = [m.group(1) for m in re.finditer(rf"(\w+)\.(\w+)\.(?:{methods})\b", code)]
    names.append("prisma")
    return list(dict.fromkeys(names))


def _client_alternation(client_names: list[str]) -> str:
    return "|".join(re.escape(n) for n in client_names)


def find_context_model(
    code: str,
    position: int,
    schema: PrismaSchema,
    client_names: list[str],
) -> Optional[PrismaModel]:
    """Model queried by the nearest preceding ``client.accessor.`` call.

    Returns None when ``position`` is nested deeper than the call's top
    level argument object.
    """
    preceding = code[max(0, position - 500):position]
    matches = list(re.finditer(rf"(?:{_client_alternation(client_names)})\.(\w+)\.", preceding))
    if not matches:
        return None
    last = matches[-1]
    between = preceding[last.end():]
    if between.count("{") - between.count("}") > 1:
        return None
    accessor = last.group(1)
    model = schema.model_for_accessor(accessor)
    if model is not None:
        return model
    suggested = suggest(accessor, schema.accessor_to_model)
    return schema.model_for_accessor(suggested) if suggested else None


def _relation_suggestion(name: str, model: PrismaModel) -> Optional[str]:
    relations = model.relation_names
    hit = suggest(name, relations)
    if hit:
        return hit
    if relations:
        return f"valid relations: {', '.join(relations)}"
    return None


def analyze_prisma_refs(plan_text: str, schema: PrismaSchema, schema_path: str = "") -> SchemaAnalysis:
    """Extract and classify Prisma references from plan code."""
    code = "\n".join(region.text for region in extract_code_regions(plan_text))
    client_names = detect_client_names(code)
    refs: list[SchemaRef] = []

    chain_re = re.compile(rf"\b({_client_alternation(client_names)})\.(\w+)\.(\w+)")
    for match in chain_re.finditer(code):
        client, accessor, method = match.groups()
        raw = f"{client}.{accessor}"
        if accessor in schema.accessor_to_model:
            refs.append(SchemaRef(raw, RefKind.MODEL, True, model_accessor=accessor))
        else:
            hit = suggest(accessor, schema.accessor_to_model)
            refs.append(
                SchemaRef(
                    raw,
                    RefKind.MODEL,
                    False,
                    model_accessor=accessor,
                    category=HallucinationCategory.MODEL,
                    suggestion=f"{client}.{hit}" if hit else None,
                )
            )
        method_valid = method in VALID_PRISMA_METHODS
        refs.append(
            SchemaRef(
                f".{method}",
                RefKind.METHOD,
                method_valid,
                model_accessor=accessor,
                method_name=method,
                category=None if method_valid else HallucinationCategory.INVALID_METHOD,
                suggestion=None if method_valid else suggest(method, VALID_PRISMA_METHODS),
            )
        )

    for match in _QUERY_BLOCK_RE.finditer(code):
        model = find_context_model(code, match.start(), schema, client_names)
        if model is None:
            continue
        for key in extract_top_level_keys(code, match.end()):
            if key in NON_FIELD_KEYS:
                continue
            if key in model.fields:
                refs.append(SchemaRef(key, RefKind.FIELD, True, model.accessor, key))
            else:
                refs.append(
                    SchemaRef(
                        key,
                        RefKind.FIELD,
                        False,
                        model.accessor,
                        key,
                        category=HallucinationCategory.FIELD,
                        suggestion=suggest(key, model.fields),
                    )
                )

    for match in _INCLUDE_BLOCK_RE.finditer(code):
        model = find_context_model(code, match.start(), schema, client_names)
        if model is None:
            continue
        for key in extract_top_level_keys(code, match.end()):
            if key == "_count":
                continue
            raw = f"include: {{ {key} }}"
            prisma_field = model.fields.get(key)
            if prisma_field is not None and prisma_field.is_relation:
                refs.append(SchemaRef(raw, RefKind.RELATION, True, model.accessor, key))
                continue
            hint = (
                f"{key} is not a relation field"
                if prisma_field is not None
                else _relation_suggestion(key, model)
            )
            refs.append(
                SchemaRef(
                    raw,
                    RefKind.RELATION,
                    False,
                    model.accessor,
                    key,
                    category=HallucinationCategory.WRONG_RELATION,
                    suggestion=hint,
                )
            )

    seen: set[tuple] = set()
    deduped: list[SchemaRef] = []
    for ref in refs:
        key = (ref.raw, ref.kind, ref.valid, ref.category)
        if key in seen:
            continue
        seen.add(key)
        deduped.append(ref)

    return SchemaAnalysis(refs=deduped, schema=schema, schema_path=schema_path)


def load_schema(project_dir: str, schema_path: Optional[str] = None) -> Optional[tuple[PrismaSchema, str]]:
    """Locate and parse the schema; None when absent or unparseable."""
    path = Path(schema_path) if schema_path else Path(project_dir) / DEFAULT_SCHEMA_PATH
    if not path.is_absolute() and schema_path:
        path = Path(project_dir) / path
    if not path.is_file():
        return None
    try:
        return parse_prisma_schema(path.read_text(encoding="utf-8")), str(path)
    except (OSError, UnicodeDecodeError, SchemaParseError) as exc:
        logger.warning("prisma_schema_parse_failed", path=str(path), error=str(exc))
        return None


class PrismaSchemaChecker(Checker):
    """Checks Prisma client usage against ``schema.prisma``."""

    id = "schema"
    display_name = "Prisma Schema"
    catch_key = "schema"

    def run(self, plan_text, project_dir, options=None) -> CheckerResult:
        loaded = load_schema(project_dir, (options or {}).get("schema_path"))
        if loaded is None:
            return CheckerResult.not_applicable(self.id)
        schema, path = loaded
        analysis = analyze_prisma_refs(plan_text, schema, path)
        return CheckerResult.from_hallucinations(
            self.id,
            len(analysis.refs),
            [r.to_hallucination() for r in analysis.hallucinations],
            analysis,
        )

    def format_for_combined_report(self, result, project_dir) -> list[str]:
        if not result.applicable:
            return []
        analysis: SchemaAnalysis = result.analysis
        schema = analysis.schema
        issues = analysis.hallucinations
        lines = [
            "## Prisma Schema",
            f"**{len(analysis.refs)}** refs — **{len(issues)}** hallucinated",
        ]
        for ref in issues:
            hint = f" → `{ref.suggestion}`" if ref.suggestion else ""
            lines.append(f"- `{ref.raw}` — {ref.category.value}{hint}")
            if ref.category == HallucinationCategory.MODEL:
                available = ", ".join(
                    f"`{accessor}` ({name})" for accessor, name in schema.accessor_to_model.items()
                )
                lines.append(f"  - Available models: {available}")
            elif ref.category == HallucinationCategory.FIELD and ref.model_accessor:
                model = schema.model_for_accessor(ref.model_accessor)
                if model:
                    lines.append(f"  - Fields on {model.name}: `{'`, `'.join(model.fields)}`")
        if not issues:
            lines.append("All schema refs valid.")
        lines.append("")
        enums = f" | Enums: {', '.join(schema.enums)}" if schema.enums else ""
        lines.append("**Schema:** " + ", ".join(f"`{m}`" for m in schema.models) + enums)
        lines.append("")
        return lines

    def format_for_findings_section(self, result) -> Optional[str]:
        if not result.applicable or not result.hallucinations:
            return None
        lines = [
            "### Schema Issues",
            "",
            f"Static analysis found {result.hallucinated} Prisma schema hallucination(s):",
            "",
        ]
        for h in result.hallucinations:
            hint = f" (did you mean `{h.suggestion}`?)" if h.suggestion else ""
            lines.append(f"- `{h.raw}` — {h.category.value}{hint}")
        return "\n".join(lines)
