"""Package API checker (experimental).

Resolves the type declarations of each imported package and checks named
imports and ``binding.member`` accesses against the exported surface.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import structlog

from ..extraction import extract_code_regions
from ..matcher import suggest
from ..registry import Checker
from ..types import CheckerResult, Hallucination, HallucinationCategory
from .imports import parse_package_name, should_skip

logger = structlog.get_logger(__name__)

MAX_REEXPORT_DEPTH = 3
MAX_LISTED_EXPORTS = 20
DTS_EXTENSIONS = (".d.ts", ".d.cts", ".d.mts")

# Members present on every value
UNIVERSAL_MEMBERS = frozenset(
    {
        "toString", "valueOf", "constructor", "then", "catch", "finally",
        "message", "data", "name", "length", "prototype", "apply", "call",
        "bind", "hasOwnProperty", "isPrototypeOf", "propertyIsEnumerable",
        "toLocaleString",
    }
)

KEYWORDS = frozenset(
    {
        "if", "else", "for", "while", "do", "switch", "case", "break",
        "continue", "return", "throw", "try", "catch", "finally", "new",
        "delete", "typeof", "void", "in", "of", "instanceof", "yield",
        "await", "import", "export", "default", "const", "let", "var",
        "function", "class", "extends", "super", "this", "constructor",
    }
)

_DECL_KINDS = r"(?:function|const|let|var|class|abstract\s+class|interface|type|enum|namespace)"
_EXPORT_DECL_RE = re.compile(rf"^export\s+(?:declare\s+)?{_DECL_KINDS}\s+(\w+)", re.MULTILINE)
_EXPORT_LIST_RE = re.compile(r"^export\s*\{([^}]+)\}", re.MULTILINE)
_STAR_REEXPORT_RE = re.compile(r"^export\s+\*\s+from\s+['\"]([^'\"]+)['\"]", re.MULTILINE)
_STAR_AS_RE = re.compile(r"^export\s+\*\s+as\s+(\w+)\s+from\s+['\"]([^'\"]+)['\"]", re.MULTILINE)
_INTERFACE_RE = re.compile(
    r"^(?:export\s+(?:declare\s+)?)?interface\s+(\w+)(?:\s+extends\s+[\w\s,<>]+)?\s*\{([\s\S]*?)^\}",
    re.MULTILINE,
)
_CLASS_RE = re.compile(
    r"^(?:export\s+(?:declare\s+)?)?(?:abstract\s+)?class\s+(\w+)(?:\s+(?:extends|implements)[\s\S]*?)?\s*\{([\s\S]*?)^\}",
    re.MULTILINE,
)
_AS_RE = re.compile(r"^(\w+)\s+as\s+(\w+)$")
_IDENT_RE = re.compile(r"^\w+$")
_OBJECT_METHOD_RE = re.compile(r"^(\w+)\??\s*[(<]")
_OBJECT_PROP_RE = re.compile(r"^(?:readonly\s+)?(\w+)\??\s*:")
_MODIFIERS = r"(?:(?:public|private|protected|static|abstract|async|override|readonly)\s+)*"
_CLASS_METHOD_RE = re.compile(rf"^{_MODIFIERS}(\w+)\??\s*[(<]")
_CLASS_PROP_RE = re.compile(rf"^{_MODIFIERS}(\w+)\??\s*[:=]")

_ESM_IMPORT_RE = re.compile(r"import\s+([\s\S]*?)\s+from\s+['\"]([^'\"]+)['\"]")
_CJS_REQUIRE_RE = re.compile(r"(?:const|let|var)\s+([\w{}\s,:*]+?)\s*=\s*require\s*\(\s*['\"]([^'\"]+)['\"]\s*\)")
_NAMESPACE_RE = re.compile(r"^\*\s+as\s+(\w+)$")
_DEFAULT_AND_NAMED_RE = re.compile(r"^(\w+)\s*,\s*\{([\s\S]*)\}$")
_DEFAULT_AND_NAMESPACE_RE = re.compile(r"^(\w+)\s*,\s*\*\s+as\s+(\w+)$")
_NAMED_RE = re.compile(r"^\{([\s\S]*)\}$")
_MEMBER_ACCESS_RE = re.compile(r"\b(\w+)\.(\w+)\b")


@dataclass(frozen=True)
class ImportBinding:
    """A local name bound by an import.

    Attributes:
        local_name: Name used in the plan's code
        package_name: Package it was imported from
        kind: ``default``, ``namespace`` or ``named``
        original_name: Exported name for aliased named imports
    """

    local_name: str
    package_name: str
    kind: str
    original_name: Optional[str] = None

    @property
    def export_name(self) -> str:
        return self.original_name or self.local_name


@dataclass
class PackageApi:
    exports: dict[str, None] = field(default_factory=dict)
    members: dict[str, dict[str, str]] = field(default_factory=dict)


def _code_text(plan_text: str) -> str:
    return "\n".join(r.text for r in extract_code_regions(plan_text, include_inline=False))


def _named_specifiers(inner: str, package_name: str) -> list[ImportBinding]:
    bindings = []
    for part in (p.strip() for p in inner.split(",")):
        if not part or part.startswith("type "):
            continue
        aliased = _AS_RE.match(part)
        if aliased:
            bindings.append(ImportBinding(aliased.group(2), package_name, "named", aliased.group(1)))
        elif _IDENT_RE.match(part):
            bindings.append(ImportBinding(part, package_name, "named"))
    return bindings


def _esm_specifiers(specifiers: str, package_name: str) -> list[ImportBinding]:
    match = _NAMESPACE_RE.match(specifiers)
    if match:
        return [ImportBinding(match.group(1), package_name, "namespace")]
    match = _DEFAULT_AND_NAMED_RE.match(specifiers)
    if match:
        return [ImportBinding(match.group(1), package_name, "default")] + _named_specifiers(
            match.group(2), package_name
        )
    match = _DEFAULT_AND_NAMESPACE_RE.match(specifiers)
    if match:
        return [
            ImportBinding(match.group(1), package_name, "default"),
            ImportBinding(match.group(2), package_name, "namespace"),
        ]
    match = _NAMED_RE.match(specifiers)
    if match:
        return _named_specifiers(match.group(1), package_name)
    if not specifiers.startswith("type ") and _IDENT_RE.match(specifiers):
        return [ImportBinding(specifiers, package_name, "default")]
    return []


def extract_import_bindings(plan_text: str) -> list[ImportBinding]:
    """Bindings created by ESM imports and CJS requires in fenced code."""
    code = _code_text(plan_text)
    found: list[ImportBinding] = []

    for match in _ESM_IMPORT_RE.finditer(code):
        if should_skip(match.group(2)):
            continue
        package_name, _ = parse_package_name(match.group(2))
        found.extend(_esm_specifiers(match.group(1).strip(), package_name))

    for match in _CJS_REQUIRE_RE.finditer(code):
        if should_skip(match.group(2)):
            continue
        package_name, _ = parse_package_name(match.group(2))
        binding = match.group(1).strip()
        if not binding.startswith("{"):
            found.append(ImportBinding(binding, package_name, "default"))
            continue
        for part in (p.strip() for p in binding[1:binding.rfind("}")].split(",")):
            if not part:
                continue
            original, sep, local = part.partition(":")
            if sep:
                found.append(ImportBinding(local.strip(), package_name, "named", original.strip()))
            else:
                found.append(ImportBinding(part, package_name, "named"))

    seen: set[tuple[str, str, str]] = set()
    bindings = []
    for b in found:
        key = (b.local_name, b.package_name, b.kind)
        if key not in seen:
            seen.add(key)
            bindings.append(b)
    return bindings


def _existing(path: Path) -> Optional[Path]:
    return path if path.is_file() else None


def _types_from_condition(entry, package_dir: Path) -> Optional[Path]:
    if isinstance(entry, str):
        return _existing(package_dir / entry) if entry.endswith(DTS_EXTENSIONS) else None
    if not isinstance(entry, dict):
        return None
    if isinstance(entry.get("types"), str):
        found = _existing(package_dir / entry["types"])
        if found:
            return found
    for key, value in entry.items():
        if key != "types" and isinstance(value, dict):
            found = _types_from_condition(value, package_dir)
            if found:
                return found
    return None


def _dts_for(path: Path) -> Optional[Path]:
    base = re.sub(r"\.(js|cjs|mjs|ts|cts|mts)$", "", str(path))
    for ext in DTS_EXTENSIONS:
        if Path(base + ext).is_file():
            return Path(base + ext)
    return None


def resolve_types_entrypoint(package_dir: Path) -> Optional[Path]:
    """Locate a package's root declaration file.

    Tries ``exports`` conditions, ``types``/``typings``, ``main`` with a
    ``.d.ts`` sibling, ``index.d.ts``, then ``@types/<pkg>``.
    """
    try:
        pkg = json.loads((package_dir / "package.json").read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None

    exports = pkg.get("exports")
    if isinstance(exports, dict):
        found = _types_from_condition(exports.get(".", exports), package_dir)
        if found:
            return found
    for key in ("types", "typings"):
        if isinstance(pkg.get(key), str):
            found = _existing(package_dir / pkg[key])
            if found:
                return found
    if isinstance(pkg.get("main"), str):
        found = _dts_for(package_dir / pkg["main"])
        if found:
            return found
    for name in ("index.d.ts", "index.d.cts", "index.d.mts"):
        found = _existing(package_dir / name)
        if found:
            return found

    scoped = package_dir.parent.name.startswith("@")
    node_modules = package_dir.parent.parent if scoped else package_dir.parent
    types_name = f"{package_dir.parent.name}__{package_dir.name}" if scoped else package_dir.name
    at_types = node_modules / "@types" / types_name
    if at_types.is_dir() and at_types != package_dir:
        return resolve_types_entrypoint(at_types)
    return None


def parse_object_members(body: str) -> dict[str, str]:
    members: dict[str, str] = {}
    for line in body.splitlines():
        line = line.strip()
        if not line or line.startswith(("//", "/*")):
            continue
        method = _OBJECT_METHOD_RE.match(line)
        if method and method.group(1) not in KEYWORDS:
            members[method.group(1)] = "method"
            continue
        prop = _OBJECT_PROP_RE.match(line)
        if prop:
            members[prop.group(1)] = "property"
    return members


def parse_class_members(body: str) -> dict[str, str]:
    members: dict[str, str] = {}
    for line in body.splitlines():
        line = line.strip()
        if not line or line.startswith(("//", "/*")):
            continue
        method = _CLASS_METHOD_RE.match(line)
        if method and method.group(1) not in KEYWORDS:
            members[method.group(1)] = "method"
            continue
        prop = _CLASS_PROP_RE.match(line)
        if prop and prop.group(1) not in KEYWORDS:
            members[prop.group(1)] = "property"
    return members


def _find_node_modules(start: Path) -> Optional[Path]:
    for directory in (start, *start.parents):
        if (directory / "node_modules").is_dir():
            return directory / "node_modules"
    return None


def _resolve_reexport(specifier: str, current_file: Path, package_dir: Path) -> Optional[Path]:
    if specifier.startswith("."):
        base = re.sub(r"\.(js|cjs|mjs)$", "", str(current_file.parent / specifier))
        for candidate in [base + ext for ext in DTS_EXTENSIONS] + [
            str(Path(base) / f"index{ext}") for ext in DTS_EXTENSIONS
        ]:
            if Path(candidate).is_file():
                return Path(candidate)
        return None
    node_modules = _find_node_modules(package_dir)
    if node_modules is None:
        return None
    dep_dir = node_modules / parse_package_name(specifier)[0]
    return resolve_types_entrypoint(dep_dir) if dep_dir.is_dir() else None


def parse_exported_api(content: str, dts_path: Path, package_dir: Path, depth: int = 0) -> PackageApi:
    """Exported names and class/interface members of a declaration file.

    ``export * from`` re-exports are followed up to three levels deep.
    """
    api = PackageApi()
    for match in _EXPORT_DECL_RE.finditer(content):
        api.exports[match.group(1)] = None
    for match in _EXPORT_LIST_RE.finditer(content):
        for part in (p.strip() for p in match.group(1).split(",")):
            if not part or part.startswith("type "):
                continue
            aliased = _AS_RE.match(part)
            if aliased:
                api.exports[aliased.group(2)] = None
            elif _IDENT_RE.match(part):
                api.exports[part] = None

    if depth < MAX_REEXPORT_DEPTH:
        for match in _STAR_REEXPORT_RE.finditer(content):
            target = _resolve_reexport(match.group(1), dts_path, package_dir)
            if target is None:
                continue
            try:
                sub = parse_exported_api(target.read_text(encoding="utf-8"), target, package_dir, depth + 1)
            except (OSError, UnicodeDecodeError) as exc:
                logger.debug("reexport_unreadable", path=str(target), error=str(exc))
                continue
            api.exports.update(sub.exports)
            api.members.update(sub.members)
        for match in _STAR_AS_RE.finditer(content):
            api.exports[match.group(1)] = None

    for match in _INTERFACE_RE.finditer(content):
        if match.group(1) in api.exports:
            api.members[match.group(1)] = parse_object_members(match.group(2))
    for match in _CLASS_RE.finditer(content):
        if match.group(1) in api.exports:
            api.members[match.group(1)] = parse_class_members(match.group(2))
    return api


def load_package_api(package_dir: Path) -> Optional[PackageApi]:
    entrypoint = resolve_types_entrypoint(package_dir)
    if entrypoint is None:
        return None
    try:
        return parse_exported_api(entrypoint.read_text(encoding="utf-8"), entrypoint, package_dir)
    except (OSError, UnicodeDecodeError) as exc:
        logger.debug("types_entrypoint_unreadable", path=str(entrypoint), error=str(exc))
        return None


def extract_member_refs(plan_text: str, bindings: list[ImportBinding]) -> list[tuple[str, str]]:
    """Unique ``(binding, member)`` accesses on imported bindings in fenced code."""
    names = {b.local_name for b in bindings}
    refs: list[tuple[str, str]] = []
    for match in _MEMBER_ACCESS_RE.finditer(_code_text(plan_text)):
        ref = (match.group(1), match.group(2))
        if ref[0] in names and ref[1] not in UNIVERSAL_MEMBERS and ref not in refs:
            refs.append(ref)
    return refs


@dataclass(frozen=True)
class ApiHallucination:
    hallucination: Hallucination
    package_name: str
    available_exports: Optional[str] = None


@dataclass(frozen=True)
class PackageApiAnalysis:
    total_bindings: int
    checked_bindings: int
    checked_members: int
    hallucinations: list[ApiHallucination] = field(default_factory=list)
    applicable: bool = False


def analyze_package_api(plan_text: str, project_dir: str) -> PackageApiAnalysis:
    node_modules = Path(project_dir) / "node_modules"
    if not node_modules.is_dir():
        return PackageApiAnalysis(0, 0, 0)
    bindings = extract_import_bindings(plan_text)
    if not bindings:
        return PackageApiAnalysis(0, 0, 0)

    apis: dict[str, PackageApi] = {}
    for package_name in dict.fromkeys(b.package_name for b in bindings):
        package_dir = node_modules / package_name
        if package_dir.is_dir():
            api = load_package_api(package_dir)
            if api is not None:
                apis[package_name] = api

    def listing(api: PackageApi) -> str:
        return ", ".join(list(api.exports)[:MAX_LISTED_EXPORTS])

    hallucinations: list[ApiHallucination] = []
    checked_bindings = 0
    for binding in bindings:
        api = apis.get(binding.package_name)
        if api is None or binding.kind != "named":
            continue
        checked_bindings += 1
        if binding.export_name not in api.exports:
            hallucinations.append(
                ApiHallucination(
                    Hallucination(
                        f"import {{ {binding.export_name} }} from '{binding.package_name}'",
                        HallucinationCategory.EXPORT,
                        suggest(binding.export_name, api.exports),
                    ),
                    binding.package_name,
                    listing(api),
                )
            )

    checked_members = 0
    for local_name, member in extract_member_refs(plan_text, bindings):
        binding = next(b for b in bindings if b.local_name == local_name)
        api = apis.get(binding.package_name)
        if api is None:
            continue
        checked_members += 1
        raw = f"{local_name}.{member}"
        if binding.kind in ("namespace", "default"):
            if member in api.exports or any(member in m for m in api.members.values()):
                continue
            hallucinations.append(
                ApiHallucination(
                    Hallucination(raw, HallucinationCategory.MEMBER_NOT_FOUND, suggest(member, api.exports)),
                    binding.package_name,
                    listing(api),
                )
            )
            continue
        # Members of functions and types are not tracked
        members = api.members.get(binding.export_name)
        if members is not None and member not in members:
            hallucinations.append(
                ApiHallucination(
                    Hallucination(raw, HallucinationCategory.MEMBER_NOT_FOUND, suggest(member, members)),
                    binding.package_name,
                )
            )

    return PackageApiAnalysis(
        total_bindings=len(bindings),
        checked_bindings=checked_bindings,
        checked_members=checked_members,
        hallucinations=hallucinations,
        applicable=bool(apis),
    )


def _describe(h: Hallucination) -> str:
    what = "not exported" if h.category == HallucinationCategory.EXPORT else "member not found"
    hint = f" (did you mean `{h.suggestion}`?)" if h.suggestion else ""
    return f"- `{h.raw}` — {what}{hint}"


class PackageApiChecker(Checker):
    """Checks named imports and member accesses against package type declarations."""

    id = "packageApi"
    display_name = "Package API"
    catch_key = "packageApi"
    experimental = True

    def run(self, plan_text, project_dir, options=None) -> CheckerResult:
        analysis = analyze_package_api(plan_text, project_dir)
        return CheckerResult.from_hallucinations(
            self.id,
            analysis.checked_bindings + analysis.checked_members,
            [h.hallucination for h in analysis.hallucinations],
            analysis,
            applicable=analysis.applicable,
        )

    def format_for_combined_report(self, result, project_dir) -> list[str]:
        if not result.applicable:
            return []
        analysis: PackageApiAnalysis = result.analysis
        lines = [
            "## Package API",
            f"**{analysis.checked_bindings}** named imports, **{analysis.checked_members}** member "
            f"accesses checked — **{len(analysis.hallucinations)}** hallucinated",
        ]
        for entry in analysis.hallucinations:
            lines.append(_describe(entry.hallucination))
            if entry.available_exports:
                lines.append(f"  - Available exports: {entry.available_exports}")
        if not analysis.hallucinations:
            lines.append("All package API refs valid.")
        lines.append("")
        return lines

    def format_for_findings_section(self, result) -> Optional[str]:
        if not result.applicable or not result.hallucinations:
            return None
        lines = [
            "### Package API Issues",
            "",
            f"Static analysis found {result.hallucinated} package API hallucination(s):",
            "",
        ]
        lines.extend(_describe(h) for h in result.hallucinations)
        return "\n".join(lines)
