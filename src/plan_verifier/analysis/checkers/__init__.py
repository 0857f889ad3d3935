"""Built-in plan checkers.

Registration order defines report section order.
"""

from .env import EnvChecker
from .express_routes import ExpressRoutesChecker
from .imports import ImportsChecker
from .nextjs_routes import NextjsRoutesChecker
from .package_api import PackageApiChecker
from .paths import PathChecker
from .prisma_schema import PrismaSchemaChecker
from .sql_schema import SqlSchemaChecker
from .supabase_schema import SupabaseSchemaChecker

BUILTIN_CHECKERS = (
    PathChecker,
    PrismaSchemaChecker,
    SqlSchemaChecker,
    ImportsChecker,
    EnvChecker,
    NextjsRoutesChecker,
    SupabaseSchemaChecker,
    ExpressRoutesChecker,
    PackageApiChecker,
)


def register_builtin_checkers(registry) -> None:
    """Register one instance of each built-in checker, in report order."""
    for checker_cls in BUILTIN_CHECKERS:
        registry.register(checker_cls())


__all__ = [
    "BUILTIN_CHECKERS",
    "register_builtin_checkers",
    "EnvChecker",
    "ExpressRoutesChecker",
    "ImportsChecker",
    "NextjsRoutesChecker",
    "PackageApiChecker",
    "PathChecker",
    "PrismaSchemaChecker",
    "SqlSchemaChecker",
    "SupabaseSchemaChecker",
]
