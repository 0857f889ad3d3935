"""Core type definitions for plan verification.

This module defines the result envelope shared by every checker and the
hallucination categories each checker may emit.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class HallucinationCategory(str, Enum):
    """Closed taxonomy of hallucination labels across all checkers."""

    PATH = "hallucinated-path"
    MODEL = "hallucinated-model"
    FIELD = "hallucinated-field"
    INVALID_METHOD = "invalid-method"
    WRONG_RELATION = "wrong-relation"
    TABLE = "hallucinated-table"
    COLUMN = "hallucinated-column"
    FUNCTION = "hallucinated-function"
    PACKAGE_NOT_FOUND = "package-not-found"
    SUBPATH_NOT_EXPORTED = "subpath-not-exported"
    ENV = "hallucinated-env"
    ROUTE = "hallucinated-route"
    METHOD_NOT_ALLOWED = "method-not-allowed"
    EXPORT = "hallucinated-export"
    MEMBER_NOT_FOUND = "member-not-found"


@dataclass(frozen=True)
class Hallucination:
    """A single hallucinated reference found in plan text.

    Attributes:
        raw: The offending text as it appeared (or a normalized rendering)
        category: Checker-specific label
        suggestion: Closest valid identifier, if the matcher found one
    """

    raw: str
    category: HallucinationCategory
    suggestion: Optional[str] = None


@dataclass(frozen=True)
class CheckerResult:
    """Uniform result envelope returned by every checker's ``run``.

    ``analysis`` carries the checker's own analysis dataclass; only that
    checker's formatters read it.

    Attributes:
        checker_id: Id of the checker that produced the result
        checked: Number of references checked
        hallucinated: Number of hallucinated references
        hallucinations: Ordered hallucination records
        catch_items: Raw hallucinated strings for telemetry
        applicable: False when the ground-truth artifact is absent
        analysis: Checker-specific detail
    """

    checker_id: str
    checked: int
    hallucinated: int
    hallucinations: list[Hallucination] = field(default_factory=list)
    catch_items: list[str] = field(default_factory=list)
    applicable: bool = True
    analysis: Any = None

    def __post_init__(self) -> None:
        if len(self.hallucinations) != self.hallucinated:
            raise ValueError(
                f"{self.checker_id}: hallucinated={self.hallucinated} but "
                f"{len(self.hallucinations)} records"
            )
        if not self.applicable and (self.hallucinations or self.checked):
            raise ValueError(f"{self.checker_id}: inapplicable result must be empty")

    @classmethod
    def not_applicable(cls, checker_id: str, analysis: Any = None) -> "CheckerResult":
        """Build an empty result for a project lacking the ground truth."""
        return cls(
            checker_id=checker_id,
            checked=0,
            hallucinated=0,
            applicable=False,
            analysis=analysis,
        )

    @classmethod
    def from_hallucinations(
        cls,
        checker_id: str,
        checked: int,
        hallucinations: list[Hallucination],
        analysis: Any = None,
        applicable: bool = True,
    ) -> "CheckerResult":
        """Build a result whose counts are derived from ``hallucinations``."""
        if not applicable:
            return cls.not_applicable(checker_id, analysis)
        return cls(
            checker_id=checker_id,
            checked=checked,
            hallucinated=len(hallucinations),
            hallucinations=list(hallucinations),
            catch_items=[h.raw for h in hallucinations],
            applicable=True,
            analysis=analysis,
        )
