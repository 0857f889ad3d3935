"""Checker contract and the process-wide checker registry.

Every checker implements the ``Checker`` interface. The default registry is
populated once, in a fixed order, and frozen; that order defines section
order in combined reports.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Optional

import structlog

from ..core.errors import CheckerNotFoundError, DuplicateCheckerError, RegistryFrozenError
from .types import CheckerResult

logger = structlog.get_logger(__name__)


class Checker(ABC):
    """Abstract base class for plan checkers.

    Subclasses set the class attributes and implement ``run`` plus the two
    rendering operations.
    """

    id: str = ""
    display_name: str = ""
    catch_key: str = ""
    experimental: bool = False

    @abstractmethod
    def run(
        self,
        plan_text: str,
        project_dir: str,
        options: Optional[dict[str, str]] = None,
    ) -> CheckerResult:
        """Check plan text against the project's ground truth.

        Args:
            plan_text: Raw plan text (markdown, pseudocode, prose)
            project_dir: Root directory of the target project
            options: Checker-specific overrides (e.g. ``schema_path``)

        Returns:
            CheckerResult for this checker
        """
        pass

    @abstractmethod
    def format_for_combined_report(self, result: CheckerResult, project_dir: str) -> list[str]:
        """Render a verbose, heading-delimited report section.

        Returns an empty list when the result is not applicable.
        """
        pass

    @abstractmethod
    def format_for_findings_section(self, result: CheckerResult) -> Optional[str]:
        """Render compact findings for reviewer context, or None if clean."""
        pass

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id!r}>"


class CheckerRegistry:
    """Ordered, append-only collection of checkers."""

    def __init__(self, checkers: Optional[Iterable[Checker]] = None) -> None:
        self._checkers: list[Checker] = []
        self._by_id: dict[str, Checker] = {}
        self._frozen = False
        for checker in checkers or []:
            self.register(checker)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, checker: Checker) -> None:
        """Append a checker.

        Raises:
            DuplicateCheckerError: If the id is already registered
            RegistryFrozenError: If the registry has been frozen
        """
        if self._frozen:
            raise RegistryFrozenError(checker.id)
        if checker.id in self._by_id:
            raise DuplicateCheckerError(checker.id)
        self._checkers.append(checker)
        self._by_id[checker.id] = checker

    def freeze(self) -> None:
        """Reject further registrations."""
        self._frozen = True

    def list(self, include_experimental: bool = False) -> list[Checker]:
        """Return checkers in registration order."""
        return [c for c in self._checkers if include_experimental or not c.experimental]

    def get(self, checker_id: str) -> Optional[Checker]:
        """Return the checker with ``checker_id`` or None."""
        return self._by_id.get(checker_id)

    def require(self, checker_id: str) -> Checker:
        """Return the checker with ``checker_id``.

        Raises:
            CheckerNotFoundError: If no such checker is registered
        """
        checker = self._by_id.get(checker_id)
        if checker is None:
            raise CheckerNotFoundError(checker_id)
        return checker

    def __len__(self) -> int:
        return len(self._checkers)

    def __contains__(self, checker_id: object) -> bool:
        return checker_id in self._by_id


_default_registry: Optional[CheckerRegistry] = None


def get_registry() -> CheckerRegistry:
    """Get or create the process-wide registry (built-in checkers, frozen)."""
    global _default_registry
    if _default_registry is None:
        from .checkers import register_builtin_checkers

        registry = CheckerRegistry()
        register_builtin_checkers(registry)
        registry.freeze()
        _default_registry = registry
        logger.debug("checker_registry_initialized", checkers=[c.id for c in registry.list(True)])
    return _default_registry


def run_checkers(
    plan_text: str,
    project_dir: str,
    options: Optional[dict[str, str]] = None,
    include_experimental: bool = False,
    registry: Optional[CheckerRegistry] = None,
) -> list[tuple[Checker, CheckerResult]]:
    """Run every registered checker in order.

    A checker that raises is logged and reported as not applicable.

    Args:
        plan_text: Plan text to verify
        project_dir: Target project root
        options: Checker options forwarded to every checker
        include_experimental: Also run experimental checkers
        registry: Registry to use (defaults to the process-wide one)

    Returns:
        List of (checker, result) pairs in registration order
    """
    if registry is None:
        registry = get_registry()
    pairs: list[tuple[Checker, CheckerResult]] = []
    for checker in registry.list(include_experimental):
        try:
            result = checker.run(plan_text, project_dir, options)
        except Exception as exc:
            logger.warning("checker_failed", checker=checker.id, error=str(exc))
            result = CheckerResult.not_applicable(checker.id)
        pairs.append((checker, result))
        logger.debug(
            "checker_completed",
            checker=checker.id,
            applicable=result.applicable,
            checked=result.checked,
            hallucinated=result.hallucinated,
        )
    return pairs
