"""Reviewer context assembly."""

from .budget import BudgetItem, BudgetResult, Priority, allocate, count_tokens_tiktoken, estimate_tokens
from .builder import ProjectContext, build_context

__all__ = [
    "BudgetItem",
    "BudgetResult",
    "Priority",
    "allocate",
    "count_tokens_tiktoken",
    "estimate_tokens",
    "ProjectContext",
    "build_context",
]
