"""Priority-ordered token budget allocation for reviewer context."""

import math
from dataclasses import dataclass, field
from typing import Callable, Optional

import structlog
import tiktoken

from ..core.errors import ConfigError

logger = structlog.get_logger(__name__)

TIKTOKEN_ENCODING = "cl100k_base"


class Priority:
    """Context item priorities. Lower values are included first."""

    PROMPT = 0
    PLAN = 1
    README = 2
    CLAUDE_MD = 3
    SESSION_FEEDBACK = 4
    REFERENCED_FILES = 5
    TREE = 6


TokenCounter = Callable[[str], int]


@dataclass(frozen=True)
class BudgetItem:
    key: str
    content: str
    priority: int


@dataclass
class BudgetResult:
    """Outcome of an allocation.

    Attributes:
        selected: Selected key -> content, in priority order
        skipped: Keys that did not fit
        token_stats: Selected key -> token cost
        used: Total tokens consumed
    """

    selected: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
    token_stats: dict[str, int] = field(default_factory=dict)
    used: int = 0


def estimate_tokens(text: str) -> int:
    """Approximate token count (four characters per token, rounded up)."""
    return math.ceil(len(text) / 4)


# Lazy-loaded tiktoken encoder
_tiktoken_encoder: Optional[tiktoken.Encoding] = None


def _get_encoder() -> tiktoken.Encoding:
    """Get or create the tiktoken encoder (singleton pattern)."""
    global _tiktoken_encoder
    if _tiktoken_encoder is None:
        _tiktoken_encoder = tiktoken.get_encoding(TIKTOKEN_ENCODING)
    return _tiktoken_encoder


def count_tokens_tiktoken(text: str) -> int:
    """Exact token count using the cl100k_base encoding."""
    return len(_get_encoder().encode(text))


TOKEN_COUNTERS: dict[str, TokenCounter] = {
    "estimate": estimate_tokens,
    "tiktoken": count_tokens_tiktoken,
}


def get_token_counter(name: str) -> TokenCounter:
    """Look up a token counter by its configured name."""
    try:
        return TOKEN_COUNTERS[name]
    except KeyError:
        raise ConfigError(
            f"Unknown token counter '{name}' (expected one of: {', '.join(TOKEN_COUNTERS)})",
            variable="PLAN_VERIFIER_TOKEN_COUNTER",
        ) from None


def allocate(
    items: list[BudgetItem],
    budget: int,
    count_tokens: TokenCounter = estimate_tokens,
) -> BudgetResult:
    """Greedily select items by priority within a token budget.

    Items are visited in priority order (stable for equal priorities). An
    item is selected if its cost fits the remaining budget, otherwise it is
    skipped for good; smaller later items may still be selected. Items are
    never truncated.

    Args:
        items: Candidate context items
        budget: Total token budget
        count_tokens: Token counting function

    Returns:
        BudgetResult with selected and skipped keys
    """
    result = BudgetResult()
    remaining = budget

    for item in sorted(items, key=lambda i: i.priority):
        cost = count_tokens(item.content)
        if cost <= remaining:
            result.selected[item.key] = item.content
            result.token_stats[item.key] = cost
            remaining -= cost
        else:
            result.skipped.append(item.key)

    result.used = budget - remaining
    if result.skipped:
        logger.info("context_items_skipped", skipped=result.skipped, budget=budget, used=result.used)
    return result
