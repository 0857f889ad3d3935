"""Tests for token budget allocation."""

import pytest

from plan_verifier.context.budget import (
    BudgetItem,
    Priority,
    allocate,
    estimate_tokens,
    get_token_counter,
)
from plan_verifier.core.errors import ConfigError


def length_counter(text: str) -> int:
    return len(text)


def test_estimate_tokens_rounds_up():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


def test_greedy_skip_lets_smaller_items_fit():
    items = [
        BudgetItem("plan", "p" * 40, Priority.PLAN),
        BudgetItem("readme", "r" * 80, Priority.README),
        BudgetItem("tree", "t" * 50, Priority.TREE),
    ]

    result = allocate(items, 100, length_counter)

    assert list(result.selected) == ["plan", "tree"]
    assert result.skipped == ["readme"]
    assert result.used == 90
    assert result.token_stats == {"plan": 40, "tree": 50}


def test_budget_example_keeps_only_prompt():
    items = [
        BudgetItem("prompt", "q" * 50, Priority.PROMPT),
        BudgetItem("plan", "p" * 100, Priority.PLAN),
        BudgetItem("tree", "t" * 80, Priority.TREE),
    ]

    result = allocate(items, 120, length_counter)

    assert list(result.selected) == ["prompt"]
    assert result.skipped == ["plan", "tree"]
    assert result.used == 50


def test_priority_order_is_stable():
    items = [
        BudgetItem("tree", "t", Priority.TREE),
        BudgetItem("file:b.ts", "b", Priority.REFERENCED_FILES),
        BudgetItem("file:a.ts", "a", Priority.REFERENCED_FILES),
        BudgetItem("prompt", "q", Priority.PROMPT),
    ]

    result = allocate(items, 10, length_counter)

    assert list(result.selected) == ["prompt", "file:b.ts", "file:a.ts", "tree"]


def test_items_are_never_truncated():
    result = allocate([BudgetItem("plan", "x" * 11, Priority.PLAN)], 10, length_counter)

    assert result.selected == {}
    assert result.skipped == ["plan"]
    assert result.used == 0


def test_get_token_counter():
    assert get_token_counter("estimate") is estimate_tokens

    with pytest.raises(ConfigError) as exc_info:
        get_token_counter("words")

    assert exc_info.value.details == {"variable": "PLAN_VERIFIER_TOKEN_COUNTER"}
