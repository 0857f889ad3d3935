"""Assemble project context for the plan reviewer within a token budget."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import structlog

from ..analysis.indexing import generate_tree, read_referenced_files
from .budget import BudgetItem, Priority, TokenCounter, allocate, estimate_tokens

logger = structlog.get_logger(__name__)

FILE_KEY_PREFIX = "file:"


@dataclass
class ProjectContext:
    """Context handed to the reviewer.

    Attributes:
        plan_text: Plan under review
        tree: Rendered project tree
        prompt: Original user request, if provided and within budget
        readme: README.md content, if present and within budget
        claude_md: CLAUDE.md content, if present and within budget
        session_feedback: Prior review feedback, if any
        referenced_files: Path -> content for referenced files that fit
        token_stats: Key -> tokens for every selected item
        skipped: Keys dropped for lack of budget
    """

    plan_text: str
    tree: str
    prompt: Optional[str] = None
    readme: Optional[str] = None
    claude_md: Optional[str] = None
    session_feedback: Optional[str] = None
    referenced_files: dict[str, str] = field(default_factory=dict)
    token_stats: dict[str, int] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)

    @property
    def total_tokens(self) -> int:
        return sum(self.token_stats.values())


def _read_optional(path: Path) -> Optional[str]:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None


def build_context(
    plan_text: str,
    project_dir: str,
    token_budget: int,
    prompt: Optional[str] = None,
    session_feedback: Optional[str] = None,
    count_tokens: TokenCounter = estimate_tokens,
) -> ProjectContext:
    """Read project docs, tree and referenced files, then fit them to the budget.

    The plan and tree are always present in the result even when they
    exceed the budget; every other item appears only if it was selected.
    """
    root = Path(project_dir)
    readme = _read_optional(root / "README.md")
    claude_md = _read_optional(root / "CLAUDE.md")
    if readme is None:
        logger.warning("readme_missing", project_dir=project_dir)

    tree = generate_tree(project_dir)
    referenced = read_referenced_files(plan_text, project_dir)

    items: list[BudgetItem] = []
    if prompt:
        items.append(BudgetItem("prompt", prompt, Priority.PROMPT))
    items.append(BudgetItem("plan", plan_text, Priority.PLAN))
    if readme:
        items.append(BudgetItem("readme", readme, Priority.README))
    if claude_md:
        items.append(BudgetItem("claudeMd", claude_md, Priority.CLAUDE_MD))
    if session_feedback:
        items.append(BudgetItem("sessionFeedback", session_feedback, Priority.SESSION_FEEDBACK))
    for path, content in referenced.items():
        items.append(BudgetItem(f"{FILE_KEY_PREFIX}{path}", content, Priority.REFERENCED_FILES))
    items.append(BudgetItem("tree", tree, Priority.TREE))

    allocation = allocate(items, token_budget, count_tokens)
    selected = allocation.selected

    context = ProjectContext(
        plan_text=selected.get("plan", plan_text),
        tree=selected.get("tree", tree),
        prompt=selected.get("prompt"),
        readme=selected.get("readme"),
        claude_md=selected.get("claudeMd"),
        session_feedback=selected.get("sessionFeedback"),
        referenced_files={
            key[len(FILE_KEY_PREFIX):]: content
            for key, content in selected.items()
            if key.startswith(FILE_KEY_PREFIX)
        },
        token_stats=allocation.token_stats,
        skipped=allocation.skipped,
    )
    logger.debug(
        "context_built",
        tokens=context.total_tokens,
        referenced_files=len(context.referenced_files),
        skipped=len(context.skipped),
    )
    return context
