"""Project file tree scanning for path ground truth."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from ...config import STATE_DIR_NAME

logger = structlog.get_logger(__name__)

DEFAULT_IGNORES = frozenset(
    {
        "node_modules",
        ".git",
        "dist",
        "build",
        STATE_DIR_NAME,
        "__pycache__",
        ".next",
        ".venv",
        "venv",
    }
)


@dataclass
class _TreeNode:
    name: str
    is_dir: bool
    children: list["_TreeNode"] = field(default_factory=list)


class ProjectScanner:
    """Walk a project honoring ``.gitignore`` and the built-in ignore set."""

    def __init__(self, project_dir: str | Path) -> None:
        self.project_dir = Path(project_dir)
        self._root = self.project_dir.resolve()
        self._gitignore_matcher = None

        gitignore_path = self.project_dir / ".gitignore"
        if gitignore_path.exists():
            try:
                from gitignore_parser import parse_gitignore

                self._gitignore_matcher = parse_gitignore(
                    str(gitignore_path), base_dir=str(self._root)
                )
            except Exception as exc:
                logger.warning("gitignore_parse_failed", error=str(exc), path=str(gitignore_path))

    def _should_ignore(self, path: Path) -> bool:
        if path.name in DEFAULT_IGNORES:
            return True
        if self._gitignore_matcher and self._gitignore_matcher(str(path)):
            return True
        return False

    def _entries(self, directory: Path) -> list[os.DirEntry]:
        try:
            with os.scandir(directory) as it:
                entries = list(it)
        except OSError:
            return []
        return sorted(entries, key=lambda e: e.name)

    def all_files(self, max_depth: int = 6) -> list[str]:
        """Return relative POSIX paths of every non-ignored file.

        Directories deeper than ``max_depth`` levels below the root are not
        descended into. Order is a sorted depth-first walk.
        """
        files: list[str] = []

        def walk(directory: Path, depth: int) -> None:
            if depth > max_depth:
                return
            for entry in self._entries(directory):
                path = directory / entry.name
                if self._should_ignore(path):
                    continue
                if entry.is_dir():
                    walk(path, depth + 1)
                else:
                    files.append(path.relative_to(self._root).as_posix())

        walk(self._root, 0)
        return files

    def _build(self, directory: Path, depth: int, max_depth: int) -> list[_TreeNode]:
        if depth > max_depth:
            return []
        nodes: list[_TreeNode] = []
        for entry in self._entries(directory):
            path = directory / entry.name
            if self._should_ignore(path):
                continue
            node = _TreeNode(entry.name, entry.is_dir())
            if node.is_dir:
                node.children = self._build(path, depth + 1, max_depth)
            nodes.append(node)
        return nodes

    def render_tree(self, max_depth: int = 4) -> str:
        """Render an ASCII tree rooted at the project directory name."""
        lines = [f"{self._root.name}/"]
        _render(self._build(self._root, 0, max_depth), "", lines)
        return "\n".join(lines)


def _render(nodes: list[_TreeNode], prefix: str, lines: list[str]) -> None:
    for i, node in enumerate(nodes):
        last = i == len(nodes) - 1
        display = f"{node.name}/" if node.is_dir else node.name
        lines.append(prefix + ("└── " if last else "├── ") + display)
        if node.children:
            _render(node.children, prefix + ("    " if last else "│   "), lines)


def get_all_files(project_dir: str | Path, max_depth: int = 6) -> list[str]:
    """Relative POSIX paths of all project files (see ProjectScanner.all_files)."""
    return ProjectScanner(project_dir).all_files(max_depth)


def generate_tree(project_dir: str | Path, max_depth: int = 4) -> str:
    """Gitignore-aware directory tree string for reviewer context."""
    return ProjectScanner(project_dir).render_tree(max_depth)


def file_exists(path: str, actual_files: set[str]) -> bool:
    """True if ``path`` is an actual file or a path suffix of one."""
    if path in actual_files:
        return True
    suffix = "/" + path
    return any(actual.endswith(suffix) for actual in actual_files)
