"""Ground-truth indexing of project files."""

from .tree import DEFAULT_IGNORES, ProjectScanner, generate_tree, get_all_files
from .file_reader import extract_paths, read_referenced_files

__all__ = [
    "DEFAULT_IGNORES",
    "ProjectScanner",
    "generate_tree",
    "get_all_files",
    "extract_paths",
    "read_referenced_files",
]
