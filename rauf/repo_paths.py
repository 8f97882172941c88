"""Resolution of paths relative to the repository root."""

from __future__ import annotations

import os


def _repo_root() -> str:
    return os.getcwd()


def resolve_repo_path_with_root(path: str, root: str) -> str | None:
    """Return the absolute, normalised path if it lies within root, else None."""
    path = path.strip()
    if not path:
        return None
    root_abs = os.path.abspath(root)
    candidate = path if os.path.isabs(path) else os.path.join(root_abs, path)
    candidate = os.path.normpath(candidate)
    try:
        common = os.path.commonpath([root_abs, candidate])
    except ValueError:
        return None
    if common != root_abs:
        return None
    return candidate


def resolve_repo_path(path: str) -> str | None:
    """Resolve a path against the current repository root; None if it escapes."""
    return resolve_repo_path_with_root(path, _repo_root())


def repo_relative_path_with_root(abs_path: str, root: str) -> str:
    """Express a path relative to root, falling back to the path itself."""
    try:
        return os.path.relpath(abs_path, root)
    except ValueError:
        return abs_path


def repo_relative_path(abs_path: str) -> str:
    """Express a path relative to the current repository root."""
    return repo_relative_path_with_root(abs_path, _repo_root())