"""Index of spec files and their front-matter status."""

from __future__ import annotations

import os
import sys


def list_specs(specs_dir: str | os.PathLike[str] = "specs") -> list[str]:
    """List markdown specs as "path (status: ...)" entries, sorted by file name.

    Raises OSError if the directory cannot be read.
    """
    with os.scandir(specs_dir) as it:
        items = sorted(it, key=lambda entry: entry.name)
    entries = []
    for item in items:
        if item.is_dir(follow_symlinks=False) or not item.name.endswith(".md"):
            continue
        path = os.path.join(os.fspath(specs_dir), item.name)
        status = read_spec_status(path) or "unknown"
        entries.append(f"{path} (status: {status})")
    return entries


def read_spec_status(path: str | os.PathLike[str]) -> str:
    """Return the status value from a spec's front matter, or "" if absent."""
    try:
        handle = open(path, encoding="utf-8", errors="replace")
    except OSError:
        return ""
    with handle:
        in_frontmatter = False
        try:
            for raw in handle:
                line = raw.strip()
                if line == "---":
                    if in_frontmatter:
                        break
                    in_frontmatter = True
                    continue
                if in_frontmatter and line.startswith("status:"):
                    return line[len("status:"):].strip()
        except OSError as exc:
            print(f"Warning: error reading spec file {path}: {exc}", file=sys.stderr)
    return ""