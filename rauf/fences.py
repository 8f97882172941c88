"""Tracking of fenced code blocks while scanning markdown line by line."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable

_FENCE_RE = re.compile(r"^(`{3,}|~{3,})(.*)$")


@dataclass
class FenceState:
    """State of an open fenced code block, if any."""

    marker_char: str = ""
    marker_length: int = 0

    @property
    def in_fence(self) -> bool:
        return bool(self.marker_char)

    def process_line(self, trimmed: str) -> bool:
        """Feed one line; return True if it is a fence line or inside a fence.

        A fence closes only on a line of the same character, at least as long
        as the opening marker, with nothing after it.
        """
        line = trimmed.strip()
        match = _FENCE_RE.match(line)
        if self.in_fence:
            if match:
                marker, rest = match.groups()
                if (
                    marker[0] == self.marker_char
                    and len(marker) >= self.marker_length
                    and not rest.strip()
                ):
                    self.marker_char = ""
                    self.marker_length = 0
            return True
        if not match:
            return False
        marker, info = match.groups()
        if marker[0] == "`" and "`" in info:
            return False
        self.marker_char = marker[0]
        self.marker_length = len(marker)
        return True


def scan_lines_outside_fence(text: str, predicate: Callable[[str], bool]) -> bool:
    """Return True if any trimmed line outside code fences satisfies the predicate."""
    fence = FenceState()
    for line in text.splitlines():
        trimmed = line.strip()
        if fence.process_line(trimmed):
            continue
        if predicate(trimmed):
            return True
    return False