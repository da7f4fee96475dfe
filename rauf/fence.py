"""Tracking of Markdown code fences while scanning model output line by line."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

_FENCE_CHARS = ("`", "~")
_MIN_FENCE_LEN = 3


def count_leading_chars(s: str, char: str) -> int:
    """Return how many times ``char`` repeats at the start of ``s``."""
    return len(s) - len(s.lstrip(char)) if char else 0


@dataclass
class FenceState:
    """Fence parser state: whether we are inside a fence and how it was opened."""

    in_fence: bool = False
    fence_char: str = ""
    fence_len: int = 0

    def process_line(self, trimmed: str) -> bool:
        """Feed one trimmed line; return True if it belongs to a fence and should be skipped."""
        if len(trimmed) < _MIN_FENCE_LEN:
            return self.in_fence

        first = trimmed[0]
        if not self.in_fence:
            if first in _FENCE_CHARS:
                length = count_leading_chars(trimmed, first)
                if length >= _MIN_FENCE_LEN:
                    self.in_fence = True
                    self.fence_char = first
                    self.fence_len = length
                    return True
            return False

        if first == self.fence_char:
            count = count_leading_chars(trimmed, self.fence_char)
            # A closing fence is at least as long as the opening one and has nothing after it.
            if count >= self.fence_len and count == len(trimmed):
                self.in_fence = False
                self.fence_char = ""
                self.fence_len = 0
        return True


def scan_lines_outside_fence(output: str, match: Callable[[str], bool]) -> bool:
    """Call ``match`` on each trimmed line outside code fences; True once any call is true."""
    fence = FenceState()
    for line in output.split("\n"):
        trimmed = line.strip()
        if fence.process_line(trimmed):
            continue
        if match(trimmed):
            return True
    return False