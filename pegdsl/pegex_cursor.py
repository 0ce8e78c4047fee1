"""
Pegex cursor: immutable view of the input text at one position.

Every movement returns a new cursor, so a failed branch is undone by simply
dropping the cursor it produced.
"""

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class Cursor:
    """Represents a position inside an input text."""

    text: str
    pos: int = 0

    def __post_init__(self):
        if not 0 <= self.pos <= len(self.text):
            raise ValueError(
                f"Cursor position {self.pos} outside 0..{len(self.text)}"
            )

    @property
    def end(self) -> int:
        return len(self.text)

    @property
    def at_end(self) -> bool:
        return self.pos >= len(self.text)

    @property
    def remaining(self) -> str:
        return self.text[self.pos :]

    def peek(self, offset: int = 0) -> Optional[str]:
        """Character at pos + offset, or None outside the text."""
        target = self.pos + offset
        if 0 <= target < len(self.text):
            return self.text[target]
        return None

    def advance(self, count: int = 1) -> "Cursor":
        return Cursor(self.text, min(self.pos + count, len(self.text)))

    def at(self, pos: int) -> "Cursor":
        """Cursor on the same text at an absolute position."""
        return Cursor(self.text, pos)

    def line_col(self) -> Tuple[int, int]:
        """1-based line and column of the position (computed on demand)."""
        line = self.text.count("\n", 0, self.pos) + 1
        line_start = self.text.rfind("\n", 0, self.pos) + 1
        return line, self.pos - line_start + 1

    def line_text(self) -> str:
        """The full source line containing the position."""
        line_start = self.text.rfind("\n", 0, self.pos) + 1
        line_end = self.text.find("\n", self.pos)
        if line_end == -1:
            line_end = len(self.text)
        return self.text[line_start:line_end]
