"""
Pegex errors: exception hierarchy shared by the compiler and the engine.

Match failure is not an error and never raises; only the conditions below
abort a compile or a parse.
"""

from typing import Optional, Sequence

from .pegex_cursor import Cursor


class PegexError(Exception):
    """Base class for all pegex errors."""


class PatternSyntaxError(PegexError, ValueError):
    """Raised when pattern or grammar source cannot be compiled."""

    def __init__(
        self,
        message: str,
        source: str = "",
        offset: int = 0,
        expected: Sequence[str] = (),
        rule: Optional[str] = None,
    ):
        self.message = message
        self.source = source
        self.offset = max(0, min(offset, len(source)))
        self.expected = tuple(sorted(expected))
        self.rule = rule
        super().__init__(self._format())

    def _format(self) -> str:
        cursor = Cursor(self.source, self.offset)
        line, col = cursor.line_col()
        where = f"line {line}, column {col}"
        if self.rule:
            where = f"rule '{self.rule}', {where}"
        text = f"{self.message} ({where})"
        if self.expected:
            text += f"; expected one of: {', '.join(self.expected)}"
        if self.source:
            text += f"\n    {cursor.line_text()}\n    {' ' * (col - 1)}^"
        return text

    def for_rule(self, rule: str) -> "PatternSyntaxError":
        """Return a copy of this error attributed to a named rule."""
        return PatternSyntaxError(
            self.message, self.source, self.offset, self.expected, rule
        )


class UndefinedRuleError(PegexError, LookupError):
    """Raised when a rule reference names a rule the registry does not know."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Undefined rule: <{name}>")


class RecursionLimitExceeded(PegexError, RecursionError):
    """Raised when matching nests deeper than the configured limit."""

    def __init__(self, depth: int, position: int):
        self.depth = depth
        self.position = position
        super().__init__(
            f"Recursion limit exceeded at depth {depth} (input offset {position})"
        )


class ActionError(PegexError):
    """Wraps an exception raised by an action callback; aborts the parse."""

    def __init__(self, rule: str, original: BaseException):
        self.rule = rule
        self.original = original
        super().__init__(
            f"Action for rule '{rule}' failed: {type(original).__name__}: {original}"
        )
