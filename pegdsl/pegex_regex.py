"""
Pegex Regex: a small re-like facade over a single compiled pattern.

Patterns compiled here may still reference rules through a registry, which
makes the facade usable both standalone and inside a grammar.
"""

from typing import Iterator, List, Optional

from .pegex_ast import Anchor, AnchorKind, Flags, RuleKind, Sequence
from .pegex_capture import CaptureTree
from .pegex_config import MatchConfig
from .pegex_cursor import Cursor
from .pegex_engine import Matcher
from .pegex_parser import compile_pattern


class Pattern:
    """A compiled pattern with match, search and iteration helpers."""

    def __init__(
        self,
        source: str,
        flags: Flags = Flags.NONE,
        registry=None,
        config: Optional[MatchConfig] = None,
    ):
        self.source = source
        self.flags = flags
        self.registry = registry
        self.config = config
        self.ast = compile_pattern(source, flags, RuleKind.REGEX)
        self._full_ast = Sequence(
            children=(self.ast, Anchor(AnchorKind.END_OF_STRING))
        )

    def __repr__(self) -> str:
        return f"Pattern({self.source!r}, {self.flags!r})"

    def _matcher(self, text: str) -> Matcher:
        return Matcher(text, self.registry, None, self.config)

    def match(self, text: str, pos: int = 0) -> Optional[CaptureTree]:
        """Match anchored at pos (not at the end)."""
        Cursor(text, pos)
        found = self._matcher(text).run(self.ast, pos)
        return None if found is None else found[1]

    def fullmatch(self, text: str) -> Optional[CaptureTree]:
        """Match spanning the whole text, backtracking as needed to reach the end."""
        found = self._matcher(text).run(self._full_ast, 0)
        return None if found is None else found[1]

    def search(self, text: str, pos: int = 0) -> Optional[CaptureTree]:
        """First match starting at or after pos."""
        Cursor(text, pos)
        matcher = self._matcher(text)
        for start in range(pos, len(text) + 1):
            found = matcher.run(self.ast, start)
            if found is not None:
                return found[1]
        return None

    def finditer(self, text: str) -> Iterator[CaptureTree]:
        """Non-overlapping matches from left to right; empty matches advance by one."""
        matcher = self._matcher(text)
        pos = 0
        while pos <= len(text):
            found = matcher.run(self.ast, pos)
            if found is None:
                pos += 1
                continue
            end, tree = found
            yield tree
            pos = end if end > pos else pos + 1

    def matches(self, text: str) -> List[CaptureTree]:
        """All matches when compiled with GLOBAL, otherwise at most the first."""
        if self.flags & Flags.GLOBAL:
            return list(self.finditer(text))
        first = self.search(text)
        return [] if first is None else [first]


def compile(  # pylint: disable=redefined-builtin
    source: str, flags: Flags = Flags.NONE, registry=None
) -> Pattern:
    """Compile source into a Pattern."""
    return Pattern(source, flags, registry)
