"""
Pegex capture trees: the hierarchical record of a successful match.

A node covers one span of the input and holds its sub-captures both in
match order (children) and keyed by capture name or positional index.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Union

CaptureKey = Union[str, int]

_UNSET = object()


@dataclass(eq=False)
class CaptureTree:
    """Represents one captured span and its sub-captures."""

    name: Optional[CaptureKey]
    start: int
    end: int
    source: str = field(repr=False)
    children: List["CaptureTree"] = field(default_factory=list, repr=False)
    captures: Dict[CaptureKey, Any] = field(default_factory=dict, repr=False)
    rule: Optional[str] = None
    _made: Any = field(default=_UNSET, repr=False)

    @property
    def length(self) -> int:
        return self.end - self.start

    def text(self) -> str:
        return self.source[self.start : self.end]

    def __str__(self) -> str:
        return self.text()

    def get(
        self, key: CaptureKey
    ) -> Union["CaptureTree", List["CaptureTree"], None]:
        """Sub-capture by name or positional index: a node, a list of nodes, or None."""
        return self.captures.get(key)

    def __getitem__(self, key: CaptureKey):
        return self.captures[key]

    def __contains__(self, key: CaptureKey) -> bool:
        return key in self.captures

    def keys(self):
        return self.captures.keys()

    def make(self, value: Any) -> None:
        self._made = value

    @property
    def has_made(self) -> bool:
        return self._made is not _UNSET

    def made(self) -> Any:
        """Value attached by an action, or None when no action ran."""
        return None if self._made is _UNSET else self._made

    def value(self) -> Any:
        """The made value if any, else the captured text."""
        return self._made if self.has_made else self.text()

    def walk(self) -> Iterator["CaptureTree"]:
        """Depth-first iteration over this node and all descendants."""
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready representation of the subtree."""
        data: Dict[str, Any] = {
            "name": self.name,
            "start": self.start,
            "end": self.end,
            "text": self.text(),
        }
        if self.rule is not None:
            data["rule"] = self.rule
        if self.has_made:
            made = self._made
            data["made"] = (
                made
                if isinstance(made, (str, int, float, bool, type(None)))
                else repr(made)
            )
        if self.children:
            data["children"] = [child.to_dict() for child in self.children]
        return data


def build_node(
    name: Optional[CaptureKey],
    start: int,
    end: int,
    source: str,
    captured,
    plural=frozenset(),
    rule: Optional[str] = None,
) -> CaptureTree:
    """
    Build a capture node from the (key, node) pairs captured in its scope.

    Args:
        captured: (key, node) pairs in match order
        plural: keys that always bind a list, even with a single match
    """
    children = []
    captures: Dict[CaptureKey, Any] = {}
    for key, node in captured:
        children.append(node)
        if key in captures:
            existing = captures[key]
            if isinstance(existing, list):
                existing.append(node)
            else:
                captures[key] = [existing, node]
        elif key in plural:
            captures[key] = [node]
        else:
            captures[key] = node
    for key in plural:
        captures.setdefault(key, [])
    return CaptureTree(
        name=name,
        start=start,
        end=end,
        source=source,
        children=children,
        captures=captures,
        rule=rule,
    )
