"""
Pegex AST: immutable node types produced by the pattern compiler.

Nodes are frozen dataclasses, so compiled patterns can be shared between
threads and used as cache keys. Recursion between rules is expressed only
through RuleRef names resolved at match time.
"""

import enum
from collections import Counter
from dataclasses import dataclass, field
from typing import FrozenSet, Optional, Tuple, Union

# === Enumerations ===


class Flags(enum.Flag):
    """Compile flags for patterns and rule declarations."""

    NONE = 0
    IGNORECASE = 1
    GLOBAL = 2
    MULTILINE = 4
    SIGSPACE = 8


class RuleKind(enum.Enum):
    """Declaration kind of a grammar rule."""

    TOKEN = "token"
    RULE = "rule"
    REGEX = "regex"

    @classmethod
    def coerce(cls, value: Union["RuleKind", str]) -> "RuleKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(f"Unknown rule kind: {value!r}") from None

    @property
    def sigspace(self) -> bool:
        return self is RuleKind.RULE

    @property
    def alt_mode(self) -> "AltMode":
        return AltMode.ORDERED if self is RuleKind.REGEX else AltMode.LONGEST

    @property
    def atomic(self) -> bool:
        """Token and rule matches are committed once found."""
        return self is not RuleKind.REGEX


class AltMode(enum.Enum):
    ORDERED = "ordered"
    LONGEST = "longest"


class AssertionKind(enum.Enum):
    LOOKAHEAD_POSITIVE = "?="
    LOOKAHEAD_NEGATIVE = "?!"
    LOOKBEHIND_POSITIVE = "?<="
    LOOKBEHIND_NEGATIVE = "?<!"

    @property
    def negative(self) -> bool:
        return self in (
            AssertionKind.LOOKAHEAD_NEGATIVE,
            AssertionKind.LOOKBEHIND_NEGATIVE,
        )

    @property
    def behind(self) -> bool:
        return self in (
            AssertionKind.LOOKBEHIND_POSITIVE,
            AssertionKind.LOOKBEHIND_NEGATIVE,
        )


class AnchorKind(enum.Enum):
    START_OF_STRING = "start-of-string"
    END_OF_STRING = "end-of-string"
    START_OF_LINE = "start-of-line"
    END_OF_LINE = "end-of-line"
    WORD_BOUNDARY = "word-boundary"


# === Expression Base Class ===


class Node:
    """Base class for all pattern AST nodes."""

    pass


# === Character Class Items ===


@dataclass(frozen=True)
class CharRange:
    """Inclusive range of characters inside a class (a single char has start == end)."""

    start: str
    end: str


@dataclass(frozen=True)
class ClassEscape:
    """Shorthand class such as \\d or \\W inside or outside brackets."""

    kind: str  # one of d, D, w, W, s, S


@dataclass(frozen=True)
class UnicodeProperty:
    """Named Unicode property such as \\p{Lu}."""

    name: str
    negated: bool = False


ClassItem = Union[CharRange, ClassEscape, UnicodeProperty]


# === Concrete Nodes ===


@dataclass(frozen=True)
class Literal(Node):
    """Matches an exact substring."""

    text: str
    ignore_case: bool = False


@dataclass(frozen=True)
class CharClass(Node):
    """Matches a single character that is (or is not) in the set."""

    items: Tuple[ClassItem, ...]
    negated: bool = False
    ignore_case: bool = False


@dataclass(frozen=True)
class Sequence(Node):
    """Ordered concatenation."""

    children: Tuple[Node, ...]


@dataclass(frozen=True)
class Alternation(Node):
    """Choice between alternatives, disambiguated by mode."""

    children: Tuple[Node, ...]
    mode: AltMode = AltMode.ORDERED


@dataclass(frozen=True)
class Quantifier(Node):
    """Repetition with inclusive bounds; max=None is unbounded."""

    child: Node
    min: int
    max: Optional[int]
    greedy: bool = True


@dataclass(frozen=True)
class Group(Node):
    """Grouping; key is a capture name, a positional index or None."""

    child: Node
    key: Union[str, int, None] = None
    # keys bound to a list inside this group, filled in by the compiler
    plural: FrozenSet[Union[str, int]] = field(default=frozenset(), compare=False)


@dataclass(frozen=True)
class Assertion(Node):
    """Zero-width lookaround."""

    child: Node
    kind: AssertionKind


@dataclass(frozen=True)
class Anchor(Node):
    """Zero-width position test."""

    kind: AnchorKind


@dataclass(frozen=True)
class RuleRef(Node):
    """Reference to a named rule, resolved through the registry."""

    name: str
    alias: Optional[str] = None
    capture: bool = True

    @property
    def key(self) -> str:
        return self.alias or self.name


@dataclass(frozen=True)
class Whitespace(Node):
    """Flexible whitespace inserted between sequence elements under sigspace."""

    pass


EMPTY = Sequence(children=())
ANY_CHAR = CharClass(items=(), negated=True)


# === Grammar File Structures ===


@dataclass(frozen=True)
class Version:
    """Represents the grammar file format version."""

    value: str


@dataclass(frozen=True)
class RuleDecl:
    """A rule declaration read from a grammar file or built by hand."""

    name: str
    kind: RuleKind
    source: str
    flags: Tuple[str, ...] = field(default_factory=tuple)
    line: int = 0


@dataclass(frozen=True)
class GrammarDef:
    """Represents a parsed grammar file."""

    version: Version
    rules: Tuple[RuleDecl, ...]
    dsl_file_path: Optional[str] = None


# === AST Helpers ===


def _capture_counts(node: Node) -> Counter:
    """Upper bound of how often each capture key of one scope can match."""
    node_type = type(node)
    if node_type is Group:
        if node.key is None:
            return _capture_counts(node.child)
        return Counter({node.key: 1})
    if node_type is RuleRef:
        return Counter({node.key: 1}) if node.capture else Counter()
    if node_type is Sequence:
        total: Counter = Counter()
        for child in node.children:
            total.update(_capture_counts(child))
        return total
    if node_type is Alternation:
        widest: Counter = Counter()
        for child in node.children:
            widest |= _capture_counts(child)
        return widest
    if node_type is Quantifier:
        inner = _capture_counts(node.child)
        if node.max is None or node.max > 1:
            return Counter({key: 2 for key in inner})
        return inner
    return Counter()


def plural_keys(node: Node) -> FrozenSet[Union[str, int]]:
    """Capture keys of a scope that bind a list of nodes rather than one node."""
    return frozenset(key for key, count in _capture_counts(node).items() if count > 1)


def width_bounds(node: Node) -> Tuple[int, Optional[int]]:
    """Minimum and maximum match length; maximum None when unbounded or unknown."""
    node_type = type(node)
    if node_type is Literal:
        return len(node.text), len(node.text)
    if node_type is CharClass:
        return 1, 1
    if node_type is Sequence:
        low, high = 0, 0
        for child in node.children:
            child_low, child_high = width_bounds(child)
            low += child_low
            high = None if high is None or child_high is None else high + child_high
        return low, high
    if node_type is Alternation:
        bounds = [width_bounds(child) for child in node.children]
        if not bounds:
            return 0, 0
        highs = [b[1] for b in bounds]
        return min(b[0] for b in bounds), None if None in highs else max(highs)
    if node_type is Quantifier:
        child_low, child_high = width_bounds(node.child)
        if node.max is None or child_high is None:
            high = 0 if child_high == 0 else None
        else:
            high = child_high * node.max
        return child_low * node.min, high
    if node_type is Group:
        return width_bounds(node.child)
    if node_type in (Assertion, Anchor):
        return 0, 0
    return 0, None
