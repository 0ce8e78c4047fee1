"""
Pegex Transformer: Lark tree transformer for pattern source.

This module provides the PatternTransformer class that converts Lark parse
trees of pattern source into immutable pegex AST nodes. Compile flags are
applied here (case folding, multiline anchors, sigspace), so the resulting
AST carries everything the engine needs.
"""

import dataclasses
from typing import Iterator, List, Optional, Tuple

from lark import Token, Transformer, v_args

from . import pegex_ast as ast
from .pegex_errors import PatternSyntaxError
from .pegex_properties import has_property

# Placeholder key for "(...)" groups, replaced by per-scope indexes after transform
POSITIONAL = -1

CONTROL_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "f": "\f", "v": "\v"}
SHORTHAND_ESCAPES = set("dDwWsS")

ASSERTION_OPENERS = {
    "(?=": ast.AssertionKind.LOOKAHEAD_POSITIVE,
    "(?!": ast.AssertionKind.LOOKAHEAD_NEGATIVE,
    "(?<=": ast.AssertionKind.LOOKBEHIND_POSITIVE,
    "(?<!": ast.AssertionKind.LOOKBEHIND_NEGATIVE,
}


@dataclasses.dataclass(frozen=True)
class CharRun:
    """A run of bare characters; only meaningful until its quantifier is known."""

    literal: ast.Literal


@v_args(inline=True)  # This simplifies most method signatures
class PatternTransformer(Transformer):  # pylint: disable=too-many-public-methods
    """
    Transformer that converts Lark parse trees into pegex AST nodes.

    Handles literals, classes, escapes, groups, lookaround, rule references
    and quantifiers, and validates named captures per alternative.
    """

    def __init__(
        self,
        source: str,
        flags: ast.Flags = ast.Flags.NONE,
        mode: ast.AltMode = ast.AltMode.ORDERED,
    ):
        super().__init__()
        self.source = source
        self.ignore_case = bool(flags & ast.Flags.IGNORECASE)
        self.multiline = bool(flags & ast.Flags.MULTILINE)
        self.sigspace = bool(flags & ast.Flags.SIGSPACE)
        self.mode = mode
        # (named group, source offset of its opener)
        self._named_offsets: List[Tuple[ast.Group, int]] = []

    def _error(self, message: str, offset: int) -> PatternSyntaxError:
        return PatternSyntaxError(message, self.source, offset)

    def start(self, node):
        """Transform the root and number positional groups per scope."""
        numbered, _ = number_groups(node, 0)
        return numbered

    def alternation(self, *branches):
        """Transform alternatives, keeping a single branch as is."""
        if len(branches) == 1:
            return branches[0]
        return ast.Alternation(children=tuple(branches), mode=self.mode)

    def sequence(self, *parts):
        """Transform a sequence, inserting whitespace nodes under sigspace."""
        self._check_duplicate_names(parts)
        if not parts:
            return ast.EMPTY
        if len(parts) == 1:
            return parts[0]
        if self.sigspace:
            spaced: List[ast.Node] = [parts[0]]
            for part in parts[1:]:
                spaced.append(ast.Whitespace())
                spaced.append(part)
            parts = tuple(spaced)
        return ast.Sequence(children=tuple(parts))

    def quantified(self, atom, quant=None):
        """Transform an atom with an optional quantifier token."""
        run = None
        if isinstance(atom, CharRun):
            atom = atom.literal
            run = atom.text
        if quant is None:
            return atom
        min_val, max_val, greedy = self._parse_quantifier(quant)
        if run is not None and len(run) > 1:
            # A quantifier binds to the last character of a bare run
            head = ast.Literal(run[:-1], self.ignore_case)
            tail = ast.Literal(run[-1], self.ignore_case)
            return ast.Sequence(
                children=(head, ast.Quantifier(tail, min_val, max_val, greedy))
            )
        return ast.Quantifier(child=atom, min=min_val, max=max_val, greedy=greedy)

    def _parse_quantifier(self, token: Token) -> Tuple[int, Optional[int], bool]:
        text = str(token)
        greedy = True
        if len(text) > 1 and text.endswith("?"):
            greedy = False
            text = text[:-1]
        if text == "*":
            return 0, None, greedy
        if text == "+":
            return 1, None, greedy
        if text == "?":
            return 0, 1, greedy
        inner = text[1:-1].replace(" ", "")
        low, comma, high = inner.partition(",")
        try:
            min_val = int(low) if low else 0
            if comma:
                max_val = int(high) if high else None
            else:
                max_val = min_val
        except ValueError:
            raise self._error(
                f"Invalid quantifier bounds '{token}'", token.start_pos
            ) from None
        if not low and not comma:
            raise self._error(f"Empty quantifier '{token}'", token.start_pos)
        if max_val is not None and min_val > max_val:
            raise self._error(
                f"Minimum value ({min_val}) cannot be greater than "
                f"maximum value ({max_val}) in quantifier",
                token.start_pos,
            )
        return min_val, max_val, greedy

    def quoted(self, token):
        """Transform a quoted literal, resolving backslash escapes."""
        body = token.value[1:-1]
        chars = []
        i = 0
        while i < len(body):
            ch = body[i]
            if ch == "\\" and i + 1 < len(body):
                i += 1
                ch = CONTROL_ESCAPES.get(body[i], body[i])
            chars.append(ch)
            i += 1
        return ast.Literal(text="".join(chars), ignore_case=self.ignore_case)

    def chars(self, token):
        """Transform a run of bare literal characters."""
        return CharRun(ast.Literal(text=token.value, ignore_case=self.ignore_case))

    def dot(self, _token):
        """Transform dot (.) wildcard."""
        return ast.ANY_CHAR

    def line_start(self, _token):
        kind = (
            ast.AnchorKind.START_OF_LINE
            if self.multiline
            else ast.AnchorKind.START_OF_STRING
        )
        return ast.Anchor(kind=kind)

    def line_end(self, _token):
        kind = (
            ast.AnchorKind.END_OF_LINE
            if self.multiline
            else ast.AnchorKind.END_OF_STRING
        )
        return ast.Anchor(kind=kind)

    def escape(self, token):
        """Transform escape sequences like \\d, \\b, \\p{Lu} or \\."""
        body = token.value[1:]
        ch = body[0]
        if ch in SHORTHAND_ESCAPES:
            return ast.CharClass(items=(ast.ClassEscape(ch),))
        if ch in CONTROL_ESCAPES:
            return ast.Literal(CONTROL_ESCAPES[ch], self.ignore_case)
        if ch == "b":
            return ast.Anchor(kind=ast.AnchorKind.WORD_BOUNDARY)
        if ch == "B":
            return ast.Assertion(
                child=ast.Anchor(kind=ast.AnchorKind.WORD_BOUNDARY),
                kind=ast.AssertionKind.LOOKAHEAD_NEGATIVE,
            )
        if ch == "A":
            return ast.Anchor(kind=ast.AnchorKind.START_OF_STRING)
        if ch == "z":
            return ast.Anchor(kind=ast.AnchorKind.END_OF_STRING)
        if ch in "pP" and len(body) > 1:
            prop = self._property(body[2:-1], ch == "P", token.start_pos)
            return ast.CharClass(items=(prop,))
        if ch.isalnum():
            raise self._error(f"Unknown escape '\\{ch}'", token.start_pos)
        return ast.Literal(ch, self.ignore_case)

    def _property(self, name: str, negated: bool, offset: int) -> ast.UnicodeProperty:
        if not has_property(name):
            raise self._error(f"Unknown Unicode property '{name}'", offset)
        return ast.UnicodeProperty(name=name, negated=negated)

    def charclass(self, token):
        """Transform a bracketed character class [...] or [^...]."""
        body = token.value[1:-1]
        offset = token.start_pos + 1
        negated = body.startswith("^")
        if negated:
            body = body[1:]
            offset += 1
        items = []
        i = 0
        while i < len(body):
            item, i = self._class_atom(body, i, offset)
            if (
                isinstance(item, str)
                and i + 1 < len(body)
                and body[i] == "-"
            ):
                end, next_i = self._class_atom(body, i + 1, offset)
                if not isinstance(end, str):
                    raise self._error("Invalid range end in class", offset + i + 1)
                if end < item:
                    raise self._error(
                        f"Range out of order in class: {item}-{end}", offset + i
                    )
                items.append(ast.CharRange(item, end))
                i = next_i
            elif isinstance(item, str):
                items.append(ast.CharRange(item, item))
            else:
                items.append(item)
        return ast.CharClass(
            items=tuple(items), negated=negated, ignore_case=self.ignore_case
        )

    def _class_atom(self, body: str, i: int, offset: int):
        """Read one class member; returns (char or class item, next index)."""
        ch = body[i]
        if ch != "\\":
            return ch, i + 1
        esc = body[i + 1]
        if esc in SHORTHAND_ESCAPES:
            return ast.ClassEscape(esc), i + 2
        if esc in CONTROL_ESCAPES:
            return CONTROL_ESCAPES[esc], i + 2
        if esc in "pP" and body[i + 2 : i + 3] == "{":
            close = body.find("}", i + 3)
            if close == -1:
                raise self._error("Unterminated property in class", offset + i)
            prop = self._property(body[i + 3 : close], esc == "P", offset + i)
            return prop, close + 1
        if esc.isalnum():
            raise self._error(f"Unknown escape '\\{esc}' in class", offset + i)
        return esc, i + 2

    def rule_ref(self, token):
        """Transform <name>, <alias=name> or <.name>."""
        inner = token.value[1:-1]
        alias = None
        if "=" in inner:
            alias, inner = inner.split("=", 1)
        capture = alias is not None or not inner.startswith(".")
        return ast.RuleRef(name=inner.lstrip("."), alias=alias, capture=capture)

    def group(self, opener, node):
        """Transform groups, named captures and lookaround."""
        text = opener.value
        if text == "(":
            return ast.Group(child=node, key=POSITIONAL)
        if text == "(?:":
            return node
        if text in ASSERTION_OPENERS:
            return ast.Assertion(child=node, kind=ASSERTION_OPENERS[text])
        name = text[3:-1]
        group = ast.Group(child=node, key=name)
        self._named_offsets.append((group, opener.start_pos))
        return group

    def _check_duplicate_names(self, parts):
        seen = set()
        for part in parts:
            for name, group in named_groups(part):
                if name in seen:
                    raise self._error(
                        f"Named capture '{name}' is defined more than once "
                        "in one alternative",
                        self._offset_of(group),
                    )
                seen.add(name)

    def _offset_of(self, group: ast.Group) -> int:
        for candidate, offset in self._named_offsets:
            if candidate is group:
                return offset
        return 0


def named_groups(node) -> Iterator[Tuple[str, ast.Group]]:
    """
    Yield the named groups of one capture scope, each alternative branch once.

    Names inside different branches of an alternation do not clash with each
    other, so each name is reported once per alternation.
    """
    node_type = type(node)
    if node_type is ast.Group:
        if isinstance(node.key, str):
            yield node.key, node
        return
    if node_type is ast.Sequence:
        for child in node.children:
            yield from named_groups(child)
    elif node_type is ast.Alternation:
        seen = {}
        for child in node.children:
            for name, group in named_groups(child):
                seen.setdefault(name, group)
        yield from seen.items()
    elif node_type is ast.Quantifier:
        yield from named_groups(node.child)


def number_groups(node, counter: int):
    """
    Assign positional indexes to "(...)" groups, scope by scope.

    Returns the rebuilt node and the next free index. Each group opens a new
    scope numbered from 0; alternation branches restart at the same index.
    """
    node_type = type(node)
    if node_type is ast.Group:
        inner, _ = number_groups(node.child, 0)
        plural = ast.plural_keys(inner)
        if node.key == POSITIONAL:
            numbered = dataclasses.replace(node, child=inner, key=counter, plural=plural)
            return numbered, counter + 1
        return dataclasses.replace(node, child=inner, plural=plural), counter
    if node_type is ast.Sequence:
        children = []
        for child in node.children:
            child, counter = number_groups(child, counter)
            children.append(child)
        return dataclasses.replace(node, children=tuple(children)), counter
    if node_type is ast.Alternation:
        children = []
        highest = counter
        for child in node.children:
            child, branch_end = number_groups(child, counter)
            children.append(child)
            highest = max(highest, branch_end)
        return dataclasses.replace(node, children=tuple(children)), highest
    if node_type is ast.Quantifier:
        child, counter = number_groups(node.child, counter)
        return dataclasses.replace(node, child=child), counter
    if node_type is ast.Assertion:
        child, _ = number_groups(node.child, 0)
        return dataclasses.replace(node, child=child), counter
    return node, counter
