"""
Pegex Engine: backtracking matcher over compiled pattern ASTs.

Every node produces an iterator over its solutions at a position, as
(end, captured) pairs in preference order; asking for the next solution is
the backtracking. Sequences and repetitions keep their pending choices on an
explicit stack of iterators, so the Python stack grows with pattern and rule
nesting only, never with the length of the input. Positions are integers and
capture lists are immutable cons cells, so no undo log is needed.
"""

import logging
from typing import Any, Dict, Iterable, Optional, Tuple

from .pegex_actions import Actions
from .pegex_ast import (
    Alternation,
    AltMode,
    Anchor,
    AnchorKind,
    Assertion,
    CharClass,
    CharRange,
    ClassEscape,
    Group,
    Literal,
    Node,
    Quantifier,
    RuleRef,
    Sequence,
    Whitespace,
    plural_keys,
    width_bounds,
)
from .pegex_capture import CaptureTree, build_node
from .pegex_config import DEFAULT_CONFIG, MatchConfig
from .pegex_cursor import Cursor
from .pegex_errors import RecursionLimitExceeded, UndefinedRuleError
from .pegex_properties import is_word_char, lookup_property, shorthand

logger = logging.getLogger(__name__)

NO_SOLUTIONS = ()


def _first(solutions: Iterable):
    """First (end, captured) solution, or None."""
    return next(iter(solutions), None)


def captured_list(captured):
    """Turn the captured cons cells into a list of (key, node) in match order."""
    items = []
    while captured is not None:
        items.append(captured[0])
        captured = captured[1]
    items.reverse()
    return items


def _in_class(items, ch: str) -> bool:
    for item in items:
        item_type = type(item)
        if item_type is CharRange:
            if item.start <= ch <= item.end:
                return True
        elif item_type is ClassEscape:
            if shorthand(item.kind)(ch):
                return True
        elif lookup_property(item.name)(ch) != item.negated:
            return True
    return False


def class_matches(node: CharClass, ch: str) -> bool:
    """Membership test for one character, honouring negation and case folding."""
    hit = _in_class(node.items, ch)
    if not hit and node.ignore_case:
        for variant in (ch.lower(), ch.upper()):
            if variant != ch and len(variant) == 1 and _in_class(node.items, variant):
                hit = True
                break
    return hit != node.negated


class Matcher:
    """
    Per-call matching state over one input text.

    Holds the memo table for atomic rule calls, the recursion depth counter
    and references to the (read-only) registry and actions. A matcher is
    never shared between threads; registries and ASTs are.
    """

    # pylint: disable=too-many-instance-attributes
    def __init__(
        self,
        text: str,
        registry=None,
        actions: Optional[Actions] = None,
        config: Optional[MatchConfig] = None,
    ):
        self.text = text
        self.end = len(text)
        self.registry = registry
        self.actions = actions
        self.config = config or DEFAULT_CONFIG
        self.max_depth = self.config.max_depth
        self.peak_depth = 0
        self.peak_pos = 0
        self._memo: Optional[Dict[Tuple[str, int], Any]] = (
            {} if self.config.memoize else None
        )
        self._active = set()  # atomic rule calls in progress, for left recursion
        self.rule_calls = 0
        self.memo_hits = 0

    # === Entry points ===

    def run(self, node: Node, pos: int) -> Optional[Tuple[int, CaptureTree]]:
        """Match a bare pattern at pos; the root node has no name."""
        found = self._guarded(lambda: _first(self._solutions(node, pos, None, 1)))
        if found is None:
            return None
        end, captured = found
        tree = build_node(
            None, pos, end, self.text, captured_list(captured), plural_keys(node)
        )
        return end, tree

    def run_rule(
        self, name: str, pos: int, anchored: bool = False
    ) -> Optional[Tuple[int, CaptureTree]]:
        """Match a named rule at pos, optionally requiring it to reach the end."""

        def first_accepted():
            for end, captured in self._rule_call(name, name, pos, None, 1):
                if not anchored or end == self.end:
                    return end, captured
            return None

        found = self._guarded(first_accepted)
        logger.debug(
            "Rule '%s' at %s: %s (%s rule calls, %s memo hits, peak depth %s)",
            name,
            pos,
            "matched" if found is not None else "failed",
            self.rule_calls,
            self.memo_hits,
            self.peak_depth,
        )
        if found is None:
            return None
        end, captured = found
        return end, captured[0][1]

    def _guarded(self, thunk):
        try:
            return thunk()
        except RecursionLimitExceeded:
            raise
        except RecursionError as e:
            raise RecursionLimitExceeded(self.peak_depth, self.peak_pos) from e

    # === Dispatch ===

    # pylint: disable=too-many-return-statements,too-many-branches
    def _solutions(self, node: Node, pos: int, captured, depth: int) -> Iterable:
        """
        Solutions of node at pos as (end, captured) pairs, best first.

        Leaves answer with a tuple of at most one solution; composites answer
        with a generator. depth counts the nodes and rule calls enclosing this
        one and is what max_depth bounds.
        """
        if depth > self.peak_depth:
            self.peak_depth = depth
            self.peak_pos = pos
        if self.max_depth is not None and depth > self.max_depth:
            raise RecursionLimitExceeded(depth, pos)
        node_type = type(node)
        if node_type is Literal:
            end = self._literal_end(node, pos)
            return NO_SOLUTIONS if end is None else ((end, captured),)
        if node_type is CharClass:
            if pos < self.end and class_matches(node, self.text[pos]):
                return ((pos + 1, captured),)
            return NO_SOLUTIONS
        if node_type is Sequence:
            return self._sequence(node.children, pos, captured, depth)
        if node_type is Alternation:
            if node.mode is AltMode.LONGEST:
                return self._longest(node, pos, captured, depth)
            return self._ordered(node, pos, captured, depth)
        if node_type is Quantifier:
            return self._repeat(node, pos, captured, depth)
        if node_type is Group:
            if node.key is None:
                return self._solutions(node.child, pos, captured, depth + 1)
            return self._group(node, pos, captured, depth)
        if node_type is RuleRef:
            key = node.key if node.capture else None
            return self._rule_call(node.name, key, pos, captured, depth)
        if node_type is Anchor:
            if self._anchor_holds(node.kind, pos):
                return ((pos, captured),)
            return NO_SOLUTIONS
        if node_type is Assertion:
            if self._assertion_holds(node, pos, depth):
                return ((pos, captured),)
            return NO_SOLUTIONS
        if node_type is Whitespace:
            return self._whitespace(pos, captured, depth)
        raise TypeError(f"Unknown pattern node: {node!r}")

    # === Leaves ===

    def _literal_end(self, node: Literal, pos: int) -> Optional[int]:
        size = len(node.text)
        if node.ignore_case:
            segment = self.text[pos : pos + size]
            ok = len(segment) == size and segment.casefold() == node.text.casefold()
        else:
            ok = self.text.startswith(node.text, pos)
        return pos + size if ok else None

    def _anchor_holds(self, kind: AnchorKind, pos: int) -> bool:
        text = self.text
        if kind is AnchorKind.START_OF_STRING:
            return pos == 0
        if kind is AnchorKind.END_OF_STRING:
            return pos == self.end
        if kind is AnchorKind.START_OF_LINE:
            return pos == 0 or text[pos - 1] == "\n"
        if kind is AnchorKind.END_OF_LINE:
            return pos == self.end or text[pos] == "\n"
        before = pos > 0 and is_word_char(text[pos - 1])
        after = pos < self.end and is_word_char(text[pos])
        return before != after

    def _whitespace(self, pos: int, captured, depth: int) -> Iterable:
        if self.registry is not None and self.registry.defines("ws"):
            return self._rule_call("ws", None, pos, captured, depth)
        text = self.text
        end = pos
        while end < self.end and text[end].isspace():
            end += 1
        if (
            end == pos
            and 0 < pos < self.end
            and is_word_char(text[pos - 1])
            and is_word_char(text[pos])
        ):
            return NO_SOLUTIONS
        return ((end, captured),)

    def _assertion_holds(self, node: Assertion, pos: int, depth: int) -> bool:
        if node.kind.behind:
            holds = self._look_behind(node.child, pos, depth)
        else:
            found = _first(self._solutions(node.child, pos, None, depth + 1))
            holds = found is not None
        return holds != node.kind.negative

    def _look_behind(self, child: Node, pos: int, depth: int) -> bool:
        low, high = width_bounds(child)
        earliest = 0 if high is None else max(0, pos - high)
        for start in range(pos - low, earliest - 1, -1):
            for end, _inner in self._solutions(child, start, None, depth + 1):
                if end == pos:
                    return True
        return False

    # === Composites ===

    def _sequence(self, children, pos: int, captured, depth: int):
        if not children:
            yield pos, captured
            return
        last = len(children) - 1
        # pending[i] iterates the solutions of children[i]
        pending = [iter(self._solutions(children[0], pos, captured, depth + 1))]
        while pending:
            found = next(pending[-1], None)
            if found is None:
                pending.pop()
            elif len(pending) > last:
                yield found
            else:
                child = children[len(pending)]
                pending.append(
                    iter(self._solutions(child, found[0], found[1], depth + 1))
                )

    def _ordered(self, node: Alternation, pos: int, captured, depth: int):
        for child in node.children:
            yield from self._solutions(child, pos, captured, depth + 1)

    def _longest(self, node: Alternation, pos: int, captured, depth: int):
        candidates = []
        for index, child in enumerate(node.children):
            found = _first(self._solutions(child, pos, captured, depth + 1))
            if found is not None:
                candidates.append((-found[0], index, found))
        candidates.sort(key=lambda item: (item[0], item[1]))
        for _neg_end, _index, found in candidates:
            yield found

    def _repeat(self, node: Quantifier, pos: int, captured, depth: int):
        """Backtracking repetition with one stack entry per iteration."""
        frames = [(0, self._repeat_choices(node, 0, pos, captured, depth))]
        while frames:
            count, choices = frames[-1]
            choice = next(choices, None)
            if choice is None:
                frames.pop()
                continue
            final, end, inner = choice
            if final:
                yield end, inner
            else:
                choices = self._repeat_choices(node, count + 1, end, inner, depth)
                frames.append((count + 1, choices))

    def _repeat_choices(self, node: Quantifier, count: int, pos: int, captured, depth):
        """(final, end, captured) choices after count iterations, best first."""
        can_stop = count >= node.min
        if can_stop and not node.greedy:
            yield True, pos, captured
        if node.max is None or count < node.max:
            for end, inner in self._solutions(node.child, pos, captured, depth + 1):
                # a zero-width iteration ends the repetition
                yield end == pos, end, inner
        if can_stop and node.greedy:
            yield True, pos, captured

    def _group(self, node: Group, pos: int, captured, depth: int):
        key = node.key
        for end, inner in self._solutions(node.child, pos, None, depth + 1):
            child = build_node(
                key, pos, end, self.text, captured_list(inner), node.plural
            )
            yield end, ((key, child), captured)

    # === Rules ===

    def _lookup(self, name: str):
        if self.registry is None:
            raise UndefinedRuleError(name)
        return self.registry.rule(name)

    def _rule_call(self, name: str, key, pos: int, captured, depth: int) -> Iterable:
        """Match rule `name` at pos; key None means the match is not captured."""
        rule = self._lookup(name)
        self.rule_calls += 1
        if rule.kind.atomic:
            result = self._atomic_rule(rule, pos, depth)
            if result is None:
                return NO_SOLUTIONS
            end, tree = result
            return ((end, captured if key is None else ((key, tree), captured)),)
        return self._backtracking_rule(rule, key, pos, captured, depth)

    def _backtracking_rule(self, rule, key, pos: int, captured, depth: int):
        for end, inner in self._solutions(rule.ast, pos, None, depth + 1):
            tree = self._finish_rule(rule, pos, end, inner)
            yield end, captured if key is None else ((key, tree), captured)

    def _atomic_rule(self, rule, pos: int, depth: int):
        memo_key = (rule.name, pos)
        if self._memo is not None and memo_key in self._memo:
            self.memo_hits += 1
            return self._memo[memo_key]
        if memo_key in self._active:
            # Left recursion: re-entering a rule at the same position fails
            return None
        self._active.add(memo_key)
        try:
            found = _first(self._solutions(rule.ast, pos, None, depth + 1))
        finally:
            self._active.discard(memo_key)
        result = None
        if found is not None:
            end, inner = found
            result = (end, self._finish_rule(rule, pos, end, inner))
        if self._memo is not None:
            self._memo[memo_key] = result
        return result

    def _finish_rule(self, rule, start: int, end: int, inner) -> CaptureTree:
        tree = build_node(
            rule.name,
            start,
            end,
            self.text,
            captured_list(inner),
            rule.plural,
            rule=rule.name,
        )
        if self.actions is not None:
            self.actions.invoke(rule.name, tree)
        return tree


def try_match(
    node: Node,
    cursor,
    registry=None,
    actions: Optional[Actions] = None,
    config: Optional[MatchConfig] = None,
) -> Optional[Tuple[Cursor, CaptureTree]]:
    """
    Match a compiled pattern at the cursor position.

    Args:
        node: Compiled pattern AST
        cursor: A Cursor, or a string (matched from position 0)
        registry: GrammarRegistry resolving rule references, if any

    Returns:
        (cursor after the match, capture tree) or None when the pattern fails
    """
    if isinstance(cursor, str):
        cursor = Cursor(cursor)
    matcher = Matcher(cursor.text, registry, actions, config)
    found = matcher.run(node, cursor.pos)
    if found is None:
        return None
    end, tree = found
    return cursor.at(end), tree
