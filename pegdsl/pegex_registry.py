"""
Pegex Registry: named rules and grammar-level parsing entry points.

A GrammarRegistry maps rule names to compiled rules. Rules reference each
other by name only, so mutually recursive grammars are built by defining
each rule in turn, in any order. Patterns may also be supplied as thunks
that are compiled on first use.
"""

import logging
import threading
from dataclasses import dataclass, field
from functools import lru_cache
from typing import (
    Callable,
    Dict,
    FrozenSet,
    Iterable,
    Iterator,
    List,
    Optional,
    Tuple,
    Union,
)

from .pegex_actions import Actions
from .pegex_ast import (
    Flags,
    GrammarDef,
    Node,
    RuleDecl,
    RuleKind,
    Whitespace,
    plural_keys,
)
from .pegex_capture import CaptureTree
from .pegex_config import MatchConfig, flags_from_names
from .pegex_cursor import Cursor
from .pegex_engine import Matcher
from .pegex_errors import PatternSyntaxError, UndefinedRuleError
from .pegex_parser import compile_pattern, parse_grammar_file

logger = logging.getLogger(__name__)

PatternSource = Union[str, Node, Callable[[], Union[str, Node]]]

# Rules available in every registry unless the grammar defines its own
BUILTIN_PATTERNS = {
    "alpha": r"[\p{L}_]",
    "digit": r"\d",
    "alnum": r"[\p{L}\p{N}_]",
    "ident": r"<.alpha> \w*",
    "space": r"\s",
    "upper": r"\p{Lu}",
    "lower": r"\p{Ll}",
}


@dataclass(frozen=True)
class Rule:
    """A compiled, named rule."""

    name: str
    kind: RuleKind
    ast: Node
    flags: Flags = Flags.NONE
    plural: FrozenSet = field(default=frozenset(), compare=False)


def _make_rule(name: str, kind: RuleKind, ast: Node, flags: Flags) -> Rule:
    return Rule(name=name, kind=kind, ast=ast, flags=flags, plural=plural_keys(ast))


@lru_cache(maxsize=None)
def builtin_rule(name: str) -> Optional[Rule]:
    """Built-in rule by name, or None if there is no such built-in."""
    if name == "ws":
        return _make_rule("ws", RuleKind.TOKEN, Whitespace(), Flags.NONE)
    source = BUILTIN_PATTERNS.get(name)
    if source is None:
        return None
    ast = compile_pattern(source, kind=RuleKind.TOKEN)
    return _make_rule(name, RuleKind.TOKEN, ast, Flags.NONE)


class GrammarRegistry:
    """
    Holds the rules of one grammar and runs parses against them.

    The registry is read-only while matching; all per-parse state lives in
    a Matcher, so one registry can serve parses on several threads.
    """

    def __init__(self):
        self._rules: Dict[str, Rule] = {}
        self._deferred: Dict[str, Tuple[Callable, RuleKind, Flags]] = {}
        self._lock = threading.RLock()

    # === Definition ===

    def define(
        self,
        name: str,
        pattern: PatternSource,
        kind: Union[RuleKind, str] = RuleKind.RULE,
        flags: Flags = Flags.NONE,
    ) -> "GrammarRegistry":
        """
        Add or replace a rule.

        Args:
            name: Rule name used by <name> references
            pattern: Pattern source, a compiled AST, or a zero-argument
                callable returning either (compiled on first use)
            kind: TOKEN, RULE or REGEX (or their lowercase names)
            flags: Compile flags for source patterns

        Raises:
            PatternSyntaxError: If source text does not compile
        """
        kind = RuleKind.coerce(kind)
        with self._lock:
            if callable(pattern) and not isinstance(pattern, Node):
                self._rules.pop(name, None)
                self._deferred[name] = (pattern, kind, flags)
                logger.debug("Deferred rule '%s' (%s)", name, kind.value)
                return self
            rule = self._compile(name, pattern, kind, flags)
            self._deferred.pop(name, None)
            self._rules[name] = rule
        logger.debug("Defined rule '%s' (%s)", name, kind.value)
        return self

    def _compile(
        self, name: str, pattern: Union[str, Node], kind: RuleKind, flags: Flags
    ) -> Rule:
        if isinstance(pattern, Node):
            return _make_rule(name, kind, pattern, flags)
        if not isinstance(pattern, str):
            raise TypeError(
                f"Rule '{name}' pattern must be a string or a compiled node, "
                f"got {type(pattern).__name__}"
            )
        # A user whitespace rule must not call itself between its own elements
        compile_kind = RuleKind.TOKEN if name == "ws" and kind is RuleKind.RULE else kind
        try:
            ast = compile_pattern(pattern, flags, compile_kind)
        except PatternSyntaxError as e:
            raise e.for_rule(name) from e
        return _make_rule(name, kind, ast, flags)

    def _materialize(self, name: str) -> Optional[Rule]:
        with self._lock:
            rule = self._rules.get(name)
            if rule is not None:
                return rule
            deferred = self._deferred.get(name)
            if deferred is None:
                return None
            thunk, kind, flags = deferred
            rule = self._compile(name, thunk(), kind, flags)
            del self._deferred[name]
            self._rules[name] = rule
        logger.debug("Compiled deferred rule '%s'", name)
        return rule

    # === Lookup ===

    def find(self, name: str) -> Optional[Rule]:
        """Rule by name, falling back to built-ins; None when unknown."""
        rule = self._rules.get(name)
        if rule is not None:
            return rule
        if name in self._deferred:
            return self._materialize(name)
        return builtin_rule(name)

    def rule(self, name: str) -> Rule:
        rule = self.find(name)
        if rule is None:
            raise UndefinedRuleError(name)
        return rule

    def resolve(self, name: str) -> Node:
        """Compiled AST of a rule; raises UndefinedRuleError when unknown."""
        return self.rule(name).ast

    def defines(self, name: str) -> bool:
        """True when the grammar itself defines name (built-ins excluded)."""
        return name in self._rules or name in self._deferred

    def __contains__(self, name: str) -> bool:
        return self.find(name) is not None

    def names(self) -> List[str]:
        return sorted(set(self._rules) | set(self._deferred))

    def __len__(self) -> int:
        return len(self._rules) + len(self._deferred)

    # === Parsing ===

    def parse(
        self,
        text: str,
        start_rule: str = "TOP",
        actions: Optional[Actions] = None,
        config: Optional[MatchConfig] = None,
    ) -> Optional[CaptureTree]:
        """
        Match start_rule against the whole text.

        Returns:
            The root capture tree (spanning the whole text), or None

        Raises:
            UndefinedRuleError: If a referenced rule is unknown
            RecursionLimitExceeded: If matching nests too deeply
            ActionError: If an action callback fails
        """
        self.rule(start_rule)
        matcher = Matcher(text, self, actions, config)
        found = matcher.run_rule(start_rule, 0, anchored=True)
        logger.info(
            "Parse with '%s' over %s characters: %s",
            start_rule,
            len(text),
            "matched" if found is not None else "no match",
        )
        if found is None:
            return None
        return found[1]

    def subparse(
        self,
        text: str,
        start_rule: str = "TOP",
        pos: int = 0,
        actions: Optional[Actions] = None,
        config: Optional[MatchConfig] = None,
    ) -> Optional[Tuple[CaptureTree, int]]:
        """
        Match start_rule at pos without requiring it to reach the end.

        Returns:
            (capture tree, end position) or None
        """
        Cursor(text, pos)  # validates pos
        self.rule(start_rule)
        matcher = Matcher(text, self, actions, config)
        found = matcher.run_rule(start_rule, pos)
        if found is None:
            return None
        end, tree = found
        return tree, end

    def scan(
        self,
        text: str,
        start_rule: str = "TOP",
        actions: Optional[Actions] = None,
        config: Optional[MatchConfig] = None,
    ) -> Iterator[CaptureTree]:
        """
        Yield successive non-empty matches of start_rule across the text.

        Positions where the rule fails, or matches nothing, are skipped one
        character at a time.
        """
        self.rule(start_rule)
        matcher = Matcher(text, self, actions, config)
        pos = 0
        count = 0
        while pos < len(text):
            found = matcher.run_rule(start_rule, pos)
            if found is None or found[0] == pos:
                pos += 1
                continue
            end, tree = found
            count += 1
            yield tree
            pos = end
        logger.info("Scan with '%s' found %s matches", start_rule, count)


RuleDefinition = Union[
    RuleDecl,
    Tuple[str, Union[RuleKind, str], PatternSource],
    Tuple[str, Union[RuleKind, str], PatternSource, Union[Flags, Iterable[str]]],
]


def _decl_flags(flags) -> Flags:
    if isinstance(flags, Flags):
        return flags
    if isinstance(flags, str):
        flags = [flags]
    return flags_from_names(flags)


def compile_grammar(
    rule_definitions: Union[GrammarDef, Iterable[RuleDefinition]]
) -> GrammarRegistry:
    """
    Build a registry from rule definitions.

    Args:
        rule_definitions: A GrammarDef, or an iterable of RuleDecl objects,
            (name, kind, source) tuples or (name, kind, source, flags) tuples.
            Flags may be a Flags value or flag names such as "ignore-case".

    Raises:
        PatternSyntaxError: If any pattern fails to compile (names the rule)
    """
    if isinstance(rule_definitions, GrammarDef):
        rule_definitions = rule_definitions.rules
    registry = GrammarRegistry()
    for definition in rule_definitions:
        if isinstance(definition, RuleDecl):
            registry.define(
                definition.name,
                definition.source,
                definition.kind,
                _decl_flags(definition.flags),
            )
            continue
        if len(definition) == 3:
            name, kind, source = definition
            flags = Flags.NONE
        elif len(definition) == 4:
            name, kind, source, flags = definition
        else:
            raise ValueError(
                f"Rule definition must have 3 or 4 elements, got {len(definition)}"
            )
        registry.define(name, source, kind, _decl_flags(flags))
    logger.info("Compiled grammar with %s rules", len(registry))
    return registry


def load_grammar(path) -> GrammarRegistry:
    """Read and compile a grammar file."""
    grammar = parse_grammar_file(path)
    logger.info("Loaded grammar file %s (version %s)", path, grammar.version.value)
    return compile_grammar(grammar)
