"""
pegex - grammar and regex engine in the style of Raku grammars.

This package provides the pattern compiler and matching engine:

- pegex_cursor: immutable input positions
- pegex_ast: pattern AST node types and compile flags
- pegex_parser / pegex_transformer: pattern and grammar file compilation (Lark)
- pegex_capture: capture trees produced by successful matches
- pegex_engine: backtracking matcher
- pegex_registry: named rules, parse / subparse / scan
- pegex_actions: semantic callbacks keyed by rule name
- pegex_regex: re-like facade over a single pattern
"""

from .pegex_actions import Actions
from .pegex_ast import Flags, GrammarDef, Node, RuleDecl, RuleKind
from .pegex_capture import CaptureTree
from .pegex_config import MatchConfig
from .pegex_cursor import Cursor
from .pegex_engine import try_match
from .pegex_errors import (
    ActionError,
    PatternSyntaxError,
    PegexError,
    RecursionLimitExceeded,
    UndefinedRuleError,
)
from .pegex_parser import (
    PEGEX_DSL_VERSION,
    compile_pattern,
    parse_grammar_file,
    parse_grammar_string,
)
from .pegex_registry import GrammarRegistry, Rule, compile_grammar, load_grammar
from .pegex_regex import Pattern, compile

__all__ = [
    "Actions",
    "ActionError",
    "CaptureTree",
    "Cursor",
    "Flags",
    "GrammarDef",
    "GrammarRegistry",
    "MatchConfig",
    "Node",
    "Pattern",
    "PatternSyntaxError",
    "PegexError",
    "PEGEX_DSL_VERSION",
    "RecursionLimitExceeded",
    "Rule",
    "RuleDecl",
    "RuleKind",
    "UndefinedRuleError",
    "compile",
    "compile_grammar",
    "compile_pattern",
    "load_grammar",
    "parse_grammar_file",
    "parse_grammar_string",
    "try_match",
]
