import os
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from pegdsl import pegex_parser
from pegdsl.pegex_ast import GrammarDef, RuleDecl, RuleKind, Version
from pegdsl.pegex_config import flags_from_names
from pegdsl.pegex_ast import Flags
from pegdsl.pegex_cursor import Cursor
from pegdsl.pegex_errors import PatternSyntaxError

GRAMMAR = """version 1.0
# numbers and sums
token number = \\d+
rule TOP = <number> '+' \\
    <number>
regex date with ignore-case, multiline = (?<year>\\d{4})-(?<month>\\d{2})
"""


def test_parse_grammar_string():
    grammar = pegex_parser.parse_grammar_string(GRAMMAR)
    assert isinstance(grammar, GrammarDef)
    assert grammar.version == Version("1.0")
    assert [rule.name for rule in grammar.rules] == ["number", "TOP", "date"]
    assert [rule.kind for rule in grammar.rules] == [
        RuleKind.TOKEN,
        RuleKind.RULE,
        RuleKind.REGEX,
    ]
    assert grammar.rules[0] == RuleDecl(
        name="number", kind=RuleKind.TOKEN, source="\\d+", flags=(), line=3
    )


def test_line_continuation_joins_pattern():
    grammar = pegex_parser.parse_grammar_string(GRAMMAR)
    top = grammar.rules[1]
    assert top.source.startswith("<number> '+'")
    assert top.source.endswith("<number>")
    assert top.line == 4


def test_declaration_flags():
    date = pegex_parser.parse_grammar_string(GRAMMAR).rules[2]
    assert date.flags == ("ignore-case", "multiline")
    assert date.line == 6
    assert flags_from_names(date.flags) == Flags.IGNORECASE | Flags.MULTILINE


def test_grammar_requires_version():
    with pytest.raises(PatternSyntaxError):
        pegex_parser.parse_grammar_string("token a = a\n")
    with pytest.raises(PatternSyntaxError):
        pegex_parser.parse_grammar_string("")


def test_unsupported_version():
    with pytest.raises(ValueError):
        pegex_parser.parse_grammar_string("version 1.99\ntoken a = a\n")


def test_unknown_flag():
    with pytest.raises(PatternSyntaxError) as err:
        pegex_parser.parse_grammar_string("version 1.0\ntoken a with loud = a\n")
    assert "loud" in str(err.value)


def test_malformed_declaration_reports_line():
    code = "version 1.0\ntoken a = a\nthis is not a rule\n"
    with pytest.raises(PatternSyntaxError) as err:
        pegex_parser.parse_grammar_string(code)
    assert Cursor(code, err.value.offset).line_col() == (3, 1)
    assert "line 3" in str(err.value)


def test_patterns_are_not_compiled_while_reading():
    grammar = pegex_parser.parse_grammar_string("version 1.0\ntoken bad = (a\n")
    assert grammar.rules[0].source == "(a"


def test_parse_grammar_file(tmp_path):
    path = tmp_path / "sum.pegex"
    path.write_text(GRAMMAR, encoding="utf-8")
    grammar = pegex_parser.parse_grammar_file(path)
    assert grammar.dsl_file_path == str(path)
    assert len(grammar.rules) == 3


def test_flags_from_names():
    assert flags_from_names([]) == Flags.NONE
    assert flags_from_names(["Sigspace"]) == Flags.SIGSPACE
    with pytest.raises(ValueError):
        flags_from_names(["fast"])


def test_cursor_basics():
    cursor = Cursor("ab\ncd", 3)
    assert cursor.peek() == "c"
    assert cursor.peek(-1) == "\n"
    assert cursor.remaining == "cd"
    assert cursor.line_col() == (2, 1)
    assert cursor.line_text() == "cd"
    assert cursor.advance(5).at_end
    with pytest.raises(ValueError):
        Cursor("ab", 3)
