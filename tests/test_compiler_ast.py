import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest

from pegdsl.pegex_ast import (
    ANY_CHAR,
    EMPTY,
    Alternation,
    AltMode,
    Anchor,
    AnchorKind,
    Assertion,
    AssertionKind,
    CharClass,
    CharRange,
    ClassEscape,
    Flags,
    Group,
    Literal,
    Quantifier,
    RuleKind,
    RuleRef,
    Sequence,
    UnicodeProperty,
    Whitespace,
    plural_keys,
    width_bounds,
)
from pegdsl.pegex_errors import PatternSyntaxError
from pegdsl.pegex_parser import compile_pattern


def test_literal_run():
    assert compile_pattern("abc") == Literal("abc")


def test_whitespace_is_insignificant():
    assert compile_pattern("a b") == Sequence((Literal("a"), Literal("b")))


def test_comment_is_ignored():
    assert compile_pattern("abc # trailing comment") == Literal("abc")


def test_quantifier_binds_last_char_of_run():
    node = compile_pattern("ab*")
    assert node == Sequence((Literal("a"), Quantifier(Literal("b"), 0, None)))


def test_quantifier_binds_whole_quoted_literal_and_group():
    assert compile_pattern("'ab'*") == Quantifier(Literal("ab"), 0, None)
    assert compile_pattern("(?:ab)+") == Quantifier(Literal("ab"), 1, None)
    node = compile_pattern("ab* 'cd'*")
    assert node.children[1] == Quantifier(Literal("cd"), 0, None)


def test_quoted_literal_with_spaces():
    assert compile_pattern("'a b'") == Literal("a b")
    assert compile_pattern('"x\\ty"') == Literal("x\ty")


def test_quantifier_forms():
    assert compile_pattern("a+") == Quantifier(Literal("a"), 1, None)
    assert compile_pattern("a?") == Quantifier(Literal("a"), 0, 1)
    assert compile_pattern("a{3}") == Quantifier(Literal("a"), 3, 3)
    assert compile_pattern("a{2,}") == Quantifier(Literal("a"), 2, None)
    assert compile_pattern("a{,4}") == Quantifier(Literal("a"), 0, 4)
    assert compile_pattern("a{2,4}") == Quantifier(Literal("a"), 2, 4)
    lazy = compile_pattern("a*?")
    assert lazy == Quantifier(Literal("a"), 0, None, greedy=False)


def test_dot_and_anchors():
    assert compile_pattern(".") == ANY_CHAR
    node = compile_pattern("^a$")
    assert node.children[0] == Anchor(AnchorKind.START_OF_STRING)
    assert node.children[2] == Anchor(AnchorKind.END_OF_STRING)
    multi = compile_pattern("^a$", Flags.MULTILINE)
    assert multi.children[0] == Anchor(AnchorKind.START_OF_LINE)
    assert multi.children[2] == Anchor(AnchorKind.END_OF_LINE)


def test_escapes():
    assert compile_pattern("\\d") == CharClass((ClassEscape("d"),))
    assert compile_pattern("\\n") == Literal("\n")
    assert compile_pattern("\\b") == Anchor(AnchorKind.WORD_BOUNDARY)
    assert compile_pattern("\\.") == Literal(".")
    assert compile_pattern("\\ ") == Literal(" ")
    assert compile_pattern("\\p{Lu}") == CharClass((UnicodeProperty("Lu"),))
    assert compile_pattern("\\P{Lu}") == CharClass((UnicodeProperty("Lu", True),))


def test_char_class():
    node = compile_pattern("[a-z_\\d]")
    assert node == CharClass((CharRange("a", "z"), CharRange("_", "_"), ClassEscape("d")))
    negated = compile_pattern("[^0-9]")
    assert negated.negated
    assert negated.items == (CharRange("0", "9"),)


def test_groups_are_numbered_per_scope():
    node = compile_pattern("(a)((b)(c))")
    first, second = node.children
    assert first.key == 0
    assert second.key == 1
    inner_b, inner_c = second.child.children
    assert (inner_b.key, inner_c.key) == (0, 1)


def test_alternation_branches_restart_numbering():
    node = compile_pattern("(a)|(b)(c)")
    assert isinstance(node, Alternation)
    assert node.children[0].key == 0
    assert [g.key for g in node.children[1].children] == [0, 1]


def test_non_capturing_group():
    assert compile_pattern("(?:ab)") == Literal("ab")


def test_named_group_and_lookaround():
    node = compile_pattern("(?<year>\\d{4})")
    assert isinstance(node, Group)
    assert node.key == "year"
    look = compile_pattern("(?!x)")
    assert look == Assertion(Literal("x"), AssertionKind.LOOKAHEAD_NEGATIVE)
    behind = compile_pattern("(?<=x)")
    assert behind.kind is AssertionKind.LOOKBEHIND_POSITIVE


def test_rule_references():
    assert compile_pattern("<number>") == RuleRef("number")
    assert compile_pattern("<n=number>").key == "n"
    silent = compile_pattern("<.ws>")
    assert silent == RuleRef("ws", capture=False)


def test_alternation_mode_follows_kind():
    assert compile_pattern("a|b").mode is AltMode.ORDERED
    assert compile_pattern("a|b", kind=RuleKind.TOKEN).mode is AltMode.LONGEST
    assert compile_pattern("a|b", kind="rule").mode is AltMode.LONGEST


def test_sigspace_inserts_whitespace():
    node = compile_pattern("a b", kind=RuleKind.RULE)
    assert node == Sequence((Literal("a"), Whitespace(), Literal("b")))
    flagged = compile_pattern("a b", Flags.SIGSPACE)
    assert flagged == node


def test_ignore_case_marks_nodes():
    assert compile_pattern("ab", Flags.IGNORECASE) == Literal("ab", ignore_case=True)
    assert compile_pattern("[a]", Flags.IGNORECASE).ignore_case


def test_empty_pattern():
    assert compile_pattern("") == EMPTY


def test_compilation_is_deterministic():
    source = "(?<a>\\w+) '=' (\\d+ | <ident>)* $"
    assert compile_pattern(source) == compile_pattern(source)


@pytest.mark.parametrize(
    "source, offset",
    [
        ("(a", 2),
        ("a{3,1}", 1),
        ("a\\q", 1),
        ("a)", 1),
    ],
)
def test_syntax_errors(source, offset):
    with pytest.raises(PatternSyntaxError) as err:
        compile_pattern(source)
    assert err.value.offset == offset
    assert err.value.source == source


def test_syntax_error_message_has_location():
    with pytest.raises(PatternSyntaxError) as err:
        compile_pattern("(a")
    assert "line 1, column 3" in str(err.value)


def test_syntax_error_is_value_error():
    with pytest.raises(ValueError):
        compile_pattern("[b-a]")


def test_unknown_property():
    with pytest.raises(PatternSyntaxError):
        compile_pattern("\\p{Nope}")


def test_duplicate_named_capture_in_one_alternative():
    with pytest.raises(PatternSyntaxError) as err:
        compile_pattern("(?<x>a)(?<x>b)")
    assert err.value.offset == 7
    # Separate alternatives may reuse a name
    node = compile_pattern("(?<x>a)|(?<x>b)")
    assert isinstance(node, Alternation)


def test_plural_keys():
    assert plural_keys(compile_pattern("(a)+")) == frozenset({0})
    assert plural_keys(compile_pattern("<n> <n>")) == frozenset({"n"})
    assert plural_keys(compile_pattern("<n> | <n>")) == frozenset()
    assert plural_keys(compile_pattern("(a)?")) == frozenset()


def test_width_bounds():
    assert width_bounds(compile_pattern("ab|c")) == (1, 2)
    assert width_bounds(compile_pattern("a{2,3}")) == (2, 3)
    assert width_bounds(compile_pattern("a*")) == (0, None)
    assert width_bounds(compile_pattern("(?=x)")) == (0, 0)
