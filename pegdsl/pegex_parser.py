"""
Pegex Parser: compiles pattern source and reads grammar files.

Pattern source is parsed with a Lark LALR parser built from
pegex_pattern.lark and transformed into AST nodes by PatternTransformer.
Grammar files are line oriented: a version statement followed by token,
rule and regex declarations.
"""

import logging
import re
from pathlib import Path
from typing import Optional, Union

from lark import Lark
from lark.exceptions import UnexpectedInput, VisitError

from .pegex_ast import Flags, GrammarDef, Node, RuleDecl, RuleKind, Version
from .pegex_config import flags_from_names
from .pegex_errors import PatternSyntaxError
from .pegex_transformer import PatternTransformer

logger = logging.getLogger(__name__)

# Pegex grammar file version.
# Bump together with pegex_pattern.lark when the pattern syntax changes.
PEGEX_DSL_VERSION = "1.0"

GRAMMAR_PATH = Path(__file__).parent / "pegex_pattern.lark"
with open(GRAMMAR_PATH, "r", encoding="utf-8") as f:
    PATTERN_GRAMMAR = f.read()

pattern_parser = Lark(
    PATTERN_GRAMMAR, start="start", parser="lalr", propagate_positions=True
)

# Pre-compile regex patterns for grammar file lines
RE_VERSION = re.compile(r"^\s*version\s+(?P<version>\S+)\s*$")
RE_DECLARATION = re.compile(
    r"^\s*(?P<kind>token|rule|regex)\s+(?P<name>[A-Za-z_][\w\-]*)"
    r"(?:\s+with\s+(?P<flags>[A-Za-z\-]+(?:\s*,\s*[A-Za-z\-]+)*))?"
    r"\s*=\s*(?P<pattern>.*)$"
)
RE_FLAG_SPLIT = re.compile(r",\s*")


def compile_pattern(
    source: str,
    flags: Flags = Flags.NONE,
    kind: Union[RuleKind, str] = RuleKind.REGEX,
    *,
    unwrap: bool = True,
) -> Node:
    """
    Compile pattern source into an AST.

    Args:
        source: Pattern text
        flags: Compile flags; RULE kind implies SIGSPACE
        kind: Declaration kind, selects the alternation mode

    Returns:
        The root node of the compiled pattern

    Raises:
        PatternSyntaxError: If the source is malformed
    """
    kind = RuleKind.coerce(kind)
    if kind.sigspace:
        flags |= Flags.SIGSPACE
    try:
        tree = pattern_parser.parse(source)
    except UnexpectedInput as e:
        raise _syntax_error(e, source) from e
    try:
        transformer = PatternTransformer(source, flags=flags, mode=kind.alt_mode)
        return transformer.transform(tree)
    except VisitError as ve:
        if unwrap:
            raise ve.orig_exc from ve
        raise


def _syntax_error(err: UnexpectedInput, source: str) -> PatternSyntaxError:
    pos = getattr(err, "pos_in_stream", None)
    if pos is None or pos < 0:
        pos = len(source)
    expected = getattr(err, "expected", None) or getattr(err, "allowed", None) or ()
    token = getattr(err, "token", None)
    if token is not None and token.type in ("$END", "<EOF>"):
        message = "Unexpected end of pattern"
        pos = len(source)
    elif token is not None:
        message = f"Unexpected {token.value!r}"
    elif pos < len(source):
        message = f"Unexpected character {source[pos]!r}"
    else:
        message = "Unexpected end of pattern"
    return PatternSyntaxError(message, source, pos, expected=expected)


def parse_grammar_string(code: str, *, dsl_file_path: Optional[str] = None) -> GrammarDef:
    """
    Read grammar file text into declarations (patterns are not compiled yet).

    Raises:
        PatternSyntaxError: For malformed lines or an unsupported version
    """

    # Resolve backslash line continuations to get logical lines
    def _resolve_line_continuations(text):
        """Yield (line number, logical line) pairs."""
        lines = text.splitlines()
        i = 0
        while i < len(lines):
            number = i + 1
            line = lines[i]
            while i < len(lines) and line.rstrip().endswith("\\") and i + 1 < len(lines):
                line = line.rstrip()[:-1] + " "
                i += 1
                line += lines[i].lstrip()
            yield number, line
            i += 1

    version = None
    rules = []
    offset_of_line = _line_offsets(code)
    for number, line in _resolve_line_continuations(code):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        line_offset = offset_of_line[number - 1]
        if version is None:
            m_ver = RE_VERSION.match(line)
            if not m_ver:
                raise PatternSyntaxError(
                    "Grammar must start with a version statement",
                    code,
                    line_offset,
                    expected=("version",),
                )
            if m_ver.group("version") != PEGEX_DSL_VERSION:
                raise PatternSyntaxError(
                    f"Unsupported pegex DSL version: {m_ver.group('version')}. "
                    f"Expected {PEGEX_DSL_VERSION}.",
                    code,
                    line_offset,
                )
            version = Version(value=m_ver.group("version"))
            continue
        m_decl = RE_DECLARATION.match(line)
        if not m_decl:
            raise PatternSyntaxError(
                "Expected a declaration: token|rule|regex NAME [with FLAGS] = PATTERN",
                code,
                line_offset,
                expected=("token", "rule", "regex"),
            )
        flags_part = m_decl.group("flags") or ""
        flag_names = tuple(
            flag.strip() for flag in RE_FLAG_SPLIT.split(flags_part) if flag.strip()
        )
        try:
            flags_from_names(flag_names)
        except ValueError as e:
            raise PatternSyntaxError(str(e), code, line_offset) from e
        rules.append(
            RuleDecl(
                name=m_decl.group("name"),
                kind=RuleKind.coerce(m_decl.group("kind")),
                source=m_decl.group("pattern").strip(),
                flags=flag_names,
                line=number,
            )
        )
    if version is None:
        raise PatternSyntaxError(
            "Grammar must start with a version statement",
            code,
            len(code),
            expected=("version",),
        )
    logger.debug("Read %s declarations from %s", len(rules), dsl_file_path or "<string>")
    return GrammarDef(version=version, rules=tuple(rules), dsl_file_path=dsl_file_path)


def _line_offsets(code: str):
    offsets = [0]
    for line in code.splitlines(keepends=True):
        offsets.append(offsets[-1] + len(line))
    return offsets


def parse_grammar_file(path) -> GrammarDef:
    with open(path, "r", encoding="utf-8") as file:
        return parse_grammar_string(file.read(), dsl_file_path=str(path))
