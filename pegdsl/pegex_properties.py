"""
Unicode property lookup for \\p{...} escapes and class shorthands.

General categories come from the standard unicodedata database; a few
named aliases cover the common POSIX-style properties.
"""

import unicodedata
from functools import lru_cache
from typing import Callable

CharPredicate = Callable[[str], bool]

GENERAL_CATEGORIES = {
    "Lu", "Ll", "Lt", "Lm", "Lo",
    "Mn", "Mc", "Me",
    "Nd", "Nl", "No",
    "Pc", "Pd", "Ps", "Pe", "Pi", "Pf", "Po",
    "Sm", "Sc", "Sk", "So",
    "Zs", "Zl", "Zp",
    "Cc", "Cf", "Cs", "Co", "Cn",
}

MAJOR_CATEGORIES = {c[0] for c in GENERAL_CATEGORIES}

ALIASES = {
    "Letter": "L",
    "Mark": "M",
    "Number": "N",
    "Punctuation": "P",
    "Symbol": "S",
    "Separator": "Z",
    "Other": "C",
    "Uppercase_Letter": "Lu",
    "Lowercase_Letter": "Ll",
    "Decimal_Number": "Nd",
}


def is_word_char(ch: str) -> bool:
    return ch.isalnum() or ch == "_"


def is_space_char(ch: str) -> bool:
    return ch.isspace()


def is_digit_char(ch: str) -> bool:
    return unicodedata.category(ch) == "Nd"


SHORTHANDS = {
    "d": is_digit_char,
    "w": is_word_char,
    "s": is_space_char,
}

NAMED = {
    "Alpha": lambda ch: ch.isalpha(),
    "Alnum": lambda ch: ch.isalnum(),
    "Digit": is_digit_char,
    "Space": is_space_char,
    "Upper": lambda ch: ch.isupper(),
    "Lower": lambda ch: ch.islower(),
    "Word": is_word_char,
    "Any": lambda ch: True,
}


def has_property(name: str) -> bool:
    name = ALIASES.get(name, name)
    return name in GENERAL_CATEGORIES or name in MAJOR_CATEGORIES or name in NAMED


@lru_cache(maxsize=256)
def lookup_property(name: str) -> CharPredicate:
    """
    Return a predicate testing one character for the named property.

    Raises KeyError for unknown property names.
    """
    name = ALIASES.get(name, name)
    if name in NAMED:
        return NAMED[name]
    if name in GENERAL_CATEGORIES:
        return lambda ch: unicodedata.category(ch) == name
    if name in MAJOR_CATEGORIES:
        return lambda ch: unicodedata.category(ch)[0] == name
    raise KeyError(name)


@lru_cache(maxsize=16)
def shorthand(kind: str) -> CharPredicate:
    """Predicate for \\d, \\w, \\s and their upper-case negations."""
    predicate = SHORTHANDS[kind.lower()]
    if kind.isupper():
        return lambda ch: not predicate(ch)
    return predicate
