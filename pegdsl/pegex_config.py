"""
Configuration structures for compiling and matching.

Contains the engine limits and the translation of declaration flag names
(as written in grammar files) into compile flags.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from .pegex_ast import Flags

# Flag names accepted in "with ..." clauses of grammar declarations
VALID_FLAGS = {
    "ignore-case": Flags.IGNORECASE,
    "multiline": Flags.MULTILINE,
    "sigspace": Flags.SIGSPACE,
    "global": Flags.GLOBAL,
}


@dataclass(frozen=True)
class MatchConfig:
    """Limits and switches for one matching run."""

    max_depth: Optional[int] = None  # None: bounded by the interpreter stack only
    memoize: bool = True

    def __post_init__(self):
        if self.max_depth is not None and self.max_depth < 1:
            raise ValueError(f"max_depth must be positive, got {self.max_depth}")


DEFAULT_CONFIG = MatchConfig()


def flags_from_names(names: Iterable[str]) -> Flags:
    """
    Combine declaration flag names into a Flags value.

    Args:
        names: Flag names such as "ignore-case" or "multiline"

    Returns:
        The combined compile flags

    Raises:
        ValueError: If a name is not a known flag
    """
    flags = Flags.NONE
    for name in names:
        key = name.strip().lower()
        if not key:
            continue
        if key not in VALID_FLAGS:
            raise ValueError(
                f"Unknown flag '{name}'. Expected one of: {', '.join(sorted(VALID_FLAGS))}"
            )
        flags |= VALID_FLAGS[key]
    return flags
