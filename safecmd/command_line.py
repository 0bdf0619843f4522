"""Command line parsing and the CommandSpec argument model.

This module provides:
- tokenize(): split a shell-style string into raw tokens
- quote_argument(): re-quote a single token for serialization
- Argument / CommandSpec: executable plus ordered arguments with optional
  ``${name}`` substitution

The tokenizer is a small state machine over the delimiter set
``"``, ``'`` and space. Quote characters do not end a token, so
``"foo"bar`` is the single token ``foobar``. A ``#`` that forms a token of
its own starts a comment running to the end of the string.
"""
from __future__ import annotations

import enum
import logging
import os
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from .errors import ArgumentError
from .substitution import SubstitutionMap, fix_separators, substitute

logger = logging.getLogger(__name__)

SINGLE_QUOTE = "'"
DOUBLE_QUOTE = '"'

# Capturing group keeps the delimiters in the split output
_DELIMITER_SPLIT = re.compile(r"""(["' ])""")


class _TokenizerState(enum.Enum):
    NORMAL = "normal"
    IN_SINGLE_QUOTE = "in_single_quote"
    IN_DOUBLE_QUOTE = "in_double_quote"
    IN_COMMENT = "in_comment"


def tokenize(line: Optional[str]) -> List[str]:
    """Split a command line into tokens.

    Args:
        line: Command line to split

    Returns:
        Tokens in order; an empty list for empty input

    Raises:
        ArgumentError: If a quote is left open at the end of the line
    """
    if not line:
        return []

    state = _TokenizerState.NORMAL
    tokens: List[str] = []
    current: List[str] = []
    last_token_quoted = False

    for piece in _DELIMITER_SPLIT.split(line):
        if not piece:
            continue

        if state is _TokenizerState.IN_COMMENT:
            continue

        if state is _TokenizerState.IN_SINGLE_QUOTE:
            if piece == SINGLE_QUOTE:
                last_token_quoted = True
                state = _TokenizerState.NORMAL
            else:
                current.append(piece)
            continue

        if state is _TokenizerState.IN_DOUBLE_QUOTE:
            if piece == DOUBLE_QUOTE:
                last_token_quoted = True
                state = _TokenizerState.NORMAL
            else:
                current.append(piece)
            continue

        if piece == SINGLE_QUOTE:
            state = _TokenizerState.IN_SINGLE_QUOTE
        elif piece == DOUBLE_QUOTE:
            state = _TokenizerState.IN_DOUBLE_QUOTE
        elif piece == " ":
            # A quoted empty string ("") still counts as a token
            if last_token_quoted or current:
                tokens.append("".join(current))
                current = []
        elif piece == "#":
            state = _TokenizerState.IN_COMMENT
        else:
            current.append(piece)
        last_token_quoted = False

    if state in (_TokenizerState.IN_SINGLE_QUOTE, _TokenizerState.IN_DOUBLE_QUOTE):
        raise ArgumentError(f"Unbalanced quotes in {line}")

    if last_token_quoted or current:
        tokens.append("".join(current))

    logger.debug("Tokenized %r into %r", line, tokens)
    return tokens


def quote_argument(argument: str) -> str:
    """Put quotes around an argument if it needs them.

    Surrounding quote characters are stripped first. A value containing a
    double quote is wrapped in single quotes; a value containing a single
    quote or a space is wrapped in double quotes; anything else is returned
    unchanged.

    Raises:
        ArgumentError: If the value contains both quote characters
    """
    cleaned = argument.strip()

    while cleaned.startswith((SINGLE_QUOTE, DOUBLE_QUOTE)):
        cleaned = cleaned[1:]
    while cleaned.endswith((SINGLE_QUOTE, DOUBLE_QUOTE)):
        cleaned = cleaned[:-1]

    if DOUBLE_QUOTE in cleaned:
        if SINGLE_QUOTE in cleaned:
            raise ArgumentError("Can't handle single and double quotes in same argument")
        return SINGLE_QUOTE + cleaned + SINGLE_QUOTE
    if SINGLE_QUOTE in cleaned or " " in cleaned:
        return DOUBLE_QUOTE + cleaned + DOUBLE_QUOTE
    return cleaned


@dataclass(frozen=True)
class Argument:
    """A single command argument.

    ``quote_on_serialize`` marks arguments that are passed through
    quote_argument() when the command is turned back into strings; such
    an argument must not mix both quote characters.
    """

    value: str
    quote_on_serialize: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", self.value.strip())
        if self.quote_on_serialize:
            # Fails early for values that can never be serialized
            quote_argument(self.value)


def _clean_executable(executable: Optional[str]) -> str:
    if executable is None:
        raise ArgumentError("Executable can not be null")
    if not executable.strip():
        raise ArgumentError("Executable can not be empty")
    return fix_separators(executable)


class CommandSpec:
    """An executable plus its ordered arguments.

    The executable is fixed at construction. Arguments are appended with
    add_argument()/add_arguments() and expanded against the optional
    substitution map whenever they are read back.
    """

    def __init__(
        self,
        executable: Union[str, "os.PathLike[str]"],
        substitution_map: Optional[SubstitutionMap] = None,
    ):
        self._is_file = isinstance(executable, os.PathLike)
        if self._is_file:
            executable = os.path.abspath(os.fspath(executable))
        self._executable = _clean_executable(executable)
        self._arguments: List[Argument] = []
        self.substitution_map = substitution_map

    @classmethod
    def parse(
        cls,
        line: Optional[str],
        substitution_map: Optional[SubstitutionMap] = None,
    ) -> "CommandSpec":
        """Create a CommandSpec from a shell-style string.

        The first token becomes the executable, the rest the arguments.

        Raises:
            ArgumentError: If the line is missing, blank, has unbalanced
                quotes, or yields no executable
        """
        if line is None:
            raise ArgumentError("Command line can not be null")
        if not line.strip():
            raise ArgumentError("Command line can not be empty")

        tokens = tokenize(line)
        if not tokens:
            raise ArgumentError("Executable can not be empty")

        spec = cls(tokens[0], substitution_map)
        spec.add_arguments(tokens[1:])
        return spec

    @classmethod
    def from_argv(
        cls,
        argv: Sequence[Optional[str]],
        substitution_map: Optional[SubstitutionMap] = None,
    ) -> "CommandSpec":
        """Create a CommandSpec from a pre-split argument vector."""
        if not argv:
            raise ArgumentError("Executable can not be null")
        spec = cls(argv[0], substitution_map)  # type: ignore[arg-type]
        spec.add_arguments(list(argv[1:]))
        return spec

    @property
    def executable(self) -> str:
        """The executable, expanded and with platform separators."""
        return fix_separators(substitute(self._executable, self.substitution_map, lenient=True))

    @property
    def is_file(self) -> bool:
        """Whether the executable was given as a path object."""
        return self._is_file

    @property
    def arguments(self) -> Tuple[Argument, ...]:
        return tuple(self._arguments)

    def add_argument(self, argument: Optional[str], handle_quoting: bool = True) -> "CommandSpec":
        """Append one argument.

        Raises:
            ArgumentError: If quoting is handled and the value mixes both
                quote characters
        """
        if argument is None:
            return self
        self._arguments.append(Argument(argument, handle_quoting))
        return self

    def add_arguments(
        self,
        arguments: Union[str, Iterable[Optional[str]], None],
        handle_quoting: bool = True,
    ) -> "CommandSpec":
        """Append several arguments.

        A string is tokenized first; an iterable is added item by item.
        """
        if arguments is None:
            return self
        if isinstance(arguments, str):
            arguments = tokenize(arguments)
        for argument in arguments:
            self.add_argument(argument, handle_quoting)
        return self

    def expanded_arguments(self, strict: bool = False) -> List[str]:
        """Return argument values after substitution, without re-quoting."""
        return [
            substitute(arg.value, self.substitution_map, lenient=not strict)
            for arg in self._arguments
        ]

    def get_arguments(self, strict: bool = False) -> List[str]:
        """Return arguments expanded and re-quoted for serialization."""
        result = []
        for arg in self._arguments:
            expanded = substitute(arg.value, self.substitution_map, lenient=not strict)
            result.append(quote_argument(expanded) if arg.quote_on_serialize else expanded)
        return result

    def argv(self, strict: bool = False) -> List[str]:
        """Return the argument vector handed to a process launcher."""
        return [self.executable, *self.expanded_arguments(strict=strict)]

    def to_strings(self) -> List[str]:
        """Return the executable followed by the serialized arguments."""
        return [self.executable, *self.get_arguments()]

    def copy(self) -> "CommandSpec":
        other = CommandSpec.__new__(CommandSpec)
        other._executable = self._executable
        other._is_file = self._is_file
        other._arguments = list(self._arguments)
        other.substitution_map = (
            dict(self.substitution_map) if self.substitution_map is not None else None
        )
        return other

    def __str__(self) -> str:
        return "[" + ", ".join(self.to_strings()) + "]"

    def __repr__(self) -> str:
        return f"CommandSpec(executable={self._executable!r}, arguments={[a.value for a in self._arguments]!r})"


__all__ = [
    "Argument",
    "CommandSpec",
    "quote_argument",
    "tokenize",
]
