"""Detection of command separators in a ``-c`` payload.

find_command_separator() answers one question: is there a shell
metacharacter that would start another command outside of quoting? It is
an approximation of POSIX shell lexing, not a grammar:

- ``;``, ``&``, ``|`` and newline separate commands in the default context
- double and single quotes hide separators until they are closed
- a backslash escapes the next character, except inside single quotes
- ``#`` at the start, or after an unescaped space, tab or newline, comments
  out the rest of the line; other whitespace-like characters do not break
  a word

A quote left open at the end of the payload is not reported; the scan
simply ends without a match.
"""
from __future__ import annotations

import enum
from typing import Callable, Dict, List, Optional, Tuple

COMMAND_SEPARATORS = frozenset(";&|\n")

# Characters that end a word for the purpose of starting a comment
WORD_BREAKS = frozenset(" \t\n")


class ScanContext(enum.Enum):
    DEFAULT = "default"
    SINGLE_QUOTE = "single_quote"
    DOUBLE_QUOTE = "double_quote"
    COMMENT = "comment"


def _starts_word(command: str, i: int) -> bool:
    """Return True if position i begins a new word in the default context."""
    if i == 0:
        return True
    if command[i - 1] not in WORD_BREAKS:
        return False
    # An escaped break (odd run of backslashes before it) does not end the word
    backslashes = 0
    j = i - 2
    while j >= 0 and command[j] == "\\":
        backslashes += 1
        j -= 1
    return backslashes % 2 == 0


# (command, position, context stack) -> (next position, separator found)
_Transition = Callable[[str, int, List[ScanContext]], Tuple[int, bool]]


def _scan_default(command: str, i: int, stack: List[ScanContext]) -> Tuple[int, bool]:
    ch = command[i]
    if ch in COMMAND_SEPARATORS:
        return i, True
    if ch == "\\":
        return i + 2, False
    if ch == '"':
        stack.append(ScanContext.DOUBLE_QUOTE)
    elif ch == "'":
        stack.append(ScanContext.SINGLE_QUOTE)
    elif ch == "#" and _starts_word(command, i):
        stack.append(ScanContext.COMMENT)
    return i + 1, False


def _scan_double_quote(command: str, i: int, stack: List[ScanContext]) -> Tuple[int, bool]:
    while i < len(command):
        ch = command[i]
        if ch == "\\":
            i += 2
            continue
        if ch == '"':
            stack.pop()
            return i + 1, False
        i += 1
    return len(command), False


def _scan_single_quote(command: str, i: int, stack: List[ScanContext]) -> Tuple[int, bool]:
    end = command.find("'", i)
    if end == -1:
        return len(command), False
    stack.pop()
    return end + 1, False


def _scan_comment(command: str, i: int, stack: List[ScanContext]) -> Tuple[int, bool]:
    end = command.find("\n", i)
    if end == -1:
        return len(command), False
    # The newline itself is left for the default context
    stack.pop()
    return end, False


_TRANSITIONS: Dict[ScanContext, _Transition] = {
    ScanContext.DEFAULT: _scan_default,
    ScanContext.DOUBLE_QUOTE: _scan_double_quote,
    ScanContext.SINGLE_QUOTE: _scan_single_quote,
    ScanContext.COMMENT: _scan_comment,
}


def find_command_separator(command: str) -> Optional[int]:
    """Return the index of the first unquoted, uncommented separator.

    Args:
        command: The string a shell would run via ``-c``

    Returns:
        Index of the separator, or None when there is none
    """
    stack = [ScanContext.DEFAULT]
    i = 0
    while i < len(command):
        i, found = _TRANSITIONS[stack[-1]](command, i, stack)
        if found:
            return i
    return None


__all__ = [
    "COMMAND_SEPARATORS",
    "ScanContext",
    "WORD_BREAKS",
    "find_command_separator",
]
