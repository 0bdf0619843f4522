"""Error taxonomy for command hardening.

Every error is raised while parsing or checking, strictly before a process
is launched:

- ArgumentError: malformed input (blank executable, unbalanced quotes,
  an argument mixing both quote characters, missing restriction set)
- SubstitutionError: unresolved or malformed ``${name}`` references
- PolicyViolation: a restriction matched; callers should alert on these
- LaunchError: the default launcher could not start the process
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .policy import Restriction


class CommandError(Exception):
    """Base error for command parsing, checking and launching."""
    pass


class ArgumentError(CommandError, ValueError):
    """Raised when a command line or its arguments are malformed."""
    pass


class SubstitutionError(CommandError):
    """Raised when ``${name}`` expansion fails."""
    pass


class PolicyViolation(CommandError):
    """Raised when a command is rejected by a restriction.

    The message is kept terse so it does not describe the denylist to
    whoever supplied the command. The restriction and offending token are
    available as attributes for logging.
    """

    def __init__(
        self,
        message: str,
        restriction: Optional[Restriction] = None,
        subject: Optional[str] = None,
    ):
        super().__init__(message)
        self.restriction = restriction
        self.subject = subject


class LaunchError(CommandError):
    """Raised when the default launcher cannot start a process."""
    pass


__all__ = [
    "ArgumentError",
    "CommandError",
    "LaunchError",
    "PolicyViolation",
    "SubstitutionError",
]
