"""Policy engine deciding whether a parsed command may be launched.

Checks run in a fixed order, each only when its restriction is requested:

1. PREVENT_COMMAND_CHAINING: for shells, the ``-c`` payload must not
   contain a separator outside quoting
2. PREVENT_COMMON_EXPLOIT_EXECUTABLES: the canonical executable basename
   must not be on the banned list
3. PREVENT_ARGUMENTS_TARGETING_SENSITIVE_FILES: no argument may resolve
   to a path ending in a sensitive file

Denylist matches always fail closed. A path the canonicalizer cannot
resolve is treated as "no match".
"""
from __future__ import annotations

import enum
import logging
import os
from typing import AbstractSet, FrozenSet, Iterable, List, Optional, Sequence, Union

from .canonical import Resolved, canonicalize
from .command_line import CommandSpec
from .denylists import DEFAULT_DENYLISTS, Denylists
from .errors import ArgumentError, PolicyViolation
from .protocols import Canonicalizer
from .separators import find_command_separator
from .substitution import SubstitutionMap

logger = logging.getLogger(__name__)


class Restriction(enum.Enum):
    """Restrictions that can be applied to a command."""

    # Prevent multiple commands from being executed in a single call
    PREVENT_COMMAND_CHAINING = "prevent_command_chaining"
    # Prevent executables commonly used in exploitation (wget, netcat, ...)
    PREVENT_COMMON_EXPLOIT_EXECUTABLES = "prevent_common_exploit_executables"
    # Prevent arguments that resolve to sensitive files (/etc/shadow, ...)
    PREVENT_ARGUMENTS_TARGETING_SENSITIVE_FILES = "prevent_arguments_targeting_sensitive_files"

    @classmethod
    def from_name(cls, name: Union[str, "Restriction"]) -> "Restriction":
        """Look up a restriction by value, member name or short alias."""
        if isinstance(name, Restriction):
            return name
        key = name.strip().lower().replace("-", "_")
        restriction = _RESTRICTION_ALIASES.get(key)
        if restriction is None:
            try:
                restriction = cls(key)
            except ValueError:
                raise ArgumentError(f"Unknown restriction: {name}") from None
        return restriction


_RESTRICTION_ALIASES = {
    "chaining": Restriction.PREVENT_COMMAND_CHAINING,
    "banned_executables": Restriction.PREVENT_COMMON_EXPLOIT_EXECUTABLES,
    "sensitive_files": Restriction.PREVENT_ARGUMENTS_TARGETING_SENSITIVE_FILES,
}

RestrictionSet = AbstractSet[Restriction]

DEFAULT_RESTRICTIONS: FrozenSet[Restriction] = frozenset([
    Restriction.PREVENT_COMMAND_CHAINING,
    Restriction.PREVENT_ARGUMENTS_TARGETING_SENSITIVE_FILES,
])


def default_restrictions() -> FrozenSet[Restriction]:
    """Restrictions suitable for general use.

    Banned executables are opt-in only.
    """
    return DEFAULT_RESTRICTIONS


def parse_restrictions(names: Iterable[Union[str, Restriction]]) -> FrozenSet[Restriction]:
    """Build a restriction set from names or members."""
    return frozenset(Restriction.from_name(name) for name in names)


def _is_command_flag(token: str) -> bool:
    """Match ``-c`` alone or inside a short option cluster like ``-lc``."""
    if token == "-c":
        return True
    flags = token[1:]
    return token.startswith("-") and flags.isalpha() and "c" in flags


def _is_option(token: str) -> bool:
    return len(token) > 1 and token[0] in "-+"


def _option_argument_count(token: str) -> int:
    """Number of following tokens consumed by ``-o``/``-O`` style flags in ``token``."""
    if token.startswith("--"):
        return 0
    return sum(1 for flag in token[1:] if flag in "oO")


def find_inner_command(arguments: Sequence[str]) -> Optional[str]:
    """Return the command string a shell would run for ``-c``, if any.

    The shell keeps parsing options after ``-c`` and runs its first
    operand, so options (and the values of ``-o``/``-O``) are skipped up
    to an optional ``--`` or ``-``.
    """
    for i, token in enumerate(arguments):
        if _is_command_flag(token):
            break
    else:
        return None

    pending = _option_argument_count(token)
    j = i + 1
    while j < len(arguments):
        token = arguments[j]
        if pending:
            pending -= 1
        elif token in ("--", "-"):
            return arguments[j + 1] if j + 1 < len(arguments) else None
        elif _is_option(token):
            pending = _option_argument_count(token)
        else:
            return token
        j += 1
    return None


class PolicyEngine:
    """Runs the restriction checks against a CommandSpec.

    Args:
        denylists: Tables of shells, banned executables and sensitive files
        canonicalizer: Path resolver; must report failures as Unresolvable
    """

    def __init__(
        self,
        denylists: Denylists = DEFAULT_DENYLISTS,
        canonicalizer: Canonicalizer = canonicalize,
    ):
        self._denylists = denylists
        self._canonicalize = canonicalizer
        self._binary_directories = self._canonical_binary_directories()

    @property
    def denylists(self) -> Denylists:
        return self._denylists

    def _canonical_binary_directories(self) -> FrozenSet[str]:
        directories = set(self._denylists.binary_directories)
        for directory in self._denylists.binary_directories:
            resolved = self._canonicalize(directory)
            if isinstance(resolved, Resolved):
                directories.add(resolved.path)
        return frozenset(directories)

    def check(self, spec: CommandSpec, restrictions: Optional[RestrictionSet]) -> CommandSpec:
        """Check ``spec`` against ``restrictions``.

        Returns:
            The same CommandSpec, untouched

        Raises:
            ArgumentError: If restrictions is None
            PolicyViolation: If any requested restriction matches
        """
        if restrictions is None:
            raise ArgumentError("restrictions must not be null")
        restrictions = parse_restrictions(restrictions)

        executable = spec.executable
        arguments = spec.expanded_arguments()

        if Restriction.PREVENT_COMMAND_CHAINING in restrictions:
            if self.is_shell(executable):
                self._check_for_multiple_commands(arguments)

        if Restriction.PREVENT_COMMON_EXPLOIT_EXECUTABLES in restrictions:
            self._check_for_banned_executable(executable)

        if Restriction.PREVENT_ARGUMENTS_TARGETING_SENSITIVE_FILES in restrictions:
            self._check_for_sensitive_file_arguments(arguments)

        return spec

    def is_shell(self, executable: str) -> bool:
        """Return True if ``executable`` looks like a shell (sh, /bin/zsh, ...)."""
        name = os.path.basename(executable)
        if name in self._denylists.shell_names:
            return True
        parent = os.path.dirname(executable)
        if not parent or not name.endswith("sh"):
            return False
        resolved = self._canonicalize(parent)
        return isinstance(resolved, Resolved) and resolved.path in self._binary_directories

    def _check_for_multiple_commands(self, arguments: List[str]) -> None:
        payload = find_inner_command(arguments)
        if payload is None:
            return

        candidates = [payload]
        trimmed = payload.strip()
        if len(trimmed) >= 2 and trimmed.startswith('"') and trimmed.endswith('"'):
            candidates.append(trimmed[1:-1])

        for candidate in candidates:
            index = find_command_separator(candidate)
            if index is not None:
                logger.warning(
                    "Blocked command chaining at index %d of %r", index, candidate
                )
                raise PolicyViolation(
                    "multiple commands not allowed",
                    restriction=Restriction.PREVENT_COMMAND_CHAINING,
                    subject=payload,
                )

    def _check_for_banned_executable(self, executable: str) -> None:
        resolved = self._canonicalize(executable)
        if not isinstance(resolved, Resolved):
            # Not enough evidence to refuse
            return
        if resolved.name.strip() in self._denylists.banned_executables:
            logger.warning("Blocked banned executable %r (%s)", executable, resolved.path)
            raise PolicyViolation(
                "file inaccessible",
                restriction=Restriction.PREVENT_COMMON_EXPLOIT_EXECUTABLES,
                subject=executable,
            )

    def _check_for_sensitive_file_arguments(self, arguments: List[str]) -> None:
        for argument in arguments:
            resolved = self._canonicalize(argument)
            if not isinstance(resolved, Resolved):
                continue
            path = resolved.path.strip()
            # Suffix match: some platforms resolve under an extra root (/private/etc on macOS)
            for sensitive in self._denylists.sensitive_files:
                if path.endswith(sensitive):
                    logger.warning("Blocked argument %r targeting %s", argument, sensitive)
                    raise PolicyViolation(
                        "file inaccessible",
                        restriction=Restriction.PREVENT_ARGUMENTS_TARGETING_SENSITIVE_FILES,
                        subject=argument,
                    )


def check_command(
    command: Union[str, Sequence[str], CommandSpec],
    restrictions: Optional[RestrictionSet] = DEFAULT_RESTRICTIONS,
    engine: Optional[PolicyEngine] = None,
    substitution_map: Optional[SubstitutionMap] = None,
) -> Optional[CommandSpec]:
    """Parse ``command`` and run the policy checks on it.

    A blank command string is passed through unchecked and returns None,
    leaving the launcher to do whatever it does with nothing.

    Raises:
        ArgumentError: If the command is malformed or restrictions is None
        SubstitutionError: If ``${name}`` expansion fails
        PolicyViolation: If a restriction matches
    """
    if restrictions is None:
        raise ArgumentError("restrictions must not be null")

    if isinstance(command, CommandSpec):
        spec = command
    elif isinstance(command, str):
        if not command.strip():
            return None
        spec = CommandSpec.parse(command, substitution_map)
    else:
        spec = CommandSpec.from_argv(list(command), substitution_map)

    return (engine or PolicyEngine()).check(spec, restrictions)


__all__ = [
    "DEFAULT_RESTRICTIONS",
    "PolicyEngine",
    "Restriction",
    "RestrictionSet",
    "check_command",
    "default_restrictions",
    "find_inner_command",
    "parse_restrictions",
]
