"""safecmd: hardened parsing and checking of command lines.

This package turns a shell-style command string (or a pre-split argv) into
an executable plus arguments, and refuses commands that chain several
shell commands, run common exploitation tools, or target sensitive system
files before they reach a process launcher.

Main entry points:
- run_command(): check a command and launch it
- check_command(): check a command without launching it
- safecmd CLI: tokenize, check and run commands from a terminal

The checks are a semantic approximation of what a shell would do, not a
full shell grammar. They narrow what an injected command can do; they do
not replace running untrusted commands in an isolated environment.
"""
from __future__ import annotations

from .canonical import CanonicalPath, Resolved, Unresolvable, canonicalize
from .command_line import Argument, CommandSpec, quote_argument, tokenize
from .denylists import DEFAULT_DENYLISTS, Denylists
from .errors import (
    ArgumentError,
    CommandError,
    LaunchError,
    PolicyViolation,
    SubstitutionError,
)
from .execution import CommandResult, RunRequest, SubprocessLauncher, run_command
from .policy import (
    DEFAULT_RESTRICTIONS,
    PolicyEngine,
    Restriction,
    check_command,
    default_restrictions,
)
from .separators import find_command_separator
from .substitution import substitute

# Note: ShellToolset is imported lazily so plain checks do not load pydantic-ai
# Use: from safecmd.toolset import ShellToolset

__all__ = [
    # Parsing
    "Argument",
    "CommandSpec",
    "quote_argument",
    "substitute",
    "tokenize",
    # Checking
    "CanonicalPath",
    "DEFAULT_DENYLISTS",
    "DEFAULT_RESTRICTIONS",
    "Denylists",
    "PolicyEngine",
    "Resolved",
    "Restriction",
    "Unresolvable",
    "canonicalize",
    "check_command",
    "default_restrictions",
    "find_command_separator",
    # Execution
    "CommandResult",
    "RunRequest",
    "SubprocessLauncher",
    "run_command",
    # Errors
    "ArgumentError",
    "CommandError",
    "LaunchError",
    "PolicyViolation",
    "SubstitutionError",
    # Version
    "__version__",
]

__version__ = "0.1.0"


def __getattr__(name: str):
    """Lazy import for ShellToolset."""
    if name == "ShellToolset":
        from .toolset import ShellToolset
        return ShellToolset
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
