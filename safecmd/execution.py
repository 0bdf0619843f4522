"""Hardened command execution.

This module provides:
- RunRequest: one request structure for every way of launching a command
- CommandResult: output of the default launcher
- SubprocessLauncher: runs the checked argv without a shell
- run_command(): parse, check, then launch

Every check runs before the launcher is called; a rejected command never
starts a process.
"""
from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, Field, field_validator

from .command_line import CommandSpec
from .errors import ArgumentError, LaunchError
from .policy import (
    DEFAULT_RESTRICTIONS,
    PolicyEngine,
    Restriction,
    check_command,
    parse_restrictions,
)
from .protocols import Launcher
from .substitution import SubstitutionMap

logger = logging.getLogger(__name__)

# Maximum output size in bytes (50KB)
MAX_OUTPUT_BYTES = 50 * 1024

# Default timeout in seconds
DEFAULT_TIMEOUT = 30


class CommandResult(BaseModel):
    """Result from running a command with SubprocessLauncher."""

    stdout: str
    stderr: str
    exit_code: int
    truncated: bool = False  # True if output exceeded limit
    timed_out: bool = False


class RunRequest(BaseModel):
    """Everything needed to check and launch one command.

    ``command`` is either a shell-style string or a pre-split argv.
    ``environment`` accepts a mapping or a list of ``NAME=value`` strings.
    """

    command: Union[str, List[str]]
    environment: Optional[Dict[str, str]] = None
    working_directory: Optional[Path] = None
    restrictions: frozenset[Restriction] = Field(default=DEFAULT_RESTRICTIONS)
    timeout: Optional[float] = DEFAULT_TIMEOUT
    substitution_map: Optional[Dict[str, Any]] = None

    @field_validator("environment", mode="before")
    @classmethod
    def _parse_environment(cls, value: Any) -> Any:
        if value is None or isinstance(value, Mapping):
            return value
        env: Dict[str, str] = {}
        for entry in value:
            name, sep, val = str(entry).partition("=")
            if not sep or not name:
                raise ValueError(f"Environment entry must look like NAME=value: {entry!r}")
            env[name] = val
        return env

    @field_validator("restrictions", mode="before")
    @classmethod
    def _parse_restrictions(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("restrictions must not be null")
        return parse_restrictions(value)


def _decode(data: Optional[bytes]) -> str:
    if not data:
        return ""
    return data.decode("utf-8", errors="replace")


def _truncate(text: str, limit: int) -> tuple[str, bool]:
    if len(text) > limit:
        return text[:limit] + "\n... (output truncated)", True
    return text, False


class SubprocessLauncher:
    """Launch commands with ``subprocess.run`` and ``shell=False``.

    Args:
        max_output_bytes: Truncate stdout/stderr beyond this size
    """

    def __init__(self, max_output_bytes: int = MAX_OUTPUT_BYTES):
        self.max_output_bytes = max_output_bytes

    def launch(
        self,
        argv: List[str],
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[Path] = None,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
    ) -> CommandResult:
        """Run ``argv`` to completion and capture its output.

        Returns:
            CommandResult; timeouts map to exit code -1, a missing program
            to 127 and a non-executable one to 126

        Raises:
            LaunchError: If argv is empty or the process cannot be started
        """
        if not argv:
            raise LaunchError("Empty command")

        logger.info("Executing command: %s", argv)

        try:
            result = subprocess.run(
                argv,
                cwd=cwd,
                env=dict(env) if env is not None else None,
                capture_output=True,
                timeout=timeout,
                shell=False,
            )
        except subprocess.TimeoutExpired:
            return CommandResult(
                stdout="",
                stderr=f"Command timed out after {timeout} seconds",
                exit_code=-1,
                timed_out=True,
            )
        except FileNotFoundError:
            return CommandResult(
                stdout="",
                stderr=f"Command not found: {argv[0]}",
                exit_code=127,
            )
        except PermissionError:
            return CommandResult(
                stdout="",
                stderr=f"Permission denied: {argv[0]}",
                exit_code=126,
            )
        except (OSError, ValueError) as e:
            raise LaunchError(f"Failed to execute command: {e}") from e

        stdout, stdout_truncated = _truncate(_decode(result.stdout), self.max_output_bytes)
        stderr, stderr_truncated = _truncate(_decode(result.stderr), self.max_output_bytes)

        return CommandResult(
            stdout=stdout,
            stderr=stderr,
            exit_code=result.returncode,
            truncated=stdout_truncated or stderr_truncated,
        )


def prepare_command(
    command: Union[str, Sequence[str], CommandSpec],
    restrictions: Any = DEFAULT_RESTRICTIONS,
    engine: Optional[PolicyEngine] = None,
    substitution_map: Optional[SubstitutionMap] = None,
) -> List[str]:
    """Parse and check a command, returning the argv to launch.

    A blank command string skips every check and yields an empty argv.
    """
    spec = check_command(command, restrictions, engine=engine, substitution_map=substitution_map)
    if spec is None:
        return []
    return spec.argv()


def run_command(
    request: Union[RunRequest, str, Sequence[str]],
    launcher: Optional[Launcher] = None,
    engine: Optional[PolicyEngine] = None,
    **options: Any,
) -> Any:
    """Check a command and hand it to the launcher.

    Args:
        request: A RunRequest, or a command string/argv combined with
            RunRequest fields passed as keyword options
        launcher: Process launcher (defaults to SubprocessLauncher)
        engine: Policy engine (defaults to the built-in denylists)

    Returns:
        Whatever the launcher returns (CommandResult for the default one)

    Raises:
        ArgumentError: If the command is malformed
        SubstitutionError: If ``${name}`` expansion fails
        PolicyViolation: If a restriction matches
    """
    if not isinstance(request, RunRequest):
        if "restrictions" in options and options["restrictions"] is None:
            raise ArgumentError("restrictions must not be null")
        command = request if isinstance(request, str) else list(request)
        request = RunRequest(command=command, **options)
    elif options:
        raise TypeError("Keyword options cannot be combined with a RunRequest")

    argv = prepare_command(
        request.command,
        restrictions=request.restrictions,
        engine=engine,
        substitution_map=request.substitution_map,
    )

    launcher = launcher or SubprocessLauncher()
    return launcher.launch(
        argv,
        env=request.environment,
        cwd=request.working_directory,
        timeout=request.timeout,
    )


__all__ = [
    "CommandResult",
    "DEFAULT_TIMEOUT",
    "MAX_OUTPUT_BYTES",
    "RunRequest",
    "SubprocessLauncher",
    "prepare_command",
    "run_command",
]
