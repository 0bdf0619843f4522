#!/usr/bin/env python
"""Check and run commands through the safecmd policy engine.

Usage:
    safecmd tokenize "ls -al '2nd arg'"
    safecmd check [-r RESTRICTION ...] "/bin/sh -c 'ls; id'"
    safecmd run [-r RESTRICTION ...] "ls -al"
    safecmd check --argv -- /bin/sh -c "ls && id"

Exit codes for check/run:
    0      command allowed
    1      malformed command
    2      blocked by a restriction
    124    run: the command timed out
    128+N  run: the command was killed by signal N

Otherwise run exits with the child's own code, which can also be 1 or 2;
the "Blocked:" and "Error:" lines on stderr tell the cases apart.

Restrictions default to those in safecmd.toml, or to chaining and
sensitive files when no config exists. Names: prevent_command_chaining
(chaining), prevent_common_exploit_executables (banned_executables),
prevent_arguments_targeting_sensitive_files (sensitive_files).
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence, Union

from .command_line import CommandSpec
from .config import load_config
from .errors import CommandError, PolicyViolation
from .execution import RunRequest, SubprocessLauncher, run_command
from .policy import PolicyEngine, check_command, parse_restrictions

EXIT_OK = 0
EXIT_INVALID = 1
EXIT_BLOCKED = 2
EXIT_TIMEOUT = 124


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="safecmd",
        description=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Log decisions (-v for info, -vv for debug)",
    )
    subparsers = parser.add_subparsers(dest="action", required=True)

    tokenize = subparsers.add_parser("tokenize", help="Print executable and arguments as JSON")
    tokenize.add_argument("command", nargs="+", help="Command line (or argv with --argv)")
    tokenize.add_argument("--argv", action="store_true", help="Treat words as a pre-split argv")

    for name, help_text in (
        ("check", "Check a command without running it"),
        ("run", "Check a command and run it"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("command", nargs="+", help="Command line (or argv with --argv)")
        sub.add_argument("--argv", action="store_true", help="Treat words as a pre-split argv")
        sub.add_argument(
            "-r", "--restriction",
            action="append",
            dest="restrictions",
            metavar="NAME",
            help="Restriction to apply (repeatable; replaces the configured set)",
        )
        sub.add_argument(
            "--no-restrictions",
            action="store_true",
            help="Apply no restrictions at all",
        )
        sub.add_argument(
            "--config",
            type=Path,
            default=Path.cwd(),
            metavar="DIR",
            help="Directory containing safecmd.toml (default: current directory)",
        )
        sub.add_argument(
            "--debug",
            action="store_true",
            help="Show full tracebacks on error",
        )

    return parser


def _command_from_args(args: argparse.Namespace) -> Union[str, List[str]]:
    if args.argv:
        return list(args.command)
    return " ".join(args.command)


def _tokenize(args: argparse.Namespace) -> int:
    command = _command_from_args(args)
    try:
        if isinstance(command, str):
            spec = CommandSpec.parse(command)
        else:
            spec = CommandSpec.from_argv(command)
    except CommandError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_INVALID
    print(json.dumps({"executable": spec.executable, "arguments": spec.expanded_arguments()}))
    return EXIT_OK


def _check_or_run(args: argparse.Namespace) -> int:
    try:
        config = load_config(args.config)
        if args.no_restrictions:
            restrictions = frozenset()
        elif args.restrictions:
            restrictions = parse_restrictions(args.restrictions)
        else:
            restrictions = config.restrictions()
        engine = PolicyEngine(denylists=config.denylists())
        command = _command_from_args(args)

        if args.action == "check":
            check_command(command, restrictions, engine=engine)
            print("allowed")
            return EXIT_OK

        result = run_command(
            RunRequest(
                command=command,
                restrictions=restrictions,
                timeout=config.execution.timeout,
            ),
            launcher=SubprocessLauncher(max_output_bytes=config.execution.max_output_bytes),
            engine=engine,
        )
    except PolicyViolation as e:
        print(f"Blocked: {e}", file=sys.stderr)
        if args.debug:
            raise
        return EXIT_BLOCKED
    except CommandError as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.debug:
            raise
        return EXIT_INVALID

    if result.stdout:
        sys.stdout.write(result.stdout)
    if result.stderr:
        sys.stderr.write(result.stderr)
    if result.timed_out:
        return EXIT_TIMEOUT
    if result.exit_code < 0:
        # Killed by a signal; report it the way a shell does
        return 128 - result.exit_code
    return result.exit_code


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for the safecmd CLI.

    Returns:
        Exit code (see module docstring)
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    if args.action == "tokenize":
        return _tokenize(args)
    return _check_or_run(args)


if __name__ == "__main__":
    sys.exit(main())
