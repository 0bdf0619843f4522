"""Hardened command execution as a PydanticAI toolset.

ShellToolset exposes a single `shell` tool to LLMs. Every command goes
through the same parsing and policy checks as run_command():

1. `needs_approval()` blocks commands that are malformed or violate a
   restriction, before the user is ever asked
2. Commands that pass are pre-approved or need approval per config
3. `call_tool()` re-checks and launches the command without a shell

Config keys:
- restrictions: list of restriction names (default: default_restrictions())
- approval_required: whether passing commands still need approval (default True)
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Type, cast

from pydantic import BaseModel, Field, TypeAdapter
from pydantic_ai.tools import ToolDefinition
from pydantic_ai.toolsets import AbstractToolset, ToolsetTool
from pydantic_ai.toolsets.abstract import SchemaValidatorProt
from pydantic_ai_blocking_approval import (
    ApprovalConfig,
    ApprovalResult,
    needs_approval_from_config,
)

from .errors import CommandError, PolicyViolation
from .execution import CommandResult, RunRequest, SubprocessLauncher, run_command
from .policy import DEFAULT_RESTRICTIONS, PolicyEngine, check_command, parse_restrictions
from .protocols import Launcher

logger = logging.getLogger(__name__)

MAX_TIMEOUT = 300


class ShellArgs(BaseModel):
    """Arguments for shell."""

    command: str = Field(description="Command line to execute (quotes and # comments are honored)")
    timeout: int = Field(
        default=30,
        description="Timeout in seconds (default 30, max 300)",
    )


class _ModelArgsValidator:
    """Validate tool arguments against a model but hand back plain dicts."""

    def __init__(self, model: Type[BaseModel]) -> None:
        self._validator = TypeAdapter(model).validator

    def validate_python(self, input: Any, **kwargs: Any) -> dict[str, Any]:
        return self._validator.validate_python(input, **kwargs).model_dump()

    def validate_json(self, input: str | bytes | bytearray, **kwargs: Any) -> dict[str, Any]:
        return self._validator.validate_json(input, **kwargs).model_dump()

    def validate_strings(self, input: Any, **kwargs: Any) -> dict[str, Any]:
        return self._validator.validate_strings(input, **kwargs).model_dump()


class ShellToolset(AbstractToolset[Any]):
    """Shell tool whose commands must pass the policy engine.

    Commands are never given to a shell interpreter by this toolset itself;
    an explicit `sh -c ...` is allowed only when its payload is a single
    command (when chaining is restricted).
    """

    def __init__(
        self,
        config: Optional[dict] = None,
        engine: Optional[PolicyEngine] = None,
        launcher: Optional[Launcher] = None,
        id: Optional[str] = None,
        max_retries: int = 1,
    ):
        """Initialize shell toolset.

        Args:
            config: Toolset configuration dict (restrictions, approval_required)
            engine: Policy engine; defaults to the built-in denylists
            launcher: Process launcher; defaults to SubprocessLauncher
            id: Optional toolset ID for durable execution.
            max_retries: Maximum retries for tool calls.
        """
        self._config = config or {}
        self._engine = engine or PolicyEngine()
        self._launcher = launcher or SubprocessLauncher()
        self._id = id
        self._max_retries = max_retries
        restrictions = self._config.get("restrictions")
        self._restrictions = (
            DEFAULT_RESTRICTIONS if restrictions is None else parse_restrictions(restrictions)
        )

    @property
    def id(self) -> str | None:
        """Return toolset ID for durable execution."""
        return self._id

    @property
    def config(self) -> dict:
        """Return the toolset configuration."""
        return self._config

    def needs_approval(
        self,
        name: str,
        tool_args: dict,
        ctx: Any,
        config: ApprovalConfig | None = None,
    ) -> ApprovalResult:
        """Decide whether a shell command is blocked, pre-approved or needs approval.

        Args:
            name: Tool name (should be "shell")
            tool_args: Tool arguments with "command"
            ctx: RunContext with deps
            config: Per-tool approval config from ApprovalToolset

        Returns:
            ApprovalResult with status: blocked, pre_approved, or needs_approval
        """
        base = needs_approval_from_config(name, config)
        if base.is_blocked:
            return base

        if name != "shell":
            return base if base.is_pre_approved else ApprovalResult.needs_approval()

        command = tool_args.get("command", "")

        # Policy checks apply even to pre-approved tools
        try:
            check_command(command, self._restrictions, engine=self._engine)
        except PolicyViolation as e:
            return ApprovalResult.blocked(f"Command blocked by policy: {e}")
        except CommandError as e:
            return ApprovalResult.blocked(f"Cannot parse command: {e}")

        if base.is_pre_approved:
            return base
        if not self._config.get("approval_required", True):
            return ApprovalResult.pre_approved()
        return ApprovalResult.needs_approval()

    def get_approval_description(self, name: str, tool_args: dict, ctx: Any) -> str:
        """Return human-readable description for approval prompt."""
        if name != "shell":
            return f"{name}({tool_args})"

        command = tool_args.get("command", "")
        truncated = command[:80] + "..." if len(command) > 80 else command
        return f"Execute: {truncated}"

    async def get_tools(self, ctx: Any) -> dict[str, ToolsetTool]:
        """Return the shell tool definition."""
        return {
            "shell": ToolsetTool(
                toolset=self,
                tool_def=ToolDefinition(
                    name="shell",
                    description=(
                        "Execute a command. The command line is split on spaces and "
                        "quotes and executed without a shell. Chained commands and "
                        "arguments naming sensitive system files are refused."
                    ),
                    parameters_json_schema=ShellArgs.model_json_schema(),
                ),
                max_retries=self._max_retries,
                args_validator=cast(SchemaValidatorProt, _ModelArgsValidator(ShellArgs)),
            )
        }

    async def call_tool(
        self,
        name: str,
        tool_args: dict[str, Any],
        ctx: Any,
        tool: ToolsetTool[Any],
    ) -> CommandResult:
        """Check and execute a command.

        Rejected or malformed commands come back as a CommandResult with
        exit code 1 so the model can correct itself.
        """
        command = tool_args["command"]
        timeout = min(max(tool_args.get("timeout", 30), 1), MAX_TIMEOUT)

        try:
            return run_command(
                RunRequest(command=command, restrictions=self._restrictions, timeout=timeout),
                launcher=self._launcher,
                engine=self._engine,
            )
        except CommandError as e:
            logger.info("Shell tool refused %r: %s", command, e)
            return CommandResult(stdout="", stderr=str(e), exit_code=1)
