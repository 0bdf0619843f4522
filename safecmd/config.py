"""Configuration loading for safecmd.

Reads an optional TOML config file from a base directory to control which
restrictions are applied, extra denylist entries and launcher limits.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, List, Optional

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover - fallback for <3.11
    import tomli as tomllib

from .denylists import DEFAULT_DENYLISTS, Denylists
from .errors import ArgumentError
from .execution import DEFAULT_TIMEOUT, MAX_OUTPUT_BYTES
from .policy import DEFAULT_RESTRICTIONS, Restriction, parse_restrictions


CONFIG_FILENAMES = ("safecmd.toml",)


@dataclass
class RestrictionSettings:
    enabled: Optional[List[str]] = None


@dataclass
class DenylistSettings:
    extra_shell_names: List[str] = field(default_factory=list)
    extra_binary_directories: List[str] = field(default_factory=list)
    extra_banned_executables: List[str] = field(default_factory=list)
    extra_sensitive_files: List[str] = field(default_factory=list)


@dataclass
class ExecutionSettings:
    timeout: Optional[float] = DEFAULT_TIMEOUT
    max_output_bytes: int = MAX_OUTPUT_BYTES


@dataclass
class SafeCmdConfig:
    restriction_settings: RestrictionSettings = field(default_factory=RestrictionSettings)
    denylist_settings: DenylistSettings = field(default_factory=DenylistSettings)
    execution: ExecutionSettings = field(default_factory=ExecutionSettings)
    path: Optional[Path] = None

    def restrictions(self) -> FrozenSet[Restriction]:
        """Restrictions to apply; the defaults when none are configured."""
        if self.restriction_settings.enabled is None:
            return DEFAULT_RESTRICTIONS
        return parse_restrictions(self.restriction_settings.enabled)

    def denylists(self) -> Denylists:
        settings = self.denylist_settings
        return DEFAULT_DENYLISTS.extended(
            shell_names=settings.extra_shell_names,
            binary_directories=settings.extra_binary_directories,
            banned_executables=settings.extra_banned_executables,
            sensitive_files=settings.extra_sensitive_files,
        )


def load_config(base_dir: Path) -> SafeCmdConfig:
    """Load config from the first matching file in ``base_dir``.

    Raises:
        ArgumentError: If the file names an unknown restriction or has
            values of the wrong type
    """

    for filename in CONFIG_FILENAMES:
        candidate = base_dir / filename
        if not candidate.exists():
            continue
        with candidate.open("rb") as f:
            data = tomllib.load(f)
        config = SafeCmdConfig(
            restriction_settings=_parse_restrictions(data.get("restrictions", {})),
            denylist_settings=_parse_denylists(data.get("denylists", {})),
            execution=_parse_execution(data.get("execution", {})),
            path=candidate,
        )
        # Surface unknown restriction names at load time
        config.restrictions()
        return config

    return SafeCmdConfig()


def _string_list(raw: dict, key: str) -> List[str]:
    value = raw.get(key) or []
    if isinstance(value, str) or not all(isinstance(item, str) for item in value):
        raise ArgumentError(f"'{key}' must be a list of strings")
    return list(value)


def _parse_restrictions(raw: dict) -> RestrictionSettings:
    if "enabled" not in raw:
        return RestrictionSettings()
    return RestrictionSettings(enabled=_string_list(raw, "enabled"))


def _parse_denylists(raw: dict) -> DenylistSettings:
    return DenylistSettings(
        extra_shell_names=_string_list(raw, "extra_shell_names"),
        extra_binary_directories=_string_list(raw, "extra_binary_directories"),
        extra_banned_executables=_string_list(raw, "extra_banned_executables"),
        extra_sensitive_files=_string_list(raw, "extra_sensitive_files"),
    )


def _parse_execution(raw: dict) -> ExecutionSettings:
    timeout = raw.get("timeout", DEFAULT_TIMEOUT)
    max_output = raw.get("max_output_bytes", MAX_OUTPUT_BYTES)
    return ExecutionSettings(
        timeout=float(timeout) if timeout is not None else None,
        max_output_bytes=int(max_output),
    )
