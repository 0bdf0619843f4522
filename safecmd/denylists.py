"""Denylist tables consumed by the policy engine.

Tables are immutable and built once. DEFAULT_DENYLISTS is shared by every
call that does not pass its own; callers that need different entries build
a new instance with Denylists.extended() or the constructor.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import FrozenSet, Iterable

SHELL_NAMES = frozenset(["bash", "sh", "zsh", "csh", "tcsh", "dash", "ksh"])

BINARY_DIRECTORIES = frozenset(["/bin", "/usr/bin", "/usr/local/bin", "/sbin", "/usr/sbin"])

BANNED_EXECUTABLES = frozenset([
    # reverse shells, exfiltration, downloading malware
    "nc",
    "curl",
    "wget",
    # installs new system packages
    "dpkg",
    "rpm",
])

SENSITIVE_FILES = frozenset([
    "/etc/passwd",
    "/etc/shadow",
    "/etc/group",
    "/etc/gshadow",
    "/etc/sysconfig/network",
    "/etc/network/interfaces",
    "/etc/resolv.conf",
    "/etc/sudoers",
    "/etc/hosts",
])


@dataclass(frozen=True)
class Denylists:
    """Names and paths the policy engine refuses or treats specially.

    - shell_names: basenames treated as shells for the chaining check
    - binary_directories: directories whose ``*sh`` executables are shells
    - banned_executables: basenames refused outright
    - sensitive_files: absolute paths no argument may resolve to
    """

    shell_names: FrozenSet[str] = field(default=SHELL_NAMES)
    binary_directories: FrozenSet[str] = field(default=BINARY_DIRECTORIES)
    banned_executables: FrozenSet[str] = field(default=BANNED_EXECUTABLES)
    sensitive_files: FrozenSet[str] = field(default=SENSITIVE_FILES)

    def __post_init__(self) -> None:
        # Accept any iterable but always store frozensets
        for name in ("shell_names", "binary_directories", "banned_executables", "sensitive_files"):
            object.__setattr__(self, name, frozenset(getattr(self, name)))

    def extended(
        self,
        shell_names: Iterable[str] = (),
        binary_directories: Iterable[str] = (),
        banned_executables: Iterable[str] = (),
        sensitive_files: Iterable[str] = (),
    ) -> "Denylists":
        """Return a copy with extra entries added to each table."""
        return replace(
            self,
            shell_names=self.shell_names | frozenset(shell_names),
            binary_directories=self.binary_directories | frozenset(binary_directories),
            banned_executables=self.banned_executables | frozenset(banned_executables),
            sensitive_files=self.sensitive_files | frozenset(sensitive_files),
        )


DEFAULT_DENYLISTS = Denylists()


__all__ = [
    "BANNED_EXECUTABLES",
    "BINARY_DIRECTORIES",
    "DEFAULT_DENYLISTS",
    "Denylists",
    "SENSITIVE_FILES",
    "SHELL_NAMES",
]
