"""Protocol definitions for the collaborators at the edge of the checker.

The policy engine and run_command() depend on these interfaces, not on
the concrete subprocess launcher or the os.path based canonicalizer, so
tests and embedding applications can substitute their own.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, List, Mapping, Optional, Protocol

from .canonical import CanonicalPath


class Canonicalizer(Protocol):
    """Resolve a path string to its canonical form.

    Implementations must not raise; failures are reported as Unresolvable.
    """

    def __call__(self, path: str) -> CanonicalPath:
        ...


class Launcher(Protocol):
    """Start a process once every check has passed.

    Receives the final argument vector unchanged. Whatever it returns is
    handed back to the caller of run_command().
    """

    def launch(
        self,
        argv: List[str],
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[Path] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        ...


__all__ = [
    "Canonicalizer",
    "Launcher",
]
