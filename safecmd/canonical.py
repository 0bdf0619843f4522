"""Path canonicalization with an explicit result type.

The policy checks compare canonical paths against denylists. Resolving a
path can fail (embedded NUL bytes, permission errors, symlink loops); those
failures come back as Unresolvable instead of raising, and the checks treat
them as "no match".
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Resolved:
    """An absolute, symlink-resolved path."""

    path: str

    @property
    def name(self) -> str:
        return os.path.basename(self.path)


@dataclass(frozen=True)
class Unresolvable:
    """A path that could not be canonicalized."""

    reason: str


CanonicalPath = Union[Resolved, Unresolvable]


def canonicalize(path: str) -> CanonicalPath:
    """Resolve ``path`` to its canonical absolute form.

    Relative paths resolve against the current working directory. Missing
    path components are not an error.
    """
    try:
        return Resolved(os.path.realpath(path))
    except (OSError, ValueError) as e:
        logger.debug("Cannot canonicalize %r: %s", path, e)
        return Unresolvable(str(e))


__all__ = [
    "CanonicalPath",
    "Resolved",
    "Unresolvable",
    "canonicalize",
]
