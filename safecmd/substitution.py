"""Expansion of ``${name}`` references in command tokens.

Names are read greedily over ``[A-Za-z0-9._+-]`` and looked up in a
caller-supplied mapping. Values may be plain strings (anything with a
``str()``) or ``os.PathLike`` objects; paths are made absolute and written
with the platform separator. Substituted values are not re-scanned.
"""
from __future__ import annotations

import logging
import os
import string
from typing import Any, Mapping, Optional

from .errors import SubstitutionError

logger = logging.getLogger(__name__)

KEY_CHARACTERS = frozenset(string.ascii_letters + string.digits + "._+-")

SubstitutionMap = Mapping[str, Any]


def fix_separators(value: str) -> str:
    """Replace ``/`` and ``\\`` with the platform path separator."""
    return value.replace("/", os.sep).replace("\\", os.sep)


def _lookup(mapping: SubstitutionMap, name: str) -> Optional[str]:
    value = mapping.get(name)
    if value is None:
        return None
    if isinstance(value, os.PathLike):
        return fix_separators(os.path.abspath(os.fspath(value)))
    return str(value)


def substitute(
    token: str,
    mapping: Optional[SubstitutionMap],
    lenient: bool = True,
) -> str:
    """Expand every ``${name}`` in ``token`` from ``mapping``.

    Args:
        token: Text to expand
        mapping: Name/value pairs; ``None`` or empty leaves the token as is
        lenient: Keep unknown references literally instead of failing

    Returns:
        The expanded token

    Raises:
        SubstitutionError: If a reference is not closed with ``}``, or a
            name is unknown and ``lenient`` is False
    """
    if not token:
        return ""
    if not mapping:
        return token

    out = []
    i = 0
    length = len(token)
    while i < length:
        ch = token[i]
        if ch != "$" or i + 1 >= length or token[i + 1] != "{":
            out.append(ch)
            i += 1
            continue

        end = i + 2
        while end < length and token[end] in KEY_CHARACTERS:
            end += 1
        name = token[i + 2:end]

        if end >= length or token[end] != "}":
            raise SubstitutionError(f"Delimiter not found for : {name}")

        value = _lookup(mapping, name)
        if value is not None:
            out.append(value)
        elif lenient:
            out.append("${" + name + "}")
        else:
            raise SubstitutionError(f"No value found for : {name}")

        i = end + 1

    expanded = "".join(out)
    if expanded != token:
        logger.debug("Expanded %r to %r", token, expanded)
    return expanded


__all__ = [
    "KEY_CHARACTERS",
    "SubstitutionMap",
    "fix_separators",
    "substitute",
]
