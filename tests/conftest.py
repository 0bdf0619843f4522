"""Shared test fixtures for the safecmd test suite.

Tests never start real processes unless they exercise SubprocessLauncher
directly; everything else goes through RecordingLauncher.
"""
from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import pytest

from safecmd import Resolved


def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "posix: tests that rely on POSIX paths and programs",
    )


@dataclass
class LaunchCall:
    argv: List[str]
    env: Optional[Mapping[str, str]]
    cwd: Optional[Path]
    timeout: Optional[float]


@dataclass
class RecordingLauncher:
    """Launcher that records calls instead of starting processes."""

    calls: List[LaunchCall] = field(default_factory=list)
    result: Any = "launched"

    def launch(self, argv, env=None, cwd=None, timeout=None):
        self.calls.append(LaunchCall(list(argv), env, cwd, timeout))
        return self.result


@pytest.fixture
def launcher():
    """A RecordingLauncher; assert on ``launcher.calls``."""
    return RecordingLauncher()


@pytest.fixture
def fake_canonicalizer():
    """Canonicalizer over a virtual filesystem rooted at /work.

    Relative paths resolve under /work; entries in ``links`` act as
    symlinks. Nothing touches the real filesystem.
    """

    class FakeCanonicalizer:
        def __init__(self) -> None:
            self.links: Dict[str, str] = {}
            self.calls: List[str] = []

        def __call__(self, path: str):
            self.calls.append(path)
            absolute = posixpath.normpath(posixpath.join("/work", path))
            return Resolved(self.links.get(absolute, absolute))

    return FakeCanonicalizer()
