"""Integration test fixtures.

Provides a fully wired AppState whose Godoc runs against the fake toolchain,
front-end and resolver from tests/conftest.py, plus an environment for
subprocess-based MCP tests.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

from godocs.config import Settings
from godocs.godoc import Godoc
from godocs.state import AppState

if TYPE_CHECKING:
    from pathlib import Path

    from godocs.cache import CacheStore
    from tests.conftest import FakeFrontend, FakeResolver, FakeToolchain


@pytest.fixture()
def subprocess_env(tmp_path: Path) -> dict[str, str]:
    """Baseline env dict for subprocess-based MCP integration tests.

    Points the cache snapshot at an isolated tmp directory so a local
    godocs.yaml or user cache never leaks into the run.
    """
    env = os.environ.copy()
    env["GODOCS__CACHE__PATH"] = str(tmp_path / "cache.db")
    env["GODOCS__TOOLCHAIN__WORKDIR"] = str(tmp_path)
    env["GODOCS__LOGGING__FORMAT"] = "json"
    return env


@pytest.fixture()
def app_state(
    memory_cache: CacheStore,
    toolchain: FakeToolchain,
    frontend: FakeFrontend,
    resolver: FakeResolver,
    workdir: str,
) -> AppState:
    """AppState wired around a Godoc that never runs the real toolchain."""
    godoc = Godoc(memory_cache, toolchain, workdir=workdir, frontend=frontend, resolver=resolver)
    return AppState(settings=Settings(), cache=memory_cache, godoc=godoc)
