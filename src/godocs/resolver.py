"""Dependency resolution.

Decides where a package can be loaded from: the toolchain's own source
root, the configured working module, or a throwaway module sandbox that
fetches the requested version with ``go get``.
"""

from __future__ import annotations

import asyncio
import shutil
import tempfile
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from godocs.toolchain import Toolchain

log = structlog.get_logger()


def is_remote_import_path(import_path: str) -> bool:
    """True when the first path element looks like a domain (``github.com/...``)."""
    if import_path == ".":
        return False
    return "." in import_path.split("/", 1)[0]


def loads_from_goroot(import_path: str) -> bool:
    """Single-element standard library paths (``fmt``, ``errors``) load from GOROOT/src."""
    return import_path != "." and "/" not in import_path and "." not in import_path


async def expected_version(import_path: str, version: str, toolchain: Toolchain, workdir: str) -> str:
    """The version a cached entry for this request must have been built for.

    Empty for the current module, the toolchain version for standard and
    other local packages, and the requested version for remote ones.
    """
    if import_path == ".":
        return ""
    if not is_remote_import_path(import_path):
        return await toolchain.version(cwd=workdir)
    return version.strip()


def _required_version(requirements: dict[str, str], import_path: str) -> str | None:
    if import_path in requirements:
        return requirements[import_path]
    best: str | None = None
    best_len = 0
    for module_path, version in requirements.items():
        if import_path.startswith(module_path + "/") and len(module_path) > best_len:
            best, best_len = version, len(module_path)
    return best


class DependencyResolver:
    """Finds a module directory from which ``import_path`` can be loaded."""

    def __init__(self, toolchain: Toolchain, workdir: str) -> None:
        self.toolchain = toolchain
        self.workdir = workdir
        # "path@version" -> declared by the working module. Manifests are
        # assumed not to change during the process lifetime.
        self._declared: dict[str, bool] = {}

    async def source_dir_for(self, import_path: str) -> str:
        if loads_from_goroot(import_path):
            return str(Path(await self.toolchain.goroot(cwd=self.workdir)) / "src")
        return self.workdir

    async def declares(self, import_path: str, version: str) -> bool:
        """Whether the working module requires ``import_path`` at a compatible version."""
        key = f"{import_path}@{version}"
        cached = self._declared.get(key)
        if cached is not None:
            return cached

        # A timeout propagates here and leaves the probe uncached.
        required = _required_version(await self.toolchain.module_requirements(self.workdir), import_path)
        declared = required is not None and (not version or required == version)
        self._declared[key] = declared
        return declared

    async def module_version(self, directory: str, import_path: str) -> str:
        """The version ``directory``/go.mod requires for the module providing ``import_path``."""
        required = _required_version(await self.toolchain.module_requirements(directory), import_path)
        return (required or "").strip()

    @asynccontextmanager
    async def resolve(self, import_path: str, version: str) -> AsyncIterator[str]:
        """Yield a module directory that can load ``import_path``.

        Reuses the working module when it already declares the dependency,
        otherwise creates a sandbox module, fetches the dependency into it,
        and removes it when the context exits.
        """
        version = version.strip()
        if await self.declares(import_path, version):
            log.debug("dependency_declared", import_path=import_path, version=version, workdir=self.workdir)
            yield self.workdir
            return

        sandbox = await asyncio.to_thread(tempfile.mkdtemp, prefix="godocs-")
        try:
            await self.toolchain.run("mod", "init", Path(sandbox).name, cwd=sandbox)
            target = f"{import_path}@{version}" if version else import_path
            await self.toolchain.run("get", target, cwd=sandbox)
            log.info("sandbox_created", import_path=import_path, version=version, directory=sandbox)
            yield sandbox
        finally:
            await asyncio.to_thread(shutil.rmtree, sandbox, ignore_errors=True)
            log.debug("sandbox_removed", directory=sandbox)
