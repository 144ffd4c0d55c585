"""External ``go`` command invocation.

Every command runs with an explicit working directory and the inherited
environment plus deterministic overrides: module mode on, workspaces off,
and the configured target GOOS/GOARCH. Commands are bounded by a timeout,
and a timeout or a cancelled caller kills the child's whole process group
before the error or cancellation propagates.
"""

from __future__ import annotations

import asyncio
import json
import os
import signal
from contextlib import suppress
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from godocs.errors import ErrorCode, GodocsError

if TYPE_CHECKING:
    from godocs.config import ToolchainSettings

log = structlog.get_logger()

_STDERR_TAIL_CHARS = 2000


async def _kill(proc: asyncio.subprocess.Process) -> None:
    # Whole session: helpers started by go get hold the pipes open.
    with suppress(ProcessLookupError, PermissionError):
        os.killpg(proc.pid, signal.SIGKILL)
    with suppress(ProcessLookupError):
        proc.kill()
    await proc.wait()


class Toolchain:
    """Runs the ``go`` command for one target platform."""

    def __init__(self, settings: ToolchainSettings) -> None:
        self.binary = settings.go_binary
        self.goos = settings.goos
        self.goarch = settings.goarch
        self.timeout = settings.command_timeout_seconds
        self._env_cache: dict[str, str] = {}

    def environment(self) -> dict[str, str]:
        env = dict(os.environ)
        env["GO111MODULE"] = "on"
        env["GOWORK"] = "off"
        if self.goos:
            env["GOOS"] = self.goos
        if self.goarch:
            env["GOARCH"] = self.goarch
        return env

    async def run(self, *args: str, cwd: str | Path) -> str:
        """Run ``go <args>`` in ``cwd`` and return its stdout.

        Raises GodocsError with COMMAND_TIMEOUT when the command exceeds the
        configured timeout and COMMAND_FAILED on a non-zero exit. Caller
        cancellation kills the process and re-raises CancelledError.
        """
        command = " ".join([Path(self.binary).name, *args])
        try:
            proc = await asyncio.create_subprocess_exec(
                self.binary,
                *args,
                cwd=str(cwd),
                env=self.environment(),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as exc:
            raise GodocsError(
                code=ErrorCode.COMMAND_FAILED,
                message=f"{command}: {exc}",
                suggestion="Make sure the Go toolchain is installed and on PATH.",
                recoverable=False,
            ) from exc

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except TimeoutError as exc:
            await _kill(proc)
            log.warning("command_timeout", command=command, cwd=str(cwd), timeout=self.timeout)
            raise GodocsError(
                code=ErrorCode.COMMAND_TIMEOUT,
                message=f"{command}: timed out after {self.timeout:g}s",
                suggestion="Retry later or raise toolchain.command_timeout_seconds.",
                recoverable=True,
            ) from exc
        except asyncio.CancelledError:
            await _kill(proc)
            log.info("command_cancelled", command=command, cwd=str(cwd))
            raise

        if proc.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()[-_STDERR_TAIL_CHARS:]
            log.debug("command_failed", command=command, cwd=str(cwd), returncode=proc.returncode)
            raise GodocsError(
                code=ErrorCode.COMMAND_FAILED,
                message=f"{command}: exit status {proc.returncode}: {detail}",
                suggestion="Check that the import path and version exist.",
                recoverable=False,
            )

        return stdout.decode("utf-8", errors="replace")

    async def env(self, name: str, *, cwd: str | Path) -> str:
        """Return ``go env <name>``, memoized for the lifetime of the toolchain."""
        if name not in self._env_cache:
            value = await self.run("env", name, cwd=cwd)
            self._env_cache[name] = value.strip()
        return self._env_cache[name]

    async def version(self, *, cwd: str | Path) -> str:
        """The running toolchain version, e.g. ``go1.22.3``."""
        return await self.env("GOVERSION", cwd=cwd)

    async def goroot(self, *, cwd: str | Path) -> str:
        return await self.env("GOROOT", cwd=cwd)

    async def list_package(self, import_path: str, *, cwd: str | Path) -> dict:
        """Return the ``go list -json`` record for one package."""
        out = await self.run("list", "-e", "-json", "--", import_path, cwd=cwd)
        decoder = json.JSONDecoder()
        try:
            record, _ = decoder.raw_decode(out.strip())
        except json.JSONDecodeError as exc:
            raise GodocsError(
                code=ErrorCode.COMMAND_FAILED,
                message=f"go list {import_path}: unreadable output: {exc}",
                suggestion="",
                recoverable=False,
            ) from exc
        return record

    async def module_requirements(self, directory: str | Path) -> dict[str, str]:
        """Map of required module path → version from ``directory``/go.mod.

        Returns an empty dict when there is no go.mod or it cannot be read.
        A timeout is raised, not treated as an unreadable go.mod.
        """
        if not (Path(directory) / "go.mod").is_file():
            return {}
        try:
            out = await self.run("mod", "edit", "-json", cwd=directory)
            data = json.loads(out)
        except GodocsError as exc:
            if exc.code == ErrorCode.COMMAND_TIMEOUT:
                raise
            log.debug("go_mod_unreadable", directory=str(directory), exc_info=True)
            return {}
        except json.JSONDecodeError:
            log.debug("go_mod_unreadable", directory=str(directory), exc_info=True)
            return {}
        return {
            req["Path"]: (req.get("Version") or "").strip()
            for req in data.get("Require") or []
            if req.get("Path")
        }
