"""MCP server entrypoint.

Responsibilities (and nothing more):
- Configure structlog
- Create AppState via the FastMCP lifespan context manager
- Register tools
- Start the stdio transport
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from mcp.server.fastmcp import Context, FastMCP
from mcp.types import CallToolResult, TextContent

import godocs.tools.load as t_load
from godocs import __version__
from godocs.cache import CacheStore
from godocs.config import Settings
from godocs.errors import GodocsError
from godocs.godoc import Godoc
from godocs.state import AppState

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def setup_logging(settings: Settings) -> None:
    """Configure structlog. Called once at startup before any log statements."""
    log_level = logging.getLevelNamesMapping()[settings.logging.level]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.logging.format == "json":
        processors = [*shared_processors, structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        # stdout carries the MCP JSON-RPC stream
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncGenerator[AppState, None]:
    """Create and tear down all shared resources for the server's lifetime."""
    settings = Settings()
    setup_logging(settings)

    log.info("server_starting", version=__version__, go_binary=settings.toolchain.go_binary)

    cache = await CacheStore.open(settings.cache)
    godoc = Godoc.create(settings, cache)
    state = AppState(settings=settings, cache=cache, godoc=godoc)

    log.info(
        "server_started",
        version=__version__,
        cache_entries=len(cache),
        cache_persistent=cache.persistent,
        workdir=godoc.workdir,
    )

    try:
        yield state
    finally:
        try:
            await cache.persist()
        except GodocsError as exc:
            log.warning("cache_persist_on_shutdown_failed", message=exc.message)
        log.info("server_stopping")


# ---------------------------------------------------------------------------
# FastMCP instance and tool registration
# ---------------------------------------------------------------------------

mcp = FastMCP("godocs", lifespan=lifespan)
# FastMCP doesn't expose a version kwarg, so set it on the underlying Server
# so the MCP initialize handshake reports our version, not the SDK's.
mcp._mcp_server.version = __version__  # pyright: ignore[reportPrivateUsage]


def _serialise_tool_error(error: GodocsError) -> CallToolResult:
    """Convert a GodocsError to the MCP tool error result envelope."""
    return CallToolResult(
        content=[TextContent(type="text", text=json.dumps(error.to_dict()))],
        isError=True,
    )


@mcp.tool()
async def load(
    import_path: str,
    ctx: Context,
    selector: str = "",
    version: str = "",
    goos: str = "",
    goarch: str = "",
    workdir: str = "",
) -> object:
    """Load documentation for a Go package, or one symbol of it.

    import_path is a package path ("fmt", "github.com/org/repo/pkg") or "."
    for the working module. selector names a symbol ("Printf") or a method
    ("Client.Do"); leave it empty for the whole package. version pins a
    module version for remote packages, e.g. "v1.2.3".
    """
    state: AppState = ctx.request_context.lifespan_context
    try:
        return await t_load.handle(
            import_path,
            state,
            selector=selector,
            version=version,
            goos=goos,
            goarch=goarch,
            workdir=workdir,
        )
    except GodocsError as exc:
        log.warning(
            "tool_error",
            tool="load",
            code=exc.code,
            message=exc.message,
            recoverable=exc.recoverable,
        )
        return _serialise_tool_error(exc)
    except Exception:
        log.error("tool_unexpected_error", tool="load", exc_info=True)
        raise


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()
