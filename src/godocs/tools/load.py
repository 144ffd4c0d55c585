"""Tool handler for load.

Receives AppState, delegates to the Godoc orchestrator, and returns the
JSON projection of the result. No MCP or FastMCP imports; server.py
handles the MCP wiring.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from godocs.errors import ErrorCode, GodocsError
from godocs.models.tools import LoadInput

if TYPE_CHECKING:
    from godocs.state import AppState

# Input field -> (error code, suggestion) for a rejected tool argument.
_INPUT_ERRORS: dict[str, tuple[ErrorCode, str]] = {
    "import_path": (
        ErrorCode.INVALID_IMPORT_PATH,
        "Provide an import path such as 'fmt' or 'github.com/org/repo/pkg'.",
    ),
    "selector": (ErrorCode.INVALID_SYMBOL, "Use 'Name' or 'Type.Method', e.g. 'Printf' or 'Client.Do'."),
    "version": (ErrorCode.INVALID_VERSION, "Use a module version such as 'v1.2.3', or leave it empty."),
    "goos": (ErrorCode.INVALID_OPTION, "Use a GOOS value such as 'linux', or leave it empty."),
    "goarch": (ErrorCode.INVALID_OPTION, "Use a GOARCH value such as 'amd64', or leave it empty."),
    "workdir": (ErrorCode.INVALID_OPTION, "Use a path to a Go module directory, or leave it empty."),
}


async def handle(
    import_path: str,
    state: AppState,
    *,
    selector: str = "",
    version: str = "",
    goos: str = "",
    goarch: str = "",
    workdir: str = "",
) -> dict:
    """Handle a load tool call."""
    log = structlog.get_logger().bind(tool="load", import_path=import_path, selector=selector)
    log.info("handler_called")

    try:
        validated = LoadInput(
            import_path=import_path,
            selector=selector,
            version=version,
            goos=goos,
            goarch=goarch,
            workdir=workdir,
        )
    except ValidationError as exc:
        field = exc.errors()[0]["loc"][0]
        code, suggestion = _INPUT_ERRORS.get(field, _INPUT_ERRORS["import_path"])
        if field == "import_path" and not import_path.strip():
            code = ErrorCode.EMPTY_IMPORT_PATH
        raise GodocsError(code=code, message=str(exc), suggestion=suggestion, recoverable=False) from exc

    godoc = state.godoc
    if validated.goos or validated.goarch or validated.workdir:
        godoc = godoc.with_options(
            goos=validated.goos or None,
            goarch=validated.goarch or None,
            workdir=validated.workdir or None,
        )

    result = await godoc.load(validated.import_path, validated.selector, validated.version)
    log.info("load_complete", kind=type(result).__name__)
    return result.to_dict()
