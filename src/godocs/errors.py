from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    EMPTY_IMPORT_PATH = "EMPTY_IMPORT_PATH"
    INVALID_IMPORT_PATH = "INVALID_IMPORT_PATH"
    INVALID_SYMBOL = "INVALID_SYMBOL"
    INVALID_VERSION = "INVALID_VERSION"
    INVALID_OPTION = "INVALID_OPTION"
    PACKAGE_LOAD_FAILED = "PACKAGE_LOAD_FAILED"
    RESOLUTION_FAILED = "RESOLUTION_FAILED"
    SYMBOL_NOT_FOUND = "SYMBOL_NOT_FOUND"
    CACHE_WRITE_FAILED = "CACHE_WRITE_FAILED"
    CACHE_UNAVAILABLE = "CACHE_UNAVAILABLE"
    COMMAND_FAILED = "COMMAND_FAILED"
    COMMAND_TIMEOUT = "COMMAND_TIMEOUT"


INPUT_ERRORS: frozenset[ErrorCode] = frozenset(
    {
        ErrorCode.EMPTY_IMPORT_PATH,
        ErrorCode.INVALID_IMPORT_PATH,
        ErrorCode.INVALID_SYMBOL,
        ErrorCode.INVALID_VERSION,
        ErrorCode.INVALID_OPTION,
    }
)


class GodocsError(Exception):
    """Raised for all expected failure conditions of a documentation load.

    Caught by server.py and serialised into the MCP error response.
    Business logic lets it propagate; wrapping layers chain the original
    exception with ``raise ... from exc`` so the root cause stays inspectable.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        suggestion: str = "",
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.recoverable = recoverable

    @property
    def is_input_error(self) -> bool:
        return self.code in INPUT_ERRORS

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "suggestion": self.suggestion,
                "recoverable": self.recoverable,
            }
        }
