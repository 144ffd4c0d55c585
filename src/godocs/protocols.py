"""Protocol interfaces for swappable components.

``Godoc`` references these protocols, not the concrete implementations, so
tests can substitute in-memory front-ends, resolvers and caches.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from contextlib import AbstractAsyncContextManager

    from godocs.models.cache import CacheEntry
    from godocs.models.source import SourceUnit


class Result(Protocol):
    """A load result: a package or a single symbol."""

    def text(self) -> str: ...

    def html(self) -> str: ...

    def to_dict(self) -> dict[str, Any]: ...


class CacheProtocol(Protocol):
    """Interface for the documentation cache."""

    def get(self, key: str) -> CacheEntry | None: ...

    async def set(self, entry: CacheEntry, *keys: str) -> None: ...

    async def persist(self) -> None: ...


class FrontendProtocol(Protocol):
    """Interface for the component that parses a package into declarations."""

    async def load(self, import_path: str, directory: str, *, need_types: bool = False) -> SourceUnit: ...


class ResolverProtocol(Protocol):
    """Interface for locating a directory a package can be loaded from."""

    async def source_dir_for(self, import_path: str) -> str: ...

    def resolve(self, import_path: str, version: str) -> AbstractAsyncContextManager[str]: ...

    async def module_version(self, directory: str, import_path: str) -> str: ...
