"""Load orchestration: validate, consult the cache, build on a miss, write back.

``Godoc.load`` is the single entry point. A request that misses the cache
first loads the package from where it already resolves (GOROOT/src or the
working module); when that fails, the resolver provides a module directory,
possibly a throwaway sandbox, and the package is loaded from there. The
extracted documentation is cached under every key that names it.
"""

from __future__ import annotations

import re
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from rapidfuzz import fuzz, process

from godocs.cache import cache_key, derive_provenance, uniq_keys
from godocs.config import ToolchainSettings
from godocs.errors import ErrorCode, GodocsError
from godocs.extractor import extract, requires_type_info
from godocs.frontend import GoFrontend
from godocs.models.cache import CacheEntry
from godocs.resolver import DependencyResolver, expected_version, is_remote_import_path
from godocs.toolchain import Toolchain

if TYPE_CHECKING:
    from godocs.config import Settings
    from godocs.models.cache import Provenance
    from godocs.models.docs import PackageDoc, SymbolDoc
    from godocs.models.source import SourceUnit
    from godocs.protocols import CacheProtocol, FrontendProtocol, ResolverProtocol, Result

log = structlog.get_logger()

SYMBOL_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")

_SUGGESTION_LIMIT = 3
_SUGGESTION_CUTOFF = 70


def validate_inputs(import_path: str, symbol: str) -> None:
    """Reject malformed requests before any cache or toolchain work."""
    if not import_path.strip():
        raise GodocsError(
            code=ErrorCode.EMPTY_IMPORT_PATH,
            message="Import path is empty.",
            suggestion="Provide an import path such as 'fmt' or 'github.com/org/repo/pkg'.",
            recoverable=False,
        )
    if ".." in import_path:
        raise GodocsError(
            code=ErrorCode.INVALID_IMPORT_PATH,
            message=f"Invalid import path {import_path!r}: cannot contain '..'.",
            suggestion="Use a module import path, not a filesystem path.",
            recoverable=False,
        )
    if import_path.startswith("/"):
        raise GodocsError(
            code=ErrorCode.INVALID_IMPORT_PATH,
            message=f"Invalid import path {import_path!r}: cannot start with '/'.",
            suggestion="Use a module import path, not a filesystem path.",
            recoverable=False,
        )
    if symbol and not SYMBOL_RE.match(symbol):
        raise GodocsError(
            code=ErrorCode.INVALID_SYMBOL,
            message=f"Invalid symbol {symbol!r}.",
            suggestion="Use 'Name' or 'Type.Method', e.g. 'Printf' or 'Client.Do'.",
            recoverable=False,
        )


def suggest_symbols(symbol: str, candidates: list[str]) -> list[str]:
    """Closest symbol names to a misspelled one, best match first."""
    matches = process.extract(
        symbol,
        candidates,
        scorer=fuzz.ratio,
        limit=_SUGGESTION_LIMIT,
        score_cutoff=_SUGGESTION_CUTOFF,
    )
    return [name for name, _score, _idx in matches]


@dataclass
class _Build:
    package: PackageDoc
    import_path: str
    actual_version: str
    provenance: Provenance
    symbols: dict[str, SymbolDoc] = field(default_factory=dict)


class Godoc:
    """Documentation loader for Go packages, backed by a shared cache."""

    def __init__(
        self,
        cache: CacheProtocol,
        toolchain: Toolchain,
        *,
        workdir: str = ".",
        frontend: FrontendProtocol | None = None,
        resolver: ResolverProtocol | None = None,
    ) -> None:
        self.cache = cache
        self.toolchain = toolchain
        self.workdir = str(Path(workdir).expanduser().resolve())
        self.frontend: FrontendProtocol = frontend or GoFrontend(toolchain)
        self.resolver: ResolverProtocol = resolver or DependencyResolver(toolchain, self.workdir)
        # (goos, goarch, workdir) -> derived loader
        self._derived: dict[tuple[str, str, str], Godoc] = {}

    @classmethod
    def create(cls, settings: Settings, cache: CacheProtocol) -> Godoc:
        return cls(cache, Toolchain(settings.toolchain), workdir=settings.toolchain.workdir)

    def with_options(self, *, goos: str | None = None, goarch: str | None = None, workdir: str | None = None) -> Godoc:
        """A loader for another target platform or working module, sharing this cache."""
        goos = self.toolchain.goos if goos is None else goos
        goarch = self.toolchain.goarch if goarch is None else goarch
        workdir = self.workdir if workdir is None else str(Path(workdir).expanduser().resolve())
        key = (goos, goarch, workdir)
        derived = self._derived.get(key)
        if derived is None:
            settings = ToolchainSettings(
                go_binary=self.toolchain.binary,
                goos=goos,
                goarch=goarch,
                workdir=workdir,
                command_timeout_seconds=self.toolchain.timeout,
            )
            derived = Godoc(self.cache, Toolchain(settings), workdir=workdir)
            self._derived[key] = derived
        return derived

    async def load(self, import_path: str, symbol: str = "", version: str = "") -> Result:
        """Documentation for a package, or for one of its symbols when ``symbol`` is set.

        ``version`` pins a module version for remote packages; empty means
        whatever currently resolves.
        """
        validate_inputs(import_path, symbol)
        symbol = symbol.strip()

        if not symbol:
            pkg_doc, pkg_path = await self._get_or_load_package(import_path, version)
            if not pkg_doc.import_path:
                pkg_doc = pkg_doc.model_copy(update={"import_path": pkg_path or import_path})
            return pkg_doc

        sym_doc, pkg_path = await self._get_or_load_symbol(import_path, symbol, version)
        if not sym_doc.import_path:
            sym_doc = sym_doc.model_copy(update={"import_path": pkg_path or import_path})
        return sym_doc

    async def _is_fresh(self, import_path: str, entry: CacheEntry) -> bool:
        if is_remote_import_path(import_path):
            return True
        return entry.provenance.toolchain_version == await self.toolchain.version(cwd=self.workdir)

    async def _get_or_load_package(self, import_path: str, version: str) -> tuple[PackageDoc, str]:
        expected = await expected_version(import_path, version, self.toolchain, self.workdir)
        key = cache_key(import_path, expected, "")

        entry = self.cache.get(key)
        if entry is not None and entry.package is not None and await self._is_fresh(import_path, entry):
            log.debug("cache_hit", import_path=import_path, version=expected)
            return entry.package, entry.package.import_path
        log.debug("cache_miss", import_path=import_path, version=expected, stale=entry is not None)

        built = await self._build_doc(import_path, version, need_symbols=False)
        keys = uniq_keys(
            key,
            cache_key(import_path, "", ""),
            cache_key(import_path, built.actual_version, "") if built.actual_version else "",
        )
        await self.cache.set(CacheEntry(package=built.package, provenance=built.provenance), *keys)
        return built.package, built.import_path

    async def _get_or_load_symbol(self, import_path: str, symbol: str, version: str) -> tuple[SymbolDoc, str]:
        expected = await expected_version(import_path, version, self.toolchain, self.workdir)
        key = cache_key(import_path, expected, symbol)

        entry = self.cache.get(key)
        if entry is not None and entry.symbol is not None and await self._is_fresh(import_path, entry):
            log.debug("cache_hit", import_path=import_path, symbol=symbol, version=expected)
            return entry.symbol, entry.symbol.import_path
        log.debug("cache_miss", import_path=import_path, symbol=symbol, version=expected, stale=entry is not None)

        built = await self._build_doc(import_path, version, need_symbols=True)
        sym_doc = built.symbols.get(symbol)
        if sym_doc is None:
            close = suggest_symbols(symbol, list(built.symbols))
            raise GodocsError(
                code=ErrorCode.SYMBOL_NOT_FOUND,
                message=f"Symbol {symbol!r} not found in {built.import_path!r}.",
                suggestion=f"Did you mean: {', '.join(close)}?" if close else "Load the package to list its symbols.",
                recoverable=False,
            )

        keys = uniq_keys(
            key,
            cache_key(import_path, "", symbol),
            cache_key(import_path, built.actual_version, symbol) if built.actual_version else "",
        )
        await self.cache.set(CacheEntry(symbol=sym_doc, provenance=built.provenance), *keys)
        return sym_doc, built.import_path

    async def _load_unit(self, import_path: str, directory: str) -> SourceUnit:
        unit = await self.frontend.load(import_path, directory)
        if requires_type_info(unit.package):
            log.debug("reload_with_types", import_path=import_path, directory=directory)
            unit = await self.frontend.load(import_path, directory, need_types=True)
        return unit

    async def _load_local(self, import_path: str, version: str) -> SourceUnit:
        directory = await self.resolver.source_dir_for(import_path)
        unit = await self._load_unit(import_path, directory)
        module = unit.module
        if version and module is not None and not module.main and module.version and module.version != version:
            raise GodocsError(
                code=ErrorCode.PACKAGE_LOAD_FAILED,
                message=f"{import_path} resolves to {module.path}@{module.version}, not {version}",
                suggestion="",
                recoverable=False,
            )
        return unit

    async def _build_doc(self, import_path: str, version: str, *, need_symbols: bool) -> _Build:
        version = version.strip()
        toolchain_version = await self.toolchain.version(cwd=self.workdir)
        remote = is_remote_import_path(import_path)

        try:
            unit = await self._load_local(import_path, version)
        except GodocsError as local_exc:
            if local_exc.code == ErrorCode.COMMAND_TIMEOUT:
                raise
            log.info("local_load_failed", import_path=import_path, version=version, error=local_exc.message)
            return await self._build_in_module(
                import_path, version, local_exc, toolchain_version, need_symbols=need_symbols
            )

        extraction = extract(unit, symbols=need_symbols)
        return _Build(
            package=extraction.package,
            import_path=unit.import_path,
            actual_version=version,
            provenance=derive_provenance(unit.module, version, toolchain_version, remote=remote),
            symbols=extraction.symbols,
        )

    async def _build_in_module(
        self,
        import_path: str,
        version: str,
        local_exc: GodocsError,
        toolchain_version: str,
        *,
        need_symbols: bool,
    ) -> _Build:
        async with AsyncExitStack() as stack:
            try:
                directory = await stack.enter_async_context(self.resolver.resolve(import_path, version))
            except GodocsError as exc:
                if exc.code == ErrorCode.COMMAND_TIMEOUT:
                    raise
                raise GodocsError(
                    code=ErrorCode.RESOLUTION_FAILED,
                    message=(
                        f"local load failed ({local_exc.message}) and "
                        f"module dependency setup failed ({exc.message})"
                    ),
                    suggestion="Check the import path and version, and that the module is reachable.",
                    recoverable=exc.recoverable,
                ) from exc

            try:
                unit = await self._load_unit(import_path, directory)
            except GodocsError as exc:
                if exc.code == ErrorCode.COMMAND_TIMEOUT:
                    raise
                raise GodocsError(
                    code=ErrorCode.PACKAGE_LOAD_FAILED,
                    message=f"load with module dependency failed: {exc.message}",
                    suggestion=exc.suggestion,
                    recoverable=exc.recoverable,
                ) from exc

            actual = await self.resolver.module_version(directory, import_path) or version
            extraction = extract(unit, symbols=need_symbols)

        return _Build(
            package=extraction.package,
            import_path=unit.import_path,
            actual_version=actual,
            provenance=derive_provenance(
                unit.module, actual, toolchain_version, remote=is_remote_import_path(import_path)
            ),
            symbols=extraction.symbols,
        )
