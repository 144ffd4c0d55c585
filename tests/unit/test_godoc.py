"""Unit tests for godocs.godoc, the load orchestrator.

The front-end, resolver and toolchain are fakes from tests/conftest.py, so
these tests pin down the cache, freshness and fallback rules without a Go
installation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from godocs.cache import CacheStore, cache_key
from godocs.errors import ErrorCode, GodocsError
from godocs.godoc import Godoc, suggest_symbols, validate_inputs
from godocs.models.cache import CacheEntry, Provenance
from godocs.models.docs import PackageDoc, SymbolDoc
from godocs.models.source import InterfaceElem, InterfaceType, ModuleInfo, TypeExpr

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from godocs.models.source import SourceUnit
    from tests.conftest import FakeClock, FakeFrontend, FakeResolver, FakeToolchain

REMOTE = "github.com/acme/widgets"
SANDBOX = "/tmp/godocs-sandbox"


@pytest.fixture()
def godoc(
    memory_cache: CacheStore,
    toolchain: FakeToolchain,
    frontend: FakeFrontend,
    resolver: FakeResolver,
    workdir: str,
) -> Godoc:
    return Godoc(memory_cache, toolchain, workdir=workdir, frontend=frontend, resolver=resolver)


def _fmt_unit(unit_factory: Callable[..., SourceUnit]) -> SourceUnit:
    return unit_factory("fmt", name="fmt", doc="Package fmt implements formatted I/O.")


def _remote_unit(unit_factory: Callable[..., SourceUnit], version: str) -> SourceUnit:
    return unit_factory(REMOTE, module=ModuleInfo(path=REMOTE, version=version))


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidation:
    @pytest.mark.parametrize(
        ("import_path", "symbol", "code"),
        [
            ("", "", ErrorCode.EMPTY_IMPORT_PATH),
            ("   ", "", ErrorCode.EMPTY_IMPORT_PATH),
            ("../etc", "", ErrorCode.INVALID_IMPORT_PATH),
            ("example.com/a/../b", "", ErrorCode.INVALID_IMPORT_PATH),
            ("/usr/lib/go", "", ErrorCode.INVALID_IMPORT_PATH),
            ("fmt", "1Printf", ErrorCode.INVALID_SYMBOL),
            ("fmt", "Client..Do", ErrorCode.INVALID_SYMBOL),
            ("fmt", "Print-f", ErrorCode.INVALID_SYMBOL),
        ],
    )
    def test_rejected(self, import_path: str, symbol: str, code: ErrorCode) -> None:
        with pytest.raises(GodocsError) as exc_info:
            validate_inputs(import_path, symbol)
        assert exc_info.value.code == code
        assert exc_info.value.is_input_error

    @pytest.mark.parametrize("symbol", ["", "Printf", "Client.Do", "_private", "A.B.C"])
    def test_accepted(self, symbol: str) -> None:
        validate_inputs("fmt", symbol)

    async def test_invalid_input_does_no_work(
        self, godoc: Godoc, frontend: FakeFrontend, toolchain: FakeToolchain
    ) -> None:
        with pytest.raises(GodocsError):
            await godoc.load("/abs/path")
        assert frontend.calls == []
        assert toolchain.commands == []


class TestSuggestions:
    def test_close_matches_first(self) -> None:
        assert suggest_symbols("Prinf", ["Printf", "Println", "Sprintf", "Errorf"])[0] == "Printf"

    def test_nothing_close(self) -> None:
        assert suggest_symbols("Zzz", ["Printf", "Println"]) == []


# ---------------------------------------------------------------------------
# Cache behaviour
# ---------------------------------------------------------------------------


class TestCaching:
    async def test_standard_package_loaded_from_goroot(
        self,
        godoc: Godoc,
        frontend: FakeFrontend,
        resolver: FakeResolver,
        unit_factory: Callable[..., SourceUnit],
    ) -> None:
        frontend.add("fmt", resolver.goroot_src, _fmt_unit(unit_factory))
        doc = await godoc.load("fmt")
        assert isinstance(doc, PackageDoc)
        assert doc.name == "fmt"
        assert doc.synopsis == "Package fmt implements formatted I/O."
        assert frontend.calls == [("fmt", resolver.goroot_src, False)]
        assert resolver.resolved == []

    async def test_second_load_is_a_cache_hit(
        self,
        godoc: Godoc,
        frontend: FakeFrontend,
        resolver: FakeResolver,
        unit_factory: Callable[..., SourceUnit],
    ) -> None:
        frontend.add("fmt", resolver.goroot_src, _fmt_unit(unit_factory))
        first = await godoc.load("fmt")
        second = await godoc.load("fmt")
        assert first == second
        assert len(frontend.calls) == 1

    async def test_aliases_written(
        self,
        godoc: Godoc,
        memory_cache: CacheStore,
        frontend: FakeFrontend,
        resolver: FakeResolver,
        unit_factory: Callable[..., SourceUnit],
    ) -> None:
        frontend.add("fmt", resolver.goroot_src, _fmt_unit(unit_factory))
        await godoc.load("fmt")
        exact = memory_cache.get(cache_key("fmt", "go1.22.0", ""))
        agnostic = memory_cache.get(cache_key("fmt", "", ""))
        assert exact is not None
        assert exact is agnostic
        assert exact.provenance == Provenance(toolchain_version="go1.22.0")

    async def test_stale_toolchain_entry_is_rebuilt(
        self,
        godoc: Godoc,
        memory_cache: CacheStore,
        frontend: FakeFrontend,
        resolver: FakeResolver,
        unit_factory: Callable[..., SourceUnit],
    ) -> None:
        stale = CacheEntry(
            package=PackageDoc(import_path="fmt", name="fmt", doc="old"),
            provenance=Provenance(toolchain_version="go1.21.0"),
        )
        await memory_cache.set(stale, cache_key("fmt", "go1.22.0", ""))
        frontend.add("fmt", resolver.goroot_src, _fmt_unit(unit_factory))

        doc = await godoc.load("fmt")
        assert doc.doc == "Package fmt implements formatted I/O."
        assert len(frontend.calls) == 1

    async def test_remote_entry_trusted_regardless_of_toolchain(
        self, godoc: Godoc, memory_cache: CacheStore, frontend: FakeFrontend
    ) -> None:
        cached = CacheEntry(
            package=PackageDoc(import_path=REMOTE, name="widgets", doc="cached"),
            provenance=Provenance(toolchain_version="go1.10.0", module_version="v1.2.0"),
        )
        await memory_cache.set(cached, cache_key(REMOTE, "v1.2.0", ""))
        doc = await godoc.load(REMOTE, version="v1.2.0")
        assert doc.doc == "cached"
        assert frontend.calls == []

    async def test_current_module_served_from_cache(
        self,
        godoc: Godoc,
        frontend: FakeFrontend,
        workdir: str,
        unit_factory: Callable[..., SourceUnit],
    ) -> None:
        unit = unit_factory("example.com/app", name="app", module=ModuleInfo(path="example.com/app", main=True))
        frontend.add(".", workdir, unit)
        first = await godoc.load(".")
        second = await godoc.load(".")
        assert first.import_path == "example.com/app"
        assert second == first
        assert len(frontend.calls) == 1

    async def test_current_module_rebuilt_after_toolchain_change(
        self,
        godoc: Godoc,
        toolchain: FakeToolchain,
        frontend: FakeFrontend,
        workdir: str,
        unit_factory: Callable[..., SourceUnit],
    ) -> None:
        unit = unit_factory("example.com/app", name="app", module=ModuleInfo(path="example.com/app", main=True))
        frontend.add(".", workdir, unit)
        await godoc.load(".")
        toolchain.goversion = "go1.23.0"
        await godoc.load(".")
        assert len(frontend.calls) == 2

    async def test_entry_without_requested_payload_is_a_miss(
        self,
        godoc: Godoc,
        memory_cache: CacheStore,
        frontend: FakeFrontend,
        resolver: FakeResolver,
        unit_factory: Callable[..., SourceUnit],
    ) -> None:
        wrong = CacheEntry(
            package=PackageDoc(import_path="fmt", name="fmt"),
            provenance=Provenance(toolchain_version="go1.22.0"),
        )
        await memory_cache.set(wrong, cache_key("fmt", "go1.22.0", "Assemble"))
        frontend.add("fmt", resolver.goroot_src, _fmt_unit(unit_factory))

        sym = await godoc.load("fmt", "Assemble")
        assert isinstance(sym, SymbolDoc)
        assert len(frontend.calls) == 1

    async def test_cached_result_backfills_import_path(self, godoc: Godoc, memory_cache: CacheStore) -> None:
        cached = CacheEntry(
            symbol=SymbolDoc(package="widgets", kind="func", name="New"),
            provenance=Provenance(module_version="v1.0.0"),
        )
        await memory_cache.set(cached, cache_key(REMOTE, "v1.0.0", "New"))
        sym = await godoc.load(REMOTE, "New", "v1.0.0")
        assert sym.import_path == REMOTE
        assert cached.symbol is not None
        assert cached.symbol.import_path == ""

    async def test_expired_entry_is_rebuilt(
        self,
        godoc: Godoc,
        clock: FakeClock,
        frontend: FakeFrontend,
        resolver: FakeResolver,
        unit_factory: Callable[..., SourceUnit],
    ) -> None:
        frontend.add("fmt", resolver.goroot_src, _fmt_unit(unit_factory))
        await godoc.load("fmt")
        clock.advance(hours=25)
        await godoc.load("fmt")
        assert len(frontend.calls) == 2

    async def test_snapshot_write_failure_is_the_calls_error(
        self,
        tmp_path: Path,
        toolchain: FakeToolchain,
        frontend: FakeFrontend,
        resolver: FakeResolver,
        workdir: str,
        unit_factory: Callable[..., SourceUnit],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def denied(*args, **kwargs):
            raise PermissionError(13, "Permission denied")

        monkeypatch.setattr("tempfile.mkstemp", denied)
        cache = CacheStore(path=tmp_path / "cache.db")
        godoc = Godoc(cache, toolchain, workdir=workdir, frontend=frontend, resolver=resolver)
        frontend.add("fmt", resolver.goroot_src, _fmt_unit(unit_factory))

        with pytest.raises(GodocsError) as exc_info:
            await godoc.load("fmt")
        assert exc_info.value.code == ErrorCode.CACHE_WRITE_FAILED
        # The documentation was still cached in memory.
        assert cache.get(cache_key("fmt", "go1.22.0", "")) is not None


# ---------------------------------------------------------------------------
# Symbols
# ---------------------------------------------------------------------------


class TestSymbols:
    async def test_method_symbol(
        self,
        godoc: Godoc,
        frontend: FakeFrontend,
        workdir: str,
        unit_factory: Callable[..., SourceUnit],
    ) -> None:
        frontend.add("example.com/widgets", workdir, unit_factory())
        sym = await godoc.load("example.com/widgets", "Widget.Spin")
        assert isinstance(sym, SymbolDoc)
        assert sym.kind == "method"
        assert sym.receiver == "Widget"
        assert sym.import_path == "example.com/widgets"

    async def test_symbol_not_found_suggests(
        self,
        godoc: Godoc,
        frontend: FakeFrontend,
        workdir: str,
        unit_factory: Callable[..., SourceUnit],
    ) -> None:
        frontend.add("example.com/widgets", workdir, unit_factory())
        with pytest.raises(GodocsError) as exc_info:
            await godoc.load("example.com/widgets", "Widget.Spn")
        assert exc_info.value.code == ErrorCode.SYMBOL_NOT_FOUND
        assert "Widget.Spin" in exc_info.value.suggestion

    async def test_symbol_and_package_cached_separately(
        self,
        godoc: Godoc,
        memory_cache: CacheStore,
        frontend: FakeFrontend,
        workdir: str,
        unit_factory: Callable[..., SourceUnit],
    ) -> None:
        frontend.add("example.com/widgets", workdir, unit_factory())
        await godoc.load("example.com/widgets", "NewWidget")
        await godoc.load("example.com/widgets", "NewWidget")
        await godoc.load("example.com/widgets")
        assert len(frontend.calls) == 2
        entry = memory_cache.get(cache_key("example.com/widgets", "", "NewWidget"))
        assert entry is not None
        assert entry.symbol is not None
        assert entry.package is None

    async def test_embedded_interface_triggers_typed_reload(
        self,
        godoc: Godoc,
        frontend: FakeFrontend,
        workdir: str,
        unit_factory: Callable[..., SourceUnit],
    ) -> None:
        unit = unit_factory()
        widget = unit.package.types[0]
        widget.spec.type = InterfaceType(elems=[InterfaceElem(name=None, type=TypeExpr("io.Reader"))])
        frontend.add("example.com/widgets", workdir, unit)
        await godoc.load("example.com/widgets")
        assert [need for _, _, need in frontend.calls] == [False, True]


# ---------------------------------------------------------------------------
# Dependency fallback
# ---------------------------------------------------------------------------


class TestDependencyFallback:
    async def test_sandbox_used_when_local_load_fails(
        self,
        godoc: Godoc,
        memory_cache: CacheStore,
        frontend: FakeFrontend,
        resolver: FakeResolver,
        unit_factory: Callable[..., SourceUnit],
    ) -> None:
        frontend.add(REMOTE, SANDBOX, _remote_unit(unit_factory, "v1.2.0"))
        resolver.versions[REMOTE] = "v1.2.0"

        doc = await godoc.load(REMOTE, version="v1.2.0")
        assert doc.import_path == REMOTE
        assert resolver.resolved == [(REMOTE, "v1.2.0")]
        assert resolver.released == [SANDBOX]

        entry = memory_cache.get(cache_key(REMOTE, "v1.2.0", ""))
        assert entry is not None
        assert entry.provenance == Provenance(module_version="v1.2.0")
        assert memory_cache.get(cache_key(REMOTE, "", "")) is entry

    async def test_actual_version_alias(
        self,
        godoc: Godoc,
        memory_cache: CacheStore,
        frontend: FakeFrontend,
        resolver: FakeResolver,
        unit_factory: Callable[..., SourceUnit],
    ) -> None:
        frontend.add(REMOTE, SANDBOX, _remote_unit(unit_factory, "v1.3.0"))
        resolver.versions[REMOTE] = "v1.3.0"

        await godoc.load(REMOTE)
        assert memory_cache.get(cache_key(REMOTE, "v1.3.0", "")) is not None
        await godoc.load(REMOTE, version="v1.3.0")
        assert len(frontend.calls) == 2  # local attempt + sandbox load, nothing after

    async def test_local_module_at_other_version_falls_back(
        self,
        godoc: Godoc,
        frontend: FakeFrontend,
        resolver: FakeResolver,
        workdir: str,
        unit_factory: Callable[..., SourceUnit],
    ) -> None:
        frontend.add(REMOTE, workdir, _remote_unit(unit_factory, "v1.0.0"))
        frontend.add(REMOTE, SANDBOX, _remote_unit(unit_factory, "v2.0.0"))
        resolver.versions[REMOTE] = "v2.0.0"

        await godoc.load(REMOTE, version="v2.0.0")
        assert [d for _, d, _ in frontend.calls] == [workdir, SANDBOX]

    async def test_local_module_at_requested_version_needs_no_sandbox(
        self,
        godoc: Godoc,
        frontend: FakeFrontend,
        resolver: FakeResolver,
        workdir: str,
        unit_factory: Callable[..., SourceUnit],
    ) -> None:
        frontend.add(REMOTE, workdir, _remote_unit(unit_factory, "v1.0.0"))
        await godoc.load(REMOTE, version="v1.0.0")
        assert resolver.resolved == []

    async def test_resolution_failure_names_both_causes(
        self, godoc: Godoc, resolver: FakeResolver
    ) -> None:
        resolver.resolve_error = GodocsError(code=ErrorCode.COMMAND_FAILED, message="go get: unknown revision")
        with pytest.raises(GodocsError) as exc_info:
            await godoc.load(REMOTE, version="v9.9.9")
        err = exc_info.value
        assert err.code == ErrorCode.RESOLUTION_FAILED
        assert "cannot find package" in err.message
        assert "go get: unknown revision" in err.message
        assert err.__cause__ is resolver.resolve_error

    async def test_sandbox_load_failure(
        self, godoc: Godoc, frontend: FakeFrontend, resolver: FakeResolver
    ) -> None:
        frontend.add(REMOTE, SANDBOX, GodocsError(code=ErrorCode.PACKAGE_LOAD_FAILED, message="no Go files"))
        with pytest.raises(GodocsError) as exc_info:
            await godoc.load(REMOTE)
        assert exc_info.value.code == ErrorCode.PACKAGE_LOAD_FAILED
        assert exc_info.value.message == "load with module dependency failed: no Go files"
        assert resolver.released == [SANDBOX]

    async def test_timeout_is_not_folded(
        self, godoc: Godoc, frontend: FakeFrontend, resolver: FakeResolver, workdir: str
    ) -> None:
        timeout = GodocsError(code=ErrorCode.COMMAND_TIMEOUT, message="go list: timed out", recoverable=True)
        frontend.add(REMOTE, workdir, timeout)
        with pytest.raises(GodocsError) as exc_info:
            await godoc.load(REMOTE)
        assert exc_info.value is timeout
        assert resolver.resolved == []


class TestWithOptions:
    def test_shares_cache_with_new_target(self, godoc: Godoc, memory_cache: CacheStore, tmp_path: Path) -> None:
        other = godoc.with_options(goos="windows", goarch="arm64", workdir=str(tmp_path))
        assert other.cache is memory_cache
        assert other.toolchain.goos == "windows"
        assert other.toolchain.goarch == "arm64"
        assert other.workdir == str(tmp_path.resolve())
        assert godoc.toolchain.goos == ""

    def test_unset_options_inherited(self, godoc: Godoc) -> None:
        other = godoc.with_options(goos="linux")
        assert other.workdir == godoc.workdir
        assert other.toolchain.goarch == godoc.toolchain.goarch

    def test_derived_loader_reused(self, godoc: Godoc, tmp_path: Path) -> None:
        first = godoc.with_options(goos="linux", workdir=str(tmp_path))
        assert godoc.with_options(goos="linux", workdir=str(tmp_path)) is first
        assert godoc.with_options(goos="linux", workdir=str(tmp_path / ".")) is first
        assert godoc.with_options(goos="darwin", workdir=str(tmp_path)) is not first
        assert first.resolver is godoc.with_options(goos="linux", workdir=str(tmp_path)).resolver
