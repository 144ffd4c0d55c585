"""Shared test fixtures for the godocs test suite.

The fakes stand in for the Go toolchain, the front-end and the dependency
resolver so the orchestration and cache logic can be tested without a Go
installation.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest

from godocs.cache import CacheStore
from godocs.errors import ErrorCode, GodocsError
from godocs.models.source import (
    DocPackage,
    DocType,
    FieldDecl,
    FuncDecl,
    ModuleInfo,
    Param,
    SourceUnit,
    StructType,
    TypeExpr,
    TypeSpec,
    ValueGroup,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable


class FakeClock:
    """Settable clock for TTL tests."""

    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeToolchain:
    """Answers the toolchain queries ``Godoc`` makes without running ``go``."""

    def __init__(self, version: str = "go1.22.0", goroot: str = "/usr/local/go") -> None:
        self.goversion = version
        self.goroot_dir = goroot
        self.binary = "go"
        self.goos = ""
        self.goarch = ""
        self.timeout = 120.0
        self.requirements: dict[str, dict[str, str]] = {}
        self.commands: list[tuple[tuple[str, ...], str]] = []
        self.failures: dict[str, GodocsError] = {}  # subcommand -> error raised
        self.requirements_error: GodocsError | None = None

    async def version(self, *, cwd: str) -> str:
        return self.goversion

    async def goroot(self, *, cwd: str) -> str:
        return self.goroot_dir

    async def module_requirements(self, directory: str) -> dict[str, str]:
        if self.requirements_error is not None:
            raise self.requirements_error
        return dict(self.requirements.get(str(directory), {}))

    async def run(self, *args: str, cwd: str) -> str:
        self.commands.append((args, str(cwd)))
        if args and args[0] in self.failures:
            raise self.failures[args[0]]
        return ""


class FakeFrontend:
    """Returns prepared source units per directory and counts loads."""

    def __init__(self) -> None:
        self.units: dict[tuple[str, str], SourceUnit | GodocsError] = {}
        self.calls: list[tuple[str, str, bool]] = []

    def add(self, import_path: str, directory: str, unit: SourceUnit | GodocsError) -> None:
        self.units[(import_path, directory)] = unit

    async def load(self, import_path: str, directory: str, *, need_types: bool = False) -> SourceUnit:
        self.calls.append((import_path, directory, need_types))
        result = self.units.get((import_path, directory))
        if result is None:
            raise GodocsError(
                code=ErrorCode.PACKAGE_LOAD_FAILED,
                message=f"cannot find package {import_path} in {directory}",
            )
        if isinstance(result, GodocsError):
            raise result
        return result


class FakeResolver:
    """Resolver with a fixed working directory and a single fake sandbox."""

    def __init__(self, workdir: str, sandbox: str = "/tmp/godocs-sandbox") -> None:
        self.workdir = workdir
        self.sandbox = sandbox
        self.goroot_src = "/usr/local/go/src"
        self.resolve_error: GodocsError | None = None
        self.versions: dict[str, str] = {}
        self.resolved: list[tuple[str, str]] = []
        self.released: list[str] = []

    async def source_dir_for(self, import_path: str) -> str:
        if "/" not in import_path and "." not in import_path:
            return self.goroot_src
        return self.workdir

    @asynccontextmanager
    async def resolve(self, import_path: str, version: str) -> AsyncIterator[str]:
        self.resolved.append((import_path, version))
        if self.resolve_error is not None:
            raise self.resolve_error
        try:
            yield self.sandbox
        finally:
            self.released.append(self.sandbox)

    async def module_version(self, directory: str, import_path: str) -> str:
        return self.versions.get(import_path, "")


def make_unit(
    import_path: str = "example.com/widgets",
    *,
    name: str = "widgets",
    doc: str = "Package widgets builds widgets.",
    module: ModuleInfo | None = None,
) -> SourceUnit:
    """A small package: one struct with a constructor and a method, one func, values."""
    widget = DocType(
        name="Widget",
        doc="Widget is a thing.",
        spec=TypeSpec(
            name="Widget",
            type=StructType(fields=[FieldDecl(names=["Name"], type=TypeExpr("string"), doc="Name labels it.")]),
        ),
        funcs=[
            FuncDecl(
                name="NewWidget",
                doc="NewWidget returns a Widget.",
                params=[Param(names=["name"], type=TypeExpr("string"))],
                results=[Param(names=[], type=TypeExpr("*Widget"))],
            )
        ],
        methods=[
            FuncDecl(
                name="Spin",
                doc="Spin spins the widget.",
                recv=Param(names=["w"], type=TypeExpr("*Widget")),
                params=[Param(names=["n"], type=TypeExpr("int"))],
                results=[Param(names=[], type=TypeExpr("error"))],
            )
        ],
    )
    package = DocPackage(
        name=name,
        import_path=import_path,
        doc=doc,
        consts=[ValueGroup(names=["MaxSize"], doc="MaxSize bounds a widget.")],
        vars=[ValueGroup(names=["ErrBroken"], doc="ErrBroken reports a broken widget.")],
        funcs=[
            FuncDecl(
                name="Assemble",
                doc="Assemble joins parts.",
                params=[Param(names=["parts"], type=TypeExpr("string"), variadic=True)],
            )
        ],
        types=[widget],
    )
    return SourceUnit(package=package, import_path=import_path, module=module)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def memory_cache(clock: FakeClock) -> CacheStore:
    """A non-persistent cache store driven by the fake clock."""
    return CacheStore(max_entries=100, ttl=timedelta(hours=24), clock=clock)


@pytest.fixture()
def toolchain() -> FakeToolchain:
    return FakeToolchain()


@pytest.fixture()
def frontend() -> FakeFrontend:
    return FakeFrontend()


@pytest.fixture()
def workdir(tmp_path) -> str:
    """Resolved path of the working module used by ``Godoc`` in tests."""
    return str(tmp_path.resolve())


@pytest.fixture()
def resolver(workdir: str) -> FakeResolver:
    return FakeResolver(workdir)


@pytest.fixture()
def unit_factory() -> Callable[..., SourceUnit]:
    return make_unit
