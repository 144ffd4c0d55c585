"""Declaration tree handed from the front-end to the extractor.

Shapes mirror what a Go documentation reader sees: a package with its
doc comment, value groups, functions, and types carrying their
constructors, typed values and methods. Nodes compare and hash by
identity so they can key the ``TypeInfo`` lookup tables, the same way
syntax nodes key type-checker results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from godocs.typeinfo import TypeInfo


@dataclass(eq=False)
class TypeExpr:
    """A type expression as written in source."""

    text: str


@dataclass(eq=False)
class Param:
    """One entry of a parameter, result or receiver list."""

    names: list[str]
    type: TypeExpr
    variadic: bool = False  # declared as ``...T``; ``type`` holds ``T``


@dataclass(eq=False)
class FuncDecl:
    name: str
    doc: str = ""
    params: list[Param] = field(default_factory=list)
    results: list[Param] = field(default_factory=list)
    recv: Param | None = None
    type_params: list[str] = field(default_factory=list)


@dataclass(eq=False)
class FieldDecl:
    """A struct field. No names means an embedded field."""

    names: list[str]
    type: TypeExpr
    pointer: bool = False  # embedded as ``*T``
    doc: str = ""
    comment: str = ""  # trailing line comment
    tag: str | None = None  # raw literal including quotes


@dataclass(eq=False)
class InterfaceElem:
    """An interface element: a method (``name`` set) or an embedded type."""

    name: str | None
    type: TypeExpr  # method signature ``(x int) error`` or the embedded type
    params: list[Param] = field(default_factory=list)
    results: list[Param] = field(default_factory=list)
    doc: str = ""
    comment: str = ""


@dataclass(eq=False)
class StructType:
    fields: list[FieldDecl] = field(default_factory=list)


@dataclass(eq=False)
class InterfaceType:
    elems: list[InterfaceElem] = field(default_factory=list)


@dataclass(eq=False)
class TypeSpec:
    name: str
    type: StructType | InterfaceType | TypeExpr
    alias: bool = False
    type_params: list[str] = field(default_factory=list)
    type_params_text: str = ""  # e.g. "[K comparable, V any]"


@dataclass(eq=False)
class ValueGroup:
    """A const or var declaration; one doc comment for all its names."""

    names: list[str]
    doc: str = ""


@dataclass(eq=False)
class DocType:
    name: str
    spec: TypeSpec
    doc: str = ""
    consts: list[ValueGroup] = field(default_factory=list)
    vars: list[ValueGroup] = field(default_factory=list)
    funcs: list[FuncDecl] = field(default_factory=list)  # constructors
    methods: list[FuncDecl] = field(default_factory=list)


@dataclass(eq=False)
class DocPackage:
    name: str
    import_path: str
    doc: str = ""
    consts: list[ValueGroup] = field(default_factory=list)
    vars: list[ValueGroup] = field(default_factory=list)
    funcs: list[FuncDecl] = field(default_factory=list)
    types: list[DocType] = field(default_factory=list)


@dataclass
class ModuleInfo:
    path: str
    version: str = ""
    main: bool = False


@dataclass(eq=False)
class SourceUnit:
    """A loaded package: declarations plus optional semantic information."""

    package: DocPackage
    import_path: str  # canonical import path reported by the toolchain
    directory: str = ""
    module: ModuleInfo | None = None
    type_info: TypeInfo | None = None
