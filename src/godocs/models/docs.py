from __future__ import annotations

import threading
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, PrivateAttr

from godocs.comment import to_html

SymbolKind = Literal["func", "method", "type", "const", "var"]
TypeKind = Literal["struct", "interface", "alias", "other", ""]


class ArgInfo(BaseModel):
    """A parameter or result of a function or method."""

    name: str = ""
    type: str


class ValueDoc(BaseModel):
    """A constant or variable group sharing one doc comment."""

    names: list[str]
    doc: str = ""


class FuncDoc(BaseModel):
    name: str
    args: list[ArgInfo] = []
    returns: list[ArgInfo] = []
    doc: str = ""


class MethodDoc(BaseModel):
    recv: str  # Receiver type name, e.g. "Client"
    recv_name: str = ""  # Receiver identifier, e.g. "c"
    recv_type: str = ""  # Receiver type as written or resolved, e.g. "*net/http.Client"
    name: str
    args: list[ArgInfo] = []
    returns: list[ArgInfo] = []
    doc: str = ""


class FieldDoc(BaseModel):
    name: str
    type: str
    doc: str = ""
    tag: str = ""  # Raw tag text without the surrounding quotes
    embedded: bool = False


class TypeDoc(BaseModel):
    name: str
    doc: str = ""
    decl: str = ""  # Declaration rendering, e.g. "type Reader interface {...}"
    kind: TypeKind = ""
    fields: list[FieldDoc] = []
    methods: list[MethodDoc] = []


class _RenderedDoc(BaseModel):
    """Base for results whose HTML is rendered from ``doc`` on first access.

    The rendered HTML lives on the instance, is computed at most once and is
    never serialised.
    """

    html_heading_level: ClassVar[int] = 3

    doc: str = ""

    _html: str | None = PrivateAttr(default=None)
    _html_lock: threading.Lock = PrivateAttr(default_factory=threading.Lock)

    def text(self) -> str:
        return self.doc

    def html(self) -> str:
        if self._html is None:
            with self._html_lock:
                if self._html is None:
                    self._html = to_html(self.doc, self.html_heading_level)
        return self._html

    @property
    def html_rendered(self) -> bool:
        return self._html is not None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    def __eq__(self, other: object) -> bool:
        # Render state is not part of the value.
        if not isinstance(other, BaseModel):
            return NotImplemented
        return type(self) is type(other) and self.__dict__ == other.__dict__

    __hash__ = None  # type: ignore[assignment]


class PackageDoc(_RenderedDoc):
    """Documentation for a whole Go package."""

    html_heading_level: ClassVar[int] = 2

    import_path: str
    name: str
    synopsis: str = ""
    consts: list[ValueDoc] = []
    vars: list[ValueDoc] = []
    funcs: list[FuncDoc] = []
    types: list[TypeDoc] = []


class SymbolDoc(_RenderedDoc):
    """Documentation for one declaration: func, method, type, const or var."""

    import_path: str = ""
    package: str
    kind: SymbolKind
    name: str
    receiver: str = ""  # Display name of the receiver type, e.g. "Client"
    receiver_name: str = ""
    receiver_type: str = ""
    args: list[ArgInfo] = []
    returns: list[ArgInfo] = []
    type_doc: TypeDoc | None = None
