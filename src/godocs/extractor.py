"""Convert a loaded source unit into the documentation model.

``extract`` produces the ``PackageDoc`` and the symbol index in one pass.
Every collection is sorted by name so two extractions of the same source
compare equal regardless of declaration or file order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from godocs.comment import synopsis
from godocs.models.docs import (
    ArgInfo,
    FieldDoc,
    FuncDoc,
    MethodDoc,
    PackageDoc,
    SymbolDoc,
    SymbolKind,
    TypeDoc,
    TypeKind,
    ValueDoc,
)
from godocs.models.source import InterfaceType, StructType
from godocs.signature import (
    args_from_signature,
    extract_args,
    extract_results,
    method_receiver_info,
    receiver_display_name,
    results_from_signature,
    syntactic_args,
)

if TYPE_CHECKING:
    from godocs.models.source import (
        DocPackage,
        DocType,
        FieldDecl,
        InterfaceElem,
        SourceUnit,
        ValueGroup,
    )
    from godocs.typeinfo import TypeInfo


@dataclass
class Extraction:
    package: PackageDoc
    symbols: dict[str, SymbolDoc] = field(default_factory=dict)


def requires_type_info(pkg: DocPackage) -> bool:
    """True when some interface embeds another type.

    Promoted methods of an embedded interface cannot be listed from syntax
    alone, so such packages are reloaded with semantic information.
    """
    for t in pkg.types:
        spec_type = t.spec.type
        if isinstance(spec_type, InterfaceType) and any(e.name is None for e in spec_type.elems):
            return True
    return False


# Declaration rendering


def _comment_lines(raw: str) -> list[str]:
    if not raw:
        return []
    lines = []
    for segment in raw.rstrip("\n").split("\n"):
        trimmed = segment.rstrip(" \t")
        lines.append("  // " + trimmed if trimmed else "  //")
    return lines


def _struct_decl(name: str, header: str, st: StructType) -> str:
    lines = [f"type {name}{header} struct {{"]
    for f in st.fields:
        lines.extend(_comment_lines(f.doc or f.comment))
        entry = f.type.text if not f.names else f"{', '.join(f.names)} {f.type.text}"
        if f.tag is not None:
            entry = f"{entry} {f.tag}"
        lines.append("  " + entry)
    lines.append("}")
    return "\n".join(lines)


def _interface_decl(name: str, header: str, it: InterfaceType) -> str:
    lines = [f"type {name}{header} interface {{"]
    for e in it.elems:
        lines.extend(_comment_lines(e.doc or e.comment))
        entry = f"{e.name}{e.type.text}" if e.name else e.type.text
        lines.append("  " + entry)
    lines.append("}")
    return "\n".join(lines)


def type_decl(t: DocType) -> tuple[TypeKind, str]:
    """Return the type's kind and its declaration as source text."""
    spec = t.spec
    header = spec.type_params_text
    if isinstance(spec.type, InterfaceType):
        return "interface", _interface_decl(t.name, header, spec.type)
    if isinstance(spec.type, StructType):
        return "struct", _struct_decl(t.name, header, spec.type)
    if spec.alias:
        return "alias", f"type {t.name}{header} = {spec.type.text}"
    return "other", f"type {t.name}{header} {spec.type.text}"


# Fields and interface methods


def _field_type(f: FieldDecl, type_info: TypeInfo | None) -> str:
    if type_info is not None:
        resolved = type_info.type_of(f.type)
        if resolved:
            return resolved
    return f.type.text


def _embedded_name(type_str: str) -> str:
    name = type_str.removeprefix("*").split("[", 1)[0]
    return name.rsplit("/", 1)[-1].rsplit(".", 1)[-1]


def _undecorate_tag(tag: str | None) -> str:
    if not tag:
        return ""
    if tag.startswith("`"):
        return tag.strip("`")
    if len(tag) >= 2 and tag[0] == tag[-1] == '"':
        return tag[1:-1]
    return tag


def struct_field_docs(t: DocType, type_info: TypeInfo | None) -> list[FieldDoc]:
    """Struct fields in declaration order; embedded fields named after their type."""
    st = t.spec.type
    if not isinstance(st, StructType):
        return []
    fields: list[FieldDoc] = []
    for f in st.fields:
        type_str = _field_type(f, type_info)
        doc = f.doc or f.comment
        tag = _undecorate_tag(f.tag)
        if not f.names:
            fields.append(
                FieldDoc(name=_embedded_name(type_str), type=type_str, doc=doc, tag=tag, embedded=True)
            )
            continue
        fields.extend(FieldDoc(name=n, type=type_str, doc=doc, tag=tag) for n in f.names)
    return fields


def _direct_method_docs(elems: list[InterfaceElem]) -> dict[str, str]:
    docs: dict[str, str] = {}
    for e in elems:
        if e.name is not None and e.name not in docs:
            docs[e.name] = e.doc or e.comment
    return docs


def interface_method_docs(t: DocType, type_info: TypeInfo | None) -> list[MethodDoc]:
    """The complete method set of an interface type.

    Docs of methods declared directly on the interface take precedence;
    promoted methods keep the doc found on their own declaration.
    """
    it = t.spec.type
    if type_info is None or not isinstance(it, InterfaceType):
        return []
    method_set = type_info.interface_methods(t.name)
    if method_set is None:
        return []
    direct = _direct_method_docs(it.elems)
    return [
        MethodDoc(
            recv=t.name,
            recv_type=t.name,
            name=m.name,
            args=args_from_signature(m.signature),
            returns=results_from_signature(m.signature),
            doc=direct[m.name] if m.name in direct else m.doc,
        )
        for m in method_set
    ]


def _syntactic_interface_methods(t: DocType) -> list[MethodDoc]:
    it = t.spec.type
    if not isinstance(it, InterfaceType):
        return []
    methods = []
    for e in it.elems:
        if e.name is None:
            continue
        methods.append(
            MethodDoc(
                recv=t.name,
                recv_type=t.name,
                name=e.name,
                args=syntactic_args(e.params),
                returns=syntactic_args(e.results),
                doc=e.doc or e.comment,
            )
        )
    return methods


def to_type_doc(t: DocType, type_info: TypeInfo | None) -> TypeDoc:
    kind, decl = type_decl(t)

    methods: list[MethodDoc] = []
    seen: set[str] = set()
    for m in t.methods:
        recv_name, recv_type = method_receiver_info(m, type_info)
        methods.append(
            MethodDoc(
                recv=t.name,
                recv_name=recv_name,
                recv_type=recv_type or t.name,
                name=m.name,
                args=extract_args(m, type_info),
                returns=extract_results(m, type_info),
                doc=m.doc,
            )
        )
        seen.add(m.name)

    if type_info is not None:
        extra = interface_method_docs(t, type_info)
    else:
        extra = _syntactic_interface_methods(t)
    for m in extra:
        if m.name in seen:
            continue
        methods.append(m)
        seen.add(m.name)

    methods.sort(key=lambda m: m.name)

    return TypeDoc(
        name=t.name,
        doc=t.doc,
        decl=decl,
        kind=kind,
        fields=struct_field_docs(t, type_info),
        methods=methods,
    )


# Package and symbols


def _value_docs(groups: list[ValueGroup]) -> list[ValueDoc]:
    return [ValueDoc(names=list(g.names), doc=g.doc) for g in groups]


def _joined(v: ValueDoc) -> str:
    return ",".join(v.names)


def to_package_doc(unit: SourceUnit) -> PackageDoc:
    pkg = unit.package
    ti = unit.type_info

    consts = _value_docs(pkg.consts)
    vars_ = _value_docs(pkg.vars)
    funcs = [
        FuncDoc(name=f.name, args=extract_args(f, ti), returns=extract_results(f, ti), doc=f.doc)
        for f in pkg.funcs
    ]
    types: list[TypeDoc] = []

    for t in pkg.types:
        consts.extend(_value_docs(t.consts))
        vars_.extend(_value_docs(t.vars))
        funcs.extend(
            FuncDoc(name=f.name, args=extract_args(f, ti), returns=extract_results(f, ti), doc=f.doc)
            for f in t.funcs
        )
        types.append(to_type_doc(t, ti))

    consts.sort(key=_joined)
    vars_.sort(key=_joined)
    funcs.sort(key=lambda f: f.name)
    types.sort(key=lambda t: t.name)

    return PackageDoc(
        import_path=unit.import_path,
        name=pkg.name,
        synopsis=synopsis(pkg.doc),
        doc=pkg.doc,
        consts=consts,
        vars=vars_,
        funcs=funcs,
        types=types,
    )


class _SymbolIndexBuilder:
    def __init__(self, unit: SourceUnit) -> None:
        self.import_path = unit.import_path
        self.package = unit.package.name
        self.symbols: dict[str, SymbolDoc] = {}

    def add(
        self,
        key: str,
        kind: SymbolKind,
        name: str,
        doc: str,
        *,
        recv_name: str = "",
        recv_type: str = "",
        args: list[ArgInfo] | None = None,
        returns: list[ArgInfo] | None = None,
        type_doc: TypeDoc | None = None,
    ) -> None:
        if not key or key in self.symbols:
            return
        self.symbols[key] = SymbolDoc(
            import_path=self.import_path,
            package=self.package,
            kind=kind,
            name=name,
            receiver=receiver_display_name(recv_type),
            receiver_name=recv_name,
            receiver_type=recv_type,
            args=args or [],
            returns=returns or [],
            type_doc=type_doc,
            doc=doc,
        )

    def add_values(self, kind: SymbolKind, groups: list[ValueGroup]) -> None:
        for g in groups:
            for name in g.names:
                self.add(name, kind, name, g.doc)


def build_symbol_index(unit: SourceUnit) -> dict[str, SymbolDoc]:
    """Map of ``Name`` / ``Type.Name`` to symbol documentation; first entry wins."""
    pkg = unit.package
    ti = unit.type_info
    index = _SymbolIndexBuilder(unit)

    for t in pkg.types:
        td = to_type_doc(t, ti)
        index.add(t.name, "type", t.name, t.doc, type_doc=td)

        for m in td.methods:
            index.add(
                f"{t.name}.{m.name}",
                "method",
                m.name,
                m.doc,
                recv_name=m.recv_name,
                recv_type=m.recv_type or m.recv,
                args=m.args,
                returns=m.returns,
            )

        for f in t.funcs:
            args = extract_args(f, ti)
            results = extract_results(f, ti)
            index.add(f"{t.name}.{f.name}", "func", f.name, f.doc, args=args, returns=results)
            index.add(f.name, "func", f.name, f.doc, args=args, returns=results)

        index.add_values("const", t.consts)
        index.add_values("var", t.vars)

    for f in pkg.funcs:
        index.add(f.name, "func", f.name, f.doc, args=extract_args(f, ti), returns=extract_results(f, ti))

    index.add_values("const", pkg.consts)
    index.add_values("var", pkg.vars)

    return index.symbols


def extract(unit: SourceUnit, *, symbols: bool = True) -> Extraction:
    package = to_package_doc(unit)
    return Extraction(package=package, symbols=build_symbol_index(unit) if symbols else {})
