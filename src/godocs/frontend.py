"""Go front-end: ``go list`` for package discovery, tree-sitter for syntax.

``GoFrontend.load`` turns one package directory into a ``SourceUnit``: the
exported declarations grouped the way a Go documentation reader groups
them (constructors and typed values under their type, methods under their
receiver), plus, on request, a ``TypeInfo`` with package-qualified types
and flattened interface method sets.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
import tree_sitter_go
from tree_sitter import Language, Parser

from godocs.errors import ErrorCode, GodocsError
from godocs.models.source import (
    DocPackage,
    DocType,
    FieldDecl,
    FuncDecl,
    InterfaceElem,
    InterfaceType,
    ModuleInfo,
    Param,
    SourceUnit,
    StructType,
    TypeExpr,
    TypeSpec,
    ValueGroup,
)
from godocs.typeinfo import (
    PREDECLARED,
    MethodInfo,
    Qualifier,
    Signature,
    TypeInfo,
    Var,
    compact,
    default_package_name,
    first_named,
    node_text,
)

if TYPE_CHECKING:
    from tree_sitter import Node, Tree

    from godocs.toolchain import Toolchain

log = structlog.get_logger()

GO_LANGUAGE = Language(tree_sitter_go.language())

_PARAM_NODES = ("parameter_declaration", "variadic_parameter_declaration")
_METHOD_ELEMS = ("method_elem", "method_spec")
_EMBED_ELEMS = ("type_elem", "constraint_elem", "interface_type_name")
_NAMED_TYPES = ("type_identifier", "qualified_type", "generic_type", "parenthesized_type")
_DIRECTIVE_RE = re.compile(r"^(line |extern |export |[a-z0-9]+:[a-z0-9])")
_MAX_EMBED_DEPTH = 16
_TYPED_VALUE_THRESHOLD = 0.75

_ERROR_METHOD = MethodInfo(
    name="Error",
    signature=Signature(results=[Var(name="", type="string")]),
)


# Comments


def comment_text(comments: list[Node]) -> str:
    """Text of a comment group with markers and directives removed."""
    lines: list[str] = []
    for c in comments:
        raw = node_text(c)
        if raw.startswith("//"):
            body = raw[2:]
            if _DIRECTIVE_RE.match(body):
                continue
            lines.append(body[1:] if body.startswith(" ") else body)
        else:
            lines.extend(raw[2:-2].split("\n"))

    out: list[str] = []
    for line in lines:
        line = line.rstrip()
        if not line and (not out or not out[-1]):
            continue
        out.append(line)
    while out and not out[-1]:
        out.pop()
    return "\n".join(out)


def doc_comment(node: Node) -> str:
    """The comment group ending on the line directly above ``node``."""
    group: list[Node] = []
    row = node.start_point[0]
    prev = node.prev_sibling
    while prev is not None and prev.type == "comment" and prev.end_point[0] == row - 1:
        before = prev.prev_sibling
        while before is not None and before.type == "\n":
            # a newline terminator token ends on the comment's own row
            before = before.prev_sibling
        if before is not None and before.type != "comment" and before.end_point[0] == prev.start_point[0]:
            break  # trailing comment of the previous line
        group.append(prev)
        row = prev.start_point[0]
        prev = before
    group.reverse()
    return comment_text(group)


def line_comment(node: Node) -> str:
    """A comment on the same line after ``node``."""
    if node.children and node.children[-1].type == "comment":
        return comment_text([node.children[-1]])
    sib = node.next_sibling
    while sib is not None and not sib.is_named and sib.type in (";", "\n"):
        sib = sib.next_sibling
    if sib is not None and sib.type == "comment" and sib.start_point[0] == node.end_point[0]:
        return comment_text([sib])
    return ""


# Small syntax helpers


def _exported(name: str) -> bool:
    return bool(name) and name[0].isupper()


def _names(node: Node) -> list[str]:
    return [node_text(n) for n in node.children_by_field_name("name") if n.is_named]


def _base_type_name(node: Node | None) -> tuple[str, bool]:
    """Name of the named type under pointers and type arguments, and whether it is imported."""
    while node is not None and node.type in ("pointer_type", "parenthesized_type", "generic_type"):
        node = node.child_by_field_name("type") if node.type == "generic_type" else first_named(node)
    if node is None:
        return "", False
    if node.type == "type_identifier":
        return node_text(node), False
    if node.type == "qualified_type":
        return node_text(node.child_by_field_name("name")), True
    return "", False


def _type_param_names(node: Node | None) -> list[str]:
    if node is None:
        return []
    names: list[str] = []
    for decl in node.named_children:
        if decl.type == "type_parameter_declaration":
            names.extend(_names(decl))
    return names


def _receiver_type_params(recv_type: Node | None) -> list[str]:
    while recv_type is not None and recv_type.type in ("pointer_type", "parenthesized_type"):
        recv_type = first_named(recv_type)
    if recv_type is None or recv_type.type != "generic_type":
        return []
    args = recv_type.child_by_field_name("type_arguments")
    if args is None:
        return []
    return [compact(node_text(a)) for a in args.named_children if a.type != "comment"]


def _param_decls(node: Node | None) -> list[Node]:
    if node is None or node.type != "parameter_list":
        return []
    return [d for d in node.named_children if d.type in _PARAM_NODES]


def _vars(decls: list[Node], q: Qualifier, sig: Signature | None = None) -> list[Var]:
    out: list[Var] = []
    for decl in decls:
        type_str = q.render(decl.child_by_field_name("type"))
        if decl.type == "variadic_parameter_declaration":
            type_str = "[]" + type_str
            if sig is not None:
                sig.variadic = True
        out.extend(Var(name=n, type=type_str) for n in _names(decl) or [""])
    return out


def signature_of(params: Node | None, result: Node | None, q: Qualifier) -> Signature:
    sig = Signature()
    sig.params = _vars(_param_decls(params), q, sig)
    if result is not None:
        if result.type == "parameter_list":
            sig.results = _vars(_param_decls(result), q)
        else:
            sig.results = [Var(name="", type=q.render(result))]
    return sig


def _imports(root: Node) -> dict[str, str]:
    imports: dict[str, str] = {}
    for decl in root.named_children:
        if decl.type != "import_declaration":
            continue
        specs = [s for s in decl.named_children if s.type == "import_spec"]
        for group in decl.named_children:
            if group.type == "import_spec_list":
                specs.extend(s for s in group.named_children if s.type == "import_spec")
        for spec in specs:
            path = node_text(spec.child_by_field_name("path")).strip('"`')
            alias = node_text(spec.child_by_field_name("name"))
            if alias in ("_", "."):
                continue
            imports[alias or default_package_name(path)] = path
    return imports


# Package syntax


@dataclass
class _TypeNode:
    node: Node
    qualifier: Qualifier


class PackageSyntax:
    """Parsed files of one package with every declared type indexed by name."""

    def __init__(self, import_path: str, name: str, trees: list[Tree]) -> None:
        self.import_path = import_path
        self.name = name
        self.trees = trees
        self.local_types: set[str] = set()
        self.type_nodes: dict[str, _TypeNode] = {}
        self.qualifiers: list[Qualifier] = []

        specs: list[tuple[Node, int]] = []
        for i, tree in enumerate(trees):
            for decl in tree.root_node.named_children:
                if decl.type != "type_declaration":
                    continue
                for spec in decl.named_children:
                    if spec.type in ("type_spec", "type_alias"):
                        self.local_types.add(node_text(spec.child_by_field_name("name")))
                        specs.append((spec, i))

        for tree in trees:
            self.qualifiers.append(Qualifier(import_path, _imports(tree.root_node), self.local_types))

        for spec, i in specs:
            type_node = spec.child_by_field_name("type")
            if type_node is None:
                continue
            q = self.qualifiers[i].with_type_params(
                _type_param_names(spec.child_by_field_name("type_parameters"))
            )
            self.type_nodes.setdefault(node_text(spec.child_by_field_name("name")), _TypeNode(type_node, q))


class _DeclBuilder:
    """Assembles the exported declaration tree of one package."""

    def __init__(self, syntax: PackageSyntax, type_info: TypeInfo | None) -> None:
        self.syntax = syntax
        self.type_info = type_info
        self.docs: list[str] = []
        self.types: dict[str, DocType] = {}
        self._funcs: list[tuple[FuncDecl, list[str]]] = []
        self._methods: list[tuple[str, FuncDecl]] = []
        self._values: list[tuple[str, ValueGroup, str]] = []

    def build(self) -> DocPackage:
        for tree, q in zip(self.syntax.trees, self.syntax.qualifiers):
            self._file(tree.root_node, q)
        return self._finish()

    def _file(self, root: Node, q: Qualifier) -> None:
        for node in root.named_children:
            kind = node.type
            if kind == "package_clause":
                doc = doc_comment(node)
                if doc:
                    self.docs.append(doc)
            elif kind == "function_declaration":
                self._func(node, q)
            elif kind == "method_declaration":
                self._method(node, q)
            elif kind == "type_declaration":
                self._type_decl(node, q)
            elif kind == "const_declaration":
                self._value_decl(node, "const")
            elif kind == "var_declaration":
                self._value_decl(node, "var")

    # Types and parameters

    def _type_expr(self, node: Node | None, q: Qualifier, prefix: str = "") -> TypeExpr:
        expr = TypeExpr(prefix + compact(node_text(node)))
        if self.type_info is not None and node is not None:
            self.type_info.types[expr] = prefix + q.render(node)
        return expr

    def _params(self, node: Node | None, q: Qualifier) -> list[Param]:
        if node is None:
            return []
        if node.type != "parameter_list":
            return [Param(names=[], type=self._type_expr(node, q))]
        return [
            Param(
                names=_names(decl),
                type=self._type_expr(decl.child_by_field_name("type"), q),
                variadic=decl.type == "variadic_parameter_declaration",
            )
            for decl in _param_decls(node)
        ]

    def _func_decl(self, node: Node, q: Qualifier, recv: Param | None = None) -> FuncDecl:
        params = node.child_by_field_name("parameters")
        result = node.child_by_field_name("result")
        decl = FuncDecl(
            name=node_text(node.child_by_field_name("name")),
            doc=doc_comment(node),
            params=self._params(params, q),
            results=self._params(result, q),
            recv=recv,
            type_params=_type_param_names(node.child_by_field_name("type_parameters")),
        )
        if self.type_info is not None:
            self.type_info.signatures[decl] = signature_of(params, result, q)
        return decl

    def _func(self, node: Node, q: Qualifier) -> None:
        name = node_text(node.child_by_field_name("name"))
        if not _exported(name):
            return
        type_params = _type_param_names(node.child_by_field_name("type_parameters"))
        q = q.with_type_params(type_params)
        decl = self._func_decl(node, q)

        result = node.child_by_field_name("result")
        result_types = [d.child_by_field_name("type") for d in _param_decls(result)]
        if result is not None and result.type != "parameter_list":
            result_types = [result]
        bases = []
        for t in result_types:
            if t is not None and t.type in ("slice_type", "array_type"):
                t = t.child_by_field_name("element")
            base, imported = _base_type_name(t)
            if base and not imported and _exported(base) and base not in PREDECLARED and base not in type_params:
                bases.append(base)
        self._funcs.append((decl, bases))

    def _method(self, node: Node, q: Qualifier) -> None:
        name = node_text(node.child_by_field_name("name"))
        if not _exported(name):
            return
        recv_decls = _param_decls(node.child_by_field_name("receiver"))
        if not recv_decls:
            return
        recv_type = recv_decls[0].child_by_field_name("type")
        base, _ = _base_type_name(recv_type)
        q = q.with_type_params(_receiver_type_params(recv_type))
        recv = Param(names=_names(recv_decls[0]), type=self._type_expr(recv_type, q))
        self._methods.append((base, self._func_decl(node, q, recv)))

    def _type_decl(self, node: Node, q: Qualifier) -> None:
        decl_doc = doc_comment(node)
        for spec in node.named_children:
            if spec.type not in ("type_spec", "type_alias"):
                continue
            name = node_text(spec.child_by_field_name("name"))
            if not _exported(name):
                continue
            tp_node = spec.child_by_field_name("type_parameters")
            type_params = _type_param_names(tp_node)
            spec_q = q.with_type_params(type_params)
            self.types[name] = DocType(
                name=name,
                spec=TypeSpec(
                    name=name,
                    type=self._spec_type(spec.child_by_field_name("type"), spec_q),
                    alias=spec.type == "type_alias",
                    type_params=type_params,
                    type_params_text=compact(node_text(tp_node)),
                ),
                doc=doc_comment(spec) or decl_doc,
            )

    def _spec_type(self, node: Node | None, q: Qualifier) -> StructType | InterfaceType | TypeExpr:
        if node is not None and node.type == "struct_type":
            return StructType(fields=self._fields(node, q))
        if node is not None and node.type == "interface_type":
            return InterfaceType(elems=self._elems(node, q))
        return self._type_expr(node, q)

    def _fields(self, struct: Node, q: Qualifier) -> list[FieldDecl]:
        fields: list[FieldDecl] = []
        for field_list in struct.named_children:
            if field_list.type != "field_declaration_list":
                continue
            for node in field_list.named_children:
                if node.type != "field_declaration":
                    continue
                type_node = node.child_by_field_name("type")
                names = _names(node)
                tag = node.child_by_field_name("tag")
                if names:
                    names = [n for n in names if _exported(n)]
                    if not names:
                        continue
                    pointer = False
                    expr = self._type_expr(type_node, q)
                else:
                    if not _exported(_base_type_name(type_node)[0]):
                        continue
                    pointer = any(c.type == "*" for c in node.children)
                    expr = self._type_expr(type_node, q, "*" if pointer else "")
                fields.append(
                    FieldDecl(
                        names=names,
                        type=expr,
                        pointer=pointer,
                        doc=doc_comment(node),
                        comment=line_comment(node),
                        tag=node_text(tag) if tag is not None else None,
                    )
                )
        return fields

    def _elems(self, iface: Node, q: Qualifier) -> list[InterfaceElem]:
        elems: list[InterfaceElem] = []
        for node in iface.named_children:
            if node.type in _METHOD_ELEMS:
                name = node_text(node.child_by_field_name("name"))
                if not _exported(name):
                    continue
                params = node.child_by_field_name("parameters")
                result = node.child_by_field_name("result")
                sig = compact(node_text(params))
                if result is not None:
                    sig += " " + compact(node_text(result))
                elems.append(
                    InterfaceElem(
                        name=name,
                        type=TypeExpr(sig),
                        params=self._params(params, q),
                        results=self._params(result, q),
                        doc=doc_comment(node),
                        comment=line_comment(node),
                    )
                )
            elif node.type in _EMBED_ELEMS or node.type in _NAMED_TYPES:
                elems.append(
                    InterfaceElem(
                        name=None,
                        type=TypeExpr(compact(node_text(node))),
                        doc=doc_comment(node),
                        comment=line_comment(node),
                    )
                )
        return elems

    # Values

    def _value_decl(self, node: Node, kind: str) -> None:
        spec_kind = "const_spec" if kind == "const" else "var_spec"
        specs = [s for s in node.named_children if s.type == spec_kind]
        for group in node.named_children:
            if group.type == "var_spec_list":
                specs.extend(s for s in group.named_children if s.type == spec_kind)
        if not specs:
            return

        names = [n for spec in specs for n in _names(spec) if _exported(n)]
        if not names:
            return

        dominant, freq, prev = "", 0, ""
        for spec in specs:
            type_node = spec.child_by_field_name("type")
            name = ""
            if type_node is not None:
                base, imported = _base_type_name(type_node)
                if not imported:
                    name = base
            elif kind == "const" and spec.child_by_field_name("value") is None:
                name = prev  # iota continuation
            if name:
                if dominant and dominant != name:
                    dominant = ""
                    break
                dominant = name
                freq += 1
            prev = name
        if not _exported(dominant) or freq < int(len(specs) * _TYPED_VALUE_THRESHOLD):
            dominant = ""

        doc = doc_comment(node)
        if not doc and len(specs) == 1:
            doc = doc_comment(specs[0])
        self._values.append((kind, ValueGroup(names=names, doc=doc), dominant))

    def _finish(self) -> DocPackage:
        pkg = DocPackage(
            name=self.syntax.name,
            import_path=self.syntax.import_path,
            doc="\n\n".join(self.docs),
        )

        for decl, bases in self._funcs:
            if len(bases) == 1 and bases[0] in self.types:
                self.types[bases[0]].funcs.append(decl)
            else:
                pkg.funcs.append(decl)

        for base, decl in self._methods:
            if base in self.types:
                self.types[base].methods.append(decl)

        for kind, group, dominant in self._values:
            owner: DocType | DocPackage = self.types.get(dominant) or pkg
            (owner.consts if kind == "const" else owner.vars).append(group)

        pkg.types = list(self.types.values())
        return pkg


class _MethodSets:
    """Complete method sets of interfaces, following embeds across packages."""

    def __init__(self, frontend: GoFrontend, directory: str, root: PackageSyntax) -> None:
        self._frontend = frontend
        self._directory = directory
        self._packages: dict[str, PackageSyntax | None] = {root.import_path: root}
        self._memo: dict[tuple[str, str], list[MethodInfo]] = {}

    async def of(self, pkg: PackageSyntax, name: str, stack: tuple[tuple[str, str], ...] = ()) -> list[MethodInfo]:
        key = (pkg.import_path, name)
        if key in self._memo:
            return self._memo[key]
        if key in stack or len(stack) >= _MAX_EMBED_DEPTH:
            return []
        entry = pkg.type_nodes.get(name)
        if entry is None:
            return []
        stack = (*stack, key)
        if entry.node.type == "interface_type":
            methods = await self._interface(pkg, entry.node, entry.qualifier, stack)
        else:
            methods = await self._embedded(pkg, entry.node, entry.qualifier, stack)
        self._memo[key] = methods
        return methods

    async def _interface(
        self, pkg: PackageSyntax, node: Node, q: Qualifier, stack: tuple[tuple[str, str], ...]
    ) -> list[MethodInfo]:
        methods: dict[str, MethodInfo] = {}
        embeds: list[Node] = []
        for child in node.named_children:
            if child.type in _METHOD_ELEMS:
                name = node_text(child.child_by_field_name("name"))
                if not _exported(name) or name in methods:
                    continue
                methods[name] = MethodInfo(
                    name=name,
                    signature=signature_of(
                        child.child_by_field_name("parameters"), child.child_by_field_name("result"), q
                    ),
                    doc=doc_comment(child) or line_comment(child),
                )
            elif child.type in _NAMED_TYPES:
                embeds.append(child)
            elif child.type in _EMBED_ELEMS:
                terms = [c for c in child.named_children if c.type != "comment"]
                if len(terms) == 1:  # unions and approximations carry no methods
                    embeds.append(terms[0])

        for embed in embeds:
            for m in await self._embedded(pkg, embed, q, stack):
                methods.setdefault(m.name, m)
        return sorted(methods.values(), key=lambda m: m.name)

    async def _embedded(
        self, pkg: PackageSyntax, node: Node, q: Qualifier, stack: tuple[tuple[str, str], ...]
    ) -> list[MethodInfo]:
        while node.type in ("parenthesized_type", "generic_type", "interface_type_name"):
            inner = node.child_by_field_name("type") if node.type == "generic_type" else first_named(node)
            if inner is None:
                return []
            node = inner

        if node.type == "interface_type":
            return await self._interface(pkg, node, q, stack)
        if node.type == "type_identifier":
            name = node_text(node)
            if name in pkg.type_nodes:
                return await self.of(pkg, name, stack)
            if name == "error":
                return [_ERROR_METHOD]
            return []
        if node.type == "qualified_type":
            path = q.imports.get(node_text(node.child_by_field_name("package")))
            if path is None:
                return []
            other = await self._package(path)
            if other is None:
                return []
            return await self.of(other, node_text(node.child_by_field_name("name")), stack)
        return []

    async def _package(self, import_path: str) -> PackageSyntax | None:
        if import_path not in self._packages:
            try:
                _, syntax = await self._frontend.parse_package(import_path, self._directory)
            except GodocsError as exc:
                log.warning("embedded_package_unavailable", import_path=import_path, error=exc.message)
                syntax = None
            self._packages[import_path] = syntax
        return self._packages[import_path]


class GoFrontend:
    """Loads Go packages through ``go list`` and tree-sitter-go."""

    def __init__(self, toolchain: Toolchain) -> None:
        self.toolchain = toolchain
        self._parser = Parser(GO_LANGUAGE)

    async def parse_package(self, import_path: str, directory: str) -> tuple[dict, PackageSyntax]:
        record = await self.toolchain.list_package(import_path, cwd=directory)
        error = record.get("Error")
        if error:
            raise GodocsError(
                code=ErrorCode.PACKAGE_LOAD_FAILED,
                message=f"{import_path}: {error.get('Err', 'load error')}",
                suggestion="Check the import path, or pin a version that contains the package.",
                recoverable=False,
            )

        pkg_dir = Path(record.get("Dir") or directory)
        files = [*(record.get("GoFiles") or []), *(record.get("CgoFiles") or [])]
        if not files:
            raise GodocsError(
                code=ErrorCode.PACKAGE_LOAD_FAILED,
                message=f"{import_path}: no Go source files",
                suggestion="",
                recoverable=False,
            )

        trees = []
        for name in sorted(files):
            try:
                source = await asyncio.to_thread((pkg_dir / name).read_bytes)
            except OSError as exc:
                raise GodocsError(
                    code=ErrorCode.PACKAGE_LOAD_FAILED,
                    message=f"{import_path}: cannot read {name}: {exc}",
                    suggestion="",
                    recoverable=False,
                ) from exc
            trees.append(self._parser.parse(source))

        canonical = record.get("ImportPath") or import_path
        package_name = record.get("Name") or default_package_name(canonical)
        return record, PackageSyntax(canonical, package_name, trees)

    async def load(self, import_path: str, directory: str, *, need_types: bool = False) -> SourceUnit:
        record, syntax = await self.parse_package(import_path, directory)

        type_info = TypeInfo(package_path=syntax.import_path) if need_types else None
        package = _DeclBuilder(syntax, type_info).build()

        if type_info is not None:
            method_sets = _MethodSets(self, directory, syntax)
            for t in package.types:
                if isinstance(t.spec.type, InterfaceType):
                    type_info.interfaces[t.name] = await method_sets.of(syntax, t.name)

        module = None
        mod = record.get("Module")
        if mod and mod.get("Path"):
            module = ModuleInfo(path=mod["Path"], version=mod.get("Version") or "", main=bool(mod.get("Main")))

        log.debug(
            "package_loaded",
            import_path=syntax.import_path,
            directory=directory,
            files=len(syntax.trees),
            need_types=need_types,
        )
        return SourceUnit(
            package=package,
            import_path=syntax.import_path,
            directory=record.get("Dir") or directory,
            module=module,
            type_info=type_info,
        )
