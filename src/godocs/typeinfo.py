"""Semantic type information produced by the front-end.

``TypeInfo`` plays the role of a type checker's result tables: fully
qualified type strings per type expression, a signature per declared
function, and the complete method set of every interface with embedded
interfaces flattened. ``Qualifier`` renders syntax nodes into the
qualified form (``*net/http.Request``, ``...any``, ``map[string]io.Reader``).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tree_sitter import Node

    from godocs.models.source import FuncDecl, TypeExpr

PREDECLARED: frozenset[str] = frozenset(
    {
        "any",
        "bool",
        "byte",
        "comparable",
        "complex64",
        "complex128",
        "error",
        "float32",
        "float64",
        "int",
        "int8",
        "int16",
        "int32",
        "int64",
        "rune",
        "string",
        "uint",
        "uint8",
        "uint16",
        "uint32",
        "uint64",
        "uintptr",
    }
)

_MAJOR_VERSION_RE = re.compile(r"^v\d+$")
_GOPKG_SUFFIX_RE = re.compile(r"\.v\d+$")


@dataclass
class Var:
    name: str
    type: str


@dataclass
class Signature:
    params: list[Var] = field(default_factory=list)
    results: list[Var] = field(default_factory=list)
    variadic: bool = False  # last param is variadic; its type is rendered "[]T"


@dataclass
class MethodInfo:
    """A method of an interface's complete method set."""

    name: str
    signature: Signature
    doc: str = ""


@dataclass
class TypeInfo:
    package_path: str
    types: dict[TypeExpr, str] = field(default_factory=dict)
    signatures: dict[FuncDecl, Signature] = field(default_factory=dict)
    interfaces: dict[str, list[MethodInfo]] = field(default_factory=dict)

    def type_of(self, expr: TypeExpr | None) -> str | None:
        if expr is None:
            return None
        return self.types.get(expr)

    def signature_of(self, decl: FuncDecl | None) -> Signature | None:
        if decl is None:
            return None
        return self.signatures.get(decl)

    def interface_methods(self, type_name: str) -> list[MethodInfo] | None:
        return self.interfaces.get(type_name)


def default_package_name(import_path: str) -> str:
    """Guess the package name an import path binds when imported unnamed."""
    parts = [p for p in import_path.split("/") if p]
    if not parts:
        return import_path
    name = parts[-1]
    if _MAJOR_VERSION_RE.match(name) and len(parts) > 1:
        name = parts[-2]
    name = _GOPKG_SUFFIX_RE.sub("", name)
    if name.startswith("go-"):
        name = name[3:]
    return name.replace("-", "_").replace(".", "_")


def compact(text: str) -> str:
    return " ".join(text.split())


def node_text(node: Node | None) -> str:
    if node is None or node.text is None:
        return ""
    return node.text.decode("utf-8", errors="replace")


class Qualifier:
    """Renders type syntax nodes with package-qualified named types."""

    def __init__(
        self,
        package_path: str,
        imports: dict[str, str],
        local_types: set[str] | frozenset[str],
        type_params: set[str] | frozenset[str] = frozenset(),
    ) -> None:
        self.package_path = package_path
        self.imports = imports
        self.local_types = local_types
        self.type_params = type_params

    def with_type_params(self, names: list[str]) -> Qualifier:
        if not names:
            return self
        return Qualifier(
            self.package_path,
            self.imports,
            self.local_types,
            frozenset(self.type_params) | frozenset(names),
        )

    def render(self, node: Node | None) -> str:
        if node is None:
            return ""
        kind = node.type

        if kind == "type_identifier":
            name = node_text(node)
            if name in self.type_params or name in PREDECLARED:
                return name
            if name in self.local_types:
                return f"{self.package_path}.{name}"
            return name

        if kind == "qualified_type":
            pkg = node_text(node.child_by_field_name("package"))
            name = node_text(node.child_by_field_name("name"))
            return f"{self.imports.get(pkg, pkg)}.{name}"

        if kind == "pointer_type":
            return "*" + self.render(first_named(node))

        if kind == "slice_type":
            return "[]" + self.render(node.child_by_field_name("element"))

        if kind == "array_type":
            length = compact(node_text(node.child_by_field_name("length")))
            return f"[{length}]" + self.render(node.child_by_field_name("element"))

        if kind == "map_type":
            key = self.render(node.child_by_field_name("key"))
            value = self.render(node.child_by_field_name("value"))
            return f"map[{key}]{value}"

        if kind == "channel_type":
            value = self.render(node.child_by_field_name("value"))
            text = node_text(node)
            if text.startswith("<-"):
                return "<-chan " + value
            if compact(text).replace(" ", "").startswith("chan<-"):
                return "chan<- " + value
            return "chan " + value

        if kind == "function_type":
            params = self.render_params(node.child_by_field_name("parameters"))
            result = self.render_result(node.child_by_field_name("result"))
            return f"func({params}){result}"

        if kind == "generic_type":
            base = self.render(node.child_by_field_name("type"))
            arguments = node.child_by_field_name("type_arguments")
            args = [self.render(a) for a in arguments.named_children] if arguments else []
            return f"{base}[{', '.join(args)}]"

        if kind in ("type_elem", "constraint_elem", "parenthesized_type", "interface_type_name"):
            terms = [self.render(c) for c in node.named_children if c.type != "comment"]
            return " | ".join(terms)

        if kind == "negated_type":
            return "~" + self.render(first_named(node))

        if kind == "interface_type":
            inner = [compact(node_text(c)) for c in node.named_children if c.type != "comment"]
            return "interface{" + "; ".join(inner) + "}" if inner else "interface{}"

        return compact(node_text(node))

    def render_params(self, params: Node | None) -> str:
        return ", ".join(self._param_parts(params))

    def _param_parts(self, params: Node | None) -> list[str]:
        parts: list[str] = []
        if params is None:
            return parts
        for decl in params.named_children:
            if decl.type not in ("parameter_declaration", "variadic_parameter_declaration"):
                continue
            type_str = self.render(decl.child_by_field_name("type"))
            if decl.type == "variadic_parameter_declaration":
                type_str = "..." + type_str
            names = [node_text(n) for n in decl.children_by_field_name("name") if n.is_named]
            if names:
                parts.extend(f"{n} {type_str}" for n in names)
            else:
                parts.append(type_str)
        return parts

    def render_result(self, result: Node | None) -> str:
        if result is None:
            return ""
        if result.type != "parameter_list":
            return " " + self.render(result)
        parts = self._param_parts(result)
        if not parts:
            return ""
        named = any(
            d.child_by_field_name("name") is not None
            for d in result.named_children
            if d.type == "parameter_declaration"
        )
        if len(parts) > 1 or named:
            return " (" + ", ".join(parts) + ")"
        return " " + parts[0]


def first_named(node: Node) -> Node | None:
    for child in node.named_children:
        if child.type != "comment":
            return child
    return None
