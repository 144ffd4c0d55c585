"""Parameter, result and receiver extraction for function declarations.

Types come from the semantic ``TypeInfo`` when the front-end produced one
(package-qualified, variadics rendered as ``...T``); otherwise the
declaration's own syntax is used as written.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from godocs.models.docs import ArgInfo

if TYPE_CHECKING:
    from godocs.models.source import FuncDecl, Param
    from godocs.typeinfo import Signature, TypeInfo, Var


def _name_hints(fields: list[Param]) -> list[str]:
    hints: list[str] = []
    for param in fields:
        if not param.names:
            hints.append("")
        else:
            hints.extend(param.names)
    return hints


def syntactic_args(fields: list[Param], type_info: TypeInfo | None = None) -> list[ArgInfo]:
    args: list[ArgInfo] = []
    for param in fields:
        type_str = (type_info.type_of(param.type) if type_info else None) or param.type.text
        if param.variadic:
            type_str = "..." + type_str
        if not param.names:
            args.append(ArgInfo(name="", type=type_str))
        else:
            args.extend(ArgInfo(name=name, type=type_str) for name in param.names)
    return args


def _vars_to_args(vars_: list[Var], hints: list[str] | None, variadic: bool = False) -> list[ArgInfo]:
    out: list[ArgInfo] = []
    last = len(vars_) - 1
    for i, var in enumerate(vars_):
        name = var.name
        if not name and hints and i < len(hints) and hints[i]:
            name = hints[i]
        type_str = var.type
        if variadic and i == last:
            type_str = "..." + (type_str[2:] if type_str.startswith("[]") else type_str)
        out.append(ArgInfo(name=name, type=type_str))
    return out


def args_from_signature(sig: Signature | None, name_hints: list[str] | None = None) -> list[ArgInfo]:
    if sig is None:
        return []
    return _vars_to_args(sig.params, name_hints, variadic=sig.variadic)


def results_from_signature(sig: Signature | None, name_hints: list[str] | None = None) -> list[ArgInfo]:
    if sig is None:
        return []
    return _vars_to_args(sig.results, name_hints)


def extract_args(decl: FuncDecl | None, type_info: TypeInfo | None) -> list[ArgInfo]:
    """Parameters of ``decl``, preferring the semantic signature."""
    if decl is None:
        return []
    sig = type_info.signature_of(decl) if type_info else None
    if sig is not None:
        return args_from_signature(sig, _name_hints(decl.params))
    return syntactic_args(decl.params, type_info)


def extract_results(decl: FuncDecl | None, type_info: TypeInfo | None) -> list[ArgInfo]:
    if decl is None:
        return []
    sig = type_info.signature_of(decl) if type_info else None
    if sig is not None:
        return results_from_signature(sig, _name_hints(decl.results))
    return syntactic_args(decl.results, type_info)


def method_receiver_info(decl: FuncDecl | None, type_info: TypeInfo | None) -> tuple[str, str]:
    """Return ``(receiver name, receiver type)`` for a method declaration."""
    if decl is None or decl.recv is None:
        return "", ""
    recv = decl.recv
    recv_name = recv.names[0] if recv.names else ""
    recv_type = (type_info.type_of(recv.type) if type_info else None) or recv.type.text
    return recv_name, recv_type


def receiver_display_name(recv_type: str) -> str:
    """``*net/http.Client`` → ``Client``."""
    if not recv_type:
        return ""
    name = recv_type.strip("*()")
    name = name.rsplit("/", 1)[-1]
    return name.rsplit(".", 1)[-1]
