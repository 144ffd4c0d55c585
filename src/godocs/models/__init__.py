from __future__ import annotations

from godocs.models.cache import CacheEntry, Provenance
from godocs.models.docs import (
    ArgInfo,
    FieldDoc,
    FuncDoc,
    MethodDoc,
    PackageDoc,
    SymbolDoc,
    TypeDoc,
    ValueDoc,
)
from godocs.models.tools import LoadInput

__all__ = [
    # docs
    "ArgInfo",
    "ValueDoc",
    "FuncDoc",
    "MethodDoc",
    "FieldDoc",
    "TypeDoc",
    "PackageDoc",
    "SymbolDoc",
    # cache
    "Provenance",
    "CacheEntry",
    # tools
    "LoadInput",
]
