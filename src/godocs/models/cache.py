from __future__ import annotations

from pydantic import BaseModel, model_validator

from godocs.models.docs import PackageDoc, SymbolDoc


class Provenance(BaseModel):
    """Where a cached entry came from.

    ``toolchain_version`` is set for standard-library and local packages and
    is compared against the running toolchain on every cache hit.
    ``module_version`` is the module version the documentation was built from.
    """

    toolchain_version: str = ""
    module_version: str = ""


class CacheEntry(BaseModel):
    """Cached documentation for a package load or a symbol load."""

    package: PackageDoc | None = None
    symbol: SymbolDoc | None = None
    provenance: Provenance = Provenance()

    @model_validator(mode="after")
    def check_single_payload(self) -> CacheEntry:
        if (self.package is None) == (self.symbol is None):
            raise ValueError("cache entry must hold exactly one of package or symbol")
        return self
