from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class LoadInput(BaseModel):
    import_path: str = Field(max_length=500)
    selector: str = Field(default="", max_length=200)
    version: str = Field(default="", max_length=200)
    goos: str = Field(default="", max_length=32)
    goarch: str = Field(default="", max_length=32)
    workdir: str = ""

    @field_validator("import_path")
    @classmethod
    def import_path_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("import_path must not be empty")
        return v

    @field_validator("selector", "version", "goos", "goarch", "workdir")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        return v.strip()
