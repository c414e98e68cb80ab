"""Pydantic models for the declarative schema.

A schema document has two sections::

    stores:
      memory: {type: memory, upstream: remote, ttl: 60}
      remote: {type: jsonapi, baseURL: "https://api.example.com"}
    models:
      person:
        meta: {store: memory, isRootObject: true}
        name: string
        links:
          pets: {model: pet, type: hasMany, inverse: owner}

Every model key other than ``meta`` and ``links`` is an attribute. The
models here only capture shape; graph-level checks live in the compiler.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from elide_client.errors import SchemaError


class LinkDeclaration(BaseModel):
    """A declared forward link from one model to another."""

    model: str | None = None
    type: str | None = None
    inverse: str | None = None


class ModelMeta(BaseModel):
    """Per-model metadata block."""

    model_config = {"populate_by_name": True}

    store: str | None = None
    is_root_object: bool = Field(default=False, alias="isRootObject")


class ModelDeclaration(BaseModel):
    """One entry of the ``models`` section."""

    meta: ModelMeta = Field(default_factory=ModelMeta)
    links: dict[str, LinkDeclaration] = Field(default_factory=dict)
    attributes: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _collect_attributes(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "attributes" in data:
            return data
        attributes = {k: v for k, v in data.items() if k not in ("meta", "links")}
        return {
            "meta": data.get("meta") or {},
            "links": data.get("links") or {},
            "attributes": attributes,
        }


class StoreDeclaration(BaseModel):
    """One entry of the ``stores`` section."""

    model_config = {"populate_by_name": True}

    type: str | None = None
    upstream: str | None = None
    ttl: float | None = None
    base_url: str | None = Field(default=None, alias="baseURL")

    @field_validator("ttl")
    @classmethod
    def _non_negative_ttl(cls, v: float | None) -> float | None:
        if v is not None and v < 0:
            raise ValueError("Datastore ttl must be non-negative.")
        return v


class SchemaDeclaration(BaseModel):
    """A whole schema document."""

    stores: dict[str, StoreDeclaration]
    models: dict[str, ModelDeclaration]


def load_declaration(raw: SchemaDeclaration | dict[str, Any]) -> SchemaDeclaration:
    """Validate a raw schema mapping.

    Raises:
        SchemaError: If either section is missing, malformed or empty.
    """
    if isinstance(raw, SchemaDeclaration):
        declaration = raw
    else:
        if not isinstance(raw, dict):
            raise SchemaError("Invalid Elide schema format.")
        if not isinstance(raw.get("stores"), dict):
            raise SchemaError("Invalid stores section found in schema.")
        if not isinstance(raw.get("models"), dict):
            raise SchemaError("Invalid models section found in schema.")
        try:
            declaration = SchemaDeclaration.model_validate(raw)
        except ValidationError as e:
            raise SchemaError(f"Invalid Elide schema format: {e}") from e

    if not declaration.stores:
        raise SchemaError("Elide schema.stores must describe at least one store.")
    if not declaration.models:
        raise SchemaError("Elide schema.models must describe at least one model.")
    return declaration


def load_schema_file(path: str | Path) -> SchemaDeclaration:
    """Read a schema from a YAML or JSON file."""
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        raw = json.loads(text)
    else:
        raw = yaml.safe_load(text)
    return load_declaration(raw)
