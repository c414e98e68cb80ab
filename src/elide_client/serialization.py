"""JSON:API resource <-> instance conversion.

Pure functions: nothing here touches a store or the relationship cache.
``from_resource`` reports the parent/child pairs it discovered so the
caller can record them.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from elide_client.errors import UnknownModelError
from elide_client.schema.compiler import CompiledSchema


@dataclass(frozen=True)
class Discovered:
    """A parent/child relationship seen in a resource document."""

    parent_model: str
    parent_id: str
    child_model: str
    child_id: str


@dataclass
class Document:
    """A decoded JSON:API document."""

    model: str | None
    data: dict[str, Any] | list[dict[str, Any]] | None
    included: list[tuple[str, dict[str, Any]]] = field(default_factory=list)
    links: list[Discovered] = field(default_factory=list)


def from_resource(schema: CompiledSchema, resource: dict[str, Any]) -> tuple[dict[str, Any], list[Discovered]]:
    """Convert one resource object into a local instance.

    Undeclared attributes are dropped, missing links are filled with
    ``None``/``[]`` and to-many id lists are sorted.
    """
    model = resource.get("type")
    if model not in schema:
        raise UnknownModelError(str(model))
    definition = schema.models[model]

    instance_id = str(resource["id"]) if resource.get("id") is not None else None
    instance: dict[str, Any] = {"id": instance_id}
    attributes = resource.get("attributes") or {}
    for attr in definition.attributes:
        instance[attr] = attributes.get(attr)

    discovered: list[Discovered] = []
    relationships = resource.get("relationships") or {}
    for name, link in definition.links.items():
        data = (relationships.get(name) or {}).get("data")

        if link.holds_many:
            ids = sorted(str(item["id"]) for item in (data or []))
            instance[name] = ids
            for child_id in ids:
                discovered.append(Discovered(model, instance_id, link.target_model, child_id))
            continue

        if isinstance(data, list):
            data = data[0] if data else None
        linked_id = str(data["id"]) if data else None
        instance[name] = linked_id
        if linked_id is None or instance_id is None:
            continue
        if link.owns:
            discovered.append(Discovered(model, instance_id, link.target_model, linked_id))
        else:
            discovered.append(Discovered(link.target_model, linked_id, model, instance_id))

    return instance, discovered


def to_resource(
    schema: CompiledSchema,
    model: str,
    instance: dict[str, Any],
    fill_blanks: bool = False,
) -> dict[str, Any]:
    """Convert a (possibly partial) instance into a resource object.

    With ``fill_blanks`` every declared field is emitted, absent ones as
    null/empty; otherwise only keys present on ``instance`` are sent.
    """
    definition = schema.model(model)
    resource: dict[str, Any] = {"type": model}
    if instance.get("id") is not None:
        resource["id"] = str(instance["id"])

    attributes = {}
    for attr in definition.attributes:
        if attr in instance or fill_blanks:
            attributes[attr] = instance.get(attr)
    relationships = {}
    for name, link in definition.links.items():
        if name not in instance and not fill_blanks:
            continue
        value = instance.get(name)
        if link.holds_many:
            data: Any = [{"type": link.target_model, "id": member} for member in (value or [])]
        else:
            data = {"type": link.target_model, "id": value} if value else None
        relationships[name] = {"data": data}

    resource["attributes"] = attributes
    resource["relationships"] = relationships
    return resource


def from_document(schema: CompiledSchema, document: dict[str, Any]) -> Document:
    """Decode a top-level JSON:API document (``data`` plus ``included``)."""
    raw = document.get("data")
    links: list[Discovered] = []
    model = None

    if raw is None:
        data = None
    elif isinstance(raw, list):
        data = []
        for resource in raw:
            instance, found = from_resource(schema, resource)
            data.append(instance)
            links.extend(found)
            model = resource.get("type")
    else:
        data, found = from_resource(schema, raw)
        links.extend(found)
        model = raw.get("type")

    included = []
    for resource in document.get("included") or []:
        if resource.get("type") not in schema:
            continue
        instance, found = from_resource(schema, resource)
        included.append((resource["type"], instance))
        links.extend(found)

    return Document(model=model, data=data, included=included, links=links)


def query_params(options: dict[str, Any] | None) -> list[tuple[str, str]]:
    """Encode query options as JSON:API query parameters.

    ``fields``  -> ``fields[type]=a,b``
    ``filters`` -> ``filter[type.attr][op]=value``
    ``include`` -> ``include=a,b``
    """
    if not options:
        return []
    params: list[tuple[str, str]] = []

    for model, attrs in (options.get("fields") or {}).items():
        params.append((f"fields[{model}]", ",".join(attrs)))

    for model, clauses in (options.get("filters") or {}).items():
        for clause in clauses:
            value = clause.get("value")
            if isinstance(value, (list, tuple)):
                value = ",".join(str(v) for v in value)
            key = f"filter[{model}.{clause['attribute']}][{clause['operator']}]"
            params.append((key, str(value)))

    include = options.get("include")
    if include:
        params.append(("include", ",".join(include)))
    return params
