"""Schema graph compiler.

Turns a validated declaration into an immutable ``CompiledSchema``:

1. every declared link becomes a typed ``Link``; links with an ``inverse``
   also synthesize an ``OWNED_BY`` link on the target model
2. rootability closure from the root models (unreachable models are fatal)
3. one path template per model
4. breadth-first model hierarchy used to order synchronization

Path template policy: a route starts at a root model and descends through
declared links into non-root models only, so a root model always keeps its
own one-segment route. Among the acyclic routes to a model the deepest one
wins; routes of equal depth are resolved in favour of the last one found by
a depth-first walk that visits roots and links in declaration order.
"""
from __future__ import annotations

from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from elide_client.errors import (
    DanglingModelError,
    LinkTargetError,
    LinkTypeError,
    MissingStoreError,
    SchemaError,
    UnknownModelError,
)
from elide_client.logging import get_logger
from elide_client.schema.declarations import SchemaDeclaration, load_declaration

logger = get_logger(__name__)


class Cardinality(str, Enum):
    ONE = "hasOne"
    MANY = "hasMany"


class Direction(str, Enum):
    OWNS = "owns"
    OWNED_BY = "owned_by"


@dataclass(frozen=True)
class Link:
    """A relationship field on a model.

    ``OWNS`` links are declared in the schema; ``OWNED_BY`` links are the
    synthesized inverse side and always hold a single owner id, whatever
    the cardinality of the forward link.
    """

    name: str
    cardinality: Cardinality
    direction: Direction
    target_model: str
    target_field: str | None = None

    @property
    def owns(self) -> bool:
        return self.direction is Direction.OWNS

    @property
    def holds_many(self) -> bool:
        """True when the field value is a list of ids."""
        return self.cardinality is Cardinality.MANY and self.direction is Direction.OWNS


@dataclass(frozen=True)
class PathSegment:
    model: str
    segment: str


@dataclass(frozen=True, eq=False)
class ModelDefinition:
    name: str
    store: str
    is_root: bool
    attributes: tuple[str, ...]
    links: Mapping[str, Link]
    path: tuple[PathSegment, ...] = ()

    def link(self, name: str) -> Link | None:
        return self.links.get(name)

    @property
    def declared_links(self) -> list[Link]:
        return [link for link in self.links.values() if link.owns]

    @property
    def fields(self) -> tuple[str, ...]:
        return ("id", *self.attributes, *self.links)

    def blank(self) -> dict[str, Any]:
        """An instance with every field present and empty."""
        instance: dict[str, Any] = {"id": None}
        for attr in self.attributes:
            instance[attr] = None
        for name, link in self.links.items():
            instance[name] = [] if link.holds_many else None
        return instance


@dataclass(frozen=True, eq=False)
class CompiledSchema:
    models: Mapping[str, ModelDefinition]
    hierarchy: tuple[str, ...]
    stores: tuple[str, ...] = field(default=())

    def __contains__(self, model: object) -> bool:
        return model in self.models

    def model(self, name: str, method: str | None = None) -> ModelDefinition:
        try:
            return self.models[name]
        except KeyError:
            raise UnknownModelError(name, method) from None

    def template(self, model: str) -> str:
        """Human readable path template, e.g. ``/person/{person}/pets/{pet}``."""
        return "".join(
            f"/{seg.segment}/{{{seg.model}}}" for seg in self.model(model).path
        )


def _compile_links(declaration: SchemaDeclaration) -> dict[str, dict[str, Link]]:
    store_names = set(declaration.stores)
    links: dict[str, dict[str, Link]] = {name: {} for name in declaration.models}

    for name, model in declaration.models.items():
        if not model.meta.store or model.meta.store not in store_names:
            raise MissingStoreError(name)

        for link_name, decl in model.links.items():
            if not decl.type:
                raise LinkTypeError(name)
            try:
                cardinality = Cardinality(decl.type)
            except ValueError:
                raise LinkTypeError(name, decl.type) from None
            if not decl.model or decl.model not in declaration.models:
                raise LinkTargetError(name, decl.model)

            links[name][link_name] = Link(
                name=link_name,
                cardinality=cardinality,
                direction=Direction.OWNS,
                target_model=decl.model,
                target_field=decl.inverse,
            )

    # Inverse index: synthesize the owned-by side on each target model
    declared = {name: list(model_links.items()) for name, model_links in links.items()}
    for name, model_links in declared.items():
        for link_name, link in model_links:
            if not link.target_field:
                continue
            existing = links[link.target_model].get(link.target_field)
            if existing is not None and existing.owns:
                raise SchemaError(
                    f'Elide model "{link.target_model}" declares "{link.target_field}", '
                    f'which is also the inverse of "{name}.{link_name}".'
                )
            links[link.target_model][link.target_field] = Link(
                name=link.target_field,
                cardinality=link.cardinality,
                direction=Direction.OWNED_BY,
                target_model=name,
                target_field=link_name,
            )

    return links


def _check_rootable(declaration: SchemaDeclaration, roots: list[str]) -> None:
    reachable = set(roots)
    pending = list(roots)
    while pending:
        current = pending.pop()
        for decl in declaration.models[current].links.values():
            if decl.model not in reachable:
                reachable.add(decl.model)
                pending.append(decl.model)

    for name in declaration.models:
        if name not in reachable:
            raise DanglingModelError(name)


def _path_templates(
    links: dict[str, dict[str, Link]], roots: list[str]
) -> dict[str, tuple[PathSegment, ...]]:
    root_set = set(roots)
    best: dict[str, tuple[PathSegment, ...]] = {
        root: (PathSegment(root, root),) for root in roots
    }

    # Explicit stack; children pushed in reverse so pops follow declaration order
    stack: list[tuple[str, tuple[PathSegment, ...]]] = [
        (root, best[root]) for root in reversed(roots)
    ]
    while stack:
        model, route = stack.pop()
        if model not in root_set:
            current = best.get(model)
            if current is None or len(route) >= len(current):
                best[model] = route

        on_route = {seg.model for seg in route}
        declared = [link for link in links[model].values() if link.owns]
        for link in reversed(declared):
            target = link.target_model
            if target in root_set or target in on_route:
                continue
            stack.append((target, route + (PathSegment(target, link.name),)))

    return best


def _hierarchy(links: dict[str, dict[str, Link]], roots: list[str]) -> tuple[str, ...]:
    order = list(roots)
    seen = set(roots)
    queue = deque(roots)
    while queue:
        model = queue.popleft()
        for link in links[model].values():
            if link.owns and link.target_model not in seen:
                seen.add(link.target_model)
                order.append(link.target_model)
                queue.append(link.target_model)
    return tuple(order)


def compile_schema(raw: SchemaDeclaration | dict[str, Any]) -> CompiledSchema:
    """Compile a schema declaration.

    Args:
        raw: A ``SchemaDeclaration`` or the equivalent plain mapping

    Returns:
        The immutable compiled schema

    Raises:
        SchemaError: On any structural problem; construction is not retried.
    """
    declaration = load_declaration(raw)
    links = _compile_links(declaration)

    roots = [name for name, m in declaration.models.items() if m.meta.is_root_object]
    _check_rootable(declaration, roots)

    paths = _path_templates(links, roots)

    models: dict[str, ModelDefinition] = {}
    for name, decl in declaration.models.items():
        link_names = links[name]
        attributes = tuple(a for a in decl.attributes if a not in link_names and a != "id")
        models[name] = ModelDefinition(
            name=name,
            store=decl.meta.store or "",
            is_root=decl.meta.is_root_object,
            attributes=attributes,
            links=dict(link_names),
            path=paths[name],
        )

    schema = CompiledSchema(
        models=models,
        hierarchy=_hierarchy(links, roots),
        stores=tuple(declaration.stores),
    )
    logger.debug("schema_compiled", models=len(models), roots=roots)
    return schema
