"""Absolute addresses for nested resources.

Non-root models are only addressable through their ancestors, e.g. a pet
lives at ``/person/1/pets/7``. The resolver substitutes each placeholder
of the model's path template, walking from the model towards its root.
"""
from __future__ import annotations

from typing import Any

from elide_client.errors import CannotRootError, QueryError
from elide_client.query import Query
from elide_client.relations import RelationshipCache
from elide_client.schema.compiler import CompiledSchema, PathSegment


class PathResolver:
    """Resolve instances, new objects and queries to request paths."""

    def __init__(self, schema: CompiledSchema, cache: RelationshipCache) -> None:
        self.schema = schema
        self.cache = cache

    def _parent_link_field(self, parent: PathSegment, child: PathSegment) -> str | None:
        """Inverse field on ``child`` that names its ``parent`` instance."""
        link = self.schema.models[parent.model].link(child.segment)
        return link.target_field if link is not None else None

    def _ancestor_ids(
        self, model: str, instance_id: str, instance: dict[str, Any] | None = None
    ) -> list[str]:
        """Ids for every segment of ``model``'s template, root first."""
        path = self.schema.model(model).path
        ids = [str(instance_id)]
        current_model, current_id = model, str(instance_id)

        for index in range(len(path) - 1, 0, -1):
            parent, child = path[index - 1], path[index]
            parent_id = None

            inverse = self._parent_link_field(parent, child)
            if index == len(path) - 1 and instance is not None and inverse:
                parent_id = instance.get(inverse)
            if parent_id is None:
                parent_id = self.cache.find_parent(parent.model, current_model, current_id)
            if parent_id is None:
                raise CannotRootError(model, instance_id, parent.model)

            ids.append(str(parent_id))
            current_model, current_id = parent.model, str(parent_id)

        ids.reverse()
        return ids

    @staticmethod
    def _render(path: tuple[PathSegment, ...], ids: list[str]) -> str:
        return "".join(f"/{seg.segment}/{i}" for seg, i in zip(path, ids))

    def address_of(self, model: str, instance_id: Any, instance: dict[str, Any] | None = None) -> str:
        """Fully substituted path of one instance.

        Parent ids come from the instance's own inverse link when given,
        then from the relationship cache.

        Raises:
            CannotRootError: Naming the first ancestor that could not be found
        """
        instance_id = str(self.cache.aliases.resolve(model, str(instance_id)))
        path = self.schema.model(model).path
        return self._render(path, self._ancestor_ids(model, instance_id, instance))

    def collection_of(self, model: str, instance_id: Any, instance: dict[str, Any] | None = None) -> str:
        """Path of the collection an existing instance belongs to."""
        address = self.address_of(model, instance_id, instance)
        return address.rsplit("/", 1)[0]

    def collection_for_new(self, model: str, resource: dict[str, Any]) -> str:
        """Collection path a new object should be created under.

        The parent is read from the inverse relationship in the object's
        own payload; the cache cannot know an object the server has not
        seen yet.
        """
        path = self.schema.model(model).path
        if len(path) == 1:
            return f"/{model}"

        parent, child = path[-2], path[-1]
        inverse = self._parent_link_field(parent, child)
        if not inverse:
            raise CannotRootError(
                model, resource.get("id"), parent.model,
                f'"{parent.model}.{child.segment}" declares no inverse.',
            )
        data = ((resource.get("relationships") or {}).get(inverse) or {}).get("data")
        if not data or data.get("id") is None:
            raise CannotRootError(
                model, resource.get("id"), parent.model,
                f'"{inverse}" is not set on the new object.',
            )
        return f"{self.address_of(parent.model, data['id'])}/{child.segment}"

    def query_path(self, query: Query) -> tuple[str, str]:
        """Request path for ``query`` and the model it resolves to.

        Raises:
            QueryError: If a hop is not a link, or a collection hop is not last
            CannotRootError: If the first hop cannot be rooted
        """
        first = query.hops[0]
        definition = self.schema.model(first.model or "", "find")

        if first.id is None:
            if not definition.is_root:
                # Collections of nested models need a parent
                raise CannotRootError(definition.name, None, definition.path[-2].model)
            path = f"/{definition.name}"
        else:
            path = self.address_of(definition.name, first.id)

        for index, hop in enumerate(query.hops[1:], start=1):
            if query.hops[index - 1].id is None:
                raise QueryError(
                    "Only the last step of a remote query may select a collection.",
                    model=definition.name,
                    field=hop.field,
                )
            link = definition.link(hop.field or "")
            if link is None:
                raise QueryError(
                    f"The model {definition.name} does not have a linked property {hop.field}.",
                    model=definition.name,
                    field=hop.field,
                )
            path = f"{path}/{hop.field}"
            if hop.id is not None:
                path = f"{path}/{hop.id}"
            definition = self.schema.models[link.target_model]

        return definition.name, path
