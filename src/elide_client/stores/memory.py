"""In-memory relational datastore.

Holds instances as ``{model: {id: instance}}`` and keeps both sides of
every inverse relationship consistent. Mutations follow a strict
verify-then-stage-then-apply order: every referenced id is checked first,
rewiring then happens on staged copies of the affected instances, and the
copies are written back only once all of them are ready.

Local edits accumulate as the difference between the confirmed snapshot
and the working state until ``commit`` sends them upstream.
"""
from __future__ import annotations

import time
import uuid
from collections.abc import Callable
from typing import Any

from elide_client.changes import (
    Patch,
    State,
    apply_patches,
    clone_instance,
    clone_state,
    diff_states,
    split_pointer,
)
from elide_client.errors import (
    DehydrateError,
    InvalidStateError,
    MissingRecordError,
    NoUpstreamError,
    QueryError,
    ReferentialError,
)
from elide_client.logging import get_logger
from elide_client.query import Query
from elide_client.relations import IdentifierAliases
from elide_client.schema.compiler import CompiledSchema, Direction, Link, ModelDefinition
from elide_client.stores.base import Datastore, FindResult, Reconciliation

logger = get_logger(__name__)


class _Stage:
    """Copies of the instances touched by one mutation."""

    def __init__(self, store: MemoryDatastore) -> None:
        self._store = store
        self.instances: dict[tuple[str, str], dict[str, Any]] = {}

    def add(self, model: str, instance: dict[str, Any]) -> None:
        self.instances[(model, instance["id"])] = instance

    def get(self, model: str, instance_id: str | None) -> dict[str, Any] | None:
        instance_id = self._store._resolve(model, instance_id)
        if instance_id is None:
            return None
        key = (model, instance_id)
        if key not in self.instances:
            stored = self._store._get(model, instance_id)
            if stored is None:
                return None
            self.instances[key] = clone_instance(self._store.schema.models[model], stored)
        return self.instances[key]


class MemoryDatastore(Datastore):
    """Relational store kept entirely in memory."""

    kind = "memory"

    def __init__(
        self,
        schema: CompiledSchema,
        ttl: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(schema, ttl)
        self._clock = clock
        self._data: State = {model: {} for model in schema.models}
        self._snapshot: State = {model: {} for model in schema.models}
        self._fetched_at: dict[str, dict[str, float]] = {model: {} for model in schema.models}
        self._aliases = IdentifierAliases()

    # -------------------------------------------------------------------------
    # Internal accessors
    # -------------------------------------------------------------------------

    def _resolve(self, model: str, instance_id: Any) -> str | None:
        if instance_id is None:
            return None
        return str(self._aliases.resolve(model, str(instance_id)))

    def _get(self, model: str, instance_id: Any) -> dict[str, Any] | None:
        """The stored instance (not a copy), honouring aliases and ttl."""
        instance_id = self._resolve(model, instance_id)
        if instance_id is None:
            return None
        fetched = self._fetched_at[model].get(instance_id)
        if self.ttl is not None and fetched is not None and fetched + self.ttl < self._clock():
            return None
        return self._data[model].get(instance_id)

    def _copy(self, model: str, instance: dict[str, Any]) -> dict[str, Any]:
        return clone_instance(self.schema.models[model], instance)

    # -------------------------------------------------------------------------
    # Find
    # -------------------------------------------------------------------------

    def _target_model(self, query: Query) -> str:
        definition = self.schema.model(query.model, "find")
        for hop in query.hops[1:]:
            link = definition.link(hop.field or "")
            if link is None:
                raise QueryError(
                    f'"{hop.field}" not a linked property on "{definition.name}".',
                    model=definition.name,
                    field=hop.field,
                )
            definition = self.schema.models[link.target_model]
        return definition.name

    def _resolve_locally(self, query: Query) -> dict[str, Any] | list[dict[str, Any]] | None:
        model = query.model
        found_one: dict[str, Any] | None = None
        found_many: list[dict[str, Any]] = []
        wants_collection = False

        for index, hop in enumerate(query.hops):
            wants_collection = hop.id is None

            if index == 0:
                ids: list[Any] = list(self._data[model]) if wants_collection else [hop.id]
            else:
                field = hop.field or ""
                parents = [found_one] if found_one is not None else found_many
                model = self.schema.models[model].links[field].target_model
                ids = []
                for parent in parents:
                    value = parent.get(field)
                    ids.extend(value if isinstance(value, list) else [value])

            ids = [self._resolve(model, i) for i in ids if i is not None]

            if wants_collection:
                found_one = None
                found_many = []
                seen: set[str] = set()
                for instance_id in ids:
                    instance = self._get(model, instance_id)
                    if instance is not None and instance["id"] not in seen:
                        seen.add(instance["id"])
                        found_many.append(self._copy(model, instance))
                if not found_many:
                    break
            else:
                found_many = []
                target = self._resolve(model, hop.id)
                instance = self._get(model, target) if target in ids else None
                found_one = self._copy(model, instance) if instance is not None else None
                if found_one is None:
                    break

        return found_many if wants_collection else found_one

    async def _find(self, query: Query) -> Any:
        model = self._target_model(query)
        result = self._resolve_locally(query)
        if result:
            return result

        empty: Any = [] if query.wants_collection else None
        if self.upstream is None:
            return empty

        first, last = query.hops[0], query.hops[-1]
        if self._pending_delete(query.model, first.id) or self._pending_delete(model, last.id):
            return empty

        logger.debug("find_upstream_fallback", query=repr(query))
        fetched = await self.upstream.fetch(query)
        self._merge_upstream(model, fetched)
        if isinstance(fetched.data, list):
            return [i for i in fetched.data if not self._pending_delete(model, i.get("id"))]
        return fetched.data

    def _pending_delete(self, model: str, instance_id: Any) -> bool:
        """True when ``instance_id`` was deleted locally and not committed yet."""
        instance_id = self._resolve(model, instance_id)
        return (
            instance_id is not None
            and instance_id in self._snapshot[model]
            and instance_id not in self._data[model]
        )

    def _merge_upstream(self, model: str, fetched: FindResult) -> None:
        """Record upstream results as confirmed state."""
        entries: list[tuple[str, dict[str, Any]]] = []
        if isinstance(fetched.data, list):
            entries.extend((model, instance) for instance in fetched.data)
        elif fetched.data:
            entries.append((model, fetched.data))
        entries.extend(fetched.included)

        now = self._clock()
        for entry_model, instance in entries:
            if entry_model not in self._data or instance.get("id") is None:
                continue
            definition = self.schema.models[entry_model]
            instance_id = str(instance["id"])
            # Never clobber a local edit or delete that has not been committed yet
            if self._data[entry_model].get(instance_id) != self._snapshot[entry_model].get(instance_id):
                continue
            full = definition.blank()
            full.update(instance)
            full["id"] = instance_id
            self._data[entry_model][instance_id] = clone_instance(definition, full)
            self._snapshot[entry_model][instance_id] = clone_instance(definition, full)
            self._fetched_at[entry_model][instance_id] = now

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def _normalize_link(self, link: Link, value: Any) -> Any:
        if link.holds_many:
            if value is not None and not isinstance(value, (list, tuple)):
                raise InvalidStateError(f'Link "{link.name}" holds a list of ids, got {type(value).__name__}.')
            ids: list[str] = []
            for member in value or []:
                member = self._resolve(link.target_model, member)
                if member is not None and member not in ids:
                    ids.append(member)
            return ids
        if isinstance(value, list):
            raise InvalidStateError(f'Link "{link.name}" holds a single id, got a list.')
        return self._resolve(link.target_model, value)

    def _verify_links(
        self, definition: ModelDefinition, state: dict[str, Any], method: str
    ) -> dict[str, Any]:
        """Resolve and check every link value present in ``state``."""
        values: dict[str, Any] = {}
        for name, link in definition.links.items():
            if name not in state:
                continue
            value = self._normalize_link(link, state[name])
            for linked_id in value if isinstance(value, list) else [value]:
                if linked_id is not None and self._get(link.target_model, linked_id) is None:
                    raise ReferentialError(link.target_model, linked_id, method)
            values[name] = value
        return values

    def _rewire(
        self,
        stage: _Stage,
        definition: ModelDefinition,
        instance: dict[str, Any],
        link: Link,
        value: Any,
    ) -> None:
        """Set ``instance[link.name] = value`` and fix the inverse side."""
        model = definition.name
        target = link.target_model
        inverse = link.target_field
        me = instance["id"]

        if link.holds_many:
            old = list(instance.get(link.name) or [])
            kept = [i for i in old if i in value]
            instance[link.name] = kept + [i for i in value if i not in kept]
            if inverse is None:
                return
            for removed in old:
                if removed in value:
                    continue
                leaf = stage.get(target, removed)
                if leaf is not None and leaf.get(inverse) == me:
                    leaf[inverse] = None
            for added in value:
                leaf = stage.get(target, added)
                if leaf is None:
                    continue
                previous = leaf.get(inverse)
                if previous is not None and previous != me:
                    prev_owner = stage.get(model, previous)
                    if prev_owner is not None:
                        prev_owner[link.name] = [i for i in prev_owner.get(link.name) or [] if i != added]
                leaf[inverse] = me
            return

        old = instance.get(link.name)
        if old == value:
            return
        instance[link.name] = value
        if inverse is None:
            return

        # Inverse of a to-many link: membership in the owner's list
        if link.direction is Direction.OWNED_BY and target_holds_many(self.schema, target, inverse):
            if old is not None:
                old_owner = stage.get(target, old)
                if old_owner is not None:
                    old_owner[inverse] = [i for i in old_owner.get(inverse) or [] if i != me]
            if value is not None:
                owner = stage.get(target, value)
                if owner is not None:
                    members = list(owner.get(inverse) or [])
                    if me not in members:
                        members.append(me)
                    owner[inverse] = members
            return

        # One-to-one in either direction: both slots are single ids
        if old is not None:
            previous = stage.get(target, old)
            if previous is not None and previous.get(inverse) == me:
                previous[inverse] = None
        if value is not None:
            other = stage.get(target, value)
            if other is not None:
                displaced = other.get(inverse)
                if displaced is not None and displaced != me:
                    holder = stage.get(model, displaced)
                    if holder is not None and holder.get(link.name) == value:
                        holder[link.name] = None
                other[inverse] = me

    def _stage_links(
        self,
        definition: ModelDefinition,
        instance: dict[str, Any],
        state: dict[str, Any],
        method: str,
    ) -> _Stage:
        values = self._verify_links(definition, state, method)
        stage = _Stage(self)
        stage.add(definition.name, instance)
        for name, value in values.items():
            self._rewire(stage, definition, instance, definition.links[name], value)
        return stage

    def _apply(self, stage: _Stage) -> None:
        for (model, instance_id), instance in stage.instances.items():
            self._data[model][instance_id] = instance

    async def create(self, model: str, state: dict[str, Any] | None) -> dict[str, Any]:
        definition = self.schema.model(model, "create")
        if state is None:
            raise InvalidStateError("No state passed to #create")
        if state.get("id") is not None:
            raise InvalidStateError("Newly created records must not specify an id.")

        instance = definition.blank()
        instance["id"] = str(uuid.uuid4())
        for attr in definition.attributes:
            if attr in state:
                instance[attr] = state[attr]
        instance = clone_instance(definition, instance)

        stage = self._stage_links(definition, instance, state, "create")
        self._apply(stage)
        logger.debug("instance_created", model=model, id=instance["id"])
        return self._copy(model, instance)

    async def update(self, model: str, state: dict[str, Any] | None) -> dict[str, Any]:
        definition = self.schema.model(model, "update")
        if state is None:
            raise InvalidStateError("No state passed to #update")
        if state.get("id") is None:
            raise InvalidStateError("You must specify an id in order to modify a record.")
        current = self._get(model, state["id"])
        if current is None:
            raise MissingRecordError(model, "update")

        instance = self._copy(model, current)
        for attr in definition.attributes:
            if attr in state:
                instance[attr] = state[attr]
        instance = clone_instance(definition, instance)

        stage = self._stage_links(definition, instance, state, "update")
        self._apply(stage)
        return self._copy(model, instance)

    async def delete(self, model: str, state: dict[str, Any] | None) -> None:
        """Remove an instance.

        References held by other instances are left as they are.
        """
        self.schema.model(model, "delete")
        if state is None:
            raise InvalidStateError("No state passed to #delete")
        if state.get("id") is None:
            raise InvalidStateError("You must specify an id in order to modify a record.")
        if self._get(model, state["id"]) is None:
            raise MissingRecordError(model, "delete")

        instance_id = self._resolve(model, state["id"])
        del self._data[model][instance_id]
        self._fetched_at[model].pop(instance_id, None)

    # -------------------------------------------------------------------------
    # Commit
    # -------------------------------------------------------------------------

    def pending_changes(self) -> list[Patch]:
        """Patches that would turn the confirmed snapshot into the working state."""
        return diff_states(self.schema, self._snapshot, self._data)

    def _apply_incoming(self, patches: list[Patch]) -> None:
        for patch in patches:
            tokens = split_pointer(patch.path)
            if len(tokens) >= 3 and tokens[0] in self._data and tokens[1] not in self._data[tokens[0]]:
                blank = self.schema.models[tokens[0]].blank()
                blank["id"] = tokens[1]
                self._data[tokens[0]][tokens[1]] = blank
        apply_patches(self._data, patches)

    def _rewrite_references(self, model: str, old_id: str, new_id: str) -> None:
        for other, definition in self.schema.models.items():
            for link in definition.links.values():
                if link.target_model != model:
                    continue
                for instance in self._data[other].values():
                    value = instance.get(link.name)
                    if isinstance(value, list):
                        if old_id in value:
                            instance[link.name] = [new_id if i == old_id else i for i in value]
                    elif value == old_id:
                        instance[link.name] = new_id

    def _reconcile(self, results: list[Reconciliation]) -> None:
        for record in results:
            definition = self.schema.models.get(record.type)
            if definition is None or record.data.get("id") is None:
                continue
            new_id = str(record.data["id"])
            old_id = str(record.old_id) if record.old_id is not None else None

            if old_id and old_id != new_id:
                self._aliases.set(record.type, old_id, new_id)
                self._data[record.type].pop(old_id, None)
                self._rewrite_references(record.type, old_id, new_id)

            full = definition.blank()
            full.update(record.data)
            full["id"] = new_id
            self._data[record.type][new_id] = clone_instance(definition, full)

    async def commit(self, patches: list[Patch] | None = None) -> list[Reconciliation] | None:
        """Send pending changes upstream.

        When ``patches`` are given this store is acting as another store's
        upstream: they are applied to the working state and stay pending
        here until this store is committed in turn.

        Raises:
            NoUpstreamError: If no upstream store is configured
        """
        if patches is not None:
            self._apply_incoming(patches)
            return None

        if self.upstream is None:
            raise NoUpstreamError()

        pending = self.pending_changes()
        if not pending:
            return None

        logger.info("commit_started", store=self.kind, patches=len(pending))
        try:
            results = await self.upstream.commit(pending)
        except Exception as e:
            self._data = clone_state(self.schema, self._snapshot)
            logger.warning("commit_rolled_back", store=self.kind, error=str(e))
            raise

        if results:
            self._reconcile(results)
        self._snapshot = clone_state(self.schema, self._data)
        logger.info("commit_finished", store=self.kind, reconciled=len(results or []))
        return None

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def dehydrate(self) -> dict[str, Any]:
        if self.pending_changes():
            raise DehydrateError("Cannot dehydrate MemoryStore with uncommitted data")
        return {
            "data": clone_state(self.schema, self._data),
            "aliases": self._aliases.to_dict(),
            "fetched_at": {m: dict(t) for m, t in self._fetched_at.items() if t},
        }

    def rehydrate(self, state: dict[str, Any]) -> None:
        data = state.get("data") or {}
        self._data = {model: {} for model in self.schema.models}
        for model, instances in data.items():
            if model in self._data:
                self._data[model] = {
                    str(i): clone_instance(self.schema.models[model], inst) for i, inst in instances.items()
                }
        self._snapshot = clone_state(self.schema, self._data)
        self._aliases = IdentifierAliases.from_dict(state.get("aliases"))
        self._fetched_at = {model: {} for model in self.schema.models}
        for model, stamps in (state.get("fetched_at") or {}).items():
            if model in self._fetched_at:
                self._fetched_at[model].update(stamps)


def target_holds_many(schema: CompiledSchema, model: str, field: str) -> bool:
    link = schema.models[model].links.get(field)
    return link is not None and link.holds_many
