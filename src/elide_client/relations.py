"""Relationship cache and identifier aliases.

Every successful remote read records which parent each child was seen
under, so nested resources can later be addressed without refetching
their ancestors. When the server replaces a temporary id, the alias is
recorded and existing cache entries are rewritten rather than evicted.
"""
from __future__ import annotations

from collections import defaultdict
from typing import Any


class IdentifierAliases:
    """Per-model mapping of temporary ids to server-assigned ids."""

    def __init__(self) -> None:
        self._aliases: dict[str, dict[str, str]] = defaultdict(dict)

    def set(self, model: str, old_id: str, new_id: str) -> None:
        if old_id == new_id:
            return
        table = self._aliases[model]
        table[old_id] = new_id
        # Collapse chains so resolve() is a single lookup
        for key, value in table.items():
            if value == old_id:
                table[key] = new_id

    def resolve(self, model: str, instance_id: Any) -> Any:
        """The current id for ``instance_id`` (itself when not aliased)."""
        if instance_id is None:
            return None
        return self._aliases.get(model, {}).get(str(instance_id), instance_id)

    def previous(self, model: str, instance_id: Any) -> list[str]:
        """Temporary ids that now resolve to ``instance_id``."""
        return [old for old, new in self._aliases.get(model, {}).items() if new == str(instance_id)]

    def to_dict(self) -> dict[str, dict[str, str]]:
        return {model: dict(table) for model, table in self._aliases.items() if table}

    @classmethod
    def from_dict(cls, data: dict[str, dict[str, str]] | None) -> IdentifierAliases:
        aliases = cls()
        for model, table in (data or {}).items():
            aliases._aliases[model].update(table)
        return aliases


class RelationshipCache:
    """Parent/child index populated from remote reads.

    ``_parents`` is the backward index ``(child_model, child_id) ->
    {parent_model: parent_id}``; ``_children`` is the forward index
    ``(parent_model, parent_id) -> {child_model: [child_id, ...]}``.
    """

    def __init__(self, aliases: IdentifierAliases | None = None) -> None:
        self.aliases = aliases or IdentifierAliases()
        self._parents: dict[tuple[str, str], dict[str, str]] = {}
        self._children: dict[tuple[str, str], dict[str, list[str]]] = {}

    def link(self, parent_model: str, parent_id: Any, child_model: str, child_id: Any) -> None:
        if parent_id is None or child_id is None:
            return
        parent_id, child_id = str(parent_id), str(child_id)
        self._parents.setdefault((child_model, child_id), {})[parent_model] = parent_id
        children = self._children.setdefault((parent_model, parent_id), {}).setdefault(child_model, [])
        if child_id not in children:
            children.append(child_id)

    def find_parent(self, parent_model: str, child_model: str, child_id: Any) -> str | None:
        """Id of the ``parent_model`` instance that ``child_model:child_id`` lives under."""
        if child_id is None:
            return None
        candidates = [str(child_id)]
        resolved = str(self.aliases.resolve(child_model, child_id))
        if resolved not in candidates:
            candidates.append(resolved)
        candidates.extend(self.aliases.previous(child_model, resolved))

        for candidate in candidates:
            parent_id = self._parents.get((child_model, candidate), {}).get(parent_model)
            if parent_id is not None:
                return str(self.aliases.resolve(parent_model, parent_id))

        for (model, parent_id), children in self._children.items():
            if model != parent_model:
                continue
            if any(c in children.get(child_model, ()) for c in candidates):
                return str(self.aliases.resolve(parent_model, parent_id))
        return None

    def set_alias(self, model: str, old_id: Any, new_id: Any) -> None:
        """Record ``old_id -> new_id`` and rewrite cache entries that mention ``old_id``."""
        old_id, new_id = str(old_id), str(new_id)
        if old_id == new_id:
            return
        self.aliases.set(model, old_id, new_id)

        # Entries keyed by the old id
        if (model, old_id) in self._parents:
            moved = self._parents.pop((model, old_id))
            self._parents.setdefault((model, new_id), {}).update(moved)
        if (model, old_id) in self._children:
            moved_children = self._children.pop((model, old_id))
            target = self._children.setdefault((model, new_id), {})
            for child_model, ids in moved_children.items():
                bucket = target.setdefault(child_model, [])
                bucket.extend(i for i in ids if i not in bucket)

        # Entries whose value is the old id
        for parents in self._parents.values():
            if parents.get(model) == old_id:
                parents[model] = new_id
        for children in self._children.values():
            ids = children.get(model)
            if ids and old_id in ids:
                children[model] = [new_id if i == old_id else i for i in ids]

    def to_dict(self) -> dict[str, Any]:
        return {
            "parents": [
                {"model": m, "id": i, "parents": dict(p)} for (m, i), p in self._parents.items()
            ],
            "children": [
                {"model": m, "id": i, "children": {k: list(v) for k, v in c.items()}}
                for (m, i), c in self._children.items()
            ],
            "aliases": self.aliases.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> RelationshipCache:
        data = data or {}
        cache = cls(IdentifierAliases.from_dict(data.get("aliases")))
        for entry in data.get("parents", []):
            cache._parents[(entry["model"], entry["id"])] = dict(entry["parents"])
        for entry in data.get("children", []):
            cache._children[(entry["model"], entry["id"])] = {
                k: list(v) for k, v in entry["children"].items()
            }
        return cache
