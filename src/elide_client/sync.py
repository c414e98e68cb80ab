"""Diff rolling for batched commits.

A memory store's pending changes are flat ``/model/id[/field]`` patches.
The server wants them addressed through each object's ancestors, with
objects created together nested under their new parent. Rolling happens
in three passes:

1. ``group``: patches grouped by model and id; new objects become full
   resources, field edits become partial resources
2. ``roll_up``: models are visited parent-first (schema hierarchy order)
   and every object claims the pending objects its relationships name
3. ``flatten``: each tree becomes a patch list with absolute paths
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from elide_client.changes import Patch, pointer, split_pointer
from elide_client.logging import get_logger
from elide_client.rooting import PathResolver
from elide_client.schema.compiler import CompiledSchema
from elide_client.serialization import to_resource

logger = get_logger(__name__)


@dataclass
class DiffNode:
    """Pending patches for one object plus the objects nested under it.

    Patch paths are relative to the object: ``""`` addresses the object
    itself, anything else a location inside it.
    """

    model: str
    id: str
    patches: list[Patch]
    children: dict[str, list[DiffNode]] = field(default_factory=dict)

    @property
    def is_new(self) -> bool:
        return any(p.op == "add" and p.path == "" for p in self.patches)

    def relationships(self) -> dict[str, Any]:
        rels: dict[str, Any] = {}
        for patch in self.patches:
            if patch.path == "" and isinstance(patch.value, dict):
                rels.update(patch.value.get("relationships") or {})
        return rels

    def link_hints(self) -> dict[str, Any]:
        """Relationship ids carried by the patches, keyed by field name."""
        hints: dict[str, Any] = {}
        for name, rel in self.relationships().items():
            data = (rel or {}).get("data")
            if isinstance(data, dict):
                hints[name] = data.get("id")
        return hints

    def resource(self) -> dict[str, Any]:
        for patch in self.patches:
            if patch.path == "" and isinstance(patch.value, dict):
                return patch.value
        return {"type": self.model, "id": self.id}


class DiffRoller:
    """Turn flat pending changes into one rooted JSON Patch batch."""

    def __init__(self, schema: CompiledSchema, resolver: PathResolver) -> None:
        self.schema = schema
        self.resolver = resolver

    def group(self, patches: list[Patch]) -> dict[str, dict[str, list[Patch]]]:
        groups: dict[str, dict[str, list[Patch]]] = {}
        partials: dict[tuple[str, str], dict[str, Any]] = {}

        for patch in patches:
            tokens = split_pointer(patch.path)
            if len(tokens) < 2 or tokens[0] not in self.schema:
                raise ValueError(f"Cannot commit patch outside of a model: {patch.path!r}")
            model, instance_id, rest = tokens[0], tokens[1], tokens[2:]
            definition = self.schema.models[model]
            bucket = groups.setdefault(model, {}).setdefault(instance_id, [])

            if not rest:
                if patch.op == "remove":
                    bucket.append(Patch("remove", ""))
                else:
                    value = dict(patch.value or {})
                    value["id"] = instance_id
                    bucket.append(Patch(patch.op, "", to_resource(self.schema, model, value, fill_blanks=True)))
                continue

            name = rest[0]
            if len(rest) == 1 and (name in definition.attributes or name in definition.links):
                key = (model, instance_id)
                if key not in partials:
                    partials[key] = {"type": model, "id": instance_id}
                    bucket.append(Patch("replace", "", partials[key]))
                value = None if patch.op == "remove" else patch.value
                partial = to_resource(self.schema, model, {"id": instance_id, name: value})
                resource = partials[key]
                for section in ("attributes", "relationships"):
                    if partial[section]:
                        resource.setdefault(section, {}).update(partial[section])
                continue

            bucket.append(Patch(patch.op, pointer(*rest), patch.value))

        return groups

    def roll_up(self, groups: dict[str, dict[str, list[Patch]]]) -> list[DiffNode]:
        pool = {model: dict(objects) for model, objects in groups.items()}
        trees: list[DiffNode] = []

        for model in self.schema.hierarchy:
            for instance_id in list(pool.get(model, {})):
                if instance_id not in pool[model]:
                    continue
                root = DiffNode(model, instance_id, pool[model].pop(instance_id))
                trees.append(root)

                work = [root]
                while work:
                    node = work.pop()
                    rels = node.relationships()
                    for link in self.schema.models[node.model].declared_links:
                        data = (rels.get(link.name) or {}).get("data")
                        members = data if isinstance(data, list) else [data]
                        for member in members:
                            if not member:
                                continue
                            child_id = str(member.get("id"))
                            candidates = pool.get(link.target_model, {})
                            if child_id not in candidates:
                                continue
                            child = DiffNode(link.target_model, child_id, candidates.pop(child_id))
                            node.children.setdefault(link.name, []).append(child)
                            work.append(child)

        return trees

    def flatten(self, node: DiffNode, collection: str) -> list[Patch]:
        """Absolute patches for ``node`` living in ``collection``."""
        object_path = f"{collection}/{node.id}"
        out: list[Patch] = []
        for patch in node.patches:
            if patch.path == "":
                if patch.op == "remove":
                    out.append(Patch("remove", object_path))
                else:
                    out.append(Patch(patch.op, collection, patch.value))
            else:
                out.append(Patch(patch.op, f"{object_path}{patch.path}", patch.value))

        for link_name, children in node.children.items():
            for child in children:
                out.extend(self.flatten(child, f"{object_path}/{link_name}"))
        return out

    def collection_for(self, node: DiffNode) -> str:
        definition = self.schema.models[node.model]
        if definition.is_root:
            return f"/{node.model}"
        if node.is_new:
            return self.resolver.collection_for_new(node.model, node.resource())
        return self.resolver.collection_of(node.model, node.id, node.link_hints())

    def roll(self, patches: list[Patch]) -> list[Patch]:
        """Group, nest and root ``patches`` into one ordered list."""
        trees = self.roll_up(self.group(patches))
        rooted: list[Patch] = []
        for tree in trees:
            rooted.extend(self.flatten(tree, self.collection_for(tree)))
        logger.debug("diffs_rolled", incoming=len(patches), trees=len(trees), outgoing=len(rooted))
        return rooted
