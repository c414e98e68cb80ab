"""Pending change tracking.

Store state is laid out as ``{model: {id: instance}}``. The pending change
set is the JSON Patch list that turns the confirmed snapshot into the
working state, with paths of the form ``/model/id`` (whole objects) and
``/model/id/field`` (single fields; lists are always replaced whole).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from elide_client.schema.compiler import CompiledSchema, ModelDefinition

PatchOp = Literal["add", "remove", "replace"]

State = dict[str, dict[str, dict[str, Any]]]


@dataclass
class Patch:
    """A single JSON Patch operation."""

    op: PatchOp
    path: str
    value: Any = None

    def to_dict(self) -> dict[str, Any]:
        if self.op == "remove":
            return {"op": self.op, "path": self.path}
        return {"op": self.op, "path": self.path, "value": self.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Patch:
        return cls(op=data["op"], path=data["path"], value=data.get("value"))

    @property
    def parts(self) -> list[str]:
        return split_pointer(self.path)


def _escape(token: str) -> str:
    return str(token).replace("~", "~0").replace("/", "~1")


def _unescape(token: str) -> str:
    return token.replace("~1", "/").replace("~0", "~")


def pointer(*tokens: Any) -> str:
    """Build a JSON pointer from raw tokens."""
    return "".join(f"/{_escape(t)}" for t in tokens)


def split_pointer(path: str) -> list[str]:
    if not path or path == "/":
        return []
    if not path.startswith("/"):
        raise ValueError(f"Invalid JSON pointer: {path!r}")
    return [_unescape(t) for t in path[1:].split("/")]


# =============================================================================
# Structural clone
# =============================================================================


def _copy_json(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _copy_json(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_copy_json(v) for v in value]
    return value


def clone_instance(definition: ModelDefinition, instance: dict[str, Any]) -> dict[str, Any]:
    """Copy an instance over its known shape.

    Link values are ids or lists of ids; attributes are JSON values.
    """
    copy: dict[str, Any] = {}
    for key, value in instance.items():
        if key in definition.links:
            copy[key] = list(value) if isinstance(value, list) else value
        else:
            copy[key] = _copy_json(value)
    return copy


def clone_state(schema: CompiledSchema, state: State) -> State:
    return {
        model: {
            instance_id: clone_instance(schema.models[model], instance)
            for instance_id, instance in instances.items()
        }
        for model, instances in state.items()
    }


# =============================================================================
# Diff / apply
# =============================================================================


def diff_states(schema: CompiledSchema, snapshot: State, working: State) -> list[Patch]:
    """Patches that turn ``snapshot`` into ``working``.

    Models are visited in schema order and instances in insertion order.
    """
    patches: list[Patch] = []
    for model in schema.models:
        before = snapshot.get(model, {})
        after = working.get(model, {})

        for instance_id in before:
            if instance_id not in after:
                patches.append(Patch("remove", pointer(model, instance_id)))

        for instance_id, instance in after.items():
            if instance_id not in before:
                patches.append(
                    Patch("add", pointer(model, instance_id),
                          clone_instance(schema.models[model], instance))
                )
                continue

            old = before[instance_id]
            for key in old:
                if key not in instance:
                    patches.append(Patch("remove", pointer(model, instance_id, key)))
            for key, value in instance.items():
                if key not in old:
                    patches.append(Patch("add", pointer(model, instance_id, key), _copy_json(value)))
                elif old[key] != value:
                    patches.append(Patch("replace", pointer(model, instance_id, key), _copy_json(value)))

    return patches


def apply_patches(state: State, patches: list[Patch]) -> None:
    """Apply patches to ``state`` in place.

    Supports add/remove/replace over nested dicts and lists; list indices
    and ``-`` (append) follow RFC 6902.
    """
    for patch in patches:
        tokens = patch.parts
        if not tokens:
            raise ValueError("Cannot patch the document root")

        container: Any = state
        for token in tokens[:-1]:
            if isinstance(container, list):
                container = container[int(token)]
            else:
                container = container.setdefault(token, {})
        last = tokens[-1]

        if isinstance(container, list):
            if patch.op == "remove":
                del container[int(last)]
            elif patch.op == "add":
                if last == "-":
                    container.append(_copy_json(patch.value))
                else:
                    container.insert(int(last), _copy_json(patch.value))
            else:
                container[int(last)] = _copy_json(patch.value)
        elif patch.op == "remove":
            container.pop(last, None)
        else:
            container[last] = _copy_json(patch.value)
