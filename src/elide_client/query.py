"""Query traversal objects."""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generator

if TYPE_CHECKING:
    from elide_client.stores.base import Datastore


@dataclass
class Hop:
    """One step of a query.

    The first hop names a ``model``; every later hop names a link ``field``
    on the model resolved so far. A hop without an ``id`` selects the whole
    collection at that step.
    """

    model: str | None = None
    field: str | None = None
    id: str | None = None


class Query:
    """A chain of hops bound to the store that will answer it.

    Awaiting the query runs it::

        pets = await elide.find("person", "1").find("pets")
    """

    def __init__(
        self,
        store: Datastore,
        model: str,
        id: Any = None,
        options: dict[str, Any] | None = None,
    ) -> None:
        self.store = store
        self.hops: list[Hop] = [Hop(model=model, id=_as_id(id))]
        self.options: dict[str, Any] = dict(options or {})

    def find(self, field: str, id: Any = None) -> Query:
        """Descend into the linked ``field`` of the current result."""
        self.hops.append(Hop(field=field, id=_as_id(id)))
        return self

    @property
    def model(self) -> str:
        return self.hops[0].model or ""

    @property
    def wants_collection(self) -> bool:
        return self.hops[-1].id is None

    def __await__(self) -> Generator[Any, None, Any]:
        return self.store.find(self).__await__()

    def __repr__(self) -> str:
        steps = []
        for hop in self.hops:
            name = hop.model if hop.model is not None else hop.field
            steps.append(f"{name}:{hop.id}" if hop.id is not None else str(name))
        return f"Query({' -> '.join(steps)})"


def _as_id(value: Any) -> str | None:
    return None if value is None else str(value)
