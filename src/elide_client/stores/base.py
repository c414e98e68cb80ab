"""Base interface for datastores."""
from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Coroutine
from dataclasses import dataclass, field
from typing import Any

from elide_client.changes import Patch
from elide_client.query import Query
from elide_client.schema.compiler import CompiledSchema


@dataclass
class FindResult:
    """Primary data of a query plus any side-loaded resources."""

    data: dict[str, Any] | list[dict[str, Any]] | None
    included: list[tuple[str, dict[str, Any]]] = field(default_factory=list)


@dataclass
class Reconciliation:
    """A server-side effect reported by a commit.

    ``old_id`` is the temporary id the object was sent with, when the
    server assigned a different one.
    """

    type: str
    old_id: str | None
    data: dict[str, Any]


class Datastore(ABC):
    """Abstract base class for stores.

    Every operation is a coroutine except ``find``, which validates its
    argument synchronously and then returns the coroutine that answers it.
    """

    kind: str = "base"

    def __init__(self, schema: CompiledSchema, ttl: float | None = None) -> None:
        """Initialize the store.

        Args:
            schema: Compiled schema shared by every store of a client
            ttl: Seconds before entries fetched from upstream expire
        """
        if ttl is not None and ttl < 0:
            raise ValueError("Datastore ttl must be non-negative.")
        self.schema = schema
        self.ttl = ttl
        self.upstream: Datastore | None = None

    def find(self, query: Query) -> Coroutine[Any, Any, Any]:
        """Resolve ``query``; a collection hop yields a list, an id hop one instance or None."""
        if not isinstance(query, Query):
            raise TypeError("Datastore.find did not receive a Query")
        return self._find(query)

    async def fetch(self, query: Query) -> FindResult:
        """Like ``find`` but also returns side-loaded resources."""
        return FindResult(data=await self.find(query))

    @abstractmethod
    async def _find(self, query: Query) -> Any:
        """Answer a validated query."""

    @abstractmethod
    async def create(self, model: str, state: dict[str, Any]) -> dict[str, Any]:
        """Create an instance and return it."""

    @abstractmethod
    async def update(self, model: str, state: dict[str, Any]) -> dict[str, Any]:
        """Update the instance identified by ``state['id']``."""

    @abstractmethod
    async def delete(self, model: str, state: dict[str, Any]) -> None:
        """Delete the instance identified by ``state['id']``."""

    @abstractmethod
    async def commit(self, patches: list[Patch] | None = None) -> list[Reconciliation] | None:
        """Push pending operations (or ``patches``) to where they belong."""

    def set_upstream(self, store: Datastore) -> None:
        if not isinstance(store, Datastore):
            raise TypeError("Only a Datastore can be upstream.")
        self.upstream = store

    # Auth hooks; only stores that talk to a server keep this data
    def add_query_parameter(self, key: str, value: str) -> None:
        pass

    def add_request_header(self, key: str, value: str) -> None:
        pass

    def clear_auth_data(self) -> None:
        pass

    @abstractmethod
    def dehydrate(self) -> dict[str, Any]:
        """Serialize the store's confirmed state."""

    @abstractmethod
    def rehydrate(self, state: dict[str, Any]) -> None:
        """Restore state produced by ``dehydrate``."""

    async def aclose(self) -> None:
        """Release any resources held by the store."""
