"""Elide client facade.

Builds one store per schema store declaration, wires upstreams, and
routes every call to the store its model lives in.

Example:
    async with Elide(schema) as elide:
        john = await elide.create("person", {"name": "John"})
        await elide.create("pet", {"name": "Spot", "owner": john["id"]})
        await elide.commit()
        pets = await elide.find("person", john["id"]).find("pets")
"""
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import httpx

from elide_client.config import CONFIG, ClientConfig
from elide_client.errors import StoreConfigurationError
from elide_client.logging import get_logger
from elide_client.query import Query
from elide_client.schema import SchemaDeclaration, compile_schema, load_declaration, load_schema_file
from elide_client.stores.base import Datastore
from elide_client.stores.jsonapi import JsonApiDatastore
from elide_client.stores.memory import MemoryDatastore
from elide_client.transport import HttpTransport

logger = get_logger(__name__)


class Elide:
    """Entry point for application code."""

    def __init__(
        self,
        schema: SchemaDeclaration | dict[str, Any],
        config: ClientConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Compile ``schema`` and build its stores.

        Args:
            schema: Schema declaration (or its plain mapping form)
            config: Runtime settings; defaults to the environment
            transport: Optional httpx transport for every remote store
        """
        declaration = load_declaration(schema)
        self.config = config or CONFIG
        self.schema = compile_schema(declaration)
        self.stores: dict[str, Datastore] = {}
        self._committing: list[str] = []

        for name, store_decl in declaration.stores.items():
            ttl = store_decl.ttl if store_decl.ttl is not None else self.config.ttl
            if store_decl.type == "memory":
                self.stores[name] = MemoryDatastore(self.schema, ttl)
                self._committing.append(name)
            elif store_decl.type == "jsonapi":
                base_url = store_decl.base_url or self.config.base_url
                if not base_url:
                    raise StoreConfigurationError(f'Store "{name}" must specify a baseURL.')
                http = HttpTransport(base_url, self.config, transport)
                self.stores[name] = JsonApiDatastore(self.schema, http, ttl)
            else:
                raise StoreConfigurationError(f'Unknown store type "{store_decl.type}".')

        for name, store_decl in declaration.stores.items():
            upstream = store_decl.upstream
            if not upstream:
                continue
            if upstream not in self.stores:
                raise StoreConfigurationError(
                    f'Cannot set upstream store to "{upstream}", "{upstream}" not defined.'
                )
            self.stores[name].set_upstream(self.stores[upstream])

        logger.debug("client_ready", stores=list(self.stores), models=list(self.schema.models))

    @classmethod
    def from_file(cls, path: str | Path, **kwargs: Any) -> Elide:
        """Build a client from a YAML or JSON schema file."""
        return cls(load_schema_file(path), **kwargs)

    async def __aenter__(self) -> Elide:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        for store in self.stores.values():
            await store.aclose()

    def store_for(self, model: str) -> Datastore:
        return self.stores[self.schema.model(model).store]

    # -------------------------------------------------------------------------
    # Data access
    # -------------------------------------------------------------------------

    def find(
        self,
        model: str,
        id: Any = None,
        *,
        fields: dict[str, list[str]] | None = None,
        filters: dict[str, list[dict[str, Any]]] | None = None,
        include: list[str] | None = None,
    ) -> Query:
        """Start a query; await the result (optionally after chaining ``.find``)."""
        store = self.store_for(model)
        options: dict[str, Any] = {}
        if fields:
            options["fields"] = fields
        if filters:
            options["filters"] = filters
        if include:
            options["include"] = include
        return Query(store, model, id, options)

    async def create(self, model: str, state: dict[str, Any]) -> dict[str, Any]:
        return await self.store_for(model).create(model, state)

    async def update(self, model: str, state: dict[str, Any]) -> dict[str, Any]:
        return await self.store_for(model).update(model, state)

    async def delete(self, model: str, state: dict[str, Any]) -> None:
        await self.store_for(model).delete(model, state)

    async def commit(self) -> None:
        """Commit every memory store to its upstream."""
        await asyncio.gather(*(self.stores[name].commit() for name in self._committing))

    # -------------------------------------------------------------------------
    # Auth
    # -------------------------------------------------------------------------

    def add_query_parameter(self, key: str, value: str) -> None:
        for store in self.stores.values():
            store.add_query_parameter(key, value)

    def add_request_header(self, key: str, value: str) -> None:
        for store in self.stores.values():
            store.add_request_header(key, value)

    def clear_auth_data(self) -> None:
        for store in self.stores.values():
            store.clear_auth_data()

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _store_map(self) -> dict[str, str]:
        return {name: definition.store for name, definition in self.schema.models.items()}

    def dehydrate(self) -> dict[str, Any]:
        return {
            "store_map": self._store_map(),
            "stores": {name: store.dehydrate() for name, store in self.stores.items()},
        }

    def rehydrate(self, state: dict[str, Any]) -> None:
        if state.get("store_map") != self._store_map():
            logger.warning("rehydrate_schema_mismatch")
        for name, store_state in (state.get("stores") or {}).items():
            if name in self.stores:
                self.stores[name].rehydrate(store_state)
