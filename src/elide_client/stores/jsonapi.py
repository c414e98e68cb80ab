"""JSON:API datastore.

Talks to an Elide-style JSON:API server. Non-root models are addressed
through their ancestors, so every successful read feeds the relationship
cache used to root later requests. Commits go out as a single JSON Patch
extension request against ``/``.
"""
from __future__ import annotations

import json
from typing import Any

import httpx

from elide_client.changes import Patch
from elide_client.errors import InvalidStateError, UpstreamError
from elide_client.logging import get_logger
from elide_client.query import Query
from elide_client.relations import RelationshipCache
from elide_client.rooting import PathResolver
from elide_client.schema.compiler import CompiledSchema
from elide_client.serialization import Discovered, Document, from_document, query_params, to_resource
from elide_client.stores.base import Datastore, FindResult, Reconciliation
from elide_client.sync import DiffRoller
from elide_client.transport import JSONPATCH_MIME_TYPE, HttpTransport

logger = get_logger(__name__)


class JsonApiDatastore(Datastore):
    """Remote store backed by a JSON:API server."""

    kind = "jsonapi"

    def __init__(self, schema: CompiledSchema, transport: HttpTransport, ttl: float | None = None) -> None:
        super().__init__(schema, ttl)
        self.transport = transport
        self.cache = RelationshipCache()
        self.resolver = PathResolver(schema, self.cache)
        self.roller = DiffRoller(schema, self.resolver)

    # -------------------------------------------------------------------------
    # Request helpers
    # -------------------------------------------------------------------------

    def _error(
        self,
        message: str,
        path: str,
        response: httpx.Response | None = None,
        body: Any = None,
    ) -> UpstreamError:
        status = response.status_code if response is not None else None
        text = response.text if response is not None and status is not None and status < 500 else None
        return UpstreamError(
            message,
            resource_url=path,
            request_url=self.transport.absolute_url(path),
            request_data=body,
            response_status=status,
            response_text=text,
        )

    async def _request(
        self,
        method: str,
        path: str,
        message: str,
        params: list[tuple[str, str]] | None = None,
        body: Any = None,
        content_type: str | None = None,
    ) -> httpx.Response:
        kwargs: dict[str, Any] = {}
        if content_type:
            kwargs = {"content_type": content_type, "accept": content_type}
        try:
            response = await self.transport.submit(method, path, params=params, body=body, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("upstream_unreachable", method=method, path=path, error=str(e))
            raise self._error(message, path, body=body) from e

        if response.status_code >= 400:
            logger.warning("upstream_rejected", method=method, path=path, status=response.status_code)
            raise self._error(message, path, response, body)
        return response

    def _record(self, links: list[Discovered]) -> None:
        for link in links:
            self.cache.link(link.parent_model, link.parent_id, link.child_model, link.child_id)

    def _decode(self, document: Any) -> Document:
        doc = from_document(self.schema, document or {})
        self._record(doc.links)
        return doc

    @staticmethod
    def _has_body(response: httpx.Response) -> bool:
        return response.status_code != 204 and bool(response.content)

    # -------------------------------------------------------------------------
    # Datastore
    # -------------------------------------------------------------------------

    async def fetch(self, query: Query) -> FindResult:
        if not isinstance(query, Query):
            raise TypeError("Datastore.find did not receive a Query")
        model, path = self.resolver.query_path(query)
        response = await self._request(
            "GET", path, f"Could not find {model}.", params=query_params(query.options)
        )
        if not self._has_body(response):
            return FindResult(data=[] if query.wants_collection else None)
        doc = self._decode(response.json())
        return FindResult(data=doc.data, included=doc.included)

    async def _find(self, query: Query) -> Any:
        return (await self.fetch(query)).data

    async def create(self, model: str, state: dict[str, Any]) -> dict[str, Any]:
        self.schema.model(model, "create")
        if state is None:
            raise InvalidStateError("No state passed to #create")
        resource = to_resource(self.schema, model, state, fill_blanks=True)
        path = self.resolver.collection_for_new(model, resource)

        response = await self._request(
            "POST", path, f"Could not create {model}:{json.dumps(state, default=str)}.",
            body={"data": resource},
        )
        if not self._has_body(response):
            return dict(state)
        created = self._decode(response.json()).data
        if not isinstance(created, dict):
            return dict(state)
        if state.get("id") is not None and str(state["id"]) != created["id"]:
            self.cache.set_alias(model, state["id"], created["id"])
        return created

    async def update(self, model: str, state: dict[str, Any]) -> dict[str, Any]:
        self.schema.model(model, "update")
        if not state or state.get("id") is None:
            raise InvalidStateError("You must specify an id in order to modify a record.")
        path = self.resolver.address_of(model, state["id"], state)
        body = {"data": to_resource(self.schema, model, state)}

        response = await self._request(
            "PATCH", path, f"Could not update {model}:{json.dumps(state, default=str)}.", body=body
        )
        if not self._has_body(response):
            return dict(state)
        updated = self._decode(response.json()).data
        return updated if isinstance(updated, dict) else dict(state)

    async def delete(self, model: str, state: dict[str, Any]) -> None:
        self.schema.model(model, "delete")
        if not state or state.get("id") is None:
            raise InvalidStateError("You must specify an id in order to modify a record.")
        path = self.resolver.address_of(model, state["id"], state)
        await self._request("DELETE", path, f"Could not delete {model}:{json.dumps(state, default=str)}.")

    async def commit(self, patches: list[Patch] | None = None) -> list[Reconciliation] | None:
        """Submit ``patches`` as one atomic JSON Patch request.

        Returns:
            None for a 204, otherwise one reconciliation per non-null slot
            of the response array
        """
        if not patches:
            return None
        rooted = self.roller.roll(patches)
        body = [patch.to_dict() for patch in rooted]

        response = await self._request(
            "PATCH", "/", "Could not commit changes", body=body, content_type=JSONPATCH_MIME_TYPE
        )
        if not self._has_body(response):
            return None

        results: list[Reconciliation] = []
        for slot, document in zip(rooted, response.json()):
            if document is None:
                continue
            doc = self._decode(document)
            if not isinstance(doc.data, dict) or doc.model is None:
                continue
            old_id = None
            if slot.op == "add" and isinstance(slot.value, dict):
                old_id = slot.value.get("id")
            if old_id is not None and str(old_id) != doc.data["id"]:
                self.cache.set_alias(doc.model, old_id, doc.data["id"])
            results.append(Reconciliation(type=doc.model, old_id=old_id, data=doc.data))
        logger.info("commit_applied", patches=len(rooted), reconciled=len(results))
        return results

    # -------------------------------------------------------------------------
    # Auth / persistence
    # -------------------------------------------------------------------------

    def add_query_parameter(self, key: str, value: str) -> None:
        self.transport.add_query_parameter(key, value)

    def add_request_header(self, key: str, value: str) -> None:
        self.transport.add_request_header(key, value)

    def clear_auth_data(self) -> None:
        self.transport.clear_auth_data()

    def dehydrate(self) -> dict[str, Any]:
        return {
            "cache": self.cache.to_dict(),
            "headers": dict(self.transport.headers),
            "query_parameters": dict(self.transport.query_parameters),
        }

    def rehydrate(self, state: dict[str, Any]) -> None:
        self.cache = RelationshipCache.from_dict(state.get("cache"))
        self.resolver.cache = self.cache
        self.transport.headers = dict(state.get("headers") or {})
        self.transport.query_parameters = dict(state.get("query_parameters") or {})

    async def aclose(self) -> None:
        await self.transport.aclose()
