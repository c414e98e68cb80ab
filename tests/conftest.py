"""Shared schema fixtures."""
from __future__ import annotations

import json
from typing import Any, Callable

import httpx
import pytest

from elide_client.schema import compile_schema
from elide_client.stores.memory import MemoryDatastore

BASE_URL = "https://api.test"


def pets_declaration(upstream: bool = True) -> dict[str, Any]:
    """person -> pets -> flees, person -> bike."""
    memory: dict[str, Any] = {"type": "memory"}
    if upstream:
        memory["upstream"] = "remote"
    return {
        "stores": {
            "memory": memory,
            "remote": {"type": "jsonapi", "baseURL": BASE_URL},
        },
        "models": {
            "person": {
                "meta": {"store": "memory", "isRootObject": True},
                "name": "string",
                "links": {
                    "pets": {"model": "pet", "type": "hasMany", "inverse": "owner"},
                    "bike": {"model": "bicycle", "type": "hasOne", "inverse": "owner"},
                },
            },
            "bicycle": {
                "meta": {"store": "memory"},
                "maker": "string",
                "model": "string",
            },
            "pet": {
                "meta": {"store": "memory"},
                "type": "string",
                "name": "string",
                "age": "number",
                "links": {
                    "flees": {"model": "flee", "type": "hasMany"},
                },
            },
            "flee": {
                "meta": {"store": "memory"},
                "age": "number",
            },
        },
    }


def books_declaration() -> dict[str, Any]:
    return {
        "stores": {"remote": {"type": "jsonapi", "baseURL": BASE_URL}},
        "models": {
            "author": {
                "meta": {"store": "remote", "isRootObject": True},
                "name": "string",
                "links": {
                    "books": {"model": "book", "type": "hasMany", "inverse": "author"},
                },
            },
            "book": {
                "meta": {"store": "remote", "isRootObject": True},
                "title": "string",
                "genre": "string",
                "language": "string",
            },
        },
    }


def jsonapi_response(status: int, body: Any = None) -> httpx.Response:
    if body is None:
        return httpx.Response(status)
    return httpx.Response(
        status,
        content=json.dumps(body).encode(),
        headers={"Content-Type": "application/vnd.api+json"},
    )


class Recorder:
    """httpx handler that records requests and replays canned responses."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.handler = handler
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    def bodies(self) -> list[Any]:
        return [json.loads(r.content) if r.content else None for r in self.requests]


@pytest.fixture
def pets_schema():
    return compile_schema(pets_declaration())


@pytest.fixture
def memory_store(pets_schema):
    return MemoryDatastore(pets_schema)
