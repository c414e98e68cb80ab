"""Datastores: the in-memory relational store and the JSON:API remote store."""

from elide_client.stores.base import Datastore, FindResult, Reconciliation
from elide_client.stores.jsonapi import JsonApiDatastore
from elide_client.stores.memory import MemoryDatastore

__all__ = [
    "Datastore",
    "FindResult",
    "JsonApiDatastore",
    "MemoryDatastore",
    "Reconciliation",
]
