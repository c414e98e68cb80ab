"""Tests for the relationship cache and path resolution."""
from __future__ import annotations

import pytest

from elide_client.errors import CannotRootError, QueryError
from elide_client.query import Query
from elide_client.relations import IdentifierAliases, RelationshipCache
from elide_client.rooting import PathResolver


@pytest.fixture
def cache():
    return RelationshipCache()


@pytest.fixture
def resolver(pets_schema, cache):
    return PathResolver(pets_schema, cache)


def _relationship(model: str, instance_id: str) -> dict:
    return {"data": {"type": model, "id": instance_id}}


class TestIdentifierAliases:
    """Tests for temporary id aliasing."""

    def test_unaliased_ids_resolve_to_themselves(self):
        assert IdentifierAliases().resolve("person", "1") == "1"

    def test_chains_collapse(self):
        aliases = IdentifierAliases()
        aliases.set("person", "a", "b")
        aliases.set("person", "b", "c")
        assert aliases.resolve("person", "a") == "c"
        assert sorted(aliases.previous("person", "c")) == ["a", "b"]

    def test_aliases_are_per_model(self):
        aliases = IdentifierAliases()
        aliases.set("person", "tmp", "1")
        assert aliases.resolve("pet", "tmp") == "tmp"


class TestRelationshipCache:
    """Tests for the parent/child index."""

    def test_find_parent(self, cache):
        cache.link("person", "1", "pet", "7")
        assert cache.find_parent("person", "pet", "7") == "1"
        assert cache.find_parent("person", "pet", "8") is None

    def test_ids_are_normalized(self, cache):
        cache.link("person", 1, "pet", 7)
        assert cache.find_parent("person", "pet", "7") == "1"

    def test_alias_rewrites_entries(self, cache):
        cache.link("person", "tmp", "pet", "7")
        cache.link("person", "1", "pet", "pet-tmp")

        cache.set_alias("person", "tmp", "1")
        cache.set_alias("pet", "pet-tmp", "8")

        assert cache.find_parent("person", "pet", "7") == "1"
        assert cache.find_parent("person", "pet", "8") == "1"
        assert cache.find_parent("person", "pet", "pet-tmp") == "1"

    def test_round_trip(self, cache):
        cache.link("person", "1", "pet", "7")
        cache.set_alias("person", "tmp", "1")

        restored = RelationshipCache.from_dict(cache.to_dict())

        assert restored.find_parent("person", "pet", "7") == "1"
        assert restored.aliases.resolve("person", "tmp") == "1"


class TestAddressOf:
    """Tests for PathResolver.address_of."""

    def test_root(self, resolver):
        assert resolver.address_of("person", "1") == "/person/1"

    def test_nested_from_cache(self, resolver, cache):
        cache.link("person", "1", "pet", "7")
        assert resolver.address_of("pet", "7") == "/person/1/pets/7"
        assert resolver.collection_of("pet", "7") == "/person/1/pets"

    def test_nested_from_instance(self, resolver):
        assert resolver.address_of("pet", "7", {"id": "7", "owner": "2"}) == "/person/2/pets/7"

    def test_instance_takes_precedence_over_cache(self, resolver, cache):
        cache.link("person", "1", "pet", "7")
        assert resolver.address_of("pet", "7", {"id": "7", "owner": "2"}) == "/person/2/pets/7"

    def test_deeply_nested(self, resolver, cache):
        cache.link("person", "1", "pet", "7")
        cache.link("pet", "7", "flee", "3")
        assert resolver.address_of("flee", "3") == "/person/1/pets/7/flees/3"

    def test_unknown_ancestor(self, resolver, cache):
        cache.link("pet", "7", "flee", "3")
        with pytest.raises(CannotRootError) as exc:
            resolver.address_of("flee", "3")
        assert exc.value.ancestor == "person"
        assert exc.value.model == "flee"

    def test_aliased_ids(self, resolver, cache):
        cache.link("person", "tmp", "pet", "7")
        cache.set_alias("person", "tmp", "1")
        assert resolver.address_of("pet", "7") == "/person/1/pets/7"
        assert resolver.address_of("person", "tmp") == "/person/1"


class TestCollectionForNew:
    """Tests for PathResolver.collection_for_new."""

    def test_root(self, resolver):
        assert resolver.collection_for_new("person", {"type": "person"}) == "/person"

    def test_parent_from_payload(self, resolver):
        resource = {"type": "pet", "relationships": {"owner": _relationship("person", "1")}}
        assert resolver.collection_for_new("pet", resource) == "/person/1/pets"

    def test_missing_parent(self, resolver):
        with pytest.raises(CannotRootError) as exc:
            resolver.collection_for_new("pet", {"type": "pet", "attributes": {"name": "Spot"}})
        assert exc.value.ancestor == "person"

    def test_link_without_inverse(self, resolver):
        with pytest.raises(CannotRootError, match="declares no inverse"):
            resolver.collection_for_new("flee", {"type": "flee"})


class TestQueryPath:
    """Tests for PathResolver.query_path."""

    def test_root_collection(self, resolver):
        assert resolver.query_path(Query(None, "person")) == ("person", "/person")

    def test_nested_hops(self, resolver):
        assert resolver.query_path(Query(None, "person", 1).find("pets")) == ("pet", "/person/1/pets")
        assert resolver.query_path(Query(None, "person", 1).find("pets", 7)) == (
            "pet",
            "/person/1/pets/7",
        )

    def test_nested_first_hop_uses_cache(self, resolver, cache):
        cache.link("person", "1", "pet", "7")
        assert resolver.query_path(Query(None, "pet", "7").find("flees")) == (
            "flee",
            "/person/1/pets/7/flees",
        )

    def test_nested_first_hop_without_cache(self, resolver):
        with pytest.raises(CannotRootError) as exc:
            resolver.query_path(Query(None, "pet", "7").find("flees"))
        assert exc.value.ancestor == "person"

    def test_nested_collection_cannot_be_rooted(self, resolver):
        with pytest.raises(CannotRootError):
            resolver.query_path(Query(None, "pet"))

    def test_collection_must_be_last(self, resolver):
        with pytest.raises(QueryError):
            resolver.query_path(Query(None, "person").find("pets", "7"))

    def test_hop_must_be_a_link(self, resolver):
        with pytest.raises(QueryError) as exc:
            resolver.query_path(Query(None, "person", "1").find("name"))
        assert exc.value.field == "name"
