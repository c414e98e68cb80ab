"""Tests for JSON:API resource conversion."""
from __future__ import annotations

import pytest

from elide_client.errors import UnknownModelError
from elide_client.serialization import Discovered, from_document, from_resource, query_params, to_resource


class TestFromResource:
    """Tests for from_resource."""

    def test_pet(self, pets_schema):
        instance, discovered = from_resource(pets_schema, {
            "type": "pet",
            "id": 7,
            "attributes": {"name": "Spot", "color": "brown"},
            "relationships": {
                "owner": {"data": {"type": "person", "id": "1"}},
                "flees": {"data": [{"type": "flee", "id": "3"}, {"type": "flee", "id": "2"}]},
            },
        })

        assert instance == {
            "id": "7",
            "type": None,
            "name": "Spot",
            "age": None,
            "flees": ["2", "3"],
            "owner": "1",
        }
        assert discovered == [
            Discovered("pet", "7", "flee", "2"),
            Discovered("pet", "7", "flee", "3"),
            Discovered("person", "1", "pet", "7"),
        ]

    def test_missing_relationships_default(self, pets_schema):
        instance, discovered = from_resource(pets_schema, {"type": "person", "id": "1"})
        assert instance == {"id": "1", "name": None, "pets": [], "bike": None}
        assert discovered == []

    def test_owned_one_link(self, pets_schema):
        _, discovered = from_resource(pets_schema, {
            "type": "person",
            "id": "1",
            "relationships": {"bike": {"data": {"type": "bicycle", "id": "b"}}},
        })
        assert discovered == [Discovered("person", "1", "bicycle", "b")]

    def test_unknown_type(self, pets_schema):
        with pytest.raises(UnknownModelError):
            from_resource(pets_schema, {"type": "dragon", "id": "1"})


class TestToResource:
    """Tests for to_resource."""

    def test_partial(self, pets_schema):
        assert to_resource(pets_schema, "person", {"id": 1, "name": "John"}) == {
            "type": "person",
            "id": "1",
            "attributes": {"name": "John"},
            "relationships": {},
        }

    def test_fill_blanks_without_id(self, pets_schema):
        assert to_resource(pets_schema, "pet", {"name": "Spot", "owner": "1"}, fill_blanks=True) == {
            "type": "pet",
            "attributes": {"type": None, "name": "Spot", "age": None},
            "relationships": {
                "flees": {"data": []},
                "owner": {"data": {"type": "person", "id": "1"}},
            },
        }


class TestFromDocument:
    """Tests for from_document."""

    def test_collection_with_included(self, pets_schema):
        document = from_document(pets_schema, {
            "data": [{
                "type": "person",
                "id": "1",
                "attributes": {"name": "John"},
                "relationships": {"pets": {"data": [{"type": "pet", "id": "7"}]}},
            }],
            "included": [
                {"type": "pet", "id": "7", "attributes": {"name": "Spot"}},
                {"type": "unicorn", "id": "9"},
            ],
        })

        assert document.model == "person"
        assert document.data == [{"id": "1", "name": "John", "pets": ["7"], "bike": None}]
        assert [model for model, _ in document.included] == ["pet"]
        assert Discovered("person", "1", "pet", "7") in document.links

    def test_null_data(self, pets_schema):
        document = from_document(pets_schema, {"data": None})
        assert document.data is None
        assert document.model is None


class TestQueryParams:
    """Tests for query option encoding."""

    def test_empty(self):
        assert query_params(None) == []

    def test_all_options(self):
        params = query_params({
            "fields": {"book": ["title", "genre"]},
            "filters": {
                "book": [
                    {"attribute": "genre", "operator": "in", "value": ["SciFi", "Fantasy"]},
                    {"attribute": "language", "operator": "eq", "value": "English"},
                ],
            },
            "include": ["author", "publisher"],
        })
        assert params == [
            ("fields[book]", "title,genre"),
            ("filter[book.genre][in]", "SciFi,Fantasy"),
            ("filter[book.language][eq]", "English"),
            ("include", "author,publisher"),
        ]
