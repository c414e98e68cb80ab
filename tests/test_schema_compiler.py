"""Tests for the schema graph compiler."""
from __future__ import annotations

import pytest

from conftest import pets_declaration
from elide_client.errors import (
    DanglingModelError,
    LinkTargetError,
    LinkTypeError,
    MissingStoreError,
    SchemaError,
    UnknownModelError,
)
from elide_client.schema import (
    Cardinality,
    Direction,
    PathSegment,
    compile_schema,
    load_declaration,
)


def _schema(models: dict, stores: dict | None = None) -> dict:
    return {"stores": stores or {"memory": {"type": "memory"}}, "models": models}


def _root(store: str = "memory", **extra) -> dict:
    return {"meta": {"store": store, "isRootObject": True}, **extra}


def _child(store: str = "memory", **extra) -> dict:
    return {"meta": {"store": store}, **extra}


class TestLinks:
    """Tests for typed link compilation."""

    def test_declared_links_own_their_targets(self, pets_schema):
        pets = pets_schema.models["person"].link("pets")
        assert pets.cardinality is Cardinality.MANY
        assert pets.direction is Direction.OWNS
        assert pets.target_model == "pet"
        assert pets.target_field == "owner"
        assert pets.holds_many

    def test_inverse_links_are_synthesized(self, pets_schema):
        owner = pets_schema.models["pet"].link("owner")
        assert owner.direction is Direction.OWNED_BY
        assert owner.cardinality is Cardinality.MANY
        assert owner.target_model == "person"
        assert owner.target_field == "pets"
        # The owned-by side always stores a single owner id
        assert not owner.holds_many

        bike_owner = pets_schema.models["bicycle"].link("owner")
        assert bike_owner.cardinality is Cardinality.ONE
        assert bike_owner.target_field == "bike"

    def test_inverse_with_owner_declared_first(self):
        schema = compile_schema(_schema({
            "person": _root(links={"pets": {"model": "pet", "type": "hasMany", "inverse": "owner"}}),
            "pet": _child(name="string"),
        }))
        assert schema.models["pet"].links["owner"].direction is Direction.OWNED_BY
        assert schema.models["person"].links["pets"].direction is Direction.OWNS

    def test_inverse_with_owner_declared_last(self):
        schema = compile_schema(_schema({
            "pet": _child(name="string"),
            "person": _root(links={"pets": {"model": "pet", "type": "hasMany", "inverse": "owner"}}),
        }))
        assert schema.models["pet"].links["owner"].target_model == "person"

    def test_inverse_colliding_with_declared_link(self):
        with pytest.raises(SchemaError, match="also the inverse"):
            compile_schema(_schema({
                "person": _root(links={"pets": {"model": "pet", "type": "hasMany", "inverse": "owner"}}),
                "pet": _child(links={"owner": {"model": "person", "type": "hasOne"}}),
            }))

    def test_links_without_inverse_stay_one_sided(self, pets_schema):
        assert pets_schema.models["flee"].links == {}
        assert pets_schema.models["pet"].link("flees").target_field is None

    def test_attributes_exclude_links(self, pets_schema):
        pet = pets_schema.models["pet"]
        assert pet.attributes == ("type", "name", "age")
        assert pet.fields == ("id", "type", "name", "age", "flees", "owner")

    def test_blank_instance(self, pets_schema):
        assert pets_schema.models["pet"].blank() == {
            "id": None,
            "type": None,
            "name": None,
            "age": None,
            "flees": [],
            "owner": None,
        }


class TestPathTemplates:
    """Tests for path template selection."""

    def test_root_models_address_themselves(self, pets_schema):
        assert pets_schema.models["person"].path == (PathSegment("person", "person"),)
        assert pets_schema.template("person") == "/person/{person}"

    def test_nested_models_follow_links(self, pets_schema):
        assert pets_schema.template("pet") == "/person/{person}/pets/{pet}"
        assert pets_schema.template("bicycle") == "/person/{person}/bike/{bicycle}"
        assert pets_schema.template("flee") == "/person/{person}/pets/{pet}/flees/{flee}"

    def test_deepest_route_wins(self):
        schema = compile_schema(_schema({
            "a": _root(links={
                "direct": {"model": "c", "type": "hasOne"},
                "middle": {"model": "x", "type": "hasOne"},
            }),
            "x": _child(links={"child": {"model": "c", "type": "hasOne"}}),
            "c": _child(),
        }))
        assert schema.models["c"].path == (
            PathSegment("a", "a"),
            PathSegment("x", "middle"),
            PathSegment("c", "child"),
        )

    def test_equal_depth_resolves_to_last_discovered(self):
        schema = compile_schema(_schema({
            "a": _root(links={"left": {"model": "c", "type": "hasMany"}}),
            "b": _root(links={"right": {"model": "c", "type": "hasMany"}}),
            "c": _child(),
        }))
        assert schema.template("c") == "/b/{b}/right/{c}"

    def test_roots_are_never_rerouted(self):
        schema = compile_schema(_schema({
            "a": _root(links={"bs": {"model": "b", "type": "hasMany"}}),
            "b": _root(),
        }))
        assert schema.template("b") == "/b/{b}"

    def test_cycles_terminate(self):
        schema = compile_schema(_schema({
            "a": _root(links={"x": {"model": "x", "type": "hasOne"}}),
            "x": _child(links={"y": {"model": "y", "type": "hasOne"}}),
            "y": _child(links={"x": {"model": "x", "type": "hasOne"}}),
        }))
        assert schema.template("y") == "/a/{a}/x/{x}/y/{y}"


class TestHierarchy:
    """Tests for breadth-first model ordering."""

    def test_parents_before_children(self, pets_schema):
        assert pets_schema.hierarchy == ("person", "pet", "bicycle", "flee")

    def test_all_roots_first(self):
        schema = compile_schema(_schema({
            "a": _root(links={"c": {"model": "c", "type": "hasOne"}}),
            "b": _root(),
            "c": _child(),
        }))
        assert schema.hierarchy == ("a", "b", "c")


class TestSchemaErrors:
    """Tests for configuration errors raised at compile time."""

    def test_dangling_model(self):
        with pytest.raises(DanglingModelError) as exc:
            compile_schema(_schema({"a": _root(), "orphan": _child()}))
        assert exc.value.model == "orphan"
        assert "cannot be rooted" in str(exc.value)

    def test_no_roots_means_every_model_dangles(self):
        with pytest.raises(DanglingModelError):
            compile_schema(_schema({"a": _child()}))

    def test_missing_store(self):
        with pytest.raises(MissingStoreError):
            compile_schema(_schema({"a": {"meta": {"isRootObject": True}}}))

    def test_undeclared_store(self):
        with pytest.raises(MissingStoreError) as exc:
            compile_schema(_schema({"a": _root(store="nowhere")}))
        assert exc.value.model == "a"

    def test_link_without_type(self):
        with pytest.raises(LinkTypeError, match="without a type"):
            compile_schema(_schema({"a": _root(links={"b": {"model": "a"}})}))

    def test_bad_link_type(self):
        with pytest.raises(LinkTypeError, match='Invalid link type "hasSome"'):
            compile_schema(_schema({"a": _root(links={"b": {"model": "a", "type": "hasSome"}})}))

    def test_link_without_target(self):
        with pytest.raises(LinkTargetError):
            compile_schema(_schema({"a": _root(links={"b": {"type": "hasOne"}})}))

    def test_link_to_unknown_model(self):
        with pytest.raises(LinkTargetError) as exc:
            compile_schema(_schema({"a": _root(links={"b": {"model": "ghost", "type": "hasOne"}})}))
        assert exc.value.target == "ghost"

    def test_empty_sections(self):
        with pytest.raises(SchemaError, match="at least one store"):
            load_declaration({"stores": {}, "models": {"a": _root()}})
        with pytest.raises(SchemaError, match="at least one model"):
            load_declaration({"stores": {"memory": {"type": "memory"}}, "models": {}})

    def test_missing_sections(self):
        with pytest.raises(SchemaError, match="stores"):
            load_declaration({"models": {}})

    def test_negative_ttl(self):
        declaration = pets_declaration()
        declaration["stores"]["memory"]["ttl"] = -1
        with pytest.raises(SchemaError):
            load_declaration(declaration)

    def test_unknown_model_lookup(self, pets_schema):
        with pytest.raises(UnknownModelError, match='"dragon"'):
            pets_schema.model("dragon")


class TestDeclarations:
    """Tests for parsing declaration documents."""

    def test_camel_case_keys(self):
        declaration = load_declaration(pets_declaration())
        assert declaration.models["person"].meta.is_root_object is True
        assert declaration.stores["remote"].base_url == "https://api.test"
        assert declaration.stores["memory"].upstream == "remote"

    def test_attribute_named_type_is_kept(self):
        declaration = load_declaration(pets_declaration())
        assert "type" in declaration.models["pet"].attributes

    def test_load_yaml_file(self, tmp_path):
        from elide_client.schema import load_schema_file

        path = tmp_path / "schema.yaml"
        path.write_text(
            "stores:\n"
            "  memory: {type: memory}\n"
            "models:\n"
            "  book:\n"
            "    meta: {store: memory, isRootObject: true}\n"
            "    title: string\n"
        )
        declaration = load_schema_file(path)
        assert compile_schema(declaration).models["book"].attributes == ("title",)
