import datetime
import re

import pytest
from hypothesis import given, strategies as st

from chaus.conditions import (
    compile_condition,
    parse_date,
    parse_expands,
    parse_fields,
    parse_order,
    parse_window,
    request_params,
    wildcard_pattern,
)
from chaus.errors import ValidationError
from chaus.schema import ResourceSchema

SCHEMA = ResourceSchema("person", {"bio": {"type": "string"}, "age": {"type": "number"}})


def test_request_params_precedence(registry) -> None:
    attributes = registry["person"].attributes
    params = request_params(attributes, {"name": "body"}, {"name": "path", "bio": "path"}, {"name": "query", "bio": "query", "age": "3"})
    assert params == {"name": "body", "bio": "path", "age": "3"}


def test_request_params_empty_values(registry) -> None:
    attributes = registry["person"].attributes
    assert request_params(attributes, {"bio": ""}, {}, {"name": ""}) == {"bio": ""}


def test_request_params_children(registry) -> None:
    attributes = registry["group"].attributes
    assert request_params(attributes, {}, {}, {}) == {}
    assert request_params(attributes, {"members": []}, {}, {}) == {}
    assert request_params(attributes, {"members": ["a"]}, {}, {}) == {"members": ["a"]}


def test_exact_and_coerced_values(registry) -> None:
    cond = compile_condition(registry["person"], query={"name": "john", "age": "30", "active": "false"})
    assert cond == {"name": "john", "age": 30, "active": False}


def test_id_from_path(registry) -> None:
    cond = compile_condition(registry["person"], path={"id": "john"})
    assert cond == {"id": "john"}


def test_wildcard(registry) -> None:
    cond = compile_condition(registry["person"], query={"name": "Jo*"})
    pattern = cond["name"]
    assert isinstance(pattern, re.Pattern)
    assert pattern.search("john")
    assert pattern.search("JOANNA")
    assert not pattern.search("ajo")


def test_wildcard_escapes_metacharacters() -> None:
    pattern = wildcard_pattern("a.b*")
    assert pattern.search("a.bc")
    assert not pattern.search("axbc")
    assert wildcard_pattern("*(x)").search("f(x)")


def test_range(registry) -> None:
    cond = compile_condition(registry["person"], query={"age": "[10,20]"})
    assert cond == {"age": {"$gte": 10, "$lte": 20}}


def test_date_range(registry) -> None:
    cond = compile_condition(registry["person"], query={"born": "[2000-01-01,2000-12-31]"})
    assert cond["born"]["$gte"] == datetime.datetime(2000, 1, 1, tzinfo=datetime.timezone.utc)
    assert cond["born"]["$lte"] == datetime.datetime(2000, 12, 31, tzinfo=datetime.timezone.utc)


def test_string_range_is_exact(registry) -> None:
    cond = compile_condition(registry["person"], query={"bio": "[a,b]"})
    assert cond == {"bio": {"$in": ["[a", "b]"]}}


def test_membership(registry) -> None:
    cond = compile_condition(registry["person"], query={"name": "a,b"}, body={"age": [1, "2"]})
    assert cond == {"name": {"$in": ["a", "b"]}, "age": {"$in": [1, 2]}}


def test_near(registry) -> None:
    cond = compile_condition(registry["person"], query={"location": "52.5,13.4,1000"})
    assert cond == {
        "location": {"$near": {"$maxDistance": "1000", "$geometry": {"type": "Point", "coordinates": ["13.4", "52.5"]}}}
    }


def test_free_text(registry) -> None:
    cond = compile_condition(registry["person"], query={"q": "a.b"})
    assert cond["q"].search("xx A.B yy")
    assert not cond["q"].search("axb")


def test_parse_date() -> None:
    assert parse_date("2020-01-02T03:04:05Z") == datetime.datetime(2020, 1, 2, 3, 4, 5, tzinfo=datetime.timezone.utc)
    assert parse_date(0) == datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)
    assert parse_date("yesterday") == "yesterday"


def test_parse_order() -> None:
    assert parse_order("+name,-age") == [("name", 1), ("age", -1)]
    # "+name" in a query string is decoded as " name"
    assert parse_order(" name,age") == [("name", 1), ("age", 1)]
    assert parse_order("") == []
    assert parse_order(None) == []


def test_parse_fields(registry) -> None:
    person = registry["person"]
    assert parse_fields(None, person) == person.default_fields
    assert parse_fields("name, age,q", person) == ["name", "age"]


def test_parse_expands() -> None:
    assert parse_expands("group, friend,") == {"group", "friend"}
    assert parse_expands(None) == set()


@pytest.mark.parametrize(
    "query, expected",
    [
        ({}, (0, 25)),
        ({"offset": "10", "limit": "5"}, (10, 5)),
        ({"limit": "0"}, (0, 1)),
        ({"limit": "-3"}, (0, 1)),
        ({"limit": "1000"}, (0, 100)),
        ({"offset": "-1"}, (0, 25)),
        ({"offset": "5000"}, (1000, 25)),
    ],
)
def test_parse_window(query, expected) -> None:
    assert parse_window(query, 25, 100, 1000) == expected


def test_parse_window_invalid() -> None:
    with pytest.raises(ValidationError):
        parse_window({"offset": "x"}, 25, 100, 1000)


@given(st.text().filter(lambda s: "*" not in s))
def test_wildcard_without_star_is_exact(text) -> None:
    pattern = wildcard_pattern(text)
    assert pattern.search(text)
    assert not pattern.search(text + "x")


@given(st.text().filter(lambda s: "*" not in s), st.text())
def test_trailing_star_is_prefix_search(prefix, suffix) -> None:
    assert wildcard_pattern(prefix + "*").search(prefix + suffix)


@given(st.text().filter(lambda s: "*" not in s and "," not in s))
def test_plain_string_is_exact_match(text) -> None:
    assert compile_condition(SCHEMA, body={"bio": text}) == {"bio": text}


@given(st.integers(), st.integers())
def test_number_range(low, high) -> None:
    cond = compile_condition(SCHEMA, query={"age": f"[{low},{high}]"})
    assert cond == {"age": {"$gte": low, "$lte": high}}


@given(st.integers())
def test_number_without_range_is_exact(number) -> None:
    assert compile_condition(SCHEMA, query={"age": str(number)}) == {"age": number}


@given(st.text(alphabet="abcdefghjkmopqrsuvwxz[]", min_size=1))
def test_unparsable_number_is_kept(text) -> None:
    assert compile_condition(SCHEMA, query={"age": text}) == {"age": text}
