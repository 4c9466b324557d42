import datetime

import pytest
from werkzeug.exceptions import Forbidden

from chaus.errors import (
    ConflictError,
    NotFoundError,
    RelatedEntityMissingError,
    StoreError,
    UnAuthorizedError,
    ValidationError,
)
from chaus.operations import Authenticator, OperationRequest, ResourceOperations, geometry_value, touch


def req(body=None, path=None, query=None, headers=None) -> OperationRequest:
    return OperationRequest(body=body, path=path or {}, query=query or {}, headers=headers or {})


async def create_people(people: ResourceOperations, *names: str) -> None:
    await people.create(req({"items": [{"name": name} for name in names]}))


@pytest.mark.asyncio
async def test_create(operations, stores) -> None:
    result = await operations["person"].create(req({"name": "Name A", "age": "3", "born": "2000-01-01"}))
    assert result.status == 201
    assert result.payload == {"id": "name_a", "href": "/api/people/name_a"}
    assert result.headers == {"Location": "/api/people/name_a"}

    record = stores["person"].documents["name_a"]
    assert record["age"] == 3
    assert record["born"] == datetime.datetime(2000, 1, 1, tzinfo=datetime.timezone.utc)
    assert record["active"] is True
    assert record["location"] is None
    assert record["q"] == "Name A "
    assert record["createdAt"] == record["updatedAt"]


@pytest.mark.asyncio
async def test_create_hashed_id(operations) -> None:
    result = await operations["person"].create(req({"name": "Name/A!"}))
    assert len(result.payload["id"]) == 7


@pytest.mark.asyncio
async def test_create_conflict(operations) -> None:
    await operations["person"].create(req({"name": "Name A"}))
    with pytest.raises(ConflictError):
        await operations["person"].create(req({"name": "name  a"}))


@pytest.mark.asyncio
async def test_create_invalid(operations, stores) -> None:
    with pytest.raises(ValidationError) as exc_info:
        await operations["person"].create(req({"age": 3}))
    assert exc_info.value.errors == {"name": "Invalid value[null]"}
    assert exc_info.value.index is None
    assert not stores["person"].documents

    with pytest.raises(ValidationError):
        await operations["person"].create(req(["not", "an", "object"]))


@pytest.mark.asyncio
async def test_bulk_create(operations) -> None:
    result = await operations["person"].create(req({"items": [{"name": "a"}, {"name": "b"}]}))
    assert result.status == 201
    assert result.payload == {"items": [{"id": "a", "href": "/api/people/a"}, {"id": "b", "href": "/api/people/b"}]}


@pytest.mark.asyncio
async def test_bulk_create_stops_at_invalid_item(operations, stores) -> None:
    with pytest.raises(ValidationError) as exc_info:
        await operations["person"].create(req({"items": [{"name": "a"}, {"age": 1}, {"name": "c"}]}))
    assert exc_info.value.index == 1
    assert exc_info.value.to_dict()["index"] == 1
    assert list(stores["person"].documents) == ["a"]


@pytest.mark.asyncio
async def test_bulk_create_duplicate_item(operations) -> None:
    with pytest.raises(ConflictError) as exc_info:
        await operations["person"].create(req({"items": [{"name": "a"}, {"name": "A"}]}))
    assert exc_info.value.index == 1


@pytest.mark.asyncio
async def test_create_with_missing_owner(operations, stores) -> None:
    with pytest.raises(RelatedEntityMissingError) as exc_info:
        await operations["person"].create(req({"name": "a", "group": "nope"}))
    assert exc_info.value.status_code == 400
    assert exc_info.value.errors == {"group": "Specified ID (nope) does not exists in group"}
    assert not stores["person"].documents


@pytest.mark.asyncio
async def test_create_registers_child_with_owner(operations, stores) -> None:
    await operations["group"].create(req({"name": "g"}))
    created = stores["group"].documents["g"]["updatedAt"]
    await operations["person"].create(req({"name": "a", "group": "g"}))
    await operations["person"].create(req({"name": "b", "group": "g"}))
    owner = stores["group"].documents["g"]
    assert owner["members"] == ["a", "b"]
    assert owner["updatedAt"] >= created


@pytest.mark.asyncio
async def test_validation_mode(operations, stores) -> None:
    headers = {"x-validation": "true"}
    result = await operations["person"].create(req({"name": "a"}, headers=headers))
    assert result.status == 200
    assert result.payload == {}
    assert not stores["person"].documents

    with pytest.raises(ValidationError) as exc_info:
        await operations["person"].create(req({"items": [{"name": "a"}, {"bio": "b"}]}, headers=headers))
    assert exc_info.value.index == 1


@pytest.mark.asyncio
async def test_list(operations) -> None:
    await create_people(operations["person"], "c", "a", "b")
    result = await operations["person"].list(req(query={"limit": "1", "offset": "1", "orderBy": "name"}))
    payload = result.payload
    assert payload["size"] == 3
    assert payload["offset"] == 1
    assert payload["limit"] == 1
    assert payload["prev"] == "/api/people?offset=0&limit=1"
    assert payload["next"] == "/api/people?offset=2&limit=1"
    assert [item["name"] for item in payload["items"]] == ["b"]
    assert "q" not in payload["items"][0]
    assert payload["items"][0]["group"] == {"href": None, "id": None}


@pytest.mark.asyncio
async def test_list_filters(operations) -> None:
    people = operations["person"]
    await people.create(req({"items": [{"name": "ann", "age": 20, "bio": "Painter"}, {"name": "bob", "age": 40}, {"name": "anton", "age": 60}]}))

    async def names(**query):
        return sorted(item["name"] for item in (await people.list(req(query=query))).payload["items"])

    assert await names(name="an*") == ["ann", "anton"]
    assert await names(age="[10,50]") == ["ann", "bob"]
    assert await names(name="bob,anton") == ["anton", "bob"]
    assert await names(q="paint") == ["ann"]
    assert await names(name="an*", age="60") == ["anton"]


@pytest.mark.asyncio
async def test_list_projection(operations) -> None:
    await create_people(operations["person"], "a")
    items = (await operations["person"].list(req(query={"fields": "name,age"}))).payload["items"]
    assert items == [{"name": "a", "age": None}]


@pytest.mark.asyncio
async def test_projection_without_id_keeps_children_links(operations) -> None:
    await operations["group"].create(req({"name": "g"}))
    query = {"fields": "name,members"}
    result = await operations["group"].get(req(path={"id": "g"}, query=query))
    assert result.payload == {"name": "g", "members": {"href": "/api/groups/g/members"}}
    items = (await operations["group"].list(req(query=query))).payload["items"]
    assert items == [{"name": "g", "members": {"href": "/api/groups/g/members"}}]
    items = (await operations["group"].list(req(query={"fields": "id,members"}))).payload["items"]
    assert items == [{"id": "g", "members": {"href": "/api/groups/g/members"}}]


@pytest.mark.asyncio
async def test_list_near(operations) -> None:
    people = operations["person"]
    await people.create(
        req({"items": [{"name": "far", "location": "48.85,2.35"}, {"name": "near", "location": [13.41, 52.5]}, {"name": "here", "location": "52.5,13.4"}]})
    )
    result = await people.list(req(query={"location": "52.5,13.4,1000"}))
    assert [item["name"] for item in result.payload["items"]] == ["here", "near"]
    assert result.payload["items"][0]["location"] == [13.4, 52.5]


@pytest.mark.asyncio
async def test_invalid_near_is_a_store_error(operations) -> None:
    with pytest.raises(StoreError) as exc_info:
        await operations["person"].list(req(query={"location": "52.5,13.4"}))
    assert exc_info.value.status_code == 500
    assert exc_info.value.message.startswith("Store Error: Invalid proximity query")


@pytest.mark.asyncio
async def test_invalid_near_on_empty_collection(operations) -> None:
    with pytest.raises(StoreError):
        await operations["person"].list(req(query={"location": "52.5,13.4"}))
    with pytest.raises(StoreError):
        await operations["group"].list_children(req(path={"id": "g"}, query={"location": "1,2,far"}), "members")


@pytest.mark.asyncio
async def test_json_schema_mode(operations) -> None:
    result = await operations["person"].list(req(headers={"X-JSON-Schema": "true"}))
    assert result.payload["title"] == "person"
    assert result.payload["id"] == "/api/people"


@pytest.mark.asyncio
async def test_get(operations) -> None:
    await operations["group"].create(req({"name": "g"}))
    await operations["person"].create(req({"name": "a", "group": "g"}))
    result = await operations["person"].get(req(path={"id": "a"}, query={"expands": "group"}))
    person = result.payload
    assert person["id"] == "a"
    assert person["group"]["name"] == "g"
    assert person["group"]["members"] == {"href": "/api/groups/g/members"}

    group = (await operations["group"].get(req(path={"id": "g"}))).payload
    assert group["members"] == {"href": "/api/groups/g/members"}


@pytest.mark.asyncio
async def test_get_missing(operations) -> None:
    with pytest.raises(NotFoundError) as exc_info:
        await operations["person"].get(req(path={"id": "nobody"}))
    assert exc_info.value.status_code == 404
    assert "nobody" in exc_info.value.errors["id"]


@pytest.mark.asyncio
async def test_update(operations, stores) -> None:
    people = operations["person"]
    await people.create(req({"name": "a", "bio": "old"}))
    created = stores["person"].documents["a"]["createdAt"]
    result = await people.update(req({"bio": "Painter", "age": "42", "location": "52.5,13.4"}, path={"id": "a"}))
    assert result.payload is None
    record = stores["person"].documents["a"]
    assert record["age"] == 42
    assert record["q"] == "a Painter"
    assert record["location"] == {"type": "Point", "coordinates": [13.4, 52.5]}
    assert record["createdAt"] == created
    assert record["updatedAt"] >= created


@pytest.mark.asyncio
async def test_update_unique_attribute(operations) -> None:
    await create_people(operations["person"], "a")
    with pytest.raises(ValidationError) as exc_info:
        await operations["person"].update(req({"name": "b"}, path={"id": "a"}))
    assert exc_info.value.errors == {"name": "uniq key could not be changed"}


@pytest.mark.asyncio
async def test_update_missing(operations) -> None:
    with pytest.raises(NotFoundError):
        await operations["person"].update(req({"age": 1}, path={"id": "nobody"}))


@pytest.mark.asyncio
async def test_update_owner(operations, stores) -> None:
    await operations["group"].create(req({"name": "g"}))
    await create_people(operations["person"], "a")
    await operations["person"].update(req({"group": "g"}, path={"id": "a"}))
    assert stores["group"].documents["g"]["members"] == ["a"]
    with pytest.raises(RelatedEntityMissingError):
        await operations["person"].update(req({"friend": "nobody"}, path={"id": "a"}))


@pytest.mark.asyncio
async def test_delete(operations, stores) -> None:
    people = operations["person"]
    await people.create(req({"items": [{"name": "a", "age": 1}, {"name": "b", "age": 5}, {"name": "c", "age": 20}]}))
    assert (await people.delete_collection(req(query={"age": "[0,10]"}))).payload is None
    assert list(stores["person"].documents) == ["c"]
    assert (await people.delete_instance(req(path={"id": "c"}))).payload is None
    assert (await people.delete_instance(req(path={"id": "c"}))).payload is None
    assert not stores["person"].documents


@pytest.mark.asyncio
async def test_list_children(operations) -> None:
    await operations["group"].create(req({"items": [{"name": "g"}, {"name": "h"}]}))
    await operations["person"].create(req({"items": [{"name": "a", "group": "g"}, {"name": "b", "group": "h"}, {"name": "c", "group": "g"}]}))
    result = await operations["group"].list_children(req(path={"id": "g"}, query={"orderBy": "-name"}), "members")
    payload = result.payload
    assert payload["size"] == 2
    assert [item["id"] for item in payload["items"]] == ["c", "a"]
    assert payload["first"] == "/api/groups/g/members?offset=0&limit=25"

    with pytest.raises(NotFoundError):
        await operations["group"].list_children(req(path={"id": "g"}), "name")


@pytest.mark.asyncio
async def test_authentication(registry, stores) -> None:
    people = ResourceOperations("person", registry, stores, authenticate=Authenticator("client", "secret"))
    with pytest.raises(UnAuthorizedError) as exc_info:
        await people.list(req())
    assert exc_info.value.status_code == 401
    with pytest.raises(UnAuthorizedError):
        await people.list(req(headers={"X-Chaus-Client": "client", "X-Chaus-Secret": "wrong"}))
    result = await people.list(req(headers={"x-chaus-client": "client", "x-chaus-secret": "secret"}))
    assert result.payload["size"] == 0


@pytest.mark.asyncio
async def test_hooks(registry, stores) -> None:
    calls = []

    def before(request, name, hook_stores):
        calls.append(name)
        assert hook_stores is stores

    async def after(request, payload, name, hook_stores):
        return {"wrapped": payload}

    people = ResourceOperations("person", registry, stores, before=before, after=after)
    result = await people.create(req({"name": "a"}))
    assert calls == ["person"]
    assert result.payload == {"wrapped": {"id": "a", "href": "/people/a"}}


@pytest.mark.asyncio
async def test_before_hook_aborts(registry, stores) -> None:
    def forbid(request, name, hook_stores):
        raise UnAuthorizedError("read only")

    def crash(request, name, hook_stores):
        raise RuntimeError("boom")

    with pytest.raises(UnAuthorizedError):
        await ResourceOperations("person", registry, stores, before=forbid).create(req({"name": "a"}))
    with pytest.raises(StoreError):
        await ResourceOperations("person", registry, stores, before=crash).create(req({"name": "a"}))
    assert not stores["person"].documents


def test_geometry_value() -> None:
    point = {"type": "Point", "coordinates": [13.4, 52.5]}
    assert geometry_value("location", point) == point
    assert geometry_value("location", [13.4, 52.5]) == point
    assert geometry_value("location", "52.5, 13.4") == point
    assert geometry_value("location", None) is None
    with pytest.raises(ValidationError):
        geometry_value("location", "nowhere")


def test_touch() -> None:
    future = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(days=1)
    assert touch(future) == future
    assert touch(None).tzinfo is not None


@pytest.mark.asyncio
async def test_hook_http_exception_keeps_its_status(registry, stores) -> None:
    def forbid(request, *args):
        raise Forbidden("read only")

    with pytest.raises(Forbidden):
        await ResourceOperations("person", registry, stores, before=forbid).create(req({"name": "a"}))
    with pytest.raises(Forbidden):
        await ResourceOperations("person", registry, stores, after=forbid).list(req())
    assert not stores["person"].documents
