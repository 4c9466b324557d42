"""
Resource operations

Every exposed resource gets a `ResourceOperations` instance implementing the operations:

    list, create, validate_only, get, update, delete_collection, delete_instance, list_children

Each operation runs the same pipeline:

    authenticate -> before hook -> operation body -> after hook

The operation bodies compile the request to store predicates (chaus.conditions), execute them against the
document store, resolve the relations of the results (chaus.relations) and paginate collections (chaus.pagination).
Steps run sequentially and the first error aborts the pipeline, nothing is retried.
Writes are not transactional: items of a bulk create that were saved before a failing item stay saved.
"""
import datetime
import inspect
from collections import OrderedDict
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, Callable, Dict, List, Mapping, Optional

from werkzeug.exceptions import HTTPException

import chaus
from .conditions import (
    coerce_value,
    compile_condition,
    drop_unrequested_id,
    parse_expands,
    parse_fields,
    parse_order,
    parse_window,
    request_params,
    with_id,
)
from .errors import GenericError, JsonapiError, NotFoundError, RelatedEntityMissingError, StoreError, UnAuthorizedError, ValidationError
from .identity import ID_HASH_LENGTH, ensure_unique_id, resolve_id
from .json_schema import schemefy
from .pagination import envelope
from .relations import RelationResolver, materialize
from .schema import Attribute, AttributeType, RelationKind, SchemaRegistry, SEARCH_FIELD
from .validation import validate


@dataclass
class OperationRequest:
    """
    The request parameters an operation works on

    :param body: json body
    :param path: url path parameters, e.g. {"id": "name_a"}
    :param query: url query string arguments
    :param headers: request headers
    :param raw: the framework request object, passed on to the hooks
    """

    body: Any = None
    path: Mapping[str, Any] = field(default_factory=dict)
    query: Mapping[str, Any] = field(default_factory=dict)
    headers: Mapping[str, Any] = field(default_factory=dict)
    raw: Any = None

    def header(self, name: str, default: Any = None) -> Any:
        for key, value in self.headers.items():
            if key.lower() == name.lower():
                return value
        return default

    def has_mode(self, header: str) -> bool:
        return str(self.header(header, "")).lower() == "true"

    @property
    def is_bulk(self) -> bool:
        return isinstance(self.body, Mapping) and isinstance(self.body.get("items"), list)

    @property
    def items(self) -> List[Any]:
        """
        :return: the instance payloads of a create request: {"items": [...]} or a single object
        """
        if self.is_bulk:
            return self.body["items"]
        return [self.body if self.body is not None else {}]


@dataclass
class OperationResult:
    payload: Any = None
    status: int = HTTPStatus.OK.value
    headers: Dict[str, str] = field(default_factory=dict)


class Authenticator:
    """
    Checks the client and secret request headers, authentication is disabled if no client or secret is configured
    """

    def __init__(self, client: Optional[str] = None, secret: Optional[str] = None, client_header="X-Chaus-Client", secret_header="X-Chaus-Secret"):
        self.client = client
        self.secret = secret
        self.client_header = client_header
        self.secret_header = secret_header

    @property
    def enabled(self) -> bool:
        return bool(self.client and self.secret)

    def __call__(self, request: OperationRequest) -> None:
        if not self.enabled:
            return
        if request.header(self.secret_header) != self.secret or request.header(self.client_header) != self.client:
            raise UnAuthorizedError(f"{self.secret_header.lower()} and / or {self.client_header.lower()} header are invalid")


def now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def touch(previous: Any = None) -> datetime.datetime:
    """
    :param previous: the current updatedAt of an instance
    :return: a new updatedAt, never before the previous one
    """
    result = now()
    if isinstance(previous, datetime.datetime) and previous.tzinfo is not None and previous > result:
        return previous
    return result


def geometry_value(name: str, value: Any) -> Optional[dict]:
    """
    :param value: GeoJSON point, [lng, lat] pair or "lat,lng" string
    :return: GeoJSON point
    """
    if value is None:
        return None
    coordinates = None
    try:
        if isinstance(value, Mapping):
            coordinates = value.get("coordinates")
        elif isinstance(value, (list, tuple)):
            coordinates = value
        elif isinstance(value, str):
            lat, lng = value.split(",")[:2]
            coordinates = [lng, lat]
        if coordinates is not None and len(coordinates) == 2:
            return {"type": "Point", "coordinates": [float(coordinates[0]), float(coordinates[1])]}
    except (TypeError, ValueError):
        pass
    raise ValidationError("Invalid geometry", errors={name: f"Invalid value[{value}]"})


async def _call_hook(hook: Callable, *args) -> Any:
    result = hook(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class ResourceOperations:
    """
    The operations of a single resource

    :param name: resource name
    :param registry: all resource schemas
    :param stores: resource name -> DocumentStore
    :param prefix: url prefix
    :param authenticate: callable raising UnAuthorizedError for unauthenticated requests
    :param before: before(request, name, stores), called before every operation, may raise to abort
        (api errors and werkzeug http exceptions keep their status, other exceptions become a StoreError)
    :param after: after(request, payload, name, stores), returns the payload to send
    :param validator: validator(schema, params, partial) -> {"ok": True} | {<attr>: <message>}
    """

    def __init__(
        self,
        name: str,
        registry: SchemaRegistry,
        stores: Mapping[str, Any],
        prefix: str = "",
        authenticate: Optional[Callable] = None,
        before: Optional[Callable] = None,
        after: Optional[Callable] = None,
        validator: Callable = validate,
        default_limit: int = 25,
        max_limit: int = 100000,
        max_offset: int = 2**31,
        id_length: int = ID_HASH_LENGTH,
        schema_header: str = "X-JSON-Schema",
        validation_header: str = "X-Validation",
    ) -> None:
        self.name = name
        self.registry = registry
        self.schema = registry[name]
        self.collection_name = self.schema.collection_name
        self.stores = stores
        self.store = stores[name]
        self.prefix = prefix
        self.resolver = RelationResolver(registry, stores, prefix)
        self.authenticate = authenticate or Authenticator()
        self.before = before
        self.after = after
        self.validator = validator
        self.default_limit = default_limit
        self.max_limit = max_limit
        self.max_offset = max_offset
        self.id_length = id_length
        self.schema_header = schema_header
        self.validation_header = validation_header

    def __repr__(self) -> str:
        return f"<ResourceOperations {self.name}>"

    @property
    def url(self) -> str:
        return f"{self.prefix}/{self.collection_name}"

    def href(self, id: str) -> str:
        return f"{self.url}/{id}"

    async def _run(self, request: OperationRequest, body: Callable, *args) -> OperationResult:
        """
        authenticate -> before hook -> body -> after hook
        Errors that aren't api errors are considered store failures
        """
        try:
            self.authenticate(request)
            if self.before is not None:
                await _call_hook(self.before, request, self.name, self.stores)
            result = await body(request, *args)
            if self.after is not None:
                result.payload = await _call_hook(self.after, request, result.payload, self.name, self.stores)
        except (JsonapiError, HTTPException):
            raise
        except Exception as exc:
            chaus.log.exception(exc)
            raise StoreError(str(exc)) from exc
        return result

    #
    # public operations
    #
    async def list(self, request: OperationRequest) -> OperationResult:
        return await self._run(request, self._list)

    async def create(self, request: OperationRequest) -> OperationResult:
        return await self._run(request, self._create)

    async def validate_only(self, request: OperationRequest) -> OperationResult:
        return await self._run(request, self._validate_only)

    async def get(self, request: OperationRequest) -> OperationResult:
        return await self._run(request, self._get)

    async def update(self, request: OperationRequest) -> OperationResult:
        return await self._run(request, self._update)

    async def delete_collection(self, request: OperationRequest) -> OperationResult:
        return await self._run(request, self._delete_collection)

    async def delete_instance(self, request: OperationRequest) -> OperationResult:
        return await self._run(request, self._delete_instance)

    async def list_children(self, request: OperationRequest, child_attr: str) -> OperationResult:
        return await self._run(request, self._list_children, child_attr)

    #
    # operation bodies
    #
    async def _list(self, request: OperationRequest) -> OperationResult:
        if request.has_mode(self.schema_header):
            return OperationResult(schemefy(self.prefix, self.name, self.schema))
        cond = compile_condition(self.schema, request.body, request.path, request.query)
        payload = await self._paginate(self.schema, self.store, cond, request, self.url)
        return OperationResult(payload)

    async def _list_children(self, request: OperationRequest, child_attr: str) -> OperationResult:
        attr = self.schema.get(child_attr)
        if attr is None or attr.relation_kind is not RelationKind.CHILDREN:
            raise NotFoundError(f"{self.name} has no children {child_attr}")
        parent_id = request.path["id"]
        child_schema = self.registry[attr.target.resource]
        parent_attr = child_schema.parent_attribute_for(self.name, child_attr) or self.name

        cond = compile_condition(child_schema, request.body, request.path, request.query)
        cond.pop("id", None)
        cond[parent_attr] = parent_id
        url = f"{self.url}/{parent_id}/{child_attr}"
        payload = await self._paginate(child_schema, self.stores[child_schema.name], cond, request, url)
        return OperationResult(payload)

    async def _paginate(self, schema, store, cond: dict, request: OperationRequest, url: str) -> dict:
        """
        find -> count -> resolve relations -> envelope
        """
        query = request.query
        offset, limit = parse_window(query, self.default_limit, self.max_limit, self.max_offset)
        fields = parse_fields(query.get("fields"), schema)
        sort = parse_order(query.get("orderBy"))

        records = await store.find(cond, with_id(fields), skip=offset, limit=limit, sort=sort)
        size = await store.count(cond)
        items = materialize(records, schema, fields)
        await self.resolver.resolve(schema, schema.collection_name, items, parse_expands(query.get("expands")))
        drop_unrequested_id(items, fields)
        return envelope(offset, limit, size, url, items)

    async def _get(self, request: OperationRequest) -> OperationResult:
        id = request.path["id"]
        fields = parse_fields(request.query.get("fields"), self.schema)
        document = await self.store.find_one({"id": id}, with_id(fields))
        if document is None:
            message = f"Specified ID ({id}) does not exists in {self.name}"
            raise NotFoundError(message, errors={"id": message})
        records = materialize([document], self.schema, fields)
        await self.resolver.resolve(self.schema, self.collection_name, records, parse_expands(request.query.get("expands")))
        drop_unrequested_id(records, fields)
        return OperationResult(records[0])

    async def _create(self, request: OperationRequest) -> OperationResult:
        if request.has_mode(self.validation_header):
            return await self._validate_only(request)

        ids = []
        for index, body in enumerate(request.items):
            # sequential: later items see the ids and owner updates of the previous items
            ids.append(await self._create_item(request, body, index if request.is_bulk else None))

        if request.is_bulk:
            return OperationResult({"items": [{"id": id, "href": self.href(id)} for id in ids]}, HTTPStatus.CREATED.value)
        href = self.href(ids[0])
        return OperationResult({"id": ids[0], "href": href}, HTTPStatus.CREATED.value, {"Location": href})

    async def _validate_only(self, request: OperationRequest) -> OperationResult:
        for index, body in enumerate(request.items):
            params = self._item_params(request, body, index)
            await self.check_related(params, index)
            self._validate(params, index=index)
        return OperationResult({})

    async def _create_item(self, request: OperationRequest, body: Any, index: Optional[int]) -> str:
        params = self._item_params(request, body, index)
        await self.check_related(params, index)
        self._validate(params, index=index)
        id = resolve_id(self.schema.unique_attributes, params, self.id_length)
        await ensure_unique_id(self.store, id, index)
        await self.update_owners(id, params)
        record = self.new_record(id, params)
        await self.store.save(record)
        chaus.log.debug(f"Created {self.name} {id}")
        return id

    async def _update(self, request: OperationRequest) -> OperationResult:
        id = request.path["id"]
        body = request.body if request.body is not None else {}
        if not isinstance(body, Mapping):
            raise ValidationError("Invalid Data Object")
        params = request_params(self.schema.attributes, body, request.path, request.query)

        permission = self.validate_permission(params)
        if not permission.get("ok"):
            raise ValidationError("Unique attributes can't be changed", errors=permission)
        self._validate(params, partial=True)
        await self.check_related(params)

        existing = await self.store.find_one({"id": id})
        if existing is None:
            message = f"Specified ID ({id}) does not exists in {self.name}"
            raise NotFoundError(message, errors={"id": message})

        patch = self.storable(params)
        if any(name in params for name in self.schema.text_attributes):
            merged = dict(existing)
            merged.update(patch)
            patch[SEARCH_FIELD] = self.search_text(merged)
        patch["updatedAt"] = touch(existing.get("updatedAt"))
        await self.store.find_one_and_update({"id": id}, patch)
        await self.update_owners(id, params)
        return OperationResult(None)

    async def _delete_collection(self, request: OperationRequest) -> OperationResult:
        cond = compile_condition(self.schema, request.body, request.path, request.query)
        documents = await self.store.find(cond, ["id"])
        for document in documents:
            await self.store.remove(document)
        chaus.log.debug(f"Removed {len(documents)} {self.collection_name}")
        return OperationResult(None)

    async def _delete_instance(self, request: OperationRequest) -> OperationResult:
        await self.store.find_one_and_remove({"id": request.path["id"]})
        return OperationResult(None)

    #
    # pipeline steps
    #
    def _item_params(self, request: OperationRequest, body: Any, index: Optional[int]) -> Dict[str, Any]:
        if not isinstance(body, Mapping):
            raise ValidationError("Invalid Data Object", index=index)
        return request_params(self.schema.attributes, body, request.path, request.query)

    def _validate(self, params: Mapping[str, Any], partial: bool = False, index: Optional[int] = None) -> None:
        result = self.validator(self.schema, params, partial)
        if not result.get("ok"):
            errors = {k: v for k, v in result.items() if k != "ok"}
            raise ValidationError("Invalid parameters", errors=errors, index=index)

    def validate_permission(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        """
        :return: {"ok": True} or the unique attributes the update tries to change
        """
        result = {name: "uniq key could not be changed" for name in self.schema.unique_attributes if name in params}
        if not result:
            result["ok"] = True
        return result

    async def check_related(self, params: Mapping[str, Any], index: Optional[int] = None) -> None:
        """
        Every parent and instance id in params must exist
        :raise RelatedEntityMissingError:
        """
        errors = OrderedDict()
        for name, attr in self.schema.relations(RelationKind.PARENT, RelationKind.INSTANCE):
            id = params.get(name)
            if not id:
                continue
            target = attr.target.resource
            if await self.stores[target].find_one({"id": id}, ["id"]) is None:
                errors[name] = f"Specified ID ({id}) does not exists in {target}"
        if errors:
            raise RelatedEntityMissingError("Related instance not found", errors=errors, index=index)

    async def update_owners(self, child_id: str, params: Mapping[str, Any]) -> None:
        """
        Register the child with the owners referenced by its parent attributes:
        the child id is appended to the owner's children attribute and the owner's updatedAt is refreshed.
        This is a separate write, it's not rolled back if saving the child fails.
        """
        for name, attr in self.schema.relations(RelationKind.PARENT):
            owner_id = params.get(name)
            if not owner_id:
                continue
            target = attr.target
            store = self.stores[target.resource]
            owner = await store.find_one({"id": owner_id})
            if owner is None:
                continue
            children = owner.get(target.field)
            children = list(children) if isinstance(children, list) else []
            if child_id not in children:
                children.append(child_id)
            await store.find_one_and_update({"id": owner_id}, {target.field: children, "updatedAt": touch(owner.get("updatedAt"))})

    def storable(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        """
        :return: the storable values of params, converted to their python types
        """
        result = OrderedDict()
        for name, value in params.items():
            attr = self.schema.get(name)
            if attr is None or not attr.storable:
                continue
            result[name] = self.convert(attr, value)
        return result

    @staticmethod
    def convert(attr: Attribute, value: Any) -> Any:
        if attr.type is AttributeType.GEOMETRY:
            return geometry_value(attr.name, value)
        return coerce_value(attr, value)

    def search_text(self, values: Mapping[str, Any]) -> str:
        return " ".join("" if values.get(name) is None else str(values.get(name)) for name in self.schema.text_attributes)

    def new_record(self, id: str, params: Mapping[str, Any]) -> Dict[str, Any]:
        """
        :return: the document stored for a new instance
        """
        record = OrderedDict(id=id)
        values = self.storable(params)
        for name, attr in self.schema.items():
            if not attr.storable:
                continue
            if name in values:
                record[name] = values[name]
            else:
                default = attr.default() if callable(attr.default) else attr.default
                record[name] = self.convert(attr, default)
        record[SEARCH_FIELD] = self.search_text(params)
        record["createdAt"] = record["updatedAt"] = now()
        return record


def build_operations(registry: SchemaRegistry, stores: Mapping[str, Any], **kwargs) -> Dict[str, ResourceOperations]:
    """
    :param registry: resource schemas
    :param stores: resource name -> DocumentStore, every resource needs a store
    :param kwargs: ResourceOperations arguments shared by all resources
    :return: resource name -> ResourceOperations
    """
    result = OrderedDict()
    for name in registry:
        if name not in stores:
            raise GenericError(f"No store for {name}")
        result[name] = ResourceOperations(name, registry, stores, **kwargs)
    return result
