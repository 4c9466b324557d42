"""
Relation resolution

Relation attributes of the stored records are replaced by links when a resource is read:

- children: {"href": "<prefix>/<collection>/<id>/<attr>"}, never expanded (children are a paginated sub-resource)
- parent: {"href": "<prefix>/<owners>/<owner id>", "id": <owner id>}
- instance: {"href": "<prefix>/<targets>/<target id>", "id": <target id>}, href is None if there's no target

parent and instance relations listed in the `expands` request argument are replaced by the
related record itself. The related record has its own relations resolved as links: expansion is one level deep.

All relations of all records are resolved concurrently, the records keep their order.
"""
import asyncio
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

import chaus
from .schema import Attribute, RelationKind, ResourceSchema, SchemaRegistry


def materialize(records: Iterable[Optional[Mapping[str, Any]]], schema: ResourceSchema, fields: Optional[Iterable[str]] = None) -> List[dict]:
    """
    Convert stored documents to plain response dicts:
    - GeoJSON points are flattened to their coordinates
    - projected children attributes are added, they're replaced by links when resolving

    :param records: stored documents
    :param schema: resource schema
    :param fields: the requested projection, None for all fields
    """
    fields = set(fields) if fields is not None else None
    result = []
    for record in records:
        obj = dict(record or {})
        for name, value in obj.items():
            if isinstance(value, Mapping) and value.get("type") == "Point":
                obj[name] = value.get("coordinates")
        for name, _ in schema.relations(RelationKind.CHILDREN):
            if fields is None or name in fields:
                obj.setdefault(name, None)
        result.append(obj)
    return result


class RelationResolver:
    """
    :param registry: the resource schemas
    :param stores: resource name -> DocumentStore
    :param prefix: url prefix of the api
    """

    def __init__(self, registry: SchemaRegistry, stores: Mapping[str, Any], prefix: str = "") -> None:
        self.registry = registry
        self.stores = stores
        self.prefix = prefix
        self._resolvers = {
            RelationKind.CHILDREN: self.resolve_children,
            RelationKind.PARENT: self.resolve_parent,
            RelationKind.INSTANCE: self.resolve_instance,
        }

    def link(self, resource: str, id: Any) -> Dict[str, Any]:
        """
        :return: link to the instance of resource with id, href is None if there is no id
        """
        href = f"{self.prefix}/{self.registry[resource].collection_name}/{id}" if id is not None else None
        return {"href": href, "id": id}

    async def resolve(
        self, schema: ResourceSchema, collection_name: str, records: List[dict], expands: Optional[Set[str]] = None
    ) -> List[dict]:
        """
        Replace the relation fields of the records by links or expanded records

        :param schema: schema of the records
        :param collection_name: plural resource name, used in the children links
        :param records: materialized records, modified in place
        :param expands: relation names to expand
        :return: the records
        """
        expands = set(expands or ())
        tasks = []
        for record in records:
            for attr_name, attr in schema.relations():
                if attr_name not in record:
                    continue
                resolver = self._resolvers[attr.relation_kind]
                tasks.append(resolver(record, attr_name, attr, collection_name, attr_name in expands))
        if tasks:
            await asyncio.gather(*tasks)
        return records

    async def resolve_children(self, record: dict, attr_name: str, attr: Attribute, collection_name: str, expand: bool) -> None:
        record[attr_name] = {"href": f"{self.prefix}/{collection_name}/{record.get('id')}/{attr_name}"}

    async def resolve_parent(self, record: dict, attr_name: str, attr: Attribute, collection_name: str, expand: bool) -> None:
        """
        attr.relation is "<owner>.<children attribute>", the record holds the owner id
        """
        await self._resolve_reference(record, attr_name, attr.target.resource, expand)

    async def resolve_instance(self, record: dict, attr_name: str, attr: Attribute, collection_name: str, expand: bool) -> None:
        await self._resolve_reference(record, attr_name, attr.target.resource, expand)

    async def _resolve_reference(self, record: dict, attr_name: str, target: str, expand: bool) -> None:
        value = record[attr_name]
        if expand and value is not None:
            expanded = await self.expand(target, value)
            if expanded is not None:
                record[attr_name] = expanded
                return
            chaus.log.debug(f"{attr_name}: {target} {value} doesn't exist, not expanding")
        record[attr_name] = self.link(target, value)

    async def expand(self, resource: str, id: Any) -> Optional[dict]:
        """
        :return: the resolved instance of resource with id, its relations are not expanded
        """
        schema = self.registry[resource]
        document = await self.stores[resource].find_one({"id": id}, schema.default_fields)
        if document is None:
            return None
        records = materialize([document], schema)
        await self.resolve(schema, schema.collection_name, records, set())
        return records[0]
