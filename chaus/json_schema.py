# JSON Schema of a resource, returned instead of the collection
# when the request has the "X-JSON-Schema: true" header
from collections import OrderedDict
from typing import Any, Dict

from .schema import AttributeType, ResourceSchema

JSON_SCHEMA_DRAFT = "http://json-schema.org/draft-04/schema#"

LINK_SCHEMA = {
    "type": "object",
    "properties": {"href": {"type": ["string", "null"]}, "id": {"type": ["string", "null"]}},
}

TYPES = {
    AttributeType.STRING: {"type": "string"},
    AttributeType.NUMBER: {"type": "number"},
    AttributeType.BOOLEAN: {"type": "boolean"},
    AttributeType.DATE: {"type": "string", "format": "date-time"},
    AttributeType.GEOMETRY: {"type": "array", "items": {"type": "number"}, "minItems": 2, "maxItems": 2},
    AttributeType.CHILDREN: {"type": "object", "properties": {"href": {"type": "string"}}},
    AttributeType.PARENT: LINK_SCHEMA,
    AttributeType.INSTANCE: LINK_SCHEMA,
}


def schemefy(prefix: str, name: str, schema: ResourceSchema) -> Dict[str, Any]:
    """
    :param prefix: api url prefix
    :param name: resource name
    :param schema: resource schema
    :return: JSON Schema of a single resource instance as returned by the api
    """
    properties = OrderedDict()
    required = []
    for attr_name, attr in schema.response_attributes.items():
        prop = dict(TYPES[attr.type])
        if attr.desc:
            prop["description"] = attr.desc
        elif attr.relation:
            prop["description"] = f"linking of {attr.relation}"
        if attr.default is not None and not callable(attr.default):
            prop["default"] = attr.default
        if isinstance(attr.pattern, str):
            prop["pattern"] = attr.pattern
        properties[attr_name] = prop
        if attr.required or attr.unique or attr.implicit:
            required.append(attr_name)

    return {
        "$schema": JSON_SCHEMA_DRAFT,
        "id": f"{prefix}/{schema.collection_name}",
        "title": name,
        "type": "object",
        "properties": properties,
        "required": required,
    }
