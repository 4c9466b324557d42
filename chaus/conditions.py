"""
Query condition compilation

Request parameters (body, path and query string) are turned into a store predicate.
The predicate maps a field name to one of:
- an exact value
- a compiled, anchored regular expression (wildcard `*` search)
- an inclusive range: {"$gte": lo, "$lte": hi}
- a membership set: {"$in": [...]}
- a proximity query: {"$near": {"$geometry": {"type": "Point", "coordinates": [lng, lat]}, "$maxDistance": d}}

Sorting (orderBy=), projection (fields=) and relation expansion (expands=) query arguments are parsed here as well.
"""
import datetime
import re
from collections import OrderedDict
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

import chaus
from .errors import ValidationError
from .schema import Attribute, AttributeType, ResourceSchema, SEARCH_FIELD

RANGE_RE = re.compile(r"^\[(.+),(.+)\]$")
ORDER_RE = re.compile(r"^(\+|-|)(.+)")
TRUE_VALUES = ("true", "1", "yes", "on")
FALSE_VALUES = ("false", "0", "no", "off")


def request_params(attributes: Mapping[str, Attribute], body=None, path=None, query=None) -> Dict[str, Any]:
    """
    Collect the values of the given attributes from the request

    Precedence: body > path > query string.
    Empty query string values are ignored, empty body and path values are significant.

    :param attributes: attribute name -> Attribute
    :return: attribute name -> value
    """
    body = body if isinstance(body, Mapping) else {}
    path = path or {}
    query = query or {}
    params = OrderedDict()
    for name, attr in attributes.items():
        if name in body:
            value = body[name]
            present = True
        elif name in path:
            value = path[name]
            present = True
        elif query.get(name) not in (None, ""):
            value = query[name]
            present = True
        else:
            value = None
            present = False

        if attr.type is AttributeType.CHILDREN:
            if not present:
                value = []
            # an empty child list is the same as no child list
            if isinstance(value, (list, tuple)) and not value:
                continue
        elif not present:
            continue
        params[name] = value
    return params


def parse_date(value: Any) -> Any:
    """
    :param value: iso 8601 string, timestamp or datetime
    :return: timezone aware datetime or the value itself if it can't be parsed
    """
    if isinstance(value, datetime.datetime):
        result = value
    elif isinstance(value, datetime.date):
        result = datetime.datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        # javascript style millisecond timestamps
        result = datetime.datetime.fromtimestamp(value / 1000, tz=datetime.timezone.utc)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            result = datetime.datetime.fromisoformat(text)
        except ValueError:
            return value
    else:
        return value
    if result.tzinfo is None:
        result = result.replace(tzinfo=datetime.timezone.utc)
    return result


def coerce_value(attr: Optional[Attribute], value: Any) -> Any:
    """
    Convert (query string) values to the python type of the attribute
    Values that can't be converted are returned unchanged
    """
    if attr is None or value is None:
        return value
    if isinstance(value, list):
        return [coerce_value(attr, v) for v in value]
    if attr.type is AttributeType.NUMBER and isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            return value
    if attr.type is AttributeType.DATE:
        return parse_date(value)
    if attr.type is AttributeType.BOOLEAN and isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_VALUES:
            return True
        if lowered in FALSE_VALUES:
            return False
    return value


def wildcard_pattern(value: str) -> "re.Pattern":
    """
    :param value: search string where `*` matches any sequence
    :return: anchored, case insensitive regular expression
    """
    body = ".*".join(re.escape(part) for part in value.split("*"))
    return re.compile(f"^{body}\\Z", re.IGNORECASE | re.DOTALL)


def near_predicate(value: str) -> dict:
    """
    :param value: "lat,lng,maxDistanceMeters"
    :return: proximity predicate, segments are validated by the store when the query runs
    """
    segments = str(value).split(",")

    def segment(i):
        return segments[i].strip() if len(segments) > i else None

    return {"$near": {"$maxDistance": segment(2), "$geometry": {"type": "Point", "coordinates": [segment(1), segment(0)]}}}


def compile_value(attr: Optional[Attribute], value: Any) -> Any:
    """
    Derive the predicate for a single attribute value
    """
    attr_type = attr.type if attr is not None else AttributeType.STRING

    if attr_type is AttributeType.GEOMETRY:
        if isinstance(value, (list, tuple)):
            value = ",".join(str(v) for v in value)
        return near_predicate(value)

    if isinstance(value, (list, tuple)):
        return {"$in": coerce_value(attr, list(value))}

    if not isinstance(value, str):
        return coerce_value(attr, value)

    if attr_type in (AttributeType.NUMBER, AttributeType.DATE):
        match = RANGE_RE.match(value)
        if match:
            low, high = (coerce_value(attr, v.strip()) for v in match.groups())
            return {"$gte": low, "$lte": high}

    if "*" in value:
        return wildcard_pattern(value)
    if "," in value:
        return {"$in": [coerce_value(attr, v) for v in value.split(",")]}
    return coerce_value(attr, value)


def compile_condition(schema: ResourceSchema, body=None, path=None, query=None) -> Dict[str, Any]:
    """
    Compile the request parameters to a store predicate

    :param schema: resource schema, an `id` string attribute is always added
    :param body: request body (dict)
    :param path: url path parameters
    :param query: url query string arguments
    :return: predicate, passed verbatim to the store find/count calls
    """
    attributes = OrderedDict(id=Attribute("id", implicit=True))
    attributes.update(schema.attributes)
    params = request_params(attributes, body, path, query)

    cond = OrderedDict()
    for name, value in params.items():
        cond[name] = compile_value(attributes[name], value)

    search = (query or {}).get(SEARCH_FIELD)
    if search:
        cond[SEARCH_FIELD] = re.compile(re.escape(search), re.IGNORECASE)
    return cond


def parse_order(order_by: Optional[str] = "") -> List[Tuple[str, int]]:
    """
    :param order_by: csv of [+|-]field, e.g. "+name,-age"
    :return: list of (field, direction) with direction 1 (ascending) or -1 (descending)
    """
    sort = []
    for item in (order_by or "").split(","):
        # a "+" in the query string is decoded as a space
        item = item.strip()
        if not item:
            continue
        operand = ORDER_RE.match(item)
        key = operand.group(2).strip()
        sort.append((key, -1 if operand.group(1) == "-" else 1))
    return sort


def parse_fields(fields: Optional[str], schema: ResourceSchema) -> List[str]:
    """
    :param fields: csv of the requested fields
    :return: the projection, the default projection if no fields were requested
    """
    if not fields:
        return schema.default_fields
    result = []
    for name in fields.split(","):
        name = name.strip()
        if not name or name == SEARCH_FIELD:
            continue
        if name not in schema.response_attributes:
            chaus.log.debug(f"{schema.name} has no attribute {name}")
        result.append(name)
    return result


def with_id(fields: List[str]) -> List[str]:
    """
    :return: the store projection, the id is always read to resolve the relations
    """
    return fields if "id" in fields else ["id"] + list(fields)


def drop_unrequested_id(items: List[dict], fields: List[str]) -> None:
    if "id" not in fields:
        for item in items:
            item.pop("id", None)


def parse_expands(expands: Optional[str]) -> Set[str]:
    return {name.strip() for name in (expands or "").split(",") if name.strip()}


def parse_window(query: Mapping[str, Any], default_limit: int, max_limit: int, max_offset: int) -> Tuple[int, int]:
    """
    :return: (offset, limit) requested in the query string, clamped to the configured bounds
    """
    try:
        offset = int(query.get("offset") or 0)
        limit = int(query.get("limit") or default_limit)
    except (TypeError, ValueError):
        raise ValidationError("Pagination Value Error", errors={"offset": "offset and limit should be integers"})
    if limit <= 0:
        limit = 1
    if limit > max_limit:
        limit = max_limit
    if offset < 0:
        offset = 0
    if offset > max_offset:
        offset = max_offset
    return offset, limit
