"""
Document store contract

The operation pipelines only use the narrow, asynchronous contract of `DocumentStore`:
find, count, find_one, find_one_and_update, find_one_and_remove, save and remove.
Predicates are the ones produced by `chaus.conditions.compile_condition`.

`DocumentStore` implements the querying (matching, sorting, windowing, projection) on top of
three storage primitives that the concrete stores provide: `_documents`, `_write` and `_delete`.
"""
import copy
import math
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

EARTH_RADIUS = 6371008.8  # meters


class StoreQueryError(ValueError):
    """
    Raised when a predicate can't be evaluated, e.g. a malformed proximity query
    """


def point_coordinates(value: Any) -> Optional[Tuple[float, float]]:
    """
    :param value: GeoJSON point or [lng, lat] pair
    :return: (lng, lat) or None
    """
    if isinstance(value, Mapping):
        value = value.get("coordinates")
    if isinstance(value, (list, tuple)) and len(value) == 2:
        return float(value[0]), float(value[1])
    return None


def distance(lng1: float, lat1: float, lng2: float, lat2: float) -> float:
    """
    :return: great-circle (haversine) distance in meters
    """
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = phi2 - phi1
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS * math.asin(math.sqrt(a))


def parse_near(near: Mapping[str, Any]) -> Tuple[float, float, float]:
    """
    :return: (lng, lat, max_distance) of a $near predicate
    """
    try:
        lng, lat = near["$geometry"]["coordinates"]
        return float(lng), float(lat), float(near["$maxDistance"])
    except (KeyError, TypeError, ValueError) as exc:
        raise StoreQueryError(f"Invalid proximity query {near}: {exc}")


def check_predicate(predicate: Mapping[str, Any]) -> None:
    """
    Parse the proximity conditions of a predicate up front, they must be valid even if no document is scanned
    :raise StoreQueryError:
    """
    for condition in (predicate or {}).values():
        if isinstance(condition, Mapping) and "$near" in condition:
            parse_near(condition["$near"])


def near_distance(near: Mapping[str, Any], value: Any) -> Optional[float]:
    lng, lat, _ = parse_near(near)
    coordinates = point_coordinates(value)
    if coordinates is None:
        return None
    return distance(lng, lat, *coordinates)


def _compare(value: Any, other: Any, op) -> bool:
    try:
        return op(value, other)
    except TypeError:
        return False


def match_value(condition: Any, value: Any) -> bool:
    """
    :param condition: predicate for a single field
    :param value: stored field value
    """
    if isinstance(condition, re.Pattern):
        if isinstance(value, list):
            return any(match_value(condition, v) for v in value)
        return value is not None and condition.search(str(value)) is not None

    if isinstance(condition, Mapping):
        if "$near" in condition:
            lng, lat, max_distance = parse_near(condition["$near"])
            coordinates = point_coordinates(value)
            return coordinates is not None and distance(lng, lat, *coordinates) <= max_distance
        if "$in" in condition:
            candidates = condition["$in"]
            if isinstance(value, list):
                return any(v in candidates for v in value)
            return value in candidates
        if "$gte" in condition or "$lte" in condition:
            if value is None:
                return False
            if "$gte" in condition and not _compare(value, condition["$gte"], lambda a, b: a >= b):
                return False
            if "$lte" in condition and not _compare(value, condition["$lte"], lambda a, b: a <= b):
                return False
            return True

    if isinstance(value, list) and not isinstance(condition, list):
        return condition in value
    return value == condition


def matches(predicate: Mapping[str, Any], document: Mapping[str, Any]) -> bool:
    """
    :return: True if the document satisfies every field condition of the predicate
    """
    return all(match_value(condition, document.get(name)) for name, condition in predicate.items())


def _sort_key(value: Any):
    # None sorts first, then numbers, then everything else by its string form
    if value is None:
        return (0, 0, "")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (1, value, "")
    if isinstance(value, bool):
        return (1, int(value), "")
    try:
        value < value  # noqa: B015
    except TypeError:
        return (2, 0, str(value))
    return (2, 0, value)


def sort_documents(documents: List[dict], sort: Sequence[Tuple[str, int]]) -> List[dict]:
    """
    :param sort: list of (field, direction), direction is 1 or -1
    """
    result = list(documents)
    for name, direction in reversed(list(sort)):
        try:
            result.sort(key=lambda doc: _sort_key(doc.get(name)), reverse=direction < 0)
        except TypeError:
            result.sort(key=lambda doc: str(doc.get(name)), reverse=direction < 0)
    return result


def project(document: Mapping[str, Any], fields: Optional[Iterable[str]]) -> dict:
    """
    :return: a copy of the document holding only the requested fields
    """
    if fields is None:
        return copy.deepcopy(dict(document))
    return {name: copy.deepcopy(document[name]) for name in fields if name in document}


class DocumentStore(ABC):
    """
    Base class of the stores backing a resource collection
    """

    def __init__(self, collection: str) -> None:
        self.collection = collection

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.collection}>"

    @abstractmethod
    def _documents(self, predicate: Mapping[str, Any]) -> Iterable[dict]:
        """
        :return: the stored documents, may be pre-filtered on the predicate
        """

    @abstractmethod
    def _write(self, document: dict) -> None:
        """insert or replace the document with document["id"]"""

    @abstractmethod
    def _delete(self, id: str) -> Optional[dict]:
        """remove the document and return it"""

    def _select(self, predicate: Mapping[str, Any], sort=None) -> List[dict]:
        predicate = predicate or {}
        check_predicate(predicate)
        documents = [doc for doc in self._documents(predicate) if matches(predicate, doc)]
        if sort:
            return sort_documents(documents, sort)
        near = [(name, cond["$near"]) for name, cond in predicate.items() if isinstance(cond, Mapping) and "$near" in cond]
        if near:
            name, condition = near[0]
            documents.sort(key=lambda doc: near_distance(condition, doc.get(name)))
        return documents

    async def find(
        self, predicate: Mapping[str, Any], fields: Optional[Iterable[str]] = None, skip: int = 0, limit: Optional[int] = None, sort=None
    ) -> List[dict]:
        documents = self._select(predicate, sort)
        end = None if limit is None else skip + limit
        return [project(doc, fields) for doc in documents[skip:end]]

    async def count(self, predicate: Mapping[str, Any]) -> int:
        return len(self._select(predicate))

    async def find_one(self, predicate: Mapping[str, Any], fields: Optional[Iterable[str]] = None) -> Optional[dict]:
        check_predicate(predicate)
        for document in self._documents(predicate or {}):
            if matches(predicate or {}, document):
                return project(document, fields)
        return None

    async def find_one_and_update(self, predicate: Mapping[str, Any], patch: Mapping[str, Any]) -> Optional[dict]:
        """
        Merge patch into the first matching document
        :return: the updated document or None
        """
        check_predicate(predicate)
        for document in self._documents(predicate or {}):
            if matches(predicate or {}, document):
                updated = copy.deepcopy(dict(document))
                updated.update(copy.deepcopy(dict(patch)))
                updated["id"] = document["id"]
                self._write(updated)
                return project(updated, None)
        return None

    async def find_one_and_remove(self, predicate: Mapping[str, Any]) -> Optional[dict]:
        check_predicate(predicate)
        for document in self._documents(predicate or {}):
            if matches(predicate or {}, document):
                return self._delete(document["id"])
        return None

    async def save(self, record: Mapping[str, Any]) -> None:
        if not record.get("id"):
            raise StoreQueryError(f"Can't save a {self.collection} document without id")
        self._write(copy.deepcopy(dict(record)))

    async def remove(self, record: Mapping[str, Any]) -> None:
        self._delete(record["id"])


class MemoryStore(DocumentStore):
    """
    In-process store, documents are kept in insertion order
    """

    def __init__(self, collection: str, documents: Iterable[Mapping[str, Any]] = ()) -> None:
        super().__init__(collection)
        self.documents: Dict[str, dict] = {}
        self.load(documents)

    def load(self, documents: Iterable[Mapping[str, Any]]) -> None:
        """
        synchronously add documents, e.g. fixtures
        """
        for document in documents:
            self._write(copy.deepcopy(dict(document)))

    def _documents(self, predicate: Mapping[str, Any]) -> Iterable[dict]:
        id = predicate.get("id")
        if isinstance(id, str):
            document = self.documents.get(id)
            return [document] if document is not None else []
        return list(self.documents.values())

    def _write(self, document: dict) -> None:
        self.documents[document["id"]] = document

    def _delete(self, id: str) -> Optional[dict]:
        return self.documents.pop(id, None)
