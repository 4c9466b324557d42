"""
Identity resolution

The external id of a new instance is derived from the values of its `unique` attributes:
- one unique attribute: the normalized value, or a hash of it when it isn't url safe
- several unique attributes: a hash of the normalized values joined with "-"
- no unique attributes: a hash of the current time and a random value
"""
import hashlib
import random
import re
import time
from typing import Any, Mapping, Sequence

from .errors import ConflictError

SAFE_ID_RE = re.compile(r"^[a-z_0-9-]+$")
SEPARATOR_RE = re.compile(r"[\s./]+")
ID_HASH_LENGTH = 7


def normalize(value: Any) -> str:
    """
    Collapse whitespace, dots and slashes to "_" and lowercase
    """
    if value is None:
        value = ""
    elif isinstance(value, bool):
        value = str(value).lower()
    return SEPARATOR_RE.sub("_", str(value)).lower()


def digest(text: str, length: int = ID_HASH_LENGTH) -> str:
    """
    :return: the first `length` hex characters of the md5 hash of text
    """
    return hashlib.md5(text.encode("utf-8")).hexdigest()[:length]


def resolve_id(unique_keys: Sequence[str], params: Mapping[str, Any], length: int = ID_HASH_LENGTH) -> str:
    """
    :param unique_keys: names of the unique attributes
    :param params: values of the new instance
    :param length: number of hash characters used
    :return: id of the new instance
    """
    if len(unique_keys) == 1:
        result = normalize(params.get(unique_keys[0]))
        if not SAFE_ID_RE.match(result):
            result = digest(result, length)
    elif unique_keys:
        # always hashed, the separator may occur in the values
        result = digest("-".join(normalize(params.get(key)) for key in unique_keys), length)
    else:
        result = digest(f"{int(time.time() * 1000)}:{random.random()}", length)
    return result


async def ensure_unique_id(store, id: str, index=None) -> str:
    """
    :param store: store of the resource
    :param id: candidate id
    :raise ConflictError: when an instance with this id already exists
    """
    existing = await store.find_one({"id": id}, ["id"])
    if existing is not None:
        raise ConflictError(f"Duplicate id exists: {id}", index=index)
    return id
