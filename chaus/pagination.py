# Pagination envelope
#
# A collection response is wrapped in an envelope holding the requested window and the links
# to traverse the collection:
# {
#     "offset": 0, "limit": 25, "size": 51,
#     "first": "/api/people?offset=0&limit=25",
#     "last": "/api/people?offset=50&limit=25",
#     "prev": null,
#     "next": "/api/people?offset=25&limit=25",
#     "items": [...]
# }
#
import math
from typing import Any, Dict, List, Optional


def window(url: str, offset: int, limit: int) -> str:
    """
    :param url: collection url
    :return: url of the window at offset
    """
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}offset={offset}&limit={limit}"


def paginate_links(offset: int, limit: int, size: int, url: str) -> Dict[str, Optional[str]]:
    """
    :param offset: requested offset, >= 0
    :param limit: requested limit, > 0
    :param size: total number of items matching the query
    :param url: collection url
    :return: first, last, prev and next links, None when the link doesn't apply
    """
    if not size:
        return dict(first=None, last=None, prev=None, next=None)

    last_offset = (math.ceil(size / limit) - 1) * limit
    return dict(
        first=window(url, 0, limit),
        last=window(url, last_offset, limit),
        prev=window(url, max(offset - limit, 0), limit) if offset != 0 else None,
        next=window(url, offset + limit, limit) if offset + limit < size else None,
    )


def envelope(offset: int, limit: int, size: int, url: str, items: List[Any]) -> Dict[str, Any]:
    """
    :return: the paginated collection response
    """
    result = dict(offset=offset, limit=limit, size=size)
    result.update(paginate_links(offset, limit, size, url))
    result["items"] = items
    return result
