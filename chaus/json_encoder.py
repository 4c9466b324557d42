# chaus to json encoding

import datetime
import decimal
from uuid import UUID
from flask.json.provider import DefaultJSONProvider
import chaus
from .config import is_debug


class _ChausJSONEncoder:
    """
    JSON encoding for the values found in stored documents
    """

    # pylint: disable=too-many-return-statements
    def default(self, obj, **kwargs):
        """
        override the default json encoding
        :param obj: object to be encoded
        :return: encoded/serialized object
        """
        if obj is None:
            return None
        if isinstance(obj, datetime.datetime):
            return obj.isoformat()
        if isinstance(obj, (datetime.date, datetime.time)):
            return obj.isoformat()
        if isinstance(obj, datetime.timedelta):
            return str(obj)
        if isinstance(obj, (set, frozenset, tuple)):
            return list(obj)
        if isinstance(obj, UUID):  # pragma: no cover
            return str(obj)
        if isinstance(obj, decimal.Decimal):  # pragma: no cover
            return float(obj)
        if isinstance(obj, bytes):  # pragma: no cover
            return obj.hex()

        if not is_debug():  # pragma: no cover
            chaus.log.warning(f'JSON Encoding Error: Unknown object type "{type(obj)}" for {obj}')
            return {"error": "invalid object"}
        return str(obj)


class ChausJSONProvider(_ChausJSONEncoder, DefaultJSONProvider):
    """
    Flask JSON encoding
    """

    # keep the attribute order of the schema
    sort_keys = False

