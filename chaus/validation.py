"""
Default parameter validation

validate(schema, params) -> {"ok": True} or {<attribute>: <message>, ...}

Attribute options used:
- required: the value must be present and not None
- pattern: regular expression (string or compiled) the value must match
- invalid: custom message for invalid values
"""
import re
from typing import Any, Dict, Mapping


def _format(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


def _options(attr) -> Mapping[str, Any]:
    if isinstance(attr, Mapping):
        return attr
    return vars(attr)


def validate(schema: Mapping[str, Any], params: Mapping[str, Any], partial: bool = False) -> Dict[str, Any]:
    """
    :param schema: attribute name -> Attribute (or a dict of attribute options)
    :param params: values to validate
    :param partial: True when validating an update, missing values are not checked
    :return: {"ok": True} if all values are valid, the messages of the invalid attributes otherwise
    """
    result = {}
    for name, attr in schema.items():
        options = _options(attr)
        present = name in params
        if partial and not present:
            continue
        value = params.get(name)
        invalid = False
        if options.get("required") and value is None:
            invalid = True
        pattern = options.get("pattern")
        if pattern and present and value is not None:
            if isinstance(pattern, str):
                pattern = re.compile(pattern)
            if not pattern.search(_format(value)):
                invalid = True
        if invalid:
            result[name] = options.get("invalid") or f"Invalid value[{_format(value)}]"

    if not result:
        result["ok"] = True
    return result
