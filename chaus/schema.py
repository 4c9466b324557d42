"""
Schema registry: the declared resources and their attribute definitions

A resource schema is declared as a mapping of attribute name to options, e.g.

    person:
      name: {type: string, unique: true, text: true}
      group: {type: parent, relation: group.members}
      friend: {type: instance, relation: person}
    group:
      name: {type: string, unique: true}
      members: {type: children, relation: person}

Every schema is augmented with the implicit `id`, `createdAt` and `updatedAt` attributes.
"""
from __future__ import annotations

import re
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

import inflect
import yaml

import chaus
from .errors import GenericError

IMPLICIT_ATTRIBUTES = ("id", "createdAt", "updatedAt")
# internal field holding the concatenated `text` attribute values
SEARCH_FIELD = "q"

_inflect = inflect.engine()


@lru_cache(maxsize=256)
def plural(name: str) -> str:
    """
    :param name: resource name, e.g. "person"
    :return: collection name used in the urls, e.g. "people"
    """
    return _inflect.plural_noun(name) or name


class AttributeType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    GEOMETRY = "geometry"
    CHILDREN = "children"
    PARENT = "parent"
    INSTANCE = "instance"


class RelationKind(str, Enum):
    """
    The relation attribute types, each one is resolved differently by the relation resolver
    """

    CHILDREN = "children"
    PARENT = "parent"
    INSTANCE = "instance"


@dataclass(frozen=True)
class Relation:
    """
    Resolved relation target of a relation attribute

    :param kind: children, parent or instance
    :param resource: the related resource name (child resource, owner resource, referenced resource)
    :param field: for parents, the children attribute of the owner resource
    """

    kind: RelationKind
    resource: str
    field: Optional[str] = None


@dataclass
class Attribute:
    name: str
    type: AttributeType = AttributeType.STRING
    default: Any = None
    required: bool = False
    unique: bool = False
    text: bool = False
    relation: Optional[str] = None
    desc: Optional[str] = None
    pattern: Any = None
    invalid: Optional[str] = None
    implicit: bool = False

    @classmethod
    def from_options(cls, name: str, options: Optional[Mapping[str, Any]]) -> "Attribute":
        """
        :param name: attribute name
        :param options: declared options, `uniq` is accepted as an alias of `unique`
        """
        options = dict(options or {})
        try:
            attr_type = AttributeType(options.pop("type", AttributeType.STRING.value))
        except ValueError as exc:
            raise GenericError(f"Invalid type for attribute {name}: {exc}")
        unique = bool(options.pop("unique", False) or options.pop("uniq", False))
        known = {f.name for f in cls.__dataclass_fields__.values()}
        unknown = set(options) - known
        if unknown:
            chaus.log.debug(f"Ignoring options {sorted(unknown)} of attribute {name}")
        kwargs = {k: v for k, v in options.items() if k in known and k not in ("name", "implicit")}
        attribute = cls(name=name, type=attr_type, unique=unique, **kwargs)
        if attribute.relation_kind and not attribute.relation:
            raise GenericError(f"Relation attribute {name} has no relation target")
        if attribute.type is AttributeType.PARENT and "." not in attribute.relation:
            raise GenericError(f'Parent attribute {name} relation should be "<resource>.<field>"')
        return attribute

    @property
    def relation_kind(self) -> Optional[RelationKind]:
        if self.type.value in RelationKind._value2member_map_:
            return RelationKind(self.type.value)
        return None

    @property
    def target(self) -> Optional[Relation]:
        kind = self.relation_kind
        if kind is None:
            return None
        if kind is RelationKind.PARENT:
            resource, _, owner_field = self.relation.partition(".")
            return Relation(kind, resource, owner_field)
        return Relation(kind, self.relation)

    @property
    def storable(self) -> bool:
        """children are synthesized as links when reading, they're never stored"""
        return self.type is not AttributeType.CHILDREN


class ResourceSchema:
    """
    Ordered attribute definitions of a single resource
    """

    def __init__(self, name: str, attributes: Mapping[str, Any]) -> None:
        self.name = name
        self.collection_name = plural(name)
        self.attributes: "OrderedDict[str, Attribute]" = OrderedDict()
        for attr_name, options in attributes.items():
            if attr_name in IMPLICIT_ATTRIBUTES or attr_name == SEARCH_FIELD:
                raise GenericError(f"{name}.{attr_name} is a reserved attribute name")
            if isinstance(options, Attribute):
                self.attributes[attr_name] = options
            else:
                self.attributes[attr_name] = Attribute.from_options(attr_name, options)

    def __iter__(self) -> Iterator[str]:
        return iter(self.attributes)

    def __contains__(self, attr_name: str) -> bool:
        return attr_name in self.attributes

    def __getitem__(self, attr_name: str) -> Attribute:
        return self.attributes[attr_name]

    def __repr__(self) -> str:
        return f"<ResourceSchema {self.name}: {', '.join(self.attributes)}>"

    def get(self, attr_name: str) -> Optional[Attribute]:
        return self.attributes.get(attr_name)

    def items(self):
        return self.attributes.items()

    @property
    def response_attributes(self) -> "OrderedDict[str, Attribute]":
        """
        :return: the declared attributes augmented with the implicit id and timestamps
        """
        result = OrderedDict(id=Attribute("id", implicit=True))
        result.update(self.attributes)
        result["createdAt"] = Attribute("createdAt", AttributeType.DATE, implicit=True)
        result["updatedAt"] = Attribute("updatedAt", AttributeType.DATE, implicit=True)
        return result

    @property
    def unique_attributes(self) -> List[str]:
        return [name for name, attr in self.attributes.items() if attr.unique]

    @property
    def text_attributes(self) -> List[str]:
        return [name for name, attr in self.attributes.items() if attr.text]

    @property
    def default_fields(self) -> List[str]:
        """the default projection: everything but the internal search field"""
        return list(self.response_attributes)

    def relations(self, *kinds: RelationKind) -> Iterator[Tuple[str, Attribute]]:
        for name, attr in self.attributes.items():
            kind = attr.relation_kind
            if kind is not None and (not kinds or kind in kinds):
                yield name, attr

    def parent_attribute_for(self, owner: str, owner_field: str) -> Optional[str]:
        """
        :param owner: owner resource name
        :param owner_field: the children attribute of the owner
        :return: the name of the attribute holding the owner id in this (child) schema
        """
        fallback = None
        for name, attr in self.relations(RelationKind.PARENT, RelationKind.INSTANCE):
            target = attr.target
            if target.kind is RelationKind.PARENT and target.resource == owner and target.field == owner_field:
                return name
            if target.resource == owner and fallback is None:
                fallback = name
        return fallback


@dataclass
class SchemaRegistry:
    """
    Holds the resource schemas by resource name, read-only after initialization
    """

    schemas: Dict[str, ResourceSchema] = field(default_factory=OrderedDict)

    @classmethod
    def from_dict(cls, definitions: Mapping[str, Mapping[str, Any]]) -> "SchemaRegistry":
        registry = cls()
        for name, attributes in definitions.items():
            registry.schemas[name] = ResourceSchema(name, attributes or {})
        registry.check_relations()
        return registry

    @classmethod
    def from_yaml(cls, source) -> "SchemaRegistry":
        """
        :param source: yaml text, stream or path to a yaml file
        """
        if isinstance(source, str) and not re.search(r"[\n:]", source):
            with open(source, "rt") as fp:
                definitions = yaml.safe_load(fp)
        else:
            definitions = yaml.safe_load(source)
        if not isinstance(definitions, dict):
            raise GenericError(f"Invalid schema definitions: {definitions}")
        return cls.from_dict(definitions)

    def check_relations(self) -> None:
        for schema in self.schemas.values():
            for attr_name, attr in schema.relations():
                target = attr.target
                if target.resource not in self.schemas:
                    raise GenericError(f"{schema.name}.{attr_name}: unknown resource {target.resource}")
                if target.kind is RelationKind.PARENT and target.field not in self.schemas[target.resource]:
                    chaus.log.warning(f"{schema.name}.{attr_name}: {target.resource} has no attribute {target.field}")

    def __getitem__(self, name: str) -> ResourceSchema:
        return self.schemas[name]

    def __contains__(self, name: str) -> bool:
        return name in self.schemas

    def __iter__(self) -> Iterator[str]:
        return iter(self.schemas)

    def items(self):
        return self.schemas.items()
