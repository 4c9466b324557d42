import pytest

from chaus.operations import build_operations
from chaus.schema import SchemaRegistry
from chaus.store import MemoryStore

DEFINITIONS = {
    "person": {
        "name": {"type": "string", "unique": True, "text": True, "required": True},
        "bio": {"type": "string", "text": True},
        "age": {"type": "number"},
        "born": {"type": "date"},
        "active": {"type": "boolean", "default": True},
        "location": {"type": "geometry"},
        "group": {"type": "parent", "relation": "group.members"},
        "friend": {"type": "instance", "relation": "person"},
    },
    "group": {
        "name": {"type": "string", "unique": True, "text": True},
        "members": {"type": "children", "relation": "person", "desc": "group members"},
    },
}


@pytest.fixture
def registry() -> SchemaRegistry:
    return SchemaRegistry.from_dict(DEFINITIONS)


@pytest.fixture
def stores(registry: SchemaRegistry) -> dict:
    return {name: MemoryStore(schema.collection_name) for name, schema in registry.items()}


@pytest.fixture
def operations(registry: SchemaRegistry, stores: dict) -> dict:
    return build_operations(registry, stores, prefix="/api")
