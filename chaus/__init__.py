# flake8: noqa: F401
#
# chaus exposes the resources declared in a schema registry as REST collections
#
from .chaus_init import DB, log, CHAUS
from .errors import (
    ValidationError,
    GenericError,
    UnAuthorizedError,
    NotFoundError,
    ConflictError,
    StoreError,
    RelatedEntityMissingError,
)
from .request import ChausRequest
from .json_encoder import ChausJSONProvider
from .schema import SchemaRegistry, ResourceSchema, Attribute, AttributeType, RelationKind
from .store import DocumentStore, MemoryStore
from .db import SQLAlchemyStore
from .operations import ResourceOperations, OperationRequest, OperationResult, Authenticator, build_operations
from .chaus_api import ChausAPI
from .__about__ import __version__, __description__

ChausApi = ChausAPI

__all__ = (
    "__version__",
    "__description__",
    #
    "CHAUS",
    "ChausAPI",
    "ChausApi",
    # schema:
    "SchemaRegistry",
    "ResourceSchema",
    "Attribute",
    "AttributeType",
    "RelationKind",
    # stores:
    "DocumentStore",
    "MemoryStore",
    "SQLAlchemyStore",
    # operations:
    "ResourceOperations",
    "OperationRequest",
    "OperationResult",
    "Authenticator",
    "build_operations",
    # json:
    "ChausJSONProvider",
    # Errors:
    "ValidationError",
    "GenericError",
    "UnAuthorizedError",
    "NotFoundError",
    "ConflictError",
    "StoreError",
    "RelatedEntityMissingError",
    # request
    "ChausRequest",
)
