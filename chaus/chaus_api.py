# flask_restful API subclass
from http import HTTPStatus
from werkzeug.exceptions import HTTPException
from flask import Flask
from flask_restful import Api as FRApiBase, abort
from flask_restful.utils import cors
from functools import wraps
import chaus
from .config import get_config, get_int_config, is_debug
from .errors import HIDDEN_LOG, JsonapiError
from .json_encoder import ChausJSONProvider
from .operations import Authenticator, build_operations
from .rest_api import ChausChildrenAPI, ChausRestAPI
from .schema import RelationKind, SchemaRegistry
from .store import MemoryStore
from typing import Callable, Optional


class ChausAPI(FRApiBase):
    """
    Subclass of the flask_restful API class where we add the expose_resource method
    this method creates the API endpoints of a resource declared in the schema registry

        api = ChausAPI(app, registry, prefix="/api")
        api.expose_all()
    """

    def __init__(
        self,
        app: Flask,
        registry: SchemaRegistry,
        prefix: str = "",
        store_factory: Callable = MemoryStore,
        stores: Optional[dict] = None,
        before: Optional[Callable] = None,
        after: Optional[Callable] = None,
        validator: Optional[Callable] = None,
        **kwargs,
    ) -> None:
        """
        :param app: flask app
        :param registry: resource schemas
        :param prefix: url prefix of all the resources
        :param store_factory: called with the collection name to create the store of a resource
        :param stores: resource name -> store, overrides store_factory
        :param before: hook called before every operation
        :param after: hook called with the payload of every operation, returns the payload to send
        :param validator: parameter validation, defaults to chaus.validation.validate
        :param kwargs: CHAUS configuration settings (e.g. CHAUS_CLIENT, CHAUS_SECRET, DEFAULT_PAGE_LIMIT)
        """
        chaus.CHAUS(app, **kwargs)
        app.config.setdefault("ERROR_404_HELP", False)
        super().__init__(app, prefix=prefix)
        app.json = ChausJSONProvider(app)
        self.registry = registry
        self.stores = dict(stores or {})
        for name, schema in registry.items():
            if name not in self.stores:
                self.stores[name] = store_factory(schema.collection_name)

        with app.app_context():
            authenticate = Authenticator(
                get_config("CHAUS_CLIENT"), get_config("CHAUS_SECRET"), get_config("CLIENT_HEADER"), get_config("SECRET_HEADER")
            )
            operation_kwargs = dict(
                prefix=prefix,
                authenticate=authenticate,
                before=before,
                after=after,
                default_limit=get_int_config("DEFAULT_PAGE_LIMIT"),
                max_limit=get_int_config("MAX_PAGE_LIMIT"),
                max_offset=get_int_config("MAX_PAGE_OFFSET"),
                id_length=get_int_config("ID_HASH_LENGTH"),
                schema_header=get_config("SCHEMA_HEADER"),
                validation_header=get_config("VALIDATION_HEADER"),
            )
            self.cors_domain = get_config("cors_domain")
        if validator is not None:
            operation_kwargs["validator"] = validator
        self.operations = build_operations(registry, self.stores, **operation_kwargs)
        if authenticate.enabled:
            chaus.log.info("Client authentication enabled")

    def expose_all(self) -> None:
        """
        Expose every resource of the registry
        """
        for name in self.registry:
            self.expose_resource(name)

    def expose_resource(self, name: str, **properties) -> None:
        """This methods creates the API url endpoints for a resource
        :param name: resource name
        :param properties: additional flask-restful properties

        creates a class of the form

        @api_decorator
        class person_API(ChausRestAPI):
            operations = <ResourceOperations person>

        add the class as an api resource to /people and /people/<id>
        and a children class for every children attribute, e.g. /groups/<id>/members
        """
        operations = self.operations[name]
        collection_name = operations.collection_name
        properties["operations"] = operations

        api_class_name = f"{name}_API"  # name for dynamically generated classes
        url = f"/{collection_name}"
        api_class = api_decorator(type(api_class_name, (ChausRestAPI,), dict(properties)), self.cors_domain)
        chaus.log.info(f"Exposing {collection_name} on {self.prefix}{url}, endpoint: {collection_name}")
        self.add_resource(api_class, url, endpoint=collection_name, methods=["GET", "POST", "DELETE"])

        url = f"/{collection_name}/<string:id>"
        api_class = api_decorator(type(api_class_name + "_i", (ChausRestAPI,), dict(properties)), self.cors_domain)
        chaus.log.info(f"Exposing {name} instances on {self.prefix}{url}, endpoint: {collection_name}Id")
        self.add_resource(api_class, url, endpoint=f"{collection_name}Id", methods=["GET", "POST", "PATCH", "DELETE"])

        for attr_name, _ in operations.schema.relations(RelationKind.CHILDREN):
            self.expose_children(operations, attr_name, properties)

    def expose_children(self, operations, attr_name: str, properties: dict) -> None:
        """
        Expose the children of a resource instance, e.g. /groups/<id>/members

        :param operations: the ResourceOperations of the parent resource
        :param attr_name: the children attribute
        """
        API_CLASSNAME_FMT = "{}_X_{}_API"  # api class name for generated children classes
        collection_name = operations.collection_name
        url = f"/{collection_name}/<string:id>/{attr_name}"
        endpoint = f"{collection_name}_{attr_name}"
        child_properties = dict(properties, child_attr=attr_name)
        api_class_name = API_CLASSNAME_FMT.format(operations.name, attr_name)
        api_class = api_decorator(type(api_class_name, (ChausChildrenAPI,), child_properties), self.cors_domain)
        chaus.log.info(f"Exposing {operations.name} children {attr_name} on {self.prefix}{url}, endpoint: {endpoint}")
        self.add_resource(api_class, url, endpoint=endpoint, methods=["GET"])


def api_decorator(cls, cors_domain: Optional[str] = None):
    """Decorator for the API views:
        - add cors
        - add generic exception handling

    :param cls: The class that will be decorated (e.g. ChausRestAPI, ChausChildrenAPI)
    :param cors_domain: allowed cors origin, no cors headers when None
    :return: decorated class
    """
    for method_name in ["patch", "post", "delete", "get"]:
        method = cls.__dict__.get(method_name) or getattr(cls, method_name, None)
        if not method:
            continue

        decorated_method = method
        # Add cors
        if cors_domain is not None:
            decorated_method = cors.crossdomain(origin=cors_domain)(decorated_method)
        # Add exception handling
        decorated_method = http_method_decorator(decorated_method)
        setattr(cls, method_name, decorated_method)
    return cls


def http_method_decorator(fun: Callable) -> Callable:
    """Decorator for the supported HTTP methods (get, post, patch, delete)
    - convert all exceptions to a JSON serializable error body

    This method will be called for all requests
    :param fun:
    :return: wrapped fun
    """

    @wraps(fun)
    def method_wrapper(*args, **kwargs):
        """Wrap the method and perform error handling
        :param *args:
        :param **kwargs:
        :return: result of the wrapped method
        """
        chaus_exception = None
        status_code = HTTPStatus.INTERNAL_SERVER_ERROR.value
        message = ""
        try:
            return fun(*args, **kwargs)

        except JsonapiError as exc:
            chaus_exception = exc

        except HTTPException as exc:
            status_code = exc.code
            message = exc.description
            chaus.log.error(message)

        except Exception as exc:
            chaus.log.exception(exc)
            if is_debug():
                message = str(exc)
            else:
                message = HIDDEN_LOG

        if chaus_exception is not None:
            abort(chaus_exception.status_code, **chaus_exception.to_dict())
        abort(status_code, code=status_code, message=message)

    return method_wrapper
