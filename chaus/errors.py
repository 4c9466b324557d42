# Exception Handlers
#
# The application loglevel determines the level of detail shown to the user.
# If set to debug, too much sensitive info might be shown !
#
# The exceptions will be caught in http_method_decorator and formatted, for example:
# {
#      "code": 400,
#      "message": "Validation Error: ",
#      "errors": {"name": "Invalid value[]"},
#      "index": 2
# }
#
import traceback
from http import HTTPStatus
from typing import Dict, Optional
from werkzeug.exceptions import NotFound
import chaus
from .config import is_debug

HIDDEN_LOG = "(debug logging disabled)"


class JsonapiError(Exception):
    """
    Base class of the errors raised by the operation pipelines
    """

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR.value
    message = ""
    errors: Optional[Dict[str, str]] = None
    index: Optional[int] = None

    def to_dict(self) -> dict:
        """
        :return: json serializable error body
        """
        result = {"code": self.status_code, "message": self.message}
        if self.errors:
            result["errors"] = self.errors
        if self.index is not None:
            result["index"] = self.index
        return result

    def __str__(self) -> str:
        return self.message


class NotFoundError(JsonapiError, NotFound):
    """
    This exception is raised when an id-addressed item was not found
    """

    status_code = HTTPStatus.NOT_FOUND.value
    message = "NotFoundError "

    def __init__(self, message="", status_code=HTTPStatus.NOT_FOUND.value, errors=None):
        """
        :param message: Message to be returned in the (json) body
        :param status_code: HTTP Status code
        :param errors: field -> message map
        """
        JsonapiError.__init__(self)
        self.status_code = status_code
        self.errors = errors
        chaus.log.error("Not found: %s", message)
        self.message += message


class UnAuthorizedError(JsonapiError):
    """
    This exception is raised when the caller credentials are missing or incorrect
    """

    status_code = HTTPStatus.UNAUTHORIZED.value
    message = "Authorization Error: "

    def __init__(self, message="", status_code=HTTPStatus.UNAUTHORIZED.value):
        Exception.__init__(self)
        self.status_code = status_code
        chaus.log.error("UnAuthorizedError: %s", message)
        self.message += message


class ConflictError(JsonapiError):
    """
    This exception is raised when a new instance would overwrite an existing id
    """

    status_code = HTTPStatus.CONFLICT.value
    message = "Conflict: "

    def __init__(self, message="", status_code=HTTPStatus.CONFLICT.value, index=None):
        Exception.__init__(self)
        self.status_code = status_code
        self.index = index
        chaus.log.warning("ConflictError: %s", message)
        self.message += message


class GenericError(JsonapiError):
    """
    This exception is raised when an error has been detected
    """

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR.value  # 500
    message = "Generic Error: "

    def __init__(self, message, status_code=HTTPStatus.INTERNAL_SERVER_ERROR.value):
        Exception.__init__(self)
        self.status_code = status_code
        chaus.log.error("Generic Error: %s", message)
        if is_debug():
            chaus.log.debug(traceback.format_exc(120))
            self.message += str(message)
        else:
            self.message += HIDDEN_LOG


class StoreError(GenericError):
    """
    This exception wraps a failure of the underlying document store
    The store message is passed through to the client
    """

    message = "Store Error: "

    def __init__(self, message, status_code=HTTPStatus.INTERNAL_SERVER_ERROR.value):
        Exception.__init__(self)
        self.status_code = status_code
        chaus.log.error("Store Error: %s", message)
        self.message += str(message)


class ValidationError(JsonapiError):
    """
    This exception is raised when invalid input has been detected (client side input)
    Always send back the message to the client in the response
    """

    status_code = HTTPStatus.BAD_REQUEST.value
    message = "Validation Error: "

    def __init__(self, message="", status_code=HTTPStatus.BAD_REQUEST.value, errors=None, index=None):
        Exception.__init__(self)
        self.status_code = status_code
        self.errors = errors
        self.index = index
        chaus.log.warning("ValidationError: %s %s", message, errors or "")
        self.message += message


class RelatedEntityMissingError(ValidationError):
    """
    This exception is raised when a declared parent/instance reference does not resolve
    """

    message = "Related Entity Missing: "
