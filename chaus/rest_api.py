#  This file contains the flask-restful "Resource" objects exposing the resource operations:
#  - ChausRestAPI for collections (/people) and instances (/people/<id>)
#  - ChausChildrenAPI for children collections (/groups/<id>/members)
#
#  The http methods translate the flask request to an OperationRequest, run the
#  asynchronous operation pipeline and translate the OperationResult to a flask response
#
import asyncio
from http import HTTPStatus
from flask import jsonify, make_response, request
from flask_restful import Resource as FRResource
from .operations import OperationRequest, OperationResult


def operation_request(**path) -> OperationRequest:
    """
    :param path: url path parameters
    :return: OperationRequest for the current flask request
    """
    return OperationRequest(body=request.get_payload(), path=path, query=request.args, headers=request.headers, raw=request)


def run_operation(operation, *args) -> OperationResult:
    """
    Run an operation pipeline to completion in the current (request) thread
    """
    return asyncio.run(operation(*args))


def operation_response(result: OperationResult):
    """
    :return: flask response, 204 No Content when there's no payload
    """
    if result.payload is None:
        response = make_response("", HTTPStatus.NO_CONTENT)
    else:
        response = make_response(jsonify(result.payload), result.status)
    for name, value in result.headers.items():
        response.headers[name] = value
    return response


class Resource(FRResource):
    """
    Superclass for the exposed endpoints
    * Collections and instances : ChausRestAPI
    * Children : ChausChildrenAPI
    """

    # operations: the ResourceOperations of the exposed resource
    # the exposed classes are created by ChausAPI.expose_resource with this attribute set
    operations = None


class ChausRestAPI(Resource):
    """
    GET /people                list
    POST /people               create (single or {"items": [...]})
    DELETE /people             delete all matching instances
    GET /people/<id>           get
    POST|PATCH /people/<id>    partial update
    DELETE /people/<id>        delete
    """

    def get(self, **kwargs):
        """
        HTTP GET: return the (filtered) collection or the instance with id
        """
        if "id" in kwargs:
            result = run_operation(self.operations.get, operation_request(**kwargs))
        else:
            result = run_operation(self.operations.list, operation_request(**kwargs))
        return operation_response(result)

    def post(self, **kwargs):
        """
        HTTP POST: create instances on the collection, update when posting to an instance
        """
        if "id" in kwargs:
            return ChausRestAPI.patch(self, **kwargs)
        result = run_operation(self.operations.create, operation_request(**kwargs))
        return operation_response(result)

    def patch(self, **kwargs):
        """
        HTTP PATCH: merge the payload into the instance
        """
        result = run_operation(self.operations.update, operation_request(**kwargs))
        return operation_response(result)

    def delete(self, **kwargs):
        """
        HTTP DELETE: delete the instance with id or all instances matching the filters
        """
        if "id" in kwargs:
            result = run_operation(self.operations.delete_instance, operation_request(**kwargs))
        else:
            result = run_operation(self.operations.delete_collection, operation_request(**kwargs))
        return operation_response(result)


class ChausChildrenAPI(Resource):
    """
    GET /groups/<id>/members   list the children of an instance
    """

    # name of the children attribute
    child_attr = None

    def get(self, **kwargs):
        result = run_operation(self.operations.list_children, operation_request(**kwargs), self.child_attr)
        return operation_response(result)
