"""
Request class used by the chaus flask app
"""
from flask import Request
import chaus
from .errors import ValidationError


class ChausRequest(Request):
    """
    Parse the chaus request body, it should be a valid json object
    """

    def get_payload(self):
        """
        :return: the json request payload, {} when there's no body
        """
        if self.method in ("GET", "HEAD", "OPTIONS") or not self.get_data(cache=True):
            return {}
        result = self.get_json(force=True, silent=True)
        if result is None:
            chaus.log.warning(f'Invalid payload! "{self.content_type}"')
            raise ValidationError("Invalid JSON Payload")
        return result
