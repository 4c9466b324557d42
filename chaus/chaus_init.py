import logging
import os
import sys
from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from .request import ChausRequest
import flask.app


class CHAUS:
    """This class configures the Flask application to serve chaus resources
    :param app: a Flask application.
    :param LOGLEVEL: loglevel configuration variable, values from logging module (0: trace, .. 50: critical)
    """

    # Configuration settings are stored as class variables
    DEFAULT_PAGE_LIMIT = 25
    MAX_PAGE_LIMIT = 100000
    MAX_PAGE_OFFSET = 2**31
    LOGLEVEL = logging.WARNING
    # credentials, requests are not authenticated unless both are set
    CHAUS_CLIENT = None
    CHAUS_SECRET = None
    CLIENT_HEADER = "X-Chaus-Client"
    SECRET_HEADER = "X-Chaus-Secret"
    # auxiliary request modes
    SCHEMA_HEADER = "X-JSON-Schema"
    VALIDATION_HEADER = "X-Validation"
    # number of hex characters kept from the id hash
    ID_HASH_LENGTH = 7
    cors_domain = None

    def __init__(self, app: flask.app.Flask, *args, **kwargs) -> None:
        """
        Constructor
        """
        self.app = app
        if app is not None:
            self.init_app(app, *args, **kwargs)

    def init_app(self, app: flask.app.Flask, **kwargs) -> None:
        """
        API and application initialization

        :param kwargs: configuration settings, they're added to the app config
        """
        if not isinstance(app, Flask):  # pragma: no cover
            raise TypeError("'app' should be Flask.")

        app.request_class = ChausRequest
        app.url_map.strict_slashes = False

        if app.config.get("DEBUG", False):
            log.setLevel(logging.DEBUG)

        for conf_name, conf_val in kwargs.items():
            app.config[conf_name] = conf_val

    @staticmethod
    def init_logging(loglevel: int = logging.WARNING) -> logging.Logger:
        """
        Specify the log format used in the webserver logs
        The webserver will catch stdout so we redirect eveything to sys.stderr
        """
        log = logging.getLogger("chaus")
        if log.level == logging.NOTSET:
            handler = logging.StreamHandler(sys.stderr)
            formatter = logging.Formatter("[%(asctime)s] %(levelname)s: %(message)s")
            handler.setFormatter(formatter)
            log.setLevel(loglevel)
            log.addHandler(handler)
        return log


#
# DB and logging initialization
#
DB = SQLAlchemy()

try:
    DEBUG = os.getenv("DEBUG", logging.WARNING)
    LOGLEVEL = int(DEBUG)
except ValueError:  # pragma: no cover
    print(f'Invalid LogLevel in DEBUG Environment Variable! "{DEBUG}"')
    LOGLEVEL = logging.INFO

log = CHAUS.init_logging(LOGLEVEL)
