# Configuration settings should be set in app.config
# The get_config function looks up the app config first, then the CHAUS class defaults and the environment
import os
import logging
from flask import current_app
import chaus
from typing import Any


def get_config(option: str) -> Any:
    """Retrieve a configuration parameter from the app
    :param option: configuration parameter
    :return: configuration value
    """
    try:
        result = current_app.config[option]
    except (KeyError, RuntimeError):
        result = getattr(chaus.CHAUS, option, None)
        if result is None:
            result = os.environ.get(option, None)
    return result


def get_int_config(option: str) -> int:
    """
    :param option: configuration parameter holding an integer (may come from the environment as a string)
    """
    return int(get_config(option))


def is_debug() -> bool:
    """
    We use the loglevel to check whether we're running in debug mode
    :return: whether the app is in debug mode
    :rtype: Boolean
    """
    return chaus.log.getEffectiveLevel() < logging.INFO
