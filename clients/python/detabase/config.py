"""Configuration for the Deta Base client.

Constructor arguments win over the environment, and the environment wins
over the defaults below. The environment is only consulted when a client
is built.
"""

import os
import re

from .exceptions import ConfigurationError

PROJECT_KEY_ENV = "DETA_PROJECT_KEY"
BASE_URL_ENV = "DETA_BASE_URL"

DEFAULT_BASE_URL = "https://database.deta.sh/v1"
DEFAULT_TIMEOUT = 30.0
# Connection-level retries handed to httpx.HTTPTransport.
DEFAULT_RETRIES = 2

MAX_PUT_ITEMS = 25
MAX_QUERY_PAGE = 1000

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.~-]+$")


def load_project_key(key: str | None = None) -> str:
    """Return ``key`` or the project key from ``DETA_PROJECT_KEY``.

    Raises:
        ConfigurationError: No key given and none in the environment, or
            the key is malformed.
    """
    if key is None:
        key = os.environ.get(PROJECT_KEY_ENV)
        if not key:
            raise ConfigurationError(
                f"Project key not found; set the {PROJECT_KEY_ENV} environment variable",
                code="KeyNotFound",
            )
    return validate_project_key(key)


def validate_project_key(key: str) -> str:
    if not isinstance(key, str) or not _KEY_PATTERN.match(key):
        raise ConfigurationError("Invalid project key", code="InvalidKey")
    return key


def project_id(key: str) -> str:
    """The project id is the part of the key before the first underscore."""
    pid = key.split("_", 1)[0]
    if not pid:
        raise ConfigurationError("Invalid project key", code="InvalidKey")
    return pid


def endpoint_for(key: str, base_url: str | None = None) -> str:
    """Build the per-project endpoint, e.g. ``https://database.deta.sh/v1/a0abc``."""
    if base_url is None:
        base_url = os.environ.get(BASE_URL_ENV) or DEFAULT_BASE_URL
    return f"{base_url.rstrip('/')}/{project_id(key)}"
