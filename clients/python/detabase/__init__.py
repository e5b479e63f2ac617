"""Deta Base Python Client.

A Python client for the Deta Base HTTP API.

Usage:
    from detabase import DetaClient, Query, Update

    client = DetaClient()  # reads DETA_PROJECT_KEY

    # Insert a record
    client.insert("users", {"key": "user123", "name": "Ann", "age": 33})

    # Fetch it back
    user = client.get("users", "user123")

    # Partial update
    client.update("users", "user123", Update().increment("age").set("active", True))

    # Query, following pagination lazily
    for user in client.query("users", Query().where("age", "gte", 18)):
        print(user.key)

    # Delete (succeeds even if the key is already gone)
    client.delete("users", "user123")
"""

from .client import AsyncDetaClient, Base, DetaClient
from .exceptions import (
    AuthError,
    ConfigurationError,
    Conflict,
    DecodeError,
    DetaError,
    NetworkError,
    NotFound,
    ServiceError,
    ValidationError,
)
from .query import Query
from .types import PutResult, QueryPage, Record
from .update import Update

__version__ = "0.1.0"
__all__ = [
    "DetaClient",
    "AsyncDetaClient",
    "Base",
    "Record",
    "PutResult",
    "QueryPage",
    "Query",
    "Update",
    "DetaError",
    "ConfigurationError",
    "NetworkError",
    "AuthError",
    "NotFound",
    "Conflict",
    "ValidationError",
    "DecodeError",
    "ServiceError",
]
