"""Type definitions for the Deta Base client."""

import json
from dataclasses import dataclass, field
from typing import Any

from .exceptions import DecodeError, ValidationError

_MISSING = object()


@dataclass
class Record:
    """A JSON document stored in a base.

    ``data`` is an open mapping of field names to JSON-compatible values.
    ``key`` is the record's unique identifier; it may be left out on
    insert, in which case the service generates one. Records read back
    from the service always carry a key.

    Example:
        >>> user = Record("user123", {"name": "Ann", "age": 33})
        >>> user.get_int("age")
        33
    """

    key: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.data, dict):
            raise ValidationError(
                f"Record data must be a mapping, got {type(self.data).__name__}"
            )
        self.data = dict(self.data)
        embedded = self.data.pop("key", None)
        if self.key is None:
            self.key = embedded
        elif embedded is not None and str(embedded) != str(self.key):
            raise ValidationError(
                f"Conflicting keys for record: {self.key!r} and {embedded!r}"
            )
        if self.key is not None:
            self.key = str(self.key)

    @classmethod
    def wrap(cls, key: str | None, value: Any) -> "Record":
        """Build a record from any JSON value.

        Mappings become the record's fields; anything else is stored under
        the ``value`` field, the layout the service uses for scalars.
        """
        if isinstance(value, dict):
            return cls(key, value)
        return cls(key, {"value": value})

    @classmethod
    def from_response(cls, response: Any) -> "Record":
        """Create a Record from a JSON object returned by the service."""
        if not isinstance(response, dict):
            raise DecodeError(f"Expected a JSON object, got {type(response).__name__}")
        key = response.get("key")
        if not isinstance(key, str):
            raise DecodeError("Record is missing its 'key' field")
        return cls(key, response)

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the JSON object sent to the service."""
        body = dict(self.data)
        if self.key is not None:
            body["key"] = self.key
        try:
            json.dumps(body, allow_nan=False)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Record is not JSON serializable: {e}") from e
        return body

    def unwrap(self) -> Any:
        """Inverse of ``wrap``: the scalar for a ``{"value": v}`` record, else the fields."""
        if set(self.data) == {"value"}:
            return self.data["value"]
        return dict(self.data)

    def __getitem__(self, name: str) -> Any:
        if name == "key":
            return self.key
        return self.data[name]

    def __contains__(self, name: object) -> bool:
        return name == "key" or name in self.data

    def get(self, name: str, default: Any = None) -> Any:
        if name == "key":
            return self.key
        return self.data.get(name, default)

    def get_str(self, name: str, default: Any = _MISSING) -> str:
        return self._typed(name, (str,), "string", default)

    def get_int(self, name: str, default: Any = _MISSING) -> int:
        value = self._typed(name, (int,), "integer", default)
        if isinstance(value, bool):
            raise DecodeError(f"Field {name!r} is not of type integer")
        return value

    def get_float(self, name: str, default: Any = _MISSING) -> float:
        value = self._typed(name, (int, float), "number", default)
        if isinstance(value, bool):
            raise DecodeError(f"Field {name!r} is not of type number")
        return float(value) if value is not None else value

    def get_bool(self, name: str, default: Any = _MISSING) -> bool:
        return self._typed(name, (bool,), "boolean", default)

    def get_list(self, name: str, default: Any = _MISSING) -> list[Any]:
        return self._typed(name, (list,), "array", default)

    def get_dict(self, name: str, default: Any = _MISSING) -> dict[str, Any]:
        return self._typed(name, (dict,), "object", default)

    def _typed(self, name: str, types: tuple[type, ...], label: str, default: Any) -> Any:
        if name not in self.data:
            if default is _MISSING:
                raise DecodeError(f"Record {self.key!r} has no field {name!r}")
            return default
        value = self.data[name]
        if not isinstance(value, types):
            raise DecodeError(
                f"Field {name!r} is not of type {label}: {type(value).__name__}"
            )
        return value


def _items(section: Any, where: str, strict: bool = True) -> list[Record]:
    if section is None:
        return []
    if not isinstance(section, dict):
        raise DecodeError(f"Malformed '{where}' section in response")
    items = section.get("items", [])
    if not isinstance(items, list):
        raise DecodeError(f"Malformed '{where}.items' in response")
    if strict:
        return [Record.from_response(item) for item in items]
    if not all(isinstance(item, dict) for item in items):
        raise DecodeError(f"Malformed '{where}.items' in response")
    # rejected items echo what the caller sent, possibly without a key
    return [Record(None, item) for item in items]


@dataclass
class PutResult:
    """Result of a batch put.

    The service reports which records it wrote and which it rejected;
    reconciling the failed subset is left to the caller.
    """

    processed: list[Record] = field(default_factory=list)
    failed: list[Record] = field(default_factory=list)

    @classmethod
    def from_response(cls, response: Any) -> "PutResult":
        """Create PutResult from the service response."""
        if not isinstance(response, dict):
            raise DecodeError("Expected a JSON object for put response")
        return cls(
            processed=_items(response.get("processed"), "processed"),
            failed=_items(response.get("failed"), "failed", strict=False),
        )

    @property
    def keys(self) -> list[str]:
        return [r.key for r in self.processed if r.key is not None]


@dataclass
class QueryPage:
    """One page of query results.

    ``last`` is the service's opaque cursor; pass it back to resume after
    this page. It is None on the final page.
    """

    items: list[Record]
    last: str | None = None
    size: int = 0

    @classmethod
    def from_response(cls, response: Any) -> "QueryPage":
        """Create QueryPage from the service response."""
        if not isinstance(response, dict):
            raise DecodeError("Expected a JSON object for query response")
        raw_items = response.get("items")
        if not isinstance(raw_items, list):
            raise DecodeError("Query response is missing 'items'")
        paging = response.get("paging", {}) or {}
        if not isinstance(paging, dict):
            raise DecodeError("Malformed 'paging' section in query response")
        last = paging.get("last")
        if last is not None and not isinstance(last, str):
            raise DecodeError("Malformed pagination cursor in query response")
        items = [Record.from_response(item) for item in raw_items]
        return cls(
            items=items,
            last=last or None,
            size=paging.get("size", len(items)),
        )

    @property
    def has_more(self) -> bool:
        return self.last is not None
