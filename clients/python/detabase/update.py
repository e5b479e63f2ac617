"""Partial updates for Deta Base records."""

from typing import Any

from .exceptions import ValidationError


class Update:
    """Builder for a partial update, applied with ``client.update``.

    Nested fields are addressed with dots. Every method returns the
    builder so calls chain.

    Example:
        >>> update = (
        ...     Update()
        ...     .set("profile.age", 33)
        ...     .increment("purchases", 2)
        ...     .append("likes", "ramen")
        ...     .delete("profile.hometown")
        ... )
    """

    def __init__(self) -> None:
        self._set: dict[str, Any] = {}
        self._increment: dict[str, int | float] = {}
        self._append: dict[str, list[Any]] = {}
        self._prepend: dict[str, list[Any]] = {}
        self._delete: list[str] = []

    def set(self, field: str, value: Any) -> "Update":
        """Set a field, creating it if needed."""
        self._set[field] = value
        return self

    def increment(self, field: str, value: int | float = 1) -> "Update":
        """Add ``value`` (which may be negative) to a numeric field."""
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(f"Increment for {field!r} must be a number")
        self._increment[field] = self._increment.get(field, 0) + value
        return self

    def append(self, field: str, *values: Any) -> "Update":
        """Append values to a list field."""
        self._append.setdefault(field, []).extend(values)
        return self

    def prepend(self, field: str, *values: Any) -> "Update":
        """Prepend values to a list field."""
        self._prepend.setdefault(field, []).extend(values)
        return self

    def delete(self, *fields: str) -> "Update":
        """Remove fields from the record."""
        for field in fields:
            if field not in self._delete:
                self._delete.append(field)
        return self

    def __bool__(self) -> bool:
        return bool(
            self._set or self._increment or self._append or self._prepend or self._delete
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Update):
            return NotImplemented
        return self.to_wire() == other.to_wire()

    def __repr__(self) -> str:
        return f"Update({self.to_wire()!r})"

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the PATCH body, leaving out empty sections."""
        if set(self._set) & set(self._delete):
            raise ValidationError(
                f"Fields both set and deleted: {sorted(set(self._set) & set(self._delete))}"
            )
        payload: dict[str, Any] = {}
        if self._set:
            payload["set"] = dict(self._set)
        if self._increment:
            payload["increment"] = dict(self._increment)
        if self._append:
            payload["append"] = {k: list(v) for k, v in self._append.items()}
        if self._prepend:
            payload["prepend"] = {k: list(v) for k, v in self._prepend.items()}
        if self._delete:
            payload["delete"] = list(self._delete)
        return payload
