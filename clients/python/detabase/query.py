"""Query filters for Deta Base.

On the wire a query is a list of objects. Entries inside one object are
ANDed; the objects themselves are ORed::

    [{"age?gt": 30, "name?pfx": "A"}, {"active": true}]

is "age > 30 and name starts with A, or active". Equality carries no
operator suffix.
"""

from dataclasses import dataclass
from typing import Any, NamedTuple

from .exceptions import ValidationError

OPERATORS = frozenset(
    {"eq", "ne", "lt", "gt", "lte", "gte", "pfx", "r", "contains", "not_contains"}
)


class Condition(NamedTuple):
    """A single field/operator/value triple."""

    field: str
    op: str
    value: Any

    def wire_key(self) -> str:
        if self.op == "eq":
            return self.field
        return f"{self.field}?{self.op}"


@dataclass(frozen=True)
class Query:
    """Immutable query builder.

    Example:
        >>> q = Query().where("age", "gt", 30).where("name", "pfx", "A")
        >>> q.to_wire()
        [{'age?gt': 30, 'name?pfx': 'A'}]
        >>> (q | Query().where("active", "eq", True)).to_wire()
        [{'age?gt': 30, 'name?pfx': 'A'}, {'active': True}]

    ``where`` on an ORed query ANDs the condition into every group, so
    ``(a | b).where(c)`` means ``(a and c) or (b and c)``.
    """

    groups: tuple[tuple[Condition, ...], ...] = ()

    def where(self, field: str, op: str = "eq", value: Any = None) -> "Query":
        """AND a condition into every group (a new group if none yet)."""
        condition = _condition(field, op, value)
        if not self.groups:
            return Query(((condition,),))
        for group in self.groups:
            if any(c.wire_key() == condition.wire_key() for c in group):
                raise ValidationError(
                    f"Duplicate condition {condition.wire_key()!r} in one query group"
                )
        return Query(tuple(group + (condition,) for group in self.groups))

    @classmethod
    def any_of(cls, *queries: "Query") -> "Query":
        """OR several queries together."""
        groups: tuple[tuple[Condition, ...], ...] = ()
        for query in queries:
            groups += query.groups
        return cls(groups)

    def __or__(self, other: "Query") -> "Query":
        if not isinstance(other, Query):
            return NotImplemented
        return Query.any_of(self, other)

    def __bool__(self) -> bool:
        return any(self.groups)

    def to_wire(self) -> list[dict[str, Any]]:
        return [{c.wire_key(): c.value for c in group} for group in self.groups if group]


def _condition(field: str, op: str, value: Any) -> Condition:
    if not field:
        raise ValidationError("Query field name must not be empty")
    if op not in OPERATORS:
        raise ValidationError(
            f"Unknown query operator {op!r}; expected one of {sorted(OPERATORS)}"
        )
    if op == "r":
        if not isinstance(value, (list, tuple)) or len(value) != 2:
            raise ValidationError("Range operator 'r' takes a [start, end] pair")
        value = list(value)
    if op == "pfx" and not isinstance(value, str):
        raise ValidationError("Prefix operator 'pfx' takes a string")
    return Condition(field, op, value)


def to_wire_filter(filter: Any) -> list[dict[str, Any]]:  # noqa: A002
    """Normalize a query argument to the service's filter format.

    Accepts None (match everything), a Query, a single wire-format dict,
    or a list of wire-format dicts.
    """
    if filter is None:
        return []
    if isinstance(filter, Query):
        return filter.to_wire()
    if isinstance(filter, dict):
        return [dict(filter)]
    if isinstance(filter, (list, tuple)) and all(isinstance(f, dict) for f in filter):
        return [dict(f) for f in filter]
    raise ValidationError(f"Unsupported query filter: {type(filter).__name__}")
