"""Deta Base HTTP client."""

import json
import logging
from collections.abc import AsyncIterator, Iterable, Iterator
from typing import Any
from urllib.parse import quote

import httpx

from . import config
from .exceptions import (
    AuthError,
    Conflict,
    DecodeError,
    NetworkError,
    NotFound,
    ServiceError,
    ValidationError,
)
from .query import to_wire_filter
from .types import PutResult, QueryPage, Record
from .update import Update

logger = logging.getLogger(__name__)


class DetaClient:
    """HTTP client for Deta Base.

    The project key is read once, here; the client never re-reads the
    environment and never mutates its configuration afterwards, so one
    instance can be shared between threads.

    Args:
        project_key: Project key. Defaults to ``DETA_PROJECT_KEY``.
        base_url: API root (e.g. "https://database.deta.sh/v1"). Defaults
            to ``DETA_BASE_URL`` or the public endpoint.
        timeout: Request timeout in seconds.
        retries: Connection retries for transient network failures.
        transport: Custom httpx transport, replacing the retrying one.

    Raises:
        ConfigurationError: The project key is missing or malformed.

    Example:
        >>> client = DetaClient()
        >>> result = client.put("users", [{"key": "user123", "name": "Ann"}])
        >>> client.get("users", "user123").get_str("name")
        'Ann'
    """

    def __init__(
        self,
        project_key: str | None = None,
        *,
        base_url: str | None = None,
        timeout: float = config.DEFAULT_TIMEOUT,
        retries: int = config.DEFAULT_RETRIES,
        transport: httpx.BaseTransport | None = None,
    ):
        key = config.load_project_key(project_key)
        self.endpoint = config.endpoint_for(key, base_url)
        self._client = httpx.Client(
            base_url=self.endpoint,
            headers=_headers(key),
            timeout=timeout,
            transport=transport or httpx.HTTPTransport(retries=retries),
        )

    @classmethod
    def from_env(cls, **kwargs: Any) -> "DetaClient":
        """Build a client from ``DETA_PROJECT_KEY``."""
        return cls(None, **kwargs)

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> "DetaClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"DetaClient(endpoint={self.endpoint!r})"

    def base(self, name: str) -> "Base":
        """Return a handle bound to one base."""
        return Base(self, name)

    def get(self, base: str, key: str) -> Record:
        """Fetch a single record.

        Raises:
            NotFound: No record with this key.
            AuthError: The project key was rejected.
        """
        response = self._request("GET", _item_path(base, key))
        return Record.from_response(_decode(response))

    def put(self, base: str, records: Iterable[Record | dict[str, Any]]) -> PutResult:
        """Upsert up to 25 records in one request.

        Existing records with the same keys are overwritten.

        Returns:
            PutResult with the processed and failed subsets.

        Raises:
            ValidationError: Empty or oversized batch; raised before any
                request is sent.
        """
        payload = _put_payload(records)
        response = self._request("PUT", _items_path(base), json=payload)
        return PutResult.from_response(_decode(response))

    def insert(self, base: str, record: Record | dict[str, Any]) -> Record:
        """Create a record only if its key does not exist yet.

        Returns:
            The stored record, with the generated key if none was given.

        Raises:
            Conflict: A record with this key already exists.
        """
        payload = {"item": _as_record(record).to_wire()}
        response = self._request("POST", _items_path(base), json=payload)
        return Record.from_response(_decode(response))

    def update(self, base: str, key: str, patch: Update | dict[str, Any]) -> None:
        """Apply a partial update to an existing record.

        Raises:
            NotFound: No record with this key.
        """
        self._request("PATCH", _item_path(base, key), json=_patch_payload(patch))

    def delete(self, base: str, key: str) -> None:
        """Delete a record. Deleting a missing key succeeds."""
        try:
            self._request("DELETE", _item_path(base, key))
        except NotFound:
            logger.debug("Delete of missing key %r in base %r", key, base)

    def query_page(
        self,
        base: str,
        filter: Any = None,  # noqa: A002
        *,
        limit: int | None = None,
        last: str | None = None,
    ) -> QueryPage:
        """Fetch one page of records matching ``filter``.

        Args:
            base: Base name.
            filter: A Query, a wire-format dict or list of dicts, or None
                for every record.
            limit: Page size, at most 1000.
            last: Cursor from a previous page.
        """
        payload = _query_payload(filter, limit, last)
        response = self._request("POST", _query_path(base), json=payload)
        return QueryPage.from_response(_decode(response))

    def query(
        self,
        base: str,
        filter: Any = None,  # noqa: A002
        *,
        limit: int | None = None,
        page_size: int | None = None,
        last: str | None = None,
    ) -> Iterator[Record]:
        """Lazily iterate over every record matching ``filter``.

        Pages are fetched on demand, following the service's cursor, until
        the service reports no further pages or ``limit`` records have
        been yielded. Resuming an interrupted scan means passing the last
        cursor seen back as ``last``.

        Example:
            >>> q = Query().where("age", "gte", 18)
            >>> for user in client.query("users", q, limit=100):
            ...     print(user.key)
        """
        _check_base(base)
        wire_filter = to_wire_filter(filter)
        _check_json(wire_filter, "Query")
        _check_limit(limit, maximum=None)
        _check_limit(page_size, maximum=config.MAX_QUERY_PAGE)
        return self._paginate(base, wire_filter, limit, page_size, last)

    def _paginate(
        self,
        base: str,
        wire_filter: list[dict[str, Any]],
        limit: int | None,
        page_size: int | None,
        cursor: str | None,
    ) -> Iterator[Record]:
        remaining = limit
        while True:
            size = _page_size(page_size, remaining)
            page = self.query_page(base, wire_filter, limit=size, last=cursor)
            for record in page.items:
                yield record
                if remaining is not None:
                    remaining -= 1
                    if remaining == 0:
                        return
            if not page.has_more:
                return
            cursor = _advance(cursor, page)

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.DecodingError as e:
            raise DecodeError(f"{method} {path}: undecodable response body: {e}") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"{method} {path} failed: {e}") from e
        logger.debug("%s %s -> %s", method, path, response.status_code)
        _raise_for_status(response)
        return response


class AsyncDetaClient:
    """Async HTTP client for Deta Base.

    Same interface as DetaClient but uses async/await; ``query`` returns
    an async iterator.
    """

    def __init__(
        self,
        project_key: str | None = None,
        *,
        base_url: str | None = None,
        timeout: float = config.DEFAULT_TIMEOUT,
        retries: int = config.DEFAULT_RETRIES,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        key = config.load_project_key(project_key)
        self.endpoint = config.endpoint_for(key, base_url)
        self._client = httpx.AsyncClient(
            base_url=self.endpoint,
            headers=_headers(key),
            timeout=timeout,
            transport=transport or httpx.AsyncHTTPTransport(retries=retries),
        )

    @classmethod
    def from_env(cls, **kwargs: Any) -> "AsyncDetaClient":
        """Build a client from ``DETA_PROJECT_KEY``."""
        return cls(None, **kwargs)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "AsyncDetaClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"AsyncDetaClient(endpoint={self.endpoint!r})"

    def base(self, name: str) -> "Base":
        """Return a handle bound to one base."""
        return Base(self, name)

    async def get(self, base: str, key: str) -> Record:
        """Fetch a single record asynchronously."""
        response = await self._request("GET", _item_path(base, key))
        return Record.from_response(_decode(response))

    async def put(
        self, base: str, records: Iterable[Record | dict[str, Any]]
    ) -> PutResult:
        """Upsert up to 25 records asynchronously."""
        payload = _put_payload(records)
        response = await self._request("PUT", _items_path(base), json=payload)
        return PutResult.from_response(_decode(response))

    async def insert(self, base: str, record: Record | dict[str, Any]) -> Record:
        """Create a record asynchronously if its key does not exist yet."""
        payload = {"item": _as_record(record).to_wire()}
        response = await self._request("POST", _items_path(base), json=payload)
        return Record.from_response(_decode(response))

    async def update(self, base: str, key: str, patch: Update | dict[str, Any]) -> None:
        await self._request("PATCH", _item_path(base, key), json=_patch_payload(patch))

    async def delete(self, base: str, key: str) -> None:
        try:
            await self._request("DELETE", _item_path(base, key))
        except NotFound:
            logger.debug("Delete of missing key %r in base %r", key, base)

    async def query_page(
        self,
        base: str,
        filter: Any = None,  # noqa: A002
        *,
        limit: int | None = None,
        last: str | None = None,
    ) -> QueryPage:
        payload = _query_payload(filter, limit, last)
        response = await self._request("POST", _query_path(base), json=payload)
        return QueryPage.from_response(_decode(response))

    def query(
        self,
        base: str,
        filter: Any = None,  # noqa: A002
        *,
        limit: int | None = None,
        page_size: int | None = None,
        last: str | None = None,
    ) -> AsyncIterator[Record]:
        """Lazily iterate over matching records with ``async for``."""
        _check_base(base)
        wire_filter = to_wire_filter(filter)
        _check_json(wire_filter, "Query")
        _check_limit(limit, maximum=None)
        _check_limit(page_size, maximum=config.MAX_QUERY_PAGE)
        return self._paginate(base, wire_filter, limit, page_size, last)

    async def _paginate(
        self,
        base: str,
        wire_filter: list[dict[str, Any]],
        limit: int | None,
        page_size: int | None,
        cursor: str | None,
    ) -> AsyncIterator[Record]:
        remaining = limit
        while True:
            size = _page_size(page_size, remaining)
            page = await self.query_page(base, wire_filter, limit=size, last=cursor)
            for record in page.items:
                yield record
                if remaining is not None:
                    remaining -= 1
                    if remaining == 0:
                        return
            if not page.has_more:
                return
            cursor = _advance(cursor, page)

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.DecodingError as e:
            raise DecodeError(f"{method} {path}: undecodable response body: {e}") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"{method} {path} failed: {e}") from e
        logger.debug("%s %s -> %s", method, path, response.status_code)
        _raise_for_status(response)
        return response


class Base:
    """A client bound to one base name.

    Works with both DetaClient and AsyncDetaClient; with the async client
    every method returns an awaitable (``query`` an async iterator).

    Example:
        >>> users = client.base("users")
        >>> users.insert({"key": "user123", "name": "Ann"})
        Record(key='user123', data={'name': 'Ann'})
    """

    def __init__(self, client: DetaClient | AsyncDetaClient, name: str):
        self.client = client
        self.name = _check_base(name)

    def __repr__(self) -> str:
        return f"Base({self.name!r})"

    def get(self, key: str) -> Any:
        return self.client.get(self.name, key)

    def put(self, records: Iterable[Record | dict[str, Any]]) -> Any:
        return self.client.put(self.name, records)

    def insert(self, record: Record | dict[str, Any]) -> Any:
        return self.client.insert(self.name, record)

    def update(self, key: str, patch: Update | dict[str, Any]) -> Any:
        return self.client.update(self.name, key, patch)

    def delete(self, key: str) -> Any:
        return self.client.delete(self.name, key)

    def query(self, filter: Any = None, **kwargs: Any) -> Any:  # noqa: A002
        return self.client.query(self.name, filter, **kwargs)

    def query_page(self, filter: Any = None, **kwargs: Any) -> Any:  # noqa: A002
        return self.client.query_page(self.name, filter, **kwargs)


_DOT_SEGMENTS = frozenset({".", ".."})


def _headers(key: str) -> dict[str, str]:
    return {"X-API-Key": key, "Content-Type": "application/json"}


def _check_base(base: str) -> str:
    if not isinstance(base, str) or not base:
        raise ValidationError("Base name must be a non-empty string")
    if base in _DOT_SEGMENTS:
        raise ValidationError(f"Invalid base name {base!r}")
    return base


def _items_path(base: str) -> str:
    return f"/{quote(_check_base(base), safe='')}/items"


def _item_path(base: str, key: str) -> str:
    key = str(key)
    if not key:
        raise ValidationError("Record key must not be empty")
    # httpx collapses dot segments, which would retarget the request
    if key in _DOT_SEGMENTS:
        raise ValidationError(f"Invalid record key {key!r}")
    return f"{_items_path(base)}/{quote(key, safe='')}"


def _query_path(base: str) -> str:
    return f"/{quote(_check_base(base), safe='')}/query"


def _as_record(record: Record | dict[str, Any]) -> Record:
    if isinstance(record, Record):
        return record
    if isinstance(record, dict):
        return Record(None, record)
    raise ValidationError(f"Expected a Record or dict, got {type(record).__name__}")


def _put_payload(records: Iterable[Record | dict[str, Any]]) -> dict[str, Any]:
    if isinstance(records, (Record, dict)):
        raise ValidationError("put() takes a batch of records; wrap a single record in a list")
    items = [_as_record(r).to_wire() for r in records]
    if not items:
        raise ValidationError("put() needs at least one record")
    if len(items) > config.MAX_PUT_ITEMS:
        raise ValidationError(
            f"Batch of {len(items)} records exceeds the limit of {config.MAX_PUT_ITEMS}"
        )
    return _check_json({"items": items}, "put() batch")


def _patch_payload(patch: Update | dict[str, Any]) -> dict[str, Any]:
    if isinstance(patch, Update):
        return _check_json(patch.to_wire(), "Update")
    if isinstance(patch, dict):
        return _check_json(dict(patch), "Update")
    raise ValidationError(f"Expected an Update or dict, got {type(patch).__name__}")


def _check_json(payload: Any, what: str) -> Any:
    # httpx encodes bodies with allow_nan=False
    try:
        json.dumps(payload, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{what} is not JSON serializable: {e}") from e
    return payload


def _check_limit(limit: int | None, maximum: int | None) -> None:
    if limit is None:
        return
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise ValidationError(f"Limit must be a positive integer, got {limit!r}")
    if maximum is not None and limit > maximum:
        raise ValidationError(f"Limit {limit} exceeds the page maximum of {maximum}")


def _query_payload(filter: Any, limit: int | None, last: str | None) -> dict[str, Any]:  # noqa: A002
    _check_limit(limit, maximum=config.MAX_QUERY_PAGE)
    payload: dict[str, Any] = {}
    wire_filter = to_wire_filter(filter)
    if wire_filter:
        payload["query"] = wire_filter
    if limit is not None:
        payload["limit"] = limit
    if last:
        payload["last"] = last
    return _check_json(payload, "Query")


def _page_size(page_size: int | None, remaining: int | None) -> int | None:
    if remaining is None:
        return page_size
    return min(page_size or config.MAX_QUERY_PAGE, remaining)


def _advance(cursor: str | None, page: QueryPage) -> str:
    # A repeated cursor would page forever.
    if page.last == cursor:
        raise DecodeError(f"Pagination cursor did not advance: {cursor!r}")
    return page.last


def _decode(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as e:
        raise DecodeError(
            f"Invalid JSON response: {e}", status=response.status_code
        ) from e


def _error_details(response: httpx.Response) -> tuple[str, str | None]:
    try:
        body = response.json() if response.content else {}
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    errors = body.get("errors")
    if isinstance(errors, list) and errors:
        message = "; ".join(str(e) for e in errors)
    else:
        message = body.get("message") or response.reason_phrase or "request failed"
    code = body.get("code")
    return f"HTTP {response.status_code}: {message}", code if isinstance(code, str) else None


def _raise_for_status(response: httpx.Response) -> None:
    """Map an HTTP error status to the matching DetaError subclass."""
    status = response.status_code
    if status < 400:
        return
    message, code = _error_details(response)
    if status in (401, 403):
        raise AuthError(message, code, status)
    if status == 404:
        raise NotFound(message, code, status)
    if status == 409:
        raise Conflict(message, code, status)
    if status in (400, 413, 422):
        raise ValidationError(message, code, status)
    if status >= 500:
        logger.warning(
            "Deta Base error %s on %s %s",
            status,
            response.request.method,
            response.request.url.path,
        )
    raise ServiceError(message, code, status)
