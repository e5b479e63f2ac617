"""Shared fixtures: an in-memory Deta Base API served through httpx.MockTransport."""

import json
import uuid
from typing import Any

import httpx
import pytest

from detabase import AsyncDetaClient, DetaClient

PROJECT_KEY = "a0abc_secret123"
PREFIX = "/v1/a0abc/"


def _walk(item: dict[str, Any], dotted: str) -> tuple[dict[str, Any], str]:
    *parents, leaf = dotted.split(".")
    for name in parents:
        item = item.setdefault(name, {})
    return item, leaf


def _matches(item: dict[str, Any], field: str, op: str, value: Any) -> bool:
    if field not in item:
        return op in ("ne", "not_contains")
    actual = item[field]
    if op == "eq":
        return actual == value
    if op == "ne":
        return actual != value
    if op == "lt":
        return actual < value
    if op == "gt":
        return actual > value
    if op == "lte":
        return actual <= value
    if op == "gte":
        return actual >= value
    if op == "pfx":
        return isinstance(actual, str) and actual.startswith(value)
    if op == "r":
        return value[0] <= actual <= value[1]
    if op == "contains":
        return value in actual
    if op == "not_contains":
        return value not in actual
    raise AssertionError(f"unknown operator {op}")


class FakeDetaBase:
    """Just enough of the Deta Base HTTP API for the client tests."""

    def __init__(self, key: str = PROJECT_KEY):
        self.key = key
        self.bases: dict[str, dict[str, dict[str, Any]]] = {}
        self.requests: list[httpx.Request] = []

    def seed(self, base: str, *items: dict[str, Any]) -> None:
        store = self.bases.setdefault(base, {})
        for item in items:
            store[item["key"]] = dict(item)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.headers.get("X-API-Key") != self.key:
            return httpx.Response(401, json={"errors": ["Unauthorized"]})

        path = request.url.path
        assert path.startswith(PREFIX), path
        base, _, rest = path[len(PREFIX):].partition("/")
        store = self.bases.setdefault(base, {})
        body = json.loads(request.content) if request.content else None

        if rest == "query" and request.method == "POST":
            return self._query(store, body)
        if rest == "items" and request.method == "PUT":
            return self._put(store, body["items"])
        if rest == "items" and request.method == "POST":
            return self._insert(store, body["item"])
        if rest.startswith("items/"):
            key = rest[len("items/"):]
            if request.method == "GET":
                if key not in store:
                    return httpx.Response(404, json={"key": key})
                return httpx.Response(200, json=store[key])
            if request.method == "DELETE":
                store.pop(key, None)
                return httpx.Response(200, json={"key": key})
            if request.method == "PATCH":
                return self._update(store, key, body)
        return httpx.Response(405, json={"errors": ["Method not allowed"]})

    def _put(self, store: dict[str, Any], items: list[dict[str, Any]]) -> httpx.Response:
        if len(items) > 25:
            return httpx.Response(400, json={"errors": ["More than 25 items"]})
        processed = []
        for item in items:
            item = dict(item)
            item.setdefault("key", uuid.uuid4().hex[:12])
            store[item["key"]] = item
            processed.append(item)
        return httpx.Response(207, json={"processed": {"items": processed}})

    def _insert(self, store: dict[str, Any], item: dict[str, Any]) -> httpx.Response:
        item = dict(item)
        item.setdefault("key", uuid.uuid4().hex[:12])
        if item["key"] in store:
            return httpx.Response(409, json={"errors": ["Key already exists"]})
        store[item["key"]] = item
        return httpx.Response(201, json=item)

    def _update(self, store: dict[str, Any], key: str, ops: dict[str, Any]) -> httpx.Response:
        if key not in store:
            return httpx.Response(404, json={"errors": ["Key not found"]})
        item = store[key]
        for field, value in ops.get("set", {}).items():
            target, leaf = _walk(item, field)
            target[leaf] = value
        for field, value in ops.get("increment", {}).items():
            target, leaf = _walk(item, field)
            target[leaf] = target.get(leaf, 0) + value
        for field, values in ops.get("append", {}).items():
            target, leaf = _walk(item, field)
            target[leaf] = target.get(leaf, []) + values
        for field, values in ops.get("prepend", {}).items():
            target, leaf = _walk(item, field)
            target[leaf] = values + target.get(leaf, [])
        for field in ops.get("delete", []):
            target, leaf = _walk(item, field)
            target.pop(leaf, None)
        return httpx.Response(200, json={"key": key, **ops})

    def _query(self, store: dict[str, Any], body: dict[str, Any]) -> httpx.Response:
        groups = body.get("query") or [{}]
        limit = body.get("limit", 1000)
        last = body.get("last")

        def match(item: dict[str, Any]) -> bool:
            for group in groups:
                ok = True
                for wire_key, value in group.items():
                    field, _, op = wire_key.partition("?")
                    if not _matches(item, field, op or "eq", value):
                        ok = False
                        break
                if ok:
                    return True
            return False

        hits = [store[k] for k in sorted(store) if match(store[k])]
        if last is not None:
            hits = [item for item in hits if item["key"] > last]
        page = hits[:limit]
        paging: dict[str, Any] = {"size": len(page)}
        if len(hits) > limit:
            paging["last"] = page[-1]["key"]
        return httpx.Response(200, json={"paging": paging, "items": page})


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's Deta settings out of the tests."""
    monkeypatch.delenv("DETA_PROJECT_KEY", raising=False)
    monkeypatch.delenv("DETA_BASE_URL", raising=False)


@pytest.fixture
def service():
    return FakeDetaBase()


@pytest.fixture
def client(service):
    c = DetaClient(PROJECT_KEY, transport=httpx.MockTransport(service.handle))
    yield c
    c.close()


@pytest.fixture
async def async_client(service):
    c = AsyncDetaClient(PROJECT_KEY, transport=httpx.MockTransport(service.handle))
    yield c
    await c.close()
