"""Tests for the asyncio Deta Base client."""

import json

import httpx
import pytest

from detabase import (
    AsyncDetaClient,
    Conflict,
    NetworkError,
    NotFound,
    Query,
    Record,
    Update,
    ValidationError,
)

from .conftest import PROJECT_KEY


async def test_get_existing_record(async_client, service):
    service.seed("my_base", {"key": "user123", "name": "Ann"})

    record = await async_client.get("my_base", "user123")

    assert record == Record("user123", {"name": "Ann"})


async def test_get_missing_raises_not_found(async_client):
    with pytest.raises(NotFound):
        await async_client.get("my_base", "user123")


async def test_insert_conflict_keeps_existing(async_client, service):
    await async_client.insert("users", {"key": "u", "name": "Ann"})

    with pytest.raises(Conflict):
        await async_client.insert("users", {"key": "u", "name": "Bob"})
    assert (await async_client.get("users", "u")).get_str("name") == "Ann"


async def test_put_oversized_batch(async_client, service):
    with pytest.raises(ValidationError):
        await async_client.put("users", [{"key": str(i)} for i in range(26)])
    assert service.requests == []


async def test_update_and_delete(async_client, service):
    service.seed("users", {"key": "u", "n": 1})

    await async_client.update("users", "u", Update().increment("n", 4))
    assert service.bases["users"]["u"]["n"] == 5

    await async_client.delete("users", "u")
    await async_client.delete("users", "u")
    assert service.bases["users"] == {}


async def test_query_pages_lazily(async_client, service):
    service.seed("people", *({"key": f"p{i:02d}", "age": i} for i in range(7)))

    keys = [r.key async for r in async_client.query("people", page_size=3)]

    assert keys == [f"p{i:02d}" for i in range(7)]
    assert [json.loads(r.content).get("last") for r in service.requests] == [
        None,
        "p02",
        "p05",
    ]


async def test_query_filter_and_limit(async_client, service):
    service.seed("people", *({"key": f"p{i:02d}", "age": i} for i in range(7)))

    records = [
        r async for r in async_client.query("people", Query().where("age", "gte", 2), limit=3)
    ]

    assert [r.get_int("age") for r in records] == [2, 3, 4]


async def test_base_handle(async_client):
    users = async_client.base("users")

    await users.put([{"key": "a"}, {"key": "b"}])
    page = await users.query_page()

    assert [r.key for r in page.items] == ["a", "b"]
    assert not page.has_more


async def test_transport_failure_raises_network_error():
    def handler(request):
        raise httpx.ConnectError("dns failure", request=request)

    async with AsyncDetaClient(PROJECT_KEY, transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(NetworkError):
            await client.get("users", "u")


async def test_query_rejects_bad_page_size_eagerly(async_client, service):
    with pytest.raises(ValidationError):
        async_client.query("people", page_size=5000)
    assert service.requests == []


async def test_update_missing_key_raises_not_found(async_client):
    with pytest.raises(NotFound):
        await async_client.update("users", "nope", Update().set("a", 1))


async def test_unserializable_update_never_sent(async_client, service):
    with pytest.raises(ValidationError):
        await async_client.update("users", "u", Update().set("when", object()))
    assert service.requests == []
