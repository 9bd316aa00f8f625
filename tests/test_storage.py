"""Tests for the key/value stores."""

import asyncio
import os

import pytest

from streamcatalog.database import DB_NAME
from streamcatalog.services.storage import MemoryStore, SqliteStore, StorageErrorKind


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return MemoryStore()
    return SqliteStore(os.path.join(str(tmp_path), "nested", DB_NAME))


def test_missing_key_is_not_found(store):
    result = asyncio.run(store.get_string("nope"))
    assert not result.is_ok
    assert result.is_not_found
    assert result.error.kind == StorageErrorKind.NOT_FOUND


def test_string_round_trip_and_overwrite(store):
    async def scenario():
        await store.set_string("k", "one")
        await store.set_string("k", "two")
        return await store.get_string("k")

    result = asyncio.run(scenario())
    assert result.is_ok
    assert result.value == "two"


def test_json_values(store):
    async def scenario():
        await store.set_json("k", {"items": [1, 2], "name": "café"})
        return await store.get_json("k")

    assert asyncio.run(scenario()).value == {"items": [1, 2], "name": "café"}


def test_remove_and_contains(store):
    async def scenario():
        await store.set_string("k", "v")
        before = await store.contains_key("k")
        await store.remove("k")
        after = await store.contains_key("k")
        removed_twice = await store.remove("k")
        return before.value, after.value, removed_twice.is_ok

    assert asyncio.run(scenario()) == (True, False, True)


def test_corrupt_json_is_serialization_error(store):
    async def scenario():
        await store.set_string("k", "{not json")
        return await store.get_json("k")

    result = asyncio.run(scenario())
    assert result.error.kind == StorageErrorKind.SERIALIZATION_ERROR


def test_unserializable_value(store):
    result = asyncio.run(store.set_json("k", {"bad": object()}))
    assert result.error.kind == StorageErrorKind.SERIALIZATION_ERROR


def test_sqlite_persists_across_instances(tmp_path):
    path = os.path.join(str(tmp_path), DB_NAME)
    asyncio.run(SqliteStore(path).set_string("k", "v"))
    assert asyncio.run(SqliteStore(path).get_string("k")).value == "v"
