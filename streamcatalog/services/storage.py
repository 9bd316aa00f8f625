"""Key/value persistence boundary used by the cache layer.

Stores never raise on ordinary failures; each call returns a
:class:`StorageResult` whose error kind tells a missing key apart from an
unreadable one.
"""
from __future__ import annotations

import abc
import enum
import json
import logging
import sqlite3
from typing import Any, Generic, Optional, TypeVar

import aiosqlite

from streamcatalog.database import init_db, pragma_setup_async

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StorageErrorKind(str, enum.Enum):
    NOT_FOUND = "not_found"
    READ_ERROR = "read_error"
    WRITE_ERROR = "write_error"
    SERIALIZATION_ERROR = "serialization_error"
    UNKNOWN = "unknown"


class StorageError(Exception):
    def __init__(self, kind: StorageErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __repr__(self) -> str:
        return f"StorageError({self.kind.value}: {self.message})"


class StorageResult(Generic[T]):
    __slots__ = ("value", "error")

    def __init__(self, value: Optional[T] = None, error: StorageError | None = None):
        self.value = value
        self.error = error

    @classmethod
    def ok(cls, value: T = None) -> "StorageResult[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, kind: StorageErrorKind, message: str) -> "StorageResult[T]":
        return cls(error=StorageError(kind, message))

    @property
    def is_ok(self) -> bool:
        return self.error is None

    @property
    def is_not_found(self) -> bool:
        return self.error is not None and self.error.kind == StorageErrorKind.NOT_FOUND


class KeyValueStore(abc.ABC):
    """String-keyed store. JSON helpers are built on the string primitives."""

    @abc.abstractmethod
    async def get_string(self, key: str) -> StorageResult[str]:
        ...

    @abc.abstractmethod
    async def set_string(self, key: str, value: str) -> StorageResult[None]:
        ...

    @abc.abstractmethod
    async def remove(self, key: str) -> StorageResult[None]:
        ...

    @abc.abstractmethod
    async def contains_key(self, key: str) -> StorageResult[bool]:
        ...

    async def get_json(self, key: str) -> StorageResult[Any]:
        raw = await self.get_string(key)
        if not raw.is_ok:
            return raw
        try:
            return StorageResult.ok(json.loads(raw.value))
        except (TypeError, ValueError) as e:
            return StorageResult.fail(StorageErrorKind.SERIALIZATION_ERROR, f"{key}: {e}")

    async def set_json(self, key: str, value: Any) -> StorageResult[None]:
        try:
            text = json.dumps(value, ensure_ascii=False, separators=(",", ":"))
        except (TypeError, ValueError) as e:
            return StorageResult.fail(StorageErrorKind.SERIALIZATION_ERROR, f"{key}: {e}")
        return await self.set_string(key, text)


class MemoryStore(KeyValueStore):
    """Process-local store; contents vanish with the process."""

    def __init__(self):
        self._data: dict[str, str] = {}

    async def get_string(self, key: str) -> StorageResult[str]:
        if key not in self._data:
            return StorageResult.fail(StorageErrorKind.NOT_FOUND, key)
        return StorageResult.ok(self._data[key])

    async def set_string(self, key: str, value: str) -> StorageResult[None]:
        self._data[key] = value
        return StorageResult.ok()

    async def remove(self, key: str) -> StorageResult[None]:
        self._data.pop(key, None)
        return StorageResult.ok()

    async def contains_key(self, key: str) -> StorageResult[bool]:
        return StorageResult.ok(key in self._data)


class SqliteStore(KeyValueStore):
    """``kv_store`` table in the application database, accessed through aiosqlite."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        init_db(db_path)

    async def get_string(self, key: str) -> StorageResult[str]:
        try:
            async with aiosqlite.connect(self.db_path) as conn:
                await pragma_setup_async(conn)
                async with conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)) as cursor:
                    row = await cursor.fetchone()
        except sqlite3.Error as e:
            logger.error(f"Storage read failed for '{key}': {e}")
            return StorageResult.fail(StorageErrorKind.READ_ERROR, str(e))
        if row is None:
            return StorageResult.fail(StorageErrorKind.NOT_FOUND, key)
        return StorageResult.ok(row[0])

    async def set_string(self, key: str, value: str) -> StorageResult[None]:
        try:
            async with aiosqlite.connect(self.db_path) as conn:
                await pragma_setup_async(conn)
                await conn.execute(
                    """INSERT INTO kv_store (key, value, updated_at)
                       VALUES (?, ?, strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
                       ON CONFLICT(key) DO UPDATE SET
                           value = excluded.value,
                           updated_at = excluded.updated_at""",
                    (key, value),
                )
                await conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Storage write failed for '{key}': {e}")
            return StorageResult.fail(StorageErrorKind.WRITE_ERROR, str(e))
        return StorageResult.ok()

    async def remove(self, key: str) -> StorageResult[None]:
        try:
            async with aiosqlite.connect(self.db_path) as conn:
                await pragma_setup_async(conn)
                await conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                await conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Storage delete failed for '{key}': {e}")
            return StorageResult.fail(StorageErrorKind.WRITE_ERROR, str(e))
        return StorageResult.ok()

    async def contains_key(self, key: str) -> StorageResult[bool]:
        try:
            async with aiosqlite.connect(self.db_path) as conn:
                await pragma_setup_async(conn)
                async with conn.execute("SELECT 1 FROM kv_store WHERE key = ?", (key,)) as cursor:
                    row = await cursor.fetchone()
        except sqlite3.Error as e:
            logger.error(f"Storage read failed for '{key}': {e}")
            return StorageResult.fail(StorageErrorKind.READ_ERROR, str(e))
        return StorageResult.ok(row is not None)
