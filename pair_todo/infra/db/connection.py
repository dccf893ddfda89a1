# pair_todo/infra/db/connection.py
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Sequence

import aiosqlite


class Database:
    """
    Async SQLite helper:
    - opens a new connection per operation (simple + safe)
    - sets row_factory to aiosqlite.Row
    - enables WAL + foreign keys
    - transaction() gives one connection with explicit BEGIN/COMMIT/ROLLBACK
    """

    placeholder = "?"

    def __init__(self, path: str, busy_timeout_s: float = 30.0) -> None:
        self._path = path
        self._timeout = busy_timeout_s

    @property
    def path(self) -> str:
        return self._path

    async def _connect(self) -> aiosqlite.Connection:
        # isolation_level=None: no implicit BEGIN, transactions are explicit
        db = await aiosqlite.connect(self._path, timeout=self._timeout, isolation_level=None)
        db.row_factory = aiosqlite.Row
        await db.execute("PRAGMA foreign_keys=ON;")
        return db

    async def executescript(self, sql: str) -> None:
        async with aiosqlite.connect(self._path, timeout=self._timeout) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("PRAGMA journal_mode=WAL;")
            await db.execute("PRAGMA foreign_keys=ON;")
            await db.executescript(sql)
            await db.commit()

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> None:
        async with aiosqlite.connect(self._path, timeout=self._timeout) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("PRAGMA foreign_keys=ON;")
            await db.execute(sql, params)
            await db.commit()

    async def fetchone(self, sql: str, params: Sequence[Any] = ()) -> Optional[aiosqlite.Row]:
        async with aiosqlite.connect(self._path, timeout=self._timeout) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("PRAGMA foreign_keys=ON;")
            cur = await db.execute(sql, params)
            return await cur.fetchone()

    async def fetchall(self, sql: str, params: Sequence[Any] = ()) -> list[aiosqlite.Row]:
        async with aiosqlite.connect(self._path, timeout=self._timeout) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("PRAGMA foreign_keys=ON;")
            cur = await db.execute(sql, params)
            return list(await cur.fetchall())

    @asynccontextmanager
    async def transaction(self, immediate: bool = True) -> AsyncIterator[aiosqlite.Connection]:
        """
        BEGIN IMMEDIATE takes the write lock up front, so a read-check-write
        sequence cannot interleave with another writer.
        """
        db = await self._connect()
        try:
            await db.execute("BEGIN IMMEDIATE;" if immediate else "BEGIN;")
            try:
                yield db
            except BaseException:
                await db.execute("ROLLBACK;")
                raise
            await db.execute("COMMIT;")
        finally:
            await db.close()
