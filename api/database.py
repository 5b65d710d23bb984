"""Database setup and connection management for the Dev Events Hub."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

import aiosqlite

import documents.models  # noqa: F401  (registers Event and Booking)
from documents.base import get_documents

from .config import get_settings

log = logging.getLogger(__name__)


def database_path(uri: str) -> str:
    """Map 'sqlite:///events.db', 'sqlite://:memory:' or a bare path to a path."""
    for prefix in ("sqlite:///", "sqlite://"):
        if uri.startswith(prefix):
            return uri[len(prefix):]
    if "://" in uri:
        raise ValueError(f"Unsupported database URI: {uri!r}")
    return uri


async def init_db(db: aiosqlite.Connection) -> None:
    """Create every registered collection and its indexes."""
    for document in get_documents().values():
        for statement in document.schema_statements():
            await db.execute(statement)
    await db.commit()


async def open_connection(uri: str) -> aiosqlite.Connection:
    """Open a connection with row factory enabled and the schema in place."""
    path = database_path(uri)
    db = await aiosqlite.connect(path)
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA journal_mode=WAL")
    await db.execute("PRAGMA foreign_keys=ON")
    await init_db(db)
    log.info("Connected to database at %s", path)
    return db


class ConnectionCache:
    """Holds at most one live connection and at most one pending connect.

    Callers arriving while a connect is in flight await the same task
    instead of opening a connection of their own.
    """

    def __init__(
        self, connect: Callable[[], Awaitable[aiosqlite.Connection]]
    ) -> None:
        self._connect = connect
        self.conn: aiosqlite.Connection | None = None
        self._pending: asyncio.Task[aiosqlite.Connection] | None = None

    async def get(self) -> aiosqlite.Connection:
        if self.conn is not None:
            return self.conn

        if self._pending is None:
            self._pending = asyncio.ensure_future(self._connect())
            self._pending.add_done_callback(self._connect_done)

        pending = self._pending
        # Shielded so one cancelled caller does not cancel the others
        conn = await asyncio.shield(pending)

        if self._pending is not pending:
            # close() ran while we waited and has closed this connection
            return await self.get()

        self.conn = conn
        return conn

    def _connect_done(self, task: asyncio.Task[aiosqlite.Connection]) -> None:
        if task.cancelled() or task.exception() is not None:
            # Forget the failed attempt so the next caller retries
            if self._pending is task:
                self._pending = None

    async def close(self) -> None:
        pending, self._pending = self._pending, None
        conn, self.conn = self.conn, None
        if conn is None and pending is not None:
            try:
                conn = await asyncio.shield(pending)
            except Exception:
                conn = None
        if conn is not None:
            await conn.close()


def _connect_configured() -> Awaitable[aiosqlite.Connection]:
    return open_connection(get_settings().database_uri)


_cache = ConnectionCache(_connect_configured)


async def connect_to_database() -> aiosqlite.Connection:
    """Return the process-wide connection, opening it on first use."""
    return await _cache.get()


async def close_database() -> None:
    await _cache.close()


async def get_db() -> aiosqlite.Connection:
    """FastAPI dependency returning the shared connection."""
    return await connect_to_database()
