"""Document base class: pydantic models stored as JSON rows in SQLite.

Each registered document class owns one table with the columns
``id``, ``doc`` (the JSON body), ``created_at`` and ``updated_at``.
Indexes declared on the class become expression indexes over
``json_extract(doc, '$.<field>')``.
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
import uuid
import weakref
from datetime import datetime, timezone
from typing import Any, ClassVar, NamedTuple, Sequence, TypeVar

import aiosqlite
from pydantic import BaseModel, ConfigDict, PrivateAttr, ValidationError

D = TypeVar("D", bound="Document")

#: Columns stored outside the JSON body.
META_FIELDS = frozenset({"id", "created_at", "updated_at"})

_write_locks: weakref.WeakKeyDictionary[aiosqlite.Connection, asyncio.Lock] = (
    weakref.WeakKeyDictionary()
)


def write_lock(db: aiosqlite.Connection) -> asyncio.Lock:
    """Lock held from a write's first statement through its commit or rollback."""
    lock = _write_locks.get(db)
    if lock is None:
        lock = _write_locks[db] = asyncio.Lock()
    return lock


class DocumentError(Exception):
    """Base class for errors raised by the document layer."""


class DocumentValidationError(DocumentError, ValueError):
    """A document failed validation or normalization before being written."""


class DocumentSaveError(DocumentError):
    """The database rejected a write (e.g. a unique index violation)."""


class Index(NamedTuple):
    field: str
    unique: bool = False


def describe_error(exc: ValueError) -> str:
    """Flatten a ValueError (or pydantic ValidationError) into one message."""
    if isinstance(exc, ValidationError):
        messages = []
        for err in exc.errors():
            cause = err.get("ctx", {}).get("error")
            messages.append(str(cause) if cause else err["msg"])
        return "; ".join(messages)
    return str(exc)


class Document(BaseModel):
    """A persisted document with pre-save hooks and change tracking."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    #: Table name, e.g. "events".
    collection_name: ClassVar[str] = ""

    #: Indexes created alongside the table.
    indexes: ClassVar[tuple[Index, ...]] = ()

    id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    _snapshot: dict[str, Any] = PrivateAttr(default_factory=dict)

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    @classmethod
    def body_fields(cls) -> set[str]:
        return set(cls.model_fields) - META_FIELDS

    @classmethod
    def field_expr(cls, field: str) -> str:
        """SQL expression selecting *field*; unknown names are rejected."""
        if field in META_FIELDS:
            return field
        if field not in cls.body_fields():
            raise ValueError(f"Unknown {cls.__name__} field: {field!r}")
        return f"json_extract(doc, '$.{field}')"

    @classmethod
    def schema_statements(cls) -> list[str]:
        table = cls.collection_name
        statements = [
            f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id TEXT PRIMARY KEY,
                doc TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """,
            f"CREATE INDEX IF NOT EXISTS idx_{table}_created_at ON {table}(created_at)",
        ]
        for index in cls.indexes:
            unique = "UNIQUE " if index.unique else ""
            statements.append(
                f"CREATE {unique}INDEX IF NOT EXISTS idx_{table}_{index.field} "
                f"ON {table}({cls.field_expr(index.field)})"
            )
        return statements

    # ------------------------------------------------------------------
    # Change tracking
    # ------------------------------------------------------------------

    @property
    def is_new(self) -> bool:
        return self.id is None

    def is_modified(self, field: str) -> bool:
        """True if *field* differs from its last persisted value."""
        if self.is_new:
            return True
        return getattr(self, field) != self._snapshot.get(field)

    def _take_snapshot(self) -> None:
        self._snapshot = self.model_dump(include=self.body_fields())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def pre_save(self, db: aiosqlite.Connection) -> None:
        """Hook run before every write. Raise ValueError to reject the save."""

    async def save(self: D, db: aiosqlite.Connection) -> D:
        try:
            await self.pre_save(db)
        except DocumentValidationError:
            raise
        except ValueError as exc:
            raise DocumentValidationError(describe_error(exc)) from exc

        table = self.collection_name
        now = datetime.now(timezone.utc)
        body = json.dumps(self.model_dump(mode="json", include=self.body_fields()))
        doc_id = self.id or uuid.uuid4().hex

        # The connection is shared, so a rollback must only ever undo this write
        async with write_lock(db):
            try:
                if self.is_new:
                    await db.execute(
                        f"INSERT INTO {table} (id, doc, created_at, updated_at) "
                        "VALUES (?, ?, ?, ?)",
                        (doc_id, body, now.isoformat(), now.isoformat()),
                    )
                else:
                    cursor = await db.execute(
                        f"UPDATE {table} SET doc = ?, updated_at = ? WHERE id = ?",
                        (body, now.isoformat(), doc_id),
                    )
                    if cursor.rowcount == 0:
                        raise DocumentSaveError(
                            f"{type(self).__name__} {doc_id} no longer exists"
                        )
                await db.commit()
            except sqlite3.Error as exc:
                await db.rollback()
                raise DocumentSaveError(
                    f"Could not save {type(self).__name__}: {exc}"
                ) from exc

        if self.is_new:
            self.id = doc_id
            self.created_at = now
        self.updated_at = now
        self._take_snapshot()
        return self

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @classmethod
    def _from_row(cls: type[D], row: aiosqlite.Row) -> D:
        data = json.loads(row["doc"])
        doc = cls.model_validate(
            {
                **data,
                "id": row["id"],
                "created_at": row["created_at"],
                "updated_at": row["updated_at"],
            }
        )
        doc._take_snapshot()
        return doc

    @classmethod
    def _where(
        cls, where: str, params: Sequence[Any], filters: dict[str, Any]
    ) -> tuple[str, list[Any]]:
        conditions = [f"{cls.field_expr(name)} = ?" for name in filters]
        if where:
            conditions.append(f"({where})")
        clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        return clause, [*filters.values(), *params]

    @classmethod
    def _order(cls, order_by: Sequence[str]) -> str:
        terms = []
        for name in order_by:
            direction = "DESC" if name.startswith("-") else "ASC"
            terms.append(f"{cls.field_expr(name.lstrip('-'))} {direction}")
        return f"ORDER BY {', '.join(terms)}" if terms else ""

    @classmethod
    async def find(
        cls: type[D],
        db: aiosqlite.Connection,
        *,
        where: str = "",
        params: Sequence[Any] = (),
        order_by: Sequence[str] = ("-created_at",),
        limit: int | None = None,
        offset: int = 0,
        **filters: Any,
    ) -> list[D]:
        """Return documents matching equality *filters* and an optional raw *where*."""
        clause, values = cls._where(where, params, filters)
        sql = f"SELECT * FROM {cls.collection_name} {clause} {cls._order(order_by)}"
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            values += [limit, offset]
        cursor = await db.execute(sql, values)
        rows = await cursor.fetchall()
        return [cls._from_row(row) for row in rows]

    @classmethod
    async def find_one(
        cls: type[D], db: aiosqlite.Connection, **filters: Any
    ) -> D | None:
        found = await cls.find(db, limit=1, **filters)
        return found[0] if found else None

    @classmethod
    async def get(cls: type[D], db: aiosqlite.Connection, doc_id: str) -> D | None:
        return await cls.find_one(db, id=doc_id)

    @classmethod
    async def count(
        cls,
        db: aiosqlite.Connection,
        *,
        where: str = "",
        params: Sequence[Any] = (),
        **filters: Any,
    ) -> int:
        clause, values = cls._where(where, params, filters)
        cursor = await db.execute(
            f"SELECT COUNT(*) FROM {cls.collection_name} {clause}", values
        )
        return (await cursor.fetchone())[0]

    @classmethod
    async def exists(cls, db: aiosqlite.Connection, **filters: Any) -> bool:
        clause, values = cls._where("", (), filters)
        cursor = await db.execute(
            f"SELECT 1 FROM {cls.collection_name} {clause} LIMIT 1", values
        )
        return await cursor.fetchone() is not None


# ------------------------------------------------------------------
# Registry
# ------------------------------------------------------------------

_registry: dict[str, type[Document]] = {}


def register(cls: type[D]) -> type[D]:
    """Class decorator that registers a document class by its collection."""
    if not cls.collection_name:
        raise ValueError(f"{cls.__name__} must set 'collection_name'")
    _registry[cls.collection_name] = cls
    return cls


def get_documents() -> dict[str, type[Document]]:
    """Return a copy of the document registry."""
    return dict(_registry)
