"""Event and Booking documents."""

from __future__ import annotations

import aiosqlite
from pydantic import BaseModel, ValidationInfo, field_validator

from documents.base import Document, DocumentValidationError, Index, register
from documents.normalize import (
    create_slug,
    is_valid_email,
    normalize_date,
    normalize_time,
)

REQUIRED_FIELDS = (
    "title",
    "description",
    "overview",
    "image",
    "venue",
    "location",
    "date",
    "time",
    "mode",
    "audience",
    "organizer",
)


class EventFields(BaseModel):
    """User-supplied event fields, shared by the API payload and the document."""

    title: str
    description: str
    overview: str
    image: str
    venue: str
    location: str
    date: str  # normalized to YYYY-MM-DD on save
    time: str  # normalized to HH:mm on save
    mode: str
    audience: str
    agenda: list[str]
    organizer: str
    tags: list[str]

    @field_validator(*REQUIRED_FIELDS)
    @classmethod
    def _required_string(cls, value: str, info: ValidationInfo) -> str:
        value = value.strip()
        if not value:
            raise ValueError(
                f'Field "{info.field_name}" is required and cannot be empty.'
            )
        return value

    @field_validator("agenda", "tags")
    @classmethod
    def _required_string_list(cls, value: list[str]) -> list[str]:
        items = [item.strip() for item in value]
        if not items or not all(items):
            raise ValueError("Array must contain at least one non-empty string.")
        return items


@register
class Event(Document, EventFields):
    collection_name = "events"
    indexes = (Index("slug", unique=True),)

    slug: str | None = None

    async def pre_save(self, db: aiosqlite.Connection) -> None:
        for field in REQUIRED_FIELDS:
            if not getattr(self, field).strip():
                raise DocumentValidationError(
                    f'Field "{field}" is required and cannot be empty.'
                )

        if not self.slug or self.is_modified("title"):
            slug = create_slug(self.title)
            if not slug:
                raise DocumentValidationError(
                    "Event title must contain at least one letter or digit."
                )
            self.slug = slug

        if self.is_modified("date"):
            self.date = normalize_date(self.date)

        if self.is_modified("time"):
            self.time = normalize_time(self.time)

    @classmethod
    async def find_similar(
        cls, db: aiosqlite.Connection, slug: str, limit: int = 6
    ) -> list[Event]:
        """Other events sharing at least one tag with the event at *slug*."""
        event = await cls.find_one(db, slug=slug)
        if event is None:
            return []
        placeholders = ", ".join("?" for _ in event.tags)
        return await cls.find(
            db,
            where=(
                f"{cls.field_expr('slug')} != ? AND EXISTS ("
                "SELECT 1 FROM json_each(doc, '$.tags') "
                f"WHERE json_each.value IN ({placeholders}))"
            ),
            params=[slug, *event.tags],
            limit=limit,
        )


class BookingFields(BaseModel):
    event_id: str
    email: str

    @field_validator("email")
    @classmethod
    def _email(cls, value: str) -> str:
        value = value.strip().lower()
        if not is_valid_email(value):
            raise ValueError("Invalid email address provided.")
        return value


@register
class Booking(Document, BookingFields):
    collection_name = "bookings"
    indexes = (Index("event_id"),)

    async def pre_save(self, db: aiosqlite.Connection) -> None:
        if not await Event.exists(db, id=self.event_id):
            raise DocumentValidationError(
                "Cannot create booking: referenced event does not exist."
            )
