"""Dev Events Hub API."""

import logging
from contextlib import asynccontextmanager
from datetime import date

import aiosqlite
from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from documents.base import DocumentSaveError, DocumentValidationError
from documents.models import Booking, BookingFields, Event, EventFields

from . import pages
from .config import get_settings, setup_logging
from .database import close_database, connect_to_database, get_db
from .ingest import ingest_events

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings.log_level)
    db = await connect_to_database()
    if settings.seed_on_startup:
        await ingest_events(db)
    yield
    await close_database()


app = FastAPI(title="Dev Events Hub", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(pages.router)


async def get_event_or_404(db: aiosqlite.Connection, slug: str) -> Event:
    event = await Event.find_one(db, slug=slug)
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/api/events")
async def list_events(
    q: str | None = None,
    tag: str | None = None,
    mode: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: aiosqlite.Connection = Depends(get_db),
):
    """List events with pagination and filtering."""
    conditions: list[str] = []
    params: list = []

    if q:
        conditions.append(
            f"({Event.field_expr('title')} LIKE ? "
            f"OR {Event.field_expr('description')} LIKE ?)"
        )
        params.extend([f"%{q}%", f"%{q}%"])
    if tag:
        conditions.append(
            "EXISTS (SELECT 1 FROM json_each(doc, '$.tags') "
            "WHERE json_each.value = ?)"
        )
        params.append(tag)
    if mode:
        conditions.append(f"{Event.field_expr('mode')} = ?")
        params.append(mode)
    if date_from:
        conditions.append(f"{Event.field_expr('date')} >= ?")
        params.append(date_from.isoformat())
    if date_to:
        conditions.append(f"{Event.field_expr('date')} <= ?")
        params.append(date_to.isoformat())

    where = " AND ".join(conditions)
    total = await Event.count(db, where=where, params=params)
    events = await Event.find(
        db,
        where=where,
        params=params,
        order_by=("date", "time"),
        limit=per_page,
        offset=(page - 1) * per_page,
    )

    return {
        "events": [event.model_dump(mode="json") for event in events],
        "total": total,
        "page": page,
        "per_page": per_page,
        "pages": max(1, (total + per_page - 1) // per_page),
    }


@app.post("/api/events", status_code=201)
async def create_event(
    payload: EventFields, db: aiosqlite.Connection = Depends(get_db)
):
    """Create an event; its slug is derived from the title."""
    event = Event(**payload.model_dump())
    try:
        await event.save(db)
    except DocumentValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except DocumentSaveError as exc:
        log.warning("Event creation failed: %s", exc)
        raise HTTPException(status_code=409, detail="Event could not be saved")
    return {
        "message": "Event created successfully",
        "event": event.model_dump(mode="json"),
    }


@app.get("/api/events/{slug}")
async def get_event(slug: str, db: aiosqlite.Connection = Depends(get_db)):
    """Get a single event by slug."""
    event = await get_event_or_404(db, slug)
    return {"event": event.model_dump(mode="json")}


@app.get("/api/events/{slug}/similar")
async def similar_events(
    slug: str,
    limit: int = Query(6, ge=1, le=24),
    db: aiosqlite.Connection = Depends(get_db),
):
    """Other events sharing a tag with this one."""
    await get_event_or_404(db, slug)
    events = await Event.find_similar(db, slug, limit=limit)
    return {"events": [event.model_dump(mode="json") for event in events]}


@app.get("/api/events/{slug}/bookings")
async def booking_count(slug: str, db: aiosqlite.Connection = Depends(get_db)):
    """Number of bookings made for this event."""
    event = await get_event_or_404(db, slug)
    return {"bookings": await Booking.count(db, event_id=event.id)}


@app.post("/api/bookings", status_code=201)
async def create_booking(
    payload: BookingFields, db: aiosqlite.Connection = Depends(get_db)
):
    """Book a spot on an existing event."""
    booking = Booking(**payload.model_dump())
    try:
        await booking.save(db)
    except DocumentValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except DocumentSaveError as exc:
        log.warning("Booking creation failed: %s", exc)
        raise HTTPException(status_code=409, detail="Booking could not be saved")
    return {
        "message": "Booking created successfully",
        "booking": booking.model_dump(mode="json"),
    }


@app.get("/api/tags")
async def list_tags(db: aiosqlite.Connection = Depends(get_db)):
    """List all event tags with counts."""
    cursor = await db.execute(
        "SELECT json_each.value AS tag, COUNT(*) AS count "
        "FROM events, json_each(events.doc, '$.tags') "
        "GROUP BY tag ORDER BY count DESC, tag ASC"
    )
    rows = await cursor.fetchall()
    return [{"tag": row["tag"], "count": row["count"]} for row in rows]


@app.get("/api/stats")
async def get_stats(db: aiosqlite.Connection = Depends(get_db)):
    """Get aggregate statistics about events and bookings."""
    total_events = await Event.count(db)
    total_bookings = await Booking.count(db)
    upcoming = await Event.count(
        db,
        where=f"{Event.field_expr('date')} >= ?",
        params=[date.today().isoformat()],
    )

    cursor = await db.execute(
        "SELECT COUNT(DISTINCT json_each.value) "
        "FROM events, json_each(events.doc, '$.tags')"
    )
    tags = (await cursor.fetchone())[0]

    return {
        "total_events": total_events,
        "total_bookings": total_bookings,
        "upcoming_events": upcoming,
        "total_tags": tags,
    }
