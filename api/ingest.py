"""Ingest seed event JSON into the events collection."""

import json
import logging
from pathlib import Path

import aiosqlite
from pydantic import ValidationError

from documents.base import DocumentError, describe_error
from documents.models import Event, EventFields
from documents.normalize import create_slug

log = logging.getLogger(__name__)

SEED_DIR = Path(__file__).parent.parent / "documents" / "seed"


async def upsert_event(db: aiosqlite.Connection, fields: EventFields) -> Event:
    """Create the event, or update the one already stored under its slug."""
    event = await Event.find_one(db, slug=create_slug(fields.title))
    if event is None:
        event = Event(**fields.model_dump())
    else:
        for name, value in fields.model_dump().items():
            setattr(event, name, value)
    return await event.save(db)


async def ingest_events(db: aiosqlite.Connection, seed_dir: Path = SEED_DIR) -> int:
    """Read JSON files from *seed_dir* and upsert them as events.

    Returns the number of events processed. Invalid entries are logged
    and skipped.
    """
    if not seed_dir.exists():
        return 0

    count = 0
    for json_file in sorted(seed_dir.glob("*.json")):
        with open(json_file, encoding="utf-8") as f:
            data = json.load(f)

        raw_events = data if isinstance(data, list) else [data]

        for raw in raw_events:
            try:
                await upsert_event(db, EventFields(**raw))
            except ValidationError as exc:
                log.warning("Skipping invalid event in %s: %s", json_file.name, describe_error(exc))
                continue
            except DocumentError as exc:
                log.warning("Could not store event from %s: %s", json_file.name, exc)
                continue
            count += 1

    log.info("Ingested %d event(s) from %s", count, seed_dir)
    return count
