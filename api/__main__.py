"""CLI entry-point: python -m api [init|seed|events|book]."""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from pydantic import ValidationError

from documents.base import DocumentError, describe_error
from documents.models import Booking, Event

from .config import get_settings, setup_logging
from .database import close_database, connect_to_database
from .ingest import SEED_DIR, ingest_events

app = typer.Typer(help="Dev Events Hub – database CLI")


@app.callback()
def main() -> None:
    setup_logging(get_settings().log_level)


async def _init() -> None:
    try:
        await connect_to_database()
    finally:
        await close_database()


async def _seed(seed_dir: Path) -> int:
    try:
        return await ingest_events(await connect_to_database(), seed_dir)
    finally:
        await close_database()


async def _events() -> list[Event]:
    try:
        return await Event.find(await connect_to_database(), order_by=("date", "time"))
    finally:
        await close_database()


async def _book(slug: str, email: str) -> Booking:
    try:
        db = await connect_to_database()
        event = await Event.find_one(db, slug=slug)
        if event is None:
            raise typer.BadParameter(f"No event with slug {slug!r}", param_hint="SLUG")
        return await Booking(event_id=event.id, email=email).save(db)
    finally:
        await close_database()


@app.command()
def init() -> None:
    """Create the collections and indexes."""
    asyncio.run(_init())
    typer.echo("Database ready.")


@app.command()
def seed(
    seed_dir: Path = typer.Argument(SEED_DIR, help="Directory of event JSON files"),
) -> None:
    """Upsert events from JSON files."""
    count = asyncio.run(_seed(seed_dir))
    typer.echo(f"Ingested {count} event(s).")


@app.command(name="events")
def list_events() -> None:
    """List stored events."""
    events = asyncio.run(_events())
    if not events:
        typer.echo("No events stored.")
        raise typer.Exit()
    for event in events:
        typer.echo(f"  {event.date} {event.time}  {event.slug}  ({event.location})")


@app.command()
def book(
    slug: str = typer.Argument(help="Slug of the event to book"),
    email: str = typer.Argument(help="Attendee email address"),
) -> None:
    """Book a spot on an event."""
    try:
        booking = asyncio.run(_book(slug, email))
    except ValidationError as exc:
        typer.echo(describe_error(exc), err=True)
        raise typer.Exit(1)
    except DocumentError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1)
    typer.echo(f"Booked {booking.email} on {slug} ({booking.id}).")


if __name__ == "__main__":
    app()
