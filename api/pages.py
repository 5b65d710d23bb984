"""Server-rendered pages that read from the JSON API over HTTP."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, AsyncIterator
from urllib.parse import quote

import httpx
from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from .config import get_settings

log = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"
FEATURED_LIMIT = 12

router = APIRouter()
templates = Jinja2Templates(directory=TEMPLATES_DIR)


async def get_http_client() -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(
        base_url=get_settings().base_url, timeout=10.0
    ) as client:
        yield client


async def fetch_event(client: httpx.AsyncClient, slug: str) -> dict[str, Any] | None:
    """Fetch one event from ``/api/events/{slug}``.

    Returns None for anything a visitor should see as "not found": a
    transport error, any non-OK status, a body that is not JSON, or a
    payload without an ``event`` object carrying a description. A 404 is
    expected and not logged; every other failure is.
    """
    try:
        resp = await client.get(f"/api/events/{quote(slug, safe='')}")
    except httpx.HTTPError as exc:
        log.error("Error fetching event %r: %s", slug, exc)
        return None

    if resp.status_code == 404:
        return None
    if not resp.is_success:
        log.error(
            "Failed to fetch event %r: %s %s",
            slug,
            resp.status_code,
            resp.reason_phrase,
        )
        return None

    try:
        data = resp.json()
    except ValueError as exc:
        log.error("Error parsing event response JSON for %r: %s", slug, exc)
        return None

    event = data.get("event") if isinstance(data, dict) else None
    if not isinstance(event, dict):
        log.error("Invalid event payload for %r: %r", slug, data)
        return None

    if not event.get("description"):
        log.error("Event %r missing required 'description' field.", slug)
        return None

    return event


async def _get_json(client: httpx.AsyncClient, url: str, **params: Any) -> Any:
    try:
        resp = await client.get(url, params=params or None)
        resp.raise_for_status()
        return resp.json()
    except (httpx.HTTPError, ValueError) as exc:
        log.error("Error fetching %s: %s", url, exc)
        return None


async def fetch_booking_count(client: httpx.AsyncClient, slug: str) -> int:
    data = await _get_json(client, f"/api/events/{quote(slug, safe='')}/bookings")
    if isinstance(data, dict) and isinstance(data.get("bookings"), int):
        return data["bookings"]
    return 0


async def fetch_similar_events(
    client: httpx.AsyncClient, slug: str
) -> list[dict[str, Any]]:
    data = await _get_json(client, f"/api/events/{quote(slug, safe='')}/similar")
    if isinstance(data, dict) and isinstance(data.get("events"), list):
        return data["events"]
    return []


async def fetch_featured_events(client: httpx.AsyncClient) -> list[dict[str, Any]]:
    data = await _get_json(client, "/api/events", per_page=FEATURED_LIMIT)
    if isinstance(data, dict) and isinstance(data.get("events"), list):
        return data["events"]
    return []


async def create_booking(
    client: httpx.AsyncClient, event_id: str, email: str
) -> str | None:
    """POST a booking to the API. Returns an error message, or None on success."""
    try:
        resp = await client.post(
            "/api/bookings", json={"event_id": event_id, "email": email}
        )
    except httpx.HTTPError as exc:
        log.error("Error creating booking for event %s: %s", event_id, exc)
        return "We couldn't save your booking right now. Please try again later."

    if resp.is_success:
        return None
    if resp.status_code == 422:
        return "Invalid email address provided."
    if resp.status_code == 400:
        try:
            data = resp.json()
        except ValueError:
            data = None
        detail = data.get("detail") if isinstance(data, dict) else None
        if isinstance(detail, str):
            return detail

    log.error(
        "Failed to create booking for event %s: %s %s",
        event_id,
        resp.status_code,
        resp.reason_phrase,
    )
    return "We couldn't save your booking right now. Please try again later."


@router.get("/", response_class=HTMLResponse)
async def home(
    request: Request, client: httpx.AsyncClient = Depends(get_http_client)
):
    events = await fetch_featured_events(client)
    return templates.TemplateResponse(request, "index.html", {"events": events})


@router.get("/events/{slug}", response_class=HTMLResponse)
async def event_details(
    request: Request,
    slug: str,
    client: httpx.AsyncClient = Depends(get_http_client),
):
    event = await fetch_event(client, slug)
    if event is None:
        return _not_found(request, slug)
    return await _render_event(request, client, slug, event)


@router.post("/events/{slug}/book", response_class=HTMLResponse)
async def book_event(
    request: Request,
    slug: str,
    email: str = Form(""),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    """Handle the booking form on the event page."""
    event = await fetch_event(client, slug)
    if event is None:
        return _not_found(request, slug)

    error = await create_booking(client, event.get("id", ""), email)
    if error:
        return await _render_event(
            request, client, slug, event, booking_error=error, status_code=400
        )
    return await _render_event(
        request, client, slug, event, booking_message="Thank you for signing up!"
    )


def _not_found(request: Request, slug: str):
    return templates.TemplateResponse(
        request, "not_found.html", {"slug": slug}, status_code=404
    )


async def _render_event(
    request: Request,
    client: httpx.AsyncClient,
    slug: str,
    event: dict[str, Any],
    booking_message: str | None = None,
    booking_error: str | None = None,
    status_code: int = 200,
):
    return templates.TemplateResponse(
        request,
        "event.html",
        {
            "slug": slug,
            "event": event,
            "bookings": await fetch_booking_count(client, slug),
            "similar_events": await fetch_similar_events(client, slug),
            "booking_message": booking_message,
            "booking_error": booking_error,
        },
        status_code=status_code,
    )
