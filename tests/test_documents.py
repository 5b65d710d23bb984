import asyncio

import pytest
from pydantic import ValidationError

from documents.base import DocumentSaveError, DocumentValidationError, get_documents
from documents.models import Booking, Event


def test_documents_are_registered():
    registry = get_documents()
    assert registry["events"] is Event
    assert registry["bookings"] is Booking


def test_unknown_fields_are_rejected(event_data):
    with pytest.raises(ValidationError):
        Event(**event_data, ticket_price="10")


async def test_save_normalizes_and_derives_slug(db, event_data):
    event = await Event(**event_data).save(db)

    assert event.id
    assert event.slug == "cloud-next-2026"
    assert event.date == "2026-04-22"
    assert event.time == "09:00"
    assert event.created_at is not None
    assert event.updated_at == event.created_at

    stored = await Event.find_one(db, slug="cloud-next-2026")
    assert stored is not None
    assert stored.id == event.id
    assert stored.agenda == event_data["agenda"]


async def test_supplied_slug_is_replaced_on_create(db, event_data):
    event = await Event(**event_data, slug="whatever-i-like").save(db)
    assert event.slug == "cloud-next-2026"


async def test_resave_without_title_change_keeps_slug(db, event_data):
    event = await Event(**event_data).save(db)
    event.slug = "custom-slug"
    event.description = "Updated description."
    await event.save(db)

    reloaded = await Event.get(db, event.id)
    assert reloaded.slug == "custom-slug"
    assert reloaded.description == "Updated description."


async def test_title_change_regenerates_slug(db, event_data):
    event = await Event(**event_data).save(db)
    event.title = "Cloud Next: Tokyo Edition"
    await event.save(db)

    assert event.slug == "cloud-next-tokyo-edition"
    assert await Event.find_one(db, slug="cloud-next-2026") is None


async def test_date_and_time_renormalized_only_when_changed(db, event_data):
    event = await Event(**event_data).save(db)
    assert not event.is_modified("date")

    event.date = "March 5, 2027"
    event.time = "7:30"
    assert event.is_modified("date")
    await event.save(db)

    assert event.date == "2027-03-05"
    assert event.time == "07:30"


async def test_invalid_time_rejected_on_save(db, event_data):
    event = await Event(**event_data).save(db)
    event.time = "24:00"
    with pytest.raises(DocumentValidationError, match="Invalid event time range"):
        await event.save(db)


async def test_invalid_date_rejected_on_save(db, event_data):
    event_data["date"] = "not-a-date"
    with pytest.raises(DocumentValidationError, match="Invalid event date provided"):
        await Event(**event_data).save(db)
    assert await Event.count(db) == 0


def test_blank_required_field_rejected(event_data):
    event_data["venue"] = "   "
    with pytest.raises(ValidationError, match='Field "venue" is required'):
        Event(**event_data)


def test_required_fields_are_trimmed(event_data):
    event_data["organizer"] = "  Google Cloud  "
    assert Event(**event_data).organizer == "Google Cloud"


@pytest.mark.parametrize("field", ["agenda", "tags"])
@pytest.mark.parametrize("value", [[], ["ok", "  "]])
def test_string_lists_must_be_non_empty(event_data, field, value):
    event_data[field] = value
    with pytest.raises(ValidationError, match="at least one non-empty string"):
        Event(**event_data)


async def test_title_without_letters_or_digits_rejected(db, event_data):
    event_data["title"] = "!!!"
    with pytest.raises(DocumentValidationError, match="letter or digit"):
        await Event(**event_data).save(db)


async def test_duplicate_slug_is_a_save_error(db, event_data):
    await Event(**event_data).save(db)
    event_data["title"] = "Cloud   Next 2026!"
    with pytest.raises(DocumentSaveError):
        await Event(**event_data).save(db)
    assert await Event.count(db) == 1


async def test_find_filters_and_ordering(db, event_data):
    for title, date in [("Late", "2026-09-01"), ("Early", "2026-01-01"), ("Middle", "2026-05-01")]:
        await Event(**{**event_data, "title": title, "date": date}).save(db)

    events = await Event.find(db, order_by=("date",))
    assert [e.title for e in events] == ["Early", "Middle", "Late"]

    assert await Event.count(db, title="Middle") == 1
    assert await Event.exists(db, slug="late")
    assert not await Event.exists(db, slug="missing")

    with pytest.raises(ValueError, match="Unknown Event field"):
        await Event.find(db, price="free")


async def test_find_similar_by_shared_tag(db, event_data):
    await Event(**event_data).save(db)
    await Event(**{**event_data, "title": "DevOps Days", "tags": ["devops"]}).save(db)
    await Event(**{**event_data, "title": "Frontend Fest", "tags": ["frontend"]}).save(db)

    similar = await Event.find_similar(db, "cloud-next-2026")
    assert [e.slug for e in similar] == ["devops-days"]
    assert await Event.find_similar(db, "missing") == []


async def test_booking_requires_existing_event(db, event_data):
    with pytest.raises(DocumentValidationError, match="referenced event does not exist"):
        await Booking(event_id="0" * 32, email="a@b.com").save(db)

    event = await Event(**event_data).save(db)
    booking = await Booking(event_id=event.id, email="a@b.com").save(db)

    assert booking.id
    assert await Booking.count(db, event_id=event.id) == 1


def test_booking_email_is_validated():
    with pytest.raises(ValidationError, match="Invalid email address provided."):
        Booking(event_id="abc", email="a@b")

    booking = Booking(event_id="abc", email="  Someone@Example.COM ")
    assert booking.email == "someone@example.com"

    with pytest.raises(ValidationError):
        booking.email = "not-an-email"


async def test_failed_save_does_not_undo_concurrent_save(db, event_data):
    await Event(**event_data).save(db)
    duplicate = Event(**event_data)
    other = Event(**{**event_data, "title": "Frontend Fest"})

    results = await asyncio.gather(
        duplicate.save(db), other.save(db), return_exceptions=True
    )

    assert isinstance(results[0], DocumentSaveError)
    assert results[1] is other
    assert await Event.get(db, other.id) is not None
    assert await Event.count(db) == 2
