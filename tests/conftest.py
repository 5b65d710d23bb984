import httpx
import pytest
from fastapi.testclient import TestClient

from api.config import get_settings
from api.database import open_connection
from api.pages import get_http_client


@pytest.fixture
async def db():
    conn = await open_connection(":memory:")
    yield conn
    await conn.close()


@pytest.fixture
def event_data():
    return {
        "title": "Cloud Next 2026",
        "description": "Google Cloud's annual conference.",
        "overview": "Keynotes, breakouts and hands-on labs.",
        "image": "/images/event-full.png",
        "venue": "Mandalay Bay",
        "location": "Las Vegas, NV, USA",
        "date": "2026-4-22",
        "time": "9:00",
        "mode": "hybrid",
        "audience": "Cloud engineers",
        "agenda": ["09:00 Keynote", "11:00 Breakouts"],
        "organizer": "Google Cloud",
        "tags": ["cloud", "devops"],
    }


@pytest.fixture
def settings_env(monkeypatch, tmp_path):
    monkeypatch.setenv("DATABASE_URI", f"sqlite:///{tmp_path / 'events.db'}")
    monkeypatch.setenv("BASE_URL", "http://testserver")
    monkeypatch.setenv("SEED_ON_STARTUP", "false")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def client(settings_env):
    from api.main import app

    async def asgi_client():
        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://testserver"
        ) as http_client:
            yield http_client

    app.dependency_overrides[get_http_client] = asgi_client
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
