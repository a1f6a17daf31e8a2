"""
Integration tests for the Starlette session middleware

These tests run a small FastAPI application over a real SQLite database
and exercise the session through HTTP requests.
"""

import pytest
from fastapi import Depends, FastAPI, Request
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from conftest import RecordingDatabase
from sessionstore.db.models import SessionRow
from sessionstore.store import SQLStore
from sessionstore.web.middleware import SessionMiddleware, get_session

# Mark all tests in this module as integration tests
pytestmark = pytest.mark.integration


def create_app(store: SQLStore) -> FastAPI:
    app = FastAPI()
    app.add_middleware(SessionMiddleware, store=store, cookie_name="session")

    @app.get("/count")
    async def count(session=Depends(get_session)):
        session.values["count"] = session.values.get("count", 0) + 1
        return {"count": session.values["count"], "new": session.is_new}

    @app.get("/same")
    async def same(request: Request, session=Depends(get_session)):
        again = await store.get(request, "session")
        return {"same": again is session}

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/logout")
    async def logout(session=Depends(get_session)):
        session.options.max_age = -1
        return {"ok": True}

    @app.get("/extra")
    async def extra(request: Request, session=Depends(get_session)):
        flash = await store.get(request, "flash")
        flash.values["message"] = "saved"
        return {"ok": True}

    return app


@pytest.fixture(scope="function")
def client(sql_store):
    with TestClient(create_app(sql_store)) as test_client:
        yield test_client


class TestSessionMiddleware:

    def test_session_persists_across_requests(self, client):
        first = client.get("/count")
        assert first.json() == {"count": 1, "new": True}
        assert "session" in first.cookies

        second = client.get("/count")
        assert second.json() == {"count": 2, "new": False}

    def test_registry_returns_same_session(self, client):
        response = client.get("/same")
        assert response.json() == {"same": True}

    def test_logout_clears_cookie_and_row(self, client, sql_store):
        client.get("/count")
        client.get("/logout")

        assert client.cookies.get("session") is None
        response = client.get("/count")
        assert response.json() == {"count": 1, "new": True}

    def test_every_obtained_session_is_saved(self, client):
        response = client.get("/extra")

        assert "session" in response.cookies
        assert "flash" in response.cookies

    def test_untouched_session_is_not_stored(self, client, sqlite_engine):
        for _ in range(5):
            response = client.get("/health")
            assert response.status_code == 200
            assert "session" not in response.cookies

        with sqlite_engine.connect() as conn:
            rows = conn.execute(select(func.count()).select_from(SessionRow)).scalar_one()
        assert rows == 0

    def test_untouched_session_skips_database(self, key_pairs):
        db = RecordingDatabase()
        app = create_app(SQLStore(db, key_pairs))

        with TestClient(app) as recording_client:
            recording_client.cookies.set("session", "forged.token.value")
            recording_client.get("/health")

        db.assert_not_called()

    def test_forged_cookie_starts_new_session(self, client):
        client.cookies.set("session", "forged.token.value")

        response = client.get("/count")

        assert response.json() == {"count": 1, "new": True}

    def test_save_failure_is_not_swallowed(self, key_pairs):
        db = RecordingDatabase()
        db.fail_with = ConnectionError("database unavailable")
        app = create_app(SQLStore(db, key_pairs))

        with TestClient(app) as failing_client:
            with pytest.raises(ConnectionError):
                failing_client.get("/count")
