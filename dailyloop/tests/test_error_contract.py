"""Tests for normalized error responses."""

from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from dailyloop.core.errors import (
    AppError,
    SessionInitError,
    SubmitError,
    UnconfirmedHabitsError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from dailyloop.core.middleware.request_id import RequestIdMiddleware


def _make_app():
    app = FastAPI()
    app.add_middleware(RequestIdMiddleware)
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.get("/submit")
    async def submit():
        raise SubmitError("Could not save your answers: db down")

    @app.get("/init")
    async def init():
        raise SessionInitError("Could not load daily logs")

    @app.get("/confirm")
    async def confirm():
        raise UnconfirmedHabitsError(["stretch"])

    @app.get("/boom")
    async def boom():
        raise RuntimeError("kaboom")

    return app


def test_submit_error_has_standard_shape():
    client = TestClient(_make_app())
    resp = client.get("/submit")
    assert resp.status_code == 502
    body = resp.json()
    rid = resp.headers.get("x-request-id")
    assert body["error"]["code"] == "submit_failed"
    assert body["error"]["request_id"] == rid
    assert body["detail"] == body["error"]["message"]


def test_session_init_error_is_unavailable():
    resp = TestClient(_make_app()).get("/init")
    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "session_init_failed"


def test_unconfirmed_habits_lists_ids():
    resp = TestClient(_make_app()).get("/confirm")
    assert resp.status_code == 409
    assert resp.json()["error"]["habit_ids"] == ["stretch"]


def test_unhandled_error_is_internal_error():
    client = TestClient(_make_app(), raise_server_exceptions=False)
    resp = client.get("/boom")
    assert resp.status_code == 500
    assert resp.json()["error"]["code"] == "internal_error"
    assert "kaboom" not in resp.text
