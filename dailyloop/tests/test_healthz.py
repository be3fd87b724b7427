from fastapi.testclient import TestClient

import dailyloop.api.health as health_api
from dailyloop.core.errors import ConfigurationError
from dailyloop.main import app

client = TestClient(app)


def test_healthz_always_ok():
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json().get("status") == "ok"


def test_readyz_ok_with_sqlite(monkeypatch, engine):
    monkeypatch.setattr(health_api, "get_engine", lambda: engine)
    resp = client.get("/readyz")
    assert resp.status_code == 200
    assert resp.json().get("status") == "ok"


def test_readyz_reports_missing_tables(monkeypatch):
    class FakeConn:
        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc, tb):
            return False

        def exec_driver_sql(self, query):
            return None

    class FakeEngine:
        def connect(self):
            return FakeConn()

    class FakeInspector:
        def has_table(self, name):
            return name != "daily_logs"

    monkeypatch.setattr(health_api, "get_engine", lambda: FakeEngine())
    monkeypatch.setattr(health_api, "inspect", lambda engine: FakeInspector())

    resp = client.get("/readyz")
    assert resp.status_code == 503
    assert "daily_logs" in resp.json()["detail"]


def test_readyz_without_database_url(monkeypatch):
    def unconfigured():
        raise ConfigurationError("DATABASE_URL is not configured.")

    monkeypatch.setattr(health_api, "get_engine", unconfigured)
    resp = client.get("/readyz")
    assert resp.status_code == 503
    assert resp.json()["detail"] == "database not configured"
