import os
import sys

import pytest
from flask.cli import routes_command
from sqlalchemy.exc import OperationalError

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

import jewelinv as jewelinv_module
from jewelinv import create_app


def _make_app():
    return create_app(
        {"TESTING": True, "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:", "LOG_DIR": ""}
    )


def test_app_factory_smoke():
    app = _make_app()
    assert app is not None


def test_blueprints_registered():
    app = _make_app()
    for name in ["errors", "health", "auth", "products"]:
        assert name in app.blueprints


def test_health_reports_database():
    app = _make_app()
    client = app.test_client()

    response = client.get("/api/health")
    assert response.status_code == 200
    data = response.get_json()
    assert data["status"] == "ok"
    assert data["database"] == "ok"
    assert data["message"] == "Jewelry Inventory API is running!"
    assert data["businessTime"].endswith("+05:30")


def test_unknown_route_returns_json():
    app = _make_app()
    response = app.test_client().get("/api/nothing-here")
    assert response.status_code == 404
    assert "error" in response.get_json()


def test_request_id_is_echoed():
    app = _make_app()
    response = app.test_client().get("/api/health", headers={"X-Request-ID": "abc123"})
    assert response.headers["X-Request-ID"] == "abc123"


def test_database_outage_at_startup_is_fatal(monkeypatch):
    def fake_ping() -> None:
        raise OperationalError("SELECT 1", {}, Exception("database offline"))

    monkeypatch.setattr(jewelinv_module, "_ping_database", fake_ping)

    with pytest.raises(RuntimeError, match="Unable to connect"):
        _make_app()


def test_flask_routes_listed():
    app = _make_app()
    runner = app.test_cli_runner()
    result = runner.invoke(routes_command)
    assert result.exit_code == 0
    assert "/api/products/export/pdf" in result.output
