"""Configuration helpers."""

import pytest

from kiosco import create_app
from kiosco.config import engine_options


class TestEngineOptions:
    def test_sqlite_uses_busy_timeout(self):
        assert engine_options("sqlite:///kiosco.sqlite3", 5) == {"connect_args": {"timeout": 5}}

    def test_postgres_bounds_pool_statement_and_locks(self):
        options = engine_options("postgresql://kiosco@db/kiosco", 2.5)

        assert options["pool_timeout"] == 2.5
        assert "statement_timeout=2500" in options["connect_args"]["options"]
        assert "lock_timeout=2500" in options["connect_args"]["options"]

    @pytest.mark.parametrize("timeout", [0, -1])
    def test_disabled(self, timeout):
        assert engine_options("postgresql://kiosco@db/kiosco", timeout) == {}

    def test_app_applies_configured_timeout(self, app):
        assert app.config["SQLALCHEMY_ENGINE_OPTIONS"]["connect_args"]["timeout"] == app.config["SALE_TIMEOUT_SECONDS"]

    def test_explicit_engine_options_win(self):
        app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "SQLALCHEMY_ENGINE_OPTIONS": {"echo": False},
            "EVENTS_SYNC": True,
        })
        options = app.config["SQLALCHEMY_ENGINE_OPTIONS"]
        assert options["echo"] is False
        assert "timeout" not in options.get("connect_args", {})
