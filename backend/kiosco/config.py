# backend/kiosco/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: str) -> tuple[str, ...]:
    raw = os.environ.get(name, default)
    return tuple(part.strip() for part in raw.split(",") if part.strip())


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/kiosco.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///kiosco.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # "Today" for reports and register closing is a local calendar day
    KIOSCO_TIMEZONE = os.environ.get("KIOSCO_TIMEZONE", "America/Montevideo")

    PRIMARY_CURRENCY = os.environ.get("PRIMARY_CURRENCY", "UYU")
    SECONDARY_CURRENCY = os.environ.get("SECONDARY_CURRENCY", "BRL")

    # Stored procedures provisioned on the data store. Anything missing here
    # behaves like a "function does not exist" error and triggers the fallbacks.
    ATOMIC_PROCEDURES = _env_list(
        "ATOMIC_PROCEDURES",
        "create_sale_atomic,cancel_sale_atomic,increment_stock",
    )

    # "captured": stock seen when the line was added to the cart (default)
    # "current": re-read the product row right before writing
    FALLBACK_STOCK_SOURCE = os.environ.get("FALLBACK_STOCK_SOURCE", "captured")

    CLOSING_EXCLUDE_VOIDED = _env_bool("CLOSING_EXCLUDE_VOIDED", False)

    # Upper bound for one data-store call (seconds, 0 disables). A call that
    # runs out of time ends the sale with an "unknown outcome" error.
    SALE_TIMEOUT_SECONDS = float(os.environ.get("SALE_TIMEOUT_SECONDS", "10"))

    # Add-on surcharges (cents, primary currency)
    SHOT_EXTRA_CENTS = int(os.environ.get("SHOT_EXTRA_CENTS", "5000"))
    MONSTER_EXTRA_CENTS = int(os.environ.get("MONSTER_EXTRA_CENTS", "10000"))

    # Post-sale observers
    EVENTS_SYNC = _env_bool("EVENTS_SYNC", False)
    EVENT_WORKERS = int(os.environ.get("EVENT_WORKERS", "2"))

    CORS_ORIGINS = _env_list(
        "CORS_ORIGINS",
        "http://localhost:3000,http://127.0.0.1:3000",
    )


def engine_options(database_uri: str, timeout_seconds: float) -> dict:
    """
    SQLAlchemy engine options that bound how long one data-store call waits.

    pool_timeout caps the connection checkout; the driver-level setting caps a
    statement or a lock wait. SQLite only has its busy timeout.
    """
    if timeout_seconds <= 0:
        return {}

    millis = int(timeout_seconds * 1000)
    if database_uri.startswith("sqlite"):
        # In-memory SQLite runs on a StaticPool, which takes no pool_timeout
        return {"connect_args": {"timeout": timeout_seconds}}
    if database_uri.startswith("postgres"):
        return {
            "pool_timeout": timeout_seconds,
            "connect_args": {"options": f"-c statement_timeout={millis} -c lock_timeout={millis}"},
        }
    return {"pool_timeout": timeout_seconds}
