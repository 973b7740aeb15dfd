"""Exchange rate between the secondary and the primary currency."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from ..extensions import db
from ..models import ExchangeRateConfig
from kiosco.time_utils import utcnow


class ExchangeRateError(Exception):
    """Raised for exchange rate errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def _to_rate(value) -> Decimal:
    try:
        rate = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ExchangeRateError("rate must be a number")
    if not rate.is_finite() or rate <= 0:
        raise ExchangeRateError("rate must be greater than zero")
    return rate.quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)


def get_exchange_rate(*, currency_from: str = "BRL", currency_to: str = "UYU") -> ExchangeRateConfig | None:
    return (
        db.session.query(ExchangeRateConfig)
        .filter_by(currency_from=currency_from.upper(), currency_to=currency_to.upper())
        .first()
    )


def update_exchange_rate(rate, *, currency_from: str = "BRL", currency_to: str = "UYU") -> ExchangeRateConfig:
    """Insert or update the rate for the pair (1 currency_from = rate currency_to)."""
    value = _to_rate(rate)
    config = get_exchange_rate(currency_from=currency_from, currency_to=currency_to)
    if config is None:
        config = ExchangeRateConfig(currency_from=currency_from.upper(), currency_to=currency_to.upper())
        db.session.add(config)
    config.rate = value
    config.updated_at = utcnow()
    db.session.commit()
    return config


def convert_to_primary(amount_cents: int, rate) -> int:
    """Secondary-currency cents to primary-currency cents, rounded half up."""
    converted = Decimal(amount_cents) * _to_rate(rate)
    return int(converted.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
