from __future__ import annotations

from ..extensions import db
from kiosco.time_utils import to_utc_z


class ExchangeRateConfig(db.Model):
    """Configured conversion rate for one currency pair (e.g. BRL -> UYU)."""
    __tablename__ = "exchange_rate_config"
    __table_args__ = (
        db.UniqueConstraint("currency_from", "currency_to", name="uq_exchange_rate_pair"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    currency_from = db.Column(db.String(3), nullable=False)
    currency_to = db.Column(db.String(3), nullable=False)
    # Numeric, not Float: conversions must be exact to the cent
    rate = db.Column(db.Numeric(12, 4), nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "currency_from": self.currency_from,
            "currency_to": self.currency_to,
            "rate": str(self.rate),
            "updated_at": to_utc_z(self.updated_at),
        }
