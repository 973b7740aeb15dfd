from __future__ import annotations

from ..extensions import db
from kiosco.time_utils import to_utc_z


class CashRegisterClosing(db.Model):
    """
    End-of-day register closing.

    IMMUTABLE: one row per local calendar day, never updated or deleted.
    Payment-method buckets only hold primary-currency sales; sales taken in
    the secondary currency are summed into secondary_currency_cents alone.
    """
    __tablename__ = "cash_register_closings"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    cash_cents = db.Column(db.Integer, nullable=False, default=0)
    debit_cents = db.Column(db.Integer, nullable=False, default=0)
    transfer_cents = db.Column(db.Integer, nullable=False, default=0)
    secondary_currency_cents = db.Column(db.Integer, nullable=False, default=0)

    sales_count = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "closed_at": to_utc_z(self.closed_at),
            "cash_cents": self.cash_cents,
            "debit_cents": self.debit_cents,
            "transfer_cents": self.transfer_cents,
            "secondary_currency_cents": self.secondary_currency_cents,
            "sales_count": self.sales_count,
            "total_cents": self.total_cents,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
