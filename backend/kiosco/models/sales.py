from __future__ import annotations

from ..extensions import db
from kiosco.time_utils import to_utc_z

SALE_STATUS_ACTIVE = "ACTIVE"
SALE_STATUS_VOIDED = "VOIDED"


class Sale(db.Model):
    """
    Settled sale header.

    `total_cents` is computed by the caller at settlement time and trusted.
    Status moves ACTIVE -> VOIDED exactly once; sales are never deleted.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_sold_at", "status", "sold_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sold_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    payment_method = db.Column(db.String(32), nullable=False, index=True)
    total_cents = db.Column(db.Integer, nullable=False)
    note = db.Column(db.String(500), nullable=True)
    currency = db.Column(db.String(3), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_ACTIVE, index=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sold_at": to_utc_z(self.sold_at),
            "payment_method": self.payment_method,
            "total_cents": self.total_cents,
            "note": self.note,
            "currency": self.currency,
            "status": self.status,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "created_at": to_utc_z(self.created_at),
        }


class SaleItem(db.Model):
    """
    Stock-moving line of a sale.

    Combo components are stored here with unit_price_cents = 0; the combo price
    lives on the matching ComboSale row.
    """
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    # Add-on charges (shot extra, monster) - money only, never units
    surcharge_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", backref=db.backref("items", lazy=True))
    product = db.relationship("Product")

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents + self.surcharge_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "surcharge_cents": self.surcharge_cents,
            "line_total_cents": self.line_total_cents,
            "created_at": to_utc_z(self.created_at),
        }


class ComboSale(db.Model):
    """
    Priced summary of a combo sold on a sale.

    Keeps combo revenue and cost reportable without reverse-engineering the
    zero-priced component rows in sale_items.
    """
    __tablename__ = "combo_sales"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    combo_id = db.Column(db.Integer, db.ForeignKey("combos.id"), nullable=True, index=True)

    combo_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    surcharge_cents = db.Column(db.Integer, nullable=False, default=0)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", backref=db.backref("combo_sales", lazy=True))

    @property
    def revenue_cents(self) -> int:
        return self.quantity * self.unit_price_cents + self.surcharge_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "combo_id": self.combo_id,
            "combo_name": self.combo_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "surcharge_cents": self.surcharge_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "revenue_cents": self.revenue_cents,
            "created_at": to_utc_z(self.created_at),
        }
