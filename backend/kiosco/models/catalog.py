from __future__ import annotations

from ..extensions import db
from kiosco.time_utils import to_utc_z


class Product(db.Model):
    """
    Catalog product with its on-hand stock.

    `stock` is the only shared mutable counter in the system. It is written by
    sale settlement (decrement), sale cancellation and restock purchases
    (increment) and manual adjustments.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.CheckConstraint("min_stock >= 0", name="ck_products_min_stock_non_negative"),
        db.Index("ix_products_active_name", "is_active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(32), nullable=True, index=True)

    price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_cents = db.Column(db.Integer, nullable=False, default=0)

    stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def needs_restock(self) -> bool:
        return self.stock <= self.min_stock

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
            "stock": self.stock,
            "min_stock": self.min_stock,
            "is_active": self.is_active,
            "needs_restock": self.needs_restock,
            "created_at": to_utc_z(self.created_at),
        }


class RestockSource(db.Model):
    """Where a product can be bought again (supplier, market, website)."""
    __tablename__ = "restock_sources"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    place = db.Column(db.String(255), nullable=False)
    purchase_price_cents = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(3), nullable=False)
    presentation = db.Column(db.String(255), nullable=True)
    contact = db.Column(db.String(255), nullable=True)
    url = db.Column(db.String(512), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("restock_sources", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "place": self.place,
            "purchase_price_cents": self.purchase_price_cents,
            "currency": self.currency,
            "presentation": self.presentation,
            "contact": self.contact,
            "url": self.url,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class RestockPurchase(db.Model):
    """A restock purchase. Recording one adds `quantity` to the product stock."""
    __tablename__ = "restock_purchases"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchased_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    source_id = db.Column(db.Integer, db.ForeignKey("restock_sources.id"), nullable=True, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(3), nullable=False)
    total_cost_cents = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchased_at": to_utc_z(self.purchased_at),
            "product_id": self.product_id,
            "source_id": self.source_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "currency": self.currency,
            "total_cost_cents": self.total_cost_cents,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
