from __future__ import annotations

from ..extensions import db
from kiosco.time_utils import to_utc_z


class Combo(db.Model):
    """
    Bundle sold at a fixed price.

    Combos carry no stock of their own: selling one decrements each component
    product by (component quantity x combo quantity).
    """
    __tablename__ = "combos"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    price_cents = db.Column(db.Integer, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    # Items are owned by the combo: replacing them is delete-all-then-reinsert
    items = db.relationship(
        "ComboItem",
        backref="combo",
        lazy=True,
        order_by="ComboItem.position",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "items": [item.to_dict() for item in self.items],
        }


class ComboItem(db.Model):
    """One (product, quantity) component of a combo."""
    __tablename__ = "combo_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_combo_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    combo_id = db.Column(db.Integer, db.ForeignKey("combos.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "quantity": self.quantity,
            "name": self.product.name if self.product else None,
            "price_cents": self.product.price_cents if self.product else None,
        }
