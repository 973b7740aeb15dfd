"""
Cart Builder

In-memory cart used to compose a sale before settlement. It works on a
snapshot of the catalog taken when the cart is built: the stock it sees is
the stock "captured" at add time, and that is what the sequential settlement
path later decrements from.

Line identifiers are UUIDs local to the cart.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Iterable

from ..models import Combo, Product
from .combos_service import (
    ComboComponent,
    check_combo_stock,
    combo_unit_cost_cents,
    components_of,
)
from .sales_service import ComboSaleSummary, SettlementItem, SettlementRequest

CUPS_CATEGORY = "Vasos"


class CartError(Exception):
    """Raised for cart operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


@dataclass(frozen=True)
class ProductSnapshot:
    id: int
    name: str
    category: str | None
    price_cents: int
    cost_cents: int
    stock: int
    is_active: bool = True

    @classmethod
    def from_model(cls, p: Product) -> "ProductSnapshot":
        return cls(
            id=p.id,
            name=p.name,
            category=p.category,
            price_cents=p.price_cents,
            cost_cents=p.cost_cents,
            stock=p.stock,
            is_active=p.is_active,
        )


@dataclass(frozen=True)
class ComboSnapshot:
    id: int
    name: str
    price_cents: int
    components: tuple[ComboComponent, ...]
    is_active: bool = True

    @classmethod
    def from_model(cls, c: Combo) -> "ComboSnapshot":
        return cls(
            id=c.id,
            name=c.name,
            price_cents=c.price_cents,
            components=components_of(c),
            is_active=c.is_active,
        )


@dataclass
class CartLine:
    name: str
    quantity: int
    unit_price_cents: int
    product_id: int | None = None
    combo_id: int | None = None
    category: str | None = None
    captured_stock: int | None = None
    shot_extra: bool = False
    monster: bool = False
    line_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def is_combo(self) -> bool:
        return self.combo_id is not None

    def to_dict(self) -> dict:
        return {
            "line_id": self.line_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "product_id": self.product_id,
            "combo_id": self.combo_id,
            "is_combo": self.is_combo,
            "category": self.category,
            "captured_stock": self.captured_stock,
            "shot_extra": self.shot_extra,
            "monster": self.monster,
        }


class Cart:
    def __init__(
        self,
        products: Iterable[ProductSnapshot],
        combos: Iterable[ComboSnapshot] = (),
        *,
        shot_extra_cents: int = 0,
        monster_extra_cents: int = 0,
    ):
        self.products = {p.id: p for p in products}
        self.combos = {c.id: c for c in combos}
        self.shot_extra_cents = shot_extra_cents
        self.monster_extra_cents = monster_extra_cents
        self._lines: list[CartLine] = []

    @classmethod
    def from_catalog(
        cls,
        products: Iterable[Product],
        combos: Iterable[Combo] = (),
        **surcharges,
    ) -> "Cart":
        return cls(
            [ProductSnapshot.from_model(p) for p in products],
            [ComboSnapshot.from_model(c) for c in combos],
            **surcharges,
        )

    # ------------------------------------------------------------------
    # Lines
    # ------------------------------------------------------------------

    @property
    def lines(self) -> tuple[CartLine, ...]:
        return tuple(self._lines)

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def _line(self, line_id: str) -> CartLine:
        for line in self._lines:
            if line.line_id == line_id:
                return line
        raise CartError("Cart line not found", details={"line_id": line_id})

    def add_product(self, product_id: int) -> CartLine:
        """
        Add one unit of a product.

        A second add of the same product bumps the existing line, unless that
        would go over the stock captured for it (then nothing changes).
        """
        product = self.products.get(product_id)
        if product is None or not product.is_active:
            raise CartError("Product not available", details={"product_id": product_id})
        if product.stock <= 0:
            raise CartError(f'Sin stock para "{product.name}"', details={"product_id": product_id})

        for line in self._lines:
            if line.product_id == product_id and not line.is_combo:
                if line.quantity + 1 <= line.captured_stock:
                    line.quantity += 1
                return line

        line = CartLine(
            name=product.name,
            quantity=1,
            unit_price_cents=product.price_cents,
            product_id=product.id,
            category=product.category,
            captured_stock=product.stock,
        )
        self._lines.append(line)
        return line

    def add_combo(self, combo_id: int) -> CartLine:
        """Add one combo. Raises InsufficientComboStock naming the short product."""
        combo = self.combos.get(combo_id)
        if combo is None or not combo.is_active:
            raise CartError("Combo not available", details={"combo_id": combo_id})

        check_combo_stock(combo.components, self.products)

        line = CartLine(
            name=combo.name,
            quantity=1,
            unit_price_cents=combo.price_cents,
            combo_id=combo.id,
            category="Combo",
        )
        self._lines.append(line)
        return line

    def set_quantity(self, line_id: str, quantity: int) -> CartLine:
        line = self._line(line_id)
        quantity = quantity or 1
        if line.is_combo:
            line.quantity = max(1, quantity)
        else:
            line.quantity = max(1, min(line.captured_stock, quantity))
        return line

    def set_unit_price(self, line_id: str, unit_price_cents: int) -> CartLine:
        line = self._line(line_id)
        line.unit_price_cents = max(0, unit_price_cents or 0)
        return line

    def toggle_shot_extra(self, line_id: str) -> CartLine:
        line = self._line(line_id)
        line.shot_extra = not line.shot_extra
        return line

    def toggle_monster(self, line_id: str) -> CartLine:
        line = self._line(line_id)
        if line.is_combo or line.category != CUPS_CATEGORY:
            raise CartError(f"Monster add-on only applies to {CUPS_CATEGORY}", details={"line_id": line_id})
        line.monster = not line.monster
        return line

    def remove(self, line_id: str) -> None:
        self._lines.remove(self._line(line_id))

    def clear(self) -> None:
        self._lines.clear()

    # ------------------------------------------------------------------
    # Totals
    # ------------------------------------------------------------------

    def line_surcharge_cents(self, line: CartLine) -> int:
        surcharge = self.shot_extra_cents if line.shot_extra else 0
        if line.monster and not line.is_combo and line.category == CUPS_CATEGORY:
            surcharge += line.quantity * self.monster_extra_cents
        return surcharge

    def line_total_cents(self, line: CartLine) -> int:
        return line.quantity * line.unit_price_cents + self.line_surcharge_cents(line)

    @property
    def total_cents(self) -> int:
        return sum(self.line_total_cents(line) for line in self._lines)

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    def _expand_combo(self, line: CartLine) -> tuple[list[SettlementItem], ComboSaleSummary]:
        combo = self.combos[line.combo_id]
        items: list[SettlementItem] = []
        for component in combo.components:
            product = self.products.get(component.product_id)
            if product is None:
                raise CartError(
                    f'Product "{component.name}" of combo "{combo.name}" is no longer in the catalog',
                    details={"combo_id": combo.id, "product_id": component.product_id},
                )
            items.append(SettlementItem(
                product_id=component.product_id,
                quantity=component.quantity * line.quantity,
                unit_price_cents=0,
                captured_stock=product.stock,
            ))

        summary = ComboSaleSummary(
            combo_id=combo.id,
            combo_name=combo.name,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            surcharge_cents=self.line_surcharge_cents(line),
            unit_cost_cents=combo_unit_cost_cents(combo.components, self.products),
        )
        return items, summary

    def to_settlement_request(
        self,
        payment_method: str,
        *,
        note: str | None = None,
        currency: str | None = None,
    ) -> SettlementRequest:
        """
        Expand the cart into what the settlement engine persists.

        Combo lines become zero-priced items for each component (stock only)
        plus one priced ComboSaleSummary. Surcharges are carried as money on
        the line and never as extra units.
        """
        items: list[SettlementItem] = []
        combos: list[ComboSaleSummary] = []

        for line in self._lines:
            if line.is_combo:
                combo_items, summary = self._expand_combo(line)
                items.extend(combo_items)
                combos.append(summary)
                continue

            items.append(SettlementItem(
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                captured_stock=line.captured_stock,
                surcharge_cents=self.line_surcharge_cents(line),
            ))

        return SettlementRequest(
            payment_method=payment_method,
            total_cents=self.total_cents,
            items=tuple(items),
            note=note,
            currency=currency,
            combos=tuple(combos),
        )
