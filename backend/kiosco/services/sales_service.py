"""
Sale Settlement and Cancellation

WHY: A sale must either land completely (header, items, stock movement) or
fail loudly. When the data store provisions the atomic procedures that is
exactly what happens. When it does not, the engines fall back to a sequence
of independent gateway writes and accept that a crash mid-way can leave
partial state.

DESIGN:
- Both paths sit behind one engine; the capability probe picks the primary
  path and a "function does not exist" answer switches to the fallback.
- Validation happens before anything is written.
- Stock never goes below zero and a sale is never blocked on short stock.
- A data-store timeout surfaces as SaleOutcomeUnknownError and is never
  retried: a timed-out write may still have landed.
- Sales are never deleted (except to compensate a header whose items could
  not be written) and VOIDED is final.
"""

from __future__ import annotations

import logging
import unicodedata
from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import datetime

from ..models import Sale, SaleItem, ComboSale, SALE_STATUS_VOIDED
from kiosco.time_utils import utcnow
from .events import EventBus, SaleSettled, SoldItem
from .gateway import Gateway, GatewayError, GatewayTimeoutError, ProcedureNotFoundError

logger = logging.getLogger(__name__)

PAYMENT_METHODS = ("efectivo", "debito", "credito", "transferencia", "mercadopago")

STOCK_SOURCE_CAPTURED = "captured"
STOCK_SOURCE_CURRENT = "current"
STOCK_SOURCES = (STOCK_SOURCE_CAPTURED, STOCK_SOURCE_CURRENT)


class SaleError(Exception):
    """Raised for sale operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class SaleValidationError(SaleError):
    pass


class SaleNotFoundError(SaleError):
    pass


class SaleAlreadyVoidedError(SaleError):
    pass


class SalePersistenceError(SaleError):
    """The data store failed while writing; see __cause__."""


class SaleOutcomeUnknownError(SalePersistenceError):
    """
    The data store timed out mid-operation. The sale (or void) may have been
    written; check before trying again. Never retried automatically.
    """


def fold_accents(value: str) -> str:
    """'Débito ' -> 'debito'"""
    decomposed = unicodedata.normalize("NFKD", value.strip().lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_payment_method(value: str | None) -> str:
    if value is None or not str(value).strip():
        raise SaleValidationError("Elegí método de pago")
    method = fold_accents(str(value))
    if method not in PAYMENT_METHODS:
        raise SaleValidationError(
            f"Unknown payment method: {value}",
            details={"allowed": list(PAYMENT_METHODS)},
        )
    return method


# ----------------------------------------------------------------------
# Request
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class SettlementItem:
    product_id: int
    quantity: int
    unit_price_cents: int
    # Stock seen when the line was built; None means "read it at write time"
    captured_stock: int | None = None
    surcharge_cents: int = 0

    def to_params(self) -> dict:
        return {
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "surcharge_cents": self.surcharge_cents,
        }


@dataclass(frozen=True)
class ComboSaleSummary:
    combo_id: int | None
    combo_name: str
    quantity: int
    unit_price_cents: int
    surcharge_cents: int = 0
    unit_cost_cents: int = 0

    @property
    def revenue_cents(self) -> int:
        return self.quantity * self.unit_price_cents + self.surcharge_cents

    def to_params(self) -> dict:
        return {
            "combo_id": self.combo_id,
            "combo_name": self.combo_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "surcharge_cents": self.surcharge_cents,
            "unit_cost_cents": self.unit_cost_cents,
        }


@dataclass(frozen=True)
class SettlementRequest:
    payment_method: str
    total_cents: int
    items: tuple[SettlementItem, ...]
    note: str | None = None
    currency: str | None = None
    combos: tuple[ComboSaleSummary, ...] = field(default_factory=tuple)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_request(request: SettlementRequest, *, default_currency: str = "UYU") -> SettlementRequest:
    """Check a request and return it normalized (canonical method, trimmed note)."""
    if not request.items:
        raise SaleValidationError("Carrito vacío")

    method = normalize_payment_method(request.payment_method)

    for index, item in enumerate(request.items):
        if not _is_int(item.quantity) or item.quantity <= 0:
            raise SaleValidationError(
                "Item quantity must be a positive integer",
                details={"index": index, "product_id": item.product_id},
            )
        if not _is_int(item.unit_price_cents) or item.unit_price_cents < 0:
            raise SaleValidationError(
                "Item unit_price_cents must be >= 0",
                details={"index": index, "product_id": item.product_id},
            )
        if not _is_int(item.surcharge_cents) or item.surcharge_cents < 0:
            raise SaleValidationError(
                "Item surcharge_cents must be >= 0",
                details={"index": index, "product_id": item.product_id},
            )

    for combo in request.combos:
        if not _is_int(combo.quantity) or combo.quantity <= 0:
            raise SaleValidationError("Combo quantity must be a positive integer", details={"combo": combo.combo_name})
        if combo.unit_price_cents < 0 or combo.surcharge_cents < 0:
            raise SaleValidationError("Combo amounts must be >= 0", details={"combo": combo.combo_name})

    if not _is_int(request.total_cents) or request.total_cents < 0:
        raise SaleValidationError("total_cents must be a non-negative integer")

    note = (request.note or "").strip() or None
    currency = (request.currency or default_currency).strip().upper()

    return replace(request, payment_method=method, note=note, currency=currency)


def _quantities_by_product(items) -> dict[int, int]:
    totals: dict[int, int] = defaultdict(int)
    for item in items:
        totals[item.product_id] += item.quantity
    return dict(totals)


# ----------------------------------------------------------------------
# Settlement strategies
# ----------------------------------------------------------------------

class AtomicSettlement:
    name = "atomic"
    procedure = "create_sale_atomic"

    def settle(self, gateway: Gateway, request: SettlementRequest) -> int:
        return gateway.call(
            self.procedure,
            payment_method=request.payment_method,
            total_cents=request.total_cents,
            note=request.note,
            currency=request.currency,
            items=[item.to_params() for item in request.items],
            combos=[combo.to_params() for combo in request.combos],
        )


class SequentialSettlement:
    """
    Fallback: header, items, then one stock write per product.

    No cross-step atomicity. A failure writing items deletes the header
    again; a failure writing stock leaves the sale in place and raises.
    """
    name = "sequential"

    def __init__(self, stock_source: str = STOCK_SOURCE_CAPTURED):
        if stock_source not in STOCK_SOURCES:
            raise ValueError(f"stock_source must be one of {STOCK_SOURCES}")
        self.stock_source = stock_source

    def _stock_basis(self, gateway: Gateway, product_id: int, captured: int | None) -> int:
        if self.stock_source == STOCK_SOURCE_CAPTURED and captured is not None:
            return captured
        return gateway.get_product_stock(product_id)

    def settle(self, gateway: Gateway, request: SettlementRequest) -> int:
        sale_id = gateway.insert_sale(
            request.payment_method,
            request.total_cents,
            request.note,
            request.currency,
        )

        try:
            gateway.insert_sale_items(sale_id, [item.to_params() for item in request.items])
            if request.combos:
                gateway.insert_combo_sales(sale_id, [combo.to_params() for combo in request.combos])
        except GatewayError:
            logger.warning("Item insert failed for sale %s, removing header", sale_id)
            try:
                gateway.delete_sale(sale_id)
            except GatewayError:
                logger.exception("Could not remove header of sale %s; it is left without items", sale_id)
            raise

        # One write per product. The captured value is the first one seen for
        # the product, so repeated lines in one sale add up instead of
        # overwriting each other.
        captured: dict[int, int | None] = {}
        for item in request.items:
            captured.setdefault(item.product_id, item.captured_stock)

        for product_id, quantity in _quantities_by_product(request.items).items():
            basis = self._stock_basis(gateway, product_id, captured[product_id])
            gateway.update_product_stock(product_id, max(0, basis - quantity))

        gateway.record_event(
            event_type="sale.settled",
            entity_type="sale",
            entity_id=sale_id,
            sale_id=sale_id,
            note="sequential",
            payload=f"items={len(request.items)},total_cents={request.total_cents}",
        )
        return sale_id


class SaleSettlementEngine:
    def __init__(
        self,
        gateway: Gateway,
        *,
        events: EventBus | None = None,
        stock_source: str = STOCK_SOURCE_CAPTURED,
        default_currency: str = "UYU",
    ):
        self.gateway = gateway
        self.events = events
        self.default_currency = default_currency
        self.atomic = AtomicSettlement()
        self.sequential = SequentialSettlement(stock_source)
        self._strategy = self.atomic if gateway.has_procedure(AtomicSettlement.procedure) else self.sequential

    @property
    def strategy(self):
        return self._strategy

    def settle(self, request: SettlementRequest) -> int:
        request = validate_request(request, default_currency=self.default_currency)

        strategy = self._strategy
        try:
            try:
                sale_id = strategy.settle(self.gateway, request)
            except ProcedureNotFoundError as exc:
                logger.warning("%s; settling with the sequential fallback", exc)
                self._strategy = strategy = self.sequential
                sale_id = strategy.settle(self.gateway, request)
        except GatewayTimeoutError as exc:
            logger.error("Settlement timed out, outcome unknown: %s", exc)
            raise SaleOutcomeUnknownError(
                "La base de datos no respondió a tiempo; revisá si la venta quedó registrada",
                details=exc.details,
            ) from exc
        except GatewayError as exc:
            raise SalePersistenceError(f"No se pudo guardar la venta: {exc}", details=exc.details) from exc

        self._publish(sale_id, request, strategy.name)
        return sale_id

    def _publish(self, sale_id: int, request: SettlementRequest, path: str) -> None:
        if self.events is None:
            return
        self.events.publish(SaleSettled(
            sale_id=sale_id,
            total_cents=request.total_cents,
            payment_method=request.payment_method,
            currency=request.currency,
            items=tuple(
                SoldItem(product_id=i.product_id, quantity=i.quantity, unit_price_cents=i.unit_price_cents)
                for i in request.items
            ),
            occurred_at=utcnow(),
            path=path,
            combo_names=tuple(c.combo_name for c in request.combos),
        ))


# ----------------------------------------------------------------------
# Cancellation strategies
# ----------------------------------------------------------------------

class AtomicCancellation:
    name = "atomic"
    procedure = "cancel_sale_atomic"

    def cancel(self, gateway: Gateway, sale_id: int) -> dict[int, int]:
        outcome = gateway.call(self.procedure, sale_id=sale_id)
        status = outcome.get("status")
        if status == "not_found":
            raise SaleNotFoundError("Venta no encontrada", details={"sale_id": sale_id})
        if status == "already_voided":
            raise SaleAlreadyVoidedError("La venta ya está anulada", details={"sale_id": sale_id})
        return outcome.get("restored", {})


class SequentialCancellation:
    """
    Fallback: check, mark VOIDED, then put stock back product by product.

    A failure after the status write leaves a VOIDED sale with part of its
    stock restored.
    """
    name = "sequential"

    def cancel(self, gateway: Gateway, sale_id: int) -> dict[int, int]:
        sale = gateway.get_sale(sale_id)
        if sale is None:
            raise SaleNotFoundError("Venta no encontrada", details={"sale_id": sale_id})
        if sale.status == SALE_STATUS_VOIDED:
            raise SaleAlreadyVoidedError("La venta ya está anulada", details={"sale_id": sale_id})

        restored = _quantities_by_product(gateway.select_sale_items(sale_id))
        gateway.set_sale_status(sale_id, SALE_STATUS_VOIDED)

        can_increment = gateway.has_procedure("increment_stock")
        for product_id, quantity in restored.items():
            if can_increment:
                try:
                    gateway.increment_product_stock(product_id, quantity)
                    continue
                except ProcedureNotFoundError:
                    can_increment = False
            current = gateway.get_product_stock(product_id)
            gateway.update_product_stock(product_id, current + quantity)

        gateway.record_event(
            event_type="sale.voided",
            entity_type="sale",
            entity_id=sale_id,
            sale_id=sale_id,
            note="sequential",
            payload=",".join(f"{pid}:{qty}" for pid, qty in sorted(restored.items())),
        )
        return restored


class SaleCancellationEngine:
    def __init__(self, gateway: Gateway):
        self.gateway = gateway
        self.atomic = AtomicCancellation()
        self.sequential = SequentialCancellation()
        self._strategy = self.atomic if gateway.has_procedure(AtomicCancellation.procedure) else self.sequential

    @property
    def strategy(self):
        return self._strategy

    def cancel(self, sale_id: int) -> dict[int, int]:
        """Void a sale and return {product_id: quantity restored}."""
        try:
            try:
                return self._strategy.cancel(self.gateway, sale_id)
            except ProcedureNotFoundError as exc:
                logger.warning("%s; cancelling with the sequential fallback", exc)
                self._strategy = self.sequential
                return self._strategy.cancel(self.gateway, sale_id)
        except GatewayTimeoutError as exc:
            logger.error("Cancellation of sale %s timed out, outcome unknown: %s", sale_id, exc)
            raise SaleOutcomeUnknownError(
                "La base de datos no respondió a tiempo; revisá si la venta quedó anulada",
                details={**exc.details, "sale_id": sale_id},
            ) from exc
        except GatewayError as exc:
            raise SalePersistenceError(f"No se pudo anular la venta: {exc}", details=exc.details) from exc


# ----------------------------------------------------------------------
# Entry points
# ----------------------------------------------------------------------

def settle_sale(
    request: SettlementRequest,
    *,
    gateway: Gateway,
    events: EventBus | None = None,
    stock_source: str = STOCK_SOURCE_CAPTURED,
    default_currency: str = "UYU",
) -> int:
    engine = SaleSettlementEngine(
        gateway,
        events=events,
        stock_source=stock_source,
        default_currency=default_currency,
    )
    return engine.settle(request)


def cancel_sale(sale_id: int, *, gateway: Gateway) -> dict[int, int]:
    return SaleCancellationEngine(gateway).cancel(sale_id)


def get_sale_detail(sale_id: int, *, gateway: Gateway) -> tuple[Sale, list[SaleItem], list[ComboSale]]:
    sale = gateway.get_sale(sale_id)
    if sale is None:
        raise SaleNotFoundError("Venta no encontrada", details={"sale_id": sale_id})
    return sale, gateway.select_sale_items(sale_id), list(sale.combo_sales)


def fetch_sales_by_range(
    start: datetime,
    end: datetime | None = None,
    *,
    gateway: Gateway,
    exclude_voided: bool = False,
) -> list[Sale]:
    if end is not None and end <= start:
        raise SaleValidationError("end must be after start")
    return gateway.select_sales_in_range(start, end, exclude_voided=exclude_voided)
