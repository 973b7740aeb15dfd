"""
Post-sale event bus.

Settlement publishes a SaleSettled event once the sale is persisted.
Subscribers (the strategic-insight generator, loggers, dashboards) run on a
worker pool, each inside its own error boundary: a subscriber that raises or
stalls never reaches the caller that settled the sale.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from blinker import Namespace
from flask import current_app

from ..extensions import db

logger = logging.getLogger(__name__)

EXTENSION_KEY = "kiosco_events"


@dataclass(frozen=True)
class SoldItem:
    product_id: int
    quantity: int
    unit_price_cents: int


@dataclass(frozen=True)
class SaleSettled:
    sale_id: int
    total_cents: int
    payment_method: str
    currency: str
    items: tuple[SoldItem, ...]
    occurred_at: datetime
    path: str = "atomic"
    combo_names: tuple[str, ...] = field(default_factory=tuple)


Handler = Callable[[SaleSettled], None]


class EventBus:
    """
    Sale observers on a blinker signal, dispatched through a worker pool.

    Handlers take the event as their only argument. Async handlers run inside
    an app context of their own, so they can use db.session.
    """

    def __init__(self, *, sync: bool = False, max_workers: int = 2, app=None):
        # One namespace per bus; blinker caches signals by name within it
        self._signal = Namespace().signal("sale-settled")
        self._sync = sync
        self._app = app
        self._executor = None if sync else ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="kiosco-events"
        )

    def subscribe(self, handler: Handler) -> Handler:
        """Register a handler. Usable as a decorator."""
        return self._signal.connect(handler, weak=False)

    def unsubscribe(self, handler: Handler) -> None:
        self._signal.disconnect(handler)

    @property
    def handlers(self) -> tuple[Handler, ...]:
        return tuple(self._signal.receivers_for(self))

    def publish(self, event: SaleSettled) -> list[Future]:
        """
        Fan the event out to every handler.

        Never raises. In async mode returns the futures (mostly for tests).
        """
        futures: list[Future] = []
        for handler in self.handlers:
            if self._executor is None:
                _run_guarded(handler, event)
                continue
            try:
                futures.append(self._executor.submit(_run_in_app, self._app, handler, event))
            except RuntimeError:
                # Executor already shut down (app teardown)
                logger.warning("Event bus closed, dropping %s for sale %s", type(event).__name__, event.sale_id)
        return futures

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)


def _run_guarded(handler: Handler, event: SaleSettled) -> None:
    try:
        handler(event)
    except Exception:
        logger.exception(
            "Sale observer %s failed for sale %s",
            getattr(handler, "__name__", repr(handler)),
            event.sale_id,
        )


def _run_in_app(app, handler: Handler, event: SaleSettled) -> None:
    if app is None:
        _run_guarded(handler, event)
        return
    with app.app_context():
        try:
            _run_guarded(handler, event)
        finally:
            db.session.remove()


def log_sale_settled(event: SaleSettled) -> None:
    """Default subscriber: one structured log line per settled sale."""
    logger.info(
        "Sale %s settled via %s path: total_cents=%s method=%s items=%s combos=%s",
        event.sale_id,
        event.path,
        event.total_cents,
        event.payment_method,
        len(event.items),
        len(event.combo_names),
    )


def init_events(app) -> EventBus:
    bus = EventBus(
        sync=app.config.get("EVENTS_SYNC", False),
        max_workers=app.config.get("EVENT_WORKERS", 2),
        app=app,
    )
    bus.subscribe(log_sale_settled)
    app.extensions[EXTENSION_KEY] = bus
    return bus


def get_event_bus() -> EventBus:
    return current_app.extensions[EXTENSION_KEY]
