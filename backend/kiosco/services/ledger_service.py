# Overview: Append-only audit events for sales, stock and register operations.

from __future__ import annotations

from typing import Optional
from datetime import datetime

from ..models import LedgerEvent
from kiosco.time_utils import utcnow

"""
Ledger invariants

- Append-only: no updates or deletes of existing events.
- Events are written inside the same DB transaction as the change they record;
  this function only adds the row, the caller commits.
- occurred_at is business time; created_at is system time (DB default).
"""


def append_ledger_event(
    session,
    *,
    event_type: str,
    entity_type: str,
    entity_id: int,
    sale_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[str] = None,
) -> LedgerEvent:
    ev = LedgerEvent(
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        sale_id=sale_id,
        occurred_at=occurred_at or utcnow(),
        note=note,
        payload=payload,
    )
    session.add(ev)
    return ev
