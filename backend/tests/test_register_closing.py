"""Cash register closing tests."""

from datetime import timedelta, timezone

import pytest

from kiosco.models import CashRegisterClosing, LedgerEvent, Sale, SALE_STATUS_VOIDED
from kiosco.services.register_service import (
    AlreadyClosedError,
    NothingToCloseError,
    bucket_for,
    close_cash_register,
    get_today_closing,
    has_closing_today,
    list_closings,
    preview_closing,
)
from kiosco.time_utils import utcnow


UTC = timezone.utc


def _close(gateway, note=None, **kwargs):
    return close_cash_register(note, gateway=gateway, zone=UTC, **kwargs)


@pytest.mark.parametrize("method,bucket", [
    ("efectivo", "cash"),
    ("EFECTIVO", "cash"),
    ("debito", "debit"),
    ("Débito", "debit"),
    ("DÉBITO ", "debit"),
    ("transferencia", "transfer"),
    ("Transferencia", "transfer"),
    ("credito", "cash"),
    ("mercadopago", "cash"),
    ("", "cash"),
    (None, "cash"),
])
def test_bucket_for(method, bucket):
    assert bucket_for(method) == bucket


class TestCloseCashRegister:
    def test_efectivo_and_debito(self, gateway, db_session):
        gateway.insert_sale("efectivo", 10000, None, "UYU")
        gateway.insert_sale("Débito", 5000, None, "UYU")

        closing = _close(gateway)

        assert closing.cash_cents == 10000
        assert closing.debit_cents == 5000
        assert closing.transfer_cents == 0
        assert closing.total_cents == 15000
        assert closing.sales_count == 2

    def test_second_closing_same_day_is_rejected(self, gateway, db_session):
        gateway.insert_sale("efectivo", 10000, None, "UYU")
        _close(gateway)
        gateway.insert_sale("efectivo", 2000, None, "UYU")

        with pytest.raises(AlreadyClosedError):
            _close(gateway)
        with pytest.raises(AlreadyClosedError):
            _close(gateway)

        assert db_session.query(CashRegisterClosing).count() == 1

    def test_nothing_to_close(self, gateway, db_session):
        with pytest.raises(NothingToCloseError):
            _close(gateway)
        assert db_session.query(CashRegisterClosing).count() == 0

    def test_secondary_currency_has_its_own_bucket(self, gateway):
        gateway.insert_sale("efectivo", 10000, None, "UYU")
        gateway.insert_sale("efectivo", 3000, None, "BRL")
        gateway.insert_sale("transferencia", 4000, None, "UYU")

        closing = _close(gateway)

        assert closing.cash_cents == 10000
        assert closing.transfer_cents == 4000
        assert closing.secondary_currency_cents == 3000
        assert closing.total_cents == 14000
        assert closing.sales_count == 3

    def test_unknown_methods_count_as_cash(self, gateway):
        gateway.insert_sale("credito", 1000, None, "UYU")
        gateway.insert_sale("mercadopago", 2000, None, "UYU")

        closing = _close(gateway)

        assert closing.cash_cents == 3000
        assert closing.total_cents == 3000

    def test_voided_sales_are_included_by_default(self, gateway):
        gateway.insert_sale("efectivo", 1000, None, "UYU")
        voided = gateway.insert_sale("efectivo", 500, None, "UYU")
        gateway.set_sale_status(voided, SALE_STATUS_VOIDED)

        closing = _close(gateway)

        assert closing.sales_count == 2
        assert closing.total_cents == 1500

    def test_voided_sales_can_be_excluded(self, gateway):
        gateway.insert_sale("efectivo", 1000, None, "UYU")
        voided = gateway.insert_sale("efectivo", 500, None, "UYU")
        gateway.set_sale_status(voided, SALE_STATUS_VOIDED)

        closing = _close(gateway, exclude_voided=True)

        assert closing.sales_count == 1
        assert closing.total_cents == 1000

    def test_only_todays_sales(self, gateway, db_session):
        old = gateway.insert_sale("efectivo", 9999, None, "UYU")
        db_session.get(Sale, old).sold_at = utcnow() - timedelta(days=1, hours=1)
        db_session.commit()
        gateway.insert_sale("efectivo", 1000, None, "UYU")

        closing = _close(gateway)

        assert closing.sales_count == 1
        assert closing.total_cents == 1000

    def test_yesterdays_closing_does_not_block_today(self, gateway, db_session):
        db_session.add(CashRegisterClosing(
            closed_at=utcnow() - timedelta(days=1, hours=1),
            sales_count=1,
            total_cents=100,
        ))
        db_session.commit()
        gateway.insert_sale("efectivo", 1000, None, "UYU")

        closing = _close(gateway, note="  turno noche ")

        assert closing.notes == "turno noche"
        assert db_session.query(CashRegisterClosing).count() == 2

    def test_closing_is_recorded_in_the_ledger(self, gateway, db_session):
        gateway.insert_sale("efectivo", 1000, None, "UYU")
        closing = _close(gateway)

        event = db_session.query(LedgerEvent).filter_by(event_type="register.closed").one()
        assert event.entity_id == closing.id


class TestClosingQueries:
    def test_today_closing(self, gateway):
        assert has_closing_today(gateway=gateway, zone=UTC) is False
        assert get_today_closing(gateway=gateway, zone=UTC) is None

        gateway.insert_sale("efectivo", 1000, None, "UYU")
        closing = _close(gateway)

        assert has_closing_today(gateway=gateway, zone=UTC) is True
        assert get_today_closing(gateway=gateway, zone=UTC).id == closing.id

    def test_list_closings_newest_first(self, gateway, db_session):
        for days_ago in (3, 1, 2):
            db_session.add(CashRegisterClosing(
                closed_at=utcnow() - timedelta(days=days_ago),
                sales_count=1,
                total_cents=days_ago,
            ))
        db_session.commit()

        closings = list_closings(gateway=gateway, limit=2)

        assert [c.total_cents for c in closings] == [1, 2]

    def test_preview_does_not_write(self, gateway, db_session):
        gateway.insert_sale("efectivo", 1000, None, "UYU")
        gateway.insert_sale("debito", 500, None, "UYU")

        totals = preview_closing(gateway=gateway, zone=UTC)

        assert totals.cash_cents == 1000
        assert totals.debit_cents == 500
        assert db_session.query(CashRegisterClosing).count() == 0
