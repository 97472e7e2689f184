"""Tests for the append-only credit and fine ledgers."""
import pytest

from arena.models.ledger import CreditEntry, FineEntry, FineStatus, LedgerReason
from arena.services.ledger_service import LedgerService


@pytest.fixture
def ledger(db_session):
    return LedgerService(db_session)


@pytest.mark.unit
def test_balance_is_zero_without_history(ledger, customer):
    assert ledger.get_credit_balance(customer.id) == 0


@pytest.mark.unit
def test_balance_is_sum_of_entries(ledger, customer):
    ledger.record_credit(customer.id, 10000, LedgerReason.CANCELLATION_REFUND)
    ledger.record_credit(customer.id, -4000, LedgerReason.BOOKING_PAYMENT)
    ledger.record_credit(customer.id, 2500, LedgerReason.CANCELLATION_REFUND)

    assert ledger.get_credit_balance(customer.id) == 8500


@pytest.mark.unit
def test_balances_are_per_customer(ledger, customer, other_customer):
    ledger.record_credit(customer.id, 3000, LedgerReason.CANCELLATION_REFUND)

    assert ledger.get_credit_balance(other_customer.id) == 0


@pytest.mark.unit
def test_zero_credit_rejected(ledger, customer):
    with pytest.raises(ValueError):
        ledger.record_credit(customer.id, 0, LedgerReason.CANCELLATION_REFUND)


@pytest.mark.unit
def test_credit_history_newest_first(ledger, customer, db_session):
    first = ledger.record_credit(customer.id, 1000, LedgerReason.CANCELLATION_REFUND)
    second = ledger.record_credit(customer.id, -500, LedgerReason.BOOKING_PAYMENT)

    history = ledger.list_credit_history(customer.id)

    assert [e.id for e in history] == [second.id, first.id]
    assert db_session.query(CreditEntry).count() == 2


@pytest.mark.unit
def test_fine_is_pending_and_counted(ledger, customer):
    fine = ledger.record_fine(customer.id, 5000, LedgerReason.LATE_CANCELLATION)

    assert fine.status == FineStatus.PENDING
    assert ledger.get_pending_fines_total(customer.id) == 5000
    assert [f.id for f in ledger.list_outstanding_fines(customer.id)] == [fine.id]


@pytest.mark.unit
def test_non_positive_fine_rejected(ledger, customer):
    with pytest.raises(ValueError):
        ledger.record_fine(customer.id, 0, LedgerReason.LATE_CANCELLATION)


@pytest.mark.unit
def test_settlement_appends_negative_row(ledger, customer, db_session):
    fine = ledger.record_fine(customer.id, 5000, LedgerReason.LATE_CANCELLATION)

    settlement = ledger.settle_fine(fine)

    assert settlement.amount == -5000
    assert settlement.status == FineStatus.PAID
    assert settlement.settles_fine_id == fine.id
    assert ledger.get_pending_fines_total(customer.id) == 0
    assert ledger.list_outstanding_fines(customer.id) == []
    # The levied row itself is never rewritten
    db_session.refresh(fine)
    assert fine.status == FineStatus.PENDING
    assert fine.amount == 5000


@pytest.mark.unit
def test_settling_twice_returns_same_row(ledger, customer, db_session):
    fine = ledger.record_fine(customer.id, 5000, LedgerReason.LATE_CANCELLATION)

    first = ledger.settle_fine(fine)
    second = ledger.settle_fine(fine)

    assert first.id == second.id
    assert db_session.query(FineEntry).filter(FineEntry.settles_fine_id == fine.id).count() == 1
    assert ledger.get_pending_fines_total(customer.id) == 0
