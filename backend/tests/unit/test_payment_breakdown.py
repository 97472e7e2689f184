"""Tests for splitting a price between credit and mobile money."""
import pytest

from arena.api.middleware.error_handler import BadRequestException, ErrorCode
from arena.models.bookings import MobilePaymentMethod, PaymentMethod
from arena.services.payment_breakdown import compute_breakdown


@pytest.mark.unit
def test_credit_covers_total():
    breakdown = compute_breakdown(1000, 1000, True)

    assert breakdown.credit_amount == 1000
    assert breakdown.mobile_amount == 0
    assert breakdown.payment_method == PaymentMethod.CREDIT
    assert breakdown.mobile_method is None


@pytest.mark.unit
def test_credit_above_total_spends_only_total():
    breakdown = compute_breakdown(1000, 2500, True)

    assert breakdown.credit_amount == 1000
    assert breakdown.mobile_amount == 0


@pytest.mark.unit
def test_partial_credit_with_mobile_method():
    breakdown = compute_breakdown(1000, 400, True, MobilePaymentMethod.WAVE)

    assert breakdown.credit_amount == 400
    assert breakdown.mobile_amount == 600
    assert breakdown.mobile_method == MobilePaymentMethod.WAVE
    assert breakdown.payment_method == PaymentMethod.CREDIT_AND_MOBILE


@pytest.mark.unit
def test_partial_credit_without_mobile_method_is_rejected():
    with pytest.raises(BadRequestException) as exc_info:
        compute_breakdown(1000, 400, True)

    assert exc_info.value.error_code == ErrorCode.MOBILE_METHOD_REQUIRED
    assert exc_info.value.details == {"credit_balance": 400, "remaining_amount": 600}


@pytest.mark.unit
def test_credit_not_requested_ignores_balance():
    breakdown = compute_breakdown(1000, 5000, False, payment_method=PaymentMethod.WAVE)

    assert breakdown.credit_amount == 0
    assert breakdown.mobile_amount == 1000
    assert breakdown.payment_method == PaymentMethod.WAVE


@pytest.mark.unit
def test_empty_balance_falls_back_to_mobile_method():
    breakdown = compute_breakdown(1000, 0, True, MobilePaymentMethod.ORANGE_MONEY)

    assert breakdown.credit_amount == 0
    assert breakdown.mobile_amount == 1000
    assert breakdown.payment_method == PaymentMethod.ORANGE_MONEY


@pytest.mark.unit
def test_no_method_given_uses_default():
    breakdown = compute_breakdown(1000, 0, False)

    assert breakdown.payment_method == PaymentMethod.ORANGE_MONEY


@pytest.mark.unit
def test_amounts_always_sum_to_total():
    for balance in (0, 1, 999, 1000, 1001):
        breakdown = compute_breakdown(1000, balance, True, MobilePaymentMethod.WAVE)
        assert breakdown.credit_amount + breakdown.mobile_amount == 1000
        assert 0 <= breakdown.credit_amount <= balance


@pytest.mark.unit
def test_negative_total_rejected():
    with pytest.raises(ValueError):
        compute_breakdown(-1, 0, False)


@pytest.mark.unit
def test_to_dict_serializes_enums():
    data = compute_breakdown(1000, 400, True, MobilePaymentMethod.WAVE).to_dict()

    assert data == {
        "credit_amount": 400,
        "mobile_amount": 600,
        "total_amount": 1000,
        "payment_method": "credit_and_mobile",
        "mobile_method": "wave",
    }
