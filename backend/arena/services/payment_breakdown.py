"""
Payment breakdown: how a booking's price splits between the customer's
credit balance and a mobile-money payment.

Integer amounts only (smallest currency unit).
"""
from dataclasses import dataclass, asdict
from typing import Optional

from arena.api.middleware.error_handler import BadRequestException, ErrorCode
from arena.lib.settings import settings
from arena.models.bookings import MobilePaymentMethod, PaymentMethod


@dataclass(frozen=True)
class PaymentBreakdown:
    """Result of splitting a total across credit and mobile money."""
    credit_amount: int
    mobile_amount: int
    total_amount: int
    payment_method: PaymentMethod
    mobile_method: Optional[MobilePaymentMethod] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["payment_method"] = self.payment_method.value
        data["mobile_method"] = self.mobile_method.value if self.mobile_method else None
        return data


def compute_breakdown(
    total_amount: int,
    credit_balance: int,
    use_credit: bool,
    mobile_method: Optional[MobilePaymentMethod] = None,
    payment_method: Optional[PaymentMethod] = None,
) -> PaymentBreakdown:
    """
    Split `total_amount` between credit and mobile money.

    Args:
        total_amount: Booking price
        credit_balance: Customer's live credit balance
        use_credit: Whether the customer asked to spend credit
        mobile_method: Wallet topping up a partial credit payment
        payment_method: Method chosen when no credit is spent

    Returns:
        PaymentBreakdown

    Raises:
        BadRequestException: MOBILE_METHOD_REQUIRED when credit covers only
            part of the total and no mobile wallet was given

    Example:
        >>> compute_breakdown(1000, 400, True, MobilePaymentMethod.WAVE)
        PaymentBreakdown(credit_amount=400, mobile_amount=600, ...)
    """
    if total_amount < 0:
        raise ValueError("total_amount must be non-negative")

    if not use_credit or credit_balance <= 0:
        method = payment_method
        if method is None:
            method = PaymentMethod(mobile_method.value) if mobile_method else PaymentMethod(settings.default_payment_method)
        return PaymentBreakdown(
            credit_amount=0,
            mobile_amount=total_amount,
            total_amount=total_amount,
            payment_method=method,
            mobile_method=mobile_method,
        )

    if credit_balance >= total_amount:
        return PaymentBreakdown(
            credit_amount=total_amount,
            mobile_amount=0,
            total_amount=total_amount,
            payment_method=PaymentMethod.CREDIT,
        )

    if mobile_method is None:
        raise BadRequestException(
            "A mobile payment method is required to complete a partial credit payment",
            details={
                "credit_balance": credit_balance,
                "remaining_amount": total_amount - credit_balance,
            },
            error_code=ErrorCode.MOBILE_METHOD_REQUIRED,
        )

    return PaymentBreakdown(
        credit_amount=credit_balance,
        mobile_amount=total_amount - credit_balance,
        total_amount=total_amount,
        payment_method=PaymentMethod.CREDIT_AND_MOBILE,
        mobile_method=mobile_method,
    )
