"""
Lifecycle Classifier

Decides an order's initial status from its payment method and the branch's
auto-accept setting:

    payment method   auto-accept   initial status
    online           any           awaiting_payment
    cash             true          in_preparation
    cash             false         pending_confirmation

Online orders stay hidden from the kitchen until the payment gateway
collaborator confirms them. Unknown payment methods are rejected.
"""

from dataclasses import dataclass
from typing import Optional

from order_intake.core.config import get_settings
from order_intake.core.errors import InvalidPaymentMethod
from order_intake.models import OrderStatus, PaymentState


@dataclass(frozen=True)
class Classification:
    status: OrderStatus
    payment_state: PaymentState

    @property
    def starts_preparation(self) -> bool:
        return self.status == OrderStatus.IN_PREPARATION


def classify(
    payment_method: str,
    auto_accept: bool,
    online_methods: Optional[list[str]] = None,
    cash_methods: Optional[list[str]] = None,
) -> Classification:
    """
    Raises:
        InvalidPaymentMethod: ``payment_method`` is in neither family
    """
    settings = get_settings()
    if online_methods is None:
        online_methods = settings.online_payment_methods_list
    if cash_methods is None:
        cash_methods = settings.cash_payment_methods_list

    method = (payment_method or "").strip().lower()

    if method in online_methods:
        return Classification(OrderStatus.AWAITING_PAYMENT, PaymentState.PENDING)
    if method in cash_methods:
        status = OrderStatus.IN_PREPARATION if auto_accept else OrderStatus.PENDING_CONFIRMATION
        return Classification(status, PaymentState.PENDING_ON_DELIVERY)

    raise InvalidPaymentMethod(
        f"Unsupported payment method: {payment_method!r}",
        payment_method=payment_method,
    )
