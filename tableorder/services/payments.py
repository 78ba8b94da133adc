"""
Payment Reconciler

Bridges the external payment side and the order lifecycle:

    - ``create_payment_qr`` builds the QR payload the customer pays with
    - ``apply_webhook`` applies a provider callback keyed by order code

The webhook caller is trusted (no signature verification) and loosely
specified, so unrecognised outcome tokens are logged and ignored rather
than failing the call.

Usage:
    from tableorder.services.payments import PaymentReconciler

    reconciler = PaymentReconciler(OrderService(db))
    await reconciler.apply_webhook("K3ZQ8M1XWA", "PAID", reference="GW-001")
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from tableorder.core.exceptions import OrderExpired, OrderNotPayable
from tableorder.models import Order, OrderStatus
from tableorder.services.orders import OrderService

logger = logging.getLogger(__name__)


class PaymentOutcome(str, Enum):
    """Outcome tokens understood from the payment provider."""
    PAID = "PAID"
    EXPIRED = "EXPIRED"

    @classmethod
    def parse(cls, raw: Optional[str]) -> Optional["PaymentOutcome"]:
        """Case-insensitive lookup; None for anything unrecognised."""
        if not raw:
            return None
        try:
            return cls(raw.strip().upper())
        except ValueError:
            return None


@dataclass
class PaymentQr:
    """
    Payment QR issued for a pending order.

    Attributes:
        order_id: Database id of the order
        order_code: Shareable order code
        amount: Amount due (order total)
        qr_string: Payload to render as QR code
        expires_at: Payment deadline
    """
    order_id: int
    order_code: str
    amount: int
    qr_string: str
    expires_at: Optional[datetime]

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "order_id": self.order_id,
            "order_code": self.order_code,
            "amount": self.amount,
            "qr_string": self.qr_string,
            "expires_at": self.expires_at,
        }


def build_qr_payload(prefix: str, order_code: str, total: int) -> str:
    """``COBEK|ORDER=K3ZQ8M1XWA|TOTAL=60500``"""
    return f"{prefix}|ORDER={order_code}|TOTAL={total}"


class PaymentReconciler:
    """Applies payment signals to orders through ``OrderService``."""

    def __init__(self, orders: OrderService):
        self.orders = orders

    async def apply_webhook(
        self,
        order_code: str,
        outcome: str,
        reference: Optional[str] = None,
    ) -> Order:
        """
        Apply a provider callback.

        ``PAID`` follows the single-order payment rules (expiry first).
        ``EXPIRED`` expires a pending order regardless of its deadline.
        Any other token is a no-op.

        Raises:
            NotFound: No order carries ``order_code``
        """
        order = await self.orders.fetch_by_code(order_code)
        parsed = PaymentOutcome.parse(outcome)

        logger.info(f"Payment webhook for {order_code}: status={outcome!r} ref={reference!r}")

        if parsed is PaymentOutcome.PAID:
            return await self.orders.confirm_payment(order, reference)
        if parsed is PaymentOutcome.EXPIRED:
            return await self.orders.force_expire(order)

        logger.warning(f"Ignoring unknown payment status {outcome!r} for order {order_code}")
        return order

    async def create_payment_qr(self, order_id: int) -> PaymentQr:
        """
        Issue the payment QR payload for a pending order.

        Raises:
            NotFound: Unknown order id
            OrderNotPayable: Order is not pending
            OrderExpired: Deadline has passed (the order is expired first)
        """
        order = await self.orders.fetch(order_id)

        if order.status != OrderStatus.PENDING:
            raise OrderNotPayable(order.status.value)

        if order.is_expired(self.orders.clock()):
            await self.orders.expire_if_stale(order)
            raise OrderExpired(f"Order {order.order_code} expired")

        payload = build_qr_payload(
            self.orders.settings.payment_qr_prefix, order.order_code, order.total
        )
        order = await self.orders.attach_qr(order, payload)

        logger.info(f"Payment QR issued for order {order.order_code}")
        return PaymentQr(
            order_id=order.id,
            order_code=order.order_code,
            amount=int(order.total),
            qr_string=payload,
            expires_at=order.expires_at,
        )
