"""
Order Service

Owns the order lifecycle:

    pending ──► paid
       │
       ├──────► expired
       │
       └──────► cancelled

Every transition out of ``pending`` is a single
``UPDATE ... WHERE status = 'pending'`` statement, so two requests racing
on the same order (e.g. a payment webhook and a cancel) cannot both win.
The staleness check lives in ``expire_if_stale`` / ``sweep_expired`` and
both rely on ``Order.stale_clause`` for the comparison.
"""

import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tableorder.core.config import Settings, get_settings
from tableorder.core.exceptions import Conflict, InvalidTable, NotCancellable, NotFound
from tableorder.models import MenuItem, Order, OrderItem, OrderStatus
from tableorder.services.pricing import CatalogPrice, calculate_totals

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

ORDER_CODE_ALPHABET = string.ascii_uppercase + string.digits


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_order_code(length: int = 10) -> str:
    """Random upper-case alphanumeric code, e.g. ``"K3ZQ8M1XWA"``."""
    return "".join(secrets.choice(ORDER_CODE_ALPHABET) for _ in range(length))


class HistoryFilter(str, Enum):
    """Which slice of a customer's orders to list."""
    PAID = "paid"
    UNPAID = "unpaid"


@dataclass
class CustomerInfo:
    """Contact details captured at checkout."""
    name: str
    phone: str
    email: str
    note: Optional[str] = None


class OrderService:
    """
    Order lifecycle operations bound to one database session.

    Args:
        db: Request-scoped async session
        settings: Business configuration (defaults to ``get_settings()``)
        clock: Source of "now"; injectable for tests

    Example:
        >>> service = OrderService(db)
        >>> order = await service.create_order(3, "tok1", customer, [(1, 2), (2, 1)])
        >>> order.total
        60500
    """

    def __init__(
        self,
        db: AsyncSession,
        settings: Optional[Settings] = None,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.clock = clock

    # =========================================================================
    # CREATE
    # =========================================================================

    async def create_order(
        self,
        table_number: int,
        customer_token: str,
        customer: CustomerInfo,
        items: Sequence[tuple[int, int]],
    ) -> Order:
        """
        Price the basket and persist the order with its line items.

        The order row and all item rows are committed in one transaction.
        A colliding order code rolls the whole attempt back and retries
        with a fresh code.

        Raises:
            InvalidTable: Unknown table number
            UnknownItem: A menu id cannot be resolved
            InvalidAmount: Non-positive subtotal
            Conflict: No unique order code within the retry budget
        """
        self._check_table(table_number)

        prices = await self._load_prices({menu_id for menu_id, _ in items})
        quote = calculate_totals(items, prices, self.settings.service_fee_rate)

        now = self.clock()
        expires_at = now + timedelta(minutes=self.settings.order_expiry_minutes)

        for attempt in range(1, self.settings.order_code_max_attempts + 1):
            order_code = generate_order_code(self.settings.order_code_length)
            order = Order(
                order_code=order_code,
                table_number=table_number,
                customer_token=customer_token,
                customer_name=customer.name,
                customer_phone=customer.phone,
                customer_email=customer.email,
                customer_note=customer.note,
                subtotal=quote.subtotal,
                other_fees=quote.fee,
                total=quote.total,
                status=OrderStatus.PENDING,
                created_at=now,
                expires_at=expires_at,
                items=[
                    OrderItem(
                        menu_item_id=line.menu_id,
                        menu_name=line.name,
                        unit_price=line.unit_price,
                        qty=line.qty,
                        line_total=line.line_total,
                    )
                    for line in quote.lines
                ],
            )
            self.db.add(order)

            try:
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                if not await self._code_exists(order_code):
                    raise
                logger.warning(
                    f"Order code collision on {order_code} "
                    f"(attempt {attempt}/{self.settings.order_code_max_attempts})"
                )
                continue
            except Exception:
                await self.db.rollback()
                raise

            logger.info(
                f"Order {order.order_code} created: table {table_number}, "
                f"{len(quote.lines)} line(s), total {order.total}"
            )
            return await self.fetch(order.id)

        raise Conflict("Could not allocate a unique order code, please retry")

    # =========================================================================
    # READ
    # =========================================================================

    async def fetch(self, order_id: int) -> Order:
        """Load an order as stored, without the expiry check."""
        order = await self._first(select(Order).where(Order.id == order_id))
        if order is None:
            raise NotFound(f"Order #{order_id} not found")
        return order

    async def fetch_by_code(self, order_code: str) -> Order:
        """Codes are issued upper-case; lookups ignore case and padding."""
        order_code = order_code.strip().upper()
        order = await self._first(select(Order).where(Order.order_code == order_code))
        if order is None:
            raise NotFound(f"Order {order_code} not found")
        return order

    async def get_order(self, order_id: int) -> Order:
        """Load an order, expiring it first if its deadline has passed."""
        return await self.expire_if_stale(await self.fetch(order_id))

    async def list_history(
        self,
        table_number: int,
        customer_token: str,
        status_filter: HistoryFilter = HistoryFilter.PAID,
    ) -> list[Order]:
        """
        Orders of one table session.

        ``PAID`` lists paid orders, latest payment first. ``UNPAID`` lists
        pending orders that are still payable, newest first. Stale pending
        orders are swept before filtering.
        """
        self._check_table(table_number)
        await self.sweep_expired()

        query = select(Order).where(
            Order.table_number == table_number,
            Order.customer_token == customer_token,
        )
        if status_filter == HistoryFilter.PAID:
            query = query.where(Order.status == OrderStatus.PAID).order_by(Order.paid_at.desc())
        else:
            query = query.where(
                Order.status == OrderStatus.PENDING,
                Order.expires_at.is_not(None),
                Order.expires_at > self.clock(),
            ).order_by(Order.created_at.desc())

        result = await self.db.execute(query.execution_options(populate_existing=True))
        return list(result.scalars().all())

    # =========================================================================
    # EXPIRY
    # =========================================================================

    async def expire_if_stale(self, order: Order) -> Order:
        """
        Move a pending order past its deadline to ``expired``.

        Idempotent: terminal or still-valid orders are returned untouched.
        """
        now = self.clock()
        if not order.is_expired(now):
            return order

        if await self._transition(order.id, OrderStatus.EXPIRED, Order.stale_clause(now)):
            logger.info(f"Order {order.order_code} expired (deadline {order.expires_at})")
        return await self.fetch(order.id)

    async def sweep_expired(
        self,
        table_number: Optional[int] = None,
        customer_token: Optional[str] = None,
    ) -> int:
        """
        Expire every stale pending order, optionally for one table session.

        Returns:
            int: Number of orders moved to ``expired``
        """
        stmt = update(Order).where(Order.stale_clause(self.clock()))
        if table_number is not None:
            stmt = stmt.where(Order.table_number == table_number)
        if customer_token is not None:
            stmt = stmt.where(Order.customer_token == customer_token)

        result = await self.db.execute(
            stmt.values(status=OrderStatus.EXPIRED).execution_options(synchronize_session=False)
        )
        await self.db.commit()

        if result.rowcount:
            logger.info(f"Expiry sweep: {result.rowcount} order(s) expired")
        return result.rowcount

    async def force_expire(self, order: Order) -> Order:
        """Expire a pending order regardless of its deadline."""
        if order.status != OrderStatus.PENDING:
            logger.info(f"Order {order.order_code} already {order.status.value}, expire ignored")
            return order

        if await self._transition(order.id, OrderStatus.EXPIRED):
            logger.info(f"Order {order.order_code} expired by payment provider")
        return await self.fetch(order.id)

    # =========================================================================
    # PAYMENT
    # =========================================================================

    async def confirm_payment(self, order: Order, reference: Optional[str] = None) -> Order:
        """
        Mark a single order paid.

        The expiry check runs first: an order past its deadline becomes
        ``expired`` and is not paid. Orders that are already terminal are
        returned unchanged.

        Raises:
            Conflict: Another transition won the race
        """
        order = await self.expire_if_stale(order)
        if order.status != OrderStatus.PENDING:
            logger.warning(
                f"Payment for order {order.order_code} rejected: status is {order.status.value}"
            )
            return order

        values = {"paid_at": self.clock()}
        if reference:
            values["payment_ref"] = reference

        if not await self._transition(order.id, OrderStatus.PAID, **values):
            raise Conflict(f"Order {order.order_code} changed state during payment, please retry")

        logger.info(f"Order {order.order_code} paid (ref={reference})")
        return await self.fetch(order.id)

    async def mark_paid(self, table_number: int, customer_token: str) -> int:
        """
        Mark every pending order of a table session as paid.

        Individual deadlines are not re-checked unless
        ``bulk_pay_rechecks_expiry`` is enabled, in which case stale orders
        of the session are expired first and left unpaid.

        Returns:
            int: Number of orders moved to ``paid``
        """
        self._check_table(table_number)

        if self.settings.bulk_pay_rechecks_expiry:
            await self.sweep_expired(table_number=table_number, customer_token=customer_token)

        stmt = (
            update(Order)
            .where(
                Order.table_number == table_number,
                Order.customer_token == customer_token,
                Order.status == OrderStatus.PENDING,
            )
            .values(status=OrderStatus.PAID, paid_at=self.clock())
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()

        logger.info(f"Table {table_number}: {result.rowcount} order(s) marked paid")
        return result.rowcount

    async def attach_qr(self, order: Order, qr_string: str) -> Order:
        """Store the payment QR payload on a pending order."""
        stmt = (
            update(Order)
            .where(Order.id == order.id, Order.status == OrderStatus.PENDING)
            .values(qr_string=qr_string)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        if result.rowcount != 1:
            raise Conflict(f"Order {order.order_code} changed state, please retry")
        return await self.fetch(order.id)

    # =========================================================================
    # CANCEL
    # =========================================================================

    async def cancel_order(self, order_id: int) -> Order:
        """
        Cancel a pending order.

        Raises:
            NotFound: Unknown order id
            NotCancellable: Order is paid, expired or already cancelled
            Conflict: Another transition won the race
        """
        order = await self.get_order(order_id)
        if order.status != OrderStatus.PENDING:
            raise NotCancellable(order.status.value)

        if not await self._transition(order.id, OrderStatus.CANCELLED):
            current = await self.fetch(order.id)
            raise Conflict(
                f"Order {order.order_code} changed state to {current.status.value}",
                detail={"current_status": current.status.value},
            )

        logger.info(f"Order {order.order_code} cancelled")
        return await self.fetch(order.id)

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _check_table(self, table_number: int) -> None:
        if table_number not in self.settings.valid_tables:
            raise InvalidTable(table_number, self.settings.valid_tables)

    async def _load_prices(self, menu_ids: set[int]) -> dict[int, CatalogPrice]:
        if not menu_ids:
            return {}
        result = await self.db.execute(
            select(MenuItem).where(MenuItem.id.in_(menu_ids), MenuItem.is_active.is_(True))
        )
        return {
            item.id: CatalogPrice(menu_id=item.id, name=item.name, price=item.price)
            for item in result.scalars()
        }

    async def _code_exists(self, order_code: str) -> bool:
        result = await self.db.execute(select(Order.id).where(Order.order_code == order_code))
        return result.first() is not None

    async def _first(self, query) -> Optional[Order]:
        result = await self.db.execute(query.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def _transition(self, order_id: int, target: OrderStatus, *conditions, **values) -> bool:
        """Compare-and-set ``pending`` -> ``target``. True if this call won."""
        stmt = (
            update(Order)
            .where(Order.id == order_id, Order.status == OrderStatus.PENDING, *conditions)
            .values(status=target, **values)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount == 1
