"""
SQLAlchemy Database Models

Orders placed from a table QR code, their snapshotted line items, and
the menu catalog the prices are resolved against.
"""

import enum
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    and_,
)
from sqlalchemy.orm import relationship

from tableorder.database import Base


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from backends without tz support."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class OrderStatus(str, enum.Enum):
    """
    Order status workflow.

    PENDING is the only non-terminal state; every transition leaves it
    for good.
    """
    PENDING = "pending"
    PAID = "paid"
    EXPIRED = "expired"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not OrderStatus.PENDING


class MenuItem(Base):
    """
    Catalog entry.

    Owned by menu management; the ordering core only reads it to resolve
    the current price at checkout.
    """
    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False, index=True)
    price = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<MenuItem #{self.id} - {self.name} - {self.price}>"


class Order(Base):
    """
    One checkout attempt from a table.

    Tracks the lifecycle from checkout to payment, expiry or cancellation.
    """
    __tablename__ = "orders"
    __table_args__ = (
        Index("ix_orders_status_expires_at", "status", "expires_at"),
        Index("ix_orders_table_token", "table_number", "customer_token"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # =========================================================================
    # IDENTITY
    # =========================================================================
    order_code = Column(String(32), nullable=False, unique=True, index=True)
    table_number = Column(Integer, nullable=False, index=True)
    customer_token = Column(String(100), nullable=False, index=True)

    # =========================================================================
    # CUSTOMER INFORMATION
    # =========================================================================
    customer_name = Column(String(40), nullable=False)
    customer_phone = Column(String(20), nullable=False)
    customer_email = Column(String(255), nullable=False)
    customer_note = Column(String(255), nullable=True)

    # =========================================================================
    # PRICING (whole currency units)
    # =========================================================================
    subtotal = Column(Integer, nullable=False)
    other_fees = Column(Integer, nullable=False, default=0)
    total = Column(Integer, nullable=False)

    # =========================================================================
    # STATUS & PAYMENT
    # =========================================================================
    status = Column(
        Enum(OrderStatus),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True
    )
    payment_ref = Column(String(100), nullable=True)
    qr_string = Column(String(255), nullable=True)

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.id",
    )

    @classmethod
    def stale_clause(cls, now: datetime):
        """SQL predicate matching pending orders whose deadline has passed."""
        return and_(
            cls.status == OrderStatus.PENDING,
            cls.expires_at.is_not(None),
            cls.expires_at < now,
        )

    def is_expired(self, now: datetime) -> bool:
        """In-memory twin of ``stale_clause``."""
        expires_at = as_utc(self.expires_at)
        return (
            not OrderStatus(self.status).is_terminal
            and expires_at is not None
            and now > expires_at
        )

    def __repr__(self):
        return f"<Order #{self.id} {self.order_code} - table {self.table_number} - {self.status.value}>"


class OrderItem(Base):
    """
    Immutable snapshot of one ordered menu item.

    Name and unit price are copied at checkout so that later catalog
    edits never rewrite historical orders.
    """
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(
        Integer,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    menu_item_id = Column(
        Integer,
        ForeignKey("menu_items.id", ondelete="RESTRICT"),
        nullable=False,
    )
    menu_name = Column(String(120), nullable=False)
    unit_price = Column(Integer, nullable=False)
    qty = Column(Integer, nullable=False)
    line_total = Column(Integer, nullable=False)

    order = relationship("Order", back_populates="items")

    def __repr__(self):
        return f"<OrderItem {self.menu_name} x{self.qty} = {self.line_total}>"
