"""
Pydantic Schemas for Request/Response Validation

Request bodies of the ordering API and the response shapes of orders,
payment QR codes, and errors.
"""

import re
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tableorder.models import OrderStatus


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class OrderItemCreate(BaseModel):
    """Single basket line. Prices are resolved server-side."""
    menu_id: int = Field(..., ge=1, examples=[1])
    qty: int = Field(..., ge=1, examples=[2])


class OrderCreate(BaseModel):
    """Checkout request sent from the table."""

    table_number: int = Field(..., examples=[3])
    customer_token: str = Field(..., min_length=1, max_length=100, examples=["tok1"])

    customer_name: str = Field(..., min_length=1, max_length=40, examples=["Budi"])
    customer_phone: str = Field(..., min_length=1, max_length=20, examples=["081234567890"])
    customer_email: str = Field(..., max_length=255, examples=["budi@example.com"])
    customer_note: Optional[str] = Field(None, max_length=255, examples=["No ice"])

    items: List[OrderItemCreate] = Field(..., min_length=1)

    @field_validator("customer_email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        if not re.match(r'^[\w\.\+-]+@[\w\.-]+\.\w+$', v):
            raise ValueError('Invalid email format')
        return v


class MarkPaidRequest(BaseModel):
    """Staff action: settle every pending order of a table session."""
    table_number: int = Field(..., examples=[3])
    customer_token: str = Field(..., min_length=1, max_length=100, examples=["tok1"])


class PaymentWebhookPayload(BaseModel):
    """
    Provider callback.

    ``status`` stays a free-form string: unknown tokens must not fail
    validation.
    """
    order_code: str = Field(..., min_length=1, examples=["K3ZQ8M1XWA"])
    status: str = Field(..., examples=["PAID"])
    reference: Optional[str] = Field(None, max_length=100, examples=["GW-001"])


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class OrderItemResponse(BaseModel):
    """Snapshotted line item."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    menu_item_id: int
    menu_name: str
    unit_price: int
    qty: int
    line_total: int


class OrderResponse(BaseModel):
    """Response schema for a single order."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_code: str
    table_number: int
    customer_token: str
    customer_name: str
    customer_phone: str
    customer_email: str
    customer_note: Optional[str]
    subtotal: int
    other_fees: int
    total: int
    status: OrderStatus
    payment_ref: Optional[str]
    qr_string: Optional[str]
    created_at: datetime
    paid_at: Optional[datetime]
    expires_at: Optional[datetime]
    items: List[OrderItemResponse]


class MarkPaidResponse(BaseModel):
    message: str
    orders_paid: int


class PaymentQrResponse(BaseModel):
    """Payment QR issued for a pending order."""
    order_id: int
    order_code: str
    amount: int
    qr_string: str
    expires_at: Optional[datetime]


class WebhookAck(BaseModel):
    ok: bool = True


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[Any] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    redis: str
    timestamp: datetime
