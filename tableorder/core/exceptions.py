"""
Order Lifecycle Errors

Every failure of the ordering core is a per-request, recoverable error.
Each class carries the HTTP status the API surfaces it with, so the
FastAPI exception handler in ``tableorder.main`` needs no mapping table.
"""

from typing import Any, Optional


class OrderingError(Exception):
    """Base class for all ordering errors."""

    status_code: int = 400
    error: str = "Ordering Error"

    def __init__(self, message: str, detail: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict:
        """Convert to the ErrorResponse body."""
        return {
            "success": False,
            "error": self.error,
            "detail": self.detail if self.detail is not None else self.message,
        }


class OrderValidationError(OrderingError):
    """Malformed or missing input."""

    status_code = 422
    error = "Validation Error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, detail={"field": field, "message": message} if field else None)
        self.field = field


class InvalidTable(OrderValidationError):
    """Table identifier outside the configured range."""

    error = "Invalid Table"

    def __init__(self, table_number: Any, valid: range):
        super().__init__(
            f"Table {table_number!r} does not exist (valid: {valid.start}-{valid.stop - 1})",
            field="table_number",
        )
        self.table_number = table_number


class UnknownItem(OrderingError):
    """One or more catalog entries could not be resolved."""

    status_code = 422
    error = "Unknown Item"

    def __init__(self, menu_ids: list[int]):
        super().__init__(
            f"Menu item(s) not found: {', '.join(str(i) for i in menu_ids)}",
            detail={"menu_ids": menu_ids},
        )
        self.menu_ids = menu_ids


class InvalidAmount(OrderingError):
    """Computed subtotal is not positive."""

    status_code = 422
    error = "Invalid Amount"


class NotFound(OrderingError):
    status_code = 404
    error = "Not Found"


class NotCancellable(OrderingError):
    """Cancellation requested for an order that is no longer pending."""

    status_code = 409
    error = "Not Cancellable"

    def __init__(self, current_status: str):
        super().__init__(
            f"Order cannot be cancelled. Current status: {current_status}.",
            detail={"current_status": current_status},
        )
        self.current_status = current_status


class Conflict(OrderingError):
    """A concurrent transition won the race. Safe to retry."""

    status_code = 409
    error = "Conflict"


class OrderNotPayable(OrderingError):
    status_code = 400
    error = "Order Not Payable"

    def __init__(self, current_status: str):
        super().__init__(
            "Order is not in pending state",
            detail={"current_status": current_status},
        )
        self.current_status = current_status


class OrderExpired(OrderingError):
    status_code = 410
    error = "Order Expired"
