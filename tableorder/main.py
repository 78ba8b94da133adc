"""
FastAPI Application Entry Point

Table Ordering API - order lifecycle for QR-code table ordering.

Endpoints:
    - POST /api/orders: Checkout (create order)
    - GET /api/orders/{order_id}: Order detail (expires stale orders)
    - PATCH /api/orders/pay: Mark all pending orders of a table session paid
    - PATCH /api/orders/{order_id}/cancel: Cancel a pending order
    - GET /api/customers/history: Paid orders of a table session
    - GET /api/customers/history/unpaid: Payable orders of a table session
    - POST /api/payments/{order_id}/create: Issue payment QR payload
    - POST /api/payments/webhook: Payment provider callback
    - GET /health: System health check
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

import redis.asyncio as aioredis
import uvicorn
from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tableorder.core.config import get_settings, setup_logging
from tableorder.core.exceptions import OrderingError
from tableorder.database import engine, get_db, init_db
from tableorder.schemas import (
    ErrorResponse,
    HealthResponse,
    MarkPaidRequest,
    MarkPaidResponse,
    OrderCreate,
    OrderResponse,
    PaymentQrResponse,
    PaymentWebhookPayload,
    WebhookAck,
)
from tableorder.services.orders import CustomerInfo, HistoryFilter, OrderService
from tableorder.services.payments import PaymentReconciler

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Tables: 1-{settings.table_count}")
    logger.info(f"   Service fee: {settings.service_fee_rate:.0%}")
    logger.info(f"   Payment window: {settings.order_expiry_minutes} min")
    logger.info("=" * 60)

    await init_db()
    logger.info("✅ Database initialized")

    yield  # Application runs

    logger.info("Shutting down...")
    await engine.dispose()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description="Table QR ordering backend: checkout, payment and order status.",
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_order_service(db: AsyncSession = Depends(get_db)) -> OrderService:
    return OrderService(db, settings=get_settings())


def get_payment_reconciler(
    orders: OrderService = Depends(get_order_service),
) -> PaymentReconciler:
    return PaymentReconciler(orders)


ERROR_RESPONSES = {
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db)
) -> HealthResponse:
    """Verify database and Redis (sweep broker) are reachable."""

    db_status = "healthy"
    try:
        await db.execute(select(func.now()))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    redis_status = "healthy"
    try:
        r = aioredis.from_url(settings.redis_url, socket_timeout=2)
        try:
            await r.ping()
        finally:
            await r.aclose()
    except Exception as e:
        redis_status = f"unhealthy: {str(e)}"
        logger.error(f"Redis health check failed: {e}")

    overall = "operational" if db_status == redis_status == "healthy" else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        redis=redis_status,
        timestamp=datetime.now(),
    )


# =============================================================================
# ORDER API ENDPOINTS
# =============================================================================

@app.post(
    "/api/orders",
    response_model=OrderResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Checkout",
)
async def create_order(
    order_data: OrderCreate,
    orders: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """
    Create a pending order from a table basket.

    Prices come from the menu, never from the client. The order must be
    paid within the configured payment window.
    """
    logger.info(f"Checkout from table {order_data.table_number} ({len(order_data.items)} line(s))")

    order = await orders.create_order(
        table_number=order_data.table_number,
        customer_token=order_data.customer_token,
        customer=CustomerInfo(
            name=order_data.customer_name,
            phone=order_data.customer_phone,
            email=order_data.customer_email,
            note=order_data.customer_note,
        ),
        items=[(item.menu_id, item.qty) for item in order_data.items],
    )
    return OrderResponse.model_validate(order)


@app.patch(
    "/api/orders/pay",
    response_model=MarkPaidResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Mark Table Session Paid",
)
async def mark_paid(
    body: MarkPaidRequest,
    orders: OrderService = Depends(get_order_service),
) -> MarkPaidResponse:
    """Mark every pending order of a table + customer token as paid."""
    updated = await orders.mark_paid(body.table_number, body.customer_token)
    return MarkPaidResponse(
        message=f"Successfully marked {updated} order(s) as paid.",
        orders_paid=updated,
    )


@app.get(
    "/api/orders/{order_id}",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def get_order(
    order_id: int,
    orders: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """Get a specific order by ID."""
    return OrderResponse.model_validate(await orders.get_order(order_id))


@app.patch(
    "/api/orders/{order_id}/cancel",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def cancel_order(
    order_id: int,
    orders: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """Cancel a pending order."""
    return OrderResponse.model_validate(await orders.cancel_order(order_id))


# =============================================================================
# CUSTOMER HISTORY
# =============================================================================

@app.get(
    "/api/customers/history",
    response_model=list[OrderResponse],
    responses=ERROR_RESPONSES,
    tags=["Customers"],
)
async def customer_history(
    table: int = Query(...),
    token: str = Query(..., min_length=1),
    orders: OrderService = Depends(get_order_service),
) -> list[OrderResponse]:
    """Paid orders of a table session, latest payment first."""
    found = await orders.list_history(table, token, HistoryFilter.PAID)
    return [OrderResponse.model_validate(order) for order in found]


@app.get(
    "/api/customers/history/unpaid",
    response_model=list[OrderResponse],
    responses=ERROR_RESPONSES,
    tags=["Customers"],
)
async def customer_unpaid(
    table: int = Query(...),
    token: str = Query(..., min_length=1),
    orders: OrderService = Depends(get_order_service),
) -> list[OrderResponse]:
    """Still-payable orders of a table session, newest first."""
    found = await orders.list_history(table, token, HistoryFilter.UNPAID)
    return [OrderResponse.model_validate(order) for order in found]


# =============================================================================
# PAYMENTS
# =============================================================================

@app.post(
    "/api/payments/{order_id}/create",
    response_model=PaymentQrResponse,
    status_code=201,
    responses={**ERROR_RESPONSES, 400: {"model": ErrorResponse}, 410: {"model": ErrorResponse}},
    tags=["Payments"],
)
async def create_payment(
    order_id: int,
    reconciler: PaymentReconciler = Depends(get_payment_reconciler),
) -> PaymentQrResponse:
    """Issue the QR payload the customer pays with."""
    qr = await reconciler.create_payment_qr(order_id)
    return PaymentQrResponse(**qr.to_dict())


@app.post(
    "/api/payments/webhook",
    response_model=WebhookAck,
    responses={404: {"model": ErrorResponse}},
    tags=["Payments"],
    summary="Payment Provider Webhook",
)
async def payment_webhook(
    payload: PaymentWebhookPayload,
    reconciler: PaymentReconciler = Depends(get_payment_reconciler),
) -> WebhookAck:
    """
    Apply a payment callback.

    Example payload: ``{"order_code": "ABCD1234", "status": "PAID", "reference": "GW-001"}``
    """
    await reconciler.apply_webhook(payload.order_code, payload.status, payload.reference)
    return WebhookAck(ok=True)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(OrderingError)
async def ordering_error_handler(request: Request, exc: OrderingError) -> JSONResponse:
    """Map ordering errors to their HTTP status."""
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.error}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    content: dict[str, Any] = {
        "success": False,
        "error": "Internal Server Error",
        "detail": str(exc) if settings.debug else "An unexpected error occurred",
    }
    return JSONResponse(status_code=500, content=content)


# =============================================================================
# ENTRY POINT
# =============================================================================

def run() -> None:
    """Serve the API on the configured host and port."""
    uvicorn.run(
        "tableorder.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
    )


if __name__ == "__main__":
    run()
