"""
                        Services Module

Business logic of the ordering core.

Services:
    - pricing: Pure basket pricing against catalog prices
    - orders: Order lifecycle (create, expire, pay, cancel, history)
    - payments: Payment QR issuing and provider webhook reconciliation
"""

from tableorder.services.orders import CustomerInfo, HistoryFilter, OrderService
from tableorder.services.payments import PaymentOutcome, PaymentQr, PaymentReconciler
from tableorder.services.pricing import CatalogPrice, Quote, calculate_totals

__all__ = [
    "CatalogPrice",
    "CustomerInfo",
    "HistoryFilter",
    "OrderService",
    "PaymentOutcome",
    "PaymentQr",
    "PaymentReconciler",
    "Quote",
    "calculate_totals",
]
