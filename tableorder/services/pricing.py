"""
Pricing Calculator

Pure functions that turn a basket of ``(menu_id, qty)`` lines into
priced snapshot lines and order totals. Prices always come from the
catalog lookup handed in by the caller, never from the client.

Example:
    >>> prices = {1: CatalogPrice(1, "Nasi Goreng", 20000), 2: CatalogPrice(2, "Es Teh", 15000)}
    >>> quote = calculate_totals([(1, 2), (2, 1)], prices, Decimal("0.10"))
    >>> quote.subtotal, quote.fee, quote.total
    (55000, 5500, 60500)
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Mapping, Union

from tableorder.core.exceptions import InvalidAmount, OrderValidationError, UnknownItem


@dataclass(frozen=True)
class CatalogPrice:
    """Price of a catalog entry as known at checkout time."""
    menu_id: int
    name: str
    price: int


@dataclass(frozen=True)
class PricedLine:
    """
    One priced basket line.

    Attributes:
        menu_id: Source catalog entry (traceability only)
        name: Snapshotted catalog name
        unit_price: Snapshotted catalog price
        qty: Ordered quantity (>= 1)
    """
    menu_id: int
    name: str
    unit_price: int
    qty: int

    @property
    def line_total(self) -> int:
        return self.unit_price * self.qty


@dataclass(frozen=True)
class Quote:
    """Priced basket: snapshot lines plus subtotal, fee and total."""
    lines: tuple[PricedLine, ...]
    subtotal: int
    fee: int

    @property
    def total(self) -> int:
        return self.subtotal + self.fee


def compute_fee(subtotal: int, rate: Union[Decimal, float, str]) -> int:
    """
    Apply ``rate`` to ``subtotal``, rounding half-up to a whole currency unit.

    Floats are converted through ``str`` so 0.1 means exactly one tenth.
    """
    rate = rate if isinstance(rate, Decimal) else Decimal(str(rate))
    return int((Decimal(subtotal) * rate).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def calculate_totals(
    items: Iterable[tuple[int, int]],
    prices: Mapping[int, CatalogPrice],
    fee_rate: Union[Decimal, float, str],
) -> Quote:
    """
    Price a basket against the catalog.

    Args:
        items: ``(menu_id, qty)`` pairs as submitted by the customer
        prices: Catalog lookup keyed by menu id
        fee_rate: Service fee rate applied to the subtotal

    Returns:
        Quote: Snapshot lines and totals

    Raises:
        OrderValidationError: A quantity is below 1
        UnknownItem: A menu id is missing from ``prices``
        InvalidAmount: The subtotal is not positive
    """
    items = list(items)

    missing = sorted({menu_id for menu_id, _ in items if menu_id not in prices})
    if missing:
        raise UnknownItem(missing)

    lines = []
    for menu_id, qty in items:
        if qty < 1:
            raise OrderValidationError(f"Quantity for menu item {menu_id} must be at least 1", field="items")
        entry = prices[menu_id]
        lines.append(PricedLine(menu_id=menu_id, name=entry.name, unit_price=int(entry.price), qty=int(qty)))

    subtotal = sum(line.line_total for line in lines)
    if subtotal <= 0:
        raise InvalidAmount("Invalid order amount.", detail={"subtotal": subtotal})

    return Quote(lines=tuple(lines), subtotal=subtotal, fee=compute_fee(subtotal, fee_rate))
