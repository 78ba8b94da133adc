"""
Pricing calculator tests.
"""

from decimal import Decimal

import pytest

from tableorder.core.exceptions import InvalidAmount, OrderValidationError, UnknownItem
from tableorder.services.pricing import CatalogPrice, calculate_totals, compute_fee

PRICES = {
    1: CatalogPrice(1, "Nasi Goreng", 20000),
    2: CatalogPrice(2, "Es Teh Manis", 15000),
    3: CatalogPrice(3, "Kerupuk", 2500),
    4: CatalogPrice(4, "Air Putih", 0),
    5: CatalogPrice(5, "Sambal", 5),
}


class TestCalculateTotals:

    def test_reference_basket(self):
        quote = calculate_totals([(1, 2), (2, 1)], PRICES, Decimal("0.10"))

        assert quote.subtotal == 55000
        assert quote.fee == 5500
        assert quote.total == 60500

    def test_lines_snapshot_catalog_values(self):
        quote = calculate_totals([(1, 2), (3, 3)], PRICES, 0.1)

        first, second = quote.lines
        assert (first.menu_id, first.name, first.unit_price, first.qty) == (1, "Nasi Goreng", 20000, 2)
        assert first.line_total == 40000
        assert second.line_total == 7500

    @pytest.mark.parametrize("basket", [
        [(1, 1)],
        [(3, 1)],
        [(3, 7), (5, 3)],
        [(1, 3), (2, 2), (3, 5), (5, 1)],
        [(5, 1)],
    ])
    def test_total_is_subtotal_plus_rounded_fee(self, basket):
        quote = calculate_totals(basket, PRICES, 0.10)

        assert quote.total == quote.subtotal + quote.fee
        assert quote.fee == compute_fee(quote.subtotal, "0.10")
        assert quote.subtotal == sum(PRICES[m].price * q for m, q in basket)

    def test_duplicate_ids_are_separate_lines(self):
        quote = calculate_totals([(1, 1), (1, 2)], PRICES, 0.1)

        assert len(quote.lines) == 2
        assert quote.subtotal == 60000

    def test_unknown_item_lists_missing_ids(self):
        with pytest.raises(UnknownItem) as exc_info:
            calculate_totals([(1, 1), (99, 1), (42, 2)], PRICES, 0.1)

        assert exc_info.value.menu_ids == [42, 99]

    def test_zero_priced_basket_is_invalid(self):
        with pytest.raises(InvalidAmount):
            calculate_totals([(4, 3)], PRICES, 0.1)

    def test_empty_basket_is_invalid(self):
        with pytest.raises(InvalidAmount):
            calculate_totals([], PRICES, 0.1)

    def test_quantity_below_one_rejected(self):
        with pytest.raises(OrderValidationError):
            calculate_totals([(1, 2), (2, -1)], PRICES, 0.1)


class TestComputeFee:

    @pytest.mark.parametrize("subtotal,expected", [
        (5, 1),      # 0.5 rounds up
        (15, 2),     # 1.5 rounds up
        (24, 2),     # 2.4 rounds down
        (25, 3),     # 2.5 rounds up
        (55000, 5500),
    ])
    def test_round_half_up(self, subtotal, expected):
        assert compute_fee(subtotal, Decimal("0.10")) == expected

    def test_float_rate_is_exact(self):
        # 0.1 as a binary float is slightly above one tenth
        assert compute_fee(35, 0.1) == 4
        assert compute_fee(45, 0.1) == 5

    def test_zero_rate(self):
        assert compute_fee(55000, 0) == 0
