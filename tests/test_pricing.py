"""Tests for cart pricing and availability."""

import pytest

from errors import (
    InsufficientInventory,
    InvalidPayload,
    InvalidQuantity,
    ProductInactive,
    ProductNotFound,
)
from pricing import MAX_QUANTITY, CartLine, parse_quantity, price_cart


class TestParseQuantity:
    @pytest.mark.parametrize("value,expected", [(1, 1), (3, 3), ("2", 2), (" 4 ", 4), (2.0, 2), (MAX_QUANTITY, MAX_QUANTITY)])
    def test_accepts_positive_integers(self, value, expected):
        assert parse_quantity(value) == expected

    @pytest.mark.parametrize("value", [0, -1, "0", "abc", "1.5", 2.5, None, True, [], "", MAX_QUANTITY + 1, 10**20, 1e20])
    def test_rejects_everything_else(self, value):
        assert parse_quantity(value) is None


class TestPriceCart:
    def test_total_from_server_prices(self, ledger, make_product):
        p1 = make_product(price=500, inventory=10)
        p2 = make_product(name="Plate", price=120, inventory=None)

        priced = price_cart(ledger, [CartLine(p1, 2), CartLine(p2, 3, "gift wrap")])

        assert priced.total == 500 * 2 + 120 * 3
        assert [(i.product_id, i.name, i.price, i.quantity) for i in priced.items] == [
            (p1, "Mug", 500, 2),
            (p2, "Plate", 120, 3),
        ]
        assert priced.items[1].customization == "gift wrap"

    def test_uses_current_price(self, ledger, make_product):
        p1 = make_product(price=500)
        ledger.update(p1, {"price": 650})

        assert price_cart(ledger, [CartLine(p1, 2)]).total == 1300

    def test_repeated_pricing_is_identical(self, ledger, make_product):
        p1 = make_product(price=500, inventory=10)
        cart = [CartLine(p1, 2)]

        first = price_cart(ledger, cart)
        second = price_cart(ledger, cart)

        assert first == second

    def test_pricing_does_not_touch_inventory(self, ledger, make_product, stock):
        p1 = make_product(inventory=10)
        price_cart(ledger, [CartLine(p1, 4)])
        assert stock(p1) == 10

    def test_empty_cart(self, ledger):
        with pytest.raises(InvalidPayload):
            price_cart(ledger, [])

    def test_unknown_product(self, ledger, make_product):
        p1 = make_product()
        missing = "65a1b2c3d4e5f60718293a4b"

        with pytest.raises(ProductNotFound) as exc:
            price_cart(ledger, [CartLine(p1, 1), CartLine(missing, 1)])
        assert exc.value.product_id == missing

    def test_malformed_product_id(self, ledger):
        with pytest.raises(ProductNotFound):
            price_cart(ledger, [CartLine("not-an-id", 1)])

    def test_inactive_product(self, ledger, make_product):
        p1 = make_product(is_active=False)
        with pytest.raises(ProductInactive):
            price_cart(ledger, [CartLine(p1, 1)])

    @pytest.mark.parametrize("quantity", [0, -2, "x", None, 1.5])
    def test_invalid_quantity(self, ledger, make_product, quantity):
        p1 = make_product()
        with pytest.raises(InvalidQuantity):
            price_cart(ledger, [CartLine(p1, quantity)])

    def test_insufficient_inventory(self, ledger, make_product):
        p1 = make_product(inventory=1)
        with pytest.raises(InsufficientInventory):
            price_cart(ledger, [CartLine(p1, 2)])

    def test_repeated_lines_share_inventory(self, ledger, make_product):
        p1 = make_product(inventory=3)
        with pytest.raises(InsufficientInventory):
            price_cart(ledger, [CartLine(p1, 2), CartLine(p1, 2)])

    def test_untracked_inventory_is_unlimited(self, ledger, make_product):
        p1 = make_product(price=10, inventory=None)
        assert price_cart(ledger, [CartLine(p1, 1000)]).total == 10000
