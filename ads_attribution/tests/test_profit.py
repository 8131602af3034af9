from decimal import Decimal

from django.test import SimpleTestCase

from ads_attribution.services.profit import (
    Disabled,
    Simple,
    WindowAllocation,
    compute_profit,
    parse_profit_config,
)


class ParseProfitConfigTest(SimpleTestCase):
    def test_simple(self):
        config = parse_profit_config({"mode": "simple", "simple": {"percent_of_revenue": 30, "fixed_per_order": "2.5"}})
        self.assertEqual(config, Simple(percent=Decimal("30"), fixed_per_order=Decimal("2.5")))

    def test_window_allocation(self):
        self.assertEqual(parse_profit_config({"mode": "window_allocation"}), WindowAllocation())

    def test_anything_else_is_disabled(self):
        for raw in (None, {}, "simple", {"mode": "magic"}, {"mode": "simple"},
                    {"mode": "simple", "simple": {"percent_of_revenue": "abc"}},
                    {"mode": "simple", "simple": {"percent_of_revenue": 150}},
                    {"mode": "simple", "simple": {"fixed_per_order": -1}},
                    {"mode": "simple", "simple": {"percent_of_revenue": "NaN"}}):
            self.assertEqual(parse_profit_config(raw), Disabled(), raw)


class ComputeProfitTest(SimpleTestCase):
    def test_disabled_returns_revenue(self):
        self.assertEqual(compute_profit(Disabled(), Decimal("120")), Decimal("120.00"))

    def test_simple_deductions(self):
        config = Simple(percent=Decimal("25"), fixed_per_order=Decimal("5"))
        self.assertEqual(compute_profit(config, Decimal("100")), Decimal("70.00"))

    def test_simple_floor_at_zero(self):
        config = Simple(percent=Decimal("0"), fixed_per_order=Decimal("80"))
        self.assertEqual(compute_profit(config, Decimal("50")), Decimal("0.00"))

    def test_window_allocation_share_of_cost(self):
        # order is 25% of window revenue, so it absorbs 25% of 200 spend
        value = compute_profit(WindowAllocation(), Decimal("100"), Decimal("400"), Decimal("200"))
        self.assertEqual(value, Decimal("50.00"))

    def test_window_allocation_floor_and_empty_window(self):
        self.assertEqual(compute_profit(WindowAllocation(), Decimal("100"), Decimal("100"), Decimal("500")), Decimal("0.00"))
        self.assertEqual(compute_profit(WindowAllocation(), Decimal("100"), Decimal("0"), Decimal("500")), Decimal("100.00"))
