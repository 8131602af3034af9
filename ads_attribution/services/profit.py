# ads_attribution/services/profit.py
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

CENT = Decimal("0.01")
ZERO = Decimal("0")


@dataclass(frozen=True)
class Disabled:
    pass


@dataclass(frozen=True)
class Simple:
    percent: Decimal
    fixed_per_order: Decimal


@dataclass(frozen=True)
class WindowAllocation:
    pass


ProfitConfig = Union[Disabled, Simple, WindowAllocation]


def money(value) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _number(value) -> Decimal:
    if value is None or value == "":
        return ZERO
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    try:
        d = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"not a number: {value!r}")
    if not d.is_finite():
        raise ValueError(f"not a finite number: {value!r}")
    return d


def parse_profit_config(raw) -> ProfitConfig:
    """
    {"mode": "simple", "simple": {"percent_of_revenue": 30, "fixed_per_order": 2.5}}
    {"mode": "window_allocation"}
    Anything else, including bad numbers, is Disabled (full revenue is uploaded).
    """
    if not isinstance(raw, dict):
        return Disabled()
    mode = str(raw.get("mode") or "").strip().lower()
    if mode == "window_allocation":
        return WindowAllocation()
    if mode != "simple":
        return Disabled()
    simple = raw.get("simple")
    if not isinstance(simple, dict):
        return Disabled()
    try:
        percent = _number(simple.get("percent_of_revenue"))
        fixed = _number(simple.get("fixed_per_order"))
    except ValueError:
        return Disabled()
    if percent < 0 or percent > 100 or fixed < 0:
        return Disabled()
    return Simple(percent=percent, fixed_per_order=fixed)


def compute_profit(config: ProfitConfig, revenue, window_revenue=None, window_cost=None) -> Decimal:
    revenue = Decimal(revenue or 0)
    if isinstance(config, Simple):
        value = revenue - revenue * config.percent / Decimal(100) - config.fixed_per_order
    elif isinstance(config, WindowAllocation):
        window_revenue = Decimal(window_revenue or 0)
        window_cost = Decimal(window_cost or 0)
        if window_revenue <= 0:
            return money(max(revenue, ZERO))
        value = revenue - (revenue / window_revenue) * window_cost
    else:
        value = revenue
    return money(max(value, ZERO))
