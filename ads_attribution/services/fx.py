# ads_attribution/services/fx.py
from decimal import Decimal
from typing import Dict, Optional

from django.conf import settings

from ..models import CurrencyRate


def base_currency() -> str:
    return (getattr(settings, "BASE_CURRENCY", "GBP") or "GBP").upper()


def get_rates() -> Dict[str, Decimal]:
    rates = {c.upper(): r for c, r in CurrencyRate.objects.values_list("currency", "rate_to_base")}
    rates[base_currency()] = Decimal(1)
    return rates


def convert_to_base(amount, currency, rates: Dict[str, Decimal]) -> Optional[Decimal]:
    """None when the currency has no known rate; callers decide what to skip."""
    if amount is None:
        return None
    code = (currency or base_currency()).strip().upper()
    rate = rates.get(code)
    if rate is None:
        return None
    return Decimal(str(amount)) * Decimal(rate)
