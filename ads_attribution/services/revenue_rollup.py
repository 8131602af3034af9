# ads_attribution/services/revenue_rollup.py
import logging
from collections import defaultdict
from decimal import Decimal

from django.db import transaction
from django.db.models import Q

from ..models import HourlyRevenueRollup, Purchase
from .fx import base_currency, convert_to_base, get_rates
from .profit import money
from .timezones import floor_hour

logger = logging.getLogger(__name__)

ALL_ADGROUPS = "_all_"
DEDUP_BUCKET_SECONDS = 15 * 60
PAID_STATUSES = ("paid", "partially_refunded")


def has_reliable_id(purchase) -> bool:
    return bool((purchase.checkout_token or "").strip() or (purchase.order_id or "").strip())


def is_heuristic(purchase) -> bool:
    return (purchase.purchase_key or "").startswith("h:")


def _amount_key(purchase):
    total = purchase.order_total
    return None if total is None else Decimal(total).normalize()


def dedup_key(purchase):
    """(session, amount, currency, 15-minute bucket) shared by a heuristic row and its reliable twin."""
    return (
        purchase.session_id,
        _amount_key(purchase),
        (purchase.order_currency or "").strip().upper() or None,
        int(purchase.purchased_at.timestamp()) // DEDUP_BUCKET_SECONDS,
    )


def dedupe_purchases(purchases, reliable_pool=None) -> list:
    """
    Keep rows carrying a checkout token or order id. Keep a heuristic ("h:") row
    only when no reliable row shares its dedup_key. Anything else is dropped.
    `reliable_pool` widens the set of reliable rows checked against (defaults to `purchases`).
    """
    purchases = list(purchases)
    pool = purchases if reliable_pool is None else list(reliable_pool)
    reliable = {dedup_key(p) for p in pool if has_reliable_id(p)}
    kept = []
    for p in purchases:
        if has_reliable_id(p):
            kept.append(p)
        elif is_heuristic(p) and dedup_key(p) not in reliable:
            kept.append(p)
    return kept


def eligible_purchases(range_start, range_end, shop=None):
    qs = (
        Purchase.objects.select_related("session")
        .filter(purchased_at__gte=range_start, purchased_at__lt=range_end)
        .filter(is_test=False, cancelled_at__isnull=True)
        .filter(financial_status__in=PAID_STATUSES)
    )
    if shop:
        qs = qs.filter(session__shop=shop)
    return qs


def reliable_twins(purchases):
    """Reliable rows of the same sessions, in or out of range, for heuristic dedup."""
    session_ids = {p.session_id for p in purchases if is_heuristic(p) and not has_reliable_id(p)}
    if not session_ids:
        return []
    reliable = Q(checkout_token__gt="") | Q(order_id__gt="")
    return list(Purchase.objects.filter(session_id__in=session_ids).filter(reliable))


def rollup_revenue_hourly(range_start, range_end, source=None) -> dict:
    """Overwrite HourlyRevenueRollup for [range_start, range_end) from deduplicated purchases."""
    if range_end <= range_start:
        return {"ok": False, "error": "Empty range"}
    source_filter = (source or "").strip().lower() or None

    candidates = [
        p for p in eligible_purchases(range_start, range_end)
        if (p.session.campaign_id or "").strip() and (p.session.source or "").strip()
    ]
    if source_filter:
        candidates = [p for p in candidates if p.session.source.strip().lower() == source_filter]
    pool = {p.pk: p for p in candidates}
    for p in reliable_twins(candidates):
        pool.setdefault(p.pk, p)
    kept = dedupe_purchases(candidates, reliable_pool=pool.values())

    rates = get_rates()
    grouped = defaultdict(lambda: {"revenue": Decimal(0), "orders": 0})
    fx_missing = set()
    for p in kept:
        s = p.session
        key = (
            s.source.strip().lower(),
            floor_hour(p.purchased_at),
            s.campaign_id.strip(),
            (s.adgroup_id or "").strip() or ALL_ADGROUPS,
        )
        currency = (p.order_currency or "").strip().upper() or base_currency()
        converted = convert_to_base(p.order_total or 0, currency, rates)
        if converted is None:
            fx_missing.add(currency)
            converted = Decimal(0)
        grouped[key]["revenue"] += converted
        grouped[key]["orders"] += 1

    if fx_missing:
        logger.warning("revenue rollup: no FX rate for %s; counted as zero revenue", ", ".join(sorted(fx_missing)))

    upserts = 0
    with transaction.atomic():
        for (src, hour_ts, campaign_id, adgroup_id), v in grouped.items():
            HourlyRevenueRollup.objects.update_or_create(
                source=src,
                hour_ts=hour_ts,
                campaign_id=campaign_id,
                adgroup_id=adgroup_id,
                defaults={"revenue_base_currency": money(v["revenue"]), "orders": v["orders"]},
            )
            upserts += 1

    logger.info("revenue rollup: %s purchases kept of %s, %s hourly keys", len(kept), len(candidates), upserts)
    return {
        "ok": True,
        "source": source_filter,
        "scanned": len(candidates),
        "kept": len(kept),
        "upserts": upserts,
        "fx_missing": sorted(fx_missing),
    }
