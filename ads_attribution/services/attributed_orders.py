# ads_attribution/services/attributed_orders.py
import logging

from django.conf import settings
from django.db import transaction

from ..models import AttributedOrder, ClickAttributionCache, normalize_shop
from .click_ids import parse_click_ids
from .fx import base_currency, convert_to_base, get_rates
from .profit import money
from .revenue_rollup import ALL_ADGROUPS, dedupe_purchases, eligible_purchases

logger = logging.getLogger(__name__)

# fields an empty incoming value must not wipe
STICKY_FIELDS = ("source", "campaign_id", "adgroup_id", "gclid", "gbraid", "wbraid", "click_id_type")


def _order_rows(shop, range_start, range_end):
    """One purchase per order id (earliest wins), heuristic twins already removed."""
    purchases = [p for p in eligible_purchases(range_start, range_end, shop=shop).order_by("purchased_at", "id")
                 if (p.order_id or "").strip()]
    seen = set()
    rows = []
    for p in dedupe_purchases(purchases):
        oid = p.order_id.strip()
        if oid in seen:
            continue
        seen.add(oid)
        rows.append(p)
    return rows


def _attribution_for(purchase, source, cache):
    session = purchase.session
    ids = parse_click_ids(session.landing_url)
    picked = ids.pick()
    campaign_id = (session.campaign_id or "").strip() or None
    adgroup_id = (session.adgroup_id or "").strip() or None

    if not campaign_id and picked:
        if picked.value not in cache:
            hit = ClickAttributionCache.objects.filter(click_id=picked.value).first()
            cache[picked.value] = (hit.campaign_id, hit.adgroup_id) if hit else None
        if cache[picked.value]:
            campaign_id, adgroup_id = cache[picked.value]

    session_source = (session.source or "").strip().lower()
    from_ads = bool(ids) or session_source == source
    return {
        "source": source if from_ads else session_source,
        "campaign_id": campaign_id,
        "adgroup_id": (adgroup_id or ALL_ADGROUPS) if campaign_id else None,
        "gclid": ids.gclid,
        "gbraid": ids.gbraid,
        "wbraid": ids.wbraid,
        "click_id_type": picked.type if picked else None,
    }


def sync_attributed_orders(shop, range_start, range_end, source=None) -> dict:
    """
    Refresh AttributedOrder for paid orders of `shop` in [range_start, range_end).
    Attribution comes from the order's session, or from the click cache via the
    session's landing-URL click id. Existing attribution is never blanked.
    """
    shop = normalize_shop(shop)
    source = (source or getattr(settings, "GOOGLE_ADS_SOURCE", "googleads")).strip().lower()
    rates = get_rates()
    cache = {}
    attributed = unattributed = upserts = 0

    rows = _order_rows(shop, range_start, range_end)
    with transaction.atomic():
        for p in rows:
            currency = (p.order_currency or "").strip().upper() or base_currency()
            total = p.order_total or 0
            converted = convert_to_base(total, currency, rates)
            values = {
                "ordered_at": p.purchased_at,
                "currency": currency,
                "total_price": money(total),
                "revenue_base": money(converted) if converted is not None else money(0),
                **_attribution_for(p, source, cache),
            }
            order, created = AttributedOrder.objects.select_for_update().get_or_create(
                shop=shop, order_id=p.order_id.strip(), defaults=values
            )
            if not created:
                for name, value in values.items():
                    if name in STICKY_FIELDS and not value and getattr(order, name):
                        continue
                    setattr(order, name, value)
                order.save()
            upserts += 1
            if order.campaign_id:
                attributed += 1
            else:
                unattributed += 1

    logger.info("attributed orders %s: %s upserted, %s with campaign", shop, upserts, attributed)
    return {
        "ok": True,
        "shop": shop,
        "source": source,
        "scanned_orders": len(rows),
        "upserts": upserts,
        "attributed": attributed,
        "unattributed": unattributed,
    }
