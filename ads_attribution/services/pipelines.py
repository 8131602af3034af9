# ads_attribution/services/pipelines.py
import logging
from datetime import timedelta

from django.conf import settings
from django.utils import timezone as djtz

from ..models import Issue, normalize_shop
from .attributed_orders import sync_attributed_orders
from .click_resolver import resolve_click_ids
from .oauth import redact
from .postback import enqueue_add_to_cart_events, enqueue_eligible_orders, process_postback_batch
from .revenue_rollup import rollup_revenue_hourly
from .spend_sync import sync_spend_hourly

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_DAYS = 7


def _raised_since(shop, started):
    return Issue.objects.filter(shop=shop, last_seen_at__gte=started).count()


def _open_issue_count(shop):
    return Issue.objects.filter(shop=shop, status=Issue.OPEN).count()


def run_postback_cycle(shop, batch_size=None, validate_only=False, now=None, ads_factory=None) -> dict:
    """
    enqueue orders -> enqueue add-to-cart events -> process one batch.
    An enqueue step that cannot run (no provisioned goal) is reported under
    `warnings` and the batch still runs, so jobs already queued keep moving.
    `issues` counts issues raised or touched by this cycle.
    Never raises; the caller serializes cycles per shop.
    """
    shop = normalize_shop(shop)
    started = djtz.now()
    result = {"ok": True, "shop": shop, "enqueued": 0, "processed": 0, "error": None, "warnings": [], "issues": 0}
    if not shop:
        return {**result, "ok": False, "error": "Missing shop"}

    try:
        for key, enqueue in (("orders", enqueue_eligible_orders), ("add_to_cart", enqueue_add_to_cart_events)):
            out = enqueue(shop)
            result[key] = out
            result["enqueued"] += out.get("enqueued", 0)
            if not out.get("ok"):
                result["warnings"].append(out.get("error"))

        batch = process_postback_batch(
            shop, batch_size=batch_size, validate_only=validate_only, now=now, ads_factory=ads_factory
        )
        result["batch"] = batch
        result["processed"] = batch.get("processed", 0)
        if not batch.get("ok"):
            result["ok"] = False
            result["error"] = batch.get("error")
    except Exception as e:
        logger.exception("postback cycle crashed for %s", shop)
        result["ok"] = False
        result["error"] = redact(e)[:500] or type(e).__name__

    result["issues"] = _raised_since(shop, started)
    result["open_issues"] = _open_issue_count(shop)
    return result


def _stage(name, func, *args, **kwargs):
    try:
        return func(*args, **kwargs)
    except Exception as e:
        logger.exception("reporting refresh stage %s crashed", name)
        return {"ok": False, "error": redact(e)[:220] or f"{name}_failed"}


def refresh_ads_reporting(shop, start=None, end=None, source=None, ads_factory=None) -> dict:
    """
    spend sync -> click resolution -> attributed orders -> revenue rollup for [start, end).
    A failing stage is reported in its own slot and the later stages still run.
    """
    shop = normalize_shop(shop)
    end = end or djtz.now()
    start = start or end - timedelta(days=DEFAULT_REFRESH_DAYS)
    source = (source or getattr(settings, "GOOGLE_ADS_SOURCE", "googleads")).strip().lower()

    spend = _stage("spend", sync_spend_hourly, shop, start, end, ads_factory=ads_factory)
    clicks = _stage("click_resolution", resolve_click_ids, shop, start, end, ads_factory=ads_factory)
    orders = _stage("attributed_orders", sync_attributed_orders, shop, start, end, source=source)
    revenue = _stage("revenue_rollup", rollup_revenue_hourly, start, end, source=source)

    stages = {"spend": spend, "click_resolution": clicks, "attributed_orders": orders, "revenue_rollup": revenue}
    return {
        "ok": all(s.get("ok") for s in stages.values()),
        "shop": shop,
        "range_start": start.isoformat(),
        "range_end": end.isoformat(),
        "source": source,
        **stages,
    }
