# ads_attribution/tasks.py
import logging
from datetime import datetime

from celery import group, shared_task
from django.conf import settings
from django.core.cache import cache

from .models import GoogleAdsConnection, PostbackJob, PostbackSettings, normalize_shop
from .services.pipelines import refresh_ads_reporting, run_postback_cycle

logger = logging.getLogger(__name__)


def _lock_key(shop):
    return f"ads_attribution:postback_cycle:{shop}"


def _parse_ts(value):
    return datetime.fromisoformat(value.replace("Z", "+00:00")) if value else None


@shared_task(bind=True, name="ads_attribution.run_postback_cycle")
def run_postback_cycle_task(self, shop, batch_size=None, validate_only=False):
    """One cycle per shop at a time; a second trigger while one runs is skipped."""
    shop = normalize_shop(shop)
    key = _lock_key(shop)
    if not cache.add(key, self.request.id or "local", timeout=settings.POSTBACK_CYCLE_LOCK_SECONDS):
        logger.info("postback cycle for %s already running; skipped", shop)
        return {"ok": True, "shop": shop, "skipped": "already_running"}
    try:
        return run_postback_cycle(shop, batch_size=batch_size, validate_only=validate_only)
    finally:
        cache.delete(key)


def postback_shops():
    shops = set(GoogleAdsConnection.objects.values_list("shop", flat=True))
    shops.update(PostbackSettings.objects.values_list("shop", flat=True))
    shops.update(
        PostbackJob.objects.filter(status__in=[PostbackJob.PENDING, PostbackJob.RETRY])
        .values_list("shop", flat=True)
        .distinct()
    )
    return sorted(s for s in shops if s)


@shared_task(bind=True, name="ads_attribution.run_postback_cycles")
def run_postback_cycles(self):
    shops = postback_shops()
    if not shops:
        return {"shops": 0}
    res = group([run_postback_cycle_task.si(shop) for shop in shops]).apply_async()
    return {"shops": len(shops), "group_id": res.id}


@shared_task(bind=True, name="ads_attribution.refresh_ads_reporting")
def refresh_ads_reporting_task(self, shop, start=None, end=None, source=None):
    return refresh_ads_reporting(shop, start=_parse_ts(start), end=_parse_ts(end), source=source)


@shared_task(bind=True, name="ads_attribution.refresh_all_ads_reporting")
def refresh_all_ads_reporting(self):
    shops = sorted(GoogleAdsConnection.objects.values_list("shop", flat=True))
    if not shops:
        return {"shops": 0}
    res = group([refresh_ads_reporting_task.si(shop) for shop in shops]).apply_async()
    return {"shops": len(shops), "group_id": res.id}
