# ads_attribution/services/spend_sync.py
import logging
from collections import defaultdict
from decimal import Decimal

from django.db import transaction

from ..models import GoogleAdsConnection, HourlySpendRollup
from .account import refresh_account_meta
from .fx import base_currency, convert_to_base, get_rates
from .google_ads_client import GoogleAdsError
from .mappers import spend_row_to_dict
from .oauth import TokenError, open_google_ads, redact
from .profit import money
from .timezones import floor_hour, local_days, local_hour_to_utc, to_ymd

logger = logging.getLogger(__name__)

PROVIDER = "google_ads"
ALL_ADGROUPS = "_all_"

SPEND_QUERY = """
    SELECT
      segments.date,
      segments.hour,
      campaign.id,
      ad_group.id,
      metrics.cost_micros,
      metrics.clicks,
      metrics.impressions,
      metrics.conversions,
      metrics.conversions_value
    FROM ad_group
    WHERE segments.date >= '{start}' AND segments.date <= '{end}'
"""


def _to_base(amount, currency, rates):
    converted = convert_to_base(amount, currency, rates)
    return None if converted is None else money(converted)


def sync_spend_hourly(shop, start, end, ads=None, ads_factory=None) -> dict:
    """
    Pull per-hour ad_group metrics for [start, end) and overwrite the hourly spend rollup.
    Hours come back as account-local (date, hour) segments and are keyed by their UTC hour.
    """
    conn = GoogleAdsConnection.resolve(shop)
    if conn is None:
        return {"ok": False, "stage": "connection", "error": "Google Ads is not connected for this shop"}
    if end <= start:
        return {"ok": True, "rows": 0, "upserted": 0}

    try:
        if ads is None:
            ads = (ads_factory or open_google_ads)(conn)
        meta = refresh_account_meta(conn, ads)
    except TokenError as e:
        return {"ok": False, "stage": "token", "error": redact(e)}
    except GoogleAdsError as e:
        return {"ok": False, "stage": "customer", "error": e.message, "api_version": e.api_version}

    tz_name = meta["time_zone"]
    account_currency = meta["currency_code"] or base_currency()
    days = local_days(start, end, tz_name)
    start_ymd, end_ymd = to_ymd(days[0]), to_ymd(days[-1])

    try:
        rows = ads.search(SPEND_QUERY.format(start=start_ymd, end=end_ymd))
    except GoogleAdsError as e:
        logger.warning("spend query failed for %s: %s", conn.shop, e.message)
        return {"ok": False, "stage": "spend", "error": e.message, "api_version": e.api_version}

    window_start = floor_hour(start)
    totals = defaultdict(lambda: {
        "cost": Decimal(0),
        "clicks": 0,
        "impressions": 0,
        "conversions": Decimal(0),
        "conversions_value": Decimal(0),
    })
    dropped = 0
    for row in rows:
        data = spend_row_to_dict(row)
        if not data["campaign_id"]:
            dropped += 1
            continue
        hour_ts = local_hour_to_utc(data["date"], data["hour"], tz_name)
        if hour_ts < window_start or hour_ts >= end:
            dropped += 1
            continue
        bucket = totals[(hour_ts, data["campaign_id"], data["adgroup_id"] or ALL_ADGROUPS)]
        bucket["cost"] += data["cost"]
        bucket["clicks"] += data["clicks"]
        bucket["impressions"] += data["impressions"]
        bucket["conversions"] += data["conversions"]
        bucket["conversions_value"] += data["conversions_value"]

    rates = get_rates()
    fx_missing = account_currency not in rates
    if fx_missing:
        logger.warning("no FX rate for %s -> %s; spend stored without base conversion", account_currency, base_currency())

    upserted = 0
    with transaction.atomic():
        for (hour_ts, campaign_id, adgroup_id), t in totals.items():
            HourlySpendRollup.objects.update_or_create(
                provider=PROVIDER,
                hour_ts=hour_ts,
                campaign_id=campaign_id,
                adgroup_id=adgroup_id,
                defaults={
                    "customer_id": conn.customer_id,
                    "currency_code": account_currency,
                    "cost": money(t["cost"]),
                    "spend_base_currency": _to_base(t["cost"], account_currency, rates) or Decimal(0),
                    "clicks": t["clicks"],
                    "impressions": t["impressions"],
                    "conversions": money(t["conversions"]),
                    "conversions_value": _to_base(t["conversions_value"], account_currency, rates) or Decimal(0),
                },
            )
            upserted += 1

    logger.info("spend sync %s %s..%s: %s rows -> %s hourly keys", conn.shop, start_ymd, end_ymd, len(rows), upserted)
    return {
        "ok": True,
        "rows": len(rows),
        "dropped": dropped,
        "upserted": upserted,
        "start_ymd": start_ymd,
        "end_ymd": end_ymd,
        "time_zone": tz_name,
        "currency_code": account_currency,
        "fx_missing": fx_missing,
        "api_version": getattr(ads, "api_version", ""),
    }
