# ads_attribution/services/click_resolver.py
import logging
from collections import defaultdict

from django.conf import settings
from django.db import transaction
from django.db.models import Q
from django.utils import timezone as djtz

from ..models import ClickAttributionCache, GoogleAdsConnection, TrackedSession, normalize_shop
from .account import refresh_account_meta
from .click_ids import is_queryable, parse_click_ids
from .google_ads_client import GoogleAdsError
from .mappers import click_view_row_to_dict
from .oauth import TokenError, open_google_ads, redact
from .timezones import local_date, local_days, to_ymd

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 80
SECOND_PASS_MAX_DAYS = 62

CLICK_VIEW_QUERY = (
    "SELECT click_view.gclid, campaign.id, ad_group.id "
    "FROM click_view "
    "WHERE segments.date = '{day}' AND click_view.gclid IN ({ids})"
)


class ClickViewFailed(Exception):
    def __init__(self, day, error):
        super().__init__(error.message)
        self.day = day
        self.error = error


def _chunks(items, size):
    for i in range(0, len(items), size):
        yield items[i:i + size]


def _unresolved_sessions(shop, range_start, range_end):
    has_click_id = Q(landing_url__icontains="gclid=") | Q(landing_url__icontains="gbraid=") | Q(landing_url__icontains="wbraid=")
    unattributed = Q(campaign_id__isnull=True) | Q(campaign_id="")
    return (
        TrackedSession.objects.filter(shop=shop, started_at__gte=range_start, started_at__lt=range_end)
        .filter(has_click_id)
        .filter(unattributed)
        .order_by("started_at", "id")
    )


def _query_day(ads, day, click_ids, chunk_size):
    """All chunks for one local day; {gclid: (campaign_id, adgroup_id)}. Raises ClickViewFailed."""
    found = {}
    wanted = set(click_ids)
    for chunk in _chunks(sorted(click_ids), chunk_size):
        quoted = ", ".join(f"'{c}'" for c in chunk)
        try:
            rows = ads.search(CLICK_VIEW_QUERY.format(day=to_ymd(day), ids=quoted))
        except GoogleAdsError as e:
            raise ClickViewFailed(day, e) from e
        for row in rows:
            data = click_view_row_to_dict(row)
            if data["gclid"] in wanted and data["campaign_id"]:
                found[data["gclid"]] = (data["campaign_id"], data["adgroup_id"])
    return found


def _write_cache(mapping, click_id_type="gclid"):
    now = djtz.now()
    with transaction.atomic():
        for click_id, (campaign_id, adgroup_id) in mapping.items():
            ClickAttributionCache.objects.update_or_create(
                click_id=click_id,
                defaults={
                    "click_id_type": click_id_type,
                    "campaign_id": campaign_id,
                    "adgroup_id": adgroup_id,
                    "cached_at": now,
                },
            )


def _apply_to_sessions(sessions_by_click, cache_map):
    source = getattr(settings, "GOOGLE_ADS_SOURCE", "googleads")
    updated = 0
    for click_id, session_pks in sessions_by_click.items():
        hit = cache_map.get(click_id)
        if not hit:
            continue
        campaign_id, adgroup_id = hit
        unattributed = Q(campaign_id__isnull=True) | Q(campaign_id="")
        qs = TrackedSession.objects.filter(pk__in=session_pks)
        updated += qs.filter(unattributed).update(campaign_id=campaign_id, adgroup_id=adgroup_id)
        qs.filter(source="").update(source=source)
    return updated


def resolve_click_ids(shop, range_start, range_end, ads=None, ads_factory=None,
                      chunk_size=DEFAULT_CHUNK_SIZE, second_pass_max_days=SECOND_PASS_MAX_DAYS) -> dict:
    """
    Map landing-URL click ids of unattributed sessions in [range_start, range_end)
    to campaign / ad group through click_view, then fill the sessions.

    click_view only accepts a single-day date filter, so ids are queried per
    local day of the session (account time zone). Ids still unmapped get a
    bounded second pass over the most recent days of the range. The cache for a
    day is written only after every chunk of that day succeeded. A failing query
    stops the call and reports the day; sessions whose ids are already cached
    are still filled.
    """
    shop = normalize_shop(shop)
    sessions = list(_unresolved_sessions(shop, range_start, range_end))

    sessions_by_click = defaultdict(list)
    first_seen = {}
    kinds = {}
    for s in sessions:
        picked = parse_click_ids(s.landing_url).pick()
        if not picked:
            continue
        sessions_by_click[picked.value].append(s.pk)
        kinds[picked.value] = picked.type
        if picked.value not in first_seen:
            first_seen[picked.value] = s.started_at

    summary = {
        "ok": True,
        "sessions_scanned": len(sessions),
        "click_ids": len(sessions_by_click),
        "cached": 0,
        "resolved": 0,
        "second_pass_resolved": 0,
        "unqueryable": 0,
        "unresolved": 0,
        "sessions_updated": 0,
        "queried_days": 0,
    }
    if not sessions_by_click:
        return summary

    cache_map = {
        c.click_id: (c.campaign_id, c.adgroup_id)
        for c in ClickAttributionCache.objects.filter(click_id__in=list(sessions_by_click))
    }
    summary["cached"] = len(cache_map)

    pending = [c for c in sessions_by_click if c not in cache_map]
    queryable = [c for c in pending if kinds[c] == "gclid" and is_queryable(c)]
    summary["unqueryable"] = len(pending) - len(queryable)

    if queryable:
        conn = GoogleAdsConnection.resolve(shop)
        if conn is None:
            return {**summary, "ok": False, "stage": "connection", "error": "Google Ads is not connected for this shop"}
        try:
            if ads is None:
                ads = (ads_factory or open_google_ads)(conn)
            tz_name = refresh_account_meta(conn, ads)["time_zone"]
        except TokenError as e:
            return {**summary, "ok": False, "stage": "token", "error": redact(e)}
        except GoogleAdsError as e:
            return {**summary, "ok": False, "stage": "customer", "error": e.message}

        by_day = defaultdict(list)
        for click_id in queryable:
            by_day[local_date(first_seen[click_id], tz_name)].append(click_id)

        remaining = set(queryable)
        try:
            for day in sorted(by_day):
                found = _query_day(ads, day, by_day[day], chunk_size)
                summary["queried_days"] += 1
                if found:
                    _write_cache(found)
                    cache_map.update(found)
                    remaining.difference_update(found)
                    summary["resolved"] += len(found)

            if remaining and second_pass_max_days > 0:
                days = local_days(range_start, range_end, tz_name)[-second_pass_max_days:]
                for day in reversed(days):
                    if not remaining:
                        break
                    candidates = [c for c in remaining if local_date(first_seen[c], tz_name) != day]
                    if not candidates:
                        continue
                    found = _query_day(ads, day, candidates, chunk_size)
                    summary["queried_days"] += 1
                    if found:
                        _write_cache(found)
                        cache_map.update(found)
                        remaining.difference_update(found)
                        summary["second_pass_resolved"] += len(found)
        except ClickViewFailed as failed:
            logger.warning("click_view failed for %s on %s: %s", shop, failed.day, failed.error.message)
            summary["sessions_updated"] = _apply_to_sessions(sessions_by_click, cache_map)
            return {
                **summary,
                "ok": False,
                "stage": "click_view",
                "day": to_ymd(failed.day),
                "error": failed.error.message,
                "api_version": failed.error.api_version,
            }
        summary["unresolved"] = len(remaining)

    summary["sessions_updated"] = _apply_to_sessions(sessions_by_click, cache_map)
    logger.info(
        "click resolution %s: %s ids, %s cached, %s resolved, %s via second pass, %s sessions updated",
        shop, summary["click_ids"], summary["cached"], summary["resolved"],
        summary["second_pass_resolved"], summary["sessions_updated"],
    )
    return summary
