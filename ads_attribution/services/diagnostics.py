# ads_attribution/services/diagnostics.py
import logging

from django.utils import timezone as djtz

from ..models import DiagnosticsSnapshot, GoogleAdsConnection, normalize_shop
from .google_ads_client import GoogleAdsError
from .mappers import action_summary_row_to_dict, client_summary_row_to_dict
from .oauth import TokenError, open_google_ads, redact

logger = logging.getLogger(__name__)

CLIENT_SUMMARY_QUERY = """
    SELECT
      offline_conversion_upload_client_summary.resource_name,
      offline_conversion_upload_client_summary.client,
      offline_conversion_upload_client_summary.status,
      offline_conversion_upload_client_summary.last_upload_date_time,
      offline_conversion_upload_client_summary.total_event_count,
      offline_conversion_upload_client_summary.successful_event_count,
      offline_conversion_upload_client_summary.pending_event_count,
      offline_conversion_upload_client_summary.success_rate,
      offline_conversion_upload_client_summary.pending_rate
    FROM offline_conversion_upload_client_summary
"""

ACTION_SUMMARY_QUERY = """
    SELECT
      offline_conversion_upload_conversion_action_summary.resource_name,
      offline_conversion_upload_conversion_action_summary.conversion_action_id,
      offline_conversion_upload_conversion_action_summary.conversion_action_name,
      offline_conversion_upload_conversion_action_summary.client,
      offline_conversion_upload_conversion_action_summary.status,
      offline_conversion_upload_conversion_action_summary.last_upload_date_time,
      offline_conversion_upload_conversion_action_summary.total_event_count,
      offline_conversion_upload_conversion_action_summary.successful_event_count,
      offline_conversion_upload_conversion_action_summary.pending_event_count
    FROM offline_conversion_upload_conversion_action_summary
"""


def _summary(ads, query, mapper, what):
    """(rows, error); error is None on success."""
    try:
        return [mapper(row) for row in ads.search(query)], None
    except GoogleAdsError as e:
        logger.warning("%s query failed: %s", what, e.message)
        return [], e.message


def snapshot_to_dict(snapshot) -> dict:
    return {
        "client_summary": list(snapshot.client_summary or []),
        "action_summaries": list(snapshot.action_summaries or []),
        "fetched_at": snapshot.fetched_at.isoformat(),
    }


def fetch_diagnostics(shop, cache=True, ads=None, ads_factory=None) -> dict:
    """
    Query the account's offline-conversion upload summaries (client level and
    per conversion action). When at least one query succeeded and `cache` is
    set, the shop's snapshot is updated; a part whose query failed keeps its
    previously cached rows.
    """
    shop = normalize_shop(shop)
    conn = GoogleAdsConnection.resolve(shop)
    if conn is None:
        return {"ok": False, "stage": "connection", "error": "Google Ads is not connected for this shop"}
    try:
        if ads is None:
            ads = (ads_factory or open_google_ads)(conn)
    except TokenError as e:
        return {"ok": False, "stage": "token", "error": redact(e)}
    except GoogleAdsError as e:
        return {"ok": False, "stage": "config", "error": e.message}

    clients, client_error = _summary(ads, CLIENT_SUMMARY_QUERY, client_summary_row_to_dict, "client summary")
    actions, action_error = _summary(ads, ACTION_SUMMARY_QUERY, action_summary_row_to_dict, "action summary")

    result = {
        "ok": client_error is None and action_error is None,
        "client_summary": clients,
        "action_summaries": actions,
        "error": client_error or action_error,
        "api_version": getattr(ads, "api_version", ""),
        "cached": False,
    }
    if cache and (client_error is None or action_error is None):
        values = {"fetched_at": djtz.now()}
        if client_error is None:
            values["client_summary"] = clients
        if action_error is None:
            values["action_summaries"] = actions
        snapshot, _ = DiagnosticsSnapshot.objects.update_or_create(shop=shop, defaults=values)
        result["fetched_at"] = snapshot.fetched_at.isoformat()
    return result


def get_cached_diagnostics(shop):
    snapshot = DiagnosticsSnapshot.objects.filter(shop=normalize_shop(shop)).first()
    return snapshot_to_dict(snapshot) if snapshot else None


def diagnostics_for(shop, fresh=False, ads_factory=None) -> dict:
    """Cached snapshot unless `fresh` is asked for or nothing is cached yet."""
    if not fresh:
        cached = get_cached_diagnostics(shop)
        if cached is not None:
            return {"ok": True, "cached": True, **cached}
    return fetch_diagnostics(shop, cache=True, ads_factory=ads_factory)
