# ads_attribution/services/postback.py
import logging
import re
from decimal import Decimal

from django.conf import settings
from django.db.models import Q, Sum
from django.utils import timezone as djtz

from ..models import (
    AttributedOrder,
    CartEvent,
    GoogleAdsConnection,
    HourlySpendRollup,
    PostbackAttempt,
    PostbackJob,
    PostbackSettings,
    normalize_shop,
)
from .click_ids import ClickIds, parse_click_ids
from .fx import base_currency
from .goals import get_conversion_goals
from .google_ads_client import GoogleAdsError
from .issues import record_issue
from .oauth import TokenError, open_google_ads, redact
from .profit import Simple, WindowAllocation, compute_profit, money, parse_profit_config
from .retry_policy import after_failure, after_success
from .timezones import floor_hour, format_conversion_date_time

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 2000
DUPLICATE_RE = re.compile(
    r"DUPLICATE_ORDER_ID|ORDER_ID_ALREADY_IN_USE|CLICK_CONVERSION_ALREADY_EXISTS|already uploaded",
    re.IGNORECASE,
)
ORDER_GOALS = ("revenue", "profit")
PROFIT_MODES = {Simple: "simple", WindowAllocation: "window_allocation"}


def is_duplicate_error(message) -> bool:
    return bool(message) and bool(DUPLICATE_RE.search(str(message)))


def _enqueue_limit(shop_settings, limit):
    if limit is None:
        limit = shop_settings.enqueue_limit or getattr(settings, "POSTBACK_ENQUEUE_LIMIT", 500)
    return max(1, int(limit))


def _account_time_zone(shop):
    conn = GoogleAdsConnection.objects.filter(shop=shop).first()
    return conn.account_time_zone if conn else "UTC", conn


def _goal_not_provisioned(shop, goal_types):
    names = ", ".join(goal_types)
    message = f"No provisioned Google Ads conversion goal for: {names}"
    record_issue(
        shop,
        "GOAL_NOT_PROVISIONED",
        message,
        severity="warning",
        affected_goal=goal_types[0] if len(goal_types) == 1 else None,
    )
    return message


def _window_totals(shop, orders, conn):
    """Revenue and spend (base currency) over the [min, max] order time of this batch."""
    start = min(o.ordered_at for o in orders)
    end = max(o.ordered_at for o in orders)
    revenue = AttributedOrder.objects.filter(
        shop=shop, ordered_at__gte=start, ordered_at__lte=end
    ).aggregate(total=Sum("revenue_base"))["total"]
    spend_qs = HourlySpendRollup.objects.filter(hour_ts__gte=floor_hour(start), hour_ts__lte=end)
    if conn is not None:
        spend_qs = spend_qs.filter(customer_id=conn.customer_id)
    cost = spend_qs.aggregate(total=Sum("spend_base_currency"))["total"]
    return Decimal(revenue or 0), Decimal(cost or 0)


def enqueue_eligible_orders(shop, limit=None) -> dict:
    """
    Create one PostbackJob per (order, goal) for the most recent attributed
    orders. Re-running is harmless: an existing (shop, order_id, goal_type) job
    is left untouched and not counted.
    """
    shop = normalize_shop(shop)
    shop_settings = PostbackSettings.for_shop(shop)
    enabled = [t for t in ORDER_GOALS if getattr(shop_settings, f"{t}_enabled")]
    if not enabled:
        return {"ok": True, "enqueued": 0, "scanned": 0, "skipped": "disabled"}

    goals = get_conversion_goals(shop)
    active = [t for t in enabled if t in goals]
    missing = [t for t in enabled if t not in goals]
    if not active:
        return {"ok": False, "enqueued": 0, "scanned": 0, "error": _goal_not_provisioned(shop, missing)}
    if missing:
        _goal_not_provisioned(shop, missing)

    tz_name, conn = _account_time_zone(shop)
    source = getattr(settings, "GOOGLE_ADS_SOURCE", "googleads")
    orders = list(
        AttributedOrder.objects.filter(shop=shop, source=source)
        .order_by("-ordered_at", "-id")[:_enqueue_limit(shop_settings, limit)]
    )
    if not orders:
        return {"ok": True, "enqueued": 0, "scanned": 0}

    profit_config = parse_profit_config(shop_settings.profit_config)
    window_revenue = window_cost = None
    if "profit" in active and isinstance(profit_config, WindowAllocation):
        window_revenue, window_cost = _window_totals(shop, orders, conn)

    currency = base_currency()
    enqueued = missing_click = 0
    by_goal = {t: 0 for t in active}
    for order in orders:
        picked = ClickIds(order.gclid, order.gbraid, order.wbraid).pick(order.click_id_type)
        if picked is None:
            missing_click += 1
            record_issue(
                shop,
                "MISSING_CLICK_ID",
                f"Order {order.order_id} has no gclid/gbraid/wbraid",
                severity="warning",
                affected_goal="revenue",
            )
            continue

        revenue = Decimal(order.revenue_base or 0)
        values = {"revenue": money(max(revenue, Decimal(0)))}
        if "profit" in active:
            values["profit"] = compute_profit(profit_config, revenue, window_revenue, window_cost)

        for goal_type in active:
            _, created = PostbackJob.objects.get_or_create(
                shop=shop,
                order_id=order.order_id,
                goal_type=goal_type,
                defaults={
                    "conversion_action_resource_name": goals[goal_type].conversion_action_resource_name,
                    "conversion_date_time": format_conversion_date_time(order.ordered_at, tz_name),
                    "conversion_value": values[goal_type],
                    "currency": currency,
                    "click_id_type": picked.type,
                    "click_id_value": picked.value,
                },
            )
            if created:
                enqueued += 1
                by_goal[goal_type] += 1

    if enqueued:
        logger.info("enqueued %s postback jobs for %s (%s)", enqueued, shop, by_goal)
    return {
        "ok": True,
        "enqueued": enqueued,
        "scanned": len(orders),
        "missing_click_id": missing_click,
        "by_goal": by_goal,
        "profit_mode": PROFIT_MODES.get(type(profit_config), "disabled"),
    }


def enqueue_add_to_cart_events(shop, limit=None) -> dict:
    shop = normalize_shop(shop)
    shop_settings = PostbackSettings.for_shop(shop)
    if not shop_settings.add_to_cart_enabled:
        return {"ok": True, "enqueued": 0, "scanned": 0, "skipped": "disabled"}

    goal = get_conversion_goals(shop).get("add_to_cart")
    if goal is None:
        return {"ok": False, "enqueued": 0, "scanned": 0, "error": _goal_not_provisioned(shop, ["add_to_cart"])}

    tz_name, _ = _account_time_zone(shop)
    events = list(
        CartEvent.objects.filter(shop=shop)
        .filter(Q(session__landing_url__icontains="gclid=") | Q(session__landing_url__icontains="gbraid=")
                | Q(session__landing_url__icontains="wbraid="))
        .select_related("session")
        .order_by("-occurred_at", "-id")[:_enqueue_limit(shop_settings, limit)]
    )
    value = money(shop_settings.add_to_cart_value if shop_settings.add_to_cart_value is not None else 1)
    currency = base_currency()
    enqueued = 0
    for event in events:
        picked = parse_click_ids(event.session.landing_url).pick()
        if picked is None:
            continue
        _, created = PostbackJob.objects.get_or_create(
            shop=shop,
            order_id=f"atc:{event.event_id}",
            goal_type="add_to_cart",
            defaults={
                "conversion_action_resource_name": goal.conversion_action_resource_name,
                "conversion_date_time": format_conversion_date_time(event.occurred_at, tz_name),
                "conversion_value": value,
                "currency": currency,
                "click_id_type": picked.type,
                "click_id_value": picked.value,
            },
        )
        if created:
            enqueued += 1

    if enqueued:
        logger.info("enqueued %s add-to-cart postback jobs for %s", enqueued, shop)
    return {"ok": True, "enqueued": enqueued, "scanned": len(events)}


# -- batch processor ---------------------------------------------------------

def due_jobs(shop, now, batch_size):
    return list(
        PostbackJob.objects.filter(shop=shop, status__in=[PostbackJob.PENDING, PostbackJob.RETRY])
        .filter(Q(next_retry_at__isnull=True) | Q(next_retry_at__lte=now))
        .order_by("created_at", "id")[:batch_size]
    )


def _log_attempt(job, now, http_status, body, error_message):
    return PostbackAttempt.objects.create(
        job=job,
        attempt_number=job.retry_count + 1,
        http_status=http_status,
        response_body=redact(body)[:4000] if body else "",
        error_message=redact(error_message)[:2000] if error_message else None,
        attempted_at=now,
    )


def _mark_success(job, now, api_version, http_status, body, warning=None):
    _log_attempt(job, now, http_status, body, warning)
    state = after_success(job.retry_count)
    job.status = state.status
    job.next_retry_at = None
    job.last_error = redact(warning)[:2000] if warning else None
    job.api_version = api_version or job.api_version
    job.save(update_fields=["status", "next_retry_at", "last_error", "api_version", "updated_at"])


def _mark_failure(job, now, error, api_version, http_status, body):
    _log_attempt(job, now, http_status, body, error)
    state = after_failure(job.retry_count, now)
    job.status = state.status
    job.retry_count = state.retry_count
    job.next_retry_at = state.next_retry_at
    job.last_error = redact(error)[:2000]
    job.api_version = api_version or job.api_version
    job.save(update_fields=["status", "retry_count", "next_retry_at", "last_error", "api_version", "updated_at"])
    return state


def process_postback_batch(shop, batch_size=None, validate_only=False, now=None, ads=None, ads_factory=None) -> dict:
    """
    Upload one batch of due jobs and apply per-item results.

    Every attempt row is written before its job is touched. Duplicate-order
    errors count as success (with an info issue). Other errors move the job to
    retry with exponential backoff, then to failed at the retry limit. If the
    upload call itself fails, every job in the batch gets the same failure.
    With validate_only the request is checked by Google and nothing is mutated.
    """
    shop = normalize_shop(shop)
    now = now or djtz.now()
    size = min(int(batch_size or getattr(settings, "POSTBACK_BATCH_SIZE", 1000)), MAX_BATCH_SIZE)
    summary = {"ok": True, "processed": 0, "succeeded": 0, "duplicates": 0, "retried": 0, "failed": 0}

    jobs = due_jobs(shop, now, size)
    if not jobs:
        return summary

    conn = GoogleAdsConnection.resolve(shop)
    if conn is None:
        return {**summary, "ok": False, "stage": "connection", "error": "Google Ads is not connected for this shop"}
    try:
        if ads is None:
            ads = (ads_factory or open_google_ads)(conn)
    except TokenError as e:
        logger.warning("token refresh failed for %s; %s jobs left untouched", shop, len(jobs))
        return {**summary, "ok": False, "stage": "token", "error": redact(e)}
    except GoogleAdsError as e:
        return {**summary, "ok": False, "stage": "config", "error": e.message}

    try:
        outcome = ads.upload_click_conversions([j.as_click_conversion() for j in jobs], validate_only=validate_only)
    except GoogleAdsError as e:
        logger.warning("postback batch for %s failed (%s jobs): %s", shop, len(jobs), e.message)
        if validate_only:
            return {**summary, "ok": False, "stage": "upload", "error": e.message, "validate_only": True}
        for job in jobs:
            state = _mark_failure(job, now, e.message, e.api_version, None, "")
            summary["failed" if state.status == PostbackJob.FAILED else "retried"] += 1
        record_issue(shop, "UPLOAD_BATCH_FAILED", e.message, severity="error")
        return {**summary, "ok": False, "stage": "upload", "error": e.message, "processed": len(jobs)}

    if validate_only:
        return {
            **summary,
            "validate_only": True,
            "checked": len(jobs),
            "item_errors": {jobs[i].order_id: err for i, err in outcome.item_errors.items() if i < len(jobs)},
            "api_version": outcome.api_version,
        }

    for index, job in enumerate(jobs):
        error = outcome.item_errors.get(index)
        if error is None:
            _mark_success(job, now, outcome.api_version, outcome.http_status, outcome.body)
            summary["succeeded"] += 1
        elif is_duplicate_error(error):
            _mark_success(job, now, outcome.api_version, outcome.http_status, outcome.body, warning=error)
            summary["duplicates"] += 1
            record_issue(
                shop,
                "DUPLICATE_ORDER_ID",
                f"Order {job.order_id} was already uploaded for {job.goal_type}",
                severity="info",
                affected_goal=job.goal_type,
            )
        else:
            state = _mark_failure(job, now, error, outcome.api_version, outcome.http_status, outcome.body)
            summary["failed" if state.status == PostbackJob.FAILED else "retried"] += 1
            record_issue(shop, "UPLOAD_FAILED", error, severity="error", affected_goal=job.goal_type)

    summary["processed"] = len(jobs)
    summary["api_version"] = outcome.api_version
    logger.info(
        "postback batch %s: %s processed, %s ok, %s duplicate, %s retry, %s failed",
        shop, len(jobs), summary["succeeded"], summary["duplicates"], summary["retried"], summary["failed"],
    )
    return summary
