# ads_attribution/services/issues.py
import logging

from django.db import transaction
from django.utils import timezone as djtz

from ..models import Issue, normalize_shop
from .oauth import redact

logger = logging.getLogger(__name__)

MAX_LIST_LIMIT = 100

SUGGESTED_FIXES = {
    "MISSING_CLICK_ID": "Orders without gclid/gbraid/wbraid cannot be uploaded. Check that auto-tagging is on and landing URLs keep their query string.",
    "GOAL_NOT_PROVISIONED": "Run goal provisioning for this shop so conversion actions exist in Google Ads.",
    "DUPLICATE_ORDER_ID": "Google Ads already has this conversion. No action needed.",
    "UPLOAD_FAILED": "Check the error message; the job is retried with backoff until the retry limit.",
    "UPLOAD_BATCH_FAILED": "The whole upload call failed. Check credentials, developer token and API access.",
}


def record_issue(shop, error_code, error_message=None, severity="error", affected_goal=None,
                 source="postback", suggested_fix=None) -> Issue:
    """Create an open issue or bump last_seen_at on the identical open one."""
    shop = normalize_shop(shop)
    message = redact(error_message)[:2000] if error_message else None
    now = djtz.now()
    with transaction.atomic():
        existing = (
            Issue.objects.select_for_update()
            .filter(
                shop=shop,
                source=source,
                status=Issue.OPEN,
                error_code=error_code,
                affected_goal=affected_goal,
                error_message=message,
            )
            .first()
        )
        if existing:
            existing.last_seen_at = now
            existing.severity = severity
            existing.save(update_fields=["last_seen_at", "severity", "updated_at"])
            return existing
        issue = Issue.objects.create(
            shop=shop,
            source=source,
            severity=severity,
            affected_goal=affected_goal,
            error_code=error_code,
            error_message=message,
            suggested_fix=suggested_fix or SUGGESTED_FIXES.get(error_code),
            first_seen_at=now,
            last_seen_at=now,
        )
    logger.info("issue %s opened for %s (%s)", error_code, shop, severity)
    return issue


def issue_to_dict(issue: Issue) -> dict:
    return {
        "id": issue.id,
        "shop": issue.shop,
        "source": issue.source,
        "severity": issue.severity,
        "status": issue.status,
        "affected_goal": issue.affected_goal,
        "error_code": issue.error_code,
        "error_message": redact(issue.error_message) if issue.error_message else None,
        "suggested_fix": issue.suggested_fix,
        "first_seen_at": issue.first_seen_at.isoformat() if issue.first_seen_at else None,
        "last_seen_at": issue.last_seen_at.isoformat() if issue.last_seen_at else None,
        "resolved_at": issue.resolved_at.isoformat() if issue.resolved_at else None,
        "resolution_note": issue.resolution_note,
    }


def list_issues(shop, status=None, limit=50) -> list:
    qs = Issue.objects.filter(shop=normalize_shop(shop))
    if status in (Issue.OPEN, Issue.RESOLVED):
        qs = qs.filter(status=status)
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        limit = 50
    limit = max(1, min(limit, MAX_LIST_LIMIT))
    return [issue_to_dict(i) for i in qs.order_by("-last_seen_at", "-id")[:limit]]


def summarize_issues(shop) -> dict:
    qs = Issue.objects.filter(shop=normalize_shop(shop))
    open_qs = qs.filter(status=Issue.OPEN)
    by_severity = {code: open_qs.filter(severity=code).count() for code, _ in Issue.SEVERITIES}
    latest = open_qs.order_by("-last_seen_at", "-id").first()
    return {
        "open": open_qs.count(),
        "total": qs.count(),
        "open_by_severity": by_severity,
        "latest": issue_to_dict(latest) if latest else None,
    }


def resolve_issue(shop, issue_id, note=None) -> dict:
    issue = Issue.objects.filter(shop=normalize_shop(shop), id=issue_id).first()
    if issue is None:
        return {"ok": False, "error": "Issue not found"}
    if issue.status != Issue.RESOLVED:
        issue.status = Issue.RESOLVED
        issue.resolved_at = djtz.now()
        issue.resolution_note = (str(note).strip()[:2000] or None) if note else None
        issue.save(update_fields=["status", "resolved_at", "resolution_note", "updated_at"])
        logger.info("issue %s resolved for %s", issue.id, issue.shop)
    return {"ok": True, "issue": issue_to_dict(issue)}
