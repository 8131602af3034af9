# ads_attribution/services/goals.py
import logging

from django.utils import timezone as djtz

from ..models import GOAL_TYPES, ConversionGoal, GoogleAdsConnection, normalize_shop
from .google_ads_client import GoogleAdsError
from .mappers import conversion_action_row_to_dict
from .oauth import TokenError, open_google_ads, redact

logger = logging.getLogger(__name__)

# goal_type -> (display name, ConversionActionCategory)
GOAL_DEFINITIONS = {
    "revenue": ("Revenue", "PURCHASE"),
    "profit": ("Profit", "PURCHASE"),
    "add_to_cart": ("Add to Cart", "ADD_TO_CART"),
}

UPLOAD_ACTIONS_QUERY = """
    SELECT
      conversion_action.resource_name,
      conversion_action.id,
      conversion_action.name,
      conversion_action.type,
      conversion_action.status
    FROM conversion_action
    WHERE conversion_action.type = 'UPLOAD_CLICKS'
      AND conversion_action.status != 'REMOVED'
"""


def action_id_from_resource_name(resource_name):
    tail = str(resource_name or "").rsplit("/", 1)[-1]
    return int(tail) if tail.isdigit() else None


def list_upload_actions(ads) -> dict:
    """{display name: resource_name} for the account's upload-click conversion actions."""
    actions = {}
    for row in ads.search(UPLOAD_ACTIONS_QUERY):
        data = conversion_action_row_to_dict(row)
        actions.setdefault(data["name"], data["resource_name"])
    return actions


def ensure_conversion_action(ads, name, category, existing=None):
    """
    Return (resource_name, created). An existing action with the exact name is
    adopted; a DUPLICATE_NAME error from a concurrent create is adopted too.
    """
    existing = list_upload_actions(ads) if existing is None else existing
    if name in existing:
        return existing[name], False
    try:
        return ads.create_conversion_action(name, category), True
    except GoogleAdsError as e:
        if not e.has_code("DUPLICATE_NAME"):
            raise
        logger.info("conversion action %r created concurrently; adopting it", name)
        refreshed = list_upload_actions(ads)
        if name not in refreshed:
            raise
        existing.update(refreshed)
        return refreshed[name], False


def get_conversion_goals(shop) -> dict:
    return {g.goal_type: g for g in ConversionGoal.objects.filter(shop=normalize_shop(shop))}


def provision_goals(shop, goal_types=None, ads=None, ads_factory=None) -> dict:
    shop = normalize_shop(shop)
    wanted = [t for t, _ in GOAL_TYPES if goal_types is None or t in goal_types]
    conn = GoogleAdsConnection.resolve(shop)
    if conn is None:
        return {"ok": False, "error": "Google Ads is not connected for this shop"}

    created, adopted, goals = [], [], {}
    try:
        if ads is None:
            ads = (ads_factory or open_google_ads)(conn)
        existing = list_upload_actions(ads)
        for goal_type in wanted:
            name, category = GOAL_DEFINITIONS[goal_type]
            resource_name, was_created = ensure_conversion_action(ads, name, category, existing)
            existing[name] = resource_name
            ConversionGoal.objects.update_or_create(
                shop=shop,
                goal_type=goal_type,
                defaults={
                    "conversion_action_id": action_id_from_resource_name(resource_name),
                    "conversion_action_resource_name": resource_name,
                    "last_provisioned_at": djtz.now(),
                },
            )
            goals[goal_type] = resource_name
            (created if was_created else adopted).append(goal_type)
    except TokenError as e:
        return {"ok": False, "stage": "token", "error": redact(e), "goals": goals}
    except GoogleAdsError as e:
        logger.warning("goal provisioning failed for %s: %s", shop, e.message)
        return {"ok": False, "stage": "conversion_action", "error": e.message, "goals": goals}

    logger.info("goals for %s: created %s, adopted %s", shop, created or "-", adopted or "-")
    return {"ok": True, "goals": goals, "created": created, "adopted": adopted}
