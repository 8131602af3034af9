# ads_attribution/services/account.py
import logging

from django.utils import timezone as djtz

from .mappers import customer_row_to_meta

logger = logging.getLogger(__name__)

CUSTOMER_META_QUERY = "SELECT customer.time_zone, customer.currency_code FROM customer LIMIT 1"


def refresh_account_meta(connection, ads) -> dict:
    """Fetch the account's time zone and currency once and write them through to the connection."""
    rows = ads.search(CUSTOMER_META_QUERY)
    meta = customer_row_to_meta(rows[0]) if rows else {"time_zone": "", "currency_code": ""}
    changed = []
    if meta["time_zone"] and meta["time_zone"] != connection.time_zone:
        connection.time_zone = meta["time_zone"]
        changed.append("time_zone")
    if meta["currency_code"] and meta["currency_code"] != connection.currency_code:
        connection.currency_code = meta["currency_code"]
        changed.append("currency_code")
    connection.meta_fetched_at = djtz.now()
    connection.save(update_fields=changed + ["meta_fetched_at", "updated_at"])
    if changed:
        logger.info("account meta for %s updated: %s", connection.shop, ", ".join(changed))
    return {
        "time_zone": connection.account_time_zone,
        "currency_code": connection.currency_code or "",
    }
