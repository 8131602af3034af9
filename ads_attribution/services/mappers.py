# ads_attribution/services/mappers.py
from decimal import Decimal


def _str_id(value):
    s = str(value or "").strip()
    return s if s and s != "0" else None


def _enum_name(value):
    return value.name if hasattr(value, "name") else str(value)


def micros_to_amount(micros) -> Decimal:
    return Decimal(int(micros or 0)) / Decimal(1_000_000)


def customer_row_to_meta(row):
    c = row.customer
    return {
        "time_zone": str(c.time_zone or "").strip(),
        "currency_code": str(c.currency_code or "").strip().upper(),
    }


def spend_row_to_dict(row):
    seg = row.segments
    m = row.metrics
    return {
        "date": str(seg.date),
        "hour": int(seg.hour),
        "campaign_id": _str_id(row.campaign.id),
        "adgroup_id": _str_id(row.ad_group.id),
        "cost": micros_to_amount(m.cost_micros),
        "clicks": int(m.clicks or 0),
        "impressions": int(m.impressions or 0),
        "conversions": Decimal(str(m.conversions or 0)),
        "conversions_value": Decimal(str(m.conversions_value or 0)),
    }


def click_view_row_to_dict(row):
    return {
        "gclid": str(row.click_view.gclid or "").strip(),
        "campaign_id": _str_id(row.campaign.id),
        "adgroup_id": _str_id(row.ad_group.id),
    }


def conversion_action_row_to_dict(row):
    a = row.conversion_action
    return {
        "resource_name": a.resource_name,
        "conversion_action_id": int(a.id),
        "name": a.name,
        "type": _enum_name(a.type_),
        "status": _enum_name(a.status),
    }


def _count(value):
    return None if value is None else int(value)


def _rate(value):
    return None if value is None else float(value)


def _upload_counts(s):
    return {
        "client": _enum_name(s.client),
        "status": _enum_name(s.status),
        "last_upload_date_time": str(s.last_upload_date_time or "") or None,
        "total_event_count": _count(s.total_event_count),
        "successful_event_count": _count(s.successful_event_count),
        "pending_event_count": _count(s.pending_event_count),
    }


def client_summary_row_to_dict(row):
    s = row.offline_conversion_upload_client_summary
    return {
        "resource_name": s.resource_name,
        **_upload_counts(s),
        "success_rate": _rate(s.success_rate),
        "pending_rate": _rate(s.pending_rate),
    }


def action_summary_row_to_dict(row):
    s = row.offline_conversion_upload_conversion_action_summary
    return {
        "resource_name": s.resource_name,
        "conversion_action_id": _str_id(s.conversion_action_id),
        "conversion_action_name": s.conversion_action_name,
        **_upload_counts(s),
    }
