# ads_attribution/services/timezones.py
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def get_zone(tz_name):
    try:
        return ZoneInfo(tz_name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def to_ymd(value) -> str:
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()


def local_date(moment: datetime, tz_name) -> date:
    return moment.astimezone(get_zone(tz_name)).date()


def local_hour_to_utc(ymd, hour: int, tz_name) -> datetime:
    """
    Wall-clock (date, hour) in `tz_name` -> aware UTC datetime.

    Start by pretending the wall clock is UTC, then twice subtract the offset the
    zone reports at the current guess. The second pass picks up the right
    offset when the first guess lands on the other side of a DST switch.
    """
    day = date.fromisoformat(ymd) if isinstance(ymd, str) else ymd
    naive_utc = datetime.combine(day, time(int(hour))).replace(tzinfo=timezone.utc)
    zone = get_zone(tz_name)
    guess = naive_utc
    for _ in range(2):
        offset = guess.astimezone(zone).utcoffset() or timedelta(0)
        guess = naive_utc - offset
    return guess


def local_day_bounds(day: date, tz_name):
    """[start, end) of a local calendar day, both in UTC."""
    start = local_hour_to_utc(day, 0, tz_name)
    end = local_hour_to_utc(day + timedelta(days=1), 0, tz_name)
    return start, end


def local_days(start: datetime, end: datetime, tz_name):
    """Local calendar days touched by the UTC range [start, end)."""
    first = local_date(start, tz_name)
    last = local_date(end - timedelta(microseconds=1), tz_name) if end > start else first
    days = []
    current = first
    while current <= last:
        days.append(current)
        current += timedelta(days=1)
    return days


def floor_hour(moment: datetime) -> datetime:
    return moment.astimezone(timezone.utc).replace(minute=0, second=0, microsecond=0)


def format_conversion_date_time(moment: datetime, tz_name) -> str:
    """'yyyy-mm-dd hh:mm:ss+hh:mm' in the account time zone, as conversion uploads expect."""
    local = moment.astimezone(get_zone(tz_name))
    offset = local.utcoffset() or timedelta(0)
    total_minutes = int(offset.total_seconds() // 60)
    sign = "+" if total_minutes >= 0 else "-"
    hours, minutes = divmod(abs(total_minutes), 60)
    return f"{local:%Y-%m-%d %H:%M:%S}{sign}{hours:02d}:{minutes:02d}"
