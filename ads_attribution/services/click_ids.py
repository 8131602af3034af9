# ads_attribution/services/click_ids.py
from dataclasses import dataclass
from typing import NamedTuple, Optional
from urllib.parse import parse_qs, urlsplit

CLICK_ID_TYPES = ("gclid", "gbraid", "wbraid")
MAX_CLICK_ID_LENGTH = 256


class ClickId(NamedTuple):
    value: str
    type: str


@dataclass(frozen=True)
class ClickIds:
    gclid: Optional[str] = None
    gbraid: Optional[str] = None
    wbraid: Optional[str] = None

    def __bool__(self):
        return bool(self.gclid or self.gbraid or self.wbraid)

    def pick(self, explicit_type: Optional[str] = None) -> Optional[ClickId]:
        return pick_click_id(self, explicit_type)


def _clean(value) -> Optional[str]:
    s = str(value or "").strip()
    if not s:
        return None
    return s[:MAX_CLICK_ID_LENGTH]


def parse_click_ids(url) -> ClickIds:
    """
    Read gclid / gbraid / wbraid from a landing URL's query string.
    Accepts absolute URLs, schemeless hosts ("shop.example/?gclid=..") and
    path-only URLs ("/?gclid=..") the way storefronts report them.
    """
    raw = str(url or "").strip()
    if not raw or "?" not in raw:
        return ClickIds()
    query = urlsplit(raw).query
    if not query:
        # schemeless host with a fragment before the query, or garbage
        query = raw.split("?", 1)[1].split("#", 1)[0]
    params = parse_qs(query, keep_blank_values=False)

    def first(name):
        values = params.get(name) or []
        return _clean(values[0]) if values else None

    return ClickIds(gclid=first("gclid"), gbraid=first("gbraid"), wbraid=first("wbraid"))


def pick_click_id(ids: ClickIds, explicit_type: Optional[str] = None) -> Optional[ClickId]:
    """Explicit type wins when that id is present; otherwise gclid > gbraid > wbraid."""
    if explicit_type in CLICK_ID_TYPES:
        value = _clean(getattr(ids, explicit_type))
        if value:
            return ClickId(value, explicit_type)
    for kind in CLICK_ID_TYPES:
        value = _clean(getattr(ids, kind))
        if value:
            return ClickId(value, kind)
    return None


def is_queryable(value: str) -> bool:
    """Ids that are safe to inline into a GAQL string literal."""
    return bool(value) and "'" not in value and '"' not in value and "\\" not in value
