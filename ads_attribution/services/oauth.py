# ads_attribution/services/oauth.py
import logging
import re

import requests
from django.conf import settings
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

logger = logging.getLogger(__name__)

TOKEN_URL = "https://oauth2.googleapis.com/token"

_ACCESS_TOKEN_RE = re.compile(r"ya29\.[0-9A-Za-z_\-\.]+")
_REFRESH_TOKEN_RE = re.compile(r"1//?[0-9A-Za-z_\-]{10,}")


class TokenError(Exception):
    pass


def redact(text) -> str:
    s = str(text or "")
    s = _ACCESS_TOKEN_RE.sub("ya29.[redacted]", s)
    s = _REFRESH_TOKEN_RE.sub("1/[redacted]", s)
    return s


@retry(
    retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=8),
    reraise=True,
)
def _post_token_request(payload: dict) -> requests.Response:
    return requests.post(TOKEN_URL, data=payload, timeout=20)


def fetch_access_token(refresh_token: str) -> str:
    """Exchange a stored refresh token for a short-lived bearer token."""
    client_id = settings.GOOGLE_ADS_CLIENT_ID
    client_secret = settings.GOOGLE_ADS_CLIENT_SECRET
    if not (client_id and client_secret):
        raise TokenError("Missing GOOGLE_ADS_CLIENT_ID / GOOGLE_ADS_CLIENT_SECRET")
    if not refresh_token:
        raise TokenError("Missing refresh token for Google Ads connection")

    try:
        resp = _post_token_request({
            "grant_type": "refresh_token",
            "client_id": client_id,
            "client_secret": client_secret,
            "refresh_token": refresh_token,
        })
    except requests.RequestException as e:
        raise TokenError(f"Token endpoint unreachable: {redact(e)}") from e

    try:
        body = resp.json()
    except ValueError:
        body = {}
    if resp.status_code != 200 or not body.get("access_token"):
        reason = body.get("error_description") or body.get("error") or f"HTTP {resp.status_code}"
        raise TokenError(f"Token refresh failed: {redact(reason)}")
    return body["access_token"]


def open_google_ads(connection):
    """Default factory: authenticated GoogleAds wrapper for one shop connection."""
    from .google_ads_client import GoogleAds

    token = fetch_access_token(connection.refresh_token)
    logger.debug("access token refreshed for %s", connection.shop)
    return GoogleAds(
        access_token=token,
        customer_id=connection.customer_id,
        login_customer_id=connection.login_customer_id or None,
    )
