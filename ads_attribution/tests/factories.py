import itertools
from datetime import datetime, timezone
from decimal import Decimal

from ads_attribution.models import (
    AttributedOrder,
    CartEvent,
    ConversionGoal,
    GoogleAdsConnection,
    Purchase,
    TrackedSession,
)

SHOP = "demo.example"
_seq = itertools.count(1)


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def make_connection(shop=SHOP, time_zone="Europe/London", currency_code="GBP", **kwargs):
    return GoogleAdsConnection.objects.create(
        shop=shop,
        customer_id=kwargs.pop("customer_id", "1234567890"),
        refresh_token=kwargs.pop("refresh_token", "1//refresh-token-for-tests"),
        time_zone=time_zone,
        currency_code=currency_code,
        **kwargs,
    )


def make_session(started_at, landing_url="", shop=SHOP, **kwargs):
    return TrackedSession.objects.create(
        session_id=kwargs.pop("session_id", f"s{next(_seq)}"),
        shop=shop,
        started_at=started_at,
        landing_url=landing_url,
        **kwargs,
    )


def make_purchase(session, purchased_at, total, currency="GBP", order_id="", checkout_token="", key=None, **kwargs):
    if key is None:
        key = f"order:{order_id}" if order_id else f"token:{checkout_token}" if checkout_token else f"h:{next(_seq)}"
    return Purchase.objects.create(
        purchase_key=key,
        session=session,
        purchased_at=purchased_at,
        order_total=Decimal(str(total)),
        order_currency=currency,
        order_id=order_id,
        checkout_token=checkout_token,
        **kwargs,
    )


def make_order(order_id, ordered_at, revenue, shop=SHOP, gclid=None, **kwargs):
    return AttributedOrder.objects.create(
        shop=shop,
        order_id=order_id,
        ordered_at=ordered_at,
        currency=kwargs.pop("currency", "GBP"),
        total_price=Decimal(str(revenue)),
        revenue_base=Decimal(str(revenue)),
        source=kwargs.pop("source", "googleads"),
        gclid=gclid,
        **kwargs,
    )


def make_goal(goal_type, shop=SHOP, action_id=None):
    action_id = action_id or {"revenue": 111, "profit": 222, "add_to_cart": 333}[goal_type]
    return ConversionGoal.objects.create(
        shop=shop,
        goal_type=goal_type,
        conversion_action_id=action_id,
        conversion_action_resource_name=f"customers/1234567890/conversionActions/{action_id}",
    )


def make_cart_event(session, occurred_at, event_id=None):
    return CartEvent.objects.create(
        event_id=event_id or f"e{next(_seq)}",
        shop=session.shop,
        session=session,
        occurred_at=occurred_at,
    )
