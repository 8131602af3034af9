from decimal import Decimal
from unittest import mock

from django.test import TestCase

from ads_attribution.models import (
    AttributedOrder,
    ClickAttributionCache,
    HourlyRevenueRollup,
    Issue,
    PostbackJob,
    PostbackSettings,
    TrackedSession,
)
from ads_attribution.services.oauth import TokenError
from ads_attribution.services.pipelines import refresh_ads_reporting, run_postback_cycle
from ads_attribution.services.postback import enqueue_eligible_orders

from .factories import SHOP, make_connection, make_goal, make_order, make_purchase, make_session, utc
from .fakes import FakeFactory, FakeGoogleAds, spend_row

DAY_START = utc(2026, 7, 1)
DAY_END = utc(2026, 7, 2)


class GoogleAdsRoundTripTest(TestCase):
    """A £120 order from a gclid session, resolved to campaign 999 and posted back."""

    def setUp(self):
        make_connection()
        make_goal("revenue")
        PostbackSettings.objects.create(shop=SHOP, profit_enabled=False)
        self.session = make_session(utc(2026, 7, 1, 10, 0), "https://demo.example/products/x?gclid=abc123")
        make_purchase(self.session, utc(2026, 7, 1, 10, 20), "120.00", currency="GBP", order_id="1001")
        self.ads = FakeGoogleAds(
            click_views={"abc123": ("2026-07-01", "999", "77")},
            spend_rows=[spend_row("2026-07-01", 11, "999", "77", 15_500_000, clicks=4)],
        )
        self.factory = FakeFactory(self.ads)

    def test_refresh_then_postback(self):
        refreshed = refresh_ads_reporting(SHOP, start=DAY_START, end=DAY_END, ads_factory=self.factory)

        self.assertTrue(refreshed["ok"], refreshed)
        self.assertEqual(refreshed["spend"]["upserted"], 1)
        self.assertEqual(refreshed["click_resolution"]["resolved"], 1)
        self.assertEqual(ClickAttributionCache.objects.get(click_id="abc123").campaign_id, "999")

        session = TrackedSession.objects.get(pk=self.session.pk)
        self.assertEqual((session.campaign_id, session.adgroup_id, session.source), ("999", "77", "googleads"))

        order = AttributedOrder.objects.get(shop=SHOP, order_id="1001")
        self.assertEqual((order.source, order.campaign_id, order.gclid), ("googleads", "999", "abc123"))
        self.assertEqual(order.revenue_base, Decimal("120.00"))

        rollup = HourlyRevenueRollup.objects.get(campaign_id="999")
        self.assertEqual((rollup.hour_ts, rollup.adgroup_id, rollup.orders), (utc(2026, 7, 1, 10), "77", 1))
        self.assertEqual(rollup.revenue_base_currency, Decimal("120.00"))

        enqueue_eligible_orders(SHOP)
        job = PostbackJob.objects.get()
        self.assertEqual((job.status, job.goal_type), (PostbackJob.PENDING, "revenue"))
        self.assertEqual((job.conversion_value, job.click_id_type, job.click_id_value), (Decimal("120.00"), "gclid", "abc123"))

        cycle = run_postback_cycle(SHOP, now=utc(2026, 7, 2, 1), ads_factory=self.factory)

        self.assertTrue(cycle["ok"], cycle)
        self.assertEqual((cycle["enqueued"], cycle["processed"], cycle["issues"]), (0, 1, 0))
        job.refresh_from_db()
        self.assertEqual(job.status, PostbackJob.SUCCESS)
        self.assertEqual(list(job.attempts.values_list("attempt_number", flat=True)), [1])

    def test_failing_stage_does_not_stop_later_stages(self):
        result = refresh_ads_reporting(
            SHOP, start=DAY_START, end=DAY_END, ads_factory=FakeFactory(error=TokenError("invalid_grant"))
        )

        self.assertFalse(result["ok"])
        self.assertEqual(result["spend"]["stage"], "token")
        self.assertEqual(result["click_resolution"]["stage"], "token")
        self.assertTrue(result["attributed_orders"]["ok"])
        self.assertEqual(result["attributed_orders"]["upserts"], 1)
        self.assertTrue(result["revenue_rollup"]["ok"])

    def test_crashing_stage_is_reported_in_its_slot(self):
        with mock.patch(
            "ads_attribution.services.pipelines.rollup_revenue_hourly", side_effect=RuntimeError("boom")
        ):
            result = refresh_ads_reporting(SHOP, start=DAY_START, end=DAY_END, ads_factory=self.factory)

        self.assertFalse(result["ok"])
        self.assertEqual(result["revenue_rollup"], {"ok": False, "error": "boom"})
        self.assertTrue(result["spend"]["ok"])


class RunPostbackCycleTest(TestCase):
    def _queued_job(self):
        return PostbackJob.objects.create(
            shop=SHOP,
            order_id="0999",
            goal_type="revenue",
            conversion_action_resource_name="customers/1234567890/conversionActions/111",
            conversion_date_time="2026-07-01 12:30:00+01:00",
            conversion_value=Decimal("30.00"),
            currency="GBP",
            click_id_type="gclid",
            click_id_value="queued",
        )

    def test_missing_goals_still_upload_queued_jobs(self):
        make_connection()
        job = self._queued_job()
        factory = FakeFactory()

        result = run_postback_cycle(SHOP, ads_factory=factory)

        self.assertTrue(result["ok"], result)
        self.assertFalse(result["orders"]["ok"])
        self.assertTrue(any("No provisioned" in w for w in result["warnings"]))
        self.assertEqual((result["processed"], factory.calls), (1, 1))
        job.refresh_from_db()
        self.assertEqual(job.status, PostbackJob.SUCCESS)
        self.assertTrue(Issue.objects.filter(error_code="GOAL_NOT_PROVISIONED", severity="warning").exists())

    def test_unprovisioned_add_to_cart_goal_does_not_block_revenue(self):
        make_connection()
        make_goal("revenue")
        PostbackSettings.objects.create(shop=SHOP, profit_enabled=False, add_to_cart_enabled=True)
        make_order("1001", utc(2026, 7, 1, 11, 30), "120.00", gclid="abc123")
        factory = FakeFactory()

        results = [run_postback_cycle(SHOP, ads_factory=factory) for _ in range(3)]

        self.assertEqual([r["processed"] for r in results], [1, 0, 0])
        self.assertIn("add_to_cart", results[0]["warnings"][0])
        job = PostbackJob.objects.get(order_id="1001")
        self.assertEqual((job.status, job.conversion_value), (PostbackJob.SUCCESS, Decimal("120.00")))
        self.assertEqual(len(factory.ads.uploads), 1)

    def test_issue_count_covers_this_cycle_only(self):
        make_connection()
        Issue.objects.create(
            shop=SHOP, error_code="UPLOAD_FAILED", first_seen_at=utc(2026, 1, 1), last_seen_at=utc(2026, 1, 1)
        )

        result = run_postback_cycle(SHOP, ads_factory=FakeFactory())

        self.assertEqual((result["issues"], result["open_issues"]), (1, 2))

    def test_unexpected_error_is_returned_not_raised(self):
        with mock.patch(
            "ads_attribution.services.pipelines.enqueue_eligible_orders",
            side_effect=RuntimeError("token ya29.secret leaked"),
        ):
            result = run_postback_cycle(SHOP)

        self.assertFalse(result["ok"])
        self.assertEqual(result["error"], "token ya29.[redacted] leaked")

    def test_missing_shop(self):
        self.assertEqual(run_postback_cycle("  ")["error"], "Missing shop")

    def test_nothing_due_is_ok(self):
        make_connection()
        make_goal("revenue")
        make_goal("profit")

        result = run_postback_cycle(SHOP, ads_factory=FakeFactory())

        self.assertTrue(result["ok"])
        self.assertEqual((result["enqueued"], result["processed"]), (0, 0))
        self.assertFalse(Issue.objects.exists())
