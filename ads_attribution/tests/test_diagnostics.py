from datetime import timedelta
from unittest import mock

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse

from ads_attribution.models import DiagnosticsSnapshot
from ads_attribution.services.diagnostics import diagnostics_for, fetch_diagnostics, get_cached_diagnostics
from ads_attribution.services.oauth import TokenError

from .factories import SHOP, make_connection
from .fakes import FakeFactory, FakeGoogleAds, action_summary_row, client_summary_row

ACTION_SUMMARY = "FROM offline_conversion_upload_conversion_action_summary"
CLIENT_SUMMARY = "FROM offline_conversion_upload_client_summary"


class FetchDiagnosticsTest(TestCase):
    def setUp(self):
        make_connection()
        self.ads = FakeGoogleAds()
        self.ads.client_summaries = [client_summary_row(total=10, successful=9, pending=1)]
        self.ads.action_summaries = [action_summary_row(111, "Revenue"), action_summary_row(222, "Profit")]

    def test_fetch_maps_rows_and_caches_them(self):
        result = fetch_diagnostics(SHOP, ads=self.ads)

        self.assertTrue(result["ok"])
        self.assertFalse(result["cached"])
        self.assertIsNone(result["error"])
        client = result["client_summary"][0]
        self.assertEqual((client["client"], client["status"]), ("GOOGLE_ADS_API", "EXCELLENT"))
        self.assertEqual((client["total_event_count"], client["pending_event_count"]), (10, 1))
        self.assertAlmostEqual(client["success_rate"], 0.9)
        self.assertEqual(
            [(a["conversion_action_id"], a["conversion_action_name"], a["status"]) for a in result["action_summaries"]],
            [("111", "Revenue", "NEEDS_ATTENTION"), ("222", "Profit", "NEEDS_ATTENTION")],
        )

        snapshot = DiagnosticsSnapshot.objects.get(shop=SHOP)
        self.assertEqual(snapshot.client_summary, result["client_summary"])
        self.assertEqual(snapshot.action_summaries, result["action_summaries"])
        self.assertEqual(result["fetched_at"], snapshot.fetched_at.isoformat())

    def test_failed_part_keeps_previously_cached_rows(self):
        fetch_diagnostics(SHOP, ads=self.ads)
        self.ads.action_summaries = [action_summary_row(111, "Revenue", status="EXCELLENT")]
        self.ads.client_summaries = [client_summary_row(total=20, successful=20, pending=0)]
        self.ads.failing_queries = {CLIENT_SUMMARY}

        result = fetch_diagnostics(SHOP, ads=self.ads)

        self.assertFalse(result["ok"])
        self.assertIn("unavailable", result["error"])
        self.assertEqual(result["client_summary"], [])
        cached = get_cached_diagnostics(SHOP)
        self.assertEqual(cached["client_summary"][0]["total_event_count"], 10)
        self.assertEqual([a["status"] for a in cached["action_summaries"]], ["EXCELLENT"])

    def test_nothing_cached_when_every_query_fails(self):
        self.ads.failing_queries = {CLIENT_SUMMARY, ACTION_SUMMARY}

        result = fetch_diagnostics(SHOP, ads=self.ads)

        self.assertFalse(result["ok"])
        self.assertNotIn("fetched_at", result)
        self.assertFalse(DiagnosticsSnapshot.objects.exists())

    def test_cache_can_be_skipped(self):
        self.assertTrue(fetch_diagnostics(SHOP, cache=False, ads=self.ads)["ok"])
        self.assertIsNone(get_cached_diagnostics(SHOP))

    def test_connection_and_token_failures(self):
        self.assertEqual(fetch_diagnostics("unknown.example", ads=self.ads)["stage"], "connection")

        factory = FakeFactory(error=TokenError("Token refresh failed: invalid_grant"))
        result = fetch_diagnostics(SHOP, ads_factory=factory)
        self.assertEqual((result["ok"], result["stage"]), (False, "token"))
        self.assertFalse(DiagnosticsSnapshot.objects.exists())


class DiagnosticsForTest(TestCase):
    def setUp(self):
        make_connection()
        ads = FakeGoogleAds()
        ads.client_summaries = [client_summary_row()]
        self.factory = FakeFactory(ads)

    def test_cached_snapshot_is_served_without_calling_google(self):
        DiagnosticsSnapshot.objects.create(shop=SHOP, client_summary=[{"status": "GOOD"}], action_summaries=[])

        result = diagnostics_for(SHOP, ads_factory=self.factory)

        self.assertEqual((result["ok"], result["cached"]), (True, True))
        self.assertEqual(result["client_summary"], [{"status": "GOOD"}])
        self.assertEqual(self.factory.calls, 0)

    def test_fresh_or_empty_cache_fetches(self):
        first = diagnostics_for(SHOP, ads_factory=self.factory)
        self.assertFalse(first["cached"])
        self.assertEqual(self.factory.calls, 1)

        snapshot = DiagnosticsSnapshot.objects.get(shop=SHOP)
        snapshot.fetched_at -= timedelta(days=1)
        snapshot.save(update_fields=["fetched_at"])

        fresh = diagnostics_for(SHOP, fresh=True, ads_factory=self.factory)
        self.assertFalse(fresh["cached"])
        self.assertEqual(self.factory.calls, 2)
        snapshot.refresh_from_db()
        self.assertEqual(fresh["fetched_at"], snapshot.fetched_at.isoformat())


class DiagnosticsViewTest(TestCase):
    def setUp(self):
        User = get_user_model()
        self.staff = User.objects.create_user("ops", password="pw", is_staff=True)
        self.customer = User.objects.create_user("someone", password="pw")
        self.url = reverse("ads_attribution:diagnostics")
        DiagnosticsSnapshot.objects.create(
            shop=SHOP, client_summary=[{"status": "EXCELLENT"}], action_summaries=[{"conversion_action_id": "111"}]
        )

    def test_requires_staff(self):
        self.assertEqual(self.client.get(self.url, {"shop": SHOP}).status_code, 403)
        self.client.force_login(self.customer)
        self.assertEqual(self.client.get(self.url, {"shop": SHOP}).status_code, 403)

    def test_requires_shop(self):
        self.client.force_login(self.staff)
        self.assertEqual(self.client.get(self.url).status_code, 400)

    def test_serves_cached_snapshot(self):
        self.client.force_login(self.staff)
        resp = self.client.get(self.url, {"shop": "https://Demo.Example/admin"})

        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertEqual((data["shop"], data["cached"]), (SHOP, True))
        self.assertEqual(data["action_summaries"], [{"conversion_action_id": "111"}])
        self.assertIn("private", resp["Cache-Control"])

    @mock.patch("ads_attribution.views.diagnostics_for", return_value={"ok": True, "cached": False})
    def test_fresh_flag_bypasses_cache(self, diagnostics):
        self.client.force_login(self.staff)
        resp = self.client.get(self.url, {"shop": SHOP, "fresh": "1"})

        self.assertEqual(resp.json(), {"shop": SHOP, "ok": True, "cached": False})
        diagnostics.assert_called_once_with(SHOP, fresh=True)
