import json

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse

from ads_attribution.models import Issue
from ads_attribution.services.issues import list_issues, record_issue, resolve_issue, summarize_issues

from .factories import SHOP


class RecordIssueTest(TestCase):
    def test_same_open_issue_is_touched_not_duplicated(self):
        first = record_issue(SHOP, "MISSING_CLICK_ID", "Order 1 has no click id", severity="warning")
        again = record_issue(SHOP, "MISSING_CLICK_ID", "Order 1 has no click id", severity="warning")

        self.assertEqual(first.pk, again.pk)
        self.assertEqual(Issue.objects.count(), 1)
        self.assertGreaterEqual(again.last_seen_at, first.first_seen_at)
        self.assertIn("auto-tagging", again.suggested_fix)

    def test_different_message_or_resolved_issue_opens_a_new_one(self):
        first = record_issue(SHOP, "UPLOAD_FAILED", "a")
        record_issue(SHOP, "UPLOAD_FAILED", "b")
        resolve_issue(SHOP, first.pk)
        record_issue(SHOP, "UPLOAD_FAILED", "a")

        self.assertEqual(Issue.objects.count(), 3)
        self.assertEqual(Issue.objects.filter(status=Issue.OPEN).count(), 2)

    def test_tokens_are_redacted(self):
        issue = record_issue(SHOP, "UPLOAD_BATCH_FAILED", "bad token ya29.a0AfH6SMBxyz")
        self.assertEqual(issue.error_message, "bad token ya29.[redacted]")

    def test_summary_and_list(self):
        record_issue(SHOP, "MISSING_CLICK_ID", "x", severity="warning")
        latest = record_issue(SHOP, "UPLOAD_FAILED", "y")
        resolved = record_issue(SHOP, "DUPLICATE_ORDER_ID", "z", severity="info")
        resolve_issue(SHOP, resolved.pk, note="fine")
        record_issue("other.example", "UPLOAD_FAILED", "y")

        summary = summarize_issues(SHOP)
        self.assertEqual((summary["open"], summary["total"]), (2, 3))
        self.assertEqual(summary["open_by_severity"], {"info": 0, "warning": 1, "error": 1})
        self.assertEqual(summary["latest"]["id"], latest.pk)

        self.assertEqual(len(list_issues(SHOP)), 3)
        self.assertEqual([i["id"] for i in list_issues(SHOP, status="resolved")], [resolved.pk])
        self.assertEqual(len(list_issues(SHOP, limit="1")), 1)
        self.assertEqual(len(list_issues(SHOP, limit="nope")), 3)

    def test_resolve_unknown_or_foreign_issue(self):
        foreign = record_issue("other.example", "UPLOAD_FAILED", "y")
        self.assertEqual(resolve_issue(SHOP, foreign.pk), {"ok": False, "error": "Issue not found"})


class IssueViewsTest(TestCase):
    def setUp(self):
        User = get_user_model()
        self.staff = User.objects.create_user("ops", password="pw", is_staff=True)
        self.customer = User.objects.create_user("someone", password="pw")
        self.issue = record_issue(SHOP, "UPLOAD_FAILED", "conversion_upload_error.EXPIRED_EVENT")

    def test_requires_staff(self):
        url = reverse("ads_attribution:issues-summary")
        self.assertEqual(self.client.get(url, {"shop": SHOP}).status_code, 403)
        self.client.force_login(self.customer)
        self.assertEqual(self.client.get(url, {"shop": SHOP}).status_code, 403)

    def test_summary(self):
        self.client.force_login(self.staff)
        resp = self.client.get(reverse("ads_attribution:issues-summary"), {"shop": "https://Demo.Example/admin"})

        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertEqual((data["shop"], data["open"]), (SHOP, 1))
        self.assertEqual(data["latest"]["error_code"], "UPLOAD_FAILED")

    def test_list_requires_shop(self):
        self.client.force_login(self.staff)
        self.assertEqual(self.client.get(reverse("ads_attribution:issues-list")).status_code, 400)

    def test_list(self):
        self.client.force_login(self.staff)
        resp = self.client.get(reverse("ads_attribution:issues-list"), {"shop": SHOP, "status": "open"})
        self.assertEqual([i["id"] for i in resp.json()["issues"]], [self.issue.pk])

    def test_resolve(self):
        self.client.force_login(self.staff)
        url = reverse("ads_attribution:issue-resolve", args=[self.issue.pk])

        resp = self.client.post(url, json.dumps({"shop": SHOP, "note": "re-uploaded"}), content_type="application/json")

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["issue"]["status"], "resolved")
        self.issue.refresh_from_db()
        self.assertEqual((self.issue.status, self.issue.resolution_note), (Issue.RESOLVED, "re-uploaded"))

    def test_resolve_errors(self):
        self.client.force_login(self.staff)
        url = reverse("ads_attribution:issue-resolve", args=[self.issue.pk])

        self.assertEqual(self.client.post(url, "{nope", content_type="application/json").status_code, 400)
        self.assertEqual(self.client.post(url, "{}", content_type="application/json").status_code, 400)
        missing = reverse("ads_attribution:issue-resolve", args=[self.issue.pk + 100])
        self.assertEqual(
            self.client.post(missing, json.dumps({"shop": SHOP}), content_type="application/json").status_code, 404
        )
        self.assertEqual(self.client.get(url).status_code, 405)
