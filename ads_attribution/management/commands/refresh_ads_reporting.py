# refresh_ads_reporting.py
import json
from datetime import timedelta

from django.core.management.base import BaseCommand
from django.utils import timezone as djtz

from ads_attribution.services.pipelines import refresh_ads_reporting
from ads_attribution.tasks import refresh_ads_reporting_task


class Command(BaseCommand):
    help = "Refresh Google Ads reporting for a shop (spend, click ids, attributed orders, revenue rollup)."

    def add_arguments(self, parser):
        parser.add_argument("shop")
        parser.add_argument("--days", type=int, default=7, help="Look-back window ending now.")
        parser.add_argument("--source", default=None)
        parser.add_argument("--async", dest="run_async", action="store_true", help="Send to the Celery broker.")

    def handle(self, *args, **options):
        end = djtz.now()
        start = end - timedelta(days=max(1, options["days"]))
        if options["run_async"]:
            task = refresh_ads_reporting_task.delay(
                options["shop"], start=start.isoformat(), end=end.isoformat(), source=options["source"]
            )
            self.stdout.write(self.style.SUCCESS(f"Refresh started: {task.id}"))
            return

        result = refresh_ads_reporting(options["shop"], start=start, end=end, source=options["source"])
        out = json.dumps(result, indent=2, default=str)
        if result["ok"]:
            self.stdout.write(self.style.SUCCESS(out))
        else:
            self.stdout.write(self.style.WARNING(out))
