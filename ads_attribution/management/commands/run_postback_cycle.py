# run_postback_cycle.py
import json

from django.core.management.base import BaseCommand

from ads_attribution.tasks import run_postback_cycle_task


class Command(BaseCommand):
    help = "Run one Google Ads conversion postback cycle (enqueue + upload one batch) for a shop."

    def add_arguments(self, parser):
        parser.add_argument("shop")
        parser.add_argument("--batch-size", type=int, default=None)
        parser.add_argument("--validate-only", action="store_true", help="Ask Google to validate without recording.")

    def handle(self, *args, **options):
        result = run_postback_cycle_task.apply(
            args=[options["shop"]],
            kwargs={"batch_size": options["batch_size"], "validate_only": options["validate_only"]},
        ).get()
        out = json.dumps(result, indent=2, default=str)
        if result.get("ok"):
            self.stdout.write(self.style.SUCCESS(out))
        else:
            self.stdout.write(self.style.ERROR(out))
