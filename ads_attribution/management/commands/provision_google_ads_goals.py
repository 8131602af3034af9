# provision_google_ads_goals.py
import json

from django.core.management.base import BaseCommand, CommandError

from ads_attribution.models import GOAL_TYPES
from ads_attribution.services.goals import provision_goals


class Command(BaseCommand):
    help = "Create (or adopt) the upload-click conversion actions a shop posts conversions to."

    def add_arguments(self, parser):
        parser.add_argument("shop")
        parser.add_argument(
            "--goal",
            action="append",
            choices=[t for t, _ in GOAL_TYPES],
            help="Limit to these goal types (repeatable). Default: all.",
        )

    def handle(self, *args, **options):
        result = provision_goals(options["shop"], goal_types=options["goal"])
        if not result["ok"]:
            raise CommandError(result["error"])
        self.stdout.write(self.style.SUCCESS(json.dumps(result, indent=2)))
