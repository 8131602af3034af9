import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("ads_attribution", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="DiagnosticsSnapshot",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("shop", models.CharField(max_length=255, unique=True)),
                ("client_summary", models.JSONField(blank=True, default=list)),
                ("action_summaries", models.JSONField(blank=True, default=list)),
                ("fetched_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                "db_table": "google_ads_diagnostics_cache",
            },
        ),
    ]
