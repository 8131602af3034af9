import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


GOAL_TYPE_CHOICES = [("revenue", "Revenue"), ("profit", "Profit"), ("add_to_cart", "Add to cart")]


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="GoogleAdsConnection",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("shop", models.CharField(max_length=255, unique=True)),
                ("customer_id", models.CharField(max_length=32)),
                ("login_customer_id", models.CharField(blank=True, default="", max_length=32)),
                ("refresh_token", models.TextField(blank=True, default="")),
                ("time_zone", models.CharField(blank=True, default="", max_length=64)),
                ("currency_code", models.CharField(blank=True, default="", max_length=8)),
                ("meta_fetched_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "abstract": False,
            },
        ),
        migrations.CreateModel(
            name="PostbackSettings",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("shop", models.CharField(max_length=255, unique=True)),
                ("revenue_enabled", models.BooleanField(default=True)),
                ("profit_enabled", models.BooleanField(default=True)),
                ("add_to_cart_enabled", models.BooleanField(default=False)),
                ("add_to_cart_value", models.DecimalField(decimal_places=2, default=1, max_digits=12)),
                ("profit_config", models.JSONField(blank=True, default=dict)),
                ("enqueue_limit", models.PositiveIntegerField(blank=True, null=True)),
            ],
            options={
                "verbose_name_plural": "postback settings",
            },
        ),
        migrations.CreateModel(
            name="CurrencyRate",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("currency", models.CharField(max_length=8, unique=True)),
                ("rate_to_base", models.DecimalField(decimal_places=10, max_digits=20)),
                ("fetched_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
        ),
        migrations.CreateModel(
            name="TrackedSession",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("session_id", models.CharField(max_length=64, unique=True)),
                ("shop", models.CharField(db_index=True, max_length=255)),
                ("started_at", models.DateTimeField()),
                ("landing_url", models.TextField(blank=True, default="")),
                ("source", models.CharField(blank=True, default="", max_length=64)),
                ("campaign_id", models.CharField(blank=True, max_length=64, null=True)),
                ("adgroup_id", models.CharField(blank=True, max_length=64, null=True)),
            ],
            options={
                "indexes": [
                    models.Index(fields=["shop", "started_at"], name="trk_session_shop_started_idx"),
                    models.Index(fields=["campaign_id"], name="trk_session_campaign_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Purchase",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("purchase_key", models.CharField(max_length=255, unique=True)),
                ("purchased_at", models.DateTimeField()),
                ("order_total", models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True)),
                ("order_currency", models.CharField(blank=True, default="", max_length=8)),
                ("order_id", models.CharField(blank=True, default="", max_length=64)),
                ("checkout_token", models.CharField(blank=True, default="", max_length=128)),
                ("financial_status", models.CharField(blank=True, default="paid", max_length=32)),
                ("is_test", models.BooleanField(default=False)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                (
                    "session",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="purchases",
                        to="ads_attribution.trackedsession",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["purchased_at"], name="purchase_purchased_at_idx"),
                    models.Index(fields=["order_id"], name="purchase_order_id_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="CartEvent",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("event_id", models.CharField(max_length=64, unique=True)),
                ("shop", models.CharField(db_index=True, max_length=255)),
                ("occurred_at", models.DateTimeField()),
                (
                    "session",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="cart_events",
                        to="ads_attribution.trackedsession",
                    ),
                ),
            ],
            options={
                "indexes": [models.Index(fields=["shop", "occurred_at"], name="cart_event_shop_occurred_idx")],
            },
        ),
        migrations.CreateModel(
            name="AttributedOrder",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("shop", models.CharField(max_length=255)),
                ("order_id", models.CharField(max_length=64)),
                ("ordered_at", models.DateTimeField()),
                ("currency", models.CharField(blank=True, default="", max_length=8)),
                ("total_price", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("revenue_base", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("source", models.CharField(blank=True, default="", max_length=64)),
                ("campaign_id", models.CharField(blank=True, max_length=64, null=True)),
                ("adgroup_id", models.CharField(blank=True, max_length=64, null=True)),
                ("gclid", models.CharField(blank=True, max_length=256, null=True)),
                ("gbraid", models.CharField(blank=True, max_length=256, null=True)),
                ("wbraid", models.CharField(blank=True, max_length=256, null=True)),
                ("click_id_type", models.CharField(blank=True, max_length=16, null=True)),
            ],
            options={
                "unique_together": {("shop", "order_id")},
                "indexes": [
                    models.Index(fields=["shop", "ordered_at"], name="attr_order_shop_ordered_idx"),
                    models.Index(fields=["source", "campaign_id"], name="attr_order_source_camp_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ClickAttributionCache",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("click_id", models.CharField(max_length=256, unique=True)),
                ("click_id_type", models.CharField(default="gclid", max_length=16)),
                ("campaign_id", models.CharField(max_length=64)),
                ("adgroup_id", models.CharField(blank=True, max_length=64, null=True)),
                ("cached_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                "indexes": [models.Index(fields=["campaign_id"], name="click_cache_campaign_idx")],
            },
        ),
        migrations.CreateModel(
            name="HourlySpendRollup",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("provider", models.CharField(default="google_ads", max_length=32)),
                ("hour_ts", models.DateTimeField()),
                ("campaign_id", models.CharField(max_length=64)),
                ("adgroup_id", models.CharField(max_length=64)),
                ("customer_id", models.CharField(blank=True, default="", max_length=32)),
                ("currency_code", models.CharField(blank=True, default="", max_length=8)),
                ("cost", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("spend_base_currency", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("clicks", models.BigIntegerField(default=0)),
                ("impressions", models.BigIntegerField(default=0)),
                ("conversions", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("conversions_value", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "ads_spend_hourly",
                "unique_together": {("provider", "hour_ts", "campaign_id", "adgroup_id")},
                "indexes": [models.Index(fields=["hour_ts"], name="spend_hourly_hour_idx")],
            },
        ),
        migrations.CreateModel(
            name="HourlyRevenueRollup",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("source", models.CharField(max_length=64)),
                ("hour_ts", models.DateTimeField()),
                ("campaign_id", models.CharField(max_length=64)),
                ("adgroup_id", models.CharField(max_length=64)),
                ("revenue_base_currency", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("orders", models.PositiveIntegerField(default=0)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "ads_revenue_hourly",
                "unique_together": {("source", "hour_ts", "campaign_id", "adgroup_id")},
                "indexes": [models.Index(fields=["hour_ts"], name="revenue_hourly_hour_idx")],
            },
        ),
        migrations.CreateModel(
            name="ConversionGoal",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("shop", models.CharField(max_length=255)),
                ("goal_type", models.CharField(choices=GOAL_TYPE_CHOICES, max_length=16)),
                ("conversion_action_id", models.BigIntegerField(blank=True, null=True)),
                ("conversion_action_resource_name", models.CharField(max_length=255)),
                ("last_provisioned_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                "unique_together": {("shop", "goal_type")},
            },
        ),
        migrations.CreateModel(
            name="PostbackJob",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("shop", models.CharField(max_length=255)),
                ("order_id", models.CharField(max_length=96)),
                ("goal_type", models.CharField(choices=GOAL_TYPE_CHOICES, max_length=16)),
                ("conversion_action_resource_name", models.CharField(max_length=255)),
                ("conversion_date_time", models.CharField(max_length=32)),
                ("conversion_value", models.DecimalField(decimal_places=2, max_digits=14)),
                ("currency", models.CharField(max_length=8)),
                ("click_id_type", models.CharField(max_length=16)),
                ("click_id_value", models.CharField(max_length=256)),
                (
                    "status",
                    models.CharField(
                        choices=[("pending", "Pending"), ("retry", "Retry"), ("success", "Success"), ("failed", "Failed")],
                        default="pending",
                        max_length=16,
                    ),
                ),
                ("retry_count", models.PositiveIntegerField(default=0)),
                ("next_retry_at", models.DateTimeField(blank=True, null=True)),
                ("last_error", models.TextField(blank=True, null=True)),
                ("api_version", models.CharField(blank=True, default="", max_length=8)),
            ],
            options={
                "unique_together": {("shop", "order_id", "goal_type")},
                "indexes": [
                    models.Index(fields=["shop", "status"], name="postback_job_shop_status_idx"),
                    models.Index(fields=["next_retry_at"], name="postback_job_next_retry_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PostbackAttempt",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("attempt_number", models.PositiveIntegerField()),
                ("http_status", models.PositiveIntegerField(blank=True, null=True)),
                ("response_body", models.TextField(blank=True, default="")),
                ("error_message", models.TextField(blank=True, null=True)),
                ("attempted_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "job",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="attempts",
                        to="ads_attribution.postbackjob",
                    ),
                ),
            ],
            options={
                "ordering": ("attempt_number",),
                "indexes": [models.Index(fields=["job", "attempt_number"], name="postback_attempt_job_idx")],
            },
        ),
        migrations.CreateModel(
            name="Issue",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("shop", models.CharField(max_length=255)),
                ("source", models.CharField(default="postback", max_length=32)),
                (
                    "severity",
                    models.CharField(
                        choices=[("info", "Info"), ("warning", "Warning"), ("error", "Error")],
                        default="error",
                        max_length=16,
                    ),
                ),
                (
                    "status",
                    models.CharField(choices=[("open", "Open"), ("resolved", "Resolved")], default="open", max_length=16),
                ),
                ("affected_goal", models.CharField(blank=True, max_length=16, null=True)),
                ("error_code", models.CharField(blank=True, max_length=64, null=True)),
                ("error_message", models.TextField(blank=True, null=True)),
                ("suggested_fix", models.TextField(blank=True, null=True)),
                ("first_seen_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("last_seen_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("resolved_at", models.DateTimeField(blank=True, null=True)),
                ("resolution_note", models.TextField(blank=True, null=True)),
            ],
            options={
                "indexes": [
                    models.Index(fields=["shop", "status"], name="issue_shop_status_idx"),
                    models.Index(fields=["shop", "last_seen_at"], name="issue_shop_last_seen_idx"),
                ],
            },
        ),
    ]
