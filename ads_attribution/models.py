# ads_attribution/models.py

from django.conf import settings
from django.db import models
from django.utils import timezone


class Timestamped(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


def normalize_shop(shop) -> str:
    s = str(shop or "").strip().lower()
    if s.startswith("https://"):
        s = s[len("https://"):]
    elif s.startswith("http://"):
        s = s[len("http://"):]
    return s.split("/")[0]


# ── Connection & per-shop configuration ─────────────────────────────────────

class GoogleAdsConnection(Timestamped):
    shop = models.CharField(max_length=255, unique=True)
    customer_id = models.CharField(max_length=32)
    login_customer_id = models.CharField(max_length=32, blank=True, default="")
    refresh_token = models.TextField(blank=True, default="")

    # account metadata, written through by spend sync / click resolution
    time_zone = models.CharField(max_length=64, blank=True, default="")
    currency_code = models.CharField(max_length=8, blank=True, default="")
    meta_fetched_at = models.DateTimeField(blank=True, null=True)

    def __str__(self):
        return f"{self.shop} -> {self.customer_id}"

    @staticmethod
    def clean_customer_id(raw) -> str:
        return "".join(ch for ch in str(raw or "") if ch.isdigit())[:32]

    @property
    def account_time_zone(self) -> str:
        return self.time_zone or "UTC"

    @classmethod
    def resolve(cls, shop):
        """Per-shop row, else a row seeded from the GOOGLE_ADS_* env fallback, else None."""
        shop = normalize_shop(shop)
        if not shop:
            return None
        conn = cls.objects.filter(shop=shop).first()
        if conn:
            return conn
        customer_id = cls.clean_customer_id(settings.GOOGLE_ADS_CUSTOMER_ID)
        if not (settings.GOOGLE_ADS_REFRESH_TOKEN and customer_id):
            return None
        conn, _ = cls.objects.get_or_create(
            shop=shop,
            defaults={
                "customer_id": customer_id,
                "login_customer_id": cls.clean_customer_id(settings.GOOGLE_ADS_LOGIN_CUSTOMER_ID),
                "refresh_token": settings.GOOGLE_ADS_REFRESH_TOKEN,
            },
        )
        return conn


class PostbackSettings(Timestamped):
    shop = models.CharField(max_length=255, unique=True)
    revenue_enabled = models.BooleanField(default=True)
    profit_enabled = models.BooleanField(default=True)
    add_to_cart_enabled = models.BooleanField(default=False)
    add_to_cart_value = models.DecimalField(max_digits=12, decimal_places=2, default=1)
    # {"mode": "simple", "simple": {...}} | {"mode": "window_allocation"}
    profit_config = models.JSONField(default=dict, blank=True)
    enqueue_limit = models.PositiveIntegerField(blank=True, null=True)

    class Meta:
        verbose_name_plural = "postback settings"

    def __str__(self):
        return f"postback settings for {self.shop}"

    @classmethod
    def for_shop(cls, shop):
        """Stored row or an unsaved instance carrying the defaults."""
        shop = normalize_shop(shop)
        return cls.objects.filter(shop=shop).first() or cls(shop=shop)


class CurrencyRate(models.Model):
    currency = models.CharField(max_length=8, unique=True)
    # 1 unit of `currency` = rate_to_base units of BASE_CURRENCY
    rate_to_base = models.DecimalField(max_digits=20, decimal_places=10)
    fetched_at = models.DateTimeField(default=timezone.now)

    def __str__(self):
        return f"{self.currency} x{self.rate_to_base}"


# ── First-party store (written by the ingestion side, read here) ────────────

class TrackedSession(models.Model):
    session_id = models.CharField(max_length=64, unique=True)
    shop = models.CharField(max_length=255, db_index=True)
    started_at = models.DateTimeField()
    landing_url = models.TextField(blank=True, default="")

    # attribution; first writer wins
    source = models.CharField(max_length=64, blank=True, default="")
    campaign_id = models.CharField(max_length=64, blank=True, null=True)
    adgroup_id = models.CharField(max_length=64, blank=True, null=True)

    class Meta:
        indexes = [
            models.Index(fields=["shop", "started_at"], name="trk_session_shop_started_idx"),
            models.Index(fields=["campaign_id"], name="trk_session_campaign_idx"),
        ]

    def __str__(self):
        return self.session_id


class Purchase(models.Model):
    purchase_key = models.CharField(max_length=255, unique=True)  # "h:..." for heuristic keys
    session = models.ForeignKey(TrackedSession, on_delete=models.CASCADE, related_name="purchases")
    purchased_at = models.DateTimeField()
    order_total = models.DecimalField(max_digits=14, decimal_places=2, blank=True, null=True)
    order_currency = models.CharField(max_length=8, blank=True, default="")
    order_id = models.CharField(max_length=64, blank=True, default="")
    checkout_token = models.CharField(max_length=128, blank=True, default="")
    financial_status = models.CharField(max_length=32, blank=True, default="paid")
    is_test = models.BooleanField(default=False)
    cancelled_at = models.DateTimeField(blank=True, null=True)

    class Meta:
        indexes = [
            models.Index(fields=["purchased_at"], name="purchase_purchased_at_idx"),
            models.Index(fields=["order_id"], name="purchase_order_id_idx"),
        ]

    def __str__(self):
        return self.purchase_key

    @property
    def is_heuristic(self) -> bool:
        return self.purchase_key.startswith("h:")

    @property
    def has_reliable_id(self) -> bool:
        return bool((self.checkout_token or "").strip() or (self.order_id or "").strip())


class CartEvent(models.Model):
    event_id = models.CharField(max_length=64, unique=True)
    shop = models.CharField(max_length=255, db_index=True)
    session = models.ForeignKey(TrackedSession, on_delete=models.CASCADE, related_name="cart_events")
    occurred_at = models.DateTimeField()

    class Meta:
        indexes = [models.Index(fields=["shop", "occurred_at"], name="cart_event_shop_occurred_idx")]


class AttributedOrder(Timestamped):
    shop = models.CharField(max_length=255)
    order_id = models.CharField(max_length=64)
    ordered_at = models.DateTimeField()
    currency = models.CharField(max_length=8, blank=True, default="")
    total_price = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    revenue_base = models.DecimalField(max_digits=14, decimal_places=2, default=0)

    source = models.CharField(max_length=64, blank=True, default="")
    campaign_id = models.CharField(max_length=64, blank=True, null=True)
    adgroup_id = models.CharField(max_length=64, blank=True, null=True)

    gclid = models.CharField(max_length=256, blank=True, null=True)
    gbraid = models.CharField(max_length=256, blank=True, null=True)
    wbraid = models.CharField(max_length=256, blank=True, null=True)
    click_id_type = models.CharField(max_length=16, blank=True, null=True)  # explicit override

    class Meta:
        unique_together = (("shop", "order_id"),)
        indexes = [
            models.Index(fields=["shop", "ordered_at"], name="attr_order_shop_ordered_idx"),
            models.Index(fields=["source", "campaign_id"], name="attr_order_source_camp_idx"),
        ]

    def __str__(self):
        return f"{self.shop}#{self.order_id}"


# ── Attribution & rollups ───────────────────────────────────────────────────

class ClickAttributionCache(models.Model):
    click_id = models.CharField(max_length=256, unique=True)
    click_id_type = models.CharField(max_length=16, default="gclid")
    campaign_id = models.CharField(max_length=64)
    adgroup_id = models.CharField(max_length=64, blank=True, null=True)
    cached_at = models.DateTimeField(default=timezone.now)

    class Meta:
        indexes = [models.Index(fields=["campaign_id"], name="click_cache_campaign_idx")]

    def __str__(self):
        return f"{self.click_id[:16]}... -> {self.campaign_id}"


class HourlySpendRollup(models.Model):
    provider = models.CharField(max_length=32, default="google_ads")
    hour_ts = models.DateTimeField()
    campaign_id = models.CharField(max_length=64)
    adgroup_id = models.CharField(max_length=64)
    customer_id = models.CharField(max_length=32, blank=True, default="")

    currency_code = models.CharField(max_length=8, blank=True, default="")
    cost = models.DecimalField(max_digits=14, decimal_places=2, default=0)  # account currency
    spend_base_currency = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    clicks = models.BigIntegerField(default=0)
    impressions = models.BigIntegerField(default=0)
    conversions = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    conversions_value = models.DecimalField(max_digits=14, decimal_places=2, default=0)  # base currency
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "ads_spend_hourly"
        unique_together = (("provider", "hour_ts", "campaign_id", "adgroup_id"),)
        indexes = [models.Index(fields=["hour_ts"], name="spend_hourly_hour_idx")]


class HourlyRevenueRollup(models.Model):
    source = models.CharField(max_length=64)
    hour_ts = models.DateTimeField()
    campaign_id = models.CharField(max_length=64)
    adgroup_id = models.CharField(max_length=64)
    revenue_base_currency = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    orders = models.PositiveIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "ads_revenue_hourly"
        unique_together = (("source", "hour_ts", "campaign_id", "adgroup_id"),)
        indexes = [models.Index(fields=["hour_ts"], name="revenue_hourly_hour_idx")]


# ── Conversion postback ─────────────────────────────────────────────────────

GOAL_TYPES = (
    ("revenue", "Revenue"),
    ("profit", "Profit"),
    ("add_to_cart", "Add to cart"),
)


class ConversionGoal(Timestamped):
    shop = models.CharField(max_length=255)
    goal_type = models.CharField(max_length=16, choices=GOAL_TYPES)
    conversion_action_id = models.BigIntegerField(blank=True, null=True)
    conversion_action_resource_name = models.CharField(max_length=255)
    last_provisioned_at = models.DateTimeField(default=timezone.now)

    class Meta:
        unique_together = (("shop", "goal_type"),)

    def __str__(self):
        return f"{self.shop}:{self.goal_type} -> {self.conversion_action_resource_name}"


class PostbackJob(Timestamped):
    PENDING = "pending"
    RETRY = "retry"
    SUCCESS = "success"
    FAILED = "failed"
    STATUSES = (
        (PENDING, "Pending"),
        (RETRY, "Retry"),
        (SUCCESS, "Success"),
        (FAILED, "Failed"),
    )

    shop = models.CharField(max_length=255)
    order_id = models.CharField(max_length=96)
    goal_type = models.CharField(max_length=16, choices=GOAL_TYPES)
    conversion_action_resource_name = models.CharField(max_length=255)
    conversion_date_time = models.CharField(max_length=32)  # "yyyy-mm-dd hh:mm:ss+hh:mm"
    conversion_value = models.DecimalField(max_digits=14, decimal_places=2)
    currency = models.CharField(max_length=8)
    click_id_type = models.CharField(max_length=16)
    click_id_value = models.CharField(max_length=256)

    status = models.CharField(max_length=16, choices=STATUSES, default=PENDING)
    retry_count = models.PositiveIntegerField(default=0)
    next_retry_at = models.DateTimeField(blank=True, null=True)
    last_error = models.TextField(blank=True, null=True)
    api_version = models.CharField(max_length=8, blank=True, default="")

    class Meta:
        unique_together = (("shop", "order_id", "goal_type"),)
        indexes = [
            models.Index(fields=["shop", "status"], name="postback_job_shop_status_idx"),
            models.Index(fields=["next_retry_at"], name="postback_job_next_retry_idx"),
        ]

    def __str__(self):
        return f"{self.shop}#{self.order_id}/{self.goal_type} [{self.status}]"

    def as_click_conversion(self) -> dict:
        return {
            "conversion_action": self.conversion_action_resource_name,
            "conversion_date_time": self.conversion_date_time,
            "conversion_value": float(self.conversion_value),
            "currency_code": self.currency,
            "order_id": self.order_id,
            "click_id_type": self.click_id_type,
            "click_id_value": self.click_id_value,
        }


class PostbackAttempt(models.Model):
    job = models.ForeignKey(PostbackJob, on_delete=models.CASCADE, related_name="attempts")
    attempt_number = models.PositiveIntegerField()
    http_status = models.PositiveIntegerField(blank=True, null=True)
    response_body = models.TextField(blank=True, default="")
    error_message = models.TextField(blank=True, null=True)
    attempted_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ("attempt_number",)
        indexes = [models.Index(fields=["job", "attempt_number"], name="postback_attempt_job_idx")]


class Issue(Timestamped):
    SEVERITIES = (
        ("info", "Info"),
        ("warning", "Warning"),
        ("error", "Error"),
    )
    OPEN = "open"
    RESOLVED = "resolved"
    STATUSES = (
        (OPEN, "Open"),
        (RESOLVED, "Resolved"),
    )

    shop = models.CharField(max_length=255)
    source = models.CharField(max_length=32, default="postback")
    severity = models.CharField(max_length=16, choices=SEVERITIES, default="error")
    status = models.CharField(max_length=16, choices=STATUSES, default=OPEN)
    affected_goal = models.CharField(max_length=16, blank=True, null=True)
    error_code = models.CharField(max_length=64, blank=True, null=True)
    error_message = models.TextField(blank=True, null=True)
    suggested_fix = models.TextField(blank=True, null=True)
    first_seen_at = models.DateTimeField(default=timezone.now)
    last_seen_at = models.DateTimeField(default=timezone.now)
    resolved_at = models.DateTimeField(blank=True, null=True)
    resolution_note = models.TextField(blank=True, null=True)

    class Meta:
        indexes = [
            models.Index(fields=["shop", "status"], name="issue_shop_status_idx"),
            models.Index(fields=["shop", "last_seen_at"], name="issue_shop_last_seen_idx"),
        ]

    def __str__(self):
        return f"[{self.severity}] {self.shop} {self.error_code}"


class DiagnosticsSnapshot(models.Model):
    """Last offline-conversion upload summaries fetched for a shop."""

    shop = models.CharField(max_length=255, unique=True)
    client_summary = models.JSONField(default=list, blank=True)
    action_summaries = models.JSONField(default=list, blank=True)
    fetched_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "google_ads_diagnostics_cache"

    def __str__(self):
        return f"diagnostics for {self.shop} @ {self.fetched_at:%Y-%m-%d %H:%M}"
