from django.apps import AppConfig


class AdsAttributionConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "ads_attribution"
    verbose_name = "Ads attribution & conversion postback"
