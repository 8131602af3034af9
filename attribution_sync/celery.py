import os
from celery import Celery
from django.conf import settings

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "attribution_sync.settings")

celery_app = Celery("attribution_sync")
celery_app.config_from_object("django.conf:settings", namespace="CELERY")

# uploads and reporting pulls run on separate workers
celery_app.conf.task_routes = {
    "ads_attribution.run_postback_cycle*": {"queue": "postback"},
    "ads_attribution.refresh_*": {"queue": "sync"},
}

celery_app.autodiscover_tasks(lambda: settings.INSTALLED_APPS)
