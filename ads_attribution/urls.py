from django.urls import path

from . import views

app_name = "ads_attribution"

urlpatterns = [
    path("issues/summary/", views.issues_summary, name="issues-summary"),
    path("issues/", views.issues_list, name="issues-list"),
    path("issues/<int:issue_id>/resolve/", views.issue_resolve, name="issue-resolve"),
    path("diagnostics/", views.diagnostics, name="diagnostics"),
]
