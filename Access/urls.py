from django.urls import path

from . import views

app_name = "Access"

urlpatterns = [
    path("health/", views.integration_health, name="integration_health"),
    path("monitoring/metrics/", views.live_metrics, name="live_metrics"),
    path("monitoring/history/", views.metric_history, name="metric_history"),
    path("monitoring/alerts/", views.alerts, name="alerts"),
    path(
        "monitoring/alerts/<str:alert_id>/acknowledge/",
        views.acknowledge_alert,
        name="acknowledge_alert",
    ),
]
