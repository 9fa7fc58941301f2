"""
WSGI config for the merchant dashboard.

It exposes the WSGI callable as a module-level variable named ``application``.
"""

import logging
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'Dashboard.settings')

application = get_wsgi_application()

# Log the permission layer wiring so misconfigured edge function URLs are obvious.
from django.conf import settings  # noqa: E402

logger = logging.getLogger("dashboard.startup")
release = os.getenv("GIT_SHA") or "unknown"
logger.info(
    "Dashboard startup release=%s DEBUG=%s functions_base_url=%s timers=%s",
    release,
    settings.DEBUG,
    getattr(settings, "ACCESS_FUNCTIONS_BASE_URL", "") or "<unset>",
    getattr(settings, "ACCESS_MONITORING_TIMERS_ENABLED", True),
)
