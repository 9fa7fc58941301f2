from __future__ import annotations

from functools import wraps

from django.core.exceptions import PermissionDenied
from django.http import JsonResponse

from .middleware import access_context_for


def _wants_json(request) -> bool:
    accept = str(request.META.get("HTTP_ACCEPT", "") or "")
    return request.path.startswith("/api/") or "application/json" in accept


def _denied(request, reason: str, **extra):
    if _wants_json(request):
        return JsonResponse({"status": "error", "reason": reason, **extra}, status=403)
    raise PermissionDenied(reason)


def permission_required(resource: str, action: str, *, force_check: bool = False):
    """Gate a view behind an AccessGuard for ``resource``/``action``."""

    def decorator(view_func):
        @wraps(view_func)
        def _wrapped_view(request, *args, **kwargs):
            access = access_context_for(request)
            if access.allows(resource, action, force_check=force_check):
                return view_func(request, *args, **kwargs)
            return _denied(request, "permission_denied", resource=resource, action=action)

        return _wrapped_view

    return decorator


def staff_required(view_func):
    @wraps(view_func)
    def _wrapped_view(request, *args, **kwargs):
        user = getattr(request, "user", None)
        if user is not None and user.is_authenticated and user.is_staff:
            return view_func(request, *args, **kwargs)
        return _denied(request, "staff_only")

    return _wrapped_view
