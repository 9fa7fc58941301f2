from __future__ import annotations

from .guard import AccessContext, subject_id_for
from .services import get_access_services


def access_context_for(request) -> AccessContext:
    access = getattr(request, "access", None)
    if isinstance(access, AccessContext):
        return access
    user = getattr(request, "user", None)
    access = AccessContext(subject_id_for(user), get_access_services().evaluator)
    request.access = access
    return access


class AccessContextMiddleware:
    """
    Attaches ``request.access`` so views, decorators and templates share one
    permission context per request. Must run after AuthenticationMiddleware.
    """

    SKIP_PREFIXES = ("/static/", "/media/")

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        if not request.path.startswith(self.SKIP_PREFIXES):
            access_context_for(request)
        return self.get_response(request)
