import logging

from django.contrib.auth.signals import user_logged_in, user_logged_out
from django.dispatch import receiver

from .guard import subject_id_for
from .services import get_access_services

logger = logging.getLogger(__name__)


@receiver(user_logged_in)
@receiver(user_logged_out)
def invalidate_permissions_on_session_change(sender, request, user, **kwargs):
    """
    Drop the user's cached permission answers whenever their session starts or
    ends, so the next check goes back to the authorization backend.
    """
    subject_id = subject_id_for(user)
    if not subject_id:
        return
    get_access_services().evaluator.invalidate_user_permission_cache(subject_id)
    logger.debug("Permission cache invalidated for %s on session change", subject_id)
