import logging
from typing import Optional, Any, Dict

from django.contrib.auth import get_user_model
from django.db import transaction

from backoffice.models import AuditEvent

User = get_user_model()
logger = logging.getLogger(__name__)


def log_action(*, user: Optional[User], action: str, object_type: Optional[str]=None, object_id: Optional[int]=None, detail: Optional[Dict[str, Any]]=None) -> AuditEvent:
    return AuditEvent.objects.create(
        user=user if isinstance(user, User) else None,
        action=action,
        object_type=object_type, object_id=object_id,
        detail=detail or {},
    )


def safe_log_action(**kwargs) -> Optional[AuditEvent]:
    """Write an audit event without letting an audit failure mask the caller's result.

    The write runs in its own savepoint so a failed insert does not poison
    an enclosing transaction.
    """
    try:
        with transaction.atomic():
            return log_action(**kwargs)
    except Exception:
        logger.warning('audit write failed for %s', kwargs.get('action'), exc_info=True)
        return None
