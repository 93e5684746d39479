import logging
from typing import Optional, Any, Dict, Union

from django.contrib.auth import get_user_model

from clinic.models import AuditEvent

User = get_user_model()
logger = logging.getLogger(__name__)


def log_action(*, user: Optional[User], action: str, object_type: Optional[str] = None,
               object_id: Optional[Union[int, str]] = None, detail: Optional[Dict[str, Any]] = None) -> AuditEvent:
    event = AuditEvent.objects.create(
        user=user if isinstance(user, User) else None,
        action=action,
        object_type=object_type,
        object_id=str(object_id) if object_id is not None else None,
        detail=detail or {},
    )
    logger.info('audit %s %s:%s by %s', action, object_type, object_id, getattr(user, 'username', None))
    return event
