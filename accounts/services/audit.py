from typing import Optional, Any, Dict
from django.contrib.auth import get_user_model
from accounts.models import AuditEvent

User = get_user_model()

def log_action(*, user: Optional[User], action: str, object_type: Optional[str]=None, object_id: Optional[int]=None, detail: Optional[Dict[str, Any]]=None) -> AuditEvent:
    return AuditEvent.objects.create(
        user=user if isinstance(user, User) and user.pk else None,
        action=action,
        object_type=object_type, object_id=object_id,
        detail={k: (str(v) if v is not None and not isinstance(v, (str, int, bool, list, dict)) else v)
                for k, v in (detail or {}).items()},
    )
