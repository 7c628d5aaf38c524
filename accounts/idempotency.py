"""
Replay protection for money-moving endpoints.

A client may send an ``Idempotency-Key`` header with a payment request.
The first successful response is stored per (key, scope, user); a retry
with the same key within ``IDEMPOTENCY_TTL_HOURS`` gets the stored
response back instead of moving money twice.
"""
from __future__ import annotations

import json
import logging
from datetime import timedelta
from functools import wraps

from django.conf import settings
from django.utils import timezone
from rest_framework.renderers import JSONRenderer
from rest_framework.response import Response

from accounts.models import IdempotencyRecord

logger = logging.getLogger(__name__)

HEADER = 'Idempotency-Key'


def _owner(request):
    user = getattr(request, 'user', None)
    return user if user is not None and user.is_authenticated else None


def idempotent(scope: str):
    """Decorate a function view so repeated keys replay the first response."""
    def decorator(view):
        @wraps(view)
        def wrapper(request, *args, **kwargs):
            key = (request.headers.get(HEADER) or '').strip()[:128]
            if not key:
                return view(request, *args, **kwargs)
            user = _owner(request)
            cutoff = timezone.now() - timedelta(hours=settings.IDEMPOTENCY_TTL_HOURS)
            record = IdempotencyRecord.objects.filter(
                key=key, scope=scope, user=user, created_at__gte=cutoff
            ).first()
            if record:
                logger.info('replaying %s response for key %s', scope, key)
                resp = Response(record.body, status=record.status_code)
                resp['Idempotent-Replay'] = 'true'
                return resp

            resp = view(request, *args, **kwargs)
            if 200 <= resp.status_code < 300:
                # decimals and dates become plain JSON
                body = json.loads(JSONRenderer().render(resp.data))
                IdempotencyRecord.objects.update_or_create(
                    key=key, scope=scope, user=user,
                    defaults={'status_code': resp.status_code, 'body': body, 'created_at': timezone.now()},
                )
            return resp
        return wrapper
    return decorator
