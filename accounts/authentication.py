"""
Token authentication backend.

Kept apart from the views so that DRF can import it from settings
without pulling in view modules (and their imports) at start-up.
"""
from __future__ import annotations

from rest_framework import authentication, exceptions


class TokenAuthentication(authentication.TokenAuthentication):
    """``Authorization: Token <key>`` with the user's role preloaded."""

    keyword = 'Token'

    def authenticate_credentials(self, key):
        model = self.get_model()
        try:
            token = model.objects.select_related('user', 'user__role').get(key=key)
        except model.DoesNotExist:
            raise exceptions.AuthenticationFailed('Invalid token.')
        if not token.user.is_active:
            raise exceptions.AuthenticationFailed('User inactive or deleted.')
        return (token.user, token)
