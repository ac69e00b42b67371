"""
Authentication class for the session tokens issued by this project.

Kept in its own module, away from any view definitions, so that DRF can
import it while initialising without circular imports.
"""
from __future__ import annotations

from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.authentication import JWTAuthentication


class SessionTokenAuthentication(JWTAuthentication):
    """JWT bearer authentication that also refuses deactivated accounts."""

    def get_user(self, validated_token):
        user = super().get_user(validated_token)
        # constant read off the instance; DRF may import this module early
        if user.account_status == user.STATUS_INACTIVE:
            raise AuthenticationFailed('account is inactive', code='user_inactive')
        return user
