"""
Session credentials handed to clients after login or record linking.

The issuer is looked up from ``SESSION_ISSUER`` so the signing scheme can
be swapped without touching the services that call :func:`issue_session`.
"""
from datetime import timedelta
from typing import Any, Dict, Optional

from django.conf import settings
from django.utils.module_loading import import_string
from rest_framework_simplejwt.settings import api_settings
from rest_framework_simplejwt.tokens import AccessToken


class SessionIssuer:
    def issue(self, claims: Dict[str, Any], ttl: timedelta) -> str:
        raise NotImplementedError


class JWTSessionIssuer(SessionIssuer):
    """Signed JWT access token; readable by ``SessionTokenAuthentication``."""

    def issue(self, claims: Dict[str, Any], ttl: timedelta) -> str:
        token = AccessToken()
        token.set_exp(lifetime=ttl)
        for key, value in claims.items():
            token[key] = value
        return str(token)


def get_session_issuer() -> SessionIssuer:
    return import_string(settings.SESSION_ISSUER)()


def claims_for(user, patient_id: Optional[int] = None) -> Dict[str, Any]:
    return {
        api_settings.USER_ID_CLAIM: user.pk,
        'username': user.username,
        'role': user.role,
        'fullName': user.display_name,
        'email': user.email or None,
        'patientId': patient_id,
    }


def issue_session(user, patient_id: Optional[int] = None) -> str:
    return get_session_issuer().issue(claims_for(user, patient_id), settings.SESSION_TOKEN_TTL)
