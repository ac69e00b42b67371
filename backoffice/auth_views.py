"""
Authentication views and helper functions.

This module defines the login endpoint used by the front-end together
with the account self-service endpoints (password change, username
availability and profile settings).  The login view is the boundary at
which a pending staff account is activated on its first successful
authentication.
"""
from __future__ import annotations

from django.db import transaction
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from backoffice.exceptions import InvalidCredentials
from backoffice.serializers.auth import (
    ChangePasswordSerializer,
    CheckUsernameQuerySerializer,
    LoginSerializer,
    UpdateSettingsSerializer,
)
from backoffice.services import credentials
from backoffice.services.audit import safe_log_action
from backoffice.services.sessions import issue_session
from backoffice.services.staff_credentials import on_first_authentication

from .models import Employee, Patient, User


def _linked_patient_id(user: User) -> int | None:
    return Patient.objects.filter(user_id=user.pk).values_list('id', flat=True).first()


def _user_payload(user: User, patient_id: int | None, is_first_login: bool) -> dict:
    return {
        'id': user.id,
        'username': user.username,
        'role': user.role,
        'fullName': user.display_name,
        'email': user.email or None,
        'isFirstLogin': is_first_login,
        'patientId': patient_id,
    }


# ---------------------------------------------------------------------
# Username/password login
# ---------------------------------------------------------------------
@api_view(['POST'])
@permission_classes([AllowAny])
def login_view(request):
    s = LoginSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    username = s.validated_data['username']
    password = s.validated_data['password']
    ip = request.META.get('REMOTE_ADDR')

    try:
        user = credentials.authenticate(username, password)
    except InvalidCredentials:
        # record the attempted handle only
        safe_log_action(user=None, action='login', object_type='user',
                        detail={'result': 'fail', 'username': username, 'ip': ip})
        raise

    is_first_login = user.first_login
    if user.first_login and user.account_status == User.STATUS_PENDING:
        on_first_authentication(user.pk)
        user.refresh_from_db(fields=['account_status'])

    safe_log_action(user=user, action='login', object_type='user', object_id=user.id,
                    detail={'result': 'ok', 'ip': ip})

    patient_id = _linked_patient_id(user)
    return Response({
        'ok': True,
        'token': issue_session(user, patient_id),
        'role': user.role,
        'accountStatus': user.account_status,
        'user': _user_payload(user, patient_id, is_first_login),
    }, status=200)


# ---------------------------------------------------------------------
# Account self-service
# ---------------------------------------------------------------------
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def change_password_view(request):
    """Replace the caller's password; clears the first-login flag."""
    s = ChangePasswordSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    credentials.change_password(request.user.pk, s.validated_data['currentPassword'],
                                s.validated_data['newPassword'])
    safe_log_action(user=request.user, action='password_change', object_type='user',
                    object_id=request.user.pk)
    return Response({'ok': True, 'message': 'Password changed successfully'})


@api_view(['GET'])
@permission_classes([AllowAny])
def check_username_view(request):
    q = CheckUsernameQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    return Response({'available': credentials.handle_available(q.validated_data['username'])})


@api_view(['PUT'])
@permission_classes([IsAuthenticated])
def update_settings_view(request):
    s = UpdateSettingsSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    user = request.user
    with transaction.atomic():
        if vd.get('newPassword'):
            credentials.change_password(user.pk, vd['currentPassword'], vd['newPassword'])
        user = credentials.update_profile(user.pk, full_name=vd.get('fullName'), username=vd.get('username'))
        if vd.get('fullName'):
            # keep the HR record's name in step with the account
            Employee.objects.filter(user_id=user.pk).update(name=user.full_name)
    return Response({
        'ok': True,
        'message': 'Settings updated successfully',
        'user': {
            'id': user.id,
            'username': user.username,
            'fullName': user.display_name,
            'email': user.email or None,
            'role': user.role,
        },
    })
