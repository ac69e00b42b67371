"""
Patient record claiming.

A patient who already has a clinical record on file can bind it to a new
self-service account instead of registering from scratch:

1. ``search`` by name, date of birth and phone among unlinked records;
2. ``select`` one record when the search was ambiguous;
3. ``send_challenge`` texts a one-time code to the phone on the record;
4. ``verify_and_link`` checks the code and, in one transaction, creates
   the account, links it to the record and consumes the code.

Only the masked phone number ever leaves this module.  The code is sent
after the challenge row is committed, so a failed SMS leaves a valid
challenge behind that ``resend_challenge`` can replace.
"""
from __future__ import annotations

import datetime
import logging
import re
import secrets
from datetime import timedelta
from typing import Any, Dict, Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from django.utils.dateparse import parse_date

from backoffice.exceptions import (
    AlreadyLinked,
    ChallengeAlreadyUsed,
    ChallengeExpired,
    DuplicateHandle,
    InvalidChallenge,
    NoContactMethod,
    NotFound,
    NotificationFailed,
    ValidationFailure,
    VerificationMismatch,
)
from backoffice.models import OtpChallenge, Patient
from backoffice.services import credentials
from backoffice.services.audit import safe_log_action
from backoffice.services.notifications import get_sms_gateway
from backoffice.services.sessions import issue_session

User = get_user_model()
logger = logging.getLogger(__name__)


def mask_phone(phone: str) -> str:
    """Keep the first 3 and last 4 digits, star out the rest."""
    digits = re.sub(r'\D', '', phone or '')
    if len(digits) <= 7:
        return '*' * len(digits)
    return digits[:3] + '*' * (len(digits) - 7) + digits[-4:]


def generate_code(digits: Optional[int] = None) -> str:
    digits = digits or settings.OTP_CODE_DIGITS
    return f'{secrets.randbelow(10 ** digits):0{digits}d}'


def _coerce_date(value: Any, field: str) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    parsed = None
    try:
        parsed = parse_date(str(value).strip()[:10])
    except ValueError:
        pass
    if parsed is None:
        raise ValidationFailure(f'{field} must be a date (YYYY-MM-DD)')
    return parsed


def _iso(d: Optional[datetime.date]) -> Optional[str]:
    return d.isoformat() if d else None


def _get_patient(patient_id, *, lock: bool = False) -> Patient:
    qs = Patient.objects.select_for_update() if lock else Patient.objects.all()
    patient = qs.filter(pk=patient_id).first()
    if patient is None:
        raise NotFound('Patient record not found')
    return patient


def search(name: str, date_of_birth: Any, phone: str) -> Dict[str, Any]:
    name = (name or '').strip()
    phone = (phone or '').strip()
    if not name or not date_of_birth or not phone:
        raise ValidationFailure('Full name, date of birth, and phone number are required')
    dob = _coerce_date(date_of_birth, 'dateOfBirth')

    matches = list(
        Patient.objects.filter(
            has_account=False,
            name__icontains=name,
            date_of_birth=dob,
            phone__contains=phone,
        ).order_by('id')
    )
    logger.info('record search returned %d match(es)', len(matches))

    if not matches:
        return {
            'found': False,
            'message': 'No existing record found. You can proceed with new registration.',
        }
    if len(matches) == 1:
        p = matches[0]
        return {
            'found': True,
            'matches': 1,
            'patientId': p.pk,
            'patientInfo': {
                'name': p.name,
                'phone': mask_phone(p.phone),
                'lastVisit': _iso(p.last_visit),
            },
        }
    return {
        'found': True,
        'matches': len(matches),
        'needsMoreInfo': True,
        'message': 'Multiple records found. Please provide additional information.',
        'patients': [{'id': p.pk, 'name': p.name, 'lastVisit': _iso(p.last_visit)} for p in matches],
    }


def select(patient_id, last_visit: Any = None) -> Dict[str, Any]:
    patient = _get_patient(patient_id)
    if patient.has_account:
        raise AlreadyLinked()
    if last_visit:
        if patient.last_visit != _coerce_date(last_visit, 'lastVisit'):
            raise VerificationMismatch()
    return {
        'success': True,
        'patientId': patient.pk,
        'patientInfo': {
            'name': patient.name,
            'phone': mask_phone(patient.phone),
            'lastVisit': _iso(patient.last_visit),
        },
    }


def _create_challenge(patient_id) -> OtpChallenge:
    with transaction.atomic():
        patient = _get_patient(patient_id, lock=True)
        if patient.has_account:
            raise AlreadyLinked()
        if not patient.phone:
            raise NoContactMethod()
        # a new code supersedes every earlier one for this record
        OtpChallenge.objects.filter(patient=patient).delete()
        return OtpChallenge.objects.create(
            patient=patient,
            phone=patient.phone,
            code=generate_code(),
            expires_at=timezone.now() + timedelta(minutes=settings.OTP_TTL_MINUTES),
        )


def _dispatch(challenge: OtpChallenge) -> None:
    text = (f'Your {settings.CLINIC_NAME} verification code is: {challenge.code}. '
            f'Valid for {settings.OTP_TTL_MINUTES} minutes.')
    try:
        result = get_sms_gateway().send(challenge.phone, text)
    except Exception as e:
        logger.exception('SMS dispatch raised for patient id=%s', challenge.patient_id)
        raise NotificationFailed() from e
    if not result.success:
        logger.warning('SMS dispatch failed for patient id=%s: %s', challenge.patient_id, result.detail)
        raise NotificationFailed()


def send_challenge(patient_id) -> Dict[str, Any]:
    challenge = _create_challenge(patient_id)
    _dispatch(challenge)
    return {
        'success': True,
        'message': 'OTP sent successfully',
        'phone': mask_phone(challenge.phone),
        'expiresAt': challenge.expires_at.isoformat(),
    }


def resend_challenge(patient_id) -> Dict[str, Any]:
    payload = send_challenge(patient_id)
    payload['message'] = 'New OTP sent successfully'
    return payload


def verify_and_link(patient_id, code, *, username: str, password: str,
                    email: Optional[str] = None) -> Dict[str, Any]:
    """Consume a challenge and bind the record to a brand-new patient account.

    Checks run in a fixed order so that the client can tell an expired or
    reused code apart from a wrong one.  Every write happens in a single
    transaction with the record and challenge rows locked, so two racing
    claims cannot both succeed.
    """
    code = str(code or '').strip()
    username = (username or '').strip()
    email = (email or '').strip() or None
    if not patient_id or not code:
        raise ValidationFailure('Patient ID, OTP, and user data are required')
    if not username or not password:
        raise ValidationFailure('Username and password are required')
    credentials.check_secret_strength(password)

    now = timezone.now()
    with transaction.atomic():
        patient = Patient.objects.select_for_update().filter(pk=patient_id).first()
        challenge = (
            OtpChallenge.objects.select_for_update()
            .filter(patient_id=patient_id, code=code)
            .order_by('-created_at', '-id')
            .first()
        )
        if challenge is None:
            raise InvalidChallenge()
        if challenge.is_expired(now):
            raise ChallengeExpired()
        if challenge.verified:
            raise ChallengeAlreadyUsed()
        if credentials.handle_taken(username):
            raise DuplicateHandle()
        if patient is None:
            raise NotFound('Patient record not found')
        if patient.has_account or patient.user_id:
            raise AlreadyLinked()

        account = credentials.create_account(
            username, password, User.ROLE_PATIENT,
            full_name=patient.name,
            email=email or patient.email,
            phone=patient.phone,
            first_login=False,
            account_status=User.STATUS_ACTIVE,
        )
        patient.user = account
        patient.has_account = True
        update_fields = ['user', 'has_account']
        if email:
            patient.email = email
            update_fields.append('email')
        patient.save(update_fields=update_fields)

        challenge.verified = True
        challenge.save(update_fields=['verified'])

        safe_log_action(user=account, action='record_link', object_type='patient',
                        object_id=patient.pk, detail={'challengeId': challenge.pk})

    logger.info('patient id=%s linked to account id=%s', patient.pk, account.pk)
    token = issue_session(account, patient.pk)
    return {
        'success': True,
        'message': 'Account linked successfully',
        'token': token,
        'user': {
            'id': account.pk,
            'username': account.username,
            'role': account.role,
            'fullName': account.display_name,
            'email': account.email or None,
            'patientId': patient.pk,
            'isFirstLogin': False,
        },
    }


def prune_challenges(now: Optional[datetime.datetime] = None) -> int:
    """Delete consumed or expired challenges; returns how many rows went."""
    now = now or timezone.now()
    deleted, _ = OtpChallenge.objects.filter(Q(verified=True) | Q(expires_at__lt=now)).delete()
    return deleted
