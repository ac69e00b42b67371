"""
Patient record maintenance for staff.

Only clinical and contact fields are writable here.  ``total_balance`` is
owned by :mod:`backoffice.services.billing` and the account binding
(``user``/``has_account``) by :mod:`backoffice.services.claiming`.
"""
from __future__ import annotations

import logging

from django.db import transaction

from backoffice.exceptions import NotFound, ValidationFailure
from backoffice.models import Patient

logger = logging.getLogger(__name__)

PATIENT_FIELDS = ('name', 'date_of_birth', 'phone', 'email', 'address', 'sex',
                  'medical_history', 'allergies', 'last_visit', 'next_appointment')


def _clean(fields: dict) -> dict:
    return {k: v for k, v in fields.items() if k in PATIENT_FIELDS and v is not None}


def get_patient(patient_id: int) -> Patient:
    patient = Patient.objects.select_related('user').filter(pk=patient_id).first()
    if patient is None:
        raise NotFound('Patient not found')
    return patient


def create_patient(**fields) -> Patient:
    data = _clean(fields)
    if not data.get('name'):
        raise ValidationFailure('Patient name is required')
    patient = Patient.objects.create(**data)
    logger.info('patient id=%s created', patient.pk)
    return patient


@transaction.atomic
def update_patient(patient_id: int, **fields) -> Patient:
    patient = Patient.objects.select_for_update().filter(pk=patient_id).first()
    if patient is None:
        raise NotFound('Patient not found')
    data = _clean(fields)
    if 'name' in data and not data['name']:
        raise ValidationFailure('Patient name cannot be empty')
    for name, value in data.items():
        setattr(patient, name, value)
    if data:
        patient.save(update_fields=list(data))
    return patient


@transaction.atomic
def delete_patient(patient_id: int) -> None:
    """Delete the record with its treatments, payments and challenges.

    A linked account goes too, see backoffice.signals.
    """
    patient = Patient.objects.select_for_update().filter(pk=patient_id).first()
    if patient is None:
        raise NotFound('Patient not found')
    user_id = patient.user_id
    patient.delete()
    logger.info('patient id=%s deleted (account id=%s)', patient_id, user_id)
