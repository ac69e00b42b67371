"""
Billing reconciliation.

Treatment ``amount_paid`` / ``remaining_balance`` and patient
``total_balance`` are derived from payments and treatment costs.  They
are never written anywhere else: every mutation below runs in one
transaction, locks the patient row, and finishes by recomputing the
affected totals from scratch.

Overpayment is absorbed: ``remaining_balance`` never goes below zero and
the excess is not carried as credit.
"""
from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from django.db import transaction
from django.db.models import DecimalField, Sum, Value
from django.db.models.functions import Coalesce

from backoffice.exceptions import NotFound, ValidationFailure
from backoffice.models import Patient, Payment, TreatmentRecord
from backoffice.services.audit import safe_log_action

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')

TREATMENT_FIELDS = ('date', 'treatment', 'tooth', 'notes', 'cost', 'dentist',
                    'payment_type', 'installment_plan')
PAYMENT_FIELDS = ('amount', 'payment_date', 'payment_method', 'status', 'notes', 'recorded_by')


def _sum(qs, field: str) -> Decimal:
    return qs.aggregate(
        total=Coalesce(Sum(field), Value(ZERO), output_field=DecimalField(max_digits=14, decimal_places=2))
    )['total']


def _money(value: Any, field: str, *, allow_zero: bool = True) -> Decimal:
    try:
        amount = Decimal(str(value)).quantize(Decimal('0.01'))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationFailure(f'{field} must be a number')
    if amount < 0 or (amount == 0 and not allow_zero):
        raise ValidationFailure(f'{field} must be {"non-negative" if allow_zero else "positive"}')
    return amount


def _lock_patient(patient_id) -> Patient:
    patient = Patient.objects.select_for_update().filter(pk=patient_id).first()
    if patient is None:
        raise NotFound('Patient not found')
    return patient


# ---------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------
@transaction.atomic
def recompute_patient_balance(patient_id) -> Decimal:
    total = _sum(TreatmentRecord.objects.filter(patient_id=patient_id), 'remaining_balance')
    updated = Patient.objects.filter(pk=patient_id).update(total_balance=total)
    if not updated:
        raise NotFound('Patient not found')
    return total


@transaction.atomic
def recompute_treatment_balance(treatment_id) -> TreatmentRecord:
    treatment = TreatmentRecord.objects.select_for_update().filter(pk=treatment_id).first()
    if treatment is None:
        raise NotFound('Treatment record not found')
    paid = _sum(Payment.objects.filter(treatment_record_id=treatment.pk), 'amount')
    treatment.amount_paid = paid
    treatment.remaining_balance = max(ZERO, (treatment.cost or ZERO) - paid)
    treatment.save(update_fields=['amount_paid', 'remaining_balance'])
    recompute_patient_balance(treatment.patient_id)
    return treatment


def reconcile_all() -> int:
    """Recompute every treatment and patient; returns the number of patients touched."""
    count = 0
    for patient_id in Patient.objects.order_by('id').values_list('id', flat=True).iterator():
        with transaction.atomic():
            _lock_patient(patient_id)
            for treatment_id in TreatmentRecord.objects.filter(patient_id=patient_id).values_list('id', flat=True):
                recompute_treatment_balance(treatment_id)
            recompute_patient_balance(patient_id)
        count += 1
    return count


# ---------------------------------------------------------------------
# Treatments
# ---------------------------------------------------------------------
def _clean_treatment_fields(fields: dict) -> dict:
    data = {
        k: v for k, v in fields.items()
        if k in TREATMENT_FIELDS and (v is not None or k == 'installment_plan')
    }
    if 'cost' in data:
        data['cost'] = _money(data['cost'], 'cost')
    return data


@transaction.atomic
def create_treatment(patient_id, **fields) -> TreatmentRecord:
    _lock_patient(patient_id)
    data = _clean_treatment_fields(fields)
    treatment = TreatmentRecord.objects.create(patient_id=patient_id, **data)
    return recompute_treatment_balance(treatment.pk)


@transaction.atomic
def update_treatment(treatment_id, **fields) -> TreatmentRecord:
    treatment = TreatmentRecord.objects.filter(pk=treatment_id).first()
    if treatment is None:
        raise NotFound('Treatment record not found')
    _lock_patient(treatment.patient_id)
    data = _clean_treatment_fields(fields)
    if data:
        for name, value in data.items():
            setattr(treatment, name, value)
        treatment.save(update_fields=list(data))
    # cost may have changed
    return recompute_treatment_balance(treatment.pk)


@transaction.atomic
def delete_treatment(treatment_id) -> None:
    treatment = TreatmentRecord.objects.filter(pk=treatment_id).first()
    if treatment is None:
        raise NotFound('Record not found')
    patient_id = treatment.patient_id
    _lock_patient(patient_id)
    # payments stay on the patient, detached from the treatment
    treatment.delete()
    recompute_patient_balance(patient_id)


# ---------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------
@transaction.atomic
def record_payment(patient_id, *, treatment_record_id: Optional[int] = None, recorded_by_user=None,
                   **fields) -> Payment:
    _lock_patient(patient_id)
    data = {k: v for k, v in fields.items() if k in PAYMENT_FIELDS and v is not None}
    data['amount'] = _money(data.get('amount'), 'amount', allow_zero=False)
    if not data.get('payment_date'):
        raise ValidationFailure('paymentDate is required')
    if not data.get('payment_method'):
        raise ValidationFailure('paymentMethod is required')

    if treatment_record_id:
        belongs = TreatmentRecord.objects.filter(pk=treatment_record_id, patient_id=patient_id).exists()
        if not belongs:
            raise ValidationFailure('Treatment record does not belong to this patient')

    payment = Payment.objects.create(patient_id=patient_id, treatment_record_id=treatment_record_id or None, **data)
    if payment.treatment_record_id:
        recompute_treatment_balance(payment.treatment_record_id)
    else:
        recompute_patient_balance(patient_id)

    safe_log_action(user=recorded_by_user, action='payment_create', object_type='payment',
                    object_id=payment.pk,
                    detail={'patientId': patient_id, 'amount': str(payment.amount)})
    logger.info('payment id=%s recorded for patient id=%s', payment.pk, patient_id)
    return payment


@transaction.atomic
def delete_payment(payment_id, *, deleted_by_user=None) -> None:
    payment = Payment.objects.filter(pk=payment_id).first()
    if payment is None:
        raise NotFound('Payment not found')
    patient_id, treatment_id = payment.patient_id, payment.treatment_record_id
    _lock_patient(patient_id)
    payment.delete()
    if treatment_id:
        recompute_treatment_balance(treatment_id)
    else:
        recompute_patient_balance(patient_id)

    safe_log_action(user=deleted_by_user, action='payment_delete', object_type='payment',
                    object_id=payment_id, detail={'patientId': patient_id})
    logger.info('payment id=%s deleted for patient id=%s', payment_id, patient_id)
