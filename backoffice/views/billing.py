"""
Treatment record and payment views.

Balances are never accepted from the client.  Every write goes through
:mod:`backoffice.services.billing`, which recomputes the derived totals
before the response is built.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from backoffice.models import Payment, TreatmentRecord
from backoffice.permissions import IsStaffRole
from backoffice.serializers.billing import PaymentSerializer, TreatmentSerializer
from backoffice.services import billing


def _money(v) -> str:
    return str(v) if v is not None else '0.00'


def _serialize_treatment(t: TreatmentRecord) -> dict:
    return {
        'id': t.id,
        'patientId': t.patient_id,
        'patientName': t.patient.name if t.patient_id else None,
        'date': t.date.isoformat() if t.date else None,
        'treatment': t.treatment,
        'tooth': t.tooth,
        'notes': t.notes,
        'cost': _money(t.cost),
        'dentist': t.dentist,
        'paymentType': t.payment_type,
        'amountPaid': _money(t.amount_paid),
        'remainingBalance': _money(t.remaining_balance),
        'installmentPlan': t.installment_plan,
        'createdAt': t.created_at.isoformat() if t.created_at else None,
    }


def _serialize_payment(p: Payment) -> dict:
    return {
        'id': p.id,
        'patientId': p.patient_id,
        'patientName': p.patient.name if p.patient_id else None,
        'treatmentRecordId': p.treatment_record_id,
        'amount': _money(p.amount),
        'paymentDate': p.payment_date.isoformat() if p.payment_date else None,
        'paymentMethod': p.payment_method,
        'status': p.status,
        'notes': p.notes,
        'recordedBy': p.recorded_by,
        'createdAt': p.created_at.isoformat() if p.created_at else None,
    }


# ---------------------------------------------------------------------
# Treatment records
# ---------------------------------------------------------------------
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def treatment_records(request):
    if request.method == 'GET':
        qs = TreatmentRecord.objects.select_related('patient').order_by('-date', '-id')
        return Response([_serialize_treatment(t) for t in qs])
    s = TreatmentSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    t = billing.create_treatment(s.validated_data['patientId'], **s.to_service_fields())
    return Response({'ok': True, 'message': 'Treatment record created successfully',
                     'record': _serialize_treatment(t)}, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def patient_treatment_records(request, patient_id: int):
    qs = TreatmentRecord.objects.select_related('patient').filter(patient_id=patient_id).order_by('-date', '-id')
    return Response([_serialize_treatment(t) for t in qs])


@api_view(['PUT', 'DELETE'])
@permission_classes([IsAuthenticated, IsStaffRole])
def treatment_record_detail(request, record_id: int):
    if request.method == 'DELETE':
        billing.delete_treatment(record_id)
        return Response({'ok': True, 'message': 'Treatment record deleted successfully'})
    s = TreatmentSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    t = billing.update_treatment(record_id, **s.to_service_fields())
    return Response({'ok': True, 'message': 'Treatment record updated successfully',
                     'record': _serialize_treatment(t)})


# ---------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def payments(request):
    if request.method == 'GET':
        qs = Payment.objects.select_related('patient').order_by('-payment_date', '-id')
        patient_id = request.query_params.get('patientId')
        if patient_id and patient_id.isdigit():
            qs = qs.filter(patient_id=int(patient_id))
        return Response([_serialize_payment(p) for p in qs])
    s = PaymentSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    p = billing.record_payment(
        s.validated_data['patientId'],
        treatment_record_id=s.validated_data.get('treatmentRecordId'),
        recorded_by_user=request.user,
        **s.to_service_fields(),
    )
    return Response({'ok': True, 'message': 'Payment recorded successfully', 'paymentId': p.id},
                    status=status.HTTP_201_CREATED)


@api_view(['DELETE'])
@permission_classes([IsAuthenticated, IsStaffRole])
def payment_detail(request, payment_id: int):
    billing.delete_payment(payment_id, deleted_by_user=request.user)
    return Response({'ok': True, 'message': 'Payment deleted successfully'})
