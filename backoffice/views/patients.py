"""
Patient record views for staff.

``totalBalance``, ``hasAccount`` and the linked username are reported
but never accepted from the client.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from backoffice.models import Patient
from backoffice.permissions import IsStaffRole
from backoffice.serializers.patient import PatientSerializer
from backoffice.services import patients as patient_service


def _iso(d):
    return d.isoformat() if d else None


def _serialize_patient(p: Patient) -> dict:
    return {
        'id': p.id,
        'name': p.name,
        'dateOfBirth': _iso(p.date_of_birth),
        'phone': p.phone,
        'email': p.email,
        'address': p.address,
        'sex': p.sex,
        'medicalHistory': p.medical_history,
        'allergies': p.allergies,
        'lastVisit': _iso(p.last_visit),
        'nextAppointment': _iso(p.next_appointment),
        'hasAccount': p.has_account,
        'username': p.user.username if p.user_id else None,
        'totalBalance': str(p.total_balance),
        'createdAt': p.created_at.isoformat() if p.created_at else None,
    }


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def patients(request):
    if request.method == 'GET':
        qs = Patient.objects.select_related('user').order_by('name', 'id')
        return Response([_serialize_patient(p) for p in qs])
    s = PatientSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    p = patient_service.create_patient(**s.to_service_fields())
    return Response({'ok': True, 'message': 'Patient added successfully', 'patient': _serialize_patient(p)},
                    status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, IsStaffRole])
def patient_detail(request, patient_id: int):
    if request.method == 'GET':
        return Response(_serialize_patient(patient_service.get_patient(patient_id)))
    if request.method == 'DELETE':
        patient_service.delete_patient(patient_id)
        return Response({'ok': True, 'message': 'Patient deleted successfully'})
    s = PatientSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    p = patient_service.update_patient(patient_id, **s.to_service_fields())
    return Response({'ok': True, 'message': 'Patient updated successfully', 'patient': _serialize_patient(p)})
