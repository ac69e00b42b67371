"""
Patient record claiming views.

All endpoints are anonymous: the caller is a patient who does not have
an account yet.  Only masked phone numbers are ever returned.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from backoffice.serializers.claiming import (
    PatientIdSerializer,
    RecordSearchSerializer,
    RecordSelectSerializer,
    VerifyAndLinkSerializer,
)
from backoffice.services import claiming


@api_view(['POST'])
@permission_classes([AllowAny])
def search_record(request):
    s = RecordSearchSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    return Response(claiming.search(vd['fullName'], vd['dateOfBirth'], vd['phone']))


@api_view(['POST'])
@permission_classes([AllowAny])
def select_record(request):
    s = RecordSelectSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    return Response(claiming.select(s.validated_data['patientId'], s.validated_data.get('lastVisit')))


@api_view(['POST'])
@permission_classes([AllowAny])
def send_otp(request):
    s = PatientIdSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    return Response(claiming.send_challenge(s.validated_data['patientId']))


@api_view(['POST'])
@permission_classes([AllowAny])
def resend_otp(request):
    s = PatientIdSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    return Response(claiming.resend_challenge(s.validated_data['patientId']))


@api_view(['POST'])
@permission_classes([AllowAny])
def verify_and_link(request):
    s = VerifyAndLinkSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    account = vd['userData']
    payload = claiming.verify_and_link(
        vd['patientId'], vd['otp'],
        username=account['username'],
        password=account['password'],
        email=account.get('email'),
    )
    return Response(payload, status=201)
