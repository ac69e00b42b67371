import bleach
from rest_framework import serializers

from backoffice.models import Patient


def _clean(v):
    return bleach.clean((v or '').strip(), strip=True)


class PatientSerializer(serializers.Serializer):
    """Writable patient fields; balances and account binding are server-side only."""
    name = serializers.CharField(max_length=100)
    dateOfBirth = serializers.DateField(required=False, allow_null=True)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=20)
    email = serializers.EmailField(required=False, allow_blank=True, max_length=100)
    address = serializers.CharField(required=False, allow_blank=True)
    sex = serializers.ChoiceField(choices=[c[0] for c in Patient.SEX_CHOICES], required=False, allow_blank=True)
    medicalHistory = serializers.CharField(required=False, allow_blank=True)
    allergies = serializers.CharField(required=False, allow_blank=True)
    lastVisit = serializers.DateField(required=False, allow_null=True)
    nextAppointment = serializers.DateField(required=False, allow_null=True)

    def validate_name(self, v):
        v = _clean(v)
        if len(v) < 2:
            raise serializers.ValidationError('Name must be at least 2 characters')
        return v

    def validate_address(self, v):
        return _clean(v)

    def validate_medicalHistory(self, v):
        return _clean(v)

    def validate_allergies(self, v):
        return _clean(v)

    def to_service_fields(self) -> dict:
        vd = self.validated_data
        mapping = {
            'name': 'name', 'dateOfBirth': 'date_of_birth', 'phone': 'phone', 'email': 'email',
            'address': 'address', 'sex': 'sex', 'medicalHistory': 'medical_history',
            'allergies': 'allergies', 'lastVisit': 'last_visit', 'nextAppointment': 'next_appointment',
        }
        return {target: vd[source] for source, target in mapping.items() if source in vd}
