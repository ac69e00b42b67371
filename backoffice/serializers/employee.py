import bleach
from rest_framework import serializers

from backoffice.models import Employee


class EmployeeSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100)
    position = serializers.ChoiceField(choices=[c[0] for c in Employee.POSITION_CHOICES])
    phone = serializers.CharField(required=False, allow_blank=True, max_length=20)
    email = serializers.EmailField(required=False, allow_blank=True, max_length=100)
    address = serializers.CharField(required=False, allow_blank=True)
    dateHired = serializers.DateField(required=False, allow_null=True)

    def validate_name(self, v):
        v = bleach.clean((v or '').strip(), strip=True)
        if len(v) < 2:
            raise serializers.ValidationError('Name must be at least 2 characters')
        return v

    def validate_address(self, v):
        return bleach.clean((v or '').strip(), strip=True)

    def to_service_fields(self) -> dict:
        vd = self.validated_data
        mapping = {
            'name': 'name', 'position': 'position', 'phone': 'phone',
            'email': 'email', 'address': 'address', 'dateHired': 'date_hired',
        }
        return {target: vd[source] for source, target in mapping.items() if source in vd}
