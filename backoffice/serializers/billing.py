import bleach
from rest_framework import serializers

from backoffice.models import Payment, TreatmentRecord


def _clean(v):
    return bleach.clean((v or '').strip(), strip=True)


class TreatmentSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1)
    date = serializers.DateField(required=False, allow_null=True)
    treatment = serializers.CharField(required=False, allow_blank=True, max_length=100)
    tooth = serializers.CharField(required=False, allow_blank=True, max_length=10)
    notes = serializers.CharField(required=False, allow_blank=True)
    cost = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)
    dentist = serializers.CharField(required=False, allow_blank=True, max_length=100)
    paymentType = serializers.ChoiceField(
        choices=[c[0] for c in TreatmentRecord.PAYMENT_TYPE_CHOICES], required=False
    )
    installmentPlan = serializers.JSONField(required=False, allow_null=True)

    def validate_notes(self, v):
        return _clean(v)

    def validate_treatment(self, v):
        return _clean(v)

    def to_service_fields(self) -> dict:
        vd = self.validated_data
        mapping = {
            'date': 'date', 'treatment': 'treatment', 'tooth': 'tooth', 'notes': 'notes',
            'cost': 'cost', 'dentist': 'dentist', 'paymentType': 'payment_type',
            'installmentPlan': 'installment_plan',
        }
        return {target: vd[source] for source, target in mapping.items() if source in vd}


class PaymentSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1)
    treatmentRecordId = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)
    paymentDate = serializers.DateField()
    paymentMethod = serializers.ChoiceField(choices=[c[0] for c in Payment.METHOD_CHOICES])
    status = serializers.ChoiceField(choices=[c[0] for c in Payment.STATUS_CHOICES], required=False)
    notes = serializers.CharField(required=False, allow_blank=True)
    recordedBy = serializers.CharField(required=False, allow_blank=True, max_length=100)

    def validate_notes(self, v):
        return _clean(v)

    def to_service_fields(self) -> dict:
        vd = self.validated_data
        mapping = {
            'amount': 'amount', 'paymentDate': 'payment_date', 'paymentMethod': 'payment_method',
            'status': 'status', 'notes': 'notes', 'recordedBy': 'recorded_by',
        }
        return {target: vd[source] for source, target in mapping.items() if source in vd}
