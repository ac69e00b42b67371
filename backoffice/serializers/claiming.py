from rest_framework import serializers


class RecordSearchSerializer(serializers.Serializer):
    fullName = serializers.CharField(max_length=100)
    dateOfBirth = serializers.DateField()
    phone = serializers.CharField(max_length=20)


class RecordSelectSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1)
    lastVisit = serializers.DateField(required=False, allow_null=True)


class PatientIdSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1)


class NewAccountSerializer(serializers.Serializer):
    username = serializers.CharField(max_length=150)
    password = serializers.CharField(write_only=True)
    email = serializers.EmailField(required=False, allow_blank=True, allow_null=True)


class VerifyAndLinkSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1)
    otp = serializers.RegexField(r'^\d{4,10}$')
    userData = NewAccountSerializer()
