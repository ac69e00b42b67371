from rest_framework import serializers


class LoginSerializer(serializers.Serializer):
    username = serializers.CharField()
    password = serializers.CharField()

    def validate_username(self, v):
        v = (v or '').strip()
        if not v:
            raise serializers.ValidationError('Username is required')
        return v

    def validate_password(self, v):
        if not v:
            raise serializers.ValidationError('Password is required')
        return v


class ChangePasswordSerializer(serializers.Serializer):
    currentPassword = serializers.CharField()
    newPassword = serializers.CharField()


class CheckUsernameQuerySerializer(serializers.Serializer):
    username = serializers.CharField(max_length=150)


class UpdateSettingsSerializer(serializers.Serializer):
    fullName = serializers.CharField(max_length=150, required=False, allow_blank=False)
    username = serializers.CharField(max_length=150, required=False, allow_blank=False)
    currentPassword = serializers.CharField(required=False, allow_blank=True)
    newPassword = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if attrs.get('newPassword') and not attrs.get('currentPassword'):
            raise serializers.ValidationError('Current password is required to change password')
        return attrs
