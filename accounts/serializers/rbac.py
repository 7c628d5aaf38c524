from rest_framework import serializers

from .fields import CleanCharField


class RoleSerializer(serializers.Serializer):
    name = CleanCharField(max_length=100)
    description = CleanCharField(required=False, allow_blank=True, default='')
    permissions = serializers.ListField(child=serializers.CharField(max_length=150), required=False, default=list)


class RoleUpdateSerializer(serializers.Serializer):
    name = CleanCharField(max_length=100, required=False)
    description = CleanCharField(required=False, allow_blank=True)
    permissions = serializers.ListField(child=serializers.CharField(max_length=150), required=False)


class PermissionSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=150)
    display_name = CleanCharField(max_length=255, required=False, allow_blank=True, default='')
    category = CleanCharField(max_length=100, required=False, allow_blank=True, default='')
    description = CleanCharField(required=False, allow_blank=True, default='')


class UserPermissionsSerializer(serializers.Serializer):
    granted = serializers.ListField(child=serializers.CharField(max_length=150), required=False, default=list)
    revoked = serializers.ListField(child=serializers.CharField(max_length=150), required=False, default=list)
    role_id = serializers.IntegerField(min_value=1, required=False, allow_null=True)

    def validate(self, attrs):
        overlap = set(attrs['granted']) & set(attrs['revoked'])
        if overlap:
            raise serializers.ValidationError({'revoked': [f'Both granted and revoked: {", ".join(sorted(overlap))}']})
        return attrs
