from rest_framework import serializers

from accounts.models import AdvanceHouseRent

from .fields import CleanCharField, money


class AdvanceCreateSerializer(serializers.Serializer):
    amount = money()
    floor_type = serializers.ChoiceField(choices=AdvanceHouseRent.FLOOR_CHOICES)
    payment_date = serializers.DateField(required=False)
    description = CleanCharField(required=False, allow_blank=True, default='')


class DeductSerializer(serializers.Serializer):
    amount = money()
    month = serializers.IntegerField(min_value=1, max_value=12)
    year = serializers.IntegerField(min_value=2020, max_value=2100)
    floor_type = serializers.ChoiceField(choices=AdvanceHouseRent.FLOOR_CHOICES)
    notes = CleanCharField(required=False, allow_blank=True, default='')
    deduction_date = serializers.DateField(required=False)


class RentQuerySerializer(serializers.Serializer):
    year = serializers.IntegerField(min_value=2000, max_value=2100, required=False)
    month = serializers.IntegerField(min_value=1, max_value=12, required=False)
    floor_type = serializers.ChoiceField(choices=AdvanceHouseRent.FLOOR_CHOICES, required=False)
    page = serializers.IntegerField(min_value=1, required=False)
    pageSize = serializers.IntegerField(min_value=1, max_value=200, required=False)

    def validate(self, attrs):
        if attrs.get('month') and not attrs.get('year'):
            raise serializers.ValidationError({'year': ['Year is required when month is given.']})
        return attrs
