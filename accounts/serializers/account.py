from rest_framework import serializers

from .fields import CleanCharField, DateRangeMixin, money


class FundSerializer(serializers.Serializer):
    amount = money()
    purpose = CleanCharField(max_length=255)
    description = CleanCharField(required=False, allow_blank=True, default='')
    date = serializers.DateField(required=False)


class HospitalTransactionSerializer(serializers.Serializer):
    """Income or expense.  Either ``category`` (name) or ``category_id``."""
    amount = money()
    category = CleanCharField(max_length=255, required=False, allow_blank=True)
    category_id = serializers.IntegerField(min_value=1, required=False)
    description = CleanCharField(required=False, allow_blank=True, default='')
    date = serializers.DateField(required=False)

    def validate(self, attrs):
        if not attrs.get('category') and not attrs.get('category_id'):
            raise serializers.ValidationError({'category': ['Category is required.']})
        return attrs


class TransactionQuerySerializer(DateRangeMixin, serializers.Serializer):
    type = serializers.ChoiceField(choices=['income', 'expense'], required=False)
    category = serializers.CharField(max_length=255, required=False)
    search = serializers.CharField(max_length=255, required=False)
    start_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False)
    page = serializers.IntegerField(min_value=1, required=False)
    pageSize = serializers.IntegerField(min_value=1, max_value=200, required=False)


class LedgerQuerySerializer(DateRangeMixin, serializers.Serializer):
    start_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False)
    investor = serializers.CharField(max_length=255, required=False)
    search = serializers.CharField(max_length=255, required=False)
    group = serializers.ChoiceField(choices=['date', 'transaction'], required=False, default='date')


class BalanceQuerySerializer(serializers.Serializer):
    as_on = serializers.DateField(required=False)


class MonthQuerySerializer(serializers.Serializer):
    year = serializers.IntegerField(min_value=2000, max_value=2100, required=False)
    month = serializers.IntegerField(min_value=1, max_value=12, required=False)


class CategorySerializer(serializers.Serializer):
    name = CleanCharField(max_length=255)
    is_active = serializers.BooleanField(required=False, default=True)
