import bleach
from rest_framework import serializers


class CleanCharField(serializers.CharField):
    """CharField that strips any HTML before the value reaches a service."""

    def to_internal_value(self, data):
        value = super().to_internal_value(data)
        return bleach.clean(value, tags=set(), strip=True).strip()


class DateRangeMixin:
    """Reject ``start_date`` after ``end_date``."""

    def validate(self, attrs):
        attrs = super().validate(attrs)
        start, end = attrs.get('start_date'), attrs.get('end_date')
        if start and end and start > end:
            raise serializers.ValidationError({'end_date': ['End date must be on or after the start date.']})
        return attrs


def money(**kwargs):
    # sign and range are checked by the services (InvalidAmount)
    kwargs.setdefault('max_digits', 14)
    kwargs.setdefault('decimal_places', 2)
    return serializers.DecimalField(**kwargs)
