from rest_framework import serializers

from accounts.models import FixedAsset, Vendor, VendorTransaction

from .fields import CleanCharField, DateRangeMixin, money


class VendorSerializer(serializers.Serializer):
    name = CleanCharField(max_length=255)
    company_name = CleanCharField(max_length=255, required=False, allow_blank=True)
    contact_person = CleanCharField(max_length=255, required=False, allow_blank=True)
    phone = CleanCharField(max_length=32, required=False, allow_blank=True)
    email = serializers.EmailField(required=False, allow_blank=True)
    address = CleanCharField(required=False, allow_blank=True)
    opening_balance = money(required=False)
    balance_type = serializers.ChoiceField(choices=Vendor.BALANCE_CHOICES, required=False)
    credit_limit = money(required=False)
    payment_terms_days = serializers.IntegerField(min_value=0, required=False)
    notes = CleanCharField(required=False, allow_blank=True)
    is_active = serializers.BooleanField(required=False)


class VendorPaymentSerializer(serializers.Serializer):
    amount = money()
    payment_method = serializers.ChoiceField(choices=VendorTransaction.METHOD_CHOICES,
                                             default=VendorTransaction.METHOD_CASH)
    reference_no = CleanCharField(max_length=100, required=False, allow_blank=True, default='')
    description = CleanCharField(required=False, allow_blank=True, default='')
    date = serializers.DateField(required=False)


class DueLedgerQuerySerializer(DateRangeMixin, serializers.Serializer):
    vendor_id = serializers.IntegerField(min_value=1, required=False)
    start_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False)


class FixedAssetSerializer(serializers.Serializer):
    name = CleanCharField(max_length=255)
    description = CleanCharField(required=False, allow_blank=True, default='')
    total_amount = money()
    paid_amount = money(required=False, default=0)
    vendor_id = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    purchase_date = serializers.DateField(required=False)


class FixedAssetUpdateSerializer(serializers.Serializer):
    name = CleanCharField(max_length=255, required=False)
    description = CleanCharField(required=False, allow_blank=True)
    total_amount = money(required=False)
    purchase_date = serializers.DateField(required=False)
    status = serializers.ChoiceField(choices=FixedAsset.STATUS_CHOICES, required=False)


class FixedAssetQuerySerializer(DateRangeMixin, serializers.Serializer):
    status = serializers.ChoiceField(choices=FixedAsset.STATUS_CHOICES, required=False)
    vendor_id = serializers.IntegerField(min_value=1, required=False)
    search = serializers.CharField(max_length=255, required=False)
    start_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False)
