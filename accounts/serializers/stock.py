from rest_framework import serializers

from accounts.models import Glasses, Medicine, StockMovement

from .fields import CleanCharField, money


class GlassesSerializer(serializers.ModelSerializer):
    class Meta:
        model = Glasses
        fields = ['id', 'name', 'sku', 'brand', 'model', 'frame_type', 'default_vendor',
                  'purchase_price', 'selling_price', 'stock_quantity', 'minimum_stock_level', 'is_active']
        read_only_fields = ['id', 'purchase_price', 'stock_quantity']


class MedicineSerializer(serializers.ModelSerializer):
    class Meta:
        model = Medicine
        fields = ['id', 'name', 'sku', 'generic_name', 'unit',
                  'purchase_price', 'selling_price', 'stock_quantity', 'minimum_stock_level', 'is_active']
        read_only_fields = ['id', 'purchase_price', 'stock_quantity']


ITEM_SERIALIZERS = {Glasses.ITEM_TYPE: GlassesSerializer, Medicine.ITEM_TYPE: MedicineSerializer}


class ReceiveStockSerializer(serializers.Serializer):
    quantity = serializers.IntegerField()
    total_price = money(max_digits=16)
    vendor_id = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    paid_amount = money(required=False, allow_null=True)
    notes = CleanCharField(required=False, allow_blank=True, default='')
    date = serializers.DateField(required=False)


class MoveStockSerializer(serializers.Serializer):
    movement_type = serializers.ChoiceField(
        choices=[c for c in StockMovement.TYPE_CHOICES if c[0] != StockMovement.TYPE_PURCHASE]
    )
    quantity = serializers.IntegerField()
    unit_price = money(required=False, allow_null=True)
    notes = CleanCharField(required=False, allow_blank=True, default='')
