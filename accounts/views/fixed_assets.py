from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from accounts.idempotency import idempotent
from accounts.permissions import HasPermission
from accounts.serializers.vendor import (
    FixedAssetQuerySerializer,
    FixedAssetSerializer,
    FixedAssetUpdateSerializer,
    VendorPaymentSerializer,
)
from accounts.services import fixed_assets

ASSETS = HasPermission('hospital-account.fixed-assets')


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, ASSETS])
def asset_list(request):
    if request.method == 'GET':
        q = FixedAssetQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        v = q.validated_data
        qs = fixed_assets.list_assets(status=v.get('status'), vendor_id=v.get('vendor_id'), search=v.get('search'),
                                      start=v.get('start_date'), end=v.get('end_date'))
        return Response({'ok': True, 'data': [fixed_assets.asset_to_dict(a) for a in qs],
                         'totals': fixed_assets.totals(qs)})
    s = FixedAssetSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    asset = fixed_assets.create_asset(user=request.user, **s.validated_data)
    return Response({'ok': True, 'data': fixed_assets.asset_to_dict(asset)}, status=201)


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, ASSETS])
def asset_detail(request, asset_id: int):
    if request.method == 'GET':
        return Response({'ok': True, 'data': fixed_assets.asset_to_dict(fixed_assets.get_asset(asset_id))})
    if request.method == 'DELETE':
        fixed_assets.delete_asset(asset_id, user=request.user)
        return Response({'ok': True})
    s = FixedAssetUpdateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    asset = fixed_assets.update_asset(asset_id, user=request.user, **s.validated_data)
    return Response({'ok': True, 'data': fixed_assets.asset_to_dict(asset)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, ASSETS])
@idempotent('asset_payment')
def asset_payment(request, asset_id: int):
    s = VendorPaymentSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    asset = fixed_assets.pay_asset(asset_id, amount=v['amount'], payment_method=v['payment_method'],
                                   reference_no=v['reference_no'], on=v.get('date'), user=request.user)
    return Response({'ok': True, 'data': fixed_assets.asset_to_dict(asset)}, status=201)
