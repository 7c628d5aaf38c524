"""
Vendor endpoints, one set per vendor kind (fixed asset, medicine, optics).

The kind comes from the URL and selects both the permission checked and
the vendors visible.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from accounts.exceptions import NotFound
from accounts.idempotency import idempotent
from accounts.models import Vendor
from accounts.permissions import HasKindPermission
from accounts.serializers.vendor import DueLedgerQuerySerializer, VendorPaymentSerializer, VendorSerializer
from accounts.services import vendor_due, vendors

KIND_PERMISSIONS = {
    Vendor.KIND_FIXED_ASSET: 'hospital-account.fixed-asset-vendors',
    Vendor.KIND_MEDICINE: 'medicine-corner.vendors',
    Vendor.KIND_OPTICS: 'optics.vendors',
}

VENDORS = HasKindPermission('kind', KIND_PERMISSIONS)
DUE_LEDGER = HasKindPermission('kind', KIND_PERMISSIONS, 'hospital-account.vendor-due')


def _kind(kind: str) -> str:
    if kind not in KIND_PERMISSIONS:
        raise NotFound('unknown vendor kind')
    return kind


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, VENDORS])
def vendor_list(request, kind: str):
    kind = _kind(kind)
    if request.method == 'GET':
        qs = vendor_due.vendors_for(kind).order_by('name', 'id')
        search = (request.query_params.get('search') or '').strip()
        if search:
            qs = qs.filter(name__icontains=search)
        if request.query_params.get('active') in ('1', 'true'):
            qs = qs.filter(is_active=True)
        return Response({'ok': True, 'data': [vendors.vendor_to_dict(v) for v in qs]})
    s = VendorSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vendor = vendors.create_vendor(kind=kind, user=request.user, **s.validated_data)
    return Response({'ok': True, 'data': vendors.vendor_to_dict(vendor)}, status=201)


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, VENDORS])
def vendor_detail(request, kind: str, vendor_id: int):
    kind = _kind(kind)
    if request.method == 'GET':
        vendor = vendors.get_vendor(vendor_id, kind=kind)
        recent = vendor.transactions.order_by('-transaction_date', '-id')[:20]
        return Response({'ok': True, 'data': vendors.vendor_to_dict(vendor),
                         'transactions': [vendors.transaction_to_dict(t) for t in recent]})
    if request.method == 'DELETE':
        vendors.delete_vendor(vendor_id, kind=kind, user=request.user)
        return Response({'ok': True})
    s = VendorSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    vendor = vendors.update_vendor(vendor_id, kind=kind, user=request.user, **s.validated_data)
    return Response({'ok': True, 'data': vendors.vendor_to_dict(vendor)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, VENDORS])
def vendor_toggle(request, kind: str, vendor_id: int):
    vendor = vendors.toggle_status(vendor_id, kind=_kind(kind), user=request.user)
    return Response({'ok': True, 'data': vendors.vendor_to_dict(vendor)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, VENDORS])
@idempotent('vendor_payment')
def vendor_payment(request, kind: str, vendor_id: int):
    s = VendorPaymentSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    txn = vendors.pay_vendor(vendor_id, amount=v['amount'], payment_method=v['payment_method'],
                             reference_no=v['reference_no'], description=v['description'], on=v.get('date'),
                             user=request.user, kind=_kind(kind))
    return Response({'ok': True, 'data': vendors.transaction_to_dict(txn),
                     'current_balance': txn.new_balance}, status=201)


@api_view(['GET'])
@permission_classes([IsAuthenticated, DUE_LEDGER])
def vendor_due_ledger(request, kind: str):
    q = DueLedgerQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    v = q.validated_data
    data = vendor_due.due_ledger(_kind(kind), vendor_id=v.get('vendor_id'), start=v.get('start_date'),
                                 end=v.get('end_date'))
    return Response({'ok': True, **data})


@api_view(['GET'])
@permission_classes([IsAuthenticated, DUE_LEDGER])
def vendor_statement(request, kind: str, vendor_id: int):
    q = DueLedgerQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    v = q.validated_data
    vendor = vendors.get_vendor(vendor_id, kind=_kind(kind))
    ledger = vendor_due.vendor_statement(vendor, start=v.get('start_date'), end=v.get('end_date'))
    return Response({'ok': True, 'vendor': vendors.vendor_to_dict(vendor), **ledger.as_dict()})
