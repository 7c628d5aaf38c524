"""
Optics and medicine stock endpoints.

``item_type`` in the URL is ``glasses`` or ``medicine``.  Receiving stock
re-prices the item at weighted-average cost; other movements only change
the quantity.
"""
from __future__ import annotations

from django.db.models import Q
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from accounts.idempotency import idempotent
from accounts.models import Glasses, Medicine
from accounts.permissions import HasKindPermission
from accounts.serializers.stock import ITEM_SERIALIZERS, MoveStockSerializer, ReceiveStockSerializer
from accounts.services import stock

from .paging import paginate

STOCK = HasKindPermission('item_type', {
    Glasses.ITEM_TYPE: 'optics.stock',
    Medicine.ITEM_TYPE: 'medicine-corner.stock',
})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, STOCK])
def item_list(request, item_type: str):
    model = stock.item_model(item_type)
    if request.method == 'GET':
        qs = model.objects.order_by('name', 'id')
        search = (request.query_params.get('search') or '').strip()
        if search:
            qs = qs.filter(Q(name__icontains=search) | Q(sku__icontains=search))
        return Response({'ok': True, 'data': [stock.item_to_dict(i) for i in qs]})
    s = ITEM_SERIALIZERS[item_type](data=request.data)
    s.is_valid(raise_exception=True)
    item = s.save()
    return Response({'ok': True, 'data': stock.item_to_dict(item)}, status=201)


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, STOCK])
def item_detail(request, item_type: str, item_id: int):
    if request.method == 'DELETE':
        stock.delete_item(item_type, item_id, user=request.user)
        return Response({'ok': True})
    item = stock.get_item(item_type, item_id)
    if request.method == 'PUT':
        s = ITEM_SERIALIZERS[item_type](item, data=request.data, partial=True)
        s.is_valid(raise_exception=True)
        item = s.save()
    return Response({'ok': True, 'data': stock.item_to_dict(item)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, STOCK])
def item_toggle(request, item_type: str, item_id: int):
    item = stock.toggle_item(item_type, item_id, user=request.user)
    return Response({'ok': True, 'data': stock.item_to_dict(item)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, STOCK])
@idempotent('stock_receive')
def item_receive(request, item_type: str, item_id: int):
    s = ReceiveStockSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    movement = stock.receive_stock(item_type, item_id, quantity=v['quantity'], total_price=v['total_price'],
                                   vendor_id=v.get('vendor_id'), paid_amount=v.get('paid_amount'),
                                   notes=v['notes'], on=v.get('date'), user=request.user)
    item = stock.get_item(item_type, item_id)
    return Response({'ok': True, 'data': stock.item_to_dict(item),
                     'movement': stock.movement_to_dict(movement)}, status=201)


@api_view(['POST'])
@permission_classes([IsAuthenticated, STOCK])
def item_move(request, item_type: str, item_id: int):
    s = MoveStockSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    movement = stock.move_stock(item_type, item_id, movement_type=v['movement_type'], quantity=v['quantity'],
                                notes=v['notes'], unit_price=v.get('unit_price'), user=request.user)
    item = stock.get_item(item_type, item_id)
    return Response({'ok': True, 'data': stock.item_to_dict(item),
                     'movement': stock.movement_to_dict(movement)}, status=201)


@api_view(['GET'])
@permission_classes([IsAuthenticated, STOCK])
def item_movements(request, item_type: str, item_id: int):
    stock.get_item(item_type, item_id)
    try:
        page = max(int(request.query_params.get('page', 1)), 1)
    except (TypeError, ValueError):
        page = 1
    items, pagination = paginate(stock.movements(item_type, item_id), page=page)
    return Response({'ok': True, 'data': [stock.movement_to_dict(m) for m in items], 'pagination': pagination})


@api_view(['GET'])
@permission_classes([IsAuthenticated, STOCK])
def low_stock(request, item_type: str):
    return Response({'ok': True, 'data': [stock.item_to_dict(i) for i in stock.low_stock(item_type)]})
