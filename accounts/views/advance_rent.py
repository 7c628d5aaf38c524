"""
Advance house rent endpoints.

Paying an advance draws on the hospital account; monthly deductions only
consume the advance pools of the floor.
"""
from __future__ import annotations

from django.conf import settings
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from accounts.idempotency import idempotent
from accounts.permissions import HasPermission
from accounts.serializers.rent import AdvanceCreateSerializer, DeductSerializer, RentQuerySerializer
from accounts.services import advance_rent, hospital_account
from accounts.services.exports import ledger_csv

from .ledgers import csv_response
from .paging import paginate

RENT = HasPermission('hospital-account.advance-rent')


@api_view(['GET'])
@permission_classes([IsAuthenticated, RENT])
def rent_dashboard(request):
    q = RentQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    data = advance_rent.dashboard(q.validated_data.get('floor_type'))
    data['hospital_balance'] = hospital_account.current_balance()
    return Response({'ok': True, **data})


@api_view(['POST'])
@permission_classes([IsAuthenticated, RENT])
@idempotent('advance_rent')
def rent_store(request):
    s = AdvanceCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    advance = advance_rent.create_advance(amount=v['amount'], floor_type=v['floor_type'],
                                          payment_date=v.get('payment_date'), description=v['description'],
                                          user=request.user)
    return Response({'ok': True, 'data': advance_rent.advance_to_dict(advance),
                     'balance': hospital_account.current_balance()}, status=201)


@api_view(['POST'])
@permission_classes([IsAuthenticated, RENT])
@idempotent('rent_deduct')
def rent_deduct(request):
    s = DeductSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    deduction = advance_rent.deduct(amount=v['amount'], month=v['month'], year=v['year'],
                                    floor_type=v['floor_type'], notes=v['notes'], on=v.get('deduction_date'),
                                    user=request.user)
    return Response({'ok': True, 'data': advance_rent.deduction_to_dict(deduction),
                     'advance': advance_rent.advance_to_dict(deduction.advance)}, status=201)


@api_view(['POST'])
@permission_classes([IsAuthenticated, RENT])
def rent_cancel(request, advance_id: int):
    advance = advance_rent.cancel_advance(advance_id, user=request.user)
    return Response({'ok': True, 'data': advance_rent.advance_to_dict(advance),
                     'balance': hospital_account.current_balance()})


@api_view(['GET'])
@permission_classes([IsAuthenticated, RENT])
def rent_history(request):
    q = RentQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    v = q.validated_data
    ledger = advance_rent.history(year=v.get('year'), month=v.get('month'), floor_type=v.get('floor_type'))
    payload = advance_rent.history_payload(ledger)
    payload['period'] = advance_rent.period_label(v.get('year'), v.get('month'))
    return Response({'ok': True, **payload})


@api_view(['GET'])
@permission_classes([IsAuthenticated, RENT])
def rent_history_export(request):
    q = RentQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    v = q.validated_data
    ledger = advance_rent.history(year=v.get('year'), month=v.get('month'), floor_type=v.get('floor_type'))
    period = advance_rent.period_label(v.get('year'), v.get('month'))
    content = ledger_csv(ledger, title=f'Advance House Rent History - {period}', currency=settings.CURRENCY_SYMBOL)
    filename = 'advance-rent-history-' + period.lower().replace(' ', '-') + '.csv'
    return csv_response(content, filename)


@api_view(['GET'])
@permission_classes([IsAuthenticated, RENT])
def rent_deductions(request):
    q = RentQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    v = q.validated_data
    qs = advance_rent.list_deductions(month=v.get('month'), year=v.get('year'), floor_type=v.get('floor_type'))
    items, pagination = paginate(qs, page=v.get('page', 1), page_size=v.get('pageSize', 20))
    return Response({
        'ok': True,
        'data': [advance_rent.deduction_to_dict(d) for d in items],
        'pagination': pagination,
        'total_amount': advance_rent.total_amount(qs),
        'monthly_totals': advance_rent.monthly_totals(qs),
    })
