"""
Running-balance reports over the hospital account.
"""
from __future__ import annotations

from django.conf import settings
from django.http import HttpResponse
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from accounts.permissions import HasPermission
from accounts.serializers.account import LedgerQuerySerializer
from accounts.services import hospital_account, ledgers
from accounts.services.exports import ledger_csv


def _period(v) -> str:
    start, end = v.get('start_date'), v.get('end_date')
    if start and end:
        return f'{start.isoformat()} to {end.isoformat()}'
    if start:
        return f'from {start.isoformat()}'
    if end:
        return f'until {end.isoformat()}'
    return 'All Time'


def csv_response(content: str, filename: str) -> HttpResponse:
    # BOM so spreadsheet apps pick up UTF-8 (currency symbol)
    response = HttpResponse('\ufeff' + content, content_type='text/csv; charset=utf-8')
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    return response


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasPermission('hospital-account.fund-history')])
def fund_ledger(request):
    q = LedgerQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    v = q.validated_data
    ledger = ledgers.fund_ledger(start=v.get('start_date'), end=v.get('end_date'), investor=v.get('investor'),
                                group_by_date=v['group'] == 'date')
    payload = ledgers.fund_ledger_payload(ledger)
    payload['investors'] = hospital_account.investor_names()
    return Response({'ok': True, **payload})


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasPermission('hospital-account.fund-history')])
def fund_ledger_export(request):
    q = LedgerQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    v = q.validated_data
    ledger = ledgers.fund_ledger(start=v.get('start_date'), end=v.get('end_date'), investor=v.get('investor'),
                                group_by_date=v['group'] == 'date')
    content = ledger_csv(ledger, title=f'Hospital Fund Ledger - {_period(v)}', currency=settings.CURRENCY_SYMBOL)
    return csv_response(content, 'fund-ledger.csv')


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasPermission('hospital-account.house-security')])
def house_security(request):
    q = LedgerQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    v = q.validated_data
    ledger = ledgers.house_security_ledger(start=v.get('start_date'), end=v.get('end_date'), search=v.get('search'))
    return Response({'ok': True, **ledgers.house_security_payload(ledger)})
