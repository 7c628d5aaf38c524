"""
Hospital account endpoints: balance, funds, income/expense and reports.
"""
from __future__ import annotations

from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from accounts.exceptions import NotFound
from accounts.idempotency import idempotent
from accounts.models import ExpenseCategory, HospitalFundTransaction, IncomeCategory
from accounts.permissions import HasPermission
from accounts.serializers.account import (
    BalanceQuerySerializer,
    CategorySerializer,
    FundSerializer,
    HospitalTransactionSerializer,
    MonthQuerySerializer,
    TransactionQuerySerializer,
)
from accounts.services import hospital_account
from accounts.services.audit import log_action

from .paging import paginate


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasPermission('hospital-account.view')])
def account_dashboard(request):
    today = timezone.localdate()
    recent = hospital_account.list_transactions()[:10]
    funds = HospitalFundTransaction.objects.select_related('added_by').order_by('-date', '-id')[:10]
    return Response({
        'ok': True,
        'balance': hospital_account.current_balance(),
        'month': hospital_account.monthly_report(today.year, today.month),
        'recent_transactions': [hospital_account.transaction_to_dict(t) for t in recent],
        'recent_funds': [hospital_account.fund_to_dict(t) for t in funds],
        'investors': hospital_account.investor_names(),
        'expense_categories': list(ExpenseCategory.objects.filter(is_active=True).order_by('name').values('id', 'name')),
        'income_categories': list(IncomeCategory.objects.filter(is_active=True).order_by('name').values('id', 'name')),
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasPermission('hospital-account.view')])
def account_balance(request):
    q = BalanceQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    as_on = q.validated_data.get('as_on')
    return Response({'ok': True, 'balance': hospital_account.current_balance(as_on),
                     'as_on': as_on.isoformat() if as_on else None})


# ---------------------------------------------------------------------
# Funds
# ---------------------------------------------------------------------
@api_view(['POST'])
@permission_classes([IsAuthenticated, HasPermission('hospital-account.fund-in')])
@idempotent('fund_in')
def fund_in(request):
    s = FundSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    txn = hospital_account.fund_in(amount=v['amount'], purpose=v['purpose'], description=v['description'],
                                   on=v.get('date'), user=request.user)
    return Response({'ok': True, 'data': hospital_account.fund_to_dict(txn),
                     'balance': hospital_account.current_balance()}, status=201)


@api_view(['POST'])
@permission_classes([IsAuthenticated, HasPermission('hospital-account.fund-out')])
@idempotent('fund_out')
def fund_out(request):
    s = FundSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    txn = hospital_account.fund_out(amount=v['amount'], purpose=v['purpose'], description=v['description'],
                                    on=v.get('date'), user=request.user)
    return Response({'ok': True, 'data': hospital_account.fund_to_dict(txn),
                     'balance': hospital_account.current_balance()}, status=201)


@api_view(['PUT', 'DELETE'])
@permission_classes([IsAuthenticated, HasPermission('hospital-account.fund-history')])
def fund_transaction_detail(request, txn_id: int):
    if request.method == 'DELETE':
        hospital_account.delete_fund_transaction(txn_id, user=request.user)
        return Response({'ok': True, 'balance': hospital_account.current_balance()})
    s = FundSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    txn = hospital_account.update_fund_transaction(
        txn_id, amount=v['amount'], purpose=v['purpose'], description=v['description'],
        on=v.get('date') or timezone.localdate(), user=request.user,
    )
    return Response({'ok': True, 'data': hospital_account.fund_to_dict(txn)})


# ---------------------------------------------------------------------
# Income & expense
# ---------------------------------------------------------------------
@api_view(['POST'])
@permission_classes([IsAuthenticated, HasPermission('hospital-account.expense')])
@idempotent('expense')
def add_expense(request):
    s = HospitalTransactionSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    txn = hospital_account.add_expense(amount=v['amount'], category=v.get('category'),
                                       category_id=v.get('category_id'), description=v['description'],
                                       on=v.get('date'), user=request.user)
    return Response({'ok': True, 'data': hospital_account.transaction_to_dict(txn),
                     'balance': hospital_account.current_balance()}, status=201)


@api_view(['POST'])
@permission_classes([IsAuthenticated, HasPermission('hospital-account.income')])
@idempotent('income')
def add_income(request):
    s = HospitalTransactionSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    txn = hospital_account.add_income(amount=v['amount'], category=v.get('category'),
                                      category_id=v.get('category_id'), description=v['description'],
                                      on=v.get('date'), user=request.user)
    return Response({'ok': True, 'data': hospital_account.transaction_to_dict(txn),
                     'balance': hospital_account.current_balance()}, status=201)


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasPermission('hospital-account.transactions')])
def transactions(request):
    q = TransactionQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    v = q.validated_data
    qs = hospital_account.list_transactions(type=v.get('type'), category=v.get('category'),
                                            start=v.get('start_date'), end=v.get('end_date'), search=v.get('search'))
    items, pagination = paginate(qs, page=v.get('page', 1), page_size=v.get('pageSize', 20))
    return Response({'ok': True, 'data': [hospital_account.transaction_to_dict(t) for t in items],
                     'pagination': pagination})


@api_view(['PUT', 'DELETE'])
@permission_classes([IsAuthenticated, HasPermission('hospital-account.transactions')])
def transaction_detail(request, txn_id: int):
    if request.method == 'DELETE':
        hospital_account.delete_transaction(txn_id, user=request.user)
        return Response({'ok': True, 'balance': hospital_account.current_balance()})
    s = HospitalTransactionSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    txn = hospital_account.update_transaction(
        txn_id, amount=v['amount'], category=v.get('category'), category_id=v.get('category_id'),
        description=v['description'], on=v.get('date') or timezone.localdate(), user=request.user,
    )
    return Response({'ok': True, 'data': hospital_account.transaction_to_dict(txn)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasPermission('hospital-account.monthly-report')])
def monthly_report(request):
    q = MonthQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    today = timezone.localdate()
    report = hospital_account.monthly_report(q.validated_data.get('year', today.year),
                                             q.validated_data.get('month', today.month))
    return Response({'ok': True, 'data': report})


# ---------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------
CATEGORY_MODELS = {'expense': ExpenseCategory, 'income': IncomeCategory}


def _category_model(kind: str):
    model = CATEGORY_MODELS.get(kind)
    if model is None:
        raise NotFound('unknown category kind')
    return model


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, HasPermission('hospital-account.categories')])
def categories(request, kind: str):
    model = _category_model(kind)
    if request.method == 'GET':
        rows = model.objects.order_by('name').values('id', 'name', 'is_active')
        return Response({'ok': True, 'data': list(rows)})
    s = CategorySerializer(data=request.data)
    s.is_valid(raise_exception=True)
    category, created = model.objects.get_or_create(
        name=s.validated_data['name'], defaults={'is_active': s.validated_data['is_active']}
    )
    if created:
        log_action(user=request.user, action=f'{kind}_category_create', object_type=f'{kind}_category',
                   object_id=category.id, detail={'name': category.name})
    return Response({'ok': True, 'data': {'id': category.id, 'name': category.name, 'is_active': category.is_active}},
                    status=201 if created else 200)


@api_view(['POST'])
@permission_classes([IsAuthenticated, HasPermission('hospital-account.categories')])
def category_toggle(request, kind: str, category_id: int):
    category = _category_model(kind).objects.filter(id=category_id).first()
    if not category:
        raise NotFound('category not found')
    category.is_active = not category.is_active
    category.save(update_fields=['is_active'])
    return Response({'ok': True, 'data': {'id': category.id, 'name': category.name, 'is_active': category.is_active}})
