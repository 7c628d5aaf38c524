"""
URL mappings for the back-office API.

Trailing slashes are deliberately omitted (``APPEND_SLASH = False``).
Vendor routes take the vendor kind (``fixed_asset``, ``medicine`` or
``optics``) and stock routes the item type (``glasses`` or ``medicine``).
"""
from django.urls import path

from .auth_views import jwt_logout_view, jwt_refresh_view, login_view, me_view
from .views import advance_rent, fixed_assets, hospital_account, ledgers, rbac, stock, vendors
from .views.health import healthz

urlpatterns = [
    path('healthz', healthz),

    # Auth
    path('api/login', login_view),
    path('api/me', me_view),
    path('api/me/permissions', rbac.my_permissions),
    path('api/jwt/refresh', jwt_refresh_view),
    path('api/jwt/logout', jwt_logout_view),

    # Hospital account
    path('api/hospital-account', hospital_account.account_dashboard),
    path('api/hospital-account/balance', hospital_account.account_balance),
    path('api/hospital-account/fund-in', hospital_account.fund_in),
    path('api/hospital-account/fund-out', hospital_account.fund_out),
    path('api/hospital-account/fund-transactions/<int:txn_id>', hospital_account.fund_transaction_detail),
    path('api/hospital-account/expense', hospital_account.add_expense),
    path('api/hospital-account/income', hospital_account.add_income),
    path('api/hospital-account/transactions', hospital_account.transactions),
    path('api/hospital-account/transactions/<int:txn_id>', hospital_account.transaction_detail),
    path('api/hospital-account/monthly-report', hospital_account.monthly_report),
    path('api/hospital-account/categories/<str:kind>', hospital_account.categories),
    path('api/hospital-account/categories/<str:kind>/<int:category_id>/toggle', hospital_account.category_toggle),

    # Ledgers
    path('api/hospital-account/fund-ledger', ledgers.fund_ledger),
    path('api/hospital-account/fund-ledger/export', ledgers.fund_ledger_export),
    path('api/hospital-account/house-security', ledgers.house_security),

    # Advance house rent
    path('api/advance-rent', advance_rent.rent_dashboard),
    path('api/advance-rent/store', advance_rent.rent_store),
    path('api/advance-rent/deduct', advance_rent.rent_deduct),
    path('api/advance-rent/history', advance_rent.rent_history),
    path('api/advance-rent/history/export', advance_rent.rent_history_export),
    path('api/advance-rent/deductions', advance_rent.rent_deductions),
    path('api/advance-rent/<int:advance_id>/cancel', advance_rent.rent_cancel),

    # Fixed assets
    path('api/fixed-assets', fixed_assets.asset_list),
    path('api/fixed-assets/<int:asset_id>', fixed_assets.asset_detail),
    path('api/fixed-assets/<int:asset_id>/payment', fixed_assets.asset_payment),

    # Vendors
    path('api/vendors/<str:kind>', vendors.vendor_list),
    path('api/vendors/<str:kind>/due-ledger', vendors.vendor_due_ledger),
    path('api/vendors/<str:kind>/<int:vendor_id>', vendors.vendor_detail),
    path('api/vendors/<str:kind>/<int:vendor_id>/toggle', vendors.vendor_toggle),
    path('api/vendors/<str:kind>/<int:vendor_id>/payment', vendors.vendor_payment),
    path('api/vendors/<str:kind>/<int:vendor_id>/statement', vendors.vendor_statement),

    # Stock
    path('api/stock/<str:item_type>', stock.item_list),
    path('api/stock/<str:item_type>/low-stock', stock.low_stock),
    path('api/stock/<str:item_type>/<int:item_id>', stock.item_detail),
    path('api/stock/<str:item_type>/<int:item_id>/toggle', stock.item_toggle),
    path('api/stock/<str:item_type>/<int:item_id>/receive', stock.item_receive),
    path('api/stock/<str:item_type>/<int:item_id>/move', stock.item_move),
    path('api/stock/<str:item_type>/<int:item_id>/movements', stock.item_movements),

    # Roles & permissions
    path('api/roles', rbac.roles),
    path('api/roles/<int:role_id>', rbac.role_detail),
    path('api/permissions', rbac.permissions),
    path('api/permissions/<int:permission_id>', rbac.permission_detail),
    path('api/users/<int:user_id>/permissions', rbac.user_permissions),
]
