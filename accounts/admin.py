"""
Django admin registrations for the back-office models.

Balance-carrying rows are read-only here: balances change only through
the services so that every change leaves a transaction row behind.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import (
    AdvanceHouseRent,
    AdvanceHouseRentDeduction,
    AuditEvent,
    ExpenseCategory,
    FixedAsset,
    Glasses,
    HospitalAccount,
    HospitalFundTransaction,
    HospitalTransaction,
    IncomeCategory,
    Medicine,
    Permission,
    Role,
    StockMovement,
    User,
    UserPermission,
    Vendor,
    VendorTransaction,
)


@admin.register(Permission)
class PermissionAdmin(admin.ModelAdmin):
    list_display = ('name', 'display_name', 'category')
    list_filter = ('category',)
    search_fields = ('name', 'display_name')


@admin.register(Role)
class RoleAdmin(admin.ModelAdmin):
    list_display = ('name', 'description')
    filter_horizontal = ('permissions',)


class UserPermissionInline(admin.TabularInline):
    model = UserPermission
    extra = 0


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ('username', 'role', 'is_active', 'is_staff', 'is_superuser')
    list_filter = ('role', 'is_active')
    fieldsets = BaseUserAdmin.fieldsets + (('Back-office', {'fields': ('role', 'phone')}),)
    inlines = [UserPermissionInline]


@admin.register(HospitalAccount)
class HospitalAccountAdmin(admin.ModelAdmin):
    list_display = ('id', 'balance', 'updated_at')
    readonly_fields = ('balance', 'updated_at')


@admin.register(HospitalFundTransaction)
class HospitalFundTransactionAdmin(admin.ModelAdmin):
    list_display = ('voucher_no', 'type', 'amount', 'purpose', 'date')
    list_filter = ('type',)
    search_fields = ('voucher_no', 'purpose', 'description')
    readonly_fields = ('amount', 'type')


@admin.register(HospitalTransaction)
class HospitalTransactionAdmin(admin.ModelAdmin):
    list_display = ('transaction_no', 'type', 'amount', 'category', 'transaction_date')
    list_filter = ('type', 'category')
    search_fields = ('transaction_no', 'description')
    readonly_fields = ('amount', 'type')


admin.site.register(ExpenseCategory)
admin.site.register(IncomeCategory)


class DeductionInline(admin.TabularInline):
    model = AdvanceHouseRentDeduction
    extra = 0
    can_delete = False
    readonly_fields = ('deduction_number', 'month', 'year', 'amount', 'deduction_date')
    fields = readonly_fields


@admin.register(AdvanceHouseRent)
class AdvanceHouseRentAdmin(admin.ModelAdmin):
    list_display = ('payment_number', 'floor_type', 'advance_amount', 'remaining_amount', 'status', 'payment_date')
    list_filter = ('floor_type', 'status')
    readonly_fields = ('advance_amount', 'used_amount', 'remaining_amount')
    inlines = [DeductionInline]


@admin.register(Vendor)
class VendorAdmin(admin.ModelAdmin):
    list_display = ('name', 'kind', 'current_balance', 'balance_type', 'is_active')
    list_filter = ('kind', 'balance_type', 'is_active')
    search_fields = ('name', 'company_name', 'phone')
    readonly_fields = ('current_balance',)


@admin.register(VendorTransaction)
class VendorTransactionAdmin(admin.ModelAdmin):
    list_display = ('transaction_no', 'vendor', 'type', 'amount', 'new_balance', 'transaction_date')
    list_filter = ('type', 'vendor__kind')


@admin.register(FixedAsset)
class FixedAssetAdmin(admin.ModelAdmin):
    list_display = ('asset_number', 'name', 'vendor', 'total_amount', 'paid_amount', 'due_amount', 'status')
    list_filter = ('status',)
    search_fields = ('asset_number', 'name')


@admin.register(Glasses, Medicine)
class StockItemAdmin(admin.ModelAdmin):
    list_display = ('sku', 'name', 'stock_quantity', 'purchase_price', 'selling_price', 'is_active')
    search_fields = ('sku', 'name')
    readonly_fields = ('stock_quantity', 'purchase_price')


@admin.register(StockMovement)
class StockMovementAdmin(admin.ModelAdmin):
    list_display = ('item_type', 'item_id', 'movement_type', 'quantity', 'new_stock', 'created_at')
    list_filter = ('item_type', 'movement_type')


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('action', 'object_type', 'object_id', 'user', 'created_at')
    list_filter = ('action', 'object_type')
