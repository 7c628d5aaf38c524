"""
Database models for the hospital back-office.

These models capture the bookkeeping side of the hospital: the hospital
account and its fund/income/expense transactions, prepaid house rent,
fixed assets bought from vendors, optics and medicine stock, and the
role/permission tables used to gate the API.  Amounts are stored as
decimals with two places; unit costs keep six places so that weighted
averages are not rounded to cents when persisted.
"""
from __future__ import annotations

from decimal import Decimal

from django.contrib.auth.models import AbstractUser
from django.db import models


MONEY = dict(max_digits=14, decimal_places=2, default=Decimal('0'))
UNIT_PRICE = dict(max_digits=18, decimal_places=6, default=Decimal('0'))


# ---------------------------------------------------------------------------
# Roles & permissions
# ---------------------------------------------------------------------------

class Permission(models.Model):
    """A named capability such as ``hospital-account.fund-in``."""
    name = models.CharField(max_length=150, unique=True)
    display_name = models.CharField(max_length=255)
    category = models.CharField(max_length=100, db_index=True)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['category', 'name']

    def __str__(self) -> str:
        return self.name


class Role(models.Model):
    """A bundle of permissions assigned to users.

    The ``Super Admin`` role is special: holders pass every permission
    check regardless of the permissions attached to the role.
    """
    SUPER_ADMIN = 'Super Admin'

    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)
    permissions = models.ManyToManyField(Permission, blank=True, related_name='roles')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return self.name


class User(AbstractUser):
    """Back-office user bound to a role.

    Individual permissions may be granted or revoked on top of the role
    through :class:`UserPermission`; an override always wins over the
    role's grant.
    """
    role = models.ForeignKey(Role, null=True, blank=True, on_delete=models.PROTECT, related_name='users')
    phone = models.CharField(max_length=32, blank=True)

    @property
    def is_super_admin(self) -> bool:
        return bool(self.is_superuser or (self.role_id and self.role.name == Role.SUPER_ADMIN))

    def has_named_permission(self, name: str) -> bool:
        if self.is_super_admin:
            return True
        override = self.permission_overrides.filter(permission__name=name).values_list('granted', flat=True).first()
        if override is not None:
            return override
        return bool(self.role_id) and self.role.permissions.filter(name=name).exists()

    def has_any_permission(self, names) -> bool:
        if self.is_super_admin:
            return True
        return any(self.has_named_permission(n) for n in names)

    def has_all_permissions(self, names) -> bool:
        return all(self.has_named_permission(n) for n in names)

    def permission_names(self) -> set[str]:
        """Role grants plus granted overrides, minus revoked overrides."""
        if self.is_super_admin:
            return set(Permission.objects.values_list('name', flat=True))
        names: set[str] = set()
        if self.role_id:
            names.update(self.role.permissions.values_list('name', flat=True))
        for name, granted in self.permission_overrides.values_list('permission__name', 'granted'):
            if granted:
                names.add(name)
            else:
                names.discard(name)
        return names

    def __str__(self) -> str:
        return f"{self.username} ({self.role or 'no role'})"


class UserPermission(models.Model):
    """Per-user override of a permission (granted or revoked)."""
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='permission_overrides')
    permission = models.ForeignKey(Permission, on_delete=models.CASCADE, related_name='user_overrides')
    granted = models.BooleanField(default=True)

    class Meta:
        unique_together = [('user', 'permission')]

    def __str__(self) -> str:
        return f"{self.user_id}:{self.permission_id} {'+' if self.granted else '-'}"


# ---------------------------------------------------------------------------
# Hospital account
# ---------------------------------------------------------------------------

class HospitalAccount(models.Model):
    """Singleton row holding the hospital's cash balance."""
    balance = models.DecimalField(**MONEY)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"Hospital account ({self.balance})"


class HospitalFundTransaction(models.Model):
    """Capital moved in or out of the hospital account by an investor."""
    TYPE_FUND_IN = 'fund_in'
    TYPE_FUND_OUT = 'fund_out'
    TYPE_CHOICES = ((TYPE_FUND_IN, 'Fund in'), (TYPE_FUND_OUT, 'Fund out'))

    voucher_no = models.CharField(max_length=32, unique=True)
    type = models.CharField(max_length=10, choices=TYPE_CHOICES, db_index=True)
    amount = models.DecimalField(**MONEY)
    # investor name
    purpose = models.CharField(max_length=255, db_index=True)
    description = models.TextField(blank=True)
    date = models.DateField(db_index=True)
    added_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='fund_transactions')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [models.Index(fields=['date', 'id'])]

    def __str__(self) -> str:
        return f"{self.voucher_no} {self.type} {self.amount}"


class ExpenseCategory(models.Model):
    name = models.CharField(max_length=255, unique=True)
    is_active = models.BooleanField(default=True)

    def __str__(self) -> str:
        return self.name


class IncomeCategory(models.Model):
    name = models.CharField(max_length=255, unique=True)
    is_active = models.BooleanField(default=True)

    def __str__(self) -> str:
        return self.name


class HospitalTransaction(models.Model):
    """Income or expense booked against the hospital account."""
    TYPE_INCOME = 'income'
    TYPE_EXPENSE = 'expense'
    TYPE_CHOICES = ((TYPE_INCOME, 'Income'), (TYPE_EXPENSE, 'Expense'))

    transaction_no = models.CharField(max_length=32, unique=True)
    type = models.CharField(max_length=10, choices=TYPE_CHOICES, db_index=True)
    amount = models.DecimalField(**MONEY)
    category = models.CharField(max_length=255, blank=True)
    expense_category = models.ForeignKey(
        ExpenseCategory, null=True, blank=True, on_delete=models.SET_NULL, related_name='transactions'
    )
    income_category = models.ForeignKey(
        IncomeCategory, null=True, blank=True, on_delete=models.SET_NULL, related_name='transactions'
    )
    reference_type = models.CharField(max_length=64, blank=True)
    reference_id = models.PositiveIntegerField(null=True, blank=True)
    description = models.TextField(blank=True)
    transaction_date = models.DateField(db_index=True)
    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='hospital_transactions')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['type', 'transaction_date']),
            models.Index(fields=['reference_type', 'reference_id']),
        ]

    def __str__(self) -> str:
        return f"{self.transaction_no} {self.type} {self.amount}"


# ---------------------------------------------------------------------------
# Advance house rent
# ---------------------------------------------------------------------------

class AdvanceHouseRent(models.Model):
    """A prepaid rent pool that monthly rent is deducted from."""
    FLOOR_2_3 = '2_3_floor'
    FLOOR_4 = '4_floor'
    FLOOR_CHOICES = ((FLOOR_2_3, '2nd & 3rd Floor'), (FLOOR_4, '4th Floor'))

    STATUS_ACTIVE = 'active'
    STATUS_EXHAUSTED = 'exhausted'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = (
        (STATUS_ACTIVE, 'Active'),
        (STATUS_EXHAUSTED, 'Exhausted'),
        (STATUS_CANCELLED, 'Cancelled'),
    )

    payment_number = models.CharField(max_length=32, unique=True)
    floor_type = models.CharField(max_length=16, choices=FLOOR_CHOICES, default=FLOOR_2_3, db_index=True)
    advance_amount = models.DecimalField(**MONEY)
    used_amount = models.DecimalField(**MONEY)
    remaining_amount = models.DecimalField(**MONEY)
    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default=STATUS_ACTIVE, db_index=True)
    description = models.TextField(blank=True)
    payment_date = models.DateField(db_index=True)
    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='advance_rents')
    created_at = models.DateTimeField(auto_now_add=True)
    deleted_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        indexes = [models.Index(fields=['floor_type', 'status', 'payment_date'])]

    def __str__(self) -> str:
        return f"{self.payment_number} ({self.remaining_amount}/{self.advance_amount})"


class AdvanceHouseRentDeduction(models.Model):
    """Monthly rent taken from an advance pool.  One per floor and month."""
    deduction_number = models.CharField(max_length=32, unique=True)
    advance = models.ForeignKey(AdvanceHouseRent, on_delete=models.PROTECT, related_name='deductions')
    floor_type = models.CharField(max_length=16, choices=AdvanceHouseRent.FLOOR_CHOICES, db_index=True)
    month = models.PositiveSmallIntegerField()
    year = models.PositiveSmallIntegerField()
    amount = models.DecimalField(**MONEY)
    notes = models.TextField(blank=True)
    deduction_date = models.DateField(db_index=True)
    deducted_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='rent_deductions')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['floor_type', 'year', 'month'], name='uniq_rent_deduction_period'),
        ]

    def __str__(self) -> str:
        return f"{self.deduction_number} {self.month:02d}/{self.year}"


# ---------------------------------------------------------------------------
# Vendors
# ---------------------------------------------------------------------------

class Vendor(models.Model):
    """A supplier of fixed assets, medicine or optics stock."""
    KIND_FIXED_ASSET = 'fixed_asset'
    KIND_MEDICINE = 'medicine'
    KIND_OPTICS = 'optics'
    KIND_CHOICES = (
        (KIND_FIXED_ASSET, 'Fixed Asset'),
        (KIND_MEDICINE, 'Medicine'),
        (KIND_OPTICS, 'Optics'),
    )

    BALANCE_DUE = 'due'
    BALANCE_ADVANCE = 'advance'
    BALANCE_CHOICES = ((BALANCE_DUE, 'Due'), (BALANCE_ADVANCE, 'Advance'))

    kind = models.CharField(max_length=16, choices=KIND_CHOICES, db_index=True)
    name = models.CharField(max_length=255)
    company_name = models.CharField(max_length=255, blank=True)
    contact_person = models.CharField(max_length=255, blank=True)
    phone = models.CharField(max_length=32, blank=True)
    email = models.EmailField(blank=True)
    address = models.TextField(blank=True)
    opening_balance = models.DecimalField(**MONEY)
    current_balance = models.DecimalField(**MONEY)
    balance_type = models.CharField(max_length=8, choices=BALANCE_CHOICES, default=BALANCE_DUE)
    credit_limit = models.DecimalField(**MONEY)
    payment_terms_days = models.PositiveIntegerField(default=0)
    notes = models.TextField(blank=True)
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [models.Index(fields=['kind', 'name'])]

    def __str__(self) -> str:
        return f"{self.name} ({self.kind})"


class VendorTransaction(models.Model):
    """Purchase on credit (raises due) or payment (settles due)."""
    TYPE_PURCHASE = 'purchase'
    TYPE_PAYMENT = 'payment'
    # reduces an earlier purchase (asset price corrected or purchase cancelled)
    TYPE_RETURN = 'return'
    TYPE_CHOICES = ((TYPE_PURCHASE, 'Purchase'), (TYPE_PAYMENT, 'Payment'), (TYPE_RETURN, 'Return'))

    METHOD_CASH = 'cash'
    METHOD_BANK = 'bank_transfer'
    METHOD_CHEQUE = 'cheque'
    METHOD_CHOICES = ((METHOD_CASH, 'Cash'), (METHOD_BANK, 'Bank transfer'), (METHOD_CHEQUE, 'Cheque'))

    transaction_no = models.CharField(max_length=32, unique=True)
    vendor = models.ForeignKey(Vendor, on_delete=models.PROTECT, related_name='transactions')
    type = models.CharField(max_length=10, choices=TYPE_CHOICES, db_index=True)
    amount = models.DecimalField(**MONEY)
    previous_balance = models.DecimalField(**MONEY)
    new_balance = models.DecimalField(**MONEY)
    payment_method = models.CharField(max_length=16, choices=METHOD_CHOICES, blank=True)
    reference_no = models.CharField(max_length=64, blank=True)
    reference_type = models.CharField(max_length=64, blank=True)
    reference_id = models.PositiveIntegerField(null=True, blank=True)
    description = models.TextField(blank=True)
    transaction_date = models.DateField(db_index=True)
    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='vendor_transactions')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [models.Index(fields=['vendor', 'type', 'transaction_date'])]

    def __str__(self) -> str:
        return f"{self.transaction_no} {self.type} {self.amount}"


# ---------------------------------------------------------------------------
# Fixed assets
# ---------------------------------------------------------------------------

class FixedAsset(models.Model):
    STATUS_ACTIVE = 'active'
    STATUS_FULLY_PAID = 'fully_paid'
    STATUS_INACTIVE = 'inactive'
    STATUS_CHOICES = (
        (STATUS_ACTIVE, 'Active'),
        (STATUS_FULLY_PAID, 'Fully paid'),
        (STATUS_INACTIVE, 'Inactive'),
    )

    asset_number = models.CharField(max_length=32, unique=True)
    vendor = models.ForeignKey(Vendor, null=True, blank=True, on_delete=models.PROTECT, related_name='assets')
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    total_amount = models.DecimalField(**MONEY)
    paid_amount = models.DecimalField(**MONEY)
    due_amount = models.DecimalField(**MONEY)
    purchase_date = models.DateField(db_index=True)
    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default=STATUS_ACTIVE, db_index=True)
    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='fixed_assets')
    created_at = models.DateTimeField(auto_now_add=True)
    deleted_at = models.DateTimeField(null=True, blank=True)

    def __str__(self) -> str:
        return f"{self.asset_number} {self.name}"


# ---------------------------------------------------------------------------
# Stock
# ---------------------------------------------------------------------------

class StockItem(models.Model):
    """Common stock fields; ``purchase_price`` is the weighted-average cost."""
    name = models.CharField(max_length=255)
    sku = models.CharField(max_length=64, unique=True)
    purchase_price = models.DecimalField(**UNIT_PRICE)
    selling_price = models.DecimalField(**MONEY)
    stock_quantity = models.PositiveIntegerField(default=0)
    minimum_stock_level = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        abstract = True

    def __str__(self) -> str:
        return f"{self.sku} {self.name} ({self.stock_quantity})"


class Glasses(StockItem):
    ITEM_TYPE = 'glasses'

    brand = models.CharField(max_length=128, blank=True)
    model = models.CharField(max_length=128, blank=True)
    frame_type = models.CharField(max_length=64, blank=True)
    default_vendor = models.ForeignKey(Vendor, null=True, blank=True, on_delete=models.SET_NULL, related_name='glasses')

    class Meta(StockItem.Meta):
        verbose_name_plural = 'glasses'


class Medicine(StockItem):
    ITEM_TYPE = 'medicine'

    generic_name = models.CharField(max_length=255, blank=True)
    unit = models.CharField(max_length=32, default='piece')


class StockMovement(models.Model):
    """Every change of a stock item's quantity leaves one movement row."""
    TYPE_PURCHASE = 'purchase'
    TYPE_SALE = 'sale'
    TYPE_ADJUSTMENT = 'adjustment'
    TYPE_DAMAGE = 'damage'
    TYPE_RETURN = 'return'
    TYPE_CHOICES = (
        (TYPE_PURCHASE, 'Purchase'),
        (TYPE_SALE, 'Sale'),
        (TYPE_ADJUSTMENT, 'Adjustment'),
        (TYPE_DAMAGE, 'Damage'),
        (TYPE_RETURN, 'Return'),
    )

    item_type = models.CharField(max_length=16)
    item_id = models.PositiveIntegerField()
    movement_type = models.CharField(max_length=12, choices=TYPE_CHOICES)
    # signed: negative for stock leaving
    quantity = models.IntegerField()
    previous_stock = models.PositiveIntegerField()
    new_stock = models.PositiveIntegerField()
    unit_price = models.DecimalField(**UNIT_PRICE)
    total_amount = models.DecimalField(**MONEY)
    notes = models.TextField(blank=True)
    user = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='stock_movements')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [models.Index(fields=['item_type', 'item_id', 'created_at'])]

    def __str__(self) -> str:
        return f"{self.item_type}#{self.item_id} {self.movement_type} {self.quantity}"


class StockPurchase(models.Model):
    STATUS_PAID = 'paid'
    STATUS_PARTIAL = 'partial'
    STATUS_PENDING = 'pending'
    STATUS_CHOICES = ((STATUS_PAID, 'Paid'), (STATUS_PARTIAL, 'Partial'), (STATUS_PENDING, 'Pending'))

    purchase_no = models.CharField(max_length=32, unique=True)
    vendor = models.ForeignKey(Vendor, on_delete=models.PROTECT, related_name='stock_purchases')
    item_type = models.CharField(max_length=16)
    item_id = models.PositiveIntegerField()
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(**UNIT_PRICE)
    total_amount = models.DecimalField(**MONEY)
    paid_amount = models.DecimalField(**MONEY)
    due_amount = models.DecimalField(**MONEY)
    payment_status = models.CharField(max_length=8, choices=STATUS_CHOICES)
    purchase_date = models.DateField(db_index=True)
    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='stock_purchases')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.purchase_no} {self.total_amount}"


# ---------------------------------------------------------------------------
# Audit & idempotency
# ---------------------------------------------------------------------------

class AuditEvent(models.Model):
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.IntegerField(blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at']),
            models.Index(fields=['object_type', 'object_id', 'created_at']),
        ]

    def __str__(self) -> str:
        return f"{self.action}:{self.object_type}#{self.object_id}"


class IdempotencyRecord(models.Model):
    """Stored response of a payment request sent with an ``Idempotency-Key``."""
    key = models.CharField(max_length=128)
    scope = models.CharField(max_length=64)
    user = models.ForeignKey(User, null=True, blank=True, on_delete=models.CASCADE)
    status_code = models.PositiveSmallIntegerField()
    body = models.JSONField(default=dict)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['key', 'scope', 'user'], name='uniq_idempotency_key'),
        ]

    def __str__(self) -> str:
        return f"{self.scope}:{self.key}"
