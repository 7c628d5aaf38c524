"""
Integration tests for the back-office API.

These tests exercise the HTTP surface end to end: permission gating,
the unified error envelope, idempotent payment replays and the CSV
exports.  They use Django REST Framework's APIClient within the
APITestCase base class.

To run the tests:

```
pytest -q accounts/tests
```
"""
import csv
import io
from decimal import Decimal

from rest_framework.test import APIClient, APITestCase

from accounts.models import HospitalFundTransaction, HospitalTransaction, Medicine, Role, User, Vendor
from accounts.services import hospital_account, rbac, vendors


def decimal(value) -> Decimal:
    return Decimal(str(value))


class BackOfficeAPITests(APITestCase):
    def setUp(self) -> None:
        """Seed roles and create a super admin plus two restricted users."""
        rbac.seed_defaults()
        self.admin = User.objects.create_user(
            username='admin1', password='P@ssw0rd1', role=Role.objects.get(name=Role.SUPER_ADMIN)
        )
        self.reception = User.objects.create_user(
            username='reception1', password='P@ssw0rd1', role=Role.objects.get(name='Receptionist')
        )
        self.seller = User.objects.create_user(
            username='medicine1', password='P@ssw0rd1', role=Role.objects.get(name='Medicine Seller')
        )
        self.client = APIClient()
        self.client.force_authenticate(user=self.admin)

    def as_user(self, user) -> APIClient:
        client = APIClient()
        client.force_authenticate(user=user)
        return client

    def fund(self, amount='10000.00'):
        resp = self.client.post('/api/hospital-account/fund-in', {'amount': amount, 'purpose': 'Investor A'},
                                format='json')
        self.assertEqual(resp.status_code, 201)
        return resp

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------
    def test_login_returns_token_and_jwt_pair(self) -> None:
        resp = APIClient().post('/api/login', {'username': 'reception1', 'password': 'P@ssw0rd1'}, format='json')
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.data['token'])
        self.assertTrue(resp.data['jwt_access'])
        self.assertTrue(resp.data['jwt_refresh'])
        self.assertEqual(resp.data['user']['role'], 'Receptionist')
        self.assertIn('hospital-account.view', resp.data['user']['permissions'])

        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f"Token {resp.data['token']}")
        me = client.get('/api/me')
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.data['user']['username'], 'reception1')

    def test_login_with_wrong_password(self) -> None:
        resp = APIClient().post('/api/login', {'username': 'reception1', 'password': 'nope'}, format='json')
        self.assertEqual(resp.status_code, 400)
        self.assertFalse(resp.data['ok'])
        self.assertEqual(resp.data['error']['code'], 'invalid_credentials')

    def test_anonymous_requests_are_rejected(self) -> None:
        resp = APIClient().get('/api/hospital-account/balance')
        self.assertIn(resp.status_code, (401, 403))
        self.assertFalse(resp.data['ok'])

    # ------------------------------------------------------------------
    # Hospital account
    # ------------------------------------------------------------------
    def test_fund_in_and_balance(self) -> None:
        resp = self.fund('1000.00')
        self.assertTrue(resp.data['ok'])
        self.assertTrue(resp.data['data']['voucher_no'].startswith('HFI-'))
        self.assertEqual(decimal(resp.data['balance']), Decimal('1000'))

        bal = self.client.get('/api/hospital-account/balance')
        self.assertEqual(decimal(bal.data['balance']), Decimal('1000'))

    def test_error_envelope_codes(self) -> None:
        self.fund('100.00')
        over = self.client.post('/api/hospital-account/fund-out', {'amount': '500.00', 'purpose': 'Investor A'},
                                format='json')
        self.assertEqual(over.status_code, 409)
        self.assertEqual(over.data['error']['code'], 'insufficient_balance')

        negative = self.client.post('/api/hospital-account/expense', {'amount': '-5', 'category': 'Salary'},
                                    format='json')
        self.assertEqual(negative.status_code, 400)
        self.assertEqual(negative.data['error']['code'], 'invalid_amount')

        missing = self.client.post('/api/hospital-account/fund-in', {'amount': '5'}, format='json')
        self.assertEqual(missing.status_code, 400)
        self.assertEqual(missing.data['error']['code'], 'invalid')
        self.assertIn('purpose', missing.data['error']['message'])

        unknown = self.client.delete('/api/hospital-account/transactions/999')
        self.assertEqual(unknown.status_code, 404)
        self.assertEqual(unknown.data['error']['code'], 'not_found')

        self.assertEqual(hospital_account.current_balance(), Decimal('100'))

    def test_idempotency_key_replays_first_payment(self) -> None:
        body = {'amount': '250.00', 'purpose': 'Investor A'}
        first = self.client.post('/api/hospital-account/fund-in', body, format='json', HTTP_IDEMPOTENCY_KEY='k-1')
        second = self.client.post('/api/hospital-account/fund-in', body, format='json', HTTP_IDEMPOTENCY_KEY='k-1')
        self.assertEqual(first.status_code, 201)
        self.assertEqual(second.status_code, 201)
        self.assertEqual(second['Idempotent-Replay'], 'true')
        self.assertEqual(second.data['data']['voucher_no'], first.data['data']['voucher_no'])
        self.assertEqual(HospitalFundTransaction.objects.count(), 1)
        self.assertEqual(hospital_account.current_balance(), Decimal('250'))

        third = self.client.post('/api/hospital-account/fund-in', body, format='json', HTTP_IDEMPOTENCY_KEY='k-2')
        self.assertEqual(third.status_code, 201)
        self.assertEqual(HospitalFundTransaction.objects.count(), 2)

    def test_named_permission_gates_mutations(self) -> None:
        client = self.as_user(self.reception)
        self.assertEqual(client.get('/api/hospital-account/balance').status_code, 200)
        resp = client.post('/api/hospital-account/fund-in', {'amount': '10', 'purpose': 'X'}, format='json')
        self.assertEqual(resp.status_code, 403)
        self.assertFalse(HospitalFundTransaction.objects.exists())

    def test_transactions_list_filters_and_paginates(self) -> None:
        self.fund()
        for i in range(3):
            self.client.post('/api/hospital-account/expense',
                             {'amount': '10', 'category': 'Salary', 'description': f'Salary {i}'}, format='json')
        self.client.post('/api/hospital-account/income', {'amount': '99', 'category': 'Consultation'},
                         format='json')
        resp = self.client.get('/api/hospital-account/transactions?type=expense&page=1&pageSize=2')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['pagination']['total'], 3)
        self.assertEqual(len(resp.data['data']), 2)

        search = self.client.get('/api/hospital-account/transactions', {'search': 'Salary 1'})
        self.assertEqual(search.data['pagination']['total'], 1)

    def test_house_security_ledger_endpoint(self) -> None:
        self.fund()
        for amount, day, text in (('5000', '05', 'Guard salary'), ('3000', '20', 'CCTV repair')):
            self.client.post('/api/hospital-account/expense',
                             {'amount': amount, 'category': 'House Security', 'description': text,
                              'date': f'2025-01-{day}'}, format='json')
        resp = self.client.get('/api/hospital-account/house-security?start_date=2025-01-10')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(decimal(resp.data['previous_balance']), Decimal('5000'))
        self.assertEqual(len(resp.data['rows']), 1)
        self.assertEqual(decimal(resp.data['totals']['balance']), Decimal('8000'))

        bad = self.client.get('/api/hospital-account/house-security?start_date=2025-02-01&end_date=2025-01-01')
        self.assertEqual(bad.status_code, 400)

    def test_fund_ledger_export_is_csv(self) -> None:
        self.fund('1000.00')
        resp = self.client.get('/api/hospital-account/fund-ledger/export')
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp['Content-Type'].startswith('text/csv'))
        self.assertIn('fund-ledger.csv', resp['Content-Disposition'])
        rows = list(csv.reader(io.StringIO(resp.content.decode('utf-8-sig'))))
        self.assertEqual(rows[0], ['Hospital Fund Ledger - All Time'])
        self.assertEqual(rows[-1], ['', 'Total', '', '1,000.00', '0.00', '1,000.00'])

    # ------------------------------------------------------------------
    # Advance house rent
    # ------------------------------------------------------------------
    def test_rent_deduct_and_duplicate_month(self) -> None:
        self.fund('5000.00')
        store = self.client.post('/api/advance-rent/store',
                                 {'amount': '1000', 'floor_type': '2_3_floor', 'payment_date': '2025-02-01'},
                                 format='json')
        self.assertEqual(store.status_code, 201)
        self.assertEqual(decimal(store.data['balance']), Decimal('4000'))

        body = {'amount': '1000', 'month': 3, 'year': 2025, 'floor_type': '2_3_floor',
                'deduction_date': '2025-03-01'}
        first = self.client.post('/api/advance-rent/deduct', body, format='json')
        self.assertEqual(first.status_code, 201)
        self.assertEqual(first.data['advance']['status'], 'exhausted')
        self.assertEqual(decimal(first.data['advance']['remaining_amount']), Decimal('0'))

        again = self.client.post('/api/advance-rent/deduct', body, format='json')
        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.data['error']['code'], 'duplicate_period')

        deductions = self.client.get('/api/advance-rent/deductions?year=2025')
        self.assertEqual(deductions.data['pagination']['total'], 1)
        self.assertEqual(decimal(deductions.data['total_amount']), Decimal('1000'))

        export = self.client.get('/api/advance-rent/history/export?year=2025')
        self.assertEqual(export.status_code, 200)
        rows = list(csv.reader(io.StringIO(export.content.decode('utf-8-sig'))))
        self.assertEqual(rows[0], ['Advance House Rent History - 2025'])
        self.assertEqual(rows[2][3], 'Credit (৳)')
        self.assertEqual(rows[4], ['2025-02-01', 'Advance payment (2nd & 3rd Floor)',
                                   store.data['data']['payment_number'], '1,000.00', '', '1,000.00'])
        self.assertEqual(rows[5][0], '2025-03-01')
        self.assertEqual(rows[5][1], 'Rent for March 2025')
        self.assertEqual(rows[5][5], '0.00')

    def test_rent_month_validation(self) -> None:
        resp = self.client.post('/api/advance-rent/deduct',
                                {'amount': '10', 'month': 13, 'year': 2025, 'floor_type': '2_3_floor'},
                                format='json')
        self.assertEqual(resp.status_code, 400)
        self.assertIn('month', resp.data['error']['message'])

    # ------------------------------------------------------------------
    # Vendors, assets & stock
    # ------------------------------------------------------------------
    def test_vendor_kind_permissions(self) -> None:
        client = self.as_user(self.seller)
        created = client.post('/api/vendors/medicine', {'name': 'Square Pharma', 'opening_balance': '500'},
                              format='json')
        self.assertEqual(created.status_code, 201)
        self.assertEqual(client.get('/api/vendors/optics').status_code, 403)
        self.assertEqual(client.get('/api/vendors/fixed_asset/due-ledger').status_code, 403)

        ledger = client.get('/api/vendors/medicine/due-ledger')
        self.assertEqual(ledger.status_code, 200)
        self.assertEqual(decimal(ledger.data['totals']['current_due']), Decimal('500'))

        self.assertEqual(self.client.get('/api/vendors/unknown').status_code, 404)

    def test_due_ledger_hides_placeholder_vendors(self) -> None:
        real = vendors.create_vendor(kind=Vendor.KIND_MEDICINE, name='Square Pharma', opening_balance=Decimal('200'))
        vendors.create_vendor(kind=Vendor.KIND_MEDICINE, name='OldStockAdd', opening_balance=Decimal('900'))
        listing = self.client.get('/api/vendors/medicine')
        self.assertEqual([v['name'] for v in listing.data['data']], ['Square Pharma'])
        ledger = self.client.get('/api/vendors/medicine/due-ledger')
        self.assertEqual([r['vendor_id'] for r in ledger.data['rows']], [real.id])
        self.assertEqual([v['name'] for v in ledger.data['vendors']], ['Square Pharma'])

    def test_vendor_payment_over_due_and_replay(self) -> None:
        self.fund()
        vendor = vendors.create_vendor(kind=Vendor.KIND_MEDICINE, name='Square Pharma', opening_balance=Decimal('300'))
        url = f'/api/vendors/medicine/{vendor.id}/payment'
        over = self.client.post(url, {'amount': '301'}, format='json')
        self.assertEqual(over.status_code, 409)

        pay = self.client.post(url, {'amount': '300', 'payment_method': 'cash'}, format='json',
                               HTTP_IDEMPOTENCY_KEY='pay-1')
        replay = self.client.post(url, {'amount': '300', 'payment_method': 'cash'}, format='json',
                                  HTTP_IDEMPOTENCY_KEY='pay-1')
        self.assertEqual(pay.status_code, 201)
        self.assertEqual(replay['Idempotent-Replay'], 'true')
        self.assertEqual(vendor.transactions.count(), 1)
        self.assertEqual(hospital_account.current_balance(), Decimal('9700'))

        statement = self.client.get(f'/api/vendors/medicine/{vendor.id}/statement')
        self.assertEqual(decimal(statement.data['previous_balance']), Decimal('300'))
        self.assertEqual(decimal(statement.data['totals']['balance']), Decimal('0'))

        expense = HospitalTransaction.objects.get(reference_type='vendor_payment')
        locked = self.client.delete(f'/api/hospital-account/transactions/{expense.id}')
        self.assertEqual(locked.status_code, 409)
        self.assertEqual(locked.data['error']['code'], 'conflict')
        self.assertEqual(hospital_account.current_balance(), Decimal('9700'))

    def test_fixed_asset_lifecycle(self) -> None:
        self.fund('20000.00')
        vendor = vendors.create_vendor(kind=Vendor.KIND_FIXED_ASSET, name='Medi Equip')
        created = self.client.post('/api/fixed-assets', {'name': 'ECG machine', 'total_amount': '15000',
                                                         'paid_amount': '5000', 'vendor_id': vendor.id},
                                   format='json')
        self.assertEqual(created.status_code, 201)
        asset_id = created.data['data']['id']
        self.assertEqual(decimal(created.data['data']['due_amount']), Decimal('10000'))

        paid = self.client.post(f'/api/fixed-assets/{asset_id}/payment', {'amount': '10000'}, format='json')
        self.assertEqual(paid.status_code, 201)
        self.assertEqual(paid.data['data']['status'], 'fully_paid')

        listing = self.client.get('/api/fixed-assets?status=fully_paid')
        self.assertEqual(listing.data['totals']['count'], 1)
        self.assertEqual(self.client.delete(f'/api/fixed-assets/{asset_id}').status_code, 409)
        self.assertEqual(hospital_account.current_balance(), Decimal('5000'))

    def test_stock_receive_and_sale(self) -> None:
        self.fund('1000.00')
        item = Medicine.objects.create(name='Paracetamol', sku='MED-001', selling_price=Decimal('2.00'))
        url = f'/api/stock/medicine/{item.id}'
        first = self.client.post(f'{url}/receive', {'quantity': 10, 'total_price': '50.00'}, format='json')
        self.assertEqual(first.status_code, 201)
        second = self.client.post(f'{url}/receive', {'quantity': 10, 'total_price': '70.00'}, format='json')
        self.assertEqual(decimal(second.data['data']['purchase_price_display']), Decimal('6.00'))
        self.assertEqual(second.data['data']['stock_quantity'], 20)

        bad = self.client.post(f'{url}/receive', {'quantity': 0, 'total_price': '10'}, format='json')
        self.assertEqual(bad.status_code, 400)
        self.assertEqual(bad.data['error']['code'], 'invalid_quantity')

        sale = self.client.post(f'{url}/move', {'movement_type': 'sale', 'quantity': 25}, format='json')
        self.assertEqual(sale.status_code, 409)
        sale = self.client.post(f'{url}/move', {'movement_type': 'sale', 'quantity': 5}, format='json')
        self.assertEqual(sale.data['data']['stock_quantity'], 15)

        movements = self.client.get(f'{url}/movements')
        self.assertEqual(movements.data['pagination']['total'], 3)

        self.assertEqual(self.as_user(self.reception).get('/api/stock/medicine').status_code, 403)
        self.assertEqual(self.as_user(self.seller).get('/api/stock/medicine').status_code, 200)

    # ------------------------------------------------------------------
    # Roles & permissions
    # ------------------------------------------------------------------
    def test_user_permission_overrides(self) -> None:
        url = f'/api/users/{self.reception.id}/permissions'
        resp = self.client.put(url, {'granted': ['hospital-account.fund-in'], 'revoked': ['hospital-account.view']},
                               format='json')
        self.assertEqual(resp.status_code, 200)
        self.assertIn('hospital-account.fund-in', resp.data['effective'])
        self.assertNotIn('hospital-account.view', resp.data['effective'])

        client = self.as_user(self.reception)
        self.assertEqual(client.get('/api/hospital-account/balance').status_code, 403)
        mine = client.get('/api/me/permissions')
        self.assertIn('hospital-account.fund-in', mine.data['permissions'])

        overlap = self.client.put(url, {'granted': ['dashboard.view'], 'revoked': ['dashboard.view']},
                                  format='json')
        self.assertEqual(overlap.status_code, 400)

        self.assertEqual(client.get('/api/roles').status_code, 403)

    def test_role_with_users_cannot_be_deleted(self) -> None:
        role = Role.objects.get(name='Receptionist')
        resp = self.client.delete(f'/api/roles/{role.id}')
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.data['error']['code'], 'conflict')

        created = self.client.post('/api/permissions', {'name': 'Reports Export'}, format='json')
        self.assertEqual(created.status_code, 201)
        self.assertEqual(created.data['data']['name'], 'reports.export')
