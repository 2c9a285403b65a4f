from decimal import Decimal

from django.urls import reverse
from django.utils import timezone

from stock.models import Sku, PurchaseReceipt, InventoryMovement
from stock.services import (
    SkuService, PurchaseReceiptService, StockLocationService,
    ConflictError, ValidationError, NotFoundError, generate_number,
)
from stock.tests.base import LedgerTestCase


class SkuTests(LedgerTestCase):

    def test_create_seeds_opening_balances(self):
        result = SkuService.create(
            organization_id=self.org.id,
            code='RYE',
            name='Rye Flour',
            category='raw',
            unit='kg',
            locations=[
                {'location_id': self.kitchen.id, 'current_stock': 20, 'reorder_point': 5},
                {'location_id': self.warehouse.id, 'current_stock': 0},
            ],
        )

        sku = Sku.objects.get(organization=self.org, code='RYE')
        self.assertEqual(sku.category, Sku.Category.RAW)
        self.assertEqual(len(result['inventory_ids']), 2)
        self.assertLevels(self.record_for(sku), 20, 0, 20)
        self.assertLevels(self.record_for(sku, self.warehouse), 0, 0, 0)
        self.assertEqual(
            InventoryMovement.objects.filter(
                inventory__sku=sku, movement_type=InventoryMovement.MovementType.OPENING_BALANCE,
            ).count(),
            2,
        )

    def test_duplicate_code_conflicts(self):
        with self.assertRaises(ConflictError):
            SkuService.create(organization_id=self.org.id, code='FLOUR', name='More Flour')

    def test_unknown_seed_location_leaves_nothing_behind(self):
        with self.assertRaises(NotFoundError):
            SkuService.create(
                organization_id=self.org.id,
                code='SALT',
                name='Salt',
                locations=[{'location_id': 999999, 'current_stock': 1}],
            )
        self.assertFalse(Sku.objects.filter(code='SALT').exists())

    def test_code_is_immutable(self):
        with self.assertRaises(ValidationError):
            SkuService.update(self.org.id, self.flour.id, code='FLOUR2')

        SkuService.update(self.org.id, self.flour.id, code='FLOUR', name='Bread Flour')
        self.flour.refresh_from_db()
        self.assertEqual(self.flour.name, 'Bread Flour')

    def test_create_endpoint_accepts_camel_case(self):
        response = self.client.post(
            reverse('stock:sku-list'),
            {
                'code': 'BAGUETTE',
                'name': 'Baguette',
                'basePrice': '2.50',
                'locations': [{'locationId': self.warehouse.id, 'currentStock': 12}],
            },
            content_type='application/json',
            headers=self.headers_for(self.admin),
        )
        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body['sku']['category'], 'FINISHED')
        self.assertEqual(Decimal(body['sku']['total_quantity']), Decimal('12'))

        response = self.client.post(
            reverse('stock:sku-list'),
            {'code': 'BAGUETTE', 'name': 'Baguette again'},
            content_type='application/json',
            headers=self.headers_for(self.admin),
        )
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['error']['code'], 'CONFLICT')

    def test_update_endpoint_ignores_unknown_keys(self):
        response = self.client.patch(
            reverse('stock:sku-detail', args=[self.flour.id]),
            {'organization_id': 99, 'sku_id': 7, 'name': 'Rye Flour', 'costPrice': '1.20'},
            content_type='application/json',
            headers=self.headers_for(self.admin),
        )
        self.assertEqual(response.status_code, 200)
        self.flour.refresh_from_db()
        self.assertEqual(self.flour.name, 'Rye Flour')
        self.assertEqual(self.flour.cost_price, Decimal('1.20'))
        self.assertEqual(self.flour.organization_id, self.org.id)

    def test_update_endpoint_rejects_code_change(self):
        response = self.client.patch(
            reverse('stock:sku-detail', args=[self.flour.id]),
            {'code': 'RYE'},
            content_type='application/json',
            headers=self.headers_for(self.admin),
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error']['details']['field'], 'code')


class LocationTests(LedgerTestCase):

    def test_duplicate_name_conflicts(self):
        with self.assertRaises(ConflictError):
            StockLocationService.create(self.org.id, name='Kitchen')

    def test_deactivated_location_rejects_purchases(self):
        StockLocationService.deactivate(self.org.id, self.warehouse.id)
        with self.assertRaises(ValidationError):
            PurchaseReceiptService.record(
                self.org.id, self.warehouse.id, [{'sku_id': self.flour.id, 'quantity': 1}],
            )


class PurchaseReceiptTests(LedgerTestCase):

    def test_record_increments_stock(self):
        self.seed(self.flour, 2)
        result = PurchaseReceiptService.record(
            organization_id=self.org.id,
            location_id=self.kitchen.id,
            items=[
                {'sku_id': self.flour.id, 'quantity': 25, 'unit_price': '0.80'},
                {'sku_name': 'Sea Salt', 'quantity': 3},
            ],
            member_id=self.admin.id,
            supplier_name='Mill & Co',
        )

        self.assertTrue(result['receipt_number'].startswith('RCV-'))
        self.assertEqual(len(result['created']), 2)
        self.assertLevels(self.record_for(self.flour), 27, 0, 27)

        salt = Sku.objects.get(organization=self.org, name='Sea Salt')
        self.assertEqual(salt.category, Sku.Category.RAW)
        self.assertTrue(salt.code.startswith('SKU-'))
        self.assertLevels(self.record_for(salt), 3, 0, 3)

        receipt = PurchaseReceipt.objects.get(receipt_number=result['receipt_number'])
        self.assertEqual(receipt.total_cost, Decimal('20'))
        self.assertEqual(
            InventoryMovement.objects.filter(reference_id=receipt.receipt_number).count(), 2,
        )

    def test_known_name_is_reused(self):
        PurchaseReceiptService.record(
            self.org.id, self.kitchen.id, [{'sku_name': 'flour', 'quantity': 4}],
        )
        self.assertEqual(Sku.objects.filter(organization=self.org).count(), 2)
        self.assertLevels(self.record_for(self.flour), 4, 0, 4)

    def test_bad_item_rolls_back_whole_receipt(self):
        self.seed(self.flour, 2)
        with self.assertRaises(ValidationError):
            PurchaseReceiptService.record(
                self.org.id, self.kitchen.id,
                [
                    {'sku_id': self.flour.id, 'quantity': 5},
                    {'sku_id': self.flour.id, 'quantity': -1},
                ],
            )
        self.assertLevels(self.record_for(self.flour), 2, 0, 2)
        self.assertFalse(PurchaseReceipt.objects.exists())

    def test_retry_records_a_second_receipt(self):
        items = [{'sku_id': self.flour.id, 'quantity': 1}]
        first = PurchaseReceiptService.record(self.org.id, self.kitchen.id, items)
        second = PurchaseReceiptService.record(self.org.id, self.kitchen.id, items)
        self.assertNotEqual(first['receipt_number'], second['receipt_number'])
        self.assertLevels(self.record_for(self.flour), 2, 0, 2)

    def test_purchase_endpoint(self):
        response = self.client.post(
            reverse('stock:purchase-list'),
            {'locationId': self.warehouse.id, 'items': [{'skuId': self.flour.id, 'quantity': 10}]},
            content_type='application/json',
            headers=self.headers_for(self.admin),
        )
        self.assertEqual(response.status_code, 201)
        receipt_number = response.json()['receipt_number']

        response = self.client.get(
            reverse('stock:purchase-detail', args=[receipt_number]),
            headers=self.headers_for(self.admin),
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['receipt']['items'][0]['sku_code'], 'FLOUR')


class GeneratedNumberTests(LedgerTestCase):

    def setUp(self):
        super().setUp()
        self.stem = f"SKU-{timezone.now().strftime('%Y%m%d')}-"

    def add_sku(self, code):
        return Sku.objects.create(organization=self.org, code=code, name=code)

    def test_starts_at_one(self):
        self.assertEqual(generate_number('SKU', Sku, 'code'), f'{self.stem}0001')

    def test_sequence_grows_past_four_digits(self):
        self.add_sku(f'{self.stem}9999')
        self.add_sku(f'{self.stem}0042')
        self.assertEqual(generate_number('SKU', Sku, 'code'), f'{self.stem}10000')

        self.add_sku(f'{self.stem}10000')
        self.assertEqual(generate_number('SKU', Sku, 'code'), f'{self.stem}10001')

    def test_hand_made_codes_do_not_reset_sequence(self):
        self.add_sku(f'{self.stem}0003')
        self.add_sku(f'{self.stem}abc')

        result = PurchaseReceiptService.record(
            self.org.id, self.kitchen.id, [{'sku_name': 'Sea Salt', 'quantity': 3}],
        )
        self.assertEqual(len(result['created']), 1)
        salt = Sku.objects.get(organization=self.org, name='Sea Salt')
        self.assertEqual(salt.code, f'{self.stem}0004')
