from datetime import timedelta
from decimal import Decimal

from django.urls import reverse
from django.utils import timezone

from accounts.models import Member
from stock.models import InventoryMovement, Sku
from stock.services import InventoryLedgerService, InsufficientStockError, NotFoundError, ValidationError
from stock.tests.base import LedgerTestCase


class InventoryLedgerTests(LedgerTestCase):

    def test_increment_and_decrement_keep_available_in_step(self):
        record = self.seed(self.flour, 10)
        InventoryLedgerService.reserve(self.org.id, self.kitchen.id, self.flour.id, 2)
        self.assertLevels(record, 10, 2, 8)

        InventoryLedgerService.increment(self.org.id, self.kitchen.id, self.flour.id, 5)
        self.assertLevels(record, 15, 2, 13)

        InventoryLedgerService.decrement(self.org.id, self.kitchen.id, self.flour.id, 3)
        self.assertLevels(record, 12, 2, 10)

    def test_increment_creates_missing_record(self):
        record = InventoryLedgerService.increment(
            self.org.id, self.warehouse.id, self.flour.id, '7.5',
            reference_type='purchase_receipt', reference_id='RCV-1',
        )
        self.assertLevels(record, '7.5', 0, '7.5')

        movement = InventoryMovement.objects.get(inventory=record)
        self.assertEqual(movement.movement_type, InventoryMovement.MovementType.PURCHASE_IN)
        self.assertEqual(movement.quantity_before, Decimal('0'))
        self.assertEqual(movement.quantity_after, Decimal('7.5'))
        self.assertEqual(movement.reference_id, 'RCV-1')

    def test_decrement_beyond_on_hand_raises_and_leaves_record_alone(self):
        record = self.seed(self.flour, 4)
        with self.assertRaises(InsufficientStockError) as ctx:
            InventoryLedgerService.decrement(self.org.id, self.kitchen.id, self.flour.id, 5)

        self.assertEqual(ctx.exception.code, 'INSUFFICIENT_STOCK')
        self.assertEqual(ctx.exception.details['item'], 'FLOUR')
        self.assertLevels(record, 4, 0, 4)
        self.assertEqual(
            InventoryMovement.objects.filter(
                inventory=record, movement_type=InventoryMovement.MovementType.PRODUCTION_OUT,
            ).count(),
            0,
        )

    def test_decrement_without_record_raises(self):
        with self.assertRaises(InsufficientStockError):
            InventoryLedgerService.decrement(self.org.id, self.warehouse.id, self.flour.id, 1)

    def test_non_positive_quantities_are_rejected(self):
        self.seed(self.flour, 4)
        for bad in (0, -1, 'abc', None):
            with self.assertRaises(ValidationError):
                InventoryLedgerService.increment(self.org.id, self.kitchen.id, self.flour.id, bad)

    def test_adjust_floors_at_zero(self):
        record = self.seed(self.flour, 5)
        InventoryLedgerService.adjust_delta(record.id, -1000, reason='spoiled')
        self.assertLevels(record, 0, 0, 0)

        movement = InventoryMovement.objects.filter(
            inventory=record, movement_type=InventoryMovement.MovementType.ADJUSTMENT,
        ).get()
        self.assertEqual(movement.quantity, Decimal('-5'))
        self.assertEqual(movement.notes, 'spoiled')

    def test_adjust_cuts_reservation_down_to_remaining_stock(self):
        record = self.seed(self.flour, 10)
        InventoryLedgerService.reserve(self.org.id, self.kitchen.id, self.flour.id, 8)

        InventoryLedgerService.adjust_delta(record.id, -5)
        self.assertLevels(record, 5, 5, 0)

    def test_adjust_unknown_record(self):
        with self.assertRaises(NotFoundError):
            InventoryLedgerService.adjust_delta(999999, 1)

    def test_reserve_more_than_available_raises(self):
        record = self.seed(self.flour, 3)
        with self.assertRaises(InsufficientStockError):
            InventoryLedgerService.reserve(self.org.id, self.kitchen.id, self.flour.id, 4)
        self.assertLevels(record, 3, 0, 3)

    def test_release_is_clamped_to_reserved(self):
        record = self.seed(self.flour, 10)
        InventoryLedgerService.reserve(self.org.id, self.kitchen.id, self.flour.id, 2)
        InventoryLedgerService.release_reservation(self.org.id, self.kitchen.id, self.flour.id, 5)
        self.assertLevels(record, 10, 0, 10)

    def test_consuming_reserved_stock_leaves_available_negative(self):
        record = self.seed(self.flour, 10)
        InventoryLedgerService.reserve(self.org.id, self.kitchen.id, self.flour.id, 8)
        InventoryLedgerService.decrement(self.org.id, self.kitchen.id, self.flour.id, 9)
        self.assertLevels(record, 1, 8, -7)

    def test_records_are_scoped_per_organization(self):
        self.seed(self.flour, 10)
        self.assertEqual(
            InventoryLedgerService.get_available(self.org.id + 1, self.kitchen.id, self.flour.id),
            Decimal('0'),
        )


class InventoryEndpointTests(LedgerTestCase):

    def test_adjust_endpoint_floors_at_zero(self):
        self.seed(self.flour, 5)
        response = self.client.post(
            reverse('stock:adjust'),
            {'sku': 'FLOUR', 'locationId': self.kitchen.id, 'delta': -1000, 'reason': 'count'},
            content_type='application/json',
            headers=self.headers_for(self.admin),
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body['success'])
        self.assertEqual(body['inventoryId'], self.record_for(self.flour).id)
        self.assertEqual(Decimal(body['quantity']), Decimal('0'))
        self.assertEqual(Decimal(body['available']), Decimal('0'))

    def test_adjust_endpoint_unknown_sku(self):
        response = self.client.post(
            reverse('stock:adjust'),
            {'sku': 'NOPE', 'locationId': self.kitchen.id, 'delta': 1},
            content_type='application/json',
            headers=self.headers_for(self.admin),
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['error']['code'], 'SKU_NOT_FOUND')

    def test_adjust_endpoint_rejects_non_numeric_delta(self):
        self.seed(self.flour, 5)
        response = self.client.post(
            reverse('stock:adjust'),
            {'sku': 'FLOUR', 'locationId': self.kitchen.id, 'delta': 'lots'},
            content_type='application/json',
            headers=self.headers_for(self.admin),
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error']['code'], 'VALIDATION_ERROR')

    def test_adjust_endpoint_rejects_non_numeric_location(self):
        self.seed(self.flour, 5)
        response = self.client.post(
            reverse('stock:adjust'),
            {'sku': 'FLOUR', 'locationId': 'abc', 'delta': -1},
            content_type='application/json',
            headers=self.headers_for(self.admin),
        )
        self.assertEqual(response.status_code, 400)
        error = response.json()['error']
        self.assertEqual(error['code'], 'VALIDATION_ERROR')
        self.assertEqual(error['details']['field'], 'locationId')
        self.assertLevels(self.record_for(self.flour), 5, 0, 5)

    def test_reserve_endpoint_rejects_non_numeric_location(self):
        self.seed(self.flour, 5)
        response = self.client.post(
            reverse('stock:reserve'),
            {'location_id': 'kitchen', 'sku_id': self.flour.id, 'quantity': 1},
            content_type='application/json',
            headers=self.headers_for(self.admin),
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error']['details']['field'], 'location_id')

    def test_reserve_endpoint_conflict(self):
        self.seed(self.flour, 1)
        response = self.client.post(
            reverse('stock:reserve'),
            {'location_id': self.kitchen.id, 'sku_id': self.flour.id, 'quantity': 2},
            content_type='application/json',
            headers=self.headers_for(self.admin),
        )
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['error']['code'], 'INSUFFICIENT_STOCK')

    def test_levels_and_movements_listing(self):
        self.seed(self.flour, 12)
        self.seed(self.bread, 3, location=self.warehouse)

        response = self.client.get(
            reverse('stock:level-list'), {'location_id': self.kitchen.id},
            headers=self.headers_for(self.admin),
        )
        self.assertEqual(response.status_code, 200)
        levels = response.json()['levels']
        self.assertEqual([level['sku']['code'] for level in levels], ['FLOUR'])

        response = self.client.get(
            reverse('stock:movement-list'), {'type': 'OPENING_BALANCE'},
            headers=self.headers_for(self.admin),
        )
        self.assertEqual(response.json()['pagination']['total_items'], 2)


class InventoryStatsTests(LedgerTestCase):

    def setUp(self):
        super().setUp()
        InventoryLedgerService.upsert_initial(
            self.org.id, self.kitchen.id, self.flour.id, initial_quantity=10, reorder_level=20,
        )
        self.seed(self.bread, 0, location=self.warehouse)
        Sku.objects.create(organization=self.org, code='RYE', name='Rye', is_active=False)

    def test_counts(self):
        InventoryMovement.objects.filter(inventory__sku=self.bread).update(
            created_at=timezone.now() - timedelta(days=2),
        )
        stats = InventoryLedgerService.stats(self.org.id)['stats']
        self.assertEqual(stats['total_skus'], 2)
        self.assertEqual(stats['in_stock_items'], 1)
        self.assertEqual(stats['low_stock_items'], 1)
        self.assertEqual(stats['out_of_stock_items'], 1)
        self.assertEqual(stats['recent_movements'], 1)

    def test_location_filter(self):
        stats = InventoryLedgerService.stats(self.org.id, location_id=self.warehouse.id)['stats']
        self.assertEqual(stats['in_stock_items'], 0)
        self.assertEqual(stats['out_of_stock_items'], 1)
        self.assertEqual(stats['recent_movements'], 1)

    def test_endpoint_defaults_to_member_location(self):
        clerk = self.make_member(Member.RoleChoices.WAREHOUSE, 'wes@bakery.test', location=self.kitchen)
        response = self.client.get(reverse('stock:inventory-stats'), headers=self.headers_for(clerk))
        self.assertEqual(response.status_code, 200)
        stats = response.json()['stats']
        self.assertEqual(stats['in_stock_items'], 1)
        self.assertEqual(stats['out_of_stock_items'], 0)

        response = self.client.get(
            reverse('stock:inventory-stats'), {'location_id': self.warehouse.id},
            headers=self.headers_for(clerk),
        )
        self.assertEqual(response.status_code, 403)
