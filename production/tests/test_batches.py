from datetime import timedelta
from decimal import Decimal

from django.core.exceptions import ValidationError as ModelValidationError
from django.utils import timezone

from production.models import ProductionBatch, InventoryLot, QcCheck
from production.services import (
    BomService, ProductionBatchService, BatchIngredientService, QcCheckService, TraceabilityService,
)
from stock.models import InventoryMovement
from stock.services import (
    InventoryLedgerService, ConflictError, ValidationError, InsufficientStockError,
)
from stock.tests.base import LedgerTestCase

State = ProductionBatch.LifecycleState


class BatchTestCase(LedgerTestCase):

    def plan(self, required=5, yield_quantity=50, **kwargs):
        result = ProductionBatchService.create(
            organization_id=self.org.id,
            location_id=self.kitchen.id,
            sku_id=self.bread.id,
            planned_quantity=50,
            ingredients=[{'sku_id': self.flour.id, 'required_quantity': required}],
            yield_quantity=yield_quantity,
            member_id=self.admin.id,
            **kwargs
        )
        return result['batch']['batch_number']

    def batch(self, batch_number):
        return ProductionBatch.objects.get(batch_number=batch_number)

    def available(self, sku):
        return InventoryLedgerService.get_available(self.org.id, self.kitchen.id, sku.id)


class BatchLifecycleTests(BatchTestCase):

    def test_new_batch_is_planned(self):
        batch = self.batch(self.plan())
        self.assertEqual(batch.lifecycle_state, State.PLANNED)
        self.assertIsNone(batch.qc_outcome)
        self.assertTrue(batch.batch_number.startswith('BATCH-'))
        self.assertEqual(batch.ingredients.count(), 1)

    def test_allowed_transitions(self):
        number = self.plan()
        ProductionBatchService.delay(self.org.id, number, reason='oven down')
        self.assertEqual(self.batch(number).lifecycle_state, State.DELAYED)
        self.assertIn('oven down', self.batch(number).notes)

        ProductionBatchService.start(self.org.id, number)
        self.assertEqual(self.batch(number).lifecycle_state, State.IN_PROGRESS)

        ProductionBatchService.delay(self.org.id, number)
        self.assertEqual(self.batch(number).lifecycle_state, State.DELAYED)

    def test_resume_keeps_original_start_time(self):
        number = self.plan()
        ProductionBatchService.start(self.org.id, number)
        started_at = self.batch(number).started_at

        ProductionBatchService.delay(self.org.id, number)
        ProductionBatchService.start(self.org.id, number)
        self.assertEqual(self.batch(number).started_at, started_at)

    def test_rejected_transitions(self):
        number = self.plan()
        with self.assertRaises(ConflictError) as ctx:
            ProductionBatchService.complete(self.org.id, number)
        self.assertEqual(ctx.exception.code, 'INVALID_TRANSITION')

        ProductionBatchService.delay(self.org.id, number)
        with self.assertRaises(ConflictError):
            ProductionBatchService.complete(self.org.id, number)
        with self.assertRaises(ConflictError):
            ProductionBatchService.delay(self.org.id, number)

        self.assertEqual(self.batch(number).lifecycle_state, State.DELAYED)

    def test_unknown_action(self):
        number = self.plan()
        with self.assertRaises(ValidationError) as ctx:
            ProductionBatchService.transition(self.org.id, number, 'cancel')
        self.assertEqual(ctx.exception.code, 'INVALID_ACTION')

    def test_batch_must_produce_finished_good(self):
        with self.assertRaises(ValidationError):
            ProductionBatchService.create(
                organization_id=self.org.id,
                location_id=self.kitchen.id,
                sku_id=self.flour.id,
                planned_quantity=10,
            )

    def test_batch_cannot_consume_its_output(self):
        with self.assertRaises(ValidationError):
            ProductionBatchService.create(
                organization_id=self.org.id,
                location_id=self.kitchen.id,
                sku_id=self.bread.id,
                planned_quantity=10,
                ingredients=[{'sku_id': self.bread.id, 'required_quantity': 1}],
            )
        self.assertFalse(ProductionBatch.objects.exists())

    def test_plan_update_rejected_after_completion(self):
        self.seed(self.flour, 10)
        number = self.plan()
        ProductionBatchService.update_plan(self.org.id, number, yield_quantity=48, notes='smaller loaves')
        self.assertEqual(self.batch(number).yield_quantity, Decimal('48'))

        ProductionBatchService.start(self.org.id, number)
        ProductionBatchService.complete(self.org.id, number)
        with self.assertRaises(ConflictError) as ctx:
            ProductionBatchService.update_plan(self.org.id, number, notes='too late')
        self.assertEqual(ctx.exception.code, 'BATCH_ALREADY_COMPLETED')


class BatchCompletionTests(BatchTestCase):

    def setUp(self):
        super().setUp()
        self.seed(self.flour, 10)

    def test_completion_moves_stock_and_appends_lot(self):
        number = self.plan(required=5, yield_quantity=50)
        ProductionBatchService.start(self.org.id, number)
        ProductionBatchService.complete(self.org.id, number, member_id=self.admin.id)

        batch = self.batch(number)
        self.assertEqual(batch.lifecycle_state, State.COMPLETED)
        self.assertIsNotNone(batch.completed_at)
        self.assertEqual(batch.yield_actual, Decimal('50'))

        self.assertEqual(self.available(self.bread), Decimal('50'))
        self.assertEqual(self.available(self.flour), Decimal('5'))

        lot = InventoryLot.objects.get(batch=batch)
        self.assertEqual(lot.lot_number, number)
        self.assertEqual(lot.quantity, Decimal('50'))
        self.assertEqual(lot.sku, self.bread)
        self.assertEqual(lot.location, self.kitchen)

        ingredient = batch.ingredients.get()
        self.assertEqual(ingredient.consumed_quantity, Decimal('5'))
        self.assertIsNotNone(ingredient.consumed_at)

        movements = InventoryMovement.objects.filter(reference_type='production_batch', reference_id=number)
        self.assertEqual(
            sorted(movements.values_list('movement_type', flat=True)),
            ['PRODUCTION_IN', 'PRODUCTION_OUT'],
        )

    def test_explicit_yield_overrides_expected(self):
        number = self.plan(yield_quantity=50)
        ProductionBatchService.start(self.org.id, number)
        ProductionBatchService.complete(self.org.id, number, yield_actual='47.5')
        self.assertEqual(self.available(self.bread), Decimal('47.5'))
        self.assertEqual(InventoryLot.objects.get().quantity, Decimal('47.5'))

    def test_recorded_usage_replaces_required_quantity(self):
        number = self.plan(required=5)
        ProductionBatchService.start(self.org.id, number)
        ingredient_id = self.batch(number).ingredients.get().id
        BatchIngredientService.record_usage(self.org.id, number, ingredient_id, 6, notes='spillage')

        ProductionBatchService.complete(self.org.id, number)
        self.assertEqual(self.available(self.flour), Decimal('4'))

    def test_second_completion_conflicts_without_moving_stock(self):
        number = self.plan()
        ProductionBatchService.start(self.org.id, number)
        ProductionBatchService.complete(self.org.id, number)

        with self.assertRaises(ConflictError) as ctx:
            ProductionBatchService.complete(self.org.id, number)
        self.assertEqual(ctx.exception.code, 'BATCH_ALREADY_COMPLETED')

        self.assertEqual(self.available(self.bread), Decimal('50'))
        self.assertEqual(self.available(self.flour), Decimal('5'))
        self.assertEqual(InventoryLot.objects.count(), 1)

    def test_short_ingredient_rolls_back_completion(self):
        number = self.plan(required=12)
        ProductionBatchService.start(self.org.id, number)

        with self.assertRaises(InsufficientStockError):
            ProductionBatchService.complete(self.org.id, number)

        batch = self.batch(number)
        self.assertEqual(batch.lifecycle_state, State.IN_PROGRESS)
        self.assertIsNone(batch.yield_actual)
        self.assertIsNone(batch.ingredients.get().consumed_at)
        self.assertEqual(self.available(self.bread), Decimal('0'))
        self.assertEqual(self.available(self.flour), Decimal('10'))
        self.assertFalse(InventoryLot.objects.exists())
        self.assertFalse(InventoryMovement.objects.filter(reference_id=number).exists())

    def test_missing_yield_is_rejected(self):
        number = self.plan(yield_quantity=None)
        ProductionBatchService.start(self.org.id, number)

        with self.assertRaises(ValidationError) as ctx:
            ProductionBatchService.complete(self.org.id, number)
        self.assertEqual(ctx.exception.code, 'YIELD_NOT_RECORDED')
        self.assertEqual(self.batch(number).lifecycle_state, State.IN_PROGRESS)

    def test_availability_check(self):
        number = self.plan(required=12)
        result = BatchIngredientService.check_availability(self.org.id, number)
        self.assertFalse(result['all_available'])
        self.assertEqual(Decimal(result['ingredients'][0]['shortage']), Decimal('2'))


class IngredientTests(BatchTestCase):

    def test_usage_only_while_in_progress(self):
        number = self.plan()
        ingredient_id = self.batch(number).ingredients.get().id
        with self.assertRaises(ConflictError):
            BatchIngredientService.record_usage(self.org.id, number, ingredient_id, 4)

        ProductionBatchService.start(self.org.id, number)
        result = BatchIngredientService.record_usage(self.org.id, number, ingredient_id, 4)
        self.assertEqual(Decimal(result['ingredient']['variance']), Decimal('-1'))

        with self.assertRaises(ValidationError):
            BatchIngredientService.record_usage(self.org.id, number, ingredient_id, -1)

    def test_duplicate_ingredient_conflicts(self):
        number = self.plan()
        with self.assertRaises(ConflictError):
            BatchIngredientService.add(self.org.id, number, self.flour.id, 2)


class BomTests(BatchTestCase):

    def test_batch_scales_bom_lines(self):
        bom = BomService.create(
            organization_id=self.org.id,
            code='LOAF-STD',
            name='Standard loaf',
            sku_id=self.bread.id,
            output_quantity=10,
            lines=[{'sku_id': self.flour.id, 'quantity': 2}],
        )['bom']

        result = ProductionBatchService.create(
            organization_id=self.org.id,
            location_id=self.kitchen.id,
            bom_id=bom['id'],
            planned_quantity=25,
        )
        batch = self.batch(result['batch']['batch_number'])
        self.assertEqual(batch.sku, self.bread)
        self.assertEqual(batch.ingredients.get().required_quantity, Decimal('5'))

    def test_bom_rejects_raw_output(self):
        with self.assertRaises(ValidationError):
            BomService.create(
                organization_id=self.org.id,
                code='BAD',
                name='Bad',
                sku_id=self.flour.id,
                lines=[{'sku_id': self.bread.id, 'quantity': 1}],
            )


class QcAndTraceTests(BatchTestCase):

    def setUp(self):
        super().setUp()
        self.seed(self.flour, 10)
        self.number = self.plan()
        ProductionBatchService.start(self.org.id, self.number)
        ProductionBatchService.complete(self.org.id, self.number)

    def test_qc_sets_outcome_and_keeps_lifecycle(self):
        QcCheckService.record_check(
            self.org.id, self.number, 'visual', 'fail', notes='burnt crust', checked_by='Quinn',
        )
        batch = self.batch(self.number)
        self.assertEqual(batch.lifecycle_state, State.COMPLETED)
        self.assertEqual(batch.qc_outcome, ProductionBatch.QcOutcome.FAIL)
        self.assertEqual(batch.display_status, 'COMPLETED/QC_FAILED')

        QcCheckService.record_check(self.org.id, self.number, 'TASTE', 'PASS')
        batch.refresh_from_db()
        self.assertEqual(batch.qc_outcome, ProductionBatch.QcOutcome.PASS)
        self.assertEqual(QcCheck.objects.filter(batch=batch).count(), 2)

    def test_qc_rejects_unknown_values(self):
        with self.assertRaises(ValidationError):
            QcCheckService.record_check(self.org.id, self.number, 'SMELL', 'PASS')
        with self.assertRaises(ValidationError):
            QcCheckService.record_check(self.org.id, self.number, 'VISUAL', 'MAYBE')

    def test_qc_checks_and_lots_are_append_only(self):
        QcCheckService.record_check(self.org.id, self.number, 'WEIGHT', 'PASS')
        check = QcCheck.objects.get()
        check.notes = 'edited'
        with self.assertRaises(ModelValidationError):
            check.save()
        with self.assertRaises(ModelValidationError):
            InventoryLot.objects.get().delete()

    def test_trace_walks_lot_back_to_batch(self):
        QcCheckService.record_check(self.org.id, self.number, 'VISUAL', 'PASS')
        result = TraceabilityService.trace(self.org.id, self.number)

        self.assertEqual(Decimal(result['lot']['quantity']), Decimal('50'))
        self.assertEqual(result['batch']['batch_number'], self.number)
        self.assertEqual(result['batch']['ingredients'][0]['sku_code'], 'FLOUR')
        self.assertEqual(len(result['batch']['qc_checks']), 1)
        self.assertEqual(len(result['movements']), 2)


class BatchStatsTests(BatchTestCase):

    def test_empty_organization(self):
        stats = ProductionBatchService.stats(self.org.id)['stats']
        self.assertEqual(stats['active_batches'], 0)
        self.assertEqual(stats['delayed_batches'], 0)
        self.assertEqual(stats['production_rate'], 100)

    def test_counts_and_rate(self):
        today = timezone.localdate()
        yesterday = (today - timedelta(days=1)).isoformat()
        tomorrow = (today + timedelta(days=1)).isoformat()
        self.seed(self.flour, 10)

        self.plan(planned_date=yesterday)

        on_time = self.plan(planned_date=tomorrow)
        ProductionBatchService.start(self.org.id, on_time)

        running_late = self.plan(planned_date=yesterday)
        ProductionBatchService.start(self.org.id, running_late)

        held = self.plan()
        ProductionBatchService.delay(self.org.id, held, reason='oven down')

        done = self.plan()
        ProductionBatchService.start(self.org.id, done)
        ProductionBatchService.complete(self.org.id, done)

        stats = ProductionBatchService.stats(self.org.id)['stats']
        self.assertEqual(stats['active_batches'], 2)
        self.assertEqual(stats['planned_batches'], 1)
        self.assertEqual(stats['completed_today'], 1)
        self.assertEqual(stats['delayed_batches'], 3)
        self.assertEqual(stats['production_rate'], 50)

        stats = ProductionBatchService.stats(self.org.id, location_id=self.warehouse.id)['stats']
        self.assertEqual(stats['active_batches'], 0)
        self.assertEqual(stats['production_rate'], 100)
