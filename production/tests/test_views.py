from decimal import Decimal

from django.urls import reverse

from accounts.models import AuditLog, Member
from production.models import ProductionBatch
from stock.services import InventoryLedgerService
from stock.tests.base import LedgerTestCase


class ProductionEndpointTests(LedgerTestCase):

    def setUp(self):
        super().setUp()
        self.seed(self.flour, 10)
        self.manager = self.make_member(Member.RoleChoices.PRODUCTION_MANAGER, 'max@bakery.test')
        self.inspector = self.make_member(Member.RoleChoices.QC_INSPECTOR, 'quinn@bakery.test')
        self.viewer = self.make_member(Member.RoleChoices.VIEWER, 'val@bakery.test')

    def post(self, url, data, member, method='post'):
        return getattr(self.client, method)(
            url, data, content_type='application/json', headers=self.headers_for(member),
        )

    def create_batch(self, **overrides):
        payload = {
            'locationId': self.kitchen.id,
            'skuId': self.bread.id,
            'quantity': 50,
            'yieldQuantity': 50,
            'ingredients': [{'skuId': self.flour.id, 'requiredQuantity': 5}],
        }
        payload.update(overrides)
        response = self.post(reverse('production:batch-list'), payload, self.manager)
        self.assertEqual(response.status_code, 201, response.content)
        return response.json()['batch']['batch_number']

    def set_status(self, number, action, member=None, **extra):
        return self.post(
            reverse('production:batch-status', args=[number]),
            {'action': action, **extra},
            member or self.manager,
            method='patch',
        )

    def test_full_batch_flow(self):
        number = self.create_batch()

        response = self.set_status(number, 'start')
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['status'], 'IN_PROGRESS')
        self.assertEqual(body['batchId'], ProductionBatch.objects.get(batch_number=number).id)

        response = self.set_status(number, 'complete', yieldActual=50)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'COMPLETED')

        self.assertEqual(
            InventoryLedgerService.get_available(self.org.id, self.kitchen.id, self.bread.id), Decimal('50'),
        )
        self.assertEqual(
            InventoryLedgerService.get_available(self.org.id, self.kitchen.id, self.flour.id), Decimal('5'),
        )

        response = self.set_status(number, 'complete', yieldActual=50)
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['error']['code'], 'BATCH_ALREADY_COMPLETED')

        response = self.client.get(
            reverse('production:batch-detail', args=[number]), headers=self.headers_for(self.viewer),
        )
        self.assertEqual(response.status_code, 200)
        batch = response.json()['batch']
        self.assertEqual(batch['lifecycle_state'], 'COMPLETED')
        self.assertEqual(batch['lot']['lot_number'], number)

    def test_status_change_audited_against_batch(self):
        number = self.create_batch()
        self.set_status(number, 'start')

        entry = AuditLog.objects.filter(resource='production_batch', action=AuditLog.Action.UPDATE).get()
        self.assertEqual(entry.resource_id, number)
        self.assertEqual(entry.member, self.manager)

    def test_insufficient_stock_returns_conflict(self):
        number = self.create_batch(ingredients=[{'skuId': self.flour.id, 'requiredQuantity': 11}])
        self.set_status(number, 'start')

        response = self.set_status(number, 'complete')
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['error']['code'], 'INSUFFICIENT_STOCK')
        self.assertEqual(ProductionBatch.objects.get(batch_number=number).lifecycle_state, 'IN_PROGRESS')

    def test_invalid_action_and_transition(self):
        number = self.create_batch()

        response = self.set_status(number, 'explode')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error']['code'], 'INVALID_ACTION')

        response = self.set_status(number, 'complete')
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['error']['code'], 'INVALID_TRANSITION')

    def test_unknown_batch(self):
        response = self.set_status('BATCH-19700101-0001', 'start')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['error']['code'], 'BATCH_NOT_FOUND')

    def test_viewer_cannot_change_status(self):
        number = self.create_batch()
        response = self.set_status(number, 'start', member=self.viewer)
        self.assertEqual(response.status_code, 403)
        self.assertEqual(ProductionBatch.objects.get(batch_number=number).lifecycle_state, 'PLANNED')

    def test_plan_update(self):
        number = self.create_batch()
        response = self.post(
            reverse('production:batch-detail', args=[number]),
            {'yieldQuantity': 45, 'notes': 'half tray short'},
            self.manager,
            method='patch',
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(Decimal(response.json()['batch']['yield_quantity']), Decimal('45'))

    def test_qc_check_by_inspector(self):
        number = self.create_batch()
        self.set_status(number, 'start')
        self.set_status(number, 'complete')

        response = self.post(
            reverse('production:qc-check-list'),
            {'batchId': number, 'checkType': 'VISUAL', 'result': 'REWORK', 'notes': 'uneven bake'},
            self.inspector,
        )
        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body['qc_check']['checked_by'], self.inspector.full_name)
        self.assertEqual(body['batch']['lifecycle_state'], 'COMPLETED')
        self.assertEqual(body['batch']['status'], 'COMPLETED/QC_REWORK')

        response = self.post(
            reverse('production:qc-check-list'),
            {'batchId': number, 'checkType': 'VISUAL', 'result': 'PASS'},
            self.viewer,
        )
        self.assertEqual(response.status_code, 403)

    def test_ingredient_usage_and_availability(self):
        number = self.create_batch()
        self.set_status(number, 'start')
        ingredient_id = ProductionBatch.objects.get(batch_number=number).ingredients.get().id

        response = self.post(
            reverse('production:ingredient-usage', args=[number, ingredient_id]),
            {'usedQuantity': 7},
            self.manager,
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(Decimal(response.json()['ingredient']['used_quantity']), Decimal('7'))

        response = self.client.get(
            reverse('production:batch-availability', args=[number]), headers=self.headers_for(self.manager),
        )
        self.assertTrue(response.json()['all_available'])

    def test_bom_and_trace_endpoints(self):
        response = self.post(
            reverse('production:bom-list'),
            {
                'code': 'LOAF',
                'name': 'Loaf',
                'skuId': self.bread.id,
                'outputQuantity': 10,
                'lines': [{'skuId': self.flour.id, 'quantity': 1}],
            },
            self.manager,
        )
        self.assertEqual(response.status_code, 201)
        bom_id = response.json()['bom']['id']

        number = self.create_batch(bomId=bom_id, ingredients=None)
        batch = ProductionBatch.objects.get(batch_number=number)
        self.assertEqual(batch.ingredients.get().required_quantity, Decimal('5'))

        self.set_status(number, 'start')
        self.set_status(number, 'complete')

        response = self.client.get(reverse('production:lot-list'), headers=self.headers_for(self.viewer))
        self.assertEqual(len(response.json()['lots']), 1)

        response = self.client.get(
            reverse('production:lot-trace', args=[number]), headers=self.headers_for(self.viewer),
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()['movements']), 2)

    def test_stats_endpoint(self):
        number = self.create_batch()
        self.set_status(number, 'start')

        response = self.client.get(reverse('production:production-stats'), headers=self.headers_for(self.viewer))
        self.assertEqual(response.status_code, 200)
        stats = response.json()['stats']
        self.assertEqual(stats['active_batches'], 1)
        self.assertEqual(stats['completed_today'], 0)
        self.assertEqual(stats['production_rate'], 100)
