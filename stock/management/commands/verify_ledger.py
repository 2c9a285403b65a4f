"""
Check inventory records against the ledger invariants.

Usage:
    python manage.py verify_ledger                 # Report problems, exit 1 if any
    python manage.py verify_ledger --org 3         # Only one organization
    python manage.py verify_ledger --journal       # Also compare against the movement journal
    python manage.py verify_ledger --fix-available # Recompute available = quantity - reserved
"""

import logging

from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from stock.models import InventoryRecord, InventoryMovement

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Verify inventory records: quantity >= 0, reserved >= 0, available == quantity - reserved'

    def add_arguments(self, parser):
        parser.add_argument('--org', type=int, metavar='ORG_ID', help='Only check this organization')
        parser.add_argument('--journal', action='store_true',
                            help='Check that the latest movement matches the stored quantity')
        parser.add_argument('--fix-available', action='store_true',
                            help='Rewrite available quantity where it drifted from quantity - reserved')

    def handle(self, *args, **options):
        records = InventoryRecord.objects.select_related('sku', 'location').order_by('id')
        if options['org']:
            records = records.filter(organization_id=options['org'])

        problems = []
        checked = 0
        for record in records:
            checked += 1
            problems.extend(self.check_record(record, options['journal']))

            if options['fix_available'] and record.available_quantity != record.quantity - record.reserved_quantity:
                self.fix_available(record)

        self.stdout.write(f'Checked {checked} inventory records')

        if not problems:
            self.stdout.write(self.style.SUCCESS('Ledger is consistent'))
            return

        for problem in problems:
            self.stdout.write(self.style.ERROR(f'  {problem}'))

        if not options['fix_available']:
            raise CommandError(f'{len(problems)} ledger problem(s) found')

    def check_record(self, record, check_journal):
        label = f'#{record.id} {record.sku.code} @ {record.location.name}'
        problems = []

        if record.quantity < 0:
            problems.append(f'{label}: negative quantity {record.quantity}')
        if record.reserved_quantity < 0:
            problems.append(f'{label}: negative reserved quantity {record.reserved_quantity}')

        expected = record.quantity - record.reserved_quantity
        if record.available_quantity != expected:
            problems.append(
                f'{label}: available {record.available_quantity} != quantity - reserved ({expected})'
            )

        if check_journal:
            last = InventoryMovement.objects.filter(inventory=record).order_by('-created_at', '-id').first()
            if last and last.quantity_after != record.quantity:
                problems.append(
                    f'{label}: journal ends at {last.quantity_after}, record holds {record.quantity}'
                )

        return problems

    @transaction.atomic
    def fix_available(self, record):
        record = InventoryRecord.objects.select_for_update().get(pk=record.pk)
        record.available_quantity = record.quantity - record.reserved_quantity
        record.save(update_fields=['available_quantity', 'updated_at'])
        logger.warning('Available quantity recomputed for inventory %s', record.id)
        self.stdout.write(self.style.WARNING(f'  fixed available for #{record.id}'))
