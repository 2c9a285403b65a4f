import logging
from datetime import timedelta
from typing import Dict, Any, Optional
from decimal import Decimal

from django.db import transaction
from django.db.models import F, Q, Count
from django.utils import timezone

from stock.models import InventoryRecord, InventoryMovement, Location, Sku
from stock.services.base_service import (
    BaseService, success_response, paginate_queryset,
    ValidationError, NotFoundError, InsufficientStockError,
    parse_decimal, parse_id, to_decimal,
)

logger = logging.getLogger(__name__)

MovementType = InventoryMovement.MovementType


class InventoryLedgerService(BaseService):
    """
    Per (organization, location, SKU) stock ledger.

    Every mutation keeps ``available_quantity == quantity - reserved_quantity``
    and ``quantity >= 0``. Increments and decrements are applied by the
    database as ``F()`` updates on a locked row, so concurrent callers never
    overwrite each other. Each mutation appends one InventoryMovement.
    """

    model = InventoryRecord
    not_found_code = "INVENTORY_NOT_FOUND"

    @classmethod
    def serialize(cls, record: InventoryRecord) -> Dict[str, Any]:
        return {
            "id": record.id,
            "uuid": str(record.uuid),
            "organization_id": record.organization_id,
            "location_id": record.location_id,
            "location": {
                "id": record.location.id,
                "name": record.location.name,
                "type": record.location.type,
            },
            "sku_id": record.sku_id,
            "sku": {
                "id": record.sku.id,
                "code": record.sku.code,
                "name": record.sku.name,
                "category": record.sku.category,
                "unit": record.sku.unit,
            },
            "quantity": str(record.quantity),
            "reserved_quantity": str(record.reserved_quantity),
            "available_quantity": str(record.available_quantity),
            "reorder_level": str(record.reorder_level),
            "reorder_quantity": str(record.reorder_quantity),
            "is_low_stock": record.is_low_stock,
            "last_movement_at": record.last_movement_at.isoformat() if record.last_movement_at else None,
        }

    @classmethod
    def serialize_movement(cls, movement: InventoryMovement) -> Dict[str, Any]:
        return {
            "id": movement.id,
            "uuid": str(movement.uuid),
            "inventory_id": movement.inventory_id,
            "sku_code": movement.inventory.sku.code,
            "location_id": movement.inventory.location_id,
            "movement_type": movement.movement_type,
            "quantity": str(movement.quantity),
            "quantity_before": str(movement.quantity_before),
            "quantity_after": str(movement.quantity_after),
            "reference_type": movement.reference_type,
            "reference_id": movement.reference_id,
            "member_id": movement.member_id,
            "notes": movement.notes,
            "created_at": movement.created_at.isoformat(),
        }

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @classmethod
    def _resolve_location(cls, organization_id: int, location_id: int) -> Location:
        try:
            return Location.objects.get(id=location_id, organization_id=organization_id)
        except (Location.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("Location", location_id, "LOCATION_NOT_FOUND")

    @classmethod
    def _resolve_sku(cls, organization_id: int, sku_id: int) -> Sku:
        try:
            return Sku.objects.get(id=sku_id, organization_id=organization_id)
        except (Sku.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("SKU", sku_id, "SKU_NOT_FOUND")

    @classmethod
    def _lock_or_create(cls, organization_id: int, location_id: int, sku_id: int) -> InventoryRecord:
        record, created = cls.model.objects.get_or_create(
            organization_id=organization_id,
            location_id=location_id,
            sku_id=sku_id,
        )
        if created:
            logger.debug("Inventory record created: org=%s location=%s sku=%s",
                         organization_id, location_id, sku_id)
        return cls.model.objects.select_for_update().get(pk=record.pk)

    @classmethod
    def _lock(cls, organization_id: int, location_id: int, sku_id: int) -> Optional[InventoryRecord]:
        return cls.model.objects.select_for_update().filter(
            organization_id=organization_id,
            location_id=location_id,
            sku_id=sku_id,
        ).first()

    @classmethod
    def _record_movement(cls, record: InventoryRecord, movement_type: str,
                         delta: Decimal, before: Decimal, after: Decimal,
                         reference_type: str = "", reference_id: Any = "",
                         member_id: int = None, notes: str = "") -> InventoryMovement:
        return InventoryMovement.objects.create(
            inventory=record,
            movement_type=movement_type,
            quantity=delta,
            quantity_before=before,
            quantity_after=after,
            reference_type=reference_type or "",
            reference_id=str(reference_id) if reference_id not in (None, "") else "",
            member_id=member_id,
            notes=notes or "",
        )

    @classmethod
    def get_record(cls, organization_id: int, location_id: int, sku_id: int) -> InventoryRecord:
        record = cls.model.objects.select_related("sku", "location").filter(
            organization_id=organization_id,
            location_id=location_id,
            sku_id=sku_id,
        ).first()
        if not record:
            raise NotFoundError(
                "Inventory record", f"location={location_id}, sku={sku_id}", "INVENTORY_NOT_FOUND"
            )
        return record

    @classmethod
    def get_available(cls, organization_id: int, location_id: int, sku_id: int) -> Decimal:
        record = cls.model.objects.filter(
            organization_id=organization_id,
            location_id=location_id,
            sku_id=sku_id,
        ).only("available_quantity").first()
        return record.available_quantity if record else Decimal("0")

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    @classmethod
    @transaction.atomic
    def increment(cls, organization_id: int, location_id: int, sku_id: int,
                  quantity: Any,
                  movement_type: str = MovementType.PURCHASE_IN,
                  reference_type: str = "",
                  reference_id: Any = "",
                  member_id: int = None,
                  notes: str = "") -> InventoryRecord:
        quantity = parse_decimal(quantity, "quantity", positive=True)
        cls._resolve_location(organization_id, location_id)
        cls._resolve_sku(organization_id, sku_id)

        record = cls._lock_or_create(organization_id, location_id, sku_id)
        before = record.quantity

        cls.model.objects.filter(pk=record.pk).update(
            quantity=F("quantity") + quantity,
            available_quantity=F("available_quantity") + quantity,
            last_movement_at=timezone.now(),
        )
        record.refresh_from_db()

        cls._record_movement(
            record, movement_type, quantity, before, record.quantity,
            reference_type, reference_id, member_id, notes,
        )
        logger.info("Inventory +%s sku=%s location=%s (%s)",
                    quantity, sku_id, location_id, movement_type)
        return record

    @classmethod
    @transaction.atomic
    def decrement(cls, organization_id: int, location_id: int, sku_id: int,
                  quantity: Any,
                  movement_type: str = MovementType.PRODUCTION_OUT,
                  reference_type: str = "",
                  reference_id: Any = "",
                  member_id: int = None,
                  notes: str = "") -> InventoryRecord:
        """
        Remove ``quantity`` from on-hand stock. Raises InsufficientStockError
        when the record is missing or holds less than ``quantity``; nothing
        is skipped silently.
        """
        quantity = parse_decimal(quantity, "quantity", positive=True)
        location_id = parse_id(location_id, "location_id")
        sku = cls._resolve_sku(organization_id, sku_id)

        record = cls._lock(organization_id, location_id, sku_id)
        if record is None:
            raise InsufficientStockError(sku.code, quantity, Decimal("0"))

        before = record.quantity
        updated = cls.model.objects.filter(pk=record.pk, quantity__gte=quantity).update(
            quantity=F("quantity") - quantity,
            available_quantity=F("available_quantity") - quantity,
            last_movement_at=timezone.now(),
        )
        if not updated:
            logger.warning("Insufficient stock: sku=%s location=%s required=%s on_hand=%s",
                           sku.code, location_id, quantity, before)
            raise InsufficientStockError(sku.code, quantity, before)

        record.refresh_from_db()
        cls._record_movement(
            record, movement_type, -quantity, before, record.quantity,
            reference_type, reference_id, member_id, notes,
        )
        logger.info("Inventory -%s sku=%s location=%s (%s)",
                    quantity, sku_id, location_id, movement_type)
        return record

    @classmethod
    @transaction.atomic
    def adjust_delta(cls, inventory_id: int, delta: Any,
                     reason: str = "",
                     member_id: int = None,
                     organization_id: int = None) -> InventoryRecord:
        """
        Manual correction. The new quantity is floored at zero and an
        over-deduction is absorbed without error. A reservation larger than
        the remaining stock is cut down to it.
        """
        delta = parse_decimal(delta, "delta")

        queryset = cls.model.objects.select_for_update()
        if organization_id is not None:
            queryset = queryset.filter(organization_id=organization_id)
        record = queryset.filter(pk=inventory_id).first()
        if record is None:
            raise NotFoundError("Inventory record", inventory_id, "INVENTORY_NOT_FOUND")

        before = record.quantity
        new_quantity = max(Decimal("0"), before + delta)
        new_reserved = min(record.reserved_quantity, new_quantity)

        record.quantity = new_quantity
        record.reserved_quantity = new_reserved
        record.available_quantity = new_quantity - new_reserved
        record.last_movement_at = timezone.now()
        record.save(update_fields=[
            "quantity", "reserved_quantity", "available_quantity",
            "last_movement_at", "updated_at",
        ])

        cls._record_movement(
            record, MovementType.ADJUSTMENT, new_quantity - before, before, new_quantity,
            "adjustment", "", member_id, reason,
        )
        if before + delta < 0:
            logger.warning("Adjustment floored at zero: inventory=%s before=%s delta=%s",
                           record.id, before, delta)
        else:
            logger.info("Inventory adjusted: inventory=%s %s -> %s", record.id, before, new_quantity)
        return record

    @classmethod
    def adjust(cls, organization_id: int, sku_code: str, location_id: int,
               delta: Any, reason: str = "", member_id: int = None) -> Dict[str, Any]:
        if not sku_code:
            raise ValidationError("sku is required", field="sku")
        location_id = parse_id(location_id, "locationId")

        sku = Sku.objects.filter(organization_id=organization_id, code=sku_code).first()
        if not sku:
            raise NotFoundError("SKU", sku_code, "SKU_NOT_FOUND")

        record = cls.model.objects.filter(
            organization_id=organization_id,
            location_id=location_id,
            sku=sku,
        ).first()
        if not record:
            raise NotFoundError(
                "Inventory record", f"{sku_code} at location {location_id}", "INVENTORY_NOT_FOUND"
            )

        record = cls.adjust_delta(record.id, delta, reason=reason, member_id=member_id,
                                  organization_id=organization_id)
        return success_response({
            "inventory_id": record.id,
            "quantity": str(record.quantity),
            "available": str(record.available_quantity),
        }, "Inventory adjusted")

    @classmethod
    @transaction.atomic
    def upsert_initial(cls, organization_id: int, location_id: int, sku_id: int,
                       initial_quantity: Any = 0,
                       reorder_level: Any = 0,
                       reorder_quantity: Any = 0,
                       member_id: int = None) -> InventoryRecord:
        initial_quantity = parse_decimal(
            initial_quantity if initial_quantity not in (None, "") else 0, "initial_quantity"
        )
        if initial_quantity < 0:
            raise ValidationError("initial_quantity cannot be negative", field="initial_quantity")
        reorder_level = to_decimal(reorder_level)
        reorder_quantity = to_decimal(reorder_quantity)
        if reorder_level < 0 or reorder_quantity < 0:
            raise ValidationError("Reorder values cannot be negative", field="reorder_level")

        cls._resolve_location(organization_id, location_id)
        cls._resolve_sku(organization_id, sku_id)

        record = cls._lock_or_create(organization_id, location_id, sku_id)
        before = record.quantity

        record.quantity = initial_quantity
        record.reserved_quantity = min(record.reserved_quantity, initial_quantity)
        record.available_quantity = initial_quantity - record.reserved_quantity
        record.reorder_level = reorder_level
        record.reorder_quantity = reorder_quantity
        record.last_movement_at = timezone.now()
        record.save()

        cls._record_movement(
            record, MovementType.OPENING_BALANCE, initial_quantity - before, before, initial_quantity,
            "opening_balance", "", member_id,
        )
        logger.info("Opening balance set: sku=%s location=%s quantity=%s",
                    sku_id, location_id, initial_quantity)
        return record

    @classmethod
    @transaction.atomic
    def reserve(cls, organization_id: int, location_id: int, sku_id: int,
                quantity: Any,
                reference_type: str = "",
                reference_id: Any = "",
                member_id: int = None) -> InventoryRecord:
        quantity = parse_decimal(quantity, "quantity", positive=True)
        location_id = parse_id(location_id, "location_id")
        sku = cls._resolve_sku(organization_id, sku_id)

        record = cls._lock(organization_id, location_id, sku_id)
        if record is None:
            raise InsufficientStockError(sku.code, quantity, Decimal("0"))

        updated = cls.model.objects.filter(pk=record.pk, available_quantity__gte=quantity).update(
            reserved_quantity=F("reserved_quantity") + quantity,
            available_quantity=F("available_quantity") - quantity,
            last_movement_at=timezone.now(),
        )
        if not updated:
            raise InsufficientStockError(sku.code, quantity, record.available_quantity)

        record.refresh_from_db()
        cls._record_movement(
            record, MovementType.RESERVATION, quantity, record.quantity, record.quantity,
            reference_type, reference_id, member_id,
        )
        logger.info("Reserved %s of sku=%s at location=%s", quantity, sku_id, location_id)
        return record

    @classmethod
    @transaction.atomic
    def release_reservation(cls, organization_id: int, location_id: int, sku_id: int,
                            quantity: Any,
                            reference_type: str = "",
                            reference_id: Any = "",
                            member_id: int = None) -> InventoryRecord:
        quantity = parse_decimal(quantity, "quantity", positive=True)
        location_id = parse_id(location_id, "location_id")
        cls._resolve_sku(organization_id, sku_id)

        record = cls._lock(organization_id, location_id, sku_id)
        if record is None:
            raise NotFoundError(
                "Inventory record", f"location={location_id}, sku={sku_id}", "INVENTORY_NOT_FOUND"
            )

        release = min(quantity, record.reserved_quantity)
        if release > 0:
            cls.model.objects.filter(pk=record.pk).update(
                reserved_quantity=F("reserved_quantity") - release,
                available_quantity=F("available_quantity") + release,
                last_movement_at=timezone.now(),
            )
            record.refresh_from_db()
            cls._record_movement(
                record, MovementType.RESERVATION_RELEASE, release, record.quantity, record.quantity,
                reference_type, reference_id, member_id,
            )
        logger.info("Released %s of sku=%s at location=%s", release, sku_id, location_id)
        return record

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @classmethod
    def get_levels(cls, organization_id: int,
                   location_id: int = None,
                   sku_id: int = None,
                   category: str = None,
                   low_stock_only: bool = False,
                   page: int = 1,
                   per_page: int = 50) -> Dict[str, Any]:
        queryset = cls.model.objects.select_related("sku", "location").filter(
            organization_id=organization_id,
            sku__is_active=True,
        )

        if location_id:
            queryset = queryset.filter(location_id=location_id)

        if sku_id:
            queryset = queryset.filter(sku_id=sku_id)

        if category:
            queryset = queryset.filter(sku__category=category)

        if low_stock_only:
            queryset = queryset.filter(reorder_level__gt=0, quantity__lte=F("reorder_level"))

        queryset = queryset.order_by("sku__name", "location__name")
        records, pagination = paginate_queryset(queryset, page, per_page)

        return success_response({
            "levels": [cls.serialize(r) for r in records],
            "pagination": pagination
        })

    @classmethod
    def stats(cls, organization_id: int, location_id: int = None) -> Dict[str, Any]:
        records = cls.model.objects.filter(organization_id=organization_id, sku__is_active=True)
        movements = InventoryMovement.objects.filter(inventory__organization_id=organization_id)
        if location_id:
            records = records.filter(location_id=location_id)
            movements = movements.filter(inventory__location_id=location_id)

        counts = records.aggregate(
            in_stock=Count("id", filter=Q(quantity__gt=0)),
            low_stock=Count("id", filter=Q(reorder_level__gt=0, quantity__lte=F("reorder_level"))),
            out_of_stock=Count("id", filter=Q(quantity=0)),
        )
        since = timezone.now() - timedelta(hours=24)

        return success_response({
            "stats": {
                "total_skus": Sku.objects.filter(organization_id=organization_id, is_active=True).count(),
                "in_stock_items": counts["in_stock"],
                "low_stock_items": counts["low_stock"],
                "out_of_stock_items": counts["out_of_stock"],
                "recent_movements": movements.filter(created_at__gte=since).count(),
            }
        })

    @classmethod
    def list_movements(cls, organization_id: int,
                       inventory_id: int = None,
                       sku_id: int = None,
                       location_id: int = None,
                       movement_type: str = None,
                       reference_type: str = None,
                       reference_id: str = None,
                       page: int = 1,
                       per_page: int = 50) -> Dict[str, Any]:
        queryset = InventoryMovement.objects.select_related(
            "inventory", "inventory__sku"
        ).filter(inventory__organization_id=organization_id)

        if inventory_id:
            queryset = queryset.filter(inventory_id=inventory_id)
        if sku_id:
            queryset = queryset.filter(inventory__sku_id=sku_id)
        if location_id:
            queryset = queryset.filter(inventory__location_id=location_id)
        if movement_type:
            queryset = queryset.filter(movement_type=movement_type)
        if reference_type:
            queryset = queryset.filter(reference_type=reference_type)
        if reference_id:
            queryset = queryset.filter(reference_id=str(reference_id))

        movements, pagination = paginate_queryset(queryset, page, per_page)

        return success_response({
            "movements": [cls.serialize_movement(m) for m in movements],
            "pagination": pagination
        })
