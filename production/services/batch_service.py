import logging
from typing import Dict, Any, List
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
from django.db import transaction
from django.db.models import Q, Count
from django.utils import timezone
from django.utils.dateparse import parse_date

from production.models import ProductionBatch, BatchIngredient, QcCheck
from production.services.bom_service import BomService
from production.services.lot_service import InventoryLotService
from stock.models import Sku, InventoryMovement
from stock.services.base_service import (
    BaseService, success_response, paginate_queryset,
    ValidationError, NotFoundError, ConflictError,
    parse_decimal, generate_number,
)
from stock.services.ledger_service import InventoryLedgerService
from stock.services.location_service import StockLocationService
from stock.services.sku_service import SkuService

logger = logging.getLogger(__name__)

State = ProductionBatch.LifecycleState


class ProductionBatchService(BaseService):
    """
    Batch lifecycle: PLANNED -> IN_PROGRESS -> COMPLETED, with DELAYED
    reachable from PLANNED or IN_PROGRESS and left again by ``start``.
    COMPLETED is terminal. Completion moves stock: finished goods in,
    ingredients out, one lot appended, all in one transaction.
    """

    model = ProductionBatch
    not_found_code = "BATCH_NOT_FOUND"

    ACTIONS = ("start", "complete", "delay")

    ALLOWED_TRANSITIONS = {
        State.PLANNED: {State.IN_PROGRESS, State.DELAYED},
        State.IN_PROGRESS: {State.COMPLETED, State.DELAYED},
        State.DELAYED: {State.IN_PROGRESS},
        State.COMPLETED: set(),
    }

    @classmethod
    def serialize_ingredient(cls, ingredient: BatchIngredient) -> Dict[str, Any]:
        variance = ingredient.variance
        return {
            "id": ingredient.id,
            "sku_id": ingredient.sku_id,
            "sku_code": ingredient.sku.code,
            "sku_name": ingredient.sku.name,
            "unit": ingredient.sku.unit,
            "required_quantity": str(ingredient.required_quantity),
            "used_quantity": str(ingredient.used_quantity) if ingredient.used_quantity is not None else None,
            "variance": str(variance) if variance is not None else None,
            "consumed_quantity": (
                str(ingredient.consumed_quantity) if ingredient.consumed_quantity is not None else None
            ),
            "consumed_at": ingredient.consumed_at.isoformat() if ingredient.consumed_at else None,
        }

    @classmethod
    def serialize_qc_check(cls, check: QcCheck) -> Dict[str, Any]:
        return {
            "id": check.id,
            "uuid": str(check.uuid),
            "batch_id": check.batch_id,
            "batch_number": check.batch.batch_number,
            "check_type": check.check_type,
            "result": check.result,
            "notes": check.notes,
            "checked_by": check.checked_by,
            "member_id": check.member_id,
            "checked_at": check.checked_at.isoformat(),
        }

    @classmethod
    def serialize(cls, batch: ProductionBatch, include_details: bool = False) -> Dict[str, Any]:
        data = {
            "id": batch.id,
            "uuid": str(batch.uuid),
            "batch_number": batch.batch_number,
            "organization_id": batch.organization_id,
            "location_id": batch.location_id,
            "location_name": batch.location.name,
            "sku_id": batch.sku_id,
            "sku_code": batch.sku.code,
            "sku_name": batch.sku.name,
            "bom_id": batch.bom_id,
            "planned_quantity": str(batch.planned_quantity),
            "yield_quantity": str(batch.yield_quantity) if batch.yield_quantity is not None else None,
            "yield_actual": str(batch.yield_actual) if batch.yield_actual is not None else None,
            "lifecycle_state": batch.lifecycle_state,
            "qc_outcome": batch.qc_outcome,
            "status": batch.display_status,
            "planned_date": batch.planned_date.isoformat() if batch.planned_date else None,
            "started_at": batch.started_at.isoformat() if batch.started_at else None,
            "completed_at": batch.completed_at.isoformat() if batch.completed_at else None,
            "qc_checked_at": batch.qc_checked_at.isoformat() if batch.qc_checked_at else None,
            "notes": batch.notes,
            "created_by_id": batch.created_by_id,
            "created_at": batch.created_at.isoformat(),
        }

        if include_details:
            data["ingredients"] = [
                cls.serialize_ingredient(i) for i in batch.ingredients.select_related("sku")
            ]
            data["qc_checks"] = [
                cls.serialize_qc_check(c) for c in batch.qc_checks.select_related("batch")
            ]
            lot = InventoryLotService.model.objects.filter(batch=batch).select_related("sku", "batch").first()
            data["lot"] = InventoryLotService.serialize(lot) if lot else None

        return data

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @classmethod
    def get_by_number(cls, organization_id: int, batch_number: str,
                      lock: bool = False) -> ProductionBatch:
        queryset = cls.scoped(organization_id)
        if lock:
            queryset = queryset.select_for_update()
        batch = queryset.filter(batch_number=batch_number).first()
        if not batch:
            raise NotFoundError("Batch", batch_number, cls.not_found_code)
        return batch

    @classmethod
    def list(cls, organization_id: int,
             lifecycle_state: str = None,
             qc_outcome: str = None,
             location_id: int = None,
             sku_id: int = None,
             page: int = 1,
             per_page: int = 20) -> Dict[str, Any]:
        queryset = cls.scoped(organization_id).select_related("sku", "location")

        if lifecycle_state:
            queryset = queryset.filter(lifecycle_state=lifecycle_state.upper())
        if qc_outcome:
            queryset = queryset.filter(qc_outcome=qc_outcome.upper())
        if location_id:
            queryset = queryset.filter(location_id=location_id)
        if sku_id:
            queryset = queryset.filter(sku_id=sku_id)

        batches, pagination = paginate_queryset(queryset, page, per_page)
        return success_response({
            "batches": [cls.serialize(b) for b in batches],
            "pagination": pagination
        })

    @classmethod
    def stats(cls, organization_id: int, location_id: int = None) -> Dict[str, Any]:
        """
        Dashboard counters. A PLANNED or IN_PROGRESS batch whose planned date
        is before today counts as delayed alongside DELAYED ones.
        """
        queryset = cls.scoped(organization_id)
        if location_id:
            queryset = queryset.filter(location_id=location_id)

        today = timezone.localdate()
        overdue = Q(lifecycle_state__in=[State.PLANNED, State.IN_PROGRESS], planned_date__lt=today)
        tracked = Q(lifecycle_state__in=[State.COMPLETED, State.DELAYED, State.IN_PROGRESS])

        counts = queryset.aggregate(
            active=Count("id", filter=Q(lifecycle_state=State.IN_PROGRESS)),
            planned=Count("id", filter=Q(lifecycle_state=State.PLANNED)),
            completed_today=Count("id", filter=Q(lifecycle_state=State.COMPLETED, completed_at__date=today)),
            delayed=Count("id", filter=Q(lifecycle_state=State.DELAYED) | overdue),
            tracked=Count("id", filter=tracked),
            late=Count("id", filter=tracked & (Q(lifecycle_state=State.DELAYED) | overdue)),
        )

        rate = 100
        if counts["tracked"]:
            on_time = Decimal(counts["tracked"] - counts["late"]) * 100 / counts["tracked"]
            rate = int(on_time.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

        return success_response({
            "stats": {
                "active_batches": counts["active"],
                "planned_batches": counts["planned"],
                "completed_today": counts["completed_today"],
                "delayed_batches": counts["delayed"],
                "production_rate": rate,
            }
        })

    @classmethod
    def get(cls, organization_id: int, batch_number: str) -> Dict[str, Any]:
        batch = cls.get_by_number(organization_id, batch_number)
        return success_response({"batch": cls.serialize(batch, include_details=True)})

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    @classmethod
    @transaction.atomic
    def create(cls, organization_id: int, location_id: int,
               planned_quantity: Any,
               sku_id: int = None,
               bom_id: int = None,
               ingredients: List[Dict[str, Any]] = None,
               yield_quantity: Any = None,
               planned_date: str = None,
               notes: str = "",
               member_id: int = None) -> Dict[str, Any]:
        """
        Plan a batch. The finished good comes from ``sku_id`` or, failing
        that, from the BOM. Ingredients are taken from ``ingredients`` when
        given, otherwise scaled from the BOM to ``planned_quantity``.
        """
        planned_quantity = parse_decimal(planned_quantity, "planned_quantity", positive=True)
        location = StockLocationService.get_active_or_404(organization_id, location_id)

        bom = BomService.get_for_org(organization_id, bom_id) if bom_id else None
        if sku_id in (None, "") and bom is None:
            raise ValidationError("sku_id or bom_id is required", field="sku_id")

        sku = SkuService.get_or_404(sku_id, organization_id) if sku_id not in (None, "") else bom.sku
        if sku.category != Sku.Category.FINISHED:
            raise ValidationError(f"{sku.code} is not a finished good", field="sku_id")
        if bom and bom.sku_id != sku.id:
            raise ValidationError(f"BOM {bom.code} does not produce {sku.code}", field="bom_id")

        parsed_date = None
        if planned_date:
            parsed_date = parse_date(str(planned_date)[:10])
            if parsed_date is None:
                raise ValidationError("planned_date must be YYYY-MM-DD", field="planned_date")

        batch = cls.model.objects.create(
            organization_id=organization_id,
            batch_number=generate_number(settings.BATCH_NUMBER_PREFIX, ProductionBatch, "batch_number"),
            location=location,
            sku=sku,
            bom=bom,
            planned_quantity=planned_quantity,
            yield_quantity=(
                parse_decimal(yield_quantity, "yield_quantity", positive=True)
                if yield_quantity not in (None, "") else None
            ),
            planned_date=parsed_date,
            notes=notes or "",
            created_by_id=member_id,
        )

        if ingredients is None and bom is not None:
            ingredients = BomService.scaled_lines(bom, planned_quantity)

        for idx, item in enumerate(ingredients or []):
            cls.add_ingredient_row(batch, item.get("sku_id"), item.get("required_quantity"),
                                   field=f"ingredients[{idx}]")

        logger.info("Batch planned: %s %s x %s at %s", batch.batch_number, sku.code,
                    planned_quantity, location.name)
        return success_response({"batch": cls.serialize(batch, include_details=True)}, "Batch created")

    @classmethod
    def add_ingredient_row(cls, batch: ProductionBatch, sku_id: Any, required_quantity: Any,
                           field: str = "sku_id") -> BatchIngredient:
        sku = SkuService.get_or_404(sku_id, batch.organization_id)
        if sku.id == batch.sku_id:
            raise ValidationError("A batch cannot consume its own output", field=field)
        if batch.ingredients.filter(sku=sku).exists():
            raise ConflictError(f"{sku.code} is already an ingredient of {batch.batch_number}", field=field)
        return BatchIngredient.objects.create(
            batch=batch,
            sku=sku,
            required_quantity=parse_decimal(required_quantity, f"{field}.required_quantity", positive=True),
        )

    @classmethod
    @transaction.atomic
    def update_plan(cls, organization_id: int, batch_number: str,
                    yield_quantity: Any = None,
                    planned_date: str = None,
                    notes: str = None) -> Dict[str, Any]:
        batch = cls.get_by_number(organization_id, batch_number, lock=True)
        if batch.is_completed:
            raise ConflictError(f"Batch {batch.batch_number} is already completed",
                                code="BATCH_ALREADY_COMPLETED")

        fields = []
        if yield_quantity not in (None, ""):
            batch.yield_quantity = parse_decimal(yield_quantity, "yield_quantity", positive=True)
            fields.append("yield_quantity")
        if planned_date:
            parsed = parse_date(str(planned_date)[:10])
            if parsed is None:
                raise ValidationError("planned_date must be YYYY-MM-DD", field="planned_date")
            batch.planned_date = parsed
            fields.append("planned_date")
        if notes is not None:
            batch.notes = notes
            fields.append("notes")

        if fields:
            batch.save(update_fields=fields + ["updated_at"])

        return success_response({"batch": cls.serialize(batch)}, "Batch updated")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @classmethod
    def _guard(cls, batch: ProductionBatch, target: str):
        if batch.lifecycle_state == State.COMPLETED:
            raise ConflictError(
                f"Batch {batch.batch_number} is already completed",
                code="BATCH_ALREADY_COMPLETED",
                details={"from": batch.lifecycle_state, "to": target},
            )
        if target not in cls.ALLOWED_TRANSITIONS[batch.lifecycle_state]:
            raise ConflictError(
                f"Cannot move batch {batch.batch_number} from {batch.lifecycle_state} to {target}",
                code="INVALID_TRANSITION",
                details={"from": batch.lifecycle_state, "to": target},
            )

    @classmethod
    def transition(cls, organization_id: int, batch_number: str, action: str,
                   yield_actual: Any = None,
                   reason: str = "",
                   member_id: int = None) -> Dict[str, Any]:
        action = (action or "").strip().lower()
        if action not in cls.ACTIONS:
            raise ValidationError(
                f"Invalid action: {action or '(empty)'}. Use one of: {', '.join(cls.ACTIONS)}",
                field="action",
                code="INVALID_ACTION",
            )

        if action == "start":
            batch = cls.start(organization_id, batch_number)
        elif action == "delay":
            batch = cls.delay(organization_id, batch_number, reason=reason)
        else:
            batch = cls.complete(organization_id, batch_number, yield_actual=yield_actual, member_id=member_id)

        return success_response({
            "batch_id": batch.id,
            "batch_number": batch.batch_number,
            "status": batch.lifecycle_state,
            "batch": cls.serialize(batch),
        }, f"Batch {action} applied")

    @classmethod
    @transaction.atomic
    def start(cls, organization_id: int, batch_number: str) -> ProductionBatch:
        batch = cls.get_by_number(organization_id, batch_number, lock=True)
        cls._guard(batch, State.IN_PROGRESS)

        resumed = batch.lifecycle_state == State.DELAYED
        batch.lifecycle_state = State.IN_PROGRESS
        if not batch.started_at:
            batch.started_at = timezone.now()
        batch.save(update_fields=["lifecycle_state", "started_at", "updated_at"])

        logger.info("Batch %s %s", batch.batch_number, "resumed" if resumed else "started")
        return batch

    @classmethod
    @transaction.atomic
    def delay(cls, organization_id: int, batch_number: str, reason: str = "") -> ProductionBatch:
        batch = cls.get_by_number(organization_id, batch_number, lock=True)
        cls._guard(batch, State.DELAYED)

        batch.lifecycle_state = State.DELAYED
        batch.delayed_at = timezone.now()
        fields = ["lifecycle_state", "delayed_at", "updated_at"]
        if reason:
            batch.notes = f"{batch.notes}\nDelayed: {reason}".strip()
            fields.append("notes")
        batch.save(update_fields=fields)

        logger.info("Batch %s delayed", batch.batch_number)
        return batch

    @classmethod
    def resolve_yield(cls, batch: ProductionBatch, yield_actual: Any = None) -> Decimal:
        if yield_actual not in (None, ""):
            return parse_decimal(yield_actual, "yield_actual", positive=True)
        for value in (batch.yield_quantity, batch.yield_actual):
            if value is not None:
                if value <= 0:
                    raise ValidationError("Recorded yield must be greater than 0",
                                          field="yield_actual", code="YIELD_NOT_RECORDED")
                return value
        raise ValidationError(
            f"No yield recorded for batch {batch.batch_number}",
            field="yield_actual",
            code="YIELD_NOT_RECORDED",
        )

    @classmethod
    @transaction.atomic
    def complete(cls, organization_id: int, batch_number: str,
                 yield_actual: Any = None,
                 member_id: int = None) -> ProductionBatch:
        """
        Finish a batch. Under a lock on the batch row: stock the finished
        good at the batch's location, consume every ingredient there, append
        the lot and mark the batch COMPLETED. Any failure, including an
        ingredient short on stock, rolls the whole completion back.
        """
        batch = cls.get_by_number(organization_id, batch_number, lock=True)
        cls._guard(batch, State.COMPLETED)

        quantity = cls.resolve_yield(batch, yield_actual)
        now = timezone.now()

        InventoryLedgerService.increment(
            organization_id=batch.organization_id,
            location_id=batch.location_id,
            sku_id=batch.sku_id,
            quantity=quantity,
            movement_type=InventoryMovement.MovementType.PRODUCTION_IN,
            reference_type="production_batch",
            reference_id=batch.batch_number,
            member_id=member_id,
        )

        for ingredient in batch.ingredients.select_related("sku"):
            consume = ingredient.consumption_quantity
            if consume > 0:
                InventoryLedgerService.decrement(
                    organization_id=batch.organization_id,
                    location_id=batch.location_id,
                    sku_id=ingredient.sku_id,
                    quantity=consume,
                    movement_type=InventoryMovement.MovementType.PRODUCTION_OUT,
                    reference_type="production_batch",
                    reference_id=batch.batch_number,
                    member_id=member_id,
                )
            ingredient.consumed_quantity = consume
            ingredient.consumed_at = now
            ingredient.save(update_fields=["consumed_quantity", "consumed_at"])

        InventoryLotService.record_for_batch(batch, quantity)

        batch.lifecycle_state = State.COMPLETED
        batch.completed_at = now
        batch.yield_actual = quantity
        batch.save(update_fields=["lifecycle_state", "completed_at", "yield_actual", "updated_at"])

        logger.info("Batch %s completed: %s x %s at location %s",
                    batch.batch_number, batch.sku_id, quantity, batch.location_id)
        return batch

