import logging
from typing import Dict, Any
from decimal import Decimal

from django.db import transaction

from production.models import BatchIngredient, ProductionBatch
from production.services.batch_service import ProductionBatchService
from stock.models import InventoryRecord
from stock.services.base_service import (
    BaseService, success_response, NotFoundError, ConflictError, ValidationError, parse_decimal,
)

logger = logging.getLogger(__name__)


class BatchIngredientService(BaseService):
    model = BatchIngredient
    not_found_code = "INGREDIENT_NOT_FOUND"

    @classmethod
    def serialize(cls, ingredient: BatchIngredient) -> Dict[str, Any]:
        return ProductionBatchService.serialize_ingredient(ingredient)

    @classmethod
    def _get_for_batch(cls, batch: ProductionBatch, ingredient_id: int) -> BatchIngredient:
        try:
            return batch.ingredients.select_related("sku").get(id=ingredient_id)
        except (BatchIngredient.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("Ingredient", ingredient_id, cls.not_found_code)

    @classmethod
    def list_for_batch(cls, organization_id: int, batch_number: str) -> Dict[str, Any]:
        batch = ProductionBatchService.get_by_number(organization_id, batch_number)
        ingredients = batch.ingredients.select_related("sku")
        return success_response({
            "batch_number": batch.batch_number,
            "ingredients": [cls.serialize(i) for i in ingredients],
            "count": ingredients.count(),
        })

    @classmethod
    @transaction.atomic
    def add(cls, organization_id: int, batch_number: str, sku_id: int,
            required_quantity: Any) -> Dict[str, Any]:
        batch = ProductionBatchService.get_by_number(organization_id, batch_number, lock=True)
        if batch.is_completed:
            raise ConflictError(f"Batch {batch.batch_number} is already completed",
                                code="BATCH_ALREADY_COMPLETED")

        ingredient = ProductionBatchService.add_ingredient_row(batch, sku_id, required_quantity)
        logger.info("Ingredient %s added to %s", ingredient.sku.code, batch.batch_number)
        return success_response({"ingredient": cls.serialize(ingredient)}, "Ingredient added")

    @classmethod
    @transaction.atomic
    def record_usage(cls, organization_id: int, batch_number: str, ingredient_id: int,
                     used_quantity: Any, notes: str = "") -> Dict[str, Any]:
        batch = ProductionBatchService.get_by_number(organization_id, batch_number, lock=True)
        if batch.lifecycle_state != ProductionBatch.LifecycleState.IN_PROGRESS:
            raise ConflictError(
                f"Cannot record usage for batch in {batch.lifecycle_state} state",
                code="INVALID_TRANSITION",
            )

        ingredient = cls._get_for_batch(batch, ingredient_id)
        used = parse_decimal(used_quantity, "used_quantity")
        if used < 0:
            raise ValidationError("used_quantity cannot be negative", field="used_quantity")

        ingredient.used_quantity = used
        fields = ["used_quantity"]
        if notes:
            ingredient.notes = notes
            fields.append("notes")
        ingredient.save(update_fields=fields)

        logger.info("Usage recorded on %s: %s used %s (required %s)",
                    batch.batch_number, ingredient.sku.code, used, ingredient.required_quantity)
        return success_response({"ingredient": cls.serialize(ingredient)}, "Usage recorded")

    @classmethod
    def check_availability(cls, organization_id: int, batch_number: str) -> Dict[str, Any]:
        """Compare each ingredient's consumption against on-hand stock at the batch's location."""
        batch = ProductionBatchService.get_by_number(organization_id, batch_number)

        records = dict(InventoryRecord.objects.filter(
            organization_id=batch.organization_id,
            location_id=batch.location_id,
            sku_id__in=batch.ingredients.values("sku_id"),
        ).values_list("sku_id", "quantity"))

        items = []
        all_available = True
        for ingredient in batch.ingredients.select_related("sku"):
            required = ingredient.consumption_quantity
            on_hand = records.get(ingredient.sku_id, Decimal("0"))
            shortage = max(Decimal("0"), required - on_hand)
            if shortage > 0:
                all_available = False
            items.append({
                "ingredient_id": ingredient.id,
                "sku_id": ingredient.sku_id,
                "sku_code": ingredient.sku.code,
                "required": str(required),
                "on_hand": str(on_hand),
                "shortage": str(shortage),
                "is_available": shortage == 0,
            })

        return success_response({
            "batch_number": batch.batch_number,
            "location_id": batch.location_id,
            "all_available": all_available,
            "ingredients": items,
        })
