import logging
from typing import Dict, Any
from decimal import Decimal

from django.db import transaction, IntegrityError
from django.utils import timezone

from production.models import InventoryLot, ProductionBatch
from stock.services.base_service import (
    BaseService, success_response, paginate_queryset, ConflictError, NotFoundError,
)

logger = logging.getLogger(__name__)


class InventoryLotService(BaseService):
    model = InventoryLot
    not_found_code = "LOT_NOT_FOUND"

    @classmethod
    def serialize(cls, lot: InventoryLot) -> Dict[str, Any]:
        return {
            "id": lot.id,
            "uuid": str(lot.uuid),
            "lot_number": lot.lot_number,
            "sku_id": lot.sku_id,
            "sku_code": lot.sku.code,
            "sku_name": lot.sku.name,
            "batch_id": lot.batch_id,
            "batch_number": lot.batch.batch_number,
            "location_id": lot.location_id,
            "quantity": str(lot.quantity),
            "manufacture_date": lot.manufacture_date.isoformat(),
        }

    @classmethod
    def record_for_batch(cls, batch: ProductionBatch, quantity: Decimal) -> InventoryLot:
        """Append the single lot produced by ``batch``. A second lot is a conflict."""
        try:
            with transaction.atomic():
                lot = cls.model.objects.create(
                    organization_id=batch.organization_id,
                    sku_id=batch.sku_id,
                    batch=batch,
                    location_id=batch.location_id,
                    lot_number=batch.batch_number,
                    quantity=quantity,
                    manufacture_date=timezone.now(),
                )
        except IntegrityError:
            raise ConflictError(
                f"A lot already exists for batch {batch.batch_number}",
                code="LOT_ALREADY_EXISTS",
            )

        logger.info("Lot %s recorded: %s x %s", lot.lot_number, batch.sku_id, quantity)
        return lot

    @classmethod
    def list(cls, organization_id: int,
             sku_id: int = None,
             location_id: int = None,
             page: int = 1,
             per_page: int = 50) -> Dict[str, Any]:
        queryset = cls.scoped(organization_id).select_related("sku", "batch")
        if sku_id:
            queryset = queryset.filter(sku_id=sku_id)
        if location_id:
            queryset = queryset.filter(location_id=location_id)

        lots, pagination = paginate_queryset(queryset, page, per_page)
        return success_response({
            "lots": [cls.serialize(lot) for lot in lots],
            "pagination": pagination
        })

    @classmethod
    def get_by_number(cls, organization_id: int, lot_number: str) -> InventoryLot:
        lot = cls.scoped(organization_id).select_related("sku", "batch").filter(lot_number=lot_number).first()
        if not lot:
            raise NotFoundError("Lot", lot_number, cls.not_found_code)
        return lot
