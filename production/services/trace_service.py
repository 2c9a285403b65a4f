from typing import Dict, Any

from stock.models import InventoryMovement
from stock.services.base_service import success_response
from stock.services.ledger_service import InventoryLedgerService
from production.services.batch_service import ProductionBatchService
from production.services.lot_service import InventoryLotService


class TraceabilityService:
    """Walk a lot back to its batch, consumed ingredients, QC history and stock movements."""

    @classmethod
    def trace(cls, organization_id: int, lot_number: str) -> Dict[str, Any]:
        lot = InventoryLotService.get_by_number(organization_id, lot_number)
        batch = lot.batch

        movements = InventoryMovement.objects.select_related("inventory", "inventory__sku").filter(
            inventory__organization_id=organization_id,
            reference_type="production_batch",
            reference_id=batch.batch_number,
        ).order_by("id")

        return success_response({
            "lot": InventoryLotService.serialize(lot),
            "batch": ProductionBatchService.serialize(batch, include_details=True),
            "movements": [InventoryLedgerService.serialize_movement(m) for m in movements],
        })
