"""
Production Services - batch lifecycle, ingredients, QC and lot traceability

Usage:
    from production.services import ProductionBatchService, QcCheckService

    result = ProductionBatchService.create(organization_id=1, location_id=2, sku_id=5,
                                           planned_quantity=50, bom_id=3)
    ProductionBatchService.transition(1, result["batch"]["batch_number"], "start")
"""

from .bom_service import BomService
from .lot_service import InventoryLotService
from .batch_service import ProductionBatchService
from .ingredient_service import BatchIngredientService
from .qc_service import QcCheckService
from .trace_service import TraceabilityService


__all__ = [
    "BomService",
    "InventoryLotService",
    "ProductionBatchService",
    "BatchIngredientService",
    "QcCheckService",
    "TraceabilityService",
]
