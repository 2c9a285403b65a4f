"""
Stock Services - inventory ledger business logic

Usage:
    from stock.services import InventoryLedgerService, SkuService

    # Create a SKU with seed stock
    result = SkuService.create(organization_id=1, code="FLOUR", name="Flour", category="raw",
                               locations=[{"location_id": 1, "current_stock": 100}])

    # Correct stock by a delta
    InventoryLedgerService.adjust(organization_id=1, sku_code="FLOUR", location_id=1, delta=-5)
"""

# Base utilities
from stock.services.base_service import (
    ServiceError,
    ValidationError,
    UnauthorizedError,
    ForbiddenError,
    NotFoundError,
    ConflictError,
    InsufficientStockError,
    success_response,
    paginate_queryset,
    to_decimal,
    parse_decimal,
    parse_id,
    round_decimal,
    generate_number,
    BaseService,
)

# Core entities
from .location_service import StockLocationService
from .sku_service import SkuService

# Stock operations
from .ledger_service import InventoryLedgerService

# Purchasing
from .purchase_service import PurchaseReceiptService


__all__ = [
    # Base
    "ServiceError",
    "ValidationError",
    "UnauthorizedError",
    "ForbiddenError",
    "NotFoundError",
    "ConflictError",
    "InsufficientStockError",
    "success_response",
    "paginate_queryset",
    "to_decimal",
    "parse_decimal",
    "parse_id",
    "round_decimal",
    "generate_number",
    "BaseService",

    # Core
    "StockLocationService",
    "SkuService",

    # Stock operations
    "InventoryLedgerService",

    # Purchasing
    "PurchaseReceiptService",
]
