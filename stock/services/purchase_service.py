import logging
from typing import Dict, Any, List

from django.conf import settings
from django.db import transaction

from stock.models import PurchaseReceipt, PurchaseReceiptItem, Sku, InventoryMovement
from stock.services.base_service import (
    BaseService, success_response, paginate_queryset,
    ValidationError, NotFoundError, parse_decimal, to_decimal, generate_number,
)
from stock.services.ledger_service import InventoryLedgerService
from stock.services.location_service import StockLocationService
from stock.services.sku_service import SkuService

logger = logging.getLogger(__name__)


class PurchaseReceiptService(BaseService):
    model = PurchaseReceipt
    not_found_code = "RECEIPT_NOT_FOUND"

    @classmethod
    def serialize(cls, receipt: PurchaseReceipt) -> Dict[str, Any]:
        items = receipt.items.select_related("sku").all()
        return {
            "id": receipt.id,
            "uuid": str(receipt.uuid),
            "receipt_number": receipt.receipt_number,
            "organization_id": receipt.organization_id,
            "location_id": receipt.location_id,
            "received_by_id": receipt.received_by_id,
            "supplier_name": receipt.supplier_name,
            "notes": receipt.notes,
            "items": [
                {
                    "id": item.id,
                    "sku_id": item.sku_id,
                    "sku_code": item.sku.code,
                    "sku_name": item.sku.name,
                    "inventory_id": item.inventory_id,
                    "quantity": str(item.quantity),
                    "unit_price": str(item.unit_price),
                }
                for item in items
            ],
            "total_cost": str(receipt.total_cost),
            "created_at": receipt.created_at.isoformat(),
        }

    @classmethod
    def _resolve_sku(cls, organization_id: int, item: Dict[str, Any]) -> Sku:
        sku_id = item.get("sku_id")
        if sku_id not in (None, ""):
            return SkuService.get_or_404(sku_id, organization_id)

        sku_name = (item.get("sku_name") or "").strip()
        if not sku_name:
            raise ValidationError("Each item needs sku_id or sku_name", field="items")

        code = generate_number(settings.GENERATED_SKU_PREFIX, Sku, "code")
        return SkuService.find_or_create_by_name(organization_id, sku_name, code)

    @classmethod
    @transaction.atomic
    def record(cls, organization_id: int, location_id: int,
               items: List[Dict[str, Any]],
               member_id: int = None,
               supplier_name: str = "",
               notes: str = "") -> Dict[str, Any]:
        """
        Receive purchased stock into one location.

        Each item is ``{sku_id | sku_name, quantity, unit_price}``. Unknown
        names become new raw-material SKUs. The receipt and all of its ledger
        increments commit together. Retrying a call records a second receipt.
        """
        if location_id in (None, ""):
            raise ValidationError("location_id is required", field="location_id")
        if not items:
            raise ValidationError("At least one item is required", field="items")

        location = StockLocationService.get_active_or_404(organization_id, location_id)

        receipt = cls.model.objects.create(
            organization_id=organization_id,
            location=location,
            receipt_number=generate_number(settings.RECEIPT_NUMBER_PREFIX, PurchaseReceipt, "receipt_number"),
            received_by_id=member_id,
            supplier_name=supplier_name or "",
            notes=notes or "",
        )

        created = []
        for idx, item in enumerate(items):
            quantity = parse_decimal(item.get("quantity"), f"items[{idx}].quantity", positive=True)
            unit_price = to_decimal(item.get("unit_price"))
            if unit_price < 0:
                raise ValidationError("unit_price cannot be negative", field=f"items[{idx}].unit_price")

            sku = cls._resolve_sku(organization_id, item)
            record = InventoryLedgerService.increment(
                organization_id=organization_id,
                location_id=location.id,
                sku_id=sku.id,
                quantity=quantity,
                movement_type=InventoryMovement.MovementType.PURCHASE_IN,
                reference_type="purchase_receipt",
                reference_id=receipt.receipt_number,
                member_id=member_id,
            )
            PurchaseReceiptItem.objects.create(
                receipt=receipt,
                sku=sku,
                inventory=record,
                quantity=quantity,
                unit_price=unit_price,
            )
            created.append({"sku_id": sku.id, "inventory_id": record.id})

        logger.info("Purchase receipt %s recorded: %d items at location %s",
                    receipt.receipt_number, len(created), location.id)

        return success_response({
            "receipt_id": receipt.id,
            "receipt_number": receipt.receipt_number,
            "created": created,
        }, "Purchase recorded")

    @classmethod
    def list(cls, organization_id: int, location_id: int = None,
             page: int = 1, per_page: int = 20) -> Dict[str, Any]:
        queryset = cls.scoped(organization_id).prefetch_related("items")
        if location_id:
            queryset = queryset.filter(location_id=location_id)

        receipts, pagination = paginate_queryset(queryset, page, per_page)
        return success_response({
            "receipts": [cls.serialize(r) for r in receipts],
            "pagination": pagination
        })

    @classmethod
    def get(cls, organization_id: int, receipt_number: str) -> Dict[str, Any]:
        receipt = cls.scoped(organization_id).filter(receipt_number=receipt_number).first()
        if not receipt:
            raise NotFoundError("Purchase receipt", receipt_number, cls.not_found_code)
        return success_response({"receipt": cls.serialize(receipt)})
