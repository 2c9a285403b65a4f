import logging
from typing import Dict, Any, List
from decimal import Decimal

from django.db import transaction

from production.models import BillOfMaterials, BomLine
from stock.models import Sku
from stock.services.base_service import (
    BaseService, success_response, paginate_queryset,
    ValidationError, ConflictError, NotFoundError, parse_decimal, round_decimal,
)
from stock.services.sku_service import SkuService

logger = logging.getLogger(__name__)


class BomService(BaseService):
    model = BillOfMaterials
    not_found_code = "BOM_NOT_FOUND"

    @classmethod
    def serialize(cls, bom: BillOfMaterials) -> Dict[str, Any]:
        return {
            "id": bom.id,
            "uuid": str(bom.uuid),
            "code": bom.code,
            "name": bom.name,
            "sku_id": bom.sku_id,
            "sku_code": bom.sku.code,
            "output_quantity": str(bom.output_quantity),
            "is_active": bom.is_active,
            "lines": [
                {
                    "id": line.id,
                    "sku_id": line.sku_id,
                    "sku_code": line.sku.code,
                    "sku_name": line.sku.name,
                    "quantity": str(line.quantity),
                }
                for line in bom.lines.select_related("sku")
            ],
            "created_at": bom.created_at.isoformat(),
        }

    @classmethod
    def list(cls, organization_id: int, sku_id: int = None,
             page: int = 1, per_page: int = 50) -> Dict[str, Any]:
        queryset = cls.scoped(organization_id).filter(is_active=True).select_related("sku")
        if sku_id:
            queryset = queryset.filter(sku_id=sku_id)

        boms, pagination = paginate_queryset(queryset, page, per_page)
        return success_response({
            "boms": [cls.serialize(b) for b in boms],
            "pagination": pagination
        })

    @classmethod
    def get(cls, organization_id: int, bom_id: int) -> Dict[str, Any]:
        return success_response({"bom": cls.serialize(cls.get_or_404(bom_id, organization_id))})

    @classmethod
    @transaction.atomic
    def create(cls, organization_id: int, code: str, name: str, sku_id: int,
               lines: List[Dict[str, Any]], output_quantity: Any = 1) -> Dict[str, Any]:
        code = (code or "").strip()
        if not code:
            raise ValidationError("code is required", field="code")
        if not lines:
            raise ValidationError("At least one line is required", field="lines")
        if cls.scoped(organization_id).filter(code=code).exists():
            raise ConflictError(f"BOM code '{code}' already exists", field="code")

        sku = SkuService.get_or_404(sku_id, organization_id)
        if sku.category != Sku.Category.FINISHED:
            raise ValidationError("A BOM must produce a finished good", field="sku_id")

        bom = cls.model.objects.create(
            organization_id=organization_id,
            code=code,
            name=(name or code).strip(),
            sku=sku,
            output_quantity=parse_decimal(output_quantity, "output_quantity", positive=True),
        )

        seen = set()
        for idx, line in enumerate(lines):
            line_sku = SkuService.get_or_404(line.get("sku_id"), organization_id)
            if line_sku.id == sku.id:
                raise ValidationError("A BOM cannot consume its own output", field=f"lines[{idx}].sku_id")
            if line_sku.id in seen:
                raise ConflictError(f"{line_sku.code} appears twice", field=f"lines[{idx}].sku_id")
            seen.add(line_sku.id)
            BomLine.objects.create(
                bom=bom,
                sku=line_sku,
                quantity=parse_decimal(line.get("quantity"), f"lines[{idx}].quantity", positive=True),
                sort_order=idx,
            )

        logger.info("BOM created: %s for %s (%d lines)", bom.code, sku.code, len(seen))
        return success_response({"bom": cls.serialize(bom)}, "BOM created")

    @classmethod
    def scaled_lines(cls, bom: BillOfMaterials, planned_quantity: Decimal) -> List[Dict[str, Any]]:
        """Ingredient requirements for ``planned_quantity`` units of the BOM's output."""
        factor = Decimal(planned_quantity) / bom.output_quantity
        return [
            {"sku_id": line.sku_id, "required_quantity": round_decimal(line.quantity * factor)}
            for line in bom.lines.all()
        ]

    @classmethod
    def get_for_org(cls, organization_id: int, bom_id: int) -> BillOfMaterials:
        bom = cls.get_by_id(bom_id, organization_id)
        if not bom or not bom.is_active:
            raise NotFoundError("BOM", bom_id, cls.not_found_code)
        return bom
