import logging
from typing import Dict, Any, List

from django.db import transaction, IntegrityError
from django.db.models import Q, Sum

from stock.models import Sku
from stock.services.base_service import (
    BaseService, success_response, paginate_queryset,
    ValidationError, ConflictError, NotFoundError, to_decimal,
)
from stock.services.ledger_service import InventoryLedgerService

logger = logging.getLogger(__name__)


def normalize_category(value) -> str:
    # 'raw' in any case maps to RAW, anything else is a finished good
    if value and str(value).strip().upper() == Sku.Category.RAW:
        return Sku.Category.RAW
    return Sku.Category.FINISHED


class SkuService(BaseService):
    model = Sku
    not_found_code = "SKU_NOT_FOUND"

    UPDATABLE_FIELDS = ["name", "description", "unit", "base_price", "cost_price", "category", "is_active"]

    @classmethod
    def serialize(cls, sku: Sku, include_levels: bool = False) -> Dict[str, Any]:
        data = {
            "id": sku.id,
            "uuid": str(sku.uuid),
            "organization_id": sku.organization_id,
            "code": sku.code,
            "name": sku.name,
            "description": sku.description,
            "category": sku.category,
            "category_display": sku.get_category_display(),
            "unit": sku.unit,
            "base_price": str(sku.base_price),
            "cost_price": str(sku.cost_price),
            "is_active": sku.is_active,
            "created_at": sku.created_at.isoformat(),
        }

        if include_levels:
            records = sku.inventory_records.select_related("location", "sku").order_by("location__name")
            data["levels"] = [InventoryLedgerService.serialize(r) for r in records]
            totals = records.aggregate(total=Sum("quantity"), available=Sum("available_quantity"))
            data["total_quantity"] = str(totals["total"] or 0)
            data["total_available"] = str(totals["available"] or 0)

        return data

    @classmethod
    def list(cls, organization_id: int,
             search: str = None,
             category: str = None,
             include_inactive: bool = False,
             page: int = 1,
             per_page: int = 50) -> Dict[str, Any]:
        queryset = cls.scoped(organization_id)

        if not include_inactive:
            queryset = queryset.filter(is_active=True)

        if category:
            queryset = queryset.filter(category=normalize_category(category))

        if search:
            queryset = queryset.filter(Q(code__icontains=search) | Q(name__icontains=search))

        skus, pagination = paginate_queryset(queryset.order_by("name"), page, per_page)

        return success_response({
            "skus": [cls.serialize(s) for s in skus],
            "pagination": pagination
        })

    @classmethod
    def get(cls, organization_id: int, sku_id: int) -> Dict[str, Any]:
        sku = cls.get_or_404(sku_id, organization_id)
        return success_response({"sku": cls.serialize(sku, include_levels=True)})

    @classmethod
    def get_by_code(cls, organization_id: int, code: str) -> Sku:
        sku = cls.scoped(organization_id).filter(code=code).first()
        if not sku:
            raise NotFoundError("SKU", code, "SKU_NOT_FOUND")
        return sku

    @classmethod
    def create(cls, organization_id: int, code: str, name: str,
               unit: str = None,
               base_price: Any = 0,
               cost_price: Any = 0,
               category: str = None,
               description: str = "",
               locations: List[Dict[str, Any]] = None,
               member_id: int = None) -> Dict[str, Any]:
        """
        Create a SKU and seed its per-location stock.

        ``locations`` entries carry ``location_id``, ``current_stock``,
        ``reorder_point`` and ``reorder_quantity``. The SKU and every seed
        record are written in one transaction: a duplicate code or an unknown
        location leaves nothing behind.
        """
        code = (code or "").strip()
        name = (name or "").strip()
        if not code:
            raise ValidationError("code is required", field="code")
        if not name:
            raise ValidationError("name is required", field="name")

        base_price = to_decimal(base_price)
        cost_price = to_decimal(cost_price)
        if base_price < 0 or cost_price < 0:
            raise ValidationError("Prices cannot be negative", field="base_price")

        if cls.scoped(organization_id).filter(code=code).exists():
            raise ConflictError(f"SKU code '{code}' already exists", field="code")

        try:
            with transaction.atomic():
                sku = cls.model.objects.create(
                    organization_id=organization_id,
                    code=code,
                    name=name,
                    description=description or "",
                    category=normalize_category(category),
                    unit=(unit or "units").strip() or "units",
                    base_price=base_price,
                    cost_price=cost_price,
                )

                seeded = []
                for entry in locations or []:
                    location_id = entry.get("location_id")
                    if location_id in (None, ""):
                        raise ValidationError("location_id is required for each location", field="locations")
                    record = InventoryLedgerService.upsert_initial(
                        organization_id=organization_id,
                        location_id=location_id,
                        sku_id=sku.id,
                        initial_quantity=entry.get("current_stock", 0),
                        reorder_level=entry.get("reorder_point", 0),
                        reorder_quantity=entry.get("reorder_quantity", 0),
                        member_id=member_id,
                    )
                    seeded.append(record.id)
        except IntegrityError:
            raise ConflictError(f"SKU code '{code}' already exists", field="code")

        logger.info("SKU created: %s (org=%s, seeded %d locations)", sku.code, organization_id, len(seeded))
        return success_response({
            "sku": cls.serialize(sku, include_levels=True),
            "inventory_ids": seeded,
        }, "SKU created")

    @classmethod
    @transaction.atomic
    def update(cls, organization_id: int, sku_id: int, **kwargs) -> Dict[str, Any]:
        sku = cls.get_or_404(sku_id, organization_id)

        if "code" in kwargs and kwargs["code"] != sku.code:
            raise ValidationError("SKU code cannot be changed", field="code")

        changed = []
        for field in cls.UPDATABLE_FIELDS:
            if field not in kwargs:
                continue
            value = kwargs[field]
            if field == "category":
                value = normalize_category(value)
            elif field in ("base_price", "cost_price"):
                value = to_decimal(value)
                if value < 0:
                    raise ValidationError("Prices cannot be negative", field=field)
            elif field == "name" and not (value or "").strip():
                raise ValidationError("name is required", field="name")
            setattr(sku, field, value)
            changed.append(field)

        if changed:
            sku.save(update_fields=changed + ["updated_at"])
            logger.info("SKU updated: %s fields=%s", sku.code, changed)

        return success_response({"sku": cls.serialize(sku)}, "SKU updated")

    @classmethod
    def find_or_create_by_name(cls, organization_id: int, name: str, code: str) -> Sku:
        """Resolve a purchased item by name, creating a raw-material SKU if unknown."""
        sku = cls.scoped(organization_id).filter(name__iexact=name.strip()).first()
        if sku:
            return sku
        sku = cls.model.objects.create(
            organization_id=organization_id,
            code=code,
            name=name.strip(),
            category=Sku.Category.RAW,
        )
        logger.info("SKU auto-created from purchase: %s (%s)", sku.code, sku.name)
        return sku

