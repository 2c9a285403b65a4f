import logging
from typing import Dict, Any

from django.db import transaction, IntegrityError
from django.db.models import Count, Sum

from stock.models import Location, InventoryRecord
from stock.services.base_service import (
    BaseService, success_response, ValidationError, ConflictError,
)

logger = logging.getLogger(__name__)


class StockLocationService(BaseService):
    model = Location
    not_found_code = "LOCATION_NOT_FOUND"

    @classmethod
    def serialize(cls, location: Location, include_stats: bool = False) -> Dict[str, Any]:
        data = {
            "id": location.id,
            "uuid": str(location.uuid),
            "organization_id": location.organization_id,
            "name": location.name,
            "type": location.type,
            "type_display": location.get_type_display(),
            "address": location.address,
            "is_active": location.is_active,
            "created_at": location.created_at.isoformat(),
        }

        if include_stats:
            stats = InventoryRecord.objects.filter(location=location).aggregate(
                total_items=Count("id"),
                total_quantity=Sum("quantity"),
                reserved_quantity=Sum("reserved_quantity"),
            )
            data["stats"] = {
                "item_count": stats["total_items"] or 0,
                "total_quantity": str(stats["total_quantity"] or 0),
                "reserved_quantity": str(stats["reserved_quantity"] or 0),
            }

        return data

    @classmethod
    def list(cls, organization_id: int,
             include_inactive: bool = False,
             type_filter: str = None,
             include_stats: bool = False) -> Dict[str, Any]:
        queryset = cls.scoped(organization_id)

        if not include_inactive:
            queryset = queryset.filter(is_active=True)

        if type_filter:
            queryset = queryset.filter(type=type_filter)

        return success_response({
            "locations": [cls.serialize(loc, include_stats=include_stats) for loc in queryset],
            "count": queryset.count(),
        })

    @classmethod
    def get(cls, organization_id: int, location_id: int) -> Dict[str, Any]:
        location = cls.get_or_404(location_id, organization_id)
        return success_response({"location": cls.serialize(location, include_stats=True)})

    @classmethod
    def get_active_or_404(cls, organization_id: int, location_id: int) -> Location:
        location = cls.get_or_404(location_id, organization_id)
        if not location.is_active:
            raise ValidationError(f"Location {location.name} is inactive", field="location_id")
        return location

    @classmethod
    def create(cls, organization_id: int, name: str,
               type: str = Location.LocationType.WAREHOUSE,
               address: str = "") -> Dict[str, Any]:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Location name is required", field="name")

        if type not in Location.LocationType.values:
            raise ValidationError(f"Invalid location type: {type}", field="type")

        if cls.scoped(organization_id).filter(name__iexact=name).exists():
            raise ConflictError(f"Location '{name}' already exists", field="name")

        try:
            with transaction.atomic():
                location = cls.model.objects.create(
                    organization_id=organization_id,
                    name=name,
                    type=type,
                    address=address or "",
                )
        except IntegrityError:
            raise ConflictError(f"Location '{name}' already exists", field="name")

        logger.info("Location created: %s (org=%s)", location.name, organization_id)
        return success_response({"location": cls.serialize(location)}, "Location created")

    @classmethod
    def deactivate(cls, organization_id: int, location_id: int) -> Dict[str, Any]:
        # locations are never deleted; inventory and movements keep pointing at them
        location = cls.get_or_404(location_id, organization_id)
        location.is_active = False
        location.save(update_fields=["is_active", "updated_at"])
        logger.info("Location deactivated: %s", location.id)
        return success_response({"location": cls.serialize(location)}, "Location deactivated")
