import re
from typing import Dict, Any, Optional, List, Tuple
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from django.db.models import Model
from django.utils import timezone


class ServiceError(Exception):
    status_code = 500

    def __init__(self, message: str, code: str = "ERROR", details: Dict = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)


class ValidationError(ServiceError):
    status_code = 400

    def __init__(self, message: str, field: str = None, details: Dict = None,
                 code: str = "VALIDATION_ERROR"):
        details = dict(details or {})
        if field:
            details.setdefault("field", field)
        super().__init__(message, code, details)
        self.field = field


class UnauthorizedError(ServiceError):
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, "UNAUTHORIZED")


class ForbiddenError(ServiceError):
    status_code = 403

    def __init__(self, message: str = "Permission denied", permission: str = None):
        super().__init__(message, "FORBIDDEN", {"permission": permission} if permission else None)


class NotFoundError(ServiceError):
    status_code = 404

    def __init__(self, resource: str, identifier: Any, code: str = "NOT_FOUND"):
        super().__init__(
            f"{resource} not found: {identifier}",
            code,
            {"resource": resource, "identifier": str(identifier)}
        )


class ConflictError(ServiceError):
    status_code = 409

    def __init__(self, message: str, code: str = "CONFLICT", field: str = None, details: Dict = None):
        details = dict(details or {})
        if field:
            details.setdefault("field", field)
        super().__init__(message, code, details)
        self.field = field


class InsufficientStockError(ServiceError):
    status_code = 409

    def __init__(self, item_name: str, required: Decimal, available: Decimal):
        super().__init__(
            f"Insufficient stock for {item_name}: required {required}, available {available}",
            "INSUFFICIENT_STOCK",
            {"item": item_name, "required": str(required), "available": str(available)}
        )


def success_response(data: Any = None, message: str = "Success") -> Dict:
    response = {"success": True, "message": message}
    if data is not None:
        if isinstance(data, dict):
            response.update(data)
        else:
            response["data"] = data
    return response


def paginate_queryset(queryset, page: int = 1, per_page: int = 20) -> Tuple[List, Dict]:
    page = max(1, page)
    per_page = min(max(1, per_page), 100)

    total = queryset.count()
    total_pages = (total + per_page - 1) // per_page

    offset = (page - 1) * per_page
    items = list(queryset[offset:offset + per_page])

    return items, {
        "page": page,
        "per_page": per_page,
        "total_items": total,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1
    }


def to_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    if value is None or value == "":
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return default


def parse_decimal(value: Any, field: str, positive: bool = False,
                  allow_zero: bool = True) -> Decimal:
    """Strict variant of ``to_decimal`` for caller input: bad values raise."""
    if value is None or value == "":
        raise ValidationError(f"{field} is required", field=field)
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", field=field)
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{field} must be a number", field=field)
    if not result.is_finite():
        raise ValidationError(f"{field} must be a number", field=field)
    if positive and result <= 0:
        raise ValidationError(f"{field} must be greater than 0", field=field)
    if not allow_zero and result == 0:
        raise ValidationError(f"{field} must not be zero", field=field)
    return result


def parse_id(value: Any, field: str) -> int:
    """Primary keys from caller input; anything but a positive integer raises."""
    if value is None or value == "":
        raise ValidationError(f"{field} is required", field=field)
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer id", field=field)
    try:
        result = int(str(value))
    except (ValueError, TypeError):
        raise ValidationError(f"{field} must be an integer id", field=field)
    if result <= 0:
        raise ValidationError(f"{field} must be an integer id", field=field)
    return result


def round_decimal(value: Decimal, places: int = 4) -> Decimal:
    if value is None:
        return Decimal("0")
    quantize_str = "0." + "0" * places
    return value.quantize(Decimal(quantize_str), rounding=ROUND_HALF_UP)


def generate_number(prefix: str, model_class: Model, field: str) -> str:
    """
    Next ``PREFIX-YYYYMMDD-NNNN`` for today. Only values with an all-digit
    sequence count; the sequence grows past four digits when it has to.
    """
    today = timezone.now()
    date_part = today.strftime("%Y%m%d")
    stem = f"{prefix}-{date_part}-"
    pattern = r"^" + re.escape(stem) + r"[0-9]+$"
    existing = model_class.objects.filter(**{f"{field}__regex": pattern}).values_list(field, flat=True)

    seq = max((int(value[len(stem):]) for value in existing), default=0) + 1
    return f"{stem}{seq:04d}"


class BaseService:
    model = None
    not_found_code = "NOT_FOUND"

    @classmethod
    def scoped(cls, organization_id: int):
        return cls.model.objects.filter(organization_id=organization_id)

    @classmethod
    def get_by_id(cls, id: int, organization_id: int = None) -> Optional[Model]:
        queryset = cls.model.objects.all()
        if organization_id is not None:
            queryset = queryset.filter(organization_id=organization_id)
        try:
            return queryset.get(id=id)
        except (cls.model.DoesNotExist, ValueError, TypeError):
            return None

    @classmethod
    def get_or_404(cls, id: int, organization_id: int = None) -> Model:
        obj = cls.get_by_id(id, organization_id)
        if not obj:
            raise NotFoundError(cls.model.__name__, id, cls.not_found_code)
        return obj
