from django.views.decorators.csrf import csrf_exempt
from rest_framework.decorators import api_view

from accounts.decorators import require_permission
from accounts.helpers.request import parse_json_body, query_int, query_bool
from accounts.helpers.response import APIResponse, handle_service_error
from stock.services import (
    StockLocationService, SkuService, InventoryLedgerService, PurchaseReceiptService,
)


def _member_org(request):
    return request.member.organization_id


# ==================== LOCATIONS ====================

@csrf_exempt
@api_view(["GET", "POST"])
@require_permission({"GET": "inventory.view", "POST": "catalog.manage"}, "location")
def location_list(request):
    if request.method == "POST":
        return _create_location(request)
    try:
        result = StockLocationService.list(
            organization_id=_member_org(request),
            include_inactive=query_bool(request, "include_inactive"),
            type_filter=request.GET.get("type"),
            include_stats=query_bool(request, "stats"),
        )
        return APIResponse.success(data=result)
    except Exception as e:
        return handle_service_error(e)


def _create_location(request):
    data, error = parse_json_body(request)
    if error:
        return error
    try:
        result = StockLocationService.create(
            organization_id=_member_org(request),
            name=data.get("name"),
            type=data.get("type", "WAREHOUSE"),
            address=data.get("address", ""),
        )
        response = APIResponse.created(data=result, message=result["message"])
        response.audit_resource_id = result["location"]["id"]
        return response
    except Exception as e:
        return handle_service_error(e)


@csrf_exempt
@api_view(["GET"])
@require_permission("inventory.view", "location")
def location_detail(request, location_id):
    try:
        result = StockLocationService.get(_member_org(request), location_id)
        return APIResponse.success(data=result)
    except Exception as e:
        return handle_service_error(e)


# ==================== SKUS ====================

@csrf_exempt
@api_view(["GET", "POST"])
@require_permission({"GET": "inventory.view", "POST": "catalog.manage"}, "sku")
def sku_list(request):
    if request.method == "POST":
        return _create_sku(request)
    try:
        result = SkuService.list(
            organization_id=_member_org(request),
            search=request.GET.get("search"),
            category=request.GET.get("category"),
            include_inactive=query_bool(request, "include_inactive"),
            page=query_int(request, "page", 1),
            per_page=query_int(request, "per_page", 50),
        )
        return APIResponse.success(data=result)
    except Exception as e:
        return handle_service_error(e)


def _create_sku(request):
    data, error = parse_json_body(request)
    if error:
        return error

    locations = data.get("locations") or []
    if not isinstance(locations, list):
        return APIResponse.error("locations must be a list", "VALIDATION_ERROR", 400, {"field": "locations"})

    try:
        result = SkuService.create(
            organization_id=_member_org(request),
            code=data.get("code"),
            name=data.get("name"),
            unit=data.get("unit"),
            base_price=data.get("base_price", data.get("basePrice", 0)),
            cost_price=data.get("cost_price", data.get("costPrice", 0)),
            category=data.get("category"),
            description=data.get("description", ""),
            locations=[
                {
                    "location_id": loc.get("location_id", loc.get("locationId")),
                    "current_stock": loc.get("current_stock", loc.get("currentStock", 0)),
                    "reorder_point": loc.get("reorder_point", loc.get("reorderPoint", 0)),
                    "reorder_quantity": loc.get("reorder_quantity", loc.get("reorderQuantity", 0)),
                }
                for loc in locations if isinstance(loc, dict)
            ],
            member_id=request.member.id,
        )
        response = APIResponse.created(data=result, message=result["message"])
        response.audit_resource_id = result["sku"]["code"]
        return response
    except Exception as e:
        return handle_service_error(e)


@csrf_exempt
@api_view(["GET", "PATCH"])
@require_permission({"GET": "inventory.view", "PATCH": "catalog.manage"}, "sku")
def sku_detail(request, sku_id):
    if request.method == "PATCH":
        return _update_sku(request, sku_id)
    try:
        result = SkuService.get(_member_org(request), sku_id)
        return APIResponse.success(data=result)
    except Exception as e:
        return handle_service_error(e)


def _update_sku(request, sku_id):
    data, error = parse_json_body(request)
    if error:
        return error
    aliases = {"basePrice": "base_price", "costPrice": "cost_price", "isActive": "is_active"}
    changes = {}
    for key, value in data.items():
        field = aliases.get(key, key)
        if field in SkuService.UPDATABLE_FIELDS or field == "code":
            changes[field] = value

    try:
        result = SkuService.update(_member_org(request), sku_id, **changes)
        return APIResponse.success(data=result)
    except Exception as e:
        return handle_service_error(e)


# ==================== LEDGER ====================

@csrf_exempt
@api_view(["GET"])
@require_permission("inventory.view", "inventory")
def level_list(request):
    try:
        result = InventoryLedgerService.get_levels(
            organization_id=_member_org(request),
            location_id=query_int(request, "location_id"),
            sku_id=query_int(request, "sku_id"),
            category=request.GET.get("category"),
            low_stock_only=query_bool(request, "low_stock"),
            page=query_int(request, "page", 1),
            per_page=query_int(request, "per_page", 50),
        )
        return APIResponse.success(data=result)
    except Exception as e:
        return handle_service_error(e)


@csrf_exempt
@api_view(["POST"])
@require_permission("inventory.adjust", "inventory", action="update")
def adjust_inventory(request):
    data, error = parse_json_body(request)
    if error:
        return error
    try:
        result = InventoryLedgerService.adjust(
            organization_id=_member_org(request),
            sku_code=data.get("sku"),
            location_id=data.get("locationId", data.get("location_id")),
            delta=data.get("delta", data.get("adjustment")),
            reason=data.get("reason", ""),
            member_id=request.member.id,
        )
        response = APIResponse.success(data={
            "inventoryId": result["inventory_id"],
            "quantity": result["quantity"],
            "available": result["available"],
        }, message=result["message"])
        response.audit_resource_id = result["inventory_id"]
        return response
    except Exception as e:
        return handle_service_error(e)


def _reservation(request, operation):
    data, error = parse_json_body(request)
    if error:
        return error
    try:
        record = operation(
            organization_id=_member_org(request),
            location_id=data.get("location_id", data.get("locationId")),
            sku_id=data.get("sku_id", data.get("skuId")),
            quantity=data.get("quantity"),
            reference_type=data.get("reference_type", ""),
            reference_id=data.get("reference_id", ""),
            member_id=request.member.id,
        )
        record = InventoryLedgerService.get_record(record.organization_id, record.location_id, record.sku_id)
        response = APIResponse.success(data={"level": InventoryLedgerService.serialize(record)})
        response.audit_resource_id = record.id
        return response
    except Exception as e:
        return handle_service_error(e)


@csrf_exempt
@api_view(["POST"])
@require_permission("inventory.adjust", "inventory", action="update")
def reserve_stock(request):
    return _reservation(request, InventoryLedgerService.reserve)


@csrf_exempt
@api_view(["POST"])
@require_permission("inventory.adjust", "inventory", action="update")
def release_reservation(request):
    return _reservation(request, InventoryLedgerService.release_reservation)


@csrf_exempt
@api_view(["GET"])
@require_permission("inventory.view", "inventory_movement")
def movement_list(request):
    try:
        result = InventoryLedgerService.list_movements(
            organization_id=_member_org(request),
            inventory_id=query_int(request, "inventory_id"),
            sku_id=query_int(request, "sku_id"),
            location_id=query_int(request, "location_id"),
            movement_type=request.GET.get("type"),
            reference_type=request.GET.get("reference_type"),
            reference_id=request.GET.get("reference_id"),
            page=query_int(request, "page", 1),
            per_page=query_int(request, "per_page", 50),
        )
        return APIResponse.success(data=result)
    except Exception as e:
        return handle_service_error(e)


# ==================== PURCHASES ====================

@csrf_exempt
@api_view(["GET", "POST"])
@require_permission({"GET": "inventory.view", "POST": "inventory.receive"}, "purchase_receipt")
def purchase_list(request):
    if request.method == "POST":
        return _record_purchase(request)
    try:
        result = PurchaseReceiptService.list(
            organization_id=_member_org(request),
            location_id=query_int(request, "location_id"),
            page=query_int(request, "page", 1),
            per_page=query_int(request, "per_page", 20),
        )
        return APIResponse.success(data=result)
    except Exception as e:
        return handle_service_error(e)


def _record_purchase(request):
    data, error = parse_json_body(request)
    if error:
        return error

    items = data.get("items") or []
    if not isinstance(items, list):
        return APIResponse.error("items must be a list", "VALIDATION_ERROR", 400, {"field": "items"})

    try:
        result = PurchaseReceiptService.record(
            organization_id=_member_org(request),
            location_id=data.get("location_id", data.get("locationId")),
            items=[
                {
                    "sku_id": item.get("sku_id", item.get("skuId")),
                    "sku_name": item.get("sku_name", item.get("skuName")),
                    "quantity": item.get("quantity"),
                    "unit_price": item.get("unit_price", item.get("unitPrice", 0)),
                }
                for item in items if isinstance(item, dict)
            ],
            member_id=request.member.id,
            supplier_name=data.get("supplier_name", ""),
            notes=data.get("notes", ""),
        )
        response = APIResponse.created(data=result, message=result["message"])
        response.audit_resource_id = result["receipt_number"]
        return response
    except Exception as e:
        return handle_service_error(e)


@csrf_exempt
@api_view(["GET"])
@require_permission("inventory.view", "purchase_receipt")
def purchase_detail(request, receipt_number):
    try:
        result = PurchaseReceiptService.get(_member_org(request), receipt_number)
        return APIResponse.success(data=result)
    except Exception as e:
        return handle_service_error(e)


# ==================== STATS ====================

@csrf_exempt
@api_view(["GET"])
@require_permission("inventory.view", "inventory")
def inventory_stats(request):
    try:
        result = InventoryLedgerService.stats(
            organization_id=_member_org(request),
            location_id=query_int(request, "location_id") or request.member.location_id,
        )
        return APIResponse.success(data=result)
    except Exception as e:
        return handle_service_error(e)
