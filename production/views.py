from django.views.decorators.csrf import csrf_exempt
from rest_framework.decorators import api_view

from accounts.decorators import require_permission
from accounts.helpers.request import parse_json_body, query_int
from accounts.helpers.response import APIResponse, handle_service_error
from production.models import ProductionBatch, InventoryLot
from production.services import (
    BomService, ProductionBatchService, BatchIngredientService,
    QcCheckService, InventoryLotService, TraceabilityService,
)


def _member_org(request):
    return request.member.organization_id


def _batch_location(request, payload, kwargs, organization_id):
    batch_number = (
        kwargs.get("batch_number")
        or payload.get("batch_number")
        or payload.get("batchId")
        or request.GET.get("batch_number")
    )
    if not batch_number:
        return None
    return ProductionBatch.objects.filter(
        organization_id=organization_id, batch_number=str(batch_number),
    ).values_list("location_id", flat=True).first()


def _lot_location(request, payload, kwargs, organization_id):
    return InventoryLot.objects.filter(
        organization_id=organization_id, lot_number=kwargs.get("lot_number"),
    ).values_list("location_id", flat=True).first()


# ==================== BOMS ====================

@csrf_exempt
@api_view(["GET", "POST"])
@require_permission({"GET": "production.view", "POST": "production.create"}, "bom")
def bom_list(request):
    if request.method == "POST":
        return _create_bom(request)
    try:
        result = BomService.list(
            organization_id=_member_org(request),
            sku_id=query_int(request, "sku_id"),
            page=query_int(request, "page", 1),
            per_page=query_int(request, "per_page", 50),
        )
        return APIResponse.success(data=result)
    except Exception as e:
        return handle_service_error(e)


def _create_bom(request):
    data, error = parse_json_body(request)
    if error:
        return error

    lines = data.get("lines") or []
    if not isinstance(lines, list):
        return APIResponse.error("lines must be a list", "VALIDATION_ERROR", 400, {"field": "lines"})

    try:
        result = BomService.create(
            organization_id=_member_org(request),
            code=data.get("code"),
            name=data.get("name"),
            sku_id=data.get("sku_id", data.get("skuId")),
            output_quantity=data.get("output_quantity", data.get("outputQuantity", 1)),
            lines=[
                {
                    "sku_id": line.get("sku_id", line.get("skuId")),
                    "quantity": line.get("quantity"),
                }
                for line in lines if isinstance(line, dict)
            ],
        )
        response = APIResponse.created(data=result, message=result["message"])
        response.audit_resource_id = result["bom"]["code"]
        return response
    except Exception as e:
        return handle_service_error(e)


@csrf_exempt
@api_view(["GET"])
@require_permission("production.view", "bom")
def bom_detail(request, bom_id):
    try:
        result = BomService.get(_member_org(request), bom_id)
        return APIResponse.success(data=result)
    except Exception as e:
        return handle_service_error(e)


# ==================== BATCHES ====================

@csrf_exempt
@api_view(["GET", "POST"])
@require_permission({"GET": "production.view", "POST": "production.create"}, "production_batch")
def batch_list(request):
    if request.method == "POST":
        return _create_batch(request)
    try:
        result = ProductionBatchService.list(
            organization_id=_member_org(request),
            lifecycle_state=request.GET.get("state"),
            qc_outcome=request.GET.get("qc_outcome"),
            location_id=query_int(request, "location_id"),
            sku_id=query_int(request, "sku_id"),
            page=query_int(request, "page", 1),
            per_page=query_int(request, "per_page", 20),
        )
        return APIResponse.success(data=result)
    except Exception as e:
        return handle_service_error(e)


def _create_batch(request):
    data, error = parse_json_body(request)
    if error:
        return error

    ingredients = data.get("ingredients")
    if ingredients is not None and not isinstance(ingredients, list):
        return APIResponse.error("ingredients must be a list", "VALIDATION_ERROR", 400, {"field": "ingredients"})

    try:
        result = ProductionBatchService.create(
            organization_id=_member_org(request),
            location_id=data.get("location_id", data.get("locationId")),
            planned_quantity=data.get("planned_quantity", data.get("quantity")),
            sku_id=data.get("sku_id", data.get("skuId")),
            bom_id=data.get("bom_id", data.get("bomId")),
            ingredients=[
                {
                    "sku_id": item.get("sku_id", item.get("skuId")),
                    "required_quantity": item.get("required_quantity", item.get("requiredQuantity")),
                }
                for item in ingredients if isinstance(item, dict)
            ] if ingredients is not None else None,
            yield_quantity=data.get("yield_quantity", data.get("yieldQuantity")),
            planned_date=data.get("planned_date", data.get("batchDate")),
            notes=data.get("notes", ""),
            member_id=request.member.id,
        )
        response = APIResponse.created(data=result, message=result["message"])
        response.audit_resource_id = result["batch"]["batch_number"]
        return response
    except Exception as e:
        return handle_service_error(e)


@csrf_exempt
@api_view(["GET", "PATCH"])
@require_permission({"GET": "production.view", "PATCH": "production.update"}, "production_batch",
                    location_from=_batch_location)
def batch_detail(request, batch_number):
    if request.method == "PATCH":
        return _update_batch(request, batch_number)
    try:
        result = ProductionBatchService.get(_member_org(request), batch_number)
        return APIResponse.success(data=result)
    except Exception as e:
        return handle_service_error(e)


def _update_batch(request, batch_number):
    data, error = parse_json_body(request)
    if error:
        return error
    try:
        result = ProductionBatchService.update_plan(
            _member_org(request),
            batch_number,
            yield_quantity=data.get("yield_quantity", data.get("yieldQuantity")),
            planned_date=data.get("planned_date"),
            notes=data.get("notes"),
        )
        return APIResponse.success(data=result)
    except Exception as e:
        return handle_service_error(e)


@csrf_exempt
@api_view(["PATCH", "POST"])
@require_permission("production.update", "production_batch", action="update",
                    location_from=_batch_location)
def batch_status(request, batch_number):
    data, error = parse_json_body(request)
    if error:
        return error
    try:
        result = ProductionBatchService.transition(
            organization_id=_member_org(request),
            batch_number=batch_number,
            action=data.get("action"),
            yield_actual=data.get("yield_actual", data.get("yieldActual")),
            reason=data.get("reason", ""),
            member_id=request.member.id,
        )
        return APIResponse.success(data={
            "batchId": result["batch_id"],
            "status": result["status"],
            "batch": result["batch"],
        }, message=result["message"])
    except Exception as e:
        return handle_service_error(e)


# ==================== INGREDIENTS ====================

@csrf_exempt
@api_view(["GET", "POST"])
@require_permission({"GET": "production.view", "POST": "production.create"}, "batch_ingredient",
                    location_from=_batch_location)
def ingredient_list(request, batch_number):
    if request.method == "POST":
        return _add_ingredient(request, batch_number)
    try:
        result = BatchIngredientService.list_for_batch(_member_org(request), batch_number)
        return APIResponse.success(data=result)
    except Exception as e:
        return handle_service_error(e)


def _add_ingredient(request, batch_number):
    data, error = parse_json_body(request)
    if error:
        return error
    try:
        result = BatchIngredientService.add(
            organization_id=_member_org(request),
            batch_number=batch_number,
            sku_id=data.get("sku_id", data.get("skuId")),
            required_quantity=data.get("required_quantity", data.get("requiredQuantity")),
        )
        return APIResponse.created(data=result, message=result["message"])
    except Exception as e:
        return handle_service_error(e)


@csrf_exempt
@api_view(["POST"])
@require_permission("production.update", "batch_ingredient", action="update",
                    location_from=_batch_location)
def ingredient_usage(request, batch_number, ingredient_id):
    data, error = parse_json_body(request)
    if error:
        return error
    try:
        result = BatchIngredientService.record_usage(
            organization_id=_member_org(request),
            batch_number=batch_number,
            ingredient_id=ingredient_id,
            used_quantity=data.get("used_quantity", data.get("usedQuantity")),
            notes=data.get("notes", ""),
        )
        return APIResponse.success(data=result, message=result["message"])
    except Exception as e:
        return handle_service_error(e)


@csrf_exempt
@api_view(["GET"])
@require_permission("production.view", "production_batch", location_from=_batch_location)
def batch_availability(request, batch_number):
    try:
        result = BatchIngredientService.check_availability(_member_org(request), batch_number)
        return APIResponse.success(data=result)
    except Exception as e:
        return handle_service_error(e)


# ==================== QC ====================

@csrf_exempt
@api_view(["GET", "POST"])
@require_permission({"GET": "production.view", "POST": "qc.record"}, "qc_check",
                    location_from=_batch_location)
def qc_check_list(request):
    if request.method == "POST":
        return _record_qc_check(request)
    try:
        result = QcCheckService.list(
            organization_id=_member_org(request),
            batch_number=request.GET.get("batch_number"),
            result=request.GET.get("result"),
            check_type=request.GET.get("check_type"),
            page=query_int(request, "page", 1),
            per_page=query_int(request, "per_page", 50),
        )
        return APIResponse.success(data=result)
    except Exception as e:
        return handle_service_error(e)


def _record_qc_check(request):
    data, error = parse_json_body(request)
    if error:
        return error
    try:
        result = QcCheckService.record_check(
            organization_id=_member_org(request),
            batch_number=data.get("batch_number", data.get("batchId")),
            check_type=data.get("check_type", data.get("checkType")),
            result=data.get("result"),
            notes=data.get("notes", ""),
            checked_by=data.get("checked_by", data.get("checkedBy")) or request.member.full_name,
            member_id=request.member.id,
        )
        response = APIResponse.created(data=result, message=result["message"])
        response.audit_resource_id = result["qc_check"]["batch_number"]
        return response
    except Exception as e:
        return handle_service_error(e)


# ==================== LOTS ====================

@csrf_exempt
@api_view(["GET"])
@require_permission("production.view", "inventory_lot")
def lot_list(request):
    try:
        result = InventoryLotService.list(
            organization_id=_member_org(request),
            sku_id=query_int(request, "sku_id"),
            location_id=query_int(request, "location_id"),
            page=query_int(request, "page", 1),
            per_page=query_int(request, "per_page", 50),
        )
        return APIResponse.success(data=result)
    except Exception as e:
        return handle_service_error(e)


@csrf_exempt
@api_view(["GET"])
@require_permission("production.view", "inventory_lot", location_from=_lot_location)
def lot_trace(request, lot_number):
    try:
        result = TraceabilityService.trace(_member_org(request), lot_number)
        return APIResponse.success(data=result)
    except Exception as e:
        return handle_service_error(e)


# ==================== STATS ====================

@csrf_exempt
@api_view(["GET"])
@require_permission("production.view", "production_batch")
def production_stats(request):
    try:
        result = ProductionBatchService.stats(
            organization_id=_member_org(request),
            location_id=query_int(request, "location_id") or request.member.location_id,
        )
        return APIResponse.success(data=result)
    except Exception as e:
        return handle_service_error(e)
