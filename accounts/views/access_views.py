from django.views.decorators.csrf import csrf_exempt
from rest_framework.decorators import api_view

from accounts.decorators import require_permission
from accounts.helpers.request import query_int
from accounts.helpers.response import APIResponse, handle_service_error
from accounts.services.audit_service import AuditService
from accounts.services.gateway_service import PermissionGateway
from accounts.services.role_service import RoleService
from stock.services.base_service import ServiceError


@csrf_exempt
@api_view(["GET"])
def current_member(request):
    try:
        member = PermissionGateway.resolve_member(request.gateway_context)
    except ServiceError as e:
        return handle_service_error(e)

    return APIResponse.success(data={
        'member': {
            'id': member.id,
            'email': member.email,
            'full_name': member.full_name,
            'role': member.role,
            'organization_id': member.organization_id,
            'organization': member.organization.name,
            'location_id': member.location_id,
            'permissions': RoleService.ROLES.get(member.role, {}).get('permissions', []),
        }
    })


@csrf_exempt
@api_view(["GET"])
@require_permission('inventory.view', 'role')
def list_roles(request):
    result = RoleService.get_all_roles(organization_id=request.member.organization_id)
    return APIResponse.success(data=result)


@csrf_exempt
@api_view(["GET"])
@require_permission('audit.view', 'audit_log')
def list_audit_logs(request):
    result = AuditService.list(
        organization_id=request.member.organization_id,
        resource=request.GET.get('resource'),
        resource_id=request.GET.get('resource_id'),
        status=request.GET.get('status'),
        member_id=query_int(request, 'member_id'),
        page=query_int(request, 'page', 1),
        per_page=query_int(request, 'per_page', 50),
    )
    return APIResponse.success(data=result)
