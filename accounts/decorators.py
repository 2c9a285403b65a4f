from functools import wraps

from django.conf import settings
from rest_framework.exceptions import ParseError

from accounts.helpers.response import handle_service_error
from accounts.models import AuditLog
from accounts.services.audit_service import AuditService
from accounts.services.gateway_service import GatewayContext, PermissionGateway
from stock.services.base_service import ServiceError


ACTION_BY_METHOD = {
    'GET': AuditLog.Action.READ,
    'HEAD': AuditLog.Action.READ,
    'POST': AuditLog.Action.CREATE,
    'PUT': AuditLog.Action.UPDATE,
    'PATCH': AuditLog.Action.UPDATE,
    'DELETE': AuditLog.Action.DELETE,
}

LOCATION_KEYS = ('location_id', 'locationId')


def _request_payload(request):
    if request.method in ('GET', 'HEAD'):
        return {}
    try:
        data = request.data
    except ParseError:
        return {}
    return data if isinstance(data, dict) else {}


def _target_location(request, payload):
    for key in LOCATION_KEYS:
        value = payload.get(key) or request.GET.get(key)
        if value not in (None, ''):
            return value
    return None


def require_permission(permission, resource, action=None, location_from=None):
    """
    Gate a view behind ``permission`` and audit the outcome.

    ``permission`` is a slug, or a dict of slugs keyed by HTTP method for
    views that serve several methods.

    ``location_from(request, payload, kwargs, organization_id)`` resolves the
    location of the resource a route acts on. When it finds one, that
    location is checked instead of whatever the client sent.

    The authorized member is exposed as ``request.member``. Mutations are
    always audited; reads only when AUDIT_READS is on.
    """
    def decorator(view_func):
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            context = getattr(request, 'gateway_context', None) or GatewayContext.from_request(request)
            verb = action or ACTION_BY_METHOD.get(request.method, AuditLog.Action.READ)
            resource_id = next(iter(kwargs.values()), '') if kwargs else ''

            try:
                payload = _request_payload(request)
                location_id = None
                if location_from is not None and context.org_id:
                    location_id = location_from(request, payload, kwargs, context.org_id)
                if location_id is None:
                    location_id = _target_location(request, payload)
                required = permission.get(request.method) if isinstance(permission, dict) else permission
                member = PermissionGateway.authorize(
                    context, required, verb, resource,
                    resource_id=resource_id,
                    location_id=location_id,
                )
            except ServiceError as e:
                return handle_service_error(e)

            request.member = member
            response = view_func(request, *args, **kwargs)

            if verb != AuditLog.Action.READ or settings.AUDIT_READS:
                failed = response.status_code >= 400
                AuditService.log_for_context(
                    context, member, verb, resource,
                    resource_id=getattr(response, 'audit_resource_id', None) or resource_id,
                    changes=dict(payload),
                    status=AuditLog.Status.FAILURE if failed else AuditLog.Status.SUCCESS,
                    error_message=getattr(response, 'error_message', '') if failed else '',
                )
            return response
        return wrapper
    return decorator
