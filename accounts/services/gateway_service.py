import logging
from dataclasses import dataclass
from typing import Optional

from accounts.models import Member, AuditLog
from accounts.services.audit_service import AuditService
from accounts.services.role_service import RoleService
from stock.services.base_service import UnauthorizedError, ForbiddenError

logger = logging.getLogger(__name__)


def _parse_id(value) -> Optional[int]:
    if value in (None, ''):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass
class GatewayContext:
    user_id: Optional[int] = None
    org_id: Optional[int] = None
    location_id: Optional[int] = None
    ip_address: str = ''
    user_agent: str = ''

    @classmethod
    def from_request(cls, request):
        meta = request.META
        forwarded = meta.get('HTTP_X_FORWARDED_FOR', '')
        ip_address = forwarded.split(',')[0].strip() if forwarded else meta.get('REMOTE_ADDR', '')
        return cls(
            user_id=_parse_id(request.headers.get('X-User-Id')),
            org_id=_parse_id(request.headers.get('X-Org-Id')),
            location_id=_parse_id(request.headers.get('X-Location-Id')),
            ip_address=ip_address or '',
            user_agent=request.headers.get('User-Agent', ''),
        )


class PermissionGateway:

    @classmethod
    def resolve_member(cls, context: GatewayContext) -> Member:
        if not context.user_id or not context.org_id:
            raise UnauthorizedError("Missing user or organization context")

        member = Member.objects.select_related('organization').filter(
            id=context.user_id,
            organization_id=context.org_id,
        ).first()

        if not member or not member.is_active:
            logger.warning("Unknown or inactive member %s for org %s", context.user_id, context.org_id)
            raise UnauthorizedError("Unknown member for this organization")

        if not member.organization.is_active:
            raise ForbiddenError("Organization is inactive")

        return member

    @classmethod
    def authorize(cls, context: GatewayContext, permission: str, action: str,
                  resource: str, resource_id='', location_id: int = None) -> Member:
        """
        Resolve the calling member and check ``permission`` for the target
        location. Denials are audited before ForbiddenError is raised.
        """
        member = cls.resolve_member(context)

        if not RoleService.has_permission(member.role, permission):
            cls._deny(context, member, action, resource, resource_id,
                      f"Role {member.role} lacks {permission}")
            raise ForbiddenError(f"Permission denied: {permission}", permission=permission)

        target_location = _parse_id(location_id) or context.location_id
        if member.location_id and target_location and target_location != member.location_id:
            cls._deny(context, member, action, resource, resource_id,
                      f"Member is scoped to location {member.location_id}")
            raise ForbiddenError("Permission denied for this location", permission=permission)

        return member

    @classmethod
    def _deny(cls, context, member, action, resource, resource_id, reason):
        logger.warning("Access denied: member=%s %s %s:%s (%s)",
                       member.id, action, resource, resource_id, reason)
        AuditService.log_for_context(
            context, member, action, resource,
            resource_id=resource_id,
            status=AuditLog.Status.FAILURE,
            error_message=reason,
        )
