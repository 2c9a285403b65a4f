import logging

from django.db import transaction, DatabaseError

from accounts.models import AuditLog
from stock.services.base_service import paginate_queryset, success_response

logger = logging.getLogger(__name__)


class AuditService:
    """
    Append-only audit trail. Writing an entry must never break the
    operation being audited, so storage errors are logged and dropped.
    """

    @classmethod
    def log(cls, organization_id, member_id, action, resource,
            resource_id='', changes=None, status=AuditLog.Status.SUCCESS,
            error_message='', ip_address='', user_agent=''):
        try:
            with transaction.atomic():
                return AuditLog.objects.create(
                    organization_id=organization_id,
                    member_id=member_id,
                    action=action,
                    resource=resource,
                    resource_id=str(resource_id or ''),
                    changes=changes or {},
                    status=status,
                    error_message=error_message or '',
                    ip_address=(ip_address or '')[:45],
                    user_agent=(user_agent or '')[:255],
                )
        except (DatabaseError, TypeError, ValueError):
            logger.exception("Failed to write audit entry: %s %s:%s", action, resource, resource_id)
            return None

    @classmethod
    def log_for_context(cls, context, member, action, resource, resource_id='',
                        changes=None, status=AuditLog.Status.SUCCESS, error_message=''):
        return cls.log(
            organization_id=member.organization_id if member else context.org_id,
            member_id=member.id if member else None,
            action=action,
            resource=resource,
            resource_id=resource_id,
            changes=changes,
            status=status,
            error_message=error_message,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )

    @staticmethod
    def serialize(entry):
        return {
            'id': entry.id,
            'organization_id': entry.organization_id,
            'member_id': entry.member_id,
            'action': entry.action,
            'resource': entry.resource,
            'resource_id': entry.resource_id,
            'changes': entry.changes,
            'status': entry.status,
            'error_message': entry.error_message,
            'ip_address': entry.ip_address,
            'user_agent': entry.user_agent,
            'created_at': entry.created_at.isoformat(),
        }

    @classmethod
    def list(cls, organization_id, resource=None, resource_id=None, status=None,
             member_id=None, page=1, per_page=50):
        queryset = AuditLog.objects.filter(organization_id=organization_id)

        if resource:
            queryset = queryset.filter(resource=resource)
        if resource_id:
            queryset = queryset.filter(resource_id=str(resource_id))
        if status:
            queryset = queryset.filter(status=status)
        if member_id:
            queryset = queryset.filter(member_id=member_id)

        entries, pagination = paginate_queryset(queryset, page, per_page)
        return success_response({
            'entries': [cls.serialize(e) for e in entries],
            'pagination': pagination,
        })
