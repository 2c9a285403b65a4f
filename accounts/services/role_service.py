from django.db.models import Count

from accounts.models import Member


class RoleService:

    ROLES = {
        'ADMIN': {
            'name': 'Admin',
            'description': 'Full access to the organization',
            'permissions': ['all'],
            'level': 100,
        },
        'PRODUCTION_MANAGER': {
            'name': 'Production Manager',
            'description': 'Plans and runs production batches',
            'permissions': [
                'inventory.view', 'inventory.adjust', 'inventory.receive',
                'catalog.manage',
                'production.view', 'production.create', 'production.update',
                'qc.record',
            ],
            'level': 80,
        },
        'QC_INSPECTOR': {
            'name': 'QC Inspector',
            'description': 'Records quality checks on batches',
            'permissions': ['inventory.view', 'production.view', 'qc.record'],
            'level': 50,
        },
        'WAREHOUSE': {
            'name': 'Warehouse',
            'description': 'Receives purchases and corrects stock',
            'permissions': ['inventory.view', 'inventory.adjust', 'inventory.receive', 'production.view'],
            'level': 40,
        },
        'VIEWER': {
            'name': 'Viewer',
            'description': 'Read-only access',
            'permissions': ['inventory.view', 'production.view'],
            'level': 10,
        },
    }

    @staticmethod
    def has_permission(role_code, permission):
        role = RoleService.ROLES.get((role_code or '').upper())
        if not role:
            return False
        permissions = role['permissions']
        return 'all' in permissions or permission in permissions

    @staticmethod
    def get_all_roles(organization_id=None):
        counts = Member.objects.filter(is_active=True)
        if organization_id is not None:
            counts = counts.filter(organization_id=organization_id)
        counts = dict(counts.order_by().values_list('role').annotate(total=Count('id')))

        roles = []
        for code, data in RoleService.ROLES.items():
            roles.append({
                'code': code,
                'name': data['name'],
                'description': data['description'],
                'permissions': data['permissions'],
                'level': data['level'],
                'member_count': counts.get(code, 0),
            })

        roles.sort(key=lambda x: x['level'], reverse=True)

        return {
            'success': True,
            'roles': roles,
            'count': len(roles)
        }

    @staticmethod
    def get_role_permissions(role_code):
        role_code = (role_code or '').upper()
        if role_code not in RoleService.ROLES:
            return {
                'success': False,
                'message': f'Role {role_code} not found'
            }
        return {
            'success': True,
            'role': role_code,
            'permissions': RoleService.ROLES[role_code]['permissions'],
        }
