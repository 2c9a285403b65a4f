from django.contrib import admin
from django.utils.translation import gettext_lazy as _
from unfold.admin import ModelAdmin, TabularInline
from unfold.decorators import display

from .models import Organization, Member, AuditLog


class MemberInline(TabularInline):
    model = Member
    extra = 0
    fields = ('email', 'full_name', 'role', 'location', 'is_active')


@admin.register(Organization)
class OrganizationAdmin(ModelAdmin):
    list_display = ('name', 'slug', 'member_count', 'is_active', 'created_at')
    list_filter = ('is_active',)
    search_fields = ('name', 'slug')
    prepopulated_fields = {'slug': ('name',)}
    inlines = [MemberInline]

    @display(description=_("Members"))
    def member_count(self, obj):
        return obj.members.count()


@admin.register(Member)
class MemberAdmin(ModelAdmin):
    list_display = ('full_name', 'email', 'organization', 'display_role', 'location', 'is_active')
    list_filter = ('role', 'is_active', 'organization')
    search_fields = ('full_name', 'email')
    autocomplete_fields = ('organization',)

    @display(
        description=_("Role"),
        label={
            'ADMIN': 'danger',
            'PRODUCTION_MANAGER': 'warning',
            'QC_INSPECTOR': 'info',
            'WAREHOUSE': 'success',
            'VIEWER': 'info',
        },
    )
    def display_role(self, obj):
        return obj.role, obj.get_role_display()


@admin.register(AuditLog)
class AuditLogAdmin(ModelAdmin):
    list_display = ('created_at', 'member', 'action', 'resource', 'resource_id', 'display_status', 'ip_address')
    list_filter = ('status', 'action', 'resource', 'organization')
    search_fields = ('resource_id', 'error_message', 'member__email')
    readonly_fields = [f.name for f in AuditLog._meta.fields]

    @display(description=_("Status"), label={'success': 'success', 'failure': 'danger'})
    def display_status(self, obj):
        return obj.status, obj.get_status_display()

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
