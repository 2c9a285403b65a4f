from django.contrib import admin
from django.utils.translation import gettext_lazy as _
from unfold.admin import ModelAdmin, TabularInline
from unfold.decorators import display

from .models import BillOfMaterials, BomLine, ProductionBatch, BatchIngredient, QcCheck, InventoryLot


class ReadOnlyAdminMixin:
    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class BomLineInline(TabularInline):
    model = BomLine
    extra = 1
    fields = ('sku', 'quantity', 'sort_order')


@admin.register(BillOfMaterials)
class BillOfMaterialsAdmin(ModelAdmin):
    list_display = ('code', 'name', 'sku', 'output_quantity', 'organization', 'is_active')
    list_filter = ('is_active', 'organization')
    search_fields = ('code', 'name', 'sku__code')
    inlines = [BomLineInline]


class BatchIngredientInline(TabularInline):
    model = BatchIngredient
    extra = 0
    fields = ('sku', 'required_quantity', 'used_quantity', 'consumed_quantity', 'consumed_at')
    readonly_fields = ('consumed_quantity', 'consumed_at')


class QcCheckInline(ReadOnlyAdminMixin, TabularInline):
    model = QcCheck
    extra = 0
    fields = ('checked_at', 'check_type', 'result', 'checked_by', 'notes')
    readonly_fields = fields


@admin.register(ProductionBatch)
class ProductionBatchAdmin(ModelAdmin):
    list_display = (
        'batch_number', 'sku', 'location', 'planned_quantity', 'yield_actual',
        'state_badge', 'qc_badge', 'planned_date', 'created_at',
    )
    list_filter = ('lifecycle_state', 'qc_outcome', 'location', 'organization')
    search_fields = ('batch_number', 'sku__code', 'sku__name')
    readonly_fields = (
        'batch_number', 'lifecycle_state', 'qc_outcome', 'yield_actual',
        'started_at', 'completed_at', 'delayed_at', 'qc_checked_at',
    )
    inlines = [BatchIngredientInline, QcCheckInline]

    @display(description=_("State"), label={
        'PLANNED': 'info',
        'IN_PROGRESS': 'warning',
        'COMPLETED': 'success',
        'DELAYED': 'danger',
    })
    def state_badge(self, obj):
        return obj.lifecycle_state, obj.get_lifecycle_state_display()

    @display(description=_("QC"), label={
        'PASS': 'success',
        'FAIL': 'danger',
        'REWORK': 'warning',
        'NONE': 'info',
    })
    def qc_badge(self, obj):
        if not obj.qc_outcome:
            return 'NONE', _("Pending")
        return obj.qc_outcome, obj.get_qc_outcome_display()


@admin.register(QcCheck)
class QcCheckAdmin(ReadOnlyAdminMixin, ModelAdmin):
    list_display = ('checked_at', 'batch', 'check_type', 'result', 'checked_by')
    list_filter = ('check_type', 'result')
    search_fields = ('batch__batch_number', 'checked_by')


@admin.register(InventoryLot)
class InventoryLotAdmin(ReadOnlyAdminMixin, ModelAdmin):
    list_display = ('lot_number', 'sku', 'quantity', 'location', 'manufacture_date')
    list_filter = ('location', 'organization')
    search_fields = ('lot_number', 'sku__code', 'batch__batch_number')
