from django.contrib import admin
from django.utils.translation import gettext_lazy as _
from unfold.admin import ModelAdmin, TabularInline
from unfold.decorators import display

from .models import Location, Sku, InventoryRecord, InventoryMovement, PurchaseReceipt, PurchaseReceiptItem


@admin.register(Location)
class LocationAdmin(ModelAdmin):
    list_display = ('name', 'organization', 'type', 'is_active', 'created_at')
    list_filter = ('type', 'is_active', 'organization')
    search_fields = ('name',)


@admin.register(Sku)
class SkuAdmin(ModelAdmin):
    list_display = ('code', 'name', 'organization', 'category_badge', 'unit', 'base_price', 'is_active')
    list_filter = ('category', 'is_active', 'organization')
    search_fields = ('code', 'name')

    def get_readonly_fields(self, request, obj=None):
        # code is immutable once the SKU exists
        if obj:
            return ('code', 'organization')
        return ()

    @display(description=_("Category"), label={'RAW': 'warning', 'FINISHED': 'success'})
    def category_badge(self, obj):
        return obj.category, obj.get_category_display()


class InventoryMovementInline(TabularInline):
    model = InventoryMovement
    extra = 0
    can_delete = False
    fields = ('created_at', 'movement_type', 'quantity', 'quantity_before', 'quantity_after', 'reference_type', 'reference_id')
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(InventoryRecord)
class InventoryRecordAdmin(ModelAdmin):
    list_display = ('sku', 'location', 'quantity', 'reserved_quantity', 'available_quantity', 'stock_badge', 'last_movement_at')
    list_filter = ('location', 'sku__category', 'organization')
    search_fields = ('sku__code', 'sku__name')
    readonly_fields = ('quantity', 'reserved_quantity', 'available_quantity', 'last_movement_at')
    inlines = [InventoryMovementInline]

    @display(description=_("Stock"), label={'LOW': 'danger', 'OK': 'success'})
    def stock_badge(self, obj):
        return ('LOW', _("Low")) if obj.is_low_stock else ('OK', _("OK"))

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(InventoryMovement)
class InventoryMovementAdmin(ModelAdmin):
    list_display = ('created_at', 'inventory', 'movement_type', 'quantity', 'quantity_before', 'quantity_after', 'reference_id')
    list_filter = ('movement_type',)
    search_fields = ('reference_id', 'inventory__sku__code')
    readonly_fields = [f.name for f in InventoryMovement._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class PurchaseReceiptItemInline(TabularInline):
    model = PurchaseReceiptItem
    extra = 0
    fields = ('sku', 'quantity', 'unit_price', 'inventory')
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(PurchaseReceipt)
class PurchaseReceiptAdmin(ModelAdmin):
    list_display = ('receipt_number', 'organization', 'location', 'received_by', 'supplier_name', 'created_at')
    list_filter = ('location', 'organization')
    search_fields = ('receipt_number', 'supplier_name')
    readonly_fields = ('receipt_number', 'organization', 'location', 'received_by', 'created_at')
    inlines = [PurchaseReceiptItemInline]

    def has_add_permission(self, request):
        return False
