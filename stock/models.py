import uuid as uuid_lib

from django.db import models


class Location(models.Model):
    class LocationType(models.TextChoices):
        WAREHOUSE = "WAREHOUSE", "Warehouse"
        PRODUCTION = "PRODUCTION", "Production Floor"
        COLD_ROOM = "COLD_ROOM", "Cold Room"
        STORE = "STORE", "Store"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    organization = models.ForeignKey(
        "accounts.Organization",
        on_delete=models.PROTECT,
        related_name="locations",
    )
    name = models.CharField(max_length=100)
    type = models.CharField(
        max_length=20,
        choices=LocationType.choices,
        default=LocationType.WAREHOUSE,
    )
    address = models.CharField(max_length=255, blank=True, default="")
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        unique_together = [("organization", "name")]

    def __str__(self):
        return f"{self.name} ({self.get_type_display()})"


class Sku(models.Model):
    class Category(models.TextChoices):
        RAW = "RAW", "Raw Material"
        FINISHED = "FINISHED", "Finished Good"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    organization = models.ForeignKey(
        "accounts.Organization",
        on_delete=models.PROTECT,
        related_name="skus",
    )
    code = models.CharField(max_length=50, help_text="Unique within the organization, never changes")
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True, default="")
    category = models.CharField(max_length=10, choices=Category.choices, default=Category.FINISHED)
    unit = models.CharField(max_length=20, default="units")
    base_price = models.DecimalField(max_digits=15, decimal_places=4, default=0)
    cost_price = models.DecimalField(max_digits=15, decimal_places=4, default=0)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "SKU"
        ordering = ["name"]
        constraints = [
            models.UniqueConstraint(
                fields=["organization", "code"],
                name="unique_sku_code_per_organization",
            ),
        ]

    def __str__(self):
        return f"{self.code} - {self.name}"


class InventoryRecord(models.Model):
    """
    Stock of one SKU at one location. Rows are created on first movement
    and never deleted; a zero quantity is a valid state.
    """

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    organization = models.ForeignKey(
        "accounts.Organization",
        on_delete=models.PROTECT,
        related_name="inventory_records",
    )
    location = models.ForeignKey(
        Location,
        on_delete=models.PROTECT,
        related_name="inventory_records",
    )
    sku = models.ForeignKey(
        Sku,
        on_delete=models.PROTECT,
        related_name="inventory_records",
    )
    quantity = models.DecimalField(max_digits=15, decimal_places=4, default=0)
    reserved_quantity = models.DecimalField(max_digits=15, decimal_places=4, default=0)
    available_quantity = models.DecimalField(max_digits=15, decimal_places=4, default=0)
    reorder_level = models.DecimalField(max_digits=15, decimal_places=4, default=0)
    reorder_quantity = models.DecimalField(max_digits=15, decimal_places=4, default=0)
    last_movement_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["sku__name", "location__name"]
        unique_together = [("organization", "location", "sku")]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=0),
                name="inventory_quantity_non_negative",
            ),
            models.CheckConstraint(
                condition=models.Q(reserved_quantity__gte=0),
                name="inventory_reserved_non_negative",
            ),
        ]

    @property
    def is_low_stock(self):
        return self.reorder_level > 0 and self.quantity <= self.reorder_level

    @property
    def is_balanced(self):
        return (
            self.quantity >= 0
            and self.reserved_quantity >= 0
            and self.available_quantity == self.quantity - self.reserved_quantity
        )

    def __str__(self):
        return f"{self.sku.code} @ {self.location.name}: {self.quantity}"


class InventoryMovement(models.Model):
    class MovementType(models.TextChoices):
        OPENING_BALANCE = "OPENING_BALANCE", "Opening Balance"
        PURCHASE_IN = "PURCHASE_IN", "Purchase Receipt"
        PRODUCTION_IN = "PRODUCTION_IN", "Production Output"
        PRODUCTION_OUT = "PRODUCTION_OUT", "Production Consumption"
        ADJUSTMENT = "ADJUSTMENT", "Adjustment"
        RESERVATION = "RESERVATION", "Reservation"
        RESERVATION_RELEASE = "RESERVATION_RELEASE", "Reservation Release"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    inventory = models.ForeignKey(
        InventoryRecord,
        on_delete=models.PROTECT,
        related_name="movements",
    )
    movement_type = models.CharField(max_length=20, choices=MovementType.choices)
    quantity = models.DecimalField(max_digits=15, decimal_places=4)
    quantity_before = models.DecimalField(max_digits=15, decimal_places=4)
    quantity_after = models.DecimalField(max_digits=15, decimal_places=4)
    reference_type = models.CharField(max_length=50, blank=True, default="")
    reference_id = models.CharField(max_length=50, blank=True, default="")
    member = models.ForeignKey(
        "accounts.Member",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="inventory_movements",
    )
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["reference_type", "reference_id"]),
        ]

    def __str__(self):
        return f"{self.movement_type} {self.quantity} ({self.inventory_id})"


class PurchaseReceipt(models.Model):
    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    receipt_number = models.CharField(max_length=30, unique=True)
    organization = models.ForeignKey(
        "accounts.Organization",
        on_delete=models.PROTECT,
        related_name="purchase_receipts",
    )
    location = models.ForeignKey(
        Location,
        on_delete=models.PROTECT,
        related_name="purchase_receipts",
    )
    received_by = models.ForeignKey(
        "accounts.Member",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="purchase_receipts",
    )
    supplier_name = models.CharField(max_length=200, blank=True, default="")
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    @property
    def total_cost(self):
        return sum((item.quantity * item.unit_price for item in self.items.all()), 0)

    def __str__(self):
        return self.receipt_number


class PurchaseReceiptItem(models.Model):
    receipt = models.ForeignKey(
        PurchaseReceipt,
        on_delete=models.CASCADE,
        related_name="items",
    )
    sku = models.ForeignKey(
        Sku,
        on_delete=models.PROTECT,
        related_name="purchase_items",
    )
    inventory = models.ForeignKey(
        InventoryRecord,
        on_delete=models.PROTECT,
        related_name="purchase_items",
    )
    quantity = models.DecimalField(max_digits=15, decimal_places=4)
    unit_price = models.DecimalField(max_digits=15, decimal_places=4, default=0)

    def __str__(self):
        return f"{self.receipt.receipt_number}: {self.sku.code} x {self.quantity}"
