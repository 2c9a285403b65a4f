import uuid as uuid_lib

from django.core.exceptions import ValidationError
from django.db import models


class AppendOnlyModel(models.Model):
    """Rows are written once; updates and deletes are refused."""

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError(f"{type(self).__name__} records cannot be modified")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError(f"{type(self).__name__} records cannot be deleted")


class BillOfMaterials(models.Model):
    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    organization = models.ForeignKey(
        "accounts.Organization",
        on_delete=models.PROTECT,
        related_name="boms",
    )
    code = models.CharField(max_length=50)
    name = models.CharField(max_length=200)
    sku = models.ForeignKey(
        "stock.Sku",
        on_delete=models.PROTECT,
        related_name="boms",
        help_text="Finished good produced by this bill of materials",
    )
    output_quantity = models.DecimalField(
        max_digits=15,
        decimal_places=4,
        default=1,
        help_text="Quantity of finished good the lines below produce",
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "bill of materials"
        verbose_name_plural = "bills of materials"
        ordering = ["name"]
        unique_together = [("organization", "code")]

    def __str__(self):
        return f"{self.code} - {self.name}"


class BomLine(models.Model):
    bom = models.ForeignKey(
        BillOfMaterials,
        on_delete=models.CASCADE,
        related_name="lines",
    )
    sku = models.ForeignKey(
        "stock.Sku",
        on_delete=models.PROTECT,
        related_name="bom_lines",
    )
    quantity = models.DecimalField(max_digits=15, decimal_places=4)
    sort_order = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["sort_order", "id"]
        unique_together = [("bom", "sku")]

    def __str__(self):
        return f"{self.bom.code}: {self.sku.code} x {self.quantity}"


class ProductionBatch(models.Model):
    class LifecycleState(models.TextChoices):
        PLANNED = "PLANNED", "Planned"
        IN_PROGRESS = "IN_PROGRESS", "In Progress"
        COMPLETED = "COMPLETED", "Completed"
        DELAYED = "DELAYED", "Delayed"

    class QcOutcome(models.TextChoices):
        PASS = "PASS", "Passed"
        FAIL = "FAIL", "Failed"
        REWORK = "REWORK", "Rework"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    batch_number = models.CharField(max_length=30, unique=True)
    organization = models.ForeignKey(
        "accounts.Organization",
        on_delete=models.PROTECT,
        related_name="production_batches",
    )
    location = models.ForeignKey(
        "stock.Location",
        on_delete=models.PROTECT,
        related_name="production_batches",
        help_text="Where ingredients are consumed and output is stocked",
    )
    sku = models.ForeignKey(
        "stock.Sku",
        on_delete=models.PROTECT,
        related_name="production_batches",
        help_text="Finished good produced by this batch",
    )
    bom = models.ForeignKey(
        BillOfMaterials,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="batches",
    )
    planned_quantity = models.DecimalField(max_digits=15, decimal_places=4)
    yield_quantity = models.DecimalField(
        max_digits=15,
        decimal_places=4,
        null=True,
        blank=True,
        help_text="Expected output recorded before completion",
    )
    yield_actual = models.DecimalField(
        max_digits=15,
        decimal_places=4,
        null=True,
        blank=True,
        help_text="Output actually stocked at completion",
    )
    lifecycle_state = models.CharField(
        max_length=20,
        choices=LifecycleState.choices,
        default=LifecycleState.PLANNED,
    )
    qc_outcome = models.CharField(
        max_length=10,
        choices=QcOutcome.choices,
        null=True,
        blank=True,
    )
    planned_date = models.DateField(null=True, blank=True)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    delayed_at = models.DateTimeField(null=True, blank=True)
    qc_checked_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True, default="")
    created_by = models.ForeignKey(
        "accounts.Member",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="production_batches",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = "production batches"
        ordering = ["-created_at"]

    @property
    def display_status(self):
        if not self.qc_outcome:
            return self.lifecycle_state
        return f"{self.lifecycle_state}/QC_{self.get_qc_outcome_display().upper()}"

    @property
    def is_completed(self):
        return self.lifecycle_state == self.LifecycleState.COMPLETED

    def __str__(self):
        return f"{self.batch_number} ({self.display_status})"


class BatchIngredient(models.Model):
    batch = models.ForeignKey(
        ProductionBatch,
        on_delete=models.CASCADE,
        related_name="ingredients",
    )
    sku = models.ForeignKey(
        "stock.Sku",
        on_delete=models.PROTECT,
        related_name="batch_ingredients",
    )
    required_quantity = models.DecimalField(max_digits=15, decimal_places=4)
    used_quantity = models.DecimalField(
        max_digits=15,
        decimal_places=4,
        null=True,
        blank=True,
        help_text="Actual usage; consumption falls back to the required quantity when empty",
    )
    consumed_quantity = models.DecimalField(max_digits=15, decimal_places=4, null=True, blank=True)
    consumed_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["id"]
        unique_together = [("batch", "sku")]

    @property
    def consumption_quantity(self):
        return self.used_quantity if self.used_quantity is not None else self.required_quantity

    @property
    def variance(self):
        if self.used_quantity is None:
            return None
        return self.used_quantity - self.required_quantity

    def __str__(self):
        return f"{self.batch.batch_number}: {self.sku.code}"


class QcCheck(AppendOnlyModel):
    class CheckType(models.TextChoices):
        VISUAL = "VISUAL", "Visual"
        WEIGHT = "WEIGHT", "Weight"
        TEXTURE = "TEXTURE", "Texture"
        TASTE = "TASTE", "Taste"
        PACKAGING = "PACKAGING", "Packaging"
        OTHER = "OTHER", "Other"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    batch = models.ForeignKey(
        ProductionBatch,
        on_delete=models.PROTECT,
        related_name="qc_checks",
    )
    check_type = models.CharField(max_length=20, choices=CheckType.choices)
    result = models.CharField(max_length=10, choices=ProductionBatch.QcOutcome.choices)
    notes = models.TextField(blank=True, default="")
    checked_by = models.CharField(max_length=100, blank=True, default="")
    member = models.ForeignKey(
        "accounts.Member",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="qc_checks",
    )
    checked_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "QC check"
        ordering = ["-checked_at", "-id"]

    def __str__(self):
        return f"{self.batch.batch_number} {self.check_type}: {self.result}"


class InventoryLot(AppendOnlyModel):
    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    organization = models.ForeignKey(
        "accounts.Organization",
        on_delete=models.PROTECT,
        related_name="inventory_lots",
    )
    sku = models.ForeignKey(
        "stock.Sku",
        on_delete=models.PROTECT,
        related_name="lots",
    )
    batch = models.OneToOneField(
        ProductionBatch,
        on_delete=models.PROTECT,
        related_name="lot",
    )
    location = models.ForeignKey(
        "stock.Location",
        on_delete=models.PROTECT,
        related_name="lots",
    )
    lot_number = models.CharField(max_length=30, unique=True)
    quantity = models.DecimalField(max_digits=15, decimal_places=4)
    manufacture_date = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-manufacture_date", "-id"]

    def __str__(self):
        return f"{self.lot_number} ({self.sku.code} x {self.quantity})"
