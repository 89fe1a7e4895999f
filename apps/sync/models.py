from django.core.serializers.json import DjangoJSONEncoder
from django.db import models


class SyncedRecord(models.Model):
    """Columns shared by every entity type exchanged through /api/sync."""

    id = models.CharField(primary_key=True, max_length=64)
    last_modified = models.BigIntegerField(null=True, blank=True)
    version = models.PositiveIntegerField(default=1)
    updated_at = models.DateTimeField(auto_now=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        abstract = True
        ordering = ["created_at", "id"]


class Product(SyncedRecord):
    name = models.CharField(max_length=255)
    category = models.CharField(max_length=120, blank=True, default="")
    description = models.TextField(blank=True, default="")
    price = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    stock = models.IntegerField(default=0)
    supplier = models.CharField(max_length=255, blank=True, default="")

    def __str__(self) -> str:
        return self.name


class Branch(SyncedRecord):
    name = models.CharField(max_length=255)
    location = models.CharField(max_length=255, blank=True, default="")

    class Meta(SyncedRecord.Meta):
        verbose_name_plural = "branches"

    def __str__(self) -> str:
        return self.name


class Cashier(SyncedRecord):
    name = models.CharField(max_length=255)
    pin = models.CharField(max_length=16, blank=True, default="")
    # Plain id, not a ForeignKey: a cashier may outlive its branch.
    branch_id = models.CharField(max_length=64, blank=True, default="", db_index=True)

    def __str__(self) -> str:
        return self.name


class Supplier(SyncedRecord):
    name = models.CharField(max_length=255)
    location = models.CharField(max_length=255, blank=True, default="")
    phone = models.CharField(max_length=50, blank=True, default="")
    email = models.CharField(max_length=255, blank=True, default="")
    category = models.CharField(max_length=120, blank=True, default="")

    def __str__(self) -> str:
        return self.name


class Sale(SyncedRecord):
    items = models.JSONField(default=list, blank=True)
    total = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    payment_method = models.CharField(max_length=30, blank=True, default="")
    date = models.CharField(max_length=64, blank=True, default="")
    receipt_no = models.CharField(max_length=64, blank=True, default="")
    user_name = models.CharField(max_length=255, blank=True, default="")

    def __str__(self) -> str:
        return f"Sale {self.receipt_no or self.id}"


class Customer(SyncedRecord):
    name = models.CharField(max_length=255)
    phone = models.CharField(max_length=50, blank=True, default="")
    email = models.CharField(max_length=255, blank=True, default="")
    address = models.CharField(max_length=255, blank=True, default="")

    def __str__(self) -> str:
        return self.name


class Owner(models.Model):
    id = models.CharField(primary_key=True, max_length=64)
    name = models.CharField(max_length=255)
    pin = models.CharField(max_length=16)
    role = models.CharField(max_length=20, default="owner", db_index=True)

    def __str__(self) -> str:
        return self.name


class SyncLog(models.Model):
    STATUS_CHOICES = [("applied", "applied"), ("rejected", "rejected"), ("failed", "failed")]

    device_id = models.CharField(max_length=120, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="applied")
    summary = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.device_id or 'unknown'} {self.status}"


class DeletedRecord(models.Model):
    """Server-side tombstone; keeps a deleted id from being revived by a stale till."""

    entity_type = models.CharField(max_length=50)
    record_id = models.CharField(max_length=64)
    # Server clock in epoch milliseconds, comparable with lastModified.
    deleted_at = models.BigIntegerField()
    device_id = models.CharField(max_length=120, blank=True)

    class Meta:
        ordering = ["-deleted_at"]
        constraints = [
            models.UniqueConstraint(fields=["entity_type", "record_id"], name="sync_deletedrecord_unique"),
        ]

    def __str__(self) -> str:
        return f"{self.entity_type} {self.record_id}"


class ConflictLog(models.Model):
    entity_type = models.CharField(max_length=50)
    entity_id = models.CharField(max_length=64)
    device_id = models.CharField(max_length=120, blank=True)
    server_payload = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    client_payload = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.entity_type} {self.entity_id}"
