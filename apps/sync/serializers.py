import math
from decimal import ROUND_HALF_UP, Decimal

from rest_framework import serializers

from .models import Branch, Cashier, Customer, Owner, Product, Sale, Supplier

# Largest amount a DecimalField(max_digits=12, decimal_places=2) column holds.
MONEY_LIMIT = 9_999_999_999.99


class MoneyField(serializers.FloatField):
    """Any JSON number in, rounded to cents; a plain number out."""

    CENT = Decimal("0.01")

    def __init__(self, **kwargs):
        kwargs.setdefault("max_value", MONEY_LIMIT)
        kwargs.setdefault("min_value", -MONEY_LIMIT)
        super().__init__(**kwargs)

    def to_internal_value(self, data):
        value = super().to_internal_value(data)
        if not math.isfinite(value):
            self.fail("invalid")
        return Decimal(str(value)).quantize(self.CENT, rounding=ROUND_HALF_UP)

    def to_representation(self, value):
        return float(value)


class SyncedRecordSerializer(serializers.ModelSerializer):
    """Wire shape of a synced record: camelCase keys, client-assigned id."""

    # Declared explicitly so the primary key stays writable without a
    # uniqueness validator; upserts resend ids the server already holds.
    id = serializers.CharField(max_length=64)
    lastModified = serializers.IntegerField(source="last_modified", required=False, allow_null=True)
    version = serializers.IntegerField(min_value=1, required=False)


class ProductSerializer(SyncedRecordSerializer):
    price = MoneyField(required=False)

    class Meta:
        model = Product
        fields = ["id", "name", "category", "description", "price", "stock", "supplier", "lastModified", "version"]


class BranchSerializer(SyncedRecordSerializer):
    class Meta:
        model = Branch
        fields = ["id", "name", "location", "lastModified", "version"]


class CashierSerializer(SyncedRecordSerializer):
    branchId = serializers.CharField(source="branch_id", max_length=64, required=False, allow_blank=True)

    class Meta:
        model = Cashier
        fields = ["id", "name", "pin", "branchId", "lastModified", "version"]


class SupplierSerializer(SyncedRecordSerializer):
    class Meta:
        model = Supplier
        fields = ["id", "name", "location", "phone", "email", "category", "lastModified", "version"]


class SaleItemSerializer(serializers.Serializer):
    id = serializers.CharField(max_length=64)
    name = serializers.CharField(max_length=255, required=False, allow_blank=True)
    price = serializers.FloatField(required=False, default=0)
    quantity = serializers.IntegerField(min_value=0, required=False, default=1)


class SaleSerializer(SyncedRecordSerializer):
    items = SaleItemSerializer(many=True, required=False)
    total = MoneyField(required=False)
    paymentMethod = serializers.CharField(source="payment_method", max_length=30, required=False, allow_blank=True)
    receiptNo = serializers.CharField(source="receipt_no", max_length=64, required=False, allow_blank=True)
    userName = serializers.CharField(source="user_name", max_length=255, required=False, allow_blank=True)

    class Meta:
        model = Sale
        fields = ["id", "items", "total", "paymentMethod", "date", "receiptNo", "userName", "lastModified", "version"]


class CustomerSerializer(SyncedRecordSerializer):
    class Meta:
        model = Customer
        fields = ["id", "name", "phone", "email", "address", "lastModified", "version"]


class OwnerSerializer(serializers.ModelSerializer):
    class Meta:
        model = Owner
        fields = ["id", "name", "pin", "role"]
