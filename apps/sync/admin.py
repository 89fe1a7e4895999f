from django.contrib import admin

from .models import Branch, Cashier, ConflictLog, Customer, DeletedRecord, Owner, Product, Sale, Supplier, SyncLog


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("name", "category", "price", "stock", "supplier", "version", "last_modified")
    search_fields = ("id", "name", "category", "supplier")
    list_filter = ("category",)


@admin.register(Branch)
class BranchAdmin(admin.ModelAdmin):
    list_display = ("name", "location", "version", "last_modified")
    search_fields = ("id", "name", "location")


@admin.register(Cashier)
class CashierAdmin(admin.ModelAdmin):
    list_display = ("name", "branch_id", "version", "last_modified")
    search_fields = ("id", "name", "branch_id")


@admin.register(Supplier)
class SupplierAdmin(admin.ModelAdmin):
    list_display = ("name", "category", "phone", "email", "version", "last_modified")
    search_fields = ("id", "name", "category")
    list_filter = ("category",)


@admin.register(Sale)
class SaleAdmin(admin.ModelAdmin):
    list_display = ("receipt_no", "date", "total", "payment_method", "user_name", "last_modified")
    search_fields = ("id", "receipt_no", "user_name")
    list_filter = ("payment_method",)


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ("name", "phone", "email", "version", "last_modified")
    search_fields = ("id", "name", "phone", "email")


@admin.register(Owner)
class OwnerAdmin(admin.ModelAdmin):
    list_display = ("name", "role")


@admin.register(SyncLog)
class SyncLogAdmin(admin.ModelAdmin):
    list_display = ("device_id", "status", "created_at")
    list_filter = ("status",)
    search_fields = ("device_id",)


@admin.register(ConflictLog)
class ConflictLogAdmin(admin.ModelAdmin):
    list_display = ("entity_type", "entity_id", "device_id", "created_at")
    list_filter = ("entity_type",)
    search_fields = ("entity_id", "device_id")


@admin.register(DeletedRecord)
class DeletedRecordAdmin(admin.ModelAdmin):
    list_display = ("entity_type", "record_id", "device_id", "deleted_at")
    list_filter = ("entity_type",)
    search_fields = ("record_id", "device_id")
