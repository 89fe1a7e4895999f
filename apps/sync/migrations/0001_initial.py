from django.core.serializers.json import DjangoJSONEncoder
from django.db import migrations, models


def _synced_fields():
    return [
        ("id", models.CharField(max_length=64, primary_key=True, serialize=False)),
        ("last_modified", models.BigIntegerField(null=True, blank=True)),
        ("version", models.PositiveIntegerField(default=1)),
        ("updated_at", models.DateTimeField(auto_now=True)),
        ("created_at", models.DateTimeField(auto_now_add=True)),
    ]


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Product",
            fields=_synced_fields()
            + [
                ("name", models.CharField(max_length=255)),
                ("category", models.CharField(max_length=120, blank=True, default="")),
                ("description", models.TextField(blank=True, default="")),
                ("price", models.DecimalField(max_digits=12, decimal_places=2, default=0)),
                ("stock", models.IntegerField(default=0)),
                ("supplier", models.CharField(max_length=255, blank=True, default="")),
            ],
            options={"ordering": ["created_at", "id"], "abstract": False},
        ),
        migrations.CreateModel(
            name="Branch",
            fields=_synced_fields()
            + [
                ("name", models.CharField(max_length=255)),
                ("location", models.CharField(max_length=255, blank=True, default="")),
            ],
            options={"ordering": ["created_at", "id"], "abstract": False, "verbose_name_plural": "branches"},
        ),
        migrations.CreateModel(
            name="Cashier",
            fields=_synced_fields()
            + [
                ("name", models.CharField(max_length=255)),
                ("pin", models.CharField(max_length=16, blank=True, default="")),
                ("branch_id", models.CharField(max_length=64, blank=True, default="", db_index=True)),
            ],
            options={"ordering": ["created_at", "id"], "abstract": False},
        ),
        migrations.CreateModel(
            name="Supplier",
            fields=_synced_fields()
            + [
                ("name", models.CharField(max_length=255)),
                ("location", models.CharField(max_length=255, blank=True, default="")),
                ("phone", models.CharField(max_length=50, blank=True, default="")),
                ("email", models.CharField(max_length=255, blank=True, default="")),
                ("category", models.CharField(max_length=120, blank=True, default="")),
            ],
            options={"ordering": ["created_at", "id"], "abstract": False},
        ),
        migrations.CreateModel(
            name="Sale",
            fields=_synced_fields()
            + [
                ("items", models.JSONField(default=list, blank=True)),
                ("total", models.DecimalField(max_digits=12, decimal_places=2, default=0)),
                ("payment_method", models.CharField(max_length=30, blank=True, default="")),
                ("date", models.CharField(max_length=64, blank=True, default="")),
                ("receipt_no", models.CharField(max_length=64, blank=True, default="")),
                ("user_name", models.CharField(max_length=255, blank=True, default="")),
            ],
            options={"ordering": ["created_at", "id"], "abstract": False},
        ),
        migrations.CreateModel(
            name="Customer",
            fields=_synced_fields()
            + [
                ("name", models.CharField(max_length=255)),
                ("phone", models.CharField(max_length=50, blank=True, default="")),
                ("email", models.CharField(max_length=255, blank=True, default="")),
                ("address", models.CharField(max_length=255, blank=True, default="")),
            ],
            options={"ordering": ["created_at", "id"], "abstract": False},
        ),
        migrations.CreateModel(
            name="Owner",
            fields=[
                ("id", models.CharField(max_length=64, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255)),
                ("pin", models.CharField(max_length=16)),
                ("role", models.CharField(max_length=20, default="owner", db_index=True)),
            ],
        ),
        migrations.CreateModel(
            name="SyncLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("device_id", models.CharField(max_length=120, blank=True)),
                (
                    "status",
                    models.CharField(
                        max_length=20,
                        choices=[("applied", "applied"), ("rejected", "rejected"), ("failed", "failed")],
                        default="applied",
                    ),
                ),
                ("summary", models.JSONField(default=dict, blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={"ordering": ["-created_at"]},
        ),
        migrations.CreateModel(
            name="ConflictLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("entity_type", models.CharField(max_length=50)),
                ("entity_id", models.CharField(max_length=64)),
                ("device_id", models.CharField(max_length=120, blank=True)),
                ("server_payload", models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)),
                ("client_payload", models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={"ordering": ["-created_at"]},
        ),
    ]
