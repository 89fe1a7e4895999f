from django.db import migrations, models


class Migration(migrations.Migration):
    dependencies = [
        ("sync", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="DeletedRecord",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("entity_type", models.CharField(max_length=50)),
                ("record_id", models.CharField(max_length=64)),
                ("deleted_at", models.BigIntegerField()),
                ("device_id", models.CharField(max_length=120, blank=True)),
            ],
            options={"ordering": ["-deleted_at"]},
        ),
        migrations.AddConstraint(
            model_name="deletedrecord",
            constraint=models.UniqueConstraint(fields=("entity_type", "record_id"), name="sync_deletedrecord_unique"),
        ),
    ]
