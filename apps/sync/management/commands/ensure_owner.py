from django.conf import settings
from django.core.management.base import BaseCommand

from apps.sync.models import Owner


class Command(BaseCommand):
    help = "Create the shop owner record if none exists yet."

    def add_arguments(self, parser):
        parser.add_argument("--name", default=settings.POS_OWNER_NAME)
        parser.add_argument("--pin", default=settings.POS_OWNER_PIN)

    def handle(self, *args, **options):
        existing = Owner.objects.filter(role="owner").first()
        if existing:
            self.stdout.write(f"Owner already exists: {existing.name}")
            return
        owner = Owner.objects.create(id="owner-1", name=options["name"], pin=options["pin"], role="owner")
        self.stdout.write(self.style.SUCCESS(f"Owner created: {owner.name}"))
