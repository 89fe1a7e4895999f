from decimal import Decimal
from io import StringIO
from unittest import mock

from django.core.management import call_command
from django.db import DatabaseError
from django.test import TestCase
from rest_framework.test import APITestCase

from .models import Branch, Cashier, ConflictLog, Customer, DeletedRecord, Product, Sale, Supplier, SyncLog
from .services import merge
from .services.merge import ENTITY_TYPES


class SyncApiTests(APITestCase):
    def _sync(self, payload):
        return self.client.post("/api/sync", payload, format="json")

    def _product(self, **overrides):
        data = {"id": "p1", "name": "Rice", "price": 100, "lastModified": 1000}
        data.update(overrides)
        return data

    def test_insert_if_absent(self):
        resp = self._sync({"deviceId": "till-1", "products": [self._product(lastModified=1)]})
        self.assertEqual(resp.status_code, 200)
        product = Product.objects.get(pk="p1")
        self.assertEqual(product.name, "Rice")
        self.assertEqual(product.price, Decimal("100"))
        self.assertEqual(product.last_modified, 1)
        self.assertEqual(SyncLog.objects.get().status, "applied")

    def test_response_carries_every_collection(self):
        resp = self._sync({})
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        for entity in ENTITY_TYPES:
            self.assertEqual(body[entity.collection], [])
        self.assertIn("serverTime", body)
        self.assertEqual(
            set(body["acknowledgedDeletions"]),
            {entity.deleted_key for entity in ENTITY_TYPES if entity.deleted_key},
        )

    def test_echoes_inserted_record(self):
        resp = self._sync({"products": [self._product()]})
        echoed = resp.json()["products"]
        self.assertEqual(len(echoed), 1)
        self.assertEqual(echoed[0]["id"], "p1")
        self.assertEqual(echoed[0]["price"], 100.0)
        self.assertEqual(echoed[0]["lastModified"], 1000)
        self.assertEqual(echoed[0]["version"], 1)

    def test_older_write_is_discarded(self):
        Product.objects.create(id="p1", name="Rice", price=100, last_modified=1000)
        resp = self._sync({"deviceId": "till-2", "products": [self._product(price=90, lastModified=999)]})
        self.assertEqual(resp.status_code, 200)
        product = Product.objects.get(pk="p1")
        self.assertEqual(product.price, Decimal("100"))
        self.assertEqual(product.last_modified, 1000)
        conflict = ConflictLog.objects.get()
        self.assertEqual(conflict.entity_type, "product")
        self.assertEqual(conflict.device_id, "till-2")
        self.assertEqual(conflict.client_payload["lastModified"], 999)
        self.assertEqual(resp.json()["products"][0]["price"], 100.0)

    def test_newer_write_overwrites(self):
        Product.objects.create(id="p1", name="Rice", price=100, last_modified=1000)
        self._sync({"products": [self._product(name="Brown rice", price=120, lastModified=1001)]})
        product = Product.objects.get(pk="p1")
        self.assertEqual(product.name, "Brown rice")
        self.assertEqual(product.price, Decimal("120"))
        self.assertEqual(product.last_modified, 1001)
        self.assertEqual(ConflictLog.objects.count(), 0)

    def test_tie_goes_to_stored_record(self):
        Product.objects.create(id="p1", name="Rice", price=100, last_modified=1000)
        self._sync({"products": [self._product(price=50, lastModified=1000)]})
        self.assertEqual(Product.objects.get(pk="p1").price, Decimal("100"))
        self.assertEqual(ConflictLog.objects.count(), 1)

    def test_version_outranks_wall_clock(self):
        Product.objects.create(id="p1", name="Rice", price=100, last_modified=5000, version=3)
        self._sync({"products": [self._product(price=70, lastModified=9000, version=2)]})
        self.assertEqual(Product.objects.get(pk="p1").price, Decimal("100"))

        self._sync({"products": [self._product(price=80, lastModified=10, version=4)]})
        product = Product.objects.get(pk="p1")
        self.assertEqual(product.price, Decimal("80"))
        self.assertEqual(product.version, 4)

    def test_record_without_timestamp_always_overwrites(self):
        Supplier.objects.create(id="s1", name="Acme", phone="111", last_modified=5000)
        self._sync({"suppliers": [{"id": "s1", "name": "Acme Ltd", "phone": "222"}]})
        supplier = Supplier.objects.get(pk="s1")
        self.assertEqual(supplier.name, "Acme Ltd")
        self.assertEqual(supplier.phone, "222")
        self.assertEqual(supplier.last_modified, 5000)

    def test_deletion_removes_record_and_is_acknowledged(self):
        Branch.objects.create(id="b1", name="Main", last_modified=1)
        resp = self._sync({"deletedBranchIds": ["b1", "missing"]})
        self.assertEqual(resp.status_code, 200)
        self.assertFalse(Branch.objects.filter(pk="b1").exists())
        body = resp.json()
        self.assertEqual(body["branches"], [])
        self.assertEqual(body["acknowledgedDeletions"]["deletedBranchIds"], ["b1", "missing"])

    def test_deletion_runs_before_upsert(self):
        Product.objects.create(id="p1", name="Old", last_modified=5000)
        self._sync({"products": [self._product(lastModified=1)], "deletedProductIds": ["p1"]})
        product = Product.objects.get(pk="p1")
        self.assertEqual(product.name, "Rice")
        self.assertEqual(product.last_modified, 1)

    def test_cashier_may_reference_missing_branch(self):
        resp = self._sync({"cashiers": [{"id": "c1", "name": "Ann", "pin": "1234", "branchId": "gone", "lastModified": 1}]})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(Cashier.objects.get(pk="c1").branch_id, "gone")
        self.assertEqual(resp.json()["cashiers"][0]["branchId"], "gone")

    def test_sale_keeps_items(self):
        sale = {
            "id": "s-1",
            "items": [{"id": "p1", "name": "Rice", "price": 100, "quantity": 2}],
            "total": 200,
            "paymentMethod": "cash",
            "date": "2024-05-01 10:00",
            "receiptNo": "R1",
            "userName": "Ann",
            "lastModified": 1,
        }
        resp = self._sync({"sales": [sale]})
        self.assertEqual(resp.status_code, 200)
        stored = Sale.objects.get(pk="s-1")
        self.assertEqual(stored.items[0]["quantity"], 2)
        self.assertEqual(stored.receipt_no, "R1")
        self.assertEqual(resp.json()["sales"][0]["items"][0]["name"], "Rice")

    def test_malformed_collection_is_rejected_without_changes(self):
        resp = self._sync({"branches": [{"id": "b1", "name": "Main", "lastModified": 1}], "products": "nope"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(Branch.objects.count(), 0)
        self.assertEqual(SyncLog.objects.get().status, "rejected")

    def test_invalid_record_rejects_whole_request(self):
        resp = self._sync(
            {
                "products": [self._product()],
                "customers": [{"id": "cu1", "lastModified": 1}],
            }
        )
        self.assertEqual(resp.status_code, 400)
        self.assertIn("customers", resp.json())
        self.assertEqual(Product.objects.count(), 0)

    def test_tombstones_must_be_a_list(self):
        resp = self._sync({"deletedProductIds": "p1"})
        self.assertEqual(resp.status_code, 400)

    def test_storage_error_rolls_back_everything(self):
        Branch.objects.create(id="b1", name="Main", last_modified=1)
        real_merge = merge.merge_entity
        calls = []

        def failing_merge(entity, records, deleted_ids, device_id=""):
            calls.append(entity.collection)
            if entity.collection == "cashiers":
                raise DatabaseError("disk full")
            return real_merge(entity, records, deleted_ids, device_id=device_id)

        with mock.patch("apps.sync.services.merge.merge_entity", side_effect=failing_merge):
            resp = self._sync(
                {
                    "products": [self._product()],
                    "deletedBranchIds": ["b1"],
                    "cashiers": [{"id": "c1", "name": "Ann", "lastModified": 1}],
                }
            )

        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.json(), {"error": "Sync failed"})
        self.assertEqual(calls, ["products", "branches", "cashiers"])
        self.assertFalse(Product.objects.exists())
        self.assertTrue(Branch.objects.filter(pk="b1").exists())
        self.assertEqual(SyncLog.objects.get().status, "failed")

    def test_resync_is_idempotent(self):
        payload = {"products": [self._product()], "branches": [{"id": "b1", "name": "Main", "lastModified": 5}]}
        first = self._sync(payload).json()
        second = self._sync(payload).json()
        for entity in ENTITY_TYPES:
            self.assertEqual(first[entity.collection], second[entity.collection])

    def test_money_values_are_rounded_to_cents(self):
        sale = {"id": "s-1", "items": [], "total": 3 * 1.1, "lastModified": 1}
        resp = self._sync({"products": [self._product(price=1.999)], "sales": [sale]})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(Product.objects.get(pk="p1").price, Decimal("2.00"))
        self.assertEqual(Sale.objects.get(pk="s-1").total, Decimal("3.30"))
        body = resp.json()
        self.assertEqual(body["products"][0]["price"], 2.0)
        self.assertEqual(body["sales"][0]["total"], 3.3)

    def test_stale_copy_does_not_revive_deleted_record(self):
        Customer.objects.create(id="cu1", name="Jane", last_modified=1000)
        self._sync({"deviceId": "till-1", "deletedCustomerIds": ["cu1"]})
        tombstone = DeletedRecord.objects.get(entity_type="customer", record_id="cu1")
        self.assertEqual(tombstone.device_id, "till-1")

        resp = self._sync({"deviceId": "till-2", "customers": [{"id": "cu1", "name": "Jane", "lastModified": 1000}]})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["customers"], [])
        self.assertFalse(Customer.objects.filter(pk="cu1").exists())

        self._sync({"customers": [{"id": "cu1", "name": "Jane"}]})
        self.assertFalse(Customer.objects.filter(pk="cu1").exists())

    def test_edit_after_deletion_revives_record(self):
        self._sync({"deletedCustomerIds": ["cu1"]})
        later = DeletedRecord.objects.get(record_id="cu1").deleted_at + 1
        self._sync({"customers": [{"id": "cu1", "name": "Jane again", "lastModified": later}]})
        self.assertEqual(Customer.objects.get(pk="cu1").name, "Jane again")
        self.assertFalse(DeletedRecord.objects.filter(record_id="cu1").exists())

    def test_recreated_in_same_request_clears_tombstone(self):
        self._sync({"deletedProductIds": ["p1"]})
        self._sync({"products": [self._product(lastModified=1)], "deletedProductIds": ["p1"]})
        self.assertTrue(Product.objects.filter(pk="p1").exists())
        self.assertFalse(DeletedRecord.objects.filter(record_id="p1").exists())


class MigrationTests(TestCase):
    def test_models_have_no_pending_migrations(self):
        call_command("makemigrations", "sync", check=True, dry_run=True, stdout=StringIO())
