import os
import shutil
import tempfile
import unittest
from urllib.parse import urlsplit

import requests
from django.core.cache import cache
from rest_framework.test import APITestCase

from apps.sync.models import Owner, Product

from .entities import ENTITY_BY_COLLECTION, ENTITY_TYPES
from .exceptions import DeletionNotSupported, InvalidRecord, LocalStoreError, SyncFailure
from .mutation_log import EntityLog, sent_versions
from .reconciler import SyncReconciler
from .state import AppState
from .storage import LocalStore


class FakeClock:
    def __init__(self, start=1000):
        self.now = start

    def __call__(self):
        return self.now


def _empty_response(**overrides):
    body = {entity.collection: [] for entity in ENTITY_TYPES}
    body.update(overrides)
    return body


class FakeResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self._body = body

    def json(self):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


class FakeSession:
    """Scripted stand-in for requests.Session."""

    def __init__(self, response=None, error=None, on_post=None):
        self.headers = {}
        self.response = response or FakeResponse(body=_empty_response())
        self.error = error
        self.on_post = on_post
        self.posted = []

    def post(self, url, json=None, timeout=None):
        self.posted.append((url, json, timeout))
        if self.on_post:
            self.on_post()
        if self.error:
            raise self.error
        return self.response

    def get(self, url, timeout=None):
        return FakeResponse(404, {"error": "Owner not found"})


class DjangoClientSession:
    """Routes reconciler HTTP calls into the Django test client."""

    def __init__(self, client):
        self.client = client
        self.headers = {}

    def post(self, url, json=None, timeout=None):
        return self.client.post(urlsplit(url).path, json, format="json")

    def get(self, url, timeout=None):
        return self.client.get(urlsplit(url).path)


class LocalStoreTests(unittest.TestCase):
    def setUp(self):
        self.store = LocalStore(":memory:")

    def tearDown(self):
        self.store.close()

    def test_write_and_read(self):
        self.store.write("product_records", [{"id": "p1"}])
        self.assertEqual(self.store.read_list("product_records"), [{"id": "p1"}])
        self.assertEqual(self.store.read("missing", "fallback"), "fallback")

    def test_non_list_reads_as_empty_list(self):
        self.store.write("product_records", {"id": "p1"})
        self.assertEqual(self.store.read_list("product_records"), [])

    def test_undecodable_value_reads_as_empty(self):
        self.store._conn.execute(
            "INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?)", ("product_records", "{not json", "now")
        )
        self.assertEqual(self.store.read_list("product_records"), [])

    def test_transaction_rolls_back_on_error(self):
        self.store.write("a", 1)
        with self.assertRaises(RuntimeError):
            with self.store.transaction():
                self.store.write("a", 2)
                self.store.write("b", 3)
                raise RuntimeError("boom")
        self.assertEqual(self.store.read("a"), 1)
        self.assertIsNone(self.store.read("b"))

    def test_unserialisable_value_raises(self):
        with self.assertRaises(LocalStoreError):
            self.store.write("a", object())


class CorruptStoreTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def test_corrupt_file_reads_as_no_data(self):
        path = os.path.join(self.tmpdir, "store.sqlite3")
        with open(path, "wb") as fh:
            fh.write(b"this is not a database" * 100)
        store = LocalStore(path)
        self.assertFalse(store.available)
        log = EntityLog(store, ENTITY_BY_COLLECTION["products"])
        self.assertEqual(log.snapshot_for_sync(), ([], []))
        with self.assertRaises(LocalStoreError):
            log.upsert_local({"name": "Rice"})

    def test_persists_across_reopen(self):
        path = os.path.join(self.tmpdir, "store.sqlite3")
        store = LocalStore(path)
        EntityLog(store, ENTITY_BY_COLLECTION["branches"]).upsert_local({"id": "b1", "name": "Main"})
        store.close()
        reopened = LocalStore(path)
        self.assertEqual(EntityLog(reopened, ENTITY_BY_COLLECTION["branches"]).get("b1")["name"], "Main")
        reopened.close()


class EntityLogTests(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.store = LocalStore(":memory:")
        self.products = EntityLog(self.store, ENTITY_BY_COLLECTION["products"], clock=self.clock)

    def tearDown(self):
        self.store.close()

    def test_insert_assigns_id_timestamp_and_version(self):
        record = self.products.upsert_local({"name": "Rice", "price": 100})
        self.assertTrue(record["id"].startswith("1000-"))
        self.assertEqual(record["lastModified"], 1000)
        self.assertEqual(record["version"], 1)
        self.assertEqual(self.products.all(), [record])

    def test_insert_keeps_given_id(self):
        record = self.products.upsert_local({"id": "p1", "name": "Rice"})
        self.assertEqual(record["id"], "p1")

    def test_update_replaces_record_and_bumps_stamps(self):
        self.products.upsert_local({"id": "p1", "name": "Rice", "price": 100, "stock": 4})
        self.clock.now = 2000
        updated = self.products.upsert_local({"id": "p1", "name": "Rice", "price": 120})
        self.assertEqual(updated["lastModified"], 2000)
        self.assertEqual(updated["version"], 2)
        self.assertNotIn("stock", self.products.get("p1"))
        self.assertEqual(len(self.products.all()), 1)

    def test_last_modified_increases_when_clock_steps_back(self):
        self.products.upsert_local({"id": "p1", "name": "Rice"})
        self.clock.now = 400
        updated = self.products.upsert_local({"id": "p1", "name": "Rice"})
        self.assertEqual(updated["lastModified"], 1001)

    def test_required_fields(self):
        with self.assertRaises(InvalidRecord):
            self.products.upsert_local({"id": "p1", "price": 10})
        sales = EntityLog(self.store, ENTITY_BY_COLLECTION["sales"], clock=self.clock)
        with self.assertRaises(InvalidRecord):
            sales.upsert_local({"items": []})
        self.assertEqual(sales.upsert_local({"items": [], "total": 0})["version"], 1)

    def test_delete_tombstones_once(self):
        self.products.upsert_local({"id": "p1", "name": "Rice"})
        self.assertTrue(self.products.delete_local("p1"))
        self.products.upsert_local({"id": "p1", "name": "Rice again"})
        self.products.delete_local("p1")
        self.assertEqual(self.products.snapshot_for_sync(), ([], ["p1"]))

    def test_delete_unknown_id_has_no_effect(self):
        self.assertFalse(self.products.delete_local("nope"))
        self.assertEqual(self.products.tombstones(), [])

    def test_sales_cannot_be_deleted(self):
        sales = EntityLog(self.store, ENTITY_BY_COLLECTION["sales"])
        with self.assertRaises(DeletionNotSupported):
            sales.delete_local("s1")

    def test_snapshot_is_a_copy(self):
        self.products.upsert_local({"id": "p1", "name": "Rice"})
        records, tombstones = self.products.snapshot_for_sync()
        records[0]["name"] = "changed"
        tombstones.append("x")
        self.assertEqual(self.products.get("p1")["name"], "Rice")
        self.assertEqual(self.products.tombstones(), [])

    def test_apply_authoritative_replaces_and_clears(self):
        self.products.upsert_local({"id": "p1", "name": "Rice"})
        self.products.upsert_local({"id": "p2", "name": "Sugar"})
        self.products.delete_local("p2")
        server = [{"id": "p9", "name": "Salt", "lastModified": 5, "version": 1}]
        self.products.apply_authoritative(server)
        self.assertEqual(self.products.all(), server)
        self.assertEqual(self.products.tombstones(), [])

    def test_apply_authoritative_keeps_unacknowledged_tombstones(self):
        for record_id in ("p1", "p2"):
            self.products.upsert_local({"id": record_id, "name": record_id})
            self.products.delete_local(record_id)
        self.products.apply_authoritative([{"id": "p2", "name": "p2"}], acknowledged_ids=["p1"])
        self.assertEqual(self.products.tombstones(), ["p2"])
        self.assertEqual(self.products.all(), [])

    def test_apply_authoritative_keeps_records_written_after_snapshot(self):
        self.products.upsert_local({"id": "p1", "name": "Rice"})
        self.products.upsert_local({"id": "p2", "name": "Sugar"})
        records, _ = self.products.snapshot_for_sync()
        sent = sent_versions(records)

        self.clock.now = 2000
        self.products.upsert_local({"id": "p2", "name": "Brown sugar"})
        self.products.upsert_local({"id": "p3", "name": "Salt"})
        server = [{"id": "p1", "name": "Rice", "lastModified": 1000, "version": 1},
                  {"id": "p2", "name": "Sugar", "lastModified": 1000, "version": 1}]
        self.products.apply_authoritative(server, acknowledged_ids=[], sent=sent)

        self.assertEqual(self.products.get("p1"), server[0])
        self.assertEqual(self.products.get("p2")["name"], "Brown sugar")
        self.assertEqual(self.products.get("p3")["name"], "Salt")


class ReconcilerFailureTests(unittest.TestCase):
    def setUp(self):
        self.state = AppState(LocalStore(":memory:"), clock=FakeClock())
        self.state.log("products").upsert_local({"id": "p1", "name": "Rice"})
        self.state.log("branches").upsert_local({"id": "b1", "name": "Main"})
        self.state.log("branches").delete_local("b1")
        self.before = {entity.collection: self.state.log(entity.collection).snapshot_for_sync() for entity in ENTITY_TYPES}

    def tearDown(self):
        self.state.store.close()

    def _sync(self, session, **kwargs):
        return SyncReconciler(self.state, "http://pos.test/", timeout=5, session=session, **kwargs).request_sync()

    def _assert_untouched(self):
        after = {entity.collection: self.state.log(entity.collection).snapshot_for_sync() for entity in ENTITY_TYPES}
        self.assertEqual(after, self.before)

    def test_payload_shape(self):
        session = FakeSession()
        self._sync(session)
        url, payload, timeout = session.posted[0]
        self.assertEqual(url, "http://pos.test/api/sync")
        self.assertEqual(timeout, 5)
        self.assertEqual([record["id"] for record in payload["products"]], ["p1"])
        self.assertEqual(payload["deletedBranchIds"], ["b1"])
        self.assertEqual(payload["deletedProductIds"], [])
        self.assertIn("sales", payload)
        self.assertNotIn("deletedSaleIds", payload)

    def test_timeout(self):
        result = self._sync(FakeSession(error=requests.exceptions.Timeout("slow")))
        self.assertFalse(result.ok)
        self.assertEqual(result.failure, SyncFailure.TIMEOUT)
        self._assert_untouched()

    def test_connection_error(self):
        result = self._sync(FakeSession(error=requests.exceptions.ConnectionError("down")))
        self.assertEqual(result.failure, SyncFailure.TRANSPORT)
        self._assert_untouched()

    def test_error_status(self):
        result = self._sync(FakeSession(response=FakeResponse(500, {"error": "Sync failed"})))
        self.assertEqual(result.failure, SyncFailure.TRANSPORT)
        self.assertEqual(result.message, "Sync failed. Please try again.")
        self._assert_untouched()

    def test_missing_collection(self):
        body = _empty_response()
        del body["customers"]
        result = self._sync(FakeSession(response=FakeResponse(body=body)))
        self.assertEqual(result.failure, SyncFailure.MALFORMED_RESPONSE)
        self._assert_untouched()

    def test_non_json_body(self):
        result = self._sync(FakeSession(response=FakeResponse(body=ValueError("no json"))))
        self.assertEqual(result.failure, SyncFailure.MALFORMED_RESPONSE)
        self._assert_untouched()

    def test_bad_acknowledgement(self):
        body = _empty_response(acknowledgedDeletions={"deletedBranchIds": "b1"})
        result = self._sync(FakeSession(response=FakeResponse(body=body)))
        self.assertEqual(result.failure, SyncFailure.MALFORMED_RESPONSE)
        self._assert_untouched()

    def test_overlapping_sync_is_rejected(self):
        nested = []
        session = FakeSession()
        reconciler = SyncReconciler(self.state, "http://pos.test", session=session)
        session.on_post = lambda: nested.append(reconciler.request_sync())
        result = reconciler.request_sync()
        self.assertTrue(result.ok)
        self.assertEqual(nested[0].failure, SyncFailure.IN_PROGRESS)
        self.assertEqual(len(session.posted), 1)
        self.assertFalse(reconciler.in_progress)

    def test_status_reported_to_state_and_callback(self):
        seen = []
        result = self._sync(FakeSession(error=requests.exceptions.Timeout()), on_status=seen.append)
        self.assertEqual(seen, [result])
        self.assertIs(self.state.last_sync, result)

    def test_server_without_acknowledgements_clears_all_tombstones(self):
        result = self._sync(FakeSession())
        self.assertTrue(result.ok)
        self.assertEqual(self.state.log("branches").tombstones(), [])
        self.assertEqual(self.state.log("products").all(), [])

    def test_writes_during_sync_survive(self):
        sales = self.state.log("sales")
        products = self.state.log("products")
        customers = self.state.log("customers")
        customers.upsert_local({"id": "cu1", "name": "Jane"})

        def write_during_request():
            self.state.logs["products"].clock.now = 2000
            sales.upsert_local({"id": "s9", "items": [], "total": 5})
            products.upsert_local({"id": "p1", "name": "Rice 5kg"})
            customers.delete_local("cu1")

        result = self._sync(FakeSession(on_post=write_during_request))
        self.assertTrue(result.ok)
        self.assertEqual(sales.get("s9")["total"], 5)
        self.assertEqual(products.get("p1")["name"], "Rice 5kg")
        self.assertEqual(customers.tombstones(), ["cu1"])
        self.assertEqual(self.state.log("branches").tombstones(), [])

        session = FakeSession()
        self._sync(session)
        payload = session.posted[0][1]
        self.assertEqual([record["id"] for record in payload["sales"]], ["s9"])
        self.assertEqual(payload["deletedCustomerIds"], ["cu1"])

    def test_failing_status_callback_does_not_escape(self):
        def broken(result):
            raise RuntimeError("ui gone")

        reconciler = SyncReconciler(self.state, "http://pos.test", session=FakeSession(), on_status=broken)
        with self.assertLogs("pos_client.reconciler", level="ERROR"):
            result = reconciler.request_sync()
        self.assertTrue(result.ok)
        self.assertIs(self.state.last_sync, result)
        self.assertFalse(reconciler.in_progress)


class ReconcilerEndToEndTests(APITestCase):
    def setUp(self):
        cache.clear()
        self.till_a = self._till()
        self.till_b = self._till()

    def tearDown(self):
        self.till_a.store.close()
        self.till_b.store.close()

    def _till(self):
        return AppState(LocalStore(":memory:"), clock=FakeClock())

    def _sync(self, state):
        reconciler = SyncReconciler(state, "http://testserver", device_id="till", session=DjangoClientSession(self.client))
        result = reconciler.request_sync()
        self.assertTrue(result.ok, result.message)
        return result

    def test_first_sync_stores_record_and_adopts_echo(self):
        self.till_a.log("products").upsert_local({"id": "p1", "name": "Rice", "price": 100})
        self._sync(self.till_a)
        self.assertEqual(Product.objects.get(pk="p1").last_modified, 1000)
        server_copy = self.client.get("/api/products/p1/").json()
        self.assertEqual(self.till_a.log("products").all(), [server_copy])

    def test_stale_copy_loses_and_is_replaced(self):
        self.till_a.log("products").upsert_local({"id": "p1", "name": "Rice", "price": 100})
        self._sync(self.till_a)

        self.till_b.logs["products"].clock.now = 500
        self.till_b.log("products").upsert_local({"id": "p1", "name": "Rice", "price": 90})
        self._sync(self.till_b)

        local = self.till_b.log("products").get("p1")
        self.assertEqual(local["price"], 100.0)
        self.assertEqual(local["lastModified"], 1000)

    def test_resync_without_changes_is_stable(self):
        self.till_a.log("branches").upsert_local({"id": "b1", "name": "Main", "location": "Town"})
        self.till_a.log("cashiers").upsert_local({"id": "c1", "name": "Ann", "pin": "1234", "branchId": "b1"})
        self._sync(self.till_a)
        first = {collection: log.all() for collection, log in self.till_a.logs.items()}
        self._sync(self.till_a)
        second = {collection: log.all() for collection, log in self.till_a.logs.items()}
        self.assertEqual(first, second)

    def test_deletion_propagates_and_stays_deleted(self):
        customers = self.till_a.log("customers")
        customers.upsert_local({"id": "cu1", "name": "Jane"})
        self._sync(self.till_a)
        customers.delete_local("cu1")
        self._sync(self.till_a)
        self.assertEqual(customers.snapshot_for_sync(), ([], []))
        self.assertEqual(self.client.get("/api/customers/").json(), [])

        self._sync(self.till_a)
        self.assertIsNone(customers.get("cu1"))

    def test_records_deleted_elsewhere_disappear(self):
        self.till_a.log("suppliers").upsert_local({"id": "s1", "name": "Acme"})
        self._sync(self.till_a)
        self._sync(self.till_b)
        self.assertEqual(self.till_b.log("suppliers").get("s1")["name"], "Acme")

        self.till_a.log("suppliers").delete_local("s1")
        self._sync(self.till_a)
        self._sync(self.till_b)
        self.assertEqual(self.till_b.log("suppliers").all(), [])

    def test_edits_from_two_tills_merge(self):
        self.till_a.log("products").upsert_local({"id": "p1", "name": "Rice"})
        self.till_b.log("products").upsert_local({"id": "p2", "name": "Sugar"})
        self._sync(self.till_a)
        self._sync(self.till_b)
        self.assertEqual(sorted(r["id"] for r in self.till_b.log("products").all()), ["p1", "p2"])

    def test_sales_are_appended(self):
        self.till_a.log("sales").upsert_local(
            {"id": "s1", "items": [{"id": "p1", "name": "Rice", "price": 100, "quantity": 1}], "total": 100}
        )
        self._sync(self.till_a)
        self.assertEqual(self.till_a.log("sales").get("s1")["total"], 100.0)

    def test_owner_is_cached_after_sync(self):
        self._sync(self.till_a)
        self.assertIsNone(self.till_a.owner)

        Owner.objects.create(id="owner-1", name="Jane", pin="5222")
        self._sync(self.till_a)
        self.assertEqual(self.till_a.owner["name"], "Jane")
