from io import StringIO

from django.core.cache import cache
from django.core.management import call_command
from rest_framework.test import APITestCase

from apps.sync.models import Branch, Cashier, Customer, Owner, Product, Sale, Supplier


class SearchApiTests(APITestCase):
    def setUp(self):
        Product.objects.create(id="p1", name="Basmati Rice", category="grain", supplier="s1", price=100)
        Product.objects.create(id="p2", name="Sugar", category="baking", supplier="s1", price=50)
        Product.objects.create(id="p3", name="Rice Flour", category="baking", supplier="s2", price=70)

    def _ids(self, resp, collection):
        self.assertEqual(resp.status_code, 200)
        return sorted(item["id"] for item in resp.json()[collection])

    def test_product_name_is_case_insensitive_substring(self):
        resp = self.client.post("/api/products/search", {"name": "rice"}, format="json")
        self.assertEqual(self._ids(resp, "products"), ["p1", "p3"])

    def test_product_filters_combine(self):
        resp = self.client.post("/api/products/search", {"name": "rice", "category": "baking"}, format="json")
        self.assertEqual(self._ids(resp, "products"), ["p3"])
        resp = self.client.post("/api/products/search", {"supplier": "s1"}, format="json")
        self.assertEqual(self._ids(resp, "products"), ["p1", "p2"])

    def test_empty_filters_return_everything(self):
        resp = self.client.post("/api/products/search", {"name": ""}, format="json")
        self.assertEqual(self._ids(resp, "products"), ["p1", "p2", "p3"])

    def test_cashiers_by_branch(self):
        Cashier.objects.create(id="c1", name="Ann", branch_id="b1")
        Cashier.objects.create(id="c2", name="Bob", branch_id="b2")
        resp = self.client.post("/api/cashiers/search", {"branchId": "b2"}, format="json")
        self.assertEqual(self._ids(resp, "cashiers"), ["c2"])

    def test_branches_by_location(self):
        Branch.objects.create(id="b1", name="Main", location="Nairobi CBD")
        Branch.objects.create(id="b2", name="Annex", location="Mombasa")
        resp = self.client.post("/api/branches/search", {"location": "nairobi"}, format="json")
        self.assertEqual(self._ids(resp, "branches"), ["b1"])

    def test_suppliers_by_category(self):
        Supplier.objects.create(id="s1", name="Acme", category="grain")
        Supplier.objects.create(id="s2", name="Acme Bakery", category="baking")
        resp = self.client.post("/api/suppliers/search", {"name": "acme", "category": "baking"}, format="json")
        self.assertEqual(self._ids(resp, "suppliers"), ["s2"])

    def test_customers_by_name(self):
        Customer.objects.create(id="cu1", name="Jane Doe")
        Customer.objects.create(id="cu2", name="John Roe")
        resp = self.client.post("/api/customers/search", {"name": "DOE"}, format="json")
        self.assertEqual(self._ids(resp, "customers"), ["cu1"])

    def test_sales_newest_first(self):
        Sale.objects.create(id="s1", date="2024-05-01 09:00", receipt_no="R1", user_name="Ann")
        Sale.objects.create(id="s2", date="2024-05-02 09:00", receipt_no="R2", user_name="Ann")
        Sale.objects.create(id="s3", date="2024-05-03 09:00", receipt_no="R3", user_name="Bob")
        resp = self.client.post("/api/sales/search", {"userName": "ann"}, format="json")
        self.assertEqual([item["id"] for item in resp.json()["sales"]], ["s2", "s1"])

    def test_read_only_listing(self):
        resp = self.client.get("/api/products/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(len(resp.json()), 3)
        resp = self.client.get("/api/products/p2/")
        self.assertEqual(resp.json()["name"], "Sugar")
        resp = self.client.post("/api/products/", {"id": "p9", "name": "Salt"}, format="json")
        self.assertEqual(resp.status_code, 405)


class OwnerApiTests(APITestCase):
    def setUp(self):
        cache.clear()

    def test_missing_owner(self):
        resp = self.client.get("/api/owner")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json(), {"error": "Owner not found"})

    def test_ensure_owner_command(self):
        call_command("ensure_owner", name="Jane", pin="5222", stdout=StringIO())
        call_command("ensure_owner", name="Someone else", pin="1111", stdout=StringIO())
        self.assertEqual(Owner.objects.count(), 1)
        resp = self.client.get("/api/owner")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["owner"], {"id": "owner-1", "name": "Jane", "pin": "5222", "role": "owner"})
