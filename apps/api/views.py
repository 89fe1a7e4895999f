from django.conf import settings
from django.core.cache import cache
from rest_framework import status, viewsets
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from apps.sync.models import Branch, Cashier, Customer, Owner, Product, Sale, Supplier
from apps.sync.serializers import (
    BranchSerializer,
    CashierSerializer,
    CustomerSerializer,
    OwnerSerializer,
    ProductSerializer,
    SaleSerializer,
    SupplierSerializer,
)

OWNER_CACHE_KEY = "pos:owner"


class ProductViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Product.objects.all()
    serializer_class = ProductSerializer
    permission_classes = [AllowAny]


class BranchViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Branch.objects.all()
    serializer_class = BranchSerializer
    permission_classes = [AllowAny]


class CashierViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Cashier.objects.all()
    serializer_class = CashierSerializer
    permission_classes = [AllowAny]


class SupplierViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Supplier.objects.all()
    serializer_class = SupplierSerializer
    permission_classes = [AllowAny]


class SaleViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Sale.objects.all()
    serializer_class = SaleSerializer
    permission_classes = [AllowAny]


class CustomerViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Customer.objects.all()
    serializer_class = CustomerSerializer
    permission_classes = [AllowAny]


def _search(request, model, serializer_class, collection, filters, ordering=None):
    """
    filters maps request keys to ORM lookups, e.g. {"name": "name__icontains"}.
    Empty or missing values are ignored.
    """
    params = request.data if isinstance(request.data, dict) else {}
    queryset = model.objects.all()
    for key, lookup in filters.items():
        value = params.get(key)
        if value in (None, ""):
            continue
        queryset = queryset.filter(**{lookup: str(value)})
    if ordering:
        queryset = queryset.order_by(*ordering)
    return Response({collection: serializer_class(queryset, many=True).data})


@api_view(["POST"])
@permission_classes([AllowAny])
def search_products(request):
    return _search(
        request,
        Product,
        ProductSerializer,
        "products",
        {"name": "name__icontains", "category": "category", "supplier": "supplier"},
    )


@api_view(["POST"])
@permission_classes([AllowAny])
def search_branches(request):
    return _search(
        request,
        Branch,
        BranchSerializer,
        "branches",
        {"name": "name__icontains", "location": "location__icontains"},
    )


@api_view(["POST"])
@permission_classes([AllowAny])
def search_cashiers(request):
    return _search(
        request,
        Cashier,
        CashierSerializer,
        "cashiers",
        {"name": "name__icontains", "branchId": "branch_id"},
    )


@api_view(["POST"])
@permission_classes([AllowAny])
def search_suppliers(request):
    return _search(
        request,
        Supplier,
        SupplierSerializer,
        "suppliers",
        {"name": "name__icontains", "category": "category"},
    )


@api_view(["POST"])
@permission_classes([AllowAny])
def search_sales(request):
    return _search(
        request,
        Sale,
        SaleSerializer,
        "sales",
        {"receiptNo": "receipt_no__icontains", "userName": "user_name__icontains", "date": "date__icontains"},
        ordering=["-date"],
    )


@api_view(["POST"])
@permission_classes([AllowAny])
def search_customers(request):
    return _search(request, Customer, CustomerSerializer, "customers", {"name": "name__icontains"})


@api_view(["GET"])
@permission_classes([AllowAny])
def owner(request):
    payload = cache.get(OWNER_CACHE_KEY)
    if payload is None:
        record = Owner.objects.filter(role="owner").first()
        if record is None:
            return Response({"error": "Owner not found"}, status=status.HTTP_404_NOT_FOUND)
        payload = dict(OwnerSerializer(record).data)
        cache.set(OWNER_CACHE_KEY, payload, timeout=settings.POS_OWNER_CACHE_SECONDS)
    return Response({"owner": payload})
