from django.urls import path, include
from rest_framework.routers import DefaultRouter

from . import views

router = DefaultRouter()
router.register("products", views.ProductViewSet)
router.register("branches", views.BranchViewSet)
router.register("cashiers", views.CashierViewSet)
router.register("suppliers", views.SupplierViewSet)
router.register("sales", views.SaleViewSet)
router.register("customers", views.CustomerViewSet)

urlpatterns = [
    path("owner", views.owner, name="owner"),
    path("products/search", views.search_products, name="search_products"),
    path("branches/search", views.search_branches, name="search_branches"),
    path("cashiers/search", views.search_cashiers, name="search_cashiers"),
    path("suppliers/search", views.search_suppliers, name="search_suppliers"),
    path("sales/search", views.search_sales, name="search_sales"),
    path("customers/search", views.search_customers, name="search_customers"),
    path("", include(router.urls)),
]
