from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class EntityType:
    name: str
    collection: str
    deleted_key: Optional[str] = None
    required: Tuple[str, ...] = ("name",)

    @property
    def records_key(self) -> str:
        return f"{self.name}_records"

    @property
    def deleted_ids_key(self) -> str:
        return f"{self.name}_deleted_ids"

    @property
    def propagates_deletes(self) -> bool:
        return self.deleted_key is not None


# Same order the server merges them in.
ENTITY_TYPES: Tuple[EntityType, ...] = (
    EntityType("product", "products", "deletedProductIds"),
    EntityType("branch", "branches", "deletedBranchIds"),
    EntityType("cashier", "cashiers", "deletedCashierIds"),
    EntityType("supplier", "suppliers", "deletedSupplierIds"),
    EntityType("sale", "sales", required=("items", "total")),
    EntityType("customer", "customers", "deletedCustomerIds"),
)

ENTITY_BY_COLLECTION = {entity.collection: entity for entity in ENTITY_TYPES}
