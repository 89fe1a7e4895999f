"""Server side of /api/sync: per-entity deletion + last-write-wins upsert."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple, Type

from django.db import models, transaction
from django.utils import timezone
from rest_framework import serializers

from ..models import Branch, Cashier, ConflictLog, Customer, DeletedRecord, Product, Sale, Supplier
from ..serializers import (
    BranchSerializer,
    CashierSerializer,
    CustomerSerializer,
    ProductSerializer,
    SaleSerializer,
    SupplierSerializer,
)

logger = logging.getLogger(__name__)

# Columns the merge never copies from an incoming record.
_IMMUTABLE_FIELDS = {"id", "created_at", "updated_at"}


@dataclass(frozen=True)
class EntityType:
    name: str
    collection: str
    model: Type[models.Model]
    serializer_class: Type[serializers.ModelSerializer]
    deleted_key: Optional[str] = None


ENTITY_TYPES: Tuple[EntityType, ...] = (
    EntityType("product", "products", Product, ProductSerializer, "deletedProductIds"),
    EntityType("branch", "branches", Branch, BranchSerializer, "deletedBranchIds"),
    EntityType("cashier", "cashiers", Cashier, CashierSerializer, "deletedCashierIds"),
    EntityType("supplier", "suppliers", Supplier, SupplierSerializer, "deletedSupplierIds"),
    # Sales are an append-only ledger: no tombstones.
    EntityType("sale", "sales", Sale, SaleSerializer),
    EntityType("customer", "customers", Customer, CustomerSerializer, "deletedCustomerIds"),
)


@dataclass
class MergeStats:
    inserted: int = 0
    updated: int = 0
    discarded: int = 0
    deleted: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict:
        return {
            "inserted": self.inserted,
            "updated": self.updated,
            "discarded": self.discarded,
            "deleted": len(self.deleted),
        }


@dataclass
class PreparedBatch:
    """Validated request, ready to merge."""

    records: Dict[str, List[Dict]]
    deleted_ids: Dict[str, List[str]]


def _id_list(value, key: str) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise serializers.ValidationError({key: "Expected a list of ids."})
    ids = []
    for raw in value:
        if not isinstance(raw, (str, int)) or isinstance(raw, bool):
            raise serializers.ValidationError({key: f"Invalid id: {raw!r}."})
        ident = str(raw)
        if ident not in ids:
            ids.append(ident)
    return ids


def prepare_batch(payload) -> PreparedBatch:
    """Validate the whole request before anything touches the database."""
    if not isinstance(payload, dict):
        raise serializers.ValidationError({"non_field_errors": "Expected a JSON object."})

    records: Dict[str, List[Dict]] = {}
    deleted_ids: Dict[str, List[str]] = {}
    for entity in ENTITY_TYPES:
        raw_records = payload.get(entity.collection) or []
        if not isinstance(raw_records, list):
            raise serializers.ValidationError({entity.collection: "Expected a list of records."})
        serializer = entity.serializer_class(data=raw_records, many=True)
        if not serializer.is_valid():
            raise serializers.ValidationError({entity.collection: serializer.errors})
        records[entity.collection] = [dict(item) for item in serializer.validated_data]
        if entity.deleted_key:
            deleted_ids[entity.collection] = _id_list(payload.get(entity.deleted_key), entity.deleted_key)
    return PreparedBatch(records=records, deleted_ids=deleted_ids)


def _conflict_key(version: Optional[int], last_modified: Optional[int]) -> Tuple[int, int]:
    return (version or 1, last_modified if last_modified is not None else -1)


def should_overwrite(existing: models.Model, incoming: Dict) -> bool:
    """Strictly newer incoming record wins; on a tie the stored record stays."""
    incoming_modified = incoming.get("last_modified")
    if incoming_modified is None:
        return True
    incoming_version = incoming.get("version", existing.version)
    return _conflict_key(incoming_version, incoming_modified) > _conflict_key(
        existing.version, existing.last_modified
    )


def _apply_fields(instance: models.Model, incoming: Dict) -> None:
    for name, value in incoming.items():
        if name in _IMMUTABLE_FIELDS:
            continue
        setattr(instance, name, value)


def _register_conflict(entity: EntityType, existing: models.Model, incoming: Dict, device_id: str) -> None:
    ConflictLog.objects.create(
        entity_type=entity.name,
        entity_id=existing.pk,
        device_id=device_id,
        server_payload=entity.serializer_class(existing).data,
        client_payload=entity.serializer_class(incoming).data,
    )


def _now_ms() -> int:
    return int(timezone.now().timestamp() * 1000)


def _record_deletions(entity: EntityType, deleted_ids: List[str], incoming_ids: Set[str], device_id: str) -> None:
    entity.model.objects.filter(pk__in=deleted_ids).delete()
    deleted_at = _now_ms()
    for record_id in deleted_ids:
        if record_id in incoming_ids:
            # Deleted and re-created by the same till: the upsert brings it back.
            DeletedRecord.objects.filter(entity_type=entity.name, record_id=record_id).delete()
            continue
        DeletedRecord.objects.update_or_create(
            entity_type=entity.name,
            record_id=record_id,
            defaults={"deleted_at": deleted_at, "device_id": device_id},
        )


def _tombstones(entity: EntityType, ids: Set[str]) -> Dict[str, int]:
    if not ids:
        return {}
    rows = DeletedRecord.objects.filter(entity_type=entity.name, record_id__in=ids)
    return dict(rows.values_list("record_id", "deleted_at"))


def revives_deleted(incoming: Dict, deleted_at: int) -> bool:
    """Only an edit made after the deletion brings a deleted record back."""
    modified = incoming.get("last_modified")
    return modified is not None and modified > deleted_at


def merge_entity(entity: EntityType, records: List[Dict], deleted_ids: List[str], device_id: str = "") -> MergeStats:
    stats = MergeStats()
    incoming_ids = {incoming["id"] for incoming in records}

    if deleted_ids:
        _record_deletions(entity, deleted_ids, incoming_ids, device_id)
    stats.deleted = list(deleted_ids)

    tombstones = _tombstones(entity, incoming_ids)
    for incoming in records:
        deleted_at = tombstones.get(incoming["id"])
        if deleted_at is not None:
            if not revives_deleted(incoming, deleted_at):
                logger.debug("Ignoring deleted %s %s from device %s", entity.name, incoming["id"], device_id or "unknown")
                stats.discarded += 1
                continue
            DeletedRecord.objects.filter(entity_type=entity.name, record_id=incoming["id"]).delete()

        existing = entity.model.objects.filter(pk=incoming["id"]).first()
        if existing is None:
            entity.model.objects.create(**incoming)
            stats.inserted += 1
        elif should_overwrite(existing, incoming):
            _apply_fields(existing, incoming)
            existing.save()
            stats.updated += 1
        else:
            _register_conflict(entity, existing, incoming, device_id)
            stats.discarded += 1
    return stats


def snapshot_all() -> Dict[str, List[Dict]]:
    return {
        entity.collection: entity.serializer_class(entity.model.objects.all(), many=True).data
        for entity in ENTITY_TYPES
    }


def merge_batch(batch: PreparedBatch, device_id: str = "") -> Tuple[Dict, Dict[str, Dict]]:
    """
    Merge every entity type in one transaction and return the full snapshot.
    Any storage error rolls back the whole request.
    """
    summary: Dict[str, Dict] = {}
    acknowledged: Dict[str, List[str]] = {}
    with transaction.atomic():
        for entity in ENTITY_TYPES:
            stats = merge_entity(
                entity,
                batch.records.get(entity.collection, []),
                batch.deleted_ids.get(entity.collection, []),
                device_id=device_id,
            )
            summary[entity.collection] = stats.as_dict()
            if entity.deleted_key:
                acknowledged[entity.deleted_key] = stats.deleted
        response = snapshot_all()

    response["acknowledgedDeletions"] = acknowledged
    response["serverTime"] = timezone.now().isoformat()
    logger.info("Sync merged for device %s: %s", device_id or "unknown", summary)
    return response, summary
