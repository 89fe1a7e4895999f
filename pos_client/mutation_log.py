"""Per-entity local mutation log: live records plus a tombstone set."""
import logging
import time
import uuid
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .entities import EntityType
from .exceptions import DeletionNotSupported, InvalidRecord
from .storage import LocalStore

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


def new_record_id(created_ms: int) -> str:
    """Creation timestamp plus a random suffix, so two tills never collide."""
    return f"{created_ms}-{uuid.uuid4().hex[:8]}"


def _as_int(value, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _changed_since(record: Dict, sent: Dict[str, int]) -> bool:
    record_id = record.get("id")
    if record_id not in sent:
        return True
    return _as_int(record.get("lastModified")) > _as_int(sent[record_id])


def sent_versions(records: Iterable[Dict]) -> Dict[str, int]:
    """id -> lastModified of the records about to be pushed."""
    return {record.get("id"): _as_int(record.get("lastModified")) for record in records}


class EntityLog:
    """
    Live collection and tombstone ids of one entity type, kept in two
    namespaces of the shared LocalStore (`<entity>_records` and
    `<entity>_deleted_ids`).
    """

    def __init__(self, store: LocalStore, entity: EntityType, clock: Optional[Callable[[], int]] = None):
        self.store = store
        self.entity = entity
        self.clock = clock or now_ms

    def all(self) -> List[Dict]:
        return [record for record in self.store.read_list(self.entity.records_key) if isinstance(record, dict)]

    def get(self, record_id: str) -> Optional[Dict]:
        for record in self.all():
            if record.get("id") == record_id:
                return record
        return None

    def tombstones(self) -> List[str]:
        if not self.entity.propagates_deletes:
            return []
        return [str(record_id) for record_id in self.store.read_list(self.entity.deleted_ids_key)]

    def upsert_local(self, record: Dict) -> Dict:
        """
        Insert a record with an unseen id (a missing id gets a fresh one) or
        replace the stored record with the same id. Either way the record's
        lastModified moves forward and version counts the edit.
        """
        if not isinstance(record, dict):
            raise InvalidRecord(f"{self.entity.name} record must be a mapping")
        missing = [name for name in self.entity.required if record.get(name) in (None, "")]
        if missing:
            raise InvalidRecord(f"{self.entity.name} record is missing {', '.join(missing)}")

        stored = dict(record)
        with self.store.transaction():
            now = self.clock()
            records = self.all()
            record_id = stored.get("id")
            index = None
            if record_id not in (None, ""):
                stored["id"] = record_id = str(record_id)
                index = next((i for i, existing in enumerate(records) if existing.get("id") == record_id), None)

            if index is None:
                if record_id in (None, ""):
                    stored["id"] = new_record_id(now)
                stored["lastModified"] = now
                stored["version"] = 1
                records.append(stored)
            else:
                previous = records[index]
                # Wall clock may step backwards; edits must still move forward.
                stored["lastModified"] = max(now, _as_int(previous.get("lastModified")) + 1)
                stored["version"] = _as_int(previous.get("version"), 1) + 1
                records[index] = stored
            self.store.write(self.entity.records_key, records)
        return dict(stored)

    def delete_local(self, record_id: str) -> bool:
        """Drop a live record and tombstone its id. Unknown ids are ignored."""
        if not self.entity.propagates_deletes:
            raise DeletionNotSupported(f"{self.entity.collection} cannot be deleted once recorded")
        record_id = str(record_id)
        with self.store.transaction():
            records = self.all()
            remaining = [record for record in records if record.get("id") != record_id]
            if len(remaining) == len(records):
                return False
            self.store.write(self.entity.records_key, remaining)
            tombstones = self.tombstones()
            if record_id not in tombstones:
                tombstones.append(record_id)
                self.store.write(self.entity.deleted_ids_key, tombstones)
        logger.debug("Tombstoned %s %s", self.entity.name, record_id)
        return True

    def snapshot_for_sync(self) -> Tuple[List[Dict], List[str]]:
        with self.store.lock:
            return self.all(), self.tombstones()

    def apply_authoritative(self, records: Iterable[Dict], acknowledged_ids: Optional[Iterable[str]] = None,
                            sent: Optional[Dict[str, int]] = None):
        """
        Replace the live collection with the server's snapshot.

        acknowledged_ids=None clears every tombstone; otherwise only the
        acknowledged ones go, and records still tombstoned stay hidden until
        a later sync confirms their deletion.

        sent maps the ids pushed in the request to their lastModified. Local
        records missing from it, or edited since, were written while the
        request was in flight; they are kept and go out with the next sync.
        """
        live = [dict(record) for record in records if isinstance(record, dict)]
        with self.store.transaction():
            if sent is not None:
                unsent = [record for record in self.all() if _changed_since(record, sent)]
                if unsent:
                    unsent_ids = {record.get("id") for record in unsent}
                    live = [record for record in live if record.get("id") not in unsent_ids] + unsent
            if self.entity.propagates_deletes:
                if acknowledged_ids is None:
                    pending = []
                else:
                    acknowledged = {str(record_id) for record_id in acknowledged_ids}
                    pending = [record_id for record_id in self.tombstones() if record_id not in acknowledged]
                if pending:
                    live = [record for record in live if str(record.get("id")) not in pending]
                    self.store.write(self.entity.deleted_ids_key, pending)
                else:
                    self.store.delete(self.entity.deleted_ids_key)
            self.store.write(self.entity.records_key, live)
