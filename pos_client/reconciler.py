# Sync Reconciler - one full-collection round trip against /api/sync

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

import requests

from .config import ClientSettings
from .entities import ENTITY_TYPES
from .exceptions import LocalStoreError, SyncError, SyncFailure
from .mutation_log import sent_versions
from .state import AppState

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Sync successful! Local products, branches, cashiers, suppliers, sales and customers updated."
FAILURE_MESSAGES = {
    SyncFailure.TIMEOUT: "Sync timed out. Please try again.",
    SyncFailure.TRANSPORT: "Sync failed. Please try again.",
    SyncFailure.MALFORMED_RESPONSE: "Sync failed: the server sent an unexpected response.",
    SyncFailure.LOCAL_STORE: "Sync failed: local data could not be saved.",
    SyncFailure.IN_PROGRESS: "A sync is already in progress.",
}


@dataclass
class SyncResult:
    ok: bool
    message: str
    failure: Optional[SyncFailure] = None
    counts: Dict[str, int] = field(default_factory=dict)
    finished_at: float = field(default_factory=time.time)


class SyncReconciler:
    """Pushes every local collection plus tombstones and adopts the server snapshot"""

    SYNC_PATH = "/api/sync"
    OWNER_PATH = "/api/owner"

    def __init__(self, state: AppState, base_url: str, timeout: float = 30, device_id: str = "",
                 session=None, on_status: Optional[Callable[[SyncResult], None]] = None):
        self.state = state
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.device_id = device_id
        self.on_status = on_status
        self.session = session or requests.Session()
        self.session.headers.update({
            "Content-Type": "application/json",
            "User-Agent": "pos-client/1.0",
        })
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, state: AppState, settings: ClientSettings, **kwargs) -> "SyncReconciler":
        return cls(state, settings.base_url, timeout=settings.timeout, device_id=settings.device_id, **kwargs)

    @property
    def in_progress(self) -> bool:
        return self._lock.locked()

    def request_sync(self) -> SyncResult:
        """Run one sync cycle. Never raises; the outcome is in the result."""
        if not self._lock.acquire(blocking=False):
            logger.warning("Sync requested while another sync is running")
            return self._report(SyncResult(ok=False, message=FAILURE_MESSAGES[SyncFailure.IN_PROGRESS],
                                           failure=SyncFailure.IN_PROGRESS))
        try:
            return self._report(self._run())
        finally:
            self._lock.release()

    def build_payload(self) -> Dict:
        return self._snapshot()[0]

    def _snapshot(self) -> Tuple[Dict, Dict[str, Tuple[Dict[str, int], List[str]]]]:
        """Request payload plus, per collection, what it carried."""
        payload: Dict = {"deviceId": self.device_id}
        sent = {}
        for entity in ENTITY_TYPES:
            records, tombstones = self.state.log(entity.collection).snapshot_for_sync()
            payload[entity.collection] = records
            if entity.propagates_deletes:
                payload[entity.deleted_key] = tombstones
            sent[entity.collection] = (sent_versions(records), tombstones)
        return payload, sent

    def _run(self) -> SyncResult:
        logger.info(f"Sync started against {self.base_url}")
        try:
            payload, sent = self._snapshot()
            data = self._post(payload)
            collections, acknowledged = self._parse_response(data)
            self._apply(collections, acknowledged, sent)
        except SyncError as e:
            logger.warning(f"Sync failed ({e.failure.value}): {e}")
            return SyncResult(ok=False, message=FAILURE_MESSAGES[e.failure], failure=e.failure)
        except LocalStoreError as e:
            logger.error(f"Sync could not update local store: {e}")
            return SyncResult(ok=False, message=FAILURE_MESSAGES[SyncFailure.LOCAL_STORE],
                              failure=SyncFailure.LOCAL_STORE)

        self._refresh_owner()
        counts = {collection: len(records) for collection, records in collections.items()}
        logger.info(f"Sync finished: {counts}")
        return SyncResult(ok=True, message=SUCCESS_MESSAGE, counts=counts)

    def _post(self, payload: Dict):
        url = f"{self.base_url}{self.SYNC_PATH}"
        try:
            response = self.session.post(url, json=payload, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise SyncError(SyncFailure.TIMEOUT, f"No response from {url} within {self.timeout}s") from e
        except requests.exceptions.RequestException as e:
            raise SyncError(SyncFailure.TRANSPORT, f"Could not reach {url}: {e}") from e

        if not 200 <= response.status_code < 300:
            raise SyncError(SyncFailure.TRANSPORT, f"Server answered {response.status_code}")
        try:
            return response.json()
        except ValueError as e:
            raise SyncError(SyncFailure.MALFORMED_RESPONSE, "Response body is not JSON") from e

    def _parse_response(self, data) -> Tuple[Dict[str, List[Dict]], Optional[Dict[str, List]]]:
        if not isinstance(data, dict):
            raise SyncError(SyncFailure.MALFORMED_RESPONSE, "Response is not a JSON object")

        collections = {}
        for entity in ENTITY_TYPES:
            records = data.get(entity.collection)
            if not isinstance(records, list) or not all(isinstance(record, dict) for record in records):
                raise SyncError(SyncFailure.MALFORMED_RESPONSE, f"Response has no valid {entity.collection!r} list")
            collections[entity.collection] = records

        raw_ack = data.get("acknowledgedDeletions")
        if raw_ack is None:
            # Older servers acknowledge nothing explicitly: every tombstone sent was applied.
            return collections, None
        if not isinstance(raw_ack, dict):
            raise SyncError(SyncFailure.MALFORMED_RESPONSE, "acknowledgedDeletions is not an object")

        acknowledged = {}
        for entity in ENTITY_TYPES:
            if not entity.propagates_deletes:
                continue
            ids = raw_ack.get(entity.deleted_key, [])
            if not isinstance(ids, list):
                raise SyncError(SyncFailure.MALFORMED_RESPONSE, f"{entity.deleted_key} acknowledgement is not a list")
            acknowledged[entity.collection] = ids
        return collections, acknowledged

    def _apply(self, collections: Dict[str, List[Dict]], acknowledged: Optional[Dict[str, List]],
               sent: Dict[str, Tuple[Dict[str, int], List[str]]]):
        with self.state.store.transaction():
            for entity in ENTITY_TYPES:
                sent_records, sent_tombstones = sent[entity.collection]
                ack = sent_tombstones if acknowledged is None else acknowledged.get(entity.collection, [])
                self.state.log(entity.collection).apply_authoritative(
                    collections[entity.collection], ack, sent=sent_records
                )

    def _refresh_owner(self):
        """Best effort: a missing owner record never fails the sync."""
        url = f"{self.base_url}{self.OWNER_PATH}"
        try:
            response = self.session.get(url, timeout=self.timeout)
            if response.status_code != 200:
                logger.info(f"Owner lookup answered {response.status_code}")
                return
            owner = response.json().get("owner")
        except (requests.exceptions.RequestException, ValueError, AttributeError) as e:
            logger.info(f"Owner lookup failed: {e}")
            return
        if isinstance(owner, dict):
            try:
                self.state.set_owner(owner)
            except LocalStoreError as e:
                logger.warning(f"Could not store owner record: {e}")

    def _report(self, result: SyncResult) -> SyncResult:
        self.state.last_sync = result
        if self.on_status:
            try:
                self.on_status(result)
            except Exception:
                logger.exception("Sync status callback failed")
        return result
