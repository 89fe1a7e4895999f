"""Desktop-side core of the POS sync protocol."""

from .config import ClientSettings
from .entities import ENTITY_TYPES, EntityType
from .exceptions import (
    DeletionNotSupported,
    InvalidRecord,
    LocalStoreError,
    PosClientError,
    SyncError,
    SyncFailure,
)
from .mutation_log import EntityLog
from .reconciler import SyncReconciler, SyncResult
from .state import AppState
from .storage import LocalStore

__all__ = [
    "AppState",
    "ClientSettings",
    "DeletionNotSupported",
    "ENTITY_TYPES",
    "EntityLog",
    "EntityType",
    "InvalidRecord",
    "LocalStore",
    "LocalStoreError",
    "PosClientError",
    "SyncError",
    "SyncFailure",
    "SyncReconciler",
    "SyncResult",
]
