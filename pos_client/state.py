from typing import Callable, Dict, Optional

from .config import ClientSettings
from .entities import ENTITY_TYPES
from .mutation_log import EntityLog
from .storage import LocalStore

OWNER_KEY = "owner_record"


class AppState:
    """
    Session state of one till, handed to the sync and UI layers.

    The UI owns `current_user`/`role`; the reconciler owns `last_sync` and
    the cached owner record. Entity data is only reached through `logs`.
    """

    def __init__(self, store: LocalStore, clock: Optional[Callable[[], int]] = None):
        self.store = store
        self.logs: Dict[str, EntityLog] = {
            entity.collection: EntityLog(store, entity, clock=clock) for entity in ENTITY_TYPES
        }
        self.current_user: Optional[Dict] = None
        self.role: Optional[str] = None
        self.last_sync = None

    @classmethod
    def from_settings(cls, settings: ClientSettings) -> "AppState":
        return cls(LocalStore(settings.store_path))

    def log(self, collection: str) -> EntityLog:
        try:
            return self.logs[collection]
        except KeyError:
            raise KeyError(f"Unknown collection {collection!r}") from None

    @property
    def owner(self) -> Optional[Dict]:
        owner = self.store.read(OWNER_KEY)
        return owner if isinstance(owner, dict) else None

    def set_owner(self, owner: Dict):
        self.store.write(OWNER_KEY, owner)

    def sign_in(self, user: Dict, role: str):
        self.current_user = user
        self.role = role

    def sign_out(self):
        self.current_user = None
        self.role = None
