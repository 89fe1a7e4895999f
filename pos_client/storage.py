# Local Store - SQLite key/value storage for the POS desktop client
# Every value is a JSON document; reads never raise.

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, List, Optional

from .exceptions import LocalStoreError

logger = logging.getLogger(__name__)


class LocalStore:
    """SQLite-backed key/value store shared by all entity logs"""

    DB_PATH = "pos_client.sqlite3"

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = str(db_path or self.DB_PATH)
        self.lock = threading.RLock()
        self._conn: Optional[sqlite3.Connection] = None
        self._in_transaction = False
        self._init_db()

    def _init_db(self):
        """Open the database; an unusable file leaves the store read-empty."""
        try:
            conn = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
            conn.execute('''
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            ''')
        except sqlite3.Error as e:
            logger.warning(f"Local store {self.db_path} unavailable: {e}")
            return
        self._conn = conn

    @property
    def available(self) -> bool:
        return self._conn is not None

    def read(self, key: str, default: Any = None) -> Any:
        with self.lock:
            if self._conn is None:
                return default
            try:
                row = self._conn.execute('SELECT value FROM kv WHERE key = ?', (key,)).fetchone()
            except sqlite3.Error as e:
                logger.warning(f"Could not read {key!r} from local store: {e}")
                return default
        if row is None:
            return default
        try:
            return json.loads(row[0])
        except ValueError:
            logger.warning(f"Discarding undecodable value stored under {key!r}")
            return default

    def read_list(self, key: str) -> List:
        value = self.read(key)
        return value if isinstance(value, list) else []

    def write(self, key: str, value: Any):
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise LocalStoreError(f"Value for {key!r} is not JSON serialisable: {e}") from e
        with self.lock:
            conn = self._require_conn()
            try:
                conn.execute(
                    'INSERT OR REPLACE INTO kv (key, value, updated_at) VALUES (?, ?, ?)',
                    (key, payload, datetime.now().isoformat()),
                )
            except sqlite3.Error as e:
                raise LocalStoreError(f"Could not write {key!r}: {e}") from e

    def delete(self, key: str):
        with self.lock:
            conn = self._require_conn()
            try:
                conn.execute('DELETE FROM kv WHERE key = ?', (key,))
            except sqlite3.Error as e:
                raise LocalStoreError(f"Could not delete {key!r}: {e}") from e

    @contextmanager
    def transaction(self):
        """Group writes so they land together or not at all. Re-entrant."""
        with self.lock:
            if self._in_transaction:
                yield self
                return
            conn = self._require_conn()
            try:
                conn.execute('BEGIN IMMEDIATE')
            except sqlite3.Error as e:
                raise LocalStoreError(f"Could not start transaction: {e}") from e
            self._in_transaction = True
            try:
                yield self
            except BaseException:
                self._rollback(conn)
                raise
            else:
                try:
                    conn.execute('COMMIT')
                except sqlite3.Error as e:
                    self._rollback(conn)
                    raise LocalStoreError(f"Could not commit transaction: {e}") from e
            finally:
                self._in_transaction = False

    def close(self):
        with self.lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def _rollback(self, conn: sqlite3.Connection):
        try:
            conn.execute('ROLLBACK')
        except sqlite3.Error as e:
            logger.warning(f"Rollback failed: {e}")

    def _require_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise LocalStoreError(f"Local store {self.db_path} is not available")
        return self._conn
