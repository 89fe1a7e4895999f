from enum import Enum


class SyncFailure(str, Enum):
    TIMEOUT = "timeout"
    TRANSPORT = "transport"
    MALFORMED_RESPONSE = "malformed_response"
    LOCAL_STORE = "local_store"
    IN_PROGRESS = "in_progress"


class PosClientError(Exception):
    pass


class LocalStoreError(PosClientError):
    """The local key-value store could not be written."""


class InvalidRecord(PosClientError, ValueError):
    pass


class DeletionNotSupported(PosClientError):
    pass


class SyncError(PosClientError):
    def __init__(self, failure: SyncFailure, message: str):
        super().__init__(message)
        self.failure = failure
