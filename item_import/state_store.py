"""Batch state persistence for the resumable item import.

State lives in a KeyValueStore, never in process memory, so any HTTP
handler invocation can pick up the next batch. Keys are scoped by owner and
process: ``softone_import:{owner_id}:{process_id}``. A second key maps the
process id to its owner so a caller presenting someone else's process can be
told apart from one presenting an unknown id.

Read-modify-write of one key is not locked. Two concurrent calls for the
same process can observe the same cursor and duplicate work; callers are
expected to serialize their own batch loop.
"""

import logging
from typing import Optional

from pydantic import ValidationError

from core.storage.kv_store import KeyValueStore
from item_import.models import ImportBatchState

logger = logging.getLogger(__name__)


BATCH_STATE_TTL = 3600
BATCH_STATE_PREFIX = "softone_import"
BATCH_OWNER_PREFIX = "softone_import_owner"
LAST_RUN_OPTION = "softone_last_run"


class BatchStateStore:
    """Owner-scoped ImportBatchState storage with a TTL."""

    def __init__(self, store: KeyValueStore, ttl: int = BATCH_STATE_TTL):
        self._store = store
        self.ttl = ttl

    @staticmethod
    def key(owner_id: str, process_id: str) -> str:
        return f"{BATCH_STATE_PREFIX}:{owner_id}:{process_id}"

    @staticmethod
    def owner_key(process_id: str) -> str:
        return f"{BATCH_OWNER_PREFIX}:{process_id}"

    def save(self, state: ImportBatchState) -> None:
        """Persist state, refreshing its TTL."""
        self._store.set(self.key(state.owner_id, state.process_id), state.model_dump(mode="json"), ttl=self.ttl)
        self._store.set(self.owner_key(state.process_id), state.owner_id, ttl=self.ttl)

    def load(self, owner_id: str, process_id: str) -> Optional[ImportBatchState]:
        """Load state for an owner; None when absent, expired, or corrupt."""
        data = self._store.get(self.key(owner_id, process_id))
        if data is None:
            return None
        try:
            return ImportBatchState.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable batch state {process_id}: {e.error_count()} error(s)")
            self.delete(owner_id, process_id)
            return None

    def owner_of(self, process_id: str) -> Optional[str]:
        """Owner of a live process, or None when unknown or expired."""
        owner = self._store.get(self.owner_key(process_id))
        return str(owner) if owner is not None else None

    def delete(self, owner_id: str, process_id: str) -> None:
        self._store.delete(self.key(owner_id, process_id))
        if self.owner_of(process_id) == owner_id:
            self._store.delete(self.owner_key(process_id))


class LastRunStore:
    """The "last successful run" marker that drives delta imports."""

    def __init__(self, store: KeyValueStore):
        self._store = store

    def get(self) -> Optional[int]:
        value = self._store.get(LAST_RUN_OPTION)
        try:
            return int(value) if value is not None else None
        except (TypeError, ValueError):
            return None

    def set(self, timestamp: int) -> None:
        self._store.set(LAST_RUN_OPTION, int(timestamp))

    def clear(self) -> None:
        self._store.delete(LAST_RUN_OPTION)
