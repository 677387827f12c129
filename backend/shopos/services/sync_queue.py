# Overview: Durable FIFO queue of mutations awaiting confirmation by the remote store.

"""
Durable Operation Queue

WHY: Mutations are committed locally first. When the remote write cannot be
attempted (offline, legacy tenant) or fails, the operation is recorded here
and replayed by the sync engine. The queue is persisted on every change so
pending work survives restarts.

POLICY:
- FIFO by enqueue order; a create is always replayed before later updates
- Updates to the same (type, target entity) coalesce in place: last write wins,
  queue position is kept
- Bounded retries: an operation is dropped after max_retries failures and
  moved to a small dead-letter list so the loss is visible (sync status,
  CLI) rather than silent
- remove / mark_failed are idempotent by id, so overlapping drains are safe

THREADING: request handlers, the scheduler thread and background tasks all
touch the queue; every read-modify-persist section holds the queue lock.
"""

from __future__ import annotations

import json
import logging
import threading

from .identifier_service import generate_id
from .local_storage import KeyValueStorage, QUEUE_KEY
from .operations import Operation, OperationType
from shopos.time_utils import now_iso


logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 5
MAX_DROPPED_KEPT = 50


class OperationQueue:
    def __init__(
        self,
        storage: KeyValueStorage,
        max_retries: int = DEFAULT_MAX_RETRIES,
        storage_key: str = QUEUE_KEY,
    ):
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.storage = storage
        self.max_retries = max_retries
        self.storage_key = storage_key
        self._lock = threading.RLock()
        self._operations: list[Operation] = []
        self._dropped: list[dict] = []
        self.last_sync_attempt: str | None = None
        self.last_successful_sync: str | None = None
        self.reload()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def reload(self) -> None:
        """Re-read the queue from durable storage (e.g. after a restart)."""
        with self._lock:
            raw = self.storage.get(self.storage_key)
            data = {}
            if raw:
                try:
                    data = json.loads(raw)
                except ValueError:
                    logger.error("Sync queue in storage is not valid JSON; starting empty")
                    data = {}

            self._operations = [
                Operation.from_dict(item) for item in data.get("operations") or []
                if isinstance(item, dict) and item.get("id")
            ]
            self._dropped = list(data.get("dropped") or [])
            self.last_sync_attempt = data.get("last_sync_attempt")
            self.last_successful_sync = data.get("last_successful_sync")

    def _persist(self) -> None:
        payload = {
            "operations": [op.to_dict() for op in self._operations],
            "last_sync_attempt": self.last_sync_attempt,
            "last_successful_sync": self.last_successful_sync,
            "dropped": self._dropped,
        }
        self.storage.set(self.storage_key, json.dumps(payload, default=str))

    # ------------------------------------------------------------------
    # Queue contract
    # ------------------------------------------------------------------

    def enqueue(
        self,
        op_type: OperationType,
        payload: dict,
        target_entity_id: str | None = None,
    ) -> Operation:
        """
        Append an operation (retry_count=0), or coalesce an update.

        An UPDATE_* for a (type, target) already waiting in the queue replaces
        that entry's payload instead of adding a second network call. The
        entry keeps its position; its revision is bumped so a drain that is
        sending the older payload leaves it queued.
        """
        op_type = OperationType(op_type)
        payload = json.loads(json.dumps(payload, default=str))

        with self._lock:
            if target_entity_id and op_type.is_update:
                for existing in self._operations:
                    if existing.type == op_type and existing.target_entity_id == target_entity_id:
                        existing.payload = payload
                        existing.enqueued_at = now_iso()
                        existing.revision += 1
                        self._persist()
                        logger.debug("Coalesced %s for %s", op_type.value, target_entity_id)
                        return existing.copy()

            operation = Operation(
                id=generate_id(),
                type=op_type,
                payload=payload,
                target_entity_id=target_entity_id,
                enqueued_at=now_iso(),
                retry_count=0,
            )
            self._operations.append(operation)
            self._persist()

        logger.info("Queued %s operation for sync", op_type.value)
        return operation.copy()

    def peek_all(self) -> list[Operation]:
        """Snapshot of pending operations in FIFO order."""
        with self._lock:
            return [op.copy() for op in self._operations]

    def get(self, operation_id: str) -> Operation | None:
        with self._lock:
            for op in self._operations:
                if op.id == operation_id:
                    return op.copy()
        return None

    def has_pending_for(self, target_entity_id: str | None) -> bool:
        """True while any queued operation targets this entity."""
        if not target_entity_id:
            return False
        with self._lock:
            return any(op.target_entity_id == target_entity_id for op in self._operations)

    def _find(self, operation_id: str, revision: int | None) -> Operation | None:
        operation = next((op for op in self._operations if op.id == operation_id), None)
        if operation is None or (revision is not None and operation.revision != revision):
            return None
        return operation

    def remove(self, operation_id: str, revision: int | None = None) -> bool:
        """
        Delete after confirmed success. Returns False if already gone.

        With a revision, the entry is only removed if no newer payload was
        coalesced into it since that revision was read.
        """
        with self._lock:
            operation = self._find(operation_id, revision)
            if operation is None:
                return False
            self._operations = [op for op in self._operations if op is not operation]
            self._persist()
            return True

    def mark_failed(self, operation_id: str, error: str | None = None, revision: int | None = None) -> bool:
        """
        Increment retry_count; drop the operation once it reaches max_retries.

        A revision that no longer matches means a newer payload replaced the
        one that failed; that payload has not been tried yet, so nothing is
        counted.

        Returns True when the operation was dropped by this call.
        """
        with self._lock:
            operation = self._find(operation_id, revision)
            if operation is None:
                return False

            operation.retry_count += 1
            dropped = operation.retry_count >= self.max_retries
            if dropped:
                self._operations = [op for op in self._operations if op.id != operation_id]
                record = operation.to_dict()
                record["dropped_at"] = now_iso()
                record["last_error"] = error
                self._dropped.append(record)
                self._dropped = self._dropped[-MAX_DROPPED_KEPT:]
            self._persist()

        if dropped:
            logger.warning(
                "Removing operation %s (%s) after %d failed retries: %s",
                operation.id, operation.type_name, operation.retry_count, error,
            )
        return dropped

    def count(self) -> int:
        with self._lock:
            return len(self._operations)

    def __len__(self) -> int:
        return self.count()

    def has_pending(self) -> bool:
        return self.count() > 0

    def clear(self) -> None:
        """Discard every pending operation."""
        with self._lock:
            self._operations = []
            self._persist()

    # ------------------------------------------------------------------
    # Sync bookkeeping
    # ------------------------------------------------------------------

    def record_sync_attempt(self, successful: bool) -> None:
        with self._lock:
            stamp = now_iso()
            self.last_sync_attempt = stamp
            if successful:
                self.last_successful_sync = stamp
            self._persist()

    def dropped(self) -> list[dict]:
        with self._lock:
            return [dict(item) for item in self._dropped]

    def clear_dropped(self) -> int:
        with self._lock:
            cleared = len(self._dropped)
            self._dropped = []
            self._persist()
            return cleared
