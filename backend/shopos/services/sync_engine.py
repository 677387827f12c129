# Overview: Replays queued operations against the remote store and classifies outcomes.

"""
Synchronization Engine

WHY: Queued operations must eventually reach the remote store, at least once,
in the order they were recorded.

DRAIN ALGORITHM:
1. Skip entirely when the active shop is not sync-eligible (offline, or a
   legacy id) -- no futile network calls
2. Take every queued operation in FIFO order
3. Dispatch each one onto the remote data-access layer
4. Classify:
   - success                       -> remove (unless a newer update was
                                      coalesced into it meanwhile)
   - DuplicateKeyError             -> remove (a prior attempt committed even
                                      though the client never saw the answer)
   - unknown operation type        -> remove with a warning
   - anything else                 -> mark_failed (bounded retries)
5. Stamp last_sync_attempt; stamp last_successful_sync only if nothing failed

CONCURRENCY: the periodic timer, the online event and post-sale triggers can
all request a drain. Only one runs at a time; a request that arrives while a
drain is in progress returns immediately with skipped=True. remove and
mark_failed stay idempotent by id as a second line of defence.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from .operations import apply_operation
from .remote import DuplicateKeyError, RemoteError
from .tenant_service import is_sync_eligible


logger = logging.getLogger(__name__)


@dataclass
class DrainResult:
    succeeded: int = 0
    failed: int = 0
    dropped: int = 0
    skipped: bool = False

    def to_dict(self) -> dict:
        return {
            "succeeded": self.succeeded,
            "failed": self.failed,
            "dropped": self.dropped,
            "skipped": self.skipped,
        }


class SyncEngine:
    def __init__(self, queue, state, remote, network):
        self.queue = queue
        self.state = state
        self.remote = remote
        self.network = network
        self._drain_lock = threading.Lock()

    def is_eligible(self) -> bool:
        return is_sync_eligible(self.state.shop_id, self.network.is_online)

    @property
    def is_draining(self) -> bool:
        return self._drain_lock.locked()

    def drain(self) -> DrainResult:
        if not self._drain_lock.acquire(blocking=False):
            logger.debug("Drain already in progress; skipping")
            return DrainResult(skipped=True)
        try:
            return self._drain()
        finally:
            self._drain_lock.release()

    def _drain(self) -> DrainResult:
        if not self.is_eligible():
            return DrainResult(skipped=True)

        result = DrainResult()
        for operation in self.queue.peek_all():
            if not operation.is_known:
                logger.warning(
                    "Unknown operation type %r (%s); removing it from the queue",
                    operation.type_name, operation.id,
                )
                self.queue.remove(operation.id)
                result.succeeded += 1
                continue

            try:
                apply_operation(self.remote, operation.type, operation.payload, operation.target_entity_id)
            except DuplicateKeyError:
                logger.info("%s %s already applied remotely", operation.type_name, operation.target_entity_id)
                self.queue.remove(operation.id, revision=operation.revision)
                result.succeeded += 1
            except RemoteError as exc:
                result.failed += 1
                if self.queue.mark_failed(operation.id, error=str(exc), revision=operation.revision):
                    result.dropped += 1
            except Exception as exc:
                logger.exception("Unexpected error replaying %s (%s)", operation.type_name, operation.id)
                result.failed += 1
                if self.queue.mark_failed(operation.id, error=repr(exc), revision=operation.revision):
                    result.dropped += 1
            else:
                self.queue.remove(operation.id, revision=operation.revision)
                result.succeeded += 1

        self.queue.record_sync_attempt(successful=result.failed == 0)
        if result.succeeded or result.failed:
            logger.info(
                "Sync drain finished: %d succeeded, %d failed, %d dropped",
                result.succeeded, result.failed, result.dropped,
            )
        return result

    def status(self) -> dict:
        return {
            "online": self.network.is_online,
            "eligible": self.is_eligible(),
            "draining": self.is_draining,
            "pending": self.queue.count(),
            "dropped": len(self.queue.dropped()),
            "last_sync_attempt": self.queue.last_sync_attempt,
            "last_successful_sync": self.queue.last_successful_sync,
        }
