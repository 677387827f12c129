# Overview: Detached background tasks with their own error channel.

"""
Background Tasks

WHY: Some side effects (remote write of an activity log entry, the immediate
drain after a sale) must not delay or fail the mutation that triggered them.
They run detached; their failures are logged and collected in `errors`
instead of propagating into the caller.

inline=True runs each task immediately in the caller's thread, which keeps
tests deterministic.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass


logger = logging.getLogger(__name__)

MAX_ERRORS_KEPT = 100


@dataclass
class TaskFailure:
    name: str
    error: BaseException


class BackgroundTasks:
    def __init__(self, max_workers: int = 2, inline: bool = False):
        self.inline = inline
        self.errors: list[TaskFailure] = []
        self._lock = threading.Lock()
        self._futures: set[Future] = set()
        self._executor = None if inline else ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="shopos-bg"
        )

    def _run(self, name: str, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except Exception as exc:
            logger.exception("Background task %s failed", name)
            with self._lock:
                self.errors.append(TaskFailure(name=name, error=exc))
                del self.errors[:-MAX_ERRORS_KEPT]
            return None

    def submit(self, name: str, fn, *args, **kwargs) -> Future:
        if self._executor is None:
            future: Future = Future()
            future.set_result(self._run(name, fn, *args, **kwargs))
            return future

        future = self._executor.submit(self._run, name, fn, *args, **kwargs)
        with self._lock:
            self._futures.add(future)
        future.add_done_callback(self._forget)
        return future

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._futures.discard(future)

    def wait(self, timeout: float | None = None) -> None:
        """Block until every submitted task has finished."""
        with self._lock:
            pending = list(self._futures)
        if pending:
            wait(pending, timeout=timeout)

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
