# Overview: Explicit container wiring storage, queue, state, sync and session services together.

"""
Shop Runtime

WHY: The snapshot and the queue are shared by request handlers, the scheduler
thread and background tasks. They live on one explicit object built by
create_app (app.extensions["shopos"]) instead of module globals, so tests can
build isolated runtimes.
"""

from __future__ import annotations

import logging

from .background import BackgroundTasks
from .http_remote import HttpRemoteDataAccess
from .mutation_service import MutationFacade
from .network import NetworkMonitor
from .remote import RemoteDataAccess, UnconfiguredRemote
from .scheduler import SyncScheduler
from .session_service import ShopSession
from .state_store import LocalStateStore
from .sync_engine import SyncEngine
from .sync_queue import OperationQueue


logger = logging.getLogger(__name__)


class ShopRuntime:
    def __init__(
        self,
        storage,
        remote: RemoteDataAccess | None = None,
        network: NetworkMonitor | None = None,
        max_retries: int = 5,
        sync_interval_seconds: float = 30.0,
        background_inline: bool = False,
        background_workers: int = 2,
        bcrypt_rounds: int = 12,
        trial_days: int = 7,
    ):
        self.storage = storage
        self.remote = remote or UnconfiguredRemote()
        self.network = network or NetworkMonitor()
        self.background = BackgroundTasks(max_workers=background_workers, inline=background_inline)
        self.queue = OperationQueue(storage, max_retries=max_retries)
        self.state = LocalStateStore(storage)
        self.engine = SyncEngine(self.queue, self.state, self.remote, self.network)
        self.mutations = MutationFacade(
            self.state,
            self.queue,
            self.remote,
            self.network,
            background=self.background,
            engine=self.engine,
            bcrypt_rounds=bcrypt_rounds,
        )
        self.session = ShopSession(
            self.state,
            self.mutations,
            self.remote,
            self.network,
            bcrypt_rounds=bcrypt_rounds,
            trial_days=trial_days,
        )
        self.scheduler = SyncScheduler(
            self.engine,
            self.queue,
            self.network,
            interval_seconds=sync_interval_seconds,
            background=self.background,
        )

    @classmethod
    def from_config(cls, config, storage, remote: RemoteDataAccess | None = None) -> "ShopRuntime":
        if remote is None and config.get("REMOTE_API_URL"):
            remote = HttpRemoteDataAccess(
                config["REMOTE_API_URL"],
                api_key=config.get("REMOTE_API_KEY", ""),
                timeout=config.get("REMOTE_TIMEOUT_SECONDS", 10.0),
            )
        elif remote is None:
            logger.warning("REMOTE_API_URL is not set; running local-only")

        network = NetworkMonitor(
            initial_online=config.get("START_ONLINE", True),
            health_url=config.get("NETWORK_HEALTH_URL"),
        )
        return cls(
            storage,
            remote=remote,
            network=network,
            max_retries=config.get("SYNC_MAX_RETRIES", 5),
            sync_interval_seconds=config.get("SYNC_INTERVAL_SECONDS", 30.0),
            background_inline=config.get("BACKGROUND_TASKS_INLINE", False),
            background_workers=config.get("BACKGROUND_TASK_WORKERS", 2),
            bcrypt_rounds=config.get("BCRYPT_ROUNDS", 12),
            trial_days=config.get("TRIAL_DAYS", 7),
        )

    def shutdown(self) -> None:
        self.scheduler.stop()
        self.background.wait(timeout=5.0)
        self.background.shutdown()
        close = getattr(self.remote, "close", None)
        if close is not None:
            close()
