"""
Sync Orchestrator

sync_all() sweeps every collection in a fixed order (content first):
  1. pull from remote
  2. dedupe locally (booklets only)
  3. push to remote
Each step is caught on its own; one collection's failure never stops the
rest. The sweep succeeds when at least one step reached the remote: a pull
that returned, or a push that actually sent rows.

The sweep runs once at startup (in the background), on demand, and on a
periodic asyncio timer.
"""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from booklet_library.config import SYNC_INTERVAL_SECONDS
from booklet_library.database.collections import ALL_COLLECTIONS, BOOKLETS
from booklet_library.database.store import LocalStore
from booklet_library.dedupe import dedupe
from booklet_library.sync.engine import RemoteSyncEngine
from booklet_library.sync.outbox import SyncOutbox
from booklet_library.utils import now_ms

log = logging.getLogger(__name__)


class CollectionReport(BaseModel):
    collection: str
    pulled: int = 0
    pushed: int = 0
    removed: int = 0
    errors: List[str] = Field(default_factory=list)


class SyncReport(BaseModel):
    success: bool
    collections: Dict[str, CollectionReport] = Field(default_factory=dict)
    started_at: int
    finished_at: int


class SyncOrchestrator:
    def __init__(
        self,
        store: LocalStore,
        engine: RemoteSyncEngine,
        outbox: Optional[SyncOutbox] = None,
        interval: float = SYNC_INTERVAL_SECONDS,
        collections: Iterable[str] = ALL_COLLECTIONS,
    ):
        self.store = store
        self.engine = engine
        self.outbox = outbox
        self.interval = interval
        self.collections = tuple(collections)
        self.last_report: Optional[SyncReport] = None
        self._task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()

    # ─── Sweep ─────────────────────────────────────────────────────────────────

    async def sync_all(self) -> SyncReport:
        """Pull → dedupe → push for every collection. Never raises."""
        async with self._lock:
            started = now_ms()
            reports: Dict[str, CollectionReport] = {}
            reached = 0

            for collection in self.collections:
                report = CollectionReport(collection=collection)
                reports[collection] = report

                try:
                    report.pulled = await self.engine.pull(collection)
                    reached += 1
                except Exception as e:
                    report.errors.append(f"pull: {e}")
                    log.warning("Sync %s: pull failed: %s", collection, e)

                if collection == BOOKLETS:
                    try:
                        report.removed = dedupe(self.store, collection).removed
                    except Exception as e:
                        report.errors.append(f"dedupe: {e}")
                        log.warning("Sync %s: dedupe failed: %s", collection, e)

                try:
                    push_started = now_ms()
                    report.pushed = await self.engine.push(collection)
                    # an empty push makes no request
                    if report.pushed:
                        reached += 1
                    if self.outbox is not None:
                        self.outbox.purge(collection, push_started)
                except Exception as e:
                    report.errors.append(f"push: {e}")
                    log.warning("Sync %s: push failed: %s", collection, e)

            result = SyncReport(
                success=reached > 0,
                collections=reports,
                started_at=started,
                finished_at=now_ms(),
            )
            self.last_report = result
            log.info(
                "Sync complete: success=%s %s",
                result.success,
                ", ".join(f"{c}(+{r.pulled}/^{r.pushed})" for c, r in reports.items()),
            )
            return result

    # ─── Timer ─────────────────────────────────────────────────────────────────

    async def _loop(self, interval: float, run_now: bool) -> None:
        if run_now:
            await self.sync_all()
        while True:
            await asyncio.sleep(interval)
            await self.sync_all()

    def start(self, interval: Optional[float] = None, run_now: bool = True) -> None:
        """
        Start the periodic sweep. A running timer is replaced, never doubled.
        With run_now the first sweep starts immediately in the background.
        """
        self.stop()
        self.interval = interval or self.interval
        self._task = asyncio.get_running_loop().create_task(self._loop(self.interval, run_now))

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
