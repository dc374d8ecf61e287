"""
Sync outbox

Local mutations enqueue (collection, record_id); a single consumer drains
due entries and pushes each record. Failures are rescheduled with
exponential backoff. Entries live in the local store, so pending pushes
survive restarts. Re-enqueueing a record that is already waiting coalesces
into the existing entry.
"""

import asyncio
import logging
from typing import List, Optional, Tuple

from booklet_library.config import OUTBOX_MAX_BACKOFF_SECONDS, OUTBOX_POLL_SECONDS
from booklet_library.database.models import OutboxEntry
from booklet_library.database.store import LocalStore, StoreUnavailableError
from booklet_library.sync.engine import RemoteSyncEngine
from booklet_library.sync.remote import RemoteError
from booklet_library.utils import now_ms

log = logging.getLogger(__name__)

BASE_BACKOFF_SECONDS = 2.0

# (entry id, collection, record id, enqueued_at)
DueEntry = Tuple[int, str, str, int]


class SyncOutbox:
    def __init__(
        self,
        store: LocalStore,
        max_backoff: float = OUTBOX_MAX_BACKOFF_SECONDS,
        base_backoff: float = BASE_BACKOFF_SECONDS,
    ):
        self.store = store
        self.max_backoff = max_backoff
        self.base_backoff = base_backoff

    def enqueue(self, collection: str, record_id: str) -> None:
        now = now_ms()
        try:
            with self.store.session() as db:
                entry = (
                    db.query(OutboxEntry)
                    .filter(OutboxEntry.collection == collection, OutboxEntry.record_id == record_id)
                    .first()
                )
                if entry is None:
                    db.add(OutboxEntry(collection=collection, record_id=record_id, enqueued_at=now,
                                       attempts=0, next_attempt_at=now))
                else:
                    entry.enqueued_at = now
                    entry.attempts = 0
                    entry.next_attempt_at = now
                    entry.last_error = None
        except StoreUnavailableError as e:
            log.warning("Outbox: cannot enqueue %s/%s: %s", collection, record_id, e)

    def due(self, limit: int = 50, now: Optional[int] = None) -> List[DueEntry]:
        now = now_ms() if now is None else now
        with self.store.session() as db:
            entries = (
                db.query(OutboxEntry)
                .filter(OutboxEntry.next_attempt_at <= now)
                .order_by(OutboxEntry.enqueued_at, OutboxEntry.id)
                .limit(limit)
                .all()
            )
            return [(e.id, e.collection, e.record_id, e.enqueued_at) for e in entries]

    def complete(self, entry_id: int, enqueued_at: int) -> None:
        """Remove an entry unless it was re-enqueued while being pushed."""
        with self.store.session() as db:
            db.query(OutboxEntry).filter(
                OutboxEntry.id == entry_id, OutboxEntry.enqueued_at == enqueued_at
            ).delete()

    def fail(self, entry_id: int, error: str) -> None:
        with self.store.session() as db:
            entry = db.get(OutboxEntry, entry_id)
            if entry is None:
                return
            entry.attempts += 1
            delay = min(self.base_backoff * (2 ** entry.attempts), self.max_backoff)
            entry.next_attempt_at = now_ms() + int(delay * 1000)
            entry.last_error = error[:1000]

    def purge(self, collection: str, before: int) -> int:
        """Drop entries for a collection enqueued before a full push started."""
        with self.store.session() as db:
            return (
                db.query(OutboxEntry)
                .filter(OutboxEntry.collection == collection, OutboxEntry.enqueued_at < before)
                .delete()
            )

    def pending_count(self) -> int:
        if not self.store.available:
            return 0
        with self.store.session() as db:
            return db.query(OutboxEntry).count()


class OutboxWorker:
    """The single consumer of the outbox."""

    def __init__(self, outbox: SyncOutbox, engine: RemoteSyncEngine, poll_interval: float = OUTBOX_POLL_SECONDS):
        self.outbox = outbox
        self.engine = engine
        self.poll_interval = poll_interval
        self._task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def drain(self) -> int:
        """Push every due entry once. Stops at the first remote failure."""
        pushed = 0
        async with self._lock:
            for entry_id, collection, record_id, enqueued_at in self.outbox.due():
                try:
                    await self.engine.push_record(collection, record_id)
                except RemoteError as e:
                    self.outbox.fail(entry_id, str(e))
                    log.warning("Outbox: push %s/%s failed, backing off: %s", collection, record_id, e)
                    break
                except Exception as e:
                    self.outbox.fail(entry_id, str(e))
                    log.error("Outbox: push %s/%s failed: %s", collection, record_id, e)
                    continue
                self.outbox.complete(entry_id, enqueued_at)
                pushed += 1
        if pushed:
            log.info("Outbox: pushed %s records", pushed)
        return pushed

    async def _run(self) -> None:
        while True:
            try:
                await self.drain()
            except StoreUnavailableError as e:
                log.warning("Outbox: store unavailable: %s", e)
            await asyncio.sleep(self.poll_interval)

    def start(self) -> None:
        """Start the consumer; calling it again replaces the running task."""
        self.stop()
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
