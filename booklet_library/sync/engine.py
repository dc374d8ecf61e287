"""
Remote Sync Engine

Per collection:
  pull  — page through the remote table; a remote row overwrites the local
          copy only when there is none or the remote timestamp is strictly
          newer. Local-only records are never deleted.
  push  — map local records to remote rows and upsert them by id. Rows whose
          fingerprint matches the last exchange are skipped unless force=True.

Booklets are pushed in two parts: descriptive columns go through the normal
(proxied) path, then each questions array is PATCHed together with updated_at,
through the direct bulk path when its JSON exceeds bulk_threshold bytes. If the
PATCH fails the remote row keeps its previous timestamp, so peers do not adopt
the half-written row as current.

Conflicts are resolved by last-write-wins on the record timestamp only.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from booklet_library.config import BULK_THRESHOLD_BYTES, SYNC_PAGE_SIZE
from booklet_library.database.collections import BOOKLETS, check_collection, record_timestamp
from booklet_library.database.store import LocalStore
from booklet_library.sync.mapping import from_remote, split_booklet, to_remote
from booklet_library.sync.remote import RemoteClient
from booklet_library.sync.state import fingerprint, is_tombstoned, load_states, mark_synced

log = logging.getLogger(__name__)

UPSERT_BATCH_SIZE = 50

# (record_id, remote row, fingerprint, modified_at)
PendingRow = Tuple[str, Dict[str, Any], str, int]


def payload_size(value: Any) -> int:
    return len(json.dumps(value, separators=(",", ":"), ensure_ascii=False).encode("utf-8"))


class RemoteSyncEngine:
    def __init__(
        self,
        store: LocalStore,
        client: RemoteClient,
        page_size: int = SYNC_PAGE_SIZE,
        bulk_threshold: int = BULK_THRESHOLD_BYTES,
        batch_size: int = UPSERT_BATCH_SIZE,
    ):
        self.store = store
        self.client = client
        self.page_size = page_size
        self.bulk_threshold = bulk_threshold
        self.batch_size = batch_size

    # ─── Pull ──────────────────────────────────────────────────────────────────

    async def pull(self, collection: str) -> int:
        """Bring newer remote rows into the local store. Returns rows written."""
        check_collection(collection)
        rows = await self.client.fetch_all(collection, self.page_size)

        updated = 0
        with self.store.transaction(collection) as tx:
            states = load_states(tx.session, collection)
            for row in rows:
                try:
                    record = from_remote(collection, row)
                except ValidationError as e:
                    log.warning("Pull %s: skipping malformed row %s: %s", collection, row.get("id"), e)
                    continue
                record_id = record["id"]
                remote_ts = record_timestamp(collection, record)
                if is_tombstoned(states.get(record_id), remote_ts):
                    continue
                local = tx.get(record_id)
                if local is not None and remote_ts <= record_timestamp(collection, local):
                    continue
                tx.put(record)
                mark_synced(tx.session, collection, record_id, fingerprint(to_remote(collection, record)), remote_ts)
                updated += 1

        log.info("Pull %s: remote=%s updated=%s", collection, len(rows), updated)
        return updated

    # ─── Push ──────────────────────────────────────────────────────────────────

    def _pending(self, collection: str, records: List[Dict[str, Any]], force: bool) -> List[PendingRow]:
        with self.store.session() as db:
            known = {rid: state.fingerprint for rid, state in load_states(db, collection).items()}
        pending = []
        for record in records:
            try:
                row = to_remote(collection, record)
            except ValidationError as e:
                log.warning("Push %s: skipping invalid local record %s: %s", collection, record.get("id"), e)
                continue
            fp = fingerprint(row)
            if not force and known.get(row["id"]) == fp:
                continue
            pending.append((row["id"], row, fp, record_timestamp(collection, record)))
        return pending

    def _mark(self, collection: str, sent: List[PendingRow]) -> None:
        with self.store.session() as db:
            for record_id, _row, fp, ts in sent:
                mark_synced(db, collection, record_id, fp, ts)

    async def _send_rows(self, collection: str, pending: List[PendingRow]) -> None:
        for start in range(0, len(pending), self.batch_size):
            batch = pending[start:start + self.batch_size]
            await self.client.upsert(collection, [row for _id, row, _fp, _ts in batch])
            self._mark(collection, batch)

    async def _send_booklets(self, pending: List[PendingRow]) -> None:
        for start in range(0, len(pending), self.batch_size):
            batch = pending[start:start + self.batch_size]
            split = [split_booklet(row) for _id, row, _fp, _ts in batch]
            await self.client.upsert(BOOKLETS, [metadata for metadata, _questions in split])
            for item, (_metadata, questions) in zip(batch, split):
                patch = {"questions": questions, "updated_at": item[1]["updated_at"]}
                size = payload_size(patch)
                bulk = size > self.bulk_threshold
                if bulk:
                    log.info("Push booklets: %s questions payload %s bytes via bulk path", item[0], size)
                await self.client.update(BOOKLETS, item[0], patch, bulk=bulk)
                self._mark(BOOKLETS, [item])

    async def _send(self, collection: str, pending: List[PendingRow]) -> None:
        if collection == BOOKLETS:
            await self._send_booklets(pending)
        else:
            await self._send_rows(collection, pending)

    async def push(self, collection: str, force: bool = False) -> int:
        """Upsert changed local records. Returns rows sent."""
        check_collection(collection)
        pending = self._pending(collection, self.store.get_all(collection), force)
        await self._send(collection, pending)
        log.info("Push %s: sent=%s", collection, len(pending))
        return len(pending)

    async def push_record(self, collection: str, record_id: str) -> Optional[bool]:
        """
        Push one record regardless of its fingerprint.
        Returns None when the record no longer exists locally.
        """
        check_collection(collection)
        record = self.store.get(collection, record_id)
        if record is None:
            return None
        pending = self._pending(collection, [record], force=True)
        await self._send(collection, pending)
        return bool(pending)
