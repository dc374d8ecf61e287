"""
Deduplicator

Collapses records that share a natural key onto the most recently modified
copy. Runs as one read-then-write transaction per collection.

Natural keys:
  booklets — lower-cased, trimmed grade|subject|title (record id when all blank)
  users    — normalized email
  others   — record id (nothing to collapse)
"""

import logging
from collections import defaultdict
from typing import Any, Dict

from pydantic import BaseModel

from booklet_library.database.collections import BOOKLETS, USERS, record_timestamp
from booklet_library.database.store import LocalStore
from booklet_library.sync.state import mark_tombstone

log = logging.getLogger(__name__)


class DedupeResult(BaseModel):
    collection: str
    kept: int = 0
    removed: int = 0


def natural_key(collection: str, record: Dict[str, Any]) -> str:
    if collection == BOOKLETS:
        parts = [str(record.get(f) or "").strip().lower() for f in ("grade", "subject", "title")]
        # untitled drafts are never duplicates of each other
        return "|".join(parts) if any(parts) else str(record.get("id"))
    if collection == USERS:
        return str(record.get("email") or "").strip().lower() or str(record.get("id"))
    return str(record.get("id"))


def dedupe(store: LocalStore, collection: str = BOOKLETS) -> DedupeResult:
    """Keep the newest record of every natural-key group, delete the rest."""
    result = DedupeResult(collection=collection)
    with store.transaction(collection) as tx:
        groups = defaultdict(list)
        for record in tx.get_all():
            groups[natural_key(collection, record)].append(record)

        for key, records in groups.items():
            result.kept += 1
            if len(records) < 2:
                continue
            records.sort(key=lambda r: record_timestamp(collection, r), reverse=True)
            for stale in records[1:]:
                tx.delete(stale["id"])
                mark_tombstone(tx.session, collection, stale["id"], record_timestamp(collection, stale))
                result.removed += 1
            log.info("Dedupe %s: key=%r kept=%s removed=%s", collection, key, records[0]["id"], len(records) - 1)
    return result
