"""
Per-record sync bookkeeping (sync_state table)

  - fingerprint of the remote row last pushed or pulled, so unchanged
    records are not re-sent
  - tombstones for records removed locally by deduplication, so a pull does
    not bring them back unless the remote copy is newer
"""

import hashlib
import json
from typing import Any, Dict

from sqlalchemy.orm import Session

from booklet_library.database.models import SyncState
from booklet_library.utils import now_ms

TOMBSTONE = "tombstone"


def fingerprint(row: Dict[str, Any]) -> str:
    canonical = json.dumps(row, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def load_states(db: Session, collection: str) -> Dict[str, SyncState]:
    rows = db.query(SyncState).filter(SyncState.collection == collection).all()
    return {row.record_id: row for row in rows}


def mark_synced(db: Session, collection: str, record_id: str, fp: str, modified_at: int) -> None:
    db.merge(
        SyncState(
            collection=collection,
            record_id=record_id,
            fingerprint=fp,
            modified_at=modified_at,
            synced_at=now_ms(),
        )
    )


def mark_tombstone(db: Session, collection: str, record_id: str, modified_at: int) -> None:
    mark_synced(db, collection, record_id, TOMBSTONE, modified_at)


def is_tombstoned(state: SyncState, remote_modified_at: int) -> bool:
    """A tombstone hides remote copies that are not newer than the removed record."""
    return (
        state is not None
        and state.fingerprint == TOMBSTONE
        and remote_modified_at <= (state.modified_at or 0)
    )


def clear_collection(db: Session, collection: str) -> int:
    return db.query(SyncState).filter(SyncState.collection == collection).delete()
