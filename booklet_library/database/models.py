"""
SQLAlchemy models for the local store
One table per collection, each row holding the record JSON blob.

The record JSON is the source of truth; id and modified_at are copied
out of it so lookups and ordering do not need to parse the blob.
"""

from sqlalchemy import BigInteger, Column, Integer, JSON, String, Text, UniqueConstraint

from booklet_library.database.collections import ASSIGNMENTS, BOOKLETS, SUBMISSIONS, USERS
from booklet_library.database.database import Base


class _RecordColumns:
    id = Column(String(64), primary_key=True)
    data = Column(JSON, nullable=False)
    modified_at = Column(BigInteger, nullable=False, default=0, index=True)

    def __repr__(self):
        return f"<{type(self).__name__}(id='{self.id}', modified_at={self.modified_at})>"


# ==========================================
# COLLECTIONS
# ==========================================

class BookletRow(_RecordColumns, Base):
    """Booklet aggregate, questions embedded in the JSON blob."""
    __tablename__ = BOOKLETS


class UserRow(_RecordColumns, Base):
    __tablename__ = USERS


class AssignmentRow(_RecordColumns, Base):
    __tablename__ = ASSIGNMENTS


class SubmissionRow(_RecordColumns, Base):
    __tablename__ = SUBMISSIONS


ROW_MODELS = {
    BOOKLETS: BookletRow,
    USERS: UserRow,
    ASSIGNMENTS: AssignmentRow,
    SUBMISSIONS: SubmissionRow,
}


# ==========================================
# STORE BOOKKEEPING
# ==========================================

class StoreMeta(Base):
    """Key/value metadata; holds the store schema version."""
    __tablename__ = "store_meta"

    key = Column(String(64), primary_key=True)
    value = Column(String(255), nullable=False)


class SyncState(Base):
    """
    Per-record sync bookkeeping.
    fingerprint is the hash of the remote row last exchanged with the backend,
    or TOMBSTONE for records removed locally by deduplication.
    """
    __tablename__ = "sync_state"

    collection = Column(String(32), primary_key=True)
    record_id = Column(String(64), primary_key=True)
    fingerprint = Column(String(64), nullable=False)
    modified_at = Column(BigInteger, nullable=False, default=0)
    synced_at = Column(BigInteger, nullable=False, default=0)

    def __repr__(self):
        return f"<SyncState(collection='{self.collection}', record_id='{self.record_id}')>"


class OutboxEntry(Base):
    """A pending single-record push. One entry per (collection, record_id)."""
    __tablename__ = "sync_outbox"
    __table_args__ = (UniqueConstraint("collection", "record_id", name="uq_outbox_record"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    collection = Column(String(32), nullable=False, index=True)
    record_id = Column(String(64), nullable=False)
    enqueued_at = Column(BigInteger, nullable=False)
    attempts = Column(Integer, nullable=False, default=0)
    next_attempt_at = Column(BigInteger, nullable=False, default=0, index=True)
    last_error = Column(Text, nullable=True)

    def __repr__(self):
        return f"<OutboxEntry(collection='{self.collection}', record_id='{self.record_id}', attempts={self.attempts})>"
