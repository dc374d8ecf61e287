"""
Local Store
Persistent, versioned record store with four independent collections.

All reads and writes go through a LocalStore instance that the application
constructs, opens and closes explicitly and passes to every component.

Atomicity:
  - single-record calls (get/put/delete) run in their own transaction
  - multi-record work uses `with store.transaction(collection) as tx:`;
    everything done through `tx` commits or rolls back together

Failure mode: if the engine cannot be opened the store is marked unavailable.
Reads then return None / [] so callers fall back to empty results, and
writes raise StoreUnavailableError for the caller to catch.
"""

import copy
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from booklet_library.config import LOCAL_DB_URL
from booklet_library.database.collections import check_collection, record_timestamp
from booklet_library.database.database import Base, make_engine, make_session_factory
from booklet_library.database.models import ROW_MODELS, StoreMeta

log = logging.getLogger(__name__)

STORE_VERSION = 5

Record = Dict[str, Any]


class StoreUnavailableError(RuntimeError):
    """The local store could not be opened or has been closed."""


class CollectionTransaction:
    """Record operations on one collection, bound to one session."""

    def __init__(self, session: Session, collection: str):
        self.session = session
        self.collection = collection
        self._model = ROW_MODELS[collection]

    def get(self, record_id: str) -> Optional[Record]:
        row = self.session.get(self._model, record_id)
        return copy.deepcopy(row.data) if row else None

    def get_all(self) -> List[Record]:
        rows = (
            self.session.query(self._model)
            .order_by(self._model.modified_at.desc(), self._model.id)
            .all()
        )
        return [copy.deepcopy(row.data) for row in rows]

    def ids(self) -> List[str]:
        return [row_id for (row_id,) in self.session.query(self._model.id).all()]

    def put(self, record: Record) -> Record:
        """Insert or replace by id."""
        record_id = record.get("id")
        if not record_id:
            raise ValueError(f"{self.collection} record has no id")
        data = copy.deepcopy(record)
        self.session.merge(
            self._model(
                id=str(record_id),
                data=data,
                modified_at=record_timestamp(self.collection, data),
            )
        )
        return data

    def delete(self, record_id: str) -> bool:
        row = self.session.get(self._model, record_id)
        if row is None:
            return False
        self.session.delete(row)
        return True

    def clear(self) -> int:
        return self.session.query(self._model).delete()

    def count(self) -> int:
        return self.session.query(self._model).count()


class LocalStore:
    """Explicitly opened store client. Not a module-level singleton."""

    def __init__(self, url: str = LOCAL_DB_URL):
        self.url = url
        self._engine = None
        self._session_factory = None

    # ─── Lifecycle ─────────────────────────────────────────────────────────────

    def open(self) -> bool:
        """Open the engine, create missing tables and stamp the schema version."""
        if self._engine is not None:
            return True
        try:
            engine = make_engine(self.url)
            Base.metadata.create_all(bind=engine)
            session_factory = make_session_factory(engine)
            with session_factory() as session:
                meta = session.get(StoreMeta, "schema_version")
                previous = int(meta.value) if meta else 0
                if previous != STORE_VERSION:
                    log.info("Local store schema version %s -> %s", previous, STORE_VERSION)
                    session.merge(StoreMeta(key="schema_version", value=str(STORE_VERSION)))
                    session.commit()
        except SQLAlchemyError as e:
            log.error("Local store failed to open (%s): %s", self.url, e)
            return False
        self._engine = engine
        self._session_factory = session_factory
        log.info("Local store opened: %s", self.url)
        return True

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._session_factory = None

    @property
    def available(self) -> bool:
        return self._session_factory is not None

    def reset(self) -> None:
        """Drop and recreate every table (factory reset)."""
        if not self.available:
            raise StoreUnavailableError("Local store is not open")
        Base.metadata.drop_all(bind=self._engine)
        self._engine.dispose()
        self._engine = None
        self._session_factory = None
        self.open()

    # ─── Transactions ──────────────────────────────────────────────────────────

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Committing session for bookkeeping tables (sync state, outbox)."""
        if not self.available:
            raise StoreUnavailableError("Local store is not open")
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @contextmanager
    def transaction(self, collection: str) -> Iterator[CollectionTransaction]:
        """All-or-nothing transaction scoped to one collection."""
        check_collection(collection)
        with self.session() as db:
            yield CollectionTransaction(db, collection)

    # ─── Single-record operations ──────────────────────────────────────────────

    def get(self, collection: str, record_id: str) -> Optional[Record]:
        if not self.available:
            return None
        try:
            with self.transaction(collection) as tx:
                return tx.get(record_id)
        except OperationalError as e:
            log.warning("Local store read failed (%s/%s): %s", collection, record_id, e)
            return None

    def get_all(self, collection: str) -> List[Record]:
        if not self.available:
            return []
        try:
            with self.transaction(collection) as tx:
                return tx.get_all()
        except OperationalError as e:
            log.warning("Local store read failed (%s): %s", collection, e)
            return []

    def count(self, collection: str) -> int:
        if not self.available:
            return 0
        try:
            with self.transaction(collection) as tx:
                return tx.count()
        except OperationalError as e:
            log.warning("Local store count failed (%s): %s", collection, e)
            return 0

    def put(self, collection: str, record: Record) -> Record:
        with self.transaction(collection) as tx:
            return tx.put(record)

    def delete(self, collection: str, record_id: str) -> bool:
        with self.transaction(collection) as tx:
            return tx.delete(record_id)

    def clear(self, collection: str) -> int:
        with self.transaction(collection) as tx:
            return tx.clear()
