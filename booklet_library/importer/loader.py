"""
Bulk import into the local store

import_data() is the boundary for untrusted text: it repairs and parses the
payload, validates every record, and writes each collection inside one
transaction. It always returns an ImportResult and never raises.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Tuple

from pydantic import ValidationError

from booklet_library.database.collections import ALL_COLLECTIONS, BOOKLETS
from booklet_library.database.schemas import RECORD_MODELS, Booklet
from booklet_library.database.store import LocalStore
from booklet_library.importer.repair import ImportParseError, load_json, merge_chunks
from booklet_library.importer.schemas import ImportResult
from booklet_library.numbering import renumber

log = logging.getLogger(__name__)


def normalize_root(data: Any) -> Dict[str, Any]:
    """A bare array is the booklets collection."""
    if isinstance(data, list):
        return {BOOKLETS: data}
    if isinstance(data, dict):
        return data
    raise ImportParseError("Invalid format: JSON root must be an object or an array.")


def validate_items(collection: str, items: List[Any]) -> Tuple[List[Dict[str, Any]], int]:
    """
    Validate raw items into local records.
    Booklets are renumbered so partial or missing numbering is filled in.
    Returns (records, skipped_count).
    """
    model = RECORD_MODELS[collection]
    records = []
    skipped = 0
    for idx, item in enumerate(items):
        try:
            entity = model.model_validate(item)
        except ValidationError as e:
            skipped += 1
            log.warning("Import: skipping %s[%s]: %s", collection, idx, e.errors()[0].get("msg", e))
            continue
        if isinstance(entity, Booklet):
            renumber(entity)
        records.append(entity.to_record())
    return records, skipped


def import_data(store: LocalStore, raw_text: str, lenient: bool = False) -> ImportResult:
    """
    Import a JSON payload (possibly wrapped in noise) into the local store.

    Accepts a bare array of booklets or an object with any of the keys
    booklets / users / assignments / submissions.
    """
    try:
        data = normalize_root(load_json(raw_text, lenient=lenient))

        total = 0
        skipped = 0
        per_collection: Dict[str, int] = {}
        for collection in ALL_COLLECTIONS:
            items = data.get(collection)
            if not isinstance(items, list):
                continue
            records, bad = validate_items(collection, items)
            skipped += bad
            with store.transaction(collection) as tx:
                for record in records:
                    tx.put(record)
            per_collection[collection] = len(records)
            total += len(records)
            log.info("Import: %s written=%s skipped=%s", collection, len(records), bad)

        return ImportResult(success=True, count=total, collections=per_collection, skipped=skipped)
    except Exception as e:
        log.error("Import failed: %s", e)
        return ImportResult(success=False, count=0, message=str(e) or "Unknown format error")


def import_chunks(store: LocalStore, texts: Iterable[str], lenient: bool = False) -> ImportResult:
    """Import chunked array downloads as one booklet array."""
    return import_data(store, merge_chunks(texts), lenient=lenient)


def import_file(store: LocalStore, path, lenient: bool = False) -> ImportResult:
    try:
        text = Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        log.error("Import: cannot read %s: %s", path, e)
        return ImportResult(success=False, count=0, message=f"Cannot read {path}: {e}")
    return import_data(store, text, lenient=lenient)
