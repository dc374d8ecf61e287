"""
Collection names and per-collection record conventions
"""

from typing import Any, Dict

BOOKLETS = "booklets"
USERS = "users"
ASSIGNMENTS = "assignments"
SUBMISSIONS = "submissions"

# Content first, then the collections that reference it
ALL_COLLECTIONS = (BOOKLETS, USERS, ASSIGNMENTS, SUBMISSIONS)

# Field (local camelCase shape) holding the last-modified timestamp in epoch ms
TIMESTAMP_FIELDS = {
    BOOKLETS: "updatedAt",
    USERS: "updatedAt",
    ASSIGNMENTS: "updatedAt",
    SUBMISSIONS: "updatedAt",
}

# Used when a record predates updatedAt (older exports, remote rows without the column)
FALLBACK_TIMESTAMP_FIELDS = {
    BOOKLETS: "createdAt",
    USERS: "createdAt",
    ASSIGNMENTS: "createdAt",
    SUBMISSIONS: "submittedAt",
}


class UnknownCollectionError(KeyError):
    pass


def check_collection(collection: str) -> str:
    if collection not in TIMESTAMP_FIELDS:
        raise UnknownCollectionError(collection)
    return collection


def record_timestamp(collection: str, record: Dict[str, Any]) -> int:
    """Modification timestamp of a local record; 0 when missing or unparseable."""
    check_collection(collection)
    value = record.get(TIMESTAMP_FIELDS[collection]) or record.get(FALLBACK_TIMESTAMP_FIELDS[collection])
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0
