"""
Local record <-> remote row mapping

Remote rows use snake_case columns. Nested arrays (booklet questions,
submission answers) keep the local camelCase item shape.
"""

from typing import Any, Dict

from pydantic.alias_generators import to_camel

from booklet_library.database.collections import ASSIGNMENTS, BOOKLETS, SUBMISSIONS, USERS
from booklet_library.database.schemas import RECORD_MODELS

REMOTE_FIELDS = {
    BOOKLETS: (
        "id", "title", "grade", "subject", "topic", "type", "compiler",
        "is_published", "created_at", "updated_at", "questions",
    ),
    USERS: (
        "id", "name", "email", "password", "role", "status", "grade", "created_at", "updated_at",
    ),
    ASSIGNMENTS: (
        "id", "booklet_id", "booklet_title", "topic", "topics", "grade",
        "start_num", "end_num", "is_published", "open_date", "close_date",
        "due_date", "time_limit_seconds", "created_at", "updated_at",
    ),
    SUBMISSIONS: (
        "id", "assignment_id", "student_id", "student_name", "answers",
        "total_score", "max_score", "status", "started_at", "submitted_at", "updated_at",
    ),
}

NESTED_FIELDS = {
    BOOKLETS: ("questions",),
    SUBMISSIONS: ("answers",),
}

# Booklet columns sent on the normal-size path. questions and updated_at travel
# together in the follow-up PATCH, so a row never carries a new timestamp over
# stale questions.
BOOKLET_METADATA_FIELDS = tuple(f for f in REMOTE_FIELDS[BOOKLETS] if f not in ("questions", "updated_at"))


def to_remote(collection: str, record: Dict[str, Any]) -> Dict[str, Any]:
    entity = RECORD_MODELS[collection].model_validate(record)
    snake = entity.model_dump(mode="json")
    camel = entity.to_record()
    nested = NESTED_FIELDS.get(collection, ())
    row = {}
    for field in REMOTE_FIELDS[collection]:
        row[field] = camel[to_camel(field)] if field in nested else snake[field]
    return row


def from_remote(collection: str, row: Dict[str, Any]) -> Dict[str, Any]:
    return RECORD_MODELS[collection].model_validate(row).to_record()


def split_booklet(row: Dict[str, Any]):
    """(metadata row, questions list) for the split booklet push."""
    metadata = {f: row.get(f) for f in BOOKLET_METADATA_FIELDS}
    return metadata, row.get("questions") or []
