"""
Pydantic schemas for library records and API requests

Records are stored and exported in camelCase (isPublished, createdAt, ...).
Fields can also be populated by their snake_case names, which is the naming
of the remote backend rows (is_published, created_at, booklet_id, ...), so a
remote export validates into the same models.

All timestamps are epoch milliseconds; ISO-8601 strings are coerced.
"""

import enum
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from booklet_library.utils import new_id


class BookletType(str, enum.Enum):
    READING_ONLY = "Reading Material Only"
    WITH_SOLUTIONS = "With Solutions"


class Difficulty(str, enum.Enum):
    LEVEL_1 = "Knowledge"
    LEVEL_2 = "Routine"
    LEVEL_3 = "Complex"
    LEVEL_4 = "Problem Solving"


class UserRole(str, enum.Enum):
    STUDENT = "STUDENT"
    STAFF = "STAFF"
    SUPER_ADMIN = "SUPER_ADMIN"


class UserStatus(str, enum.Enum):
    PENDING = "PENDING"
    AUTHORIZED = "AUTHORIZED"
    DENIED = "DENIED"


class SubmissionStatus(str, enum.Enum):
    SUBMITTED = "SUBMITTED"
    MARKED = "MARKED"
    RECORDED = "RECORDED"


# Submission status only moves forward
STATUS_ORDER = {
    SubmissionStatus.SUBMITTED: 0,
    SubmissionStatus.MARKED: 1,
    SubmissionStatus.RECORDED: 2,
}


def to_epoch_ms(value: Any) -> Optional[int]:
    """Coerce numbers, numeric strings and ISO-8601 strings to epoch ms."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError("boolean is not a timestamp")
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.lstrip("-").isdigit():
            return int(text)
        dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def _to_int(value: Any) -> int:
    if value is None or value == "":
        return 0
    return int(round(float(value)))


class LibraryModel(BaseModel):
    """Base for stored records."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_record(self) -> Dict[str, Any]:
        """Local/export shape (camelCase, JSON-safe)."""
        return self.model_dump(mode="json", by_alias=True)


# ==========================================
# BOOKLETS & QUESTIONS
# ==========================================

class Question(LibraryModel):
    """One gradable item; `number` is stable and scoped to `topic`."""
    id: str = Field(default_factory=new_id)
    topic: str = ""
    term: Optional[str] = None
    number: int = 0
    max_marks: int = 0
    image_urls: List[str] = Field(default_factory=list)
    solution_image_urls: Optional[List[str]] = None
    extracted_question: str = ""
    generated_solution: Optional[str] = None
    difficulty: Optional[str] = None
    is_processing: bool = False
    include_image: Optional[bool] = None
    created_at: int = 0

    @field_validator("number", "max_marks", mode="before")
    @classmethod
    def coerce_int(cls, v):
        return _to_int(v)

    @field_validator("topic", "extracted_question", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return "" if v is None else v

    @field_validator("image_urls", mode="before")
    @classmethod
    def none_to_list(cls, v):
        return [] if v is None else v

    @field_validator("created_at", mode="before")
    @classmethod
    def coerce_ts(cls, v):
        return to_epoch_ms(v) or 0


class Booklet(LibraryModel):
    """Versioned content aggregate owning its questions."""
    id: str = Field(default_factory=new_id)
    related_booklet_id: Optional[str] = None
    title: str = ""
    subject: str = ""
    grade: str = ""
    topic: str = ""
    compiler: str = ""
    type: BookletType = BookletType.WITH_SOLUTIONS
    is_published: bool = False
    created_at: int = 0
    updated_at: int = 0
    questions: List[Question] = Field(default_factory=list)

    @field_validator("title", "subject", "grade", "topic", "compiler", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return "" if v is None else v

    @field_validator("questions", mode="before")
    @classmethod
    def none_to_list(cls, v):
        return [] if v is None else v

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def coerce_ts(cls, v):
        return to_epoch_ms(v) or 0


# ==========================================
# USERS
# ==========================================

def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class User(LibraryModel):
    """Account record. The password is an opaque credential stored as given."""
    id: str = Field(default_factory=new_id)
    name: str = ""
    email: str
    password: Optional[str] = None
    role: UserRole = UserRole.STUDENT
    status: UserStatus = UserStatus.PENDING
    grade: Optional[str] = None
    created_at: int = 0
    updated_at: int = 0

    @field_validator("email", mode="before")
    @classmethod
    def normalize(cls, v):
        return normalize_email(v)

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def coerce_ts(cls, v):
        return to_epoch_ms(v) or 0

    @model_validator(mode="after")
    def default_updated_at(self):
        self.updated_at = self.updated_at or self.created_at
        return self


# ==========================================
# ASSIGNMENTS & SUBMISSIONS
# ==========================================

class Assignment(LibraryModel):
    """A scheduled reference to a question-number range in one booklet topic."""
    id: str = Field(default_factory=new_id)
    booklet_id: str
    booklet_title: str = ""
    topic: str = ""
    topics: List[str] = Field(default_factory=list)
    start_num: int = 1
    end_num: int = 1
    grade: str = ""
    is_published: bool = False
    open_date: Optional[str] = None
    close_date: Optional[str] = None
    due_date: Optional[str] = None
    time_limit_seconds: Optional[int] = None
    created_at: int = 0
    updated_at: int = 0

    @field_validator("topics", mode="before")
    @classmethod
    def none_to_list(cls, v):
        return [] if v is None else v

    @field_validator("start_num", "end_num", mode="before")
    @classmethod
    def coerce_int(cls, v):
        return _to_int(v)

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def coerce_ts(cls, v):
        return to_epoch_ms(v) or 0

    @model_validator(mode="after")
    def default_updated_at(self):
        self.updated_at = self.updated_at or self.created_at
        return self


class StudentAnswer(LibraryModel):
    question_id: str
    text_response: str = ""
    image_response: Optional[str] = None
    ai_mark: Optional[float] = None
    ai_feedback: Optional[str] = None
    teacher_override_mark: Optional[float] = None

    @property
    def effective_mark(self) -> float:
        if self.teacher_override_mark is not None:
            return self.teacher_override_mark
        return self.ai_mark or 0.0


class Submission(LibraryModel):
    """One student's attempt at an assignment."""
    id: str = Field(default_factory=new_id)
    assignment_id: str
    student_id: str
    student_name: str = ""
    answers: List[StudentAnswer] = Field(default_factory=list)
    total_score: Optional[float] = None
    max_score: Optional[float] = None
    status: SubmissionStatus = SubmissionStatus.SUBMITTED
    started_at: Optional[int] = None
    submitted_at: int = 0
    updated_at: int = 0

    @field_validator("answers", mode="before")
    @classmethod
    def none_to_list(cls, v):
        return [] if v is None else v

    @field_validator("started_at", mode="before")
    @classmethod
    def coerce_optional_ts(cls, v):
        return to_epoch_ms(v)

    @field_validator("submitted_at", "updated_at", mode="before")
    @classmethod
    def coerce_ts(cls, v):
        return to_epoch_ms(v) or 0

    @model_validator(mode="after")
    def default_updated_at(self):
        self.updated_at = self.updated_at or self.submitted_at
        return self


# ==========================================
# API REQUESTS
# ==========================================

class BookletCreate(BaseModel):
    subject: str = Field(..., min_length=1)
    grade: str = Field(..., min_length=1)
    topic: str = Field(..., min_length=1)
    type: BookletType = BookletType.WITH_SOLUTIONS
    compiler: str = ""


class BookletUpdate(BaseModel):
    """Editable booklet fields - all optional."""
    title: Optional[str] = None
    subject: Optional[str] = None
    grade: Optional[str] = None
    topic: Optional[str] = None
    compiler: Optional[str] = None
    type: Optional[BookletType] = None
    is_published: Optional[bool] = None


class QuestionCreate(BaseModel):
    topic: str = ""
    term: Optional[str] = None
    max_marks: int = Field(default=0, ge=0)
    image_urls: List[str] = Field(default_factory=list)
    extracted_question: str = ""
    generated_solution: Optional[str] = None
    difficulty: Optional[str] = None
    include_image: Optional[bool] = None


class QuestionUpdate(BaseModel):
    topic: Optional[str] = None
    term: Optional[str] = None
    max_marks: Optional[int] = Field(None, ge=0)
    image_urls: Optional[List[str]] = None
    extracted_question: Optional[str] = None
    generated_solution: Optional[str] = None
    difficulty: Optional[str] = None
    is_processing: Optional[bool] = None
    include_image: Optional[bool] = None


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)
    grade: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


class ResetPasswordRequest(BaseModel):
    email: str
    new_password: str = Field(..., min_length=1)


class AuthorizationUpdate(BaseModel):
    role: UserRole
    status: UserStatus


class AssignmentCreate(BaseModel):
    booklet_id: str
    topic: str = ""
    topics: List[str] = Field(default_factory=list)
    start_num: int = Field(..., ge=1)
    end_num: int = Field(..., ge=1)
    grade: str
    is_published: bool = False
    open_date: Optional[str] = None
    close_date: Optional[str] = None
    due_date: Optional[str] = None
    time_limit_seconds: Optional[int] = Field(None, gt=0)


class SubmissionCreate(BaseModel):
    assignment_id: str
    student_id: str
    student_name: str = ""
    answers: List[StudentAnswer] = Field(default_factory=list)
    started_at: Optional[int] = None


class OverrideMarkRequest(BaseModel):
    mark: float = Field(..., ge=0)


class StatusUpdate(BaseModel):
    status: SubmissionStatus


RECORD_MODELS = {
    "booklets": Booklet,
    "users": User,
    "assignments": Assignment,
    "submissions": Submission,
}
