"""
Library service
Caller-facing read/write API over the local store.

Every mutation goes through here so that:
  - booklet edits keep question numbering and updated_at consistent
  - the changed record is enqueued in the sync outbox
Validation problems are raised as LibraryError subclasses with messages
meant for the user.
"""

import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

from booklet_library.config import SEED_LIBRARY_PATH
from booklet_library.database.collections import (
    ASSIGNMENTS,
    BOOKLETS,
    SUBMISSIONS,
    USERS,
    record_timestamp,
)
from booklet_library.database.schemas import (
    STATUS_ORDER,
    Assignment,
    AssignmentCreate,
    Booklet,
    BookletCreate,
    BookletUpdate,
    Question,
    QuestionCreate,
    QuestionUpdate,
    Submission,
    SubmissionCreate,
    SubmissionStatus,
    User,
    UserRole,
    UserStatus,
    normalize_email,
)
from booklet_library.database.store import LocalStore
from booklet_library.grading import MarkResult, mark
from booklet_library.importer import ImportResult, import_data
from booklet_library.numbering import assign_batch, move_to_topic, next_number, renumber, topic_key
from booklet_library.sync.outbox import SyncOutbox
from booklet_library.sync.state import mark_tombstone
from booklet_library.utils import next_stamp, now_ms

log = logging.getLogger(__name__)

EXPORT_VERSION = 1
MIN_SEED_LENGTH = 50

Marker = Callable[..., Awaitable[MarkResult]]


class LibraryError(ValueError):
    """Expected, user-facing validation failure."""


class NotFoundError(LibraryError):
    pass


class DuplicateEmailError(LibraryError):
    pass


class InvalidCredentialsError(LibraryError):
    pass


class InvalidStatusError(LibraryError):
    pass


class LibraryService:
    def __init__(
        self,
        store: LocalStore,
        outbox: Optional[SyncOutbox] = None,
        seed_path: str = SEED_LIBRARY_PATH,
        marker: Marker = mark,
    ):
        self.store = store
        self.outbox = outbox
        self.seed_path = seed_path
        self.marker = marker

    def _changed(self, collection: str, record_id: str) -> None:
        if self.outbox is not None:
            self.outbox.enqueue(collection, record_id)

    # ==========================================
    # BOOKLETS
    # ==========================================

    def get_booklets(self) -> List[Booklet]:
        """All booklets, most recently updated first."""
        booklets = [Booklet.model_validate(r) for r in self.store.get_all(BOOKLETS)]
        return sorted(booklets, key=lambda b: b.updated_at, reverse=True)

    def get_booklet(self, booklet_id: str) -> Optional[Booklet]:
        record = self.store.get(BOOKLETS, booklet_id)
        return Booklet.model_validate(record) if record else None

    def _require_booklet(self, booklet_id: str) -> Booklet:
        booklet = self.get_booklet(booklet_id)
        if booklet is None:
            raise NotFoundError(f"Booklet {booklet_id} not found")
        return booklet

    def _save_booklet(self, booklet: Booklet) -> Booklet:
        self.store.put(BOOKLETS, booklet.to_record())
        self._changed(BOOKLETS, booklet.id)
        return booklet

    def create_booklet(self, dto: BookletCreate, compiler: Optional[str] = None) -> Booklet:
        now = now_ms()
        booklet = Booklet(
            title=f"{dto.grade} {dto.subject} - {dto.topic}",
            subject=dto.subject,
            grade=dto.grade,
            topic=dto.topic,
            type=dto.type,
            compiler=compiler if compiler is not None else dto.compiler,
            is_published=False,
            created_at=now,
            updated_at=now,
        )
        log.info("Booklet created: %s (%s)", booklet.id, booklet.title)
        return self._save_booklet(booklet)

    def update_booklet(self, booklet_id: str, updates: BookletUpdate) -> Booklet:
        booklet = self._require_booklet(booklet_id)
        for field, value in updates.model_dump(exclude_unset=True).items():
            setattr(booklet, field, value)
        booklet.updated_at = next_stamp(booklet.updated_at)
        return self._save_booklet(booklet)

    def update_booklet_subject(self, booklet_id: str, subject: str) -> Booklet:
        return self.update_booklet(booklet_id, BookletUpdate(subject=subject))

    def delete_booklet(self, booklet_id: str) -> bool:
        """Staff-only hard delete; tombstoned so a pull does not restore it."""
        with self.store.transaction(BOOKLETS) as tx:
            record = tx.get(booklet_id)
            if record is None:
                return False
            tx.delete(booklet_id)
            mark_tombstone(tx.session, BOOKLETS, booklet_id, record_timestamp(BOOKLETS, record))
        return True

    # ─── Questions ─────────────────────────────────────────────────────────────

    def add_question(self, booklet_id: str, data: QuestionCreate) -> Question:
        """Append a question as the next number in its topic."""
        booklet = self._require_booklet(booklet_id)
        question = Question(**data.model_dump(), created_at=now_ms())
        question.topic = question.topic.strip() or booklet.topic
        question.number = next_number(booklet, question.topic)
        booklet.questions.append(question)
        booklet.updated_at = next_stamp(booklet.updated_at)
        self._save_booklet(booklet)
        return question

    def add_questions(self, booklet_id: str, topic: str, items: List[QuestionCreate]) -> List[Question]:
        """Append several questions to one topic, numbered in input order."""
        booklet = self._require_booklet(booklet_id)
        now = now_ms()
        questions = [
            Question(**item.model_dump(exclude={"topic"}), created_at=now + idx)
            for idx, item in enumerate(items)
        ]
        assign_batch(booklet, topic, questions)
        self._save_booklet(booklet)
        return questions

    def update_question(self, booklet_id: str, question_id: str, updates: QuestionUpdate) -> Booklet:
        booklet = self._require_booklet(booklet_id)
        question = next((q for q in booklet.questions if q.id == question_id), None)
        if question is None:
            raise NotFoundError(f"Question {question_id} not found in booklet {booklet_id}")

        changes = updates.model_dump(exclude_unset=True)
        new_topic = changes.pop("topic", None)
        for field, value in changes.items():
            setattr(question, field, value)
        if new_topic is not None and topic_key(new_topic) != topic_key(question.topic):
            move_to_topic(booklet, question, new_topic)

        renumber(booklet)
        return self._save_booklet(booklet)

    def remove_question(self, booklet_id: str, question_id: str) -> Booklet:
        """Remove a question; remaining numbers are left as they are."""
        booklet = self._require_booklet(booklet_id)
        booklet.questions = [q for q in booklet.questions if q.id != question_id]
        renumber(booklet)
        return self._save_booklet(booklet)

    # ==========================================
    # USERS
    # ==========================================

    def get_users(self) -> List[User]:
        return [User.model_validate(r) for r in self.store.get_all(USERS)]

    def has_any_users(self) -> bool:
        return self.store.count(USERS) > 0

    def _find_user_by_email(self, email: str) -> Optional[User]:
        email = normalize_email(email)
        return next((u for u in self.get_users() if u.email == email), None)

    def register_user(self, name: str, email: str, password: str, grade: Optional[str] = None) -> User:
        """The first account becomes an authorized super admin; later ones wait for approval."""
        users = self.get_users()
        normalized = normalize_email(email)
        if any(u.email == normalized for u in users):
            raise DuplicateEmailError("Email taken.")
        is_first = not users
        user = User(
            name=name,
            email=normalized,
            password=password,
            role=UserRole.SUPER_ADMIN if is_first else UserRole.STUDENT,
            status=UserStatus.AUTHORIZED if is_first else UserStatus.PENDING,
            grade=grade,
            created_at=now_ms(),
        )
        self.store.put(USERS, user.to_record())
        self._changed(USERS, user.id)
        return user

    def login_user(self, email: str, password: str) -> User:
        user = self._find_user_by_email(email)
        if user is None or user.password != password:
            raise InvalidCredentialsError("Invalid credentials.")
        return user

    def reset_password(self, email: str, new_password: str) -> bool:
        user = self._find_user_by_email(email)
        if user is None:
            raise NotFoundError("No account found for that email.")
        user.password = new_password
        user.updated_at = next_stamp(user.updated_at)
        self.store.put(USERS, user.to_record())
        self._changed(USERS, user.id)
        return True

    def authorize_user(self, user_id: str, role: UserRole, status: UserStatus) -> User:
        record = self.store.get(USERS, user_id)
        if record is None:
            raise NotFoundError(f"User {user_id} not found")
        user = User.model_validate(record)
        user.role = role
        user.status = status
        user.updated_at = next_stamp(user.updated_at)
        self.store.put(USERS, user.to_record())
        self._changed(USERS, user.id)
        return user

    # ==========================================
    # ASSIGNMENTS
    # ==========================================

    def get_assignments(self, grade: Optional[str] = None) -> List[Assignment]:
        assignments = [Assignment.model_validate(r) for r in self.store.get_all(ASSIGNMENTS)]
        if grade:
            assignments = [a for a in assignments if a.grade == grade]
        return assignments

    def get_assignment(self, assignment_id: str) -> Optional[Assignment]:
        record = self.store.get(ASSIGNMENTS, assignment_id)
        return Assignment.model_validate(record) if record else None

    def create_assignment(self, dto: AssignmentCreate) -> Assignment:
        booklet = self._require_booklet(dto.booklet_id)
        if dto.start_num > dto.end_num:
            raise LibraryError("Question range start must not exceed its end.")
        assignment = Assignment(
            **dto.model_dump(),
            booklet_title=booklet.title,
            created_at=now_ms(),
        )
        if not assignment.topic and assignment.topics:
            assignment.topic = assignment.topics[0]
        self.store.put(ASSIGNMENTS, assignment.to_record())
        self._changed(ASSIGNMENTS, assignment.id)
        return assignment

    def assignment_questions(self, assignment: Assignment, booklet: Optional[Booklet] = None) -> List[Question]:
        """Questions covered by an assignment's topic(s) and number range."""
        booklet = booklet or self.get_booklet(assignment.booklet_id)
        if booklet is None:
            return []
        topics = {topic_key(t) for t in (assignment.topics or [assignment.topic])}
        selected = [
            q for q in booklet.questions
            if topic_key(q.topic) in topics and assignment.start_num <= q.number <= assignment.end_num
        ]
        return sorted(selected, key=lambda q: (topic_key(q.topic), q.number))

    # ==========================================
    # SUBMISSIONS
    # ==========================================

    def get_submissions(self, assignment_id: Optional[str] = None, student_id: Optional[str] = None) -> List[Submission]:
        submissions = [Submission.model_validate(r) for r in self.store.get_all(SUBMISSIONS)]
        if assignment_id:
            submissions = [s for s in submissions if s.assignment_id == assignment_id]
        if student_id:
            submissions = [s for s in submissions if s.student_id == student_id]
        return submissions

    def _require_submission(self, submission_id: str) -> Submission:
        record = self.store.get(SUBMISSIONS, submission_id)
        if record is None:
            raise NotFoundError(f"Submission {submission_id} not found")
        return Submission.model_validate(record)

    def _save_submission(self, submission: Submission) -> Submission:
        submission.updated_at = next_stamp(submission.updated_at)
        self.store.put(SUBMISSIONS, submission.to_record())
        self._changed(SUBMISSIONS, submission.id)
        return submission

    def submit_work(self, dto: SubmissionCreate) -> Submission:
        assignment = self.get_assignment(dto.assignment_id)
        if assignment is None:
            raise NotFoundError(f"Assignment {dto.assignment_id} not found")
        questions = self.assignment_questions(assignment)
        submission = Submission(
            **dto.model_dump(),
            status=SubmissionStatus.SUBMITTED,
            max_score=float(sum(q.max_marks for q in questions)),
            submitted_at=now_ms(),
        )
        return self._save_submission(submission)

    @staticmethod
    def _retotal(submission: Submission) -> None:
        submission.total_score = float(sum(a.effective_mark for a in submission.answers))

    def override_mark(self, submission_id: str, question_id: str, value: float) -> Submission:
        submission = self._require_submission(submission_id)
        answer = next((a for a in submission.answers if a.question_id == question_id), None)
        if answer is None:
            raise NotFoundError(f"No answer for question {question_id} in submission {submission_id}")
        answer.teacher_override_mark = value
        self._retotal(submission)
        return self._save_submission(submission)

    def advance_status(self, submission_id: str, status: SubmissionStatus) -> Submission:
        """Move a submission forward (SUBMITTED → MARKED → RECORDED), never back."""
        submission = self._require_submission(submission_id)
        if STATUS_ORDER[status] < STATUS_ORDER[submission.status]:
            raise InvalidStatusError(f"Cannot move submission from {submission.status.value} back to {status.value}")
        submission.status = status
        return self._save_submission(submission)

    async def mark_submission(self, submission_id: str, marker: Optional[Marker] = None) -> Submission:
        """AI-mark every answer; marker failures leave a zero score."""
        marker = marker or self.marker
        submission = self._require_submission(submission_id)
        assignment = self.get_assignment(submission.assignment_id)
        booklet = self.get_booklet(assignment.booklet_id) if assignment else None
        questions = {q.id: q for q in booklet.questions} if booklet else {}

        for answer in submission.answers:
            question = questions.get(answer.question_id)
            if question is None:
                answer.ai_mark = 0.0
                answer.ai_feedback = "Question no longer exists in the booklet."
                continue
            result = await marker(
                question.extracted_question,
                question.generated_solution,
                answer.text_response,
                question.max_marks,
                answer.image_response,
            )
            answer.ai_mark = max(0.0, min(float(result.score), float(question.max_marks)))
            answer.ai_feedback = result.feedback

        self._retotal(submission)
        if STATUS_ORDER[submission.status] < STATUS_ORDER[SubmissionStatus.MARKED]:
            submission.status = SubmissionStatus.MARKED
        return self._save_submission(submission)

    # ==========================================
    # IMPORT / EXPORT / SEED
    # ==========================================

    def export_data(self) -> Dict[str, Any]:
        """Full local state in the canonical interchange format."""
        return {
            "booklets": [b.to_record() for b in self.get_booklets()],
            "users": self.store.get_all(USERS),
            "assignments": self.store.get_all(ASSIGNMENTS),
            "submissions": self.store.get_all(SUBMISSIONS),
            "version": EXPORT_VERSION,
            "exportedAt": now_ms(),
        }

    def import_data(self, raw_text: str, lenient: bool = False) -> ImportResult:
        return import_data(self.store, raw_text, lenient=lenient)

    def check_and_seed(self) -> bool:
        """Import the bundled library when the store has no booklets yet."""
        if self.store.count(BOOKLETS) > 0 or not self.seed_path:
            return False
        path = Path(self.seed_path)
        if not path.is_file():
            log.warning("Seed library not found: %s", path)
            return False
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            log.error("Seed library unreadable (%s): %s", path, e)
            return False
        if len(text.strip()) < MIN_SEED_LENGTH:
            return False
        result = import_data(self.store, text)
        log.info("Seed import: success=%s count=%s", result.success, result.count)
        return result.success

    def factory_reset(self) -> None:
        self.store.reset()
        log.warning("Local store reset to factory state")
