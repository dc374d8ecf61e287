import asyncio
import json
from pathlib import Path

import pytest

from booklet_library.database.collections import BOOKLETS, SUBMISSIONS, USERS
from booklet_library.database.schemas import (
    AssignmentCreate,
    BookletCreate,
    BookletUpdate,
    QuestionCreate,
    QuestionUpdate,
    StudentAnswer,
    SubmissionCreate,
    SubmissionStatus,
    UserRole,
    UserStatus,
)
from booklet_library.grading import MarkResult, mark
from booklet_library.grading import gpt_client
from booklet_library.services.library import (
    DuplicateEmailError,
    InvalidCredentialsError,
    InvalidStatusError,
    LibraryError,
    LibraryService,
    NotFoundError,
)
from booklet_library.sync.state import TOMBSTONE, load_states

from conftest import booklet_record


@pytest.fixture
def library(store, outbox):
    return LibraryService(store, outbox, seed_path="")


@pytest.fixture
def booklet(library):
    return library.create_booklet(BookletCreate(subject="Maths", grade="Grade 10", topic="Algebra"), compiler="ms-k")


def add(library, booklet_id, topic="", marks=5, text="Solve for x"):
    return library.add_question(booklet_id, QuestionCreate(topic=topic, max_marks=marks, extracted_question=text))


class TestBooklets:
    def test_create_derives_title_and_enqueues(self, library, booklet, outbox):
        assert booklet.title == "Grade 10 Maths - Algebra"
        assert booklet.compiler == "ms-k"
        assert booklet.created_at == booklet.updated_at > 0
        assert outbox.pending_count() == 1

    def test_list_sorted_by_updated_at(self, library, store):
        store.put(BOOKLETS, booklet_record("old", updated_at=1))
        store.put(BOOKLETS, booklet_record("new", updated_at=9))
        assert [b.id for b in library.get_booklets()] == ["new", "old"]

    def test_update_fields(self, library, booklet):
        updated = library.update_booklet(booklet.id, BookletUpdate(is_published=True))
        assert updated.is_published
        assert updated.title == booklet.title
        assert library.update_booklet_subject(booklet.id, "Physics").subject == "Physics"

    def test_update_missing(self, library):
        with pytest.raises(NotFoundError):
            library.update_booklet("nope", BookletUpdate(title="x"))

    def test_delete_tombstones(self, library, booklet, store):
        assert library.delete_booklet(booklet.id)
        assert library.get_booklet(booklet.id) is None
        with store.session() as db:
            assert load_states(db, BOOKLETS)[booklet.id].fingerprint == TOMBSTONE
        assert library.delete_booklet(booklet.id) is False


class TestQuestions:
    def test_algebra_scenario(self, library, booklet):
        q1, q2, q3 = (add(library, booklet.id) for _ in range(3))
        assert [q1.number, q2.number, q3.number] == [1, 2, 3]
        assert q1.topic == "Algebra"

        after = library.remove_question(booklet.id, q2.id)
        assert [q.number for q in after.questions] == [1, 3]
        assert add(library, booklet.id).number == 4

    def test_topics_numbered_separately(self, library, booklet):
        add(library, booklet.id, topic="Algebra")
        assert add(library, booklet.id, topic="Geometry").number == 1

    def test_add_batch(self, library, booklet):
        add(library, booklet.id)
        batch = library.add_questions(booklet.id, "Algebra", [QuestionCreate(max_marks=2) for _ in range(3)])
        assert [q.number for q in batch] == [2, 3, 4]
        assert len(library.get_booklet(booklet.id).questions) == 4

    def test_topic_change_moves_question(self, library, booklet):
        a1 = add(library, booklet.id, topic="Algebra")
        add(library, booklet.id, topic="Algebra")
        add(library, booklet.id, topic="Geometry")
        updated = library.update_question(booklet.id, a1.id, QuestionUpdate(topic="Geometry", max_marks=8))
        moved = next(q for q in updated.questions if q.id == a1.id)
        assert (moved.topic, moved.number, moved.max_marks) == ("Geometry", 2, 8)
        algebra = [q.number for q in updated.questions if q.topic == "Algebra"]
        assert algebra == [2]

    def test_update_missing_question(self, library, booklet):
        with pytest.raises(NotFoundError):
            library.update_question(booklet.id, "nope", QuestionUpdate(max_marks=1))


class TestUsers:
    def test_first_user_is_super_admin(self, library):
        first = library.register_user("Head", "Head@School.org", "pw")
        second = library.register_user("Pupil", "pupil@school.org", "pw", grade="Grade 10")
        assert (first.role, first.status) == (UserRole.SUPER_ADMIN, UserStatus.AUTHORIZED)
        assert (second.role, second.status) == (UserRole.STUDENT, UserStatus.PENDING)
        assert first.email == "head@school.org"

    def test_duplicate_email(self, library):
        library.register_user("A", "a@b.c", "pw")
        with pytest.raises(DuplicateEmailError, match="Email taken"):
            library.register_user("B", " A@B.C ", "pw")

    def test_login(self, library):
        library.register_user("A", "a@b.c", "secret")
        assert library.login_user("A@b.c", "secret").name == "A"
        with pytest.raises(InvalidCredentialsError):
            library.login_user("a@b.c", "wrong")
        with pytest.raises(InvalidCredentialsError):
            library.login_user("nobody@b.c", "secret")

    def test_reset_password(self, library):
        library.register_user("A", "a@b.c", "old")
        library.reset_password("a@b.c", "new")
        assert library.login_user("a@b.c", "new")
        with pytest.raises(NotFoundError):
            library.reset_password("ghost@b.c", "x")

    def test_authorize(self, library):
        library.register_user("Head", "head@b.c", "pw")
        pupil = library.register_user("P", "p@b.c", "pw")
        user = library.authorize_user(pupil.id, UserRole.STAFF, UserStatus.AUTHORIZED)
        assert user.role == UserRole.STAFF
        assert library.has_any_users()
        with pytest.raises(NotFoundError):
            library.authorize_user("nope", UserRole.STAFF, UserStatus.DENIED)


class TestAssignmentsAndSubmissions:
    @pytest.fixture
    def assignment(self, library, booklet):
        for marks in (3, 4, 5):
            add(library, booklet.id, marks=marks)
        add(library, booklet.id, topic="Geometry", marks=10)
        return library.create_assignment(
            AssignmentCreate(booklet_id=booklet.id, topic="Algebra", start_num=2, end_num=3, grade="Grade 10")
        )

    def test_assignment_range(self, library, assignment, booklet):
        assert assignment.booklet_title == booklet.title
        assert [q.number for q in library.assignment_questions(assignment)] == [2, 3]
        assert library.get_assignments("Grade 10")[0].id == assignment.id
        assert library.get_assignments("Grade 11") == []

    def test_assignment_validation(self, library, booklet):
        with pytest.raises(NotFoundError):
            library.create_assignment(AssignmentCreate(booklet_id="nope", start_num=1, end_num=2, grade="10"))
        with pytest.raises(LibraryError):
            library.create_assignment(AssignmentCreate(booklet_id=booklet.id, start_num=5, end_num=2, grade="10"))

    def _submit(self, library, assignment, booklet):
        questions = library.assignment_questions(assignment)
        answers = [StudentAnswer(question_id=q.id, text_response="x = 2") for q in questions]
        return library.submit_work(SubmissionCreate(
            assignment_id=assignment.id, student_id="s1", student_name="Sam", answers=answers,
        ))

    def test_submit_computes_max_score(self, library, assignment, booklet):
        submission = self._submit(library, assignment, booklet)
        assert submission.status == SubmissionStatus.SUBMITTED
        assert submission.max_score == 9
        assert library.get_submissions(student_id="s1")[0].id == submission.id
        assert library.get_submissions(assignment_id="other") == []

    def test_submit_unknown_assignment(self, library):
        with pytest.raises(NotFoundError):
            library.submit_work(SubmissionCreate(assignment_id="nope", student_id="s1"))

    def test_mark_clamps_and_totals(self, library, assignment, booklet):
        submission = self._submit(library, assignment, booklet)
        calls = []

        async def fake_marker(question_text, reference, response, max_marks, image=None):
            calls.append(max_marks)
            return MarkResult(score=99, max_score=max_marks, feedback="Good")

        marked = asyncio.run(library.mark_submission(submission.id, marker=fake_marker))
        assert calls == [4, 5]
        assert [a.ai_mark for a in marked.answers] == [4, 5]
        assert marked.total_score == 9
        assert marked.status == SubmissionStatus.MARKED

    def test_override_and_status(self, library, assignment, booklet):
        submission = self._submit(library, assignment, booklet)
        first_question = submission.answers[0].question_id
        updated = library.override_mark(submission.id, first_question, 3.5)
        assert updated.total_score == 3.5

        library.advance_status(submission.id, SubmissionStatus.RECORDED)
        with pytest.raises(InvalidStatusError):
            library.advance_status(submission.id, SubmissionStatus.MARKED)
        with pytest.raises(NotFoundError):
            library.override_mark(submission.id, "not-answered", 1)

    def test_mark_unknown_submission(self, library):
        with pytest.raises(NotFoundError):
            asyncio.run(library.mark_submission("nope"))


class TestGrading:
    def test_mark_without_api_key_scores_zero(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.setattr(gpt_client, "_client", None)
        result = asyncio.run(mark("What is 2+2?", "4", "5", 3))
        assert result.failed
        assert result.score == 0
        assert result.feedback == "AI Marking unavailable."


class TestData:
    def test_seed_only_when_empty(self, store, tmp_path):
        seed = tmp_path / "seed.json"
        seed.write_text(json.dumps([booklet_record("seeded", questions=[])]))
        library = LibraryService(store, seed_path=str(seed))
        assert library.check_and_seed()
        assert library.get_booklet("seeded") is not None
        assert not library.check_and_seed()

    def test_seed_ignores_tiny_or_missing_file(self, store, tmp_path):
        tiny = tmp_path / "tiny.json"
        tiny.write_text("[]")
        assert not LibraryService(store, seed_path=str(tiny)).check_and_seed()
        assert not LibraryService(store, seed_path=str(tmp_path / "missing.json")).check_and_seed()

    def test_seed_unreadable_file_is_skipped(self, store, tmp_path, monkeypatch):
        seed = tmp_path / "seed.json"
        seed.write_text(json.dumps([booklet_record("seeded", questions=[])]))

        def denied(self, *args, **kwargs):
            raise PermissionError(13, "Permission denied", str(self))

        monkeypatch.setattr(Path, "read_text", denied)
        assert not LibraryService(store, seed_path=str(seed)).check_and_seed()
        assert store.count(BOOKLETS) == 0

    def test_factory_reset(self, library, booklet, store):
        library.register_user("A", "a@b.c", "pw")
        library.factory_reset()
        assert store.count(BOOKLETS) == 0
        assert store.count(USERS) == 0
        assert store.count(SUBMISSIONS) == 0
