"""
Submission API endpoints
Submitting work, AI marking, teacher overrides and status progression
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, status

from booklet_library.database import schemas
from booklet_library.database.store import StoreUnavailableError
from booklet_library.routers.deps import get_library, http_error
from booklet_library.services.library import LibraryError, LibraryService

router = APIRouter(prefix="/submissions", tags=["submissions"])


@router.post("/", response_model=schemas.Submission, status_code=status.HTTP_201_CREATED)
def submit_work(submission: schemas.SubmissionCreate, library: LibraryService = Depends(get_library)):
    try:
        return library.submit_work(submission)
    except (LibraryError, StoreUnavailableError) as e:
        raise http_error(e)


@router.get("/", response_model=List[schemas.Submission])
def list_submissions(
    assignment_id: Optional[str] = None,
    student_id: Optional[str] = None,
    library: LibraryService = Depends(get_library),
):
    return library.get_submissions(assignment_id, student_id)


@router.post("/{submission_id}/mark", response_model=schemas.Submission)
async def mark_submission(submission_id: str, library: LibraryService = Depends(get_library)):
    """
    AI-mark every answer and move the submission to MARKED
    Answers the marker cannot grade receive 0 with placeholder feedback
    """
    try:
        return await library.mark_submission(submission_id)
    except (LibraryError, StoreUnavailableError) as e:
        raise http_error(e)


@router.put("/{submission_id}/answers/{question_id}/override", response_model=schemas.Submission)
def override_mark(
    submission_id: str,
    question_id: str,
    body: schemas.OverrideMarkRequest,
    library: LibraryService = Depends(get_library),
):
    try:
        return library.override_mark(submission_id, question_id, body.mark)
    except (LibraryError, StoreUnavailableError) as e:
        raise http_error(e)


@router.put("/{submission_id}/status", response_model=schemas.Submission)
def update_status(submission_id: str, body: schemas.StatusUpdate, library: LibraryService = Depends(get_library)):
    """Advance SUBMITTED → MARKED → RECORDED. Moving backwards is rejected."""
    try:
        return library.advance_status(submission_id, body.status)
    except (LibraryError, StoreUnavailableError) as e:
        raise http_error(e)
