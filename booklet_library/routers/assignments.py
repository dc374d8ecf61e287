"""
Assignment API endpoints
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from booklet_library.database import schemas
from booklet_library.database.store import StoreUnavailableError
from booklet_library.routers.deps import get_library, http_error
from booklet_library.services.library import LibraryError, LibraryService

router = APIRouter(prefix="/assignments", tags=["assignments"])


@router.post("/", response_model=schemas.Assignment, status_code=status.HTTP_201_CREATED)
def create_assignment(assignment: schemas.AssignmentCreate, library: LibraryService = Depends(get_library)):
    """
    Schedule a question range of one booklet
    The booklet must exist and the range must not be inverted
    """
    try:
        return library.create_assignment(assignment)
    except (LibraryError, StoreUnavailableError) as e:
        raise http_error(e)


@router.get("/", response_model=List[schemas.Assignment])
def list_assignments(grade: Optional[str] = None, library: LibraryService = Depends(get_library)):
    return library.get_assignments(grade)


@router.get("/{assignment_id}", response_model=schemas.Assignment)
def get_assignment(assignment_id: str, library: LibraryService = Depends(get_library)):
    assignment = library.get_assignment(assignment_id)
    if not assignment:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Assignment {assignment_id} not found"
        )
    return assignment


@router.get("/{assignment_id}/questions", response_model=List[schemas.Question])
def get_assignment_questions(assignment_id: str, library: LibraryService = Depends(get_library)):
    """
    Questions covered by the assignment's topic(s) and number range
    """
    assignment = library.get_assignment(assignment_id)
    if not assignment:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Assignment {assignment_id} not found"
        )
    return library.assignment_questions(assignment)
