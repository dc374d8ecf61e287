"""
Booklet API endpoints
CRUD for booklets and their questions, plus on-demand deduplication
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status

from booklet_library.database import schemas
from booklet_library.database.collections import BOOKLETS
from booklet_library.database.store import LocalStore, StoreUnavailableError
from booklet_library.dedupe import DedupeResult, dedupe
from booklet_library.routers.deps import get_library, get_store, http_error
from booklet_library.services.library import LibraryError, LibraryService

router = APIRouter(prefix="/booklets", tags=["booklets"])


@router.get("/", response_model=List[schemas.Booklet])
def list_booklets(library: LibraryService = Depends(get_library)):
    """
    List all booklets, most recently updated first
    """
    return library.get_booklets()


@router.post("/", response_model=schemas.Booklet, status_code=status.HTTP_201_CREATED)
def create_booklet(booklet: schemas.BookletCreate, library: LibraryService = Depends(get_library)):
    """
    Create an empty booklet
    The title is derived as "{grade} {subject} - {topic}"
    """
    try:
        return library.create_booklet(booklet)
    except (LibraryError, StoreUnavailableError) as e:
        raise http_error(e)


@router.post("/dedupe", response_model=DedupeResult)
def dedupe_booklets(store: LocalStore = Depends(get_store)):
    """
    Collapse booklets sharing grade + subject + title onto the newest copy
    """
    try:
        return dedupe(store, BOOKLETS)
    except StoreUnavailableError as e:
        raise http_error(e)


@router.get("/{booklet_id}", response_model=schemas.Booklet)
def get_booklet(booklet_id: str, library: LibraryService = Depends(get_library)):
    booklet = library.get_booklet(booklet_id)
    if not booklet:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Booklet {booklet_id} not found"
        )
    return booklet


@router.put("/{booklet_id}", response_model=schemas.Booklet)
def update_booklet(booklet_id: str, updates: schemas.BookletUpdate, library: LibraryService = Depends(get_library)):
    try:
        return library.update_booklet(booklet_id, updates)
    except (LibraryError, StoreUnavailableError) as e:
        raise http_error(e)


@router.delete("/{booklet_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_booklet(booklet_id: str, library: LibraryService = Depends(get_library)):
    """
    Delete a booklet
    The id is tombstoned so the next pull does not bring it back
    """
    try:
        deleted = library.delete_booklet(booklet_id)
    except StoreUnavailableError as e:
        raise http_error(e)
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Booklet {booklet_id} not found"
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ─── Questions ─────────────────────────────────────────────────────────────────

@router.post("/{booklet_id}/questions", response_model=schemas.Question, status_code=status.HTTP_201_CREATED)
def add_question(booklet_id: str, question: schemas.QuestionCreate, library: LibraryService = Depends(get_library)):
    """
    Append a question; it takes the next number in its topic
    """
    try:
        return library.add_question(booklet_id, question)
    except (LibraryError, StoreUnavailableError) as e:
        raise http_error(e)


@router.put("/{booklet_id}/questions/{question_id}", response_model=schemas.Booklet)
def update_question(
    booklet_id: str,
    question_id: str,
    updates: schemas.QuestionUpdate,
    library: LibraryService = Depends(get_library),
):
    """
    Edit a question
    Changing its topic moves it to the end of the target topic
    """
    try:
        return library.update_question(booklet_id, question_id, updates)
    except (LibraryError, StoreUnavailableError) as e:
        raise http_error(e)


@router.delete("/{booklet_id}/questions/{question_id}", response_model=schemas.Booklet)
def remove_question(booklet_id: str, question_id: str, library: LibraryService = Depends(get_library)):
    try:
        return library.remove_question(booklet_id, question_id)
    except (LibraryError, StoreUnavailableError) as e:
        raise http_error(e)
