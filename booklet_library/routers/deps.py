"""
Shared router dependencies.
Components are built once in the application lifespan and kept on app.state.
"""

from typing import Optional

from fastapi import HTTPException, Request, status

from booklet_library.database.store import LocalStore, StoreUnavailableError
from booklet_library.services.library import (
    InvalidCredentialsError,
    LibraryError,
    LibraryService,
    NotFoundError,
)
from booklet_library.sync.orchestrator import SyncOrchestrator
from booklet_library.sync.outbox import SyncOutbox


def get_store(request: Request) -> LocalStore:
    return request.app.state.store


def get_library(request: Request) -> LibraryService:
    return request.app.state.library


def get_orchestrator(request: Request) -> SyncOrchestrator:
    return request.app.state.orchestrator


def get_outbox(request: Request) -> Optional[SyncOutbox]:
    return getattr(request.app.state, "outbox", None)


def http_error(e: Exception) -> HTTPException:
    """Translate a service error into the matching HTTP status."""
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, InvalidCredentialsError):
        return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
    if isinstance(e, StoreUnavailableError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    if isinstance(e, LibraryError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
