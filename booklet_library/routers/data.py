"""
Bulk data endpoints
Import accepts the raw text as pasted or downloaded, noise and all.
"""

import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from booklet_library.database.store import StoreUnavailableError
from booklet_library.importer import ImportResult
from booklet_library.routers.deps import get_library, http_error
from booklet_library.services.library import LibraryService

log = logging.getLogger(__name__)

router = APIRouter(prefix="/data", tags=["data"])


@router.post("/import", response_model=ImportResult)
async def import_payload(request: Request, lenient: bool = False, library: LibraryService = Depends(get_library)):
    """
    Import a JSON payload sent as the raw request body.

    A bare array is read as booklets; an object may carry booklets, users,
    assignments and submissions. With ?lenient=true structural damage is
    repaired instead of rejected.
    """
    raw = (await request.body()).decode("utf-8", errors="replace")
    result = library.import_data(raw, lenient=lenient)
    if not result.success:
        log.warning("Import rejected: %s", result.message)
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=result.model_dump())
    return result


@router.get("/export")
def export_payload(library: LibraryService = Depends(get_library)):
    """Full local state: booklets, users, assignments, submissions, version, exportedAt."""
    try:
        return library.export_data()
    except StoreUnavailableError as e:
        raise http_error(e)
