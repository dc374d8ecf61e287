"""
User account endpoints.
Registration, login, password reset and staff authorization of accounts.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, status

from booklet_library.database import schemas
from booklet_library.database.store import StoreUnavailableError
from booklet_library.routers.deps import get_library, http_error
from booklet_library.services.library import LibraryError, LibraryService

router = APIRouter(prefix="/users", tags=["users"])


# ─── Schemas ───────────────────────────────────────────────────────────────────

class UserResponse(schemas.LibraryModel):
    id: str
    name: str
    email: str
    role: schemas.UserRole
    status: schemas.UserStatus
    grade: Optional[str] = None
    created_at: int = 0
    updated_at: int = 0


def _public(user: schemas.User) -> UserResponse:
    return UserResponse.model_validate(user.model_dump())


# ─── Endpoints ─────────────────────────────────────────────────────────────────

@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def register(body: schemas.RegisterRequest, library: LibraryService = Depends(get_library)):
    """
    Create an account.
    The first account becomes an authorized SUPER_ADMIN; later ones are PENDING students.
    """
    try:
        return _public(library.register_user(body.name, body.email, body.password, body.grade))
    except (LibraryError, StoreUnavailableError) as e:
        raise http_error(e)


@router.post("/login", response_model=UserResponse)
def login(body: schemas.LoginRequest, library: LibraryService = Depends(get_library)):
    try:
        return _public(library.login_user(body.email, body.password))
    except (LibraryError, StoreUnavailableError) as e:
        raise http_error(e)


@router.post("/reset-password")
def reset_password(body: schemas.ResetPasswordRequest, library: LibraryService = Depends(get_library)):
    try:
        library.reset_password(body.email, body.new_password)
    except (LibraryError, StoreUnavailableError) as e:
        raise http_error(e)
    return {"success": True}


@router.put("/{user_id}/authorization", response_model=UserResponse)
def authorize(user_id: str, body: schemas.AuthorizationUpdate, library: LibraryService = Depends(get_library)):
    """Set an account's role and approval status."""
    try:
        return _public(library.authorize_user(user_id, body.role, body.status))
    except (LibraryError, StoreUnavailableError) as e:
        raise http_error(e)


@router.get("/", response_model=List[UserResponse])
def list_users(library: LibraryService = Depends(get_library)):
    return [_public(u) for u in library.get_users()]
