"""
Expense Tracker API — Protected Routes
========================================

What:  Routes that require a verified bearer token.
How:   `require_identity` is a router-level dependency, so it runs (and can
       reject with 401) before any handler below is entered.
"""

from fastapi import APIRouter, Depends

from app.auth import Identity, require_identity
from app.dependencies import get_application, get_database
from app.schemas.auth import ProtectedResponse, UserPublic
from app.schemas.errors import ErrorResponse

router = APIRouter(
    prefix="/api",
    tags=["Protected"],
    dependencies=[Depends(require_identity)],
    responses={401: {"description": "Missing or invalid token", "model": ErrorResponse}},
)


@router.get("/protected", response_model=ProtectedResponse, summary="Token check")
async def read_protected(identity: Identity = Depends(require_identity)) -> ProtectedResponse:
    return ProtectedResponse(
        message="This is protected data accessible only with valid token",
        user_id=identity.user_id,
    )


@router.get("/me", response_model=UserPublic, summary="Current user's profile")
async def read_me(
    identity: Identity = Depends(require_identity),
    application=Depends(get_application),
    db=Depends(get_database),
) -> UserPublic:
    user = await application.users.get_by_id(db, identity.user_id)
    return user.to_public()
