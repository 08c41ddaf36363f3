"""
Expense Tracker API — Public Auth Routes
==========================================

What:  Register and log in; both answer with a bearer token.
Who:   The web/mobile clients before they call any protected route.
When:  Need the database: 503 while it is not connected.
"""

import logging

from fastapi import APIRouter, Depends, status

from app.auth import TokenVerifier, get_verifier
from app.dependencies import get_application, get_database
from app.schemas.auth import AuthResponse, LoginRequest, RegisterRequest
from app.schemas.errors import ErrorResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        409: {"description": "Email already registered", "model": ErrorResponse},
        503: {"description": "Database unavailable", "model": ErrorResponse},
    },
    summary="Create an account",
)
async def register(
    payload: RegisterRequest,
    application=Depends(get_application),
    db=Depends(get_database),
    verifier: TokenVerifier = Depends(get_verifier),
) -> AuthResponse:
    user = await application.users.register(
        db, email=payload.email, password=payload.password, name=payload.name
    )
    return AuthResponse(
        token=verifier.issue(user.id, email=user.email),
        user=user.to_public(),
    )


@router.post(
    "/login",
    response_model=AuthResponse,
    responses={
        401: {"description": "Wrong email or password", "model": ErrorResponse},
        503: {"description": "Database unavailable", "model": ErrorResponse},
    },
    summary="Exchange email and password for a token",
)
async def login(
    payload: LoginRequest,
    application=Depends(get_application),
    db=Depends(get_database),
    verifier: TokenVerifier = Depends(get_verifier),
) -> AuthResponse:
    user = await application.users.authenticate(db, payload.email, payload.password)
    logger.info("User %s logged in", user.id)
    return AuthResponse(
        token=verifier.issue(user.id, email=user.email),
        user=user.to_public(),
    )
