"""
FastAPI dependencies for the auth gate.

`require_identity` is attached to the protected router, so FastAPI resolves
it before any handler on that router runs; an AuthError raised here ends the
request with a 401 from the global handler.
"""

from fastapi import Depends, Request

from app.auth.verifier import Identity, TokenVerifier
from app.dependencies import get_application


def get_verifier(request: Request) -> TokenVerifier:
    return get_application(request).verifier


async def require_identity(
    request: Request,
    verifier: TokenVerifier = Depends(get_verifier),
) -> Identity:
    identity = verifier.verify(request.headers.get("Authorization"))
    request.state.identity = identity
    return identity
