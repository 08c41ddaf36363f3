"""
Expense Tracker API — Authentication Package
==============================================

What:  Bearer-token (JWT) verification and the FastAPI dependency that gates
       protected routes.

Usage:
    from app.auth import require_identity, Identity

    @router.get("/protected")
    async def protected(identity: Identity = Depends(require_identity)):
        return {"userId": identity.user_id}
"""

from app.auth.dependencies import get_verifier, require_identity
from app.auth.verifier import Identity, TokenVerifier

__all__ = ["Identity", "TokenVerifier", "get_verifier", "require_identity"]
