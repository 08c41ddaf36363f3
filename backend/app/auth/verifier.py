"""
Expense Tracker API — Bearer Token Verifier
=============================================

What:  Turns an Authorization header into a caller Identity, or an AuthError.
How:   python-jose checks the signature and expiry of a self-contained JWT;
       no identity store is consulted.
Who:   `require_identity` for every protected request; the auth routes call
       `issue()` to sign credentials after register/login.

Outcomes:
    header absent or blank              → AuthError(MISSING)
    scheme is not Bearer / no token     → AuthError(INVALID)
    bad signature, expired, no subject  → AuthError(INVALID)
    otherwise                           → Identity(user_id=<sub>)
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from fastapi.security.utils import get_authorization_scheme_param
from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import BaseModel

from app.config import Settings
from app.exceptions import AuthError, AuthErrorKind

logger = logging.getLogger(__name__)


class Identity(BaseModel):
    """
    Caller identity extracted from a verified token.

    Lives on `request.state.identity` for one request; never persisted.
    """

    user_id: str
    email: Optional[str] = None

    model_config = {"frozen": True}


class TokenVerifier:
    """Signs and verifies HS256 (by default) bearer tokens."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        expires_minutes: int = 60,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._secret = secret
        self._algorithm = algorithm
        self._expires = timedelta(minutes=expires_minutes)
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenVerifier":
        return cls(
            secret=settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            expires_minutes=settings.jwt_expires_minutes,
        )

    def issue(self, user_id: str, email: Optional[str] = None) -> str:
        now = self._clock()
        claims: Dict[str, Any] = {
            "sub": user_id,
            "iat": now,
            "exp": now + self._expires,
        }
        if email:
            claims["email"] = email
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def verify(self, authorization: Optional[str]) -> Identity:
        """
        Validate an Authorization header value.

        Args:
            authorization: Raw header value, or None when the header is absent

        Raises:
            AuthError: MISSING or INVALID, see module docstring
        """
        if authorization is None or not authorization.strip():
            raise AuthError(AuthErrorKind.MISSING)

        scheme, token = get_authorization_scheme_param(authorization)
        if scheme.lower() != "bearer" or not token:
            raise AuthError(
                AuthErrorKind.INVALID,
                message="Authorization header must use the Bearer scheme",
            )
        return self.verify_token(token)

    def verify_token(self, token: str) -> Identity:
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except ExpiredSignatureError:
            logger.info("Rejected expired token")
            raise AuthError(AuthErrorKind.INVALID, message="Token has expired")
        except JWTError as e:
            logger.info("Rejected token: %s", e)
            raise AuthError(AuthErrorKind.INVALID, message="Invalid token")

        # `id` is accepted for tokens minted before `sub` was used
        user_id = payload.get("sub") or payload.get("id")
        if not user_id:
            logger.info("Rejected token without subject claim")
            raise AuthError(AuthErrorKind.INVALID, message="Invalid token: missing user ID")

        return Identity(user_id=str(user_id), email=payload.get("email"))
