"""
Expense Tracker API — User Service
====================================

What:  Account registration, login and profile lookup against the `users`
       collection.
How:   Passwords are hashed with PBKDF2-SHA256 and a random per-user salt,
       and compared in constant time, both on the threadpool so the event
       loop keeps serving while PBKDF2 runs. The database handle is passed into
       every call; the service holds no connection state.
Who:   The public auth routes (register/login) and GET /api/me.

Error Handling:
    Duplicate email             → ConflictError (409)
    Unknown email / bad password → AuthError(INVALID) (401), same message for both
    Unknown or malformed id     → NotFoundError (404)
    Lost connection mid-request → DatabaseUnavailableError (503)
"""

import hashlib
import hmac
import logging
import os
from typing import Any, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo.errors import ConnectionFailure, DuplicateKeyError
from starlette.concurrency import run_in_threadpool

from app.exceptions import (
    AuthError,
    AuthErrorKind,
    ConflictError,
    DatabaseUnavailableError,
    NotFoundError,
)
from app.models.user import UserDocument

logger = logging.getLogger(__name__)

PASSWORD_ALGORITHM = "pbkdf2_sha256"
PBKDF2_ITERATIONS = 310_000


def hash_password(
    password: str,
    *,
    salt: Optional[bytes] = None,
    iterations: int = PBKDF2_ITERATIONS,
) -> str:
    """Return `pbkdf2_sha256$<iterations>$<salt hex>$<digest hex>`."""
    salt = salt or os.urandom(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return f"{PASSWORD_ALGORITHM}${iterations}${salt.hex()}${digest.hex()}"


def verify_password(password: str, encoded: str) -> bool:
    try:
        algorithm, iterations, salt_hex, digest_hex = encoded.split("$")
        salt = bytes.fromhex(salt_hex)
        rounds = int(iterations)
    except ValueError:
        return False
    if algorithm != PASSWORD_ALGORITHM:
        return False
    candidate = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, rounds)
    return hmac.compare_digest(candidate.hex(), digest_hex)


class UserService:
    """Stateless operations on user accounts."""

    COLLECTION = "users"

    def __init__(self, password_iterations: int = PBKDF2_ITERATIONS):
        self.password_iterations = password_iterations

    async def ensure_indexes(self, db: Any) -> None:
        """Create the unique email index. Called once after the database connects."""
        await db[self.COLLECTION].create_index("email", unique=True)
        logger.info("Ensured unique index on %s.email", self.COLLECTION)

    async def register(
        self,
        db: Any,
        email: str,
        password: str,
        name: Optional[str] = None,
    ) -> UserDocument:
        """
        Create an account.

        Args:
            db: Database handle from `get_database`
            email: Already normalized (lower-case) email
            password: Plain-text password; only its hash is stored
            name: Optional display name

        Raises:
            ConflictError: Email already registered
        """
        collection = db[self.COLLECTION]
        try:
            if await collection.find_one({"email": email}) is not None:
                raise ConflictError(
                    "An account with this email already exists",
                    context={"email": email},
                )

            password_hash = await run_in_threadpool(
                hash_password, password, iterations=self.password_iterations
            )
            user = UserDocument(email=email, name=name, password_hash=password_hash)
            result = await collection.insert_one(user.to_document())
        except DuplicateKeyError:
            # Lost the race against a concurrent registration of the same email
            raise ConflictError(
                "An account with this email already exists",
                context={"email": email},
            )
        except ConnectionFailure as e:
            raise DatabaseUnavailableError(context={"operation": "register", "error": str(e)})

        logger.info("Registered user %s", result.inserted_id)
        return user.model_copy(update={"id": str(result.inserted_id)})

    async def authenticate(self, db: Any, email: str, password: str) -> UserDocument:
        """
        Check an email/password pair.

        Raises:
            AuthError(INVALID): Unknown email or wrong password
        """
        try:
            document = await db[self.COLLECTION].find_one({"email": email})
        except ConnectionFailure as e:
            raise DatabaseUnavailableError(context={"operation": "login", "error": str(e)})

        matches = document is not None and await run_in_threadpool(
            verify_password, password, document.get("password_hash", "")
        )
        if not matches:
            logger.info("Failed login for %s", email)
            raise AuthError(AuthErrorKind.INVALID, message="Invalid email or password")

        return UserDocument.from_document(document)

    async def get_by_id(self, db: Any, user_id: str) -> UserDocument:
        try:
            object_id = ObjectId(user_id)
        except (InvalidId, TypeError):
            raise NotFoundError(resource="user", resource_id=user_id)

        try:
            document = await db[self.COLLECTION].find_one({"_id": object_id})
        except ConnectionFailure as e:
            raise DatabaseUnavailableError(context={"operation": "profile", "error": str(e)})

        if document is None:
            raise NotFoundError(resource="user", resource_id=user_id)
        return UserDocument.from_document(document)
