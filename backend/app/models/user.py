"""
Expense Tracker API — User Document
=====================================

What:  Mapping between the `users` collection and Python objects.

Document layout:
    {
        "_id": ObjectId,
        "email": "jane@example.com",      # unique, lower-cased
        "name": "Jane",
        "password_hash": "pbkdf2_sha256$<iterations>$<salt>$<digest>",
        "created_at": ISODate
    }
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from app.schemas.auth import UserPublic


class UserDocument(BaseModel):
    id: Optional[str] = None
    email: str
    name: Optional[str] = None
    password_hash: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_document(self) -> Dict[str, Any]:
        """Fields to insert; `_id` is assigned by MongoDB."""
        return self.model_dump(exclude={"id"})

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "UserDocument":
        data = dict(document)
        data["id"] = str(data.pop("_id"))
        return cls(**data)

    def to_public(self) -> UserPublic:
        return UserPublic(
            id=self.id or "",
            email=self.email,
            name=self.name,
            created_at=self.created_at,
        )
