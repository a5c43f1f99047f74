"""Flashcard models for the Studiefy backend."""

import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 string from DynamoDB, assuming UTC when naive."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class CreateFlashcardRequest(BaseModel):
    """Request model for creating a flashcard."""

    deck_id: str = Field(..., min_length=1, max_length=100, description="Deck the card belongs to")
    front: str = Field(..., min_length=1, max_length=1000, description="Front side text")
    back: str = Field(..., min_length=1, max_length=2000, description="Back side text")

    @field_validator("front", "back")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Reject whitespace-only sides."""
        if not v.strip():
            raise ValueError("Text must not be blank")
        return v


class UpdateFlashcardRequest(BaseModel):
    """Request model for updating a flashcard."""

    deck_id: Optional[str] = Field(None, min_length=1, max_length=100)
    front: Optional[str] = Field(None, min_length=1, max_length=1000)
    back: Optional[str] = Field(None, min_length=1, max_length=2000)

    @field_validator("front", "back")
    @classmethod
    def validate_not_blank(cls, v: Optional[str]) -> Optional[str]:
        """Reject whitespace-only sides; omitted sides stay None."""
        if v is not None and not v.strip():
            raise ValueError("Text must not be blank")
        return v


class FlashcardResponse(BaseModel):
    """Response model for a flashcard."""

    flashcard_id: str
    user_id: str
    deck_id: str
    front: str
    back: str
    created_at: datetime
    updated_at: Optional[datetime] = None


class FlashcardListResponse(BaseModel):
    """Response model for flashcard list."""

    flashcards: List[FlashcardResponse]
    total: int
    next_cursor: Optional[str] = None


class TrashItemResponse(BaseModel):
    """A flashcard waiting in the trash."""

    flashcard_id: str
    deck_id: str
    front: str
    deleted_at: datetime
    expires_at: datetime
    days_left: int


class TrashListResponse(BaseModel):
    """Response model for the trash."""

    items: List[TrashItemResponse]
    total: int


class Flashcard(BaseModel):
    """Flashcard domain model."""

    flashcard_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    deck_id: str
    front: str
    back: str
    deleted: bool = False
    deleted_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = None

    def to_response(self) -> FlashcardResponse:
        """Convert to API response model."""
        return FlashcardResponse(
            flashcard_id=self.flashcard_id,
            user_id=self.user_id,
            deck_id=self.deck_id,
            front=self.front,
            back=self.back,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def to_trash_item(self, retention_days: int, now: datetime) -> TrashItemResponse:
        """Convert a trashed card to its trash listing entry."""
        deleted_at = self.deleted_at or self.updated_at or self.created_at
        expires_at = deleted_at + timedelta(days=retention_days)
        return TrashItemResponse(
            flashcard_id=self.flashcard_id,
            deck_id=self.deck_id,
            front=self.front,
            deleted_at=deleted_at,
            expires_at=expires_at,
            days_left=max(0, (expires_at - now).days),
        )

    def to_dynamodb_item(self) -> dict:
        """Convert to DynamoDB item."""
        item = {
            "user_id": self.user_id,
            "flashcard_id": self.flashcard_id,
            "deck_id": self.deck_id,
            "front": self.front,
            "back": self.back,
            "deleted": self.deleted,
            "created_at": self.created_at.isoformat(),
        }
        if self.deleted_at:
            item["deleted_at"] = self.deleted_at.isoformat()
        if self.updated_at:
            item["updated_at"] = self.updated_at.isoformat()
        return item

    @classmethod
    def from_dynamodb_item(cls, item: dict) -> "Flashcard":
        """Create Flashcard from DynamoDB item."""
        return cls(
            flashcard_id=item["flashcard_id"],
            user_id=item["user_id"],
            deck_id=item["deck_id"],
            front=item["front"],
            back=item["back"],
            deleted=bool(item.get("deleted", False)),
            deleted_at=parse_timestamp(item.get("deleted_at")),
            created_at=parse_timestamp(item["created_at"]),
            updated_at=parse_timestamp(item.get("updated_at")),
        )
