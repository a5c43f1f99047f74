"""Deck models for the Studiefy backend."""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .flashcard import parse_timestamp


class CreateDeckRequest(BaseModel):
    """Request model for creating a deck."""

    title: str = Field(..., min_length=1, max_length=200, description="Deck title")
    description: Optional[str] = Field(None, max_length=1000)
    subject_id: Optional[str] = Field(None, max_length=100, description="Subject the deck is filed under")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Trim the title and reject whitespace-only titles."""
        v = v.strip()
        if not v:
            raise ValueError("Title must not be blank")
        return v


class UpdateDeckRequest(BaseModel):
    """Request model for updating a deck.

    An empty description clears it.
    """

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    subject_id: Optional[str] = Field(None, max_length=100)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Title must not be blank")
        return v


class DeckResponse(BaseModel):
    """Response model for a deck."""

    deck_id: str
    title: str
    description: Optional[str] = None
    subject_id: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class DeckListResponse(BaseModel):
    """Response model for deck list."""

    decks: List[DeckResponse]
    total: int


class Deck(BaseModel):
    """Deck domain model."""

    deck_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    title: str
    description: Optional[str] = None
    subject_id: Optional[str] = None
    deleted: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = None

    def to_response(self) -> DeckResponse:
        """Convert to API response model."""
        return DeckResponse(
            deck_id=self.deck_id,
            title=self.title,
            description=self.description,
            subject_id=self.subject_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def to_dynamodb_item(self) -> dict:
        """Convert to DynamoDB item."""
        item = {
            "user_id": self.user_id,
            "deck_id": self.deck_id,
            "title": self.title,
            "deleted": self.deleted,
            "created_at": self.created_at.isoformat(),
        }
        if self.description:
            item["description"] = self.description
        if self.subject_id:
            item["subject_id"] = self.subject_id
        if self.updated_at:
            item["updated_at"] = self.updated_at.isoformat()
        return item

    @classmethod
    def from_dynamodb_item(cls, item: dict) -> "Deck":
        """Create Deck from DynamoDB item."""
        return cls(
            deck_id=item["deck_id"],
            user_id=item["user_id"],
            title=item["title"],
            description=item.get("description"),
            subject_id=item.get("subject_id"),
            deleted=bool(item.get("deleted", False)),
            created_at=parse_timestamp(item["created_at"]),
            updated_at=parse_timestamp(item.get("updated_at")),
        )
