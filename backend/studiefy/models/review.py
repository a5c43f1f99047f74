"""Review models for the Studiefy backend."""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from ..services.fsrs import STAGE_LABELS, CardState, LifecycleStage


class ReviewRequest(BaseModel):
    """Request model for submitting a review."""

    rating: int = Field(..., ge=1, le=4, description="1 Forgot, 2 Hard, 3 Good, 4 Easy")

    @field_validator("rating", mode="before")
    @classmethod
    def validate_rating(cls, v):
        """Reject booleans, which pydantic would otherwise coerce to 0/1."""
        if isinstance(v, bool):
            raise ValueError("Rating must be between 1 and 4")
        return v


class FlashcardStateResponse(BaseModel):
    """Scheduling state of a flashcard."""

    stability: float
    difficulty: float
    elapsed_days: int
    scheduled_days: int
    reps: int
    lapses: int
    lifecycle_stage: int
    lifecycle_stage_label: str
    due_at: datetime

    @classmethod
    def from_card_state(cls, state: CardState) -> "FlashcardStateResponse":
        """Build from a scheduler CardState."""
        stage = LifecycleStage(state.lifecycle_stage)
        return cls(
            stability=state.stability,
            difficulty=state.difficulty,
            elapsed_days=state.elapsed_days,
            scheduled_days=state.scheduled_days,
            reps=state.reps,
            lapses=state.lapses,
            lifecycle_stage=int(stage),
            lifecycle_stage_label=STAGE_LABELS[stage],
            due_at=state.due_at,
        )


class ReviewResponse(BaseModel):
    """Response model for a completed review."""

    flashcard_id: str
    rating: int
    previous: FlashcardStateResponse
    updated: FlashcardStateResponse
    scheduled_days: int
    next_due_at: datetime
    reviewed_at: datetime


class DueFlashcardInfo(BaseModel):
    """A flashcard due for review."""

    flashcard_id: str
    deck_id: str
    front: str
    back: str
    lifecycle_stage: int = 0
    due_at: Optional[datetime] = None
    overdue_days: int = 0


class DueFlashcardsResponse(BaseModel):
    """Response model for due flashcards of a deck."""

    deck_id: str
    due_flashcards: List[DueFlashcardInfo]
    total_due_count: int
    next_due_at: Optional[datetime] = None


class DeckStatsResponse(BaseModel):
    """Per-stage card counts of a deck."""

    deck_id: str
    total: int = 0
    new: int = 0
    learning: int = 0
    review: int = 0
    relearning: int = 0
    due_today: int = 0


class ReviewActivityDay(BaseModel):
    """Number of reviews done on one day."""

    day: date
    count: int = 0


class ReviewActivityResponse(BaseModel):
    """Daily review counts, oldest first."""

    days: List[ReviewActivityDay]
    total_reviews: int
