"""Review service for flashcard reviews and due-card queries."""

from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from aws_lambda_powertools import Logger

from ..models.review import (
    DeckStatsResponse,
    DueFlashcardInfo,
    DueFlashcardsResponse,
    FlashcardStateResponse,
    ReviewActivityDay,
    ReviewActivityResponse,
    ReviewResponse,
)
from .flashcard_service import FlashcardService
from .flashcard_state_service import FlashcardStateService
from .fsrs import (
    FSRSParameters,
    FSRSScheduler,
    LifecycleStage,
    ReviewEvent,
    parse_rating,
    partition_due,
)

logger = Logger()


class ReviewService:
    """Service for flashcard reviews and FSRS scheduling."""

    def __init__(
        self,
        flashcard_service: Optional[FlashcardService] = None,
        state_service: Optional[FlashcardStateService] = None,
        scheduler: Optional[FSRSScheduler] = None,
        dynamodb_resource=None,
    ):
        """Initialize ReviewService.

        Args:
            flashcard_service: Flashcard storage. Built from env vars when omitted.
            state_service: Scheduling state storage. Built from env vars when omitted.
            scheduler: FSRS scheduler. Built from FSRS_* env vars when omitted.
            dynamodb_resource: Optional boto3 DynamoDB resource for testing.
        """
        self.flashcard_service = flashcard_service or FlashcardService(
            dynamodb_resource=dynamodb_resource
        )
        self.state_service = state_service or FlashcardStateService(
            dynamodb_resource=dynamodb_resource
        )
        self.scheduler = scheduler or FSRSScheduler(FSRSParameters.from_env())

    def record_review(
        self,
        user_id: str,
        flashcard_id: str,
        rating: int,
        now: Optional[datetime] = None,
    ) -> ReviewResponse:
        """Apply a rating to a flashcard and store the outcome.

        Args:
            user_id: The user's ID.
            flashcard_id: The flashcard's ID.
            rating: 1 Forgot, 2 Hard, 3 Good, 4 Easy.
            now: Review timestamp. Defaults to the current time.

        Returns:
            ReviewResponse with previous and updated states.

        Raises:
            InvalidRatingError: If rating is not 1-4. Nothing is stored.
            FlashcardNotFoundError: If the flashcard does not exist, belongs to
                another user or is in the trash.
            InvalidStateError: If the stored state is corrupt.
        """
        rating = parse_rating(rating)
        if now is None:
            now = datetime.now(timezone.utc)

        self.flashcard_service.get_flashcard(user_id, flashcard_id)

        state = self.state_service.load_card_state(user_id, flashcard_id)
        if state is None:
            state = self.scheduler.create_new_state(now)

        result = self.scheduler.review(state, rating, now)

        self.state_service.save_card_state(
            user_id, flashcard_id, result.card, last_review_at=now
        )
        self.state_service.append_review_event(
            ReviewEvent.from_log(flashcard_id, user_id, result.log)
        )

        logger.info(
            f"Reviewed flashcard {flashcard_id}: rating={int(rating)} "
            f"stage={result.card.lifecycle_stage.name} scheduled_days={result.scheduled_days}"
        )

        return ReviewResponse(
            flashcard_id=flashcard_id,
            rating=int(rating),
            previous=FlashcardStateResponse.from_card_state(state),
            updated=FlashcardStateResponse.from_card_state(result.card),
            scheduled_days=result.scheduled_days,
            next_due_at=result.next_due,
            reviewed_at=now,
        )

    def get_card_state(
        self,
        user_id: str,
        flashcard_id: str,
        now: Optional[datetime] = None,
    ) -> FlashcardStateResponse:
        """Get the scheduling state of a flashcard, or the New default."""
        if now is None:
            now = datetime.now(timezone.utc)

        self.flashcard_service.get_flashcard(user_id, flashcard_id)
        state = self.state_service.load_card_state(user_id, flashcard_id)
        if state is None:
            state = self.scheduler.create_new_state(now)
        return FlashcardStateResponse.from_card_state(state)

    def get_due_flashcards(
        self,
        user_id: str,
        deck_id: str,
        now: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> DueFlashcardsResponse:
        """Get the flashcards of a deck that are due for review.

        Args:
            user_id: The user's ID.
            deck_id: The deck's ID.
            now: Reference time. Defaults to the current time.
            limit: Maximum number of flashcards to return.

        Returns:
            DueFlashcardsResponse; never-reviewed cards come first, then the
            most overdue.
        """
        if now is None:
            now = datetime.now(timezone.utc)

        flashcards = self.flashcard_service.list_deck_flashcards(user_id, deck_id)
        by_id = {f.flashcard_id: f for f in flashcards}
        states = self.state_service.get_card_states(user_id, by_id.keys())
        due_ids, not_due_ids = partition_due(by_id.keys(), states, now)

        due_infos: List[DueFlashcardInfo] = []
        for flashcard_id in due_ids:
            flashcard = by_id[flashcard_id]
            state = states.get(flashcard_id)
            info = DueFlashcardInfo(
                flashcard_id=flashcard_id,
                deck_id=flashcard.deck_id,
                front=flashcard.front,
                back=flashcard.back,
            )
            if state is not None:
                info.lifecycle_stage = int(state.lifecycle_stage)
                info.due_at = state.due_at
                info.overdue_days = max(0, (now - state.due_at).days)
            due_infos.append(info)

        due_infos.sort(key=lambda info: (info.due_at is not None, info.due_at or now))
        total_due = len(due_infos)
        if limit is not None:
            due_infos = due_infos[:limit]

        next_due_at = None
        if not due_infos and not_due_ids:
            next_due_at = min(states[flashcard_id].due_at for flashcard_id in not_due_ids)

        return DueFlashcardsResponse(
            deck_id=deck_id,
            due_flashcards=due_infos,
            total_due_count=total_due,
            next_due_at=next_due_at,
        )

    def get_deck_stats(
        self,
        user_id: str,
        deck_id: str,
        now: Optional[datetime] = None,
    ) -> DeckStatsResponse:
        """Count a deck's flashcards per lifecycle stage and how many are due."""
        if now is None:
            now = datetime.now(timezone.utc)

        flashcards = self.flashcard_service.list_deck_flashcards(user_id, deck_id)
        flashcard_ids = [f.flashcard_id for f in flashcards]
        states = self.state_service.get_card_states(user_id, flashcard_ids)
        due_ids, _ = partition_due(flashcard_ids, states, now)

        stages = Counter(
            states[fid].lifecycle_stage if fid in states else LifecycleStage.NEW
            for fid in flashcard_ids
        )
        return DeckStatsResponse(
            deck_id=deck_id,
            total=len(flashcard_ids),
            new=stages[LifecycleStage.NEW],
            learning=stages[LifecycleStage.LEARNING],
            review=stages[LifecycleStage.REVIEW],
            relearning=stages[LifecycleStage.RELEARNING],
            due_today=len(due_ids),
        )

    def get_review_activity(
        self,
        user_id: str,
        days: int = 365,
        now: Optional[datetime] = None,
    ) -> ReviewActivityResponse:
        """Count reviews per UTC day over the last `days` days, oldest first."""
        if now is None:
            now = datetime.now(timezone.utc)

        today = now.astimezone(timezone.utc).date()
        start_day = today - timedelta(days=days)
        since = datetime(start_day.year, start_day.month, start_day.day, tzinfo=timezone.utc)

        events = self.state_service.list_review_events(user_id, since=since)
        counts = Counter(event.reviewed_at.astimezone(timezone.utc).date() for event in events)

        activity: List[ReviewActivityDay] = []
        day = start_day
        while day <= today:
            activity.append(ReviewActivityDay(day=day, count=counts.get(day, 0)))
            day += timedelta(days=1)

        return ReviewActivityResponse(
            days=activity,
            total_reviews=sum(entry.count for entry in activity),
        )

