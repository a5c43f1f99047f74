"""FSRS-style spaced repetition scheduler for flashcard reviews."""

import math
import os
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import IntEnum
from typing import Dict, Iterable, List, Mapping, Optional, Tuple


class Rating(IntEnum):
    """User's self-assessed recall quality."""

    FORGOT = 1
    HARD = 2
    GOOD = 3
    EASY = 4


class LifecycleStage(IntEnum):
    """Coarse scheduling bucket of a card."""

    NEW = 0
    LEARNING = 1
    REVIEW = 2
    RELEARNING = 3


RATING_LABELS = {
    Rating.FORGOT: "Forgot",
    Rating.HARD: "Hard",
    Rating.GOOD: "Good",
    Rating.EASY: "Easy",
}

STAGE_LABELS = {
    LifecycleStage.NEW: "New",
    LifecycleStage.LEARNING: "Learning",
    LifecycleStage.REVIEW: "Review",
    LifecycleStage.RELEARNING: "Relearning",
}

# FSRS v4 reference weights, kept for tuning; the simplified formula below does not read them.
DEFAULT_WEIGHTS = (
    0.4, 0.6, 2.4, 5.8, 4.93, 0.94, 0.86, 0.01, 1.49,
    0.14, 0.94, 2.18, 0.05, 0.34, 1.26, 0.29, 2.61,
)


class SchedulerError(ValueError):
    """Base exception for scheduler input errors."""

    pass


class InvalidRatingError(SchedulerError):
    """Raised when a rating is outside Forgot/Hard/Good/Easy."""

    pass


class InvalidStateError(SchedulerError):
    """Raised when a card carries an unknown lifecycle stage."""

    pass


@dataclass(frozen=True)
class FSRSParameters:
    """Parameter table controlling the scheduler."""

    request_retention: float = 0.9
    maximum_interval: int = 36500
    initial_intervals: Dict[Rating, int] = field(
        default_factory=lambda: {
            Rating.FORGOT: 0,
            Rating.HARD: 1,
            Rating.GOOD: 3,
            Rating.EASY: 6,
        }
    )
    initial_difficulties: Dict[Rating, float] = field(
        default_factory=lambda: {
            Rating.FORGOT: 0.8,
            Rating.HARD: 0.6,
            Rating.GOOD: 0.4,
            Rating.EASY: 0.2,
        }
    )
    stability_factors: Dict[Rating, float] = field(
        default_factory=lambda: {
            Rating.HARD: 1.2,
            Rating.GOOD: 1.5,
            Rating.EASY: 2.0,
        }
    )
    difficulty_delta: float = 0.1
    forgot_stability_factor: float = 0.5
    minimum_relearning_stability: float = 1.0
    easy_bonus: float = 1.3
    default_difficulty: float = 0.3
    w: Tuple[float, ...] = DEFAULT_WEIGHTS

    @classmethod
    def from_env(cls) -> "FSRSParameters":
        """Build parameters from FSRS_* environment variables.

        Raises:
            ValueError: If a variable is not a number or is out of range.
        """
        request_retention = float(os.environ.get("FSRS_REQUEST_RETENTION", "0.9"))
        maximum_interval = int(os.environ.get("FSRS_MAXIMUM_INTERVAL", "36500"))

        if not 0 < request_retention <= 1:
            raise ValueError(
                f"FSRS_REQUEST_RETENTION must be in (0, 1], got {request_retention}"
            )
        if maximum_interval < 1:
            raise ValueError(
                f"FSRS_MAXIMUM_INTERVAL must be at least 1, got {maximum_interval}"
            )

        return cls(request_retention=request_retention, maximum_interval=maximum_interval)


@dataclass
class CardState:
    """Scheduling state of one flashcard for one user."""

    stability: float
    difficulty: float
    elapsed_days: int
    scheduled_days: int
    reps: int
    lapses: int
    lifecycle_stage: LifecycleStage
    due_at: datetime


@dataclass
class ReviewLog:
    """What the scheduler observed when a review was applied."""

    rating: Rating
    scheduled_days: int  # interval that had been scheduled before this review
    elapsed_days: int
    reviewed_at: datetime


@dataclass
class ReviewEvent:
    """Immutable review history record."""

    flashcard_id: str
    user_id: str
    rating: Rating
    scheduled_days: int
    elapsed_days: int
    reviewed_at: datetime

    @classmethod
    def from_log(cls, flashcard_id: str, user_id: str, log: ReviewLog) -> "ReviewEvent":
        """Attach ownership to a scheduler review log."""
        return cls(
            flashcard_id=flashcard_id,
            user_id=user_id,
            rating=log.rating,
            scheduled_days=log.scheduled_days,
            elapsed_days=log.elapsed_days,
            reviewed_at=log.reviewed_at,
        )


@dataclass
class ReviewResult:
    """Result of applying a rating to a card."""

    card: CardState
    scheduled_days: int
    next_due: datetime
    log: ReviewLog


def parse_rating(value) -> Rating:
    """Convert a raw value into a Rating.

    Raises:
        InvalidRatingError: If value is not 1, 2, 3 or 4.
    """
    if isinstance(value, bool):
        raise InvalidRatingError(f"Rating must be between 1 and 4, got {value}")
    try:
        return Rating(value)
    except (ValueError, TypeError):
        raise InvalidRatingError(f"Rating must be between 1 and 4, got {value}")


def parse_stage(value) -> LifecycleStage:
    """Convert a raw value into a LifecycleStage.

    Raises:
        InvalidStateError: If value is not a known stage.
    """
    if isinstance(value, bool):
        raise InvalidStateError(f"Unknown lifecycle stage: {value}")
    try:
        return LifecycleStage(value)
    except (ValueError, TypeError):
        raise InvalidStateError(f"Unknown lifecycle stage: {value}")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def is_due(state: Optional[CardState], now: datetime) -> bool:
    """Return True when a card should be offered for review at `now`.

    A card with no stored state is a new card and is always due.
    """
    if state is None:
        return True
    if parse_stage(state.lifecycle_stage) == LifecycleStage.NEW:
        return True
    return state.due_at <= now


def partition_due(
    flashcard_ids: Iterable[str],
    states: Mapping[str, CardState],
    now: datetime,
) -> Tuple[List[str], List[str]]:
    """Split flashcard ids into (due, not due), preserving input order."""
    due: List[str] = []
    not_due: List[str] = []
    for flashcard_id in flashcard_ids:
        if is_due(states.get(flashcard_id), now):
            due.append(flashcard_id)
        else:
            not_due.append(flashcard_id)
    return due, not_due


class FSRSScheduler:
    """Computes the next review of a card from its state and a rating.

    The scheduler is pure: it never mutates the state it receives and keeps
    no per-call state, so one instance can serve concurrent callers.
    """

    def __init__(self, parameters: Optional[FSRSParameters] = None):
        self.parameters = parameters or FSRSParameters()

    def create_new_state(self, now: datetime) -> CardState:
        """Default state of a card that has never been reviewed."""
        return CardState(
            stability=0.0,
            difficulty=self.parameters.default_difficulty,
            elapsed_days=0,
            scheduled_days=0,
            reps=0,
            lapses=0,
            lifecycle_stage=LifecycleStage.NEW,
            due_at=now,
        )

    def review(self, state: CardState, rating, now: datetime) -> ReviewResult:
        """Apply a rating to a card.

        Args:
            state: Current card state.
            rating: One of the Rating values (plain ints 1-4 are accepted).
            now: Review timestamp.

        Returns:
            ReviewResult with the new state, the scheduled interval in days,
            the next due timestamp and the review log.

        Raises:
            InvalidRatingError: If rating is not 1-4.
            InvalidStateError: If state has an unknown lifecycle stage.
        """
        rating = parse_rating(rating)
        stage = parse_stage(state.lifecycle_stage)

        if stage == LifecycleStage.NEW:
            elapsed_days = 0
            card = self._review_new(state, rating, now)
        else:
            elapsed_days = max(0, (now - state.due_at).days)
            card = self._review_existing(state, rating, now, elapsed_days)

        log = ReviewLog(
            rating=rating,
            scheduled_days=state.scheduled_days,
            elapsed_days=elapsed_days,
            reviewed_at=now,
        )
        return ReviewResult(
            card=card,
            scheduled_days=card.scheduled_days,
            next_due=card.due_at,
            log=log,
        )

    def is_due(self, state: Optional[CardState], now: datetime) -> bool:
        return is_due(state, now)

    def _review_new(self, state: CardState, rating: Rating, now: datetime) -> CardState:
        params = self.parameters
        scheduled_days = min(params.initial_intervals[rating], params.maximum_interval)

        return replace(
            state,
            # Rating value doubles as the seed stability for Good/Easy
            stability=float(rating) if rating >= Rating.GOOD else 0.0,
            difficulty=params.initial_difficulties[rating],
            elapsed_days=0,
            scheduled_days=scheduled_days,
            reps=state.reps + 1,
            lapses=state.lapses + 1 if rating == Rating.FORGOT else state.lapses,
            lifecycle_stage=(
                LifecycleStage.LEARNING if rating == Rating.FORGOT else LifecycleStage.REVIEW
            ),
            due_at=now + timedelta(days=scheduled_days),
        )

    def _review_existing(
        self,
        state: CardState,
        rating: Rating,
        now: datetime,
        elapsed_days: int,
    ) -> CardState:
        params = self.parameters

        if rating == Rating.FORGOT:
            stability = max(
                params.minimum_relearning_stability,
                state.stability * params.forgot_stability_factor,
            )
            stage = LifecycleStage.RELEARNING
        else:
            stability = state.stability * params.stability_factors[rating]
            stage = LifecycleStage.REVIEW

        difficulty = state.difficulty
        if rating == Rating.FORGOT:
            difficulty = min(1.0, difficulty + params.difficulty_delta)
        elif rating == Rating.EASY:
            difficulty = max(0.0, difficulty - params.difficulty_delta)

        bonus = params.easy_bonus if rating == Rating.EASY else 1.0
        raw_interval = stability * bonus
        # Cap before rounding: stability can grow to inf after many Easy ratings
        if raw_interval >= params.maximum_interval:
            scheduled_days = params.maximum_interval
        else:
            scheduled_days = _round_half_up(raw_interval)

        return replace(
            state,
            stability=stability,
            difficulty=difficulty,
            elapsed_days=elapsed_days,
            scheduled_days=scheduled_days,
            reps=state.reps + 1,
            lapses=state.lapses + 1 if rating == Rating.FORGOT else state.lapses,
            lifecycle_stage=stage,
            due_at=now + timedelta(days=scheduled_days),
        )
