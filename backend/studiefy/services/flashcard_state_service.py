"""Flashcard scheduling state and review history storage in DynamoDB."""

import os
from datetime import datetime
from typing import Dict, Iterable, List, Optional

import boto3
from aws_lambda_powertools import Logger
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from ..models.flashcard import parse_timestamp
from .fsrs import CardState, ReviewEvent, parse_rating, parse_stage

logger = Logger()


class FlashcardStateServiceError(Exception):
    """Base exception for flashcard state storage errors."""

    pass


def card_state_to_item(
    user_id: str,
    flashcard_id: str,
    state: CardState,
    last_review_at: Optional[datetime] = None,
) -> dict:
    """Convert a CardState to a DynamoDB item."""
    item = {
        "user_id": user_id,
        "flashcard_id": flashcard_id,
        # DynamoDB doesn't support float directly
        "stability": str(state.stability),
        "difficulty": str(state.difficulty),
        "elapsed_days": state.elapsed_days,
        "scheduled_days": state.scheduled_days,
        "reps": state.reps,
        "lapses": state.lapses,
        "state": int(state.lifecycle_stage),
        "due_at": state.due_at.isoformat(),
    }
    if last_review_at:
        item["last_review_at"] = last_review_at.isoformat()
    return item


def card_state_from_item(item: dict) -> CardState:
    """Create a CardState from a DynamoDB item.

    Raises:
        InvalidStateError: If the stored stage is not a known lifecycle stage.
    """
    return CardState(
        stability=float(item.get("stability", 0)),
        difficulty=float(item.get("difficulty", 0)),
        elapsed_days=int(item.get("elapsed_days", 0)),
        scheduled_days=int(item.get("scheduled_days", 0)),
        reps=int(item.get("reps", 0)),
        lapses=int(item.get("lapses", 0)),
        lifecycle_stage=parse_stage(item.get("state")),
        due_at=parse_timestamp(item["due_at"]),
    )


def review_event_to_item(event: ReviewEvent) -> dict:
    """Convert a ReviewEvent to a DynamoDB item."""
    reviewed_at = event.reviewed_at.isoformat()
    return {
        "user_id": event.user_id,
        "review_id": f"{reviewed_at}#{event.flashcard_id}",
        "flashcard_id": event.flashcard_id,
        "rating": int(event.rating),
        "scheduled_days": event.scheduled_days,
        "elapsed_days": event.elapsed_days,
        "reviewed_at": reviewed_at,
    }


def review_event_from_item(item: dict) -> ReviewEvent:
    """Create a ReviewEvent from a DynamoDB item."""
    return ReviewEvent(
        flashcard_id=item["flashcard_id"],
        user_id=item["user_id"],
        rating=parse_rating(int(item["rating"])),
        scheduled_days=int(item.get("scheduled_days", 0)),
        elapsed_days=int(item.get("elapsed_days", 0)),
        reviewed_at=parse_timestamp(item["reviewed_at"]),
    )


class FlashcardStateService:
    """Persistence adapter for per-user flashcard scheduling state."""

    def __init__(
        self,
        states_table_name: Optional[str] = None,
        reviews_table_name: Optional[str] = None,
        dynamodb_resource=None,
    ):
        """Initialize FlashcardStateService.

        Args:
            states_table_name: DynamoDB states table name. Defaults to FLASHCARD_STATES_TABLE env var.
            reviews_table_name: DynamoDB reviews table name. Defaults to FLASHCARD_REVIEWS_TABLE env var.
            dynamodb_resource: Optional boto3 DynamoDB resource for testing.
        """
        self.states_table_name = states_table_name or os.environ.get(
            "FLASHCARD_STATES_TABLE", "studiefy-flashcard-states-dev"
        )
        self.reviews_table_name = reviews_table_name or os.environ.get(
            "FLASHCARD_REVIEWS_TABLE", "studiefy-flashcard-reviews-dev"
        )

        if dynamodb_resource:
            self.dynamodb = dynamodb_resource
        else:
            endpoint_url = os.environ.get("AWS_ENDPOINT_URL")
            if endpoint_url:
                self.dynamodb = boto3.resource("dynamodb", endpoint_url=endpoint_url)
            else:
                self.dynamodb = boto3.resource("dynamodb")

        self.states_table = self.dynamodb.Table(self.states_table_name)
        self.reviews_table = self.dynamodb.Table(self.reviews_table_name)

    def load_card_state(self, user_id: str, flashcard_id: str) -> Optional[CardState]:
        """Load the scheduling state of a flashcard.

        Args:
            user_id: The user's ID.
            flashcard_id: The flashcard's ID.

        Returns:
            CardState, or None if the card has never been reviewed.

        Raises:
            InvalidStateError: If the stored item is corrupt.
        """
        try:
            response = self.states_table.get_item(
                Key={"user_id": user_id, "flashcard_id": flashcard_id}
            )
        except ClientError as e:
            raise FlashcardStateServiceError(f"Failed to load flashcard state: {e}")

        item = response.get("Item")
        if item is None:
            return None
        return card_state_from_item(item)

    def save_card_state(
        self,
        user_id: str,
        flashcard_id: str,
        state: CardState,
        last_review_at: Optional[datetime] = None,
    ) -> None:
        """Store the scheduling state of a flashcard, replacing any previous one.

        Concurrent saves for the same card are last-write-wins.
        """
        try:
            self.states_table.put_item(
                Item=card_state_to_item(user_id, flashcard_id, state, last_review_at)
            )
        except ClientError as e:
            raise FlashcardStateServiceError(f"Failed to save flashcard state: {e}")

    def delete_card_state(self, user_id: str, flashcard_id: str) -> None:
        """Delete the scheduling state of a flashcard, if any."""
        try:
            self.states_table.delete_item(
                Key={"user_id": user_id, "flashcard_id": flashcard_id}
            )
        except ClientError as e:
            raise FlashcardStateServiceError(f"Failed to delete flashcard state: {e}")

    def get_card_states(
        self,
        user_id: str,
        flashcard_ids: Optional[Iterable[str]] = None,
    ) -> Dict[str, CardState]:
        """Get stored states of a user's flashcards.

        Args:
            user_id: The user's ID.
            flashcard_ids: Restrict the result to these flashcards.

        Returns:
            Mapping of flashcard_id to CardState. Cards without state are absent.
        """
        wanted = set(flashcard_ids) if flashcard_ids is not None else None
        states: Dict[str, CardState] = {}

        query_kwargs = {"KeyConditionExpression": Key("user_id").eq(user_id)}
        try:
            while True:
                response = self.states_table.query(**query_kwargs)
                for item in response.get("Items", []):
                    if wanted is None or item["flashcard_id"] in wanted:
                        states[item["flashcard_id"]] = card_state_from_item(item)
                if "LastEvaluatedKey" not in response:
                    break
                query_kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]
        except ClientError as e:
            raise FlashcardStateServiceError(f"Failed to get flashcard states: {e}")

        return states

    def append_review_event(self, event: ReviewEvent) -> None:
        """Append a review event to the history.

        Events are write-once; an existing event with the same key is never
        overwritten.
        """
        try:
            self.reviews_table.put_item(
                Item=review_event_to_item(event),
                ConditionExpression="attribute_not_exists(review_id)",
            )
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                logger.warning(
                    f"Review event already recorded for flashcard {event.flashcard_id} "
                    f"at {event.reviewed_at.isoformat()}"
                )
                return
            raise FlashcardStateServiceError(f"Failed to append review event: {e}")

    def list_review_events(
        self,
        user_id: str,
        since: Optional[datetime] = None,
    ) -> List[ReviewEvent]:
        """List a user's review events in time order.

        Args:
            user_id: The user's ID.
            since: Only return events reviewed at or after this time.
        """
        key_condition = Key("user_id").eq(user_id)
        if since is not None:
            key_condition = key_condition & Key("review_id").gte(since.isoformat())

        query_kwargs = {
            "KeyConditionExpression": key_condition,
            "ScanIndexForward": True,
        }
        events: List[ReviewEvent] = []
        try:
            while True:
                response = self.reviews_table.query(**query_kwargs)
                events.extend(review_event_from_item(item) for item in response.get("Items", []))
                if "LastEvaluatedKey" not in response:
                    break
                query_kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]
        except ClientError as e:
            raise FlashcardStateServiceError(f"Failed to list review events: {e}")

        return events
