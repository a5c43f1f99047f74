"""Flashcard service for DynamoDB operations."""

import os
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

import boto3
from aws_lambda_powertools import Logger
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from ..models.flashcard import Flashcard, TrashItemResponse

logger = Logger()


class FlashcardServiceError(Exception):
    """Base exception for flashcard service errors."""

    pass


class FlashcardNotFoundError(FlashcardServiceError):
    """Raised when flashcard is not found."""

    pass


class FlashcardNotInTrashError(FlashcardServiceError):
    """Raised when a trash operation targets a live flashcard."""

    pass


class FlashcardService:
    """Service for flashcard-related DynamoDB operations."""

    DEFAULT_TRASH_RETENTION_DAYS = 15

    def __init__(
        self,
        table_name: Optional[str] = None,
        dynamodb_resource=None,
        states_table_name: Optional[str] = None,
        trash_retention_days: Optional[int] = None,
    ):
        """Initialize FlashcardService.

        Args:
            table_name: DynamoDB table name. Defaults to FLASHCARDS_TABLE env var.
            dynamodb_resource: Optional boto3 DynamoDB resource for testing.
            states_table_name: DynamoDB states table name. Defaults to FLASHCARD_STATES_TABLE env var.
            trash_retention_days: Days a trashed card is kept. Defaults to TRASH_RETENTION_DAYS env var.
        """
        self.table_name = table_name or os.environ.get("FLASHCARDS_TABLE", "studiefy-flashcards-dev")
        # Permanent deletion removes the scheduling state in the same transaction
        self.states_table_name = states_table_name or os.environ.get(
            "FLASHCARD_STATES_TABLE", "studiefy-flashcard-states-dev"
        )
        if trash_retention_days is None:
            trash_retention_days = int(
                os.environ.get("TRASH_RETENTION_DAYS", self.DEFAULT_TRASH_RETENTION_DAYS)
            )
        self.trash_retention_days = trash_retention_days

        if dynamodb_resource:
            self.dynamodb = dynamodb_resource
        else:
            endpoint_url = os.environ.get("AWS_ENDPOINT_URL")
            if endpoint_url:
                self.dynamodb = boto3.resource("dynamodb", endpoint_url=endpoint_url)
            else:
                self.dynamodb = boto3.resource("dynamodb")

        self.table = self.dynamodb.Table(self.table_name)

    def create_flashcard(
        self,
        user_id: str,
        deck_id: str,
        front: str,
        back: str,
    ) -> Flashcard:
        """Create a new flashcard.

        Args:
            user_id: The user's ID.
            deck_id: The deck's ID.
            front: Front side text.
            back: Back side text.

        Returns:
            Created Flashcard object.
        """
        flashcard = Flashcard(
            user_id=user_id,
            deck_id=deck_id,
            front=front,
            back=back,
            created_at=datetime.now(timezone.utc),
        )
        try:
            self.table.put_item(Item=flashcard.to_dynamodb_item())
            return flashcard
        except ClientError as e:
            raise FlashcardServiceError(f"Failed to create flashcard: {e}")

    def get_flashcard(
        self,
        user_id: str,
        flashcard_id: str,
        include_deleted: bool = False,
    ) -> Flashcard:
        """Get a flashcard by ID.

        Args:
            user_id: The user's ID.
            flashcard_id: The flashcard's ID.
            include_deleted: Also return the card when it is in the trash.

        Returns:
            Flashcard object.

        Raises:
            FlashcardNotFoundError: If the flashcard does not exist, or is trashed
                and include_deleted is False.
        """
        try:
            response = self.table.get_item(Key={"user_id": user_id, "flashcard_id": flashcard_id})
        except ClientError as e:
            raise FlashcardServiceError(f"Failed to get flashcard: {e}")

        if "Item" not in response:
            raise FlashcardNotFoundError(f"Flashcard not found: {flashcard_id}")
        flashcard = Flashcard.from_dynamodb_item(response["Item"])
        if flashcard.deleted and not include_deleted:
            raise FlashcardNotFoundError(f"Flashcard not found: {flashcard_id}")
        return flashcard

    def update_flashcard(
        self,
        user_id: str,
        flashcard_id: str,
        front: Optional[str] = None,
        back: Optional[str] = None,
        deck_id: Optional[str] = None,
    ) -> Flashcard:
        """Update a live flashcard.

        Args:
            user_id: The user's ID.
            flashcard_id: The flashcard's ID.
            front: Optional new front text.
            back: Optional new back text.
            deck_id: Optional new deck ID.

        Returns:
            Updated Flashcard object.

        Raises:
            FlashcardNotFoundError: If the flashcard does not exist or is trashed.
        """
        flashcard = self.get_flashcard(user_id, flashcard_id)

        update_parts = []
        expression_values = {}
        expression_names = {}

        if front is not None:
            update_parts.append("#front = :front")
            expression_values[":front"] = front
            expression_names["#front"] = "front"
            flashcard.front = front

        if back is not None:
            update_parts.append("#back = :back")
            expression_values[":back"] = back
            expression_names["#back"] = "back"
            flashcard.back = back

        if deck_id is not None:
            update_parts.append("deck_id = :deck_id")
            expression_values[":deck_id"] = deck_id
            flashcard.deck_id = deck_id

        if not update_parts:
            return flashcard

        now = datetime.now(timezone.utc)
        update_parts.append("updated_at = :updated_at")
        expression_values[":updated_at"] = now.isoformat()
        flashcard.updated_at = now

        try:
            update_kwargs = {
                "Key": {"user_id": user_id, "flashcard_id": flashcard_id},
                "UpdateExpression": "SET " + ", ".join(update_parts),
                "ExpressionAttributeValues": expression_values,
            }
            if expression_names:
                update_kwargs["ExpressionAttributeNames"] = expression_names

            self.table.update_item(**update_kwargs)
            return flashcard
        except ClientError as e:
            raise FlashcardServiceError(f"Failed to update flashcard: {e}")

    def list_flashcards(
        self,
        user_id: str,
        deck_id: Optional[str] = None,
        limit: int = 50,
        cursor: Optional[str] = None,
    ) -> Tuple[List[Flashcard], Optional[str]]:
        """List live flashcards for a user.

        Pages follow the table's key order; cards are sorted newest first
        within the returned page only.

        Args:
            user_id: The user's ID.
            deck_id: Optional filter by deck ID.
            limit: Maximum number of items read per page.
            cursor: Pagination cursor (flashcard_id to start after).

        Returns:
            Tuple of (list of flashcards, next cursor).
        """
        filter_expression = Attr("deleted").ne(True)
        if deck_id:
            filter_expression = filter_expression & Attr("deck_id").eq(deck_id)

        query_kwargs = {
            "KeyConditionExpression": Key("user_id").eq(user_id),
            "FilterExpression": filter_expression,
            "Limit": limit,
            "ScanIndexForward": False,
        }
        if cursor:
            query_kwargs["ExclusiveStartKey"] = {"user_id": user_id, "flashcard_id": cursor}

        try:
            response = self.table.query(**query_kwargs)
        except ClientError as e:
            raise FlashcardServiceError(f"Failed to list flashcards: {e}")

        flashcards = [Flashcard.from_dynamodb_item(item) for item in response.get("Items", [])]
        flashcards.sort(key=lambda f: f.created_at, reverse=True)

        next_cursor = None
        if "LastEvaluatedKey" in response:
            next_cursor = response["LastEvaluatedKey"]["flashcard_id"]

        return flashcards, next_cursor

    def list_deck_flashcards(self, user_id: str, deck_id: str) -> List[Flashcard]:
        """List every live flashcard of a deck, across all pages."""
        return self._query_all(
            KeyConditionExpression=Key("user_id").eq(user_id),
            FilterExpression=Attr("deleted").ne(True) & Attr("deck_id").eq(deck_id),
        )

    def move_to_trash(self, user_id: str, flashcard_id: str) -> Flashcard:
        """Soft-delete a flashcard. Its scheduling state is kept for a restore.

        Raises:
            FlashcardNotFoundError: If the flashcard does not exist or is already trashed.
        """
        flashcard = self.get_flashcard(user_id, flashcard_id)
        now = datetime.now(timezone.utc)

        try:
            self.table.update_item(
                Key={"user_id": user_id, "flashcard_id": flashcard_id},
                UpdateExpression="SET #deleted = :deleted, deleted_at = :deleted_at, updated_at = :updated_at",
                ExpressionAttributeNames={"#deleted": "deleted"},
                ConditionExpression="attribute_exists(flashcard_id)",
                ExpressionAttributeValues={
                    ":deleted": True,
                    ":deleted_at": now.isoformat(),
                    ":updated_at": now.isoformat(),
                },
            )
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                raise FlashcardNotFoundError(f"Flashcard not found: {flashcard_id}")
            raise FlashcardServiceError(f"Failed to move flashcard to trash: {e}")

        flashcard.deleted = True
        flashcard.deleted_at = now
        flashcard.updated_at = now
        logger.info(f"Moved flashcard {flashcard_id} to trash")
        return flashcard

    def restore_flashcard(self, user_id: str, flashcard_id: str) -> Flashcard:
        """Bring a trashed flashcard back.

        Raises:
            FlashcardNotFoundError: If the flashcard does not exist.
            FlashcardNotInTrashError: If the flashcard is not in the trash.
        """
        flashcard = self.get_flashcard(user_id, flashcard_id, include_deleted=True)
        if not flashcard.deleted:
            raise FlashcardNotInTrashError(f"Flashcard is not in the trash: {flashcard_id}")

        now = datetime.now(timezone.utc)
        try:
            self.table.update_item(
                Key={"user_id": user_id, "flashcard_id": flashcard_id},
                UpdateExpression="SET #deleted = :deleted, updated_at = :updated_at REMOVE deleted_at",
                ExpressionAttributeNames={"#deleted": "deleted"},
                ExpressionAttributeValues={
                    ":deleted": False,
                    ":updated_at": now.isoformat(),
                },
            )
        except ClientError as e:
            raise FlashcardServiceError(f"Failed to restore flashcard: {e}")

        flashcard.deleted = False
        flashcard.deleted_at = None
        flashcard.updated_at = now
        return flashcard

    def list_trash(self, user_id: str, now: Optional[datetime] = None) -> List[TrashItemResponse]:
        """List trashed flashcards, most recently deleted first."""
        if now is None:
            now = datetime.now(timezone.utc)

        trashed = self._query_all(
            KeyConditionExpression=Key("user_id").eq(user_id),
            FilterExpression=Attr("deleted").eq(True),
        )
        items = [f.to_trash_item(self.trash_retention_days, now) for f in trashed]
        items.sort(key=lambda item: item.deleted_at, reverse=True)
        return items

    def delete_permanently(self, user_id: str, flashcard_id: str) -> None:
        """Delete a trashed flashcard and its scheduling state atomically.

        Review events are history and are not touched.

        Raises:
            FlashcardNotFoundError: If the flashcard does not exist.
            FlashcardNotInTrashError: If the flashcard is not in the trash.
        """
        flashcard = self.get_flashcard(user_id, flashcard_id, include_deleted=True)
        if not flashcard.deleted:
            raise FlashcardNotInTrashError(f"Flashcard is not in the trash: {flashcard_id}")

        try:
            client = self.dynamodb.meta.client
            client.transact_write_items(
                TransactItems=[
                    {
                        "Delete": {
                            "TableName": self.table_name,
                            "Key": {"user_id": user_id, "flashcard_id": flashcard_id},
                            # Restored concurrently: keep it
                            "ConditionExpression": "#deleted = :deleted",
                            "ExpressionAttributeNames": {"#deleted": "deleted"},
                            "ExpressionAttributeValues": {":deleted": True},
                        }
                    },
                    {
                        # No condition: a never-reviewed card has no state
                        "Delete": {
                            "TableName": self.states_table_name,
                            "Key": {"user_id": user_id, "flashcard_id": flashcard_id},
                        }
                    },
                ]
            )
        except ClientError as e:
            if e.response["Error"]["Code"] == "TransactionCanceledException":
                reasons = e.response.get("CancellationReasons", [])
                if reasons and reasons[0].get("Code") == "ConditionalCheckFailed":
                    raise FlashcardNotInTrashError(f"Flashcard is not in the trash: {flashcard_id}")
                logger.error(f"Transaction cancelled with reasons: {reasons}")
            raise FlashcardServiceError(f"Failed to delete flashcard: {e}")

    def empty_trash(self, user_id: str) -> int:
        """Permanently delete every trashed flashcard of a user.

        Returns:
            Number of flashcards deleted.
        """
        trashed = self._query_all(
            KeyConditionExpression=Key("user_id").eq(user_id),
            FilterExpression=Attr("deleted").eq(True),
        )
        return self._delete_all(trashed)

    def purge_expired_trash(self, now: Optional[datetime] = None) -> int:
        """Permanently delete trashed flashcards older than the retention window.

        Returns:
            Number of flashcards deleted.
        """
        if now is None:
            now = datetime.now(timezone.utc)
        cutoff = now - timedelta(days=self.trash_retention_days)

        scan_kwargs = {
            "FilterExpression": Attr("deleted").eq(True) & Attr("deleted_at").lte(cutoff.isoformat()),
        }
        expired: List[Flashcard] = []
        try:
            while True:
                response = self.table.scan(**scan_kwargs)
                expired.extend(Flashcard.from_dynamodb_item(item) for item in response.get("Items", []))
                if "LastEvaluatedKey" not in response:
                    break
                scan_kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]
        except ClientError as e:
            raise FlashcardServiceError(f"Failed to scan expired trash: {e}")

        logger.info(f"Found {len(expired)} expired flashcards in trash (cutoff {cutoff.isoformat()})")
        return self._delete_all(expired)

    def _delete_all(self, flashcards: List[Flashcard]) -> int:
        deleted = 0
        for flashcard in flashcards:
            try:
                self.delete_permanently(flashcard.user_id, flashcard.flashcard_id)
                deleted += 1
            except (FlashcardNotFoundError, FlashcardNotInTrashError):
                # Restored or deleted by another request in the meantime
                logger.info(f"Skipped flashcard {flashcard.flashcard_id}: no longer in trash")
        return deleted

    def _query_all(self, **query_kwargs) -> List[Flashcard]:
        flashcards: List[Flashcard] = []
        try:
            while True:
                response = self.table.query(**query_kwargs)
                flashcards.extend(Flashcard.from_dynamodb_item(item) for item in response.get("Items", []))
                if "LastEvaluatedKey" not in response:
                    break
                query_kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]
        except ClientError as e:
            raise FlashcardServiceError(f"Failed to query flashcards: {e}")
        return flashcards
