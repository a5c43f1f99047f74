"""Deck service for DynamoDB operations."""

import os
from datetime import datetime, timezone
from typing import List, Optional

import boto3
from aws_lambda_powertools import Logger
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from ..models.deck import Deck

logger = Logger()


class DeckServiceError(Exception):
    """Base exception for deck service errors."""

    pass


class DeckNotFoundError(DeckServiceError):
    """Raised when deck is not found."""

    pass


class DeckService:
    """Service for deck-related DynamoDB operations."""

    def __init__(self, table_name: Optional[str] = None, dynamodb_resource=None):
        """Initialize DeckService.

        Args:
            table_name: DynamoDB table name. Defaults to DECKS_TABLE env var.
            dynamodb_resource: Optional boto3 DynamoDB resource for testing.
        """
        self.table_name = table_name or os.environ.get("DECKS_TABLE", "studiefy-decks-dev")

        if dynamodb_resource:
            self.dynamodb = dynamodb_resource
        else:
            endpoint_url = os.environ.get("AWS_ENDPOINT_URL")
            if endpoint_url:
                self.dynamodb = boto3.resource("dynamodb", endpoint_url=endpoint_url)
            else:
                self.dynamodb = boto3.resource("dynamodb")

        self.table = self.dynamodb.Table(self.table_name)

    def create_deck(
        self,
        user_id: str,
        title: str,
        description: Optional[str] = None,
        subject_id: Optional[str] = None,
    ) -> Deck:
        """Create a new deck.

        Args:
            user_id: The user's ID.
            title: Deck title.
            description: Optional description.
            subject_id: Optional subject the deck is filed under.

        Returns:
            Created Deck object.
        """
        deck = Deck(
            user_id=user_id,
            title=title,
            description=description or None,
            subject_id=subject_id or None,
            created_at=datetime.now(timezone.utc),
        )
        try:
            self.table.put_item(Item=deck.to_dynamodb_item())
        except ClientError as e:
            raise DeckServiceError(f"Failed to create deck: {e}")

        logger.info(f"Created deck {deck.deck_id} for user_id: {user_id}")
        return deck

    def get_deck(self, user_id: str, deck_id: str) -> Deck:
        """Get a live deck by ID.

        Raises:
            DeckNotFoundError: If the deck does not exist or was deleted.
        """
        try:
            response = self.table.get_item(Key={"user_id": user_id, "deck_id": deck_id})
        except ClientError as e:
            raise DeckServiceError(f"Failed to get deck: {e}")

        if "Item" not in response:
            raise DeckNotFoundError(f"Deck not found: {deck_id}")
        deck = Deck.from_dynamodb_item(response["Item"])
        if deck.deleted:
            raise DeckNotFoundError(f"Deck not found: {deck_id}")
        return deck

    def list_decks(self, user_id: str, subject_id: Optional[str] = None) -> List[Deck]:
        """List a user's live decks, newest first.

        Args:
            user_id: The user's ID.
            subject_id: Optional filter by subject.
        """
        filter_expression = Attr("deleted").ne(True)
        if subject_id:
            filter_expression = filter_expression & Attr("subject_id").eq(subject_id)

        query_kwargs = {
            "KeyConditionExpression": Key("user_id").eq(user_id),
            "FilterExpression": filter_expression,
        }
        decks: List[Deck] = []
        try:
            while True:
                response = self.table.query(**query_kwargs)
                decks.extend(Deck.from_dynamodb_item(item) for item in response.get("Items", []))
                if "LastEvaluatedKey" not in response:
                    break
                query_kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]
        except ClientError as e:
            raise DeckServiceError(f"Failed to list decks: {e}")

        decks.sort(key=lambda d: d.created_at, reverse=True)
        return decks

    def update_deck(
        self,
        user_id: str,
        deck_id: str,
        title: Optional[str] = None,
        description: Optional[str] = None,
        subject_id: Optional[str] = None,
    ) -> Deck:
        """Update a deck.

        None leaves a field unchanged; an empty description or subject_id
        removes it.

        Raises:
            DeckNotFoundError: If the deck does not exist or was deleted.
        """
        deck = self.get_deck(user_id, deck_id)

        set_parts = []
        remove_parts = []
        expression_values = {}
        expression_names = {}

        if title is not None:
            set_parts.append("#title = :title")
            expression_names["#title"] = "title"
            expression_values[":title"] = title
            deck.title = title

        for name, value in (("description", description), ("subject_id", subject_id)):
            if value is None:
                continue
            if value:
                set_parts.append(f"#{name} = :{name}")
                expression_names[f"#{name}"] = name
                expression_values[f":{name}"] = value
                setattr(deck, name, value)
            else:
                remove_parts.append(f"#{name}")
                expression_names[f"#{name}"] = name
                setattr(deck, name, None)

        if not set_parts and not remove_parts:
            return deck

        now = datetime.now(timezone.utc)
        set_parts.append("updated_at = :updated_at")
        expression_values[":updated_at"] = now.isoformat()
        deck.updated_at = now

        update_expression = "SET " + ", ".join(set_parts)
        if remove_parts:
            update_expression += " REMOVE " + ", ".join(remove_parts)

        try:
            self.table.update_item(
                Key={"user_id": user_id, "deck_id": deck_id},
                UpdateExpression=update_expression,
                ExpressionAttributeNames=expression_names,
                ExpressionAttributeValues=expression_values,
            )
        except ClientError as e:
            raise DeckServiceError(f"Failed to update deck: {e}")
        return deck

    def delete_deck(self, user_id: str, deck_id: str) -> None:
        """Soft-delete a deck. Its flashcards are left as they are.

        Raises:
            DeckNotFoundError: If the deck does not exist or was already deleted.
        """
        self.get_deck(user_id, deck_id)
        now = datetime.now(timezone.utc)

        try:
            self.table.update_item(
                Key={"user_id": user_id, "deck_id": deck_id},
                UpdateExpression="SET #deleted = :deleted, updated_at = :updated_at",
                ExpressionAttributeNames={"#deleted": "deleted"},
                ConditionExpression="attribute_exists(deck_id)",
                ExpressionAttributeValues={
                    ":deleted": True,
                    ":updated_at": now.isoformat(),
                },
            )
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                raise DeckNotFoundError(f"Deck not found: {deck_id}")
            raise DeckServiceError(f"Failed to delete deck: {e}")

        logger.info(f"Deleted deck {deck_id}")
