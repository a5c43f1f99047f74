"""Unit tests for flashcard and trash endpoints."""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from aws_lambda_powertools.utilities.data_classes import APIGatewayProxyEventV2

from studiefy.models.flashcard import Flashcard
from studiefy.services.deck_service import DeckNotFoundError
from studiefy.services.flashcard_service import FlashcardNotFoundError, FlashcardNotInTrashError

NOW = datetime(2024, 6, 20, tzinfo=timezone.utc)


def make_flashcard(**overrides) -> Flashcard:
    fields = {
        "flashcard_id": "card-1",
        "user_id": "test-user-id",
        "deck_id": "deck-1",
        "front": "Capital of Brazil?",
        "back": "Brasília",
        "created_at": NOW,
    }
    fields.update(overrides)
    return Flashcard(**fields)


class TestFlashcardEndpoints:
    """Tests for /flashcards."""

    def test_create_flashcard(self, api_gateway_event, lambda_context):
        event = api_gateway_event(
            method="POST",
            path="/flashcards",
            body={"deck_id": "deck-1", "front": "Capital of Brazil?", "back": "Brasília"},
        )

        with patch("studiefy.api.handler.flashcard_service") as mock_flashcard_service, patch(
            "studiefy.api.handler.deck_service"
        ) as mock_deck_service:
            mock_flashcard_service.create_flashcard.return_value = make_flashcard()

            from studiefy.api.handler import handler

            response = handler(event, lambda_context)

        assert response["statusCode"] == 201
        body = json.loads(response["body"])
        assert body["flashcard_id"] == "card-1"
        assert body["front"] == "Capital of Brazil?"
        mock_flashcard_service.create_flashcard.assert_called_once_with(
            user_id="test-user-id",
            deck_id="deck-1",
            front="Capital of Brazil?",
            back="Brasília",
        )
        mock_deck_service.get_deck.assert_called_once_with("test-user-id", "deck-1")

    def test_create_flashcard_blank_front(self, api_gateway_event, lambda_context):
        event = api_gateway_event(
            method="POST",
            path="/flashcards",
            body={"deck_id": "deck-1", "front": "   ", "back": "A"},
        )

        with patch("studiefy.api.handler.flashcard_service") as mock_flashcard_service:
            from studiefy.api.handler import handler

            response = handler(event, lambda_context)

        assert response["statusCode"] == 400
        mock_flashcard_service.create_flashcard.assert_not_called()

    def test_list_flashcards(self, api_gateway_event, lambda_context):
        event = api_gateway_event(
            method="GET",
            path="/flashcards",
            query_string_parameters={"deck_id": "deck-1", "limit": "10"},
        )

        with patch("studiefy.api.handler.flashcard_service") as mock_flashcard_service:
            mock_flashcard_service.list_flashcards.return_value = ([make_flashcard()], "next-page")

            from studiefy.api.handler import handler

            response = handler(event, lambda_context)

        assert response["statusCode"] == 200
        body = json.loads(response["body"])
        assert body["total"] == 1
        assert body["next_cursor"] == "next-page"
        mock_flashcard_service.list_flashcards.assert_called_once_with(
            user_id="test-user-id", deck_id="deck-1", limit=10, cursor=None
        )

    def test_get_missing_flashcard(self, api_gateway_event, lambda_context):
        event = api_gateway_event(
            method="GET",
            path="/flashcards/missing",
            path_parameters={"flashcard_id": "missing"},
        )

        with patch("studiefy.api.handler.flashcard_service") as mock_flashcard_service:
            mock_flashcard_service.get_flashcard.side_effect = FlashcardNotFoundError("missing")

            from studiefy.api.handler import handler

            response = handler(event, lambda_context)

        assert response["statusCode"] == 404

    def test_update_flashcard(self, api_gateway_event, lambda_context):
        event = api_gateway_event(
            method="PUT",
            path="/flashcards/card-1",
            body={"back": "Brasília (since 1960)"},
            path_parameters={"flashcard_id": "card-1"},
        )

        with patch("studiefy.api.handler.flashcard_service") as mock_flashcard_service:
            mock_flashcard_service.update_flashcard.return_value = make_flashcard(
                back="Brasília (since 1960)", updated_at=NOW
            )

            from studiefy.api.handler import handler

            response = handler(event, lambda_context)

        assert response["statusCode"] == 200
        assert json.loads(response["body"])["back"] == "Brasília (since 1960)"
        mock_flashcard_service.update_flashcard.assert_called_once_with(
            user_id="test-user-id",
            flashcard_id="card-1",
            front=None,
            back="Brasília (since 1960)",
            deck_id=None,
        )

    def test_create_flashcard_unknown_deck(self, api_gateway_event, lambda_context):
        event = api_gateway_event(
            method="POST",
            path="/flashcards",
            body={"deck_id": "gone", "front": "Q", "back": "A"},
        )

        with patch("studiefy.api.handler.flashcard_service") as mock_flashcard_service, patch(
            "studiefy.api.handler.deck_service"
        ) as mock_deck_service:
            mock_deck_service.get_deck.side_effect = DeckNotFoundError("gone")

            from studiefy.api.handler import handler

            response = handler(event, lambda_context)

        assert response["statusCode"] == 404
        mock_flashcard_service.create_flashcard.assert_not_called()

    @pytest.mark.parametrize("field", ["front", "back"])
    def test_update_flashcard_blank_side(self, api_gateway_event, lambda_context, field):
        event = api_gateway_event(
            method="PUT",
            path="/flashcards/card-1",
            body={field: "  \t "},
            path_parameters={"flashcard_id": "card-1"},
        )

        with patch("studiefy.api.handler.flashcard_service") as mock_flashcard_service:
            from studiefy.api.handler import handler

            response = handler(event, lambda_context)

        assert response["statusCode"] == 400
        assert json.loads(response["body"])["error"] == "Invalid request"
        mock_flashcard_service.update_flashcard.assert_not_called()

    def test_update_flashcard_to_unknown_deck(self, api_gateway_event, lambda_context):
        event = api_gateway_event(
            method="PUT",
            path="/flashcards/card-1",
            body={"deck_id": "gone"},
            path_parameters={"flashcard_id": "card-1"},
        )

        with patch("studiefy.api.handler.flashcard_service") as mock_flashcard_service, patch(
            "studiefy.api.handler.deck_service"
        ) as mock_deck_service:
            mock_deck_service.get_deck.side_effect = DeckNotFoundError("gone")

            from studiefy.api.handler import handler

            response = handler(event, lambda_context)

        assert response["statusCode"] == 404
        mock_flashcard_service.update_flashcard.assert_not_called()

    def test_delete_moves_to_trash(self, api_gateway_event, lambda_context):
        event = api_gateway_event(
            method="DELETE",
            path="/flashcards/card-1",
            path_parameters={"flashcard_id": "card-1"},
        )

        with patch("studiefy.api.handler.flashcard_service") as mock_flashcard_service:
            from studiefy.api.handler import handler

            response = handler(event, lambda_context)

        assert response["statusCode"] == 204
        mock_flashcard_service.move_to_trash.assert_called_once_with("test-user-id", "card-1")


class TestTrashEndpoints:
    """Tests for /trash."""

    def test_list_trash(self, api_gateway_event, lambda_context):
        event = api_gateway_event(method="GET", path="/trash")
        trashed = make_flashcard(deleted=True, deleted_at=NOW - timedelta(days=3))

        with patch("studiefy.api.handler.flashcard_service") as mock_flashcard_service:
            mock_flashcard_service.list_trash.return_value = [trashed.to_trash_item(15, NOW)]

            from studiefy.api.handler import handler

            response = handler(event, lambda_context)

        assert response["statusCode"] == 200
        body = json.loads(response["body"])
        assert body["total"] == 1
        assert body["items"][0]["days_left"] == 12
        assert body["items"][0]["front"] == "Capital of Brazil?"

    def test_restore(self, api_gateway_event, lambda_context):
        event = api_gateway_event(
            method="POST",
            path="/trash/card-1/restore",
            path_parameters={"flashcard_id": "card-1"},
        )

        with patch("studiefy.api.handler.flashcard_service") as mock_flashcard_service:
            mock_flashcard_service.restore_flashcard.return_value = make_flashcard()

            from studiefy.api.handler import handler

            response = handler(event, lambda_context)

        assert response["statusCode"] == 200
        assert json.loads(response["body"])["flashcard_id"] == "card-1"

    def test_restore_live_flashcard_returns_409(self, api_gateway_event, lambda_context):
        event = api_gateway_event(
            method="POST",
            path="/trash/card-1/restore",
            path_parameters={"flashcard_id": "card-1"},
        )

        with patch("studiefy.api.handler.flashcard_service") as mock_flashcard_service:
            mock_flashcard_service.restore_flashcard.side_effect = FlashcardNotInTrashError("card-1")

            from studiefy.api.handler import handler

            response = handler(event, lambda_context)

        assert response["statusCode"] == 409

    def test_delete_permanently(self, api_gateway_event, lambda_context):
        event = api_gateway_event(
            method="DELETE",
            path="/trash/card-1",
            path_parameters={"flashcard_id": "card-1"},
        )

        with patch("studiefy.api.handler.flashcard_service") as mock_flashcard_service:
            from studiefy.api.handler import handler

            response = handler(event, lambda_context)

        assert response["statusCode"] == 204
        mock_flashcard_service.delete_permanently.assert_called_once_with("test-user-id", "card-1")

    def test_delete_permanently_missing_returns_404(self, api_gateway_event, lambda_context):
        event = api_gateway_event(
            method="DELETE",
            path="/trash/missing",
            path_parameters={"flashcard_id": "missing"},
        )

        with patch("studiefy.api.handler.flashcard_service") as mock_flashcard_service:
            mock_flashcard_service.delete_permanently.side_effect = FlashcardNotFoundError("missing")

            from studiefy.api.handler import handler

            response = handler(event, lambda_context)

        assert response["statusCode"] == 404

    def test_empty_trash(self, api_gateway_event, lambda_context):
        event = api_gateway_event(method="DELETE", path="/trash")

        with patch("studiefy.api.handler.flashcard_service") as mock_flashcard_service:
            mock_flashcard_service.empty_trash.return_value = 3

            from studiefy.api.handler import handler

            response = handler(event, lambda_context)

        assert response["statusCode"] == 200
        assert json.loads(response["body"]) == {"deleted": 3}


class TestEventRouting:
    """Tests for the API Gateway event shape used across handler tests."""

    @pytest.mark.parametrize("path", ["/trash", "/flashcards/abc", "/decks/deck-1/stats"])
    def test_default_stage_keeps_path(self, api_gateway_event, path):
        event = APIGatewayProxyEventV2(api_gateway_event(method="GET", path=path))

        assert event.path == path
