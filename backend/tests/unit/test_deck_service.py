"""Unit tests for deck service."""

import pytest

from studiefy.models.deck import CreateDeckRequest, UpdateDeckRequest
from studiefy.services.deck_service import DeckNotFoundError, DeckService


@pytest.fixture
def deck_service(dynamodb_tables):
    """Create DeckService with mock DynamoDB."""
    return DeckService(table_name="studiefy-decks-test", dynamodb_resource=dynamodb_tables)


class TestDeckRequests:
    """Tests for deck request validation."""

    def test_title_is_trimmed(self):
        assert CreateDeckRequest(title="  Biology  ").title == "Biology"

    def test_blank_title_rejected(self):
        with pytest.raises(ValueError):
            CreateDeckRequest(title="   ")

    def test_update_allows_missing_title(self):
        assert UpdateDeckRequest(description="x").title is None

    def test_update_rejects_blank_title(self):
        with pytest.raises(ValueError):
            UpdateDeckRequest(title=" ")


class TestDeckService:
    """Tests for deck CRUD."""

    def test_create_and_get(self, deck_service):
        deck = deck_service.create_deck(
            "test-user-id", "Cell biology", description="Chapter 3", subject_id="bio"
        )

        stored = deck_service.get_deck("test-user-id", deck.deck_id)

        assert stored.title == "Cell biology"
        assert stored.description == "Chapter 3"
        assert stored.subject_id == "bio"
        assert stored.deleted is False

    def test_get_missing_deck(self, deck_service):
        with pytest.raises(DeckNotFoundError):
            deck_service.get_deck("test-user-id", "missing")

    def test_get_other_users_deck(self, deck_service):
        deck = deck_service.create_deck("owner", "Private")

        with pytest.raises(DeckNotFoundError):
            deck_service.get_deck("intruder", deck.deck_id)

    def test_list_decks(self, deck_service):
        deck_service.create_deck("test-user-id", "Math", subject_id="math")
        deck_service.create_deck("test-user-id", "Physics", subject_id="physics")
        deck_service.create_deck("other-user", "Other")

        all_decks = deck_service.list_decks("test-user-id")
        math_decks = deck_service.list_decks("test-user-id", subject_id="math")

        assert {d.title for d in all_decks} == {"Math", "Physics"}
        assert [d.title for d in math_decks] == ["Math"]

    def test_update_deck(self, deck_service):
        deck = deck_service.create_deck("test-user-id", "Draft", description="old")

        updated = deck_service.update_deck("test-user-id", deck.deck_id, title="Final", subject_id="bio")

        assert updated.title == "Final"
        assert updated.updated_at is not None
        stored = deck_service.get_deck("test-user-id", deck.deck_id)
        assert stored.title == "Final"
        assert stored.description == "old"
        assert stored.subject_id == "bio"

    def test_empty_description_clears_it(self, deck_service):
        deck = deck_service.create_deck("test-user-id", "Deck", description="old")

        deck_service.update_deck("test-user-id", deck.deck_id, description="")

        assert deck_service.get_deck("test-user-id", deck.deck_id).description is None

    def test_update_without_changes_is_noop(self, deck_service):
        deck = deck_service.create_deck("test-user-id", "Deck")

        assert deck_service.update_deck("test-user-id", deck.deck_id).updated_at is None

    def test_delete_deck(self, deck_service):
        deck = deck_service.create_deck("test-user-id", "Deck")

        deck_service.delete_deck("test-user-id", deck.deck_id)

        with pytest.raises(DeckNotFoundError):
            deck_service.get_deck("test-user-id", deck.deck_id)
        assert deck_service.list_decks("test-user-id") == []
        with pytest.raises(DeckNotFoundError):
            deck_service.delete_deck("test-user-id", deck.deck_id)
