"""Main API handler for the Studiefy backend."""

import json

from aws_lambda_powertools import Logger, Tracer
from aws_lambda_powertools.event_handler import APIGatewayHttpResolver, Response, content_types
from aws_lambda_powertools.event_handler.exceptions import NotFoundError, UnauthorizedError
from aws_lambda_powertools.logging import correlation_paths
from aws_lambda_powertools.utilities.typing import LambdaContext
from pydantic import ValidationError

from ..models.deck import CreateDeckRequest, DeckListResponse, UpdateDeckRequest
from ..models.flashcard import (
    CreateFlashcardRequest,
    FlashcardListResponse,
    TrashListResponse,
    UpdateFlashcardRequest,
)
from ..models.review import ReviewRequest
from ..services.deck_service import DeckNotFoundError, DeckService
from ..services.flashcard_service import (
    FlashcardService,
    FlashcardNotFoundError,
    FlashcardNotInTrashError,
)
from ..services.flashcard_state_service import FlashcardStateService
from ..services.fsrs import InvalidRatingError, InvalidStateError
from ..services.review_service import ReviewService

logger = Logger()
tracer = Tracer()
app = APIGatewayHttpResolver()

# Initialize services
deck_service = DeckService()
flashcard_service = FlashcardService()
state_service = FlashcardStateService()
review_service = ReviewService(flashcard_service=flashcard_service, state_service=state_service)


def get_user_id_from_context() -> str:
    """Extract user_id from JWT claims in request context.

    Returns:
        User ID from JWT claims.

    Raises:
        UnauthorizedError: If user_id cannot be extracted.
    """
    try:
        claims = app.current_event.request_context.authorizer
        # HTTP API JWT authorizer
        if claims and "jwt" in claims:
            return claims["jwt"]["claims"]["sub"]
        if claims and "sub" in claims:
            return claims["sub"]
        raise UnauthorizedError("Unable to extract user ID from token")
    except (KeyError, TypeError, AttributeError) as e:
        logger.error(f"Failed to extract user_id: {e}")
        raise UnauthorizedError("Unable to extract user ID from token")


def _error_response(status_code: int, body: dict) -> Response:
    return Response(
        status_code=status_code,
        content_type=content_types.APPLICATION_JSON,
        body=json.dumps(body),
    )


def _parse_body(model):
    """Parse the JSON body into `model`; returns (request, None) or (None, error Response)."""
    try:
        body = app.current_event.json_body or {}
        return model(**body), None
    except ValidationError as e:
        logger.warning(f"Validation error: {e}")
        return None, _error_response(
            400,
            {"error": "Invalid request", "details": json.loads(e.json(include_url=False))},
        )
    except (json.JSONDecodeError, TypeError):
        return None, _error_response(400, {"error": "Invalid JSON body"})


def _int_param(params: dict, name: str, default: int, maximum: int) -> int:
    try:
        value = int(params.get(name, default))
    except (TypeError, ValueError):
        value = default
    return max(1, min(value, maximum))


def _corrupt_state_response(flashcard_id: str, error: InvalidStateError) -> Response:
    logger.error(f"Corrupt scheduling state for flashcard {flashcard_id}: {error}")
    return _error_response(500, {"error": "Stored scheduling state is invalid"})


# =============================================================================
# Deck Endpoints
# =============================================================================


@app.get("/decks")
@tracer.capture_method
def list_decks():
    """List decks for the current user."""
    user_id = get_user_id_from_context()
    logger.info(f"Listing decks for user_id: {user_id}")

    params = app.current_event.query_string_parameters or {}

    try:
        decks = deck_service.list_decks(user_id, subject_id=params.get("subject_id"))
        return DeckListResponse(
            decks=[d.to_response() for d in decks],
            total=len(decks),
        ).model_dump(mode="json")
    except Exception as e:
        logger.error(f"Error listing decks: {e}")
        raise


@app.post("/decks")
@tracer.capture_method
def create_deck():
    """Create a new deck."""
    user_id = get_user_id_from_context()
    logger.info(f"Creating deck for user_id: {user_id}")

    request, error = _parse_body(CreateDeckRequest)
    if error:
        return error

    try:
        deck = deck_service.create_deck(
            user_id=user_id,
            title=request.title,
            description=request.description,
            subject_id=request.subject_id,
        )
        return Response(
            status_code=201,
            content_type=content_types.APPLICATION_JSON,
            body=json.dumps(deck.to_response().model_dump(mode="json")),
        )
    except Exception as e:
        logger.error(f"Error creating deck: {e}")
        raise


@app.get("/decks/<deck_id>")
@tracer.capture_method
def get_deck(deck_id: str):
    """Get a specific deck."""
    user_id = get_user_id_from_context()
    logger.info(f"Getting deck {deck_id} for user_id: {user_id}")

    try:
        return deck_service.get_deck(user_id, deck_id).to_response().model_dump(mode="json")
    except DeckNotFoundError:
        raise NotFoundError(f"Deck not found: {deck_id}")
    except Exception as e:
        logger.error(f"Error getting deck: {e}")
        raise


@app.put("/decks/<deck_id>")
@tracer.capture_method
def update_deck(deck_id: str):
    """Update a deck."""
    user_id = get_user_id_from_context()
    logger.info(f"Updating deck {deck_id} for user_id: {user_id}")

    request, error = _parse_body(UpdateDeckRequest)
    if error:
        return error

    try:
        deck = deck_service.update_deck(
            user_id=user_id,
            deck_id=deck_id,
            title=request.title,
            description=request.description,
            subject_id=request.subject_id,
        )
        return deck.to_response().model_dump(mode="json")
    except DeckNotFoundError:
        raise NotFoundError(f"Deck not found: {deck_id}")
    except Exception as e:
        logger.error(f"Error updating deck: {e}")
        raise


@app.delete("/decks/<deck_id>")
@tracer.capture_method
def delete_deck(deck_id: str):
    """Delete a deck."""
    user_id = get_user_id_from_context()
    logger.info(f"Deleting deck {deck_id} for user_id: {user_id}")

    try:
        deck_service.delete_deck(user_id, deck_id)
        return Response(
            status_code=204,
            content_type=content_types.APPLICATION_JSON,
            body="",
        )
    except DeckNotFoundError:
        raise NotFoundError(f"Deck not found: {deck_id}")
    except Exception as e:
        logger.error(f"Error deleting deck: {e}")
        raise


# =============================================================================
# Flashcard Endpoints
# =============================================================================


@app.get("/flashcards")
@tracer.capture_method
def list_flashcards():
    """List live flashcards for the current user."""
    user_id = get_user_id_from_context()
    logger.info(f"Listing flashcards for user_id: {user_id}")

    params = app.current_event.query_string_parameters or {}
    limit = _int_param(params, "limit", 50, 100)

    try:
        flashcards, next_cursor = flashcard_service.list_flashcards(
            user_id=user_id,
            deck_id=params.get("deck_id"),
            limit=limit,
            cursor=params.get("cursor"),
        )
        return FlashcardListResponse(
            flashcards=[f.to_response() for f in flashcards],
            total=len(flashcards),
            next_cursor=next_cursor,
        ).model_dump(mode="json")
    except Exception as e:
        logger.error(f"Error listing flashcards: {e}")
        raise


@app.post("/flashcards")
@tracer.capture_method
def create_flashcard():
    """Create a new flashcard."""
    user_id = get_user_id_from_context()
    logger.info(f"Creating flashcard for user_id: {user_id}")

    request, error = _parse_body(CreateFlashcardRequest)
    if error:
        return error

    try:
        deck_service.get_deck(user_id, request.deck_id)
        flashcard = flashcard_service.create_flashcard(
            user_id=user_id,
            deck_id=request.deck_id,
            front=request.front,
            back=request.back,
        )
        return Response(
            status_code=201,
            content_type=content_types.APPLICATION_JSON,
            body=json.dumps(flashcard.to_response().model_dump(mode="json")),
        )
    except DeckNotFoundError:
        raise NotFoundError(f"Deck not found: {request.deck_id}")
    except Exception as e:
        logger.error(f"Error creating flashcard: {e}")
        raise


@app.get("/flashcards/<flashcard_id>")
@tracer.capture_method
def get_flashcard(flashcard_id: str):
    """Get a specific flashcard."""
    user_id = get_user_id_from_context()
    logger.info(f"Getting flashcard {flashcard_id} for user_id: {user_id}")

    try:
        flashcard = flashcard_service.get_flashcard(user_id, flashcard_id)
        return flashcard.to_response().model_dump(mode="json")
    except FlashcardNotFoundError:
        raise NotFoundError(f"Flashcard not found: {flashcard_id}")
    except Exception as e:
        logger.error(f"Error getting flashcard: {e}")
        raise


@app.put("/flashcards/<flashcard_id>")
@tracer.capture_method
def update_flashcard(flashcard_id: str):
    """Update a flashcard."""
    user_id = get_user_id_from_context()
    logger.info(f"Updating flashcard {flashcard_id} for user_id: {user_id}")

    request, error = _parse_body(UpdateFlashcardRequest)
    if error:
        return error

    try:
        if request.deck_id is not None:
            deck_service.get_deck(user_id, request.deck_id)
        flashcard = flashcard_service.update_flashcard(
            user_id=user_id,
            flashcard_id=flashcard_id,
            front=request.front,
            back=request.back,
            deck_id=request.deck_id,
        )
        return flashcard.to_response().model_dump(mode="json")
    except FlashcardNotFoundError:
        raise NotFoundError(f"Flashcard not found: {flashcard_id}")
    except DeckNotFoundError:
        raise NotFoundError(f"Deck not found: {request.deck_id}")
    except Exception as e:
        logger.error(f"Error updating flashcard: {e}")
        raise


@app.delete("/flashcards/<flashcard_id>")
@tracer.capture_method
def delete_flashcard(flashcard_id: str):
    """Move a flashcard to the trash."""
    user_id = get_user_id_from_context()
    logger.info(f"Trashing flashcard {flashcard_id} for user_id: {user_id}")

    try:
        flashcard_service.move_to_trash(user_id, flashcard_id)
        return Response(
            status_code=204,
            content_type=content_types.APPLICATION_JSON,
            body="",
        )
    except FlashcardNotFoundError:
        raise NotFoundError(f"Flashcard not found: {flashcard_id}")
    except Exception as e:
        logger.error(f"Error trashing flashcard: {e}")
        raise


# =============================================================================
# Review Endpoints
# =============================================================================


@app.get("/flashcards/<flashcard_id>/state")
@tracer.capture_method
def get_flashcard_state(flashcard_id: str):
    """Get the scheduling state of a flashcard."""
    user_id = get_user_id_from_context()
    logger.info(f"Getting state of flashcard {flashcard_id} for user_id: {user_id}")

    try:
        return review_service.get_card_state(user_id, flashcard_id).model_dump(mode="json")
    except FlashcardNotFoundError:
        raise NotFoundError(f"Flashcard not found: {flashcard_id}")
    except InvalidStateError as e:
        return _corrupt_state_response(flashcard_id, e)
    except Exception as e:
        logger.error(f"Error getting flashcard state: {e}")
        raise


@app.post("/flashcards/<flashcard_id>/reviews")
@tracer.capture_method
def submit_review(flashcard_id: str):
    """Submit a review for a flashcard."""
    user_id = get_user_id_from_context()
    logger.info(f"Submitting review for flashcard {flashcard_id} by user_id: {user_id}")

    request, error = _parse_body(ReviewRequest)
    if error:
        return error

    try:
        response = review_service.record_review(
            user_id=user_id,
            flashcard_id=flashcard_id,
            rating=request.rating,
        )
        return response.model_dump(mode="json")
    except FlashcardNotFoundError:
        raise NotFoundError(f"Flashcard not found: {flashcard_id}")
    except InvalidRatingError as e:
        return _error_response(400, {"error": str(e)})
    except InvalidStateError as e:
        return _corrupt_state_response(flashcard_id, e)
    except Exception as e:
        logger.error(f"Error submitting review: {e}")
        raise


@app.get("/decks/<deck_id>/due")
@tracer.capture_method
def get_due_flashcards(deck_id: str):
    """Get the flashcards of a deck due for review."""
    user_id = get_user_id_from_context()
    logger.info(f"Getting due flashcards of deck {deck_id} for user_id: {user_id}")

    params = app.current_event.query_string_parameters or {}
    limit = _int_param(params, "limit", 20, 100)

    try:
        response = review_service.get_due_flashcards(user_id=user_id, deck_id=deck_id, limit=limit)
        return response.model_dump(mode="json")
    except InvalidStateError as e:
        logger.error(f"Corrupt scheduling state in deck {deck_id}: {e}")
        return _error_response(500, {"error": "Stored scheduling state is invalid"})
    except Exception as e:
        logger.error(f"Error getting due flashcards: {e}")
        raise


@app.get("/decks/<deck_id>/stats")
@tracer.capture_method
def get_deck_stats(deck_id: str):
    """Get per-stage statistics of a deck."""
    user_id = get_user_id_from_context()
    logger.info(f"Getting stats of deck {deck_id} for user_id: {user_id}")

    try:
        return review_service.get_deck_stats(user_id=user_id, deck_id=deck_id).model_dump(mode="json")
    except InvalidStateError as e:
        logger.error(f"Corrupt scheduling state in deck {deck_id}: {e}")
        return _error_response(500, {"error": "Stored scheduling state is invalid"})
    except Exception as e:
        logger.error(f"Error getting deck stats: {e}")
        raise


@app.get("/reviews/activity")
@tracer.capture_method
def get_review_activity():
    """Get daily review counts for the activity heat map."""
    user_id = get_user_id_from_context()
    logger.info(f"Getting review activity for user_id: {user_id}")

    params = app.current_event.query_string_parameters or {}
    days = _int_param(params, "days", 365, 366)

    try:
        return review_service.get_review_activity(user_id=user_id, days=days).model_dump(mode="json")
    except Exception as e:
        logger.error(f"Error getting review activity: {e}")
        raise


# =============================================================================
# Trash Endpoints
# =============================================================================


@app.get("/trash")
@tracer.capture_method
def list_trash():
    """List trashed flashcards."""
    user_id = get_user_id_from_context()
    logger.info(f"Listing trash for user_id: {user_id}")

    try:
        items = flashcard_service.list_trash(user_id)
        return TrashListResponse(items=items, total=len(items)).model_dump(mode="json")
    except Exception as e:
        logger.error(f"Error listing trash: {e}")
        raise


@app.post("/trash/<flashcard_id>/restore")
@tracer.capture_method
def restore_flashcard(flashcard_id: str):
    """Restore a trashed flashcard."""
    user_id = get_user_id_from_context()
    logger.info(f"Restoring flashcard {flashcard_id} for user_id: {user_id}")

    try:
        flashcard = flashcard_service.restore_flashcard(user_id, flashcard_id)
        return flashcard.to_response().model_dump(mode="json")
    except FlashcardNotFoundError:
        raise NotFoundError(f"Flashcard not found: {flashcard_id}")
    except FlashcardNotInTrashError:
        return _error_response(409, {"error": "Flashcard is not in the trash"})
    except Exception as e:
        logger.error(f"Error restoring flashcard: {e}")
        raise


@app.delete("/trash/<flashcard_id>")
@tracer.capture_method
def delete_flashcard_permanently(flashcard_id: str):
    """Permanently delete a trashed flashcard."""
    user_id = get_user_id_from_context()
    logger.info(f"Permanently deleting flashcard {flashcard_id} for user_id: {user_id}")

    try:
        flashcard_service.delete_permanently(user_id, flashcard_id)
        return Response(
            status_code=204,
            content_type=content_types.APPLICATION_JSON,
            body="",
        )
    except FlashcardNotFoundError:
        raise NotFoundError(f"Flashcard not found: {flashcard_id}")
    except FlashcardNotInTrashError:
        return _error_response(409, {"error": "Flashcard is not in the trash"})
    except Exception as e:
        logger.error(f"Error deleting flashcard: {e}")
        raise


@app.delete("/trash")
@tracer.capture_method
def empty_trash():
    """Permanently delete everything in the trash."""
    user_id = get_user_id_from_context()
    logger.info(f"Emptying trash for user_id: {user_id}")

    try:
        deleted = flashcard_service.empty_trash(user_id)
        return {"deleted": deleted}
    except Exception as e:
        logger.error(f"Error emptying trash: {e}")
        raise


# =============================================================================
# Lambda Handler
# =============================================================================


@logger.inject_lambda_context(correlation_id_path=correlation_paths.API_GATEWAY_HTTP)
@tracer.capture_lambda_handler
def handler(event: dict, context: LambdaContext) -> dict:
    """Lambda handler for API Gateway events."""
    return app.resolve(event, context)
