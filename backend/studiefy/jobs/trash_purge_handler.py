"""Lambda handler for the scheduled purge of expired trash."""

import json
from datetime import datetime, timezone
from typing import Any, Dict

from aws_lambda_powertools import Logger, Tracer
from aws_lambda_powertools.utilities.typing import LambdaContext

from ..services.flashcard_service import FlashcardService

logger = Logger()
tracer = Tracer()

# Initialize service
flashcard_service = FlashcardService()


@logger.inject_lambda_context
@tracer.capture_lambda_handler
def handler(event: Dict[str, Any], context: LambdaContext) -> Dict[str, Any]:
    """Lambda handler for the daily trash purge.

    Triggered by EventBridge Scheduler once a day. Flashcards that have been
    in the trash longer than the retention window are deleted together with
    their scheduling state.

    Args:
        event: EventBridge event (typically empty for scheduled events).
        context: Lambda context.

    Returns:
        Response with processing statistics.
    """
    logger.info("Starting trash purge job")

    current_time = datetime.now(timezone.utc)
    logger.info(f"Processing for time: {current_time.isoformat()}")

    purged = flashcard_service.purge_expired_trash(current_time)

    response_body = {
        "purged_flashcards": purged,
        "retention_days": flashcard_service.trash_retention_days,
    }
    logger.info(f"Trash purge job complete: {json.dumps(response_body)}")

    return {
        "statusCode": 200,
        "body": json.dumps(response_body),
    }
