import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.database import get_db
from app.core.errors import ConfigurationError
from app.services.security import verify_webhook_signature
from app.services.settlement import mark_event_failed, record_webhook_event


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


def _enqueue_settlement(event_id: str, event_type: str, payload: dict) -> None:
    from app.workers.tasks import settle_webhook_event_task

    settle_webhook_event_task.delay(event_id, event_type, payload)


@router.post("/polar")
async def polar_webhook(request: Request, db: Session = Depends(get_db)):
    """
    Payment provider callback. The signature is checked before anything is stored;
    crediting happens in the settlement worker.
    """
    settings = get_settings()
    if not settings.POLAR_WEBHOOK_SECRET:
        logger.error("POLAR_WEBHOOK_SECRET is not configured")
        raise ConfigurationError("Webhook secret not configured", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    body = await request.body()
    event_id = verify_webhook_signature(
        body,
        request.headers,
        settings.POLAR_WEBHOOK_SECRET,
        tolerance_seconds=settings.WEBHOOK_TOLERANCE_SECONDS,
    )

    try:
        event = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body")
    if not isinstance(event, dict) or not event.get("type"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing event type")

    event_type = event["type"]
    payload = event.get("data") or {}
    logger.info("Received webhook %s (%s)", event_id, event_type)

    if record_webhook_event(db, event_id, event_type, payload):
        try:
            _enqueue_settlement(event_id, event_type, payload)
        except Exception as exc:
            # Failed rows are re-enqueued when the provider redelivers
            logger.exception("Failed to enqueue webhook %s", event_id)
            mark_event_failed(db, event_id, f"Failed to enqueue: {exc}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to queue webhook",
            )
    else:
        logger.info("Webhook %s already recorded, not enqueued again", event_id)

    return {"received": True}
