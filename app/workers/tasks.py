import logging
from typing import Any, Dict, Optional

from app.core.database import SessionLocal, load_models
from app.workers.celery_app import celery_app
from app.services.orchestrator import run_generation
from app.services.settlement import mark_event_failed, settle_event


logger = logging.getLogger(__name__)

load_models()

SETTLEMENT_MAX_RETRIES = 2  # 3 attempts in total


@celery_app.task(name="process_generation")
def process_generation_task(generation_id: str) -> Optional[str]:
    """
    Run one submitted generation to its terminal state.

    Not retried: every failure is written to the generation record instead.
    """
    db = SessionLocal()
    try:
        return run_generation(db, generation_id)
    finally:
        db.close()


@celery_app.task(bind=True, name="settle_webhook_event", max_retries=SETTLEMENT_MAX_RETRIES)
def settle_webhook_event_task(self, event_id: str, event_type: str, payload: Dict[str, Any]) -> dict:
    """
    Apply a verified payment webhook.

    Failures are retried with exponential backoff (1s, 2s, ...). Once retries
    are exhausted the event row is marked failed and the task fails.
    """
    db = SessionLocal()
    try:
        outcome = settle_event(db, event_id, event_type, payload)
        return {
            "status": outcome.status,
            "user_id": outcome.user_id,
            "credits_added": outcome.credits_added,
            "reason": outcome.reason,
        }
    except Exception as exc:
        db.rollback()
        retries = self.request.retries
        if retries >= self.max_retries:
            logger.exception("Webhook event %s failed after %s attempts", event_id, retries + 1)
            mark_event_failed(db, event_id, str(exc) or exc.__class__.__name__)
            raise
        logger.warning("Webhook event %s failed (attempt %s), retrying: %s", event_id, retries + 1, exc)
        raise self.retry(exc=exc, countdown=2 ** retries)
    finally:
        db.close()
