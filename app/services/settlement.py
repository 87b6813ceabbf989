"""
Payment webhook settlement.

The webhook endpoint records each verified delivery in webhook_events and
enqueues it; the worker calls settle_event. Adding credits and marking the
event processed commit together, so a redelivered or retried event can never
credit twice.
"""
import logging
from datetime import datetime
from typing import Any, Dict, NamedTuple, Optional

from sqlalchemy.orm import Session

from app.models.user import User
from app.models.webhook_event import (
    EVENT_FAILED,
    EVENT_PROCESSED,
    EVENT_RECEIVED,
    EVENT_SKIPPED,
    WebhookEvent,
)
from app.services.credits import add_credits
from app.services.packages import get_package_by_product_id


logger = logging.getLogger(__name__)

ORDER_CREATED = "order.created"


class SettlementOutcome(NamedTuple):
    status: str
    user_id: Optional[int] = None
    credits_added: int = 0
    reason: Optional[str] = None


def record_webhook_event(db: Session, event_id: str, event_type: str, payload: Dict[str, Any]) -> bool:
    """
    Store a verified delivery. Returns True when it should be enqueued:
    new events, and redeliveries of events that never settled.
    """
    event = db.get(WebhookEvent, event_id)
    if event is None:
        db.add(WebhookEvent(id=event_id, event_type=event_type, payload=payload, status=EVENT_RECEIVED))
        db.commit()
        return True
    if event.status == EVENT_FAILED:
        event.status = EVENT_RECEIVED
        event.error = None
        db.add(event)
        db.commit()
        return True
    # queued, processed or skipped: acknowledge, nothing to do
    return False


def _section(order: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = order.get(key)
    return value if isinstance(value, dict) else {}


def _resolve_user(db: Session, order: Dict[str, Any]) -> Optional[User]:
    metadata = _section(order, "metadata")
    customer = _section(order, "customer")

    raw_id = metadata.get("userId") or metadata.get("user_id") or customer.get("external_id")
    if raw_id is not None:
        try:
            user = db.get(User, int(raw_id))
        except (TypeError, ValueError):
            user = None
        if user:
            return user

    email = customer.get("email") or order.get("customer_email")
    if isinstance(email, str) and email:
        return db.query(User).filter(User.email == email.lower()).first()
    return None


def handle_order_created(db: Session, order: Any) -> SettlementOutcome:
    """Credit the buyer of an order. Changes are flushed, not committed."""
    if not isinstance(order, dict):
        return SettlementOutcome(EVENT_SKIPPED, reason="Malformed order payload")

    product_id = order.get("productId") or order.get("product_id")
    if not isinstance(product_id, str) or not product_id:
        return SettlementOutcome(EVENT_SKIPPED, reason="Order has no product id")

    user = _resolve_user(db, order)
    if not user:
        return SettlementOutcome(EVENT_SKIPPED, reason="User not found for order")

    package = get_package_by_product_id(db, product_id)
    if not package:
        return SettlementOutcome(EVENT_SKIPPED, user_id=user.id, reason=f"Unknown product {product_id}")

    result = add_credits(db, user.id, package.credits, commit=False)
    logger.info(
        "Adding %s credits to user %s for product %s (balance=%s)",
        package.credits,
        user.id,
        product_id,
        result.balance,
    )
    return SettlementOutcome(EVENT_PROCESSED, user_id=user.id, credits_added=package.credits)


def settle_event(db: Session, event_id: str, event_type: str, payload: Dict[str, Any]) -> SettlementOutcome:
    """
    Apply one webhook event. Exceptions propagate so the queue can retry;
    bad data (malformed payload, unknown user or product) is recorded as
    skipped instead.
    """
    event = db.query(WebhookEvent).filter(WebhookEvent.id == event_id).with_for_update().first()
    if event is None:
        event = WebhookEvent(id=event_id, event_type=event_type, payload=payload, status=EVENT_RECEIVED)
        db.add(event)
        db.flush()
    elif event.status in (EVENT_PROCESSED, EVENT_SKIPPED):
        db.rollback()
        logger.info("Webhook event %s already %s", event_id, event.status)
        return SettlementOutcome(event.status, reason="Already handled")

    event.attempts = (event.attempts or 0) + 1

    if event_type == ORDER_CREATED:
        outcome = handle_order_created(db, payload or {})
    else:
        outcome = SettlementOutcome(EVENT_SKIPPED, reason="Unhandled event type")

    if outcome.status == EVENT_SKIPPED:
        logger.warning("Webhook event %s (%s) skipped: %s", event_id, event_type, outcome.reason)

    event.status = outcome.status
    event.error = outcome.reason if outcome.status == EVENT_SKIPPED else None
    event.processed_at = datetime.utcnow()
    db.add(event)
    db.commit()
    return outcome


def mark_event_failed(db: Session, event_id: str, error: str) -> None:
    """Keep a permanently failed event for manual inspection."""
    db.rollback()
    event = db.get(WebhookEvent, event_id)
    if event is None:
        return
    event.status = EVENT_FAILED
    event.error = error
    db.add(event)
    db.commit()
    logger.error("Webhook event %s failed permanently: %s", event_id, error)
