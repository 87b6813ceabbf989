from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text

from app.core.database import Base


EVENT_RECEIVED = "received"
EVENT_PROCESSED = "processed"
EVENT_SKIPPED = "skipped"
EVENT_FAILED = "failed"


class WebhookEvent(Base):
    """One row per verified provider delivery, keyed by the provider's webhook id."""

    __tablename__ = "webhook_events"

    id = Column(String(128), primary_key=True)
    event_type = Column(String(64), nullable=False, index=True)
    payload = Column(JSON, nullable=True)
    status = Column(String(16), nullable=False, default=EVENT_RECEIVED, index=True)
    attempts = Column(Integer, nullable=False, default=0)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    processed_at = Column(DateTime, nullable=True)
