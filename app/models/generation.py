import uuid
from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from app.core.database import Base


GENERATION_PROCESSING = "processing"
GENERATION_COMPLETED = "completed"
GENERATION_FAILED = "failed"
TERMINAL_STATUSES = (GENERATION_COMPLETED, GENERATION_FAILED)


def _uuid() -> str:
    return str(uuid.uuid4())


class Generation(Base):
    __tablename__ = "generations"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    chat_id = Column(String(36), ForeignKey("chats.id", ondelete="SET NULL"), nullable=True, index=True)
    prompt = Column(Text, nullable=False)
    style_image_url = Column(Text, nullable=False)
    model = Column(String(128), nullable=False)
    output_style = Column(String(64), nullable=True)
    status = Column(String(32), nullable=False, default=GENERATION_PROCESSING)
    generated_image_url = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    meta = Column("metadata", JSON, nullable=True)
    credits_used = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    chat = relationship("Chat", back_populates="generations")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
