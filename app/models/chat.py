import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.core.models_catalog import DEFAULT_IMAGE_COUNT, DEFAULT_OUTPUT_STYLE, get_default_model


MESSAGE_PENDING = "pending"
MESSAGE_COMPLETED = "completed"
MESSAGE_FAILED = "failed"


def _uuid() -> str:
    return str(uuid.uuid4())


class Chat(Base):
    __tablename__ = "chats"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    draft = Column(Text, nullable=False, default="")
    is_generating = Column(Boolean, nullable=False, default=False)
    model_id = Column(String(128), nullable=False, default=lambda: get_default_model().id)
    model_type = Column(String(128), nullable=False, default=lambda: get_default_model().type)
    image_count = Column(Integer, nullable=False, default=DEFAULT_IMAGE_COUNT)
    output_style = Column(String(64), nullable=False, default=DEFAULT_OUTPUT_STYLE)
    style_image_url = Column(Text, nullable=True)
    style_image_name = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False, index=True)

    messages = relationship(
        "ChatMessage",
        back_populates="chat",
        cascade="all, delete-orphan",
        order_by="ChatMessage.position",
    )
    # no delete cascade: deleting a chat nulls generations.chat_id
    generations = relationship("Generation", back_populates="chat")


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(String(36), primary_key=True, default=_uuid)
    chat_id = Column(String(36), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    role = Column(String(16), nullable=False)  # user | assistant
    content = Column(Text, nullable=False, default="")
    images = Column(JSON, nullable=False, default=list)
    status = Column(String(16), nullable=True)  # pending | completed | failed
    error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    chat = relationship("Chat", back_populates="messages")
