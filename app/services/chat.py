import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.errors import ConflictError
from app.core.models_catalog import DEFAULT_IMAGE_COUNT, DEFAULT_OUTPUT_STYLE, get_default_model
from app.models.chat import Chat, ChatMessage


logger = logging.getLogger(__name__)

DEFAULT_CHAT_NAME = "New Conversation"


def create_chat(
    db: Session,
    user_id: int,
    name: Optional[str] = None,
    model_id: Optional[str] = None,
    model_type: Optional[str] = None,
    image_count: Optional[int] = None,
    output_style: Optional[str] = None,
) -> Chat:
    default_model = get_default_model()
    chat = Chat(
        user_id=user_id,
        name=name or DEFAULT_CHAT_NAME,
        model_id=model_id or default_model.id,
        model_type=model_type or default_model.type,
        image_count=image_count or DEFAULT_IMAGE_COUNT,
        output_style=output_style or DEFAULT_OUTPUT_STYLE,
    )
    db.add(chat)
    db.commit()
    db.refresh(chat)
    return chat


def get_chat(db: Session, chat_id: str, user_id: int) -> Optional[Chat]:
    return db.query(Chat).filter(Chat.id == chat_id, Chat.user_id == user_id).first()


def list_user_chats(db: Session, user_id: int) -> List[Chat]:
    return (
        db.query(Chat)
        .filter(Chat.user_id == user_id)
        .order_by(Chat.updated_at.desc())
        .all()
    )


def update_chat(db: Session, chat_id: str, user_id: int, updates: Dict[str, Any]) -> Optional[Chat]:
    """Patch the given fields. Concurrent patches are last-writer-wins."""
    chat = get_chat(db, chat_id, user_id)
    if not chat:
        return None
    for field, value in updates.items():
        setattr(chat, field, value)
    db.add(chat)
    db.commit()
    db.refresh(chat)
    return chat


def delete_chat(db: Session, chat_id: str, user_id: int) -> bool:
    """Delete a chat with its messages. Generations keep their data with chat_id set to NULL."""
    chat = get_chat(db, chat_id, user_id)
    if not chat:
        return False
    db.delete(chat)
    db.commit()
    logger.info("Deleted chat %s of user %s", chat_id, user_id)
    return True


def create_message(
    db: Session,
    chat_id: str,
    role: str,
    content: str,
    images: Optional[List[str]] = None,
    status: Optional[str] = None,
    error: Optional[str] = None,
    message_id: Optional[str] = None,
    commit: bool = True,
) -> ChatMessage:
    # client-chosen ids share one primary key space across all chats
    if message_id and db.get(ChatMessage, message_id) is not None:
        raise ConflictError("Message id already exists")

    last_position = (
        db.query(func.max(ChatMessage.position))
        .filter(ChatMessage.chat_id == chat_id)
        .scalar()
    )
    message = ChatMessage(
        chat_id=chat_id,
        position=(last_position + 1) if last_position is not None else 0,
        role=role,
        content=content,
        images=list(images or []),
        status=status,
        error=error,
    )
    if message_id:
        message.id = message_id
    db.add(message)
    if commit:
        db.commit()
        db.refresh(message)
    else:
        db.flush()
    return message


def get_chat_messages(db: Session, chat_id: str) -> List[ChatMessage]:
    return (
        db.query(ChatMessage)
        .filter(ChatMessage.chat_id == chat_id)
        .order_by(ChatMessage.position)
        .all()
    )


def update_message(
    db: Session,
    chat_id: str,
    message_id: str,
    updates: Dict[str, Any],
    commit: bool = True,
) -> Optional[ChatMessage]:
    message = (
        db.query(ChatMessage)
        .filter(ChatMessage.id == message_id, ChatMessage.chat_id == chat_id)
        .first()
    )
    if not message:
        return None
    for field, value in updates.items():
        if field == "images":
            # JSON columns are replaced, never mutated in place
            value = list(value or [])
        setattr(message, field, value)
    db.add(message)
    if commit:
        db.commit()
        db.refresh(message)
    return message


def get_chat_with_messages(db: Session, chat_id: str, user_id: int) -> Optional[Tuple[Chat, List[ChatMessage]]]:
    chat = get_chat(db, chat_id, user_id)
    if not chat:
        return None
    return chat, get_chat_messages(db, chat_id)
