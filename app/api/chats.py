from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.core.database import get_db
from app.core.errors import NotFoundError
from app.models.user import User
from app.schemas.chat import ChatCreate, ChatMessageOut, ChatOut, ChatUpdate, MessageCreate, MessageUpdate
from app.services import chat as chat_store


router = APIRouter(prefix="/api/chats", tags=["chats"])

NULLABLE_CHAT_FIELDS = ("style_image_url", "style_image_name")
NULLABLE_MESSAGE_FIELDS = ("status", "error")


def _dump(model) -> dict:
    return model.model_dump(by_alias=True, mode="json")


def _owned_chat(db: Session, chat_id: str, user: User):
    chat = chat_store.get_chat(db, chat_id, user.id)
    if not chat:
        raise NotFoundError("Chat not found")
    return chat


@router.post("", status_code=status.HTTP_201_CREATED)
def create_chat(
    payload: ChatCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    chat = chat_store.create_chat(
        db,
        current_user.id,
        name=payload.name,
        model_id=payload.model_id,
        model_type=payload.model_type,
        image_count=payload.image_count,
        output_style=payload.output_style,
    )
    return {"success": True, "chat": _dump(ChatOut.model_validate(chat))}


@router.get("")
def list_chats(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    chats = chat_store.list_user_chats(db, current_user.id)
    return {"success": True, "chats": [_dump(ChatOut.model_validate(chat)) for chat in chats]}


@router.get("/{chat_id}")
def get_chat(
    chat_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    found = chat_store.get_chat_with_messages(db, chat_id, current_user.id)
    if not found:
        raise NotFoundError("Chat not found")
    chat, messages = found
    return {
        "success": True,
        "chat": _dump(ChatOut.model_validate(chat)),
        "messages": [_dump(ChatMessageOut.model_validate(message)) for message in messages],
    }


@router.patch("/{chat_id}")
def update_chat(
    chat_id: str,
    payload: ChatUpdate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    # Only the fields present in the body are written; only the style image may be cleared
    updates = {
        field: value
        for field, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or field in NULLABLE_CHAT_FIELDS
    }
    chat = chat_store.update_chat(db, chat_id, current_user.id, updates)
    if not chat:
        raise NotFoundError("Chat not found")
    return {"success": True, "chat": _dump(ChatOut.model_validate(chat))}


@router.delete("/{chat_id}")
def delete_chat(
    chat_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    if not chat_store.delete_chat(db, chat_id, current_user.id):
        raise NotFoundError("Chat not found")
    return {"success": True}


@router.post("/{chat_id}/messages", status_code=status.HTTP_201_CREATED)
def add_message(
    chat_id: str,
    payload: MessageCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    _owned_chat(db, chat_id, current_user)
    message = chat_store.create_message(
        db,
        chat_id,
        role=payload.role,
        content=payload.content,
        images=payload.images,
        status=payload.status,
        error=payload.error,
        message_id=payload.id,
    )
    return {"success": True, "message": _dump(ChatMessageOut.model_validate(message))}


@router.patch("/{chat_id}/messages/{message_id}")
def update_message(
    chat_id: str,
    message_id: str,
    payload: MessageUpdate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    _owned_chat(db, chat_id, current_user)
    updates = {
        field: value
        for field, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or field in NULLABLE_MESSAGE_FIELDS
    }
    message = chat_store.update_message(db, chat_id, message_id, updates)
    if not message:
        raise NotFoundError("Message not found")
    return {"success": True, "message": _dump(ChatMessageOut.model_validate(message))}
