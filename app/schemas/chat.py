from datetime import datetime
from typing import List, Literal, Optional

from pydantic import Field

from app.schemas.base import CamelModel


MessageRole = Literal["user", "assistant"]
MessageStatus = Literal["pending", "completed", "failed"]


class ChatCreate(CamelModel):
    name: Optional[str] = Field(None, max_length=255)
    model_id: Optional[str] = None
    model_type: Optional[str] = None
    image_count: Optional[int] = Field(None, ge=1, le=4)
    output_style: Optional[str] = Field(None, max_length=64)


class ChatUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    draft: Optional[str] = None
    is_generating: Optional[bool] = None
    model_id: Optional[str] = None
    model_type: Optional[str] = None
    image_count: Optional[int] = Field(None, ge=1, le=4)
    output_style: Optional[str] = Field(None, max_length=64)
    style_image_url: Optional[str] = None
    style_image_name: Optional[str] = Field(None, max_length=255)


class ChatOut(CamelModel):
    id: str
    user_id: int
    name: str
    draft: str
    is_generating: bool
    model_id: str
    model_type: str
    image_count: int
    output_style: str
    style_image_url: Optional[str]
    style_image_name: Optional[str]
    created_at: datetime
    updated_at: datetime


class ChatMessageOut(CamelModel):
    id: str
    chat_id: str
    role: str
    content: str
    images: List[str]
    status: Optional[str]
    error: Optional[str]
    created_at: datetime


class MessageCreate(CamelModel):
    id: Optional[str] = Field(None, max_length=36)
    role: MessageRole
    content: str = ""
    images: List[str] = Field(default_factory=list)
    status: Optional[MessageStatus] = None
    error: Optional[str] = None


class MessageUpdate(CamelModel):
    images: Optional[List[str]] = None
    status: Optional[MessageStatus] = None
    error: Optional[str] = None
