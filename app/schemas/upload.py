from typing import Optional

from pydantic import Field

from app.schemas.base import CamelModel


class Base64UploadRequest(CamelModel):
    image: str = Field(..., min_length=1, description="Base64 data or a data URL")
    file_name: Optional[str] = Field(None, max_length=255)
    mime_type: Optional[str] = None


class UploadResult(CamelModel):
    success: bool = True
    url: str
    file_name: str
    size: int
    mime_type: str
    width: int
    height: int
    format: str
