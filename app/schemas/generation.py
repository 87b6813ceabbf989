from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field, HttpUrl, field_validator, model_validator

from app.schemas.base import CamelModel


MAX_PROMPT_LENGTH = 1000


class GenerateRequest(CamelModel):
    prompt: str = Field(..., max_length=MAX_PROMPT_LENGTH)
    style_image_url: Optional[HttpUrl] = Field(None, description="URL of the style reference image")
    style_image_name: Optional[str] = Field(None, max_length=255)
    style_reference_id: Optional[str] = Field(None, description="Saved style reference to use")
    model: Optional[str] = Field(None, description="Model id, falls back to the default model")
    output_style: Optional[str] = Field(None, max_length=64)
    chat_id: Optional[str] = None

    @field_validator("prompt")
    @classmethod
    def validate_prompt(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Prompt is required")
        return v

    @model_validator(mode="after")
    def require_style_source(self):
        if self.style_image_url is None and not self.style_reference_id:
            raise ValueError("styleImageUrl or styleReferenceId is required")
        return self


class ModelInfo(CamelModel):
    id: str
    name: str
    type: str


class GenerateData(CamelModel):
    generation_id: str
    status: str
    credits_remaining: int
    model: ModelInfo
    chat_id: Optional[str] = None
    assistant_message_id: Optional[str] = None


class GenerateResponse(CamelModel):
    success: bool = True
    data: GenerateData


class GenerationOut(CamelModel):
    id: str
    user_id: int
    chat_id: Optional[str]
    prompt: str
    style_image_url: str
    model: str
    output_style: Optional[str]
    status: str
    generated_image_url: Optional[str]
    error_message: Optional[str]
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="meta")
    credits_used: int
    created_at: datetime
    updated_at: datetime


class GenerationData(CamelModel):
    generation: GenerationOut


class GenerationResponse(CamelModel):
    success: bool = True
    data: GenerationData


class GenerationListData(CamelModel):
    generations: List[GenerationOut]
    total: int
    limit: int
    offset: int


class GenerationListResponse(CamelModel):
    success: bool = True
    data: GenerationListData


class CreditsResponse(CamelModel):
    credits: int
    total_used: int


class CreditPackageOut(CamelModel):
    id: str
    name: str
    credits: int
    price: int
    currency: str
    polar_product_id: str


class PackagesResponse(CamelModel):
    packages: List[CreditPackageOut]


class StyleReferenceCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    image_url: HttpUrl
    description: Optional[str] = Field(None, max_length=500)


class StyleReferenceOut(CamelModel):
    id: str
    name: str
    image_url: str
    description: Optional[str]
    usage_count: int
    created_at: datetime
    updated_at: datetime


class StyleReferenceCreated(CamelModel):
    success: bool = True
    style_reference_id: str


class StyleReferenceList(CamelModel):
    style_references: List[StyleReferenceOut]
