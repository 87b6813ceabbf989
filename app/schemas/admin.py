from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from app.schemas.base import CamelModel


class PackageCreate(CamelModel):
    id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=255)
    credits: int = Field(..., gt=0)
    price: int = Field(..., gt=0, description="Price in cents")
    polar_product_id: str = Field(..., min_length=1, max_length=128)


class PackageUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    credits: Optional[int] = Field(None, gt=0)
    price: Optional[int] = Field(None, gt=0)
    polar_product_id: Optional[str] = Field(None, min_length=1, max_length=128)


class UserCreditsUpdate(BaseModel):
    credits: int = Field(..., ge=0)


class AdminUserOut(CamelModel):
    id: int
    name: Optional[str]
    email: str
    role: str
    created_at: datetime
    credits: Optional[int]
