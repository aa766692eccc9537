"""Pydantic schemas for Products."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from app.schemas.common import MAX_INT4


class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    price: int = Field(gt=0, le=MAX_INT4, strict=True)  # minor currency units


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    price: Optional[int] = Field(default=None, gt=0, le=MAX_INT4, strict=True)


class ProductOut(BaseModel):
    id: int
    name: str
    price: int
    active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
