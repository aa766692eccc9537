"""Pydantic schemas for OrderItems and per-user totals."""
from datetime import datetime
from pydantic import BaseModel, Field

from app.schemas.common import MAX_INT4


class OrderItemCreate(BaseModel):
    group_order_id: int = Field(gt=0, le=MAX_INT4, strict=True)
    product_id: int = Field(gt=0, le=MAX_INT4, strict=True)
    quantity: int = Field(gt=0, le=MAX_INT4, strict=True)


class OrderItemUpdate(BaseModel):
    quantity: int = Field(gt=0, le=MAX_INT4, strict=True)


class OrderItemOut(BaseModel):
    id: int
    group_order_id: int
    user_id: int
    product_id: int
    quantity: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class MyTotalOut(BaseModel):
    products_total: int
    delivery_share: int
    grand_total: int
    participant_count: int
