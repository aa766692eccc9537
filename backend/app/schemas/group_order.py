"""Pydantic schemas for GroupOrders and the consolidated view."""
from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from app.schemas.common import MAX_INT4
from app.schemas.order_item import OrderItemOut
from app.schemas.product import ProductOut
from app.schemas.user import UserOut


class GroupOrderCreate(BaseModel):
    delivery_cost: int = Field(default=0, ge=0, le=MAX_INT4, strict=True)


class DeliveryCostUpdate(BaseModel):
    delivery_cost: int = Field(ge=0, le=MAX_INT4, strict=True)


class GroupOrderOut(BaseModel):
    id: int
    delivery_cost: int
    status: str
    closed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ProductTotalOut(BaseModel):
    product: ProductOut
    total_quantity: int
    total_price: int


class ConsolidatedOut(BaseModel):
    items: list[OrderItemOut] = []
    product_totals: list[ProductTotalOut] = []
    group_order: Optional[GroupOrderOut] = None
    users: list[UserOut] = []
