"""Group order API routes: lifecycle and the admin consolidated view."""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_current_user
from app.models.group_order import OrderStatus
from app.models.user import User
from app.schemas.common import MAX_INT4, SuccessOut
from app.schemas.group_order import (
    ConsolidatedOut,
    DeliveryCostUpdate,
    GroupOrderCreate,
    GroupOrderOut,
)
from app.services import consolidation, storage
from app.services.authorization import require_admin

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/active", response_model=Optional[GroupOrderOut])
def get_active_group_order(db: Optional[Session] = Depends(get_db)):
    """The open group order (most recent if several), or null."""
    return storage.get_active_group_order(db)


@router.post("/", response_model=SuccessOut, status_code=status.HTTP_201_CREATED)
def create_group_order(
    payload: GroupOrderCreate,
    user: User = Depends(get_current_user),
    db: Optional[Session] = Depends(get_db),
):
    require_admin(user, "create_group_order")
    storage.create_group_order(db, delivery_cost=payload.delivery_cost)
    return SuccessOut()


@router.patch("/{group_order_id}/delivery-cost", response_model=SuccessOut)
def update_delivery_cost(
    payload: DeliveryCostUpdate,
    group_order_id: int = Path(gt=0, le=MAX_INT4),
    user: User = Depends(get_current_user),
    db: Optional[Session] = Depends(get_db),
):
    require_admin(user, "update_delivery_cost")
    storage.update_group_order(db, group_order_id, delivery_cost=payload.delivery_cost)
    return SuccessOut()


@router.post("/{group_order_id}/close", response_model=SuccessOut)
def close_group_order(
    group_order_id: int = Path(gt=0, le=MAX_INT4),
    user: User = Depends(get_current_user),
    db: Optional[Session] = Depends(get_db),
):
    """Close an order. Orders are never deleted."""
    require_admin(user, "close_group_order")
    storage.update_group_order(
        db,
        group_order_id,
        status=OrderStatus.closed,
        closed_at=storage.now_utc(),
    )
    return SuccessOut()


@router.get("/{group_order_id}/consolidated", response_model=ConsolidatedOut)
def get_consolidated(
    group_order_id: int = Path(gt=0, le=MAX_INT4),
    user: User = Depends(get_current_user),
    db: Optional[Session] = Depends(get_db),
):
    require_admin(user, "view_consolidated")
    return consolidation.get_consolidated(db, group_order_id)
