"""Order item API routes: a participant's own selections and total.

Any signed-in user may change or remove any item by id; ownership is not
checked.
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_current_user
from app.models.user import User
from app.schemas.common import MAX_INT4, SuccessOut
from app.schemas.order_item import MyTotalOut, OrderItemCreate, OrderItemOut, OrderItemUpdate
from app.services import consolidation, storage

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/mine", response_model=list[OrderItemOut])
def my_items(
    group_order_id: int = Query(gt=0, le=MAX_INT4),
    user: User = Depends(get_current_user),
    db: Optional[Session] = Depends(get_db),
):
    return storage.get_order_items_by_user(db, user.id, group_order_id)


@router.post("/", response_model=SuccessOut, status_code=status.HTTP_201_CREATED)
def add_item(
    payload: OrderItemCreate,
    user: User = Depends(get_current_user),
    db: Optional[Session] = Depends(get_db),
):
    """Add a selection for the caller; repeated products become separate rows."""
    storage.create_order_item(
        db,
        group_order_id=payload.group_order_id,
        user_id=user.id,
        product_id=payload.product_id,
        quantity=payload.quantity,
    )
    return SuccessOut()


@router.patch("/{item_id}", response_model=SuccessOut)
def update_item(
    payload: OrderItemUpdate,
    item_id: int = Path(gt=0, le=MAX_INT4),
    user: User = Depends(get_current_user),
    db: Optional[Session] = Depends(get_db),
):
    storage.update_order_item(db, item_id, quantity=payload.quantity)
    return SuccessOut()


@router.delete("/{item_id}", response_model=SuccessOut)
def delete_item(
    item_id: int = Path(gt=0, le=MAX_INT4),
    user: User = Depends(get_current_user),
    db: Optional[Session] = Depends(get_db),
):
    storage.delete_order_item(db, item_id)
    return SuccessOut()


@router.get("/my-total", response_model=MyTotalOut)
def calculate_my_total(
    group_order_id: int = Query(gt=0, le=MAX_INT4),
    user: User = Depends(get_current_user),
    db: Optional[Session] = Depends(get_db),
):
    """Caller's product cost plus their rounded-up share of delivery."""
    return consolidation.calculate_my_total(db, group_order_id, user.id)
