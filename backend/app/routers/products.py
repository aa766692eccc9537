"""Product catalog API routes."""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_current_user
from app.models.user import User
from app.schemas.common import MAX_INT4, SuccessOut
from app.schemas.product import ProductCreate, ProductUpdate, ProductOut
from app.services import storage
from app.services.authorization import require_admin

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/", response_model=list[ProductOut])
def list_products(db: Optional[Session] = Depends(get_db)):
    """List active products. Open to anonymous callers."""
    return storage.get_all_products(db)


@router.post("/", response_model=SuccessOut, status_code=status.HTTP_201_CREATED)
def create_product(
    payload: ProductCreate,
    user: User = Depends(get_current_user),
    db: Optional[Session] = Depends(get_db),
):
    require_admin(user, "create_product")
    storage.create_product(db, name=payload.name, price=payload.price)
    return SuccessOut()


@router.patch("/{product_id}", response_model=SuccessOut)
def update_product(
    payload: ProductUpdate,
    product_id: int = Path(gt=0, le=MAX_INT4),
    user: User = Depends(get_current_user),
    db: Optional[Session] = Depends(get_db),
):
    """Partial update of name and/or price."""
    require_admin(user, "update_product")
    storage.update_product(db, product_id, **payload.model_dump(exclude_unset=True))
    return SuccessOut()


@router.delete("/{product_id}", response_model=SuccessOut)
def delete_product(
    product_id: int = Path(gt=0, le=MAX_INT4),
    user: User = Depends(get_current_user),
    db: Optional[Session] = Depends(get_db),
):
    """Soft-delete a product; repeating the call is harmless."""
    require_admin(user, "delete_product")
    storage.delete_product(db, product_id)
    return SuccessOut()
