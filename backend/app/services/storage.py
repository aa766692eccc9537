"""Persistence gateway: CRUD accessors over users, products, group orders and order items.

Every function takes the request-scoped ``Session`` (``None`` when the app runs
without a database). Reads never raise for a missing row or an unreachable
store: they return ``None`` / ``[]`` and log a warning. Writes raise
``StorageUnavailable`` when there is no store and let other database errors
propagate.

Each write is a single statement followed by a commit; there is no
transaction spanning several calls.
"""
import functools
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from app.database import StorageUnavailable
from app.models.group_order import GroupOrder, OrderStatus
from app.models.order_item import OrderItem
from app.models.product import Product
from app.models.user import Role, User

logger = logging.getLogger(__name__)

_USER_TEXT_FIELDS = ("name", "email", "login_method")


def _read(default: Callable[[], Any]):
    """Degrade a read to ``default()`` when storage is missing or unreachable."""

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(db: Optional[Session], *args, **kwargs):
            if db is None:
                logger.warning("Cannot %s: database not available", fn.__name__)
                return default()
            try:
                return fn(db, *args, **kwargs)
            except OperationalError as exc:
                logger.warning("Cannot %s: %s", fn.__name__, exc)
                db.rollback()
                return default()

        return wrapper

    return decorator


def _require(db: Optional[Session]) -> Session:
    if db is None:
        raise StorageUnavailable()
    return db


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
@_read(lambda: None)
def get_user_by_open_id(db: Session, open_id: str) -> Optional[User]:
    return db.query(User).filter(User.open_id == open_id).first()


@_read(list)
def get_users_by_ids(db: Session, user_ids: Iterable[int]) -> list[User]:
    ids = list(user_ids)
    if not ids:
        return []
    return db.query(User).filter(User.id.in_(ids)).all()


def upsert_user(
    db: Optional[Session],
    open_id: str,
    owner_open_id: str = "",
    **fields: Any,
) -> User:
    """Insert or update a user keyed by ``open_id``.

    Only the fields passed are written; an explicit ``None`` clears a text
    field. When no ``role`` is given and ``open_id`` matches the configured
    owner, the user is promoted to admin.
    """
    if not open_id:
        raise ValueError("User open_id is required for upsert")
    db = _require(db)

    values: dict[str, Any] = {}
    for field in _USER_TEXT_FIELDS:
        if field in fields:
            values[field] = fields[field] or None
    if fields.get("role") is not None:
        values["role"] = Role(fields["role"])
    elif owner_open_id and open_id == owner_open_id:
        values["role"] = Role.admin
    values["last_signed_in"] = fields.get("last_signed_in") or now_utc()

    user = db.query(User).filter(User.open_id == open_id).first()
    if user is None:
        user = User(open_id=open_id, **values)
        db.add(user)
    else:
        for field, value in values.items():
            setattr(user, field, value)
    db.commit()
    db.refresh(user)
    logger.info("Upserted user %s (%s) role=%s", user.id, open_id, user.role.value)
    return user


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------
@_read(list)
def get_all_products(db: Session) -> list[Product]:
    """Active products only."""
    return db.query(Product).filter(Product.active.is_(True)).order_by(Product.id).all()


@_read(lambda: None)
def get_product_by_id(db: Session, product_id: int) -> Optional[Product]:
    return db.query(Product).filter(Product.id == product_id).first()


def create_product(db: Optional[Session], name: str, price: int) -> Product:
    db = _require(db)
    product = Product(name=name, price=price, active=True)
    db.add(product)
    db.commit()
    db.refresh(product)
    logger.info("Created product '%s' (%s) at %d", name, product.id, price)
    return product


def update_product(db: Optional[Session], product_id: int, **data: Any) -> None:
    db = _require(db)
    values = {k: v for k, v in data.items() if v is not None}
    values["updated_at"] = now_utc()
    db.query(Product).filter(Product.id == product_id).update(values)
    db.commit()
    logger.info("Updated product %s: %s", product_id, sorted(values))


def delete_product(db: Optional[Session], product_id: int) -> None:
    """Soft delete: the row stays, ``active`` goes false."""
    db = _require(db)
    db.query(Product).filter(Product.id == product_id).update(
        {"active": False, "updated_at": now_utc()}
    )
    db.commit()
    logger.info("Deactivated product %s", product_id)


# ---------------------------------------------------------------------------
# Group orders
# ---------------------------------------------------------------------------
@_read(lambda: None)
def get_active_group_order(db: Session) -> Optional[GroupOrder]:
    """The most recent open group order, if any.

    Nothing stops two orders being open at once; the highest id wins.
    """
    return (
        db.query(GroupOrder)
        .filter(GroupOrder.status == OrderStatus.open)
        .order_by(GroupOrder.id.desc())
        .first()
    )


@_read(lambda: None)
def get_group_order_by_id(db: Session, group_order_id: int) -> Optional[GroupOrder]:
    return db.query(GroupOrder).filter(GroupOrder.id == group_order_id).first()


def create_group_order(db: Optional[Session], delivery_cost: int = 0) -> GroupOrder:
    db = _require(db)
    order = GroupOrder(delivery_cost=delivery_cost, status=OrderStatus.open)
    db.add(order)
    db.commit()
    db.refresh(order)
    logger.info("Created group order %s with delivery cost %d", order.id, delivery_cost)
    return order


def update_group_order(db: Optional[Session], group_order_id: int, **data: Any) -> None:
    db = _require(db)
    values = dict(data)
    values["updated_at"] = now_utc()
    db.query(GroupOrder).filter(GroupOrder.id == group_order_id).update(values)
    db.commit()
    logger.info("Updated group order %s: %s", group_order_id, sorted(values))


# ---------------------------------------------------------------------------
# Order items
# ---------------------------------------------------------------------------
@_read(list)
def get_order_items_by_group_order(db: Session, group_order_id: int) -> list[OrderItem]:
    return (
        db.query(OrderItem)
        .filter(OrderItem.group_order_id == group_order_id)
        .order_by(OrderItem.id)
        .all()
    )


@_read(list)
def get_order_items_by_user(db: Session, user_id: int, group_order_id: int) -> list[OrderItem]:
    return (
        db.query(OrderItem)
        .filter(OrderItem.user_id == user_id, OrderItem.group_order_id == group_order_id)
        .order_by(OrderItem.id)
        .all()
    )


def create_order_item(
    db: Optional[Session],
    group_order_id: int,
    user_id: int,
    product_id: int,
    quantity: int,
) -> OrderItem:
    db = _require(db)
    item = OrderItem(
        group_order_id=group_order_id,
        user_id=user_id,
        product_id=product_id,
        quantity=quantity,
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    logger.info(
        "User %s added %d x product %s to group order %s",
        user_id, quantity, product_id, group_order_id,
    )
    return item


def update_order_item(db: Optional[Session], item_id: int, quantity: int) -> None:
    db = _require(db)
    db.query(OrderItem).filter(OrderItem.id == item_id).update(
        {"quantity": quantity, "updated_at": now_utc()}
    )
    db.commit()
    logger.info("Set quantity of order item %s to %d", item_id, quantity)


def delete_order_item(db: Optional[Session], item_id: int) -> None:
    db = _require(db)
    db.query(OrderItem).filter(OrderItem.id == item_id).delete()
    db.commit()
    logger.info("Deleted order item %s", item_id)


# ---------------------------------------------------------------------------
# Connectivity
# ---------------------------------------------------------------------------
def check_connection(db: Optional[Session]) -> dict[str, Any]:
    """Run ``SELECT 1`` and translate common failures into readable messages."""
    if db is None:
        return {
            "success": False,
            "error": "Database instance not available. Check DATABASE_URL configuration.",
        }
    try:
        db.execute(text("SELECT 1"))
        return {"success": True}
    except OperationalError as exc:
        db.rollback()
        message = str(exc.orig) if exc.orig is not None else str(exc)
        friendly = "Database connection failed."
        if "could not translate host name" in message or "Name or service not known" in message:
            friendly = "Cannot connect to database host. Check your DATABASE_URL configuration."
        elif "Connection refused" in message:
            friendly = "Database connection refused. Make sure the database server is running."
        elif "password authentication failed" in message:
            friendly = "Database access denied. Check your DATABASE_URL credentials."
        logger.error("Database connectivity check failed: %s", message)
        return {"success": False, "error": f"{friendly} Original error: {message}"}
