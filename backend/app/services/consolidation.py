"""Group-order consolidation and per-user cost split.

``consolidate_items`` and ``split_total`` are pure functions of rows that were
already fetched. ``get_consolidated`` and ``calculate_my_total`` perform the
reads one after another with no enclosing transaction, so a write landing
between two reads shows up in some parts of the result and not others.

All money values are integers in minor currency units.
"""
import logging
from typing import Any, Iterable, Optional

from sqlalchemy.orm import Session

from app.models.group_order import GroupOrder
from app.models.order_item import OrderItem
from app.models.product import Product
from app.services import storage

logger = logging.getLogger(__name__)


def ceil_div(numerator: int, denominator: int) -> int:
    """Integer ceiling division for non-negative numerators."""
    return -(-numerator // denominator)


def consolidate_items(
    items: Iterable[OrderItem],
    products: Iterable[Product],
) -> list[dict[str, Any]]:
    """Sum quantity and price per product across every participant.

    Items pointing at a product outside ``products`` are left out. Totals are
    returned in the order each product is first seen.
    """
    products_by_id = {p.id: p for p in products}
    totals: dict[int, dict[str, Any]] = {}
    for item in items:
        product = products_by_id.get(item.product_id)
        if product is None:
            continue
        entry = totals.get(item.product_id)
        if entry is None:
            entry = totals[item.product_id] = {
                "product": product,
                "total_quantity": 0,
                "total_price": 0,
            }
        entry["total_quantity"] += item.quantity
        entry["total_price"] += product.price * item.quantity
    return list(totals.values())


def split_total(
    my_items: Iterable[OrderItem],
    all_items: Iterable[OrderItem],
    products: Iterable[Product],
    group_order: Optional[GroupOrder],
) -> dict[str, int]:
    """One participant's product cost plus an equal, rounded-up share of delivery."""
    prices = {p.id: p.price for p in products}
    products_total = sum(
        prices[item.product_id] * item.quantity
        for item in my_items
        if item.product_id in prices
    )

    participant_count = len({item.user_id for item in all_items})
    delivery_cost = group_order.delivery_cost if group_order is not None else 0
    # Rounds up: participants together never pay less than the delivery cost.
    delivery_share = ceil_div(delivery_cost, participant_count) if participant_count > 0 else 0

    return {
        "products_total": products_total,
        "delivery_share": delivery_share,
        "grand_total": products_total + delivery_share,
        "participant_count": participant_count,
    }


def get_consolidated(db: Optional[Session], group_order_id: int) -> dict[str, Any]:
    """Admin view: every item, per-product totals, the order and its participants."""
    items = storage.get_order_items_by_group_order(db, group_order_id)
    products = storage.get_all_products(db)
    group_order = storage.get_group_order_by_id(db, group_order_id)

    user_ids = list(dict.fromkeys(item.user_id for item in items))
    users = storage.get_users_by_ids(db, user_ids)
    users_by_id = {u.id: u for u in users}

    product_totals = consolidate_items(items, products)
    logger.info(
        "Consolidated group order %s: %d items, %d products, %d users",
        group_order_id, len(items), len(product_totals), len(users_by_id),
    )
    return {
        "items": items,
        "product_totals": product_totals,
        "group_order": group_order,
        "users": [users_by_id[uid] for uid in user_ids if uid in users_by_id],
    }


def calculate_my_total(db: Optional[Session], group_order_id: int, user_id: int) -> dict[str, int]:
    my_items = storage.get_order_items_by_user(db, user_id, group_order_id)
    all_items = storage.get_order_items_by_group_order(db, group_order_id)
    products = storage.get_all_products(db)
    group_order = storage.get_group_order_by_id(db, group_order_id)
    return split_total(my_items, all_items, products, group_order)
