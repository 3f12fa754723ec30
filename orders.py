"""
Order workflow: checkout, order queries and status changes.

Creating an order writes the order row, one item per requested line and the
stock decrements as one unit of work: it either all lands or nothing does.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload

from database import unit_of_work
from errors import InsufficientStock, InvalidReference, InvalidStatusTransition, InvalidTotal, NotFound, ValidationError
from models import Order, OrderItem, Product

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
MAX_LINE_QUANTITY = 10_000

# Forward-only lifecycle; an order moves one step at a time.
STATUS_FLOW = ("pending", "confirmed", "shipped", "delivered")


def _with_items(stmt):
    # Two batched SELECT ... IN queries (items, then their products) for the
    # whole result set instead of one query per order.
    return stmt.options(selectinload(Order.items).selectinload(OrderItem.product))


def _resolve_products(db: Session, lines: Sequence[Tuple[str, int]]) -> Dict[str, Product]:
    ids = {product_id for product_id, _ in lines}
    products = {p.id: p for p in db.scalars(select(Product).where(Product.id.in_(ids)))}
    for product_id in ids:
        product = products.get(product_id)
        if product is None or not product.is_active:
            raise InvalidReference(f"Invalid product {product_id}")
    return products


def _decrement_stock(db: Session, product: Product, quantity: int) -> None:
    """Take ``quantity`` units in one conditional UPDATE.

    The WHERE clause re-checks availability on the locked row, so two checkouts
    racing for the last unit cannot both succeed.
    """
    result = db.execute(
        update(Product)
        .where(Product.id == product.id, Product.stock >= quantity)
        .values(stock=Product.stock - quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InsufficientStock(f"Insufficient stock for {product.name}")


def create_order(
    db: Session,
    customer: Dict[str, str],
    lines: Sequence[Tuple[str, int]],
    total: Decimal,
    user_id: Optional[str] = None,
) -> Order:
    """Place an order.

    ``customer`` holds customer_name, customer_email, customer_phone and
    shipping_address. ``lines`` is the ordered list of (product_id, quantity).
    ``total`` is what the client displayed; it must match the catalog prices.
    """
    if not lines:
        raise ValidationError("Cart is empty")
    if any(quantity < 1 for _, quantity in lines):
        raise ValidationError("Quantity must be at least 1")
    if any(quantity > MAX_LINE_QUANTITY for _, quantity in lines):
        raise ValidationError(f"Quantity cannot exceed {MAX_LINE_QUANTITY}")

    products = _resolve_products(db, lines)
    computed = sum((products[pid].price * qty for pid, qty in lines), Decimal("0"))
    computed = computed.quantize(CENTS, rounding=ROUND_HALF_UP)
    try:
        claimed = Decimal(total).quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise InvalidTotal(f"Order total {total} is not a valid amount")
    if claimed != computed:
        raise InvalidTotal(f"Order total {total} does not match items total {computed}")

    with unit_of_work(db):
        order = Order(status="pending", total=computed, user_id=user_id, **customer)
        for position, (product_id, quantity) in enumerate(lines):
            product = products[product_id]
            order.items.append(OrderItem(
                product_id=product.id,
                position=position,
                quantity=quantity,
                price=product.price,
            ))
        db.add(order)
        db.flush()
        for product_id, quantity in lines:
            product = products[product_id]
            if product.tracks_stock:
                _decrement_stock(db, product, quantity)
        order_id = order.id

    logger.info("Order %s created with %d item(s), total %s", order_id, len(lines), computed)
    # Stock changed underneath the loaded products; read everything back fresh.
    return get_order(db, order_id)


def get_order(db: Session, order_id: str) -> Order:
    order = db.scalars(_with_items(select(Order).where(Order.id == order_id))).first()
    if order is None:
        raise NotFound("Order not found")
    return order


def list_orders(db: Session) -> List[Order]:
    """Every order, newest first."""
    stmt = _with_items(select(Order).order_by(Order.created_at.desc(), Order.id))
    return list(db.scalars(stmt))


def list_user_orders(db: Session, user_id: str) -> List[Order]:
    stmt = _with_items(
        select(Order).where(Order.user_id == user_id).order_by(Order.created_at.desc(), Order.id)
    )
    return list(db.scalars(stmt))


def check_transition(current: str, new: str) -> None:
    if new not in STATUS_FLOW:
        raise ValidationError(f"Unknown order status {new!r}")
    if current not in STATUS_FLOW or STATUS_FLOW.index(new) != STATUS_FLOW.index(current) + 1:
        raise InvalidStatusTransition(f"Cannot move order from {current} to {new}")


def update_order_status(db: Session, order_id: str, status: str) -> Order:
    order = get_order(db, order_id)
    check_transition(order.status, status)
    with unit_of_work(db):
        previous, order.status = order.status, status
    logger.info("Order %s moved from %s to %s", order_id, previous, status)
    return get_order(db, order_id)
