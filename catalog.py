"""
Catalog store: product listing and admin CRUD. Deleting only clears the
active flag so historical order items keep their product.
"""

import logging
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.orm import Session

from database import unit_of_work
from errors import NotFound, ValidationError
from models import Product

logger = logging.getLogger(__name__)

# The only product column that may be cleared.
NULLABLE_FIELDS = ("stock",)


def _normalize_stock(data: Dict[str, Any], product_type: str) -> Dict[str, Any]:
    # Digital products never carry stock.
    if product_type == "digital":
        data["stock"] = None
    return data


def list_products(db: Session) -> List[Product]:
    stmt = select(Product).where(Product.is_active.is_(True)).order_by(Product.created_at.desc(), Product.id)
    return list(db.scalars(stmt))


def get_product(db: Session, product_id: str) -> Product:
    product = db.get(Product, product_id)
    if product is None:
        raise NotFound("Product not found")
    return product


def create_product(db: Session, data: Dict[str, Any]) -> Product:
    data = _normalize_stock(dict(data), data["type"])
    with unit_of_work(db):
        product = Product(**data)
        db.add(product)
    logger.info("Created product %s (%s)", product.id, product.name)
    return product


def update_product(db: Session, product_id: str, changes: Dict[str, Any]) -> Product:
    nulls = sorted(field for field, value in changes.items() if value is None and field not in NULLABLE_FIELDS)
    if nulls:
        raise ValidationError(f"Fields cannot be null: {', '.join(nulls)}")
    product = get_product(db, product_id)
    changes = _normalize_stock(dict(changes), changes.get("type", product.type))
    with unit_of_work(db):
        for field, value in changes.items():
            setattr(product, field, value)
    return product


def delete_product(db: Session, product_id: str) -> None:
    product = get_product(db, product_id)
    with unit_of_work(db):
        product.is_active = False
    logger.info("Deactivated product %s", product_id)
