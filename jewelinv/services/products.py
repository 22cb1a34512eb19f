from __future__ import annotations

import logging
from typing import Any, Mapping

from sqlalchemy.exc import IntegrityError

from jewelinv.errors import NotFound, StorageFailure, ValidationFailure
from jewelinv.extensions import db
from jewelinv.models import Product
from jewelinv.services import ledger
from jewelinv.services.sku import generate_sku
from jewelinv.services.storage import storage_guard
from jewelinv.utils.parsing import parse_non_negative_int, parse_weight, total_weight

logger = logging.getLogger(__name__)

STATUS_ACTIVE = "active"
STATUS_ARCHIVED = "archived"
STATUS_ALL = "all"
LIST_STATUSES = (STATUS_ACTIVE, STATUS_ARCHIVED, STATUS_ALL)

MAX_SKU_ATTEMPTS = 3


def _first_present(payload: Mapping[str, Any], *keys: str):
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return None


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFound("Product not found")
    return product


def create_product(
    name: str | None,
    quantity=0,
    unit_weight=0,
    low_quantity=0,
) -> Product:
    """Create a product with its opening stock and first log row."""

    if not isinstance(name, str) or not name.strip():
        raise ValidationFailure("Product name is required.")
    name = name.strip().upper()

    quantity = parse_non_negative_int(quantity, "quantity")
    unit_weight = parse_weight(unit_weight, "unitWeightGr")
    low_quantity = parse_non_negative_int(low_quantity, "lowQuantity")

    for attempt in range(1, MAX_SKU_ATTEMPTS + 1):
        with storage_guard("creating a product"):
            try:
                product = Product(
                    sku=generate_sku(name),
                    name=name,
                    quantity=quantity,
                    unit_weight=unit_weight,
                    total_weight=total_weight(unit_weight, quantity),
                    low_quantity=low_quantity,
                    opening_qty=quantity,
                    added_qty=0,
                    sold_qty=0,
                    closing_qty=quantity,
                    is_active=True,
                )
                db.session.add(product)
                ledger.record_initial_stock(product)
                db.session.commit()
            except IntegrityError:
                # Lost a race for the SKU; generate the next one.
                db.session.rollback()
                if attempt == MAX_SKU_ATTEMPTS:
                    raise
                logger.warning("SKU collision for %s; regenerating (attempt %s)", name, attempt)
                continue

        logger.info("Created product %s (%s) with %s in stock", product.sku, product.name, quantity)
        return product

    raise StorageFailure("Storage failure while creating a product.")  # pragma: no cover


def create_product_from_payload(payload: Mapping[str, Any]) -> Product:
    return create_product(
        payload.get("name"),
        quantity=_first_present(payload, "quantity"),
        unit_weight=_first_present(payload, "unitWeightGr", "unitWeight"),
        low_quantity=_first_present(payload, "lowQuantity"),
    )


def _set_active(product_id: int, active: bool) -> Product:
    with storage_guard("archiving a product" if not active else "restoring a product"):
        product = get_product(product_id)
        product.is_active = active
        db.session.commit()
    logger.info("%s product %s", "Restored" if active else "Archived", product.sku)
    return product


def soft_delete_product(product_id: int) -> Product:
    return _set_active(product_id, False)


def restore_product(product_id: int) -> Product:
    return _set_active(product_id, True)


def hard_delete_product(product_id: int) -> str:
    """Remove the product and every transaction log row it owns."""

    with storage_guard("deleting a product"):
        product = get_product(product_id)
        sku = product.sku
        db.session.delete(product)
        db.session.commit()
    logger.info("Permanently deleted product %s", sku)
    return sku


def list_products(status: str | None = STATUS_ACTIVE) -> list[Product]:
    status = (status or STATUS_ACTIVE).strip().lower()
    if status not in LIST_STATUSES:
        raise ValidationFailure(f"Unknown status {status!r}.")

    query = Product.query
    if status == STATUS_ACTIVE:
        query = query.filter(Product.is_active.is_(True))
    elif status == STATUS_ARCHIVED:
        query = query.filter(Product.is_active.is_(False))
    return query.order_by(Product.created_at.asc(), Product.id.asc()).all()


def low_stock_products() -> list[Product]:
    """Active products at or below a positive reorder threshold."""

    return (
        Product.query.filter(
            Product.is_active.is_(True),
            Product.low_quantity > 0,
            Product.quantity <= Product.low_quantity,
        )
        .order_by(Product.quantity.asc(), Product.sku.asc())
        .all()
    )
