from __future__ import annotations

from jewelinv.errors import ValidationFailure
from jewelinv.extensions import db
from jewelinv.models import Product

SKU_PREFIX_LENGTH = 2
SKU_SUFFIX_WIDTH = 2


def sku_prefix(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationFailure("Product name is required to build a SKU.")
    return cleaned[:SKU_PREFIX_LENGTH].upper()


def _numeric_suffix(sku: str, prefix: str) -> int | None:
    if not sku or not sku.upper().startswith(prefix):
        return None
    suffix = sku[len(prefix):]
    if not suffix.isdigit():
        return None
    return int(suffix)


def highest_sku_number(prefix: str, session=None) -> int:
    """Return the highest numeric suffix used by SKUs starting with ``prefix``.

    Suffixes are compared as integers, so ``AB100`` outranks ``AB99``.
    """

    session = session or db.session
    rows = (
        session.query(Product.sku)
        .filter(Product.sku.startswith(prefix, autoescape=True))
        .all()
    )
    numbers = []
    for (sku,) in rows:
        number = _numeric_suffix(sku, prefix)
        if number is not None:
            numbers.append(number)
    return max(numbers) if numbers else 0


def generate_sku(name: str, session=None) -> str:
    """Return the next SKU for a product called ``name``.

    Two concurrent callers can still compute the same value; the unique
    constraint on ``product.sku`` rejects the loser and ``create_product``
    retries.
    """

    prefix = sku_prefix(name)
    next_number = highest_sku_number(prefix, session=session) + 1
    return f"{prefix}{next_number:0{SKU_SUFFIX_WIDTH}d}"
