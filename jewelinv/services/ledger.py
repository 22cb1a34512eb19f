"""Stock ledger reconciliation.

Every stock movement lands in the product's transaction log row for the
current business day. The first movement of a day opens a row from the prior
day's closing balance; later movements on the same day merge into that row.
The product snapshot is then overwritten from the row, so the log stays the
authoritative record and the snapshot can always be rebuilt from it.

Movements for one product and day are serialized twice: an in-process keyed
lock covers threads of a worker, and the product row lock, the
``(product_id, business_date)`` unique constraint and in-place SQL increments
cover separate workers.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from typing import Hashable

from sqlalchemy import and_, func, update
from sqlalchemy.exc import IntegrityError

from jewelinv.errors import InventoryError, NotFound, StorageFailure, ValidationFailure
from jewelinv.extensions import db
from jewelinv.models import Product, TransactionLog
from jewelinv.services.storage import storage_guard
from jewelinv.utils.business_time import business_today
from jewelinv.utils.parsing import MAX_QUANTITY, clamp_quantity, parse_remarks, total_weight

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 3
SNAPSHOT_FIELDS = ("opening_qty", "added_qty", "sold_qty", "closing_qty")


@dataclass(frozen=True)
class MovementResult:
    transaction_log: TransactionLog
    product: Product


@dataclass(frozen=True)
class LedgerIssue:
    business_date: date | None
    message: str

    def to_dict(self) -> dict:
        return {
            "date": self.business_date.isoformat() if self.business_date else None,
            "message": self.message,
        }


class KeyedLock:
    """One mutex per key, dropped again once no caller holds or waits on it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[Hashable, list] = {}

    @contextmanager
    def hold(self, key: Hashable):
        with self._guard:
            entry = self._entries.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        entry[0].acquire()
        try:
            yield
        finally:
            entry[0].release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


movement_locks = KeyedLock()


def _get_product(product_id: int, *, for_update: bool = False) -> Product:
    if for_update:
        product = db.session.get(
            Product, product_id, with_for_update=True, populate_existing=True
        )
    else:
        product = db.session.get(Product, product_id)
    if product is None:
        raise NotFound("Product not found")
    return product


def opening_balance(product: Product, business_date: date) -> int:
    """Closing of the latest earlier log row, else the product's quantity."""

    previous = (
        TransactionLog.query.filter(
            TransactionLog.product_id == product.id,
            TransactionLog.business_date < business_date,
        )
        .order_by(TransactionLog.business_date.desc())
        .first()
    )
    if previous is not None:
        return previous.closing_qty
    return int(product.quantity or 0)


def copy_log_to_snapshot(product: Product, log: TransactionLog) -> None:
    for field in SNAPSHOT_FIELDS:
        setattr(product, field, getattr(log, field))
    product.quantity = log.closing_qty
    product.total_weight = total_weight(product.unit_weight, log.closing_qty)


def snapshot_matches(product: Product, log: TransactionLog) -> bool:
    if product.quantity != log.closing_qty:
        return False
    return all(getattr(product, field) == getattr(log, field) for field in SNAPSHOT_FIELDS)


def _checked_balance(value: int) -> int:
    if abs(value) > MAX_QUANTITY:
        raise ValidationFailure("Resulting stock balance is out of range.")
    return value


def _merge_remarks(existing: str | None, extra: str) -> str:
    existing = (existing or "").strip()
    if not extra:
        return existing
    if not existing:
        return extra
    return f"{existing}; {extra}"


def _write_movement(
    product_id: int,
    add_qty: int,
    sell_qty: int,
    business_date: date,
    remarks: str,
) -> MovementResult:
    product = _get_product(product_id, for_update=True)

    log = (
        db.session.query(TransactionLog)
        .filter_by(product_id=product.id, business_date=business_date)
        .populate_existing()
        .with_for_update()
        .one_or_none()
    )

    if log is None:
        opening = opening_balance(product, business_date)
        closing = _checked_balance(opening + add_qty - sell_qty)
        log = TransactionLog(
            product_id=product.id,
            product_name=product.name,
            sku=product.sku,
            business_date=business_date,
            opening_qty=opening,
            added_qty=add_qty,
            sold_qty=sell_qty,
            closing_qty=closing,
            remarks=remarks,
        )
        db.session.add(log)
        db.session.flush()
    else:
        _checked_balance(log.closing_qty + add_qty - sell_qty)
        # Increment in place so a concurrent writer's delta is never overwritten
        # with a stale read. The right-hand side reads the pre-update values.
        values = {
            "added_qty": TransactionLog.added_qty + add_qty,
            "sold_qty": TransactionLog.sold_qty + sell_qty,
            "closing_qty": TransactionLog.opening_qty
            + TransactionLog.added_qty
            + add_qty
            - TransactionLog.sold_qty
            - sell_qty,
        }
        if remarks:
            values["remarks"] = _merge_remarks(log.remarks, remarks)
        db.session.execute(
            update(TransactionLog)
            .where(TransactionLog.id == log.id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        db.session.refresh(log)

    copy_log_to_snapshot(product, log)
    db.session.flush()
    return MovementResult(transaction_log=log, product=product)


def apply_movement(
    product_id: int,
    add_qty=0,
    sell_qty=0,
    *,
    business_date: date | None = None,
    remarks: str | None = None,
) -> MovementResult:
    """Record an add/sell movement and refresh the product snapshot.

    Negative quantities are treated as zero. Selling more than is on hand is
    allowed and leaves a negative balance. The log row and the snapshot are
    committed together.
    """

    add_qty = clamp_quantity(add_qty, "addQty")
    sell_qty = clamp_quantity(sell_qty, "sellQty")
    business_date = business_date or business_today()
    remarks = parse_remarks(remarks)

    with movement_locks.hold((product_id, business_date)):
        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            try:
                with storage_guard("recording a stock movement"):
                    try:
                        result = _write_movement(
                            product_id, add_qty, sell_qty, business_date, remarks
                        )
                        db.session.commit()
                    except IntegrityError:
                        # Another worker opened the same day row first; merge into it.
                        db.session.rollback()
                        if attempt == MAX_WRITE_ATTEMPTS:
                            raise
                        logger.warning(
                            "Concurrent movement on product %s for %s; retrying (attempt %s)",
                            product_id,
                            business_date,
                            attempt,
                        )
                        continue
            except InventoryError:
                db.session.rollback()
                raise

            log = result.transaction_log
            logger.info(
                "Movement on %s for %s: +%s -%s (opening %s, closing %s)",
                log.sku,
                business_date,
                add_qty,
                sell_qty,
                log.opening_qty,
                log.closing_qty,
            )
            return result

    raise StorageFailure("Storage failure while recording a stock movement.")  # pragma: no cover


def record_initial_stock(product: Product, business_date: date | None = None) -> TransactionLog:
    """Add the opening log row for a newly created product (not committed)."""

    business_date = business_date or business_today()
    log = TransactionLog(
        product=product,
        product_name=product.name,
        sku=product.sku,
        business_date=business_date,
        opening_qty=product.opening_qty,
        added_qty=product.added_qty,
        sold_qty=product.sold_qty,
        closing_qty=product.closing_qty,
        remarks="Initial stock entry",
    )
    db.session.add(log)
    return log


def latest_log(product_id: int) -> TransactionLog | None:
    return (
        TransactionLog.query.filter_by(product_id=product_id)
        .order_by(TransactionLog.business_date.desc())
        .first()
    )


def product_history(product_id: int) -> list[TransactionLog]:
    _get_product(product_id)
    return (
        TransactionLog.query.filter_by(product_id=product_id)
        .order_by(TransactionLog.business_date.desc())
        .all()
    )


def recompute_snapshot(product_id: int) -> Product:
    """Rebuild one product's snapshot from its latest log row."""

    with storage_guard("rebuilding a product snapshot"):
        product = _get_product(product_id, for_update=True)
        log = latest_log(product.id)
        if log is not None and not snapshot_matches(product, log):
            copy_log_to_snapshot(product, log)
            logger.warning("Repaired snapshot for %s from log of %s", product.sku, log.business_date)
        db.session.commit()
    return product


def reconcile_snapshots() -> list[int]:
    """Repair every product snapshot that disagrees with its latest log row.

    Returns the ids of the products that were rewritten.
    """

    latest_dates = (
        db.session.query(
            TransactionLog.product_id.label("product_id"),
            func.max(TransactionLog.business_date).label("latest"),
        )
        .group_by(TransactionLog.product_id)
        .subquery()
    )

    repaired: list[int] = []
    with storage_guard("reconciling product snapshots"):
        rows = (
            db.session.query(Product, TransactionLog)
            .join(latest_dates, latest_dates.c.product_id == Product.id)
            .join(
                TransactionLog,
                and_(
                    TransactionLog.product_id == Product.id,
                    TransactionLog.business_date == latest_dates.c.latest,
                ),
            )
            .order_by(Product.id)
            .all()
        )
        for product, log in rows:
            if snapshot_matches(product, log):
                continue
            copy_log_to_snapshot(product, log)
            repaired.append(product.id)
            logger.warning(
                "Snapshot drift on %s: rebuilt from log of %s", product.sku, log.business_date
            )
        db.session.commit()

    return repaired


def verify_ledger(product_id: int) -> list[LedgerIssue]:
    """List every break of the ledger invariants for one product."""

    product = _get_product(product_id)
    logs = (
        TransactionLog.query.filter_by(product_id=product.id)
        .order_by(TransactionLog.business_date.asc())
        .all()
    )

    issues: list[LedgerIssue] = []
    previous: TransactionLog | None = None
    for log in logs:
        expected_closing = log.opening_qty + log.added_qty - log.sold_qty
        if log.closing_qty != expected_closing:
            issues.append(
                LedgerIssue(
                    log.business_date,
                    f"closing {log.closing_qty} != opening + added - sold ({expected_closing})",
                )
            )
        if previous is not None and log.opening_qty != previous.closing_qty:
            issues.append(
                LedgerIssue(
                    log.business_date,
                    f"opening {log.opening_qty} != closing {previous.closing_qty} "
                    f"of {previous.business_date.isoformat()}",
                )
            )
        previous = log

    if previous is not None and not snapshot_matches(product, previous):
        issues.append(
            LedgerIssue(
                None,
                f"snapshot (closing {product.closing_qty}, quantity {product.quantity}) "
                f"differs from latest log closing {previous.closing_qty}",
            )
        )
    return issues
