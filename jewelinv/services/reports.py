"""Transaction log projections for the export endpoints."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from jewelinv.errors import NotFound
from jewelinv.extensions import db
from jewelinv.models import Product, TransactionLog
from jewelinv.utils.business_time import DateRange


@dataclass(frozen=True)
class ExportRow:
    sku: str
    name: str
    opening: int
    added: int
    sold: int
    closing: int
    remarks: str
    timestamp: datetime
    archived: bool

    def to_dict(self) -> dict:
        return {
            "sku": self.sku,
            "name": self.name,
            "opening": self.opening,
            "added": self.added,
            "sold": self.sold,
            "closing": self.closing,
            "remarks": self.remarks,
            "timestamp": self.timestamp,
            "archived": self.archived,
        }


def export_rows(date_range: DateRange, *, descending: bool = False) -> list[ExportRow]:
    """Log rows last modified inside ``date_range``, joined to their product.

    Rows whose product no longer exists fall back to the names captured on the
    log row and are reported as not archived.
    """

    order_column = TransactionLog.updated_at.desc() if descending else TransactionLog.updated_at.asc()
    tie_breaker = TransactionLog.id.desc() if descending else TransactionLog.id.asc()

    query = (
        db.session.query(TransactionLog, Product)
        .outerjoin(Product, Product.id == TransactionLog.product_id)
        .order_by(order_column, tie_breaker)
    )
    if date_range.start is not None:
        query = query.filter(TransactionLog.updated_at >= date_range.start)
    if date_range.end is not None:
        query = query.filter(TransactionLog.updated_at <= date_range.end)

    rows = []
    for log, joined in query.all():
        rows.append(
            ExportRow(
                sku=joined.sku if joined is not None else log.sku,
                name=joined.name if joined is not None else log.product_name,
                opening=log.opening_qty,
                added=log.added_qty,
                sold=log.sold_qty,
                closing=log.closing_qty,
                remarks=log.remarks or "",
                timestamp=log.updated_at,
                archived=joined is not None and not joined.is_active,
            )
        )
    return rows


def require_export_rows(date_range: DateRange, *, descending: bool = False) -> list[ExportRow]:
    rows = export_rows(date_range, descending=descending)
    if not rows:
        raise NotFound("No transactions found in this range.")
    return rows
