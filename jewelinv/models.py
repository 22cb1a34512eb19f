from datetime import datetime, timezone

from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from jewelinv.extensions import db


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every ``*_at`` column stores."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_float(value) -> float:
    if value is None:
        return 0.0
    return float(value)


def _isoformat(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc).isoformat()


class User(UserMixin, db.Model):
    __tablename__ = "user"

    ROLE_ADMIN = "admin"
    ROLE_STAFF = "staff"
    ROLES = (ROLE_ADMIN, ROLE_STAFF)

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(16), nullable=False, default=ROLE_STAFF)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def has_role(self, role_name: str) -> bool:
        return self.has_any_role((role_name,))

    def has_any_role(self, role_names) -> bool:
        if not role_names:
            return False
        return self.role in role_names

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<User {self.username} ({self.role})>"


class Product(db.Model):
    __tablename__ = "product"

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(32), unique=True, index=True, nullable=False)
    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    unit_weight = db.Column(db.Numeric(12, 3), nullable=False, default=0)
    total_weight = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    low_quantity = db.Column(db.Integer, nullable=False, default=0)

    # Snapshot of the latest transaction log row; the log is authoritative.
    opening_qty = db.Column(db.Integer, nullable=False, default=0)
    added_qty = db.Column(db.Integer, nullable=False, default=0)
    sold_qty = db.Column(db.Integer, nullable=False, default=0)
    closing_qty = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    transaction_logs = db.relationship(
        "TransactionLog",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="TransactionLog.business_date",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "quantity": self.quantity,
            "unitWeightGr": _as_float(self.unit_weight),
            "totalWeightGr": _as_float(self.total_weight),
            "lowQuantity": self.low_quantity,
            "openingQty": self.opening_qty,
            "addedQty": self.added_qty,
            "soldQty": self.sold_qty,
            "closingQty": self.closing_qty,
            "isActive": bool(self.is_active),
            "createdAt": _isoformat(self.created_at),
            "updatedAt": _isoformat(self.updated_at),
        }

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<Product {self.sku} qty={self.quantity}>"


class TransactionLog(db.Model):
    __tablename__ = "transaction_log"
    __table_args__ = (
        db.UniqueConstraint(
            "product_id", "business_date", name="uq_transaction_log_product_day"
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("product.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Denormalized so reports still read when the product row is gone.
    product_name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(32), nullable=False)
    business_date = db.Column(db.Date, nullable=False, index=True)
    opening_qty = db.Column(db.Integer, nullable=False)
    added_qty = db.Column(db.Integer, nullable=False, default=0)
    sold_qty = db.Column(db.Integer, nullable=False, default=0)
    closing_qty = db.Column(db.Integer, nullable=False)
    remarks = db.Column(db.Text, nullable=False, default="")
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime, default=utcnow, onupdate=utcnow, nullable=False, index=True
    )

    product = db.relationship("Product", back_populates="transaction_logs")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "productId": self.product_id,
            "productName": self.product_name,
            "sku": self.sku,
            "date": self.business_date.isoformat() if self.business_date else None,
            "openingQty": self.opening_qty,
            "addedQty": self.added_qty,
            "soldQty": self.sold_qty,
            "closingQty": self.closing_qty,
            "remarks": self.remarks or "",
            "createdAt": _isoformat(self.created_at),
            "updatedAt": _isoformat(self.updated_at),
        }

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<TransactionLog {self.sku} {self.business_date} close={self.closing_qty}>"
