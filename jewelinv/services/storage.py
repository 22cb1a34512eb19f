from __future__ import annotations

import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from jewelinv.errors import StorageFailure
from jewelinv.extensions import db

logger = logging.getLogger(__name__)


@contextmanager
def storage_guard(action: str):
    """Roll back and raise :class:`StorageFailure` when the database errors."""

    try:
        yield
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Storage failure while %s", action)
        raise StorageFailure(f"Storage failure while {action}.") from exc
