from __future__ import annotations

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from jewelinv.extensions import db
from jewelinv.utils.business_time import business_now

bp = Blueprint("health", __name__, url_prefix="/api/health")


@bp.get("")
def health():
    database = "ok"
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        current_app.logger.warning("Health check could not reach the database")
        database = "unavailable"

    return jsonify(
        {
            "status": "ok" if database == "ok" else "degraded",
            "message": "Jewelry Inventory API is running!",
            "database": database,
            "businessTime": business_now().isoformat(),
        }
    )
