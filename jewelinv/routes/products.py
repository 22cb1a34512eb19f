from __future__ import annotations

from datetime import datetime, timezone

from flask import Blueprint, Response, jsonify, request

from jewelinv.security import require_admin, require_staff
from jewelinv.services import exporters, ledger, products, reports
from jewelinv.utils.business_time import resolve_date_range

bp = Blueprint("products", __name__, url_prefix="/api/products")


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _export_range():
    return resolve_date_range(
        request.args.get("range"),
        request.args.get("start"),
        request.args.get("end"),
    )


def _attachment(content: bytes, mimetype: str, filename: str) -> Response:
    return Response(
        content,
        mimetype=mimetype,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


def _export_stamp() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


############################
# WRITES
############################
@bp.post("/add")
@require_staff
def add_product():
    product = products.create_product_from_payload(_json_body())
    return jsonify({"message": "Product added successfully", "product": product.to_dict()}), 201


@bp.put("/update/<int:product_id>")
@require_staff
def update_product(product_id: int):
    payload = _json_body()
    result = ledger.apply_movement(
        product_id,
        add_qty=payload.get("addQty", 0),
        sell_qty=payload.get("sellQty", 0),
        remarks=payload.get("remarks"),
    )
    return jsonify(
        {
            "message": "Product updated successfully",
            "product": result.product.to_dict(),
            "transaction": result.transaction_log.to_dict(),
        }
    )


@bp.put("/soft-delete/<int:product_id>")
@require_admin
def soft_delete(product_id: int):
    product = products.soft_delete_product(product_id)
    return jsonify({"message": "Product archived successfully", "product": product.to_dict()})


@bp.put("/restore/<int:product_id>")
@require_admin
def restore(product_id: int):
    product = products.restore_product(product_id)
    return jsonify({"message": "Product restored successfully", "product": product.to_dict()})


@bp.delete("/delete/<int:product_id>")
@require_admin
def hard_delete(product_id: int):
    products.hard_delete_product(product_id)
    return jsonify({"message": "Product permanently deleted"})


############################
# READS (public)
############################
@bp.get("/")
def list_active():
    return jsonify([p.to_dict() for p in products.list_products(products.STATUS_ACTIVE)])


@bp.get("/archived")
def list_archived():
    return jsonify([p.to_dict() for p in products.list_products(products.STATUS_ARCHIVED)])


@bp.get("/all")
def list_all():
    return jsonify([p.to_dict() for p in products.list_products(products.STATUS_ALL)])


@bp.get("/low-stock")
def list_low_stock():
    return jsonify([p.to_dict() for p in products.low_stock_products()])


@bp.get("/<int:product_id>")
def product_detail(product_id: int):
    return jsonify(products.get_product(product_id).to_dict())


@bp.get("/<int:product_id>/history")
@require_staff
def product_history(product_id: int):
    logs = ledger.product_history(product_id)
    return jsonify([log.to_dict() for log in logs])


############################
# EXPORTS
############################
@bp.get("/export")
@require_staff
def export_xlsx():
    rows = reports.require_export_rows(_export_range())
    return _attachment(
        exporters.render_xlsx(rows),
        exporters.XLSX_MIMETYPE,
        f"inventory_export_{_export_stamp()}.xlsx",
    )


@bp.get("/export/pdf")
@require_staff
def export_pdf():
    date_range = _export_range()
    rows = reports.require_export_rows(date_range, descending=True)
    return _attachment(
        exporters.render_pdf(rows, title="Inventory Report", range_label=date_range.label),
        exporters.PDF_MIMETYPE,
        f"inventory_report_{_export_stamp()}.pdf",
    )
