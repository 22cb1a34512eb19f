"""Render export rows as Excel workbooks and PDF reports."""

from __future__ import annotations

import io
from typing import Iterable, Sequence

from openpyxl import Workbook
from openpyxl.styles import Font
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from jewelinv.services.reports import ExportRow
from jewelinv.utils.business_time import to_business_time

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
PDF_MIMETYPE = "application/pdf"

SHEET_TITLE = "Inventory Data"
EXPORT_HEADERS = (
    "SKU",
    "Name",
    "Opening",
    "Added",
    "Sold",
    "Closing",
    "Remarks",
    "Archived",
    "Date",
)

# x offsets (points) for the PDF table columns.
PDF_COLUMNS: Sequence[tuple[str, int]] = (
    ("SKU", 40),
    ("Name", 90),
    ("Open", 250),
    ("Added", 295),
    ("Sold", 340),
    ("Close", 385),
    ("Arch.", 430),
    ("Date", 470),
)
PDF_ROW_HEIGHT = 16
PDF_MARGIN = 40


def _format_timestamp(value) -> str:
    local = to_business_time(value)
    return local.strftime("%Y-%m-%d %H:%M") if local else ""


def _row_values(row: ExportRow) -> list:
    return [
        row.sku,
        row.name,
        row.opening,
        row.added,
        row.sold,
        row.closing,
        row.remarks,
        "Yes" if row.archived else "No",
        _format_timestamp(row.timestamp),
    ]


def render_xlsx(rows: Iterable[ExportRow]) -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = SHEET_TITLE
    sheet.append(list(EXPORT_HEADERS))
    for cell in sheet[1]:
        cell.font = Font(bold=True)

    for row in rows:
        sheet.append(_row_values(row))

    sheet.column_dimensions["B"].width = 32
    sheet.column_dimensions["G"].width = 40
    sheet.column_dimensions["I"].width = 18

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def _clip(text: str, limit: int) -> str:
    text = text or ""
    return text if len(text) <= limit else text[: limit - 3] + "..."


def _draw_table_header(pdf: canvas.Canvas, width: float, y: float) -> float:
    pdf.setFillColor(colors.lightgrey)
    pdf.rect(PDF_MARGIN - 4, y - 5, width - 2 * PDF_MARGIN + 8, 18, fill=1, stroke=0)
    pdf.setFillColor(colors.black)
    pdf.setFont("Helvetica-Bold", 9)
    for label, x in PDF_COLUMNS:
        pdf.drawString(x, y, label)
    pdf.setFont("Helvetica", 9)
    return y - PDF_ROW_HEIGHT - 4


def render_pdf(rows: Iterable[ExportRow], *, title: str, range_label: str) -> bytes:
    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4)
    width, height = A4

    y = height - PDF_MARGIN
    pdf.setFont("Helvetica-Bold", 16)
    pdf.drawCentredString(width / 2, y, title)
    y -= 20
    pdf.setFont("Helvetica", 10)
    pdf.drawString(PDF_MARGIN, y, f"Range: {range_label}")
    y -= 28
    y = _draw_table_header(pdf, width, y)

    for row in rows:
        if y < PDF_MARGIN:
            pdf.showPage()
            y = _draw_table_header(pdf, width, height - PDF_MARGIN)

        values = (
            row.sku,
            _clip(row.name, 28),
            str(row.opening),
            str(row.added),
            str(row.sold),
            str(row.closing),
            "Yes" if row.archived else "No",
            _format_timestamp(row.timestamp),
        )
        for (_, x), value in zip(PDF_COLUMNS, values):
            pdf.drawString(x, y, value)
        y -= PDF_ROW_HEIGHT

    pdf.save()
    return buffer.getvalue()
