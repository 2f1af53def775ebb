# exports/views.py
import csv
import logging
from datetime import datetime
from io import BytesIO, StringIO
from typing import Any, Dict, List, Optional, Sequence
from xml.sax.saxutils import escape

from flask import Blueprint, Response, current_app, jsonify, request
from flask_login import login_required
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from reportlab.lib import colors
from reportlab.lib.enums import TA_LEFT
from reportlab.lib.pagesizes import letter, landscape
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.pdfgen import canvas
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer

from utilities.database import db, Asset, AssetHistory, Category
from utilities.metrics import (
    scrapped_summary,
    stock_summary,
    utilization_report_rows,
    utilization_summary,
    HIGH_UTILIZATION,
    LOW_UTILIZATION,
)
from utilities.view_helpers import json_error, parse_int

exports_bp = Blueprint("exports", __name__)
logger = logging.getLogger("assetdesk.exports")

REPORT_KINDS = ("scrapped", "utilization", "stock")
FORMATS = ("pdf", "csv", "xlsx")

BRAND_BLUE = colors.HexColor("#2563eb")
LIGHT_GRAY = colors.HexColor("#f8fafc")
BORDER_GRAY = colors.HexColor("#e0e0e0")
TEXT_DARK = colors.HexColor("#212529")
TEXT_MUTED = colors.HexColor("#6c757d")
HIGH_GREEN = colors.HexColor("#16a34a")
LOW_RED = colors.HexColor("#dc2626")


def _money(value: float) -> str:
    return f"${value:,.2f}"


# --- Report rows ---
def _scrap_dates() -> Dict[int, datetime]:
    """Asset id -> when it was scrapped, read from the lifecycle ledger."""
    rows = (
        db.session.query(AssetHistory.asset_id, db.func.max(AssetHistory.action_date))
        .filter(AssetHistory.action == "scrapped")
        .group_by(AssetHistory.asset_id)
        .all()
    )
    return {asset_id: scrapped_at for asset_id, scrapped_at in rows}


def scrapped_report():
    scrapped_at = _scrap_dates()
    assets = Asset.query.filter(Asset.status == "scrapped").all()
    assets.sort(key=lambda a: scrapped_at.get(a.id) or a.updated_at, reverse=True)
    summary = scrapped_summary(assets)
    rows = [
        {
            "Code": a.asset_code,
            "Name": a.name,
            "Category": a.category.name if a.category else "N/A",
            "Serial": a.serial_number,
            "Make/Model": f"{a.make} {a.model}",
            "Purchase Date": a.purchase_date.isoformat(),
            "Value": _money(float(a.purchase_price)),
            "Branch": a.branch,
            "Scrapped Date": (scrapped_at.get(a.id) or a.updated_at).date().isoformat(),
        }
        for a in assets
    ]
    lines = [
        f"Total Scrapped Assets: {summary['total_scrapped']}",
        f"Total Original Value: {_money(summary['total_original_value'])}",
    ]
    return "Scrapped Assets Report", rows, lines


def utilization_report():
    data = utilization_report_rows(Asset.query.order_by(Asset.asset_code.asc()).all(), Category.query.all())
    summary = utilization_summary(data)
    rows = [
        {
            "Code": r["asset_code"],
            "Name": r["name"],
            "Category": r["category"],
            "Status": r["status"],
            "Value": _money(r["purchase_price"]),
            "Total Days": r["total_days"],
            "Assigned Days": r["assigned_days"],
            "Utilization": f"{r['utilization_rate']}%",
        }
        for r in data
    ]
    lines = [
        f"Total Assets: {summary['total_assets']}",
        f"Total Value: {_money(summary['total_value'])}",
        f"Average Utilization: {summary['average_utilization']}%",
        f"High Utilization (>= {HIGH_UTILIZATION}%): {summary['high_utilization']} assets",
        f"Low Utilization (< {LOW_UTILIZATION}%): {summary['low_utilization']} assets",
    ]
    return "Asset Utilization Report", rows, lines


def stock_report(branch: Optional[str] = None, category_id: Optional[int] = None):
    summary = stock_summary(
        Asset.query.filter(Asset.status != "scrapped").all(),
        current_app.config["BRANCHES"],
        Category.query.order_by(Category.name.asc()).all(),
        branch=branch,
        category_id=category_id,
        non_empty_only=True,
    )
    rows = [
        {
            "Branch": r["branch"],
            "Category": r["category"],
            "Available": r["available"],
            "Assigned": r["assigned"],
            "Repair": r["repair"],
            "Value": _money(r["value"]),
        }
        for r in summary["rows"]
    ]
    totals = summary["totals"]
    lines = [
        f"Total Available: {totals['available']}",
        f"Total Assigned: {totals['assigned']}",
        f"Total In Repair: {totals['repair']}",
        f"Total Value: {_money(totals['value'])}",
    ]
    return "Stock Summary Report", rows, lines


def build_report(kind: str):
    if kind == "scrapped":
        return scrapped_report()
    if kind == "utilization":
        return utilization_report()
    return stock_report(
        branch=(request.args.get("branch") or "").strip() or None,
        category_id=parse_int(request.args.get("category_id")),
    )


# --- Renderers ---
def generate_csv(data: List[Dict[str, Any]], filename: str) -> Response:
    """Generate CSV file from data"""
    output = StringIO()
    if data:
        writer = csv.DictWriter(output, fieldnames=list(data[0].keys()))
        writer.writeheader()
        writer.writerows(data)

    response = Response(output.getvalue(), mimetype="text/csv")
    response.headers["Content-Disposition"] = f"attachment; filename={filename}"
    return response


def generate_excel(data: List[Dict[str, Any]], filename: str, title: str = "Report") -> Response:
    """Generate Excel file from data"""
    wb = Workbook()
    ws = wb.active
    ws.title = title[:31]

    headers = list(data[0].keys()) if data else []
    for col_num, header in enumerate(headers, 1):
        cell = ws.cell(row=1, column=col_num, value=header)
        cell.font = Font(bold=True, color="FFFFFF")
        cell.fill = PatternFill(start_color="2563EB", end_color="2563EB", fill_type="solid")

    for row_num, row_data in enumerate(data, 2):
        for col_num, header in enumerate(headers, 1):
            ws.cell(row=row_num, column=col_num, value=row_data.get(header, ""))

    # Auto-size columns
    for column in ws.columns:
        max_length = max(len(str(cell.value)) if cell.value is not None else 0 for cell in column)
        ws.column_dimensions[column[0].column_letter].width = min(max_length + 2, 50)

    output = BytesIO()
    wb.save(output)
    response = Response(
        output.getvalue(),
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )
    response.headers["Content-Disposition"] = f"attachment; filename={filename}"
    return response


class NumberedCanvas(canvas.Canvas):
    """Canvas that stamps "Page i of n" once the page count is known."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._saved_page_states = []

    def showPage(self):
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        page_count = len(self._saved_page_states)
        for state in self._saved_page_states:
            self.__dict__.update(state)
            self._draw_page_number(page_count)
            super().showPage()
        super().save()

    def _draw_page_number(self, page_count: int):
        width, _ = self._pagesize
        self.setFont("Helvetica", 8)
        self.setFillColor(TEXT_MUTED)
        self.drawCentredString(width / 2, 0.3 * inch, f"Page {self._pageNumber} of {page_count}")


def render_pdf(title: str, data: List[Dict[str, Any]], summary_lines: Sequence[str] = ()) -> bytes:
    """Render rows as a paginated landscape table with a summary block."""
    output = BytesIO()
    doc = SimpleDocTemplate(
        output,
        pagesize=landscape(letter),
        topMargin=0.5 * inch,
        bottomMargin=0.6 * inch,
        leftMargin=0.5 * inch,
        rightMargin=0.5 * inch,
        title=title,
    )
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "ReportTitle", parent=styles["Normal"], fontSize=20, leading=24,
        textColor=TEXT_DARK, fontName="Helvetica-Bold", alignment=TA_LEFT, spaceAfter=4,
    )
    meta_style = ParagraphStyle(
        "ReportMeta", parent=styles["Normal"], fontSize=10,
        textColor=TEXT_MUTED, alignment=TA_LEFT, spaceAfter=10,
    )
    summary_style = ParagraphStyle(
        "ReportSummary", parent=styles["Normal"], fontSize=12, leading=16, textColor=TEXT_DARK,
    )
    cell_style = ParagraphStyle(
        "CellText", parent=styles["Normal"], fontSize=8, leading=10, textColor=TEXT_DARK,
    )
    header_cell_style = ParagraphStyle(
        "HeaderCellText", parent=styles["Normal"], fontSize=8, leading=10,
        textColor=colors.white, fontName="Helvetica-Bold",
    )

    elements = [
        Paragraph(escape(title), title_style),
        Paragraph(f"Generated on: {datetime.now().strftime('%B %d, %Y at %I:%M %p')}", meta_style),
    ]
    elements.extend(Paragraph(escape(line), summary_style) for line in summary_lines)
    elements.append(Spacer(1, 0.2 * inch))

    if not data:
        elements.append(Paragraph("No records to report.", meta_style))
    else:
        headers = list(data[0].keys())
        high_style = ParagraphStyle("HighCellText", parent=cell_style, textColor=HIGH_GREEN)
        low_style = ParagraphStyle("LowCellText", parent=cell_style, textColor=LOW_RED)

        def _cell(header: str, value: Any) -> Paragraph:
            text = "-" if value in (None, "") else escape(str(value))
            # Colour the utilization column the way the dashboard does
            if header == "Utilization":
                rate = int(text.rstrip("%") or 0)
                if rate >= HIGH_UTILIZATION:
                    return Paragraph(text, high_style)
                if rate < LOW_UTILIZATION:
                    return Paragraph(text, low_style)
            return Paragraph(text, cell_style)

        table_data = [[Paragraph(escape(str(h)), header_cell_style) for h in headers]]
        for row in data:
            table_data.append([_cell(h, row.get(h)) for h in headers])

        available_width = landscape(letter)[0] - (doc.leftMargin + doc.rightMargin)
        table = Table(table_data, colWidths=[available_width / len(headers)] * len(headers), repeatRows=1)
        table.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, 0), BRAND_BLUE),
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ("TOPPADDING", (0, 0), (-1, -1), 4),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
            ("GRID", (0, 0), (-1, -1), 0.5, BORDER_GRAY),
            ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, LIGHT_GRAY]),
        ]))
        elements.append(table)

    doc.build(elements, canvasmaker=NumberedCanvas)
    return output.getvalue()


def generate_pdf(data: List[Dict[str, Any]], filename: str, title: str = "Report",
                 summary_lines: Sequence[str] = ()) -> Response:
    response = Response(render_pdf(title, data, summary_lines), mimetype="application/pdf")
    response.headers["Content-Disposition"] = f"attachment; filename={filename}"
    return response


# --- Routes ---
@exports_bp.get("/<kind>.<fmt>")
@login_required
def export_report(kind: str, fmt: str):
    if kind not in REPORT_KINDS:
        return json_error("Invalid report type", 400)
    if fmt not in FORMATS:
        return json_error("Invalid export format", 400)

    title, rows, lines = build_report(kind)
    filename = f"{kind}-assets-report.{fmt}" if kind == "scrapped" else f"asset-{kind}-report.{fmt}"
    logger.info("Exporting %s report as %s (%d rows)", kind, fmt, len(rows))

    if fmt == "csv":
        return generate_csv(rows, filename)
    if fmt == "xlsx":
        return generate_excel(rows, filename, title)
    return generate_pdf(rows, filename, title, lines)


@exports_bp.get("/preview/<kind>")
@login_required
def preview_export(kind: str):
    """Return preview data for an export (first 20 rows)"""
    if kind not in REPORT_KINDS:
        return json_error("Invalid report type", 400)

    title, rows, lines = build_report(kind)
    return jsonify({
        "kind": kind,
        "title": title,
        "summary": list(lines),
        "total_count": len(rows),
        "preview_count": min(len(rows), 20),
        "headers": list(rows[0].keys()) if rows else [],
        "rows": rows[:20],
    })
