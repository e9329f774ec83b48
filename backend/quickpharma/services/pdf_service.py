"""
PDF Report Rendering Service
Turns an aggregated report (KPIs plus tabular sections) into a PDF document
"""
from io import BytesIO
from datetime import datetime
from typing import Any, Dict, List

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

PAGE_WIDTH = 7.2 * inch
MAX_ROWS_PER_SECTION = 200


def _styles() -> Dict[str, ParagraphStyle]:
    styles = getSampleStyleSheet()
    return {
        "title": ParagraphStyle(
            'ReportTitle',
            parent=styles['Heading1'],
            fontSize=20,
            textColor=colors.HexColor('#0f766e'),
            alignment=TA_CENTER,
            spaceAfter=6
        ),
        "subtitle": ParagraphStyle(
            'ReportSubtitle',
            parent=styles['Normal'],
            fontSize=10,
            textColor=colors.HexColor('#4b5563'),
            alignment=TA_CENTER,
        ),
        "heading": ParagraphStyle(
            'ReportHeading',
            parent=styles['Heading2'],
            fontSize=13,
            textColor=colors.HexColor('#1f2937'),
            spaceBefore=10,
            spaceAfter=6
        ),
        "cell": ParagraphStyle(
            'ReportCell',
            parent=styles['Normal'],
            fontSize=8,
            leading=10,
            textColor=colors.HexColor('#374151')
        ),
        "footer": ParagraphStyle(
            'ReportFooter',
            parent=styles['Normal'],
            fontSize=8,
            textColor=colors.grey,
            alignment=TA_CENTER
        ),
    }


def _format(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, float):
        return f"{value:,.3f}"
    if isinstance(value, bool):
        return "Yes" if value else "No"
    return str(value)


def _kpi_table(kpis: List[tuple], style: ParagraphStyle) -> Table:
    rows = []
    for i in range(0, len(kpis), 2):
        row = []
        for label, value in kpis[i:i + 2]:
            row.append(Paragraph(f"<b>{label}</b>", style))
            row.append(Paragraph(_format(value), style))
        while len(row) < 4:
            row.append("")
        rows.append(row)

    table = Table(rows, colWidths=[1.9 * inch, 1.7 * inch, 1.9 * inch, 1.7 * inch])
    table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, -1), colors.HexColor('#f0fdfa')),
        ('BOX', (0, 0), (-1, -1), 0.5, colors.HexColor('#99f6e4')),
        ('TOPPADDING', (0, 0), (-1, -1), 5),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 5),
    ]))
    return table


def _section_table(columns: List[str], rows: List[list], style: ParagraphStyle) -> Table:
    header = [Paragraph(f"<b>{c}</b>", style) for c in columns]
    body = [[Paragraph(_format(v), style) for v in row] for row in rows[:MAX_ROWS_PER_SECTION]]
    width = PAGE_WIDTH / max(len(columns), 1)

    table = Table([header] + body, colWidths=[width] * len(columns), repeatRows=1)
    table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#f3f4f6')),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#fafafa')]),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('TOPPADDING', (0, 0), (-1, -1), 4),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 4),
    ]))
    return table


def render_report_pdf(report: Dict[str, Any]) -> bytes:
    """
    Render a report to PDF bytes.

    Args:
        report: {"title", "scope", "date_from", "date_to",
                 "kpis": [(label, value)], "sections": [{"heading", "columns", "rows"}]}

    Returns:
        The PDF document
    """
    buffer = BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4, topMargin=0.5*inch, bottomMargin=0.5*inch,
                            leftMargin=0.5*inch, rightMargin=0.5*inch, title=report["title"])
    styles = _styles()
    elements = []

    elements.append(Paragraph(report["title"], styles["title"]))
    elements.append(Paragraph(
        f"{report['scope']} | {report['date_from']} to {report['date_to']}", styles["subtitle"],
    ))
    elements.append(Spacer(1, 0.25*inch))

    if report.get("kpis"):
        elements.append(_kpi_table(report["kpis"], styles["cell"]))
        elements.append(Spacer(1, 0.2*inch))

    for section in report.get("sections", []):
        elements.append(Paragraph(section["heading"], styles["heading"]))
        if section["rows"]:
            elements.append(_section_table(section["columns"], section["rows"], styles["cell"]))
            if len(section["rows"]) > MAX_ROWS_PER_SECTION:
                elements.append(Paragraph(
                    f"Showing first {MAX_ROWS_PER_SECTION} of {len(section['rows'])} rows.", styles["footer"],
                ))
        else:
            elements.append(Paragraph("No data for this period.", styles["cell"]))
        elements.append(Spacer(1, 0.1*inch))

    elements.append(Spacer(1, 0.4*inch))
    elements.append(Paragraph("QuickPharmaPlus", styles["footer"]))
    elements.append(Paragraph(f"Report generated on {datetime.utcnow().strftime('%d %b %Y at %H:%M')} UTC",
                              styles["footer"]))

    doc.build(elements)
    return buffer.getvalue()
