"""
Export of displayed tables.

Exports serialize exactly the DataFrame a page shows, in the column order
that page declares in ``config.EXPORT_COLUMNS``.
"""

import io
import logging

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .config import EXPORT_COLUMNS, PDF_TITLES

logger = logging.getLogger(__name__)

EXPORT_FORMATS = {
    "csv": "text/csv",
    "json": "application/json",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "pdf": "application/pdf",
}


def _ordered(df: pd.DataFrame, table: str | None) -> pd.DataFrame:
    if table is None:
        return df
    columns = EXPORT_COLUMNS[table]
    missing = [col for col in columns if col not in df.columns]
    if missing:
        raise ValueError(f"Table '{table}' is missing export columns: {missing}")
    return df[columns]


def to_csv_bytes(df: pd.DataFrame, table: str | None = None) -> bytes:
    return _ordered(df, table).to_csv(index=False).encode("utf-8")


def to_json_bytes(df: pd.DataFrame, table: str | None = None) -> bytes:
    return _ordered(df, table).to_json(orient="records", force_ascii=False, indent=2).encode("utf-8")


def to_xlsx_bytes(df: pd.DataFrame, table: str | None = None, sheet_name: str = "Export") -> bytes:
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        _ordered(df, table).to_excel(writer, sheet_name=sheet_name, index=False)
    return buffer.getvalue()


PDF_HEADER_FILL = colors.HexColor("#F8D966")


def pdf_rows(df: pd.DataFrame, table: str | None = None) -> list[list[str]]:
    """Header row followed by one row of cell text per displayed row."""
    ordered = _ordered(df, table)
    rows = [[str(col) for col in ordered.columns]]
    for row in ordered.itertuples(index=False):
        rows.append(["" if pd.isna(value) else str(value) for value in row])
    return rows


def to_pdf_bytes(df: pd.DataFrame, table: str | None = None, title: str | None = None) -> bytes:
    """Render the table as a landscape A4 report with a repeating header row."""
    title = title or PDF_TITLES.get(table, "Export")
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=landscape(A4), title=title)
    styles = getSampleStyleSheet()

    grid = Table(pdf_rows(df, table), repeatRows=1, hAlign="LEFT")
    grid.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), PDF_HEADER_FILL),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 9),
                ("ALIGN", (0, 0), (-1, -1), "LEFT"),
                ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
                ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ]
        )
    )
    doc.build([Paragraph(title, styles["Heading2"]), Spacer(1, 6), grid])
    return buffer.getvalue()


def export_table(df: pd.DataFrame, fmt: str, table: str | None = None) -> tuple[bytes, str]:
    """Serialize df as one of EXPORT_FORMATS.

    Returns
    -------
    (payload bytes, MIME type)
    """
    fmt = fmt.lower()
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format '{fmt}'")
    writer = {"csv": to_csv_bytes, "json": to_json_bytes, "xlsx": to_xlsx_bytes, "pdf": to_pdf_bytes}[fmt]
    payload = writer(df, table)
    logger.info("Exported %d rows as %s (%d bytes)", len(df), fmt, len(payload))
    return payload, EXPORT_FORMATS[fmt]
