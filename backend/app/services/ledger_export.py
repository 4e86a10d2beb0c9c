"""
Spreadsheet export of a client ledger.

Renders a LedgerResponse into an .xlsx workbook with a "Transactions"
sheet (one row per entry, newest first, with its running balance) and a
"Summary" sheet built from the client aggregate.
"""

import io
import re
from datetime import date, datetime
from enum import Enum
from typing import Any, List, Optional

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from backend.app.schemas.ledger import DateRange, LedgerResponse


XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

MONEY_FORMAT = "#,##0.00"

TRANSACTION_COLUMNS = [
    {"key": "serial", "header": "S.No", "width": 8},
    {"key": "transaction_date", "header": "Date", "width": 12},
    {"key": "sheet_name", "header": "Sheet", "width": 14},
    {"key": "container_code", "header": "Container", "width": 14},
    {"key": "particulars", "header": "Particulars", "width": 32},
    {"key": "kind", "header": "Type", "width": 11},
    {"key": "amount", "header": "Amount", "width": 14, "numeric": True},
    {"key": "paid", "header": "Paid", "width": 14, "numeric": True},
    {"key": "entry_balance", "header": "Balance", "width": 14, "numeric": True},
    {"key": "running_balance", "header": "Running Balance", "width": 16, "numeric": True},
    {"key": "payment_mode", "header": "Payment Mode", "width": 14},
    {"key": "payment_date", "header": "Payment Date", "width": 13},
    {"key": "reference", "header": "Reference", "width": 16},
    {"key": "notes", "header": "Notes", "width": 30},
]

HEADER_FONT = Font(bold=True, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
HEADER_ALIGNMENT = Alignment(horizontal="center", vertical="center", wrap_text=True)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)


def cell_value(value: Any) -> Any:
    """Keep numbers and dates native; enums become their value, None an empty cell."""
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    return value


def export_filename(client_name: str, today: Optional[date] = None) -> str:
    today = today or date.today()
    # Header-safe: spaces and anything outside [A-Za-z0-9_-] become underscores
    safe_name = re.sub(r"[^A-Za-z0-9_-]+", "_", client_name.strip()).strip("_") or "client"
    return f"{safe_name}_ledger_{today.isoformat()}.xlsx"


def period_label(date_range: Optional[DateRange]) -> str:
    start = date_range.start_date if date_range else None
    end = date_range.end_date if date_range else None
    return f"{start.isoformat() if start else 'All'} to {end.isoformat() if end else 'Now'}"


def _write_transactions(ws, ledger: LedgerResponse) -> None:
    columns = TRANSACTION_COLUMNS

    # Title and export timestamp, each merged across the table
    ws.merge_cells(start_row=1, start_column=1, end_row=1, end_column=len(columns))
    title_cell = ws.cell(row=1, column=1, value=f"{ledger.client.name} - Ledger")
    title_cell.font = Font(bold=True, size=14)
    title_cell.alignment = Alignment(horizontal="center")

    ws.merge_cells(start_row=2, start_column=1, end_row=2, end_column=len(columns))
    stamp = ws.cell(row=2, column=1, value=f"Exported: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    stamp.alignment = Alignment(horizontal="center")
    stamp.font = Font(italic=True, size=10, color="666666")

    header_row = 4
    for col_idx, col in enumerate(columns, 1):
        cell = ws.cell(row=header_row, column=col_idx, value=col["header"])
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = HEADER_ALIGNMENT
        cell.border = THIN_BORDER
        ws.column_dimensions[get_column_letter(col_idx)].width = col.get("width", 15)

    for serial, entry in enumerate(ledger.transactions, 1):
        row = entry.model_dump()
        row["serial"] = serial
        row_idx = header_row + serial
        for col_idx, col in enumerate(columns, 1):
            cell = ws.cell(row=row_idx, column=col_idx, value=cell_value(row.get(col["key"])))
            cell.border = THIN_BORDER
            if col.get("numeric"):
                cell.number_format = MONEY_FORMAT
                cell.alignment = Alignment(horizontal="right")
            elif isinstance(cell.value, date):
                cell.number_format = "yyyy-mm-dd"

    ws.freeze_panes = ws.cell(row=header_row + 1, column=1)


def _write_summary(ws, ledger: LedgerResponse, date_range: Optional[DateRange]) -> None:
    client = ledger.client
    rows: List[tuple] = [
        ("Client Name", client.name),
        ("Company", client.company_name),
        ("Location", client.city),
        ("Period", period_label(date_range)),
        ("Total Charged", ledger.summary.total_charged),
        ("Total Paid", ledger.summary.total_paid),
        ("Balance", ledger.summary.balance),
        ("Total Transactions", ledger.summary.total_transactions),
        ("Exported Transactions", len(ledger.transactions)),
        ("Generated Date", datetime.now().strftime("%Y-%m-%d %H:%M:%S")),
    ]

    ws.column_dimensions["A"].width = 22
    ws.column_dimensions["B"].width = 30
    for row_idx, (label, value) in enumerate(rows, 1):
        label_cell = ws.cell(row=row_idx, column=1, value=label)
        label_cell.font = Font(bold=True)
        label_cell.border = THIN_BORDER
        value_cell = ws.cell(row=row_idx, column=2, value=cell_value(value))
        value_cell.border = THIN_BORDER
        if label in ("Total Charged", "Total Paid", "Balance"):
            value_cell.number_format = MONEY_FORMAT


def export_ledger_to_excel(ledger: LedgerResponse, date_range: Optional[DateRange] = None) -> bytes:
    """
    Render a full ledger into an .xlsx workbook.

    Money cells are written as numbers so the sheet can be summed; the
    summary figures come from the client aggregate, not from the rows.

    Returns:
        Bytes of the Excel file
    """
    wb = Workbook()
    transactions_sheet = wb.active
    transactions_sheet.title = "Transactions"
    _write_transactions(transactions_sheet, ledger)
    _write_summary(wb.create_sheet("Summary"), ledger, date_range)

    output = io.BytesIO()
    wb.save(output)
    output.seek(0)
    return output.getvalue()
