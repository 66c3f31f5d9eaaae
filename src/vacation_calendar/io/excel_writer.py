"""Excel export of a month availability view."""

from __future__ import annotations

from pathlib import Path

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from vacation_calendar.models.availability import AvailabilityStatus, MonthView

_WEEKDAYS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]

_STATUS_FILLS = {
    AvailabilityStatus.AVAILABLE: PatternFill("solid", fgColor="99FF99"),
    AvailabilityStatus.FULL: PatternFill("solid", fgColor="FFFF99"),
    AvailabilityStatus.OVER: PatternFill("solid", fgColor="FF9999"),
}

SUMMARY_SHEET = "Availability"
REQUESTS_SHEET = "Requests"


def write_month_report(filepath: str | Path, view: MonthView) -> Path:
    """Write the month view to an xlsx workbook and return its path."""
    filepath = Path(filepath)
    wb = Workbook()

    _write_summary_sheet(wb.active, view)
    _write_requests_sheet(wb, view)

    wb.save(str(filepath))
    return filepath


def _write_summary_sheet(ws, view: MonthView) -> None:
    ws.title = SUMMARY_SHEET

    header_font = Font(bold=True, size=11, name="Arial")
    center = Alignment(horizontal="center", vertical="center")
    border = Border(
        left=Side(style="thin"),
        right=Side(style="thin"),
        top=Side(style="thin"),
        bottom=Side(style="thin"),
    )
    blue_fill = PatternFill("solid", fgColor="DAEEF3")
    weekend_font = Font(color="FF0000", name="Arial")

    ws.cell(row=1, column=1, value=f"Time off {view.month_key} ({view.role.value})")
    ws.cell(row=1, column=1).font = Font(bold=True, size=14, name="Arial")

    headers = ["Date", "Day", "Count", "Limit", "Remaining", "Status"]
    for col_idx, label in enumerate(headers, 1):
        cell = ws.cell(row=3, column=col_idx, value=label)
        cell.font = header_font
        cell.fill = blue_fill
        cell.alignment = center
        cell.border = border

    for offset, day in enumerate(view.days):
        row_num = 4 + offset
        weekday = day.date.weekday()
        values = [
            day.date.isoformat(),
            _WEEKDAYS[weekday],
            day.effective_count,
            day.effective_limit,
            day.remaining,
            day.status.value,
        ]
        for col_idx, value in enumerate(values, 1):
            cell = ws.cell(row=row_num, column=col_idx, value=value)
            cell.alignment = center
            cell.border = border
        if weekday >= 5:
            ws.cell(row=row_num, column=2).font = weekend_font
        ws.cell(row=row_num, column=6).fill = _STATUS_FILLS[day.status]

    ws.column_dimensions["A"].width = 12
    for col_idx in range(2, len(headers) + 1):
        ws.column_dimensions[get_column_letter(col_idx)].width = 10


def _write_requests_sheet(wb: Workbook, view: MonthView) -> None:
    ws = wb.create_sheet(REQUESTS_SHEET)

    header_font = Font(bold=True, size=11, name="Arial")
    headers = ["Date", "Name", "Role", "Kind", "Status", "Reason"]
    for col, header in enumerate(headers, 1):
        ws.cell(row=1, column=col, value=header).font = header_font

    row = 1
    for day in view.days:
        for request in day.requests:
            row += 1
            kind = getattr(request.kind, "value", request.kind)
            ws.cell(row=row, column=1, value=request.date.isoformat())
            ws.cell(row=row, column=2, value=request.requester_name)
            ws.cell(row=row, column=3, value=request.role.value)
            ws.cell(row=row, column=4, value=kind)
            ws.cell(row=row, column=5, value=request.status.value)
            ws.cell(row=row, column=6, value=request.display_reason)

    ws.column_dimensions["A"].width = 12
    ws.column_dimensions["B"].width = 18
    ws.column_dimensions["F"].width = 40
