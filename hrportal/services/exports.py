from __future__ import annotations

from datetime import datetime
from io import BytesIO

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from hrportal.models import Attendance
from hrportal.services.attendance import MonthlyHistory
from hrportal.services.clock import to_local

DAILY_HEADERS = [
    "Date",
    "Check-in",
    "Check-out",
    "Method",
    "Working Hours",
    "Overtime Hours",
    "Project Hours",
    "Status",
    "Location Valid",
    "Notes",
]

HEADER_FILL = PatternFill(fill_type="solid", fgColor="0B4F73")
META_LABEL_FILL = PatternFill(fill_type="solid", fgColor="EAF4F9")
META_VALUE_FILL = PatternFill(fill_type="solid", fgColor="F8FCFF")
ZEBRA_FILL = PatternFill(fill_type="solid", fgColor="F7FBFE")
WARNING_FILL = PatternFill(fill_type="solid", fgColor="FFF3CD")
ALERT_FILL = PatternFill(fill_type="solid", fgColor="FDE2E4")
SUCCESS_FILL = PatternFill(fill_type="solid", fgColor="E6F4EA")
SUMMARY_FILL = PatternFill(fill_type="solid", fgColor="E9F1F7")

HEADER_FONT = Font(bold=True, color="FFFFFF")
BOLD_FONT = Font(bold=True, color="0F172A")
TITLE_FONT = Font(bold=True, color="0B4F73", size=14)
MUTED_FONT = Font(color="334155")

THIN_SIDE = Side(style="thin", color="D5E2EC")
THIN_BORDER = Border(left=THIN_SIDE, right=THIN_SIDE, top=THIN_SIDE, bottom=THIN_SIDE)

_WARNING_STATUSES = {"late", "early_leave", "incomplete", "absent"}


def _local_hhmm(value: datetime | None) -> str:
    if value is None:
        return "-"
    return to_local(value).strftime("%H:%M")


def _style_header(ws: Worksheet, row: int = 1) -> None:
    for cell in ws[row]:
        if cell.value is None:
            continue
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
        cell.border = THIN_BORDER


def _auto_width(ws: Worksheet) -> None:
    for column_cells in ws.iter_cols(min_row=1, max_row=ws.max_row, min_col=1, max_col=ws.max_column):
        max_len = 0
        col_letter = get_column_letter(column_cells[0].column)
        for cell in column_cells:
            if cell.coordinate in ws.merged_cells:
                continue
            value = "" if cell.value is None else str(cell.value)
            max_len = max(max_len, len(value))
        ws.column_dimensions[col_letter].width = min(max_len + 2, 45)


def _merge_title(ws: Worksheet, row: int, text: str) -> None:
    ws.merge_cells(start_row=row, start_column=1, end_row=row, end_column=len(DAILY_HEADERS))
    cell = ws.cell(row=row, column=1, value=text)
    cell.font = TITLE_FONT
    cell.alignment = Alignment(horizontal="left", vertical="center")


def _style_metadata_rows(ws: Worksheet, *, start_row: int, end_row: int) -> None:
    for row_idx in range(start_row, end_row + 1):
        label_cell = ws.cell(row=row_idx, column=1)
        value_cell = ws.cell(row=row_idx, column=2)
        label_cell.font = BOLD_FONT
        label_cell.fill = META_LABEL_FILL
        label_cell.border = THIN_BORDER
        value_cell.font = MUTED_FONT
        value_cell.fill = META_VALUE_FILL
        value_cell.border = THIN_BORDER


def _daily_row(record: Attendance, project_hours: float) -> list[object]:
    notes = " / ".join(item for item in (record.check_in_notes, record.check_out_notes, record.admin_notes) if item)
    return [
        record.work_date.isoformat(),
        _local_hhmm(record.check_in),
        _local_hhmm(record.check_out),
        record.check_in_method.value,
        round(record.working_hours or 0.0, 2),
        round(record.overtime_hours or 0.0, 2),
        project_hours,
        record.status.value,
        "yes" if record.is_location_valid else "no",
        notes or "-",
    ]


def _style_daily_rows(ws: Worksheet, *, start_row: int, end_row: int) -> None:
    status_col = DAILY_HEADERS.index("Status") + 1
    overtime_col = DAILY_HEADERS.index("Overtime Hours") + 1
    location_col = DAILY_HEADERS.index("Location Valid") + 1

    for row_idx in range(start_row, end_row + 1):
        status_value = ws.cell(row=row_idx, column=status_col).value
        if status_value in _WARNING_STATUSES:
            row_fill = WARNING_FILL
        elif row_idx % 2 == 0:
            row_fill = ZEBRA_FILL
        else:
            row_fill = PatternFill(fill_type=None)

        for col_idx in range(1, len(DAILY_HEADERS) + 1):
            cell = ws.cell(row=row_idx, column=col_idx)
            cell.border = THIN_BORDER
            if row_fill.fill_type:
                cell.fill = row_fill
            if isinstance(cell.value, (int, float)):
                cell.alignment = Alignment(horizontal="center", vertical="center")

        overtime_cell = ws.cell(row=row_idx, column=overtime_col)
        if overtime_cell.value not in {None, 0, 0.0}:
            overtime_cell.fill = SUCCESS_FILL
            overtime_cell.font = Font(bold=True, color="166534")

        location_cell = ws.cell(row=row_idx, column=location_col)
        if location_cell.value == "no":
            location_cell.fill = ALERT_FILL
            location_cell.font = Font(bold=True, color="9F1239")


def _append_summary_area(ws: Worksheet, history: MonthlyHistory) -> None:
    summary = history.summary
    ws.append([])
    summary_start = ws.max_row + 1
    ws.append(["Summary", "Value"])
    ws.append(["Working Days", summary.working_days])
    ws.append(["Present Days", summary.present_days])
    ws.append(["Late Days", summary.late_days])
    ws.append(["Early Leave Days", summary.early_leave_days])
    ws.append(["Incomplete Days", summary.incomplete_days])
    ws.append(["Absent Days", summary.absent_days])
    ws.append(["Total Hours", summary.total_hours])
    ws.append(["Overtime Hours", summary.overtime_hours])
    ws.append(["Project Hours", history.project_hours_total])
    ws.append(["Attendance Rate (%)", summary.attendance_rate])
    _style_header(ws, summary_start)

    for row_idx in range(summary_start + 1, ws.max_row + 1):
        label_cell = ws.cell(row=row_idx, column=1)
        value_cell = ws.cell(row=row_idx, column=2)
        label_cell.fill = SUMMARY_FILL
        label_cell.border = THIN_BORDER
        label_cell.font = BOLD_FONT
        value_cell.border = THIN_BORDER
        value_cell.alignment = Alignment(horizontal="center", vertical="center")


def build_monthly_history_xlsx_bytes(history: MonthlyHistory) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = f"{history.year}-{history.month:02d}"

    _merge_title(ws, 1, f"Attendance history {history.year}-{history.month:02d}")
    ws.append(["Employee", history.user.full_name])
    ws.append(["Department", history.user.department or "-"])
    ws.append(["Position", history.user.position or "-"])
    _style_metadata_rows(ws, start_row=2, end_row=4)

    ws.append([])
    header_row = ws.max_row + 1
    ws.append(DAILY_HEADERS)
    _style_header(ws, header_row)

    project_hours_by_day = dict(history.project_hours)
    for record in history.records:
        ws.append(_daily_row(record, project_hours_by_day.get(record.work_date, 0.0)))
    data_end_row = ws.max_row
    _style_daily_rows(ws, start_row=header_row + 1, end_row=data_end_row)
    ws.freeze_panes = f"A{header_row + 1}"

    _append_summary_area(ws, history)
    _auto_width(ws)

    stream = BytesIO()
    wb.save(stream)
    return stream.getvalue()
