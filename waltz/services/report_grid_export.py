"""
Report grid export.

Renders a resolved grid (definition + cells) as a styled Excel workbook:
one header row of column names, one row per subject, a second sheet
listing the column definitions.
"""

import io
import logging
from datetime import datetime, timezone

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from waltz.services.report_grid_types import GridDefinition, ReportGridCell

logger = logging.getLogger(__name__)

HEADER_FILL = PatternFill(start_color="354A5F", end_color="354A5F", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)

HEADER_ROW = 4


def _apply_header_style(ws, row: int, col_count: int) -> None:
    for col in range(1, col_count + 1):
        cell = ws.cell(row=row, column=col)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)


def _auto_width(ws) -> None:
    """Size columns to content, capped at 60 chars."""
    for col in ws.columns:
        longest = 0
        for cell in col:
            if cell.value is not None:
                longest = max(longest, min(len(str(cell.value)), 60))
        ws.column_dimensions[get_column_letter(col[0].column)].width = max(longest + 4, 12)


def cell_display_value(cell: ReportGridCell):
    """The value a spreadsheet cell shows for a grid cell."""
    if cell.text_value is not None:
        return cell.text_value
    if cell.number_value is not None:
        return cell.number_value
    if cell.option_text is not None:
        return cell.option_text
    if cell.date_time_value is not None:
        # Excel cannot store tz-aware datetimes
        return cell.date_time_value.replace(tzinfo=None)
    return None


def export_grid_xlsx(definition: GridDefinition, cells, subject_names: dict[int, str]) -> bytes:
    """Build the workbook for a resolved grid.

    Args:
        definition: Grid definition; fixed columns in position order form the header.
        cells: Resolved cells.
        subject_names: subject id → display name; every id becomes a row.

    Returns:
        XLSX file content.
    """
    columns = list(definition.fixed_columns)
    by_key = {cell.key: cell for cell in cells}
    subject_ids = sorted(
        set(subject_names) | {c.subject_id for c in cells},
        key=lambda sid: ((subject_names.get(sid) or "").lower(), sid),
    )

    wb = Workbook()
    ws = wb.active
    ws.title = "Grid"

    ws["A1"] = definition.name
    ws["A1"].font = Font(size=16, bold=True, color="354A5F")
    ws["A2"] = f"Generated: {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M UTC')}"
    ws["A2"].font = Font(size=10, italic=True, color="666666")

    headers = ["Subject", "Subject Id"] + [c.display_name or c.column_name or "" for c in columns]
    for i, header in enumerate(headers, 1):
        ws.cell(row=HEADER_ROW, column=i, value=header)
    _apply_header_style(ws, HEADER_ROW, len(headers))

    for row_i, subject_id in enumerate(subject_ids, HEADER_ROW + 1):
        ws.cell(row=row_i, column=1, value=subject_names.get(subject_id))
        ws.cell(row=row_i, column=2, value=subject_id)
        for col_i, column in enumerate(columns, 3):
            cell = by_key.get((subject_id, column.grid_column_id))
            if cell is None:
                continue
            target = ws.cell(row=row_i, column=col_i, value=cell_display_value(cell))
            if isinstance(target.value, str):
                # text starting with "=" stays text
                target.data_type = "s"
            elif isinstance(target.value, datetime):
                target.number_format = "yyyy-mm-dd"
    ws.freeze_panes = ws.cell(row=HEADER_ROW + 1, column=3)
    _auto_width(ws)

    # ── Sheet 2: column definitions ──────────────────────────────────
    ws2 = wb.create_sheet("Columns")
    defs_headers = ["Position", "Name", "Kind", "Entity Id", "Options", "Description"]
    for i, header in enumerate(defs_headers, 1):
        ws2.cell(row=1, column=i, value=header)
    _apply_header_style(ws2, 1, len(defs_headers))
    for row_i, column in enumerate(columns, 2):
        ws2.cell(row=row_i, column=1, value=column.position)
        ws2.cell(row=row_i, column=2, value=column.display_name or column.column_name)
        ws2.cell(row=row_i, column=3, value=column.column_entity_kind)
        ws2.cell(row=row_i, column=4, value=column.column_entity_id)
        ws2.cell(row=row_i, column=5, value=column.additional_column_options.value)
        ws2.cell(row=row_i, column=6, value=column.column_description)
    _auto_width(ws2)

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    logger.info("Grid export built id=%s rows=%d columns=%d", definition.id, len(subject_ids), len(columns))
    return buf.getvalue()
