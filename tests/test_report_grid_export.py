"""
Tests: report grid XLSX export (service level).
"""

import io
from datetime import datetime, timezone

from openpyxl import load_workbook

from waltz.services.report_grid_export import cell_display_value, export_grid_xlsx
from waltz.services.report_grid_types import (
    FixedColumnDefinition,
    GridDefinition,
    ReportGridCell,
)


def _definition():
    return GridDefinition(
        id=1,
        name="Attestations",
        description=None,
        external_id="ATTESTATIONS",
        subject_kind="APPLICATION",
        kind="PUBLIC",
        provenance="waltz",
        last_updated_at=None,
        last_updated_by="tester",
        fixed_columns=(
            FixedColumnDefinition(grid_column_id=10, position=0, column_entity_kind="ATTESTATION",
                                  column_name="Logical Flow Attestation"),
            FixedColumnDefinition(grid_column_id=11, position=1, column_entity_kind="TAG",
                                  column_name="Tags", display_name="Labels"),
        ),
    )


def test_cell_display_value_precedence():
    stamp = datetime(2024, 6, 1, tzinfo=timezone.utc)
    assert cell_display_value(ReportGridCell(1, 1, text_value="t", number_value=2.0)) == "t"
    assert cell_display_value(ReportGridCell(1, 1, number_value=2.0, option_text="o")) == 2.0
    assert cell_display_value(ReportGridCell(1, 1, option_text="<1M", date_time_value=stamp)) == "<1M"
    assert cell_display_value(ReportGridCell(1, 1, date_time_value=stamp)) == datetime(2024, 6, 1)
    assert cell_display_value(ReportGridCell(1, 1)) is None


def test_export_rows_and_headers():
    cells = {
        ReportGridCell(subject_id=101, column_definition_id=10, option_code="<1M", option_text="<1 Month"),
        ReportGridCell(subject_id=102, column_definition_id=11, text_value="alpha; beta"),
    }
    content = export_grid_xlsx(_definition(), cells, {101: "zeta", 102: "Alpha", 103: "Mid"})

    wb = load_workbook(io.BytesIO(content))
    ws = wb["Grid"]
    assert ws["A1"].value == "Attestations"
    assert [ws.cell(row=4, column=i).value for i in range(1, 5)] == [
        "Subject", "Subject Id", "Logical Flow Attestation", "Labels",
    ]
    rows = [[ws.cell(row=r, column=c).value for c in range(1, 5)] for r in range(5, 8)]
    assert rows == [
        ["Alpha", 102, None, "alpha; beta"],
        ["Mid", 103, None, None],
        ["zeta", 101, "<1 Month", None],
    ]
    assert ws.freeze_panes == "C5"

    columns = wb["Columns"]
    assert columns.cell(row=2, column=2).value == "Logical Flow Attestation"
    assert columns.cell(row=3, column=5).value == "NONE"


def test_text_with_leading_equals_is_not_a_formula():
    cells = {ReportGridCell(subject_id=101, column_definition_id=11, text_value="=HYPERLINK(\"x\")")}
    content = export_grid_xlsx(_definition(), cells, {101: "Ledger"})

    ws = load_workbook(io.BytesIO(content))["Grid"]
    target = ws.cell(row=5, column=4)
    assert target.value == "=HYPERLINK(\"x\")"
    assert target.data_type == "s"
