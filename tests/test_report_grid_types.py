"""
Tests: report grid value types and pure helpers.

Covers:
    - merge_cells: one cell per (subject, column), "; " text join, duplicates dropped
    - AdditionalColumnOptions parsing
    - derive_usage over every combination of usage kinds
    - attestation_band boundaries
    - minus_months / as_utc / to_iso_date / render_value
"""

from datetime import date, datetime, timedelta, timezone
from itertools import combinations

import pytest

from waltz.services.report_grid_strategies import (
    attestation_band,
    derive_usage,
    render_value,
    summary_sort_key,
)
from waltz.services.report_grid_types import (
    AdditionalColumnOptions,
    ReportGridCell,
    Selector,
    UsageKind,
    merge_cells,
)
from waltz.utils.helpers import as_utc, minus_months, to_iso_date


# ═════════════════════════════════════════════════════════════════════════════
# merge_cells
# ═════════════════════════════════════════════════════════════════════════════

class TestMergeCells:
    def test_distinct_keys_are_kept(self):
        cells = [
            ReportGridCell(subject_id=1, column_definition_id=10, text_value="a"),
            ReportGridCell(subject_id=1, column_definition_id=11, text_value="b"),
            ReportGridCell(subject_id=2, column_definition_id=10, text_value="c"),
        ]
        assert sorted(c.key for c in merge_cells(cells)) == [(1, 10), (1, 11), (2, 10)]

    def test_same_key_joins_text_in_encounter_order(self):
        merged = merge_cells([
            ReportGridCell(subject_id=1, column_definition_id=10, text_value="x@corp", comment="first"),
            ReportGridCell(subject_id=1, column_definition_id=10, text_value="y@corp", comment="second"),
            ReportGridCell(subject_id=1, column_definition_id=10, text_value="z@corp"),
        ])
        assert len(merged) == 1
        assert merged[0].text_value == "x@corp; y@corp; z@corp"
        assert merged[0].comment == "first"

    def test_merge_order_does_not_change_tokens(self):
        a = ReportGridCell(subject_id=1, column_definition_id=10, text_value="alpha")
        b = ReportGridCell(subject_id=1, column_definition_id=10, text_value="beta")
        forward = merge_cells([a, b])[0].text_value
        backward = merge_cells([b, a])[0].text_value
        assert set(forward.split("; ")) == set(backward.split("; ")) == {"alpha", "beta"}

    def test_exact_duplicate_is_dropped(self):
        cell = ReportGridCell(subject_id=1, column_definition_id=10, text_value="Y")
        assert merge_cells([cell, cell]) == [cell]

    def test_missing_text_on_either_side(self):
        merged = merge_cells([
            ReportGridCell(subject_id=1, column_definition_id=10, number_value=5.0),
            ReportGridCell(subject_id=1, column_definition_id=10, text_value="late"),
        ])
        assert merged[0].text_value == "late"
        assert merged[0].number_value == 5.0

    def test_empty_input(self):
        assert merge_cells([]) == []


class TestSelector:
    def test_ids_are_deduplicated_and_sorted(self):
        selector = Selector.of("APPLICATION", [3, 1, 3, 2])
        assert selector.id_list == [1, 2, 3]
        assert selector.to_dict() == {"kind": "APPLICATION", "ids": [1, 2, 3]}


class TestAdditionalColumnOptions:
    @pytest.mark.parametrize("raw", [None, ""])
    def test_blank_means_none(self, raw):
        assert AdditionalColumnOptions.parse(raw) is AdditionalColumnOptions.NONE

    def test_case_insensitive(self):
        assert AdditionalColumnOptions.parse("pick_lowest") is AdditionalColumnOptions.PICK_LOWEST

    def test_unknown_raises(self):
        with pytest.raises(ValueError):
            AdditionalColumnOptions.parse("PICK_MIDDLE")


# ═════════════════════════════════════════════════════════════════════════════
# derive_usage
# ═════════════════════════════════════════════════════════════════════════════

def _all_subsets():
    kinds = list(UsageKind)
    for size in range(len(kinds) + 1):
        yield from (frozenset(c) for c in combinations(kinds, size))


def _expected_usage(kinds):
    if UsageKind.MODIFIER in kinds:
        return UsageKind.MODIFIER
    if UsageKind.DISTRIBUTOR in kinds:
        return UsageKind.DISTRIBUTOR
    if {UsageKind.CONSUMER, UsageKind.ORIGINATOR} <= kinds:
        return UsageKind.DISTRIBUTOR
    return next(iter(kinds), None)


class TestDeriveUsage:
    @pytest.mark.parametrize("kinds", list(_all_subsets()), ids=lambda k: "+".join(sorted(k)) or "empty")
    def test_every_combination(self, kinds):
        assert derive_usage(kinds) == _expected_usage(kinds)

    def test_consumer_and_originator_is_distributor(self):
        assert derive_usage({"CONSUMER", "ORIGINATOR"}) is UsageKind.DISTRIBUTOR

    def test_modifier_wins_over_distributor(self):
        assert derive_usage({"DISTRIBUTOR", "MODIFIER", "CONSUMER"}) is UsageKind.MODIFIER

    def test_empty_is_none(self):
        assert derive_usage(set()) is None

    def test_display_name(self):
        assert UsageKind.DISTRIBUTOR.display_name == "Distributor"


# ═════════════════════════════════════════════════════════════════════════════
# Attestation bands
# ═════════════════════════════════════════════════════════════════════════════

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


class TestAttestationBand:
    @pytest.mark.parametrize("attested_at, expected", [
        (datetime(2024, 6, 1, tzinfo=timezone.utc), "<1M"),
        (datetime(2024, 4, 1, tzinfo=timezone.utc), "<3M"),
        (datetime(2024, 1, 1, tzinfo=timezone.utc), "<6M"),
        (datetime(2023, 9, 1, tzinfo=timezone.utc), "<1Y"),
        (datetime(2023, 1, 1, tzinfo=timezone.utc), ">1Y"),
    ])
    def test_bands(self, attested_at, expected):
        assert attestation_band(attested_at, NOW)[0] == expected

    def test_exact_month_boundary_falls_to_older_band(self):
        assert attestation_band(datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc), NOW) == ("<3M", "1-3 Months")

    def test_just_inside_boundary(self):
        attested = datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc) + timedelta(seconds=1)
        assert attestation_band(attested, NOW) == ("<1M", "<1 Month")

    @pytest.mark.parametrize("boundary, older, newer", [
        (datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc), ("<6M", "3-6 Months"), ("<3M", "1-3 Months")),
        (datetime(2023, 12, 15, 12, 0, tzinfo=timezone.utc), ("<1Y", "6-12 Months"), ("<6M", "3-6 Months")),
    ])
    def test_three_and_six_month_boundaries(self, boundary, older, newer):
        assert attestation_band(boundary, NOW) == older
        assert attestation_band(boundary + timedelta(seconds=1), NOW) == newer

    def test_exactly_one_year_is_oldest_band(self):
        assert attestation_band(datetime(2023, 6, 15, 12, 0, tzinfo=timezone.utc), NOW) == (">1Y", ">1 Year")

    def test_naive_timestamp_treated_as_utc(self):
        assert attestation_band(datetime(2024, 6, 10), NOW)[0] == "<1M"


# ═════════════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════════════

class TestHelpers:
    @pytest.mark.parametrize("moment, months, expected", [
        (datetime(2024, 3, 31), 1, datetime(2024, 2, 29)),
        (datetime(2023, 3, 31), 1, datetime(2023, 2, 28)),
        (datetime(2024, 1, 15), 1, datetime(2023, 12, 15)),
        (datetime(2024, 6, 15), 12, datetime(2023, 6, 15)),
        (datetime(2024, 8, 31), 6, datetime(2024, 2, 29)),
    ])
    def test_minus_months(self, moment, months, expected):
        assert minus_months(moment, months) == expected

    def test_as_utc(self):
        assert as_utc(None) is None
        assert as_utc(datetime(2024, 1, 1)).tzinfo == timezone.utc
        shifted = datetime(2024, 1, 1, 2, 0, tzinfo=timezone(timedelta(hours=2)))
        assert as_utc(shifted) == datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc)

    def test_to_iso_date(self):
        assert to_iso_date(datetime(2024, 2, 3, 4, 5)) == "2024-02-03"
        assert to_iso_date(date(2024, 2, 3)) == "2024-02-03"
        assert to_iso_date(None) is None

    @pytest.mark.parametrize("value, expected", [
        (None, None),
        (True, "true"),
        (False, "false"),
        (3.0, "3"),
        (2.5, "2.5"),
        (date(2024, 1, 2), "2024-01-02"),
        ("text", "text"),
    ])
    def test_render_value(self, value, expected):
        assert render_value(value) == expected

    def test_summary_sort_key_inverts_for_lowest(self):
        highest = sorted([(3, "P"), (1, "G")], key=lambda r: summary_sort_key(AdditionalColumnOptions.PICK_HIGHEST, *r))
        lowest = sorted([(3, "P"), (1, "G")], key=lambda r: summary_sort_key(AdditionalColumnOptions.PICK_LOWEST, *r))
        assert highest[0] == (1, "G")
        assert lowest[0] == (3, "P")
