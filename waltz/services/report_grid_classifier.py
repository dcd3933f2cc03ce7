"""
Report Grid column classifier.

Partitions a grid's fixed columns into the groups the fetch strategies
consume, and names the strategy each group is routed to.

Simple columns are keyed by ``column_entity_kind``; columns carrying an
entity field reference are keyed by the *reference's* entity kind.
Measurable and data type columns are further split by their roll-up option.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable

from waltz.models.entity_kind import EntityKind
from waltz.services.report_grid_types import (
    AdditionalColumnOptions,
    EntityFieldRef,
    FieldColumn,
    FixedColumnDefinition,
)

logger = logging.getLogger(__name__)


# Simple kind → strategy key. Measurable / data type are routed by option.
SIMPLE_STRATEGIES = {
    EntityKind.APP_GROUP: "app_group",
    EntityKind.ASSESSMENT_DEFINITION: "assessment",
    EntityKind.ATTESTATION: "attestation",
    EntityKind.COMPLEXITY_KIND: "complexity",
    EntityKind.COST_KIND: "cost",
    EntityKind.ENTITY_ALIAS: "alias",
    EntityKind.ENTITY_STATISTIC: "entity_statistic",
    EntityKind.INVOLVEMENT_KIND: "involvement",
    EntityKind.MEASURABLE_CATEGORY: "measurable_hierarchy",
    EntityKind.SURVEY_QUESTION: "survey_question",
    EntityKind.TAG: "tag",
}

# Field reference kind → strategy key.
FIELD_STRATEGIES = {
    EntityKind.APPLICATION: "application_field",
    EntityKind.CHANGE_INITIATIVE: "change_initiative_field",
    EntityKind.ORG_UNIT: "org_unit_field",
    EntityKind.SURVEY_INSTANCE: "survey_field",
}


@dataclass
class ColumnClassification:
    """Result of ``classify_columns``."""

    simple_by_kind: dict[str, list[FixedColumnDefinition]] = field(default_factory=dict)
    complex_by_kind: dict[str, list[FieldColumn]] = field(default_factory=dict)
    measurables_by_option: dict[AdditionalColumnOptions, list[FixedColumnDefinition]] = field(default_factory=dict)
    data_types_exact: list[FixedColumnDefinition] = field(default_factory=list)
    data_types_summary: list[FixedColumnDefinition] = field(default_factory=list)
    unresolved: list[FixedColumnDefinition] = field(default_factory=list)

    def by_strategy(self) -> dict[str, list]:
        """Group columns by strategy key. Kinds with no strategy are left out."""
        routed: dict[str, list] = {}

        for kind, columns in self.simple_by_kind.items():
            key = SIMPLE_STRATEGIES.get(kind)
            if key is None:
                logger.debug("No strategy for column kind %s (%d columns)", kind, len(columns))
                continue
            routed[key] = list(columns)

        for kind, columns in self.complex_by_kind.items():
            key = FIELD_STRATEGIES.get(kind)
            if key is None:
                logger.debug("No strategy for field reference kind %s", kind)
                continue
            routed[key] = list(columns)

        summary = (
            self.measurables_by_option.get(AdditionalColumnOptions.PICK_HIGHEST, [])
            + self.measurables_by_option.get(AdditionalColumnOptions.PICK_LOWEST, [])
        )
        exact = self.measurables_by_option.get(AdditionalColumnOptions.NONE, [])
        if summary:
            routed["measurable_summary"] = summary
        if exact:
            routed["measurable_exact"] = list(exact)
        if self.data_types_exact:
            routed["data_type_exact"] = list(self.data_types_exact)
        if self.data_types_summary:
            routed["data_type_summary"] = list(self.data_types_summary)

        return {key: cols for key, cols in routed.items() if cols}


def classify_columns(
    fixed_columns: Iterable[FixedColumnDefinition],
    field_refs_by_id: dict[int, EntityFieldRef],
) -> ColumnClassification:
    """Partition fixed columns for the fetch strategies.

    Args:
        fixed_columns: The grid's fixed column definitions.
        field_refs_by_id: Field references keyed by id.

    Returns:
        ColumnClassification. A column with a field reference id that is not
        in ``field_refs_by_id`` lands in ``unresolved`` and is never fetched.
    """
    simple = defaultdict(list)
    complex_ = defaultdict(list)
    measurables = defaultdict(list)
    result = ColumnClassification()

    for col in fixed_columns:
        if col.entity_field_reference_id is not None:
            ref = field_refs_by_id.get(col.entity_field_reference_id)
            if ref is None:
                logger.warning(
                    "Column %s references unknown field reference %s; skipped",
                    col.grid_column_id, col.entity_field_reference_id,
                )
                result.unresolved.append(col)
                continue
            complex_[ref.entity_kind].append(FieldColumn(column=col, field_ref=ref))
        elif col.column_entity_kind == EntityKind.MEASURABLE:
            measurables[col.additional_column_options].append(col)
        elif col.column_entity_kind == EntityKind.DATA_TYPE:
            if col.additional_column_options == AdditionalColumnOptions.NONE:
                result.data_types_exact.append(col)
            else:
                result.data_types_summary.append(col)
        else:
            simple[col.column_entity_kind].append(col)

    result.simple_by_kind = dict(simple)
    result.complex_by_kind = dict(complex_)
    result.measurables_by_option = dict(measurables)
    return result
