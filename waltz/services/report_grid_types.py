"""
Report Grid value types.

Frozen value objects passed between the definition store, the column
classifier, the fetch strategies and the API layer, plus ``merge_cells``,
the reduction that guarantees one cell per (subject, column).

Usage:
    from waltz.services.report_grid_types import Selector, ReportGridCell, merge_cells

    selector = Selector.of("APPLICATION", [101, 102])
    cells = merge_cells(raw_cells)
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Iterable


# ═════════════════════════════════════════════════════════════════════════════
# Enums
# ═════════════════════════════════════════════════════════════════════════════

class AdditionalColumnOptions(str, Enum):
    """How a column rolls up values found below its entity."""
    NONE = "NONE"
    PICK_HIGHEST = "PICK_HIGHEST"
    PICK_LOWEST = "PICK_LOWEST"

    @classmethod
    def parse(cls, value) -> "AdditionalColumnOptions":
        if value is None or value == "":
            return cls.NONE
        return cls(str(value).upper())


class ReportGridKind(str, Enum):
    PUBLIC = "PUBLIC"
    PRIVATE = "PRIVATE"


class UsageKind(str, Enum):
    CONSUMER = "CONSUMER"
    DISTRIBUTOR = "DISTRIBUTOR"
    MODIFIER = "MODIFIER"
    ORIGINATOR = "ORIGINATOR"

    @property
    def display_name(self) -> str:
        return self.value.title()


# ═════════════════════════════════════════════════════════════════════════════
# Selector & cells
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Selector:
    """The subjects a grid is evaluated against: one kind, many ids."""

    kind: str
    ids: frozenset = frozenset()

    @classmethod
    def of(cls, kind: str, ids: Iterable[int]) -> "Selector":
        return cls(kind=kind, ids=frozenset(int(i) for i in ids))

    @property
    def id_list(self) -> list[int]:
        """Sorted ids, suitable for ``column.in_(...)``."""
        return sorted(self.ids)

    def to_dict(self) -> dict:
        return {"kind": self.kind, "ids": self.id_list}


@dataclass(frozen=True)
class ReportGridCell:
    """One value for one (subject, column) pair.

    ``column_definition_id`` is the grid column id, i.e. the
    ``report_grid_column_definition`` row, not the fixed sub-row.
    """

    subject_id: int
    column_definition_id: int
    text_value: str | None = None
    number_value: float | None = None
    rating_id_value: int | None = None
    date_time_value: datetime | None = None
    comment: str | None = None
    option_code: str | None = None
    option_text: str | None = None

    @property
    def key(self) -> tuple[int, int]:
        return self.subject_id, self.column_definition_id

    def to_dict(self) -> dict:
        return {
            "subject_id": self.subject_id,
            "column_definition_id": self.column_definition_id,
            "text_value": self.text_value,
            "number_value": self.number_value,
            "rating_id_value": self.rating_id_value,
            "date_time_value": self.date_time_value.isoformat() if self.date_time_value else None,
            "comment": self.comment,
            "option_code": self.option_code,
            "option_text": self.option_text,
        }


TEXT_SEPARATOR = "; "


def _join_text(first: str | None, second: str | None) -> str | None:
    if first is None:
        return second
    if second is None:
        return first
    return f"{first}{TEXT_SEPARATOR}{second}"


def merge_cells(cells: Iterable[ReportGridCell]) -> list[ReportGridCell]:
    """Reduce cells sharing a key into one.

    The first cell seen for a key keeps its metadata; text values of later
    cells are appended with ``"; "`` in encounter order. An exact duplicate
    of the current merged cell is dropped.
    """
    merged: dict[tuple[int, int], ReportGridCell] = {}
    for cell in cells:
        current = merged.get(cell.key)
        if current is None:
            merged[cell.key] = cell
        elif current != cell:
            merged[cell.key] = replace(current, text_value=_join_text(current.text_value, cell.text_value))
    return list(merged.values())


# ═════════════════════════════════════════════════════════════════════════════
# Definitions
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class EntityFieldRef:
    id: int
    entity_kind: str
    field_name: str
    display_name: str
    description: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_kind": self.entity_kind,
            "field_name": self.field_name,
            "display_name": self.display_name,
            "description": self.description,
        }


@dataclass(frozen=True)
class FixedColumnDefinition:
    grid_column_id: int
    position: int
    column_entity_kind: str
    column_entity_id: int | None = None
    column_qualifier_kind: str | None = None
    column_qualifier_id: int | None = None
    additional_column_options: AdditionalColumnOptions = AdditionalColumnOptions.NONE
    display_name: str | None = None
    external_id: str | None = None
    entity_field_reference_id: int | None = None
    column_name: str | None = None
    column_description: str | None = None

    def to_dict(self) -> dict:
        return {
            "grid_column_id": self.grid_column_id,
            "position": self.position,
            "column_entity_kind": self.column_entity_kind,
            "column_entity_id": self.column_entity_id,
            "column_qualifier_kind": self.column_qualifier_kind,
            "column_qualifier_id": self.column_qualifier_id,
            "additional_column_options": self.additional_column_options.value,
            "display_name": self.display_name,
            "external_id": self.external_id,
            "entity_field_reference_id": self.entity_field_reference_id,
            "column_name": self.column_name,
            "column_description": self.column_description,
        }


@dataclass(frozen=True)
class DerivedColumnDefinition:
    grid_column_id: int
    position: int
    display_name: str
    derivation_script: str
    column_description: str | None = None
    external_id: str | None = None

    def to_dict(self) -> dict:
        return {
            "grid_column_id": self.grid_column_id,
            "position": self.position,
            "display_name": self.display_name,
            "column_description": self.column_description,
            "derivation_script": self.derivation_script,
            "external_id": self.external_id,
        }


@dataclass(frozen=True)
class GridDefinition:
    id: int
    name: str
    description: str | None
    external_id: str | None
    subject_kind: str
    kind: str
    provenance: str
    last_updated_at: datetime | None
    last_updated_by: str | None
    fixed_columns: tuple[FixedColumnDefinition, ...] = ()
    derived_columns: tuple[DerivedColumnDefinition, ...] = ()
    field_references: tuple[EntityFieldRef, ...] = ()

    @property
    def field_refs_by_id(self) -> dict[int, EntityFieldRef]:
        return {ref.id: ref for ref in self.field_references}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "external_id": self.external_id,
            "subject_kind": self.subject_kind,
            "kind": self.kind,
            "provenance": self.provenance,
            "last_updated_at": self.last_updated_at.isoformat() if self.last_updated_at else None,
            "last_updated_by": self.last_updated_by,
            "fixed_column_definitions": [c.to_dict() for c in self.fixed_columns],
            "derived_column_definitions": [c.to_dict() for c in self.derived_columns],
            "entity_field_references": [r.to_dict() for r in self.field_references],
        }


@dataclass(frozen=True)
class FieldColumn:
    """A fixed column paired with the field reference it projects."""

    column: FixedColumnDefinition
    field_ref: EntityFieldRef

    @property
    def grid_column_id(self) -> int:
        return self.column.grid_column_id

    @property
    def field_name(self) -> str:
        return self.field_ref.field_name
