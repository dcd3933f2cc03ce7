"""
Report Grid service layer.

Owns the grid definition tables: assembles GridDefinition value objects,
creates / updates / removes grids, replaces a grid's columns in a single
transaction, and resolves cells by handing the definition and a selector to
``ReportGridEngine``. Every db.session.commit() for grid definitions happens
in this module.
"""

import logging
import re
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy.exc import IntegrityError

from waltz.core.exceptions import ConflictError, NotFoundError, ValidationError
from waltz.models import db
from waltz.models.entity_kind import EntityKind, pretty_name
from waltz.models.report_grid import (
    EntityFieldReference,
    ReportGrid,
    ReportGridColumnDefinition,
    ReportGridDerivedColumnDefinition,
    ReportGridFixedColumnDefinition,
)
from waltz.services import report_grid_strategies  # noqa: F401  registers fetch strategies
from waltz.services.entity_name_service import resolve_names
from waltz.services.report_grid_engine import ReportGridEngine
from waltz.services.report_grid_types import (
    AdditionalColumnOptions,
    DerivedColumnDefinition,
    EntityFieldRef,
    FixedColumnDefinition,
    GridDefinition,
    ReportGridKind,
)
from waltz.utils.helpers import commit_or_conflict

logger = logging.getLogger(__name__)

SUBJECT_KINDS = (EntityKind.APPLICATION, EntityKind.CHANGE_INITIATIVE)

_FIXED_NAMES = {
    EntityKind.TAG: ("Tags", "Tags associated to this entity"),
    EntityKind.ENTITY_ALIAS: ("Aliases", "Aliases associated to this entity"),
}

_FLOW_ATTESTATION_NAMES = {
    EntityKind.LOGICAL_DATA_FLOW: "Logical Flow Attestation",
    EntityKind.PHYSICAL_FLOW: "Physical Flow Attestation",
}


# ──────────────────────────────────────────────────────────────────────────────
# Definition assembly
# ──────────────────────────────────────────────────────────────────────────────

def _to_field_ref(ref: EntityFieldReference) -> EntityFieldRef:
    return EntityFieldRef(
        id=ref.id,
        entity_kind=ref.entity_kind,
        field_name=ref.field_name,
        display_name=ref.display_name,
        description=ref.description,
    )


def _column_names(fixed_rows, field_refs: dict) -> dict:
    """grid_column_id → (column_name, column_description) for fixed columns."""
    ids_by_kind: dict[str, set] = {}
    for _, fixed in fixed_rows:
        ids_by_kind.setdefault(fixed.column_entity_kind, set()).add(fixed.column_entity_id)
        if fixed.column_qualifier_kind:
            ids_by_kind.setdefault(fixed.column_qualifier_kind, set()).add(fixed.column_qualifier_id)
    names = {kind: resolve_names(kind, ids) for kind, ids in ids_by_kind.items()}

    def _lookup(kind, entity_id):
        return names.get(kind, {}).get(entity_id)

    result = {}
    for column, fixed in fixed_rows:
        kind = fixed.column_entity_kind
        entity = _lookup(kind, fixed.column_entity_id)
        ref = field_refs.get(fixed.entity_field_reference_id)

        if kind in _FIXED_NAMES:
            name, desc = _FIXED_NAMES[kind]
        elif kind == EntityKind.ATTESTATION:
            qualifier_kind = fixed.column_qualifier_kind
            category = _lookup(qualifier_kind, fixed.column_qualifier_id)
            if qualifier_kind in _FLOW_ATTESTATION_NAMES:
                name = desc = _FLOW_ATTESTATION_NAMES[qualifier_kind]
            elif category:
                name, desc = f"{category[0]} Attestation", f"{category[0]}: Last attestation"
            else:
                name, desc = pretty_name(kind), None
        elif ref is not None:
            name = f"{entity[0]}: {ref.display_name}" if entity else ref.display_name
            desc = ref.description
        elif kind == EntityKind.MEASURABLE_CATEGORY and fixed.column_qualifier_id is not None:
            qualifier = _lookup(fixed.column_qualifier_kind, fixed.column_qualifier_id)
            base = entity[0] if entity else pretty_name(kind)
            name = f"{base}/{qualifier[0]}" if qualifier else base
            desc = entity[1] if entity else None
        elif entity is not None:
            name, desc = entity
        else:
            name, desc = pretty_name(kind), None
        result[column.id] = (name, desc)
    return result


def _build_definition(grid: ReportGrid) -> GridDefinition:
    columns = list(grid.columns)
    fixed_rows = [(c, c.fixed) for c in columns if c.fixed is not None]
    derived_rows = [(c, c.derived) for c in columns if c.derived is not None]

    ref_ids = {f.entity_field_reference_id for _, f in fixed_rows if f.entity_field_reference_id}
    refs = (
        EntityFieldReference.query.filter(EntityFieldReference.id.in_(sorted(ref_ids))).all()
        if ref_ids else []
    )
    refs_by_id = {r.id: r for r in refs}
    names = _column_names(fixed_rows, refs_by_id)

    fixed = [
        FixedColumnDefinition(
            grid_column_id=column.id,
            position=column.position,
            column_entity_kind=f.column_entity_kind,
            column_entity_id=f.column_entity_id,
            column_qualifier_kind=f.column_qualifier_kind,
            column_qualifier_id=f.column_qualifier_id,
            additional_column_options=AdditionalColumnOptions.parse(f.additional_column_options),
            display_name=f.display_name,
            external_id=f.external_id,
            entity_field_reference_id=f.entity_field_reference_id,
            column_name=names[column.id][0],
            column_description=names[column.id][1],
        )
        for column, f in fixed_rows
    ]
    derived = [
        DerivedColumnDefinition(
            grid_column_id=column.id,
            position=column.position,
            display_name=d.display_name,
            derivation_script=d.derivation_script,
            column_description=d.column_description,
            external_id=d.external_id,
        )
        for column, d in derived_rows
    ]
    return GridDefinition(
        id=grid.id,
        name=grid.name,
        description=grid.description,
        external_id=grid.external_id,
        subject_kind=grid.subject_kind,
        kind=grid.kind,
        provenance=grid.provenance,
        last_updated_at=grid.last_updated_at,
        last_updated_by=grid.last_updated_by,
        fixed_columns=tuple(sorted(fixed, key=lambda c: (c.position, c.column_name or ""))),
        derived_columns=tuple(sorted(derived, key=lambda c: (c.position, c.display_name or ""))),
        field_references=tuple(_to_field_ref(r) for r in sorted(refs, key=lambda r: r.id)),
    )


def _find_by_external_id(external_id: str) -> ReportGrid | None:
    return ReportGrid.query.filter_by(external_id=external_id).first()


def get_definition_by_id(grid_id: int) -> GridDefinition:
    """Assemble the full definition of a grid.

    Raises:
        NotFoundError: If no grid has that id.
    """
    grid = db.session.get(ReportGrid, grid_id)
    if not grid:
        raise NotFoundError("ReportGrid", grid_id)
    return _build_definition(grid)


def get_definition_by_external_id(external_id: str) -> GridDefinition:
    """Same as ``get_definition_by_id``, keyed by external id."""
    grid = _find_by_external_id(external_id)
    if not grid:
        raise NotFoundError("ReportGrid", external_id)
    return _build_definition(grid)


# ──────────────────────────────────────────────────────────────────────────────
# Cell resolution
# ──────────────────────────────────────────────────────────────────────────────

def resolve_cells(definition: GridDefinition, selector) -> set:
    """Evaluate ``definition`` against ``selector``."""
    return ReportGridEngine.resolve(
        selector,
        definition.fixed_columns,
        definition.field_refs_by_id,
        max_workers=current_app.config.get("REPORT_GRID_MAX_WORKERS", 1),
    )


def find_grid_instance(selector, grid_id: int | None = None, external_id: str | None = None):
    """Definition and cells of a grid, by id or external id.

    Returns:
        ``(definition, cells)``; ``(None, set())`` when the grid does not exist.
    """
    grid = db.session.get(ReportGrid, grid_id) if grid_id is not None else _find_by_external_id(external_id)
    if not grid:
        logger.info("Cell data requested for missing grid id=%s external_id=%s", grid_id, external_id)
        return None, set()
    definition = _build_definition(grid)
    return definition, resolve_cells(definition, selector)


def find_cell_data_by_grid_id(grid_id: int, selector) -> set:
    """Cells for a grid; a missing grid yields an empty set."""
    return find_grid_instance(selector, grid_id=grid_id)[1]


def find_cell_data_by_external_id(external_id: str, selector) -> set:
    """Cells for a grid looked up by external id; missing grid → empty set."""
    return find_grid_instance(selector, external_id=external_id)[1]


# ──────────────────────────────────────────────────────────────────────────────
# Grid CRUD
# ──────────────────────────────────────────────────────────────────────────────

def to_external_id(name: str) -> str:
    """Derive an external id from a grid name: ``"My Grid!"`` → ``"MY_GRID"``."""
    return re.sub(r"[^A-Z0-9]+", "_", name.upper()).strip("_")


def _duplicate_name_message(name: str) -> str:
    return f"Grid already exists with the name: {name}"


def _parse_kind(value) -> str:
    try:
        return ReportGridKind(str(value or ReportGridKind.PUBLIC.value).upper()).value
    except ValueError:
        raise ValidationError(f"Unknown grid kind: {value}", details={"kind": "PUBLIC | PRIVATE"})


def find_all_grids(subject_kind: str | None = None) -> list[dict]:
    """Return all grids ordered by name, optionally for one subject kind."""
    q = ReportGrid.query
    if subject_kind:
        q = q.filter_by(subject_kind=subject_kind)
    return [g.to_dict() for g in q.order_by(ReportGrid.name).all()]


def create_grid(data: dict, username: str) -> dict:
    """Persist a new, column-less grid.

    Args:
        data: {"name", "description"?, "subject_kind"?, "kind"?, "external_id"?}
        username: Recorded as last_updated_by.

    Returns:
        Serialized grid dict.

    Raises:
        ValidationError: If name is missing or subject_kind / kind are unknown.
        ConflictError: If a grid with that name already exists.
    """
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    subject_kind = (data.get("subject_kind") or EntityKind.APPLICATION).upper()
    if subject_kind not in SUBJECT_KINDS:
        raise ValidationError(
            f"Unsupported subject kind: {subject_kind}",
            details={"subject_kind": " | ".join(SUBJECT_KINDS)},
        )
    if ReportGrid.query.filter_by(name=name).first():
        raise ConflictError("ReportGrid", "name", name, message=_duplicate_name_message(name))

    grid = ReportGrid(
        name=name,
        description=data.get("description", ""),
        external_id=data.get("external_id") or to_external_id(name),
        subject_kind=subject_kind,
        kind=_parse_kind(data.get("kind")),
        provenance="waltz",
        last_updated_by=username,
    )
    db.session.add(grid)
    commit_or_conflict("ReportGrid", "name", name, message=_duplicate_name_message(name))
    logger.info("ReportGrid created id=%s name=%s by=%s", grid.id, grid.name, username)
    return grid.to_dict()


def update_grid(grid_id: int, data: dict, username: str) -> dict:
    """Update name / description / kind / external_id of a grid.

    Raises:
        NotFoundError: If no grid has that id.
        ConflictError: If the new name belongs to another grid.
    """
    grid = db.session.get(ReportGrid, grid_id)
    if not grid:
        raise NotFoundError("ReportGrid", grid_id)

    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("name must not be empty", details={"name": "required"})
        clash = ReportGrid.query.filter(ReportGrid.name == name, ReportGrid.id != grid_id).first()
        if clash:
            raise ConflictError("ReportGrid", "name", name, message=_duplicate_name_message(name))
        grid.name = name
    if "description" in data:
        grid.description = data.get("description") or ""
    if "kind" in data:
        grid.kind = _parse_kind(data.get("kind"))
    if "external_id" in data:
        grid.external_id = data.get("external_id") or None
    grid.last_updated_by = username

    commit_or_conflict("ReportGrid", "name", grid.name, message=_duplicate_name_message(grid.name))
    logger.info("ReportGrid updated id=%s by=%s", grid.id, username)
    return grid.to_dict()


def remove_grid(grid_id: int) -> None:
    """Delete a grid together with its column definitions.

    Raises:
        NotFoundError: If no grid has that id.
    """
    grid = db.session.get(ReportGrid, grid_id)
    if not grid:
        raise NotFoundError("ReportGrid", grid_id)
    db.session.delete(grid)
    db.session.commit()
    logger.info("ReportGrid deleted id=%s", grid_id)


def find_field_references(entity_kind: str | None = None) -> list[dict]:
    """Projectable fields, optionally for one entity kind."""
    q = EntityFieldReference.query
    if entity_kind:
        q = q.filter_by(entity_kind=entity_kind.upper())
    return [r.to_dict() for r in q.order_by(EntityFieldReference.entity_kind, EntityFieldReference.field_name).all()]


# ──────────────────────────────────────────────────────────────────────────────
# Column replace
# ──────────────────────────────────────────────────────────────────────────────

def _require_position(raw: dict, index: int, group: str) -> int:
    try:
        return int(raw["position"])
    except (KeyError, TypeError, ValueError):
        raise ValidationError(
            f"{group}[{index}].position must be an integer",
            details={f"{group}[{index}].position": "required integer"},
        )


def _optional_int(value):
    return int(value) if value is not None and value != "" else None


def _normalise_fixed(raw: dict, index: int) -> dict:
    kind = (raw.get("column_entity_kind") or "").upper()
    if not kind:
        raise ValidationError(
            f"fixed_columns[{index}].column_entity_kind is required",
            details={f"fixed_columns[{index}].column_entity_kind": "required"},
        )
    try:
        option = AdditionalColumnOptions.parse(raw.get("additional_column_options"))
    except ValueError:
        raise ValidationError(
            f"Unknown additional_column_options: {raw.get('additional_column_options')}",
            details={f"fixed_columns[{index}].additional_column_options": "NONE | PICK_HIGHEST | PICK_LOWEST"},
        )
    ref = raw.get("entity_field_reference")
    ref_id = raw.get("entity_field_reference_id")
    if ref_id is None and isinstance(ref, dict):
        ref_id = ref.get("id")
    return {
        "position": _require_position(raw, index, "fixed_columns"),
        "column_entity_kind": kind,
        "column_entity_id": _optional_int(raw.get("column_entity_id")),
        "column_qualifier_kind": raw.get("column_qualifier_kind") or None,
        "column_qualifier_id": _optional_int(raw.get("column_qualifier_id")),
        "additional_column_options": option.value,
        "display_name": raw.get("display_name"),
        "external_id": raw.get("external_id"),
        "entity_field_reference_id": _optional_int(ref_id),
    }


def _normalise_derived(raw: dict, index: int) -> dict:
    missing = [f for f in ("display_name", "derivation_script") if not raw.get(f)]
    if missing:
        raise ValidationError(
            f"derived_columns[{index}] is missing {', '.join(missing)}",
            details={f"derived_columns[{index}].{f}": "required" for f in missing},
        )
    return {
        "position": _require_position(raw, index, "derived_columns"),
        "display_name": raw["display_name"],
        "column_description": raw.get("column_description"),
        "derivation_script": raw["derivation_script"],
        "external_id": raw.get("external_id"),
    }


def replace_columns(grid_id: int, fixed_columns: list, derived_columns: list, username: str = "system") -> GridDefinition:
    """Replace every column of a grid, all or nothing.

    Existing column slots (and their fixed / derived rows) are deleted, new
    slots are inserted, the generated ids are read back by position, and the
    fixed / derived rows are inserted against them. One commit at the end;
    any failure rolls the whole replacement back.

    Args:
        grid_id: PK of the grid.
        fixed_columns: List of fixed column dicts.
        derived_columns: List of derived column dicts.
        username: Recorded as last_updated_by.

    Returns:
        The grid's new GridDefinition.

    Raises:
        NotFoundError: If no grid has that id.
        ValidationError: If a column is malformed or names an unknown field reference.
        ConflictError: If two columns share a position.
    """
    grid = db.session.get(ReportGrid, grid_id)
    if not grid:
        raise NotFoundError("ReportGrid", grid_id)

    fixed = [_normalise_fixed(raw or {}, i) for i, raw in enumerate(fixed_columns or [])]
    derived = [_normalise_derived(raw or {}, i) for i, raw in enumerate(derived_columns or [])]

    seen = set()
    for entry in fixed + derived:
        if entry["position"] in seen:
            raise ConflictError("ReportGridColumnDefinition", "position", entry["position"])
        seen.add(entry["position"])

    ref_ids = {s["entity_field_reference_id"] for s in fixed if s["entity_field_reference_id"] is not None}
    if ref_ids:
        known = {
            r.id for r in
            EntityFieldReference.query.filter(EntityFieldReference.id.in_(sorted(ref_ids))).all()
        }
        unknown = sorted(ref_ids - known)
        if unknown:
            raise ValidationError(
                f"Unknown entity field reference(s): {unknown}",
                details={"entity_field_reference_id": unknown},
            )

    try:
        grid.columns.clear()
        db.session.flush()

        for entry in fixed + derived:
            db.session.add(ReportGridColumnDefinition(report_grid_id=grid.id, position=entry["position"]))
        db.session.flush()

        id_by_position = dict(
            db.session.query(ReportGridColumnDefinition.position, ReportGridColumnDefinition.id)
            .filter(ReportGridColumnDefinition.report_grid_id == grid.id)
            .all()
        )
        for entry in fixed:
            db.session.add(ReportGridFixedColumnDefinition(
                grid_column_id=id_by_position[entry["position"]],
                **{k: v for k, v in entry.items() if k != "position"},
            ))
        for entry in derived:
            db.session.add(ReportGridDerivedColumnDefinition(
                grid_column_id=id_by_position[entry["position"]],
                **{k: v for k, v in entry.items() if k != "position"},
            ))

        grid.last_updated_by = username
        grid.last_updated_at = datetime.now(timezone.utc)
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Column replace for grid id=%s rejected: %s", grid_id, exc.orig)
        raise ConflictError(
            "ReportGridColumnDefinition", "position",
            message="Column positions must be unique within a grid",
        ) from exc

    logger.info(
        "ReportGrid columns replaced id=%s fixed=%d derived=%d by=%s",
        grid_id, len(fixed), len(derived), username,
        extra={"grid_id": grid_id},
    )
    return get_definition_by_id(grid_id)

