"""Report Grid blueprint.

REST API for grid definitions and cell resolution.

Endpoint groups:
  Grid CRUD            GET/POST        /api/v1/report-grids
                       PUT/DELETE      /api/v1/report-grids/<id>
  Definitions          GET             /api/v1/report-grids/<id>/definition
                       GET             /api/v1/report-grids/external-id/<ext>/definition
  Column replace       PUT             /api/v1/report-grids/<id>/columns
  Cell resolution      POST            /api/v1/report-grids/<id>/cells
                       POST            /api/v1/report-grids/external-id/<ext>/cells
  Export               POST            /api/v1/report-grids/<id>/export
  Field references     GET             /api/v1/entity-field-references

Cell and export bodies are selector payloads (see selector_factory).
Service layer owns all business logic and commits.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from flask import Blueprint, Response, jsonify, request

import waltz.services.report_grid_service as rgs
from waltz.core.exceptions import (
    ConflictError,
    NotFoundError,
    UnsupportedOperationError,
    ValidationError,
)
from waltz.services.entity_name_service import resolve_display_names
from waltz.services.report_grid_export import export_grid_xlsx
from waltz.services.selector_factory import build_selector
from waltz.utils.errors import E, api_error

logger = logging.getLogger(__name__)

report_grid_bp = Blueprint("report_grid", __name__, url_prefix="/api/v1")


def _actor() -> str:
    """Actor identifier recorded as last_updated_by."""
    return request.headers.get("X-User", "system")


def _cells_payload(definition, cells) -> dict:
    ordered = sorted(cells, key=lambda c: (c.subject_id, c.column_definition_id))
    return {
        "definition": definition.to_dict() if definition else None,
        "cells": [c.to_dict() for c in ordered],
    }


# ── Error handlers ────────────────────────────────────────────────────────────


@report_grid_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, str(error))


@report_grid_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    code = E.VALIDATION_INVALID if error.status == 400 else E.VALIDATION_CONSTRAINT
    return api_error(code, str(error), status=error.status, details=error.details)


@report_grid_bp.errorhandler(ConflictError)
def _handle_conflict(error: ConflictError):
    return api_error(E.CONFLICT_DUPLICATE, str(error))


@report_grid_bp.errorhandler(UnsupportedOperationError)
def _handle_unsupported(error: UnsupportedOperationError):
    return api_error(E.UNSUPPORTED, str(error))


@report_grid_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    logger.exception("Unexpected error in report_grid_bp endpoint=%s", request.endpoint)
    return api_error(E.INTERNAL, "Internal server error")


# ═════════════════════════════════════════════════════════════════════════
# Grid CRUD
# ═════════════════════════════════════════════════════════════════════════


@report_grid_bp.route("/report-grids", methods=["GET"])
def list_grids():
    """Query params: subject_kind (optional)."""
    return jsonify({"items": rgs.find_all_grids(request.args.get("subject_kind"))}), 200


@report_grid_bp.route("/report-grids", methods=["POST"])
def create_grid():
    """Body: {name, description?, subject_kind?, kind?, external_id?}"""
    data = request.get_json(silent=True) or {}
    if not (data.get("name") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "name is required")
    return jsonify(rgs.create_grid(data, _actor())), 201


@report_grid_bp.route("/report-grids/<int:grid_id>", methods=["PUT"])
def update_grid(grid_id: int):
    data = request.get_json(silent=True) or {}
    return jsonify(rgs.update_grid(grid_id, data, _actor())), 200


@report_grid_bp.route("/report-grids/<int:grid_id>", methods=["DELETE"])
def delete_grid(grid_id: int):
    rgs.remove_grid(grid_id)
    return jsonify({"deleted": True, "id": grid_id}), 200


# ═════════════════════════════════════════════════════════════════════════
# Definitions & columns
# ═════════════════════════════════════════════════════════════════════════


@report_grid_bp.route("/report-grids/<int:grid_id>/definition", methods=["GET"])
def get_definition(grid_id: int):
    return jsonify(rgs.get_definition_by_id(grid_id).to_dict()), 200


@report_grid_bp.route("/report-grids/external-id/<string:external_id>/definition", methods=["GET"])
def get_definition_by_external_id(external_id: str):
    return jsonify(rgs.get_definition_by_external_id(external_id).to_dict()), 200


@report_grid_bp.route("/report-grids/<int:grid_id>/columns", methods=["PUT"])
def replace_columns(grid_id: int):
    """Body: {fixed_columns: [...], derived_columns: [...]}

    Replaces every column of the grid in one transaction.
    Returns: the new definition; 409 when two columns share a position.
    """
    data = request.get_json(silent=True) or {}
    fixed = data.get("fixed_columns") or []
    derived = data.get("derived_columns") or []
    if not isinstance(fixed, list) or not isinstance(derived, list):
        return api_error(E.VALIDATION_INVALID, "fixed_columns and derived_columns must be lists")
    definition = rgs.replace_columns(grid_id, fixed, derived, _actor())
    return jsonify(definition.to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════
# Cells & export
# ═════════════════════════════════════════════════════════════════════════


@report_grid_bp.route("/report-grids/<int:grid_id>/cells", methods=["POST"])
def find_cells(grid_id: int):
    """Body: selector payload. A missing grid yields no definition and no cells."""
    selector = build_selector(request.get_json(silent=True) or {})
    definition, cells = rgs.find_grid_instance(selector, grid_id=grid_id)
    return jsonify(_cells_payload(definition, cells)), 200


@report_grid_bp.route("/report-grids/external-id/<string:external_id>/cells", methods=["POST"])
def find_cells_by_external_id(external_id: str):
    selector = build_selector(request.get_json(silent=True) or {})
    definition, cells = rgs.find_grid_instance(selector, external_id=external_id)
    return jsonify(_cells_payload(definition, cells)), 200


@report_grid_bp.route("/report-grids/<int:grid_id>/export", methods=["POST"])
def export_grid(grid_id: int):
    """Body: selector payload. Returns an XLSX attachment."""
    selector = build_selector(request.get_json(silent=True) or {})
    definition, cells = rgs.find_grid_instance(selector, grid_id=grid_id)
    if definition is None:
        raise NotFoundError("ReportGrid", grid_id)

    content = export_grid_xlsx(definition, cells, resolve_display_names(selector.kind, selector.ids))
    date_str = datetime.now(timezone.utc).strftime("%Y%m%d")
    filename = f"{definition.external_id or f'grid_{grid_id}'}_{date_str}.xlsx"
    return Response(
        content,
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


# ═════════════════════════════════════════════════════════════════════════
# Field references
# ═════════════════════════════════════════════════════════════════════════


@report_grid_bp.route("/entity-field-references", methods=["GET"])
def list_field_references():
    """Query params: entity_kind (optional)."""
    return jsonify({"items": rgs.find_field_references(request.args.get("entity_kind"))}), 200
