"""
Selector factory.

Turns a request payload into a ``Selector``. Two shapes are accepted:

    {"kind": "APPLICATION", "ids": [1, 2, 3]}
    {"entity_reference": {"kind": "APP_GROUP", "id": 7}}

An entity reference is expanded to subjects: an application group to its
applications (direct and via org units), an org unit to the applications in
its subtree, and an application or change initiative to itself.
"""

import logging

from flask import current_app
from sqlalchemy import and_

from waltz.core.exceptions import ValidationError
from waltz.models import db
from waltz.models.catalog import (
    Application,
    ApplicationGroupEntry,
    ApplicationGroupOuEntry,
    EntityHierarchy,
)
from waltz.models.entity_kind import EntityKind
from waltz.services.report_grid_types import Selector

logger = logging.getLogger(__name__)

SUBJECT_KINDS = (EntityKind.APPLICATION, EntityKind.CHANGE_INITIATIVE)


def _apps_in_org_unit_tree(org_unit_ids):
    return {
        r[0] for r in
        db.session.query(Application.id)
        .join(EntityHierarchy, and_(
            EntityHierarchy.id == Application.organisational_unit_id,
            EntityHierarchy.kind == EntityKind.ORG_UNIT,
        ))
        .filter(EntityHierarchy.ancestor_id.in_(sorted(org_unit_ids)))
        .all()
    }


def _apps_in_group(group_id: int):
    direct = {
        r[0] for r in
        db.session.query(ApplicationGroupEntry.application_id)
        .filter(ApplicationGroupEntry.group_id == group_id)
        .all()
    }
    org_units = {
        r[0] for r in
        db.session.query(ApplicationGroupOuEntry.org_unit_id)
        .filter(ApplicationGroupOuEntry.group_id == group_id)
        .all()
    }
    return direct | (_apps_in_org_unit_tree(org_units) if org_units else set())


def _parse_id(value, field: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", details={field: "integer"}, status=400)


def _from_reference(ref: dict) -> Selector:
    kind = (ref.get("kind") or "").upper()
    entity_id = _parse_id(ref.get("id"), "entity_reference.id")
    if kind == EntityKind.APP_GROUP:
        return Selector.of(EntityKind.APPLICATION, _apps_in_group(entity_id))
    if kind == EntityKind.ORG_UNIT:
        return Selector.of(EntityKind.APPLICATION, _apps_in_org_unit_tree({entity_id}))
    if kind in SUBJECT_KINDS:
        return Selector.of(kind, [entity_id])
    raise ValidationError(
        f"Unsupported entity reference kind: {kind or None}",
        details={"entity_reference.kind": "APP_GROUP | ORG_UNIT | APPLICATION | CHANGE_INITIATIVE"},
        status=400,
    )


def build_selector(payload: dict) -> Selector:
    """Build a Selector from a request body.

    Raises:
        ValidationError (status 400): payload has neither shape, an unknown
            kind, non-integer ids, or more ids than SELECTOR_MAX_IDS.
    """
    payload = payload or {}
    if not isinstance(payload, dict):
        raise ValidationError("Selector must be a JSON object", details={"selector": "object"}, status=400)
    ref = payload.get("entity_reference")
    if isinstance(ref, dict):
        selector = _from_reference(ref)
    elif "kind" in payload:
        kind = (payload.get("kind") or "").upper()
        if kind not in SUBJECT_KINDS:
            raise ValidationError(
                f"Unsupported selector kind: {kind or None}",
                details={"kind": " | ".join(SUBJECT_KINDS)},
                status=400,
            )
        ids = payload.get("ids")
        if not isinstance(ids, list):
            raise ValidationError("ids must be a list", details={"ids": "list of integers"}, status=400)
        selector = Selector.of(kind, [_parse_id(i, "ids[]") for i in ids])
    else:
        raise ValidationError(
            "Selector requires either kind + ids or entity_reference",
            details={"selector": "required"},
            status=400,
        )

    limit = current_app.config.get("SELECTOR_MAX_IDS", 10000)
    if len(selector.ids) > limit:
        raise ValidationError(
            f"Selector resolves to {len(selector.ids)} subjects; limit is {limit}",
            details={"ids": f"max {limit}"},
            status=400,
        )
    logger.debug("Selector built kind=%s size=%d", selector.kind, len(selector.ids))
    return selector
