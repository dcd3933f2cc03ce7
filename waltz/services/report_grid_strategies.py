"""
Report Grid fetch strategies.

Each strategy is registered on ``ReportGridEngine`` under the key the column
classifier routes to, and has the shape::

    fn(selector: Selector, columns: list) -> set[ReportGridCell]

``columns`` holds FixedColumnDefinition objects, or FieldColumn pairs for
the field-reference strategies. Every strategy returns an empty set for an
empty column list before touching the database.

Catalog:
    assessment, entity_statistic, involvement, cost, complexity,
    measurable_exact, measurable_summary, measurable_hierarchy,
    survey_question, survey_field, app_group, application_field,
    change_initiative_field, org_unit_field, data_type_exact,
    data_type_summary, attestation, tag, alias
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, datetime, timezone

from sqlalchemy import and_, func, or_, true
from sqlalchemy.orm import aliased

from waltz.core.exceptions import UnsupportedOperationError
from waltz.models import db
from waltz.models.assessment import (
    AssessmentRating,
    Complexity,
    Cost,
    EntityStatisticValue,
)
from waltz.models.attestation import AttestationInstance, AttestationRun
from waltz.models.catalog import (
    Application,
    ApplicationGroupEntry,
    ApplicationGroupOuEntry,
    ChangeInitiative,
    EntityAlias,
    EntityHierarchy,
    EntityRelationship,
    Involvement,
    OrganisationalUnit,
    Person,
    Tag,
    TagUsage,
)
from waltz.models.data_type import DataTypeUsage
from waltz.models.entity_kind import EntityKind
from waltz.models.measurable import (
    Measurable,
    MeasurableCategory,
    MeasurableRating,
    RatingSchemeItem,
)
from waltz.models.survey import (
    SurveyInstance,
    SurveyQuestion,
    SurveyQuestionListResponse,
    SurveyQuestionResponse,
    SurveyRun,
)
from waltz.services.entity_name_service import resolve_display_names
from waltz.services.report_grid_engine import ReportGridEngine
from waltz.services.report_grid_hierarchy import (
    FlatNode,
    ancestry_closure,
    build_forest,
    render_forest,
)
from waltz.services.report_grid_types import (
    AdditionalColumnOptions,
    ReportGridCell,
    UsageKind,
    merge_cells,
)
from waltz.utils.helpers import as_utc, minus_months, to_iso_date

logger = logging.getLogger(__name__)

ELIGIBLE_SURVEY_STATUSES = ("APPROVED", "COMPLETED")


# ═════════════════════════════════════════════════════════════════════════════
# Shared helpers
# ═════════════════════════════════════════════════════════════════════════════

def _columns_by_entity_id(columns) -> dict[int, list[int]]:
    """column_entity_id → grid column ids."""
    index = defaultdict(list)
    for col in columns:
        index[col.column_entity_id].append(col.grid_column_id)
    return index


def render_value(value) -> str | None:
    """Text rendering for projected values; timestamps become dates."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return to_iso_date(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _latest_per_partition(rows, partition, stamp, tiebreak):
    """Pick one row per partition: max ``stamp`` (None last), then max ``tiebreak``."""
    best = {}
    for row in rows:
        key = partition(row)
        ts = stamp(row)
        rank = (ts is not None, as_utc(ts) if isinstance(ts, datetime) else ts, tiebreak(row))
        current = best.get(key)
        if current is None or rank > current[0]:
            best[key] = (rank, row)
    return {key: row for key, (_, row) in best.items()}


# ═════════════════════════════════════════════════════════════════════════════
# Direct lookups
# ═════════════════════════════════════════════════════════════════════════════

@ReportGridEngine.register("assessment")
def fetch_assessments(selector, columns) -> set[ReportGridCell]:
    if not columns:
        return set()
    by_definition = _columns_by_entity_id(columns)
    rows = (
        db.session.query(
            AssessmentRating.entity_id,
            AssessmentRating.assessment_definition_id,
            AssessmentRating.rating_id,
            AssessmentRating.description,
            RatingSchemeItem.name,
        )
        .join(RatingSchemeItem, RatingSchemeItem.id == AssessmentRating.rating_id)
        .filter(
            AssessmentRating.entity_kind == selector.kind,
            AssessmentRating.entity_id.in_(selector.id_list),
            AssessmentRating.assessment_definition_id.in_(list(by_definition)),
        )
        .all()
    )
    return {
        ReportGridCell(
            subject_id=r.entity_id,
            column_definition_id=col_id,
            rating_id_value=r.rating_id,
            comment=r.description,
            option_code=str(r.rating_id),
            option_text=r.name,
        )
        for r in rows
        for col_id in by_definition[r.assessment_definition_id]
    }


@ReportGridEngine.register("entity_statistic")
def fetch_entity_statistics(selector, columns) -> set[ReportGridCell]:
    if not columns:
        return set()
    by_statistic = _columns_by_entity_id(columns)
    rows = (
        EntityStatisticValue.query
        .filter(
            EntityStatisticValue.entity_kind == selector.kind,
            EntityStatisticValue.entity_id.in_(selector.id_list),
            EntityStatisticValue.statistic_id.in_(list(by_statistic)),
            EntityStatisticValue.current.is_(True),
        )
        .all()
    )
    return set(merge_cells(
        ReportGridCell(
            subject_id=v.entity_id,
            column_definition_id=col_id,
            text_value=v.outcome,
            comment=v.reason,
            option_code=v.outcome,
            option_text=v.outcome,
        )
        for v in sorted(rows, key=lambda v: v.id)
        for col_id in by_statistic[v.statistic_id]
    ))


@ReportGridEngine.register("complexity")
def fetch_complexities(selector, columns) -> set[ReportGridCell]:
    if not columns:
        return set()
    by_kind = _columns_by_entity_id(columns)
    rows = (
        Complexity.query
        .filter(
            Complexity.entity_kind == selector.kind,
            Complexity.entity_id.in_(selector.id_list),
            Complexity.complexity_kind_id.in_(list(by_kind)),
        )
        .all()
    )
    return {
        ReportGridCell(subject_id=c.entity_id, column_definition_id=col_id, number_value=c.score)
        for c in rows
        for col_id in by_kind[c.complexity_kind_id]
    }


@ReportGridEngine.register("cost")
def fetch_costs(selector, columns) -> set[ReportGridCell]:
    """Amount of the latest year, found per (subject, cost kind)."""
    if not columns:
        return set()
    by_kind = _columns_by_entity_id(columns)
    scope = and_(
        Cost.entity_kind == selector.kind,
        Cost.entity_id.in_(selector.id_list),
        Cost.cost_kind_id.in_(list(by_kind)),
    )
    latest = (
        db.session.query(
            Cost.entity_id.label("entity_id"),
            Cost.cost_kind_id.label("cost_kind_id"),
            func.max(Cost.year).label("latest_year"),
        )
        .filter(scope)
        .group_by(Cost.entity_id, Cost.cost_kind_id)
        .subquery()
    )
    rows = (
        db.session.query(Cost.entity_id, Cost.cost_kind_id, Cost.amount)
        .join(latest, and_(
            Cost.entity_id == latest.c.entity_id,
            Cost.cost_kind_id == latest.c.cost_kind_id,
            Cost.year == latest.c.latest_year,
        ))
        .filter(scope)
        .order_by(Cost.id)
        .all()
    )
    return set(merge_cells(
        ReportGridCell(subject_id=r.entity_id, column_definition_id=col_id, number_value=r.amount)
        for r in rows
        for col_id in by_kind[r.cost_kind_id]
    ))


# ═════════════════════════════════════════════════════════════════════════════
# Multi-valued lookups (merged "; ")
# ═════════════════════════════════════════════════════════════════════════════

@ReportGridEngine.register("involvement")
def fetch_involvements(selector, columns) -> set[ReportGridCell]:
    if not columns:
        return set()
    by_kind = _columns_by_entity_id(columns)
    rows = (
        db.session.query(Involvement.entity_id, Involvement.kind_id, Person.email)
        .join(Person, Person.employee_id == Involvement.employee_id)
        .filter(
            Involvement.entity_kind == selector.kind,
            Involvement.entity_id.in_(selector.id_list),
            Involvement.kind_id.in_(list(by_kind)),
            Person.is_removed.is_(False),
        )
        .order_by(Person.email)
        .distinct()
        .all()
    )
    return set(merge_cells(
        ReportGridCell(subject_id=r.entity_id, column_definition_id=col_id, text_value=r.email)
        for r in rows
        for col_id in by_kind[r.kind_id]
    ))


def _single_column(columns):
    return min(columns, key=lambda c: c.position).grid_column_id


@ReportGridEngine.register("tag")
def fetch_tags(selector, columns) -> set[ReportGridCell]:
    if not columns:
        return set()
    col_id = _single_column(columns)
    rows = (
        db.session.query(TagUsage.entity_id, Tag.name)
        .join(Tag, and_(Tag.id == TagUsage.tag_id, Tag.target_kind == TagUsage.entity_kind))
        .filter(
            TagUsage.entity_kind == selector.kind,
            TagUsage.entity_id.in_(selector.id_list),
        )
        .order_by(Tag.name)
        .all()
    )
    return set(merge_cells(
        ReportGridCell(subject_id=r.entity_id, column_definition_id=col_id, text_value=r.name)
        for r in rows
    ))


@ReportGridEngine.register("alias")
def fetch_aliases(selector, columns) -> set[ReportGridCell]:
    if not columns:
        return set()
    col_id = _single_column(columns)
    rows = (
        EntityAlias.query
        .filter(
            EntityAlias.kind == selector.kind,
            EntityAlias.entity_id.in_(selector.id_list),
        )
        .order_by(EntityAlias.alias)
        .all()
    )
    return set(merge_cells(
        ReportGridCell(subject_id=a.entity_id, column_definition_id=col_id, text_value=a.alias)
        for a in rows
    ))


# ═════════════════════════════════════════════════════════════════════════════
# Measurables
# ═════════════════════════════════════════════════════════════════════════════

@ReportGridEngine.register("measurable_exact")
def fetch_measurable_ratings(selector, columns) -> set[ReportGridCell]:
    if not columns:
        return set()
    by_measurable = _columns_by_entity_id(columns)
    rows = (
        db.session.query(
            MeasurableRating.entity_id,
            MeasurableRating.measurable_id,
            MeasurableRating.description,
            RatingSchemeItem.id.label("rating_id"),
            RatingSchemeItem.name,
        )
        .join(Measurable, Measurable.id == MeasurableRating.measurable_id)
        .join(MeasurableCategory, MeasurableCategory.id == Measurable.measurable_category_id)
        .join(RatingSchemeItem, and_(
            RatingSchemeItem.scheme_id == MeasurableCategory.rating_scheme_id,
            RatingSchemeItem.code == MeasurableRating.rating,
        ))
        .filter(
            MeasurableRating.entity_kind == selector.kind,
            MeasurableRating.entity_id.in_(selector.id_list),
            MeasurableRating.measurable_id.in_(list(by_measurable)),
        )
        .all()
    )
    return {
        ReportGridCell(
            subject_id=r.entity_id,
            column_definition_id=col_id,
            rating_id_value=r.rating_id,
            comment=r.description,
            option_code=str(r.rating_id),
            option_text=r.name,
        )
        for r in rows
        for col_id in by_measurable[r.measurable_id]
    }


def summary_sort_key(option: AdditionalColumnOptions, position: int, name: str):
    """Ordering under which the winning rating is the minimum."""
    if option == AdditionalColumnOptions.PICK_LOWEST:
        return -position, name
    return position, name


@ReportGridEngine.register("measurable_summary")
def fetch_measurable_summaries(selector, columns) -> set[ReportGridCell]:
    """Best (or worst) rating held on the column's measurable or anything below it."""
    if not columns:
        return set()
    columns_by_measurable = defaultdict(list)
    for col in columns:
        columns_by_measurable[col.column_entity_id].append(col)

    column_measurable = aliased(Measurable)
    rows = (
        db.session.query(
            column_measurable.id.label("column_measurable_id"),
            MeasurableRating.entity_id,
            RatingSchemeItem.id.label("rating_id"),
            RatingSchemeItem.position,
            RatingSchemeItem.name,
        )
        .select_from(MeasurableRating)
        .join(EntityHierarchy, and_(
            EntityHierarchy.id == MeasurableRating.measurable_id,
            EntityHierarchy.kind == EntityKind.MEASURABLE,
        ))
        .join(column_measurable, column_measurable.id == EntityHierarchy.ancestor_id)
        .join(MeasurableCategory, MeasurableCategory.id == column_measurable.measurable_category_id)
        .join(RatingSchemeItem, and_(
            RatingSchemeItem.scheme_id == MeasurableCategory.rating_scheme_id,
            RatingSchemeItem.code == MeasurableRating.rating,
        ))
        .filter(
            MeasurableRating.entity_kind == selector.kind,
            MeasurableRating.entity_id.in_(selector.id_list),
            column_measurable.id.in_(list(columns_by_measurable)),
        )
        .all()
    )

    winners = {}
    for r in rows:
        for col in columns_by_measurable[r.column_measurable_id]:
            rank = summary_sort_key(col.additional_column_options, r.position, r.name)
            key = (r.entity_id, col.grid_column_id)
            if key not in winners or rank < winners[key][0]:
                winners[key] = (rank, r)

    return {
        ReportGridCell(
            subject_id=subject_id,
            column_definition_id=col_id,
            rating_id_value=r.rating_id,
            option_code=str(r.rating_id),
            option_text=r.name,
        )
        for (subject_id, col_id), (_, r) in winners.items()
    }


@ReportGridEngine.register("measurable_hierarchy")
def fetch_measurable_hierarchies(selector, columns) -> set[ReportGridCell]:
    """Names of rated measurables in a category, with their ancestry as a text tree."""
    if not columns:
        return set()
    columns_by_scope = defaultdict(list)
    for col in columns:
        qualifier = col.column_qualifier_id if col.column_qualifier_kind == EntityKind.MEASURABLE else None
        columns_by_scope[(col.column_entity_id, qualifier)].append(col.grid_column_id)

    cells = set()
    for (category_id, qualifier_id), col_ids in columns_by_scope.items():
        query = (
            db.session.query(MeasurableRating.entity_id, Measurable.id, Measurable.name)
            .join(Measurable, Measurable.id == MeasurableRating.measurable_id)
            .filter(
                MeasurableRating.entity_kind == selector.kind,
                MeasurableRating.entity_id.in_(selector.id_list),
                Measurable.measurable_category_id == category_id,
            )
        )
        if qualifier_id is not None:
            query = query.join(EntityHierarchy, and_(
                EntityHierarchy.id == Measurable.id,
                EntityHierarchy.kind == EntityKind.MEASURABLE,
                EntityHierarchy.ancestor_id == qualifier_id,
            ))
        rated = query.distinct().all()
        if not rated:
            continue

        rated_ids = {r.id for r in rated}
        arena = {
            n.id: FlatNode(id=n.id, parent_id=n.parent_id, name=n.name)
            for n in (
                db.session.query(Measurable.id, Measurable.parent_id, Measurable.name)
                .join(EntityHierarchy, and_(
                    EntityHierarchy.ancestor_id == Measurable.id,
                    EntityHierarchy.kind == EntityKind.MEASURABLE,
                ))
                .filter(EntityHierarchy.id.in_(sorted(rated_ids)))
                .distinct()
                .all()
            )
        }

        rated_by_subject = defaultdict(dict)
        for r in rated:
            rated_by_subject[r.entity_id][r.id] = r.name

        for subject_id, measurables in rated_by_subject.items():
            names = sorted(measurables.values(), key=str.lower)
            relevant = ancestry_closure(arena, measurables)
            tree = render_forest(build_forest(arena[i] for i in relevant))
            for col_id in col_ids:
                cells.add(ReportGridCell(
                    subject_id=subject_id,
                    column_definition_id=col_id,
                    text_value="; ".join(names),
                    comment=tree or None,
                ))
    return cells


# ═════════════════════════════════════════════════════════════════════════════
# Data types
# ═════════════════════════════════════════════════════════════════════════════

def derive_usage(usage_kinds) -> UsageKind | None:
    """Collapse the usage kinds held for one data type into one.

    MODIFIER beats DISTRIBUTOR; CONSUMER together with ORIGINATOR counts as
    DISTRIBUTOR; otherwise the single remaining kind. Empty input → None.
    """
    kinds = {UsageKind(k) for k in usage_kinds}
    if UsageKind.MODIFIER in kinds:
        return UsageKind.MODIFIER
    if UsageKind.DISTRIBUTOR in kinds:
        return UsageKind.DISTRIBUTOR
    if UsageKind.CONSUMER in kinds and UsageKind.ORIGINATOR in kinds:
        return UsageKind.DISTRIBUTOR
    if kinds:
        return next(iter(kinds))
    return None


def _usage_cells(usages_by_key, columns_by_data_type) -> set[ReportGridCell]:
    cells = set()
    for (subject_id, data_type_id), kinds in usages_by_key.items():
        usage = derive_usage(kinds)
        if usage is None:
            continue
        for col_id in columns_by_data_type[data_type_id]:
            cells.add(ReportGridCell(
                subject_id=subject_id,
                column_definition_id=col_id,
                text_value=usage.display_name,
                option_code=usage.value,
                option_text=usage.display_name,
            ))
    return cells


@ReportGridEngine.register("data_type_exact")
def fetch_data_type_usages(selector, columns) -> set[ReportGridCell]:
    if not columns:
        return set()
    by_data_type = _columns_by_entity_id(columns)
    rows = (
        db.session.query(DataTypeUsage.entity_id, DataTypeUsage.data_type_id, DataTypeUsage.usage_kind)
        .filter(
            DataTypeUsage.entity_kind == selector.kind,
            DataTypeUsage.entity_id.in_(selector.id_list),
            DataTypeUsage.data_type_id.in_(list(by_data_type)),
        )
        .all()
    )
    usages = defaultdict(set)
    for r in rows:
        usages[(r.entity_id, r.data_type_id)].add(r.usage_kind)
    return _usage_cells(usages, by_data_type)


@ReportGridEngine.register("data_type_summary")
def fetch_data_type_usage_summaries(selector, columns) -> set[ReportGridCell]:
    """Usages on the column's data type or any data type below it."""
    if not columns:
        return set()
    by_data_type = _columns_by_entity_id(columns)
    rows = (
        db.session.query(DataTypeUsage.entity_id, EntityHierarchy.ancestor_id, DataTypeUsage.usage_kind)
        .join(EntityHierarchy, and_(
            EntityHierarchy.id == DataTypeUsage.data_type_id,
            EntityHierarchy.kind == EntityKind.DATA_TYPE,
        ))
        .filter(
            DataTypeUsage.entity_kind == selector.kind,
            DataTypeUsage.entity_id.in_(selector.id_list),
            EntityHierarchy.ancestor_id.in_(list(by_data_type)),
        )
        .all()
    )
    usages = defaultdict(set)
    for r in rows:
        usages[(r.entity_id, r.ancestor_id)].add(r.usage_kind)
    return _usage_cells(usages, by_data_type)


# ═════════════════════════════════════════════════════════════════════════════
# Attestations
# ═════════════════════════════════════════════════════════════════════════════

ATTESTATION_BANDS = (
    (1, "<1M", "<1 Month"),
    (3, "<3M", "1-3 Months"),
    (6, "<6M", "3-6 Months"),
    (12, "<1Y", "6-12 Months"),
)
OLDEST_ATTESTATION_BAND = (">1Y", ">1 Year")


def _now():
    return datetime.now(timezone.utc)


def attestation_band(attested_at: datetime, now: datetime | None = None) -> tuple[str, str]:
    """(option code, option text) for the age of an attestation.

    A band applies only when ``attested_at`` is strictly after ``now`` minus
    the band's months, so an attestation exactly N months old falls into the
    older band.
    """
    now = as_utc(now or _now())
    attested_at = as_utc(attested_at)
    for months, code, text in ATTESTATION_BANDS:
        if attested_at > minus_months(now, months):
            return code, text
    return OLDEST_ATTESTATION_BAND


@ReportGridEngine.register("attestation")
def fetch_attestations(selector, columns) -> set[ReportGridCell]:
    """Latest attestation per (subject, column), banded by age."""
    if not columns:
        return set()
    columns = [c for c in columns if c.column_qualifier_kind]
    if not columns:
        return set()

    run_filters = [
        and_(
            AttestationRun.attested_entity_kind == col.column_qualifier_kind,
            true() if col.column_qualifier_id is None
            else AttestationRun.attested_entity_id == col.column_qualifier_id,
        )
        for col in columns
    ]
    rows = (
        db.session.query(
            AttestationInstance.id,
            AttestationInstance.parent_entity_id,
            AttestationInstance.attested_at,
            AttestationInstance.attested_by,
            AttestationRun.attested_entity_kind,
            AttestationRun.attested_entity_id,
        )
        .join(AttestationRun, AttestationRun.id == AttestationInstance.attestation_run_id)
        .filter(
            AttestationInstance.parent_entity_kind == selector.kind,
            AttestationInstance.parent_entity_id.in_(selector.id_list),
            AttestationInstance.attested_at.isnot(None),
            or_(*run_filters),
        )
        .all()
    )

    candidates = []
    for r in rows:
        for col in columns:
            if col.column_qualifier_kind != r.attested_entity_kind:
                continue
            if col.column_qualifier_id is not None and col.column_qualifier_id != r.attested_entity_id:
                continue
            candidates.append((col.grid_column_id, r))

    latest = _latest_per_partition(
        candidates,
        partition=lambda c: (c[1].parent_entity_id, c[0]),
        stamp=lambda c: c[1].attested_at,
        tiebreak=lambda c: c[1].id,
    )

    now = _now()
    cells = set()
    for (subject_id, col_id), (_, r) in latest.items():
        code, text = attestation_band(r.attested_at, now)
        cells.add(ReportGridCell(
            subject_id=subject_id,
            column_definition_id=col_id,
            date_time_value=as_utc(r.attested_at),
            comment=f"Attested by: {r.attested_by}",
            option_code=code,
            option_text=text,
        ))
    return cells


# ═════════════════════════════════════════════════════════════════════════════
# Application groups
# ═════════════════════════════════════════════════════════════════════════════

def _app_group_memberships(selector, group_ids):
    """(subject_id, group_id, created_at) rows for the selector kind."""
    if selector.kind == EntityKind.APPLICATION:
        direct = (
            db.session.query(
                ApplicationGroupEntry.application_id,
                ApplicationGroupEntry.group_id,
                ApplicationGroupEntry.created_at,
            )
            .filter(
                ApplicationGroupEntry.application_id.in_(selector.id_list),
                ApplicationGroupEntry.group_id.in_(group_ids),
            )
            .all()
        )
        via_org_unit = (
            db.session.query(Application.id, ApplicationGroupOuEntry.group_id, ApplicationGroupOuEntry.created_at)
            .select_from(ApplicationGroupOuEntry)
            .join(EntityHierarchy, and_(
                EntityHierarchy.ancestor_id == ApplicationGroupOuEntry.org_unit_id,
                EntityHierarchy.kind == EntityKind.ORG_UNIT,
            ))
            .join(Application, Application.organisational_unit_id == EntityHierarchy.id)
            .filter(
                Application.id.in_(selector.id_list),
                ApplicationGroupOuEntry.group_id.in_(group_ids),
            )
            .all()
        )
        return [tuple(r) for r in direct] + [tuple(r) for r in via_org_unit]

    if selector.kind == EntityKind.CHANGE_INITIATIVE:
        as_b = (
            db.session.query(EntityRelationship.id_b, EntityRelationship.id_a, EntityRelationship.last_updated_at)
            .filter(
                EntityRelationship.kind_a == EntityKind.APP_GROUP,
                EntityRelationship.id_a.in_(group_ids),
                EntityRelationship.kind_b == EntityKind.CHANGE_INITIATIVE,
                EntityRelationship.id_b.in_(selector.id_list),
            )
            .all()
        )
        as_a = (
            db.session.query(EntityRelationship.id_a, EntityRelationship.id_b, EntityRelationship.last_updated_at)
            .filter(
                EntityRelationship.kind_b == EntityKind.APP_GROUP,
                EntityRelationship.id_b.in_(group_ids),
                EntityRelationship.kind_a == EntityKind.CHANGE_INITIATIVE,
                EntityRelationship.id_a.in_(selector.id_list),
            )
            .all()
        )
        return [tuple(r) for r in as_b] + [tuple(r) for r in as_a]

    raise UnsupportedOperationError(
        f"Cannot resolve application group membership for selector kind {selector.kind}"
    )


@ReportGridEngine.register("app_group")
def fetch_app_group_memberships(selector, columns) -> set[ReportGridCell]:
    if not columns:
        return set()
    by_group = _columns_by_entity_id(columns)

    earliest = {}
    for subject_id, group_id, created_at in _app_group_memberships(selector, list(by_group)):
        key = (subject_id, group_id)
        if key not in earliest:
            earliest[key] = created_at
        elif created_at is not None and (earliest[key] is None or as_utc(created_at) < as_utc(earliest[key])):
            earliest[key] = created_at

    cells = set()
    for (subject_id, group_id), created_at in earliest.items():
        comment = f"Created at: {to_iso_date(created_at)}" if created_at else None
        for col_id in by_group[group_id]:
            cells.add(ReportGridCell(
                subject_id=subject_id,
                column_definition_id=col_id,
                text_value="Y",
                comment=comment,
            ))
    return cells


# ═════════════════════════════════════════════════════════════════════════════
# Surveys
# ═════════════════════════════════════════════════════════════════════════════

def _survey_response_text(field_type, response, list_responses, entity_names) -> str | None:
    if field_type in (EntityKind.PERSON, EntityKind.APPLICATION):
        return entity_names.get((response.entity_response_kind or field_type, response.entity_response_id))
    if field_type == "MEASURABLE_MULTI_SELECT":
        return "; ".join(list_responses) if list_responses else None
    for value in (
        response.string_response,
        response.boolean_response,
        response.number_response,
        response.date_response,
        response.list_response_concat,
    ):
        if value is not None:
            return render_value(value)
    return None


@ReportGridEngine.register("survey_question")
def fetch_survey_responses(selector, columns) -> set[ReportGridCell]:
    """Response from the latest approved/completed instance per (subject, question)."""
    if not columns:
        return set()
    by_question = _columns_by_entity_id(columns)
    rows = (
        db.session.query(SurveyQuestionResponse, SurveyInstance, SurveyQuestion.field_type)
        .join(SurveyInstance, SurveyInstance.id == SurveyQuestionResponse.survey_instance_id)
        .join(SurveyQuestion, SurveyQuestion.id == SurveyQuestionResponse.question_id)
        .filter(
            SurveyInstance.entity_kind == selector.kind,
            SurveyInstance.entity_id.in_(selector.id_list),
            SurveyInstance.status.in_(ELIGIBLE_SURVEY_STATUSES),
            SurveyQuestionResponse.question_id.in_(list(by_question)),
        )
        .all()
    )
    latest = _latest_per_partition(
        rows,
        partition=lambda r: (r[1].entity_id, r[0].question_id),
        stamp=lambda r: r[1].submitted_at,
        tiebreak=lambda r: r[1].id,
    )
    if not latest:
        return set()

    chosen = list(latest.values())
    list_responses = defaultdict(list)
    for lr in (
        SurveyQuestionListResponse.query
        .filter(
            SurveyQuestionListResponse.survey_instance_id.in_(sorted({i.id for _, i, _ in chosen})),
            SurveyQuestionListResponse.question_id.in_(list(by_question)),
        )
        .order_by(SurveyQuestionListResponse.position, SurveyQuestionListResponse.response)
        .all()
    ):
        list_responses[(lr.survey_instance_id, lr.question_id)].append(lr.response)

    wanted = defaultdict(set)
    for response, _, field_type in chosen:
        if field_type in (EntityKind.PERSON, EntityKind.APPLICATION) and response.entity_response_id:
            wanted[response.entity_response_kind or field_type].add(response.entity_response_id)
    entity_names = {
        (kind, entity_id): name
        for kind, ids in wanted.items()
        for entity_id, name in resolve_display_names(kind, ids).items()
    }

    cells = set()
    for response, instance, field_type in chosen:
        text = _survey_response_text(
            field_type,
            response,
            list_responses.get((instance.id, response.question_id), []),
            entity_names,
        )
        for col_id in by_question[response.question_id]:
            cells.add(ReportGridCell(
                subject_id=instance.entity_id,
                column_definition_id=col_id,
                text_value=text,
                comment=response.comment,
            ))
    return cells


def _survey_record(instance: SurveyInstance, run: SurveyRun) -> dict:
    return {
        "status": instance.status,
        "approved_at": instance.approved_at,
        "approved_by": instance.approved_by,
        "submitted_at": instance.submitted_at,
        "submitted_by": instance.submitted_by,
        "due_date": instance.due_date,
        "approval_due_date": instance.approval_due_date,
        "issued_on": run.issued_on,
        "instance_name": instance.name,
        "run_name": run.name,
        "entity_id": instance.entity_id,
        "entity_kind": instance.entity_kind,
    }


@ReportGridEngine.register("survey_field")
def fetch_survey_fields(selector, columns) -> set[ReportGridCell]:
    """Fields of the latest current, approved/completed instance per (subject, template)."""
    if not columns:
        return set()
    columns_by_template = defaultdict(list)
    for fc in columns:
        columns_by_template[fc.column.column_entity_id].append(fc)

    rows = (
        db.session.query(SurveyInstance, SurveyRun)
        .join(SurveyRun, SurveyRun.id == SurveyInstance.survey_run_id)
        .filter(
            SurveyInstance.entity_kind == selector.kind,
            SurveyInstance.entity_id.in_(selector.id_list),
            SurveyInstance.original_instance_id.is_(None),
            SurveyInstance.status.in_(ELIGIBLE_SURVEY_STATUSES),
            SurveyRun.survey_template_id.in_(list(columns_by_template)),
        )
        .all()
    )
    latest = _latest_per_partition(
        rows,
        partition=lambda r: (r[0].entity_id, r[1].survey_template_id),
        stamp=lambda r: r[0].submitted_at,
        tiebreak=lambda r: r[0].id,
    )

    cells = set()
    for (subject_id, template_id), (instance, run) in latest.items():
        record = _survey_record(instance, run)
        for fc in columns_by_template[template_id]:
            text = render_value(record.get(fc.field_name))
            if text is None:
                continue
            cells.add(ReportGridCell(subject_id=subject_id, column_definition_id=fc.grid_column_id, text_value=text))
    return cells


# ═════════════════════════════════════════════════════════════════════════════
# Field references on subjects
# ═════════════════════════════════════════════════════════════════════════════

def _project_fields(records, columns, field_names) -> set[ReportGridCell]:
    """Cells for ``(subject_id, values_by_field)`` records; unknown or null fields emit nothing."""
    cells = set()
    for subject_id, values in records:
        for fc in columns:
            if fc.field_name not in field_names:
                continue
            text = render_value(values.get(fc.field_name))
            if text is None:
                continue
            cells.add(ReportGridCell(subject_id=subject_id, column_definition_id=fc.grid_column_id, text_value=text))
    return cells


def _column_values(obj) -> dict:
    return {name: getattr(obj, name) for name in obj.__table__.columns.keys()}


@ReportGridEngine.register("application_field")
def fetch_application_fields(selector, columns) -> set[ReportGridCell]:
    if not columns:
        return set()
    apps = Application.query.filter(Application.id.in_(selector.id_list)).all()
    return _project_fields(
        ((app.id, _column_values(app)) for app in apps),
        columns,
        set(Application.__table__.columns.keys()),
    )


@ReportGridEngine.register("change_initiative_field")
def fetch_change_initiative_fields(selector, columns) -> set[ReportGridCell]:
    if not columns:
        return set()
    parent = aliased(ChangeInitiative)
    rows = (
        db.session.query(ChangeInitiative, parent.external_id.label("parent_external_id"))
        .outerjoin(parent, parent.id == ChangeInitiative.parent_id)
        .filter(ChangeInitiative.id.in_(selector.id_list))
        .all()
    )
    records = []
    for ci, parent_external_id in rows:
        values = _column_values(ci)
        values["parent_external_id"] = parent_external_id
        records.append((ci.id, values))
    fields = set(ChangeInitiative.__table__.columns.keys()) | {"parent_external_id"}
    return _project_fields(records, columns, fields)


@ReportGridEngine.register("org_unit_field")
def fetch_org_unit_fields(selector, columns) -> set[ReportGridCell]:
    """Fields of the org unit owning each subject application or change initiative."""
    if not columns:
        return set()
    owner = Application if selector.kind == EntityKind.APPLICATION else ChangeInitiative
    rows = (
        db.session.query(owner.id, OrganisationalUnit)
        .join(OrganisationalUnit, OrganisationalUnit.id == owner.organisational_unit_id)
        .filter(owner.id.in_(selector.id_list))
        .all()
    )
    return _project_fields(
        ((subject_id, _column_values(ou)) for subject_id, ou in rows),
        columns,
        set(OrganisationalUnit.__table__.columns.keys()),
    )
