"""
Waltz Report Grid Service
Assessment, entity statistic, cost and complexity models.

These are the simple per-entity indicators: one value per
(entity, definition) pair, or one per year for costs.
"""

from datetime import datetime, timezone

from waltz.models import db


def _utcnow():
    return datetime.now(timezone.utc)


# ── Assessments ──────────────────────────────────────────────────────────────

class AssessmentDefinition(db.Model):
    __tablename__ = "assessment_definition"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")
    entity_kind = db.Column(db.String(64), nullable=False, default="APPLICATION")
    rating_scheme_id = db.Column(db.Integer, db.ForeignKey("rating_scheme.id"), nullable=False)


class AssessmentRating(db.Model):
    __tablename__ = "assessment_rating"
    __table_args__ = (
        db.UniqueConstraint("entity_kind", "entity_id", "assessment_definition_id", name="uq_ar_entity_def"),
    )

    id = db.Column(db.Integer, primary_key=True)
    entity_kind = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False, index=True)
    assessment_definition_id = db.Column(
        db.Integer, db.ForeignKey("assessment_definition.id", ondelete="CASCADE"), nullable=False,
    )
    rating_id = db.Column(db.Integer, db.ForeignKey("rating_scheme_item.id"), nullable=False)
    description = db.Column(db.Text, default="")
    last_updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow)


# ── Entity statistics ────────────────────────────────────────────────────────

class EntityStatisticDefinition(db.Model):
    __tablename__ = "entity_statistic_definition"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")


class EntityStatisticValue(db.Model):
    __tablename__ = "entity_statistic_value"

    id = db.Column(db.Integer, primary_key=True)
    statistic_id = db.Column(
        db.Integer, db.ForeignKey("entity_statistic_definition.id", ondelete="CASCADE"), nullable=False,
    )
    entity_kind = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False, index=True)
    value = db.Column(db.String(255), nullable=True)
    outcome = db.Column(db.String(255), nullable=True)
    reason = db.Column(db.Text, nullable=True)
    current = db.Column(db.Boolean, nullable=False, default=True, comment="Only current rows are reported")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)


# ── Costs ────────────────────────────────────────────────────────────────────

class CostKind(db.Model):
    __tablename__ = "cost_kind"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")
    external_id = db.Column(db.String(200), nullable=True)


class Cost(db.Model):
    __tablename__ = "cost"
    __table_args__ = (
        db.Index("ix_cost_entity_kind_year", "entity_kind", "entity_id", "cost_kind_id", "year"),
    )

    id = db.Column(db.Integer, primary_key=True)
    cost_kind_id = db.Column(db.Integer, db.ForeignKey("cost_kind.id", ondelete="CASCADE"), nullable=False)
    entity_kind = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)
    year = db.Column(db.Integer, nullable=False)
    amount = db.Column(db.Float, nullable=False)
    provenance = db.Column(db.String(64), default="waltz")


# ── Complexity ───────────────────────────────────────────────────────────────

class ComplexityKind(db.Model):
    __tablename__ = "complexity_kind"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")


class Complexity(db.Model):
    __tablename__ = "complexity"

    id = db.Column(db.Integer, primary_key=True)
    complexity_kind_id = db.Column(
        db.Integer, db.ForeignKey("complexity_kind.id", ondelete="CASCADE"), nullable=False,
    )
    entity_kind = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False, index=True)
    score = db.Column(db.Float, nullable=False)
