"""
Waltz Report Grid Service
Report grid definition models.

Models:
    - ReportGrid: named grid, subject kind and provenance
    - ReportGridColumnDefinition: one column slot (grid, position)
    - ReportGridFixedColumnDefinition: column bound to a catalog entity
    - ReportGridDerivedColumnDefinition: column computed from a script
    - EntityFieldReference: projectable field of an entity kind
"""

from datetime import datetime, timezone

from waltz.models import db


def _utcnow():
    return datetime.now(timezone.utc)


class ReportGrid(db.Model):
    """A saved grid: a set of ordered columns evaluated against subjects."""

    __tablename__ = "report_grid"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, unique=True)
    description = db.Column(db.Text, default="")
    external_id = db.Column(db.String(200), nullable=True, unique=True)
    subject_kind = db.Column(
        db.String(64), nullable=False, default="APPLICATION",
        comment="APPLICATION | CHANGE_INITIATIVE",
    )
    kind = db.Column(
        db.String(32), nullable=False, default="PUBLIC",
        comment="PUBLIC | PRIVATE",
    )
    provenance = db.Column(db.String(64), nullable=False, default="waltz")
    last_updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
    last_updated_by = db.Column(db.String(255), nullable=False, default="system")

    columns = db.relationship(
        "ReportGridColumnDefinition",
        backref="grid",
        cascade="all, delete-orphan",
        order_by="ReportGridColumnDefinition.position",
        lazy="select",
    )

    def to_dict(self):
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
        }

    def __repr__(self):
        return f"<ReportGrid {self.id}: {self.name}>"


class ReportGridColumnDefinition(db.Model):
    """Column slot; exactly one of ``fixed`` / ``derived`` hangs off it."""

    __tablename__ = "report_grid_column_definition"
    __table_args__ = (
        db.UniqueConstraint("report_grid_id", "position", name="uq_rgcd_grid_position"),
    )

    id = db.Column(db.Integer, primary_key=True)
    report_grid_id = db.Column(
        db.Integer, db.ForeignKey("report_grid.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    position = db.Column(db.Integer, nullable=False)

    fixed = db.relationship(
        "ReportGridFixedColumnDefinition",
        backref="column",
        uselist=False,
        cascade="all, delete-orphan",
    )
    derived = db.relationship(
        "ReportGridDerivedColumnDefinition",
        backref="column",
        uselist=False,
        cascade="all, delete-orphan",
    )


class ReportGridFixedColumnDefinition(db.Model):
    __tablename__ = "report_grid_fixed_column_definition"

    id = db.Column(db.Integer, primary_key=True)
    grid_column_id = db.Column(
        db.Integer, db.ForeignKey("report_grid_column_definition.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    column_entity_kind = db.Column(db.String(64), nullable=False)
    column_entity_id = db.Column(db.Integer, nullable=True)
    column_qualifier_kind = db.Column(db.String(64), nullable=True)
    column_qualifier_id = db.Column(db.Integer, nullable=True)
    additional_column_options = db.Column(
        db.String(32), nullable=False, default="NONE",
        comment="NONE | PICK_HIGHEST | PICK_LOWEST",
    )
    display_name = db.Column(db.String(255), nullable=True)
    external_id = db.Column(db.String(200), nullable=True)
    entity_field_reference_id = db.Column(
        db.Integer, db.ForeignKey("entity_field_reference.id"), nullable=True,
    )


class ReportGridDerivedColumnDefinition(db.Model):
    __tablename__ = "report_grid_derived_column_definition"

    id = db.Column(db.Integer, primary_key=True)
    grid_column_id = db.Column(
        db.Integer, db.ForeignKey("report_grid_column_definition.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    display_name = db.Column(db.String(255), nullable=False)
    column_description = db.Column(db.Text, nullable=True)
    derivation_script = db.Column(
        db.Text, nullable=False,
        comment="Opaque script text; stored and returned, never evaluated here",
    )
    external_id = db.Column(db.String(200), nullable=True)


class EntityFieldReference(db.Model):
    """A named attribute of an entity kind that a grid column can project."""

    __tablename__ = "entity_field_reference"
    __table_args__ = (
        db.UniqueConstraint("entity_kind", "field_name", name="uq_efr_kind_field"),
    )

    id = db.Column(db.Integer, primary_key=True)
    entity_kind = db.Column(
        db.String(64), nullable=False,
        comment="APPLICATION | CHANGE_INITIATIVE | ORG_UNIT | SURVEY_INSTANCE",
    )
    field_name = db.Column(db.String(128), nullable=False)
    display_name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")

    def to_dict(self):
        return {
            "id": self.id,
            "entity_kind": self.entity_kind,
            "field_name": self.field_name,
            "display_name": self.display_name,
            "description": self.description,
        }
