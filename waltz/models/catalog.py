"""
Waltz Report Grid Service
Core catalog models read by the grid strategies.

Models:
    - Application, ChangeInitiative, OrganisationalUnit, Person
    - EntityHierarchy: closure table (self rows included) for tree-shaped kinds
    - EntityRelationship: generic (kind, id) → (kind, id) links
    - EntityAlias, Tag, TagUsage
    - ApplicationGroup + direct / org-unit membership entries
    - InvolvementKind, Involvement
"""

from datetime import datetime, timezone

from waltz.models import db


def _utcnow():
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════════════
# Subjects
# ═════════════════════════════════════════════════════════════════════════════

class Application(db.Model):
    __tablename__ = "application"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")
    asset_code = db.Column(db.String(255), nullable=True, index=True)
    parent_asset_code = db.Column(db.String(255), nullable=True)
    kind = db.Column(db.String(64), default="IN_HOUSE", comment="IN_HOUSE | EXTERNAL | EUC | ...")
    lifecycle_phase = db.Column(db.String(64), default="PRODUCTION")
    overall_rating = db.Column(db.String(8), nullable=True)
    business_criticality = db.Column(db.String(32), nullable=True)
    organisational_unit_id = db.Column(
        db.Integer, db.ForeignKey("organisational_unit.id"), nullable=True, index=True,
    )
    entity_lifecycle_status = db.Column(db.String(32), default="ACTIVE")
    planned_retirement_date = db.Column(db.Date, nullable=True)
    actual_retirement_date = db.Column(db.Date, nullable=True)
    commission_date = db.Column(db.Date, nullable=True)
    provenance = db.Column(db.String(64), default="waltz")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def __repr__(self):
        return f"<Application {self.id}: {self.name}>"


class ChangeInitiative(db.Model):
    __tablename__ = "change_initiative"

    id = db.Column(db.Integer, primary_key=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("change_initiative.id"), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")
    external_id = db.Column(db.String(200), nullable=True)
    kind = db.Column(db.String(64), default="PROGRAMME", comment="PROGRAMME | PROJECT | INITIATIVE")
    lifecycle_phase = db.Column(db.String(64), default="PRODUCTION")
    organisational_unit_id = db.Column(
        db.Integer, db.ForeignKey("organisational_unit.id"), nullable=True, index=True,
    )
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    provenance = db.Column(db.String(64), default="waltz")
    last_updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow)


class OrganisationalUnit(db.Model):
    __tablename__ = "organisational_unit"

    id = db.Column(db.Integer, primary_key=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("organisational_unit.id"), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")
    external_id = db.Column(db.String(200), nullable=True)
    provenance = db.Column(db.String(64), default="waltz")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    last_updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow)


class Person(db.Model):
    __tablename__ = "person"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.String(128), nullable=False, unique=True)
    display_name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    title = db.Column(db.String(255), nullable=True)
    is_removed = db.Column(db.Boolean, nullable=False, default=False)


# ═════════════════════════════════════════════════════════════════════════════
# Hierarchy & relationships
# ═════════════════════════════════════════════════════════════════════════════

class EntityHierarchy(db.Model):
    """Closure table: one row per (node, ancestor), including (node, node)."""

    __tablename__ = "entity_hierarchy"

    kind = db.Column(db.String(64), primary_key=True)
    id = db.Column(db.Integer, primary_key=True)
    ancestor_id = db.Column(db.Integer, primary_key=True)
    level = db.Column(db.Integer, nullable=False, default=0, comment="Depth of ``id`` below the root")


class EntityRelationship(db.Model):
    __tablename__ = "entity_relationship"

    id = db.Column(db.Integer, primary_key=True)
    kind_a = db.Column(db.String(64), nullable=False)
    id_a = db.Column(db.Integer, nullable=False)
    kind_b = db.Column(db.String(64), nullable=False)
    id_b = db.Column(db.Integer, nullable=False)
    relationship = db.Column(db.String(64), nullable=False, default="RELATES_TO")
    description = db.Column(db.Text, nullable=True)
    last_updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    last_updated_by = db.Column(db.String(255), default="system")


class EntityAlias(db.Model):
    __tablename__ = "entity_alias"

    kind = db.Column(db.String(64), primary_key=True)
    entity_id = db.Column(db.Integer, primary_key=True)
    alias = db.Column(db.String(255), primary_key=True)
    provenance = db.Column(db.String(64), default="waltz")


class Tag(db.Model):
    __tablename__ = "tag"
    __table_args__ = (db.UniqueConstraint("name", "target_kind", name="uq_tag_name_kind"),)

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    target_kind = db.Column(db.String(64), nullable=False)


class TagUsage(db.Model):
    __tablename__ = "tag_usage"

    tag_id = db.Column(db.Integer, db.ForeignKey("tag.id", ondelete="CASCADE"), primary_key=True)
    entity_kind = db.Column(db.String(64), primary_key=True)
    entity_id = db.Column(db.Integer, primary_key=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    created_by = db.Column(db.String(255), default="system")


# ═════════════════════════════════════════════════════════════════════════════
# Application groups
# ═════════════════════════════════════════════════════════════════════════════

class ApplicationGroup(db.Model):
    __tablename__ = "application_group"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")
    kind = db.Column(db.String(32), default="PUBLIC")
    external_id = db.Column(db.String(200), nullable=True)


class ApplicationGroupEntry(db.Model):
    """Direct membership of an application in a group."""

    __tablename__ = "application_group_entry"

    group_id = db.Column(db.Integer, db.ForeignKey("application_group.id", ondelete="CASCADE"), primary_key=True)
    application_id = db.Column(db.Integer, db.ForeignKey("application.id", ondelete="CASCADE"), primary_key=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)


class ApplicationGroupOuEntry(db.Model):
    """Org-unit membership: every application in the unit's subtree belongs."""

    __tablename__ = "application_group_ou_entry"

    group_id = db.Column(db.Integer, db.ForeignKey("application_group.id", ondelete="CASCADE"), primary_key=True)
    org_unit_id = db.Column(db.Integer, db.ForeignKey("organisational_unit.id", ondelete="CASCADE"), primary_key=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)


# ═════════════════════════════════════════════════════════════════════════════
# Involvements
# ═════════════════════════════════════════════════════════════════════════════

class InvolvementKind(db.Model):
    __tablename__ = "involvement_kind"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")
    external_id = db.Column(db.String(200), nullable=True)


class Involvement(db.Model):
    __tablename__ = "involvement"

    id = db.Column(db.Integer, primary_key=True)
    entity_kind = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False, index=True)
    kind_id = db.Column(db.Integer, db.ForeignKey("involvement_kind.id"), nullable=False)
    employee_id = db.Column(db.String(128), nullable=False, comment="Joins person.employee_id")
    provenance = db.Column(db.String(64), default="waltz")
