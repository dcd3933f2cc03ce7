"""report_grid_tables

Creates report grid definition tables:
  - entity_field_reference                 - projectable fields per entity kind
  - report_grid                            - named grid + subject kind
  - report_grid_column_definition          - ordered column slots
  - report_grid_fixed_column_definition    - columns bound to a catalog entity
  - report_grid_derived_column_definition  - scripted columns (stored only)

Tables created conditionally (IF NOT EXISTS semantics) to support idempotent
execution against databases that already received these tables via db.create_all().

Revision ID: 5e1f0a9c2b34
Revises:
Create Date: 2026-10-19 09:12:44.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "5e1f0a9c2b34"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── EntityFieldReference ──────────────────────────────────────────────
    if "entity_field_reference" not in existing:
        op.create_table(
            "entity_field_reference",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column(
                "entity_kind", sa.String(length=64), nullable=False,
                comment="APPLICATION | CHANGE_INITIATIVE | ORG_UNIT | SURVEY_INSTANCE",
            ),
            sa.Column("field_name", sa.String(length=128), nullable=False),
            sa.Column("display_name", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("entity_kind", "field_name", name="uq_efr_kind_field"),
        )

    # ── ReportGrid ────────────────────────────────────────────────────────
    if "report_grid" not in existing:
        op.create_table(
            "report_grid",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("external_id", sa.String(length=200), nullable=True),
            sa.Column(
                "subject_kind", sa.String(length=64), nullable=False,
                server_default="APPLICATION",
                comment="APPLICATION | CHANGE_INITIATIVE",
            ),
            sa.Column(
                "kind", sa.String(length=32), nullable=False,
                server_default="PUBLIC",
                comment="PUBLIC | PRIVATE",
            ),
            sa.Column("provenance", sa.String(length=64), nullable=False, server_default="waltz"),
            sa.Column("last_updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("last_updated_by", sa.String(length=255), nullable=False, server_default="system"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("name"),
            sa.UniqueConstraint("external_id"),
        )

    # ── ReportGridColumnDefinition ────────────────────────────────────────
    if "report_grid_column_definition" not in existing:
        op.create_table(
            "report_grid_column_definition",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("report_grid_id", sa.Integer(), nullable=False),
            sa.Column("position", sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(["report_grid_id"], ["report_grid.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("report_grid_id", "position", name="uq_rgcd_grid_position"),
        )
        op.create_index(
            "ix_report_grid_column_definition_report_grid_id",
            "report_grid_column_definition", ["report_grid_id"],
        )

    # ── ReportGridFixedColumnDefinition ───────────────────────────────────
    if "report_grid_fixed_column_definition" not in existing:
        op.create_table(
            "report_grid_fixed_column_definition",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("grid_column_id", sa.Integer(), nullable=False),
            sa.Column("column_entity_kind", sa.String(length=64), nullable=False),
            sa.Column("column_entity_id", sa.Integer(), nullable=True),
            sa.Column("column_qualifier_kind", sa.String(length=64), nullable=True),
            sa.Column("column_qualifier_id", sa.Integer(), nullable=True),
            sa.Column(
                "additional_column_options", sa.String(length=32), nullable=False,
                server_default="NONE",
                comment="NONE | PICK_HIGHEST | PICK_LOWEST",
            ),
            sa.Column("display_name", sa.String(length=255), nullable=True),
            sa.Column("external_id", sa.String(length=200), nullable=True),
            sa.Column("entity_field_reference_id", sa.Integer(), nullable=True),
            sa.ForeignKeyConstraint(
                ["grid_column_id"], ["report_grid_column_definition.id"], ondelete="CASCADE",
            ),
            sa.ForeignKeyConstraint(["entity_field_reference_id"], ["entity_field_reference.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("grid_column_id"),
        )

    # ── ReportGridDerivedColumnDefinition ─────────────────────────────────
    if "report_grid_derived_column_definition" not in existing:
        op.create_table(
            "report_grid_derived_column_definition",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("grid_column_id", sa.Integer(), nullable=False),
            sa.Column("display_name", sa.String(length=255), nullable=False),
            sa.Column("column_description", sa.Text(), nullable=True),
            sa.Column(
                "derivation_script", sa.Text(), nullable=False,
                comment="Opaque script text; stored and returned, never evaluated here",
            ),
            sa.Column("external_id", sa.String(length=200), nullable=True),
            sa.ForeignKeyConstraint(
                ["grid_column_id"], ["report_grid_column_definition.id"], ondelete="CASCADE",
            ),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("grid_column_id"),
        )


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    for table in (
        "report_grid_derived_column_definition",
        "report_grid_fixed_column_definition",
    ):
        if table in existing:
            op.drop_table(table)

    if "report_grid_column_definition" in existing:
        op.drop_index(
            "ix_report_grid_column_definition_report_grid_id",
            table_name="report_grid_column_definition",
        )
        op.drop_table("report_grid_column_definition")

    for table in ("report_grid", "entity_field_reference"):
        if table in existing:
            op.drop_table(table)
