"""
Waltz Report Grid Service
Attestation models.

An AttestationRun asks owners to attest one kind of thing (logical flows,
physical flows, or the ratings of a measurable category). Each
AttestationInstance is one entity's response to a run.
"""

from waltz.models import db


class AttestationRun(db.Model):
    __tablename__ = "attestation_run"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")
    attested_entity_kind = db.Column(
        db.String(64), nullable=False,
        comment="LOGICAL_DATA_FLOW | PHYSICAL_FLOW | MEASURABLE_CATEGORY",
    )
    attested_entity_id = db.Column(db.Integer, nullable=True)
    issued_on = db.Column(db.Date, nullable=True)
    due_date = db.Column(db.Date, nullable=True)


class AttestationInstance(db.Model):
    __tablename__ = "attestation_instance"

    id = db.Column(db.Integer, primary_key=True)
    attestation_run_id = db.Column(
        db.Integer, db.ForeignKey("attestation_run.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    parent_entity_kind = db.Column(db.String(64), nullable=False)
    parent_entity_id = db.Column(db.Integer, nullable=False, index=True)
    attested_at = db.Column(db.DateTime(timezone=True), nullable=True)
    attested_by = db.Column(db.String(255), nullable=True)
