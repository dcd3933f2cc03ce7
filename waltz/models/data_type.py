"""
Waltz Report Grid Service
Data type taxonomy and how entities use each data type.
"""

from waltz.models import db


class DataType(db.Model):
    __tablename__ = "data_type"

    id = db.Column(db.Integer, primary_key=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("data_type.id"), nullable=True)
    code = db.Column(db.String(128), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")


class DataTypeUsage(db.Model):
    """One row per (entity, data type, usage kind)."""

    __tablename__ = "data_type_usage"

    entity_kind = db.Column(db.String(64), primary_key=True)
    entity_id = db.Column(db.Integer, primary_key=True)
    data_type_id = db.Column(db.Integer, db.ForeignKey("data_type.id", ondelete="CASCADE"), primary_key=True)
    usage_kind = db.Column(
        db.String(32), primary_key=True,
        comment="CONSUMER | DISTRIBUTOR | MODIFIER | ORIGINATOR",
    )
    description = db.Column(db.Text, default="")
