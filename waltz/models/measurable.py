"""
Waltz Report Grid Service
Measurable (viewpoint) models and the rating schemes they are rated against.

Models:
    - RatingScheme, RatingSchemeItem
    - MeasurableCategory: taxonomy root, carries the rating scheme
    - Measurable: taxonomy node (parent_id forms the tree)
    - MeasurableRating: rating code given by an entity to a measurable
"""

from datetime import datetime, timezone

from waltz.models import db


class RatingScheme(db.Model):
    __tablename__ = "rating_scheme"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")


class RatingSchemeItem(db.Model):
    """One rating within a scheme; lower ``position`` ranks higher."""

    __tablename__ = "rating_scheme_item"
    __table_args__ = (db.UniqueConstraint("scheme_id", "code", name="uq_rsi_scheme_code"),)

    id = db.Column(db.Integer, primary_key=True)
    scheme_id = db.Column(db.Integer, db.ForeignKey("rating_scheme.id", ondelete="CASCADE"), nullable=False)
    code = db.Column(db.String(16), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")
    color = db.Column(db.String(32), default="#cccccc")
    position = db.Column(db.Integer, nullable=False, default=0)


class MeasurableCategory(db.Model):
    __tablename__ = "measurable_category"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")
    rating_scheme_id = db.Column(db.Integer, db.ForeignKey("rating_scheme.id"), nullable=False)
    external_id = db.Column(db.String(200), nullable=True)


class Measurable(db.Model):
    __tablename__ = "measurable"

    id = db.Column(db.Integer, primary_key=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("measurable.id"), nullable=True)
    measurable_category_id = db.Column(
        db.Integer, db.ForeignKey("measurable_category.id"), nullable=False, index=True,
    )
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")
    external_id = db.Column(db.String(200), nullable=True)

    def __repr__(self):
        return f"<Measurable {self.id}: {self.name}>"


class MeasurableRating(db.Model):
    __tablename__ = "measurable_rating"
    __table_args__ = (
        db.UniqueConstraint("entity_kind", "entity_id", "measurable_id", name="uq_mr_entity_measurable"),
    )

    id = db.Column(db.Integer, primary_key=True)
    entity_kind = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False, index=True)
    measurable_id = db.Column(db.Integer, db.ForeignKey("measurable.id", ondelete="CASCADE"), nullable=False)
    rating = db.Column(db.String(16), nullable=False, comment="RatingSchemeItem.code")
    description = db.Column(db.Text, default="")
    last_updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
