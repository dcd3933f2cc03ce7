"""
Waltz Report Grid Service
Survey models.

Models:
    - SurveyTemplate → SurveyRun → SurveyInstance (one per entity per run)
    - SurveyQuestion (belongs to a template)
    - SurveyQuestionResponse, SurveyQuestionListResponse

Instances superseded by a re-issue point back through
``original_instance_id``; only rows where it is NULL are current.
"""

from waltz.models import db


class SurveyTemplate(db.Model):
    __tablename__ = "survey_template"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")
    target_entity_kind = db.Column(db.String(64), nullable=False, default="APPLICATION")
    status = db.Column(db.String(32), default="ACTIVE")
    external_id = db.Column(db.String(200), nullable=True)


class SurveyRun(db.Model):
    __tablename__ = "survey_run"

    id = db.Column(db.Integer, primary_key=True)
    survey_template_id = db.Column(
        db.Integer, db.ForeignKey("survey_template.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")
    issued_on = db.Column(db.Date, nullable=True)
    due_date = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(32), default="ISSUED")


class SurveyInstance(db.Model):
    __tablename__ = "survey_instance"

    id = db.Column(db.Integer, primary_key=True)
    survey_run_id = db.Column(
        db.Integer, db.ForeignKey("survey_run.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    entity_kind = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False, index=True)
    name = db.Column(db.String(255), nullable=True)
    status = db.Column(
        db.String(32), nullable=False, default="NOT_STARTED",
        comment="NOT_STARTED | IN_PROGRESS | COMPLETED | APPROVED | REJECTED | WITHDRAWN",
    )
    due_date = db.Column(db.Date, nullable=True)
    approval_due_date = db.Column(db.Date, nullable=True)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    submitted_by = db.Column(db.String(255), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_by = db.Column(db.String(255), nullable=True)
    original_instance_id = db.Column(db.Integer, db.ForeignKey("survey_instance.id"), nullable=True)


class SurveyQuestion(db.Model):
    __tablename__ = "survey_question"

    id = db.Column(db.Integer, primary_key=True)
    survey_template_id = db.Column(
        db.Integer, db.ForeignKey("survey_template.id", ondelete="CASCADE"), nullable=False,
    )
    question_text = db.Column(db.Text, nullable=False)
    help_text = db.Column(db.Text, default="")
    field_type = db.Column(
        db.String(64), nullable=False, default="TEXT",
        comment="TEXT | TEXTAREA | NUMBER | BOOLEAN | DATE | DROPDOWN | PERSON | "
                "APPLICATION | MEASURABLE_MULTI_SELECT | DROPDOWN_MULTI_SELECT",
    )
    position = db.Column(db.Integer, default=0)
    external_id = db.Column(db.String(200), nullable=True)


class SurveyQuestionResponse(db.Model):
    __tablename__ = "survey_question_response"

    survey_instance_id = db.Column(
        db.Integer, db.ForeignKey("survey_instance.id", ondelete="CASCADE"), primary_key=True,
    )
    question_id = db.Column(
        db.Integer, db.ForeignKey("survey_question.id", ondelete="CASCADE"), primary_key=True,
    )
    person_id = db.Column(db.Integer, nullable=True)
    comment = db.Column(db.Text, nullable=True)
    string_response = db.Column(db.Text, nullable=True)
    number_response = db.Column(db.Float, nullable=True)
    boolean_response = db.Column(db.Boolean, nullable=True)
    date_response = db.Column(db.Date, nullable=True)
    entity_response_kind = db.Column(db.String(64), nullable=True)
    entity_response_id = db.Column(db.Integer, nullable=True)
    list_response_concat = db.Column(db.Text, nullable=True)


class SurveyQuestionListResponse(db.Model):
    __tablename__ = "survey_question_list_response"

    survey_instance_id = db.Column(
        db.Integer, db.ForeignKey("survey_instance.id", ondelete="CASCADE"), primary_key=True,
    )
    question_id = db.Column(
        db.Integer, db.ForeignKey("survey_question.id", ondelete="CASCADE"), primary_key=True,
    )
    response = db.Column(db.String(255), primary_key=True)
    position = db.Column(db.Integer, nullable=False, default=0)
