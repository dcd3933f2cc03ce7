"""
Entity name resolution.

Maps (kind, ids) to display names and descriptions with one query per
kind. Used for column headers, survey responses that point at people or
applications, and the subject column of exports.
"""

import logging

from waltz.models.assessment import (
    AssessmentDefinition,
    ComplexityKind,
    CostKind,
    EntityStatisticDefinition,
)
from waltz.models.catalog import (
    Application,
    ApplicationGroup,
    ChangeInitiative,
    InvolvementKind,
    OrganisationalUnit,
    Person,
)
from waltz.models.data_type import DataType
from waltz.models.entity_kind import EntityKind
from waltz.models.measurable import Measurable, MeasurableCategory
from waltz.models.report_grid import EntityFieldReference
from waltz.models.survey import SurveyQuestion, SurveyTemplate

logger = logging.getLogger(__name__)

# kind → (model, name attribute, description attribute)
NAME_SOURCES = {
    EntityKind.APPLICATION: (Application, "name", "description"),
    EntityKind.APP_GROUP: (ApplicationGroup, "name", "description"),
    EntityKind.ASSESSMENT_DEFINITION: (AssessmentDefinition, "name", "description"),
    EntityKind.CHANGE_INITIATIVE: (ChangeInitiative, "name", "description"),
    EntityKind.COMPLEXITY_KIND: (ComplexityKind, "name", "description"),
    EntityKind.COST_KIND: (CostKind, "name", "description"),
    EntityKind.DATA_TYPE: (DataType, "name", "description"),
    EntityKind.ENTITY_FIELD_REFERENCE: (EntityFieldReference, "display_name", "description"),
    EntityKind.ENTITY_STATISTIC: (EntityStatisticDefinition, "name", "description"),
    EntityKind.INVOLVEMENT_KIND: (InvolvementKind, "name", "description"),
    EntityKind.MEASURABLE: (Measurable, "name", "description"),
    EntityKind.MEASURABLE_CATEGORY: (MeasurableCategory, "name", "description"),
    EntityKind.ORG_UNIT: (OrganisationalUnit, "name", "description"),
    EntityKind.PERSON: (Person, "display_name", "title"),
    EntityKind.SURVEY_QUESTION: (SurveyQuestion, "question_text", "help_text"),
    EntityKind.SURVEY_TEMPLATE: (SurveyTemplate, "name", "description"),
}


def resolve_names(kind: str, ids) -> dict[int, tuple[str, str | None]]:
    """Return ``{id: (name, description)}`` for the ids of ``kind`` that exist.

    Unknown kinds resolve to an empty dict.
    """
    source = NAME_SOURCES.get(kind)
    wanted = sorted({i for i in ids if i is not None})
    if source is None or not wanted:
        return {}
    model, name_attr, desc_attr = source
    rows = (
        model.query
        .with_entities(model.id, getattr(model, name_attr), getattr(model, desc_attr))
        .filter(model.id.in_(wanted))
        .all()
    )
    return {r[0]: (r[1], r[2]) for r in rows}


def resolve_display_names(kind: str, ids) -> dict[int, str]:
    """Names only; see ``resolve_names``."""
    return {entity_id: name for entity_id, (name, _) in resolve_names(kind, ids).items()}
