"""
Entity kind identifiers.

Kinds are stored as plain strings (``entity_kind`` columns all over the
catalog); this module holds the canonical spellings and their display names.
"""


class EntityKind:
    APPLICATION = "APPLICATION"
    APP_GROUP = "APP_GROUP"
    ASSESSMENT_DEFINITION = "ASSESSMENT_DEFINITION"
    ATTESTATION = "ATTESTATION"
    CHANGE_INITIATIVE = "CHANGE_INITIATIVE"
    COMPLEXITY_KIND = "COMPLEXITY_KIND"
    COST_KIND = "COST_KIND"
    DATA_TYPE = "DATA_TYPE"
    ENTITY_ALIAS = "ENTITY_ALIAS"
    ENTITY_FIELD_REFERENCE = "ENTITY_FIELD_REFERENCE"
    ENTITY_STATISTIC = "ENTITY_STATISTIC"
    INVOLVEMENT_KIND = "INVOLVEMENT_KIND"
    LOGICAL_DATA_FLOW = "LOGICAL_DATA_FLOW"
    MEASURABLE = "MEASURABLE"
    MEASURABLE_CATEGORY = "MEASURABLE_CATEGORY"
    ORG_UNIT = "ORG_UNIT"
    PERSON = "PERSON"
    PHYSICAL_FLOW = "PHYSICAL_FLOW"
    SURVEY_INSTANCE = "SURVEY_INSTANCE"
    SURVEY_QUESTION = "SURVEY_QUESTION"
    SURVEY_TEMPLATE = "SURVEY_TEMPLATE"
    TAG = "TAG"


PRETTY_NAMES = {
    EntityKind.APPLICATION: "Application",
    EntityKind.APP_GROUP: "Application Group",
    EntityKind.ASSESSMENT_DEFINITION: "Assessment Definition",
    EntityKind.ATTESTATION: "Attestation",
    EntityKind.CHANGE_INITIATIVE: "Change Initiative",
    EntityKind.COMPLEXITY_KIND: "Complexity Kind",
    EntityKind.COST_KIND: "Cost Kind",
    EntityKind.DATA_TYPE: "Data Type",
    EntityKind.ENTITY_ALIAS: "Entity Alias",
    EntityKind.ENTITY_FIELD_REFERENCE: "Entity Field Reference",
    EntityKind.ENTITY_STATISTIC: "Entity Statistic",
    EntityKind.INVOLVEMENT_KIND: "Involvement Kind",
    EntityKind.LOGICAL_DATA_FLOW: "Logical Flow",
    EntityKind.MEASURABLE: "Viewpoint",
    EntityKind.MEASURABLE_CATEGORY: "Viewpoint Category",
    EntityKind.ORG_UNIT: "Org Unit",
    EntityKind.PERSON: "Person",
    EntityKind.PHYSICAL_FLOW: "Physical Flow",
    EntityKind.SURVEY_INSTANCE: "Survey Instance",
    EntityKind.SURVEY_QUESTION: "Survey Question",
    EntityKind.SURVEY_TEMPLATE: "Survey Template",
    EntityKind.TAG: "Tag",
}


def pretty_name(kind: str) -> str:
    """Display name for ``kind``; unknown kinds are title-cased."""
    return PRETTY_NAMES.get(kind) or kind.replace("_", " ").title()
