"""
Tests: report grid service layer.

Covers:
    - create / update / remove grids, duplicate names
    - replace_columns: round trip, re-replace, position conflict, unknown field reference
    - definition column names
    - cell lookup by id / external id, missing grid
    - selector_factory payload shapes and limits
"""

import pytest

import waltz.services.report_grid_service as rgs
from waltz.core.exceptions import ConflictError, NotFoundError, ValidationError
from waltz.models.assessment import Cost, CostKind
from waltz.models.catalog import (
    Application,
    ApplicationGroup,
    ApplicationGroupEntry,
    ApplicationGroupOuEntry,
    EntityHierarchy,
    OrganisationalUnit,
)
from waltz.models.entity_kind import EntityKind
from waltz.models.report_grid import EntityFieldReference, ReportGridColumnDefinition
from waltz.services.report_grid_types import Selector
from waltz.services.selector_factory import build_selector


@pytest.fixture()
def grid():
    return rgs.create_grid({"name": "Cost overview", "description": "Run costs"}, "tester")


@pytest.fixture()
def cost_data(persist):
    persist(CostKind(id=1, name="Infrastructure", description="Hosting"))
    persist(
        Cost(cost_kind_id=1, entity_kind="APPLICATION", entity_id=101, year=2022, amount=100.0),
        Cost(cost_kind_id=1, entity_kind="APPLICATION", entity_id=101, year=2023, amount=150.0),
        Cost(cost_kind_id=1, entity_kind="APPLICATION", entity_id=102, year=2023, amount=80.0),
    )


# ═════════════════════════════════════════════════════════════════════════════
# Grid CRUD
# ═════════════════════════════════════════════════════════════════════════════

class TestGridCRUD:
    def test_create_defaults(self, grid):
        assert grid["external_id"] == "COST_OVERVIEW"
        assert grid["subject_kind"] == "APPLICATION"
        assert grid["kind"] == "PUBLIC"
        assert grid["provenance"] == "waltz"
        assert grid["last_updated_by"] == "tester"

    def test_create_duplicate_name(self, grid):
        with pytest.raises(ConflictError, match="Grid already exists with the name: Cost overview"):
            rgs.create_grid({"name": "Cost overview"}, "tester")

    def test_create_rejects_unknown_subject_kind(self):
        with pytest.raises(ValidationError):
            rgs.create_grid({"name": "Bad", "subject_kind": "PERSON"}, "tester")

    def test_create_rejects_unknown_kind(self):
        with pytest.raises(ValidationError):
            rgs.create_grid({"name": "Bad", "kind": "SECRET"}, "tester")

    def test_update(self, grid):
        updated = rgs.update_grid(grid["id"], {"name": "Renamed", "kind": "private"}, "editor")
        assert updated["name"] == "Renamed"
        assert updated["kind"] == "PRIVATE"
        assert updated["last_updated_by"] == "editor"

    def test_update_name_clash(self, grid):
        other = rgs.create_grid({"name": "Other"}, "tester")
        with pytest.raises(ConflictError):
            rgs.update_grid(other["id"], {"name": "Cost overview"}, "tester")

    def test_remove_cascades_columns(self, grid):
        rgs.replace_columns(grid["id"], [{"position": 0, "column_entity_kind": "TAG"}], [])
        rgs.remove_grid(grid["id"])
        assert ReportGridColumnDefinition.query.count() == 0
        with pytest.raises(NotFoundError):
            rgs.get_definition_by_id(grid["id"])

    def test_find_all_filters_by_subject_kind(self, grid):
        rgs.create_grid({"name": "Initiatives", "subject_kind": "CHANGE_INITIATIVE"}, "tester")
        assert [g["name"] for g in rgs.find_all_grids()] == ["Cost overview", "Initiatives"]
        assert [g["name"] for g in rgs.find_all_grids("CHANGE_INITIATIVE")] == ["Initiatives"]


# ═════════════════════════════════════════════════════════════════════════════
# Column replace
# ═════════════════════════════════════════════════════════════════════════════

class TestReplaceColumns:
    def test_round_trip(self, grid, cost_data):
        definition = rgs.replace_columns(
            grid["id"],
            [
                {"position": 0, "column_entity_kind": "COST_KIND", "column_entity_id": 1},
                {"position": 2, "column_entity_kind": "TAG"},
            ],
            [{"position": 1, "display_name": "Score", "derivation_script": "cost * 2"}],
            "editor",
        )
        assert [(c.position, c.column_entity_kind) for c in definition.fixed_columns] == [
            (0, "COST_KIND"), (2, "TAG"),
        ]
        assert definition.fixed_columns[0].column_name == "Infrastructure"
        assert definition.fixed_columns[0].column_description == "Hosting"
        assert definition.fixed_columns[1].column_name == "Tags"
        assert [(d.position, d.derivation_script) for d in definition.derived_columns] == [(1, "cost * 2")]
        assert definition.last_updated_by == "editor"

        again = rgs.get_definition_by_external_id("COST_OVERVIEW")
        assert again.to_dict() == definition.to_dict()

    def test_replace_twice_keeps_only_new_columns(self, grid):
        rgs.replace_columns(grid["id"], [{"position": 0, "column_entity_kind": "TAG"}], [])
        definition = rgs.replace_columns(
            grid["id"],
            [{"position": 0, "column_entity_kind": "ENTITY_ALIAS"}],
            [],
        )
        assert [c.column_entity_kind for c in definition.fixed_columns] == ["ENTITY_ALIAS"]
        assert ReportGridColumnDefinition.query.count() == 1

    def test_duplicate_position_is_conflict_and_leaves_grid_untouched(self, grid):
        rgs.replace_columns(grid["id"], [{"position": 0, "column_entity_kind": "TAG"}], [])
        with pytest.raises(ConflictError):
            rgs.replace_columns(
                grid["id"],
                [{"position": 3, "column_entity_kind": "ENTITY_ALIAS"}],
                [{"position": 3, "display_name": "X", "derivation_script": "1"}],
            )
        definition = rgs.get_definition_by_id(grid["id"])
        assert [c.column_entity_kind for c in definition.fixed_columns] == ["TAG"]
        assert definition.derived_columns == ()

    def test_unknown_field_reference(self, grid):
        with pytest.raises(ValidationError):
            rgs.replace_columns(
                grid["id"],
                [{"position": 0, "column_entity_kind": "APPLICATION", "entity_field_reference_id": 42}],
                [],
            )

    def test_field_reference_column_name(self, grid, persist):
        persist(EntityFieldReference(id=1, entity_kind="APPLICATION", field_name="asset_code",
                                     display_name="Asset Code", description="Asset code"))
        definition = rgs.replace_columns(
            grid["id"],
            [{"position": 0, "column_entity_kind": "APPLICATION", "entity_field_reference": {"id": 1}}],
            [],
        )
        column = definition.fixed_columns[0]
        assert column.entity_field_reference_id == 1
        assert column.column_name == "Asset Code"
        assert [r.field_name for r in definition.field_references] == ["asset_code"]

    def test_flow_attestation_column_name_is_its_description(self, grid):
        definition = rgs.replace_columns(
            grid["id"],
            [
                {"position": 0, "column_entity_kind": "ATTESTATION", "column_qualifier_kind": "LOGICAL_DATA_FLOW"},
                {"position": 1, "column_entity_kind": "ATTESTATION", "column_qualifier_kind": "PHYSICAL_FLOW"},
            ],
            [],
        )
        assert [(c.column_name, c.column_description) for c in definition.fixed_columns] == [
            ("Logical Flow Attestation", "Logical Flow Attestation"),
            ("Physical Flow Attestation", "Physical Flow Attestation"),
        ]

    def test_missing_position(self, grid):
        with pytest.raises(ValidationError):
            rgs.replace_columns(grid["id"], [{"column_entity_kind": "TAG"}], [])

    def test_bad_option(self, grid):
        with pytest.raises(ValidationError):
            rgs.replace_columns(
                grid["id"],
                [{"position": 0, "column_entity_kind": "MEASURABLE", "additional_column_options": "PICK_ANY"}],
                [],
            )

    def test_missing_grid(self):
        with pytest.raises(NotFoundError):
            rgs.replace_columns(999, [], [])


# ═════════════════════════════════════════════════════════════════════════════
# Cell lookup
# ═════════════════════════════════════════════════════════════════════════════

class TestCellLookup:
    def test_cells_by_id_and_external_id(self, grid, cost_data):
        rgs.replace_columns(
            grid["id"], [{"position": 0, "column_entity_kind": "COST_KIND", "column_entity_id": 1}], [],
        )
        selector = Selector.of(EntityKind.APPLICATION, [101, 102])
        by_id = rgs.find_cell_data_by_grid_id(grid["id"], selector)
        by_ext = rgs.find_cell_data_by_external_id("COST_OVERVIEW", selector)
        assert by_id == by_ext
        assert {(c.subject_id, c.number_value) for c in by_id} == {(101, 150.0), (102, 80.0)}

    def test_missing_grid_yields_no_cells(self):
        selector = Selector.of(EntityKind.APPLICATION, [101])
        assert rgs.find_cell_data_by_grid_id(999, selector) == set()
        assert rgs.find_cell_data_by_external_id("NOPE", selector) == set()
        assert rgs.find_grid_instance(selector, grid_id=999) == (None, set())

    def test_missing_definition_raises(self):
        with pytest.raises(NotFoundError):
            rgs.get_definition_by_id(999)
        with pytest.raises(NotFoundError):
            rgs.get_definition_by_external_id("NOPE")

    def test_to_external_id(self):
        assert rgs.to_external_id("My  Grid! v2") == "MY_GRID_V2"


# ═════════════════════════════════════════════════════════════════════════════
# Selector factory
# ═════════════════════════════════════════════════════════════════════════════

class TestSelectorFactory:
    @pytest.fixture()
    def org(self, persist):
        persist(OrganisationalUnit(id=1, name="Group"))
        persist(OrganisationalUnit(id=2, parent_id=1, name="Markets"), OrganisationalUnit(id=3, name="Elsewhere"))
        persist(
            Application(id=101, name="Ledger", organisational_unit_id=2),
            Application(id=102, name="Pricer", organisational_unit_id=3),
            Application(id=103, name="Loose"),
            ApplicationGroup(id=1, name="Core"),
        )
        persist(
            EntityHierarchy(kind="ORG_UNIT", id=1, ancestor_id=1, level=0),
            EntityHierarchy(kind="ORG_UNIT", id=2, ancestor_id=1, level=1),
            EntityHierarchy(kind="ORG_UNIT", id=2, ancestor_id=2, level=1),
            EntityHierarchy(kind="ORG_UNIT", id=3, ancestor_id=3, level=0),
            ApplicationGroupEntry(group_id=1, application_id=103),
            ApplicationGroupOuEntry(group_id=1, org_unit_id=1),
        )

    def test_kind_and_ids(self):
        selector = build_selector({"kind": "application", "ids": [3, "1", 3]})
        assert selector == Selector.of("APPLICATION", [1, 3])

    def test_org_unit_subtree(self, org):
        selector = build_selector({"entity_reference": {"kind": "ORG_UNIT", "id": 1}})
        assert selector.id_list == [101]

    def test_app_group_direct_and_via_org_unit(self, org):
        selector = build_selector({"entity_reference": {"kind": "APP_GROUP", "id": 1}})
        assert selector.kind == "APPLICATION"
        assert selector.id_list == [101, 103]

    def test_single_change_initiative(self):
        selector = build_selector({"entity_reference": {"kind": "CHANGE_INITIATIVE", "id": 7}})
        assert selector == Selector.of("CHANGE_INITIATIVE", [7])

    @pytest.mark.parametrize("payload", [
        {},
        {"kind": "PERSON", "ids": [1]},
        {"kind": "APPLICATION", "ids": "1,2"},
        {"kind": "APPLICATION", "ids": ["x"]},
        {"entity_reference": {"kind": "TAG", "id": 1}},
        [1, 2],
    ])
    def test_bad_payloads(self, payload):
        with pytest.raises(ValidationError) as exc:
            build_selector(payload)
        assert exc.value.status == 400

    def test_too_many_ids(self, app):
        limit = app.config["SELECTOR_MAX_IDS"]
        with pytest.raises(ValidationError):
            build_selector({"kind": "APPLICATION", "ids": list(range(limit + 1))})
