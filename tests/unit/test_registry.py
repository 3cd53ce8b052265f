"""Tests for the definition registry"""
import pytest

from hrflow.domain.errors import (
    DefinitionNotFoundError, DefinitionValidationError, NotFoundError, ValidationError
)
from hrflow.domain.models import WorkflowStep
from tests.conftest import make_definition


class TestRegister:
    def test_new_definition_starts_at_revision_one(self, registry):
        saved = registry.register(make_definition("Leave Approval - Standard"))

        assert saved.revision == 1
        assert saved.is_active is False
        assert saved.created_at is not None
        assert [s.step_order for s in saved.steps] == [1, 2]

    def test_active_flag_activates_on_first_registration(self, registry):
        saved = registry.register(make_definition("Leave Approval - Standard", is_active=True))

        assert saved.is_active is True
        assert registry.active_definition_for("LEAVE").name == "Leave Approval - Standard"

    def test_identical_registration_is_a_no_op(self, registry):
        first = registry.register(make_definition("Leave Approval - Standard"))
        second = registry.register(make_definition("Leave Approval - Standard"))

        assert second.revision == first.revision == 1
        assert second.updated_at == first.updated_at

    def test_changed_steps_bump_revision(self, registry):
        registry.register(make_definition("Leave Approval - Standard", is_active=True))
        updated = registry.register(make_definition(
            "Leave Approval - Standard",
            steps=[WorkflowStep(step_order=1, step_name="HR Approval", approver_role="HR")],
        ))

        assert updated.revision == 2
        assert [s.approver_role for s in updated.steps] == ["HR"]
        # Updating content never touches the active flag
        assert updated.is_active is True

    def test_name_cannot_move_to_another_entity_type(self, registry):
        registry.register(make_definition("Shared Name", entity_type="LEAVE"))

        with pytest.raises(DefinitionValidationError):
            registry.register(make_definition("Shared Name", entity_type="ADVANCE"))

    def test_several_inactive_definitions_may_share_a_type(self, registry):
        registry.register(make_definition("Leave A"))
        registry.register(make_definition("Leave B"))

        assert [d.name for d in registry.list_definitions(entity_type="LEAVE")] == ["Leave A", "Leave B"]


class TestValidation:
    @pytest.mark.parametrize("orders", [[1, 3], [2, 3], [1, 1], [0, 1]])
    def test_step_orders_must_be_dense_from_one(self, registry, orders):
        steps = [
            WorkflowStep(step_order=o, step_name=f"Step {i}", approver_role="HR")
            for i, o in enumerate(orders)
        ]
        with pytest.raises(DefinitionValidationError):
            registry.register(make_definition("Bad Orders", steps=steps))

    def test_empty_step_list_is_rejected(self, registry):
        with pytest.raises(ValidationError):
            registry.register(make_definition("Empty", steps=[]))

    def test_blank_role_is_rejected(self, registry):
        steps = [WorkflowStep(step_order=1, step_name="Step", approver_role="  ")]
        with pytest.raises(DefinitionValidationError) as exc_info:
            registry.register(make_definition("Blank Role", steps=steps))
        assert exc_info.value.details["errors"][0]["field"] == "approver_role"

    def test_condition_value_needs_a_field(self, registry):
        steps = [WorkflowStep(step_order=1, step_name="Step", approver_role="HR", condition_value=">7")]
        with pytest.raises(DefinitionValidationError):
            registry.register(make_definition("Dangling Condition", steps=steps))

    def test_blank_name_and_type_are_rejected(self, registry):
        with pytest.raises(DefinitionValidationError) as exc_info:
            registry.register(make_definition(" ", entity_type=""))
        fields = {e["field"] for e in exc_info.value.details["errors"]}
        assert {"name", "entity_type"} <= fields

    def test_invalid_definition_is_not_stored(self, registry):
        with pytest.raises(DefinitionValidationError):
            registry.register(make_definition("Nope", steps=[]))
        with pytest.raises(DefinitionNotFoundError):
            registry.get_definition("Nope")

    def test_unknown_operator_is_accepted_at_registration(self, registry):
        steps = [WorkflowStep(
            step_order=1, step_name="Step", approver_role="HR",
            condition_field="days", condition_value="!=7",
        )]
        assert registry.register(make_definition("Odd Condition", steps=steps)).revision == 1


class TestActivation:
    def test_activation_is_exclusive_per_entity_type(self, registry):
        registry.register(make_definition("Leave A", is_active=True))
        registry.register(make_definition("Leave B"))

        registry.activate("Leave B")

        active = registry.list_definitions(entity_type="LEAVE", active_only=True)
        assert [d.name for d in active] == ["Leave B"]
        assert registry.get_definition("Leave A").is_active is False

    def test_activation_leaves_other_types_alone(self, registry):
        registry.register(make_definition("Leave A", is_active=True))
        registry.register(make_definition("Advance A", entity_type="ADVANCE", is_active=True))

        registry.register(make_definition("Leave B"))
        registry.activate("Leave B")

        assert registry.active_definition_for("ADVANCE").name == "Advance A"

    def test_activating_the_active_definition_keeps_it_active(self, registry):
        registry.register(make_definition("Leave A", is_active=True))
        assert registry.activate("Leave A").is_active is True
        assert registry.active_definition_for("LEAVE").name == "Leave A"

    def test_deactivate_leaves_no_active_definition(self, registry):
        registry.register(make_definition("Leave A", is_active=True))
        registry.deactivate("Leave A")

        with pytest.raises(NotFoundError):
            registry.active_definition_for("LEAVE")

    def test_unknown_definition(self, registry):
        with pytest.raises(DefinitionNotFoundError):
            registry.activate("Missing")
        with pytest.raises(DefinitionNotFoundError):
            registry.get_definition("Missing")
