"""Tests for the standard workflow seed"""
from scripts.seed_workflows import SEED_DEFINITIONS, seed_definitions


def test_seed_registers_the_standard_workflows(service, capsys):
    seed_definitions(service)

    assert len(service.list_definitions()) == len(SEED_DEFINITIONS) == 5
    for entity_type, name in (
        ("LEAVE", "Leave Approval - Standard"),
        ("ADVANCE", "Advance Request - Standard"),
        ("TICKET", "Air Ticket Request - Standard"),
        ("PAYROLL", "Payroll Processing - Monthly"),
    ):
        assert service.active_definition_for(entity_type).name == name
    assert service.get_definition("Leave Approval - Extended").is_active is False


def test_seed_is_repeatable(service, capsys):
    seed_definitions(service)
    seed_definitions(service)

    assert {d.revision for d in service.list_definitions()} == {1}
