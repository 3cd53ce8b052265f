"""Tests for the MongoDB repositories against an in-process mongomock server"""
import mongomock
import pytest
from pymongo.errors import BulkWriteError, DuplicateKeyError, OperationFailure

from hrflow.config.settings import settings
from hrflow.domain.enums import DecisionKind, InstanceStatus
from hrflow.domain.errors import (
    ConcurrencyConflictError, DefinitionNotFoundError, InstanceNotFoundError,
)
from hrflow.domain.models import StepDecision, WorkflowStep
from hrflow.repositories import MongoDefinitionRepository, MongoInstanceRepository
from hrflow.repositories.mongo_client import (
    DECISIONS, DEFINITIONS, create_indexes, ensure_transaction_support,
    is_duplicate_key, supports_transactions,
)
from hrflow.services.workflow_service import WorkflowService
from hrflow.utils.time import utc_now
from tests.conftest import (
    DEPT_HEAD, EMPLOYEE, HR, MANAGER, extended_leave_definition, make_definition,
)


@pytest.fixture
def db():
    database = mongomock.MongoClient(tz_aware=True)["hrflow_test"]
    create_indexes(database)
    return database


@pytest.fixture
def definition_repo(db):
    return MongoDefinitionRepository(db, use_transactions=False)


@pytest.fixture
def instance_repo(db):
    return MongoInstanceRepository(db, use_transactions=False)


@pytest.fixture
def mongo_service(definition_repo, instance_repo, resolver):
    service = WorkflowService(definition_repo, instance_repo, resolver)
    service.register_definition(make_definition("Leave Approval", is_active=True))
    return service


def _decision(instance_id, sequence, step_order=1, token=None, actor=MANAGER):
    return StepDecision(
        decision_id=f"DEC-test-{sequence}-{token}",
        instance_id=instance_id,
        sequence=sequence,
        step_order=step_order,
        decision=DecisionKind.APPROVED,
        actor_id=actor,
        idempotency_token=token,
        created_at=utc_now(),
    )


# ============================================================================
# Indexes and server capabilities
# ============================================================================

def test_create_indexes_declares_unique_constraints(db):
    assert "one_active_per_entity_type" in db[DEFINITIONS].index_information()
    decision_indexes = db[DECISIONS].index_information()
    assert "one_decision_per_token" in decision_indexes
    assert "instance_id_1_sequence_1" in decision_indexes


def test_second_active_definition_violates_index(definition_repo, db):
    definition_repo.save(make_definition("Leave A"))
    definition_repo.activate("Leave A", "LEAVE")

    with pytest.raises(DuplicateKeyError):
        db[DEFINITIONS].insert_one({"name": "Leave B", "entity_type": "LEAVE", "is_active": True})


def test_is_duplicate_key_reads_bulk_write_errors():
    bulk = BulkWriteError({"writeErrors": [{"index": 0, "code": 11000, "errmsg": "dup"}]})
    other_bulk = BulkWriteError({"writeErrors": [{"index": 0, "code": 121, "errmsg": "invalid"}]})

    assert is_duplicate_key(bulk)
    assert is_duplicate_key(DuplicateKeyError("dup", code=11000))
    assert not is_duplicate_key(other_bulk)
    assert not is_duplicate_key(OperationFailure("boom", code=2))


class _Admin:
    def __init__(self, hello):
        self._hello = hello

    def command(self, name):
        assert name == "hello"
        return self._hello


class _Client:
    def __init__(self, hello):
        self.admin = _Admin(hello)


def test_supports_transactions_needs_replica_set_or_router():
    assert supports_transactions(_Client({"setName": "rs0"}))
    assert supports_transactions(_Client({"msg": "isdbgrid"}))
    assert not supports_transactions(_Client({"isWritablePrimary": True}))


def test_standalone_server_is_refused_when_transactions_enabled(monkeypatch):
    monkeypatch.setattr(settings, "mongo_use_transactions", True)

    with pytest.raises(RuntimeError):
        ensure_transaction_support(_Client({"isWritablePrimary": True}))
    ensure_transaction_support(_Client({"setName": "rs0"}))


def test_standalone_server_allowed_when_transactions_disabled(monkeypatch):
    monkeypatch.setattr(settings, "mongo_use_transactions", False)

    ensure_transaction_support(_Client({"isWritablePrimary": True}))


# ============================================================================
# Definitions
# ============================================================================

def test_activation_is_exclusive_per_entity_type(definition_repo):
    definition_repo.save(make_definition("Leave A"))
    definition_repo.save(make_definition("Leave B"))
    definition_repo.save(make_definition("Expense", entity_type="EXPENSE"))
    definition_repo.activate("Expense", "EXPENSE")

    definition_repo.activate("Leave A", "LEAVE")
    definition_repo.activate("Leave B", "LEAVE")

    assert definition_repo.get_active("LEAVE").name == "Leave B"
    assert definition_repo.get("Leave A").is_active is False
    assert definition_repo.get_active("EXPENSE").name == "Expense"


def test_upsert_keeps_active_flag(mongo_service, definition_repo):
    changed = make_definition(
        "Leave Approval",
        steps=[WorkflowStep(step_order=1, step_name="HR Only", approver_role="HR")],
    )

    saved = mongo_service.register_definition(changed)

    assert saved.is_active is True
    assert saved.revision == 2
    assert [s.step_name for s in definition_repo.get("Leave Approval").steps] == ["HR Only"]


def test_deactivate_unknown_definition(definition_repo):
    with pytest.raises(DefinitionNotFoundError):
        definition_repo.deactivate("missing")


# ============================================================================
# Instances
# ============================================================================

def test_full_flow_over_mongo(definition_repo, instance_repo, resolver):
    service = WorkflowService(definition_repo, instance_repo, resolver)
    service.register_definition(extended_leave_definition())

    instance = service.create_instance("LEAVE", "42", EMPLOYEE, {"days": 9})
    assert [i.instance_id for i in service.list_pending_for_actor(MANAGER)] == [instance.instance_id]

    service.decide(instance.instance_id, MANAGER, "APPROVE")
    service.decide(instance.instance_id, DEPT_HEAD, "APPROVE")
    done = service.decide(instance.instance_id, HR, "APPROVE")

    assert done.status == InstanceStatus.APPROVED
    assert instance_repo.get(instance.instance_id).version == 4
    history = service.history(instance.instance_id)
    assert [d.sequence for d in history] == [0, 1, 2]
    assert [d.actor_id for d in history] == [MANAGER, DEPT_HEAD, HR]
    assert service.list_instances_for_entity("LEAVE", "42")[0].completed_at is not None


def test_stale_commit_leaves_instance_and_trail_untouched(mongo_service, instance_repo):
    instance = mongo_service.create_instance("LEAVE", "42", EMPLOYEE, {})
    mongo_service.decide(instance.instance_id, MANAGER, "APPROVE")

    stale = instance.model_copy(update={"status": InstanceStatus.CANCELLED, "version": 2})
    with pytest.raises(ConcurrencyConflictError):
        instance_repo.commit(
            stale, [_decision(instance.instance_id, 1, step_order=2, actor=HR)],
            expected_version=1,
        )

    stored = instance_repo.get(instance.instance_id)
    assert stored.status == InstanceStatus.IN_PROGRESS
    assert stored.version == 2
    assert len(instance_repo.decisions(instance.instance_id)) == 1


def test_taken_sequence_is_a_conflict_not_a_partial_write(mongo_service, instance_repo, db):
    instance = mongo_service.create_instance("LEAVE", "42", EMPLOYEE, {})
    # A concurrent writer already appended sequence 0
    taken = _decision(instance.instance_id, 0, actor="other@corp.com")
    db[DECISIONS].insert_one(taken.model_dump(mode="json"))

    with pytest.raises(ConcurrencyConflictError):
        mongo_service.decide(instance.instance_id, MANAGER, "APPROVE")

    stored = instance_repo.get(instance.instance_id)
    assert stored.version == 1
    assert stored.status == InstanceStatus.PENDING
    assert stored.decision_count == 0
    assert len(instance_repo.decisions(instance.instance_id)) == 1


def test_reused_token_is_a_conflict(mongo_service, instance_repo):
    instance = mongo_service.create_instance("LEAVE", "42", EMPLOYEE, {})
    approved = mongo_service.decide(instance.instance_id, MANAGER, "APPROVE", idempotency_token="t1")

    draft = approved.model_copy(update={"version": approved.version + 1, "decision_count": 2})
    with pytest.raises(ConcurrencyConflictError):
        instance_repo.commit(
            draft, [_decision(instance.instance_id, 1, step_order=2, token="t1", actor=HR)],
            expected_version=approved.version,
        )

    assert instance_repo.get(instance.instance_id).version == approved.version
    assert len(instance_repo.decisions(instance.instance_id)) == 1
    assert instance_repo.find_decision_by_token(instance.instance_id, "t1").actor_id == MANAGER


def test_duplicate_create_removes_its_decisions(mongo_service, instance_repo):
    instance = mongo_service.create_instance("LEAVE", "42", EMPLOYEE, {})

    with pytest.raises(ConcurrencyConflictError):
        instance_repo.create(instance, [_decision(instance.instance_id, 0)])

    assert instance_repo.decisions(instance.instance_id) == []


def test_commit_on_missing_instance(mongo_service, instance_repo):
    instance = mongo_service.create_instance("LEAVE", "42", EMPLOYEE, {})
    ghost = instance.model_copy(update={"instance_id": "WFI-missing"})

    with pytest.raises(InstanceNotFoundError):
        instance_repo.commit(ghost, [_decision("WFI-missing", 0)], expected_version=1)

    assert instance_repo.decisions("WFI-missing") == []
