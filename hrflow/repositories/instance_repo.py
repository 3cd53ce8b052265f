"""Instance Repository - MongoDB data access for instances and their decision trail"""
from typing import Any, Dict, List, Optional, Sequence
from pymongo import ASCENDING, DESCENDING
from pymongo.client_session import ClientSession
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import BulkWriteError, PyMongoError

from .mongo_client import DECISIONS, INSTANCES, get_database, is_duplicate_key, run_atomically
from ..config.settings import settings
from ..domain.enums import OPEN_STATUSES
from ..domain.models import StepDecision, WorkflowInstance
from ..domain.errors import ConcurrencyConflictError, InstanceNotFoundError
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Fields a commit may change; facts and the step snapshot are never rewritten
MUTABLE_FIELDS = (
    "status", "current_step", "current_approver_role", "decision_count",
    "version", "updated_at", "completed_at",
)


class MongoInstanceRepository:
    """Repository for workflow instances (decisions are append-only)"""

    def __init__(self, db: Optional[Database] = None, use_transactions: Optional[bool] = None):
        self._db = db if db is not None else get_database()
        self._instances: Collection = self._db[INSTANCES]
        self._decisions: Collection = self._db[DECISIONS]
        self._use_transactions = (
            settings.mongo_use_transactions if use_transactions is None else use_transactions
        )

    @staticmethod
    def _instance(doc: Dict[str, Any]) -> WorkflowInstance:
        doc.pop("_id", None)
        return WorkflowInstance.model_validate(doc)

    @staticmethod
    def _decision(doc: Dict[str, Any]) -> StepDecision:
        doc.pop("_id", None)
        return StepDecision.model_validate(doc)

    def _append(
        self, decisions: Sequence[StepDecision], session: Optional[ClientSession]
    ) -> List[str]:
        """Insert decisions in order and return their ids"""
        if not decisions:
            return []
        docs = []
        for decision in decisions:
            # Don't use mode="json" - it converts datetime to strings, breaking sorting
            doc = decision.model_dump()
            doc["decision"] = decision.decision.value
            doc["_id"] = decision.decision_id
            docs.append(doc)
        ids = [doc["_id"] for doc in docs]
        try:
            self._decisions.insert_many(docs, ordered=True, session=session)
        except BulkWriteError:
            # Ordered inserts stop at the first error; drop what got in before it
            if session is None:
                self._discard(ids)
            raise
        return ids

    def _discard(self, decision_ids: List[str]) -> None:
        """Compensate decisions written outside a transaction"""
        if decision_ids:
            self._decisions.delete_many({"_id": {"$in": decision_ids}})

    def _run(self, instance_id: str, apply, expected_version: Optional[int] = None) -> None:
        try:
            run_atomically(self._db, apply, self._use_transactions)
        except PyMongoError as e:
            if not is_duplicate_key(e):
                raise
            # Sequence or idempotency token already taken by a concurrent writer
            raise ConcurrencyConflictError(
                f"Instance {instance_id} was modified. Please refresh and try again.",
                details={"expected_version": expected_version}
            )

    def create(
        self, instance: WorkflowInstance, decisions: Sequence[StepDecision]
    ) -> WorkflowInstance:
        """Insert an instance with its initial decisions"""
        doc = instance.model_dump()
        doc["status"] = instance.status.value
        doc["_id"] = instance.instance_id

        def _apply(session: Optional[ClientSession]) -> None:
            # Decisions first: without a transaction a failed instance
            # insert can be undone, a half-written trail could not
            written = self._append(decisions, session)
            try:
                self._instances.insert_one(doc, session=session)
            except PyMongoError:
                if session is None:
                    self._discard(written)
                raise

        self._run(instance.instance_id, _apply)
        logger.info(
            f"Created instance: {instance.instance_id}",
            extra={"instance_id": instance.instance_id, "status": instance.status.value}
        )
        return instance

    def commit(
        self,
        instance: WorkflowInstance,
        decisions: Sequence[StepDecision],
        expected_version: int,
    ) -> WorkflowInstance:
        """
        Version-checked instance update plus decision append, all or nothing

        Inside a transaction both writes commit together. Without one the
        decisions go in first and are deleted again if the version check
        misses or the update fails, so the instance never moves without
        its trail.
        """
        updates = {field: getattr(instance, field) for field in MUTABLE_FIELDS}
        updates["status"] = instance.status.value

        def _apply(session: Optional[ClientSession]) -> None:
            written = self._append(decisions, session)
            try:
                result = self._instances.update_one(
                    {"instance_id": instance.instance_id, "version": expected_version},
                    {"$set": updates},
                    session=session,
                )
                if result.matched_count == 0:
                    exists = self._instances.find_one(
                        {"instance_id": instance.instance_id}, {"_id": 1}, session=session
                    )
                    if exists:
                        raise ConcurrencyConflictError(
                            f"Instance {instance.instance_id} was modified. Please refresh and try again.",
                            details={"expected_version": expected_version}
                        )
                    raise InstanceNotFoundError(f"Workflow instance {instance.instance_id} not found")
            except Exception:
                if session is None:
                    self._discard(written)
                raise

        self._run(instance.instance_id, _apply, expected_version)
        logger.info(
            f"Committed instance: {instance.instance_id}",
            extra={"instance_id": instance.instance_id, "status": instance.status.value}
        )
        return instance

    def get(self, instance_id: str) -> Optional[WorkflowInstance]:
        """Get instance by ID"""
        doc = self._instances.find_one({"instance_id": instance_id})
        return self._instance(doc) if doc else None

    def list_open(
        self,
        roles: Optional[Sequence[str]] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[WorkflowInstance]:
        """Open instances, oldest first"""
        query: Dict[str, Any] = {"status": {"$in": [s.value for s in OPEN_STATUSES]}}
        if roles is not None:
            query["current_approver_role"] = {"$in": list(roles)}

        cursor = self._instances.find(query).sort("created_at", ASCENDING).skip(skip).limit(limit)
        return [self._instance(doc) for doc in cursor]

    def list_for_entity(self, entity_type: str, entity_id: str) -> List[WorkflowInstance]:
        """Instances for one business record, newest first"""
        cursor = self._instances.find(
            {"entity_type": entity_type, "entity_id": entity_id}
        ).sort("created_at", DESCENDING)
        return [self._instance(doc) for doc in cursor]

    def decisions(self, instance_id: str) -> List[StepDecision]:
        """Decision trail in append order"""
        cursor = self._decisions.find({"instance_id": instance_id}).sort("sequence", ASCENDING)
        return [self._decision(doc) for doc in cursor]

    def find_decision_by_token(
        self, instance_id: str, idempotency_token: str
    ) -> Optional[StepDecision]:
        doc = self._decisions.find_one(
            {"instance_id": instance_id, "idempotency_token": idempotency_token}
        )
        return self._decision(doc) if doc else None
