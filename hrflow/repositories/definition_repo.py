"""Definition Repository - MongoDB data access for workflow definitions"""
from typing import Any, Dict, List, Optional
from pymongo import ASCENDING, ReturnDocument
from pymongo.client_session import ClientSession
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import PyMongoError

from .mongo_client import DEFINITIONS, get_database, is_duplicate_key, run_atomically
from ..config.settings import settings
from ..domain.models import WorkflowDefinition
from ..domain.errors import DefinitionNotFoundError, ConcurrencyConflictError
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class MongoDefinitionRepository:
    """Repository for workflow definitions"""

    def __init__(self, db: Optional[Database] = None, use_transactions: Optional[bool] = None):
        self._db = db if db is not None else get_database()
        self._definitions: Collection = self._db[DEFINITIONS]
        self._use_transactions = (
            settings.mongo_use_transactions if use_transactions is None else use_transactions
        )

    @staticmethod
    def _to_model(doc: Dict[str, Any]) -> WorkflowDefinition:
        doc.pop("_id", None)
        return WorkflowDefinition.model_validate(doc)

    def get(self, name: str) -> Optional[WorkflowDefinition]:
        """Get definition by name"""
        doc = self._definitions.find_one({"name": name})
        return self._to_model(doc) if doc else None

    def list(
        self,
        entity_type: Optional[str] = None,
        active_only: bool = False,
    ) -> List[WorkflowDefinition]:
        """List definitions"""
        query: Dict[str, Any] = {}
        if entity_type:
            query["entity_type"] = entity_type
        if active_only:
            query["is_active"] = True

        cursor = self._definitions.find(query).sort("name", ASCENDING)
        return [self._to_model(doc) for doc in cursor]

    def save(self, definition: WorkflowDefinition) -> WorkflowDefinition:
        """Upsert by name; the active flag is only set on insert"""
        now = utc_now()
        content = {
            "description": definition.description,
            "steps": [s.model_dump() for s in definition.ordered_steps()],
            "revision": definition.revision,
            "updated_at": now,
        }
        result = self._definitions.find_one_and_update(
            {"name": definition.name},
            {
                "$set": content,
                "$setOnInsert": {
                    "name": definition.name,
                    "entity_type": definition.entity_type,
                    "is_active": False,
                    "created_at": definition.created_at or now,
                },
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        logger.info(
            f"Saved definition: {definition.name} (revision {definition.revision})",
            extra={"definition_name": definition.name, "entity_type": definition.entity_type}
        )
        return self._to_model(result)

    def get_active(self, entity_type: str) -> Optional[WorkflowDefinition]:
        """Get the active definition for an entity type"""
        doc = self._definitions.find_one({"entity_type": entity_type, "is_active": True})
        return self._to_model(doc) if doc else None

    def activate(self, name: str, entity_type: str) -> WorkflowDefinition:
        """Deactivate the other definitions of entity_type, then activate name"""

        def _apply(session: Optional[ClientSession]) -> Optional[Dict[str, Any]]:
            now = utc_now()
            self._definitions.update_many(
                {"entity_type": entity_type, "is_active": True, "name": {"$ne": name}},
                {"$set": {"is_active": False, "updated_at": now}},
                session=session,
            )
            return self._definitions.find_one_and_update(
                {"name": name},
                {"$set": {"is_active": True, "updated_at": now}},
                return_document=ReturnDocument.AFTER,
                session=session,
            )

        try:
            result = run_atomically(self._db, _apply, self._use_transactions)
        except PyMongoError as e:
            if not is_duplicate_key(e):
                raise
            # Another process activated a definition of the same type in between
            raise ConcurrencyConflictError(
                f"Concurrent activation for entity type {entity_type}. Please retry.",
                details={"definition_name": name, "entity_type": entity_type}
            )

        if result is None:
            raise DefinitionNotFoundError(f"Workflow definition {name} not found")
        return self._to_model(result)

    def deactivate(self, name: str) -> WorkflowDefinition:
        """Clear the active flag"""
        result = self._definitions.find_one_and_update(
            {"name": name},
            {"$set": {"is_active": False, "updated_at": utc_now()}},
            return_document=ReturnDocument.AFTER,
        )
        if result is None:
            raise DefinitionNotFoundError(f"Workflow definition {name} not found")
        return self._to_model(result)
