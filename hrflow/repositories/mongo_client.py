"""MongoDB Client - Connection and Collection Management"""
from typing import Any, Callable, Dict, Optional, TypeVar
from pymongo import MongoClient
from pymongo.database import Database
from pymongo.collection import Collection
from pymongo.client_session import ClientSession
from pymongo import ASCENDING
from pymongo.errors import BulkWriteError, ConnectionFailure, DuplicateKeyError, PyMongoError

from ..config.settings import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFINITIONS = "workflow_definitions"
INSTANCES = "workflow_instances"
DECISIONS = "workflow_decisions"

DUPLICATE_KEY_CODE = 11000

# Global client instance
_client: Optional[MongoClient] = None
_database: Optional[Database] = None


def get_client() -> MongoClient:
    """Get or create MongoDB client"""
    global _client
    if _client is None:
        logger.info(f"Connecting to MongoDB: {settings.mongo_uri}")
        _client = MongoClient(
            settings.mongo_uri,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=5000,
            socketTimeoutMS=30000,
            tz_aware=True,
        )
        # Test connection
        try:
            _client.admin.command("ping")
            logger.info("MongoDB connection successful")
        except ConnectionFailure as e:
            logger.error(f"MongoDB connection failed: {e}")
            raise
    return _client


def get_database() -> Database:
    """Get the application database"""
    global _database
    if _database is None:
        client = get_client()
        _database = client[settings.mongo_db]
        logger.info(f"Using database: {settings.mongo_db}")
    return _database


def get_collection(name: str) -> Collection:
    """Get a collection from the database"""
    return get_database()[name]


def close_connection() -> None:
    """Close MongoDB connection"""
    global _client, _database
    if _client is not None:
        _client.close()
        _client = None
        _database = None
        logger.info("MongoDB connection closed")


def create_indexes(db: Optional[Database] = None) -> None:
    """Create all required indexes"""
    db = db if db is not None else get_database()
    logger.info("Creating MongoDB indexes...")

    definitions = db[DEFINITIONS]
    definitions.create_index("name", unique=True)
    # At most one active definition per entity type
    definitions.create_index(
        "entity_type",
        name="one_active_per_entity_type",
        unique=True,
        partialFilterExpression={"is_active": True},
    )

    instances = db[INSTANCES]
    instances.create_index("instance_id", unique=True)
    # "Pending approvals for me"
    instances.create_index([("status", ASCENDING), ("current_approver_role", ASCENDING)])
    instances.create_index([("entity_type", ASCENDING), ("entity_id", ASCENDING)])
    instances.create_index("created_at", background=True)

    decisions = db[DECISIONS]
    decisions.create_index([("instance_id", ASCENDING), ("sequence", ASCENDING)], unique=True)
    decisions.create_index(
        [("instance_id", ASCENDING), ("idempotency_token", ASCENDING)],
        name="one_decision_per_token",
        unique=True,
        partialFilterExpression={"idempotency_token": {"$type": "string"}},
    )

    logger.info("MongoDB indexes created successfully")


def health_check() -> Dict[str, Any]:
    """Check MongoDB health"""
    try:
        client = get_client()
        client.admin.command("ping")
        return {
            "status": "healthy",
            "database": settings.mongo_db,
            "connection": "ok"
        }
    except Exception as e:
        logger.error(f"MongoDB health check failed: {e}")
        return {
            "status": "unhealthy",
            "database": settings.mongo_db,
            "error": str(e)
        }


def run_atomically(
    db: Database,
    callback: Callable[[Optional[ClientSession]], T],
    use_transactions: bool,
) -> T:
    """
    Run callback inside a multi-document transaction when enabled

    Without transactions (standalone servers) callback receives None and
    its writes are applied one by one.
    """
    if not use_transactions:
        return callback(None)
    with db.client.start_session() as session:
        return session.with_transaction(callback)


def is_duplicate_key(error: PyMongoError) -> bool:
    """True for a unique index violation, single or bulk write"""
    if isinstance(error, DuplicateKeyError):
        return True
    if isinstance(error, BulkWriteError):
        return any(
            write_error.get("code") == DUPLICATE_KEY_CODE
            for write_error in error.details.get("writeErrors", [])
        )
    return False


def supports_transactions(client: Optional[MongoClient] = None) -> bool:
    """Transactions need a replica set member or a mongos router"""
    client = client if client is not None else get_client()
    hello = client.admin.command("hello")
    return bool(hello.get("setName")) or hello.get("msg") == "isdbgrid"


def ensure_transaction_support(client: Optional[MongoClient] = None) -> None:
    """
    Refuse to run with transactions enabled on a server that lacks them

    Raises:
        RuntimeError: MONGO_USE_TRANSACTIONS is set but the server is standalone
    """
    if not settings.mongo_use_transactions:
        logger.warning(
            "MongoDB transactions disabled; commits fall back to "
            "decisions-first writes with compensation"
        )
        return
    if not supports_transactions(client):
        raise RuntimeError(
            "MONGO_USE_TRANSACTIONS is enabled but the MongoDB server is not a "
            "replica set member. Use a replica set or set MONGO_USE_TRANSACTIONS=false."
        )
