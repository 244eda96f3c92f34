"""
ArangoDB connection for the `arango` persistence backend.

Provides the client/database singletons and makes sure the key-value
collection exists. Connection events are logged for observability.
"""

from arango import ArangoClient
from arango.database import StandardDatabase
from arango.exceptions import CollectionCreateError, DatabaseCreateError

from config.config import Settings, get_settings
from config.logging_config import get_logger

logger = get_logger(__name__)

KV_COLLECTION = "kv_store"

# Singleton client instance
_client: ArangoClient | None = None
_db: StandardDatabase | None = None


def get_client(settings: Settings | None = None) -> ArangoClient:
    """
    Get or create the ArangoDB client singleton.

    Returns:
        ArangoClient instance.
    """
    global _client
    if _client is None:
        settings = settings or get_settings()
        _client = ArangoClient(hosts=settings.arango_host)
        logger.info("ArangoDB client initialized", host=settings.arango_host)
    return _client


def get_database(settings: Settings | None = None) -> StandardDatabase:
    """
    Get or create the database connection.

    Creates the database and the key-value collection if they don't exist.

    Returns:
        StandardDatabase instance.
    """
    global _db
    if _db is None:
        settings = settings or get_settings()
        client = get_client(settings)

        sys_db = client.db(
            "_system",
            username=settings.arango_username,
            password=settings.arango_password,
        )

        if not sys_db.has_database(settings.arango_database):
            try:
                sys_db.create_database(settings.arango_database)
                logger.info("Created database", database=settings.arango_database)
            except DatabaseCreateError as e:
                logger.error("Failed to create database", error=str(e))
                raise

        _db = client.db(
            settings.arango_database,
            username=settings.arango_username,
            password=settings.arango_password,
        )
        logger.info("Connected to database", database=settings.arango_database)

        ensure_collection(_db, KV_COLLECTION)

    return _db


def ensure_collection(db: StandardDatabase, name: str) -> None:
    """Create a collection if it doesn't exist."""
    if db.has_collection(name):
        return
    try:
        db.create_collection(name)
        logger.info("Created collection", collection=name)
    except CollectionCreateError as e:
        logger.warning("Collection creation failed", collection=name, error=str(e))


def close_connection() -> None:
    """Close the database connection."""
    global _client, _db
    if _client is not None:
        _client.close()
        _client = None
        _db = None
        logger.info("Database connection closed")
