"""MongoDB connector plugin

Configures a motor client against a fixed connection string and provides
the resulting :class:`DatabaseHandle` to plugins registered afterwards.
"""

from dataclasses import dataclass
from typing import Any, Dict
from urllib.parse import urlsplit

import structlog
from fastapi import Request
from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorCollection,
    AsyncIOMotorDatabase,
)
from pymongo.errors import ConfigurationError, PyMongoError

from .base import AppContext, Capability

logger = structlog.get_logger(__name__)

# Not read from the environment
MONGODB_URL = "mongodb://localhost:27017/test_database"


class ConnectionConfigurationError(ValueError):
    """Raised when the MongoDB connection string cannot be used"""


@dataclass(frozen=True)
class DatabaseHandle:
    """Shared MongoDB client and the database selected by the connection string"""

    client: AsyncIOMotorClient
    database: AsyncIOMotorDatabase
    url: str

    @property
    def name(self) -> str:
        return self.database.name

    def collection(self, name: str) -> AsyncIOMotorCollection:
        """Get a collection by name"""
        return self.database[name]

    async def health_check(self) -> Dict[str, Any]:
        """Return database health information."""
        try:
            stats = await self.database.command("dbStats")
            return {
                "status": "healthy",
                "database": self.name,
                "collections": stats.get("collections", 0),
                "data_size": stats.get("dataSize", 0),
                "index_size": stats.get("indexSize", 0),
            }
        except PyMongoError as exc:
            return {"status": "unhealthy", "database": self.name, "error": str(exc)}

    async def close(self) -> None:
        """Close the underlying client"""
        self.client.close()
        logger.info("Disconnected from MongoDB", database=self.name)


DATABASE = Capability("mongo", DatabaseHandle)


def create_client(url: str) -> AsyncIOMotorClient:
    """Create a MongoDB client for ``url``

    The client connects lazily, so only the connection string itself is
    checked here.

    Raises:
        ConnectionConfigurationError: If the connection string is malformed
    """
    try:
        return AsyncIOMotorClient(
            url,
            serverSelectionTimeoutMS=5000,  # 5 second timeout
            connectTimeoutMS=10000,  # 10 second timeout
            uuidRepresentation="standard",
        )
    except ConfigurationError as exc:
        raise ConnectionConfigurationError(
            f"Invalid MongoDB connection string: {exc}"
        ) from exc


def _redact(url: str) -> str:
    """Drop credentials from a connection string before logging it"""
    parts = urlsplit(url)
    if parts.username is None:
        return url
    host = parts.netloc.rsplit("@", 1)[-1]
    return parts._replace(netloc=f"***@{host}").geturl()


async def db_connector(context: AppContext, options: Dict[str, Any]) -> None:
    """Register the MongoDB client on the application

    Args:
        context: Application context
        options: Accepted for the plugin signature, ignored
    """
    client = create_client(MONGODB_URL)

    try:
        database = client.get_default_database()
    except ConfigurationError as exc:
        client.close()
        raise ConnectionConfigurationError(
            f"Connection string does not name a database: {exc}"
        ) from exc

    handle = DatabaseHandle(client=client, database=database, url=MONGODB_URL)
    context.provide(DATABASE, handle)
    context.add_close_hook(handle.close)

    logger.info("MongoDB client configured", url=_redact(MONGODB_URL), database=handle.name)


def get_database(request: Request) -> DatabaseHandle:
    """FastAPI dependency returning the shared database handle"""
    return request.app.state.context.require(DATABASE)
