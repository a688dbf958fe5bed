"""Unit tests for the MongoDB connector plugin

None of these tests need a running MongoDB server: the client connects
lazily and health checks are mocked.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import ServerSelectionTimeoutError

from src.plugins.base import AppContext, PluginRegistrationError, ServerBuilder
from src.plugins.database import (
    DATABASE,
    MONGODB_URL,
    ConnectionConfigurationError,
    DatabaseHandle,
    create_client,
    db_connector,
)


@pytest.fixture
async def context():
    context = AppContext(FastAPI())
    yield context
    await context.close()


class TestDbConnector:
    """Test database registration"""

    def test_connection_string_is_fixed(self):
        assert MONGODB_URL == "mongodb://localhost:27017/test_database"

    @pytest.mark.asyncio
    async def test_registration_provides_handle(self, context):
        await db_connector(context, {})

        handle = context.require(DATABASE)
        assert isinstance(handle, DatabaseHandle)
        assert isinstance(handle.client, AsyncIOMotorClient)
        assert handle.url == MONGODB_URL
        assert handle.name == "test_database"
        # Reachable by name for request handlers
        assert context.app.state.mongo is handle

    @pytest.mark.asyncio
    async def test_options_are_ignored(self, context):
        await db_connector(context, {"url": "mongodb://ignored:1/other"})

        assert context.require(DATABASE).url == MONGODB_URL

    @pytest.mark.asyncio
    async def test_environment_does_not_override_url(self, context, mock_env_vars):
        await db_connector(context, {})

        handle = context.require(DATABASE)
        assert handle.url == MONGODB_URL
        assert handle.name == "test_database"

    @pytest.mark.asyncio
    async def test_handle_available_to_later_plugins(self):
        seen = {}

        async def consumer(context, options):
            seen["handle"] = context.require(DATABASE)

        builder = ServerBuilder(FastAPI())
        builder.register(db_connector).register(consumer)
        context = await builder.ready()

        try:
            assert seen["handle"] is not None
            assert seen["handle"].url == MONGODB_URL
        finally:
            await context.close()

    @pytest.mark.asyncio
    async def test_double_registration_is_rejected(self, context):
        await db_connector(context, {})

        with pytest.raises(PluginRegistrationError):
            await db_connector(context, {})

    @pytest.mark.asyncio
    async def test_close_hook_closes_client(self, context):
        await db_connector(context, {})
        handle = context.require(DATABASE)

        with patch.object(AsyncIOMotorClient, "close") as mock_close:
            await context.close()

        mock_close.assert_called_once()
        assert context.app.state.mongo is handle

    @pytest.mark.asyncio
    async def test_close_hook_uses_provided_client(self, context):
        database = MagicMock()
        database.name = "test_database"
        handle = DatabaseHandle(client=MagicMock(), database=database, url=MONGODB_URL)

        context.provide(DATABASE, handle)
        context.add_close_hook(handle.close)
        await context.close()

        handle.client.close.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_malformed_url_fails_registration(self, context):
        with patch("src.plugins.database.MONGODB_URL", "not-a-mongodb-url"):
            with pytest.raises(ConnectionConfigurationError):
                await db_connector(context, {})

        assert not context.has(DATABASE)

    @pytest.mark.asyncio
    async def test_url_without_database_fails_registration(self, context):
        with patch("src.plugins.database.MONGODB_URL", "mongodb://localhost:27017"):
            with pytest.raises(ConnectionConfigurationError, match="database"):
                await db_connector(context, {})


class TestCreateClient:
    """Test the client factory"""

    def test_malformed_url(self):
        with pytest.raises(ConnectionConfigurationError, match="Invalid MongoDB connection string"):
            create_client("http://localhost:27017/test_database")

    @pytest.mark.asyncio
    async def test_valid_url(self):
        client = create_client(MONGODB_URL)
        try:
            assert isinstance(client, AsyncIOMotorClient)
        finally:
            client.close()


class TestDatabaseHandle:
    """Test the database handle helpers"""

    @pytest.fixture
    def handle(self):
        database = MagicMock()
        database.name = "test_database"
        return DatabaseHandle(client=MagicMock(), database=database, url=MONGODB_URL)

    @pytest.mark.asyncio
    async def test_health_check_healthy(self, handle):
        handle.database.command = AsyncMock(
            return_value={"collections": 3, "dataSize": 128, "indexSize": 64}
        )

        result = await handle.health_check()

        handle.database.command.assert_awaited_once_with("dbStats")
        assert result["status"] == "healthy"
        assert result["database"] == "test_database"
        assert result["collections"] == 3

    @pytest.mark.asyncio
    async def test_health_check_unreachable(self, handle):
        handle.database.command = AsyncMock(
            side_effect=ServerSelectionTimeoutError("localhost:27017: connection refused")
        )

        result = await handle.health_check()

        assert result["status"] == "unhealthy"
        assert "connection refused" in result["error"]

    def test_collection(self, handle):
        handle.collection("items")
        handle.database.__getitem__.assert_called_once_with("items")
