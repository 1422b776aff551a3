# smartbroker/core/database.py

from contextlib import AbstractAsyncContextManager
from typing import Optional

from fastapi import HTTPException, status
from loguru import logger
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from smartbroker.core.config import settings

DEFAULT_DB_NAME = "smartbroker"


def parse_db_name(uri: str) -> str:
    """Extrai o nome do banco do path da URI, com fallback para o padrão."""
    tail = uri.rsplit('/', 1)[-1] if uri.count('/') >= 3 else ""
    db_name = tail.split('?')[0]
    if not db_name or '@' in db_name or len(db_name) > 63:
        return DEFAULT_DB_NAME
    return db_name


class MongoDbContext(AbstractAsyncContextManager):
    client: Optional[AsyncIOMotorClient] = None
    db: Optional[AsyncIOMotorDatabase] = None

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()

    async def connect(self):
        """Establishes and verifies connection to MongoDB."""
        if self.client is not None and self.db is not None:
            logger.info("MongoDB connection already established.")
            return

        logger.info("Connecting to MongoDB...")
        try:
            self.client = AsyncIOMotorClient(
                settings.MONGODB_URI,
                uuidRepresentation='standard',
                serverSelectionTimeoutMS=5000,
            )
            await self.client.admin.command('ping')
            db_name = parse_db_name(settings.MONGODB_URI)
            self.db = self.client[db_name]
            await ensure_indexes(self.db)
            logger.success(f"MongoDB connection successful to database '{db_name}'.")
        except Exception as e:
            logger.critical(f"FATAL: Failed to connect to MongoDB: {e}")
            self.client = None
            self.db = None
            raise ConnectionError(f"MongoDB connection failed: {e}") from e

    async def disconnect(self):
        """Closes the MongoDB connection."""
        if self.client is not None:
            logger.info("Closing MongoDB connection...")
            try:
                self.client.close()
                logger.info("MongoDB connection closed.")
            finally:
                self.client = None
                self.db = None

    def get_db(self) -> AsyncIOMotorDatabase:
        """Returns the database instance, raising error if not connected."""
        if self.db is None:
            logger.critical("Attempted to get MongoDB instance, but it's not available.")
            raise RuntimeError("MongoDB database is not connected or initialized.")
        return self.db


async def ensure_indexes(db: AsyncIOMotorDatabase):
    """Índices únicos e de escopo por agência."""
    await db["users"].create_index("email", unique=True)
    await db["agencies"].create_index("cnpj", unique=True)
    await db["channels"].create_index("instance_name", unique=True)
    for collection in ("properties", "contacts", "campaigns", "agent_sessions", "channels"):
        await db[collection].create_index("agency_id")
    await db["contacts"].create_index([("agency_id", 1), ("phone", 1)])
    await db["agent_sessions"].create_index([("user_id", 1), ("created_at", -1)])
    logger.debug("MongoDB indexes ensured.")


# Instância global do contexto MongoDB
mongo_manager = MongoDbContext()


async def get_database() -> AsyncIOMotorDatabase:
    """FastAPI dependency to get a MongoDB database instance."""
    try:
        return mongo_manager.get_db()
    except RuntimeError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=f"Database connection not available: {e}")
