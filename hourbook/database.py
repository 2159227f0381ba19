"""MongoDB database connection using Motor (async driver)."""
import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from hourbook.config import settings
from hourbook.repositories.base import TimerRepository
from hourbook.repositories.mongo import MongoTimerRepository

logger = logging.getLogger(__name__)


class Database:
    """MongoDB database connection manager."""

    client: AsyncIOMotorClient | None = None
    db: AsyncIOMotorDatabase | None = None

    async def connect(self) -> None:
        """Connect to MongoDB."""
        self.client = AsyncIOMotorClient(settings.mongodb_url)
        self.db = self.client[settings.mongodb_db_name]
        await self.ensure_indexes()
        logger.info("Connected to MongoDB: %s", settings.mongodb_db_name)

    async def ensure_indexes(self) -> None:
        """Create the indexes the timer and invoice queries rely on."""
        time_entries = self.db["time_entries"]
        await time_entries.create_index([("is_active", 1), ("start_time", -1)])
        await time_entries.create_index([("end_time", -1)])
        await time_entries.create_index("invoice_id")
        await self.db["invoices"].create_index("invoice_number")
        await self.db["projects"].create_index([("client_id", 1), ("is_default", 1)])
        await self.db["settings"].create_index("key", unique=True)

    async def disconnect(self) -> None:
        """Disconnect from MongoDB."""
        if self.client:
            self.client.close()
            logger.info("Disconnected from MongoDB")


# Global database instance
database = Database()


async def get_database() -> AsyncIOMotorDatabase:
    """Dependency to get database instance."""
    if database.db is None:
        raise RuntimeError("Database not connected")
    return database.db


async def get_repository() -> TimerRepository:
    """Dependency to get the repository the services run against."""
    return MongoTimerRepository(await get_database())
