import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from tripsplit.core.config import settings

logger = logging.getLogger(__name__)


class MongoDatabase:
    """MongoDB connection manager."""

    client: AsyncIOMotorClient = None
    db: AsyncIOMotorDatabase = None

mongodb = MongoDatabase()

async def connect_to_mongo():
    """Connect to MongoDB."""
    mongodb.client = AsyncIOMotorClient(settings.MONGODB_URL)
    mongodb.db = mongodb.client[settings.DATABASE_NAME]

    await create_indexes()
    logger.info("Connected to MongoDB: %s", settings.DATABASE_NAME)

async def close_mongo_connection():
    """Disconnect from MongoDB."""
    if mongodb.client is not None:
        mongodb.client.close()
        logger.info("Disconnected from MongoDB")

async def create_indexes():
    """Create database indexes."""
    db = mongodb.db

    # Debtor side of the ledger
    await db["bill_share"].create_index([("user_id", 1), ("status", 1)])
    await db["bill_share"].create_index("bill_id")

    # Creditor side
    await db["bill"].create_index("paid_by_user_id")
    await db["bill"].create_index("trip_id")

    # Settlement signals
    await db["payment"].create_index([("bill_share_id", 1), ("status", 1)])
    await db["payment"].create_index("submission_id")
    await db["payment_proof"].create_index([("creditor_id", 1), ("status", 1)])
    await db["payment_proof"].create_index([("debtor_user_id", 1), ("status", 1)])
    await db["payment_proof"].create_index("submission_id")

    await db["debt_summary"].create_index(
        [("trip_id", 1), ("debtor_user", 1), ("creditor_user", 1)]
    )

    await db["trip_member"].create_index([("trip_id", 1), ("user_id", 1)])
    await db["notification"].create_index([("user_id", 1), ("created_at", -1)])
    await db["friend_requests"].create_index([("receiver_id", 1), ("status", 1)])
    await db["friends"].create_index([("user_id", 1), ("friend_id", 1)], unique=True)
    await db["trip"].create_index("created_by")

def get_db() -> AsyncIOMotorDatabase:
    """Get database instance (FastAPI dependency)."""
    return mongodb.db

async def get_database() -> AsyncIOMotorDatabase:
    """Awaitable accessor used by services."""
    return mongodb.db
