from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, GEOSPHERE
from pymongo.errors import OperationFailure

from marketplace.core.config import settings

client = AsyncIOMotorClient(settings.MONGO_URI, tz_aware=True)
db = client[settings.MONGO_DB]


def get_database() -> AsyncIOMotorDatabase:
    return db


# close the MongoDB connection on application shutdown
async def close_mongo_connection():
    client.close()


async def safe_create_index(coll, keys, **opts):
    try:
        return await coll.create_index(keys, **opts)
    except OperationFailure as e:
        # IndexOptionsConflict (exists with different name/options)
        if e.code == 85:
            return None
        raise


async def ensure_indexes(database: AsyncIOMotorDatabase) -> None:
    """Create the indexes the repositories rely on (idempotent)."""
    users = database["users"]
    await safe_create_index(users, [("email", ASCENDING)], name="uniq_email", unique=True)
    await safe_create_index(users, [("role", ASCENDING), ("is_active", ASCENDING)], name="idx_role_active")

    orders = database["orders"]
    await safe_create_index(orders, [("order_number", ASCENDING)], name="uniq_order_number", unique=True)
    await safe_create_index(orders, [("customer_id", ASCENDING), ("createdAt", DESCENDING)], name="idx_customer")
    await safe_create_index(orders, [("partner_id", ASCENDING), ("createdAt", DESCENDING)], name="idx_partner")
    await safe_create_index(orders, [("status", ASCENDING)], name="idx_status")

    otps = database["otps"]
    await safe_create_index(
        otps,
        [("user_id", ASCENDING), ("purpose", ASCENDING), ("status", ASCENDING)],
        name="idx_user_purpose_status",
    )
    await safe_create_index(otps, [("order_id", ASCENDING)], name="idx_order")
    # expired codes linger for the retention window, then Mongo drops them
    await safe_create_index(
        otps,
        [("expiresAt", ASCENDING)],
        name="ttl_expiresAt",
        expireAfterSeconds=settings.OTP_RETENTION_DAYS * 86400,
    )

    samples = database["location_samples"]
    await safe_create_index(samples, [("point", GEOSPHERE)], name="geo_point")
    await safe_create_index(samples, [("user_id", ASCENDING), ("createdAt", DESCENDING)], name="idx_user_created")
    await safe_create_index(samples, [("order_id", ASCENDING)], name="idx_order")
    await safe_create_index(
        samples,
        [("createdAt", ASCENDING)],
        name="ttl_createdAt",
        expireAfterSeconds=settings.LOCATION_RETENTION_DAYS * 86400,
    )

    documents = database["partner_documents"]
    await safe_create_index(documents, [("partner_id", ASCENDING)], name="uniq_partner", unique=True)
