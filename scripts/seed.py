# seed.py
import asyncio
import logging
import os

from motor.motor_asyncio import AsyncIOMotorClient

from marketplace.core.config import settings
from marketplace.core.database import ensure_indexes
from marketplace.core.logging import setup_logging
from marketplace.core.security import hash_password
from marketplace.schemas.enums import UserRole
from marketplace.utils.mongo import stamp_create

# Execute `python -m scripts.seed`
log = logging.getLogger("seed")

ADMIN_EMAIL = os.getenv("SEED_ADMIN_EMAIL", "admin@example.com")
ADMIN_PASSWORD = os.getenv("SEED_ADMIN_PASSWORD", "change-me-admin")


# -----------------------
# Admin account
# -----------------------
async def seed_admin(db):
    """Admins cannot self-register; create one if none exists (idempotent)."""
    existing = await db["users"].find_one({"email": ADMIN_EMAIL})
    if existing:
        log.info("admin %s already present", ADMIN_EMAIL)
        return existing["_id"]
    doc = stamp_create({
        "first_name": "Admin",
        "last_name": "",
        "email": ADMIN_EMAIL,
        "password": hash_password(ADMIN_PASSWORD),
        "phone": None,
        "role": UserRole.ADMIN.value,
        "is_active": True,
        "email_verified": True,
        "phone_verified": False,
    })
    res = await db["users"].insert_one(doc)
    log.info("admin %s created", ADMIN_EMAIL)
    return res.inserted_id


# -----------------------
# Main
# -----------------------
async def main():
    setup_logging()
    client = AsyncIOMotorClient(settings.MONGO_URI, tz_aware=True)
    try:
        db = client[settings.MONGO_DB]

        # 1) Indexes
        await ensure_indexes(db)

        # 2) Admin
        await seed_admin(db)

        log.info("Seed complete: indexes and admin account in place.")
    finally:
        client.close()

if __name__ == "__main__":
    asyncio.run(main())
