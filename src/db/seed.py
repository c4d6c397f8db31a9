import asyncio
from datetime import timedelta

from loguru import logger
from sqlalchemy import select

from src.db.database import async_session, init_db
from src.models import Asset, AssetCategory, AssetStatus, User, UserRole
from src.scheduler.clock import utcnow

USERS = [
    {
        "username": "admin",
        "email": "admin@example.com",
        "full_name": "Inventory Admin",
        "role": UserRole.admin,
        "department": "IT",
    },
    {
        "username": "tech",
        "email": "tech@example.com",
        "full_name": "Field Technician",
        "role": UserRole.technician,
        "department": "IT",
    },
]

# (tag, name, category, days to next maintenance, warranty, license)
ASSETS = [
    ("INV-1001", "Dell Latitude 7440", AssetCategory.laptop, 12, 200, None),
    ("INV-1002", "HPE ProLiant DL380", AssetCategory.server, 45, 60, None),
    ("INV-1003", "Microsoft 365 E3", AssetCategory.software, None, None, 20),
]


async def seed_demo_data():
    """建立示範使用者與資產"""
    await init_db()
    now = utcnow()

    async with async_session() as session:
        users = {}
        for user_data in USERS:
            result = await session.execute(
                select(User).filter_by(username=user_data["username"])
            )
            user = result.scalar_one_or_none()
            if not user:
                user = User(**user_data)
                session.add(user)
                logger.info(f"Added user: {user_data['username']}")
            else:
                logger.info(f"User already exists: {user_data['username']}")
            users[user_data["username"]] = user
        await session.flush()

        for tag, name, category, maint, warranty, license_ in ASSETS:
            result = await session.execute(select(Asset).filter_by(asset_tag=tag))
            if result.scalar_one_or_none():
                logger.info(f"Asset already exists: {tag}")
                continue
            session.add(
                Asset(
                    asset_tag=tag,
                    name=name,
                    category=category,
                    status=AssetStatus.in_use,
                    next_maintenance=now + timedelta(days=maint) if maint else None,
                    warranty_expiry=now + timedelta(days=warranty) if warranty else None,
                    license_expiry=now + timedelta(days=license_) if license_ else None,
                    assigned_to_id=users["tech"].id,
                )
            )
            logger.info(f"Added asset: {tag}")

        await session.commit()

    logger.info("Seed completed")


if __name__ == "__main__":
    asyncio.run(seed_demo_data())
