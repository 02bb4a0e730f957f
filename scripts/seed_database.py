"""
Seed script to populate the SQL store with demo data.

Creates the tables when missing, then loads:
- The permission catalogue
- Default roles, departments and users
- Demo versions and deployments

Skips seeding when permissions already exist.

Usage:
    DATABASE_URL=sqlite+aiosqlite:///./data.db python -m scripts.seed_database
"""
import asyncio

from crm_admin.core import config
from crm_admin.core.store.sql import SQLStore
from crm_admin.features.members.fixtures import DEPARTMENTS, ROLES, USERS, seed_demo_data
from crm_admin.features.versions.fixtures import DEPLOYMENTS, VERSIONS, seed_release_data
from crm_admin.utils import get_logger


log = get_logger(__name__)


async def main():
    """Main function to seed the database."""
    log.info(f"Seeding {config.SQLALCHEMY_DATABASE_URL}")
    store = await SQLStore.connect(config.SQLALCHEMY_DATABASE_URL)
    try:
        async with store.session() as db:
            existing = await db.permissions.count()
        if existing:
            log.info(f"Found {existing} permissions, skipping seed")
            return

        await seed_demo_data(store)
        await seed_release_data(store)
        log.info("Seeding completed successfully!")
        log.info("")
        log.info("Default roles created:")
        for role in ROLES:
            log.info(f"  - {role['code']}: {role['description']}")
        log.info(f"{len(DEPARTMENTS)} departments, {len(USERS)} users")
        log.info(f"{len(VERSIONS)} versions, {len(DEPLOYMENTS)} deployments")
    except Exception as e:
        log.error(f"Error seeding database: {e}", exc_info=True)
        raise
    finally:
        await store.close()


if __name__ == "__main__":
    asyncio.run(main())
