"""Script to initialize the database without Alembic (local development)."""

import asyncio

from sqlalchemy import text

from app.database import engine
from app.models import metadata


async def init_db() -> None:
    """Create the scheduling tables and the appointment number sequence."""
    async with engine.begin() as conn:
        # gen_random_uuid() lives in pgcrypto on older PostgreSQL versions
        await conn.execute(text('CREATE EXTENSION IF NOT EXISTS "pgcrypto"'))

        await conn.run_sync(metadata.create_all)

        print("✓ Database initialized successfully!")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(init_db())
