"""Create every scheduling table directly from the model metadata.

Intended for local development and throwaway databases; use
``scripts/migrate.py`` for anything that must keep its data.
"""

import asyncio

from sqlalchemy import text

from consultorio.database import engine
from consultorio.models import metadata


async def init_db() -> None:
    """Initialize the database by creating all tables."""
    async with engine.begin() as conn:
        if conn.dialect.name == "postgresql":
            await conn.execute(text('CREATE EXTENSION IF NOT EXISTS "pgcrypto"'))

        await conn.run_sync(metadata.create_all)

    await engine.dispose()
    print(f"✓ Created {len(metadata.tables)} tables")


if __name__ == "__main__":
    asyncio.run(init_db())
