#!/usr/bin/env python3
# scripts/init_db.py
import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy.ext.asyncio import create_async_engine

from app.core.config import settings
from app.db.base import Base
import app.db.models  # noqa: F401  registers every table on Base.metadata


async def init_db(drop: bool = False):
    """Create the funnel tables straight from the models"""
    print(f"🔗 Connecting to: {settings.DATABASE_URL.split('@')[-1]}")

    engine = create_async_engine(settings.DATABASE_URL)

    async with engine.begin() as conn:
        if drop:
            print("🗑️  Dropping existing tables...")
            await conn.run_sync(Base.metadata.drop_all)

        print("📦 Creating tables...")
        await conn.run_sync(Base.metadata.create_all)

    await engine.dispose()
    print("✅ Database initialised")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create the database tables")
    parser.add_argument("--drop", action="store_true", help="drop existing tables first")
    args = parser.parse_args()
    asyncio.run(init_db(drop=args.drop))
