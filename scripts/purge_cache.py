#!/usr/bin/env python3
# scripts/purge_cache.py
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from app.core.logging import setup_logging
from app.crud import crud_cache
from app.db.session import AsyncSessionLocal, engine


async def purge_cache():
    """Delete expired answer-cache entries"""
    async with AsyncSessionLocal() as db:
        deleted = await crud_cache.purge_expired(db)
        stats = await crud_cache.stats(db)
    await engine.dispose()

    print(f"🧹 Deleted {deleted} expired entries")
    print(f"📦 {stats['active_entries']} active entries, hit rate {stats['hit_rate']}%")


if __name__ == "__main__":
    setup_logging()
    asyncio.run(purge_cache())
