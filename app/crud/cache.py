# app/crud/cache.py
"""
Answer cache for free-tier questions.

``lookup`` is a command, not a query: a hit bumps ``hit_count`` and
``last_accessed_at`` in the same transaction. Reporting relies on it.
"""
import hashlib
import logging
import re
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.crud.base import CRUDBase, dialect_insert, store_transaction
from app.db.models.cache import ChatCache

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_question(question: str) -> str:
    return _WHITESPACE_RE.sub(" ", question.lower().strip())


def hash_question(question: str) -> str:
    """SHA-256 hex digest of the normalized question text"""
    return hashlib.sha256(normalize_question(question).encode("utf-8")).hexdigest()


class CRUDCache(CRUDBase[ChatCache, dict, dict]):
    def __init__(self, model, ttl_days: int = 30):
        super().__init__(model)
        self.ttl = timedelta(days=ttl_days)

    async def lookup(self, db: AsyncSession, *, question: str) -> Optional[ChatCache]:
        """Return the live entry for ``question`` and count the hit, None on miss"""
        question_hash = hash_question(question)
        now = datetime.utcnow()
        async with store_transaction(db):
            result = await db.execute(
                update(ChatCache)
                .where(ChatCache.question_hash == question_hash, ChatCache.expires_at > now)
                .values(hit_count=ChatCache.hit_count + 1, last_accessed_at=now)
                .execution_options(synchronize_session=False)
            )
            if not result.rowcount:
                return None
            entry = (await db.execute(
                select(ChatCache)
                .where(ChatCache.question_hash == question_hash)
                .execution_options(populate_existing=True)
            )).scalar_one()
        logger.info(f"💾 Cache hit {question_hash[:12]} (hits={entry.hit_count})")
        return entry

    async def store(self, db: AsyncSession, *, question: str, answer: str) -> None:
        """Upsert by hash; a conflict overwrites the answer and increments hit_count"""
        question_hash = hash_question(question)
        now = datetime.utcnow()
        stmt = dialect_insert(db, ChatCache).values(
            question_hash=question_hash,
            question_text=question,
            answer_text=answer,
            hit_count=1,
            created_at=now,
            last_accessed_at=now,
            expires_at=now + self.ttl,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["question_hash"],
            set_={
                "answer_text": stmt.excluded.answer_text,
                "hit_count": ChatCache.hit_count + 1,
                "last_accessed_at": now,
                # an expired row gets a fresh window, a live one keeps its current expiry
                "expires_at": case(
                    (ChatCache.expires_at <= now, stmt.excluded.expires_at),
                    else_=ChatCache.expires_at,
                ),
            },
        )
        async with store_transaction(db):
            await db.execute(stmt)
        logger.info(f"💾 Cache stored {question_hash[:12]}")

    async def purge_expired(self, db: AsyncSession) -> int:
        async with store_transaction(db):
            result = await db.execute(
                delete(ChatCache)
                .where(ChatCache.expires_at <= datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
        count = result.rowcount or 0
        logger.info(f"🧹 Purged {count} expired cache entries")
        return count

    async def stats(self, db: AsyncSession) -> Dict[str, Any]:
        now = datetime.utcnow()
        row = (await db.execute(
            select(
                func.count(ChatCache.id),
                func.coalesce(func.sum(ChatCache.hit_count), 0),
                func.coalesce(func.avg(ChatCache.hit_count), 0),
                func.coalesce(func.max(ChatCache.hit_count), 0),
                func.count(ChatCache.id).filter(ChatCache.expires_at > now),
            )
        )).one()
        total_entries, total_hits = int(row[0]), int(row[1])
        saved_requests = max(0, total_hits - total_entries)
        hit_rate = round(saved_requests / total_hits * 100, 2) if total_hits else 0.0
        return {
            "total_entries": total_entries,
            "total_hits": total_hits,
            "avg_hits_per_entry": round(float(row[2]), 2),
            "max_hits": int(row[3]),
            "active_entries": int(row[4]),
            "saved_requests": saved_requests,
            "hit_rate": hit_rate,
        }


# Create instance
crud_cache = CRUDCache(ChatCache, ttl_days=settings.CACHE_TTL_DAYS)
