# app/services/stats.py

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.crud.base import dialect_insert
from app.db.models.statistics import SessionStatistic

logger = logging.getLogger(__name__)

FIRST_MESSAGE = "first_messages_count"
EMAIL_COLLECTED = "emails_collected_count"
PAYMENT_COMPLETED = "payments_completed_count"

COUNTERS = (FIRST_MESSAGE, EMAIL_COLLECTED, PAYMENT_COMPLETED)


def rate(numerator: int, denominator: int) -> float:
    """Percentage rounded to 2 decimals, 0 when there is nothing to divide by"""
    if not denominator:
        return 0.0
    return round(numerator / denominator * 100, 2)


def _with_rates(first_messages: int, emails: int, payments: int) -> Dict[str, Any]:
    return {
        "first_messages": first_messages,
        "emails_collected": emails,
        "payments_completed": payments,
        "email_rate": rate(emails, first_messages),
        "payment_rate": rate(payments, emails),
        "total_conversion_rate": rate(payments, first_messages),
    }


class StatsManager:
    """
    Daily conversion counters.

    ``increment`` never commits: the Session Ledger calls it inside the
    transaction of the transition it records, so a counter moves if and only
    if its transition commits.
    """

    async def increment(self, db: AsyncSession, counter: str, day: Optional[date] = None) -> None:
        if counter not in COUNTERS:
            raise ValueError(f"Unknown counter: {counter}")
        day = day or datetime.utcnow().date()
        now = datetime.utcnow()
        stmt = dialect_insert(db, SessionStatistic).values(
            stat_date=day,
            created_at=now,
            updated_at=now,
            **{c: (1 if c == counter else 0) for c in COUNTERS},
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["stat_date"],
            set_={counter: getattr(SessionStatistic, counter) + 1, "updated_at": now},
        )
        await db.execute(stmt)
        logger.info(f"📊 {counter} +1 for {day.isoformat()}")

    async def daily(self, db: AsyncSession, days: int = 30) -> List[Dict[str, Any]]:
        since = datetime.utcnow().date() - timedelta(days=days - 1)
        result = await db.execute(
            select(SessionStatistic)
            .where(SessionStatistic.stat_date >= since)
            .order_by(SessionStatistic.stat_date.desc())
        )
        rows = []
        for stat in result.scalars().all():
            row = _with_rates(
                stat.first_messages_count, stat.emails_collected_count, stat.payments_completed_count
            )
            row["date"] = stat.stat_date.isoformat()
            rows.append(row)
        return rows

    async def totals_since(self, db: AsyncSession, since: Optional[date] = None) -> Dict[str, Any]:
        query = select(
            func.coalesce(func.sum(SessionStatistic.first_messages_count), 0),
            func.coalesce(func.sum(SessionStatistic.emails_collected_count), 0),
            func.coalesce(func.sum(SessionStatistic.payments_completed_count), 0),
        )
        if since is not None:
            query = query.where(SessionStatistic.stat_date >= since)
        first_messages, emails, payments = (await db.execute(query)).one()
        return _with_rates(int(first_messages), int(emails), int(payments))

    async def global_totals(self, db: AsyncSession) -> Dict[str, Any]:
        return await self.totals_since(db)

    async def last_n_days(self, db: AsyncSession, days: int = 7) -> Dict[str, Any]:
        since = datetime.utcnow().date() - timedelta(days=days - 1)
        totals = await self.totals_since(db, since)
        totals["days"] = days
        return totals


stats_manager = StatsManager()
