from datetime import datetime, timedelta

import pytest

from app.services.stats import EMAIL_COLLECTED, FIRST_MESSAGE, PAYMENT_COMPLETED, StatsManager, rate


def test_rate():
    assert rate(1, 3) == 33.33
    assert rate(2, 2) == 100.0
    assert rate(5, 0) == 0.0


async def test_increment_and_daily(db):
    stats = StatsManager()
    today = datetime.utcnow().date()
    yesterday = today - timedelta(days=1)
    for _ in range(4):
        await stats.increment(db, FIRST_MESSAGE)
    await stats.increment(db, EMAIL_COLLECTED)
    await stats.increment(db, FIRST_MESSAGE, day=yesterday)
    await db.commit()

    daily = await stats.daily(db, days=30)

    assert [row["date"] for row in daily] == [today.isoformat(), yesterday.isoformat()]
    assert daily[0]["first_messages"] == 4
    assert daily[0]["emails_collected"] == 1
    assert daily[0]["email_rate"] == 25.0
    assert daily[0]["payment_rate"] == 0.0


async def test_totals_and_rates(db):
    stats = StatsManager()
    for counter in (FIRST_MESSAGE, FIRST_MESSAGE, FIRST_MESSAGE, FIRST_MESSAGE, EMAIL_COLLECTED, EMAIL_COLLECTED):
        await stats.increment(db, counter)
    await stats.increment(db, PAYMENT_COMPLETED)
    await stats.increment(db, FIRST_MESSAGE, day=datetime.utcnow().date() - timedelta(days=20))
    await db.commit()

    totals = await stats.global_totals(db)
    week = await stats.last_n_days(db, 7)

    assert totals == {
        "first_messages": 5,
        "emails_collected": 2,
        "payments_completed": 1,
        "email_rate": 40.0,
        "payment_rate": 50.0,
        "total_conversion_rate": 20.0,
    }
    assert week["days"] == 7
    assert week["first_messages"] == 4
    assert week["total_conversion_rate"] == 25.0


async def test_empty_totals(db):
    totals = await StatsManager().global_totals(db)
    assert totals["first_messages"] == 0
    assert totals["total_conversion_rate"] == 0.0


async def test_unknown_counter(db):
    with pytest.raises(ValueError):
        await StatsManager().increment(db, "visits")
