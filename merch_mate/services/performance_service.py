from __future__ import annotations

from calendar import monthrange
from collections import defaultdict
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from merch_mate.models import MerchandiserPerformance, User
from merch_mate.services.scoring_service import TOTAL_KEY, fold_scores


def record_scores(db: Session, *, merchandiser_id: int, day: date, scores: dict[str, float]) -> MerchandiserPerformance:
    entry = db.execute(
        select(MerchandiserPerformance).where(
            MerchandiserPerformance.merchandiser_id == merchandiser_id,
            MerchandiserPerformance.day == day,
        )
    ).scalar_one_or_none()
    if not entry:
        entry = MerchandiserPerformance(
            merchandiser_id=merchandiser_id,
            day=day,
            weekday=day.strftime('%A'),
            performance={},
        )
        db.add(entry)

    # Reassign so the JSON column is marked dirty.
    entry.performance = fold_scores(entry.performance or {}, scores)
    db.flush()
    return entry


def _entries(
    db: Session,
    *,
    merchandiser_id: int | None,
    first: date,
    last: date,
) -> list[MerchandiserPerformance]:
    query = (
        select(MerchandiserPerformance)
        .where(MerchandiserPerformance.day >= first, MerchandiserPerformance.day <= last)
        .order_by(MerchandiserPerformance.day.asc())
    )
    if merchandiser_id is not None:
        query = query.where(MerchandiserPerformance.merchandiser_id == merchandiser_id)
    return db.execute(query).scalars().all()


def average_metrics(entries: list[MerchandiserPerformance], *, require_all: bool = False) -> dict[str, float]:
    """Per-metric mean across entries.

    With ``require_all`` only metrics present on every entry are kept.
    """
    values: dict[str, list[float]] = defaultdict(list)
    for entry in entries:
        for metric, value in (entry.performance or {}).items():
            values[metric].append(value)
    return {
        metric: sum(scores) / len(scores)
        for metric, scores in values.items()
        if not require_all or len(scores) == len(entries)
    }


def serialize_entry(entry: MerchandiserPerformance) -> dict:
    return {
        'merchandiser_id': entry.merchandiser_id,
        'date': entry.day.isoformat(),
        'day': entry.weekday,
        'performance': entry.performance,
    }


def day_performance(db: Session, *, merchandiser_id: int, day: date) -> dict:
    entries = _entries(db, merchandiser_id=merchandiser_id, first=day, last=day)
    if not entries:
        raise LookupError('No performance data found for the given day')
    return serialize_entry(entries[0])


def week_performance(db: Session, *, merchandiser_id: int, today: date) -> dict[str, float]:
    start_of_week = today - timedelta(days=today.weekday())
    entries = _entries(db, merchandiser_id=merchandiser_id, first=start_of_week, last=today)
    if not entries:
        raise LookupError('No performance data found for the given week')
    return average_metrics(entries)


def month_performance(db: Session, *, merchandiser_id: int, year: int, month: int) -> dict[str, float]:
    if not 1 <= month <= 12:
        raise ValueError('Invalid month or year format. Use MM and YYYY')
    first = date(year, month, 1)
    last = date(year, month, monthrange(year, month)[1])
    entries = _entries(db, merchandiser_id=merchandiser_id, first=first, last=last)
    if not entries:
        raise LookupError('No performance data found for the given month')
    return average_metrics(entries)


def _shift_month(year: int, month: int, offset: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) - offset
    return index // 12, index % 12 + 1


def year_performance(db: Session, *, merchandiser_id: int, today: date) -> dict[str, dict[str, float]]:
    """Average ``total_performance`` for each of the last twelve months that has data.

    Keys are ``"<Month>, <YYYY>"``, newest month first.
    """
    yearly: dict[str, dict[str, float]] = {}
    for offset in range(12):
        year, month = _shift_month(today.year, today.month, offset)
        first = date(year, month, 1)
        last = date(year, month, monthrange(year, month)[1])
        totals = [
            entry.performance[TOTAL_KEY]
            for entry in _entries(db, merchandiser_id=merchandiser_id, first=first, last=last)
            if TOTAL_KEY in (entry.performance or {})
        ]
        if totals:
            yearly[first.strftime('%B, %Y')] = {TOTAL_KEY: sum(totals) / len(totals)}
    if not yearly:
        raise LookupError('No performance for this year')
    return yearly


def range_performance(db: Session, *, merchandiser_id: int, start_date: date, end_date: date) -> dict[str, float]:
    if start_date > end_date:
        raise ValueError('start_date must not be after end_date')
    entries = _entries(db, merchandiser_id=merchandiser_id, first=start_date, last=end_date)
    if not entries:
        raise LookupError('No performance data found for the given date range')
    return average_metrics(entries, require_all=True)


def list_performances(db: Session) -> list[dict]:
    rows = db.execute(
        select(MerchandiserPerformance).order_by(MerchandiserPerformance.day.desc(), MerchandiserPerformance.id.asc())
    ).scalars().all()
    return [serialize_entry(row) for row in rows]


def rank_entries(entries: list[dict]) -> list[dict]:
    """Order leaderboard rows by score, highest first; ties keep name order."""
    return sorted(sorted(entries, key=lambda row: row['name']), key=lambda row: row['score'], reverse=True)


def leaderboard(db: Session, *, today: date) -> list[dict]:
    first = today.replace(day=1)
    last = today.replace(day=monthrange(today.year, today.month)[1])
    entries = _entries(db, merchandiser_id=None, first=first, last=last)
    if not entries:
        raise LookupError('No performance data found for the current month')

    totals: dict[int, list[float]] = defaultdict(list)
    for entry in entries:
        if TOTAL_KEY in (entry.performance or {}):
            totals[entry.merchandiser_id].append(entry.performance[TOTAL_KEY])

    names = {
        row.id: f'{row.first_name} {row.last_name}'
        for row in db.execute(
            select(User.id, User.first_name, User.last_name).where(User.id.in_(totals.keys()))
        ).all()
    }
    month_name = today.strftime('%B')
    return rank_entries(
        [
            {
                'merchandiser_id': merchandiser_id,
                'name': names.get(merchandiser_id, 'Unknown'),
                'score': sum(scores) / len(scores),
                'month': month_name,
            }
            for merchandiser_id, scores in totals.items()
        ]
    )
