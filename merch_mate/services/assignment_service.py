from __future__ import annotations

from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from merch_mate.errors import ConflictError
from merch_mate.models import MerchandiserAssignment, User, UserRole


def _month_start(value: date) -> date:
    return value.replace(day=1)


def assign_merchandisers(
    db: Session,
    *,
    manager_id: int,
    merchandiser_ids: list[int],
    month: date,
) -> list[MerchandiserAssignment]:
    if not merchandiser_ids:
        raise ValueError('Select at least one merchandiser')
    month_start = _month_start(month)

    users = {
        user.id: user
        for user in db.execute(select(User).where(User.id.in_(set(merchandiser_ids)))).scalars()
    }
    for merchandiser_id in merchandiser_ids:
        user = users.get(merchandiser_id)
        if not user or user.role != UserRole.MERCHANDISER:
            raise ValueError(f'User {merchandiser_id} is not a merchandiser')

    taken = db.execute(
        select(MerchandiserAssignment).where(
            MerchandiserAssignment.month == month_start,
            MerchandiserAssignment.merchandiser_id.in_(set(merchandiser_ids)),
        )
    ).scalars().first()
    if taken:
        user = users[taken.merchandiser_id]
        raise ConflictError(
            f'The merchandiser {user.full_name} is already assigned to a manager for {month_start.strftime("%B %Y")}'
        )

    assignments = [
        MerchandiserAssignment(manager_id=manager_id, merchandiser_id=merchandiser_id, month=month_start)
        for merchandiser_id in dict.fromkeys(merchandiser_ids)
    ]
    db.add_all(assignments)
    db.flush()
    return assignments


def list_manager_merchandisers(db: Session, *, manager_id: int, today: date) -> list[dict]:
    month_start = _month_start(today)
    rows = db.execute(
        select(MerchandiserAssignment)
        .options(selectinload(MerchandiserAssignment.merchandiser))
        .where(MerchandiserAssignment.manager_id == manager_id, MerchandiserAssignment.month == month_start)
        .order_by(MerchandiserAssignment.id.asc())
    ).scalars().all()
    return [
        {
            'assignment_id': row.id,
            'merchandiser_id': row.merchandiser_id,
            'staff_no': row.merchandiser.staff_no,
            'merchandiser_name': row.merchandiser.full_name,
            'manager_id': row.manager_id,
            'month': month_start.strftime('%B'),
            'year': month_start.year,
        }
        for row in rows
    ]
