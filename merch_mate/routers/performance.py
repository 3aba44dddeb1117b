from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from merch_mate.auth import Principal, Role, assert_self_or_role, require_role
from merch_mate.db import get_db
from merch_mate.dependencies import get_today
from merch_mate.envelope import envelope
from merch_mate.errors import translate_service_errors
from merch_mate.services import performance_service

router = APIRouter(prefix='/users', tags=['performance'])
any_access = require_role(Role.ADMIN, Role.MANAGER, Role.MERCHANDISER)
staff_access = require_role(Role.ADMIN, Role.MANAGER)


def _viewable(principal: Principal, merchandiser_id: int) -> None:
    assert_self_or_role(principal, merchandiser_id, Role.ADMIN, Role.MANAGER)


@router.get('/get/day/performance/{merchandiser_id:int}')
def day_performance(
    merchandiser_id: int,
    principal: Principal = Depends(any_access),
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
):
    _viewable(principal, merchandiser_id)
    with translate_service_errors():
        data = performance_service.day_performance(db, merchandiser_id=merchandiser_id, day=today)
    return envelope('Performance retrieved successfully', data=data)


@router.get('/get/performance')
def performance_on(
    merch_id: int,
    date_: date | None = Query(None, alias='date'),
    principal: Principal = Depends(any_access),
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
):
    _viewable(principal, merch_id)
    with translate_service_errors():
        data = performance_service.day_performance(db, merchandiser_id=merch_id, day=date_ or today)
    return envelope('Performance retrieved successfully', data=data)


@router.get('/get/week/performance/{merchandiser_id:int}')
def week_performance(
    merchandiser_id: int,
    principal: Principal = Depends(any_access),
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
):
    _viewable(principal, merchandiser_id)
    with translate_service_errors():
        data = performance_service.week_performance(db, merchandiser_id=merchandiser_id, today=today)
    return envelope('Performance retrieved successfully', data=data)


@router.get('/get/month/performance/{merchandiser_id:int}')
def month_performance(
    merchandiser_id: int,
    principal: Principal = Depends(any_access),
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
):
    _viewable(principal, merchandiser_id)
    with translate_service_errors():
        data = performance_service.month_performance(
            db, merchandiser_id=merchandiser_id, year=today.year, month=today.month
        )
    return envelope('Performance retrieved successfully', data=data)


@router.get('/get/monthly/performance')
def monthly_performance(
    merch_id: int,
    month: int,
    year: int,
    principal: Principal = Depends(any_access),
    db: Session = Depends(get_db),
):
    _viewable(principal, merch_id)
    with translate_service_errors():
        data = performance_service.month_performance(db, merchandiser_id=merch_id, year=year, month=month)
    return envelope('Performance retrieved successfully', data=data)


@router.get('/get/year/performance/{merchandiser_id:int}')
def year_performance(
    merchandiser_id: int,
    principal: Principal = Depends(any_access),
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
):
    _viewable(principal, merchandiser_id)
    with translate_service_errors():
        data = performance_service.year_performance(db, merchandiser_id=merchandiser_id, today=today)
    return envelope('Performance retrieved successfully', data=data)


@router.get('/get/range/performance')
def range_performance(
    merch_id: int,
    start_date: date,
    end_date: date,
    principal: Principal = Depends(any_access),
    db: Session = Depends(get_db),
):
    _viewable(principal, merch_id)
    with translate_service_errors():
        data = performance_service.range_performance(
            db, merchandiser_id=merch_id, start_date=start_date, end_date=end_date
        )
    return envelope('Performance retrieved successfully', data=data)


@router.get('/performances')
def all_performances(_: Principal = Depends(staff_access), db: Session = Depends(get_db)):
    rows = performance_service.list_performances(db)
    return envelope(f'{len(rows)} performance records found', data=rows)


@router.get('/leaderboard/performance')
def leaderboard(
    _: Principal = Depends(any_access),
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
):
    with translate_service_errors():
        data = performance_service.leaderboard(db, today=today)
    return envelope('Leaderboard retrieved successfully', data=data)
