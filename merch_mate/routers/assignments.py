from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from merch_mate.auth import Principal, Role, assert_self_or_role, require_role
from merch_mate.db import get_db
from merch_mate.dependencies import get_client_ip, get_today
from merch_mate.envelope import envelope
from merch_mate.errors import translate_service_errors
from merch_mate.models import UserRole
from merch_mate.schemas import AssignMerchandisersRequest, LocationCreate
from merch_mate.services.assignment_service import assign_merchandisers, list_manager_merchandisers
from merch_mate.services.audit_service import log_audit
from merch_mate.services.location_service import latest_locations, record_location
from merch_mate.services.user_service import get_user

router = APIRouter(prefix='/users', tags=['assignments'])
planner_access = require_role(Role.ADMIN, Role.MANAGER)
merchandiser_access = require_role(Role.MERCHANDISER)


def _target_manager(db: Session, principal: Principal, requested: int | None) -> int:
    if principal.role == Role.MANAGER:
        return principal.id
    if requested is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='manager_id is required')
    with translate_service_errors():
        manager = get_user(db, requested)
    if manager.role != UserRole.MANAGER:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Merchandisers can only be assigned to a manager')
    return manager.id


@router.post('/assign/merchandiser')
def assign_merchandiser(
    payload: AssignMerchandisersRequest,
    request: Request,
    principal: Principal = Depends(planner_access),
    db: Session = Depends(get_db),
):
    manager_id = _target_manager(db, principal, payload.manager_id)
    with translate_service_errors():
        assignments = assign_merchandisers(
            db,
            manager_id=manager_id,
            merchandiser_ids=payload.merchandiser_ids,
            month=payload.month,
        )
    log_audit(
        db,
        actor_user_id=principal.id,
        action='MERCHANDISERS_ASSIGNED',
        ip=get_client_ip(request),
        metadata={'manager_id': manager_id, 'merchandiser_ids': [row.merchandiser_id for row in assignments]},
    )
    db.commit()
    return envelope(
        'Merchandisers assigned successfully',
        status_code=status.HTTP_201_CREATED,
        data=[
            {'id': row.id, 'manager_id': row.manager_id, 'merchandiser_id': row.merchandiser_id, 'month': row.month}
            for row in assignments
        ],
    )


@router.get('/get/merchandisers/{manager_id:int}')
def manager_merchandisers(
    manager_id: int,
    principal: Principal = Depends(planner_access),
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
):
    assert_self_or_role(principal, manager_id, Role.ADMIN)
    rows = list_manager_merchandisers(db, manager_id=manager_id, today=today)
    if not rows:
        return envelope('No merchandisers assigned this month', status_code=status.HTTP_404_NOT_FOUND, data=[])
    return envelope(f'{len(rows)} merchandisers found', data=rows)


@router.post('/locations')
def post_location(
    payload: LocationCreate,
    principal: Principal = Depends(merchandiser_access),
    db: Session = Depends(get_db),
):
    with translate_service_errors():
        location = record_location(
            db,
            merchandiser_id=principal.id,
            latitude=payload.latitude,
            longitude=payload.longitude,
        )
    db.commit()
    return envelope(
        'Location recorded',
        status_code=status.HTTP_201_CREATED,
        data={'id': location.id, 'latitude': location.latitude, 'longitude': location.longitude},
    )


@router.get('/locations')
def get_locations(_: Principal = Depends(planner_access), db: Session = Depends(get_db)):
    rows = latest_locations(db)
    return envelope(f'{len(rows)} locations found', data=rows)
