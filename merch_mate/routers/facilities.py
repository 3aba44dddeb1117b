from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from merch_mate.auth import Principal, Role, require_role
from merch_mate.db import get_db
from merch_mate.dependencies import get_client_ip
from merch_mate.envelope import envelope
from merch_mate.errors import translate_service_errors
from merch_mate.schemas import FacilityCreate
from merch_mate.services.audit_service import log_audit
from merch_mate.services.facility_service import create_facility, list_facilities, serialize_facility

router = APIRouter(prefix='/users', tags=['facilities'])
manager_access = require_role(Role.MANAGER)
staff_access = require_role(Role.ADMIN, Role.MANAGER)


@router.post('/create/facility')
def create_facility_endpoint(
    payload: FacilityCreate,
    request: Request,
    principal: Principal = Depends(manager_access),
    db: Session = Depends(get_db),
):
    with translate_service_errors():
        facility = create_facility(
            db,
            manager_id=principal.id,
            name=payload.name,
            location=payload.location,
            type_=payload.type,
        )
    log_audit(
        db,
        actor_user_id=principal.id,
        action='FACILITY_CREATED',
        ip=get_client_ip(request),
        metadata={'facility_id': facility.id},
    )
    db.commit()
    return envelope(
        'Facility created successfully',
        status_code=status.HTTP_201_CREATED,
        data=serialize_facility(facility),
    )


@router.get('/get-facilities/{manager_id:int}')
def manager_facilities(
    manager_id: int,
    principal: Principal = Depends(staff_access),
    db: Session = Depends(get_db),
):
    if principal.role == Role.MANAGER and principal.id != manager_id:
        manager_id = principal.id
    facilities = list_facilities(db, manager_id=manager_id)
    return envelope(
        f'{len(facilities)} facilities found',
        data=[serialize_facility(facility) for facility in facilities],
    )


@router.get('/get/facilities')
def all_facilities(_: Principal = Depends(staff_access), db: Session = Depends(get_db)):
    facilities = list_facilities(db)
    return envelope(
        f'{len(facilities)} facilities found',
        data=[serialize_facility(facility) for facility in facilities],
    )
