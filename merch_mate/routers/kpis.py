from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from merch_mate.auth import Principal, Role, require_role
from merch_mate.db import get_db
from merch_mate.dependencies import get_client_ip
from merch_mate.envelope import envelope
from merch_mate.errors import translate_service_errors
from merch_mate.schemas import KpiCreate, KpiUpdate
from merch_mate.services import kpi_service
from merch_mate.services.audit_service import log_audit

router = APIRouter(prefix='/users', tags=['kpis'])
admin_access = require_role(Role.ADMIN)
any_access = require_role(Role.ADMIN, Role.MANAGER, Role.MERCHANDISER)


@router.post('/create/kpi')
def create_kpi(
    payload: KpiCreate,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    with translate_service_errors():
        kpi = kpi_service.create_kpi(
            db,
            admin_id=principal.id,
            sector_name=payload.sector_name,
            company_name=payload.company_name,
            performance_metric=payload.performance_metric,
        )
    log_audit(
        db,
        actor_user_id=principal.id,
        action='KPI_CREATED',
        ip=get_client_ip(request),
        metadata={'kpi_id': kpi.id},
    )
    db.commit()
    return envelope('KPI created successfully', status_code=status.HTTP_201_CREATED, data=kpi_service.serialize_kpi(kpi))


@router.get('/all/kpis')
@router.get('/get/kpis')
def list_kpis(_: Principal = Depends(any_access), db: Session = Depends(get_db)):
    kpis = kpi_service.list_kpis(db)
    return envelope(f'{len(kpis)} KPIs found', data=[kpi_service.serialize_kpi(kpi) for kpi in kpis])


@router.put('/update/kpi/{kpi_id:int}')
def update_kpi(
    kpi_id: int,
    payload: KpiUpdate,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    with translate_service_errors():
        kpi = kpi_service.update_kpi(db, kpi_id=kpi_id, performance_metric=payload.performance_metric)
    log_audit(
        db,
        actor_user_id=principal.id,
        action='KPI_UPDATED',
        ip=get_client_ip(request),
        metadata={'kpi_id': kpi_id},
    )
    db.commit()
    return envelope('KPI updated successfully', data=kpi_service.serialize_kpi(kpi))


@router.delete('/delete/kpi/{kpi_id:int}')
def delete_kpi(
    kpi_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    with translate_service_errors():
        kpi_service.delete_kpi(db, kpi_id=kpi_id)
    log_audit(
        db,
        actor_user_id=principal.id,
        action='KPI_DELETED',
        ip=get_client_ip(request),
        metadata={'kpi_id': kpi_id},
    )
    db.commit()
    return envelope('KPI deleted successfully')
