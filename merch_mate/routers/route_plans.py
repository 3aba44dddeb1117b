from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from merch_mate.auth import Principal, Role, assert_self_or_role, manager_scope, require_role
from merch_mate.db import get_db
from merch_mate.dependencies import get_client_ip, get_today
from merch_mate.envelope import envelope
from merch_mate.errors import translate_service_errors
from merch_mate.schemas import (
    InstructionStatusRequest,
    ModifyRouteRequest,
    RoutePlanCreate,
    RoutePlanStatusRequest,
)
from merch_mate.services import route_plan_service
from merch_mate.services.audit_service import log_audit
from merch_mate.services.route_plan_service import InstructionDraft

router = APIRouter(prefix='/users', tags=['route-plans'])
manager_access = require_role(Role.MANAGER)
planner_access = require_role(Role.ADMIN, Role.MANAGER)
any_access = require_role(Role.ADMIN, Role.MANAGER, Role.MERCHANDISER)


def _routes_envelope(rows: list[dict]) -> object:
    if not rows:
        return envelope('No route plans found', status_code=status.HTTP_404_NOT_FOUND, data=[])
    return envelope(f'{len(rows)} route plans found', data=rows)


@router.post('/route-plans')
def create_route_plan(
    payload: RoutePlanCreate,
    request: Request,
    principal: Principal = Depends(manager_access),
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
):
    drafts = [
        InstructionDraft(
            facility_id=item.facility,
            start=item.start,
            end=item.end,
            instructions=item.instructions,
            kpi_metrics=item.kpi_metrics,
            instruction_id=item.id,
        )
        for item in payload.instructions
    ]
    with translate_service_errors():
        plan = route_plan_service.create_route_plan(
            db,
            manager_id=principal.id,
            staff_no=payload.staff_no,
            status=payload.status,
            start_date=payload.date_range.start_date,
            end_date=payload.date_range.end_date,
            instructions=drafts,
            today=today,
        )
    log_audit(
        db,
        actor_user_id=principal.id,
        action='ROUTE_PLAN_CREATED',
        ip=get_client_ip(request),
        metadata={'route_plan_id': plan.id, 'merchandiser_id': plan.merchandiser_id},
    )
    db.commit()
    return envelope(
        'Route plan created successfully',
        status_code=status.HTTP_201_CREATED,
        data=route_plan_service.serialize_route_plan(plan),
    )


@router.get('/route-plans')
def all_route_plans(principal: Principal = Depends(planner_access), db: Session = Depends(get_db)):
    return _routes_envelope(route_plan_service.list_route_plans(db, manager_id=manager_scope(principal)))


@router.get('/get/all/routes')
def admin_route_plans(_: Principal = Depends(require_role(Role.ADMIN)), db: Session = Depends(get_db)):
    return _routes_envelope(route_plan_service.list_route_plans(db))


@router.get('/manager-route-plans/{manager_id:int}')
def manager_route_plans(
    manager_id: int,
    principal: Principal = Depends(planner_access),
    db: Session = Depends(get_db),
):
    assert_self_or_role(principal, manager_id, Role.ADMIN)
    return _routes_envelope(route_plan_service.list_route_plans(db, manager_id=manager_id))


@router.get('/route-plans/{merchandiser_id:int}')
def merchandiser_route_plans(
    merchandiser_id: int,
    principal: Principal = Depends(any_access),
    db: Session = Depends(get_db),
):
    assert_self_or_role(principal, merchandiser_id, Role.ADMIN, Role.MANAGER)
    return _routes_envelope(route_plan_service.list_route_plans(db, merchandiser_id=merchandiser_id))


@router.get('/manager-routes/{manager_id:int}')
def manager_month_routes(
    manager_id: int,
    principal: Principal = Depends(planner_access),
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
):
    assert_self_or_role(principal, manager_id, Role.ADMIN)
    return _routes_envelope(route_plan_service.list_manager_month_routes(db, manager_id=manager_id, today=today))


@router.get('/merchandisers/routes/{merchandiser_id:int}')
def merchandiser_month_routes(
    merchandiser_id: int,
    principal: Principal = Depends(any_access),
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
):
    assert_self_or_role(principal, merchandiser_id, Role.ADMIN, Role.MANAGER)
    return _routes_envelope(
        route_plan_service.list_merchandiser_month_routes(db, merchandiser_id=merchandiser_id, today=today)
    )


@router.put('/modify-route/{route_plan_id:int}')
def modify_route(
    route_plan_id: int,
    payload: ModifyRouteRequest,
    request: Request,
    principal: Principal = Depends(planner_access),
    db: Session = Depends(get_db),
):
    if payload.status is None and not payload.instructions:
        return envelope('Nothing to update', status_code=status.HTTP_400_BAD_REQUEST)
    scope = manager_scope(principal)
    with translate_service_errors():
        for window in payload.instructions:
            route_plan_service.modify_instruction_window(
                db,
                route_plan_id=route_plan_id,
                instruction_id=window.instruction_id,
                start=window.start,
                end=window.end,
                manager_id=scope,
            )
        if payload.status is not None:
            route_plan_service.set_route_plan_status(
                db,
                route_plan_id=route_plan_id,
                status=payload.status,
                manager_id=scope,
            )
        plan = route_plan_service.get_route_plan(db, route_plan_id)
    log_audit(
        db,
        actor_user_id=principal.id,
        action='ROUTE_PLAN_MODIFIED',
        ip=get_client_ip(request),
        metadata={'route_plan_id': route_plan_id},
    )
    db.commit()
    return envelope('Route plan updated successfully', data=route_plan_service.serialize_route_plan(plan))


@router.put('/change-route-status/{route_plan_id:int}')
def change_instruction_status(
    route_plan_id: int,
    payload: InstructionStatusRequest,
    request: Request,
    principal: Principal = Depends(planner_access),
    db: Session = Depends(get_db),
):
    with translate_service_errors():
        instruction = route_plan_service.set_instruction_status(
            db,
            route_plan_id=route_plan_id,
            instruction_id=payload.instruction_id,
            status=payload.status,
            manager_id=manager_scope(principal),
        )
    log_audit(
        db,
        actor_user_id=principal.id,
        action='INSTRUCTION_STATUS_CHANGED',
        ip=get_client_ip(request),
        metadata={'route_plan_id': route_plan_id, 'instruction_id': payload.instruction_id, 'status': payload.status},
    )
    db.commit()
    return envelope('Instruction status updated', data=route_plan_service.serialize_instruction(instruction))


def _set_plan_status(db: Session, request: Request, principal: Principal, route_plan_id: int, new_status: str):
    with translate_service_errors():
        plan = route_plan_service.set_route_plan_status(
            db,
            route_plan_id=route_plan_id,
            status=new_status,
            manager_id=manager_scope(principal),
        )
    log_audit(
        db,
        actor_user_id=principal.id,
        action='ROUTE_PLAN_STATUS_CHANGED',
        ip=get_client_ip(request),
        metadata={'route_plan_id': route_plan_id, 'status': new_status},
    )
    db.commit()
    return envelope('Route plan status updated', data=route_plan_service.serialize_route_plan(plan))


@router.put('/route-plans/{route_plan_id:int}')
def update_route_plan_status(
    route_plan_id: int,
    payload: RoutePlanStatusRequest,
    request: Request,
    principal: Principal = Depends(planner_access),
    db: Session = Depends(get_db),
):
    return _set_plan_status(db, request, principal, route_plan_id, payload.status)


@router.put('/complete/route/plan/{route_plan_id:int}')
def complete_route_plan(
    route_plan_id: int,
    request: Request,
    principal: Principal = Depends(planner_access),
    db: Session = Depends(get_db),
):
    return _set_plan_status(db, request, principal, route_plan_id, 'complete')


@router.delete('/delete-route-plans/{route_plan_id:int}')
def delete_route_plan(
    route_plan_id: int,
    request: Request,
    principal: Principal = Depends(planner_access),
    db: Session = Depends(get_db),
):
    with translate_service_errors():
        route_plan_service.delete_route_plan(db, route_plan_id=route_plan_id, manager_id=manager_scope(principal))
    log_audit(
        db,
        actor_user_id=principal.id,
        action='ROUTE_PLAN_DELETED',
        ip=get_client_ip(request),
        metadata={'route_plan_id': route_plan_id},
    )
    db.commit()
    return envelope('Route plan deleted successfully')
