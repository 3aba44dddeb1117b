from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from merch_mate.auth import Principal, Role, assert_self_or_role, get_current_principal, require_role
from merch_mate.db import get_db
from merch_mate.dependencies import get_client_ip
from merch_mate.envelope import envelope
from merch_mate.errors import translate_service_errors
from merch_mate.models import UserRole
from merch_mate.schemas import EditRoleRequest, EditStatusRequest, EditUserRequest
from merch_mate.services import user_service
from merch_mate.services.audit_service import log_audit

router = APIRouter(prefix='/users', tags=['users'])


@router.get('')
def list_users(
    role: str | None = None,
    _: Principal = Depends(require_role(Role.ADMIN, Role.MANAGER)),
    db: Session = Depends(get_db),
):
    with translate_service_errors():
        role_filter = user_service.parse_role(role) if role else None
    users = user_service.list_users(db, role=role_filter)
    return envelope(f'{len(users)} users', data=[user_service.serialize_user(user) for user in users])


@router.get('/{user_id:int}')
def get_user(
    user_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    assert_self_or_role(principal, user_id, Role.ADMIN, Role.MANAGER)
    with translate_service_errors():
        user = user_service.get_user(db, user_id)
    return envelope('User found', data=user_service.serialize_user(user))


@router.put('/edit-user/{user_id:int}')
def edit_user(
    user_id: int,
    payload: EditUserRequest,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    assert_self_or_role(principal, user_id, Role.ADMIN)
    with translate_service_errors():
        user = user_service.update_names(
            db,
            user_id=user_id,
            first_name=payload.first_name,
            last_name=payload.last_name,
        )
    log_audit(
        db,
        actor_user_id=principal.id,
        action='USER_UPDATED',
        ip=get_client_ip(request),
        metadata={'user_id': user_id},
    )
    db.commit()
    return envelope('User details updated successfully', data=user_service.serialize_user(user))


@router.put('/{user_id:int}/edit-status')
def edit_status(
    user_id: int,
    payload: EditStatusRequest,
    request: Request,
    principal: Principal = Depends(require_role(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    with translate_service_errors():
        user_service.set_status(db, user_id=user_id, status=payload.status)
    log_audit(
        db,
        actor_user_id=principal.id,
        action='USER_STATUS_CHANGED',
        ip=get_client_ip(request),
        metadata={'user_id': user_id, 'status': payload.status},
    )
    db.commit()
    return envelope('Status updated successfully')


@router.put('/{user_id:int}/edit-role')
def edit_role(
    user_id: int,
    payload: EditRoleRequest,
    request: Request,
    principal: Principal = Depends(require_role(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    if user_id == principal.id and payload.role != UserRole.ADMIN.value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Admins cannot remove their own admin role')
    with translate_service_errors():
        user_service.set_role(db, user_id=user_id, role=payload.role)
    log_audit(
        db,
        actor_user_id=principal.id,
        action='USER_ROLE_CHANGED',
        ip=get_client_ip(request),
        metadata={'user_id': user_id, 'role': payload.role},
    )
    db.commit()
    return envelope('Role updated successfully')
