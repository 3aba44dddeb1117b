from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from merch_mate.auth import Principal, Role, get_current_principal, require_role
from merch_mate.db import get_db
from merch_mate.dependencies import get_client_ip, get_user_agent
from merch_mate.envelope import envelope
from merch_mate.errors import AuthenticationError, ConflictError, translate_service_errors
from merch_mate.schemas import ChangePasswordRequest, LoginRequest, ResetPasswordRequest, SignupRequest
from merch_mate.security.sessions import bearer_token, create_api_session, revoke_api_session
from merch_mate.services import user_service
from merch_mate.services.audit_service import log_audit, log_login_attempt

logger = logging.getLogger(__name__)

router = APIRouter(prefix='/users', tags=['auth'])


@router.post('/login')
def login(payload: LoginRequest, request: Request, db: Session = Depends(get_db)):
    ip = get_client_ip(request)
    user_agent = get_user_agent(request)

    with translate_service_errors():
        try:
            user = user_service.authenticate(db, email=payload.email, password=payload.password)
        except (LookupError, ConflictError, AuthenticationError, PermissionError) as exc:
            event = log_login_attempt(
                db,
                email=payload.email,
                user_id=user_service.find_user_id(db, payload.email),
                ip=ip,
                user_agent=user_agent,
                error=exc,
            )
            db.commit()
            logger.info('Login failed for %s: %s', payload.email, event.failure_reason)
            raise

    token = create_api_session(db, user.id, ip=ip, user_agent=user_agent)
    log_login_attempt(db, email=payload.email, user_id=user.id, ip=ip, user_agent=user_agent)
    log_audit(db, actor_user_id=user.id, action='AUTH_LOGIN', ip=ip, metadata={'email': user.email})
    db.commit()

    profile = user_service.serialize_user(user)
    profile['last_login'] = user.last_login
    return envelope(
        'Login successful',
        status_code=status.HTTP_201_CREATED,
        data=profile,
        access_token=token,
    )


@router.post('/logout')
def logout(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    token = bearer_token(request)
    if token:
        revoke_api_session(db, token)
    log_audit(db, actor_user_id=principal.id, action='AUTH_LOGOUT', ip=get_client_ip(request))
    db.commit()
    return envelope('Logout successful.', status_code=status.HTTP_201_CREATED)


@router.post('/signup')
def signup(
    payload: SignupRequest,
    request: Request,
    principal: Principal = Depends(require_role(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    with translate_service_errors():
        user = user_service.create_user(
            db,
            first_name=payload.first_name,
            middle_name=payload.middle_name,
            last_name=payload.last_name,
            national_id_no=payload.national_id_no,
            staff_no=payload.staff_no,
            username=payload.username,
            email=payload.email,
            password=payload.password,
            role=payload.role,
        )
    log_audit(
        db,
        actor_user_id=principal.id,
        action='USER_CREATED',
        ip=get_client_ip(request),
        metadata={'user_id': user.id, 'role': user.role.value},
    )
    db.commit()
    return envelope(
        'User created successfully',
        status_code=status.HTTP_201_CREATED,
        data=user_service.serialize_user(user),
    )


@router.put('/change-password')
def change_password(payload: ChangePasswordRequest, request: Request, db: Session = Depends(get_db)):
    with translate_service_errors():
        user = user_service.change_password(
            db,
            email=payload.email,
            old_password=payload.old_password,
            new_password=payload.new_password,
        )
    log_audit(db, actor_user_id=user.id, action='PASSWORD_CHANGED', ip=get_client_ip(request))
    db.commit()
    return envelope('Password changed successfully', status_code=status.HTTP_201_CREATED)


@router.put('/reset-password')
@router.put('/rest-user')
def reset_password(
    payload: ResetPasswordRequest,
    request: Request,
    principal: Principal = Depends(require_role(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    with translate_service_errors():
        user = user_service.reset_password(db, email=payload.email, new_password=payload.password)
    log_audit(
        db,
        actor_user_id=principal.id,
        action='PASSWORD_RESET',
        ip=get_client_ip(request),
        metadata={'user_id': user.id},
    )
    db.commit()
    return envelope('Password reset successfully')
