from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from merch_mate.db import get_db
from merch_mate.models import UserRole as Role
from merch_mate.models import UserStatus
from merch_mate.security.sessions import bearer_token, load_principal_from_token


@dataclass
class Principal:
    id: int
    username: str
    email: str
    role: Role
    active: bool

    @property
    def role_check(self) -> bool:
        return self.role == Role.MANAGER

    @property
    def admin(self) -> bool:
        return self.role == Role.ADMIN


def get_current_principal(request: Request, db: Session = Depends(get_db)) -> Principal:
    row = load_principal_from_token(db, bearer_token(request))
    db.commit()
    if not row:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Authentication required')
    principal = Principal(
        id=row.id,
        username=row.username,
        email=row.email,
        role=Role(row.role),
        active=row.status == UserStatus.ACTIVE,
    )
    if not principal.active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Access denied, please contact system administrator')
    request.state.principal = principal
    return principal


def require_role(*allowed: Role):
    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='You are not allowed to perform this action')
        return principal

    return _dep


def assert_self_or_role(principal: Principal, target_user_id: int, *roles: Role) -> None:
    if principal.id == target_user_id or principal.role in roles:
        return
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='You are not allowed to view this resource')


def manager_scope(principal: Principal) -> int | None:
    """Owner filter for manager-owned records; admins see everything."""
    return None if principal.role == Role.ADMIN else principal.id
