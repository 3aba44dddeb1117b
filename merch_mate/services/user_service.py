from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from merch_mate.config import settings
from merch_mate.errors import AuthenticationError, ConflictError
from merch_mate.models import User, UserRole, UserStatus
from merch_mate.security.passwords import check_password_policy, hash_password, verify_and_rehash, verify_password
from merch_mate.security.sessions import as_utc

EMAIL_RE = re.compile(r'[^@\s]+@[^@\s]+\.[^@\s]+')
MAX_NAME_LENGTH = 200


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def serialize_user(user: User) -> dict:
    return {
        'id': user.id,
        'first_name': user.first_name,
        'middle_name': user.middle_name,
        'last_name': user.last_name,
        'username': user.username,
        'email': user.email,
        'role': user.role.value,
        'status': user.status.value,
        'staff_no': user.staff_no,
    }


def _clean_name(value: str | None, label: str, *, required: bool = True) -> str | None:
    cleaned = (value or '').strip()
    if not cleaned:
        if required:
            raise ValueError(f'{label} is required')
        return None
    if len(cleaned) > MAX_NAME_LENGTH:
        raise ValueError(f'{label} must not be more than {MAX_NAME_LENGTH} characters')
    return cleaned.title()


def parse_role(value: str) -> UserRole:
    try:
        return UserRole((value or '').strip().lower())
    except ValueError as exc:
        raise ValueError('Role must be either manager, merchandiser or admin') from exc


def get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if not user:
        raise LookupError('User not found')
    return user


def get_user_by_email(db: Session, email: str) -> User:
    user = db.execute(select(User).where(User.email == email.strip().lower())).scalar_one_or_none()
    if not user:
        raise LookupError('User not found')
    return user


def find_user_id(db: Session, email: str) -> int | None:
    return db.execute(select(User.id).where(User.email == email.strip().lower())).scalar_one_or_none()


def list_users(db: Session, *, role: UserRole | None = None) -> list[User]:
    query = select(User).order_by(User.id.asc())
    if role:
        query = query.where(User.role == role)
    return db.execute(query).scalars().all()


def create_user(
    db: Session,
    *,
    first_name: str,
    middle_name: str | None,
    last_name: str,
    national_id_no: int,
    staff_no: int,
    username: str,
    email: str,
    password: str,
    role: str,
) -> User:
    clean_first = _clean_name(first_name, 'First name')
    clean_middle = _clean_name(middle_name, 'Middle name', required=False)
    clean_last = _clean_name(last_name, 'Last name')
    clean_username = (username or '').strip().lower()
    clean_email = (email or '').strip().lower()
    if not clean_username or not clean_email:
        raise ValueError('Missing required fields')
    if not EMAIL_RE.fullmatch(clean_email):
        raise ValueError('Invalid email address')
    check_password_policy(password)
    parsed_role = parse_role(role)

    if db.execute(select(User.id).where(User.staff_no == staff_no)).scalar_one_or_none():
        raise ValueError('Staff number already assigned')
    if db.execute(select(User.id).where(User.national_id_no == national_id_no)).scalar_one_or_none():
        raise ValueError('Another user exists with the provided National ID Number')
    clash = db.execute(
        select(User.id).where(or_(User.username == clean_username, User.email == clean_email))
    ).first()
    if clash:
        raise ConflictError('Username or email already exists')

    user = User(
        first_name=clean_first,
        middle_name=clean_middle,
        last_name=clean_last,
        national_id_no=national_id_no,
        staff_no=staff_no,
        username=clean_username,
        email=clean_email,
        password_hash=hash_password(password),
        role=parsed_role,
        status=UserStatus.ACTIVE,
        last_password_change=_now(),
    )
    db.add(user)
    db.flush()
    return user


def authenticate(db: Session, *, email: str, password: str) -> User:
    """Check credentials and return the user.

    Raises ``LookupError`` for an unknown email, ``ConflictError`` for a
    blocked account, ``AuthenticationError`` for a bad password and
    ``PermissionError`` once the password is older than the allowed age.
    """
    try:
        user = get_user_by_email(db, email)
    except LookupError as exc:
        raise LookupError('You do not have an account, please signup.') from exc

    if user.status == UserStatus.BLOCKED:
        raise ConflictError('Access denied, please contact system administrator')
    valid, updated_hash = verify_and_rehash(password, user.password_hash)
    if not valid:
        raise AuthenticationError('Invalid credentials')
    if _now() - as_utc(user.last_password_change) > timedelta(days=settings.password_max_age_days):
        raise PermissionError('Your password has expired')

    if updated_hash:
        user.password_hash = updated_hash
    user.last_login = _now()
    return user


def change_password(db: Session, *, email: str, old_password: str, new_password: str) -> User:
    if old_password == new_password:
        raise ValueError('Old password and new password cannot be the same')
    check_password_policy(new_password)
    user = get_user_by_email(db, email)
    if not verify_password(old_password, user.password_hash):
        raise AuthenticationError('Invalid old password')
    user.password_hash = hash_password(new_password)
    user.last_password_change = _now()
    db.flush()
    return user


def reset_password(db: Session, *, email: str, new_password: str) -> User:
    check_password_policy(new_password)
    user = get_user_by_email(db, email)
    user.password_hash = hash_password(new_password)
    user.last_password_change = _now()
    db.flush()
    return user


def set_status(db: Session, *, user_id: int, status: str) -> User:
    try:
        new_status = UserStatus(status)
    except ValueError as exc:
        raise ValueError('Invalid status value') from exc
    user = get_user(db, user_id)
    user.status = new_status
    db.flush()
    return user


def set_role(db: Session, *, user_id: int, role: str) -> User:
    user = get_user(db, user_id)
    user.role = parse_role(role)
    db.flush()
    return user


def update_names(db: Session, *, user_id: int, first_name: str, last_name: str) -> User:
    user = get_user(db, user_id)
    user.first_name = _clean_name(first_name, 'First name')
    user.last_name = _clean_name(last_name, 'Last name')
    db.flush()
    return user
