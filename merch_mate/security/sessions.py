from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

from fastapi import Request
from sqlalchemy import select

from merch_mate.config import settings
from merch_mate.models import ApiSession, User

BEARER_PREFIX = 'bearer '


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _session_expiry() -> datetime:
    return _now() + timedelta(minutes=settings.session_ttl_minutes)


def bearer_token(request: Request) -> str | None:
    header = request.headers.get('authorization', '')
    if not header.lower().startswith(BEARER_PREFIX):
        return None
    token = header[len(BEARER_PREFIX) :].strip().strip('"')
    return token or None


def create_api_session(db, user_id: int, ip: str | None, user_agent: str | None) -> str:
    token = secrets.token_urlsafe(48)
    api_session = ApiSession(
        session_token=token,
        user_id=user_id,
        ip=ip,
        user_agent=user_agent,
        expires_at=_session_expiry(),
    )
    db.add(api_session)
    db.flush()
    return token


def revoke_api_session(db, token: str) -> None:
    session = db.execute(select(ApiSession).where(ApiSession.session_token == token)).scalar_one_or_none()
    if not session or session.revoked_at is not None:
        return
    session.revoked_at = _now()


def load_principal_from_token(db, token: str | None) -> User | None:
    if not token:
        return None

    row = db.execute(
        select(ApiSession, User)
        .join(User, User.id == ApiSession.user_id)
        .where(ApiSession.session_token == token)
    ).one_or_none()
    if not row:
        return None

    api_session, user = row
    now = _now()
    if api_session.revoked_at is not None or as_utc(api_session.expires_at) <= now:
        return None

    api_session.last_seen_at = now
    api_session.expires_at = _session_expiry()
    return user
