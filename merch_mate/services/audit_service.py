from __future__ import annotations

from sqlalchemy.orm import Session

from merch_mate.errors import AuthenticationError, ConflictError
from merch_mate.models import AuditLog, AuthEvent

LOGIN_FAILURE_REASONS = (
    (ConflictError, 'BLOCKED_USER'),
    (AuthenticationError, 'BAD_PASSWORD'),
    (PermissionError, 'PASSWORD_EXPIRED'),
    (LookupError, 'UNKNOWN_EMAIL'),
)


def login_failure_reason(error: Exception) -> str:
    for error_type, reason in LOGIN_FAILURE_REASONS:
        if isinstance(error, error_type):
            return reason
    return 'ERROR'


def log_login_attempt(
    db: Session,
    *,
    email: str,
    ip: str | None,
    user_agent: str | None,
    user_id: int | None = None,
    error: Exception | None = None,
) -> AuthEvent:
    """Record one login attempt; ``error`` is the exception that refused it, if any."""
    event = AuthEvent(
        attempted_email=email.strip().lower(),
        success=error is None,
        failure_reason=login_failure_reason(error) if error is not None else None,
        user_id=user_id,
        ip=ip,
        user_agent=user_agent,
    )
    db.add(event)
    return event


def log_audit(
    db: Session,
    *,
    actor_user_id: int | None,
    action: str,
    ip: str | None,
    metadata: dict | None = None,
) -> None:
    db.add(AuditLog(actor_user_id=actor_user_id, action=action, ip=ip, meta=metadata or {}))
