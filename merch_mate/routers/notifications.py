from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from merch_mate.auth import Principal, Role, assert_self_or_role, require_role
from merch_mate.db import get_db
from merch_mate.envelope import envelope
from merch_mate.errors import translate_service_errors
from merch_mate.schemas import ReplyRequest
from merch_mate.services import notification_service
from merch_mate.services.user_service import get_user

router = APIRouter(prefix='/users', tags=['notifications'])
any_access = require_role(Role.ADMIN, Role.MANAGER, Role.MERCHANDISER)


@router.get('/notifications/unread/{user_id:int}')
def unread_notifications(
    user_id: int,
    principal: Principal = Depends(any_access),
    db: Session = Depends(get_db),
):
    assert_self_or_role(principal, user_id, Role.ADMIN)
    notifications = notification_service.list_unread(db, user_id=user_id)
    return envelope(
        f'{len(notifications)} unread notifications',
        data=[notification_service.serialize_notification(item) for item in notifications],
    )


@router.put('/notifications/edit-status/{notification_id:int}')
def mark_notification_read(
    notification_id: int,
    principal: Principal = Depends(any_access),
    db: Session = Depends(get_db),
):
    with translate_service_errors():
        notification = notification_service.mark_read(db, notification_id=notification_id, user_id=principal.id)
    db.commit()
    return envelope('Notification marked as read', data=notification_service.serialize_notification(notification))


@router.post('/reply/to/notification')
def reply_to_notification(
    payload: ReplyRequest,
    principal: Principal = Depends(any_access),
    db: Session = Depends(get_db),
):
    sender = get_user(db, principal.id).full_name
    with translate_service_errors():
        entry = notification_service.reply(
            db,
            notification_id=payload.message_id,
            user_id=principal.id,
            sender=sender,
            text=payload.reply,
        )
    db.commit()
    return envelope(
        'Reply sent successfully',
        status_code=status.HTTP_201_CREATED,
        data={'id': entry.id, 'notification_id': entry.notification_id, 'sender': entry.sender, 'reply': entry.reply},
    )
