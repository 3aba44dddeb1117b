from __future__ import annotations

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from merch_mate.models import Notification, NotificationReply, NotificationStatus


def serialize_notification(notification: Notification) -> dict:
    return {
        'id': notification.id,
        'manager_id': notification.manager_id,
        'merchandiser_id': notification.merchandiser_id,
        'message': notification.message,
        'status': notification.status.value,
        'created_at': notification.created_at,
        'replies': [
            {
                'id': reply.id,
                'reply': reply.reply,
                'sender': reply.sender,
                'status': reply.status.value,
            }
            for reply in notification.replies
        ],
    }


def notify(db: Session, *, manager_id: int, merchandiser_id: int, message: str) -> Notification:
    notification = Notification(
        manager_id=manager_id,
        merchandiser_id=merchandiser_id,
        message=message,
        status=NotificationStatus.UNREAD,
    )
    db.add(notification)
    db.flush()
    return notification


def _get(db: Session, notification_id: int) -> Notification:
    notification = db.get(Notification, notification_id)
    if not notification:
        raise LookupError('Notification not found')
    return notification


def _ensure_party(notification: Notification, user_id: int) -> None:
    if user_id not in {notification.manager_id, notification.merchandiser_id}:
        raise PermissionError('This notification belongs to someone else')


def list_unread(db: Session, *, user_id: int) -> list[Notification]:
    return db.execute(
        select(Notification)
        .options(selectinload(Notification.replies))
        .where(
            or_(Notification.merchandiser_id == user_id, Notification.manager_id == user_id),
            Notification.status == NotificationStatus.UNREAD,
        )
        .order_by(Notification.created_at.desc(), Notification.id.desc())
    ).scalars().all()


def mark_read(db: Session, *, notification_id: int, user_id: int) -> Notification:
    notification = _get(db, notification_id)
    _ensure_party(notification, user_id)
    notification.status = NotificationStatus.READ
    db.flush()
    return notification


def reply(db: Session, *, notification_id: int, user_id: int, sender: str, text: str) -> NotificationReply:
    clean = (text or '').strip()
    if not clean:
        raise ValueError('Reply cannot be empty')
    notification = _get(db, notification_id)
    _ensure_party(notification, user_id)

    entry = NotificationReply(
        notification_id=notification.id,
        sender=sender,
        reply=clean,
        status=NotificationStatus.UNREAD,
    )
    db.add(entry)
    # A reply reopens the thread for the other party.
    notification.status = NotificationStatus.UNREAD
    db.flush()
    return entry
