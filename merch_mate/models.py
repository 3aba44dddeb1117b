from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Enum as SQLEnum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# SQLite only autoincrements INTEGER primary keys.
IdType = BigInteger().with_variant(Integer, 'sqlite')


class Base(DeclarativeBase):
    pass


class UserRole(str, Enum):
    MANAGER = 'manager'
    MERCHANDISER = 'merchandiser'
    ADMIN = 'admin'


class UserStatus(str, Enum):
    ACTIVE = 'active'
    BLOCKED = 'blocked'


class RoutePlanStatus(str, Enum):
    PENDING = 'pending'
    COMPLETE = 'complete'


class InstructionStatus(str, Enum):
    PENDING = 'pending'
    SUBMITTED = 'submitted'
    COMPLETE = 'complete'


class ResponseStatus(str, Enum):
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'


class NotificationStatus(str, Enum):
    UNREAD = 'unread'
    READ = 'read'


def _enum(enum_cls: type[Enum], name: str) -> SQLEnum:
    return SQLEnum(enum_cls, name=name, values_callable=lambda members: [m.value for m in members])


class User(Base):
    __tablename__ = 'users'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    first_name: Mapped[str] = mapped_column(String(200), nullable=False)
    middle_name: Mapped[str | None] = mapped_column(String(200))
    last_name: Mapped[str] = mapped_column(String(200), nullable=False)
    staff_no: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    national_id_no: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[UserRole] = mapped_column(_enum(UserRole, 'user_role'), nullable=False)
    status: Mapped[UserStatus] = mapped_column(
        _enum(UserStatus, 'user_status'), nullable=False, default=UserStatus.ACTIVE, server_default='active'
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_password_change: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    @property
    def full_name(self) -> str:
        return f'{self.first_name} {self.last_name}'


class Facility(Base):
    __tablename__ = 'facilities'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    location: Mapped[str] = mapped_column(String(200), nullable=False)
    type: Mapped[str] = mapped_column(String(200), nullable=False)
    manager_id: Mapped[int] = mapped_column(IdType, ForeignKey('users.id'), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class RoutePlan(Base):
    __tablename__ = 'route_plans'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    merchandiser_id: Mapped[int] = mapped_column(IdType, ForeignKey('users.id'), nullable=False)
    manager_id: Mapped[int] = mapped_column(IdType, ForeignKey('users.id'), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[RoutePlanStatus] = mapped_column(
        _enum(RoutePlanStatus, 'route_plan_status'), nullable=False, default=RoutePlanStatus.PENDING
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    instructions: Mapped[list[Instruction]] = relationship(
        back_populates='route_plan',
        order_by='Instruction.position',
        cascade='all, delete-orphan',
    )
    merchandiser: Mapped[User] = relationship(foreign_keys=[merchandiser_id])
    manager: Mapped[User] = relationship(foreign_keys=[manager_id])


class Instruction(Base):
    __tablename__ = 'instructions'
    __table_args__ = (
        UniqueConstraint('route_plan_id', 'instruction_id', name='instructions_route_plan_instruction_key'),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    route_plan_id: Mapped[int] = mapped_column(IdType, ForeignKey('route_plans.id', ondelete='CASCADE'), nullable=False)
    instruction_id: Mapped[str] = mapped_column(String(200), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    facility_id: Mapped[int] = mapped_column(IdType, ForeignKey('facilities.id'), nullable=False)
    start: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    instructions: Mapped[str | None] = mapped_column(Text)
    kpi_metrics: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[InstructionStatus] = mapped_column(
        _enum(InstructionStatus, 'instruction_status'), nullable=False, default=InstructionStatus.PENDING
    )
    responded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')

    route_plan: Mapped[RoutePlan] = relationship(back_populates='instructions')
    facility: Mapped[Facility] = relationship()


class Response(Base):
    __tablename__ = 'responses'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    merchandiser_id: Mapped[int] = mapped_column(IdType, ForeignKey('users.id'), nullable=False)
    manager_id: Mapped[int] = mapped_column(IdType, ForeignKey('users.id'), nullable=False)
    route_plan_id: Mapped[int] = mapped_column(IdType, ForeignKey('route_plans.id', ondelete='CASCADE'), nullable=False)
    instruction_pk: Mapped[int] = mapped_column(IdType, ForeignKey('instructions.id', ondelete='CASCADE'), nullable=False)
    instruction_id: Mapped[str] = mapped_column(String(200), nullable=False)
    payload: Mapped[dict] = mapped_column('response', JSON, nullable=False, default=dict)
    submitted_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[ResponseStatus] = mapped_column(
        _enum(ResponseStatus, 'response_status'), nullable=False, default=ResponseStatus.PENDING
    )
    rejection_reason: Mapped[str | None] = mapped_column(Text)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    merchandiser: Mapped[User] = relationship(foreign_keys=[merchandiser_id])


class KeyPerformanceIndicator(Base):
    __tablename__ = 'key_performance_indicators'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    sector_name: Mapped[str] = mapped_column(String(100), nullable=False)
    company_name: Mapped[str] = mapped_column(String(100), nullable=False)
    admin_id: Mapped[int] = mapped_column(IdType, ForeignKey('users.id'), nullable=False)
    performance_metric: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)


class Notification(Base):
    __tablename__ = 'notifications'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    manager_id: Mapped[int] = mapped_column(IdType, ForeignKey('users.id'), nullable=False)
    merchandiser_id: Mapped[int] = mapped_column(IdType, ForeignKey('users.id'), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[NotificationStatus] = mapped_column(
        _enum(NotificationStatus, 'notification_status'), nullable=False, default=NotificationStatus.UNREAD
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    replies: Mapped[list[NotificationReply]] = relationship(
        back_populates='notification',
        order_by='NotificationReply.id',
        cascade='all, delete-orphan',
    )


class NotificationReply(Base):
    __tablename__ = 'notification_replies'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    notification_id: Mapped[int] = mapped_column(
        IdType, ForeignKey('notifications.id', ondelete='CASCADE'), nullable=False
    )
    sender: Mapped[str] = mapped_column(String(200), nullable=False)
    reply: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[NotificationStatus] = mapped_column(
        _enum(NotificationStatus, 'notification_status'), nullable=False, default=NotificationStatus.UNREAD
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    notification: Mapped[Notification] = relationship(back_populates='replies')


class MerchandiserPerformance(Base):
    __tablename__ = 'merchandiser_performances'
    __table_args__ = (
        UniqueConstraint('merchandiser_id', 'day', name='merchandiser_performances_merchandiser_day_key'),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    merchandiser_id: Mapped[int] = mapped_column(IdType, ForeignKey('users.id'), nullable=False)
    day: Mapped[date] = mapped_column(Date, nullable=False)
    weekday: Mapped[str] = mapped_column(String(20), nullable=False)
    performance: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)


class MerchandiserAssignment(Base):
    __tablename__ = 'merchandiser_assignments'
    __table_args__ = (
        UniqueConstraint('merchandiser_id', 'month', name='merchandiser_assignments_merchandiser_month_key'),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    manager_id: Mapped[int] = mapped_column(IdType, ForeignKey('users.id'), nullable=False)
    merchandiser_id: Mapped[int] = mapped_column(IdType, ForeignKey('users.id'), nullable=False)
    month: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    merchandiser: Mapped[User] = relationship(foreign_keys=[merchandiser_id])


class Location(Base):
    __tablename__ = 'locations'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    merchandiser_id: Mapped[int] = mapped_column(IdType, ForeignKey('users.id'), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)


class ApiSession(Base):
    __tablename__ = 'api_sessions'
    __table_args__ = (
        UniqueConstraint('session_token', name='api_sessions_session_token_key'),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    session_token: Mapped[str] = mapped_column(String(128), nullable=False)
    user_id: Mapped[int] = mapped_column(IdType, ForeignKey('users.id'), nullable=False)
    ip: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class AuthEvent(Base):
    __tablename__ = 'auth_events'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    attempted_email: Mapped[str] = mapped_column(String(120), nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(Text)
    user_id: Mapped[int | None] = mapped_column(IdType, ForeignKey('users.id'))
    ip: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AuditLog(Base):
    __tablename__ = 'audit_log'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    actor_user_id: Mapped[int | None] = mapped_column(IdType, ForeignKey('users.id'))
    action: Mapped[str] = mapped_column(Text, nullable=False)
    ip: Mapped[str | None] = mapped_column(String(64))
    meta: Mapped[dict] = mapped_column('metadata', JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
