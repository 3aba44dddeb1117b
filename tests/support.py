from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from merch_mate.models import (
    Base,
    Facility,
    KeyPerformanceIndicator,
    User,
    UserRole,
    UserStatus,
)
from merch_mate.security.passwords import hash_password

DEFAULT_PASSWORD = 'secret123'


def make_session_factory() -> sessionmaker:
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def add_user(
    db: Session,
    *,
    username: str,
    role: UserRole,
    staff_no: int,
    password: str = DEFAULT_PASSWORD,
    status: UserStatus = UserStatus.ACTIVE,
    last_password_change: datetime | None = None,
) -> User:
    user = User(
        first_name=username.title(),
        last_name='Tester',
        staff_no=staff_no,
        national_id_no=staff_no * 10,
        username=username,
        email=f'{username}@merchmate.co.ke',
        password_hash=hash_password(password),
        role=role,
        status=status,
        last_password_change=last_password_change or datetime.now(tz=timezone.utc),
    )
    db.add(user)
    db.flush()
    return user


def add_facility(db: Session, manager: User, name: str = 'Downtown Supermarket') -> Facility:
    facility = Facility(name=name, location='Main Street', type='supermarket', manager_id=manager.id)
    db.add(facility)
    db.flush()
    return facility


def add_kpi(db: Session, admin: User, metrics: dict) -> KeyPerformanceIndicator:
    kpi = KeyPerformanceIndicator(
        sector_name='Retail',
        company_name='Demo Beverages',
        admin_id=admin.id,
        performance_metric=metrics,
    )
    db.add(kpi)
    db.flush()
    return kpi
