from datetime import datetime, timezone

from sqlalchemy import select

from merch_mate.db import SessionLocal, init_db
from merch_mate.models import Facility, KeyPerformanceIndicator, User, UserRole, UserStatus
from merch_mate.security.passwords import hash_password

DEMO_USERS = (
    {
        'username': 'admin',
        'email': 'admin@merchmate.co.ke',
        'first_name': 'Ada',
        'last_name': 'Admin',
        'staff_no': 1000,
        'national_id_no': 90001000,
        'role': UserRole.ADMIN,
        'password': 'adminpass',
    },
    {
        'username': 'manager',
        'email': 'manager@merchmate.co.ke',
        'first_name': 'Mary',
        'last_name': 'Manager',
        'staff_no': 2000,
        'national_id_no': 90002000,
        'role': UserRole.MANAGER,
        'password': 'managerpass',
    },
    {
        'username': 'merch1',
        'email': 'merch1@merchmate.co.ke',
        'first_name': 'Mike',
        'last_name': 'Merchandiser',
        'staff_no': 3001,
        'national_id_no': 90003001,
        'role': UserRole.MERCHANDISER,
        'password': 'merchpass',
    },
)

DEMO_FACILITIES = (
    ('Downtown Supermarket', 'Main Street', 'supermarket'),
    ('Riverside Mini Mart', 'River Road', 'minimart'),
)

DEMO_METRICS = {
    'Shelf Share': {'text': True, 'image': True},
    'Stock Level': {'text': True, 'image': False},
    'Display Photo': {'text': False, 'image': True},
}


def seed() -> None:
    init_db()
    with SessionLocal() as db:
        users: dict[str, User] = {}
        for demo in DEMO_USERS:
            user = db.execute(select(User).where(User.username == demo['username'])).scalar_one_or_none()
            if not user:
                user = User(
                    first_name=demo['first_name'],
                    last_name=demo['last_name'],
                    staff_no=demo['staff_no'],
                    national_id_no=demo['national_id_no'],
                    username=demo['username'],
                    email=demo['email'],
                    password_hash=hash_password(demo['password']),
                    role=demo['role'],
                    status=UserStatus.ACTIVE,
                    last_password_change=datetime.now(tz=timezone.utc),
                )
                db.add(user)
                db.flush()
            users[demo['username']] = user

        manager = users['manager']
        for name, location, type_ in DEMO_FACILITIES:
            facility = db.execute(select(Facility).where(Facility.name == name)).scalar_one_or_none()
            if not facility:
                db.add(Facility(name=name, location=location, type=type_, manager_id=manager.id))

        kpi = db.execute(select(KeyPerformanceIndicator).limit(1)).scalar_one_or_none()
        if not kpi:
            db.add(
                KeyPerformanceIndicator(
                    sector_name='Retail',
                    company_name='Demo Beverages',
                    admin_id=users['admin'].id,
                    performance_metric=DEMO_METRICS,
                )
            )

        db.commit()


if __name__ == '__main__':
    seed()
    print('Seed data inserted/verified.')
