from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from merch_mate.models import Facility, User, UserRole


def serialize_facility(facility: Facility) -> dict:
    return {
        'id': facility.id,
        'name': facility.name,
        'location': facility.location,
        'type': facility.type,
        'manager_id': facility.manager_id,
    }


def create_facility(db: Session, *, manager_id: int, name: str, location: str, type_: str) -> Facility:
    clean = [value.strip() for value in (name, location, type_)]
    if not all(clean):
        raise ValueError('Missing required fields')
    manager = db.get(User, manager_id)
    if not manager or manager.role != UserRole.MANAGER:
        raise ValueError('Facilities can only be owned by a manager')

    facility = Facility(name=clean[0], location=clean[1], type=clean[2], manager_id=manager_id)
    db.add(facility)
    db.flush()
    return facility


def list_facilities(db: Session, *, manager_id: int | None = None) -> list[Facility]:
    query = select(Facility).order_by(Facility.name.asc(), Facility.id.asc())
    if manager_id is not None:
        query = query.where(Facility.manager_id == manager_id)
    return db.execute(query).scalars().all()


def facility_names(db: Session, facility_ids: set[int]) -> dict[int, str]:
    if not facility_ids:
        return {}
    rows = db.execute(select(Facility.id, Facility.name).where(Facility.id.in_(facility_ids))).all()
    return {row.id: row.name for row in rows}
