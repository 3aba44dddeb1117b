from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from merch_mate.models import Location


def record_location(db: Session, *, merchandiser_id: int, latitude: float, longitude: float) -> Location:
    if not (-90 <= latitude <= 90) or not (-180 <= longitude <= 180):
        raise ValueError('Invalid latitude or longitude values')
    location = Location(
        merchandiser_id=merchandiser_id,
        timestamp=datetime.now(tz=timezone.utc),
        latitude=latitude,
        longitude=longitude,
    )
    db.add(location)
    db.flush()
    return location


def latest_locations(db: Session) -> list[dict]:
    rows = db.execute(
        select(Location).order_by(Location.merchandiser_id.asc(), Location.timestamp.desc(), Location.id.desc())
    ).scalars()
    latest: dict[int, Location] = {}
    for row in rows:
        latest.setdefault(row.merchandiser_id, row)
    return [
        {
            'id': row.id,
            'merchandiser_id': row.merchandiser_id,
            'timestamp': row.timestamp.isoformat(),
            'latitude': row.latitude,
            'longitude': row.longitude,
        }
        for row in latest.values()
    ]
