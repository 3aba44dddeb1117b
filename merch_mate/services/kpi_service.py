from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from merch_mate.models import KeyPerformanceIndicator

CAPABILITY_FLAGS = ('text', 'image')


def serialize_kpi(kpi: KeyPerformanceIndicator) -> dict:
    return {
        'id': kpi.id,
        'sector_name': kpi.sector_name,
        'company_name': kpi.company_name,
        'admin_id': kpi.admin_id,
        'performance_metric': kpi.performance_metric,
    }


def normalize_metrics(performance_metric: dict) -> dict[str, dict[str, bool]]:
    """Validate a ``{metric: {text: bool, image: bool}}`` map.

    Missing flags default to ``False``; a metric that asks for neither text nor
    an image cannot be answered and is rejected.
    """
    if not isinstance(performance_metric, dict) or not performance_metric:
        raise ValueError("'performance_metric' is required and must be a JSON object")

    normalized: dict[str, dict[str, bool]] = {}
    for raw_name, flags in performance_metric.items():
        name = str(raw_name).strip()
        if not name:
            raise ValueError('Metric names cannot be empty')
        if not isinstance(flags, dict):
            raise ValueError(f'Metric "{name}" must map to {{"text": bool, "image": bool}}')
        unknown = set(flags) - set(CAPABILITY_FLAGS)
        if unknown:
            raise ValueError(f'Metric "{name}" has unknown flags: {", ".join(sorted(unknown))}')
        if any(not isinstance(value, bool) for value in flags.values()):
            raise ValueError(f'Metric "{name}" flags must be booleans')
        entry = {flag: flags.get(flag, False) for flag in CAPABILITY_FLAGS}
        if not any(entry.values()):
            raise ValueError(f'Metric "{name}" must require text, an image or both')
        normalized[name] = entry
    return normalized


def create_kpi(
    db: Session,
    *,
    admin_id: int,
    sector_name: str,
    company_name: str,
    performance_metric: dict,
) -> KeyPerformanceIndicator:
    sector = (sector_name or '').strip()
    company = (company_name or '').strip()
    if not sector:
        raise ValueError("'sector_name' is required and must be a string")
    if not company:
        raise ValueError("'company_name' is required and must be a string")

    kpi = KeyPerformanceIndicator(
        sector_name=sector,
        company_name=company,
        admin_id=admin_id,
        performance_metric=normalize_metrics(performance_metric),
    )
    db.add(kpi)
    db.flush()
    return kpi


def list_kpis(db: Session) -> list[KeyPerformanceIndicator]:
    return db.execute(select(KeyPerformanceIndicator).order_by(KeyPerformanceIndicator.id.asc())).scalars().all()


def get_kpi(db: Session, kpi_id: int) -> KeyPerformanceIndicator:
    kpi = db.get(KeyPerformanceIndicator, kpi_id)
    if not kpi:
        raise LookupError('KPI not found')
    return kpi


def update_kpi(db: Session, *, kpi_id: int, performance_metric: dict) -> KeyPerformanceIndicator:
    kpi = get_kpi(db, kpi_id)
    kpi.performance_metric = normalize_metrics(performance_metric)
    db.flush()
    return kpi


def delete_kpi(db: Session, *, kpi_id: int) -> None:
    db.delete(get_kpi(db, kpi_id))
    db.flush()


def metric_requirements(db: Session) -> dict[str, dict[str, bool]]:
    """Merge every KPI's metric flags; a flag is required if any KPI requires it."""
    merged: dict[str, dict[str, bool]] = {}
    for kpi in list_kpis(db):
        for name, flags in (kpi.performance_metric or {}).items():
            entry = merged.setdefault(name, {flag: False for flag in CAPABILITY_FLAGS})
            for flag in CAPABILITY_FLAGS:
                entry[flag] = entry[flag] or bool(flags.get(flag))
    return merged
