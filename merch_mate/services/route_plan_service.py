from __future__ import annotations

import uuid
from calendar import monthrange
from dataclasses import dataclass
from datetime import date, datetime
from zoneinfo import ZoneInfo

from sqlalchemy import and_, delete, select
from sqlalchemy.orm import Session, selectinload

from merch_mate.config import settings
from merch_mate.models import (
    Facility,
    Instruction,
    InstructionStatus,
    KeyPerformanceIndicator,
    Response,
    ResponseStatus,
    RoutePlan,
    RoutePlanStatus,
    User,
    UserRole,
)
from merch_mate.services.facility_service import facility_names


@dataclass
class InstructionDraft:
    facility_id: int
    start: datetime
    end: datetime
    instructions: str | None = None
    kpi_metrics: list[str] | None = None
    instruction_id: str | None = None


def month_bounds(today: date) -> tuple[date, date]:
    return today.replace(day=1), today.replace(day=monthrange(today.year, today.month)[1])


def wall_clock(value: datetime) -> datetime:
    """Naive local time in ``settings.timezone``; naive input is taken as already local."""
    if value.tzinfo is None:
        return value
    return value.astimezone(ZoneInfo(settings.timezone)).replace(tzinfo=None)


def windows_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start.date() == b_start.date() and a_start < b_end and b_start < a_end


def _known_metrics(db: Session) -> set[str]:
    metrics: set[str] = set()
    for performance_metric in db.execute(select(KeyPerformanceIndicator.performance_metric)).scalars():
        metrics.update((performance_metric or {}).keys())
    return metrics


def get_route_plan(db: Session, route_plan_id: int) -> RoutePlan:
    plan = db.execute(
        select(RoutePlan).options(selectinload(RoutePlan.instructions)).where(RoutePlan.id == route_plan_id)
    ).scalar_one_or_none()
    if not plan:
        raise LookupError('Route plan not found')
    return plan


def find_instruction(plan: RoutePlan, instruction_id: str) -> Instruction:
    for instruction in plan.instructions:
        if instruction.instruction_id == instruction_id:
            return instruction
    raise LookupError('Instruction not found')


def _ensure_owner(plan: RoutePlan, manager_id: int | None) -> None:
    if manager_id is not None and plan.manager_id != manager_id:
        raise PermissionError('Route plan belongs to another manager')


def _month_instructions(db: Session, *, merchandiser_id: int, first: date, last: date) -> list[Instruction]:
    return db.execute(
        select(Instruction)
        .join(RoutePlan, RoutePlan.id == Instruction.route_plan_id)
        .where(
            RoutePlan.merchandiser_id == merchandiser_id,
            RoutePlan.start_date <= last,
            RoutePlan.end_date >= first,
        )
    ).scalars().all()


def create_route_plan(
    db: Session,
    *,
    manager_id: int,
    staff_no: int,
    status: str,
    start_date: date,
    end_date: date,
    instructions: list[InstructionDraft],
    today: date,
) -> RoutePlan:
    try:
        plan_status = RoutePlanStatus(status)
    except ValueError as exc:
        raise ValueError('Status must be either "complete" or "pending"') from exc
    if not instructions:
        raise ValueError('A route plan needs at least one instruction')
    if start_date > end_date:
        raise ValueError('start_date must not be after end_date')

    merchandiser = db.execute(
        select(User).where(User.staff_no == staff_no, User.role == UserRole.MERCHANDISER)
    ).scalar_one_or_none()
    if not merchandiser:
        raise ValueError('Invalid staff number or user is not a merchandiser')

    first, last = month_bounds(today)
    if not (first <= start_date <= last and first <= end_date <= last):
        raise ValueError('Assignments can only be made for the current month')

    facility_ids = {draft.facility_id for draft in instructions}
    existing_facilities = set(db.execute(select(Facility.id).where(Facility.id.in_(facility_ids))).scalars())
    missing = sorted(facility_ids - existing_facilities)
    if missing:
        raise ValueError(f'Facility {missing[0]} does not exist')

    requested_metrics = {metric for draft in instructions for metric in (draft.kpi_metrics or [])}
    unknown_metrics = sorted(requested_metrics - _known_metrics(db)) if requested_metrics else []
    if unknown_metrics:
        raise ValueError(f'KPI metric "{unknown_metrics[0]}" is not defined in any KPI')

    windows: list[tuple[datetime, datetime]] = []
    seen_ids: set[str] = set()
    for draft in instructions:
        start, end = wall_clock(draft.start), wall_clock(draft.end)
        if start >= end:
            raise ValueError('Instruction start must be before its end')
        if not (start_date <= start.date() <= end_date):
            raise ValueError(f'Instruction on {start.date()} falls outside the route plan dates')
        for other_start, other_end in windows:
            if windows_overlap(start, end, other_start, other_end):
                raise ValueError(f'Instructions overlap on {start.date()}')
        windows.append((start, end))
        if draft.instruction_id:
            if draft.instruction_id in seen_ids:
                raise ValueError(f'Duplicate instruction id {draft.instruction_id}')
            seen_ids.add(draft.instruction_id)

    for existing in _month_instructions(db, merchandiser_id=merchandiser.id, first=first, last=last):
        for start, end in windows:
            if windows_overlap(start, end, existing.start, existing.end):
                raise ValueError(
                    f'{merchandiser.full_name} already has another assignment on {start.date()}'
                )

    plan = RoutePlan(
        merchandiser_id=merchandiser.id,
        manager_id=manager_id,
        start_date=start_date,
        end_date=end_date,
        status=plan_status,
    )
    for position, draft in enumerate(instructions):
        plan.instructions.append(
            Instruction(
                instruction_id=draft.instruction_id or uuid.uuid4().hex,
                position=position,
                facility_id=draft.facility_id,
                start=wall_clock(draft.start),
                end=wall_clock(draft.end),
                instructions=draft.instructions,
                kpi_metrics=list(draft.kpi_metrics or []),
                status=InstructionStatus.PENDING,
                responded=False,
            )
        )
    db.add(plan)
    db.flush()
    return plan


def serialize_instruction(instruction: Instruction, facility_name: str | None = None) -> dict:
    return {
        'id': instruction.instruction_id,
        'facility': instruction.facility_id,
        'facility_name': facility_name,
        'start': instruction.start.isoformat(),
        'end': instruction.end.isoformat(),
        'instructions': instruction.instructions,
        'kpi_metrics': list(instruction.kpi_metrics or []),
        'status': instruction.status.value,
        'responded': instruction.responded,
    }


def serialize_route_plan(plan: RoutePlan, *, names: dict[int, str] | None = None) -> dict:
    names = names or {}
    return {
        'id': plan.id,
        'merchandiser_id': plan.merchandiser_id,
        'manager_id': plan.manager_id,
        'date_range': {'start_date': plan.start_date.isoformat(), 'end_date': plan.end_date.isoformat()},
        'status': plan.status.value,
        'instructions': [
            serialize_instruction(instruction, names.get(instruction.facility_id)) for instruction in plan.instructions
        ],
    }


def _with_people(db: Session, plans: list[RoutePlan]) -> list[dict]:
    names = facility_names(db, {i.facility_id for plan in plans for i in plan.instructions})
    rows = []
    for plan in plans:
        row = serialize_route_plan(plan, names=names)
        row['merchandiser_name'] = plan.merchandiser.full_name if plan.merchandiser else None
        row['staff_no'] = plan.merchandiser.staff_no if plan.merchandiser else None
        row['manager_name'] = plan.manager.full_name if plan.manager else 'Unknown'
        rows.append(row)
    return rows


def list_route_plans(
    db: Session,
    *,
    manager_id: int | None = None,
    merchandiser_id: int | None = None,
    overlapping: tuple[date, date] | None = None,
    starting_within: tuple[date, date] | None = None,
) -> list[dict]:
    conditions = []
    if manager_id is not None:
        conditions.append(RoutePlan.manager_id == manager_id)
    if merchandiser_id is not None:
        conditions.append(RoutePlan.merchandiser_id == merchandiser_id)
    if overlapping is not None:
        first, last = overlapping
        conditions.append(RoutePlan.start_date <= last)
        conditions.append(RoutePlan.end_date >= first)
    if starting_within is not None:
        first, last = starting_within
        conditions.append(RoutePlan.start_date >= first)
        conditions.append(RoutePlan.start_date <= last)

    query = (
        select(RoutePlan)
        .options(
            selectinload(RoutePlan.instructions),
            selectinload(RoutePlan.merchandiser),
            selectinload(RoutePlan.manager),
        )
        .order_by(RoutePlan.start_date.asc(), RoutePlan.id.asc())
    )
    if conditions:
        query = query.where(and_(*conditions))
    return _with_people(db, db.execute(query).scalars().all())


def list_manager_month_routes(db: Session, *, manager_id: int, today: date) -> list[dict]:
    """Plans of a manager whose start date falls in the current month."""
    return list_route_plans(db, manager_id=manager_id, starting_within=month_bounds(today))


def list_merchandiser_month_routes(db: Session, *, merchandiser_id: int, today: date) -> list[dict]:
    return list_route_plans(db, merchandiser_id=merchandiser_id, overlapping=month_bounds(today))


def modify_instruction_window(
    db: Session,
    *,
    route_plan_id: int,
    instruction_id: str,
    start: datetime,
    end: datetime,
    manager_id: int | None,
) -> Instruction:
    plan = get_route_plan(db, route_plan_id)
    _ensure_owner(plan, manager_id)
    instruction = find_instruction(plan, instruction_id)
    start, end = wall_clock(start), wall_clock(end)
    if start >= end:
        raise ValueError('Instruction start must be before its end')
    if not (plan.start_date <= start.date() <= plan.end_date):
        raise ValueError(f'Instruction on {start.date()} falls outside the route plan dates')

    for other in _month_instructions(
        db, merchandiser_id=plan.merchandiser_id, first=plan.start_date, last=plan.end_date
    ):
        if other.id != instruction.id and windows_overlap(start, end, other.start, other.end):
            raise ValueError(f'The merchandiser already has another assignment on {start.date()}')

    instruction.start = start
    instruction.end = end
    db.flush()
    return instruction


def set_instruction_status(
    db: Session,
    *,
    route_plan_id: int,
    instruction_id: str,
    status: str,
    manager_id: int | None,
) -> Instruction:
    if status not in {InstructionStatus.PENDING.value, InstructionStatus.COMPLETE.value}:
        raise ValueError('Status must either be "complete" or "pending"')
    plan = get_route_plan(db, route_plan_id)
    _ensure_owner(plan, manager_id)
    instruction = find_instruction(plan, instruction_id)
    instruction.status = InstructionStatus(status)
    if instruction.status == InstructionStatus.PENDING:
        awaiting = db.execute(
            select(Response.id).where(
                Response.instruction_pk == instruction.id,
                Response.status == ResponseStatus.PENDING,
            )
        ).first()
        instruction.responded = awaiting is not None
    db.flush()
    return instruction


def set_route_plan_status(db: Session, *, route_plan_id: int, status: str, manager_id: int | None) -> RoutePlan:
    try:
        new_status = RoutePlanStatus(status)
    except ValueError as exc:
        raise ValueError('Status must be either "complete" or "pending"') from exc
    plan = get_route_plan(db, route_plan_id)
    _ensure_owner(plan, manager_id)
    plan.status = new_status
    db.flush()
    return plan


def delete_route_plan(db: Session, *, route_plan_id: int, manager_id: int | None) -> None:
    plan = get_route_plan(db, route_plan_id)
    _ensure_owner(plan, manager_id)
    db.execute(delete(Response).where(Response.route_plan_id == plan.id))
    db.delete(plan)
    db.flush()
