from __future__ import annotations

import re
from datetime import date, datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from merch_mate.errors import ConflictError
from merch_mate.models import (
    Instruction,
    InstructionStatus,
    Response,
    ResponseStatus,
    RoutePlan,
)
from merch_mate.services.kpi_service import metric_requirements
from merch_mate.services.notification_service import notify
from merch_mate.services.performance_service import record_scores
from merch_mate.services.route_plan_service import find_instruction, get_route_plan, month_bounds, wall_clock
from merch_mate.services.scoring_service import ScoringInput, compute_scores

ANSWER_KEY_RE = re.compile(r'^response\[(?P<metric>[^\]]+)\]\[(?P<field>text|image)\]$')
DEFAULT_REQUIREMENT = {'text': True, 'image': False}


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def parse_answer_key(key: str) -> tuple[str, str] | None:
    """Split a ``response[<metric>][text|image]`` form key."""
    match = ANSWER_KEY_RE.match(key)
    if not match:
        return None
    return match.group('metric').strip(), match.group('field')


def serialize_response(response: Response, *, image_url_base: str = '') -> dict:
    answers = {}
    for metric, value in (response.payload or {}).items():
        image = value.get('image') or ''
        answers[metric] = {
            'text': value.get('text') or '',
            'image': f'{image_url_base}{image}' if image else '',
        }
    return {
        'id': response.id,
        'merchandiser_id': response.merchandiser_id,
        'merchandiser': response.merchandiser.full_name if response.merchandiser else None,
        'manager_id': response.manager_id,
        'route_plan_id': response.route_plan_id,
        'instruction_id': response.instruction_id,
        'date_time': response.submitted_at.isoformat(),
        'status': response.status.value,
        'rejection_reason': response.rejection_reason,
        'response': answers,
    }


def validate_answers(
    answers: dict[str, dict],
    *,
    metrics: list[str],
    requirements: dict[str, dict[str, bool]],
) -> dict[str, dict]:
    """Check that every metric the instruction asks for has been answered.

    Text is mandatory where the KPI asks for text. A metric that only asks for
    an image must carry one. Answers for metrics the instruction does not list
    are rejected.
    """
    cleaned = {
        metric.strip(): {'text': str(value.get('text') or '').strip(), 'image': value.get('image') or ''}
        for metric, value in answers.items()
    }
    if metrics:
        extra = sorted(set(cleaned) - set(metrics))
        if extra:
            raise ValueError(f'"{extra[0]}" is not requested by this instruction')
    elif not cleaned:
        raise ValueError('Provide at least one answer')

    for metric in metrics or list(cleaned):
        requirement = requirements.get(metric, DEFAULT_REQUIREMENT)
        answer = cleaned.get(metric) or {'text': '', 'image': ''}
        if requirement.get('text') and not answer['text']:
            raise ValueError(f'"{metric}" requires a text answer')
        if requirement.get('image') and not requirement.get('text') and not answer['image']:
            raise ValueError(f'"{metric}" requires an image')
        cleaned[metric] = answer
    return cleaned


def submit_response(
    db: Session,
    *,
    merchandiser_id: int,
    route_plan_id: int,
    instruction_id: str,
    answers: dict[str, dict],
    submitted_at: datetime,
) -> Response:
    plan = get_route_plan(db, route_plan_id)
    if plan.merchandiser_id != merchandiser_id:
        raise PermissionError('This route plan is assigned to another merchandiser')
    instruction = find_instruction(plan, instruction_id)
    if instruction.status == InstructionStatus.COMPLETE:
        raise ConflictError('This instruction has already been completed')
    if instruction.responded:
        raise ConflictError('A response for this instruction is awaiting review')

    payload = validate_answers(
        answers,
        metrics=list(instruction.kpi_metrics or []),
        requirements=metric_requirements(db),
    )

    response = Response(
        merchandiser_id=merchandiser_id,
        manager_id=plan.manager_id,
        route_plan_id=plan.id,
        instruction_pk=instruction.id,
        instruction_id=instruction.instruction_id,
        payload=payload,
        submitted_at=wall_clock(submitted_at),
        status=ResponseStatus.PENDING,
    )
    instruction.status = InstructionStatus.SUBMITTED
    instruction.responded = True
    db.add(response)
    db.flush()
    return response


def list_pending_for_manager(db: Session, *, manager_id: int) -> list[Response]:
    return db.execute(
        select(Response)
        .where(Response.manager_id == manager_id, Response.status == ResponseStatus.PENDING)
        .order_by(Response.submitted_at.asc(), Response.id.asc())
    ).scalars().all()


def list_for_merchandiser(db: Session, *, merchandiser_id: int) -> list[Response]:
    return db.execute(
        select(Response)
        .where(Response.merchandiser_id == merchandiser_id)
        .order_by(Response.submitted_at.desc(), Response.id.desc())
    ).scalars().all()


def _pending_response_for_decision(db: Session, *, response_id: int, manager_id: int | None) -> Response:
    response = db.execute(
        select(Response).where(Response.id == response_id).with_for_update()
    ).scalar_one_or_none()
    if not response:
        raise LookupError('Response does not exist')
    if manager_id is not None and response.manager_id != manager_id:
        raise PermissionError('This response was sent to another manager')
    if response.status != ResponseStatus.PENDING:
        raise ConflictError(f'Response has already been {response.status.value}')
    return response


def _month_counts(db: Session, *, merchandiser_id: int, day: date) -> tuple[int, int]:
    first, last = month_bounds(day)
    rows = db.execute(
        select(Instruction.status, func.count(Instruction.id))
        .join(RoutePlan, RoutePlan.id == Instruction.route_plan_id)
        .where(
            RoutePlan.merchandiser_id == merchandiser_id,
            RoutePlan.start_date >= first,
            RoutePlan.end_date <= last,
        )
        .group_by(Instruction.status)
    ).all()
    total = sum(count for _, count in rows)
    completed = sum(count for status, count in rows if status == InstructionStatus.COMPLETE)
    return total, completed


def approve_response(
    db: Session,
    *,
    response_id: int,
    instruction_id: str,
    route_plan_id: int,
    manager_id: int | None,
    today: date,
) -> tuple[Response, dict[str, float]]:
    response = _pending_response_for_decision(db, response_id=response_id, manager_id=manager_id)
    if response.route_plan_id != route_plan_id or response.instruction_id != instruction_id:
        raise ValueError('Response does not belong to the given route plan instruction')
    plan = get_route_plan(db, route_plan_id)
    instruction = find_instruction(plan, instruction_id)

    response.status = ResponseStatus.APPROVED
    response.decided_at = _now()
    instruction.status = InstructionStatus.COMPLETE
    instruction.responded = True
    db.flush()

    requirements = metric_requirements(db)
    if instruction.kpi_metrics:
        requirements = {
            metric: requirements.get(metric, DEFAULT_REQUIREMENT) for metric in instruction.kpi_metrics
        }
    total, completed = _month_counts(db, merchandiser_id=response.merchandiser_id, day=response.submitted_at.date())
    scores = compute_scores(
        ScoringInput(
            answers=response.payload or {},
            requirements=requirements,
            submitted_at=response.submitted_at,
            scheduled_start=instruction.start,
            month_instruction_count=total,
            month_completed_count=completed,
        )
    )
    record_scores(db, merchandiser_id=response.merchandiser_id, day=today, scores=scores)
    return response, scores


def reject_response(db: Session, *, response_id: int, manager_id: int | None, reason: str) -> Response:
    clean_reason = (reason or '').strip()
    if not clean_reason:
        raise ValueError('A rejection reason is required')
    response = _pending_response_for_decision(db, response_id=response_id, manager_id=manager_id)

    instruction = db.get(Instruction, response.instruction_pk)
    if instruction is not None:
        instruction.status = InstructionStatus.PENDING
        instruction.responded = False

    response.status = ResponseStatus.REJECTED
    response.rejection_reason = clean_reason
    response.decided_at = _now()
    notify(
        db,
        manager_id=response.manager_id,
        merchandiser_id=response.merchandiser_id,
        message=clean_reason,
    )
    db.flush()
    return response


def delete_response(db: Session, *, response_id: int, manager_id: int | None) -> None:
    response = db.get(Response, response_id)
    if not response:
        raise LookupError('Response not found')
    if manager_id is not None and response.manager_id != manager_id:
        raise PermissionError('This response was sent to another manager')
    if response.status == ResponseStatus.PENDING:
        instruction = db.get(Instruction, response.instruction_pk)
        if instruction is not None:
            instruction.status = InstructionStatus.PENDING
            instruction.responded = False
    db.delete(response)
    db.flush()
