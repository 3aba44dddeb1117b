from __future__ import annotations

import logging
from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile

from merch_mate.auth import Principal, Role, assert_self_or_role, manager_scope, require_role
from merch_mate.db import get_db
from merch_mate.dependencies import get_client_ip, get_now, get_today, image_url_base
from merch_mate.envelope import envelope
from merch_mate.errors import translate_service_errors
from merch_mate.schemas import ApproveResponseRequest, RejectResponseRequest
from merch_mate.services import response_service
from merch_mate.services.audit_service import log_audit
from merch_mate.services.image_storage import discard_image, resolve_image, save_image

logger = logging.getLogger(__name__)

router = APIRouter(prefix='/users', tags=['responses'])
images_router = APIRouter(tags=['responses'])
merchandiser_access = require_role(Role.MERCHANDISER)
planner_access = require_role(Role.ADMIN, Role.MANAGER)
any_access = require_role(Role.ADMIN, Role.MANAGER, Role.MERCHANDISER)


def _bad_request(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


def _int_field(raw, label: str) -> int:
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError) as exc:
        raise _bad_request(f'{label} must be an integer') from exc


async def _read_submission(request: Request, stored: list[str]) -> tuple[int, str, dict[str, dict]]:
    """Pull plan, instruction and answers out of a JSON or multipart body.

    Uploaded images are written to disk as they are read; their stored names
    are appended to ``stored`` so the caller can discard them on failure.
    """
    answers: dict[str, dict] = {}
    if request.headers.get('content-type', '').startswith('application/json'):
        try:
            body = await request.json()
        except ValueError as exc:
            raise _bad_request('Request body must be valid JSON') from exc
        if not isinstance(body, dict):
            raise _bad_request('Request body must be a JSON object')
        submitted = body.get('response') or {}
        if not isinstance(submitted, dict):
            raise _bad_request('response must be an object keyed by metric')
        for metric, value in submitted.items():
            text = value.get('text') if isinstance(value, dict) else value
            answers[str(metric)] = {'text': '' if text is None else str(text), 'image': ''}
        route_plan_raw, instruction_raw = body.get('route_plan_id'), body.get('instruction_id')
    else:
        form = await request.form()
        for key, value in form.multi_items():
            parsed = response_service.parse_answer_key(key)
            if not parsed:
                continue
            metric, field = parsed
            entry = answers.setdefault(metric, {'text': '', 'image': ''})
            if field == 'text':
                entry['text'] = str(value)
            elif isinstance(value, UploadFile) and value.filename:
                with translate_service_errors():
                    name = save_image(await value.read(), value.filename)
                stored.append(name)
                entry['image'] = name
        route_plan_raw, instruction_raw = form.get('route_plan_id'), form.get('instruction_id')

    if route_plan_raw is None or not instruction_raw:
        raise _bad_request('route_plan_id and instruction_id are required')
    return _int_field(route_plan_raw, 'route_plan_id'), str(instruction_raw).strip(), answers


@router.post('/post/response')
async def post_response(
    request: Request,
    principal: Principal = Depends(merchandiser_access),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    stored: list[str] = []
    try:
        route_plan_id, instruction_id, answers = await _read_submission(request, stored)
        with translate_service_errors():
            response = response_service.submit_response(
                db,
                merchandiser_id=principal.id,
                route_plan_id=route_plan_id,
                instruction_id=instruction_id,
                answers=answers,
                submitted_at=now,
            )
    except Exception:
        db.rollback()
        for name in stored:
            discard_image(name)
        raise

    log_audit(
        db,
        actor_user_id=principal.id,
        action='RESPONSE_SUBMITTED',
        ip=get_client_ip(request),
        metadata={'response_id': response.id, 'route_plan_id': route_plan_id, 'instruction_id': instruction_id},
    )
    db.commit()
    return envelope(
        'Response submitted successfully',
        status_code=status.HTTP_201_CREATED,
        data=response_service.serialize_response(response, image_url_base=image_url_base(request)),
    )


@router.get('/get-responses/{manager_id:int}')
def manager_responses(
    manager_id: int,
    request: Request,
    principal: Principal = Depends(planner_access),
    db: Session = Depends(get_db),
):
    assert_self_or_role(principal, manager_id, Role.ADMIN)
    responses = response_service.list_pending_for_manager(db, manager_id=manager_id)
    if not responses:
        return envelope('No responses found', status_code=status.HTTP_404_NOT_FOUND, data=[])
    base = image_url_base(request)
    return envelope(
        f'{len(responses)} responses found',
        data=[response_service.serialize_response(response, image_url_base=base) for response in responses],
    )


@router.get('/responses/{merchandiser_id:int}')
def merchandiser_responses(
    merchandiser_id: int,
    request: Request,
    principal: Principal = Depends(any_access),
    db: Session = Depends(get_db),
):
    assert_self_or_role(principal, merchandiser_id, Role.ADMIN, Role.MANAGER)
    responses = response_service.list_for_merchandiser(db, merchandiser_id=merchandiser_id)
    base = image_url_base(request)
    return envelope(
        f'{len(responses)} responses found',
        data=[response_service.serialize_response(response, image_url_base=base) for response in responses],
    )


@router.put('/approve/response')
def approve_response(
    payload: ApproveResponseRequest,
    request: Request,
    principal: Principal = Depends(planner_access),
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
):
    with translate_service_errors():
        response, scores = response_service.approve_response(
            db,
            response_id=payload.response_id,
            instruction_id=payload.instruction_id,
            route_plan_id=payload.route_plan_id,
            manager_id=manager_scope(principal),
            today=today,
        )
    log_audit(
        db,
        actor_user_id=principal.id,
        action='RESPONSE_APPROVED',
        ip=get_client_ip(request),
        metadata={'response_id': response.id, 'scores': scores},
    )
    db.commit()
    logger.info('Response %s approved by %s', response.id, principal.username)
    return envelope(
        'Response approved successfully',
        data={
            'response': response_service.serialize_response(response, image_url_base=image_url_base(request)),
            'performance': scores,
        },
    )


@router.put('/reject/response/{response_id:int}')
def reject_response(
    response_id: int,
    payload: RejectResponseRequest,
    request: Request,
    principal: Principal = Depends(planner_access),
    db: Session = Depends(get_db),
):
    with translate_service_errors():
        response = response_service.reject_response(
            db,
            response_id=response_id,
            manager_id=manager_scope(principal),
            reason=payload.reason,
        )
    log_audit(
        db,
        actor_user_id=principal.id,
        action='RESPONSE_REJECTED',
        ip=get_client_ip(request),
        metadata={'response_id': response.id},
    )
    db.commit()
    logger.info('Response %s rejected by %s', response.id, principal.username)
    return envelope(
        'Response rejected successfully',
        data=response_service.serialize_response(response, image_url_base=image_url_base(request)),
    )


@router.delete('/delete/responses/{response_id:int}')
def delete_response(
    response_id: int,
    request: Request,
    principal: Principal = Depends(planner_access),
    db: Session = Depends(get_db),
):
    with translate_service_errors():
        response_service.delete_response(db, response_id=response_id, manager_id=manager_scope(principal))
    log_audit(
        db,
        actor_user_id=principal.id,
        action='RESPONSE_DELETED',
        ip=get_client_ip(request),
        metadata={'response_id': response_id},
    )
    db.commit()
    return envelope('Response deleted successfully')


@images_router.get('/images/{filename}')
def get_image(filename: str):
    with translate_service_errors():
        path = resolve_image(filename)
    return FileResponse(path)
