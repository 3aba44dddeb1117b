"""The single reply shape every endpoint uses.

``{"successful": bool, "status_code": int, "message": str, "data": ...}``.
``successful`` is derived from ``status_code`` so the two never disagree.
"""
from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = 'Internal server error'


def is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


def envelope(message: str, *, status_code: int = status.HTTP_200_OK, data: Any = None, **extra: Any) -> JSONResponse:
    body = {
        'successful': is_success(status_code),
        'status_code': status_code,
        'message': message,
        'data': data,
    }
    body.update(extra)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = '.'.join(str(part) for part in error.get('loc', ()) if part not in {'body', 'query', 'path', 'form'})
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get('msg')))
    return '; '.join(parts) or 'Invalid request'


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        message = exc.detail if isinstance(exc.detail, str) else 'Request failed'
        response = envelope(message, status_code=exc.status_code)
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return envelope(_validation_message(exc), status_code=status.HTTP_400_BAD_REQUEST)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception('Unhandled error on %s %s', request.method, request.url.path)
        return envelope(INTERNAL_ERROR_MESSAGE, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
