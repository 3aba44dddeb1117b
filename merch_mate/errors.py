from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import HTTPException, status


class ConflictError(ValueError):
    """The entity exists but is in a state that forbids the operation."""


class AuthenticationError(Exception):
    pass


@contextmanager
def translate_service_errors() -> Iterator[None]:
    """Map service-layer exceptions onto HTTP errors.

    ``ConflictError`` is checked before ``ValueError`` because it subclasses it.
    """
    try:
        yield
    except ConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except AuthenticationError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_message(exc)) from exc
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


def _message(exc: LookupError) -> str:
    # KeyError wraps its message in quotes.
    return exc.args[0] if exc.args else str(exc)
