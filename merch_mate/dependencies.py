from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from fastapi import Request

from merch_mate.config import settings


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None


def get_user_agent(request: Request) -> str | None:
    return request.headers.get('user-agent')


def get_today() -> date:
    return datetime.now(tz=ZoneInfo(settings.timezone)).date()


def image_url_base(request: Request) -> str:
    return str(request.base_url) + 'images/'


def get_now() -> datetime:
    return datetime.now(tz=timezone.utc)
