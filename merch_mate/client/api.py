"""HTTP client for the Merch Mate service.

Every call goes through ``ApiClient.call`` and comes back as a ``Result``;
transport and decoding problems never raise.
"""
from __future__ import annotations

import json
import logging
import mimetypes
import uuid
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from merch_mate.client.flash import FlashMessage
from merch_mate.client.session_store import SessionStore
from merch_mate.config import settings

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = 'System experiencing a problem, please try again later.'

FilePart = tuple[str, bytes, str]


def is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


@dataclass
class Result:
    successful: bool
    status_code: int
    message: str
    data: Any = None
    extra: dict = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.successful

    @property
    def error(self) -> str:
        return '' if self.successful else self.message

    @classmethod
    def failure(cls, message: str = FALLBACK_MESSAGE, status_code: int = 0) -> Result:
        return cls(successful=False, status_code=status_code, message=message)


def _encode_multipart(fields: dict[str, Any], files: dict[str, FilePart]) -> tuple[bytes, str]:
    boundary = uuid.uuid4().hex
    chunks: list[bytes] = []
    for name, value in fields.items():
        chunks.append(
            f'--{boundary}\r\nContent-Disposition: form-data; name="{name}"\r\n\r\n{value}\r\n'.encode('utf-8')
        )
    for name, (filename, content, content_type) in files.items():
        chunks.append(
            (
                f'--{boundary}\r\nContent-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'
                f'Content-Type: {content_type}\r\n\r\n'
            ).encode('utf-8')
        )
        chunks.append(content)
        chunks.append(b'\r\n')
    chunks.append(f'--{boundary}--\r\n'.encode('utf-8'))
    return b''.join(chunks), f'multipart/form-data; boundary={boundary}'


def file_part(source: Path | str | FilePart) -> FilePart:
    if isinstance(source, tuple):
        return source
    path = Path(source)
    content_type = mimetypes.guess_type(path.name)[0] or 'application/octet-stream'
    return path.name, path.read_bytes(), content_type


def _parse_envelope(raw: bytes, http_status: int) -> Result:
    try:
        payload = json.loads(raw.decode('utf-8'))
    except (UnicodeDecodeError, ValueError):
        return Result.failure()
    if not isinstance(payload, dict) or not isinstance(payload.get('message'), str):
        return Result.failure()

    status_code = payload.pop('status_code', http_status)
    if not isinstance(status_code, int):
        status_code = http_status
    payload.pop('successful', None)
    message = payload.pop('message')
    data = payload.pop('data', None)
    return Result(
        successful=is_success(status_code),
        status_code=status_code,
        message=message,
        data=data,
        extra=payload,
    )


class ApiClient:
    def __init__(
        self,
        *,
        base_url: str | None = None,
        session: SessionStore | None = None,
        timeout: float | None = None,
    ):
        self.base_url = (base_url or settings.api_base_url).rstrip('/')
        self.session = session or SessionStore()
        self.timeout = timeout if timeout is not None else settings.client_timeout_seconds
        self.flash = FlashMessage()

        self.auth = AuthApi(self)
        self.users = UsersApi(self)
        self.facilities = FacilitiesApi(self)
        self.route_plans = RoutePlansApi(self)
        self.responses = ResponsesApi(self)
        self.kpis = KpisApi(self)
        self.performance = PerformanceApi(self)
        self.notifications = NotificationsApi(self)
        self.assignments = AssignmentsApi(self)
        self.locations = LocationsApi(self)

    def call(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        form: dict[str, Any] | None = None,
        files: dict[str, FilePart] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Result:
        url = f'{self.base_url}{path}'
        query = {key: value for key, value in (params or {}).items() if value is not None}
        if query:
            url = f'{url}?{urlencode(query)}'

        headers = {'Accept': 'application/json'}
        if self.session.token:
            headers['Authorization'] = f'Bearer {self.session.token}'

        data = None
        if files:
            data, headers['Content-Type'] = _encode_multipart(form or {}, files)
        elif form is not None:
            data = urlencode(form).encode('utf-8')
            headers['Content-Type'] = 'application/x-www-form-urlencoded'
        elif json_body is not None:
            data = json.dumps(json_body, default=str).encode('utf-8')
            headers['Content-Type'] = 'application/json'

        req = Request(url=url, data=data, headers=headers, method=method.upper())
        try:
            with urlopen(req, timeout=self.timeout) as response:
                result = _parse_envelope(response.read(), response.status)
        except HTTPError as exc:
            body = exc.read() if exc.fp else b''
            result = _parse_envelope(body, exc.code)
        except (URLError, OSError) as exc:
            logger.warning('%s %s failed: %s', method.upper(), path, exc)
            result = Result.failure()

        if not result.successful:
            self.flash.show(result.message)
        return result


class _Group:
    def __init__(self, client: ApiClient):
        self.client = client

    def _call(self, method: str, path: str, **kwargs) -> Result:
        return self.client.call(method, path, **kwargs)


class AuthApi(_Group):
    def login(self, email: str, password: str, *, remember: bool = False) -> Result:
        result = self._call('POST', '/users/login', json_body={'email': email, 'password': password})
        if result.successful and result.extra.get('access_token'):
            self.client.session.login(result.extra['access_token'], result.data or {}, remember=remember)
        return result

    def logout(self) -> Result:
        result = self._call('POST', '/users/logout')
        self.client.session.logout()
        return result

    def signup(
        self,
        *,
        first_name: str,
        last_name: str,
        national_id_no: int,
        staff_no: int,
        username: str,
        email: str,
        password: str,
        role: str,
        middle_name: str | None = None,
    ) -> Result:
        return self._call(
            'POST',
            '/users/signup',
            json_body={
                'first_name': first_name,
                'middle_name': middle_name,
                'last_name': last_name,
                'national_id_no': national_id_no,
                'staff_no': staff_no,
                'username': username,
                'email': email,
                'password': password,
                'role': role,
            },
        )

    def change_password(self, email: str, old_password: str, new_password: str) -> Result:
        return self._call(
            'PUT',
            '/users/change-password',
            json_body={'email': email, 'old_password': old_password, 'new_password': new_password},
        )

    def reset_password(self, email: str, password: str) -> Result:
        return self._call('PUT', '/users/reset-password', json_body={'email': email, 'password': password})


class UsersApi(_Group):
    def all(self, role: str | None = None) -> Result:
        return self._call('GET', '/users', params={'role': role})

    def get(self, user_id: int) -> Result:
        return self._call('GET', f'/users/{user_id}')

    def edit(self, user_id: int, *, first_name: str, last_name: str) -> Result:
        return self._call(
            'PUT', f'/users/edit-user/{user_id}', json_body={'first_name': first_name, 'last_name': last_name}
        )

    def set_status(self, user_id: int, status: str) -> Result:
        return self._call('PUT', f'/users/{user_id}/edit-status', json_body={'status': status})

    def set_role(self, user_id: int, role: str) -> Result:
        return self._call('PUT', f'/users/{user_id}/edit-role', json_body={'role': role})


class FacilitiesApi(_Group):
    def create(self, *, name: str, location: str, type_: str) -> Result:
        return self._call(
            'POST', '/users/create/facility', json_body={'name': name, 'location': location, 'type': type_}
        )

    def for_manager(self, manager_id: int) -> Result:
        return self._call('GET', f'/users/get-facilities/{manager_id}')

    def all(self) -> Result:
        return self._call('GET', '/users/get/facilities')


class RoutePlansApi(_Group):
    def create(
        self,
        *,
        staff_no: int,
        start_date: date,
        end_date: date,
        instructions: list[dict],
        status: str = 'pending',
    ) -> Result:
        return self._call(
            'POST',
            '/users/route-plans',
            json_body={
                'staff_no': staff_no,
                'status': status,
                'date_range': {'start_date': start_date, 'end_date': end_date},
                'instructions': instructions,
            },
        )

    def all(self) -> Result:
        return self._call('GET', '/users/route-plans')

    def for_manager(self, manager_id: int) -> Result:
        return self._call('GET', f'/users/manager-route-plans/{manager_id}')

    def for_merchandiser(self, merchandiser_id: int) -> Result:
        return self._call('GET', f'/users/route-plans/{merchandiser_id}')

    def manager_month(self, manager_id: int) -> Result:
        return self._call('GET', f'/users/manager-routes/{manager_id}')

    def merchandiser_month(self, merchandiser_id: int) -> Result:
        return self._call('GET', f'/users/merchandisers/routes/{merchandiser_id}')

    def modify(self, route_plan_id: int, *, status: str | None = None, instructions: list[dict] | None = None) -> Result:
        body: dict[str, Any] = {'instructions': instructions or []}
        if status is not None:
            body['status'] = status
        return self._call('PUT', f'/users/modify-route/{route_plan_id}', json_body=body)

    def change_instruction_status(self, route_plan_id: int, instruction_id: str, status: str) -> Result:
        return self._call(
            'PUT',
            f'/users/change-route-status/{route_plan_id}',
            json_body={'instruction_id': instruction_id, 'status': status},
        )

    def set_status(self, route_plan_id: int, status: str) -> Result:
        return self._call('PUT', f'/users/route-plans/{route_plan_id}', json_body={'status': status})

    def complete(self, route_plan_id: int) -> Result:
        return self._call('PUT', f'/users/complete/route/plan/{route_plan_id}')

    def delete(self, route_plan_id: int) -> Result:
        return self._call('DELETE', f'/users/delete-route-plans/{route_plan_id}')


def missing_answers(metrics: list[str], answers: dict[str, dict]) -> list[str]:
    """Metrics that have neither text nor an image attached."""
    missing = []
    for metric in metrics:
        answer = answers.get(metric) or {}
        if not str(answer.get('text') or '').strip() and not answer.get('image'):
            missing.append(metric)
    return missing


class ResponsesApi(_Group):
    def submit(self, *, route_plan_id: int, instruction: dict, answers: dict[str, dict]) -> Result:
        """Send evidence for one instruction.

        ``answers`` maps metric name to ``{'text': str, 'image': path or (name, bytes, type)}``.
        Blank metrics are refused locally without contacting the server.
        """
        missing = missing_answers(list(instruction.get('kpi_metrics') or []), answers)
        if missing:
            result = Result.failure(f'Please fill in: {", ".join(missing)}', status_code=400)
            self.client.flash.show(result.message)
            return result

        form: dict[str, Any] = {'route_plan_id': route_plan_id, 'instruction_id': instruction['id']}
        files: dict[str, FilePart] = {}
        for metric, answer in answers.items():
            form[f'response[{metric}][text]'] = str(answer.get('text') or '')
            if answer.get('image'):
                files[f'response[{metric}][image]'] = file_part(answer['image'])
        if files:
            return self._call('POST', '/users/post/response', form=form, files=files)
        return self._call('POST', '/users/post/response', form=form)

    def pending_for_manager(self, manager_id: int) -> Result:
        return self._call('GET', f'/users/get-responses/{manager_id}')

    def for_merchandiser(self, merchandiser_id: int) -> Result:
        return self._call('GET', f'/users/responses/{merchandiser_id}')

    def approve(self, *, response_id: int, instruction_id: str, route_plan_id: int) -> Result:
        return self._call(
            'PUT',
            '/users/approve/response',
            json_body={'response_id': response_id, 'instruction_id': instruction_id, 'route_plan_id': route_plan_id},
        )

    def reject(self, response_id: int, reason: str) -> Result:
        return self._call('PUT', f'/users/reject/response/{response_id}', json_body={'reason': reason})

    def delete(self, response_id: int) -> Result:
        return self._call('DELETE', f'/users/delete/responses/{response_id}')


class KpisApi(_Group):
    def create(self, *, sector_name: str, company_name: str, performance_metric: dict) -> Result:
        return self._call(
            'POST',
            '/users/create/kpi',
            json_body={
                'sector_name': sector_name,
                'company_name': company_name,
                'performance_metric': performance_metric,
            },
        )

    def all(self) -> Result:
        return self._call('GET', '/users/all/kpis')

    def update(self, kpi_id: int, performance_metric: dict) -> Result:
        return self._call('PUT', f'/users/update/kpi/{kpi_id}', json_body={'performance_metric': performance_metric})

    def delete(self, kpi_id: int) -> Result:
        return self._call('DELETE', f'/users/delete/kpi/{kpi_id}')


def sort_leaderboard(entries: list[dict]) -> list[dict]:
    """Highest score first; entries without a score sink to the bottom."""
    return sorted(entries, key=lambda entry: entry.get('score') or 0, reverse=True)


class PerformanceApi(_Group):
    def day(self, merchandiser_id: int) -> Result:
        return self._call('GET', f'/users/get/day/performance/{merchandiser_id}')

    def on(self, merchandiser_id: int, day: date) -> Result:
        return self._call('GET', '/users/get/performance', params={'date': day.isoformat(), 'merch_id': merchandiser_id})

    def week(self, merchandiser_id: int) -> Result:
        return self._call('GET', f'/users/get/week/performance/{merchandiser_id}')

    def month(self, merchandiser_id: int) -> Result:
        return self._call('GET', f'/users/get/month/performance/{merchandiser_id}')

    def monthly(self, merchandiser_id: int, *, month: int, year: int) -> Result:
        return self._call(
            'GET',
            '/users/get/monthly/performance',
            params={'month': month, 'year': year, 'merch_id': merchandiser_id},
        )

    def year(self, merchandiser_id: int) -> Result:
        return self._call('GET', f'/users/get/year/performance/{merchandiser_id}')

    def range(self, merchandiser_id: int, *, start_date: date, end_date: date) -> Result:
        return self._call(
            'GET',
            '/users/get/range/performance',
            params={
                'start_date': start_date.isoformat(),
                'end_date': end_date.isoformat(),
                'merch_id': merchandiser_id,
            },
        )

    def all(self) -> Result:
        return self._call('GET', '/users/performances')

    def leaderboard(self) -> Result:
        result = self._call('GET', '/users/leaderboard/performance')
        if result.successful and isinstance(result.data, list):
            result.data = sort_leaderboard(result.data)
        return result


class NotificationsApi(_Group):
    def unread(self, user_id: int) -> Result:
        return self._call('GET', f'/users/notifications/unread/{user_id}')

    def mark_read(self, notification_id: int) -> Result:
        return self._call('PUT', f'/users/notifications/edit-status/{notification_id}')

    def reply(self, notification_id: int, text: str) -> Result:
        return self._call('POST', '/users/reply/to/notification', json_body={'message_id': notification_id, 'reply': text})


class AssignmentsApi(_Group):
    def assign(self, merchandiser_ids: list[int], *, month: date, manager_id: int | None = None) -> Result:
        return self._call(
            'POST',
            '/users/assign/merchandiser',
            json_body={'manager_id': manager_id, 'merchandiser_id': merchandiser_ids, 'month': month.isoformat()},
        )

    def merchandisers(self, manager_id: int) -> Result:
        return self._call('GET', f'/users/get/merchandisers/{manager_id}')


class LocationsApi(_Group):
    def post(self, latitude: float, longitude: float) -> Result:
        return self._call('POST', '/users/locations', json_body={'latitude': latitude, 'longitude': longitude})

    def latest(self) -> Result:
        return self._call('GET', '/users/locations')


def pending_instructions(plans: list[dict]) -> list[dict]:
    """Instructions of the given plans that still wait for the merchandiser."""
    pending = []
    for plan in plans:
        for instruction in plan.get('instructions') or []:
            if instruction.get('status') == 'pending' and not instruction.get('responded'):
                pending.append(
                    {
                        'route_plan_id': plan.get('id'),
                        'manager_id': plan.get('manager_id'),
                        **instruction,
                    }
                )
    return pending
