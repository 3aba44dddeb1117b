"""Client-side session state persisted to a single JSON file."""
from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path

from merch_mate.config import settings

logger = logging.getLogger(__name__)

MANAGER_ROLE = 'manager'
ADMIN_ROLE = 'admin'


@dataclass
class SessionState:
    authorized: bool = False
    role_check: bool = False
    admin: bool = False
    user_data: dict = field(default_factory=dict)
    access_token: str = ''
    previous_route: str | None = None

    @property
    def role(self) -> str | None:
        return self.user_data.get('role') if self.user_data else None

    @classmethod
    def for_user(cls, token: str, user: dict) -> SessionState:
        role = (user or {}).get('role')
        return cls(
            authorized=bool(token),
            role_check=role == MANAGER_ROLE,
            admin=role == ADMIN_ROLE,
            user_data=dict(user or {}),
            access_token=token,
        )


class SessionStore:
    def __init__(self, path: Path | None = None):
        self.path = Path(path or settings.client_session_path)
        self.state = SessionState()

    def bootstrap(self) -> SessionState:
        """Rebuild the state from disk; anything unreadable means signed out."""
        try:
            raw = json.loads(self.path.read_text(encoding='utf-8'))
        except FileNotFoundError:
            raw = None
        except (OSError, ValueError) as exc:
            logger.warning('Ignoring unreadable session file %s: %s', self.path, exc)
            raw = None

        if not isinstance(raw, dict) or not raw.get('access_token'):
            self.state = SessionState(previous_route=raw.get('previous_route') if isinstance(raw, dict) else None)
            return self.state

        state = SessionState.for_user(str(raw['access_token']), raw.get('user_data') or {})
        state.previous_route = raw.get('previous_route')
        self.state = state
        return state

    def login(self, token: str, user: dict, *, remember: bool = False) -> SessionState:
        self.state = SessionState.for_user(token, user)
        if remember:
            self._save()
        else:
            self._discard()
        return self.state

    def logout(self) -> SessionState:
        self.state = SessionState()
        self._discard()
        return self.state

    def remember_route(self, path: str) -> None:
        self.state.previous_route = path
        if self.path.exists():
            self._save()

    @property
    def token(self) -> str:
        return self.state.access_token

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = asdict(self.state)
        self.path.write_text(json.dumps(payload), encoding='utf-8')

    def _discard(self) -> None:
        self.path.unlink(missing_ok=True)
