from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field

from merch_mate.config import settings


@dataclass
class FlashMessage:
    """A notice or error that clears itself after ``settings.flash_seconds``."""

    clock: Callable[[], float] = time.monotonic
    text: str = ''
    kind: str = 'error'
    expires_at: float = field(default=0.0)

    def show(self, text: str, *, kind: str = 'error', seconds: float | None = None) -> None:
        self.text = text
        self.kind = kind
        self.expires_at = self.clock() + (settings.flash_seconds if seconds is None else seconds)

    def clear(self) -> None:
        self.text = ''
        self.expires_at = 0.0

    @property
    def current(self) -> str:
        if self.text and self.clock() >= self.expires_at:
            self.clear()
        return self.text
