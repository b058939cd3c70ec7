from __future__ import annotations

from collections.abc import Callable, Generator
from dataclasses import dataclass, field
from datetime import datetime, timezone

from fastapi import Request
from sqlalchemy.orm import Session

from presensi.settings import Settings
from presensi.store import EphemeralStore


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AppContext:
    """Per-request bundle of collaborators handed to every service call."""

    settings: Settings
    db: Session
    store: EphemeralStore
    clock: Callable[[], datetime] = field(default=utc_now)

    def now(self) -> datetime:
        value = self.clock()
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def get_context(request: Request) -> Generator[AppContext, None, None]:
    state = request.app.state
    db = state.session_factory()
    try:
        yield AppContext(settings=state.settings, db=db, store=state.store)
    finally:
        db.close()
