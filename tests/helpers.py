"""Utilidades compartidas de las pruebas de Pregonero.

Shared helpers for the Pregonero tests: a scripted page reader, a recording
chat channel and a settable clock.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, List, Optional, Union

from pregonero.errors import FetchError, SendError
from pregonero.schemas import RawCandidate, RawFields

FIXTURES = Path(__file__).resolve().parent / "fixtures"
ELECTION_URL = "https://scifi.stackexchange.com/election/7"

Page = Union[RawFields, Exception]


def at(text: str) -> datetime:
    """Español: Fecha UTC a partir de ``YYYY-MM-DD[ HH:MM]``.

    English: UTC datetime from ``YYYY-MM-DD[ HH:MM]``.
    """
    fmt = "%Y-%m-%d %H:%M" if " " in text else "%Y-%m-%d"
    return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)


def stamp(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%SZ")


def candidate(user_id: int, name: Optional[str] = None) -> RawCandidate:
    return RawCandidate(
        user_id=user_id,
        user_name=name or f"user{user_id}",
        years_on_site="member for 4 years",
        score=30,
        permalink=f"{ELECTION_URL}?tab=nomination#post-{user_id}",
    )


def make_raw(
    *,
    nomination: Union[str, datetime] = "2024-01-01",
    primary: Union[str, datetime, None] = None,
    election: Union[str, datetime] = "2024-01-08",
    ended: Union[str, datetime] = "2024-01-15",
    nominees: Optional[List[int]] = None,
    **extra: Any,
) -> RawFields:
    """Español: Campos crudos mínimos para construir snapshots.

    English: Minimal raw field set for building snapshots. Dates accept
    ``YYYY-MM-DD`` strings or aware datetimes.
    """

    def _date(value: Union[str, datetime, None]) -> Optional[str]:
        if isinstance(value, datetime):
            return stamp(value)
        return value

    payload: dict[str, Any] = {
        "site_name": "Sci Fi",
        "title": "2024 Moderator Election",
        "date_nomination": _date(nomination),
        "date_primary": _date(primary),
        "date_election": _date(election),
        "date_ended": _date(ended),
        "num_positions": 1,
        "rep_nominate": 300,
        "rep_vote": 150,
        "nominees": [candidate(user_id) for user_id in (nominees or [])],
    }
    payload.update(extra)
    return RawFields(**payload)


class FakeClock:
    """Reloj ajustable / Settable clock."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, text: str) -> datetime:
        self.now = at(text)
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeReader:
    """Español: Lector guionizado.

    English: Scripted page reader. Queued pages are served in order, then the
    last one is repeated. Queued exceptions are raised once.
    """

    def __init__(self, *pages: Page) -> None:
        self.queue: List[Page] = list(pages)
        self.last: Optional[RawFields] = None
        self.calls: List[str] = []

    def push(self, page: Page) -> None:
        self.queue.append(page)

    async def fetch(self, url: str) -> RawFields:
        self.calls.append(url)
        if self.queue:
            page = self.queue.pop(0)
            if isinstance(page, Exception):
                raise page
            self.last = page
        if self.last is None:
            raise FetchError("no page scripted", url=url)
        return self.last


class RecordingChannel:
    """Canal que guarda los mensajes / Channel that records messages."""

    def __init__(self, fail: bool = False) -> None:
        self.messages: List[str] = []
        self.fail = fail

    async def send(self, text: str) -> None:
        if self.fail:
            raise SendError("chat_send_failed status=502", status_code=502)
        self.messages.append(text)
