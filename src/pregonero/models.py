"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/pregonero/models.py`.
Modelo inmutable de una lectura de la página de elección y derivación de fase.

Componentes detectados:
  - Phase
  - Candidate
  - derive_phase
  - ElectionSnapshot

======================== ENGLISH ========================
File: `src/pregonero/models.py`.
Immutable model of one read of the election page, plus phase derivation.

Detected components:
  - Phase
  - Candidate
  - derive_phase
  - ElectionSnapshot
"""

from __future__ import annotations

import re
import weakref
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, Optional, Tuple
from urllib.parse import urlsplit

import structlog

from .dates import parse_optional_timestamp, parse_timestamp
from .errors import FetchError, MissingFieldError
from .schemas import RawCandidate, RawFields

logger = structlog.get_logger(__name__)

_ELECTION_NUMBER = re.compile(r"/election/(\d+)/?$")


class Phase(str, Enum):
    """Fases de una elección.

    English: Mutually exclusive stages an election passes through.
    """

    NONE = "none"
    NOMINATION = "nomination"
    PRIMARY = "primary"
    ELECTION = "election"
    ENDED = "ended"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Candidate:
    """Representa un candidato (nominado) de la elección.

    Attributes:
        user_id (int): Identificador del usuario, único por snapshot.
        user_name (str): Nombre visible.
        years_on_site (str): Antigüedad tal como la muestra la página.
        score (int): Puntaje de candidato.
        permalink (str): Enlace a la nominación.

    English:
        A user who has entered the election.
    """

    user_id: int
    user_name: str
    years_on_site: str = ""
    score: int = 0
    permalink: str = ""

    @classmethod
    def from_raw(cls, raw: RawCandidate) -> "Candidate":
        return cls(
            user_id=raw.user_id,
            user_name=raw.user_name,
            years_on_site=raw.years_on_site,
            score=raw.score,
            permalink=raw.permalink,
        )


def derive_phase(
    date_nomination: datetime,
    date_primary: Optional[datetime],
    date_election: datetime,
    date_ended: datetime,
    now: datetime,
    cancelled_notice: Optional[str] = None,
) -> Phase:
    """Deriva la fase actual a partir de las fechas límite.

    English:
        Pure function of the four boundary dates, the current time and the
        cancellation marker. Checks run latest phase first, so an election past
        both its primary and election dates reports ``election``. A
        cancellation overrides ``ended``.
    """
    if cancelled_notice:
        return Phase.CANCELLED
    if date_ended <= now:
        return Phase.ENDED
    if date_election <= now:
        return Phase.ELECTION
    if date_primary is not None and date_primary <= now:
        return Phase.PRIMARY
    if date_nomination <= now:
        return Phase.NOMINATION
    return Phase.NONE


def _unique_nominees(rows: Iterable[RawCandidate]) -> Tuple[Candidate, ...]:
    seen: set[int] = set()
    nominees = []
    for row in rows:
        if row.user_id in seen:
            logger.warning("nominee_duplicate_skipped", user_id=row.user_id)
            continue
        seen.add(row.user_id)
        nominees.append(Candidate.from_raw(row))
    return tuple(nominees)


@dataclass(frozen=True)
class ElectionSnapshot:
    """Lectura inmutable del estado publicado de la elección.

    English:
        One immutable read of the election's published state. ``previous`` is
        a weak reference to the immediately preceding snapshot, so the history
        is one generation deep and never owned.
    """

    url: str
    site_name: str
    site_url: str
    title: str
    date_nomination: datetime
    date_primary: Optional[datetime]
    date_election: datetime
    date_ended: datetime
    num_candidates: int
    num_positions: int
    rep_nominate: int
    rep_vote: int
    nominees: Tuple[Candidate, ...]
    phase: Phase
    captured_at: datetime
    results_url: str = ""
    winners: Tuple[Candidate, ...] = ()
    cancelled_notice: str = ""
    chat_url: str = ""
    _previous_ref: Optional[weakref.ReferenceType] = field(default=None, repr=False, compare=False)

    @property
    def previous(self) -> Optional["ElectionSnapshot"]:
        if self._previous_ref is None:
            return None
        return self._previous_ref()

    @property
    def election_number(self) -> Optional[int]:
        match = _ELECTION_NUMBER.search(self.url)
        return int(match.group(1)) if match else None

    @property
    def has_primary(self) -> bool:
        return self.date_primary is not None

    @property
    def num_nominees(self) -> int:
        return len(self.nominees)

    @property
    def is_active(self) -> bool:
        return self.phase not in (Phase.NONE, Phase.ENDED, Phase.CANCELLED)

    def is_nominee(self, user_id: int) -> bool:
        return any(nominee.user_id == user_id for nominee in self.nominees)

    def is_ending(self, now: datetime, threshold: timedelta) -> bool:
        """True while voting is open and ``date_ended`` is within ``threshold``."""
        return self.phase is Phase.ELECTION and self.date_ended - threshold <= now

    def phase_url(self, phase: Phase) -> str:
        """Link to the page tab for ``phase`` (``?tab=nomination`` and so on)."""
        if phase in (Phase.ENDED, Phase.CANCELLED, Phase.NONE):
            return f"{self.url}?tab=election"
        return f"{self.url}?tab={phase.value}"

    def user_url(self, user_id: int) -> str:
        return f"{self.site_url}/users/{user_id}"

    def phase_date(self, phase: Phase) -> Optional[datetime]:
        return {
            Phase.NOMINATION: self.date_nomination,
            Phase.PRIMARY: self.date_primary,
            Phase.ELECTION: self.date_election,
            Phase.ENDED: self.date_ended,
        }.get(phase)

    @classmethod
    def from_raw(
        cls,
        raw: RawFields,
        url: str,
        *,
        captured_at: datetime,
        previous: Optional["ElectionSnapshot"] = None,
    ) -> "ElectionSnapshot":
        """Construye un snapshot a partir de campos crudos.

        English:
            Required dates that fail to parse raise ``FetchError``. Optional
            fields (primary date, winners, results link) degrade to ``None`` or
            empty and are logged as ``MissingFieldError``.
        """
        try:
            date_nomination = parse_timestamp(raw.date_nomination)
            date_election = parse_timestamp(raw.date_election)
            date_ended = parse_timestamp(raw.date_ended)
        except ValueError as exc:
            raise FetchError(f"Unparsable phase date: {exc}", url=url) from exc

        try:
            date_primary = parse_optional_timestamp(raw.date_primary)
        except ValueError as exc:
            _log_missing(MissingFieldError("date_primary", str(exc)), url)
            date_primary = None

        nominees = _unique_nominees(raw.nominees)
        phase = derive_phase(
            date_nomination,
            date_primary,
            date_election,
            date_ended,
            captured_at,
            raw.cancelled_notice,
        )

        winners: Tuple[Candidate, ...] = ()
        results_url = ""
        cancelled_notice = ""
        if phase is Phase.ENDED:
            if raw.winner_ids is None:
                _log_missing(MissingFieldError("winner_ids", "results pending"), url)
            else:
                winner_ids = set(raw.winner_ids)
                winners = tuple(nominee for nominee in nominees if nominee.user_id in winner_ids)
            if raw.results_url is None:
                _log_missing(MissingFieldError("results_url"), url)
            else:
                results_url = raw.results_url
        elif phase is Phase.CANCELLED:
            cancelled_notice = raw.cancelled_notice or ""
            results_url = raw.results_url or ""

        parts = urlsplit(url)
        return cls(
            url=url,
            site_name=raw.site_name,
            site_url=f"{parts.scheme}://{parts.netloc}",
            title=raw.title,
            date_nomination=date_nomination,
            date_primary=date_primary,
            date_election=date_election,
            date_ended=date_ended,
            num_candidates=raw.num_candidates if raw.num_candidates is not None else len(nominees),
            num_positions=raw.num_positions or 0,
            rep_nominate=raw.rep_nominate,
            rep_vote=raw.rep_vote,
            nominees=nominees,
            phase=phase,
            captured_at=captured_at,
            results_url=results_url,
            winners=winners,
            cancelled_notice=cancelled_notice,
            chat_url=raw.chat_url or "",
            _previous_ref=weakref.ref(previous) if previous is not None else None,
        )


def _log_missing(error: MissingFieldError, url: str) -> None:
    logger.info("snapshot_field_degraded", field=error.field_name, reason=error.reason, url=url)
