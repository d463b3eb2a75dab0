"""Detección de cambios entre dos generaciones de snapshot.

English:
    Computes incremental events from a (previous, current) snapshot pair and
    applies them: announcements plus re-arming or disarming of the phase
    timers. Stopping the periodic tick is signalled, never performed here.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple

import structlog

from .announcer import Announcer
from .dates import utcnow
from .models import Candidate, ElectionSnapshot, Phase
from .phase_scheduler import PhaseScheduler

logger = structlog.get_logger(__name__)

DEFAULT_ENDING_THRESHOLD = timedelta(minutes=15)

# Fases cuya fecha se vigila para detectar reprogramaciones.
# Phases whose date is watched for reschedules (primary has its own edge).
_WATCHED_DATE_PHASES = (Phase.NOMINATION, Phase.ELECTION, Phase.ENDED)


@dataclass(frozen=True)
class ReconcileEvents:
    """Eventos detectados entre dos lecturas.

    English: Event set computed from two snapshot generations.
    """

    cancelled: bool = False
    primary_added: bool = False
    new_nominees: Tuple[Candidate, ...] = ()
    dates_changed: Tuple[Phase, ...] = ()
    new_winners: Tuple[Candidate, ...] = ()
    ending_soon: bool = False

    @property
    def stop_requested(self) -> bool:
        """The caller should stop the periodic tick."""
        return self.cancelled or bool(self.new_winners)

    @property
    def empty(self) -> bool:
        return not (
            self.cancelled
            or self.primary_added
            or self.new_nominees
            or self.dates_changed
            or self.new_winners
            or self.ending_soon
        )


def new_nominees(previous: ElectionSnapshot, current: ElectionSnapshot) -> Tuple[Candidate, ...]:
    """Nominees in ``current`` whose ``user_id`` is absent from ``previous``, in page order."""
    known = {nominee.user_id for nominee in previous.nominees}
    return tuple(nominee for nominee in current.nominees if nominee.user_id not in known)


def diff(
    previous: Optional[ElectionSnapshot],
    current: ElectionSnapshot,
    *,
    now: Optional[datetime] = None,
    ending_threshold: timedelta = DEFAULT_ENDING_THRESHOLD,
) -> ReconcileEvents:
    """Calcula los eventos entre dos snapshots.

    English:
        Pure function. No events fire on the very first snapshot. A
        cancellation suppresses every other event.
    """
    if previous is None:
        return ReconcileEvents()

    if current.phase is Phase.CANCELLED:
        return ReconcileEvents(cancelled=previous.phase is not Phase.CANCELLED)

    primary_added = previous.date_primary is None and current.date_primary is not None

    nominees: Tuple[Candidate, ...] = ()
    if current.phase is Phase.NOMINATION and current.num_nominees != previous.num_nominees:
        nominees = new_nominees(previous, current)

    dates_changed = tuple(
        phase for phase in _WATCHED_DATE_PHASES if previous.phase_date(phase) != current.phase_date(phase)
    )

    winners: Tuple[Candidate, ...] = ()
    if current.phase is Phase.ENDED and current.winners:
        known = {winner.user_id for winner in previous.winners}
        winners = tuple(winner for winner in current.winners if winner.user_id not in known)

    when = now or current.captured_at
    ending_soon = current.is_ending(when, ending_threshold) and not previous.is_ending(
        previous.captured_at, ending_threshold
    )

    return ReconcileEvents(
        primary_added=primary_added,
        new_nominees=nominees,
        dates_changed=dates_changed,
        new_winners=winners,
        ending_soon=ending_soon,
    )


class Reconciler:
    """Aplica los eventos del diff.

    English:
        Drives the PhaseScheduler and the Announcer from the diff of two
        snapshots. Send failures are logged per message and never retried.
    """

    def __init__(
        self,
        phase_scheduler: PhaseScheduler,
        announcer: Announcer,
        *,
        ending_threshold: timedelta = DEFAULT_ENDING_THRESHOLD,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.phase_scheduler = phase_scheduler
        self.announcer = announcer
        self.ending_threshold = ending_threshold
        self._clock = clock

    async def reconcile(
        self,
        previous: Optional[ElectionSnapshot],
        current: ElectionSnapshot,
    ) -> ReconcileEvents:
        events = diff(previous, current, now=self._clock(), ending_threshold=self.ending_threshold)
        if events.empty:
            return events

        logger.info(
            "reconcile_events",
            cancelled=events.cancelled,
            primary_added=events.primary_added,
            new_nominees=[nominee.user_id for nominee in events.new_nominees],
            dates_changed=[phase.value for phase in events.dates_changed],
            new_winners=[winner.user_id for winner in events.new_winners],
            ending_soon=events.ending_soon,
        )

        if events.cancelled:
            self.phase_scheduler.disarm_all()
            await self.announcer.announce_cancelled(current)
            return events

        if events.dates_changed:
            for phase in events.dates_changed:
                self.phase_scheduler.disarm(phase)
            self.phase_scheduler.arm_all(current)
            await self.announcer.announce_dates_changed(current)

        if events.primary_added:
            self.phase_scheduler.arm_all(current)
            await self.announcer.announce_primary_added(current)

        for nominee in events.new_nominees:
            await self.announcer.announce_new_nominee(current, nominee)

        if events.new_winners:
            await self.announcer.announce_winners(current, current.winners)

        if events.ending_soon:
            await self.announcer.announce_ending_soon(current)

        return events
