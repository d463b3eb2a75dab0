"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/pregonero/phase_scheduler.py`.
Temporizadores de un solo disparo por fase (nominación, primaria, elección,
fin) sobre APScheduler. Cada fase se arma como máximo una vez y dispara como
máximo una vez hasta un reinicio explícito.

Componentes detectados:
  - PHASE_SCHEDULE
  - ScheduleEntry
  - PhaseScheduler

======================== ENGLISH ========================
File: `src/pregonero/phase_scheduler.py`.
One-shot timers per phase (nomination, primary, election, ended) on top of
APScheduler. Each phase is armed at most once and fires at most once until an
explicit reset.

Detected components:
  - PHASE_SCHEDULE
  - ScheduleEntry
  - PhaseScheduler
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from operator import attrgetter
from typing import Awaitable, Callable, Dict, Optional, Set, Tuple

import structlog
from apscheduler.events import EVENT_JOB_MISSED, JobExecutionEvent
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.date import DateTrigger

from .dates import ensure_utc, utcnow
from .models import ElectionSnapshot, Phase

logger = structlog.get_logger(__name__)

Action = Callable[[], Awaitable[None]]
ActionBuilder = Callable[[Phase], Action]
DateSelector = Callable[[ElectionSnapshot], Optional[datetime]]

DEFAULT_MISFIRE_GRACE_SECONDS = 300
JOB_ID_PREFIX = "phase:"

# Tabla de fases programables / Table of schedulable phases.
PHASE_SCHEDULE: Tuple[Tuple[Phase, DateSelector], ...] = (
    (Phase.NOMINATION, attrgetter("date_nomination")),
    (Phase.PRIMARY, attrgetter("date_primary")),
    (Phase.ELECTION, attrgetter("date_election")),
    (Phase.ENDED, attrgetter("date_ended")),
)


@dataclass
class ScheduleEntry:
    """Estado de programación de una fase.

    English:
        Lifecycle: created unarmed, armed once when its date is known and in
        the future, fired when the timer elapses, cleared only by ``disarm``.
    """

    target_phase: Phase
    fires_at: Optional[datetime] = None
    armed: bool = False
    fired: bool = False
    job_id: Optional[str] = None

    def reset(self) -> None:
        self.fires_at = None
        self.armed = False
        self.fired = False
        self.job_id = None


class PhaseScheduler:
    """Programa anuncios de cambio de fase.

    English:
        Owns the four phase entries. Jobs live in the shared APScheduler
        instance; the entries are the source of truth for armed/fired state.
    """

    def __init__(
        self,
        scheduler: BaseScheduler,
        action_builder: Optional[ActionBuilder] = None,
        *,
        clock: Callable[[], datetime] = utcnow,
        misfire_grace_seconds: int = DEFAULT_MISFIRE_GRACE_SECONDS,
    ) -> None:
        self._scheduler = scheduler
        self._action_builder = action_builder
        self._clock = clock
        self._misfire_grace_seconds = misfire_grace_seconds
        self._entries: Dict[Phase, ScheduleEntry] = {
            phase: ScheduleEntry(target_phase=phase) for phase, _ in PHASE_SCHEDULE
        }
        self._in_flight: Set[asyncio.Task] = set()
        self._closed = False
        scheduler.add_listener(self._on_job_missed, EVENT_JOB_MISSED)

    def set_action_builder(self, action_builder: ActionBuilder) -> None:
        self._action_builder = action_builder

    def entry(self, phase: Phase) -> ScheduleEntry:
        try:
            return self._entries[phase]
        except KeyError as exc:
            raise ValueError(f"Phase {phase.value!r} has no schedule entry") from exc

    @property
    def entries(self) -> Dict[Phase, ScheduleEntry]:
        return dict(self._entries)

    def is_armed(self, phase: Phase) -> bool:
        return self.entry(phase).armed

    def has_fired(self, phase: Phase) -> bool:
        return self.entry(phase).fired

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def arm(self, phase: Phase, fires_at: Optional[datetime], action: Action) -> bool:
        """Arma el temporizador de una fase.

        English:
            No-op when the entry is already armed or fired, when the date is
            unknown, or when it is not in the future (the page would already
            reflect that phase). Returns True only when a job was added.
        """
        entry = self.entry(phase)
        if self._closed:
            logger.debug("phase_arm_refused_closed", phase=phase.value)
            return False
        if entry.armed or entry.fired:
            return False
        if fires_at is None:
            logger.debug("phase_arm_skipped_no_date", phase=phase.value)
            return False

        fires_at = ensure_utc(fires_at)
        now = self._clock()
        if fires_at <= now:
            logger.debug("phase_arm_skipped_past", phase=phase.value, fires_at=fires_at.isoformat())
            return False

        job_id = f"{JOB_ID_PREFIX}{phase.value}"
        self._scheduler.add_job(
            self._fire,
            trigger=DateTrigger(run_date=fires_at),
            args=(phase, action),
            id=job_id,
            name=f"announce {phase.value}",
            replace_existing=True,
            misfire_grace_time=self._misfire_grace_seconds,
        )
        entry.fires_at = fires_at
        entry.armed = True
        entry.job_id = job_id
        logger.info("phase_armed", phase=phase.value, fires_at=fires_at.isoformat())
        return True

    def arm_all(self, snapshot: ElectionSnapshot) -> Dict[Phase, bool]:
        """Arma todas las fases con fecha futura conocida.

        English:
            Idempotent, safe to call on every rescrape tick. The primary entry
            is skipped when ``date_primary`` is absent; nothing is armed for a
            cancelled election.
        """
        if self._action_builder is None:
            raise RuntimeError("PhaseScheduler.arm_all requires an action builder")

        results: Dict[Phase, bool] = {phase: False for phase, _ in PHASE_SCHEDULE}
        if snapshot.phase is Phase.CANCELLED:
            logger.info("phase_arm_all_skipped_cancelled", url=snapshot.url)
            return results

        for phase, select_date in PHASE_SCHEDULE:
            fires_at = select_date(snapshot)
            if fires_at is None:
                continue
            entry = self._entries[phase]
            if entry.armed or entry.fired:
                continue
            results[phase] = self.arm(phase, fires_at, self._action_builder(phase))
        return results

    def disarm(self, phase: Phase) -> bool:
        """Cancela el temporizador pendiente y reinicia la entrada.

        English: Returns True when a pending job was cancelled.
        """
        entry = self.entry(phase)
        cancelled = False
        if entry.armed and entry.job_id is not None:
            try:
                self._scheduler.remove_job(entry.job_id)
                cancelled = True
            except JobLookupError:
                logger.debug("phase_job_already_gone", phase=phase.value, job_id=entry.job_id)
        entry.reset()
        logger.info("phase_disarmed", phase=phase.value, cancelled=cancelled)
        return cancelled

    def disarm_all(self) -> Dict[Phase, bool]:
        return {phase: self.disarm(phase) for phase, _ in PHASE_SCHEDULE}

    async def shutdown(self) -> None:
        """Desarma todo y espera las acciones en curso.

        English: Actions already running are allowed to complete.
        """
        self._closed = True
        self.disarm_all()
        if self._in_flight:
            logger.info("phase_actions_draining", count=len(self._in_flight))
            await asyncio.gather(*self._in_flight, return_exceptions=True)

    async def _fire(self, phase: Phase, action: Action) -> None:
        entry = self._entries[phase]
        if not entry.armed:
            logger.warning("phase_fire_ignored_unarmed", phase=phase.value)
            return
        # Fired before the action runs so a concurrent arm_all cannot re-arm.
        entry.armed = False
        entry.fired = True
        entry.job_id = None
        logger.info("phase_fired", phase=phase.value)

        task = asyncio.ensure_future(self._run_action(phase, action))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        await asyncio.shield(task)

    async def _run_action(self, phase: Phase, action: Action) -> None:
        try:
            await action()
        except Exception as exc:  # noqa: BLE001
            logger.error("phase_action_failed", phase=phase.value, error=str(exc), exc_info=True)
        else:
            logger.info("phase_action_complete", phase=phase.value)

    def _on_job_missed(self, event: JobExecutionEvent) -> None:
        if not event.job_id.startswith(JOB_ID_PREFIX):
            return
        phase = Phase(event.job_id[len(JOB_ID_PREFIX) :])
        entry = self._entries.get(phase)
        if entry is None or not entry.armed:
            return
        entry.armed = False
        entry.fired = True
        entry.job_id = None
        logger.warning(
            "phase_announcement_missed",
            phase=phase.value,
            scheduled_for=event.scheduled_run_time.isoformat() if event.scheduled_run_time else None,
        )
