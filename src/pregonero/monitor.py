"""Contexto propietario del ciclo de relectura y los temporizadores de fase.

English:
    Owning context for one election: scraper, phase scheduler, announcer,
    reconciler and the periodic rescrape tick, all sharing a single
    APScheduler instance. ``shutdown`` releases the tick and every timer.

Example usage:
    settings = load_settings()
    async with HtmlPageReader() as reader:
        monitor = ElectionMonitor(settings, reader, channel)
        await monitor.run_until_stopped()
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Callable, Optional

import structlog
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .announcer import Announcer
from .chat import ChatChannel
from .config import PregoneroSettings
from .dates import utcnow
from .errors import FetchError
from .logging import bind_context
from .models import ElectionSnapshot, Phase
from .page_reader import PageReader
from .phase_scheduler import PhaseScheduler
from .reconciler import ReconcileEvents, Reconciler
from .scraper import Scraper

logger = structlog.get_logger(__name__)

RESCRAPE_JOB_ID = "rescrape"


class ElectionMonitor:
    """Vigila una elección y anuncia sus cambios.

    English:
        Single logical thread of control: the tick and the phase actions
        interleave only at await points, and snapshots are replaced by
        reference, so the reconciler always sees a complete pair.
    """

    def __init__(
        self,
        settings: PregoneroSettings,
        reader: PageReader,
        channel: ChatChannel,
        *,
        scheduler: Optional[AsyncIOScheduler] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.settings = settings
        self._clock = clock
        self.scheduler = scheduler or AsyncIOScheduler(timezone="UTC")
        self.scraper = Scraper(settings.ELECTION_URL, reader, clock=clock)
        self.announcer = Announcer(self.scraper, channel)
        self.phase_scheduler = PhaseScheduler(
            self.scheduler,
            self.announcer.build,
            clock=clock,
            misfire_grace_seconds=settings.MISFIRE_GRACE_SECONDS,
        )
        self.reconciler = Reconciler(
            self.phase_scheduler,
            self.announcer,
            ending_threshold=settings.ending_threshold,
            clock=clock,
        )
        self.log = bind_context(logger, election_url=settings.ELECTION_URL)
        self._last_reconciled: Optional[ElectionSnapshot] = None
        self._interval_minutes = settings.SCRAPE_INTERVAL_MINUTES
        self._ticking = False
        self._closed = False
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def ticking(self) -> bool:
        return self._ticking

    @property
    def interval_minutes(self) -> float:
        return self._interval_minutes

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> Optional[ElectionSnapshot]:
        """Lectura inicial, armado de fases y arranque del tick.

        English: The schedule is rebuilt from the fresh read; nothing is
        persisted between runs.
        """
        snapshot: Optional[ElectionSnapshot] = None
        try:
            snapshot = await self.scraper.refresh()
        except FetchError as exc:
            self.log.error("monitor_initial_scrape_failed", error=str(exc))

        if snapshot is not None:
            self._last_reconciled = snapshot
            armed = self.phase_scheduler.arm_all(snapshot)
            self.log.info(
                "monitor_started",
                phase=snapshot.phase.value,
                armed=[phase.value for phase, ok in armed.items() if ok],
            )

        if snapshot is not None and snapshot.phase is Phase.CANCELLED:
            self.log.info("monitor_election_already_cancelled")
        else:
            self._schedule_tick(self.interval_for(snapshot))

        if not self.scheduler.running:
            self.scheduler.start()
        return snapshot

    async def tick(self) -> Optional[ReconcileEvents]:
        """Una iteración de relectura y reconciliación.

        English: A failed read skips the tick; the previous snapshot stays
        current and is treated as "no change".
        """
        if self._closed:
            return None
        try:
            snapshot = await self.scraper.refresh()
        except FetchError as exc:
            self.log.warning("monitor_tick_skipped", error=str(exc))
            return None

        events = await self.reconciler.reconcile(self._last_reconciled, snapshot)
        self._last_reconciled = snapshot

        if events.stop_requested:
            self.stop_ticking()
            if not any(entry.armed for entry in self.phase_scheduler.entries.values()):
                self._request_stop()
            return events

        self.phase_scheduler.arm_all(snapshot)
        self._adapt_interval(snapshot)
        return events

    def interval_for(self, snapshot: Optional[ElectionSnapshot]) -> float:
        """Intervalo de relectura adaptado a la fase.

        English: Short while voting closes, shortest while results are
        pending, long once the election is over.
        """
        settings = self.settings
        if snapshot is None:
            return settings.SCRAPE_INTERVAL_MINUTES
        if snapshot.phase is Phase.ENDED and not snapshot.winners:
            return settings.RESULTS_INTERVAL_MINUTES
        if snapshot.phase in (Phase.ENDED, Phase.CANCELLED):
            return settings.IDLE_INTERVAL_MINUTES
        if snapshot.is_ending(self._clock(), settings.ending_threshold):
            return settings.FAST_INTERVAL_MINUTES
        return settings.SCRAPE_INTERVAL_MINUTES

    def stop_ticking(self) -> None:
        if not self._ticking:
            return
        try:
            self.scheduler.remove_job(RESCRAPE_JOB_ID)
        except JobLookupError:
            self.log.debug("monitor_tick_job_missing")
        self._ticking = False
        self.log.info("monitor_tick_stopped")

    async def shutdown(self) -> None:
        """Detiene el tick y todos los temporizadores.

        English: Armed timers are cancelled; actions already in flight are
        allowed to finish.
        """
        if self._closed:
            return
        self._closed = True
        self.stop_ticking()
        await self.phase_scheduler.shutdown()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        self._request_stop()
        self.log.info("monitor_shutdown")

    async def run_until_stopped(self) -> None:
        self._stop_event = asyncio.Event()
        await self.start()
        try:
            await self._stop_event.wait()
        finally:
            await self.shutdown()

    def request_stop(self) -> None:
        self._request_stop()

    def _request_stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()

    def _schedule_tick(self, minutes: float) -> None:
        self.scheduler.add_job(
            self.tick,
            trigger=IntervalTrigger(minutes=minutes),
            id=RESCRAPE_JOB_ID,
            name="rescrape election page",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._interval_minutes = minutes
        self._ticking = True
        self.log.info("monitor_tick_scheduled", interval_minutes=minutes)

    def _adapt_interval(self, snapshot: ElectionSnapshot) -> None:
        minutes = self.interval_for(snapshot)
        if not self._ticking or minutes == self._interval_minutes:
            return
        self.scheduler.reschedule_job(RESCRAPE_JOB_ID, trigger=IntervalTrigger(minutes=minutes))
        self.log.info("monitor_interval_changed", previous=self._interval_minutes, interval_minutes=minutes)
        self._interval_minutes = minutes
