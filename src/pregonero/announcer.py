"""Composición y envío de anuncios de la elección.

English:
    Message composers and the per-phase actions handed to the PhaseScheduler.
    Actions re-read the election when they fire, not when they are armed,
    because dates or details may shift in between.
"""

from __future__ import annotations

from typing import Iterable, Optional

import structlog

from .chat import ChatChannel, send_safely
from .dates import format_timestamp
from .errors import FetchError
from .models import Candidate, ElectionSnapshot, Phase
from .phase_scheduler import Action
from .scraper import Scraper

logger = structlog.get_logger(__name__)


def make_url(text: str, url: str) -> str:
    return f"[{text}]({url})" if url else text


def pluralize(count: int, suffix: str = "s") -> str:
    return "" if count == 1 else suffix


def say_phase_opened(snapshot: ElectionSnapshot, phase: Phase) -> str:
    """Mensaje de apertura de fase / Phase opening message."""
    link = snapshot.phase_url(phase)
    if phase is Phase.NOMINATION:
        return (
            f"**The {make_url('nomination phase', link)} is now open.** "
            "Users may now nominate themselves for the election. **You cannot vote yet.**"
        )
    if phase is Phase.PRIMARY:
        return (
            f"**The {make_url('primary phase', link)} is now open.** "
            "You can now vote on the candidates' nomination posts. "
            "Don't forget to come back in a week for the final election phase!"
        )
    if phase is Phase.ELECTION:
        voting = make_url("election's final voting phase", link)
        return (
            f"**The {voting} is now open.** "
            "You may now rank the candidates in your preferred order. Good luck to all candidates!"
        )
    if phase is Phase.ENDED:
        # Winners are announced only by the reconciler's winners event.
        return f"**The {make_url('election', link)} has now ended.** The winners will be announced shortly."
    raise ValueError(f"No opening message for phase {phase.value!r}")


def say_new_nominee(snapshot: ElectionSnapshot, nominee: Candidate) -> str:
    prefix = f"**We have a new {make_url('nomination', snapshot.phase_url(Phase.NOMINATION))}!**"
    return f"{prefix} Please welcome our latest candidate {make_url(nominee.user_name, nominee.permalink)}!"


def say_cancelled(snapshot: ElectionSnapshot) -> str:
    if snapshot.cancelled_notice:
        return snapshot.cancelled_notice
    return f"The {make_url('election', snapshot.url)} has been cancelled."


def say_primary_added(snapshot: ElectionSnapshot) -> str:
    primary = make_url("primary", snapshot.phase_url(Phase.PRIMARY))
    return f"There will be a **{primary}** phase before the election now, as there are more candidates than expected."


def say_schedule(snapshot: ElectionSnapshot) -> str:
    rows = [("Nomination", snapshot.date_nomination)]
    if snapshot.date_primary is not None:
        rows.append(("Primary", snapshot.date_primary))
    rows.extend([("Election", snapshot.date_election), ("End", snapshot.date_ended)])
    lines = [f"    {label}: {format_timestamp(when)}" for label, when in rows]
    return f"The {make_url('election', snapshot.url)} schedule:\n" + "\n".join(lines)


def say_dates_changed(snapshot: ElectionSnapshot) -> str:
    return f"The {make_url('election', snapshot.url)} dates have changed.\n{say_schedule(snapshot)}"


def say_winners(snapshot: ElectionSnapshot, winners: Optional[Iterable[Candidate]] = None) -> str:
    chosen = list(winners if winners is not None else snapshot.winners)
    names = ", ".join(make_url(w.user_name, snapshot.user_url(w.user_id)) for w in chosen)
    message = f"**Congratulations to the winner{pluralize(len(chosen))}** {names}!"
    if snapshot.results_url:
        message += f" You can {make_url('view the results online via OpaVote', snapshot.results_url)}."
    return message


def say_ending_soon(snapshot: ElectionSnapshot) -> str:
    return (
        f"The {make_url('election', snapshot.phase_url(Phase.ELECTION))} is ending soon. "
        "This is the final chance to cast your votes!"
    )


class Announcer:
    """Construye las acciones por fase y envía anuncios.

    English:
        ``build(phase)`` is the PhaseScheduler's action builder. The returned
        action forces a refresh first; a failed refresh is treated as "no
        change" and the last good snapshot is used. ``SendError`` propagates
        so the scheduler logs it.
    """

    def __init__(self, scraper: Scraper, channel: ChatChannel) -> None:
        self.scraper = scraper
        self.channel = channel

    def build(self, phase: Phase) -> Action:
        async def announce_phase() -> None:
            snapshot = await self._fresh_snapshot(phase)
            if snapshot is None:
                logger.error("phase_announcement_no_data", phase=phase.value)
                return
            if snapshot.phase is Phase.CANCELLED:
                logger.info("phase_announcement_skipped_cancelled", phase=phase.value)
                return
            await self.channel.send(say_phase_opened(snapshot, phase))
            logger.info("phase_announced", phase=phase.value, url=snapshot.url)

        announce_phase.__name__ = f"announce_{phase.value}"
        return announce_phase

    async def _fresh_snapshot(self, phase: Phase) -> Optional[ElectionSnapshot]:
        try:
            return await self.scraper.refresh()
        except FetchError as exc:
            logger.warning("phase_refresh_failed", phase=phase.value, error=str(exc))
            return self.scraper.current

    async def announce(self, text: str, *, event: str) -> bool:
        delivered = await send_safely(self.channel, text, event=event)
        if delivered:
            logger.info("announcement_sent", event_type=event)
        return delivered

    async def announce_cancelled(self, snapshot: ElectionSnapshot) -> bool:
        return await self.announce(say_cancelled(snapshot), event="cancelled")

    async def announce_primary_added(self, snapshot: ElectionSnapshot) -> bool:
        return await self.announce(say_primary_added(snapshot), event="primary_added")

    async def announce_dates_changed(self, snapshot: ElectionSnapshot) -> bool:
        return await self.announce(say_dates_changed(snapshot), event="dates_changed")

    async def announce_new_nominee(self, snapshot: ElectionSnapshot, nominee: Candidate) -> bool:
        return await self.announce(say_new_nominee(snapshot, nominee), event="new_nominee")

    async def announce_winners(self, snapshot: ElectionSnapshot, winners: Iterable[Candidate]) -> bool:
        return await self.announce(say_winners(snapshot, winners), event="winners")

    async def announce_ending_soon(self, snapshot: ElectionSnapshot) -> bool:
        return await self.announce(say_ending_soon(snapshot), event="ending_soon")
