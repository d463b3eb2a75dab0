"""Pruebas del contexto propietario ElectionMonitor.

Tests for the ElectionMonitor owning context: start, tick, adaptive interval
and shutdown.
"""

import asyncio
from datetime import timedelta

from helpers import ELECTION_URL, FakeClock, FakeReader, RecordingChannel, at, make_raw
from pregonero.config import PregoneroSettings
from pregonero.dates import utcnow
from pregonero.errors import FetchError
from pregonero.models import ElectionSnapshot, Phase
from pregonero.monitor import RESCRAPE_JOB_ID, ElectionMonitor

CANCELLED = "This election has been cancelled."


def _settings(**overrides):
    return PregoneroSettings(ELECTION_URL=ELECTION_URL, **overrides)


def _relative_raw(now, **kwargs):
    """Español: Fechas relativas a ``now`` (días).

    English: Raw fields with dates given as day offsets from ``now``.
    """
    offsets = {"nomination": -1, "election": 6, "ended": 13}
    offsets.update({key: kwargs.pop(key) for key in list(kwargs) if key in offsets or key == "primary"})
    dates = {key: now + timedelta(days=value) for key, value in offsets.items() if value is not None}
    return make_raw(**dates, **kwargs)


def test_start_arms_phases_and_schedules_tick():
    now = utcnow().replace(microsecond=0)
    clock = FakeClock(now)
    reader = FakeReader(_relative_raw(now, nominees=[1]))
    monitor = ElectionMonitor(_settings(), reader, RecordingChannel(), clock=clock)

    async def scenario():
        snapshot = await monitor.start()
        try:
            assert snapshot.phase is Phase.NOMINATION
            assert monitor.ticking
            assert monitor.interval_minutes == 5
            assert monitor.scheduler.running
            assert monitor.scheduler.get_job(RESCRAPE_JOB_ID) is not None
            assert monitor.scheduler.get_job("phase:election") is not None
            assert monitor.phase_scheduler.is_armed(Phase.ENDED)
        finally:
            await monitor.shutdown()

    asyncio.run(scenario())

    assert monitor.closed
    assert not monitor.ticking
    assert not any(entry.armed for entry in monitor.phase_scheduler.entries.values())
    assert not monitor.scheduler.running


def test_start_survives_initial_fetch_error():
    reader = FakeReader(FetchError("HTTP 503", url=ELECTION_URL))
    monitor = ElectionMonitor(_settings(), reader, RecordingChannel(), clock=FakeClock(utcnow()))

    async def scenario():
        snapshot = await monitor.start()
        try:
            assert snapshot is None
            assert monitor.ticking
        finally:
            await monitor.shutdown()

    asyncio.run(scenario())


def test_tick_reconciles_against_previous_read():
    """Español: El segundo tick anuncia al nuevo candidato.

    English: The second tick announces the newly nominated candidate.
    """
    clock = FakeClock(at("2024-01-02"))
    channel = RecordingChannel()
    reader = FakeReader(make_raw(nominees=[1, 2]), make_raw(nominees=[1, 2, 3]))
    monitor = ElectionMonitor(_settings(), reader, channel, clock=clock)

    async def scenario():
        first = await monitor.tick()
        clock.advance(minutes=5)
        second = await monitor.tick()
        return first, second

    first, second = asyncio.run(scenario())

    assert first.empty
    assert [nominee.user_id for nominee in second.new_nominees] == [3]
    assert len(channel.messages) == 1
    assert monitor.phase_scheduler.is_armed(Phase.ELECTION)


def test_tick_skips_failed_read():
    clock = FakeClock(at("2024-01-02"))
    reader = FakeReader(make_raw(nominees=[1]), FetchError("timeout"), make_raw(nominees=[1, 2]))
    channel = RecordingChannel()
    monitor = ElectionMonitor(_settings(), reader, channel, clock=clock)

    async def scenario():
        await monitor.tick()
        skipped = await monitor.tick()
        current = monitor.scraper.current
        resumed = await monitor.tick()
        return skipped, current, resumed

    skipped, current, resumed = asyncio.run(scenario())

    assert skipped is None
    assert current.num_nominees == 1
    assert [nominee.user_id for nominee in resumed.new_nominees] == [2]


def test_cancellation_stops_the_monitor():
    now = utcnow().replace(microsecond=0)
    clock = FakeClock(now)
    channel = RecordingChannel()
    reader = FakeReader(_relative_raw(now), _relative_raw(now, cancelled_notice=CANCELLED))
    monitor = ElectionMonitor(_settings(), reader, channel, clock=clock)

    async def scenario():
        runner = asyncio.ensure_future(monitor.run_until_stopped())
        while not monitor.ticking:
            await asyncio.sleep(0)
        events = await monitor.tick()
        await asyncio.wait_for(runner, timeout=5)
        return events

    events = asyncio.run(scenario())

    assert events.cancelled
    assert channel.messages == [CANCELLED]
    assert monitor.closed
    assert not monitor.ticking
    assert not any(entry.armed for entry in monitor.phase_scheduler.entries.values())


def test_interval_adapts_while_voting_closes():
    now = utcnow().replace(microsecond=0)
    clock = FakeClock(now)
    channel = RecordingChannel()
    raw = make_raw(
        nomination=now - timedelta(days=8),
        election=now - timedelta(days=1),
        ended=now + timedelta(hours=1),
    )
    monitor = ElectionMonitor(_settings(), FakeReader(raw), channel, clock=clock)

    async def scenario():
        await monitor.start()
        try:
            assert monitor.interval_minutes == 5
            clock.advance(minutes=50)
            events = await monitor.tick()
            return events, monitor.scheduler.get_job(RESCRAPE_JOB_ID).trigger.interval
        finally:
            await monitor.shutdown()

    events, interval = asyncio.run(scenario())

    assert events.ending_soon
    assert monitor.interval_minutes == 2
    assert interval == timedelta(minutes=2)
    assert "ending soon" in channel.messages[0]


def test_winners_stop_ticking_after_results():
    now = utcnow().replace(microsecond=0)
    clock = FakeClock(now)
    channel = RecordingChannel()
    dates = {
        "nomination": now - timedelta(days=14),
        "election": now - timedelta(days=7),
        "ended": now - timedelta(hours=1),
    }
    reader = FakeReader(make_raw(nominees=[1, 2], **dates))
    monitor = ElectionMonitor(_settings(), reader, channel, clock=clock)

    async def scenario():
        await monitor.start()
        try:
            assert monitor.interval_minutes == 0.5
            reader.push(make_raw(nominees=[1, 2], winner_ids=[2], **dates))
            clock.advance(minutes=1)
            return await monitor.tick()
        finally:
            await monitor.shutdown()

    events = asyncio.run(scenario())

    assert [winner.user_id for winner in events.new_winners] == [2]
    assert not monitor.ticking
    assert "Congratulations" in channel.messages[0]


def test_interval_for_each_phase():
    clock = FakeClock(at("2024-01-14 23:50"))
    monitor = ElectionMonitor(_settings(), FakeReader(make_raw()), RecordingChannel(), clock=clock)

    def snapshot(raw, when):
        return ElectionSnapshot.from_raw(raw, ELECTION_URL, captured_at=at(when))

    assert monitor.interval_for(None) == 5
    assert monitor.interval_for(snapshot(make_raw(), "2024-01-14 23:50")) == 2
    assert monitor.interval_for(snapshot(make_raw(), "2024-01-16")) == 0.5
    assert monitor.interval_for(snapshot(make_raw(nominees=[1], winner_ids=[1]), "2024-01-16")) == 10
    assert monitor.interval_for(snapshot(make_raw(cancelled_notice=CANCELLED), "2024-01-16")) == 10

    clock.set("2024-01-02")
    assert monitor.interval_for(snapshot(make_raw(), "2024-01-02")) == 5


def test_winners_congratulated_once_when_end_timer_sees_them():
    """Español: Los ganadores se felicitan una sola vez.

    English: When the ended timer's fresh read already lists winners, the
    ended message defers them and the next tick congratulates them once.
    """
    now = utcnow().replace(microsecond=0)
    clock = FakeClock(now)
    channel = RecordingChannel()
    dates = {
        "nomination": now - timedelta(days=8),
        "election": now - timedelta(days=1),
        "ended": now + timedelta(hours=1),
    }
    reader = FakeReader(make_raw(nominees=[1, 2], **dates))
    monitor = ElectionMonitor(_settings(), reader, channel, clock=clock)

    async def scenario():
        await monitor.start()
        try:
            job = monitor.scheduler.get_job("phase:ended")
            reader.push(make_raw(nominees=[1, 2], winner_ids=[2], **dates))
            clock.advance(hours=2)
            await job.func(*job.args)
            return await monitor.tick()
        finally:
            await monitor.shutdown()

    events = asyncio.run(scenario())

    assert [winner.user_id for winner in events.new_winners] == [2]
    assert sum("Congratulations" in message for message in channel.messages) == 1
    assert "has now ended" in channel.messages[0]
    assert "Congratulations" in channel.messages[-1]
