"""Pruebas del Scraper.

Tests for the Scraper refresh cycle.
"""

import asyncio

import pytest

from helpers import ELECTION_URL, FakeClock, FakeReader, at, make_raw
from pregonero.errors import FetchError
from pregonero.models import Phase
from pregonero.scraper import Scraper


def test_refresh_keeps_one_generation_of_history():
    clock = FakeClock(at("2024-01-02"))
    reader = FakeReader(make_raw(nominees=[1]), make_raw(nominees=[1, 2]))
    scraper = Scraper(ELECTION_URL + "/", reader, clock=clock)

    first = asyncio.run(scraper.refresh())
    assert scraper.current is first
    assert scraper.previous is None

    clock.advance(minutes=5)
    second = asyncio.run(scraper.refresh())

    assert scraper.current is second
    assert scraper.previous is first
    assert second.previous is first
    assert second.num_nominees == 2
    assert second.captured_at == at("2024-01-02 00:05")
    assert reader.calls == [ELECTION_URL, ELECTION_URL]


def test_failed_refresh_leaves_snapshots_untouched():
    """Español: Un fallo de lectura conserva el snapshot anterior.

    English: A failed read keeps the current snapshot in place.
    """
    clock = FakeClock(at("2024-01-02"))
    reader = FakeReader(make_raw(), FetchError("HTTP 503", url=ELECTION_URL))
    scraper = Scraper(ELECTION_URL, reader, clock=clock)

    first = asyncio.run(scraper.refresh())
    with pytest.raises(FetchError):
        asyncio.run(scraper.refresh())

    assert scraper.current is first
    assert scraper.previous is None
    assert scraper.current.phase is Phase.NOMINATION


def test_unparsable_dates_surface_as_fetch_error():
    reader = FakeReader(make_raw(date_ended="whenever"))
    scraper = Scraper(ELECTION_URL, reader, clock=FakeClock(at("2024-01-02")))

    with pytest.raises(FetchError):
        asyncio.run(scraper.refresh())
    assert scraper.current is None
