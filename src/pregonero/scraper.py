"""Relectura de la página de elección con historial de una generación.

English:
    Orchestrates one PageReader call per refresh and keeps the previous
    successful snapshot for diffing.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

import structlog

from .dates import utcnow
from .errors import FetchError
from .models import ElectionSnapshot
from .page_reader import PageReader

logger = structlog.get_logger(__name__)


class Scraper:
    """Mantiene el snapshot actual y el anterior.

    English:
        ``refresh`` replaces the current snapshot by reference only after a
        full, successful read, so readers never observe a half-built pair.
    """

    def __init__(
        self,
        url: str,
        reader: PageReader,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.url = url.rstrip("/")
        self._reader = reader
        self._clock = clock
        self._current: Optional[ElectionSnapshot] = None
        self._previous: Optional[ElectionSnapshot] = None

    @property
    def current(self) -> Optional[ElectionSnapshot]:
        return self._current

    @property
    def previous(self) -> Optional[ElectionSnapshot]:
        return self._previous

    async def refresh(self) -> ElectionSnapshot:
        """Lee la página y publica un nuevo snapshot.

        English:
            Raises ``FetchError`` when the page cannot be read or parsed; the
            current snapshot is left untouched in that case.
        """
        try:
            raw = await self._reader.fetch(self.url)
            snapshot = ElectionSnapshot.from_raw(
                raw,
                self.url,
                captured_at=self._clock(),
                previous=self._current,
            )
        except FetchError as exc:
            logger.warning("scrape_failed", url=self.url, error=str(exc))
            raise

        self._previous, self._current = self._current, snapshot
        logger.info(
            "scrape_success",
            url=self.url,
            phase=snapshot.phase.value,
            candidates=snapshot.num_nominees,
            winners=len(snapshot.winners),
            captured_at=snapshot.captured_at.isoformat(),
        )
        return snapshot
