"""Lectura de la página pública de la elección.

Election page reader.

Example usage:
    async with HtmlPageReader(timeout_seconds=30) as reader:
        raw = await reader.fetch("https://stackoverflow.com/election/15")
"""

from __future__ import annotations

import re
from typing import List, Optional, Protocol

import httpx
import structlog
from bs4 import BeautifulSoup, NavigableString, Tag
from pydantic import ValidationError

from .errors import FetchError
from .schemas import RawCandidate, RawFields

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_USER_AGENT = "pregonero/0.1 (+election announcements)"

_USER_ID = re.compile(r"/users/(\d+)")
_SCORE = re.compile(r"(\d+)/\d+\s*$")
_REP_NOMINATE = re.compile(r"(?:more than )?(\d+(?:,\d+)*) reputation (?:may|to) nominate", re.M)
_REP_VOTE = re.compile(r"(?:more than )?(\d+(?:,\d+)*) reputation (?:may|to) vote", re.M)


class PageReader(Protocol):
    """Contrato del lector de páginas.

    English: Collaborator contract. ``fetch`` returns the raw field set for one
    read or raises ``FetchError``.
    """

    async def fetch(self, url: str) -> RawFields: ...


def _direct_text(element: Tag) -> str:
    parts = [str(child).strip() for child in element.children if isinstance(child, NavigableString)]
    return " ".join(part for part in parts if part).strip()


def _parse_rep(expr: re.Pattern[str], text: str) -> int:
    match = expr.search(text)
    if not match:
        return 0
    return int(re.sub(r"\D", "", match.group(1)) or 0)


def _user_id_from_href(href: Optional[str]) -> Optional[int]:
    if not href:
        return None
    match = _USER_ID.search(href)
    return int(match.group(1)) if match else None


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    digits = re.sub(r"\D", "", value)
    return int(digits) if digits else None


def _cancelled_markup(status: Tag) -> str:
    """Convierte el aviso de cancelación a texto apto para chat.

    English: Renders the cancellation notice with its meta link as Markdown.
    """
    text = status.get_text(" ", strip=True)
    link = status.find("a", href=True)
    if link is None:
        return text
    link_text = link.get_text(" ", strip=True)
    if link_text and link_text in text:
        text = text[: text.index(link_text)].rstrip()
    return f"{text} See [meta]({link['href']}) for details."


def parse_election_page(html: str, page_url: str) -> RawFields:
    """Extrae los campos crudos del HTML de la página de elección.

    English:
        Parse the election page markup. The sidebar lists five values when the
        election has no primary and six when it has one; the last two values
        are the candidate and position counts. The second status notice holds
        results, cancellation and winners once the election is over.
    """
    soup = BeautifulSoup(html, "html.parser")

    meta_elems = soup.select("#content .flex--item.mt4 .d-flex.gs4 .flex--item:nth-child(2)")
    meta_vals: List[Optional[str]] = [
        (elem.get("title") or elem.get_text(strip=True)) for elem in meta_elems
    ]
    if len(meta_vals) < 5:
        raise FetchError(f"Unexpected election metadata ({len(meta_vals)} values)", url=page_url)
    num_candidates, num_positions = meta_vals[-2], meta_vals[-1]
    if len(meta_vals) == 5:
        meta_vals.insert(1, None)
    date_nomination, date_primary, date_election, date_ended = meta_vals[:4]

    site_meta = soup.find("meta", attrs={"property": "og:site_name"})
    site_name = str(site_meta.get("content", "")) if site_meta else ""
    site_name = site_name.replace("Stack Exchange", "").strip()

    heading = soup.select_one("#content h1")
    title = heading.get_text(strip=True) if heading else ""

    notices = soup.select("#mainbar aside[role=status]")
    conditions_text = notices[0].get_text(" ", strip=True) if notices else ""

    nominees: List[RawCandidate] = []
    for row in soup.select("#mainbar .candidate-row"):
        details = row.select_one(".user-details")
        link = details.find("a", href=True) if details else None
        user_id = _user_id_from_href(link["href"]) if link else None
        if details is None or link is None or user_id is None:
            logger.warning("nominee_row_skipped", row_id=row.get("id"), url=page_url)
            continue
        score_elem = row.select_one(".candidate-score-breakdown b")
        score_match = _SCORE.search(score_elem.get_text(strip=True)) if score_elem else None
        try:
            nominee = RawCandidate(
                user_id=user_id,
                user_name=link.get_text(strip=True),
                years_on_site=_direct_text(details),
                score=int(score_match.group(1)) if score_match else 0,
                permalink=f"{page_url}#{row.get('id', '')}",
            )
        except ValidationError as exc:
            logger.warning("nominee_row_skipped", row_id=row.get("id"), url=page_url, error=str(exc))
            continue
        nominees.append(nominee)

    chat_link = soup.select_one('#mainbar .s-prose a[href*="/rooms/"]')
    chat_url = str(chat_link["href"]).replace("/info/", "/") if chat_link else None

    results_url: Optional[str] = None
    cancelled_notice: Optional[str] = None
    winner_ids: Optional[List[int]] = None
    if len(notices) > 1:
        items = notices[1].select(".flex--item")
        status = items[0] if items else None
        results = items[1] if len(items) > 1 else None
        stats = items[2] if len(items) > 2 else None

        if results is not None:
            results_link = results.find("a", href=True)
            href = str(results_link["href"]) if results_link else ""
            results_url = href if "opavote.com" in href else None

        if status is not None and "cancelled" in status.get_text(" ", strip=True):
            cancelled_notice = _cancelled_markup(status)
        elif stats is not None:
            ids = (_user_id_from_href(a.get("href")) for a in stats.find_all("a", href=True))
            winner_ids = [user_id for user_id in ids if user_id is not None]

    try:
        return RawFields(
            site_name=site_name,
            title=title,
            date_nomination=date_nomination or "",
            date_primary=date_primary,
            date_election=date_election or "",
            date_ended=date_ended or "",
            num_candidates=_parse_int(num_candidates),
            num_positions=_parse_int(num_positions),
            rep_nominate=_parse_rep(_REP_NOMINATE, conditions_text),
            rep_vote=_parse_rep(_REP_VOTE, conditions_text),
            nominees=nominees,
            winner_ids=winner_ids,
            results_url=results_url,
            cancelled_notice=cancelled_notice,
            chat_url=chat_url,
        )
    except ValidationError as exc:
        raise FetchError(f"Election page failed validation: {exc}", url=page_url) from exc


class HtmlPageReader:
    """Lector HTTP de la página de elección con httpx y BeautifulSoup.

    English: HTTP page reader. Any transport, status or markup failure raises
    ``FetchError``; retries are left to the next periodic tick.
    """

    def __init__(
        self,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            headers={"User-Agent": user_agent},
            follow_redirects=True,
        )

    async def __aenter__(self) -> "HtmlPageReader":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch(self, url: str) -> RawFields:
        page_url = f"{url.rstrip('/')}?tab=nomination"
        try:
            response = await self._client.get(page_url)
        except httpx.HTTPError as exc:
            raise FetchError(f"Request to {page_url} failed: {exc}", url=url) from exc

        if response.status_code >= 400:
            raise FetchError(f"HTTP {response.status_code} from {page_url}", url=url)

        try:
            return parse_election_page(response.text, page_url)
        except FetchError:
            raise
        except (AttributeError, IndexError, KeyError, TypeError, ValueError) as exc:
            raise FetchError(f"Unexpected markup at {page_url}: {exc}", url=url) from exc
