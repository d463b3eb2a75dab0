"""Utilidades de fechas en UTC.

UTC date helpers for page timestamps.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from dateutil import parser as date_parser


def utcnow() -> datetime:
    """/** Obtiene hora UTC actual. / Get current UTC time. **/"""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes are taken as UTC; aware ones are converted."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: str | datetime) -> datetime:
    """Parsea una fecha publicada por la página.

    English: Parse a page date string (``2024-01-01 20:00:00Z``, ISO-8601 or a
    bare date) into an aware UTC datetime. Raises ``ValueError`` on garbage.
    """
    if isinstance(value, datetime):
        return ensure_utc(value)
    text = str(value).strip()
    if not text:
        raise ValueError("empty timestamp")
    try:
        parsed = date_parser.isoparse(text)
    except ValueError:
        try:
            parsed = date_parser.parse(text)
        except (OverflowError, date_parser.ParserError) as exc:
            raise ValueError(f"invalid timestamp: {text!r}") from exc
    return ensure_utc(parsed)


def parse_optional_timestamp(value: Optional[str | datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return parse_timestamp(value)


def format_timestamp(value: datetime) -> str:
    """Format as ``YYYY-MM-DD HH:MM:SSZ`` for chat messages."""
    return ensure_utc(value).strftime("%Y-%m-%d %H:%M:%SZ")
