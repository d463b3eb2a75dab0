"""Errores del motor de anuncios.

English:
    Error taxonomy for the announcement engine. None of these is fatal to the
    running process; the worst outcome is a missed or stale announcement.
"""

from __future__ import annotations

from typing import Optional


class PregoneroError(Exception):
    """Error general de Pregonero.

    English: Base error for Pregonero.
    """


class ConfigError(PregoneroError):
    """Configuración inválida.

    English: Invalid configuration, raised at startup only.
    """


class FetchError(PregoneroError):
    """La página no se pudo leer o interpretar.

    English: The election page was unreachable or unparsable. Callers keep the
    previous snapshot and wait for the next tick.
    """

    def __init__(self, message: str, *, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.url = url


class SendError(PregoneroError):
    """Falló el envío de un anuncio.

    English: Announcement delivery failed. Logged, never retried.
    """

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MissingFieldError(PregoneroError):
    """Falta un campo opcional de la página.

    English: An optional page field is absent; the snapshot attribute degrades
    to ``None`` or empty instead of aborting the read.
    """

    def __init__(self, field_name: str, reason: str = "missing") -> None:
        super().__init__(f"{field_name}: {reason}")
        self.field_name = field_name
        self.reason = reason
