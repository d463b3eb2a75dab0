"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/pregonero/logging.py`.
Configuración de structlog sobre logging estándar, con redacción de secretos.

Componentes detectados:
  - SensitiveDataFilter
  - setup_logging
  - bind_context

======================== ENGLISH ========================
File: `src/pregonero/logging.py`.
structlog configuration on top of stdlib logging, with secret redaction.

Detected components:
  - SensitiveDataFilter
  - setup_logging
  - bind_context
"""

from __future__ import annotations

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Iterable, Optional

import structlog


class SensitiveDataFilter(logging.Filter):
    """Filtro seguro para redacción de secretos / Secure filter to redact secrets.

    English: httpx logs full request URLs, and the Telegram Bot API carries the
    bot token in the path.
    """

    def __init__(self, sensitive_values: Iterable[str]) -> None:
        super().__init__()
        self._sensitive_values = [value for value in sensitive_values if value]

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._sensitive_values:
            return True
        message = str(record.getMessage())
        for value in self._sensitive_values:
            if value in message:
                message = message.replace(value, "[REDACTED]")
        record.msg = message
        record.args = ()
        return True


def setup_logging(
    log_level: str = "INFO",
    log_dir: Optional[Path] = None,
    *,
    secrets: Iterable[str] = (),
) -> structlog.BoundLogger:
    """Configura structlog y handlers de consola/archivo.

    English: Configure structlog and console/file handlers. The file handler is
    only added when ``log_dir`` is given.
    """
    redact_filter = SensitiveDataFilter(secrets)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(
            TimedRotatingFileHandler(
                log_dir / "pregonero.log",
                when="midnight",
                backupCount=30,
                encoding="utf-8",
            )
        )
    for handler in handlers:
        handler.addFilter(redact_filter)

    logging.basicConfig(
        level=log_level.upper(),
        handlers=handlers,
        format="%(message)s",
        force=True,
    )

    structlog.configure(
        processors=[
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(log_level.upper())),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger("pregonero")


def bind_context(
    logger: structlog.BoundLogger,
    election_url: Optional[str] = None,
    phase: Optional[str] = None,
) -> structlog.BoundLogger:
    """Adjunta contexto estándar al logger.

    English: Bind standard context to the logger.
    """
    context: dict[str, Any] = {}
    if election_url:
        context["election_url"] = election_url
    if phase:
        context["phase"] = phase
    return logger.bind(**context)
