# Config Module
# AUTO-DOC-INDEX
#
# ES: Índice rápido
#   1) Propósito del módulo
#   2) Componentes principales
#   3) Puntos de extensión
#
# EN: Quick index
#   1) Module purpose
#   2) Main components
#   3) Extension points
#
# Secciones / Sections:
#   - Configuración / Configuration
#   - Lógica principal / Core logic
#   - Integraciones / Integrations

"""Configuración validada de Pregonero.

Validated Pregonero configuration.

Example .env configuration:
    ELECTION_URL=https://stackoverflow.com/election/15
    SCRAPE_INTERVAL_MINUTES=5
    TELEGRAM_BOT_TOKEN=123456:ABC
    TELEGRAM_CHAT_ID=-1001234567890

Example YAML configuration:
    election_url: "https://stackoverflow.com/election/15"
    scrape_interval_minutes: 5
    ending_soon_minutes: 15
    log_level: "INFO"
"""

from __future__ import annotations

import re
from datetime import timedelta
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import AnyUrl, Field, TypeAdapter, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError

_ENV_PATH = Path(".env")
_ENV_LOCAL_PATH = Path(".env.local")
_ELECTION_URL = re.compile(r"^https?://[^/]+/election/\d+/?$")


class PregoneroSettings(BaseSettings):
    """Variables de entorno y archivo .env para Pregonero.

    English: Environment variables and .env file for Pregonero.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    ELECTION_URL: str
    SCRAPE_INTERVAL_MINUTES: float = Field(default=5.0, gt=0)
    FAST_INTERVAL_MINUTES: float = Field(default=2.0, gt=0)
    RESULTS_INTERVAL_MINUTES: float = Field(default=0.5, gt=0)
    IDLE_INTERVAL_MINUTES: float = Field(default=10.0, gt=0)
    ENDING_SOON_MINUTES: float = Field(default=15.0, ge=0)
    MISFIRE_GRACE_SECONDS: int = Field(default=300, ge=1)
    REQUEST_TIMEOUT: float = Field(default=30.0, gt=0)
    USER_AGENT: str = "pregonero/0.1 (+election announcements)"
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[Path] = None
    TELEGRAM_BOT_TOKEN: str = ""
    TELEGRAM_CHAT_ID: str = ""

    @field_validator("ELECTION_URL")
    @classmethod
    def _validate_election_url(cls, value: str) -> str:
        """Validate the URL and require the ``/election/<n>`` path."""
        cleaned = value.strip()
        TypeAdapter(AnyUrl).validate_python(cleaned)
        if not _ELECTION_URL.match(cleaned):
            raise ValueError("ELECTION_URL must look like https://<site>/election/<number>")
        return cleaned.rstrip("/")

    @field_validator("LOG_LEVEL")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown LOG_LEVEL: {value}")
        return level

    @property
    def ending_threshold(self) -> timedelta:
        return timedelta(minutes=self.ENDING_SOON_MINUTES)

    @property
    def telegram_configured(self) -> bool:
        return bool(self.TELEGRAM_BOT_TOKEN and self.TELEGRAM_CHAT_ID)


def load_settings(config_path: Optional[Path] = None, **overrides) -> PregoneroSettings:
    """/** Carga y valida configuración, fallando con detalle. / Load and validate configuration, failing with details. **/

    English:
        Environment and ``.env``/``.env.local`` are always read. A YAML file,
        when given, supplies lower-case keys; explicit ``overrides`` win.
    """
    # Seguridad: Cargar variables sensibles desde .env y .env.local. / Security: Load sensitive vars from .env/.env.local.
    load_dotenv(_ENV_PATH, override=False)
    load_dotenv(_ENV_LOCAL_PATH, override=False)

    payload: dict = {}
    if config_path is not None:
        try:
            raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(f"Cannot read config file {config_path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise ConfigError(f"Config file {config_path} must contain a mapping")
        payload = {str(key).upper(): value for key, value in raw.items()}
    payload.update({key.upper(): value for key, value in overrides.items() if value is not None})

    try:
        return PregoneroSettings(**payload)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
