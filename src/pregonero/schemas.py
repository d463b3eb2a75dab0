# Schemas Module
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

"""Esquemas Pydantic para los campos crudos de la página de elección.

Pydantic schemas for the raw fields read from the election page.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class RawCandidate(BaseModel):
    """Fila de candidato tal como aparece en la página.

    English: Candidate row as it appears on the page.
    """

    user_id: int = Field(gt=0)
    user_name: str = Field(min_length=1)
    years_on_site: str = ""
    score: int = Field(default=0, ge=0)
    permalink: str = ""

    @field_validator("user_name", "years_on_site", "permalink")
    @classmethod
    def strip_text(cls, value: str) -> str:
        """Normaliza texto eliminando espacios.

        English:
            Normalize text by trimming whitespace.
        """
        return value.strip()


class RawFields(BaseModel):
    """Campos crudos producidos por un PageReader.

    English: Raw field set produced by a PageReader for one read of the page.
    Dates stay as strings; ``ElectionSnapshot.from_raw`` parses them.
    """

    site_name: str = ""
    title: str = ""
    date_nomination: str = Field(min_length=1)
    date_primary: Optional[str] = None
    date_election: str = Field(min_length=1)
    date_ended: str = Field(min_length=1)
    num_candidates: Optional[int] = Field(default=None, ge=0)
    num_positions: Optional[int] = Field(default=None, ge=0)
    rep_nominate: int = Field(default=0, ge=0)
    rep_vote: int = Field(default=0, ge=0)
    nominees: List[RawCandidate] = Field(default_factory=list)
    winner_ids: Optional[List[int]] = None
    results_url: Optional[str] = None
    cancelled_notice: Optional[str] = None
    chat_url: Optional[str] = None

    @field_validator("date_primary", "results_url", "cancelled_notice", "chat_url", mode="before")
    @classmethod
    def blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        """Cadenas vacías en campos opcionales pasan a ``None``.

        English: Empty strings on optional fields become ``None``.
        """
        if isinstance(value, str):
            cleaned = value.strip()
            return cleaned or None
        return value

    @field_validator("site_name", "title", "date_nomination", "date_election", "date_ended")
    @classmethod
    def strip_text(cls, value: str) -> str:
        return value.strip()
