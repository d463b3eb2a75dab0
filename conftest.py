"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `conftest.py`.
Configuración global de pytest: ninguna prueba puede abrir conexiones reales;
las respuestas HTTP se simulan con pytest-httpx.

Componentes detectados:
  - block_network

======================== ENGLISH ========================
File: `conftest.py`.
Global pytest setup: no test may open real connections; HTTP responses are
mocked with pytest-httpx.

Detected components:
  - block_network
"""

from __future__ import annotations

import socket
from typing import Any

import pytest


@pytest.fixture(autouse=True)
def block_network(monkeypatch: pytest.MonkeyPatch) -> None:
    """Impide conexiones de red reales en tests.

    English:
        Prevents real network connections in tests.
    """

    def guarded_connect(*args: Any, **kwargs: Any) -> None:
        raise RuntimeError("Network access is disabled during tests.")

    monkeypatch.setattr(socket.socket, "connect", guarded_connect, raising=True)
    monkeypatch.setattr(socket, "create_connection", guarded_connect, raising=True)
