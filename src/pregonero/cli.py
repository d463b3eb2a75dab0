"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/pregonero/cli.py`.
Interfaz de línea de comandos: `run` vigila la elección hasta SIGINT/SIGTERM,
`status` hace una sola lectura y muestra fase y calendario.

Componentes detectados:
  - main
  - run
  - status

======================== ENGLISH ========================
File: `src/pregonero/cli.py`.
Command line interface: `run` watches the election until SIGINT/SIGTERM,
`status` performs a single read and prints phase and schedule.

Detected components:
  - main
  - run
  - status
"""

from __future__ import annotations

import asyncio
import signal
from pathlib import Path
from typing import Optional

import typer

from .announcer import say_schedule
from .chat import TelegramChannel, TelegramConfig
from .config import PregoneroSettings, load_settings
from .errors import ConfigError, FetchError
from .logging import setup_logging
from .monitor import ElectionMonitor
from .page_reader import HtmlPageReader
from .scraper import Scraper

app = typer.Typer(help="Pregonero election announcer CLI")

ConfigOption = typer.Option(None, "--config", "-c", help="YAML config file.")
UrlOption = typer.Option(None, "--election-url", help="Election page, e.g. https://stackoverflow.com/election/15")


@app.callback()
def main() -> None:
    """Interfaz de línea de comandos de Pregonero.

    English: Pregonero command line interface.
    """


def _settings_or_exit(config: Optional[Path], election_url: Optional[str]) -> PregoneroSettings:
    try:
        return load_settings(config, election_url=election_url)
    except ConfigError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=2) from exc


async def _watch(settings: PregoneroSettings) -> None:
    channel = TelegramChannel(
        TelegramConfig(
            bot_token=settings.TELEGRAM_BOT_TOKEN,
            chat_id=settings.TELEGRAM_CHAT_ID,
            request_timeout=settings.REQUEST_TIMEOUT,
        )
    )
    async with HtmlPageReader(
        timeout_seconds=settings.REQUEST_TIMEOUT,
        user_agent=settings.USER_AGENT,
    ) as reader:
        monitor = ElectionMonitor(settings, reader, channel)
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(signum, monitor.request_stop)
        try:
            await monitor.run_until_stopped()
        finally:
            await channel.aclose()


@app.command()
def run(config: Optional[Path] = ConfigOption, election_url: Optional[str] = UrlOption) -> None:
    """Vigila la elección y anuncia cambios de fase.

    English: Watch the election and announce phase changes until stopped.
    """
    settings = _settings_or_exit(config, election_url)
    log = setup_logging(settings.LOG_LEVEL, settings.LOG_DIR, secrets=[settings.TELEGRAM_BOT_TOKEN])
    if not settings.telegram_configured:
        log.warning("telegram_not_configured")
    asyncio.run(_watch(settings))


async def _read_once(settings: PregoneroSettings):
    async with HtmlPageReader(
        timeout_seconds=settings.REQUEST_TIMEOUT,
        user_agent=settings.USER_AGENT,
    ) as reader:
        return await Scraper(settings.ELECTION_URL, reader).refresh()


@app.command()
def status(config: Optional[Path] = ConfigOption, election_url: Optional[str] = UrlOption) -> None:
    """Una lectura: fase actual, candidatos y calendario.

    English: Single read printing the current phase, nominees and schedule.
    """
    settings = _settings_or_exit(config, election_url)
    setup_logging("WARNING")
    try:
        snapshot = asyncio.run(_read_once(settings))
    except FetchError as exc:
        typer.echo(f"Could not read {settings.ELECTION_URL}: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(f"{snapshot.site_name} {snapshot.title}".strip())
    typer.echo(f"Phase: {snapshot.phase.value}")
    typer.echo(f"Nominees: {snapshot.num_nominees} (positions: {snapshot.num_positions})")
    if snapshot.winners:
        typer.echo("Winners: " + ", ".join(winner.user_name for winner in snapshot.winners))
    if snapshot.cancelled_notice:
        typer.echo(f"Cancelled: {snapshot.cancelled_notice}")
    typer.echo(say_schedule(snapshot))


if __name__ == "__main__":
    app()
