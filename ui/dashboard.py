"""
Rich-based console output for the speed test server.

Startup banner, a settings table, and the logging handler that renders
every log record (including aiohttp's access log) through ``rich``.
"""
from __future__ import annotations

import logging

from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from server.config import Settings, config_path
from server.stats import format_latency

console = Console()

_LOG_FORMAT = "%(message)s"
_LOG_DATEFMT = "[%X]"


def configure_logging(level: str = "INFO") -> None:
    """Route the root logger through a single ``RichHandler``."""
    logging.basicConfig(
        level=level.upper(),
        format=_LOG_FORMAT,
        datefmt=_LOG_DATEFMT,
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------

def print_header() -> None:
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]Speedtest Server[/bold cyan]\n"
            "[dim]Latency, jitter and throughput over plain HTTP, no JavaScript[/dim]",
            border_style="cyan",
        )
    )
    console.print()


def print_settings(settings: Settings) -> None:
    table = Table(title="Settings", box=box.ROUNDED)
    table.add_column("Setting", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Listening", f"http://{settings.host}:{settings.port}/")
    table.add_row("Probes per test", str(settings.probe_count))
    table.add_row("Download size", f"{settings.download_size / 1024 / 1024:.1f} MiB")
    table.add_row("Results wait", f"{settings.wait_timeout:.1f} s")
    table.add_row("Poll interval", format_latency(settings.poll_interval * 1000))
    ttl = f"{settings.session_ttl:.0f} s" if settings.session_ttl > 0 else "never"
    table.add_row("Session eviction", ttl)
    table.add_row("Config file", config_path())
    console.print(table)
