#!/usr/bin/env python3
"""
Speedtest server -- latency, jitter and throughput over plain HTTP.

Browsers without JavaScript can run the test: pages chain with meta-refresh
and the server does all of the timing.

Usage::

    python speedtest_server.py                      # listen on 0.0.0.0:8080
    python speedtest_server.py --port 9000          # other port
    python speedtest_server.py --probes 12          # more latency samples
    python speedtest_server.py --download-size 32   # 32 MiB payload
    python speedtest_server.py --wait-timeout 10    # shorter results wait
    python speedtest_server.py --save-config        # persist these flags
"""
from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Dict, Optional, Sequence

from aiohttp import web

from server.app import create_app
from server.config import Settings, load_config, save_config
from server.constants import (
    MAX_DOWNLOAD_SIZE,
    MAX_PORT,
    MAX_PROBE_COUNT,
    MAX_WAIT_TIMEOUT,
    MIB,
    MIN_POLL_INTERVAL,
    MIN_PORT,
    MIN_PROBE_COUNT,
)
from ui.dashboard import configure_logging, console, print_header, print_settings


# ---------------------------------------------------------------------------
# Parameter validation
# ---------------------------------------------------------------------------

def _validate(settings: Settings) -> None:
    """Raise ``ValueError`` if any setting is out of range."""
    if not MIN_PORT <= settings.port <= MAX_PORT:
        raise ValueError(f"Port must be between {MIN_PORT} and {MAX_PORT}")
    if not MIN_PROBE_COUNT <= settings.probe_count <= MAX_PROBE_COUNT:
        raise ValueError(f"Probe count must be between {MIN_PROBE_COUNT} and {MAX_PROBE_COUNT}")
    if not 0 < settings.download_size <= MAX_DOWNLOAD_SIZE:
        raise ValueError(f"Download size must be between 1 byte and {MAX_DOWNLOAD_SIZE // MIB} MiB")
    if not 0 <= settings.wait_timeout <= MAX_WAIT_TIMEOUT:
        raise ValueError(f"Wait timeout must be between 0 and {MAX_WAIT_TIMEOUT:.0f} s")
    if settings.poll_interval < MIN_POLL_INTERVAL:
        raise ValueError(f"Poll interval must be at least {MIN_POLL_INTERVAL} s")
    if settings.session_ttl < 0:
        raise ValueError("Session TTL must be >= 0 (0 disables eviction)")
    if not isinstance(logging.getLevelName(settings.log_level.upper()), int):
        raise ValueError(f"Unknown log level: {settings.log_level}")


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

def build_settings(args: argparse.Namespace, config: Dict[str, Any]) -> Settings:
    """Merge the config file with command-line overrides."""
    merged = dict(config)
    overrides = {
        "host": args.host,
        "port": args.port,
        "probe_count": args.probes,
        "download_size": int(args.download_size * MIB) if args.download_size is not None else None,
        "wait_timeout": args.wait_timeout,
        "poll_interval": args.poll_interval,
        "session_ttl": args.session_ttl,
        "log_level": args.log_level,
    }
    merged.update({k: v for k, v in overrides.items() if v is not None})
    return Settings.from_dict(merged)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Speedtest server -- no-JavaScript network speed testing",
    )
    # Listening address
    parser.add_argument("--host", type=str, metavar="ADDR", help="Address to bind (default: 0.0.0.0)")
    parser.add_argument("--port", "-p", type=int, metavar="PORT", help="Port to listen on (default: 8080)")

    # Test parameters
    parser.add_argument("--probes", type=int, metavar="N", help="Latency probes per test (default: 8)")
    parser.add_argument("--download-size", type=float, metavar="MIB", help="Default download payload in MiB (default: 8)")
    parser.add_argument("--wait-timeout", type=float, metavar="SECS", help="Seconds the results page waits for the download (default: 30)")
    parser.add_argument("--poll-interval", type=float, metavar="SECS", help="Seconds between session re-reads (default: 0.15)")
    parser.add_argument("--session-ttl", type=float, metavar="SECS", help="Evict sessions idle this long, 0 disables (default: 3600)")

    # Misc
    parser.add_argument("--log-level", type=str, metavar="LEVEL", help="Logging level (default: INFO)")
    parser.add_argument("--save-config", action="store_true", help="Save the effective settings to the config file")

    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)

    try:
        settings = build_settings(args, load_config())
        _validate(settings)
    except ValueError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        sys.exit(1)

    configure_logging(settings.log_level)

    if args.save_config:
        path = save_config(settings.to_dict())
        console.print(f"[green]Settings saved to:[/green] {path}")

    print_header()
    print_settings(settings)

    try:
        web.run_app(
            create_app(settings),
            host=settings.host,
            port=settings.port,
            access_log=logging.getLogger("aiohttp.access"),
            print=None,
        )
    except KeyboardInterrupt:
        console.print("\n[yellow]Server stopped by user[/yellow]")
    except OSError as exc:
        console.print(f"\n[red]Error: cannot listen on {settings.host}:{settings.port}: {exc}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
