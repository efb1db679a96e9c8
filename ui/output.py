"""
Output formatting -- JSON and plain-text renderings of a results summary.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from server.constants import MIB
from server.resolver import Summary
from server.stats import format_latency, format_rate


def _mib(rate: Optional[float]) -> Optional[float]:
    return None if rate is None else round(rate / MIB, 3)


def create_result_json(summary: Summary) -> Dict[str, Any]:
    """Build the JSON document served by ``/results?format=json``."""
    flat = summary.to_dict()
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "session": flat["session_id"],
        "client": {"host": flat["client_host"]},
        "phase": flat["phase"],
        "timed_out": flat["timed_out"],
        "latency": {
            "mean_ms": flat["avg_latency_ms"],
            "jitter_ms": flat["jitter_ms"],
            "min_ms": flat["min_latency_ms"],
            "max_ms": flat["max_latency_ms"],
            "count": flat["sample_count"],
        },
        "download": {
            "bytes_per_second": flat["download_bps"],
            "mib_per_second": _mib(summary.download_rate),
        },
        "upload": {
            "bytes_per_second": flat["upload_bps"],
            "mib_per_second": _mib(summary.upload_rate),
        },
    }


def format_text_result(summary: Summary) -> str:
    sep = "=" * 50
    mid = "-" * 50
    return (
        f"{sep}\n"
        f"Speedtest Results\n"
        f"{sep}\n"
        f"Session: {summary.session_id}\n"
        f"Client: {summary.client_host or 'unknown'}\n"
        f"{mid}\n"
        f"Ping: {format_latency(summary.avg_latency_ms)} "
        f"(jitter: {format_latency(summary.jitter_ms)})\n"
        f"Download: {format_rate(summary.download_rate)}\n"
        f"Upload: {format_rate(summary.upload_rate)}\n"
        f"{sep}"
    )
