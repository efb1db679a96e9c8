"""Speedtest server library -- sessions, measurement protocol, and results."""

from .app import create_app
from .config import Settings
from .protocol import MeasurementProtocol, ProbeStep, TransferResult, parse_size
from .resolver import ResultsResolver, Summary, summarize
from .sessions import Phase, Session, SessionSnapshot, SessionStore
from .stats import (
    LatencyStats,
    calculate_jitter,
    calculate_mean,
    calculate_rate,
    format_latency,
    format_rate,
)

__all__ = [
    "LatencyStats",
    "MeasurementProtocol",
    "Phase",
    "ProbeStep",
    "ResultsResolver",
    "Session",
    "SessionSnapshot",
    "SessionStore",
    "Settings",
    "Summary",
    "TransferResult",
    "calculate_jitter",
    "calculate_mean",
    "calculate_rate",
    "create_app",
    "format_latency",
    "format_rate",
    "parse_size",
    "summarize",
]
