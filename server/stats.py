"""
Measurement statistics.

Pure functions and lightweight dataclasses -- no I/O, no side effects.
Everything here is deterministic and easy to unit-test.
"""
from __future__ import annotations

import statistics
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .constants import MIB, MIN_ELAPSED


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------

@dataclass
class LatencyStats:
    """Aggregated latency statistics computed from a list of samples."""

    samples: List[float] = field(default_factory=list)
    min: float = 0.0
    max: float = 0.0
    mean: float = 0.0
    jitter: float = 0.0
    count: int = 0

    def calculate(self) -> None:
        if not self.samples:
            return
        self.count = len(self.samples)
        self.min = min(self.samples)
        self.max = max(self.samples)
        self.mean = calculate_mean(self.samples)
        self.jitter = calculate_jitter(self.samples)


# ---------------------------------------------------------------------------
# Pure helper functions
# ---------------------------------------------------------------------------

def calculate_mean(samples: Sequence[float]) -> float:
    if not samples:
        return 0.0
    return statistics.fmean(samples)


def calculate_jitter(samples: Sequence[float]) -> float:
    """Population standard deviation of the samples."""
    if len(samples) < 2:
        return 0.0
    return statistics.pstdev(samples)


def calculate_rate(bytes_transferred: int, elapsed: float) -> float:
    """Bytes per second, with *elapsed* floored at ``MIN_ELAPSED``."""
    return bytes_transferred / max(elapsed, MIN_ELAPSED)


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

def format_rate(bytes_per_second: Optional[float]) -> str:
    """Human-readable rate string; ``None`` means not measured yet."""
    if bytes_per_second is None:
        return "pending"
    return f"{bytes_per_second / MIB:.2f} MiB/s"


def format_latency(latency_ms: float) -> str:
    """Human-readable latency string."""
    if latency_ms >= 1000:
        return f"{latency_ms / 1000:.2f} s"
    return f"{latency_ms:.2f} ms"
