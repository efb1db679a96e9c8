"""
Results resolver.

The results page is requested while the browser may still be fetching the
download payload in a hidden iframe.  ``ResultsResolver.resolve`` re-reads
the session every ``poll_interval`` seconds until the download rate shows
up or ``wait_timeout`` runs out, then summarises whatever is there.  It
always returns; a browser must never hang on the results page.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from .constants import DEFAULT_POLL_INTERVAL, DEFAULT_WAIT_TIMEOUT
from .sessions import Phase, SessionSnapshot, SessionStore
from .stats import LatencyStats

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------

@dataclass
class Summary:
    """Display-ready figures for one session.  Rates are bytes/second."""

    session_id: str
    client_host: str = ""
    avg_latency_ms: float = 0.0
    jitter_ms: float = 0.0
    min_latency_ms: float = 0.0
    max_latency_ms: float = 0.0
    sample_count: int = 0
    download_rate: Optional[float] = None
    upload_rate: Optional[float] = None
    phase: Phase = Phase.PENDING
    timed_out: bool = False

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "client_host": self.client_host,
            "avg_latency_ms": round(self.avg_latency_ms, 3),
            "jitter_ms": round(self.jitter_ms, 3),
            "min_latency_ms": round(self.min_latency_ms, 3),
            "max_latency_ms": round(self.max_latency_ms, 3),
            "sample_count": self.sample_count,
            "download_bps": None if self.download_rate is None else round(self.download_rate, 2),
            "upload_bps": None if self.upload_rate is None else round(self.upload_rate, 2),
            "phase": self.phase.value,
            "timed_out": self.timed_out,
        }


def summarize(snapshot: SessionSnapshot, timed_out: bool = False) -> Summary:
    latency = LatencyStats(samples=list(snapshot.latency_samples))
    latency.calculate()
    return Summary(
        session_id=snapshot.id,
        client_host=snapshot.client_host,
        avg_latency_ms=latency.mean,
        jitter_ms=latency.jitter,
        min_latency_ms=latency.min,
        max_latency_ms=latency.max,
        sample_count=latency.count,
        download_rate=snapshot.download_rate,
        upload_rate=snapshot.upload_rate,
        phase=snapshot.phase,
        timed_out=timed_out,
    )


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

class ResultsResolver:
    """Bounded wait for a session's download measurement."""

    def __init__(
        self,
        store: SessionStore,
        wait_timeout: float = DEFAULT_WAIT_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self.wait_timeout = wait_timeout
        self.poll_interval = poll_interval
        self._clock = clock
        self._sleep = sleep

    async def resolve(
        self,
        session_id: str,
        wait_timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
    ) -> Summary:
        """Wait until the download is recorded or the timeout passes.

        Unknown ids get an empty session, the same as every other step of
        the protocol, so the caller always receives a ``Summary``.
        """
        timeout = self.wait_timeout if wait_timeout is None else wait_timeout
        interval = self.poll_interval if poll_interval is None else poll_interval

        session = self.store.get_or_create(session_id)
        deadline = self._clock() + timeout

        while True:
            snap = session.snapshot()
            if snap.download_done:
                return summarize(snap)

            remaining = deadline - self._clock()
            if remaining <= 0:
                logger.info("Results for session %s timed out after %.1fs", session_id, timeout)
                return summarize(snap, timed_out=True)

            await self._sleep(min(interval, remaining))
