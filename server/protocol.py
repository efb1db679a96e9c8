"""
Measurement protocol -- the steps of one test run.

Each step is driven by one HTTP request and mutates the session it
references::

    start     create session, remember client host and a first timestamp
    probe n   n == 1 sets the latency baseline, n > 1 appends one sample
    download  stream ``size`` bytes, record bytes/second on the session
    upload    count and discard the request body, record bytes/second

The transport only supplies a ``write`` coroutine (download) or an async
iterator of chunks (upload), so everything here can be driven without a
running HTTP server.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Optional

import aiohttp
from aiohttp.http_exceptions import HttpProcessingError

from .constants import (
    CHUNK_SIZE,
    DEFAULT_DOWNLOAD_SIZE,
    DEFAULT_PROBE_COUNT,
    FILL_BYTE,
    MAX_DOWNLOAD_SIZE,
)
from .sessions import Session, SessionStore
from .stats import calculate_rate, format_rate

logger = logging.getLogger(__name__)

# Raised by the transport when the peer goes away mid-transfer.
TRANSFER_ERRORS = (OSError, aiohttp.ClientError, HttpProcessingError)


# ---------------------------------------------------------------------------
# Parameter parsing
# ---------------------------------------------------------------------------

def parse_size(raw: Optional[str], default: int = DEFAULT_DOWNLOAD_SIZE) -> int:
    """Download size in bytes; bad or missing values fall back to *default*."""
    try:
        size = int(raw) if raw else 0
    except (TypeError, ValueError):
        return default
    if size <= 0:
        return default
    return min(size, MAX_DOWNLOAD_SIZE)


def parse_probe_counter(raw: Optional[str]) -> Optional[int]:
    """Probe counter from the query string, or ``None`` if unusable."""
    try:
        n = int(raw) if raw else 0
    except (TypeError, ValueError):
        return None
    return n if n >= 1 else None


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class ProbeStep:
    """Outcome of one latency probe."""

    session_id: str
    n: int
    next_n: Optional[int] = None
    sample_ms: Optional[float] = None

    @property
    def done(self) -> bool:
        return self.next_n is None


@dataclass
class TransferResult:
    """Byte count and timing of one download or upload."""

    bytes_transferred: int = 0
    elapsed: float = 0.0
    rate: float = 0.0          # bytes/second
    completed: bool = False


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------

class MeasurementProtocol:
    """Drives sessions in *store* through start -> probes -> transfers."""

    def __init__(
        self,
        store: SessionStore,
        probe_count: int = DEFAULT_PROBE_COUNT,
        clock: Callable[[], float] = time.perf_counter,
        chunk_size: int = CHUNK_SIZE,
    ) -> None:
        self.store = store
        self.probe_count = probe_count
        self._clock = clock
        self._chunk = FILL_BYTE * chunk_size

    # -- Start / probe ------------------------------------------------------

    def start(self, client_host: str) -> Session:
        session = self.store.create()
        session.mark_started(client_host, self._clock())
        logger.info("Session %s started for %s", session.id, client_host or "unknown client")
        return session

    def probe(self, session_id: str, n: int) -> ProbeStep:
        """Record probe *n* of the chain and say what comes next."""
        if not session_id:
            raise ValueError("Probe requires a session id")
        if n < 1:
            raise ValueError(f"Probe counter must be >= 1, got {n}")

        session = self.store.get_or_create(session_id)
        sample = session.record_probe(self._clock(), baseline=(n == 1))

        if n < self.probe_count:
            return ProbeStep(session_id=session_id, n=n, next_n=n + 1, sample_ms=sample)

        session.mark_probes_done()
        logger.info("Session %s finished %d probes", session_id, n)
        return ProbeStep(session_id=session_id, n=n, sample_ms=sample)

    # -- Download -----------------------------------------------------------

    async def stream_download(
        self,
        session_id: Optional[str],
        size: int,
        write: Callable[[bytes], Awaitable[None]],
        finish: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> TransferResult:
        """Send *size* bytes through *write* and record the observed rate.

        *finish* flushes the transport once the last chunk is written; it runs
        inside the timed region so buffered bytes are not left unsent when
        the clock stops.

        A disconnecting client ends the loop early; the rate is then taken
        over the bytes actually written.  The rate is committed even if the
        surrounding task is cancelled.
        """
        result = TransferResult()
        chunk = self._chunk
        started = self._clock()

        try:
            while result.bytes_transferred < size:
                remaining = size - result.bytes_transferred
                piece = chunk if remaining >= len(chunk) else chunk[:remaining]
                await write(piece)
                result.bytes_transferred += len(piece)
            if finish is not None:
                await finish()
            result.completed = True
        except TRANSFER_ERRORS as exc:
            logger.info(
                "Download for session %s stopped after %d of %d bytes: %s",
                session_id, result.bytes_transferred, size, str(exc) or type(exc).__name__,
            )
        finally:
            result.elapsed = self._clock() - started
            result.rate = calculate_rate(result.bytes_transferred, result.elapsed)
            if session_id:
                self.store.get_or_create(session_id).record_download(result.rate)
            logger.info(
                "Download done sid=%s bytes=%d elapsed=%.3fs rate=%s",
                session_id, result.bytes_transferred, result.elapsed, format_rate(result.rate),
            )

        return result

    # -- Upload -------------------------------------------------------------

    async def measure_upload(self, chunks: AsyncIterator[bytes]) -> TransferResult:
        """Count and discard every chunk, timing the whole read."""
        result = TransferResult()
        started = self._clock()

        try:
            async for chunk in chunks:
                result.bytes_transferred += len(chunk)
            result.completed = True
        except TRANSFER_ERRORS as exc:
            logger.info(
                "Upload stopped after %d bytes: %s",
                result.bytes_transferred, str(exc) or type(exc).__name__,
            )

        result.elapsed = self._clock() - started
        result.rate = calculate_rate(result.bytes_transferred, result.elapsed)
        return result

    def record_upload(self, session_id: str, result: TransferResult) -> Session:
        session = self.store.get_or_create(session_id)
        session.record_upload(result.rate)
        logger.info(
            "Upload done sid=%s bytes=%d elapsed=%.3fs rate=%s",
            session_id, result.bytes_transferred, result.elapsed, format_rate(result.rate),
        )
        return session
