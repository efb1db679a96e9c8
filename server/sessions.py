"""
Session records and the registry that owns them.

A session correlates one browser's chain of otherwise-stateless requests
(start -> probes -> download -> upload -> results) into one test run.

Locking discipline::

    SessionStore._lock   held only for the dict lookup / insert / delete
    Session._lock        held for each field read or write, never across I/O

The two locks are never nested: the store hands out a ``Session`` and
releases its own lock before the caller touches the session.
"""
from __future__ import annotations

import enum
import itertools
import logging
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


# ---------------------------------------------------------------------------
# Phase
# ---------------------------------------------------------------------------

class Phase(enum.Enum):
    """Progress of one test run.  Only ever moves forward."""

    PENDING = "pending"
    PROBING = "probing"
    PROBES_DONE = "probes_done"
    DOWNLOAD_DONE = "download_done"
    COMPLETE = "complete"

    @property
    def rank(self) -> int:
        return _PHASE_ORDER.index(self)


_PHASE_ORDER = list(Phase)


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SessionSnapshot:
    """Consistent copy of a session's fields, taken under its lock."""

    id: str
    client_host: str
    phase: Phase
    latency_samples: Tuple[float, ...]
    download_rate: Optional[float]
    upload_rate: Optional[float]
    created_at: float
    last_activity: float

    @property
    def download_done(self) -> bool:
        return self.download_rate is not None


class Session:
    """Mutable measurement record for one test run.

    Rates are ``None`` until measured.  A measured rate of ``0.0`` is a real
    (stalled) measurement, not "pending".
    """

    def __init__(self, session_id: str, clock: Callable[[], float] = time.monotonic) -> None:
        self._lock = threading.Lock()
        self._clock = clock
        self._id = session_id
        self.client_host = ""
        self.last_probe_time: Optional[float] = None
        self.latency_samples: List[float] = []
        self.download_rate: Optional[float] = None
        self.upload_rate: Optional[float] = None
        self.phase = Phase.PENDING
        self.created_at = clock()
        self.last_activity = self.created_at

    @property
    def id(self) -> str:
        return self._id

    def __repr__(self) -> str:
        return f"Session(id={self._id!r})"

    # -- Internal (caller holds the lock) ------------------------------------

    def _advance(self, phase: Phase) -> None:
        if phase.rank > self.phase.rank:
            self.phase = phase

    def _touch(self) -> None:
        self.last_activity = self._clock()

    # -- Mutators -----------------------------------------------------------

    def mark_started(self, client_host: str, now: float) -> None:
        with self._lock:
            self.client_host = client_host
            self.last_probe_time = now
            self._touch()

    def record_probe(self, now: float, baseline: bool = False) -> Optional[float]:
        """Register a probe arrival at *now* (seconds).

        Returns the latency sample in milliseconds, or ``None`` when this
        probe only establishes the baseline.
        """
        with self._lock:
            sample: Optional[float] = None
            if not baseline and self.last_probe_time is not None:
                sample = max(0.0, (now - self.last_probe_time) * 1000)
                self.latency_samples.append(sample)
            self.last_probe_time = now
            self._advance(Phase.PROBING)
            self._touch()
            return sample

    def mark_probes_done(self) -> None:
        with self._lock:
            self._advance(Phase.PROBES_DONE)
            self._touch()

    def record_download(self, rate: float) -> None:
        with self._lock:
            self.download_rate = rate
            self._advance(
                Phase.COMPLETE if self.upload_rate is not None else Phase.DOWNLOAD_DONE
            )
            self._touch()

    def record_upload(self, rate: float) -> None:
        with self._lock:
            self.upload_rate = rate
            if self.download_rate is not None:
                self._advance(Phase.COMPLETE)
            self._touch()

    # -- Readers ------------------------------------------------------------

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            return SessionSnapshot(
                id=self._id,
                client_host=self.client_host,
                phase=self.phase,
                latency_samples=tuple(self.latency_samples),
                download_rate=self.download_rate,
                upload_rate=self.upload_rate,
                created_at=self.created_at,
                last_activity=self.last_activity,
            )

    def idle_for(self, now: float) -> float:
        with self._lock:
            return now - self.last_activity


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class SessionStore:
    """Thread-safe registry mapping session id -> ``Session``.

    One instance is owned by the web application and passed to every
    handler; tests create their own.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._lock = threading.Lock()
        self._sessions: Dict[str, Session] = {}
        self._counter = itertools.count(1)
        self._clock = clock

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    # -- Identifiers --------------------------------------------------------

    def generate_id(self) -> str:
        """Compact id: clock reading, process-wide counter, random suffix."""
        with self._lock:
            seq = next(self._counter)
        return f"{_base36(time.time_ns())}{_base36(seq)}{secrets.token_hex(2)}"

    # -- Lookup -------------------------------------------------------------

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(session_id)

    def get_or_create(self, session_id: str) -> Session:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = Session(session_id, self._clock)
                self._sessions[session_id] = session
                created = True
            else:
                created = False
        if created:
            logger.debug("Registered session %s", session_id)
        return session

    def create(self) -> Session:
        return self.get_or_create(self.generate_id())

    # -- Eviction -----------------------------------------------------------

    def evict_idle(self, max_idle: float, now: Optional[float] = None) -> int:
        """Drop sessions idle for longer than *max_idle* seconds.

        ``max_idle <= 0`` disables eviction.  Returns the number removed.
        """
        if max_idle <= 0:
            return 0
        if now is None:
            now = self._clock()

        with self._lock:
            candidates = list(self._sessions.items())

        stale = [sid for sid, s in candidates if s.idle_for(now) > max_idle]
        if not stale:
            return 0

        removed = 0
        with self._lock:
            for sid in stale:
                if self._sessions.pop(sid, None) is not None:
                    removed += 1
        logger.info("Evicted %d idle session(s), %d remaining", removed, len(self))
        return removed
