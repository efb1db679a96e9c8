"""
Shared constants used across all server modules.

Centralises magic numbers, default headers, and tunables so they live in
exactly one place.
"""

# ---------------------------------------------------------------------------
# HTTP headers
# ---------------------------------------------------------------------------

# Every cache between us and the browser must refetch the payload; a cached
# download never reaches the handler and never records a rate.
NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}

HTML_CONTENT_TYPE = "text/html"
PAYLOAD_CONTENT_TYPE = "application/octet-stream"

# ---------------------------------------------------------------------------
# Listening address
# ---------------------------------------------------------------------------

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080
MIN_PORT = 1
MAX_PORT = 65535

# ---------------------------------------------------------------------------
# Latency probes
# ---------------------------------------------------------------------------

DEFAULT_PROBE_COUNT = 8
MIN_PROBE_COUNT = 2
MAX_PROBE_COUNT = 50

# ---------------------------------------------------------------------------
# Data transfer
# ---------------------------------------------------------------------------

CHUNK_SIZE = 64 * 1024                  # 64 KiB per flushed write
UPLOAD_CHUNK_SIZE = 64 * 1024
FILL_BYTE = b"a"
DEFAULT_DOWNLOAD_SIZE = 8 * 1024 * 1024   # 8 MiB
MAX_DOWNLOAD_SIZE = 1024 * 1024 * 1024    # 1 GiB
MIN_ELAPSED = 1e-9                        # seconds; floor for rate division

# ---------------------------------------------------------------------------
# Results wait
# ---------------------------------------------------------------------------

DEFAULT_WAIT_TIMEOUT = 30.0     # seconds the results page waits for a download
DEFAULT_POLL_INTERVAL = 0.15    # seconds between session re-reads
MIN_POLL_INTERVAL = 0.01
MAX_WAIT_TIMEOUT = 300.0
RESULTS_REFRESH_DELAY = 1       # seconds before the download page moves on

# ---------------------------------------------------------------------------
# Session eviction
# ---------------------------------------------------------------------------

DEFAULT_SESSION_TTL = 3600.0    # idle seconds before a session is dropped
SWEEP_INTERVAL = 60.0

# ---------------------------------------------------------------------------
# Display
# ---------------------------------------------------------------------------

MIB = 1024 * 1024
