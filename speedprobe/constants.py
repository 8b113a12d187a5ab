"""
Shared constants used across all speedprobe modules.

Centralises magic numbers, default headers, and tunables so they live in
exactly one place.
"""

# ---------------------------------------------------------------------------
# HTTP headers
# ---------------------------------------------------------------------------

USER_AGENT = "speedlog/1.0 (+aiohttp)"

NO_CACHE = "no-store, no-cache, no-transform, must-revalidate, max-age=0"

COMMON_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "*/*",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}

# Random payloads are incompressible anyway; asking for identity keeps the
# byte count on the wire equal to the byte count we read.
DOWNLOAD_HEADERS = {**COMMON_HEADERS, "Accept-Encoding": "identity"}
UPLOAD_HEADERS = {**COMMON_HEADERS, "Content-Type": "application/octet-stream"}

# ---------------------------------------------------------------------------
# Transfer endpoint routes
# ---------------------------------------------------------------------------

DEFAULT_SERVER_URL = "http://localhost:3000"
PING_PATH = "/api/ping"
DOWNLOAD_PATH = "/api/download"
UPLOAD_PATH = "/api/upload"

# ---------------------------------------------------------------------------
# Latency
# ---------------------------------------------------------------------------

DEFAULT_PING_ATTEMPTS = 5
DEFAULT_PING_INTERVAL_MS = 300
MIN_PING_ATTEMPTS = 1
MAX_PING_ATTEMPTS = 100
MAX_PING_INTERVAL_MS = 10_000

# ---------------------------------------------------------------------------
# Throughput legs (bytes)
# ---------------------------------------------------------------------------

MIB = 1024 * 1024

DOWNLOAD_LEG_SIZES = (1 * MIB, 2 * MIB, 5 * MIB)
UPLOAD_LEG_SIZES = (MIB // 2, 1 * MIB, 2 * MIB)

CHUNK_SIZE = 64 * 1024           # read size for streamed downloads

# ---------------------------------------------------------------------------
# Timeouts (seconds)
# ---------------------------------------------------------------------------

DEFAULT_TIMEOUT = 10.0           # per echo / per leg
MIN_TIMEOUT = 0.5
MAX_TIMEOUT = 120.0
CONNECT_TIMEOUT = 5.0

# ---------------------------------------------------------------------------
# Reference server limits
# ---------------------------------------------------------------------------

DEFAULT_DOWNLOAD_SIZE = 5 * MIB
MAX_DOWNLOAD_SIZE = 100 * MIB
MAX_UPLOAD_SIZE = 50 * MIB
SERVER_CHUNK_SIZE = 64 * 1024
DEFAULT_SERVE_HOST = "0.0.0.0"
DEFAULT_SERVE_PORT = 3000
