"""
Transfer endpoint client.

Speaks the three-route contract every measurement stage depends on: an echo
for round trips, a streamed download of N random bytes, and an upload that
the server times.  All HTTP work goes through a single
``aiohttp.ClientSession`` managed via async-context-manager protocol
(``async with TransferClient(endpoint) as client: ...``).
"""
from __future__ import annotations

import itertools
import math
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional
from urllib.parse import urlsplit

import aiohttp

from .constants import (
    CHUNK_SIZE,
    COMMON_HEADERS,
    CONNECT_TIMEOUT,
    DOWNLOAD_HEADERS,
    DOWNLOAD_PATH,
    PING_PATH,
    UPLOAD_HEADERS,
    UPLOAD_PATH,
)
from .errors import TransferError


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------

@dataclass
class Endpoint:
    """A server exposing the ping / download / upload routes."""

    base_url: str
    label: str = ""

    # -- Constructors -------------------------------------------------------

    @classmethod
    def from_url(cls, url: str, label: Optional[str] = None) -> Endpoint:
        parts = urlsplit(url)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError(f"Invalid server URL: {url!r}")
        base = f"{parts.scheme}://{parts.netloc}{parts.path.rstrip('/')}"
        return cls(base_url=base, label=label or parts.hostname or parts.netloc)

    # -- Derived URLs -------------------------------------------------------

    @property
    def ping_url(self) -> str:
        return f"{self.base_url}{PING_PATH}"

    @property
    def download_url(self) -> str:
        return f"{self.base_url}{DOWNLOAD_PATH}"

    @property
    def upload_url(self) -> str:
        return f"{self.base_url}{UPLOAD_PATH}"

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.base_url, "label": self.label}


@dataclass(frozen=True)
class UploadReceipt:
    """What the server reports after swallowing an upload body."""

    received: int
    duration_ms: float
    speed: float = 0.0

    @classmethod
    def from_dict(cls, data: dict) -> UploadReceipt:
        try:
            receipt = cls(
                received=int(data["received"]),
                duration_ms=float(data["duration"]),
                speed=float(data.get("speed") or 0.0),
            )
        except (KeyError, TypeError, ValueError, OverflowError) as exc:
            raise TransferError(f"Malformed upload receipt: {data!r}") from exc
        if not math.isfinite(receipt.duration_ms):
            raise TransferError(f"Malformed upload receipt: {data!r}")
        return receipt


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class TransferClient:
    """Async context-manager wrapping the transfer endpoint routes."""

    def __init__(self, endpoint: Endpoint, chunk_size: int = CHUNK_SIZE) -> None:
        self.endpoint = endpoint
        self.chunk_size = chunk_size
        self._session: Optional[aiohttp.ClientSession] = None
        self._bust = itertools.count()

    # -- Context manager ----------------------------------------------------

    async def __aenter__(self) -> TransferClient:
        timeout = aiohttp.ClientTimeout(total=None, connect=CONNECT_TIMEOUT)
        self._session = aiohttp.ClientSession(headers=COMMON_HEADERS, timeout=timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._session:
            await self._session.close()
            self._session = None

    # -- Internal helpers ---------------------------------------------------

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError(
                "TransferClient must be used as an async context manager "
                "(async with TransferClient(endpoint) as client: ...)"
            )
        return self._session

    def _cache_bust(self) -> str:
        return f"{time.time_ns()}-{next(self._bust)}"

    @staticmethod
    def _check(resp: aiohttp.ClientResponse, what: str) -> None:
        if resp.status >= 300:
            raise TransferError(f"{what} returned HTTP {resp.status}")

    # -- Public methods -----------------------------------------------------

    async def echo(self) -> bytes:
        """One round trip to the ping route; returns the raw body unparsed."""
        session = self._ensure_session()
        async with session.get(self.endpoint.ping_url, params={"_": self._cache_bust()}) as resp:
            self._check(resp, "Ping")
            return await resp.read()

    async def download(self, size: int) -> AsyncIterator[bytes]:
        """
        Stream exactly *size* bytes from the download route, chunk by chunk.

        The iterator is finite and single-use.  A body shorter than *size*
        raises ``TransferError`` once the stream ends.
        """
        session = self._ensure_session()
        params = {"size": str(size), "_": self._cache_bust()}
        received = 0
        async with session.get(
            self.endpoint.download_url,
            params=params,
            headers=DOWNLOAD_HEADERS,
        ) as resp:
            self._check(resp, "Download")
            async for chunk in resp.content.iter_chunked(self.chunk_size):
                received += len(chunk)
                yield chunk

        if received != size:
            raise TransferError(f"Download truncated: got {received} of {size} bytes")

    async def upload(self, payload: bytes, start_ms: Optional[float] = None) -> UploadReceipt:
        """POST *payload* as one raw body and return the server's receipt."""
        session = self._ensure_session()
        if start_ms is None:
            start_ms = time.time() * 1000
        params = {"startTime": f"{start_ms:.3f}", "_": self._cache_bust()}
        async with session.post(
            self.endpoint.upload_url,
            params=params,
            data=payload,
            headers=UPLOAD_HEADERS,
        ) as resp:
            self._check(resp, "Upload")
            try:
                data = await resp.json(content_type=None)
            except (ValueError, aiohttp.ContentTypeError) as exc:
                raise TransferError(f"Upload receipt is not JSON: {exc}") from exc

        if not isinstance(data, dict):
            raise TransferError(f"Malformed upload receipt: {data!r}")
        return UploadReceipt.from_dict(data)
