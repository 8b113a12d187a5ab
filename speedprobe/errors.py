"""
Error taxonomy for the measurement engine.

``MeasurementError`` is the only exception a caller of the orchestrator has
to handle: it names the stage that gave up and why.  ``TransferError`` is the
lower-level failure raised by the transfer client for a single request; the
samplers swallow it (and plain network errors) leg by leg.
"""
from __future__ import annotations

import asyncio
import enum
from typing import Optional

import aiohttp


class Stage(str, enum.Enum):
    """One phase of a measurement run."""

    LATENCY = "latency"
    DOWNLOAD = "download"
    UPLOAD = "upload"


class Reason(str, enum.Enum):
    NETWORK_FAILURE = "network_failure"
    TIMEOUT = "timeout"
    ALL_LEGS_FAILED = "all_legs_failed"
    CANCELLED = "cancelled"


class TransferError(Exception):
    """A single echo / download / upload request did not complete cleanly."""


class MeasurementError(Exception):
    """A whole stage failed; the run is aborted."""

    def __init__(self, stage: Stage, reason: Reason, message: Optional[str] = None) -> None:
        self.stage = Stage(stage)
        self.reason = Reason(reason)
        self.message = message or f"{self.stage.value} stage failed: {self.reason.value}"
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"MeasurementError(stage={self.stage.value!r}, reason={self.reason.value!r})"

    def to_dict(self) -> dict:
        return {
            "stage": self.stage.value,
            "reason": self.reason.value,
            "message": self.message,
        }


# ---------------------------------------------------------------------------
# Leg-level failure handling
# ---------------------------------------------------------------------------

# Failures a sampler tolerates for a single attempt or leg.
LEG_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError, TransferError)


def describe_error(exc: BaseException) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return "timed out"
    return str(exc) or exc.__class__.__name__


def failure_reason(configured: int, last_error: Optional[BaseException]) -> Reason:
    """Stage failure reason: the single leg's cause, or all-legs-failed."""
    if configured > 1:
        return Reason.ALL_LEGS_FAILED
    if isinstance(last_error, asyncio.TimeoutError):
        return Reason.TIMEOUT
    return Reason.NETWORK_FAILURE
