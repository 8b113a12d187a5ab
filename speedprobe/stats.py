"""
Network measurement statistics.

Pure functions and lightweight dataclasses -- no I/O, no side effects.
Everything here is deterministic and easy to unit-test.
"""
from __future__ import annotations

import math
import statistics
from dataclasses import dataclass, field
from typing import Iterable, List, Tuple


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LatencyEstimate:
    """Mean round-trip time and jitter from one latency stage."""

    mean_ms: float
    jitter_ms: float
    samples: Tuple[float, ...] = ()
    failed_attempts: int = 0

    @classmethod
    def from_samples(cls, samples: Iterable[float], failed_attempts: int = 0) -> LatencyEstimate:
        values = tuple(samples)
        if not values:
            raise ValueError("at least one latency sample is required")
        return cls(
            mean_ms=round(calculate_mean(values), 1),
            jitter_ms=round(calculate_jitter(values), 1),
            samples=values,
            failed_attempts=failed_attempts,
        )

    def to_dict(self) -> dict:
        return {
            "mean_ms": self.mean_ms,
            "jitter_ms": self.jitter_ms,
            "samples": [round(s, 3) for s in self.samples],
            "failed_attempts": self.failed_attempts,
        }


@dataclass(frozen=True)
class LegSample:
    """One timed transfer: *size* requested, *bytes* counted, *seconds* taken."""

    size: int
    bytes: int
    seconds: float

    @property
    def bits(self) -> int:
        return self.bytes * 8

    @property
    def bits_per_second(self) -> float:
        return self.bits / self.seconds if self.seconds > 0 else 0.0

    def to_dict(self) -> dict:
        return {
            "size": self.size,
            "bytes": self.bytes,
            "seconds": round(self.seconds, 6),
            "bps": round(self.bits_per_second, 2),
        }


@dataclass(frozen=True)
class ThroughputEstimate:
    """Aggregate rate of one throughput stage."""

    bits_per_second: float = 0.0
    legs: Tuple[LegSample, ...] = ()
    failed_legs: int = 0

    @classmethod
    def from_legs(cls, legs: Iterable[LegSample], failed_legs: int = 0) -> ThroughputEstimate:
        legs = tuple(legs)
        return cls(
            bits_per_second=aggregate_rate(legs),
            legs=legs,
            failed_legs=failed_legs,
        )

    @property
    def total_bytes(self) -> int:
        return sum(leg.bytes for leg in self.legs)

    @property
    def total_seconds(self) -> float:
        return math.fsum(leg.seconds for leg in self.legs)

    def to_dict(self) -> dict:
        return {
            "bps": round(self.bits_per_second, 2),
            "bytes": self.total_bytes,
            "seconds": round(self.total_seconds, 6),
            "legs": [leg.to_dict() for leg in self.legs],
            "failed_legs": self.failed_legs,
        }


# ---------------------------------------------------------------------------
# Pure helper functions
# ---------------------------------------------------------------------------

def calculate_mean(samples: Iterable[float]) -> float:
    values = list(samples)
    if not values:
        return 0.0
    return statistics.fmean(values)


def calculate_jitter(samples: Iterable[float]) -> float:
    """Population standard deviation of the samples around their mean."""
    values = list(samples)
    if len(values) < 2:
        return 0.0
    return statistics.pstdev(values)


def aggregate_rate(legs: Iterable[LegSample]) -> float:
    """
    ``total_bits / total_seconds`` over *legs*, or 0 when no time elapsed.

    ``math.fsum`` keeps the result independent of leg order.
    """
    legs = list(legs)
    total_bits = math.fsum(leg.bits for leg in legs)
    total_seconds = math.fsum(leg.seconds for leg in legs)
    if total_seconds <= 0:
        return 0.0
    return total_bits / total_seconds


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

_RATE_UNITS: List[str] = ["bps", "Kbps", "Mbps", "Gbps"]


def format_rate(bits_per_second: float, decimals: int = 2) -> str:
    """
    Human-scaled rate string using decimal (1000) steps.

    ``0`` is always ``"0 bps"``; the unit tops out at Gbps.
    """
    if bits_per_second < 0 or math.isnan(bits_per_second):
        raise ValueError(f"rate must be non-negative, got {bits_per_second!r}")
    if bits_per_second == 0:
        return "0 bps"

    decimals = max(decimals, 0)

    # Integer comparison instead of log() so exact powers of 1000 land on
    # the higher unit.
    idx = 0
    while idx < len(_RATE_UNITS) - 1 and bits_per_second >= 1000 ** (idx + 1):
        idx += 1

    value = bits_per_second / 1000 ** idx
    return f"{value:.{decimals}f} {_RATE_UNITS[idx]}"


def format_latency(latency_ms: float) -> str:
    """Human-readable latency string."""
    if latency_ms >= 1000:
        return f"{latency_ms / 1000:.2f} s"
    return f"{latency_ms:.1f} ms"


def format_size(num_bytes: int) -> str:
    if num_bytes < 1024:
        return f"{num_bytes} B"
    if num_bytes < 1024 * 1024:
        return f"{num_bytes / 1024:.1f} KB"
    return f"{num_bytes / (1024 * 1024):.1f} MB"
