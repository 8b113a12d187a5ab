"""Speed measurement engine -- transfer client, samplers, and statistics."""

from .cancel import CancelToken
from .endpoint import Endpoint, TransferClient, UploadReceipt
from .errors import MeasurementError, Reason, Stage, TransferError
from .latency import LatencySampler
from .orchestrator import MeasurementOrchestrator, MeasurementResult, RunState, measure
from .progress import NullObserver, ProgressObserver
from .stats import (
    LatencyEstimate,
    LegSample,
    ThroughputEstimate,
    aggregate_rate,
    calculate_jitter,
    calculate_mean,
    format_latency,
    format_rate,
)
from .throughput import ThroughputSampler, UploadTiming

__all__ = [
    "CancelToken",
    "Endpoint",
    "LatencyEstimate",
    "LatencySampler",
    "LegSample",
    "MeasurementError",
    "MeasurementOrchestrator",
    "MeasurementResult",
    "NullObserver",
    "ProgressObserver",
    "Reason",
    "RunState",
    "Stage",
    "ThroughputEstimate",
    "ThroughputSampler",
    "TransferClient",
    "TransferError",
    "UploadReceipt",
    "UploadTiming",
    "aggregate_rate",
    "calculate_jitter",
    "calculate_mean",
    "format_latency",
    "format_rate",
    "measure",
]
