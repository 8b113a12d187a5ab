"""Progress observer interface for the samplers and the orchestrator."""
from __future__ import annotations

from typing import Optional

from .errors import Stage


class ProgressObserver:
    """
    Receives live progress from a measurement run.

    * latency:  ``(LATENCY, attempt_index, attempts, last_value_ms or None)``
    * download: ``(DOWNLOAD, bytes_received_in_leg, leg_size, live_bps)``
    * upload:   ``(UPLOAD, leg_index, leg_count, leg_bps)``

    Subclass and override :meth:`on_progress`; the base class ignores
    everything so it doubles as the no-op default.
    """

    def on_progress(
        self,
        stage: Stage,
        current: float,
        total: float,
        rate: Optional[float],
    ) -> None:
        pass

    def on_stage(self, stage: Stage) -> None:
        """Called once when a stage starts."""


class NullObserver(ProgressObserver):
    pass
