"""
Cancellation signal and per-operation bounding.

Every network operation a sampler performs goes through :func:`run_bounded`,
which applies the operation's own timeout and races it against the run's
:class:`CancelToken`.  Whichever finishes first wins; a cancelled operation
is torn down and its partial work is never reported.
"""
from __future__ import annotations

import asyncio
import contextlib
from typing import Awaitable, Optional, TypeVar

from .errors import MeasurementError, Reason, Stage

T = TypeVar("T")


class CancelToken:
    """One-shot cancellation flag owned by a single measurement run."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self, stage: Stage) -> None:
        if self._event.is_set():
            raise MeasurementError(stage, Reason.CANCELLED, f"{stage.value} stage cancelled")


async def run_bounded(
    aw: Awaitable[T],
    *,
    stage: Stage,
    timeout: Optional[float] = None,
    cancel: Optional[CancelToken] = None,
) -> T:
    """
    Await *aw* with an optional *timeout*, aborting early on *cancel*.

    Raises ``asyncio.TimeoutError`` when the timeout elapses and
    ``MeasurementError(stage, CANCELLED)`` when the token fires first.
    """
    if cancel is not None and cancel.is_cancelled:
        if asyncio.iscoroutine(aw):
            aw.close()
        cancel.raise_if_cancelled(stage)

    bounded = asyncio.wait_for(aw, timeout) if timeout else aw

    if cancel is None:
        return await bounded

    task = asyncio.ensure_future(bounded)
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if task in done:
        return task.result()

    task.cancel()
    with contextlib.suppress(asyncio.CancelledError, Exception):
        await task
    raise MeasurementError(stage, Reason.CANCELLED, f"{stage.value} stage cancelled")
