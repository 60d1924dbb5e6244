"""
dataflow_fixpoint.cancellation
==============================

Cooperative cancellation and CPU-time measurement.

The engine polls a cancellation object once per worklist item; anything
with a ``check_cancelled()`` method that raises
:class:`~dataflow_fixpoint.errors.ProcessCanceledError` will do.

CPU time is read through a zero-argument clock returning seconds.  The
default is :func:`time.thread_time`, which counts only the calling
thread, so engines running on other threads do not eat each other's
budget.  Any other zero-argument callable can be injected instead.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional, Protocol, runtime_checkable

from dataflow_fixpoint.errors import ProcessCanceledError

Clock = Callable[[], float]

__all__ = [
    "Clock",
    "Cancellable",
    "CancellationToken",
    "NEVER_CANCELLED",
    "thread_cpu_clock",
]


def thread_cpu_clock() -> float:
    """CPU seconds consumed by the calling thread."""
    return time.thread_time()


@runtime_checkable
class Cancellable(Protocol):
    """Anything the engine can poll for cancellation."""

    def check_cancelled(self) -> None:
        ...


class CancellationToken:
    """Host-side cancellation flag.

    ``cancel()`` may be called from any thread; the analysis notices the
    next time it polls.
    """

    __slots__ = ("_event", "_reason")

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: Optional[str] = None

    def cancel(self, reason: Optional[str] = None) -> None:
        self._reason = reason
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def check_cancelled(self) -> None:
        """Raise :class:`ProcessCanceledError` if cancellation was requested."""
        if self._event.is_set():
            if self._reason:
                raise ProcessCanceledError(
                    f"dataflow analysis cancelled: {self._reason}"
                )
            raise ProcessCanceledError()


class _NeverCancelled:
    __slots__ = ()

    def check_cancelled(self) -> None:
        return None


NEVER_CANCELLED = _NeverCancelled()
