"""
dataflow_fixpoint.config
========================

Engine configuration.

The CPU-time budget of the timeout entry point is injected per engine
through :class:`EngineConfig`; there is no module-level limit to patch.
Hosts that configure through the environment can use
:meth:`EngineConfig.from_env`, which reads ``DATAFLOW_FIXPOINT_TIME_LIMIT``
(seconds, may be fractional).
"""

from __future__ import annotations

import dataclasses
import logging
import math
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dataflow_fixpoint.cancellation import Clock, thread_cpu_clock
from dataflow_fixpoint.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_TIME_LIMIT: float = 10.0
TIME_LIMIT_ENV = "DATAFLOW_FIXPOINT_TIME_LIMIT"


@dataclass(frozen=True)
class EngineConfig:
    """Settings for one :class:`~dataflow_fixpoint.engine.DFAEngine`.

    Attributes
    ----------
    time_limit : float
        CPU seconds the timeout entry point may spend before giving up.
    clock : callable
        Zero-argument CPU clock returning seconds.
    """

    time_limit: float = DEFAULT_TIME_LIMIT
    clock: Clock = thread_cpu_clock

    def __post_init__(self) -> None:
        if not isinstance(self.time_limit, (int, float)) or isinstance(
            self.time_limit, bool
        ):
            raise ConfigError(
                f"time_limit must be a number, got {type(self.time_limit).__name__}"
            )
        if math.isnan(self.time_limit) or self.time_limit < 0:
            raise ConfigError(
                f"time_limit must be a non-negative number of seconds, "
                f"got {self.time_limit!r}"
            )
        if not callable(self.clock):
            raise ConfigError("clock must be a zero-argument callable")

    def with_time_limit(self, seconds: float) -> "EngineConfig":
        """Return a copy with a different budget."""
        return dataclasses.replace(self, time_limit=seconds)

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        clock: Clock = thread_cpu_clock,
    ) -> "EngineConfig":
        """Build a config, taking the budget from the environment if set."""
        env = os.environ if environ is None else environ
        raw = env.get(TIME_LIMIT_ENV, "").strip()
        if not raw:
            return cls(clock=clock)
        try:
            seconds = float(raw)
        except ValueError as e:
            raise ConfigError(
                f"{TIME_LIMIT_ENV}={raw!r} is not a number of seconds",
                hint="use a value such as 2.5",
            ) from e
        logger.debug("time limit %.3fs taken from %s", seconds, TIME_LIMIT_ENV)
        return cls(time_limit=seconds, clock=clock)
