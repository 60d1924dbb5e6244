"""
dataflow_fixpoint — Worklist Fixpoint Engine for Dataflow Analyses
==================================================================

This package provides a generic fixpoint engine over graphs of program
instructions.  Clients supply the merge algebra (a semilattice) and the
per-instruction transfer function; the engine computes, for every
instruction, a value consistent with all of its incoming edges.

Core modules
------------
engine
    :class:`DFAEngine`, postorder-seeded chaotic iteration with an
    optional CPU-time budget.
instruction
    Instructions, call stacks and the :class:`CallEnvironment` used for
    call/return-aware neighbor resolution.
lattice
    :class:`Semilattice` and :class:`DfaInstance` contracts plus built-in
    semilattices.
postorder
    Traversal-order hints used to seed worklist sweeps.
cancellation
    Cooperative cancellation and CPU clocks.
config
    :class:`EngineConfig`.
flow
    Named graph builder and S-expression flow descriptions.

Quick start
-----------
>>> from dataflow_fixpoint import (
...     DFAEngine, FlowBuilder, FunctionDfaInstance, PowersetSemilattice)
>>> flow = FlowBuilder().chain("A", "B", "C").build()
>>> dfa = FunctionDfaInstance(lambda v, i: v | {i.name}, initial=frozenset)
>>> result = DFAEngine(flow, dfa, PowersetSemilattice()).perform_force_dfa()
>>> sorted(result[2])
['A', 'B', 'C']
"""

from __future__ import annotations

import logging
import sys
from typing import List

from dataflow_fixpoint.cancellation import (
    NEVER_CANCELLED,
    Cancellable,
    CancellationToken,
    thread_cpu_clock,
)
from dataflow_fixpoint.config import DEFAULT_TIME_LIMIT, EngineConfig
from dataflow_fixpoint.engine import DFAEngine, RunOutcome, RunStats
from dataflow_fixpoint.errors import (
    ConfigError,
    DataflowError,
    FlowFormatError,
    InvalidFlowError,
    ProcessCanceledError,
)
from dataflow_fixpoint.flow import Flow, FlowBuilder, dump_flow, load_flow
from dataflow_fixpoint.instruction import (
    AfterCallInstruction,
    CallEnvironment,
    CallInstruction,
    CallStack,
    EntryInstruction,
    Instruction,
    ReturnInstruction,
)
from dataflow_fixpoint.lattice import (
    DfaInstance,
    FunctionDfaInstance,
    MapSemilattice,
    PowersetSemilattice,
    Semilattice,
    check_semilattice_laws,
)
from dataflow_fixpoint.postorder import postorder, reverse_postorder

# ---------------------------------------------------------------------------
# Package metadata
# ---------------------------------------------------------------------------

__version__ = "0.1.0"
__author__ = "dataflow-fixpoint contributors"
__license__ = "MIT"

_log = logging.getLogger(__name__)
_log.addHandler(logging.NullHandler())

__all__: List[str] = [
    # engine
    "DFAEngine",
    "RunOutcome",
    "RunStats",
    # client contracts
    "Semilattice",
    "DfaInstance",
    "FunctionDfaInstance",
    "PowersetSemilattice",
    "MapSemilattice",
    "check_semilattice_laws",
    # graph
    "Instruction",
    "CallInstruction",
    "ReturnInstruction",
    "AfterCallInstruction",
    "EntryInstruction",
    "CallStack",
    "CallEnvironment",
    "Flow",
    "FlowBuilder",
    "load_flow",
    "dump_flow",
    "postorder",
    "reverse_postorder",
    # configuration and cancellation
    "EngineConfig",
    "DEFAULT_TIME_LIMIT",
    "Cancellable",
    "CancellationToken",
    "NEVER_CANCELLED",
    "thread_cpu_clock",
    # errors
    "DataflowError",
    "ProcessCanceledError",
    "InvalidFlowError",
    "FlowFormatError",
    "ConfigError",
    # logging
    "configure_logging",
]


_LEVELS = (logging.WARNING, logging.INFO, logging.DEBUG)


def configure_logging(verbosity: int = 0) -> logging.Handler:
    """Send ``dataflow_fixpoint`` log records to stderr.

    Parameters
    ----------
    verbosity:
        0 → WARNING, 1 → INFO, 2+ → DEBUG.

    Calling it again replaces the stderr handler installed by the previous
    call, so records are never printed twice.  Returns the new handler.
    """
    logger = logging.getLogger(__name__)
    logger.setLevel(_LEVELS[min(max(verbosity, 0), len(_LEVELS) - 1)])

    for old in list(logger.handlers):
        if getattr(old, "_dataflow_fixpoint_stderr", False):
            logger.removeHandler(old)
            old.close()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    handler._dataflow_fixpoint_stderr = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    return handler
