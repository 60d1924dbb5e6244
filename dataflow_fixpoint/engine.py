"""
dataflow_fixpoint.engine
========================

Worklist-based fixpoint engine over an instruction graph.

Given the instructions of one flow graph, a :class:`~dataflow_fixpoint.lattice.DfaInstance`
and a :class:`~dataflow_fixpoint.lattice.Semilattice`, the engine computes
for every instruction a value consistent with all of its incoming edges.

Algorithm
---------
Postorder-seeded chaotic iteration:

1.  Every slot of the result starts at ``dfa.initial()``.
2.  Instructions are visited in reverse postorder (forward problems) or
    postorder (backward problems).  Each instruction not yet visited
    seeds a FIFO worklist sweep, so unreachable instructions are still
    evaluated once.
3.  A popped instruction joins the stored values of its input neighbors
    (predecessors when forward, successors when backward), applies
    ``dfa.fun`` and compares the outcome with its stored value.  Only a
    change is stored, and only a change enqueues its output neighbors.

Neighbors are resolved through a fresh
:class:`~dataflow_fixpoint.instruction.CallEnvironment` per run, so call
and return edges see the call stack that reached them.

Both entry points poll for cancellation once per worklist item.  The
timeout entry point also reads the injected CPU clock and gives up with
``None`` once the configured budget is spent.

Usage example
-------------
::

    from dataflow_fixpoint import DFAEngine, FlowBuilder, PowersetSemilattice
    from dataflow_fixpoint import FunctionDfaInstance

    b = FlowBuilder()
    b.chain("A", "B", "C")
    flow = b.build()

    dfa = FunctionDfaInstance(
        lambda value, instr: value | {instr.name},
        initial=frozenset,
    )
    result = DFAEngine(flow, dfa, PowersetSemilattice()).perform_force_dfa()
    # (frozenset({'A'}), frozenset({'A', 'B'}), frozenset({'A', 'B', 'C'}))
"""

from __future__ import annotations

import enum
import logging
from collections import deque
from dataclasses import dataclass
from typing import (
    Any,
    Deque,
    Generic,
    List,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
    cast,
)

from dataflow_fixpoint.cancellation import NEVER_CANCELLED, Cancellable
from dataflow_fixpoint.config import EngineConfig
from dataflow_fixpoint.errors import InvalidFlowError, ProcessCanceledError
from dataflow_fixpoint.instruction import CallEnvironment
from dataflow_fixpoint.lattice import DfaInstance, Semilattice
from dataflow_fixpoint.postorder import postorder, reverse_postorder

E = TypeVar("E")

__all__ = ["DFAEngine", "RunOutcome", "RunStats"]

logger = logging.getLogger(__name__)


class RunOutcome(enum.Enum):
    """How the last run of an engine ended."""
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass
class RunStats:
    """Bookkeeping for one engine run.

    Attributes
    ----------
    outcome : RunOutcome
    iterations : int
        Worklist items popped and evaluated.
    sweeps : int
        Worklist sweeps started from a postorder seed.
    changes : int
        Evaluations that stored a new value.
    cpu_seconds : float
        CPU time spent, as read from the configured clock.
    forward : bool
        Direction of the analysis.
    """
    outcome: RunOutcome = RunOutcome.COMPLETED
    iterations: int = 0
    sweeps: int = 0
    changes: int = 0
    cpu_seconds: float = 0.0
    forward: bool = True


class _TimedOut(Exception):
    """Internal signal unwinding the worklist loop on budget exhaustion."""


class DFAEngine(Generic[E]):
    """Fixpoint engine for one instruction graph.

    Parameters
    ----------
    flow : sequence of Instruction
        The instructions, where ``flow[i].num == i``.  Treated as
        read-only for the engine's lifetime.
    dfa : DfaInstance[E]
        Initial value, direction and transfer function.
    semilattice : Semilattice[E]
        Join and equality over values.
    config : EngineConfig, optional
        CPU-time budget and clock for :meth:`perform_dfa_with_timeout`.
    cancellation : Cancellable, optional
        Polled once per worklist item.

    Raises
    ------
    InvalidFlowError
        If instruction numbers are not exactly ``0..len(flow)-1`` in
        order.
    """

    def __init__(
        self,
        flow: Sequence[Any],
        dfa: DfaInstance[E],
        semilattice: Semilattice[E],
        config: Optional[EngineConfig] = None,
        cancellation: Optional[Cancellable] = None,
    ) -> None:
        self.flow: Tuple[Any, ...] = tuple(flow)
        self.dfa = dfa
        self.semilattice = semilattice
        self.config = config if config is not None else EngineConfig()
        self.cancellation = (
            cancellation if cancellation is not None else NEVER_CANCELLED
        )
        self.last_run: Optional[RunStats] = None
        self._check_numbering()

    # ----- Entry points -----------------------------------------------------

    def perform_force_dfa(self) -> Tuple[E, ...]:
        """Run to the fixpoint with no time bound.

        Terminates only if the semilattice has no infinite ascending chain
        reachable from ``dfa.initial()``.

        Raises
        ------
        ProcessCanceledError
            If the cancellation object signals during the run.
        """
        # without a budget the run either completes or raises
        return cast(Tuple[E, ...], self._perform(timeout=False))

    def perform_dfa_with_timeout(self) -> Optional[Tuple[E, ...]]:
        """Run to the fixpoint within the configured CPU-time budget.

        Returns
        -------
        tuple or None
            The per-instruction values, or ``None`` if the budget ran out.
            ``None`` means *no result*; it must never be read as an
            all-bottom result.

        Raises
        ------
        ProcessCanceledError
            If the cancellation object signals during the run.
        """
        return self._perform(timeout=True)

    # ----- Fixpoint check ---------------------------------------------------

    def is_fixpoint(self, result: Sequence[E]) -> bool:
        """Check that one more relaxation pass over *result* changes nothing.

        Every instruction re-joins its input neighbors from *result* and
        re-applies ``fun``; the answer is ``True`` iff each outcome is
        ``eq`` to the stored value.  Call stacks are rebuilt by walking
        the graph in the same seed order the engine uses.
        """
        if len(result) != len(self.flow):
            return False
        forward = self.dfa.is_forward()
        env = CallEnvironment(len(self.flow))
        for num in self._seed_order(forward):
            instr = self.flow[num]
            new_value = self._evaluate(instr, result, env, forward)
            if not self.semilattice.eq(new_value, result[num]):
                return False
            self._outputs(instr, env, forward)
        return True

    # ----- Internal helpers -------------------------------------------------

    def _check_numbering(self) -> None:
        for index, instr in enumerate(self.flow):
            num = getattr(instr, "num", None)
            if num != index:
                raise InvalidFlowError(
                    f"instruction at position {index} has num {num!r}",
                    instruction=instr,
                    hint="instruction numbers must be dense, 0..N-1, in order",
                )

    def _seed_order(self, forward: bool) -> List[int]:
        # Backward problems reuse the forward DFS and take its plain
        # postorder; it is a seed hint only.
        return reverse_postorder(self.flow) if forward else postorder(self.flow)

    def _inputs(self, instr, env: CallEnvironment, forward: bool) -> List[Any]:
        return instr.predecessors(env) if forward else instr.successors(env)

    def _outputs(self, instr, env: CallEnvironment, forward: bool) -> List[Any]:
        return instr.successors(env) if forward else instr.predecessors(env)

    def _evaluate(
        self,
        instr,
        values: Sequence[E],
        env: CallEnvironment,
        forward: bool,
    ) -> E:
        incoming = [values[n.num] for n in self._inputs(instr, env, forward)]
        merged = self.semilattice.join(incoming)
        return self.dfa.fun(merged, instr)

    def _perform(self, timeout: bool) -> Optional[Tuple[E, ...]]:
        n = len(self.flow)
        forward = self.dfa.is_forward()
        clock = self.config.clock
        limit = self.config.time_limit
        start = clock()
        stats = RunStats(forward=forward)
        self.last_run = stats

        info: List[E] = [self.dfa.initial() for _ in range(n)]
        visited = [False] * n
        env = CallEnvironment(n)
        eq = self.semilattice.eq
        check_cancelled = self.cancellation.check_cancelled

        try:
            for seed in self._seed_order(forward):
                if visited[seed]:
                    continue
                visited[seed] = True
                stats.sweeps += 1
                worklist: Deque[Any] = deque([self.flow[seed]])
                pending = {seed}

                while worklist:
                    if timeout and clock() - start > limit:
                        raise _TimedOut()
                    check_cancelled()

                    curr = worklist.popleft()
                    num = curr.num
                    pending.discard(num)
                    stats.iterations += 1

                    new_value = self._evaluate(curr, info, env, forward)
                    if eq(new_value, info[num]):
                        continue

                    info[num] = new_value
                    stats.changes += 1
                    for nxt in self._outputs(curr, env, forward):
                        visited[nxt.num] = True
                        if nxt.num not in pending:
                            pending.add(nxt.num)
                            worklist.append(nxt)
        except _TimedOut:
            stats.outcome = RunOutcome.TIMED_OUT
            stats.cpu_seconds = clock() - start
            logger.info(
                "dataflow analysis over %d instructions exceeded %.3fs CPU "
                "budget after %d iterations",
                n, limit, stats.iterations,
            )
            return None
        except ProcessCanceledError:
            stats.outcome = RunOutcome.CANCELLED
            stats.cpu_seconds = clock() - start
            logger.debug(
                "dataflow analysis cancelled after %d iterations",
                stats.iterations,
            )
            raise

        stats.cpu_seconds = clock() - start
        logger.debug(
            "%s dataflow fixpoint over %d instructions: %d iterations, "
            "%d sweeps, %d changes, %.4fs CPU",
            "forward" if forward else "backward",
            n, stats.iterations, stats.sweeps, stats.changes,
            stats.cpu_seconds,
        )
        return tuple(info)
