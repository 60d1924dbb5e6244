# tests/conftest.py
"""
Shared helpers for dataflow-fixpoint tests.

Test modules import the helpers directly
(``from tests.conftest import ...``); fixtures are picked up by pytest.
"""

from typing import Any, Dict, List, Sequence

import pytest

from dataflow_fixpoint import (
    DfaInstance,
    FlowBuilder,
    FunctionDfaInstance,
    Semilattice,
    load_flow,
)


# ── Transfer functions and lattices ──────────────────────────────

def add_self(value, instr):
    """Reaching-set transfer: the instruction adds its own name."""
    return value | {instr.name}


def reaching_dfa(forward: bool = True) -> FunctionDfaInstance:
    return FunctionDfaInstance(add_self, initial=frozenset, forward=forward)


def identity_dfa(forward: bool = True) -> FunctionDfaInstance:
    return FunctionDfaInstance(lambda value, instr: value, initial=frozenset,
                               forward=forward)


class NeverEqualSemilattice(Semilattice):
    """Union join whose equality never holds: no instruction converges."""

    def join(self, values):
        return frozenset().union(*values)

    def eq(self, a, b):
        return False


class RecordingDfa(DfaInstance):
    """Wraps another DFA instance and records every value ``fun`` returns."""

    def __init__(self, inner: DfaInstance) -> None:
        self.inner = inner
        self.outputs: Dict[int, List[Any]] = {}

    def initial(self):
        return self.inner.initial()

    def is_forward(self) -> bool:
        return self.inner.is_forward()

    def fun(self, value, instruction):
        out = self.inner.fun(value, instruction)
        self.outputs.setdefault(instruction.num, []).append(out)
        return out


class CancelAfter:
    """Cancellation object that fires on the *n*-th poll."""

    def __init__(self, n: int) -> None:
        self.n = n
        self.polls = 0

    def check_cancelled(self) -> None:
        from dataflow_fixpoint import ProcessCanceledError

        self.polls += 1
        if self.polls >= self.n:
            raise ProcessCanceledError("cancelled by test")


# ── Clocks ───────────────────────────────────────────────────────

class ManualClock:
    """Deterministic CPU clock.

    Each reading returns the current time and then advances it by
    *step* seconds, so a worklist loop that polls the clock makes steady
    progress toward its budget.
    """

    def __init__(self, start: float = 0.0, step: float = 0.0) -> None:
        self.now = start
        self.step = step
        self.readings = 0

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def __call__(self) -> float:
        value = self.now
        self.now += self.step
        self.readings += 1
        return value


# ── Graph helpers ────────────────────────────────────────────────

def make_chain(*names: str, isolated: Sequence[str] = ()):
    """Build ``names[0] -> names[1] -> ...`` plus unconnected nodes."""
    b = FlowBuilder()
    b.chain(*names)
    for name in isolated:
        b.node(name)
    return b.build()


def make_graph(nodes: Sequence[str], edges: Sequence[tuple]):
    """Build a flow of plain nodes in the given order with the given edges."""
    b = FlowBuilder()
    for name in nodes:
        b.node(name)
    for src, dst in edges:
        b.edge(src, dst)
    return b.build()


def reversed_graph(flow):
    """Same nodes and numbering, every static edge flipped."""
    edges = [
        (succ.name, instr.name)
        for instr in flow
        for succ in instr.all_successors()
    ]
    return make_graph(flow.names, edges)


CALL_FLOW_TEXT = """
(flow
  (node A K)
  (call K F-IN F-OUT)
  (after K-AFTER K C)
  (node C)
  (entry F-IN F-BODY)
  (node F-BODY F-OUT)
  (return F-OUT))
"""


# Two call sites K1, K2 into one callee F-IN .. F-OUT.
SHARED_CALLEE_FLOW_TEXT = """
(flow
  (node A K1)
  (call K1 F-IN F-OUT)
  (after K1-AFTER K1 B)
  (node B K2)
  (call K2 F-IN F-OUT)
  (after K2-AFTER K2 C)
  (node C)
  (entry F-IN F-BODY)
  (node F-BODY F-OUT)
  (return F-OUT))
"""


def by_name(flow, result) -> Dict[str, frozenset]:
    return flow.values_by_name(result)


# ── Fixtures ─────────────────────────────────────────────────────

@pytest.fixture
def chain_flow():
    return make_chain("A", "B", "C")


@pytest.fixture
def call_flow():
    return load_flow(CALL_FLOW_TEXT)


@pytest.fixture
def manual_clock():
    return ManualClock(step=0.001)
