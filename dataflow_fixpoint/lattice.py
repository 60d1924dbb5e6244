"""
dataflow_fixpoint.lattice
=========================

Client-side abstractions consumed by the engine.

A dataflow analysis is defined by:

1.  A **semilattice** ``(E, ⊔)`` — a merge operator that is associative,
    commutative and idempotent, plus an equality used to detect that an
    instruction's value has stopped changing.
2.  A **DFA instance** — the initial (bottom) value, the traversal
    direction, and the transfer function ``fun : E × Instruction → E``.

The engine trusts this contract.  Every ascending chain starting from
``initial()`` must be finite, otherwise the worklist never drains and only
the timeout entry point returns.

Public API
----------
    Semilattice             - abstract merge algebra
    DfaInstance             - abstract transfer function + direction
    FunctionDfaInstance     - adapter over plain callables
    PowersetSemilattice     - frozenset union
    MapSemilattice          - pointwise join of maps
    check_semilattice_laws  - development helper for sample values
"""

from __future__ import annotations

import abc
from typing import (
    Any,
    Callable,
    Dict,
    FrozenSet,
    Generic,
    List,
    Mapping,
    Sequence,
    TypeVar,
)

E = TypeVar("E")          # Analysis value type
K = TypeVar("K")          # Key type (for MapSemilattice)

__all__ = [
    "Semilattice",
    "DfaInstance",
    "FunctionDfaInstance",
    "PowersetSemilattice",
    "MapSemilattice",
    "check_semilattice_laws",
]


# ===========================================================================
# SEMILATTICE — ABSTRACT BASE
# ===========================================================================

class Semilattice(abc.ABC, Generic[E]):
    """Merge algebra over analysis values.

    ``join`` receives every incoming value at once, possibly none.  The
    engine does not special-case the empty sequence, so ``join([])`` must
    return the identity (bottom) of the algebra.
    """

    @abc.abstractmethod
    def join(self, values: Sequence[E]) -> E:
        """Return the least upper bound of *values*."""
        ...

    @abc.abstractmethod
    def eq(self, a: E, b: E) -> bool:
        """Return ``True`` iff *a* and *b* are the same lattice element."""
        ...


# ===========================================================================
# DFA INSTANCE — ABSTRACT BASE
# ===========================================================================

class DfaInstance(abc.ABC, Generic[E]):
    """Transfer function and traversal direction of one analysis."""

    @abc.abstractmethod
    def initial(self) -> E:
        """The value every instruction holds before any transfer."""
        ...

    def is_forward(self) -> bool:
        """Forward analyses read predecessors and feed successors."""
        return True

    @abc.abstractmethod
    def fun(self, value: E, instruction: Any) -> E:
        """Apply *instruction*'s effect to *value*.

        Must return the resulting value and must be a deterministic
        function of ``(value, instruction)``.  The engine may pass a value
        that is also stored for a neighbor, so *value* must not be
        mutated in place.
        """
        ...


class FunctionDfaInstance(DfaInstance[E]):
    """Wraps a plain ``(value, instruction) -> value`` callable.

    Parameters
    ----------
    fun : callable
        The transfer function.
    initial : callable
        Zero-argument factory for the initial value.  A factory rather
        than a value so mutable initial values are never shared.
    forward : bool
        Traversal direction.
    """

    __slots__ = ("_fun", "_initial", "_forward")

    def __init__(
        self,
        fun: Callable[[E, Any], E],
        initial: Callable[[], E],
        forward: bool = True,
    ) -> None:
        self._fun = fun
        self._initial = initial
        self._forward = forward

    def initial(self) -> E:
        return self._initial()

    def is_forward(self) -> bool:
        return self._forward

    def fun(self, value: E, instruction: Any) -> E:
        return self._fun(value, instruction)


# ===========================================================================
# BUILT-IN SEMILATTICES
# ===========================================================================

# ---------- PowersetSemilattice ---------------------------------------------

class PowersetSemilattice(Semilattice[FrozenSet]):
    """Powerset semilattice: ``(2^U, ∪)`` with ``∅`` as identity."""

    def join(self, values: Sequence[FrozenSet]) -> FrozenSet:
        return frozenset().union(*values)

    def eq(self, a: FrozenSet, b: FrozenSet) -> bool:
        return a == b


# ---------- MapSemilattice --------------------------------------------------

class MapSemilattice(Semilattice[Mapping[K, E]]):
    """Maps from keys to values of a sub-semilattice.

    The join is pointwise; a missing key stands for the value
    semilattice's identity, so ``{}`` is the identity of the map.

    Parameters
    ----------
    value_lattice : Semilattice
        The semilattice for individual values.
    """

    def __init__(self, value_lattice: Semilattice[E]) -> None:
        self.value_lattice = value_lattice

    def join(self, values: Sequence[Mapping[K, E]]) -> Dict[K, E]:
        grouped: Dict[K, List[E]] = {}
        for mapping in values:
            for key, value in mapping.items():
                grouped.setdefault(key, []).append(value)
        vl = self.value_lattice
        return {key: vl.join(vs) for key, vs in grouped.items()}

    def eq(self, a: Mapping[K, E], b: Mapping[K, E]) -> bool:
        vl = self.value_lattice
        bottom = vl.join([])
        for key in set(a) | set(b):
            va = a.get(key, bottom)
            vb = b.get(key, bottom)
            if not vl.eq(va, vb):
                return False
        return True


# ===========================================================================
# DEVELOPMENT HELPERS
# ===========================================================================

def check_semilattice_laws(
    lattice: Semilattice[E],
    samples: Sequence[E],
) -> List[str]:
    """Check the join laws on sample values.

    Verifies idempotence, commutativity, associativity and that
    ``join([])`` is an identity, for every combination drawn from
    *samples*.  This cannot prove the laws, only detect violations; the
    engine itself never calls it.

    Returns
    -------
    list of str
        One message per violation; empty when none was found.
    """
    problems: List[str] = []
    join, eq = lattice.join, lattice.eq
    bottom = join([])
    for a in samples:
        if not eq(join([a, a]), a):
            problems.append(f"join is not idempotent on {a!r}")
        if not eq(join([a, bottom]), a):
            problems.append(f"join([]) is not an identity for {a!r}")
        for b in samples:
            if not eq(join([a, b]), join([b, a])):
                problems.append(f"join is not commutative on {a!r}, {b!r}")
            for c in samples:
                left = join([join([a, b]), c])
                right = join([a, join([b, c])])
                if not eq(left, right):
                    problems.append(
                        f"join is not associative on {a!r}, {b!r}, {c!r}"
                    )
    return problems
