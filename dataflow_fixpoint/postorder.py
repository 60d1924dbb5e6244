"""
dataflow_fixpoint.postorder
===========================

Traversal-order hints for seeding the worklist.

The orders are computed over *static* successor edges with one
depth-first pass that restarts at every not-yet-visited instruction, so
disconnected and unreachable instructions are covered too.  They only
decide where sweeps start; fixpoint correctness never depends on them.
"""

from __future__ import annotations

from typing import List, Sequence


def postorder(flow: Sequence) -> List[int]:
    """Return instruction numbers in depth-first postorder.

    The result is a permutation of ``0..len(flow)-1``.  Roots are tried
    in instruction-number order.
    """
    n = len(flow)
    visited = [False] * n
    order: List[int] = []

    for root in flow:
        if visited[root.num]:
            continue
        visited[root.num] = True
        # Explicit stack of (instruction, successor iterator) pairs, so
        # deep graphs do not hit the interpreter recursion limit.
        stack = [(root, iter(root.all_successors()))]
        while stack:
            node, succs = stack[-1]
            for succ in succs:
                if not visited[succ.num]:
                    visited[succ.num] = True
                    stack.append((succ, iter(succ.all_successors())))
                    break
            else:
                stack.pop()
                order.append(node.num)

    return order


def reverse_postorder(flow: Sequence) -> List[int]:
    """Return instruction numbers in reverse postorder.

    For forward problems this visits (acyclic) predecessors before their
    successors.
    """
    order = postorder(flow)
    order.reverse()
    return order
