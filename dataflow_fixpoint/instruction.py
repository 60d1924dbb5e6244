"""
dataflow_fixpoint.instruction
=============================

Instruction graph nodes and the per-instruction call-stack bookkeeping
that makes neighbor resolution aware of calls and returns.

Every instruction carries a dense zero-based ``num``.  Neighbors are
resolved *through* a :class:`CallEnvironment`: resolving the successors
(or predecessors) of an instruction hands a call stack on to each
neighbor it returns, and call/return instructions push or pop that stack
to track which call site entered a callee.

Every kind resolves to its full set of static neighbors, so what an
instruction reads and what it notifies always agree and a shared callee
is joined over all of its call sites.  The stacks only decide which
caller is listed first and which context each neighbor inherits.

Instruction kinds
-----------------
    Instruction           - plain node, stack passes through unchanged
    CallInstruction       - forward edge into the callee entry, pushes itself
    ReturnInstruction     - forward edges to the after-call nodes of all
                            callers; the pending caller's gets its stack popped
    AfterCallInstruction  - backward edge into the callee return, pushes
                            its call
    EntryInstruction      - backward edges to all callers; the pending
                            caller gets its stack popped

Static edges (``all_successors`` / ``all_predecessors``) ignore call
stacks entirely; the postorder utility walks them.
"""

from __future__ import annotations

from typing import (
    Iterator,
    List,
    Optional,
    Sequence,
    Tuple,
)

__all__ = [
    "CallStack",
    "CallEnvironment",
    "Instruction",
    "CallInstruction",
    "ReturnInstruction",
    "AfterCallInstruction",
    "EntryInstruction",
]


# ===========================================================================
# CALL STACK
# ===========================================================================

class CallStack:
    """Immutable ordered sequence of pending call instructions.

    The most recent call is last.  ``push`` and ``pop`` return new stacks,
    so a stack stored for one instruction can be handed to another without
    aliasing.
    """

    __slots__ = ("_calls",)

    def __init__(self, calls: Sequence["CallInstruction"] = ()) -> None:
        self._calls: Tuple["CallInstruction", ...] = tuple(calls)

    def push(self, call: "CallInstruction") -> "CallStack":
        return CallStack(self._calls + (call,))

    def pop(self) -> "CallStack":
        if not self._calls:
            raise IndexError("pop from empty call stack")
        return CallStack(self._calls[:-1])

    def peek(self) -> Optional["CallInstruction"]:
        """Return the innermost pending call, or ``None``."""
        return self._calls[-1] if self._calls else None

    def is_empty(self) -> bool:
        return not self._calls

    def __len__(self) -> int:
        return len(self._calls)

    def __iter__(self) -> Iterator["CallInstruction"]:
        return iter(self._calls)

    def __eq__(self, other) -> bool:
        if not isinstance(other, CallStack):
            return NotImplemented
        return self._calls == other._calls

    def __hash__(self) -> int:
        return hash(self._calls)

    def __repr__(self) -> str:
        inner = ", ".join(str(c.num) for c in self._calls)
        return f"CallStack[{inner}]"


EMPTY_STACK = CallStack()


# ===========================================================================
# CALL ENVIRONMENT
# ===========================================================================

class CallEnvironment:
    """Per-instruction call-stack store.

    Slots are kept in a flat list indexed by ``instruction.num`` and
    preallocated for *size* instructions.  Every slot starts out as the
    empty stack.
    """

    __slots__ = ("_stacks",)

    def __init__(self, size: int) -> None:
        self._stacks: List[CallStack] = [EMPTY_STACK] * size

    def call_stack(self, instruction: "Instruction") -> CallStack:
        """Return the stack currently associated with *instruction*."""
        return self._stacks[instruction.num]

    def update(self, stack: CallStack, instruction: "Instruction") -> None:
        """Replace the stack stored for *instruction*."""
        self._stacks[instruction.num] = stack

    def __len__(self) -> int:
        return len(self._stacks)


# ===========================================================================
# INSTRUCTIONS
# ===========================================================================

class Instruction:
    """A node of the analysed flow graph.

    Parameters
    ----------
    num : int
        Dense zero-based index; also the slot of this instruction in the
        analysis result.
    name : str, optional
        Label used in ``repr`` and flow dumps.
    """

    kind = "node"

    def __init__(self, num: int, name: Optional[str] = None) -> None:
        self.num = num
        self.name = name if name is not None else str(num)
        self._succs: List[Instruction] = []
        self._preds: List[Instruction] = []

    # ----- Static edges -----------------------------------------------------

    def add_successor(self, other: "Instruction") -> None:
        """Add a static edge ``self -> other`` (idempotent)."""
        if other not in self._succs:
            self._succs.append(other)
            other._preds.append(self)

    def all_successors(self) -> List["Instruction"]:
        """Static successors, ignoring any call context."""
        return list(self._succs)

    def all_predecessors(self) -> List["Instruction"]:
        """Static predecessors, ignoring any call context."""
        return list(self._preds)

    # ----- Call-aware edges -------------------------------------------------

    def successors(self, env: CallEnvironment) -> List["Instruction"]:
        return self._propagate(env, self._succs)

    def predecessors(self, env: CallEnvironment) -> List["Instruction"]:
        return self._propagate(env, self._preds)

    def _propagate(
        self,
        env: CallEnvironment,
        targets: Sequence["Instruction"],
        stack: Optional[CallStack] = None,
    ) -> List["Instruction"]:
        if stack is None:
            stack = env.call_stack(self)
        for target in targets:
            env.update(stack, target)
        return list(targets)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.num}, {self.name!r})"


class CallInstruction(Instruction):
    """A call site.

    Going forward the only successor is the callee entry, and the call is
    pushed on the stack handed to it.  The continuation of a call is its
    :class:`AfterCallInstruction`; that link is kept in ``after`` and is
    reached through the callee return instead.
    """

    kind = "call"

    def __init__(
        self,
        num: int,
        callee_entry: "EntryInstruction",
        callee_return: "ReturnInstruction",
        name: Optional[str] = None,
    ) -> None:
        super().__init__(num, name)
        self.callee_entry = callee_entry
        self.callee_return = callee_return
        self.after: Optional[AfterCallInstruction] = None
        self.add_successor(callee_entry)

    def successors(self, env: CallEnvironment) -> List[Instruction]:
        stack = env.call_stack(self).push(self)
        return self._propagate(env, self._succs, stack)


class AfterCallInstruction(Instruction):
    """Continuation of a call site once the callee has returned.

    Going backward the callee return is a predecessor, and the call is
    pushed on the stack handed to it.
    """

    kind = "after"

    def __init__(
        self,
        num: int,
        call: CallInstruction,
        name: Optional[str] = None,
    ) -> None:
        super().__init__(num, name)
        self.call = call
        call.after = self
        call.callee_return.add_successor(self)

    def predecessors(self, env: CallEnvironment) -> List[Instruction]:
        stack = env.call_stack(self)
        for pred in self._preds:
            if pred is self.call.callee_return:
                env.update(stack.push(self.call), pred)
            else:
                env.update(stack, pred)
        return list(self._preds)


def _caller_first(
    targets: Sequence[Instruction], first: Optional[Instruction]
) -> List[Instruction]:
    ordered = list(targets)
    if first in ordered:
        ordered.remove(first)
        ordered.insert(0, first)
    return ordered


class ReturnInstruction(Instruction):
    """Exit of a callee.

    Going forward every after-call node of every caller is a successor,
    so a shared callee feeds all of its call sites.  The after-call node
    of the innermost pending call comes first and receives the stack with
    that call popped; the others resume with the stack of their own call
    site.
    """

    kind = "return"

    def successors(self, env: CallEnvironment) -> List[Instruction]:
        stack = env.call_stack(self)
        top = stack.peek()
        pending_after = top.after if top is not None else None
        targets = _caller_first(self._succs, pending_after)
        for target in targets:
            if target is pending_after:
                env.update(stack.pop(), target)
            elif isinstance(target, AfterCallInstruction):
                env.update(env.call_stack(target.call), target)
            else:
                env.update(stack, target)
        return targets


class EntryInstruction(Instruction):
    """Entry of a callee.

    Going backward every calling instruction is a predecessor.  The
    innermost pending call comes first and receives the stack with itself
    popped; other call sites keep the stack they already have.
    """

    kind = "entry"

    def predecessors(self, env: CallEnvironment) -> List[Instruction]:
        stack = env.call_stack(self)
        top = stack.peek()
        targets = _caller_first(self._preds, top)
        for target in targets:
            if target is top:
                env.update(stack.pop(), target)
            elif not isinstance(target, CallInstruction):
                env.update(stack, target)
        return targets
