# tests/test_instruction.py
"""
Tests for call stacks, the call environment, and call-aware neighbor
resolution of the instruction kinds.
"""

import pytest

from dataflow_fixpoint import (
    AfterCallInstruction,
    CallEnvironment,
    CallInstruction,
    CallStack,
    EntryInstruction,
    FlowBuilder,
    Instruction,
    ReturnInstruction,
)


def _two_callers():
    """Two call sites K1, K2 into one callee F-IN .. F-OUT."""
    b = FlowBuilder()
    b.entry("F-IN").ret("F-OUT")
    b.link("F-IN", "F-OUT")
    b.call("K1", "F-IN", "F-OUT").after("K1-AFTER", "K1")
    b.call("K2", "F-IN", "F-OUT").after("K2-AFTER", "K2")
    return b.build()


class TestCallStack:

    def test_push_returns_new_stack(self):
        k = CallInstruction(0, EntryInstruction(1), ReturnInstruction(2))
        empty = CallStack()
        pushed = empty.push(k)
        assert empty.is_empty()
        assert len(pushed) == 1
        assert pushed.peek() is k
        assert pushed.pop() == empty

    def test_pop_empty_raises(self):
        with pytest.raises(IndexError):
            CallStack().pop()

    def test_peek_empty_is_none(self):
        assert CallStack().peek() is None

    def test_equality_and_hash(self):
        k = CallInstruction(0, EntryInstruction(1), ReturnInstruction(2))
        assert CallStack([k]) == CallStack().push(k)
        assert hash(CallStack([k])) == hash(CallStack().push(k))


class TestCallEnvironment:

    def test_default_stack_is_empty(self):
        env = CallEnvironment(3)
        assert env.call_stack(Instruction(2)).is_empty()
        assert len(env) == 3

    def test_update_replaces_slot(self):
        env = CallEnvironment(3)
        k = CallInstruction(0, EntryInstruction(1), ReturnInstruction(2))
        target = Instruction(1)
        env.update(CallStack([k]), target)
        assert env.call_stack(target).peek() is k
        env.update(CallStack(), target)
        assert env.call_stack(target).is_empty()


class TestNeighborResolution:

    def test_plain_node_hands_its_stack_to_neighbors(self):
        a, b, c = Instruction(0), Instruction(1), Instruction(2)
        a.add_successor(b)
        c.add_successor(b)
        k = CallInstruction(3, EntryInstruction(4), ReturnInstruction(5))
        env = CallEnvironment(6)
        env.update(CallStack([k]), b)

        assert b.predecessors(env) == [a, c]
        assert env.call_stack(a).peek() is k
        assert env.call_stack(c).peek() is k

    def test_add_successor_is_idempotent(self):
        a, b = Instruction(0), Instruction(1)
        a.add_successor(b)
        a.add_successor(b)
        assert a.all_successors() == [b]
        assert b.all_predecessors() == [a]

    def test_call_pushes_onto_callee_entry(self):
        flow = _two_callers()
        env = CallEnvironment(len(flow))
        k1, entry = flow.by_name("K1"), flow.by_name("F-IN")
        assert k1.successors(env) == [entry]
        assert list(env.call_stack(entry)) == [k1]

    def test_return_reaches_pending_caller_first(self):
        flow = _two_callers()
        env = CallEnvironment(len(flow))
        k1, k2, ret = flow.by_name("K1"), flow.by_name("K2"), flow.by_name("F-OUT")
        env.update(CallStack([k2]), k1)
        env.update(CallStack([k2]), ret)

        assert ret.successors(env) == [k2.after, k1.after]
        assert env.call_stack(k2.after).is_empty()
        # the other caller resumes in the context of its own call site
        assert list(env.call_stack(k1.after)) == [k2]

    def test_return_without_pending_call_reaches_every_caller(self):
        flow = _two_callers()
        env = CallEnvironment(len(flow))
        names = [s.name for s in flow.by_name("F-OUT").successors(env)]
        assert names == ["K1-AFTER", "K2-AFTER"]

    def test_static_successors_of_return_cover_all_callers(self):
        flow = _two_callers()
        names = [s.name for s in flow.by_name("F-OUT").all_successors()]
        assert names == ["K1-AFTER", "K2-AFTER"]

    def test_after_call_pushes_onto_callee_return(self):
        flow = _two_callers()
        env = CallEnvironment(len(flow))
        after, ret = flow.by_name("K1-AFTER"), flow.by_name("F-OUT")
        assert after.predecessors(env) == [ret]
        assert env.call_stack(ret).peek() is flow.by_name("K1")

    def test_entry_backward_reaches_pending_caller_first(self):
        flow = _two_callers()
        env = CallEnvironment(len(flow))
        k1, k2, entry = flow.by_name("K1"), flow.by_name("K2"), flow.by_name("F-IN")
        env.update(CallStack([k2]), entry)

        assert entry.predecessors(env) == [k2, k1]
        assert env.call_stack(k2).is_empty()

    def test_entry_leaves_other_callers_stacks_alone(self):
        flow = _two_callers()
        env = CallEnvironment(len(flow))
        k1, k2, entry = flow.by_name("K1"), flow.by_name("K2"), flow.by_name("F-IN")
        env.update(CallStack([k2]), k1)
        env.update(CallStack([k2]), entry)

        entry.predecessors(env)
        assert list(env.call_stack(k1)) == [k2]

    def test_entry_without_pending_call_reaches_every_caller(self):
        flow = _two_callers()
        env = CallEnvironment(len(flow))
        assert flow.by_name("F-IN").predecessors(env) == [
            flow.by_name("K1"), flow.by_name("K2"),
        ]

    def test_nested_calls_unwind_in_order(self):
        flow = _two_callers()
        env = CallEnvironment(len(flow))
        k1, k2, ret = flow.by_name("K1"), flow.by_name("K2"), flow.by_name("F-OUT")
        env.update(CallStack([k1, k2]), ret)

        after2 = ret.successors(env)[0]
        assert after2 is k2.after
        assert env.call_stack(after2).peek() is k1

    def test_kinds_are_wired(self):
        flow = _two_callers()
        k1 = flow.by_name("K1")
        assert isinstance(k1.after, AfterCallInstruction)
        assert k1.after.call is k1
        assert k1.all_successors() == [flow.by_name("F-IN")]
