"""
dataflow_fixpoint.flow
======================

Building instruction graphs by name, and reading / writing them as
S-expressions.

The engine does not care where its instructions come from.  This module
is for hosts, fixtures and debugging dumps that want to describe a small
graph without constructing instructions by hand.

Flow description format
-----------------------
One ``flow`` form holding one sub-form per instruction.  Instruction
numbers follow declaration order::

    (flow
      (node A B)               ; plain node A, static successor B
      (node B K)
      (call K F-IN F-OUT)      ; call site into the callee F-IN .. F-OUT
      (after K-AFTER K C)      ; continuation of K, static successor C
      (node C)
      (entry F-IN F-BODY)      ; callee entry
      (node F-BODY F-OUT)
      (return F-OUT))          ; callee exit

Parsing uses ``sexpdata``; names may be symbols, strings or integers and
``;`` starts a line comment.

Public API
----------
    Flow         - sequence of instructions with name lookup
    FlowBuilder  - programmatic builder
    load_flow    - parse a flow description
    dump_flow    - render a flow description
"""

from __future__ import annotations

import logging
import re
from typing import (
    Any,
    Dict,
    Iterator,
    List,
    Optional,
    Sequence,
    Tuple,
)

try:
    import sexpdata
    from sexpdata import Symbol
except ImportError as e:  # pragma: no cover - hard dependency
    raise ImportError(
        "The 'sexpdata' package is required for flow descriptions. "
        "Install it with:  pip install sexpdata"
    ) from e

from dataflow_fixpoint.errors import FlowFormatError
from dataflow_fixpoint.instruction import (
    AfterCallInstruction,
    CallInstruction,
    EntryInstruction,
    Instruction,
    ReturnInstruction,
)

__all__ = ["Flow", "FlowBuilder", "load_flow", "dump_flow"]

logger = logging.getLogger(__name__)

_PLAIN_KINDS = {
    "node": Instruction,
    "entry": EntryInstruction,
    "return": ReturnInstruction,
}


# ===========================================================================
# FLOW
# ===========================================================================

class Flow(Sequence[Instruction]):
    """Instructions of one graph, indexed by ``num``, plus name lookup."""

    def __init__(self, instructions: Sequence[Instruction]) -> None:
        self._instructions: Tuple[Instruction, ...] = tuple(instructions)
        self._by_name: Dict[str, Instruction] = {
            instr.name: instr for instr in self._instructions
        }

    def __getitem__(self, index):
        return self._instructions[index]

    def __len__(self) -> int:
        return len(self._instructions)

    def __iter__(self) -> Iterator[Instruction]:
        return iter(self._instructions)

    def by_name(self, name: str) -> Instruction:
        try:
            return self._by_name[name]
        except KeyError:
            raise KeyError(f"no instruction named {name!r}") from None

    def num_of(self, name: str) -> int:
        return self.by_name(name).num

    @property
    def names(self) -> List[str]:
        return [instr.name for instr in self._instructions]

    def values_by_name(self, result: Sequence[Any]) -> Dict[str, Any]:
        """Key an engine result by instruction name."""
        return {instr.name: result[instr.num] for instr in self._instructions}

    def __repr__(self) -> str:
        return f"Flow({len(self)} instructions)"


# ===========================================================================
# BUILDER
# ===========================================================================

class FlowBuilder:
    """Collects named instructions and edges, then builds a :class:`Flow`.

    Instruction numbers follow declaration order.  ``edge`` and ``chain``
    declare unknown names as plain nodes.

    Example::

        b = FlowBuilder()
        b.chain("A", "B", "C")
        b.node("D")
        flow = b.build()
    """

    def __init__(self) -> None:
        # name -> (kind, args)
        self._decls: Dict[str, Tuple[str, Tuple[str, ...]]] = {}
        self._edges: List[Tuple[str, str]] = []

    # ----- Declarations -----------------------------------------------------

    def _declare(self, name: str, kind: str, *args: str) -> "FlowBuilder":
        if name in self._decls:
            raise FlowFormatError(f"instruction {name!r} declared twice")
        self._decls[name] = (kind, args)
        return self

    def node(self, name: str) -> "FlowBuilder":
        return self._declare(name, "node")

    def entry(self, name: str) -> "FlowBuilder":
        return self._declare(name, "entry")

    def ret(self, name: str) -> "FlowBuilder":
        return self._declare(name, "return")

    def call(self, name: str, entry: str, ret: str) -> "FlowBuilder":
        return self._declare(name, "call", entry, ret)

    def after(self, name: str, call: str) -> "FlowBuilder":
        return self._declare(name, "after", call)

    def edge(self, src: str, dst: str) -> "FlowBuilder":
        for name in (src, dst):
            if name not in self._decls:
                self.node(name)
        return self.link(src, dst)

    def link(self, src: str, dst: str) -> "FlowBuilder":
        """Add ``src -> dst`` without declaring anything; checked at build."""
        self._edges.append((src, dst))
        return self

    def chain(self, *names: str) -> "FlowBuilder":
        """Declare ``names[0] -> names[1] -> ...``."""
        for name in names:
            if name not in self._decls:
                self.node(name)
        for src, dst in zip(names, names[1:]):
            self.edge(src, dst)
        return self

    # ----- Build ------------------------------------------------------------

    def build(self) -> Flow:
        nums = {name: num for num, name in enumerate(self._decls)}
        made: Dict[str, Instruction] = {}

        def resolve(name: str, want: type, owner: str) -> Instruction:
            instr = made.get(name)
            if instr is None:
                raise FlowFormatError(
                    f"{owner!r} refers to undeclared instruction {name!r}"
                )
            if not isinstance(instr, want):
                raise FlowFormatError(
                    f"{owner!r} expects {name!r} to be {want.__name__}, "
                    f"got {type(instr).__name__}"
                )
            return instr

        # Calls need their callee ends, after-calls need their calls.
        for stage in (tuple(_PLAIN_KINDS), ("call",), ("after",)):
            for name, (kind, args) in self._decls.items():
                if kind not in stage:
                    continue
                if kind in _PLAIN_KINDS:
                    made[name] = _PLAIN_KINDS[kind](nums[name], name)
                elif kind == "call":
                    entry = resolve(args[0], EntryInstruction, name)
                    ret = resolve(args[1], ReturnInstruction, name)
                    made[name] = CallInstruction(nums[name], entry, ret, name)
                else:
                    call = resolve(args[0], CallInstruction, name)
                    if call.after is not None:
                        raise FlowFormatError(
                            f"call {call.name!r} already has after-call "
                            f"node {call.after.name!r}"
                        )
                    made[name] = AfterCallInstruction(nums[name], call, name)

        for src, dst in self._edges:
            for name in (src, dst):
                if name not in made:
                    raise FlowFormatError(
                        f"edge {src!r} -> {dst!r} refers to undeclared "
                        f"instruction {name!r}"
                    )
            source = made[src]
            if isinstance(source, (CallInstruction, ReturnInstruction)):
                raise FlowFormatError(
                    f"{source.kind} instruction {src!r} cannot have explicit "
                    f"successors",
                    hint="a call continues at its after-call node, a return "
                         "at the after-call nodes of its callers",
                )
            source.add_successor(made[dst])

        ordered = sorted(made.values(), key=lambda instr: instr.num)
        logger.debug(
            "built flow with %d instructions and %d edges",
            len(ordered), len(self._edges),
        )
        return Flow(ordered)


# ===========================================================================
# S-EXPRESSION FORMAT
# ===========================================================================

def _name_of(atom: Any, form: Any) -> str:
    if isinstance(atom, Symbol):
        value = getattr(atom, "value", None)
        return str(value()) if callable(value) else str(atom)
    if isinstance(atom, bool) or atom is None:
        raise FlowFormatError(f"invalid instruction name {atom!r}", form=form)
    if isinstance(atom, (str, int)):
        return str(atom)
    raise FlowFormatError(f"invalid instruction name {atom!r}", form=form)


def load_flow(text: str) -> Flow:
    """Parse a flow description.

    Raises
    ------
    FlowFormatError
        On malformed S-expressions, unknown forms, wrong arities, or names
        that are duplicated or never declared.
    """
    try:
        # nil/t/false auto-mapping would turn instruction names into values
        raw = sexpdata.loads(text, nil=None, true=None, false=None)
    except Exception as e:
        raise FlowFormatError(f"failed to parse flow description: {e}") from e

    if not isinstance(raw, list) or not raw or _safe_name(raw[0]) != "flow":
        raise FlowFormatError("expected a (flow ...) form", form=raw)

    builder = FlowBuilder()
    for form in raw[1:]:
        if not isinstance(form, list) or len(form) < 2:
            raise FlowFormatError(
                "expected (KIND NAME ...) inside (flow ...)", form=form
            )
        kind = _name_of(form[0], form)
        names = [_name_of(atom, form) for atom in form[1:]]
        name, rest = names[0], names[1:]

        if kind in ("node", "entry"):
            getattr(builder, kind)(name)
            for succ in rest:
                builder.link(name, succ)
        elif kind == "return":
            if rest:
                raise FlowFormatError(
                    f"return {name!r} takes no successors", form=form
                )
            builder.ret(name)
        elif kind == "call":
            if len(rest) != 2:
                raise FlowFormatError(
                    f"call {name!r} needs an entry and a return", form=form
                )
            builder.call(name, rest[0], rest[1])
        elif kind == "after":
            if not rest:
                raise FlowFormatError(
                    f"after-call {name!r} needs its call", form=form
                )
            builder.after(name, rest[0])
            for succ in rest[1:]:
                builder.link(name, succ)
        else:
            raise FlowFormatError(f"unknown instruction kind {kind!r}", form=form)

    return builder.build()


def _safe_name(atom: Any) -> Optional[str]:
    try:
        return _name_of(atom, None)
    except FlowFormatError:
        return None


_BARE_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_\-+*/<>=!?.:]*\Z")


def _atom(name: str) -> Any:
    # Anything that could read back as a number or need escaping is quoted.
    return Symbol(name) if _BARE_NAME.match(name) else name


def dump_flow(flow: Sequence[Instruction]) -> str:
    """Render *flow* in the format read by :func:`load_flow`.

    Names that are not plain identifiers (``"007"``, ``"a b"``) are written
    as strings so they read back unchanged.
    """
    forms: List[Any] = [Symbol("flow")]
    for instr in flow:
        if isinstance(instr, CallInstruction):
            form = [
                Symbol("call"),
                _atom(instr.name),
                _atom(instr.callee_entry.name),
                _atom(instr.callee_return.name),
            ]
        elif isinstance(instr, ReturnInstruction):
            form = [Symbol("return"), _atom(instr.name)]
        else:
            head: List[Any] = [Symbol(instr.kind), _atom(instr.name)]
            if isinstance(instr, AfterCallInstruction):
                head.append(_atom(instr.call.name))
            form = head + [_atom(s.name) for s in instr.all_successors()]
        forms.append(form)
    return sexpdata.dumps(forms)
