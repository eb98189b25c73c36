"""
Execution state as seen by the branch layer.

The symbolic-execution engine owns the real state tree; hosts adapt their
state into an ExecutionState so the fork decision, the oracle query and the
test case emitter all work against one small surface:

- pc:           program counter of the pending branch
- constraints:  ordered path constraints (conjunction)
- symbolics:    live symbolic arrays, in creation order
- concolics:    concrete bytes currently bound to every symbolic array
- inputs:       the complete concrete inputs the symbolic regions live in
- memory:       readable guest memory (for the guest command channel)

Invariant relied upon everywhere: `concolics` satisfies every constraint in
`constraints`, so evaluating any path expression under `concolics` yields a
constant.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

import z3

from ..errors import StateDisposedError
from .expr import SymbolicArray


class Assignment:
    """Ordered binding SymbolicArray -> concrete bytes."""

    def __init__(self, bindings: Optional[Dict[SymbolicArray, bytes]] = None):
        self._bindings: Dict[SymbolicArray, bytes] = {}
        for array, values in (bindings or {}).items():
            self.add(array, values)

    def add(self, array: SymbolicArray, values: bytes) -> None:
        values = bytes(values)
        if len(values) != array.size:
            raise ValueError(f"{array} bound to {len(values)} bytes")
        self._bindings[array] = values

    def clear(self) -> None:
        self._bindings.clear()

    def get(self, array: SymbolicArray) -> Optional[bytes]:
        return self._bindings.get(array)

    def items(self) -> List[Tuple[SymbolicArray, bytes]]:
        return list(self._bindings.items())

    def copy(self) -> "Assignment":
        return Assignment(dict(self._bindings))

    def substitutions(self) -> List[Tuple[z3.BitVecRef, z3.BitVecNumRef]]:
        pairs = []
        for array, values in self._bindings.items():
            for index, value in enumerate(values):
                pairs.append((array.byte(index), z3.BitVecVal(value, 8)))
        return pairs

    def evaluate(self, expr: z3.ExprRef) -> z3.ExprRef:
        """Concolic evaluation: substitute bound bytes and simplify."""
        pairs = self.substitutions()
        if pairs:
            expr = z3.substitute(expr, *pairs)
        return z3.simplify(expr)

    def __contains__(self, array: SymbolicArray) -> bool:
        return array in self._bindings

    def __iter__(self) -> Iterator[SymbolicArray]:
        return iter(self._bindings)

    def __len__(self) -> int:
        return len(self._bindings)

    def __repr__(self) -> str:
        inner = ", ".join(f"{a.name}={v.hex()}" for a, v in self._bindings.items())
        return f"Assignment({inner})"


@dataclass(frozen=True)
class InputFile:
    """
    A complete concrete input and where its symbolic regions sit.

    Only the symbolic regions are known to the solver; the remaining bytes
    come from `data` when a test case is rebuilt.
    """

    name: str
    data: bytes
    regions: Tuple[Tuple[int, SymbolicArray], ...] = ()

    def rebuild(self, assignment: Assignment) -> bytes:
        out = bytearray(self.data)
        for offset, array in self.regions:
            values = assignment.get(array)
            if values is None:
                continue
            end = offset + array.size
            if end > len(out):
                out.extend(b"\x00" * (end - len(out)))
            out[offset:end] = values
        return bytes(out)


class GuestMemory:
    """Sparse guest memory made of non-overlapping byte regions."""

    def __init__(self):
        self._regions: Dict[int, bytes] = {}

    def map(self, address: int, data: bytes) -> None:
        self._regions[address] = bytes(data)

    def read(self, address: int, size: int) -> Optional[bytes]:
        """Bytes at [address, address + size), or None if not fully mapped."""
        if size < 0:
            return None
        for base, data in self._regions.items():
            if base <= address and address + size <= base + len(data):
                start = address - base
                return data[start:start + size]
        return None


_state_ids = itertools.count()


@dataclass(eq=False)
class ExecutionState:
    pc: int = 0
    constraints: List[z3.BoolRef] = field(default_factory=list)
    symbolics: List[SymbolicArray] = field(default_factory=list)
    concolics: Assignment = field(default_factory=Assignment)
    inputs: List[InputFile] = field(default_factory=list)
    memory: GuestMemory = field(default_factory=GuestMemory)
    running_concrete: bool = False
    id: int = field(default_factory=lambda: next(_state_ids))
    disposed: bool = field(default=False, init=False)

    def _check_live(self) -> None:
        if self.disposed:
            raise StateDisposedError(f"state {self.id} was disposed")

    def make_symbolic(self, name: str, concrete: bytes) -> SymbolicArray:
        """Register a symbolic array whose concolic value is `concrete`."""
        self._check_live()
        array = SymbolicArray(name, len(concrete))
        self.symbolics.append(array)
        self.concolics.add(array, concrete)
        return array

    def constraint_snapshot(self) -> List[z3.BoolRef]:
        return list(self.constraints)

    def simplify(self, expr: z3.ExprRef) -> z3.ExprRef:
        return z3.simplify(expr)

    def add_constraint(self, constraint: z3.BoolRef) -> bool:
        """
        Append a path constraint.

        Refused (False) when the constraint is false under the current
        concolic values, since the state would no longer be consistent.
        """
        self._check_live()
        value = self.concolics.evaluate(constraint)
        if z3.is_false(value):
            return False
        self.constraints.append(constraint)
        return True

    def clone(self) -> "ExecutionState":
        """
        Independent copy: constraints, symbolics and concolics can be mutated
        on the clone without touching this state. Inputs are immutable and
        guest memory is shared.
        """
        self._check_live()
        return ExecutionState(
            pc=self.pc,
            constraints=list(self.constraints),
            symbolics=list(self.symbolics),
            concolics=self.concolics.copy(),
            inputs=list(self.inputs),
            memory=self.memory,
            running_concrete=self.running_concrete,
        )

    def dispose(self) -> None:
        self.constraints = []
        self.symbolics = []
        self.concolics = Assignment()
        self.inputs = []
        self.disposed = True

    def __repr__(self) -> str:
        return (
            f"ExecutionState(id={self.id}, pc={self.pc:#x}, "
            f"constraints={len(self.constraints)}, symbolics={len(self.symbolics)})"
        )
