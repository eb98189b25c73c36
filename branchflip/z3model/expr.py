"""
Expression classification and symbolic byte arrays.

Branch conditions are z3 boolean expressions. Rather than probing node types
ad hoc at every use site, expressions are classified once into an ExprKind
tag; `is_constant` is the single "is this a literal" query used by the fork
decision logic.

Symbolic inputs are byte arrays: one 8-bit bit-vector per byte, named
`<array>[<index>]`. Multi-byte reads concatenate bytes in the requested
endianness, which is how guest code sees integers stored in an input.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import List

import z3


class ExprKind(Enum):
    """Classification tag for an expression."""
    CONSTANT = auto()   # literal true/false or a numeral
    SYMBOLIC = auto()   # depends on at least one free variable


def classify(expr: z3.ExprRef) -> ExprKind:
    if z3.is_true(expr) or z3.is_false(expr):
        return ExprKind.CONSTANT
    if z3.is_bv_value(expr) or z3.is_int_value(expr) or z3.is_rational_value(expr):
        return ExprKind.CONSTANT
    return ExprKind.SYMBOLIC


def is_constant(expr: z3.ExprRef) -> bool:
    return classify(expr) is ExprKind.CONSTANT


def constant_truth(expr: z3.ExprRef) -> bool:
    """Truth value of a constant boolean; ValueError for anything else."""
    if z3.is_true(expr):
        return True
    if z3.is_false(expr):
        return False
    raise ValueError(f"not a constant boolean: {expr}")


@dataclass(frozen=True)
class SymbolicArray:
    """
    A named symbolic byte array.

    Identity is (name, size): two arrays with the same name denote the same
    z3 variables, so names must be unique within a run.
    """

    name: str
    size: int

    def __post_init__(self):
        if self.size <= 0:
            raise ValueError(f"symbolic array {self.name!r} must have a positive size")

    def byte(self, index: int) -> z3.BitVecRef:
        if not 0 <= index < self.size:
            raise IndexError(f"{self.name}[{index}] out of range (size {self.size})")
        return z3.BitVec(f"{self.name}[{index}]", 8)

    def variables(self) -> List[z3.BitVecRef]:
        return [self.byte(i) for i in range(self.size)]

    def read(self, offset: int = 0, width: int = None, little_endian: bool = True) -> z3.BitVecRef:
        """Bit-vector of `width` bytes starting at `offset` (whole array by default)."""
        if width is None:
            width = self.size - offset
        if width <= 0 or offset < 0 or offset + width > self.size:
            raise IndexError(f"read of {width} bytes at {offset} outside {self.name} (size {self.size})")
        parts = [self.byte(offset + i) for i in range(width)]
        if little_endian:
            parts.reverse()
        if len(parts) == 1:
            return parts[0]
        return z3.Concat(*parts)

    def __str__(self) -> str:
        return f"{self.name}[{self.size}]"
