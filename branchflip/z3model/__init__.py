"""
z3 model of the pieces of an engine state the branch layer touches:
classified expressions, symbolic byte arrays, concolic assignments and the
execution state itself.
"""

from .expr import ExprKind, SymbolicArray, classify, constant_truth, is_constant
from .state import Assignment, ExecutionState, GuestMemory, InputFile

__all__ = [
    "ExprKind",
    "SymbolicArray",
    "classify",
    "constant_truth",
    "is_constant",
    "Assignment",
    "ExecutionState",
    "GuestMemory",
    "InputFile",
]
