"""
Constraint oracle: constraints + symbolic arrays -> concrete bytes or nothing.

The oracle is an opaque collaborator of the fork decision logic. Failure to
solve (unsat, unknown, timeout) is an expected outcome, reported as None and
counted by the caller; it never aborts the run.
"""

from __future__ import annotations

import logging
import time
from typing import List, Optional, Protocol, Sequence

import z3

from ..z3model.expr import SymbolicArray

logger = logging.getLogger(__name__)


class ConstraintOracle(Protocol):
    """
    Oracle interface used by ForkDecisionEngine.
    """

    def get_initial_values(
        self,
        constraints: Sequence[z3.BoolRef],
        objects: Sequence[SymbolicArray],
    ) -> Optional[List[bytes]]:
        """
        Return one bytes value per object (same order, each of the object's
        size) satisfying every constraint, or None if no assignment was found.
        """


class Z3ConstraintOracle:
    """
    ConstraintOracle backed by a fresh z3 Solver per query.
    """

    def __init__(self, timeout_ms: int = 5000):
        """
        Args:
            timeout_ms: Z3 solver timeout in milliseconds (0 = no limit)
        """
        self.timeout_ms = timeout_ms
        self.queries = 0
        self.solver_time_sec = 0.0
        self.last_result: Optional[z3.CheckSatResult] = None

    def get_initial_values(
        self,
        constraints: Sequence[z3.BoolRef],
        objects: Sequence[SymbolicArray],
    ) -> Optional[List[bytes]]:
        solver = z3.Solver()
        if self.timeout_ms:
            solver.set("timeout", self.timeout_ms)
        solver.add(*constraints)

        self.queries += 1
        start = time.time()
        result = solver.check()
        self.solver_time_sec += time.time() - start
        self.last_result = result

        if result != z3.sat:
            # unsat: the other side of the branch is infeasible on this path
            # unknown: timeout or incomplete theory; treated the same way
            logger.debug("Query over %d constraints: %s (%s)",
                         len(constraints), result, solver.reason_unknown() if result == z3.unknown else "")
            return None

        model = solver.model()
        return [self._extract_bytes(model, obj) for obj in objects]

    @staticmethod
    def _extract_bytes(model: z3.ModelRef, obj: SymbolicArray) -> bytes:
        values = bytearray()
        for var in obj.variables():
            val = model.eval(var, model_completion=True)
            values.append(val.as_long() & 0xFF)
        return bytes(values)
