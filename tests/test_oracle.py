"""
Tests for the z3-backed constraint oracle.
"""

import z3

from branchflip.dse.oracle import Z3ConstraintOracle
from branchflip.z3model import Assignment, SymbolicArray


class TestZ3ConstraintOracle:
    def test_sat_returns_one_value_per_object(self):
        x = SymbolicArray("x", 4)
        y = SymbolicArray("y", 1)
        constraints = [x.read() == 0x11223344, y.byte(0) == 7]

        values = Z3ConstraintOracle().get_initial_values(constraints, [x, y])

        assert values == [bytes.fromhex("44332211"), b"\x07"]

    def test_values_satisfy_constraints(self):
        x = SymbolicArray("x", 2)
        constraints = [z3.UGT(x.read(), 1000), z3.ULT(x.read(), 1010), x.read() != 1005]

        values = Z3ConstraintOracle().get_initial_values(constraints, [x])

        result = Assignment({x: values[0]}).evaluate(z3.And(*constraints))
        assert z3.is_true(result)

    def test_unconstrained_object_is_completed(self):
        x = SymbolicArray("x", 2)
        free = SymbolicArray("free", 3)

        values = Z3ConstraintOracle().get_initial_values([x.byte(0) == 1], [x, free])

        assert len(values[1]) == 3

    def test_unsat_returns_none(self):
        x = SymbolicArray("x", 1)
        oracle = Z3ConstraintOracle()

        values = oracle.get_initial_values([x.byte(0) == 1, x.byte(0) == 2], [x])

        assert values is None
        assert oracle.last_result == z3.unsat
        assert oracle.queries == 1

    def test_no_limit_timeout(self):
        x = SymbolicArray("x", 1)
        assert Z3ConstraintOracle(timeout_ms=0).get_initial_values([x.byte(0) == 9], [x]) == [b"\x09"]
