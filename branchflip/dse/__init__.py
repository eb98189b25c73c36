"""
Branch solving for single-path concolic execution.

1. **Fork decision** (fork_decision.py): suppress forks, solve the branch not taken
2. **Oracle** (oracle.py): constraints -> concrete bytes, backed by z3
3. **Emission** (emission.py): disposable snapshot -> test case files
"""

from .oracle import ConstraintOracle, Z3ConstraintOracle
from .emission import (
    BranchTestCaseGenerator,
    FileTestCaseEmitter,
    LogTestCaseEmitter,
    TestCaseKind,
    disposable_snapshot,
    format_test_case_id,
    init_testcase_directory,
)
from .fork_decision import (
    ForkDecisionEngine,
    ForkOutcome,
    ForkVerdict,
    SolverCounters,
    negated_branch,
)

__all__ = [
    "ConstraintOracle",
    "Z3ConstraintOracle",
    "BranchTestCaseGenerator",
    "FileTestCaseEmitter",
    "LogTestCaseEmitter",
    "TestCaseKind",
    "disposable_snapshot",
    "format_test_case_id",
    "init_testcase_directory",
    "ForkDecisionEngine",
    "ForkOutcome",
    "ForkVerdict",
    "SolverCounters",
    "negated_branch",
]
