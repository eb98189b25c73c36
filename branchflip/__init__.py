"""
branchflip: single-path concolic branch sampling for symbolic execution engines.

The engine keeps following one concrete path (forking is always suppressed),
but at every branch that sits next to an operator-chosen target address the
*other* side of the branch is solved with z3 and written out as a test case.

    targets.py           target table (address, id) + visit tracking
    dse/fork_decision.py the fork-decide handler
    dse/emission.py      test case materialization through a disposable snapshot
    stats.py             Solving.stats / failed.stats, CPU-time budget
"""

__version__ = "0.1.0"

from .targets import Target, TargetTable, MatchMode, VisitTracker, KeyMode
from .dse.fork_decision import ForkDecisionEngine, ForkOutcome, ForkVerdict, SolverCounters
from .dse.oracle import ConstraintOracle, Z3ConstraintOracle
from .dse.emission import (
    BranchTestCaseGenerator,
    FileTestCaseEmitter,
    LogTestCaseEmitter,
    TestCaseKind,
    format_test_case_id,
)
from .stats import StatsRecorder, ShutdownSummary
from .plugin import BranchFlipPlugin

__all__ = [
    "Target",
    "TargetTable",
    "MatchMode",
    "VisitTracker",
    "KeyMode",
    "ForkDecisionEngine",
    "ForkOutcome",
    "ForkVerdict",
    "SolverCounters",
    "ConstraintOracle",
    "Z3ConstraintOracle",
    "BranchTestCaseGenerator",
    "FileTestCaseEmitter",
    "LogTestCaseEmitter",
    "TestCaseKind",
    "format_test_case_id",
    "StatsRecorder",
    "ShutdownSummary",
    "BranchFlipPlugin",
]
