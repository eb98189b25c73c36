"""
Fork decision handler: suppress every fork, sample the branch not taken.

The engine calls `decide` once per would-be fork of a symbolic branch. The
answer is always "do not fork", so the run stays on one concrete path. When
the branch sits at a target, the branch the concrete run did NOT take is
solved against a copy of the path constraints:

    path ∧ ¬cond    if cond is concretely true
    path ∧ cond     if cond is concretely false

and a satisfying assignment is turned into a test case.

Per call:

    Entered ─┬─► FILTERED_OUT      constant condition, or no target near pc
             ├─► ALREADY_HANDLED   target key marked by an earlier call
             └─► solving ─┬─► SOLVED     oracle returned values, test case emitted
                          └─► UNSOLVED   oracle returned None

Counters are kept on the engine instance (one per run) and satisfy
attempted == solved + unsolved after every call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import z3

from ..errors import InvariantViolation
from ..targets import Target, TargetTable, VisitTracker
from ..z3model.expr import constant_truth, is_constant
from ..z3model.state import ExecutionState
from .emission import BranchTestCaseGenerator
from .oracle import ConstraintOracle

logger = logging.getLogger(__name__)


class ForkOutcome(Enum):
    FILTERED_OUT = "filtered-out"
    ALREADY_HANDLED = "already-handled"
    SOLVED = "solved"
    UNSOLVED = "unsolved"


@dataclass(frozen=True)
class ForkVerdict:
    """
    Result of one fork decision.

    `allow_forking` is always False; it is carried so hosts can copy it into
    their own fork flag without special-casing this handler.
    """
    outcome: ForkOutcome
    allow_forking: bool = False
    target: Optional[Target] = None
    branch: Optional[z3.BoolRef] = None
    test_case_id: Optional[str] = None


@dataclass
class SolverCounters:
    attempted: int = 0
    solved: int = 0
    unsolved: int = 0

    def as_row(self) -> str:
        return f"{self.solved},{self.unsolved},{self.attempted}"


def negated_branch(condition: z3.BoolRef, condition_is_true: bool) -> z3.BoolRef:
    """Constraint selecting the side of the branch the concrete run did not take."""
    if condition_is_true:
        return z3.Not(condition)
    return condition


class ForkDecisionEngine:
    """
    Owns the fork-decide logic and its counters for one run.

    Args:
        targets: table consulted for the branch's program counter
        tracker: per-target "already handled" set
        oracle: solver used for the negated branch
        generator: test case generator for solved branches (None: count only)
    """

    def __init__(
        self,
        targets: TargetTable,
        tracker: VisitTracker,
        oracle: ConstraintOracle,
        generator: Optional[BranchTestCaseGenerator] = None,
    ):
        self.targets = targets
        self.tracker = tracker
        self.oracle = oracle
        self.generator = generator
        self.counters = SolverCounters()
        self.revisits = 0
        # State terminated when the CPU budget runs out (first one seen).
        self.current_state: Optional[ExecutionState] = None

    def decide(self, state: ExecutionState, condition: z3.BoolRef) -> ForkVerdict:
        if self.current_state is None:
            self.current_state = state

        if state.running_concrete:
            raise InvariantViolation(f"fork decision requested for concretely running state {state.id}")

        condition = state.simplify(condition)

        # A constant condition cannot lead anywhere new.
        if is_constant(condition):
            return ForkVerdict(ForkOutcome.FILTERED_OUT)

        target = self.targets.match(state.pc)
        if target is None:
            return ForkVerdict(ForkOutcome.FILTERED_OUT)

        if not self.tracker.mark_if_new(self.tracker.key_for(target)):
            self.revisits += 1
            logger.debug("Target %s already handled (pc=%#x)", target, state.pc)
            return ForkVerdict(ForkOutcome.ALREADY_HANDLED, target=target)

        evaluated = state.concolics.evaluate(condition)
        if not is_constant(evaluated):
            raise InvariantViolation(
                f"could not evaluate branch condition to a constant at pc={state.pc:#x}: {evaluated}"
            )
        condition_is_true = constant_truth(evaluated)

        branch = negated_branch(condition, condition_is_true)
        query = state.constraint_snapshot()
        query.append(branch)
        objects = list(state.symbolics)

        self.counters.attempted += 1
        values = self.oracle.get_initial_values(query, objects)

        if values is None:
            self.counters.unsolved += 1
            logger.debug("Unsolved branch at pc=%#x for target %s", state.pc, target)
            return ForkVerdict(ForkOutcome.UNSOLVED, target=target, branch=branch)

        self.counters.solved += 1
        test_case_id = None
        if self.generator is not None:
            test_case_id = self.generator.generate(state, branch, objects, values, target)
        logger.info("Solved branch at pc=%#x for target %s%s", state.pc, target,
                    f" -> {test_case_id}" if test_case_id else "")
        return ForkVerdict(ForkOutcome.SOLVED, target=target, branch=branch, test_case_id=test_case_id)
