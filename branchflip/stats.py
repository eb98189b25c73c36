"""
Solving statistics and the CPU-time budget.

Two files are written into the output directory:

- Solving.stats: one line per timer tick, plus one at shutdown
      <elapsed cpu seconds>,<solved>,<unsolved>,<attempted>
- failed.stats: written at shutdown, one line per target never reached
      <hex address> <decimal id>

The budget is measured in seconds of process CPU time. When a tick sees the
budget used up, the driving state is terminated with reason "timeout"; this
happens at most once per run.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Protocol, TextIO, Union

from .dse.fork_decision import ForkDecisionEngine
from .targets import Target, TargetTable, VisitTracker
from .z3model.state import ExecutionState

logger = logging.getLogger(__name__)

STATS_FILENAME = "Solving.stats"
FAILED_FILENAME = "failed.stats"
TIMEOUT_REASON = "timeout"


class StateTerminator(Protocol):
    def terminate_state(self, state: ExecutionState, reason: str) -> None:
        """Ask the engine to stop exploring `state`."""


@dataclass(frozen=True)
class StatsRow:
    elapsed: float
    solved: int
    unsolved: int
    attempted: int


@dataclass(frozen=True)
class ShutdownSummary:
    elapsed: float
    solved_targets: int
    failed_targets: int
    total_targets: int

    def __str__(self) -> str:
        return (f"{self.solved_targets}/{self.total_targets} targets reached, "
                f"{self.failed_targets} failed ({self.elapsed:.3f}s cpu)")


class StatsRecorder:
    def __init__(
        self,
        decisions: ForkDecisionEngine,
        tracker: VisitTracker,
        targets: TargetTable,
        output_dir: Union[str, Path],
        timeout_sec: Optional[float],
        terminator: StateTerminator,
        clock: Callable[[], float] = time.process_time,
    ):
        self.decisions = decisions
        self.tracker = tracker
        self.targets = targets
        self.output_dir = Path(output_dir)
        self.timeout_sec = timeout_sec
        self.terminator = terminator
        self.clock = clock
        self.termination_requested = False
        self._stats: Optional[TextIO] = None

    @property
    def stats_path(self) -> Path:
        return self.output_dir / STATS_FILENAME

    @property
    def failed_path(self) -> Path:
        return self.output_dir / FAILED_FILENAME

    def open(self) -> None:
        self._stats = open(self.stats_path, "w")

    def close(self) -> None:
        if self._stats is not None:
            self._stats.close()
            self._stats = None

    def _budget_exhausted(self, elapsed: float) -> bool:
        return bool(self.timeout_sec) and self.timeout_sec > 0 and elapsed >= self.timeout_sec

    def on_timer(self) -> StatsRow:
        counters = self.decisions.counters
        elapsed = self.clock()
        row = StatsRow(elapsed, counters.solved, counters.unsolved, counters.attempted)

        logger.debug("solved / unsolved / total: %s", counters.as_row())
        if self._stats is not None:
            self._stats.write(f"{elapsed:.3f},{counters.as_row()}\n")
            self._stats.flush()

        if not self.termination_requested and self._budget_exhausted(elapsed):
            state = self.decisions.current_state
            if state is None:
                logger.warning("CPU budget of %ss used up but no state to terminate yet", self.timeout_sec)
            else:
                logger.info("CPU budget of %ss used up, terminating state %d", self.timeout_sec, state.id)
                self.termination_requested = True
                self.terminator.terminate_state(state, TIMEOUT_REASON)
        return row

    def on_shutdown(self) -> ShutdownSummary:
        failed = list(self.tracker.unreached(self.targets))
        try:
            with open(self.failed_path, "w") as f:
                for target in failed:
                    f.write(f"{target.address:x} {target.id}\n")
        except OSError as e:
            logger.warning("Could not write %s: %s", self.failed_path, e)

        try:
            self.on_timer()
        finally:
            self.close()

        total = len(self.targets)
        summary = ShutdownSummary(
            elapsed=self.clock(),
            solved_targets=total - len(failed),
            failed_targets=len(failed),
            total_targets=total,
        )
        logger.info("Shutdown: %s", summary)
        return summary


def read_stats(path: Union[str, Path]) -> List[StatsRow]:
    rows = []
    for line in Path(path).read_text().splitlines():
        if not line.strip():
            continue
        elapsed, solved, unsolved, attempted = line.split(",")
        rows.append(StatsRow(float(elapsed), int(solved), int(unsolved), int(attempted)))
    return rows


def read_failed(path: Union[str, Path]) -> List[Target]:
    targets = []
    for line in Path(path).read_text().splitlines():
        fields = line.split()
        if len(fields) == 2:
            targets.append(Target(int(fields[0], 16), int(fields[1])))
    return targets
