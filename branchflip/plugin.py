"""
Plugin wiring: builds every component from a BranchFlipConfig and connects
the handlers to the engine's events.

    plugin = BranchFlipPlugin(engine, config)
    plugin.initialize()      # testcase dir, targets, stats file, handlers
    ...                      # engine runs and fires events
    engine.events.on_engine_shutdown.emit()
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import z3

from .commands import GuestCommandChannel
from .config import BranchFlipConfig
from .dse.emission import (
    BranchTestCaseGenerator,
    FileTestCaseEmitter,
    LogTestCaseEmitter,
    TestCaseEmitter,
    TestCaseKind,
    init_testcase_directory,
)
from .dse.fork_decision import ForkDecisionEngine, ForkOutcome, ForkVerdict
from .dse.oracle import ConstraintOracle, Z3ConstraintOracle
from .events import ExecutionEngine
from .stats import ShutdownSummary, StatsRecorder
from .targets import TargetTable, VisitTracker
from .z3model.state import ExecutionState

logger = logging.getLogger(__name__)


class _CombinedEmitter:
    """Routes each kind to the emitter that handles it."""

    def __init__(self, file_emitter: FileTestCaseEmitter, log_emitter: LogTestCaseEmitter):
        self.file_emitter = file_emitter
        self.log_emitter = log_emitter

    def emit(self, state: ExecutionState, identifier: str, kind: TestCaseKind) -> None:
        if kind is TestCaseKind.FILE:
            self.file_emitter.emit(state, identifier, kind)
        else:
            self.log_emitter.emit(state, identifier, kind)


class BranchFlipPlugin:
    def __init__(
        self,
        engine: ExecutionEngine,
        config: Optional[BranchFlipConfig] = None,
        oracle: Optional[ConstraintOracle] = None,
        emitter: Optional[TestCaseEmitter] = None,
    ):
        self.engine = engine
        self.config = config or BranchFlipConfig()
        self._oracle = oracle
        self._emitter = emitter

        self.output_dir = Path(self.config.output.directory)
        self.testcase_dir: Optional[Path] = None
        self.targets: Optional[TargetTable] = None
        self.tracker: Optional[VisitTracker] = None
        self.decisions: Optional[ForkDecisionEngine] = None
        self.stats: Optional[StatsRecorder] = None
        self.commands: Optional[GuestCommandChannel] = None
        self.summary: Optional[ShutdownSummary] = None
        self._initialized = False

    def initialize(self) -> None:
        if self._initialized:
            return
        cfg = self.config

        self.testcase_dir = init_testcase_directory(self.output_dir)

        self.targets = TargetTable.load(cfg.targets.path, window=cfg.targets.window, mode=cfg.targets.match_mode)
        self.tracker = VisitTracker(cfg.targets.key_mode)

        oracle = self._oracle or Z3ConstraintOracle(timeout_ms=cfg.solver.timeout_ms)
        emitter = self._emitter or _CombinedEmitter(FileTestCaseEmitter(self.testcase_dir), LogTestCaseEmitter())
        generator = BranchTestCaseGenerator(emitter, kinds=cfg.output.kinds)
        self.decisions = ForkDecisionEngine(self.targets, self.tracker, oracle, generator)

        self.stats = StatsRecorder(
            self.decisions,
            self.tracker,
            self.targets,
            self.output_dir,
            cfg.stats.timeout_sec,
            self.engine,
        )
        self.stats.open()
        self.commands = GuestCommandChannel(self.stats)

        events = self.engine.events
        events.on_state_fork_decide.connect(self.on_state_fork_decide)
        events.on_timer.connect(self.on_timer)
        events.on_engine_shutdown.connect(self.on_engine_shutdown)
        events.on_custom_instruction.connect(self.on_custom_instruction)

        self._initialized = True
        logger.info("branchflip initialized: %r, output in %s", self.targets, self.output_dir)

    def _ready(self, event: str) -> bool:
        if not self._initialized:
            logger.warning("%s received before initialize(); ignored", event)
        return self._initialized

    def on_state_fork_decide(self, state: ExecutionState, condition: z3.BoolRef) -> ForkVerdict:
        if not self._ready("on_state_fork_decide"):
            return ForkVerdict(ForkOutcome.FILTERED_OUT)
        return self.decisions.decide(state, condition)

    def on_timer(self) -> None:
        if self._ready("on_timer"):
            self.stats.on_timer()

    def on_custom_instruction(self, state: ExecutionState, guest_data_ptr: int, guest_data_size: int) -> bool:
        if not self._ready("on_custom_instruction"):
            return False
        return self.commands.handle_opcode_invocation(state, guest_data_ptr, guest_data_size)

    def on_engine_shutdown(self) -> Optional[ShutdownSummary]:
        if not self._ready("on_engine_shutdown"):
            return None
        if self.summary is None:
            self.summary = self.stats.on_shutdown()
        return self.summary

    @property
    def emitted(self) -> List[str]:
        if self.decisions is None or self.decisions.generator is None:
            return []
        return list(self.decisions.generator.emitted)
