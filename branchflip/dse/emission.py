"""
Test case emission for a solved branch.

The alternate side of a branch is materialized through a disposable copy of
the live state:

    1. clone the state (the live path must never see the new bindings)
    2. replace the clone's concolic values with the oracle's assignment
    3. append the same negated branch constraint that was solved
    4. name the test case  id:<seq>-<hex address>-<id>
    5. hand clone + name to the emitter(s)
    6. dispose the clone, whatever happened in 2-5

The clone never outlives `generate`; `disposable_snapshot` is the only way
one is created here.
"""

from __future__ import annotations

import itertools
import logging
import os
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Iterator, List, Optional, Protocol, Sequence, Union

import z3

from ..errors import InvariantViolation, SetupError
from ..targets import Target
from ..z3model.expr import SymbolicArray
from ..z3model.state import ExecutionState

logger = logging.getLogger(__name__)

TESTCASE_DIRNAME = "testcases"


class TestCaseKind(Enum):
    __test__ = False

    FILE = "file"
    LOG = "log"


def format_test_case_id(sequence: int, target: Target) -> str:
    return f"id:{sequence:06d}-{target.address:x}-{target.id}"


@contextmanager
def disposable_snapshot(state: ExecutionState) -> Iterator[ExecutionState]:
    """Clone `state` for the duration of the block; always disposed on exit."""
    snapshot = state.clone()
    try:
        yield snapshot
    finally:
        snapshot.dispose()


class TestCaseEmitter(Protocol):
    def emit(self, state: ExecutionState, identifier: str, kind: TestCaseKind) -> None:
        """Materialize the test case carried by `state` under `identifier`."""


class FileTestCaseEmitter:
    """
    Writes one file per input, rebuilt from the concrete input with the
    snapshot's symbolic regions overlaid.

    A single input is written as `<identifier>`; several inputs as
    `<identifier>,<input basename>`, or `<identifier>,<index>-<input basename>`
    when two inputs share a basename. A state without registered inputs gets the
    concatenation of its symbolic arrays.
    """

    def __init__(self, testcase_dir: Union[str, Path]):
        self.testcase_dir = Path(testcase_dir)
        self.written: List[Path] = []

    def emit(self, state: ExecutionState, identifier: str, kind: TestCaseKind = TestCaseKind.FILE) -> List[Path]:
        if kind is not TestCaseKind.FILE:
            return []

        payloads = []
        if not state.inputs:
            blob = b"".join(state.concolics.get(a) or b"" for a in state.symbolics)
            payloads.append((identifier, blob))
        elif len(state.inputs) == 1:
            payloads.append((identifier, state.inputs[0].rebuild(state.concolics)))
        else:
            basenames = [Path(input_file.name).name for input_file in state.inputs]
            # Same basename from different directories: prefix the input index.
            collide = len(set(basenames)) != len(basenames)
            for index, (input_file, basename) in enumerate(zip(state.inputs, basenames)):
                suffix = f"{index}-{basename}" if collide else basename
                payloads.append((f"{identifier},{suffix}", input_file.rebuild(state.concolics)))

        paths = []
        for name, data in payloads:
            path = self.testcase_dir / name
            path.write_bytes(data)
            paths.append(path)
            logger.info("Wrote test case %s (%d bytes)", path, len(data))
        self.written.extend(paths)
        return paths


class LogTestCaseEmitter:
    """Logs the assignment of a test case instead of writing it."""

    def emit(self, state: ExecutionState, identifier: str, kind: TestCaseKind = TestCaseKind.LOG) -> None:
        if kind is not TestCaseKind.LOG:
            return
        for array, values in state.concolics.items():
            logger.info("%s: %s = %s", identifier, array.name, values.hex())


class BranchTestCaseGenerator:
    """
    Drives emission for solved branches and owns the run-local sequence
    number embedded in every identifier.
    """

    def __init__(self, emitter: TestCaseEmitter, kinds: Sequence[TestCaseKind] = (TestCaseKind.FILE,)):
        self.emitter = emitter
        self.kinds = tuple(kinds)
        self._sequence = itertools.count()
        self.emitted: List[str] = []

    def generate(
        self,
        state: ExecutionState,
        branch: z3.BoolRef,
        objects: Sequence[SymbolicArray],
        values: Sequence[bytes],
        target: Target,
    ) -> Optional[str]:
        """
        Emit the test case for a solved branch.

        Returns its identifier, or None when an emitter failed to write it.
        A write failure is logged and the run goes on; the sequence number
        stays consumed.
        """
        if len(objects) != len(values):
            raise InvariantViolation(
                f"oracle returned {len(values)} values for {len(objects)} symbolic objects"
            )

        with disposable_snapshot(state) as branched:
            branched.concolics.clear()
            for obj, value in zip(objects, values):
                branched.concolics.add(obj, value)

            if not branched.add_constraint(branch):
                raise InvariantViolation(
                    f"solved branch constraint refused by snapshot of state {state.id}: {branch}"
                )

            identifier = format_test_case_id(next(self._sequence), target)
            written = True
            for kind in self.kinds:
                try:
                    self.emitter.emit(branched, identifier, kind)
                except OSError as e:
                    logger.warning("Could not emit %s test case %s: %s", kind.value, identifier, e)
                    written = False

        if not written:
            return None
        self.emitted.append(identifier)
        return identifier


def init_testcase_directory(output_dir: Union[str, Path]) -> Path:
    """
    Create `<output_dir>/testcases` group-writable (0775 minus umask).

    Raises SetupError if it cannot be created; the run must not start
    without a place to put its test cases.
    """
    path = Path(output_dir) / TESTCASE_DIRNAME
    try:
        path.mkdir(parents=True, exist_ok=True)
        mask = os.umask(0)
        os.umask(mask)
        os.chmod(path, 0o775 & ~mask)
    except OSError as e:
        logger.error("Could not create testcase directory %s: %s", path, e)
        raise SetupError(f"could not create testcase directory {path}: {e}") from e
    return path
