"""
Tests for test case emission.

Covers:
1. Identifier format and the run-local sequence number
2. The disposable snapshot: live state untouched, snapshot always disposed
3. File emission for zero, one and several inputs
4. Testcase directory setup
"""

import os

import pytest
import z3

from branchflip.dse.emission import (
    TESTCASE_DIRNAME,
    BranchTestCaseGenerator,
    FileTestCaseEmitter,
    LogTestCaseEmitter,
    TestCaseKind,
    disposable_snapshot,
    format_test_case_id,
    init_testcase_directory,
)
from branchflip.errors import InvariantViolation, SetupError
from branchflip.targets import Target
from branchflip.z3model import ExecutionState, InputFile


class RecordingEmitter:
    def __init__(self):
        self.calls = []

    def emit(self, state, identifier, kind):
        self.calls.append((state, identifier, kind, state.concolics.items(), list(state.constraints)))


class FailingEmitter:
    def __init__(self):
        self.states = []

    def emit(self, state, identifier, kind):
        self.states.append(state)
        raise OSError("disk full")


def make_state(value=5):
    state = ExecutionState(pc=0x1005)
    x = state.make_symbolic("x", value.to_bytes(4, "little"))
    return state, x


def track_clones(state):
    clones = []
    original = state.clone

    def clone():
        copy = original()
        clones.append(copy)
        return copy

    state.clone = clone
    return clones


class TestIdentifier:
    def test_format(self):
        assert format_test_case_id(0, Target(0x401020, 3)) == "id:000000-401020-3"
        assert format_test_case_id(42, Target(0xABC, 17)) == "id:000042-abc-17"

    def test_sequence_is_monotonic(self):
        generator = BranchTestCaseGenerator(RecordingEmitter())
        state, x = make_state()
        branch = x.read() != 5

        first = generator.generate(state, branch, [x], [b"\x06\x00\x00\x00"], Target(0x401020, 3))
        second = generator.generate(state, branch, [x], [b"\x07\x00\x00\x00"], Target(0x401100, 4))

        assert first == "id:000000-401020-3"
        assert second == "id:000001-401100-4"
        assert generator.emitted == [first, second]


class TestDisposableSnapshot:
    def test_snapshot_disposed_after_block(self):
        state, _ = make_state()
        with disposable_snapshot(state) as snapshot:
            assert not snapshot.disposed
        assert snapshot.disposed
        assert not state.disposed

    def test_snapshot_disposed_on_error(self):
        state, _ = make_state()
        with pytest.raises(RuntimeError):
            with disposable_snapshot(state) as snapshot:
                raise RuntimeError("boom")
        assert snapshot.disposed

    def test_emitter_sees_solved_values_live_state_does_not(self):
        emitter = RecordingEmitter()
        generator = BranchTestCaseGenerator(emitter)
        state, x = make_state()
        state.add_constraint(z3.ULT(x.read(), 100))
        clones = track_clones(state)

        generator.generate(state, x.read() != 5, [x], [b"\x06\x00\x00\x00"], Target(0x1000, 1))

        _, identifier, kind, bindings, constraints = emitter.calls[0]
        assert kind is TestCaseKind.FILE
        assert bindings == [(x, b"\x06\x00\x00\x00")]
        assert len(constraints) == 2

        assert state.concolics.get(x) == b"\x05\x00\x00\x00"
        assert len(state.constraints) == 1
        assert len(clones) == 1 and clones[0].disposed

    def test_refused_branch_is_fatal_and_snapshot_disposed(self):
        emitter = RecordingEmitter()
        generator = BranchTestCaseGenerator(emitter)
        state, x = make_state()
        clones = track_clones(state)

        # The values do not satisfy the branch they were solved for.
        with pytest.raises(InvariantViolation):
            generator.generate(state, x.read() != 5, [x], [b"\x05\x00\x00\x00"], Target(0x1000, 1))

        assert emitter.calls == []
        assert clones[0].disposed
        assert generator.emitted == []

    def test_value_count_mismatch(self):
        generator = BranchTestCaseGenerator(RecordingEmitter())
        state, x = make_state()
        with pytest.raises(InvariantViolation):
            generator.generate(state, x.read() != 5, [x], [], Target(0x1000, 1))

    def test_every_kind_is_emitted(self):
        emitter = RecordingEmitter()
        generator = BranchTestCaseGenerator(emitter, kinds=[TestCaseKind.FILE, TestCaseKind.LOG])
        state, x = make_state()

        generator.generate(state, x.read() != 5, [x], [b"\x06\x00\x00\x00"], Target(0x1000, 1))

        assert [call[2] for call in emitter.calls] == [TestCaseKind.FILE, TestCaseKind.LOG]


class TestFileTestCaseEmitter:
    def test_same_basename_inputs_are_kept_apart(self, tmp_path):
        state = ExecutionState()
        a = state.make_symbolic("a", b"\x01")
        b = state.make_symbolic("b", b"\x02")
        state.inputs.append(InputFile("one/in.bin", b"\x01", ((0, a),)))
        state.inputs.append(InputFile("two/in.bin", b"\x02", ((0, b),)))

        paths = FileTestCaseEmitter(tmp_path).emit(state, "id:000000-1000-1")

        assert paths == [
            tmp_path / "id:000000-1000-1,0-in.bin",
            tmp_path / "id:000000-1000-1,1-in.bin",
        ]
        assert [p.read_bytes() for p in paths] == [b"\x01", b"\x02"]
        assert len(list(tmp_path.iterdir())) == 2

    def test_single_input_is_rebuilt(self, tmp_path):
        state = ExecutionState()
        x = state.make_symbolic("x", b"\x05\x00\x00\x00")
        state.inputs.append(InputFile("input.bin", b"\x05\x00\x00\x00AAAA", ((0, x),)))
        state.concolics.add(x, b"\x06\x00\x00\x00")

        paths = FileTestCaseEmitter(tmp_path).emit(state, "id:000000-1000-1")

        assert paths == [tmp_path / "id:000000-1000-1"]
        assert paths[0].read_bytes() == b"\x06\x00\x00\x00AAAA"

    def test_several_inputs_are_suffixed(self, tmp_path):
        state = ExecutionState()
        a = state.make_symbolic("a", b"\x01")
        b = state.make_symbolic("b", b"\x02")
        state.inputs.append(InputFile("dir/first.bin", b"\x01", ((0, a),)))
        state.inputs.append(InputFile("second.bin", b"-\x02", ((1, b),)))

        emitter = FileTestCaseEmitter(tmp_path)
        emitter.emit(state, "id:000003-1000-1")

        assert (tmp_path / "id:000003-1000-1,first.bin").read_bytes() == b"\x01"
        assert (tmp_path / "id:000003-1000-1,second.bin").read_bytes() == b"-\x02"
        assert len(emitter.written) == 2

    def test_without_inputs_writes_symbolic_bytes(self, tmp_path):
        state = ExecutionState()
        state.make_symbolic("a", b"ab")
        state.make_symbolic("b", b"c")

        FileTestCaseEmitter(tmp_path).emit(state, "case")

        assert (tmp_path / "case").read_bytes() == b"abc"

    def test_other_kinds_are_ignored(self, tmp_path):
        state, _ = make_state()
        assert FileTestCaseEmitter(tmp_path).emit(state, "case", TestCaseKind.LOG) == []
        assert list(tmp_path.iterdir()) == []


class TestLogTestCaseEmitter:
    def test_logs_hex_values(self, caplog):
        state, _ = make_state()
        with caplog.at_level("INFO"):
            LogTestCaseEmitter().emit(state, "id:000000-1000-1", TestCaseKind.LOG)
        assert "x = 05000000" in caplog.text


class TestInitTestcaseDirectory:
    def test_creates_directory_with_umask_applied(self, tmp_path):
        mask = os.umask(0o022)
        try:
            path = init_testcase_directory(tmp_path / "out")
        finally:
            os.umask(mask)
        assert path == tmp_path / "out" / TESTCASE_DIRNAME
        assert path.is_dir()
        assert path.stat().st_mode & 0o777 == 0o755

    def test_existing_directory_is_reused(self, tmp_path):
        init_testcase_directory(tmp_path)
        assert init_testcase_directory(tmp_path).is_dir()

    def test_failure_raises_setup_error(self, tmp_path):
        blocker = tmp_path / "out"
        blocker.write_text("not a directory")
        with pytest.raises(SetupError):
            init_testcase_directory(blocker)


class TestEmissionFailure:
    def test_write_failure_is_logged_not_raised(self, caplog):
        emitter = FailingEmitter()
        generator = BranchTestCaseGenerator(emitter)
        state, x = make_state()

        with caplog.at_level("WARNING"):
            identifier = generator.generate(state, x.read() != 5, [x], [b"\x06\x00\x00\x00"], Target(0x1000, 1))

        assert identifier is None
        assert generator.emitted == []
        assert emitter.states[0].disposed
        assert "disk full" in caplog.text

    def test_sequence_number_stays_consumed(self):
        emitter = FailingEmitter()
        generator = BranchTestCaseGenerator(emitter)
        state, x = make_state()
        generator.generate(state, x.read() != 5, [x], [b"\x06\x00\x00\x00"], Target(0x1000, 1))

        generator.emitter = RecordingEmitter()
        identifier = generator.generate(state, x.read() != 5, [x], [b"\x07\x00\x00\x00"], Target(0x1000, 1))

        assert identifier == "id:000001-1000-1"
