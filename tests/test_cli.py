"""
Tests for the branchflip CLI.
"""

import subprocess
import sys

from branchflip.cli import EXIT_ERROR, EXIT_OK, main

SCENARIO_YAML = """\
inputs:
  - name: input.bin
    data: "0500000041414141"
    symbolic:
      - {name: x, offset: 0, size: 4}
branches:
  - pc: 0x1005
    condition: "(= x #x00000005)"
"""


class TestCLI:
    def test_help(self):
        result = subprocess.run(
            [sys.executable, "-m", "branchflip", "--help"],
            capture_output=True, text=True,
        )
        assert result.returncode == 0
        assert "targets" in result.stdout
        assert "solve" in result.stdout

    def test_no_command_prints_help(self, capsys):
        assert main([]) == EXIT_OK
        assert "usage" in capsys.readouterr().out

    def test_targets_with_pc(self, tmp_path, capsys):
        path = tmp_path / "ret_addr"
        path.write_text("401020 3\n")

        code = main(["targets", str(path), "--pc", "0x401024", "--pc", "0x401030"])

        out = capsys.readouterr().out
        assert code == EXIT_OK
        assert "1 targets" in out
        assert "pc 0x401024: 0x401020 id=3" in out
        assert "pc 0x401030: no target" in out

    def test_targets_missing_file(self, tmp_path, capsys):
        assert main(["targets", str(tmp_path / "nope")]) == EXIT_ERROR
        assert "not found" in capsys.readouterr().err

    def test_solve_then_report(self, tmp_path, capsys):
        (tmp_path / "ret_addr").write_text("1000 1\n2000 2\n")
        scenario = tmp_path / "run.yml"
        scenario.write_text(SCENARIO_YAML)
        out_dir = tmp_path / "out"

        code = main([
            "solve", "--scenario", str(scenario),
            "--targets", str(tmp_path / "ret_addr"),
            "--output", str(out_dir),
        ])
        out = capsys.readouterr().out
        assert code == EXIT_OK
        assert "Solved:      1" in out
        assert "id:000000-1000-1" in out

        assert main(["report", str(out_dir)]) == EXIT_OK
        report = capsys.readouterr().out
        assert "Attempted:   1" in report
        assert "Unreached:   1" in report
        assert "0x2000  id=2" in report

    def test_solve_missing_scenario(self, tmp_path, capsys):
        assert main(["solve", "--scenario", str(tmp_path / "nope.yml")]) == EXIT_ERROR
        assert "not found" in capsys.readouterr().err

    def test_solve_bad_scenario(self, tmp_path, capsys):
        scenario = tmp_path / "bad.yml"
        scenario.write_text("branches:\n  - pc: 0x10\n    condition: \"(= y #x01)\"\n")
        code = main(["solve", "--scenario", str(scenario), "--output", str(tmp_path / "out")])
        assert code == EXIT_ERROR
        assert "Error" in capsys.readouterr().err

    def test_report_missing_stats(self, tmp_path, capsys):
        assert main(["report", str(tmp_path)]) == EXIT_ERROR
