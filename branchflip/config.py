"""
Configuration file loader for ``.branchflip.yml``.

Defaults reproduce the behaviour of a plain run: targets from ``ret_addr``,
one-sided 0x10 window, address-keyed visit tracking, one hour of CPU time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional

import yaml

from .dse.emission import TestCaseKind
from .targets import DEFAULT_TARGETS_FILE, PROXIMITY_WINDOW, KeyMode, MatchMode


@dataclass
class TargetsConfig:
    path: str = DEFAULT_TARGETS_FILE
    window: int = PROXIMITY_WINDOW
    match_mode: MatchMode = MatchMode.ONE_SIDED
    key_mode: KeyMode = KeyMode.ADDRESS


@dataclass
class SolverConfig:
    timeout_ms: int = 5000


@dataclass
class StatsConfig:
    # Seconds of process CPU time; 0 disables the budget.
    timeout_sec: float = 3600.0


@dataclass
class OutputConfig:
    directory: str = "branchflip-out"
    kinds: List[TestCaseKind] = field(default_factory=lambda: [TestCaseKind.FILE])


@dataclass
class BranchFlipConfig:
    """Top-level configuration for branchflip."""
    targets: TargetsConfig = field(default_factory=TargetsConfig)
    solver: SolverConfig = field(default_factory=SolverConfig)
    stats: StatsConfig = field(default_factory=StatsConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    @classmethod
    def load(cls, root: Path, path: Optional[Path] = None) -> "BranchFlipConfig":
        """Load config from .branchflip.yml (or `path`), falling back to defaults."""
        config_path = path
        if config_path is None:
            config_path = root / ".branchflip.yml"
            if not config_path.exists():
                config_path = root / ".branchflip.yaml"
            if not config_path.exists():
                return cls()

        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}

        return cls._from_dict(raw)

    @classmethod
    def _from_dict(cls, raw: dict[str, Any]) -> "BranchFlipConfig":
        targets_raw = raw.get("targets", {}) or {}
        solver_raw = raw.get("solver", {}) or {}
        stats_raw = raw.get("stats", {}) or {}
        output_raw = raw.get("output", {}) or {}

        targets = TargetsConfig(
            path=str(targets_raw.get("path", DEFAULT_TARGETS_FILE)),
            window=parse_int(targets_raw.get("window", PROXIMITY_WINDOW)),
            match_mode=MatchMode(targets_raw.get("match-mode", targets_raw.get("match_mode", "one-sided"))),
            key_mode=KeyMode(targets_raw.get("key-mode", targets_raw.get("key_mode", "address"))),
        )

        solver = SolverConfig(
            timeout_ms=int(solver_raw.get("timeout-ms", solver_raw.get("timeout_ms", 5000))),
        )

        stats = StatsConfig(
            timeout_sec=float(stats_raw.get("timeout-sec", stats_raw.get("timeout_sec", 3600.0))),
        )

        output = OutputConfig(
            directory=str(output_raw.get("directory", "branchflip-out")),
            kinds=[TestCaseKind(k) for k in output_raw.get("kinds", ["file"])],
        )

        return cls(targets=targets, solver=solver, stats=stats, output=output)

    def to_yaml(self) -> str:
        """Serialise to YAML string."""
        data = {
            "targets": {
                "path": self.targets.path,
                "window": self.targets.window,
                "match-mode": self.targets.match_mode.value,
                "key-mode": self.targets.key_mode.value,
            },
            "solver": {"timeout-ms": self.solver.timeout_ms},
            "stats": {"timeout-sec": self.stats.timeout_sec},
            "output": {
                "directory": self.output.directory,
                "kinds": [k.value for k in self.output.kinds],
            },
        }
        return "# .branchflip.yml\n" + yaml.safe_dump(data, sort_keys=False)


def parse_int(value: Any) -> int:
    """Accept 16, "16" or "0x10"."""
    if isinstance(value, int):
        return value
    return int(str(value), 0)
