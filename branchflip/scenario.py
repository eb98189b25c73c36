"""
Recorded branch scenarios: an offline stand-in for the engine.

A scenario is a YAML document describing one concrete path:

    inputs:
      - name: input.bin
        data: "0500000041414141"          # hex, full concrete input
        symbolic:
          - {name: x, offset: 0, size: 4}  # little-endian unless little-endian: false
    constraints:                           # already on the path, SMT-LIB2 terms
      - "(bvult x #x00000100)"
    branches:                              # in execution order
      - pc: 0x1005
        condition: "(= x #x00000005)"

Inside terms each symbolic array is available as `<name>` (the whole array as
one bit-vector) and `<name>_<i>` (byte i).

ScenarioEngine replays the branches through the engine events the plugin is
connected to: each branch fires on_state_fork_decide, then the state follows
the concrete side (its outcome is added to the path constraints), then the
timer fires. Shutdown fires once at the end or when the state is terminated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml
import z3

from .config import parse_int
from .errors import InvariantViolation
from .events import CoreEvents
from .z3model.expr import constant_truth, is_constant
from .z3model.state import ExecutionState, InputFile

logger = logging.getLogger(__name__)


@dataclass
class Branch:
    pc: int
    condition: z3.BoolRef


@dataclass
class Scenario:
    state: ExecutionState
    branches: List[Branch] = field(default_factory=list)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Scenario":
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        return cls.from_dict(raw)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Scenario":
        state = ExecutionState()
        placeholders: List[Tuple[z3.BitVecRef, z3.BitVecRef]] = []
        decls: Dict[str, z3.ExprRef] = {}

        for entry in raw.get("inputs", []) or []:
            data = bytes.fromhex(str(entry.get("data", "")))
            regions = []
            for sym in entry.get("symbolic", []) or []:
                offset = parse_int(sym.get("offset", 0))
                size = parse_int(sym["size"])
                if offset + size > len(data):
                    raise ValueError(f"symbolic region {sym['name']} exceeds input {entry.get('name')}")
                array = state.make_symbolic(str(sym["name"]), data[offset:offset + size])
                regions.append((offset, array))

                whole = z3.BitVec(f"{array.name}!whole", 8 * array.size)
                placeholders.append((whole, array.read(little_endian=sym.get("little-endian", True))))
                decls[array.name] = whole
                for i, var in enumerate(array.variables()):
                    decls[f"{array.name}_{i}"] = var
            state.inputs.append(InputFile(str(entry.get("name", "input")), data, tuple(regions)))

        def parse(term: str) -> z3.BoolRef:
            parsed = z3.parse_smt2_string(f"(assert {term})", decls=decls)[0]
            if placeholders:
                parsed = z3.substitute(parsed, *placeholders)
            return parsed

        for term in raw.get("constraints", []) or []:
            if not state.add_constraint(parse(term)):
                raise ValueError(f"path constraint does not hold on the concrete input: {term}")

        branches = [
            Branch(parse_int(b["pc"]), parse(b["condition"]))
            for b in raw.get("branches", []) or []
        ]
        return cls(state=state, branches=branches)


class ScenarioEngine:
    """Minimal ExecutionEngine that replays a Scenario."""

    def __init__(self):
        self.events = CoreEvents()
        self.terminated: Dict[int, str] = {}

    def terminate_state(self, state: ExecutionState, reason: str) -> None:
        logger.info("Terminating state %d: %s", state.id, reason)
        self.terminated[state.id] = reason

    def follow(self, state: ExecutionState, condition: z3.BoolRef) -> None:
        """Add the concretely taken side of `condition` to the live path."""
        value = state.concolics.evaluate(condition)
        if not is_constant(value):
            raise InvariantViolation(f"branch at pc={state.pc:#x} does not evaluate to a constant")
        taken = condition if constant_truth(value) else z3.Not(condition)
        state.add_constraint(taken)

    def run(self, scenario: Scenario) -> Optional[str]:
        """Replay every branch; returns the termination reason, if any."""
        state = scenario.state
        for branch in scenario.branches:
            if state.id in self.terminated:
                break
            state.pc = branch.pc
            self.events.on_state_fork_decide.emit(state, branch.condition)
            self.follow(state, branch.condition)
            self.events.on_timer.emit()
        self.events.on_engine_shutdown.emit()
        return self.terminated.get(state.id)

