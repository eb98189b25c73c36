"""
Target table and visit bookkeeping.

A target is a program location (the return address of an instrumented
comparison, typically) paired with a caller-assigned id. The table is loaded
once from a line-oriented record:

    <hex address> <decimal id>

and answers proximity queries for the program counter of a branch. The visit
tracker remembers which targets were already handled so the oracle is asked at
most once per target key, and reports the ones never reached at shutdown.

Matching modes:

- ONE_SIDED:  address <= pc < address + window   (default)
- ABSOLUTE:   |pc - address| < window

Both pick the FIRST qualifying target in table order. This tie-break is part
of the contract: test case identifiers embed the matched target, so changing
it would change the artifact names of a run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Hashable, Iterable, Iterator, List, Optional, Set, Union

logger = logging.getLogger(__name__)

PROXIMITY_WINDOW = 0x10
DEFAULT_TARGETS_FILE = "ret_addr"
MAX_ADDRESS = 0xFFFFFFFFFFFFFFFF
MAX_TARGET_ID = 0xFFFFFFFF


@dataclass(frozen=True)
class Target:
    """A program location of interest and its identifier."""

    address: int
    id: int

    def __str__(self) -> str:
        return f"{self.address:x} {self.id}"


class MatchMode(Enum):
    ONE_SIDED = "one-sided"
    ABSOLUTE = "absolute"


class TargetTable:
    """
    Ordered, read-only collection of targets.

    Addresses may repeat with different ids; (address, id) pairs are unique.
    """

    def __init__(
        self,
        targets: Iterable[Target] = (),
        window: int = PROXIMITY_WINDOW,
        mode: MatchMode = MatchMode.ONE_SIDED,
    ):
        if window <= 0:
            raise ValueError(f"proximity window must be positive, got {window}")
        self.window = window
        self.mode = mode

        seen: Set[Target] = set()
        ordered: List[Target] = []
        for target in targets:
            if target in seen:
                logger.warning("Duplicate target %s ignored", target)
                continue
            seen.add(target)
            ordered.append(target)
        self._targets = tuple(ordered)

    @classmethod
    def parse(
        cls,
        text: str,
        window: int = PROXIMITY_WINDOW,
        mode: MatchMode = MatchMode.ONE_SIDED,
        source: str = "<string>",
    ) -> "TargetTable":
        """
        Parse `<hex address> <decimal id>` lines.

        A malformed record is not fatal: it is logged and yields an empty
        table, so the run continues without targets.
        """
        targets: List[Target] = []
        for lineno, line in enumerate(text.splitlines(), start=1):
            fields = line.split()
            if not fields:
                continue
            if len(fields) != 2:
                logger.warning("%s:%d: expected '<hex address> <id>', got %r; ignoring target list",
                               source, lineno, line.strip())
                return cls((), window=window, mode=mode)
            try:
                address = int(fields[0], 16)
                cmp_id = int(fields[1], 10)
            except ValueError:
                logger.warning("%s:%d: malformed target %r; ignoring target list",
                               source, lineno, line.strip())
                return cls((), window=window, mode=mode)
            if not (0 <= address <= MAX_ADDRESS and 0 <= cmp_id <= MAX_TARGET_ID):
                logger.warning("%s:%d: value out of range in %r; ignoring target list",
                               source, lineno, line.strip())
                return cls((), window=window, mode=mode)
            targets.append(Target(address, cmp_id))
        return cls(targets, window=window, mode=mode)

    @classmethod
    def load(
        cls,
        path: Union[str, Path] = DEFAULT_TARGETS_FILE,
        window: int = PROXIMITY_WINDOW,
        mode: MatchMode = MatchMode.ONE_SIDED,
    ) -> "TargetTable":
        """Load the target list from a file; a missing file gives an empty table."""
        path = Path(path)
        try:
            text = path.read_text()
        except OSError as e:
            logger.warning("Unable to open target list %s: %s", path, e)
            return cls((), window=window, mode=mode)
        table = cls.parse(text, window=window, mode=mode, source=str(path))
        logger.info("Loaded %d targets from %s", len(table), path)
        return table

    def _within_window(self, pc: int, address: int) -> bool:
        if self.mode is MatchMode.ONE_SIDED:
            return address <= pc and pc - address < self.window
        return abs(pc - address) < self.window

    def match(self, pc: int) -> Optional[Target]:
        """Return the first target (table order) whose window covers `pc`."""
        for target in self._targets:
            if self._within_window(pc, target.address):
                return target
        return None

    def __iter__(self) -> Iterator[Target]:
        return iter(self._targets)

    def __len__(self) -> int:
        return len(self._targets)

    def __bool__(self) -> bool:
        return bool(self._targets)

    def __repr__(self) -> str:
        return f"TargetTable(targets={len(self._targets)}, window={self.window:#x}, mode={self.mode.value})"


class KeyMode(Enum):
    """What identifies a handled target: its address alone, or (address, id)."""

    ADDRESS = "address"
    TARGET = "target"


class VisitTracker:
    """
    Set of target keys already handled in this run.

    Keys are only ever added. Mutation happens on the engine's decision
    thread; the tracker is not safe to share across exploring threads.
    """

    def __init__(self, key_mode: KeyMode = KeyMode.ADDRESS):
        self.key_mode = key_mode
        self._visited: Set[Hashable] = set()

    def key_for(self, target: Target) -> Hashable:
        if self.key_mode is KeyMode.ADDRESS:
            return target.address
        return (target.address, target.id)

    def mark_if_new(self, key: Hashable) -> bool:
        """Insert `key`; True if it was not present before."""
        if key in self._visited:
            return False
        self._visited.add(key)
        return True

    def visited(self, target: Target) -> bool:
        return self.key_for(target) in self._visited

    def unreached(self, table: TargetTable) -> Iterator[Target]:
        """Targets of `table` that were never handled, in table order."""
        for target in table:
            if not self.visited(target):
                yield target

    def __contains__(self, key: Hashable) -> bool:
        return key in self._visited

    def __len__(self) -> int:
        return len(self._visited)
