"""
Exception taxonomy.

Only fatal conditions are exceptions here. Recoverable conditions (an
unsolvable query, a missing target list, a malformed guest command) are
logged and reported through return values instead; nothing is retried.

    BranchFlipError
    ├── InvariantViolation   engine/solver state inconsistency, abort the run
    ├── SetupError           output directory cannot be prepared at startup
    └── StateDisposedError   a disposable snapshot was used after release
"""


class BranchFlipError(Exception):
    """Base class for all branchflip errors."""


class InvariantViolation(BranchFlipError):
    """
    A programming invariant of the surrounding engine does not hold.

    Raised when the concolic assignment fails to reduce a branch condition to
    a constant, or when a constraint the oracle already proved satisfiable is
    refused by the snapshot. Continuing would silently corrupt statistics.
    """


class SetupError(BranchFlipError):
    """The environment could not be prepared (e.g. testcase directory)."""


class StateDisposedError(BranchFlipError):
    """A disposed execution state was mutated or reused."""
