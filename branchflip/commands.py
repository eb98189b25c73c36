"""
Guest command channel.

The instrumented program talks to the plugin with a fixed-size record placed
in guest memory:

    struct {
        uint32_t command;
        /* 4 bytes padding */
        uint64_t param;
    };

Only PRINT_STATISTICS is recognised; it forces a statistics tick. Any
malformed or unknown record is logged and ignored.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from .stats import StatsRecorder
from .z3model.state import ExecutionState

logger = logging.getLogger(__name__)

COMMAND_RECORD = struct.Struct("<I4xQ")


class CommandCode(IntEnum):
    PRINT_STATISTICS = 0


@dataclass(frozen=True)
class GuestCommand:
    command: int
    param: int = 0

    @staticmethod
    def decode(raw: bytes) -> "GuestCommand":
        command, param = COMMAND_RECORD.unpack(raw)
        return GuestCommand(command, param)

    def encode(self) -> bytes:
        return COMMAND_RECORD.pack(self.command, self.param)


class GuestCommandChannel:
    def __init__(self, stats: StatsRecorder):
        self.stats = stats

    def handle_opcode_invocation(self, state: ExecutionState, guest_data_ptr: int, guest_data_size: int) -> bool:
        """Execute the command at `guest_data_ptr`; False when it was ignored."""
        if guest_data_size != COMMAND_RECORD.size:
            logger.warning("mismatched command size %d (expected %d)", guest_data_size, COMMAND_RECORD.size)
            return False

        raw: Optional[bytes] = state.memory.read(guest_data_ptr, guest_data_size)
        if raw is None:
            logger.warning("could not read transmitted data at %#x", guest_data_ptr)
            return False

        command = GuestCommand.decode(raw)
        if command.command == CommandCode.PRINT_STATISTICS:
            self.stats.on_timer()
            return True

        logger.warning("Unknown command %d", command.command)
        return False
