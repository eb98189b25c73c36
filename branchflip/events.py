"""
Engine events the plugin subscribes to.

The engine exposes one Signal per capability; handlers are plain callables
connected at initialization and fired synchronously on the engine thread:

    on_state_fork_decide(state, condition) -> ForkVerdict
    on_timer()
    on_engine_shutdown()
    on_custom_instruction(state, guest_data_ptr, guest_data_size)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, List, Protocol

from .z3model.state import ExecutionState


class Signal:
    """Ordered list of handlers fired with the same arguments."""

    def __init__(self, name: str):
        self.name = name
        self._handlers: List[Callable[..., Any]] = []

    def connect(self, handler: Callable[..., Any]) -> Callable[..., Any]:
        self._handlers.append(handler)
        return handler

    def disconnect(self, handler: Callable[..., Any]) -> None:
        self._handlers.remove(handler)

    def emit(self, *args: Any) -> List[Any]:
        return [handler(*args) for handler in list(self._handlers)]

    def __len__(self) -> int:
        return len(self._handlers)

    def __repr__(self) -> str:
        return f"Signal({self.name!r}, handlers={len(self._handlers)})"


@dataclass
class CoreEvents:
    on_state_fork_decide: Signal = field(default_factory=lambda: Signal("on_state_fork_decide"))
    on_timer: Signal = field(default_factory=lambda: Signal("on_timer"))
    on_engine_shutdown: Signal = field(default_factory=lambda: Signal("on_engine_shutdown"))
    on_custom_instruction: Signal = field(default_factory=lambda: Signal("on_custom_instruction"))


class ExecutionEngine(Protocol):
    """What the plugin needs from the host engine."""

    events: CoreEvents

    def terminate_state(self, state: ExecutionState, reason: str) -> None:
        ...
