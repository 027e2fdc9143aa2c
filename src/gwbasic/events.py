## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

import enum
import time
from dataclasses import dataclass
from typing import Callable

from .errors import IllegalFunctionCall


class TrapState(enum.Enum):
    OFF = "off"
    ON = "on"
    STOPPED = "stopped"


class EventKind(enum.IntEnum):
    """Trap kinds, in the order pending events are dispatched."""
    KEY = 1
    TIMER = 2
    PEN = 3
    PLAY = 4
    STRIG = 5
    COM = 6


_INDEX_RANGES = {EventKind.KEY: range(1, 21), EventKind.TIMER: range(0, 1), EventKind.PEN: range(0, 1),
                 EventKind.PLAY: range(0, 1), EventKind.STRIG: range(0, 8), EventKind.COM: range(1, 3)}


@dataclass
class Trap:
    kind: EventKind
    index: int = 0
    state: TrapState = TrapState.OFF
    handler: int = 0
    pending: bool = False


class EventTrapSystem:
    """Armed/stopped state of every trap, plus the events the host has queued.

    The error trap is synchronous and always outranks queued events; the loop consults `error_handler` directly.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self.traps: dict[tuple[EventKind, int], Trap] = {}
        self.error_handler = 0
        self.timer_interval = 0.0
        self.timer_due = 0.0

    def trap(self, kind: EventKind, index: int = 0) -> Trap:
        if index not in _INDEX_RANGES[kind]: raise IllegalFunctionCall()
        if (t := self.traps.get((kind, index))) is None:
            t = self.traps[kind, index] = Trap(kind, index)
        return t

    # Error trap ──────────────────────────────────────────────────────────────────────────────
    def on_error(self, line: int) -> None:
        self.error_handler = line

    @property
    def error_armed(self) -> bool:
        return self.error_handler != 0

    # Event traps ─────────────────────────────────────────────────────────────────────────────
    def set_handler(self, kind: EventKind, index: int, line: int) -> None:
        self.trap(kind, index).handler = line

    def set_timer(self, seconds: float) -> None:
        if not 0 < seconds <= 86400: raise IllegalFunctionCall()
        self.timer_interval = seconds
        self.timer_due = self.clock() + seconds

    def enable(self, kind: EventKind, index: int = 0) -> None:
        self.trap(kind, index).state = TrapState.ON

    def disable(self, kind: EventKind, index: int = 0) -> None:
        t = self.trap(kind, index)
        t.state, t.pending = TrapState.OFF, False

    def stop(self, kind: EventKind, index: int = 0) -> None:
        self.trap(kind, index).state = TrapState.STOPPED

    def trigger(self, kind: EventKind, index: int = 0) -> None:
        """Queue an event from the host; stopped traps remember it until they are armed again."""
        if (t := self.traps.get((kind, index))) is not None and t.state is not TrapState.OFF:
            t.pending = True

    def tick(self) -> None:
        if self.timer_interval and self.clock() >= self.timer_due:
            self.timer_due = self.clock() + self.timer_interval
            self.trigger(EventKind.TIMER)

    def poll(self) -> Trap | None:
        """Next armed trap with a pending event, now marked stopped until its handler returns."""
        self.tick()
        for t in sorted(self.traps.values(), key=lambda t: (t.kind, t.index)):
            if t.state is TrapState.ON and t.pending and t.handler:
                t.pending, t.state = False, TrapState.STOPPED
                return t
        return None

    def rearm(self, trap: Trap | None) -> None:
        if trap is not None and trap.state is TrapState.STOPPED: trap.state = TrapState.ON

    def clear(self) -> None:
        self.traps.clear()
        self.error_handler = 0
        self.timer_interval = 0.0
