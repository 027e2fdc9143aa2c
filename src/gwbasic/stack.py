## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

from dataclasses import dataclass

from .types import Value
from .numeric import add, to_float
from .errors import NextWithoutFor, ReturnWithoutGosub, ResumeWithoutError, WendWithoutWhile, OutOfMemory


MAX_DEPTH = 1024


@dataclass
class ForFrame:
    var: str
    limit: Value
    step: Value
    body_line: int
    body_pos: int

    def advance(self, current: Value) -> tuple[Value, bool]:
        """Apply the step and tell whether the loop runs again."""
        value = add(current, self.step)
        return value, is_within(value, self.limit, self.step)


@dataclass
class WhileFrame:
    line: int
    pos: int


@dataclass
class GosubFrame:
    return_line: int
    return_pos: int
    for_depth: int
    trap: object = None


@dataclass
class ErrorFrame:
    error_code: int
    error_line: int
    error_pos: int
    next_line: int
    next_pos: int
    handler_line: int
    trap_enabled: bool = True


def is_within(value: Value, limit: Value, step: Value) -> bool:
    if to_float(step) >= 0: return to_float(value) <= to_float(limit)
    return to_float(value) >= to_float(limit)


class RuntimeStack:
    """FOR/WHILE, GOSUB and error frames kept on three independent stacks."""

    def __init__(self):
        self.loops: list[ForFrame | WhileFrame] = []
        self.gosubs: list[GosubFrame] = []
        self.errors: list[ErrorFrame] = []

    def _check_depth(self, stack: list) -> None:
        if len(stack) >= MAX_DEPTH: raise OutOfMemory()

    # FOR / NEXT ──────────────────────────────────────────────────────────────────────────────
    def push_for(self, frame: ForFrame) -> None:
        """Re-entering a FOR on a live variable discards that loop and everything nested in it."""
        for i, f in enumerate(self.loops):
            if isinstance(f, ForFrame) and f.var == frame.var:
                del self.loops[i:]
                break
        self._check_depth(self.loops)
        self.loops.append(frame)

    def find_for(self, var: str | None) -> ForFrame:
        """Frame addressed by NEXT; inner loops abandoned by a named NEXT are popped."""
        if var is None:
            if self.loops and isinstance(self.loops[-1], ForFrame): return self.loops[-1]
            raise NextWithoutFor()
        for i in range(len(self.loops) - 1, -1, -1):
            f = self.loops[i]
            if isinstance(f, WhileFrame): break
            if f.var == var:
                del self.loops[i + 1:]
                return f
        raise NextWithoutFor()

    def pop_for(self, frame: ForFrame) -> None:
        if self.loops and self.loops[-1] is frame: self.loops.pop()

    # WHILE / WEND ────────────────────────────────────────────────────────────────────────────
    def push_while(self, frame: WhileFrame) -> None:
        if self.loops and isinstance(top := self.loops[-1], WhileFrame) and (top.line, top.pos) == (frame.line, frame.pos):
            return
        self._check_depth(self.loops)
        self.loops.append(frame)

    def top_while(self) -> WhileFrame:
        if not self.loops or not isinstance(self.loops[-1], WhileFrame): raise WendWithoutWhile()
        return self.loops[-1]

    def pop_while(self) -> WhileFrame:
        frame = self.top_while()
        self.loops.pop()
        return frame

    # GOSUB / RETURN ──────────────────────────────────────────────────────────────────────────
    def push_gosub(self, return_line: int, return_pos: int, trap=None) -> GosubFrame:
        self._check_depth(self.gosubs)
        frame = GosubFrame(return_line, return_pos, len(self.loops), trap)
        self.gosubs.append(frame)
        return frame

    def pop_gosub(self) -> GosubFrame:
        if not self.gosubs: raise ReturnWithoutGosub()
        frame = self.gosubs.pop()
        del self.loops[frame.for_depth:]
        return frame

    # Errors ──────────────────────────────────────────────────────────────────────────────────
    def push_error(self, frame: ErrorFrame) -> None:
        self._check_depth(self.errors)
        self.errors.append(frame)

    def pop_error(self) -> ErrorFrame:
        if not self.errors: raise ResumeWithoutError()
        return self.errors.pop()

    @property
    def in_handler(self) -> bool:
        return bool(self.errors)

    def clear(self) -> None:
        self.loops.clear()
        self.gosubs.clear()
        self.errors.clear()
