## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

from . import tokens as T
from .stack import ErrorFrame
from .tokenizer import crunch, detokenize
from .formatting import format_trace
from .dispatcher import FALL_THROUGH, HALT, DIRECT, Target
from .errors import BasicError, UndefinedLineNumber, NoResume, CantContinue


class InterpreterLoop:
    """Drives the dispatcher line by line, and is the single place where BASIC errors are caught.

    An error either enters the handler armed by `ON ERROR GOTO`, or propagates out of `execute_from` to
    halt the program. Positions are `(line, pos)` pairs; `DIRECT` names the buffer typed in immediate mode.
    """

    def __init__(self, rt, verbosity: int = 0, stats: dict | None = None):
        self.rt = rt
        self.direct = b'\x00'
        self.cont_point: Target | None = None
        self.stop_requested = False
        self.running = False
        self.verbosity = verbosity
        self.stats = stats
        self.step = 0
        rt.dispatcher.boundary = self._boundary

    def fetch(self, line: int) -> bytes:
        if line == DIRECT: return self.direct
        if (body := self.rt.program.get(line)) is None: raise UndefinedLineNumber()
        return body

    # Entry points ────────────────────────────────────────────────────────────────────────────
    def run(self, start: int | None = None) -> None:
        if start is None and (start := self.rt.program.first_line()) is None: return
        if start not in self.rt.program: raise UndefinedLineNumber()
        self.execute_from(Target(start, 0))

    def cont(self) -> None:
        if (target := self.cont_point) is None: raise CantContinue()
        self.cont_point = None
        self.execute_from(target)

    def stop(self) -> None:
        """Request a break; honored at the next statement boundary, from any thread or signal handler."""
        self.stop_requested = True

    def execute_immediate(self, source: str) -> None:
        self.direct = crunch(source)
        self.execute_from(Target(DIRECT, 0))

    def execute_from(self, target: Target) -> None:
        line, pos = target
        self.stop_requested, self.running = False, True
        try:
            while True:
                tokens = self.fetch(line)
                if pos == 0 and line != DIRECT: self._trace(line, tokens)
                try:
                    result = self.rt.dispatcher.execute(tokens, line, pos)
                except BasicError as exc:
                    line, pos = self._trap(exc)
                    continue

                if isinstance(result, Target):
                    line, pos = result
                    continue
                if result != FALL_THROUGH or line == DIRECT: return
                if (following := self.rt.program.next_line(line)) is None:
                    if self.rt.stack.in_handler: raise NoResume(line=line)
                    return
                line, pos = following, 0
        finally:
            self.running = False
            if self.stats is not None: self.stats['steps'] = self.stats.get('steps', 0) + self.step
            self.step = 0

    # Hooks ───────────────────────────────────────────────────────────────────────────────────
    def _trace(self, line: int, tokens: bytes) -> None:
        if self.rt.tron: self.rt.console.write(f"[{line}]")
        if self.verbosity > 0: print(format_trace(self.step, line, detokenize(tokens)))
        self.step += 1

    def _boundary(self, line: int, pos: int) -> Target | int | None:
        if self.stop_requested:
            self.stop_requested = False
            self.cont_point = Target(line, pos)
            self.rt.report_break(line)
            return HALT
        if (trap := self.rt.events.poll()) is not None:
            if trap.handler not in self.rt.program: raise UndefinedLineNumber()
            self.rt.stack.push_gosub(line, pos, trap)
            return Target(trap.handler, 0)
        return None

    def _trap(self, exc: BasicError) -> Target:
        """Enter the error handler for `exc`, or re-raise it with its line attached to halt the program."""
        d = self.rt.dispatcher
        d.transfer, d.chained, d.continue_next = None, False, False
        if exc.line is None: exc.line = 0 if d.line == DIRECT else d.line
        if exc.position is None: exc.position = d.statement_start
        self.rt.err, self.rt.erl = exc.code, (65535 if d.line == DIRECT else d.line)

        events = self.rt.events
        if not events.error_armed or self.rt.stack.in_handler:
            self.cont_point = None
            raise exc
        if events.error_handler not in self.rt.program: raise UndefinedLineNumber(line=exc.line) from exc

        tokens = self.fetch(d.line)
        resume_next = T.statement_end(tokens, d.statement_start)
        self.rt.stack.push_error(ErrorFrame(exc.code, d.line, d.statement_start, d.line, resume_next,
                                            events.error_handler))
        return Target(events.error_handler, 0)
