## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

import os
from typing import Callable, NamedTuple

from . import tokens as T
from .types import ScalarType, Value
from .numeric import format_number, number_text, parse_number, is_true, convert, to_int16, to_float, require_numeric
from .using import format_using
from .stack import ForFrame, WhileFrame, is_within
from .events import EventKind
from .files import FileMode
from .formatting import OutputChannel
from .program import MAX_LINE_NUMBER
from .errors import (BasicError, BasicSyntaxError, IllegalFunctionCall, IllegalDirect, UndefinedLineNumber, TypeMismatch,
                     ForWithoutNext, WhileWithoutWend, CantContinue)


FALL_THROUGH = 0
HALT = 0xFFFF
DIRECT = 0xFFFE


class Target(NamedTuple):
    line: int
    pos: int = 0


class RedoInput(Exception):
    pass


def split_input(text: str) -> list[str]:
    """Split a typed INPUT line on commas outside double quotes."""
    fields, current, quoted = [], "", False
    for ch in text:
        if ch == '"': quoted = not quoted; current += ch
        elif ch == ',' and not quoted: fields.append(current); current = ""
        else: current += ch
    fields.append(current)
    return [f.strip()[1:-1] if f.strip().startswith('"') and f.strip().endswith('"') and len(f.strip()) > 1
            else f.strip() for f in fields]


class StatementDispatcher:
    """Executes the statements of one tokenized line, starting at a given position.

    `execute` returns FALL_THROUGH when the line ran to its end, HALT when the program stopped, or the
    `Target` of a control transfer leaving the line. Transfers within the same line are followed in place.
    """

    def __init__(self, rt):
        self.rt = rt
        self.tokens = b'\x00'
        self.line = DIRECT
        self.statement_start = 0
        self.transfer: Target | int | None = None
        self.chained = False
        self.continue_next = False
        self.boundary: Callable[[int, int], Target | int | None] = lambda line, pos: None

        self.statements = {
            T.END: self.do_end, T.FOR: self.do_for, T.NEXT: self.do_next, T.DATA: self.do_data, T.INPUT: self.do_input,
            T.DIM: self.do_dim, T.READ: self.do_read, T.LET: self.do_let, T.GOTO: self.do_goto, T.RUN: self.do_run,
            T.IF: self.do_if, T.RESTORE: self.do_restore, T.GOSUB: self.do_gosub, T.RETURN: self.do_return,
            T.REM: self.do_rem, ord("'"): self.do_rem, T.STOP: self.do_stop, T.PRINT: self.do_print,
            T.CLEAR: self.do_clear, T.LIST: self.do_list, T.NEW: self.do_new, T.ON: self.do_on, T.WAIT: self.do_ignore,
            T.DEF: self.do_def, T.POKE: self.do_poke, T.CONT: self.do_cont, T.OUT: self.do_ignore,
            T.LPRINT: self.do_lprint, T.LLIST: self.do_llist, T.WIDTH: self.do_width, T.ELSE: self.do_else,
            T.TRON: self.do_tron, T.TROFF: self.do_troff, T.SWAP: self.do_swap, T.ERASE: self.do_erase,
            T.EDIT: self.do_edit, T.ERROR: self.do_error, T.RESUME: self.do_resume, T.DELETE: self.do_delete,
            T.AUTO: self.do_unsupported, T.RENUM: self.do_renum, T.DEFSTR: self.do_defstr, T.DEFINT: self.do_defint,
            T.DEFSNG: self.do_defsng, T.DEFDBL: self.do_defdbl, T.LINE: self.do_line, T.WHILE: self.do_while,
            T.WEND: self.do_wend, T.CALL: self.do_unsupported, T.WRITE: self.do_write, T.OPTION: self.do_option,
            T.RANDOMIZE: self.do_randomize, T.OPEN: self.do_open, T.CLOSE: self.do_close, T.LOAD: self.do_load,
            T.MERGE: self.do_merge, T.SAVE: self.do_save, T.COLOR: self.do_color, T.CLS: self.do_cls,
            T.MOTOR: self.do_ignore, T.BSAVE: self.do_bsave, T.BLOAD: self.do_bload, T.SOUND: self.do_sound,
            T.BEEP: self.do_beep, T.PSET: self.do_pset, T.PRESET: self.do_preset, T.SCREEN: self.do_screen,
            T.KEY: self.do_key, T.LOCATE: self.do_locate,
        }
        self.ext_statements = {
            T.FILES: self.do_files, T.FIELD: self.do_field, T.SYSTEM: self.do_system, T.NAME: self.do_name,
            T.LSET: self.do_lset, T.RSET: self.do_rset, T.KILL: self.do_kill, T.PUT: self.do_put, T.GET: self.do_get,
            T.RESET: self.do_reset, T.COMMON: self.do_ignore, T.CHAIN: self.do_chain, T.DATE_S: self.do_set_clock,
            T.TIME_S: self.do_set_clock, T.PAINT: self.do_paint, T.COM: self.do_com, T.CIRCLE: self.do_circle,
            T.DRAW: self.do_draw, T.PLAY: self.do_play, T.TIMER: self.do_timer, T.IOCTL: self.do_unsupported,
            T.CHDIR: self.do_chdir, T.MKDIR: self.do_mkdir, T.RMDIR: self.do_rmdir, T.SHELL: self.do_unsupported,
            T.ENVIRON: self.do_environ, T.VIEW: self.do_ignore, T.WINDOW: self.do_ignore, T.PMAP: self.do_unsupported,
            T.PALETTE: self.do_ignore, T.LCOPY: self.do_ignore, T.CALLS: self.do_unsupported,
            T.MID_S: self.do_mid_s, T.PEN: self.do_pen, T.STRIG: self.do_strig,
        }

    # Statement loop ──────────────────────────────────────────────────────────────────────────
    def execute(self, tokens: bytes, line: int, pos: int = 0) -> Target | int:
        self.tokens, self.line = tokens, line
        self.transfer, self.chained = None, False
        if pos == 0 and tokens[:1] == bytes([T.LINE_REF]): pos = 3
        while True:
            pos = T.skip_spaces(tokens, pos)
            b = tokens[pos] if pos < len(tokens) else T.LINE_END
            if b == T.LINE_END: return FALL_THROUGH
            if b == ord(':'):
                pos += 1
                continue
            if (t := self.boundary(line, pos)) is not None:
                if not isinstance(t, Target): return HALT
                if not self._is_current(t.line, tokens): return t
                pos = t.pos
                continue

            self.statement_start = pos
            if b == ord(',') and self.continue_next:
                self.continue_next = False
                pos = self.do_next(pos + 1)
            else:
                pos = self._statement(tokens, pos)

            if (t := self.transfer) is not None:
                self.transfer = None
                if not isinstance(t, Target): return HALT
                if not self._is_current(t.line, tokens): return t
                pos = t.pos
            elif self.chained:
                self.chained = False
            elif not T.at_statement_end(tokens, pos):
                raise BasicSyntaxError(position=pos)

    def _is_current(self, line: int, tokens: bytes) -> bool:
        if line != self.line: return False
        return (self.rt.loop.direct if line == DIRECT else self.rt.program.get(line)) is tokens

    def _statement(self, tokens: bytes, pos: int) -> int:
        b = tokens[pos]
        if b in (T.EXT_STATEMENT, T.STD_FUNCTION):
            if (handler := self.ext_statements.get(bytes(tokens[pos:pos + 2]))) is None:
                raise BasicSyntaxError(position=pos)
            return handler(pos + 2)
        if (handler := self.statements.get(b)) is not None:
            return handler(pos + 1)
        if b >= 0x80: raise BasicSyntaxError(position=pos)
        return self.do_let(pos)

    # Parsing helpers ─────────────────────────────────────────────────────────────────────────
    def _peek(self, pos: int) -> int:
        return T.peek(self.tokens, pos)

    def _peek2(self, pos: int) -> bytes:
        pos = T.skip_spaces(self.tokens, pos)
        return bytes(self.tokens[pos:pos + 2])

    def _skip(self, pos: int) -> int:
        return T.skip_spaces(self.tokens, pos)

    def _at_end(self, pos: int) -> bool:
        return T.at_statement_end(self.tokens, pos)

    def _accept(self, pos: int, token: int | str) -> tuple[bool, int]:
        code = ord(token) if isinstance(token, str) else token
        p = self._skip(pos)
        if p < len(self.tokens) and self.tokens[p] == code: return True, p + 1
        return False, pos

    def _expect(self, pos: int, token: int | str) -> int:
        found, pos = self._accept(pos, token)
        if not found: raise BasicSyntaxError(position=pos)
        return pos

    def _word(self, pos: int, *words: str) -> tuple[str | None, int]:
        """Accept one of the bare words that BASIC does not reserve, such as `AS` or `BASE`."""
        name, p = T.read_name(self.tokens, pos)
        if name is not None and name in words: return name, p
        return None, pos

    def _expr(self, pos: int) -> tuple[Value, int]:
        return self.rt.evaluator.evaluate(self.tokens, pos)

    def _int(self, pos: int) -> tuple[int, int]:
        return self.rt.evaluator.evaluate_int(self.tokens, pos)

    def _float(self, pos: int) -> tuple[float, int]:
        return self.rt.evaluator.evaluate_float(self.tokens, pos)

    def _str(self, pos: int) -> tuple[str, int]:
        return self.rt.evaluator.evaluate_string(self.tokens, pos)

    def _unsigned(self, pos: int) -> tuple[int, int]:
        value, pos = self._float(pos)
        n = round(value)
        if -32768 <= n < 0: n += 0x10000
        if not 0 <= n <= 0xFFFF: raise IllegalFunctionCall()
        return n, pos

    def _arg_list(self, pos: int) -> tuple[list[Value | None], int]:
        """Comma separated arguments where any of them may be left out."""
        args = []
        while True:
            p = self._skip(pos)
            if self._at_end(p) or self.tokens[p] == ord(','): args.append(None)
            else:
                value, p = self._expr(p)
                args.append(value)
            found, pos = self._accept(p, ',')
            if not found: break
        while args and args[-1] is None: args.pop()
        return args, p

    def _opt_int(self, args: list, i: int, default: int | None = None) -> int | None:
        return to_int16(args[i]) if i < len(args) and args[i] is not None else default

    def _line_number(self, pos: int) -> tuple[int, int]:
        number, pos = self._opt_line_number(pos)
        if number is None: raise BasicSyntaxError(position=pos)
        return number, pos

    def _opt_line_number(self, pos: int) -> tuple[int | None, int]:
        p = self._skip(pos)
        match self.tokens[p] if p < len(self.tokens) else T.LINE_END:
            case T.LINE_REF: return T.read_uint16(self.tokens, p + 1), p + 3
            case T.INT_LITERAL if (n := T.read_int16(self.tokens, p + 1)) >= 0: return n, p + 3
        return None, pos

    def _line_range(self, pos: int) -> tuple[int, int, int]:
        first, pos = self._opt_line_number(pos)
        found, p = self._accept(pos, T.MINUS)
        if not found: found, p = self._accept(pos, ',')
        if found:
            last, pos = self._opt_line_number(p)
            return first or 0, MAX_LINE_NUMBER if last is None else last, pos
        if first is None: return 0, MAX_LINE_NUMBER, pos
        return first, first, pos

    def _check_line(self, number: int) -> None:
        if number not in self.rt.program: raise UndefinedLineNumber()

    def _goto(self, number: int) -> None:
        self._check_line(number)
        self.transfer = Target(number, 0)

    def _target(self, pos: int) -> tuple[str, list[int] | None, int]:
        name, pos = T.read_name(self.tokens, pos)
        if name is None: raise BasicSyntaxError(position=pos)
        if self._peek(pos) in (ord('('), ord('[')):
            subscripts, pos = self.rt.evaluator.subscripts(self.tokens, pos)
            return name, subscripts, pos
        return name, None, pos

    def _targets(self, pos: int) -> tuple[list[tuple[str, list[int] | None]], int]:
        targets = []
        while True:
            name, subs, pos = self._target(pos)
            targets.append((name, subs))
            found, pos = self._accept(pos, ',')
            if not found: return targets, pos

    def _assign(self, name: str, subs: list[int] | None, value: Value) -> None:
        if subs is None: self.rt.variables.set(name, value)
        else: self.rt.arrays.set_element(name, subs, value)

    def _value_of(self, name: str, subs: list[int] | None) -> Value:
        if subs is None: return self.rt.variables.get(name)
        return self.rt.arrays.get_element(name, subs)

    def _type_of(self, name: str) -> ScalarType:
        return self.rt.variables.resolve(name)[1]

    def _file_number(self, pos: int, required: bool = True) -> tuple[int | None, int]:
        found, p = self._accept(pos, '#')
        if not found and not required: return None, pos
        return self._int(p)

    def _scan_forward(self, line: int, pos: int):
        """Token positions from (line, pos) onward, crossing into the following program lines."""
        while line is not None:
            tokens = self.rt.loop.fetch(line)
            for p, tok in T.iter_tokens(tokens, pos):
                yield line, tokens, p, tok
            if line == DIRECT: return
            line, pos = self.rt.program.next_line(line), 0

    def _macro_var(self, name: str) -> Value:
        return self.rt.variables.get(name)

    # Assignment & declarations ───────────────────────────────────────────────────────────────
    def do_let(self, pos: int) -> int:
        name, subs, pos = self._target(pos)
        pos = self._expect(pos, T.EQUAL)
        value, pos = self._expr(pos)
        self._assign(name, subs, value)
        return pos

    def do_dim(self, pos: int) -> int:
        while True:
            name, pos = T.read_name(self.tokens, pos)
            if name is None: raise BasicSyntaxError(position=pos)
            uppers, pos = self.rt.evaluator.subscripts(self.tokens, pos)
            self.rt.arrays.create(name, uppers)
            found, pos = self._accept(pos, ',')
            if not found: return pos

    def do_erase(self, pos: int) -> int:
        while True:
            name, pos = T.read_name(self.tokens, pos)
            if name is None: raise BasicSyntaxError(position=pos)
            self.rt.arrays.erase(name)
            found, pos = self._accept(pos, ',')
            if not found: return pos

    def do_swap(self, pos: int) -> int:
        a, sa, pos = self._target(pos)
        pos = self._expect(pos, ',')
        b, sb, pos = self._target(pos)
        va, vb = self._value_of(a, sa), self._value_of(b, sb)
        if va.type is not vb.type: raise TypeMismatch()
        self._assign(a, sa, vb)
        self._assign(b, sb, va)
        return pos

    def _deftype(self, pos: int, t: ScalarType) -> int:
        while True:
            first, pos = T.read_name(self.tokens, pos)
            if first is None or len(first) != 1: raise BasicSyntaxError(position=pos)
            last = first
            found, pos = self._accept(pos, T.MINUS)
            if found:
                last, pos = T.read_name(self.tokens, pos)
                if last is None or len(last) != 1: raise BasicSyntaxError(position=pos)
            self.rt.deftypes.set_range(first, last, t)
            found, pos = self._accept(pos, ',')
            if not found: return pos

    def do_defint(self, pos: int) -> int: return self._deftype(pos, ScalarType.INT)
    def do_defsng(self, pos: int) -> int: return self._deftype(pos, ScalarType.SINGLE)
    def do_defdbl(self, pos: int) -> int: return self._deftype(pos, ScalarType.DOUBLE)
    def do_defstr(self, pos: int) -> int: return self._deftype(pos, ScalarType.STRING)

    def do_def(self, pos: int) -> int:
        found, p = self._accept(pos, T.FN)
        if found: return self._def_fn(p)
        word, p = self._word(pos, "SEG")
        if word:
            found, p = self._accept(p, T.EQUAL)
            if not found:
                self.rt.memory.def_seg(None)
                return p
            segment, p = self._unsigned(p)
            self.rt.memory.def_seg(segment)
            return p
        found, p = self._accept(pos, T.USR)
        if found: return T.statement_end(self.tokens, p)
        raise BasicSyntaxError(position=pos)

    def _def_fn(self, pos: int) -> int:
        if self.line == DIRECT: raise IllegalDirect()
        name, pos = T.read_name(self.tokens, pos)
        if name is None: raise BasicSyntaxError(position=pos)
        params = []
        found, pos = self._accept(pos, '(')
        if found:
            while True:
                param, pos = T.read_name(self.tokens, pos)
                if param is None: raise BasicSyntaxError(position=pos)
                params.append(param)
                found, pos = self._accept(pos, ',')
                if not found: break
            pos = self._expect(pos, ')')
        pos = self._expect(pos, T.EQUAL)
        self.rt.functions.define(name, params, self.tokens, pos)
        return T.statement_end(self.tokens, pos)

    def do_option(self, pos: int) -> int:
        word, pos = self._word(pos, "BASE")
        if not word: raise BasicSyntaxError(position=pos)
        base, pos = self._int(pos)
        self.rt.arrays.option_base(base)
        return pos

    def do_mid_s(self, pos: int) -> int:
        """MID$(target$, start[, length]) = replacement$, overwriting in place without changing the length."""
        pos = self._expect(pos, '(')
        name, subs, pos = self._target(pos)
        pos = self._expect(pos, ',')
        start, pos = self._int(pos)
        length = 255
        found, pos = self._accept(pos, ',')
        if found: length, pos = self._int(pos)
        pos = self._expect(pos, ')')
        pos = self._expect(pos, T.EQUAL)
        replacement, pos = self._str(pos)

        current = self._value_of(name, subs)
        if not current.is_string: raise TypeMismatch()
        old = current.value
        if not 1 <= start <= 255 or not 0 <= length <= 255 or start > len(old): raise IllegalFunctionCall()
        count = min(length, len(replacement), len(old) - start + 1)
        self._assign(name, subs, Value.string(old[:start - 1] + replacement[:count] + old[start - 1 + count:]))
        return pos

    # Flow control ────────────────────────────────────────────────────────────────────────────
    def do_goto(self, pos: int) -> int:
        number, pos = self._line_number(pos)
        self._goto(number)
        return pos

    def do_gosub(self, pos: int) -> int:
        number, pos = self._line_number(pos)
        self._check_line(number)
        self.rt.stack.push_gosub(self.line, pos)
        self._goto(number)
        return pos

    def do_return(self, pos: int) -> int:
        number, pos = self._opt_line_number(pos)
        frame = self.rt.stack.pop_gosub()
        self.rt.events.rearm(frame.trap)
        if number is not None: self._goto(number)
        else: self.transfer = Target(frame.return_line, frame.return_pos)
        return pos

    def do_if(self, pos: int) -> int:
        condition, pos = self._expr(pos)
        truth = is_true(condition)
        _, pos = self._accept(pos, ',')
        p = self._skip(pos)
        if self.tokens[p] == T.THEN: p += 1
        elif self.tokens[p] != T.GOTO: raise BasicSyntaxError(position=p)
        if not truth:
            if (p := self._find_else(p)) is None: return T.line_end(self.tokens, pos)
            p += 1
        return self._branch(p)

    def _find_else(self, pos: int) -> int | None:
        depth = 0
        for p, tok in T.iter_tokens(self.tokens, pos):
            if tok == T.IF: depth += 1
            elif tok == T.ELSE:
                if depth == 0: return p
                depth -= 1
        return None

    def _branch(self, pos: int) -> int:
        number, p = self._opt_line_number(pos)
        if number is not None:
            self._goto(number)
            return p
        self.chained = True
        return pos

    def do_else(self, pos: int) -> int:
        return T.line_end(self.tokens, pos)

    def do_on(self, pos: int) -> int:
        p = self._skip(pos)
        b, code = self.tokens[p], bytes(self.tokens[p:p + 2])
        if b == T.ERROR: return self._on_error(p + 1)
        if b == T.KEY: return self._on_event(p + 1, EventKind.KEY, indexed=True)
        if code == T.TIMER: return self._on_event(p + 2, EventKind.TIMER, indexed=True)
        if code == T.PLAY: return self._on_event(p + 2, EventKind.PLAY, indexed=True)
        if code == T.COM: return self._on_event(p + 2, EventKind.COM, indexed=True)
        if code == T.STRIG: return self._on_event(p + 2, EventKind.STRIG, indexed=True)
        if code == T.PEN: return self._on_event(p + 2, EventKind.PEN, indexed=False)

        selector, pos = self._int(pos)
        if not 0 <= selector <= 255: raise IllegalFunctionCall()
        p = self._skip(pos)
        if self.tokens[p] not in (T.GOTO, T.GOSUB): raise BasicSyntaxError(position=p)
        is_gosub, pos = self.tokens[p] == T.GOSUB, p + 1
        targets = []
        while True:
            number, pos = self._line_number(pos)
            targets.append(number)
            found, pos = self._accept(pos, ',')
            if not found: break
        if 1 <= selector <= len(targets):
            number = targets[selector - 1]
            self._check_line(number)
            if is_gosub: self.rt.stack.push_gosub(self.line, pos)
            self._goto(number)
        return pos

    def _on_error(self, pos: int) -> int:
        pos = self._expect(pos, T.GOTO)
        number, pos = self._line_number(pos)
        if number == 0 and self.rt.stack.in_handler:
            raise BasicError.from_code(self.rt.err)
        if number != 0: self._check_line(number)
        self.rt.events.on_error(number)
        return pos

    def _on_event(self, pos: int, kind: EventKind, indexed: bool) -> int:
        index = 0
        if indexed:
            found, p = self._accept(pos, '(')
            if found:
                if kind is EventKind.TIMER:
                    seconds, p = self._float(p)
                    self.rt.events.set_timer(seconds)
                else:
                    index, p = self._int(p)
                pos = self._expect(p, ')')
        pos = self._expect(pos, T.GOSUB)
        number, pos = self._line_number(pos)
        if number != 0: self._check_line(number)
        self.rt.events.set_handler(kind, index, number)
        return pos

    def do_error(self, pos: int) -> int:
        code, pos = self._int(pos)
        if not 1 <= code <= 255: raise IllegalFunctionCall()
        raise BasicError.from_code(code)

    def do_resume(self, pos: int) -> int:
        frame = self.rt.stack.pop_error()
        p = self._skip(pos)
        if self.tokens[p] == T.NEXT:
            self.transfer = Target(frame.next_line, frame.next_pos)
            return p + 1
        number, pos = self._opt_line_number(pos)
        if not number: self.transfer = Target(frame.error_line, frame.error_pos)
        else: self._goto(number)
        return pos

    # Loops ───────────────────────────────────────────────────────────────────────────────────
    def do_for(self, pos: int) -> int:
        name, pos = T.read_name(self.tokens, pos)
        if name is None or self._peek(pos) == ord('('): raise BasicSyntaxError(position=pos)
        key, t = self.rt.variables.resolve(name)
        if t is ScalarType.STRING: raise TypeMismatch()
        pos = self._expect(pos, T.EQUAL)
        start, pos = self._expr(pos)
        self.rt.variables.set(key, start)
        pos = self._expect(pos, T.TO)
        limit, pos = self._expr(pos)
        step = Value.int(1)
        found, p = self._accept(pos, T.STEP)
        if found: step, pos = self._expr(p)
        require_numeric(limit, step)
        limit, step = convert(limit, t), convert(step, t)

        if not is_within(self.rt.variables.get(key), limit, step):
            return self._skip_to_next(key, pos)
        self.rt.stack.push_for(ForFrame(key, limit, step, self.line, pos))
        return pos

    def _next_names(self, tokens: bytes, pos: int) -> list[tuple[str, int]]:
        names = []
        while True:
            name, p = T.read_name(tokens, pos)
            if name is None: return names
            names.append((self.rt.variables.resolve(name)[0], p))
            q = T.skip_spaces(tokens, p)
            if q >= len(tokens) or tokens[q] != ord(','): return names
            pos = q + 1

    def _skip_to_next(self, key: str, pos: int) -> int:
        """Jump past the NEXT matching a FOR whose body runs zero times."""
        depth = 0
        for line, tokens, p, tok in self._scan_forward(self.line, pos):
            if tok == T.FOR: depth += 1
            if tok != T.NEXT: continue
            names = self._next_names(tokens, p + 1) or [(None, p + 1)]
            for i, (name, end) in enumerate(names):
                if depth == 0:
                    self.continue_next = i < len(names) - 1
                    self.transfer = Target(line, T.skip_spaces(tokens, end))
                    return pos
                depth -= 1
        raise ForWithoutNext()

    def do_next(self, pos: int) -> int:
        names = self._next_names(self.tokens, pos)
        for key, end in names or [(None, pos)]:
            frame = self.rt.stack.find_for(key)
            value, again = frame.advance(self.rt.variables.get(frame.var))
            self.rt.variables.set(frame.var, value)
            if again:
                self.transfer = Target(frame.body_line, frame.body_pos)
                return end
            self.rt.stack.pop_for(frame)
            pos = end
        return pos

    def do_while(self, pos: int) -> int:
        start = self.statement_start
        condition, pos = self._expr(pos)
        if is_true(condition):
            self.rt.stack.push_while(WhileFrame(self.line, start))
            return pos
        loops = self.rt.stack.loops
        if loops and isinstance(loops[-1], WhileFrame) and (loops[-1].line, loops[-1].pos) == (self.line, start):
            loops.pop()
        depth = 0
        for line, tokens, p, tok in self._scan_forward(self.line, pos):
            if tok == T.WHILE: depth += 1
            elif tok == T.WEND:
                if depth == 0:
                    self.transfer = Target(line, p + 1)
                    return pos
                depth -= 1
        raise WhileWithoutWend()

    def do_wend(self, pos: int) -> int:
        frame = self.rt.stack.pop_while()
        self.transfer = Target(frame.line, frame.pos)
        return pos

    # Program control ─────────────────────────────────────────────────────────────────────────
    def do_end(self, pos: int) -> int:
        self.rt.files.close_all()
        self.rt.loop.cont_point = None
        self.transfer = HALT
        return pos

    def do_stop(self, pos: int) -> int:
        self.rt.loop.cont_point = Target(self.line, pos)
        self.rt.report_break(self.line)
        self.transfer = HALT
        return pos

    def do_cont(self, pos: int) -> int:
        if (target := self.rt.loop.cont_point) is None: raise CantContinue()
        self.rt.loop.cont_point = None
        self.transfer = target
        return pos

    def do_run(self, pos: int) -> int:
        p = self._skip(pos)
        keep_files = False
        if self.tokens[p] == ord('"'):
            name, pos = self._str(p)
            found, p = self._accept(pos, ',')
            if found:
                word, pos = self._word(p, "R")
                keep_files = word is not None
            self.rt.load_file(self.rt.files.program_path(name), keep_files=keep_files)
            start = None
        else:
            start, pos = self._opt_line_number(pos)
        self.rt.reset_for_run(keep_files=keep_files)
        if start is None and (start := self.rt.program.first_line()) is None:
            self.transfer = HALT
            return pos
        self._goto(start)
        return pos

    def do_new(self, pos: int) -> int:
        self.rt.new()
        self.transfer = HALT
        return pos

    def do_clear(self, pos: int) -> int:
        _, pos = self._arg_list(pos)
        self.rt.clear()
        return pos

    def do_randomize(self, pos: int) -> int:
        """RANDOMIZE [seed]; without a seed one is asked for at the console."""
        if not self._at_end(pos):
            seed, pos = self._float(pos)
            self.rt.rng.randomize(seed)
            return pos
        while True:
            if (seed := parse_number(self.rt.read_line("Random number seed (-32768 to 32767)? "))) is not None:
                self.rt.rng.randomize(to_float(seed))
                return pos

    def do_system(self, pos: int) -> int:
        self.rt.files.close_all()
        raise SystemExit(0)

    def do_tron(self, pos: int) -> int:
        self.rt.tron = True
        return pos

    def do_troff(self, pos: int) -> int:
        self.rt.tron = False
        return pos

    def do_rem(self, pos: int) -> int:
        end = self.tokens.find(b'\x00', pos)
        return len(self.tokens) if end < 0 else end

    def do_data(self, pos: int) -> int:
        return T.data_end(self.tokens, pos)

    def do_ignore(self, pos: int) -> int:
        return T.statement_end(self.tokens, pos)

    def do_unsupported(self, pos: int) -> int:
        raise IllegalFunctionCall()

    # Program editing ─────────────────────────────────────────────────────────────────────────
    def _list(self, pos: int, channel: OutputChannel) -> int:
        first, last, pos = self._line_range(pos)
        for text in self.rt.list_lines(first, last):
            channel.write(text)
            channel.newline()
        return pos

    def do_list(self, pos: int) -> int:
        pos = self._list(pos, self.rt.console)
        if self.line != DIRECT: self.transfer = HALT
        return pos

    def do_llist(self, pos: int) -> int:
        return self._list(pos, self.rt.printer)

    def do_edit(self, pos: int) -> int:
        number, pos = self._line_number(pos)
        self._check_line(number)
        for text in self.rt.list_lines(number, number):
            self.rt.console.write(text)
            self.rt.console.newline()
        return pos

    def do_delete(self, pos: int) -> int:
        first, last, pos = self._line_range(pos)
        self.rt.program.delete_range(first, last)
        self.rt.program_changed()
        self.transfer = HALT
        return pos

    def do_renum(self, pos: int) -> int:
        new, pos = self._opt_line_number(pos)
        old = increment = None
        found, pos = self._accept(pos, ',')
        if found:
            old, pos = self._opt_line_number(pos)
            found, pos = self._accept(pos, ',')
            if found: increment, pos = self._line_number(pos)
        if increment == 0: raise IllegalFunctionCall()
        self.rt.program.renumber(new or 10, old or 0, increment or 10)
        self.rt.program_changed()
        self.transfer = HALT
        return pos

    def do_load(self, pos: int) -> int:
        name, pos = self._str(pos)
        run = False
        found, p = self._accept(pos, ',')
        if found:
            word, pos = self._word(p, "R")
            if not word: raise BasicSyntaxError(position=p)
            run = True
        self.rt.load_file(self.rt.files.program_path(name), keep_files=run)
        if run and (first := self.rt.program.first_line()) is not None:
            self.rt.reset_for_run(keep_files=True)
            self.transfer = Target(first, 0)
        else:
            self.transfer = HALT
        return pos

    def do_merge(self, pos: int) -> int:
        name, pos = self._str(pos)
        self.rt.merge_file(self.rt.files.program_path(name))
        self.transfer = HALT
        return pos

    def do_save(self, pos: int) -> int:
        name, pos = self._str(pos)
        ascii_ = False
        found, p = self._accept(pos, ',')
        if found:
            word, pos = self._word(p, "A", "P")
            if not word: raise BasicSyntaxError(position=p)
            ascii_ = word == "A"
        self.rt.files.write_bytes(self.rt.files.program_path(name, must_exist=False), self.rt.save_bytes(ascii_))
        return pos

    def do_chain(self, pos: int) -> int:
        """CHAIN [MERGE] file$ [, [line] [, ALL] [, DELETE range]]; variables survive the switch."""
        merge, pos = self._accept(pos, T.MERGE)
        name, pos = self._str(pos)
        start = delete = None
        found, pos = self._accept(pos, ',')
        if found:
            if not self._at_end(pos) and self._peek(pos) != ord(','):
                start, pos = self._int(pos)
            while True:
                found, p = self._accept(pos, ',')
                if not found: break
                if (deleting := self._accept(p, T.DELETE))[0]:
                    first, last, pos = self._line_range(deleting[1])
                    delete = (first, last)
                else:
                    word, pos = self._word(p, "ALL")
                    if not word: raise BasicSyntaxError(position=p)
        path = self.rt.files.program_path(name)
        if delete: self.rt.program.delete_range(*delete)
        if merge: self.rt.merge_file(path)
        else: self.rt.load_file(path, keep_files=True)
        self.rt.stack.clear()
        self.rt.data.restore()
        if start is None and (start := self.rt.program.first_line()) is None:
            self.transfer = HALT
            return pos
        self._goto(start)
        return pos

    # Data ────────────────────────────────────────────────────────────────────────────────────
    def do_read(self, pos: int) -> int:
        targets, pos = self._targets(pos)
        for name, subs in targets:
            datum = self.rt.data.read()
            if self._type_of(name) is ScalarType.STRING:
                if not datum.is_string: datum = Value.string(number_text(datum))
            elif datum.is_string:
                if (number := parse_number(datum.value) if datum.value else Value.int(0)) is None:
                    raise BasicSyntaxError()
                datum = number
            self._assign(name, subs, datum)
        return pos

    def do_restore(self, pos: int) -> int:
        number, pos = self._opt_line_number(pos)
        if number is not None: self._check_line(number)
        self.rt.data.restore(number)
        return pos

    # Console output ──────────────────────────────────────────────────────────────────────────
    def do_print(self, pos: int, channel: OutputChannel | None = None) -> int:
        tokens = self.tokens
        if channel is None:
            channel = self.rt.console
            number, pos = self._file_number(pos, required=False)
            if number is not None:
                channel = self.rt.files.channel(number)
                found, pos = self._accept(pos, ',')
                if not found and not self._at_end(pos): raise BasicSyntaxError(position=pos)
        if self._peek(pos) == T.USING: return self._print_using(self._skip(pos) + 1, channel)

        newline = True
        while not self._at_end(pos):
            p = self._skip(pos)
            b = tokens[p]
            if b == ord(';'):
                pos, newline = p + 1, False
            elif b == ord(','):
                channel.next_zone()
                pos, newline = p + 1, False
            elif b in (T.SPC, T.TAB):
                args, pos = self.rt.evaluator.arguments(tokens, p + 1)
                if len(args) != 1: raise BasicSyntaxError(position=p)
                channel.spc(to_int16(args[0])) if b == T.SPC else channel.tab(to_int16(args[0]))
                newline = True
            else:
                value, pos = self._expr(p)
                if value.is_string: channel.write_item(value.value)
                else: channel.write_number(format_number(value))
                newline = True
        if newline: channel.newline()
        return pos

    def _print_using(self, pos: int, channel: OutputChannel) -> int:
        template, pos = self._str(pos)
        found, pos = self._accept(pos, ';')
        if not found: pos = self._expect(pos, ',')
        values, newline = [], True
        while not self._at_end(pos):
            value, pos = self._expr(pos)
            values.append(value)
            newline = True
            p = self._skip(pos)
            if self.tokens[p] in (ord(';'), ord(',')): pos, newline = p + 1, False
        channel.write(format_using(template, values))
        if newline: channel.newline()
        return pos

    def do_lprint(self, pos: int) -> int:
        return self.do_print(pos, channel=self.rt.printer)

    def do_write(self, pos: int) -> int:
        channel = self.rt.console
        number, pos = self._file_number(pos, required=False)
        if number is not None:
            channel = self.rt.files.channel(number)
            found, pos = self._accept(pos, ',')
        items = []
        while not self._at_end(pos):
            value, pos = self._expr(pos)
            items.append(f'"{value.value}"' if value.is_string else number_text(value))
            p = self._skip(pos)
            if self.tokens[p] in (ord(','), ord(';')): pos = p + 1
        channel.write(','.join(items))
        channel.newline()
        return pos

    # Input ───────────────────────────────────────────────────────────────────────────────────
    def _coerce(self, text: str, t: ScalarType) -> Value:
        if t is ScalarType.STRING: return Value.string(text)
        if not text: return Value.int(0)
        if (value := parse_number(text)) is None: raise RedoInput()
        try:
            return convert(value, t)
        except BasicError:
            raise RedoInput() from None

    def do_input(self, pos: int) -> int:
        number, p = self._file_number(pos, required=False)
        if number is not None:
            pos = self._expect(p, ',')
            targets, pos = self._targets(pos)
            for name, subs in targets:
                t = self._type_of(name)
                text = self.rt.files.read_field(number, numeric=t is not ScalarType.STRING)
                value = Value.string(text) if t is ScalarType.STRING else (parse_number(text) or Value.int(0))
                self._assign(name, subs, value)
            return pos

        _, pos = self._accept(pos, ';')
        prompt = "? "
        if self._peek(pos) == ord('"'):
            text, pos = self._str(pos)
            found, pos = self._accept(pos, ';')
            if found: prompt = text + "? "
            else:
                pos = self._expect(pos, ',')
                prompt = text
        targets, pos = self._targets(pos)

        while True:
            fields = split_input(self.rt.read_line(prompt))
            try:
                if len(fields) != len(targets): raise RedoInput()
                values = [self._coerce(text, self._type_of(name)) for text, (name, _) in zip(fields, targets)]
            except RedoInput:
                self.rt.console.write("?Redo from start")
                self.rt.console.newline()
                continue
            break
        for (name, subs), value in zip(targets, values):
            self._assign(name, subs, value)
        return pos

    def do_line(self, pos: int) -> int:
        found, p = self._accept(pos, T.INPUT)
        if not found: return self._graphics_line(pos)
        number, p2 = self._file_number(p, required=False)
        if number is not None:
            pos = self._expect(p2, ',')
            name, subs, pos = self._target(pos)
            if self._type_of(name) is not ScalarType.STRING: raise TypeMismatch()
            self._assign(name, subs, Value.string(self.rt.files.read_line(number)))
            return pos
        _, pos = self._accept(p, ';')
        prompt = ""
        if self._peek(pos) == ord('"'):
            prompt, pos = self._str(pos)
            found, pos = self._accept(pos, ';')
            if not found: pos = self._expect(pos, ',')
        name, subs, pos = self._target(pos)
        if self._type_of(name) is not ScalarType.STRING: raise TypeMismatch()
        self._assign(name, subs, Value.string(self.rt.read_line(prompt)))
        return pos

    # Files ───────────────────────────────────────────────────────────────────────────────────
    def do_open(self, pos: int) -> int:
        first, pos = self._str(pos)
        found, p = self._accept(pos, ',')
        if found:
            mode = FileMode.from_letter(first)
            number, p = self._file_number(p, required=False)
            if number is None: number, p = self._int(p)
            p = self._expect(p, ',')
            name, pos = self._str(p)
            length = 128
            found, p = self._accept(pos, ',')
            if found: length, pos = self._int(p)
        else:
            name, mode, length = first, FileMode.RANDOM, 128
            found, p = self._accept(pos, T.FOR)
            if found:
                p2 = self._skip(p)
                if self.tokens[p2] == T.INPUT: mode, pos = FileMode.INPUT, p2 + 1
                else:
                    word, pos = self._word(p, "OUTPUT", "APPEND", "RANDOM")
                    if not word: raise BasicSyntaxError(position=p)
                    mode = {"OUTPUT": FileMode.OUTPUT, "APPEND": FileMode.APPEND, "RANDOM": FileMode.RANDOM}[word]
            pos = self._skip_access_clauses(pos)
            word, p = self._word(pos, "AS", "AS#")
            if not word: raise BasicSyntaxError(position=pos)
            if word == "AS": _, p = self._accept(p, '#')
            number, pos = self._int(p)
            if self._peek2(pos) == T.RESERVED["LEN"].code:
                pos = self._expect(self._skip(pos) + 2, T.EQUAL)
                length, pos = self._int(pos)
        self.rt.files.open(number, name, mode, length)
        return pos

    def _skip_access_clauses(self, pos: int) -> int:
        """ACCESS / SHARED / LOCK clauses are accepted and have no effect on a single-user file system."""
        while True:
            word, p = self._word(pos, "ACCESS", "SHARED", "LOCK")
            if not word: return pos
            pos = p
            while (w := self._word(pos, "READ", "WRITE", "SHARED"))[0] or self._peek(pos) in (T.READ, T.WRITE):
                pos = w[1] if w[0] else self._skip(pos) + 1

    def do_close(self, pos: int) -> int:
        if self._at_end(pos):
            self.rt.files.close_all()
            return pos
        while True:
            number, pos = self._file_number(pos, required=False)
            if number is None: number, pos = self._int(pos)
            self.rt.files.close(number)
            found, pos = self._accept(pos, ',')
            if not found: return pos

    def do_reset(self, pos: int) -> int:
        self.rt.files.reset()
        return pos

    def do_field(self, pos: int) -> int:
        number, pos = self._file_number(pos, required=False)
        if number is None: number, pos = self._int(pos)
        specs = []
        while True:
            found, pos = self._accept(pos, ',')
            if not found: break
            width, pos = self._int(pos)
            word, pos = self._word(pos, "AS")
            if not word: raise BasicSyntaxError(position=pos)
            name, pos = T.read_name(self.tokens, pos)
            if name is None: raise BasicSyntaxError(position=pos)
            key, t = self.rt.variables.resolve(name)
            if t is not ScalarType.STRING: raise TypeMismatch()
            specs.append((width, key))
        self.rt.files.field(number, specs)
        for width, key in specs:
            self.rt.variables.set(key, Value.string(' ' * width))
        return pos

    def _justify(self, pos: int, right: bool) -> int:
        name, pos = T.read_name(self.tokens, pos)
        if name is None: raise BasicSyntaxError(position=pos)
        key, t = self.rt.variables.resolve(name)
        if t is not ScalarType.STRING: raise TypeMismatch()
        pos = self._expect(pos, T.EQUAL)
        text, pos = self._str(pos)
        width = self.rt.files.field_width(key)
        if width is None: width = len(self.rt.variables.get(key).value)
        padded = (self.rt.files.rset if right else self.rt.files.lset)(key, text, width)
        self.rt.variables.set(key, Value.string(padded))
        return pos

    def do_lset(self, pos: int) -> int: return self._justify(pos, right=False)
    def do_rset(self, pos: int) -> int: return self._justify(pos, right=True)

    def _record_args(self, pos: int) -> tuple[int, int | None, int]:
        number, pos = self._file_number(pos, required=False)
        if number is None: number, pos = self._int(pos)
        record = None
        found, p = self._accept(pos, ',')
        if found:
            value, pos = self._float(p)
            record = int(value)
        return number, record, pos

    def do_get(self, pos: int) -> int:
        if self._peek(pos) in (ord('('), T.STEP): return self._graphics_get(pos)
        number, record, pos = self._record_args(pos)
        self.rt.files.get(number, record, assign=lambda key, text: self.rt.variables.set(key, Value.string(text)))
        return pos

    def do_put(self, pos: int) -> int:
        if self._peek(pos) in (ord('('), T.STEP): return self._graphics_put(pos)
        number, record, pos = self._record_args(pos)
        self.rt.files.put(number, record, fetch=lambda key: self.rt.variables.get(key).value)
        return pos

    def do_kill(self, pos: int) -> int:
        name, pos = self._str(pos)
        self.rt.files.kill(name)
        return pos

    def do_name(self, pos: int) -> int:
        old, pos = self._str(pos)
        word, pos = self._word(pos, "AS")
        if not word: raise BasicSyntaxError(position=pos)
        new, pos = self._str(pos)
        self.rt.files.name(old, new)
        return pos

    def do_chdir(self, pos: int) -> int:
        name, pos = self._str(pos)
        self.rt.files.chdir(name)
        return pos

    def do_mkdir(self, pos: int) -> int:
        name, pos = self._str(pos)
        self.rt.files.mkdir(name)
        return pos

    def do_rmdir(self, pos: int) -> int:
        name, pos = self._str(pos)
        self.rt.files.rmdir(name)
        return pos

    def do_files(self, pos: int) -> int:
        pattern = None
        if not self._at_end(pos): pattern, pos = self._str(pos)
        console = self.rt.console
        for name in self.rt.files.files(pattern):
            console.write_item(name.ljust(18))
        if console.column: console.newline()
        return pos

    def do_environ(self, pos: int) -> int:
        entry, pos = self._str(pos)
        key, sep, value = entry.partition('=')
        if not sep or not key.strip(): raise IllegalFunctionCall()
        os.environ[key.strip().upper()] = value
        return pos

    def do_set_clock(self, pos: int) -> int:
        pos = self._expect(pos, T.EQUAL)
        _, pos = self._str(pos)
        return pos

    # Memory ──────────────────────────────────────────────────────────────────────────────────
    def do_poke(self, pos: int) -> int:
        address, pos = self._unsigned(pos)
        pos = self._expect(pos, ',')
        value, pos = self._int(pos)
        self.rt.memory.poke(address, value)
        return pos

    def do_bsave(self, pos: int) -> int:
        name, pos = self._str(pos)
        pos = self._expect(pos, ',')
        offset, pos = self._unsigned(pos)
        pos = self._expect(pos, ',')
        length, pos = self._unsigned(pos)
        self.rt.files.write_bytes(self.rt.files.path(name), self.rt.memory.bsave(offset, length))
        return pos

    def do_bload(self, pos: int) -> int:
        name, pos = self._str(pos)
        offset = None
        found, p = self._accept(pos, ',')
        if found: offset, pos = self._unsigned(p)
        self.rt.memory.bload(self.rt.files.read_bytes(self.rt.files.path(name)), offset)
        return pos

    # Screen ──────────────────────────────────────────────────────────────────────────────────
    def do_cls(self, pos: int) -> int:
        _, pos = self._arg_list(pos)
        self.rt.host.cls()
        self.rt.graphics.clear()
        self.rt.console.column, self.rt.console.row, self.rt.console.pending_space = 0, 1, False
        return pos

    def do_screen(self, pos: int) -> int:
        args, pos = self._arg_list(pos)
        if (mode := self._opt_int(args, 0)) is not None:
            if mode != self.rt.graphics.mode: self.rt.graphics.set_mode(mode, self.rt.host.graphics_buffer())
            self.rt.host.screen_mode(mode)
        return pos

    def do_color(self, pos: int) -> int:
        args, pos = self._arg_list(pos)
        fg, bg = self._opt_int(args, 0, -1), self._opt_int(args, 1, -1)
        if not -1 <= fg <= 31 or not -1 <= bg <= 255: raise IllegalFunctionCall()
        if fg >= 0: self.rt.graphics.foreground = fg % self.rt.graphics.colors
        self.rt.host.color(fg, bg)
        return pos

    def do_width(self, pos: int) -> int:
        number, p = self._file_number(pos, required=False)
        if number is not None:
            p = self._expect(p, ',')
            width, pos = self._int(p)
            if not 0 <= width <= 255: raise IllegalFunctionCall()
            self.rt.files.channel(number).width = width or None
            return pos
        if self._peek(pos) == ord('"'):
            _, p = self._str(pos)
            p = self._expect(p, ',')
            width, pos = self._int(p)
            if not 0 <= width <= 255: raise IllegalFunctionCall()
            self.rt.printer.width = width or None
            return pos
        args, pos = self._arg_list(pos)
        if (width := self._opt_int(args, 0)) is not None:
            if width not in (40, 80, 132): raise IllegalFunctionCall()
            self.rt.console.width = width
            self.rt.host.width(width)
        return pos

    def do_locate(self, pos: int) -> int:
        args, pos = self._arg_list(pos)
        row, col = self._opt_int(args, 0, -1), self._opt_int(args, 1, -1)
        cursor, start, stop = (self._opt_int(args, i, -1) for i in (2, 3, 4))
        if row != -1 and not 1 <= row <= 25: raise IllegalFunctionCall()
        if col != -1 and not 1 <= col <= (self.rt.console.width or 80): raise IllegalFunctionCall()
        self.rt.host.locate(row, col, cursor, start, stop)
        if row != -1: self.rt.console.row = row
        if col != -1: self.rt.console.column = col - 1
        self.rt.console.pending_space = False
        return pos

    def do_key(self, pos: int) -> int:
        p = self._skip(pos)
        b = self.tokens[p]
        if b == ord('('):
            index, p = self._int(p + 1)
            p = self._expect(p, ')')
            return self._trap_state(p, EventKind.KEY, index)
        if b in (T.ON, T.OFF): return p + 1
        if b == T.LIST:
            for n in sorted(self.rt.soft_keys):
                self.rt.console.write(f"F{n} {self.rt.soft_keys[n]}")
                self.rt.console.newline()
            return p + 1
        number, p = self._int(p)
        p = self._expect(p, ',')
        text, pos = self._str(p)
        if not 1 <= number <= 20: raise IllegalFunctionCall()
        self.rt.soft_keys[number] = text[:15]
        return pos

    # Graphics ────────────────────────────────────────────────────────────────────────────────
    def _point(self, pos: int) -> tuple[tuple[int, int], int]:
        relative, pos = self._accept(pos, T.STEP)
        pos = self._expect(pos, '(')
        x, pos = self._float(pos)
        pos = self._expect(pos, ',')
        y, pos = self._float(pos)
        pos = self._expect(pos, ')')
        return self.rt.graphics.resolve(x, y, relative), pos

    def do_pset(self, pos: int) -> int:
        (x, y), pos = self._point(pos)
        args, pos = self._arg_list(self._expect(pos, ',')) if self._peek(pos) == ord(',') else ([], pos)
        self.rt.graphics.pset(x, y, self._opt_int(args, 0))
        return pos

    def do_preset(self, pos: int) -> int:
        (x, y), pos = self._point(pos)
        args, pos = self._arg_list(self._expect(pos, ',')) if self._peek(pos) == ord(',') else ([], pos)
        self.rt.graphics.preset(x, y, self._opt_int(args, 0))
        return pos

    def _graphics_line(self, pos: int) -> int:
        graphics = self.rt.graphics
        start = graphics.last
        if self._peek(pos) != T.MINUS: start, pos = self._point(pos)
        pos = self._expect(pos, T.MINUS)
        graphics.last = start
        end, pos = self._point(pos)
        color, box, fill = None, False, False
        found, pos = self._accept(pos, ',')
        if found:
            if not self._at_end(pos) and self._peek(pos) != ord(','):
                color, pos = self._int(pos)
            found, p = self._accept(pos, ',')
            if found:
                word, pos = self._word(p, "B", "BF")
                if not word: raise BasicSyntaxError(position=p)
                box, fill = True, word == "BF"
        graphics.line(*start, *end, color, box=box, fill=fill)
        return pos

    def do_circle(self, pos: int) -> int:
        (x, y), pos = self._point(pos)
        pos = self._expect(pos, ',')
        radius, pos = self._float(pos)
        args = []
        found, p = self._accept(pos, ',')
        if found: args, pos = self._arg_list(p)
        start, end, aspect = (to_float(args[i]) if i < len(args) and args[i] is not None else None for i in (1, 2, 3))
        self.rt.graphics.circle(x, y, radius, self._opt_int(args, 0), start, end, aspect)
        return pos

    def do_paint(self, pos: int) -> int:
        (x, y), pos = self._point(pos)
        args = []
        found, p = self._accept(pos, ',')
        if found: args, pos = self._arg_list(p)
        self.rt.graphics.paint(x, y, self._opt_int(args, 0), self._opt_int(args, 1))
        return pos

    def do_draw(self, pos: int) -> int:
        macro, pos = self._str(pos)
        self.rt.graphics.draw(macro, self._macro_var)
        return pos

    def _array_name(self, pos: int) -> tuple[str, int]:
        name, pos = T.read_name(self.tokens, pos)
        if name is None: raise BasicSyntaxError(position=pos)
        if self._peek(pos) in (ord('('), ord('[')):
            _, pos = self.rt.evaluator.subscripts(self.tokens, pos)
        return name, pos

    def _graphics_get(self, pos: int) -> int:
        (x0, y0), pos = self._point(pos)
        pos = self._expect(pos, T.MINUS)
        (x1, y1), pos = self._point(pos)
        pos = self._expect(pos, ',')
        name, pos = self._array_name(pos)
        self.rt.arrays.store_bytes(name, self.rt.graphics.get(x0, y0, x1, y1))
        return pos

    def _graphics_put(self, pos: int) -> int:
        (x, y), pos = self._point(pos)
        pos = self._expect(pos, ',')
        name, pos = self._array_name(pos)
        action = 'XOR'
        found, p = self._accept(pos, ',')
        if found:
            q = self._skip(p)
            if self.tokens[q] in (T.PSET, T.PRESET, T.AND, T.OR, T.XOR):
                action, pos = T.token_name(bytes([self.tokens[q]])), q + 1
            else: raise BasicSyntaxError(position=q)
        self.rt.graphics.put(x, y, self.rt.arrays.to_bytes(name), action)
        return pos

    # Sound ───────────────────────────────────────────────────────────────────────────────────
    def do_sound(self, pos: int) -> int:
        frequency, pos = self._float(pos)
        pos = self._expect(pos, ',')
        ticks, pos = self._float(pos)
        if not (frequency == 0 or 37 <= frequency <= 32767) or not 0 <= ticks <= 65535: raise IllegalFunctionCall()
        self.rt.host.sound(frequency, ticks * 1000 / 18.2)
        return pos

    def do_beep(self, pos: int) -> int:
        self.rt.host.sound(800, 250)
        return pos

    def do_play(self, pos: int) -> int:
        if self._peek(pos) in (T.ON, T.OFF, T.STOP): return self._trap_state(pos, EventKind.PLAY, 0)
        macro, pos = self._str(pos)
        self.rt.music.play(macro, self._macro_var)
        return pos

    # Event traps ─────────────────────────────────────────────────────────────────────────────
    def _trap_state(self, pos: int, kind: EventKind, index: int) -> int:
        p = self._skip(pos)
        match self.tokens[p]:
            case T.ON: self.rt.events.enable(kind, index)
            case T.OFF: self.rt.events.disable(kind, index)
            case T.STOP: self.rt.events.stop(kind, index)
            case _: raise BasicSyntaxError(position=p)
        return p + 1

    def _indexed_trap(self, pos: int, kind: EventKind) -> int:
        pos = self._expect(pos, '(')
        index, pos = self._int(pos)
        pos = self._expect(pos, ')')
        return self._trap_state(pos, kind, index)

    def do_timer(self, pos: int) -> int: return self._trap_state(pos, EventKind.TIMER, 0)
    def do_pen(self, pos: int) -> int: return self._trap_state(pos, EventKind.PEN, 0)
    def do_com(self, pos: int) -> int: return self._indexed_trap(pos, EventKind.COM)

    def do_strig(self, pos: int) -> int:
        if self._peek(pos) in (T.ON, T.OFF): return self._skip(pos) + 1
        return self._indexed_trap(pos, EventKind.STRIG)
