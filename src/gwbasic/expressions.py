## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

from typing import Callable, Container

from . import tokens as T
from . import numeric
from .types import Value
from .tokenizer import literal_value
from .errors import BasicSyntaxError


# Binding power of each binary operator, loosest first; all of them associate to the left.
BINDING_POWER = {
    T.IMP: 1, T.EQV: 2, T.XOR: 3, T.OR: 4, T.AND: 5,
    T.EQUAL: 6, T.NOT_EQUAL: 6, T.LESS: 6, T.GREATER: 6, T.LESS_EQUAL: 6, T.GREATER_EQUAL: 6,
    T.PLUS: 7, T.MINUS: 7, T.MOD: 8, T.INT_DIVIDE: 9, T.TIMES: 10, T.DIVIDE: 10, T.POWER: 11,
}
# Unary operators bind tighter than any binary one: `-2^2` is 4 and `NOT 1=0` compares `NOT 1` with 0.
UNARY_POWER = {T.MINUS: 12, T.PLUS: 12, T.NOT: 12}

OPERATOR_TEXT = {tok: T.TOKEN_NAMES[bytes([tok])] for tok in BINDING_POWER}
UNARY_TEXT = {T.MINUS: '-', T.PLUS: '+', T.NOT: 'NOT'}

# Keywords and extended-statement tokens that also read as functions inside expressions.
KEYWORD_FUNCTIONS = {T.ERR: "ERR", T.ERL: "ERL", T.CSRLIN: "CSRLIN", T.INKEY_S: "INKEY$", T.INSTR: "INSTR",
                     T.STRING_S: "STRING$", T.POINT: "POINT", T.VARPTR: "VARPTR", T.USR: "USR"}
STATEMENT_FUNCTIONS = {T.TIMER: "TIMER", T.DATE_S: "DATE$", T.TIME_S: "TIME$", T.PLAY: "PLAY", T.ERDEV: "ERDEV"}

LookupVar = Callable[[str], Value]
LookupArray = Callable[[str, list[int]], Value]
CallFunction = Callable[[str, list[Value]], Value]


class ExpressionEvaluator:
    """Operator-precedence evaluation over the tokenized byte stream.

    Every entry point takes a buffer and a position, and returns the value along with the position where
    the expression stopped, so the caller resumes parsing right after it.
    """

    def __init__(self, lookup_var: LookupVar, lookup_array_elem: LookupArray, call_function: CallFunction,
                 functions: Container[str] = ()):
        self.lookup_var = lookup_var
        self.lookup_array_elem = lookup_array_elem
        self.call_function = call_function
        self.functions = functions

    def evaluate(self, buf: bytes, pos: int, min_power: int = 0) -> tuple[Value, int]:
        left, pos = self._operand(buf, pos)
        while True:
            pos = T.skip_spaces(buf, pos)
            op = buf[pos] if pos < len(buf) else T.LINE_END
            if (power := BINDING_POWER.get(op)) is None or power <= min_power: return left, pos
            right, pos = self.evaluate(buf, pos + 1, power)
            left = numeric.BINARY[OPERATOR_TEXT[op]](left, right)

    # Typed shortcuts ─────────────────────────────────────────────────────────────────────────
    def evaluate_int(self, buf: bytes, pos: int) -> tuple[int, int]:
        value, pos = self.evaluate(buf, pos)
        return numeric.to_int16(value), pos

    def evaluate_float(self, buf: bytes, pos: int) -> tuple[float, int]:
        value, pos = self.evaluate(buf, pos)
        return numeric.to_float(value), pos

    def evaluate_string(self, buf: bytes, pos: int) -> tuple[str, int]:
        value, pos = self.evaluate(buf, pos)
        numeric.require_string(value)
        return value.value, pos

    # Operands ────────────────────────────────────────────────────────────────────────────────
    def _operand(self, buf: bytes, pos: int) -> tuple[Value, int]:
        pos = T.skip_spaces(buf, pos)
        b = buf[pos] if pos < len(buf) else T.LINE_END

        if b in T.LITERAL_SIZES:
            return literal_value(buf, pos), pos + T.LITERAL_SIZES[b]
        if b == ord('"'):
            end = T.skip_string(buf, pos)
            return Value.string(bytes(buf[pos + 1:end]).rstrip(b'"').decode('latin-1')), end
        if b == ord('('):
            value, pos = self.evaluate(buf, pos + 1)
            return value, self.expect(buf, pos, ')')
        if b in UNARY_TEXT:
            value, pos = self.evaluate(buf, pos + 1, UNARY_POWER[b])
            return numeric.UNARY[UNARY_TEXT[b]](value), pos
        if b == T.FN:
            name, pos = T.read_name(buf, pos + 1)
            if name is None: raise BasicSyntaxError(position=pos)
            args, pos = self.arguments(buf, pos, optional=True)
            return self.call_function("FN" + name, args), pos
        if b in (T.STD_FUNCTION, T.EXT_FUNCTION):
            name = T.token_name(bytes(buf[pos:pos + 2]))
            args, pos = self.arguments(buf, pos + 2, optional=True)
            return self.call_function(name, args), pos
        if b == T.EXT_STATEMENT and (name := STATEMENT_FUNCTIONS.get(bytes(buf[pos:pos + 2]))):
            args, pos = self.arguments(buf, pos + 2, optional=True)
            return self.call_function(name, args), pos
        if b in KEYWORD_FUNCTIONS:
            pos += 1
            if b == T.USR and pos < len(buf) and chr(buf[pos]).isdigit(): pos += 1
            args, pos = self.arguments(buf, pos, optional=True)
            return self.call_function(KEYWORD_FUNCTIONS[b], args), pos

        name, end = T.read_name(buf, pos)
        if name is None: raise BasicSyntaxError(position=pos)
        if name in self.functions and T.peek(buf, end) == ord('('):
            args, end = self.arguments(buf, end)
            return self.call_function(name, args), end
        if T.peek(buf, end) in (ord('('), ord('[')):
            subscripts, end = self.subscripts(buf, end)
            return self.lookup_array_elem(name, subscripts), end
        return self.lookup_var(name), end

    def arguments(self, buf: bytes, pos: int, optional: bool = False) -> tuple[list[Value], int]:
        """Parenthesized, comma-separated arguments; a `#` before a file number is accepted."""
        pos = T.skip_spaces(buf, pos)
        if pos >= len(buf) or buf[pos] != ord('('):
            if optional: return [], pos
            raise BasicSyntaxError(position=pos)
        args = []
        while True:
            pos = T.skip_spaces(buf, pos + 1)
            if pos < len(buf) and buf[pos] == ord('#'): pos += 1
            value, pos = self.evaluate(buf, pos)
            args.append(value)
            pos = T.skip_spaces(buf, pos)
            if pos < len(buf) and buf[pos] == ord(','): continue
            return args, self.expect(buf, pos, ')')

    def subscripts(self, buf: bytes, pos: int) -> tuple[list[int], int]:
        pos = T.skip_spaces(buf, pos)
        closing = ']' if buf[pos] == ord('[') else ')'
        values = []
        while True:
            value, pos = self.evaluate_int(buf, pos + 1)
            values.append(value)
            pos = T.skip_spaces(buf, pos)
            if pos < len(buf) and buf[pos] == ord(','): continue
            return values, self.expect(buf, pos, closing)

    @staticmethod
    def expect(buf: bytes, pos: int, char: str) -> int:
        pos = T.skip_spaces(buf, pos)
        if pos >= len(buf) or buf[pos] != ord(char): raise BasicSyntaxError(position=pos)
        return pos + 1
