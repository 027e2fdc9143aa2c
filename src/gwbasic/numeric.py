## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

import re
import math
import time

from .mbf import MBF32_MAX, MBF64_MAX, ieee_to_mbf32
from .types import ScalarType, Value, TRUE, FALSE
from .errors import BasicError, Overflow, DivisionByZero, IllegalFunctionCall, TypeMismatch, StringTooLong


INT_MIN, INT_MAX = -32768, 32767
MAX_STRING = 255

INT, SINGLE, DOUBLE, STRING = ScalarType.INT, ScalarType.SINGLE, ScalarType.DOUBLE, ScalarType.STRING


## CONSTRUCTION & CONVERSION
def make(t: ScalarType, x: int | float) -> Value:
    """Build a numeric value of type `t`, promoting out-of-range integers and rejecting overflow."""
    if t is INT:
        if INT_MIN <= x <= INT_MAX: return Value.int(x)
        t = SINGLE
    if not math.isfinite(x): raise Overflow()
    if t is SINGLE:
        if abs(x) > MBF32_MAX: raise Overflow()
        return Value.single(x)
    if abs(x) > MBF64_MAX: raise Overflow()
    return Value.double(x)

def promote(a: Value, b: Value) -> ScalarType:
    return a.type if a.type.rank >= b.type.rank else b.type

def require_numeric(*values: Value) -> None:
    if any(v.is_string for v in values): raise TypeMismatch()

def require_string(*values: Value) -> None:
    if any(not v.is_string for v in values): raise TypeMismatch()

def round_half_away(x: float) -> int:
    return int(math.floor(abs(x) + 0.5)) * (1 if x >= 0 else -1)

def to_int16(v: Value) -> int:
    """CINT semantics: round to nearest, Overflow outside the signed 16-bit range."""
    require_numeric(v)
    n = v.value if v.type is INT else round_half_away(v.value)
    if not INT_MIN <= n <= INT_MAX: raise Overflow()
    return n

def to_bits16(v: Value) -> int:
    """Integer operand of a logical operator; unsigned 16-bit values wrap to their signed form."""
    require_numeric(v)
    n = v.value if v.type is INT else round_half_away(v.value)
    if not INT_MIN <= n <= 0xFFFF: raise Overflow()
    return n - 0x10000 if n > INT_MAX else n

def to_float(v: Value) -> float:
    require_numeric(v)
    return float(v.value)

def convert(v: Value, t: ScalarType) -> Value:
    """Coerce a value for storage into a slot of type `t`."""
    if v.type is t: return v
    if v.is_string or t is STRING: raise TypeMismatch()
    if t is INT: return Value.int(to_int16(v))
    return make(t, float(v.value))

def cint(v: Value) -> Value: return Value.int(to_int16(v))
def csng(v: Value) -> Value: return make(SINGLE, to_float(v))
def cdbl(v: Value) -> Value: return make(DOUBLE, to_float(v))

def _to_int16_result(x: float) -> Value:
    if not INT_MIN <= x <= INT_MAX: raise Overflow()
    return Value.int(int(x))

def int_floor(v: Value) -> Value:
    require_numeric(v)
    return v if v.type is INT else _to_int16_result(math.floor(v.value))

def fix(v: Value) -> Value:
    require_numeric(v)
    return v if v.type is INT else _to_int16_result(math.trunc(v.value))

def _float_type(*values: Value) -> ScalarType:
    return DOUBLE if any(v.type is DOUBLE for v in values) else SINGLE


## ARITHMETIC
def add(a: Value, b: Value) -> Value:
    if a.is_string and b.is_string:
        if len(a.value) + len(b.value) > MAX_STRING: raise StringTooLong()
        return Value.string(a.value + b.value)
    require_numeric(a, b)
    return make(promote(a, b), a.value + b.value)

def sub(a: Value, b: Value) -> Value:
    require_numeric(a, b)
    return make(promote(a, b), a.value - b.value)

def mul(a: Value, b: Value) -> Value:
    require_numeric(a, b)
    return make(promote(a, b), a.value * b.value)

def div(a: Value, b: Value) -> Value:
    require_numeric(a, b)
    if b.value == 0: raise DivisionByZero()
    return make(_float_type(a, b), a.value / b.value)

def int_div(a: Value, b: Value) -> Value:
    x, y = to_int16(a), to_int16(b)
    if y == 0: raise DivisionByZero()
    return make(INT, math.trunc(x / y))

def mod(a: Value, b: Value) -> Value:
    x, y = to_int16(a), to_int16(b)
    if y == 0: raise DivisionByZero()
    return Value.int(int(math.fmod(x, y)))

def power(a: Value, b: Value) -> Value:
    require_numeric(a, b)
    x, y = float(a.value), float(b.value)
    if x == 0 and y < 0: raise DivisionByZero()
    if x < 0 and y != int(y): raise IllegalFunctionCall()
    try:
        result = math.pow(x, y)
    except OverflowError:
        raise Overflow() from None
    return make(_float_type(a, b), result)

def negate(a: Value) -> Value:
    require_numeric(a)
    return make(a.type, -a.value)

def identity(a: Value) -> Value:
    require_numeric(a)
    return a


## RELATIONS & LOGIC
def _compare(a: Value, b: Value) -> int:
    if a.is_string != b.is_string: raise TypeMismatch()
    return (a.value > b.value) - (a.value < b.value)

def equal(a: Value, b: Value) -> Value: return TRUE if _compare(a, b) == 0 else FALSE
def not_equal(a: Value, b: Value) -> Value: return TRUE if _compare(a, b) != 0 else FALSE
def less(a: Value, b: Value) -> Value: return TRUE if _compare(a, b) < 0 else FALSE
def greater(a: Value, b: Value) -> Value: return TRUE if _compare(a, b) > 0 else FALSE
def less_equal(a: Value, b: Value) -> Value: return TRUE if _compare(a, b) <= 0 else FALSE
def greater_equal(a: Value, b: Value) -> Value: return TRUE if _compare(a, b) >= 0 else FALSE

def logical_and(a: Value, b: Value) -> Value: return Value.int(to_bits16(a) & to_bits16(b))
def logical_or(a: Value, b: Value) -> Value: return Value.int(to_bits16(a) | to_bits16(b))
def logical_xor(a: Value, b: Value) -> Value: return Value.int(to_bits16(a) ^ to_bits16(b))
def logical_eqv(a: Value, b: Value) -> Value: return Value.int(~(to_bits16(a) ^ to_bits16(b)))
def logical_imp(a: Value, b: Value) -> Value: return Value.int(~to_bits16(a) | to_bits16(b))
def logical_not(a: Value) -> Value: return Value.int(~to_bits16(a))

def is_true(v: Value) -> bool:
    require_numeric(v)
    return v.value != 0


BINARY = {
    '+': add, '-': sub, '*': mul, '/': div, '\\': int_div, 'MOD': mod, '^': power,
    '=': equal, '<>': not_equal, '<': less, '>': greater, '<=': less_equal, '>=': greater_equal,
    'AND': logical_and, 'OR': logical_or, 'XOR': logical_xor, 'EQV': logical_eqv, 'IMP': logical_imp,
}
UNARY = {'-': negate, '+': identity, 'NOT': logical_not}


def evaluate(op: str, a: Value, b: Value | None = None) -> tuple[Value | None, int | None]:
    """Apply an operator and report `(value, None)` or `(None, error_code)` instead of raising."""
    try:
        return (UNARY[op](a) if b is None else BINARY[op](a, b)), None
    except BasicError as exc:
        return None, exc.code


## MATH FUNCTIONS
def _float_result(v: Value, x: float) -> Value:
    return make(DOUBLE if v.type is DOUBLE else SINGLE, x)

def sgn(v: Value) -> Value:
    require_numeric(v)
    return Value.int((v.value > 0) - (v.value < 0))

def absolute(v: Value) -> Value:
    require_numeric(v)
    return make(v.type, abs(v.value))

def sqr(v: Value) -> Value:
    if to_float(v) < 0: raise IllegalFunctionCall()
    return _float_result(v, math.sqrt(v.value))

def log(v: Value) -> Value:
    if to_float(v) <= 0: raise IllegalFunctionCall()
    return _float_result(v, math.log(v.value))

def exp(v: Value) -> Value:
    try:
        return _float_result(v, math.exp(to_float(v)))
    except OverflowError:
        raise Overflow() from None

def sin(v: Value) -> Value: return _float_result(v, math.sin(to_float(v)))
def cos(v: Value) -> Value: return _float_result(v, math.cos(to_float(v)))
def tan(v: Value) -> Value: return _float_result(v, math.tan(to_float(v)))
def atn(v: Value) -> Value: return _float_result(v, math.atan(to_float(v)))


## RANDOM NUMBERS
class RandomGenerator:
    """Deterministic linear congruential generator over a 32-bit state."""

    def __init__(self, seed: int = 0x50000):
        self.seed(seed)

    def seed(self, seed: int) -> None:
        self._state = int(seed) & 0xFFFFFFFF
        self._last: float | None = None

    def _next(self) -> float:
        self._state = (self._state * 214013 + 2531011) & 0xFFFFFFFF
        self._last = (self._state >> 8) / float(1 << 24)
        return self._last

    def rnd(self, arg: float | None = None) -> float:
        if arg is None: return self._next()
        if arg > 0: self.seed(seed_from_number(arg))
        elif arg == 0: return self._last if self._last is not None else self._next()
        else: self.seed(time.time_ns())
        return self._next()

    def randomize(self, seed: float | None = None) -> None:
        self.seed(time.time_ns() if seed is None else seed_from_number(seed))


def seed_from_number(x: float) -> int:
    return int.from_bytes(ieee_to_mbf32(float(x)), 'little')


## NUMBER TEXT
_NUMBER_RE = re.compile(r'(\d+\.?\d*|\.\d+)(?:([EeDd])([+-]?\d+))?([!#%])?')
_HEX_RE = re.compile(r'&[Hh]([0-9A-Fa-f]*)')
_OCT_RE = re.compile(r'&[Oo]?([0-7]*)')


def _significant_digits(mantissa: str) -> int:
    return len(mantissa.replace('.', '').lstrip('0'))

def parse_literal(text: str, pos: int = 0) -> tuple[Value, int] | None:
    """Parse a numeric literal at `pos`, returning the typed value and the end position."""
    if text.startswith('&', pos):
        m = _HEX_RE.match(text, pos) or _OCT_RE.match(text, pos)
        if not m.group(1): return None
        number = int(m.group(1), 16 if m.re is _HEX_RE else 8)
        if number > 0xFFFF: raise Overflow()
        return make(INT if number <= INT_MAX else SINGLE, number), m.end()
    if not (m := _NUMBER_RE.match(text, pos)): return None
    mantissa, marker, exponent, suffix = m.groups()
    marker = (marker or '').upper()
    x = float(mantissa + (f"e{exponent}" if marker else ''))
    if suffix == '%':
        if '.' in mantissa or marker or not INT_MIN <= x <= INT_MAX: raise Overflow()
        return Value.int(int(x)), m.end()
    if suffix == '#' or marker == 'D': t = DOUBLE
    elif suffix == '!' or marker == 'E': t = SINGLE
    elif _significant_digits(mantissa) > 7: t = DOUBLE
    elif '.' in mantissa: t = SINGLE
    else: t = INT if x <= INT_MAX else SINGLE
    return make(t, int(x) if t is INT else x), m.end()

def parse_number(text: str) -> Value | None:
    """Parse a complete number with optional sign and surrounding blanks; None when it is not one."""
    s = text.strip(' \t')
    sign = -1 if s.startswith('-') else 1
    if s[:1] in '+-': s = s[1:].lstrip(' ')
    if not s: return None
    try:
        parsed = parse_literal(s)
    except Overflow:
        return None
    if parsed is None or parsed[1] != len(s): return None
    value, _ = parsed
    return value if sign > 0 else negate(value)

def val(text: str) -> Value:
    """VAL semantics: parse the longest numeric prefix, ignoring blanks; zero when there is none."""
    s = text.replace(' ', '').replace('\t', '')
    sign, start = (-1, 1) if s.startswith('-') else (1, 1 if s.startswith('+') else 0)
    parsed = parse_literal(s, start)
    if parsed is None: return Value.int(0)
    value = parsed[0]
    return negate(value) if sign < 0 else value


def _format_float(x: float, digits: int, marker: str) -> str:
    if x == 0: return "0"
    sign, ax = ('-' if x < 0 else ''), abs(x)
    plain = f"{ax:.{digits}g}"
    if 'e' in plain or ax >= 10 ** digits or ax < 0.01:
        mantissa, exponent = f"{ax:.{digits - 1}e}".split('e')
        mantissa = mantissa.rstrip('0').rstrip('.')
        e = int(exponent)
        return f"{sign}{mantissa}{marker}{'+' if e >= 0 else '-'}{abs(e):02d}"
    if '.' in plain: plain = plain.rstrip('0').rstrip('.')
    if plain.startswith('0.'): plain = plain[1:]
    return sign + plain

def number_text(v: Value) -> str:
    """Digits of a number as BASIC shows them, without the sign position."""
    if v.type is INT: return str(v.value)
    if v.type is SINGLE: return _format_float(v.value, 7, 'E')
    return _format_float(v.value, 16, 'D')

def format_number(v: Value) -> str:
    """Display form used by PRINT and STR$: a leading space stands in for the sign of non-negative values."""
    require_numeric(v)
    text = number_text(v)
    return text if text.startswith('-') else ' ' + text
